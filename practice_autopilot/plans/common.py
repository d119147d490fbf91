"""
计划工厂公共工具

StepServices 把领域存储与外部动作网关交给工厂；PlanBuilder 负责编号步骤并生成常见的
可撤销步骤（网关动作、消息、任务、临床记录）。
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..core.constants import SystemConstants
from ..core.errors import ClarificationRequired
from ..core.id_generator import IDGenerator, id_generator as default_id_generator
from ..database.memory_store import MemoryPracticeStore
from ..infrastructure.action_gateway import ActionGateway
from ..models.context import InterpretationContext
from ..models.plan import ClarificationQuestion, EventCategory, Plan, QuestionType, Step, StepAction
from ..models.practice import Message, Note, Patient, Task

logger = logging.getLogger(__name__)


@dataclass
class StepServices:
    """步骤可使用的协作方"""
    store: MemoryPracticeStore
    gateway: ActionGateway
    ids: IDGenerator = field(default_factory=lambda: default_id_generator)


PlanFactory = Callable[[re.Match, InterpretationContext, StepServices], Awaitable[Plan]]


def capture(match: re.Match, group: str, default: str = "") -> str:
    """读取命名分组，缺失或为空时返回 default"""
    try:
        value = match.group(group)
    except IndexError:
        value = None
    if not value:
        return default
    return value.strip() or default


def searchable_command(command: str, context: InterpretationContext) -> str:
    """命令原文加上澄清答案，用于查找文本中出现的患者全名"""
    if context.clarification:
        return f"{command}{SystemConstants.REFINEMENT_SEPARATOR}{context.clarification}"
    return command


def parse_amount(text: str) -> float:
    """从 "£45" / "45.00 GBP" 之类文本中取出金额"""
    found = re.search(r"\d+(?:\.\d+)?", text or "")
    return float(found.group(0)) if found else 0.0


def resolve_patient(name: str, context: InterpretationContext, command: str = "") -> Optional[Dict[str, Any]]:
    """在上下文快照中解析患者

    唯一匹配时返回患者字典；无匹配返回 None；多个候选时，若命令或澄清答案中已出现
    某个候选的全名则取该候选，否则抛出 ClarificationRequired。
    """
    candidates = context.find_patients(name)
    if len(candidates) <= 1:
        return candidates[0] if candidates else None

    lowered = searchable_command(command, context).lower()
    named = [p for p in candidates if str(p.get("name", "")).lower() in lowered
             and str(p.get("name", "")).lower() != name.strip().lower()]
    if len(named) == 1:
        return named[0]

    options = [str(p.get("name")) for p in candidates]
    logger.info(f"Patient name '{name}' is ambiguous: {options}")
    raise ClarificationRequired(
        [ClarificationQuestion(
            id="patient",
            question=f'Which patient do you mean by "{name}"?',
            type=QuestionType.SINGLE_CHOICE,
            options=options,
        )],
        message=f"Multiple patients match '{name}'",
    )


def display_name(raw: str, patient: Optional[Dict[str, Any]]) -> str:
    return str(patient.get("name")) if patient else raw


async def lookup_patient(services: StepServices, name: str,
                         resolved: Optional[Dict[str, Any]] = None) -> Optional[Patient]:
    """执行时从存储读取患者；解析阶段已确定 id 时直接按 id 读取"""
    if resolved and resolved.get("id"):
        patient = await services.store.get_patient(resolved["id"])
        if patient:
            return patient
    matches = await services.store.find_patients(name)
    return matches[0] if len(matches) == 1 else None


class PlanBuilder:
    """按声明顺序收集步骤并生成 Plan"""

    def __init__(self, title: str, context: InterpretationContext, services: StepServices,
                 prefix: str = "plan", category: EventCategory = EventCategory.PLAN):
        self.title = title
        self.context = context
        self.services = services
        self.prefix = prefix
        self.category = category
        self.steps: List[Step] = []

    def step(self, label: str, run: StepAction, undo: Optional[StepAction] = None) -> "PlanBuilder":
        self.steps.append(Step(
            id=self.services.ids.generate_step_id(len(self.steps) + 1),
            label=label,
            run=run,
            undo=undo,
        ))
        return self

    def action(self, label: str, action: str, payload: Optional[Dict[str, Any]] = None,
               reversible: bool = True) -> "PlanBuilder":
        """通过外部网关执行的步骤，撤销时调用网关的补偿动作"""
        gateway = self.services.gateway
        data = dict(payload or {})

        async def run():
            await gateway.perform(action, data)

        async def undo():
            await gateway.revert(action, data)

        return self.step(label, run, undo if reversible else None)

    def message(self, label: str, to: str, body: str, channel: str = "sms") -> "PlanBuilder":
        """经网关发送消息，发送成功后才登记到存储；撤销时撤回"""
        store, gateway, ids = self.services.store, self.services.gateway, self.services.ids
        state: Dict[str, Any] = {}

        async def run():
            message = Message(id=ids.generate_record_id("msg"), to=to, body=body)
            await gateway.perform(f"{channel}.send", {"to": to, "body": body, "message_id": message.id})
            message.status = "sent"
            state["message_id"] = message.id
            await store.add_message(message)

        async def undo():
            message_id = state.pop("message_id", None)
            if message_id:
                await gateway.revert(f"{channel}.send", {"to": to, "message_id": message_id})
                await store.remove_message(message_id)

        return self.step(label, run, undo)

    def task(self, label: str, title: str, patient_id: Optional[str] = None) -> "PlanBuilder":
        store, ids = self.services.store, self.services.ids
        state: Dict[str, Any] = {}

        async def run():
            task = Task(id=ids.generate_record_id("task"), title=title, patient_id=patient_id)
            if await store.add_task(task):
                state["task_id"] = task.id

        async def undo():
            task_id = state.pop("task_id", None)
            if task_id:
                await store.remove_task(task_id)

        return self.step(label, run, undo)

    def note(self, label: str, patient_id: Optional[str], text: str, note_type: str = "consultation",
             status: str = "draft", author: str = "Autopilot",
             state: Optional[Dict[str, Any]] = None) -> "PlanBuilder":
        """创建临床记录；传入 state 时把记录 id 写入 state["note_id"] 供后续步骤使用"""
        store, ids = self.services.store, self.services.ids
        state = state if state is not None else {}

        async def run():
            note = Note(id=ids.generate_record_id("note"), patient_id=patient_id, author=author,
                        text=text, type=note_type, status=status)
            if await store.add_note(note):
                state["note_id"] = note.id

        async def undo():
            note_id = state.pop("note_id", None)
            if note_id:
                await store.remove_note(note_id)

        return self.step(label, run, undo)

    def build(self) -> Plan:
        plan = Plan(
            id=self.services.ids.generate_plan_id(self.prefix),
            title=self.title,
            actor=self.context.actor,
            source=self.context.source,
            steps=list(self.steps),
            category=self.category,
        )
        logger.debug(f"Built plan {plan.id} '{plan.title}' with {len(plan.steps)} steps")
        return plan
