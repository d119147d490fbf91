"""
计划数据模型

Plan 由指令解释器生成、由计划执行器消费；Step 是其中的原子动作。
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

StepAction = Callable[[], Awaitable[None]]


class Actor(Enum):
    """计划发起者"""
    USER = "user"
    AUTOPILOT = "autopilot"
    SYSTEM = "system"


class Source(Enum):
    """指令来源渠道"""
    COMMAND_BAR = "cmdk"
    DRAG_DROP = "drag"
    KPI_PANEL = "kpi"
    CALL = "call"
    SCRIBE = "scribe"


class EventCategory(Enum):
    """事件分类：计划产生的事件沿用计划的分类"""
    PLAN = "plan"
    REMINDER = "reminder"
    VERIFICATION = "verification"
    GENERAL = "general"
    SCRIBE = "scribe"


class PlanStatus(Enum):
    """计划状态枚举"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"


class QuestionType(Enum):
    """澄清问题的答案形态"""
    SINGLE_CHOICE = "single_choice"
    MULTIPLE_CHOICE = "multiple_choice"
    TEXT_INPUT = "text_input"
    DATE_PICKER = "date_picker"


@dataclass
class ClarificationQuestion:
    """澄清问题"""
    id: str
    question: str
    type: QuestionType = QuestionType.TEXT_INPUT
    options: List[str] = field(default_factory=list)
    required: bool = True

    @property
    def is_choice(self) -> bool:
        return self.type in (QuestionType.SINGLE_CHOICE, QuestionType.MULTIPLE_CHOICE)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "question": self.question,
            "type": self.type.value,
            "options": list(self.options),
            "required": self.required,
        }


@dataclass
class Step:
    """原子步骤：run 为正向动作，undo 为可选的补偿动作"""
    id: str
    label: str
    run: StepAction
    undo: Optional[StepAction] = None

    @property
    def reversible(self) -> bool:
        """是否存在补偿动作"""
        return self.undo is not None


@dataclass
class Plan:
    """计划模型

    创建后除 status 及执行时间戳外不应再修改，这些字段只由执行器维护。
    """
    id: str
    title: str
    actor: Actor = Actor.USER
    source: Source = Source.COMMAND_BAR
    steps: List[Step] = field(default_factory=list)
    status: PlanStatus = PlanStatus.PENDING
    needs_clarification: bool = False
    clarification_questions: List[ClarificationQuestion] = field(default_factory=list)
    original_command: Optional[str] = None
    category: EventCategory = EventCategory.PLAN
    created_at: datetime = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = datetime.now()
        ids = [step.id for step in self.steps]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Duplicate step ids in plan {self.id}: {ids}")

    @property
    def automated(self) -> bool:
        """由 Autopilot 自行发起的计划"""
        return self.actor == Actor.AUTOPILOT

    def get_step(self, step_id: str) -> Optional[Step]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    @property
    def is_executable(self) -> bool:
        """待澄清的计划不可交给执行器"""
        return not self.needs_clarification

    @property
    def is_finished(self) -> bool:
        return self.status in (PlanStatus.COMPLETE, PlanStatus.PARTIAL, PlanStatus.FAILED)

    def mark_running(self):
        self.status = PlanStatus.RUNNING
        self.started_at = datetime.now()

    def mark_finished(self, status: PlanStatus):
        self.status = status
        self.finished_at = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """转换为可序列化字典（供展示层预览/审批使用）"""
        return {
            "id": self.id,
            "title": self.title,
            "actor": self.actor.value,
            "source": self.source.value,
            "status": self.status.value,
            "steps": [
                {"id": s.id, "label": s.label, "reversible": s.reversible}
                for s in self.steps
            ],
            "needs_clarification": self.needs_clarification,
            "clarification_questions": [q.to_dict() for q in self.clarification_questions],
            "original_command": self.original_command,
            "category": self.category.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }
