"""
Practice Autopilot 主入口

把领域存储、外部动作网关、指令解释器、事件时间线与计划执行器组装在一起，
对展示层提供 submit / execute / undo / retry 这一组操作，以及按来电记录生成跟进计划。
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..database.memory_store import MemoryPracticeStore
from ..infrastructure.action_gateway import ActionGateway, SimulatedActionGateway
from ..infrastructure.command_understanding import CommandUnderstanding
from ..infrastructure.llm_client import LLMClient, build_llm_client
from ..models.context import AutopilotMode, InterpretationContext, Role
from ..models.plan import Actor, Plan, PlanStatus, Source
from ..models.practice import CallRecord
from ..plans.calls import build_call_plan, follow_ups_for_call
from ..plans.common import StepServices
from ..plans.registry import default_rules
from ..utils.config import Config
from ..utils.timeline_logger import TimelineLogger
from .clarification import Answer, resolve_clarification
from .command_interpreter import CommandInterpreter
from .constants import SystemConstants
from .id_generator import IDGenerator, id_generator as default_id_generator
from .pattern_cascade import PatternCascade, Rule
from .plan_executor import PlanExecutor
from .timeline import EventTimeline

logger = logging.getLogger(__name__)


class PracticeAutopilot:
    """指令到计划流水线的主类"""

    def __init__(
        self,
        store: Optional[MemoryPracticeStore] = None,
        gateway: Optional[ActionGateway] = None,
        timeline: Optional[EventTimeline] = None,
        llm_client: Optional[LLMClient] = None,
        rules: Optional[Iterable[Rule]] = None,
        confidence_threshold: float = SystemConstants.DEFAULT_CONFIDENCE_THRESHOLD,
        pacing: Tuple[float, float] = (
            SystemConstants.DEFAULT_PACING_MIN_SECONDS,
            SystemConstants.DEFAULT_PACING_MAX_SECONDS,
        ),
        allow_repeat_undo: bool = False,
        audit_log_file: Optional[str] = None,
        ids: Optional[IDGenerator] = None,
    ):
        self.ids = ids or default_id_generator
        self.store = store or MemoryPracticeStore()
        self.gateway = gateway or SimulatedActionGateway()
        self.timeline = timeline or EventTimeline(self.ids)
        self.services = StepServices(store=self.store, gateway=self.gateway, ids=self.ids)

        # 解释器：AI 理解（可选）+ 模式级联 + 兜底
        self.cascade = PatternCascade(rules if rules is not None else default_rules(), self.services)
        self.understanding = None
        if llm_client is not None:
            self.understanding = CommandUnderstanding(
                llm_client, self.gateway, confidence_threshold=confidence_threshold, ids=self.ids
            )
        self.interpreter = CommandInterpreter(self.cascade, self.understanding, ids=self.ids)

        self.executor = PlanExecutor(self.timeline, pacing=pacing, allow_repeat_undo=allow_repeat_undo)
        self.audit_log_file = audit_log_file
        self.timeline_logger: Optional[TimelineLogger] = None
        self._started = False

    @classmethod
    def from_config(cls, config: Config, **overrides: Any) -> "PracticeAutopilot":
        """根据配置创建实例；overrides 中的参数优先"""
        gateway = SimulatedActionGateway(
            latency_ms=(
                config.get_int("gateway.latency_ms.min", 0),
                config.get_int("gateway.latency_ms.max", 0),
            ),
            unresponsive_portals=config.get_list("gateway.unresponsive_portals"),
        )

        llm_client = None
        if config.get_bool("llm.enabled", False):
            try:
                llm_client = build_llm_client(
                    config.get("llm.provider"), config.get("llm.model")
                )
            except NotImplementedError as e:
                logger.error(f"LLM disabled: {e}")

        options: Dict[str, Any] = {
            "gateway": gateway,
            "llm_client": llm_client,
            "confidence_threshold": config.get_float(
                "interpreter.confidence_threshold", SystemConstants.DEFAULT_CONFIDENCE_THRESHOLD
            ),
            "pacing": (
                config.get_float("executor.pacing_min_seconds", SystemConstants.DEFAULT_PACING_MIN_SECONDS),
                config.get_float("executor.pacing_max_seconds", SystemConstants.DEFAULT_PACING_MAX_SECONDS),
            ),
            "allow_repeat_undo": config.get_bool("executor.allow_repeat_undo", False),
            "audit_log_file": config.get("timeline.audit_log_file"),
        }
        options.update(overrides)
        return cls(**options)

    # ========== 生命周期 ==========

    async def start(self):
        """启动：挂接审计日志"""
        try:
            if self.audit_log_file and self.timeline_logger is None:
                self.timeline_logger = TimelineLogger(self.audit_log_file).attach(self.timeline)
                logger.info(f"Timeline audit log attached: {self.audit_log_file}")
            self._started = True
            logger.info(
                f"Practice Autopilot started ({len(self.cascade.rules)} rules, "
                f"ai={'on' if self.understanding else 'off'})"
            )
        except Exception as e:
            logger.error(f"Failed to start Practice Autopilot: {e}")
            raise

    async def stop(self):
        """停止：解除审计日志订阅"""
        try:
            if self.timeline_logger:
                self.timeline_logger.detach()
                self.timeline_logger = None
            self._started = False
            logger.info("Practice Autopilot stopped")
        except Exception as e:
            logger.error(f"Error stopping Practice Autopilot: {e}")

    # ========== 解释 ==========

    def snapshot_context(
        self,
        actor: Actor = Actor.USER,
        source: Source = Source.COMMAND_BAR,
        role: Role = Role.RECEPTION,
        autopilot_mode: AutopilotMode = AutopilotMode.MANUAL,
        current_time: Optional[str] = None,
    ) -> InterpretationContext:
        """用当前存储内容构建解释上下文"""
        snapshot = self.store.snapshot()
        return InterpretationContext(
            actor=actor,
            source=source,
            role=role,
            autopilot_mode=autopilot_mode,
            patients=snapshot["patients"],
            appointments=snapshot["appointments"],
            invoices=snapshot["invoices"],
            current_time=current_time or datetime.now().isoformat(),
        )

    async def submit(self, command: str, context: Optional[InterpretationContext] = None) -> Optional[Plan]:
        """解释命令，返回计划（可能是待澄清计划），不执行"""
        return await self.interpreter.interpret(command, context or self.snapshot_context())

    async def resolve_clarification(
        self,
        plan: Plan,
        answers: Dict[str, Answer],
        context: Optional[InterpretationContext] = None,
    ) -> Optional[Plan]:
        """用澄清答案重新解释待澄清计划"""
        return await resolve_clarification(
            self.interpreter, plan, answers, context or self.snapshot_context(plan.actor, plan.source)
        )

    # ========== 来电跟进 ==========

    async def follow_ups_for_call(self, call: CallRecord) -> List[str]:
        """来电可选的跟进类型，首项为主要跟进"""
        patient = await self.store.get_patient(call.patient_id) if call.patient_id else None
        return follow_ups_for_call(call, patient_known=patient is not None)

    async def plan_from_call(
        self,
        call: CallRecord,
        kind: str,
        context: Optional[InterpretationContext] = None,
    ) -> Plan:
        """按来电记录生成跟进计划（来源为 call），不执行"""
        return await build_call_plan(kind, call, context or self.snapshot_context(source=Source.CALL), self.services)

    # ========== 执行 / 撤销 / 重试 ==========

    async def execute(self, plan: Plan) -> PlanStatus:
        return await self.executor.execute(plan)

    async def run_command(
        self, command: str, context: Optional[InterpretationContext] = None
    ) -> Tuple[Optional[Plan], Optional[PlanStatus]]:
        """解释并立即执行；待澄清或空白命令不执行"""
        plan = await self.submit(command, context)
        if plan is None or plan.needs_clarification:
            return plan, None
        return plan, await self.execute(plan)

    async def undo_event(self, event_id: str, actor: Actor = Actor.USER,
                         source: Source = Source.COMMAND_BAR) -> bool:
        return await self.executor.undo_event(event_id, actor=actor, source=source)

    async def undo_all_plan(self, plan_id: str, actor: Actor = Actor.USER,
                            source: Source = Source.COMMAND_BAR) -> int:
        return await self.executor.undo_all_plan(plan_id, actor=actor, source=source)

    async def retry_failed(self, plan_id: str, actor: Actor = Actor.USER,
                           source: Source = Source.COMMAND_BAR) -> int:
        return await self.executor.retry_failed(plan_id, actor=actor, source=source)

    def status(self) -> Dict[str, Any]:
        """运行状态摘要"""
        active = self.executor.active_plan
        return {
            "started": self._started,
            "active_plan_id": active.id if active else None,
            "events": len(self.timeline),
            "pending_failures": len(self.timeline.failures),
            "rules": len(self.cascade.rules),
            "ai_enabled": self.understanding is not None,
        }
