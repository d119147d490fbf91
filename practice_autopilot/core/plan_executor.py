"""
计划执行器（时间线引擎）

顺序执行计划步骤，记录事件，隔离单步失败，并提供重试与后进先出的撤销。
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Dict, Optional, Tuple

from ..models.event import EventType, FailureRecord
from ..models.plan import Actor, EventCategory, Plan, PlanStatus, Source, Step
from .constants import SystemConstants
from .errors import PlanAlreadyRunningError, PlanNotExecutableError
from .timeline import EventTimeline

logger = logging.getLogger(__name__)


def _error_message(error: BaseException) -> str:
    return str(error) or error.__class__.__name__


class PlanExecutor:
    """计划执行器

    同一时刻只允许一个活动计划；执行中再次调用 execute 会抛出 PlanAlreadyRunningError。
    """

    def __init__(
        self,
        timeline: EventTimeline,
        pacing: Tuple[float, float] = (
            SystemConstants.DEFAULT_PACING_MIN_SECONDS,
            SystemConstants.DEFAULT_PACING_MAX_SECONDS,
        ),
        allow_repeat_undo: bool = False,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        rng: Optional[random.Random] = None,
    ):
        pacing_min, pacing_max = pacing
        if pacing_min < 0 or pacing_max < pacing_min:
            raise ValueError(f"Invalid pacing range: {pacing}")
        self.timeline = timeline
        self.pacing = (pacing_min, pacing_max)
        self.allow_repeat_undo = allow_repeat_undo
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()
        self._active_plan: Optional[Plan] = None
        self._plans: Dict[str, Plan] = {}

    @property
    def active_plan(self) -> Optional[Plan]:
        return self._active_plan

    @property
    def is_busy(self) -> bool:
        return self._active_plan is not None

    def get_plan(self, plan_id: str) -> Optional[Plan]:
        """获取已交给执行器的计划"""
        return self._plans.get(plan_id)

    # ========== 执行 ==========

    async def execute(self, plan: Plan) -> PlanStatus:
        """执行计划，返回最终状态；逐步结果只通过时间线事件体现"""
        if not plan.is_executable:
            raise PlanNotExecutableError(
                f"Plan {plan.id} needs clarification and cannot be executed",
                {"plan_id": plan.id},
            )
        if self._active_plan is not None:
            raise PlanAlreadyRunningError(self._active_plan.id, plan.id)
        if plan.id in self._plans:
            raise PlanNotExecutableError(
                f"Plan {plan.id} was already executed; use retry_failed for failed steps",
                {"plan_id": plan.id, "status": plan.status.value},
            )

        self._active_plan = plan
        self._plans[plan.id] = plan
        plan.mark_running()
        logger.info(f"Executing plan {plan.id} '{plan.title}' with {len(plan.steps)} steps")

        try:
            self.timeline.add_event(
                EventType.PLAN_START,
                f"Starting plan: {plan.title}",
                plan.actor,
                plan.source,
                plan_id=plan.id,
                category=plan.category,
                automated=plan.automated,
            )

            for index, step in enumerate(plan.steps):
                await self._run_step(plan, step)
                if index < len(plan.steps) - 1:
                    await self._pace()

            had_failures = self.timeline.has_failures(plan.id)
            if had_failures:
                plan.mark_finished(PlanStatus.PARTIAL)
                self.timeline.add_event(
                    EventType.PLAN_PARTIAL,
                    f"Completed with failures: {plan.title}",
                    Actor.SYSTEM,
                    plan.source,
                    plan_id=plan.id,
                    category=plan.category,
                    automated=plan.automated,
                )
            else:
                plan.mark_finished(PlanStatus.COMPLETE)
                self.timeline.add_event(
                    EventType.PLAN_COMPLETE,
                    f"Completed: {plan.title}",
                    plan.actor,
                    plan.source,
                    plan_id=plan.id,
                    category=plan.category,
                    automated=plan.automated,
                )
            logger.info(f"Plan {plan.id} finished with status {plan.status.value}")

        except Exception as e:
            logger.error(f"Error executing plan {plan.id}: {e}")
            plan.mark_finished(PlanStatus.FAILED)
            self.timeline.add_event(
                EventType.PLAN_FAILED,
                f"Failed plan: {plan.title} - {_error_message(e)}",
                Actor.SYSTEM,
                plan.source,
                plan_id=plan.id,
                category=plan.category,
                automated=plan.automated,
            )
        finally:
            self._active_plan = None

        return plan.status

    async def _run_step(self, plan: Plan, step: Step):
        """执行单个步骤；失败只记录，不中断计划"""
        self.timeline.add_event(
            EventType.STEP_START,
            f"Starting: {step.label}",
            plan.actor,
            plan.source,
            plan_id=plan.id,
            category=plan.category,
            automated=plan.automated,
            step_id=step.id,
        )
        try:
            await step.run()
        except Exception as e:
            message = _error_message(e)
            logger.warning(f"Step {step.id} of plan {plan.id} failed: {message}")
            self.timeline.record_failure(FailureRecord(
                plan_id=plan.id,
                category=plan.category,
                automated=plan.automated,
                step_id=step.id,
                label=step.label,
                run=step.run,
                undo=step.undo,
                error=message,
            ))
            self.timeline.add_event(
                EventType.STEP_FAILED,
                f"{step.label} - {message}",
                Actor.SYSTEM,
                plan.source,
                plan_id=plan.id,
                category=plan.category,
                automated=plan.automated,
                step_id=step.id,
            )
            return

        self.timeline.add_event(
            EventType.STEP_COMPLETE,
            step.label,
            plan.actor,
            plan.source,
            plan_id=plan.id,
            category=plan.category,
            automated=plan.automated,
            step_id=step.id,
            undo=step.undo,
        )

    async def _pace(self):
        pacing_min, pacing_max = self.pacing
        if pacing_max <= 0:
            return
        await self._sleep(self._rng.uniform(pacing_min, pacing_max))

    # ========== 撤销 ==========

    async def undo_event(
        self,
        event_id: str,
        actor: Actor = Actor.USER,
        source: Source = Source.COMMAND_BAR,
    ) -> bool:
        """撤销单个事件，成功返回 True

        无 undo 的事件不做任何处理。已撤销过的事件默认跳过，
        allow_repeat_undo=True 时会再次执行补偿动作。
        """
        event = self.timeline.get_event(event_id)
        if event is None:
            logger.warning(f"Undo requested for unknown event {event_id}")
            return False
        if not event.can_undo:
            return False
        if event.undone and not self.allow_repeat_undo:
            logger.info(f"Event {event_id} already undone; skipping")
            return False

        try:
            await event.undo()
        except Exception as e:
            logger.error(f"Failed to undo event {event_id}: {e}")
            self.timeline.add_event(
                EventType.SYSTEM_UNDO_FAILED,
                f"Failed to undo: {event.summary}",
                Actor.SYSTEM,
                source,
                plan_id=event.plan_id,
                step_id=event.step_id,
                category=event.category,
            )
            return False

        event.undone = True
        self.timeline.add_event(
            EventType.SYSTEM_UNDO,
            f"Undid: {event.summary}",
            actor,
            source,
            plan_id=event.plan_id,
            step_id=event.step_id,
            category=event.category,
        )
        return True

    async def undo_all_plan(
        self,
        plan_id: str,
        actor: Actor = Actor.USER,
        source: Source = Source.COMMAND_BAR,
    ) -> int:
        """按后进先出顺序撤销计划的全部可撤销事件，返回成功撤销的数量"""
        if self._active_plan is not None and self._active_plan.id == plan_id:
            raise PlanAlreadyRunningError(plan_id, plan_id)

        # 先取快照，撤销过程中追加的事件不参与本轮
        plan_events = list(reversed(self.timeline.events_for_plan(plan_id)))

        self.timeline.add_event(
            EventType.PLAN_UNDO_START,
            f"Starting undo of plan: {plan_id}",
            actor,
            source,
            plan_id=plan_id,
        )

        undone = 0
        for event in plan_events:
            if event.can_undo and not event.is_undo_bookkeeping:
                if await self.undo_event(event.id, actor=actor, source=source):
                    undone += 1

        self.timeline.add_event(
            EventType.PLAN_UNDO_COMPLETE,
            f"Completed undo of plan: {plan_id}",
            actor,
            source,
            plan_id=plan_id,
        )
        logger.info(f"Undid {undone} events of plan {plan_id}")
        return undone

    # ========== 重试 ==========

    async def retry_failed(
        self,
        plan_id: str,
        actor: Actor = Actor.USER,
        source: Source = Source.COMMAND_BAR,
    ) -> int:
        """重试计划中所有失败步骤，返回成功数量

        所有失败都被清除后，partial 状态的计划提升为 complete。
        """
        if self._active_plan is not None and self._active_plan.id == plan_id:
            raise PlanAlreadyRunningError(plan_id, plan_id)

        plan = self._plans.get(plan_id)
        category = plan.category if plan else EventCategory.PLAN
        succeeded = 0
        for record in self.timeline.failures_for_plan(plan_id):
            try:
                await record.run()
            except Exception as e:
                message = _error_message(e)
                record.error = message
                record.attempts += 1
                logger.warning(f"Retry of step {record.step_id} in plan {plan_id} failed: {message}")
                self.timeline.add_event(
                    EventType.STEP_RETRY_FAILED,
                    f"Retry failed: {record.label} - {message}",
                    Actor.SYSTEM,
                    source,
                    plan_id=plan_id,
                    step_id=record.step_id,
                    category=category,
                )
                continue

            self.timeline.remove_failure(plan_id, record.step_id)
            succeeded += 1
            self.timeline.add_event(
                EventType.STEP_RETRY_SUCCESS,
                f"Retried: {record.label}",
                actor,
                source,
                plan_id=plan_id,
                step_id=record.step_id,
                category=category,
                undo=record.undo,
            )

        if plan and plan.status == PlanStatus.PARTIAL and not self.timeline.has_failures(plan_id):
            plan.mark_finished(PlanStatus.COMPLETE)
            self.timeline.add_event(
                EventType.PLAN_COMPLETE,
                f"Completed after retry: {plan.title}",
                actor,
                source,
                plan_id=plan_id,
                category=category,
            )
            logger.info(f"Plan {plan_id} promoted to complete after retry")

        return succeeded
