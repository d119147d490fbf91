"""
计划执行器测试：顺序执行、失败隔离、撤销与重试
"""

import asyncio

import pytest
from unittest.mock import AsyncMock

from practice_autopilot.core.clarification import make_clarification_plan
from practice_autopilot.core.errors import PlanAlreadyRunningError, PlanNotExecutableError
from practice_autopilot.core.plan_executor import PlanExecutor
from practice_autopilot.models.context import InterpretationContext
from practice_autopilot.models.event import EventType
from practice_autopilot.models.plan import Actor, ClarificationQuestion, EventCategory, PlanStatus


def _types(timeline, plan_id):
    return [e.type for e in timeline.events_for_plan(plan_id)]


class TestExecute:
    """执行"""

    @pytest.mark.asyncio
    async def test_steps_run_in_order(self, executor, timeline, recorder):
        """测试步骤按声明顺序执行，事件严格有序"""
        plan = recorder.simple_plan(3, title="Three steps")

        status = await executor.execute(plan)

        assert status == PlanStatus.COMPLETE
        assert plan.status == PlanStatus.COMPLETE
        assert recorder.runs == ["run:1", "run:2", "run:3"]
        assert _types(timeline, plan.id) == [
            "plan.start",
            "step.start", "step.complete",
            "step.start", "step.complete",
            "step.start", "step.complete",
            "plan.complete",
        ]
        events = timeline.events_for_plan(plan.id)
        assert events[0].summary == "Starting plan: Three steps"
        assert events[1].summary == "Starting: Step 1"
        assert events[2].summary == "Step 1"
        assert events[-1].summary == "Completed: Three steps"
        assert plan.started_at is not None and plan.finished_at is not None

    @pytest.mark.asyncio
    async def test_next_step_waits_for_running_step(self, executor, timeline, recorder):
        """测试前一步未结束时后一步不会开始"""
        gate = asyncio.Event()
        plan = recorder.plan(recorder.step(1, gate=gate), recorder.step(2), recorder.step(3))

        running = asyncio.create_task(executor.execute(plan))
        while not recorder.runs:
            await asyncio.sleep(0)
        for _ in range(10):
            await asyncio.sleep(0)

        assert recorder.runs == ["run:1"]
        assert _types(timeline, plan.id) == ["plan.start", "step.start"]

        gate.set()
        assert await running == PlanStatus.COMPLETE
        assert recorder.runs == ["run:1", "run:2", "run:3"]
        starts = timeline.events_of_type(EventType.STEP_START, plan.id)
        completes = timeline.events_of_type(EventType.STEP_COMPLETE, plan.id)
        for complete, next_start in zip(completes, starts[1:]):
            assert complete.seq < next_start.seq

    @pytest.mark.asyncio
    async def test_events_carry_plan_category(self, executor, timeline, recorder):
        """测试计划事件沿用计划分类，Autopilot 发起的计划标记为自动"""
        plan = recorder.plan(recorder.step(1), recorder.step(2, fail_times=1), title="Reminder run")
        plan.actor = Actor.AUTOPILOT
        plan.category = EventCategory.REMINDER

        assert await executor.execute(plan) == PlanStatus.PARTIAL
        await executor.retry_failed(plan.id)
        await executor.undo_all_plan(plan.id)

        tagged = timeline.events_in_category(EventCategory.REMINDER)
        assert {e.type for e in tagged} >= {
            "plan.start", "step.complete", "step.failed", "step.retry.success", "plan.complete", "system.undo",
        }
        # 执行阶段的事件标记为自动，用户触发的重试与撤销不标记
        automated = {e.type for e in timeline.events_in_category(EventCategory.REMINDER, automated=True)}
        assert automated == {"plan.start", "step.start", "step.complete", "step.failed", "plan.partial"}

        manual = recorder.simple_plan(1, title="Manual")
        await executor.execute(manual)
        assert not any(e.automated for e in timeline.events_for_plan(manual.id))
        assert all(e.category == EventCategory.PLAN for e in timeline.events_for_plan(manual.id))

    @pytest.mark.asyncio
    async def test_completed_step_events_carry_undo(self, executor, timeline, recorder):
        """测试 step.complete 事件带有步骤的 undo"""
        plan = recorder.plan(recorder.step(1), recorder.step(2, reversible=False))
        await executor.execute(plan)

        completes = timeline.events_of_type(EventType.STEP_COMPLETE, plan.id)
        assert completes[0].can_undo
        assert completes[0].undo is plan.steps[0].undo
        assert not completes[1].can_undo
        assert all(not e.can_undo for e in timeline.events_of_type(EventType.STEP_START, plan.id))

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self, executor, timeline, recorder):
        """测试单步失败不中断后续步骤，计划状态为 partial"""
        plan = recorder.plan(
            recorder.step(1),
            recorder.step(2, label="Call portal", fail_times=1, error="Portal unresponsive"),
            recorder.step(3),
        )

        status = await executor.execute(plan)

        assert status == PlanStatus.PARTIAL
        assert recorder.runs == ["run:1", "run:2", "run:3"]
        assert _types(timeline, plan.id) == [
            "plan.start",
            "step.start", "step.complete",
            "step.start", "step.failed",
            "step.start", "step.complete",
            "plan.partial",
        ]
        failed = timeline.events_of_type(EventType.STEP_FAILED, plan.id)[0]
        assert failed.summary == "Call portal - Portal unresponsive"
        assert failed.actor == Actor.SYSTEM
        assert failed.step_id == "step-2"
        assert not failed.can_undo

        partial = timeline.events_of_type(EventType.PLAN_PARTIAL, plan.id)[0]
        assert partial.actor == Actor.SYSTEM
        assert partial.summary == "Completed with failures: Test plan"

        record = timeline.get_failure(plan.id, "step-2")
        assert record is not None
        assert record.error == "Portal unresponsive"
        assert record.label == "Call portal"

    @pytest.mark.asyncio
    async def test_all_steps_failing_is_still_partial(self, executor, timeline, recorder):
        """测试全部步骤失败时计划仍以 partial 结束"""
        plan = recorder.plan(recorder.step(1, fail_times=1), recorder.step(2, fail_times=1))
        assert await executor.execute(plan) == PlanStatus.PARTIAL
        assert len(timeline.failures_for_plan(plan.id)) == 2

    @pytest.mark.asyncio
    async def test_empty_error_message_uses_exception_name(self, executor, timeline, recorder):
        """测试异常无消息时使用异常类名"""
        async def run():
            raise TimeoutError()

        plan = recorder.plan(recorder.step(1))
        plan.steps[0].run = run
        await executor.execute(plan)

        failed = timeline.events_of_type(EventType.STEP_FAILED, plan.id)[0]
        assert failed.summary == "Step 1 - TimeoutError"

    @pytest.mark.asyncio
    async def test_clarification_plan_is_rejected(self, executor, timeline):
        """测试待澄清计划不可执行且不产生事件"""
        plan = make_clarification_plan(
            "schedule Sarah",
            [ClarificationQuestion(id="time", question="When?")],
            InterpretationContext(),
        )
        with pytest.raises(PlanNotExecutableError):
            await executor.execute(plan)
        assert timeline.events == []
        assert plan.status == PlanStatus.PENDING

    @pytest.mark.asyncio
    async def test_plan_cannot_run_twice(self, executor, recorder):
        """测试同一计划不能再次执行"""
        plan = recorder.simple_plan(1)
        await executor.execute(plan)
        with pytest.raises(PlanNotExecutableError):
            await executor.execute(plan)
        assert recorder.runs == ["run:1"]

    @pytest.mark.asyncio
    async def test_concurrent_execute_is_rejected(self, executor, timeline, recorder):
        """测试执行中再次调用 execute 会被拒绝"""
        gate = asyncio.Event()
        first = recorder.plan(recorder.step(1, gate=gate), title="Long plan")
        second = recorder.simple_plan(1, title="Second plan")

        running = asyncio.create_task(executor.execute(first))
        while not executor.is_busy or not recorder.runs:
            await asyncio.sleep(0)

        assert executor.active_plan is first
        with pytest.raises(PlanAlreadyRunningError) as exc_info:
            await executor.execute(second)
        assert exc_info.value.active_plan_id == first.id

        gate.set()
        assert await running == PlanStatus.COMPLETE
        assert not executor.is_busy
        assert timeline.events_for_plan(second.id) == []

        # 活动计划结束后可以执行下一个
        assert await executor.execute(second) == PlanStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_pacing_between_steps(self, timeline, recorder):
        """测试步骤之间按区间随机延迟，最后一步之后不延迟"""
        sleep = AsyncMock()
        executor = PlanExecutor(timeline, pacing=(0.3, 1.2), sleep=sleep)

        await executor.execute(recorder.simple_plan(3))

        assert sleep.await_count == 2
        for call in sleep.await_args_list:
            assert 0.3 <= call.args[0] <= 1.2

    def test_invalid_pacing(self, timeline):
        """测试非法的节奏区间"""
        with pytest.raises(ValueError):
            PlanExecutor(timeline, pacing=(1.0, 0.5))
        with pytest.raises(ValueError):
            PlanExecutor(timeline, pacing=(-1, 0))

    @pytest.mark.asyncio
    async def test_get_plan(self, executor, recorder):
        """测试执行器保存已执行的计划"""
        plan = recorder.simple_plan(1)
        assert executor.get_plan(plan.id) is None
        await executor.execute(plan)
        assert executor.get_plan(plan.id) is plan


class TestUndo:
    """撤销"""

    @pytest.mark.asyncio
    async def test_undo_all_is_lifo(self, executor, timeline, recorder):
        """测试整计划撤销按后进先出顺序"""
        plan = recorder.simple_plan(3)
        await executor.execute(plan)
        before = len(timeline.events)

        undone = await executor.undo_all_plan(plan.id)

        assert undone == 3
        assert recorder.undos == ["undo:3", "undo:2", "undo:1"]
        appended = timeline.events[before:]
        assert [e.type for e in appended] == [
            "plan.undo.start", "system.undo", "system.undo", "system.undo", "plan.undo.complete",
        ]
        assert [e.step_id for e in appended[1:4]] == ["step-3", "step-2", "step-1"]
        assert appended[1].summary == "Undid: Step 3"
        assert all(not e.can_undo for e in appended)

    @pytest.mark.asyncio
    async def test_undo_all_skips_irreversible_and_failed_steps(self, executor, recorder):
        """测试没有 undo 的步骤与失败步骤不参与撤销"""
        plan = recorder.plan(
            recorder.step(1),
            recorder.step(2, reversible=False),
            recorder.step(3, fail_times=1),
            recorder.step(4),
        )
        await executor.execute(plan)

        undone = await executor.undo_all_plan(plan.id)

        assert undone == 2
        assert recorder.undos == ["undo:4", "undo:1"]

    @pytest.mark.asyncio
    async def test_undo_all_twice_is_idempotent(self, executor, recorder):
        """测试默认策略下重复整计划撤销不会再次执行补偿动作"""
        plan = recorder.simple_plan(2)
        await executor.execute(plan)
        await executor.undo_all_plan(plan.id)

        assert await executor.undo_all_plan(plan.id) == 0
        assert recorder.undos == ["undo:2", "undo:1"]

    @pytest.mark.asyncio
    async def test_undo_single_event(self, executor, timeline, recorder):
        """测试撤销单个事件"""
        plan = recorder.simple_plan(2)
        await executor.execute(plan)
        event = timeline.events_of_type(EventType.STEP_COMPLETE, plan.id)[0]

        assert await executor.undo_event(event.id, actor=Actor.AUTOPILOT) is True

        assert event.undone
        assert recorder.undos == ["undo:1"]
        last = timeline.events[-1]
        assert last.type == "system.undo"
        assert last.actor == Actor.AUTOPILOT
        assert last.summary == "Undid: Step 1"

    @pytest.mark.asyncio
    async def test_double_undo_is_skipped_by_default(self, executor, timeline, recorder):
        """测试已撤销事件再次撤销时跳过"""
        plan = recorder.simple_plan(1)
        await executor.execute(plan)
        event = timeline.events_of_type(EventType.STEP_COMPLETE, plan.id)[0]

        assert await executor.undo_event(event.id) is True
        count = len(timeline.events)
        assert await executor.undo_event(event.id) is False

        assert recorder.undos == ["undo:1"]
        assert len(timeline.events) == count

    @pytest.mark.asyncio
    async def test_double_undo_repeats_when_allowed(self, timeline, recorder):
        """测试 allow_repeat_undo=True 时重复执行补偿动作"""
        executor = PlanExecutor(timeline, pacing=(0, 0), allow_repeat_undo=True)
        plan = recorder.simple_plan(1)
        await executor.execute(plan)
        event = timeline.events_of_type(EventType.STEP_COMPLETE, plan.id)[0]

        assert await executor.undo_event(event.id) is True
        assert await executor.undo_event(event.id) is True

        assert recorder.undos == ["undo:1", "undo:1"]
        assert len(timeline.events_of_type(EventType.SYSTEM_UNDO, plan.id)) == 2

    @pytest.mark.asyncio
    async def test_undo_event_without_undo_is_noop(self, executor, timeline, recorder):
        """测试无 undo 的事件与未知事件"""
        plan = recorder.simple_plan(1)
        await executor.execute(plan)
        start = timeline.events_of_type(EventType.PLAN_START, plan.id)[0]
        count = len(timeline.events)

        assert await executor.undo_event(start.id) is False
        assert await executor.undo_event("evt-unknown") is False
        assert len(timeline.events) == count

    @pytest.mark.asyncio
    async def test_failing_undo_is_recorded(self, executor, timeline, recorder):
        """测试补偿动作失败时记录 system.undo.failed 且事件保持未撤销"""
        plan = recorder.plan(recorder.step(1, undo_error="cannot revert"))
        await executor.execute(plan)
        event = timeline.events_of_type(EventType.STEP_COMPLETE, plan.id)[0]

        assert await executor.undo_event(event.id) is False

        assert not event.undone
        last = timeline.events[-1]
        assert last.type == "system.undo.failed"
        assert last.summary == "Failed to undo: Step 1"

    @pytest.mark.asyncio
    async def test_undo_all_of_running_plan_is_rejected(self, executor, recorder):
        """测试不能撤销正在执行的计划"""
        gate = asyncio.Event()
        plan = recorder.plan(recorder.step(1, gate=gate))
        running = asyncio.create_task(executor.execute(plan))
        while not recorder.runs:
            await asyncio.sleep(0)

        with pytest.raises(PlanAlreadyRunningError):
            await executor.undo_all_plan(plan.id)

        gate.set()
        await running


class TestRetry:
    """重试"""

    @pytest.mark.asyncio
    async def test_retry_success_promotes_plan(self, executor, timeline, recorder):
        """测试重试成功后移除失败记录，partial 提升为 complete"""
        plan = recorder.plan(recorder.step(1), recorder.step(2, label="Check coverage", fail_times=1))
        assert await executor.execute(plan) == PlanStatus.PARTIAL

        succeeded = await executor.retry_failed(plan.id)

        assert succeeded == 1
        assert recorder.runs == ["run:1", "run:2", "run:2"]
        assert timeline.get_failure(plan.id, "step-2") is None
        assert plan.status == PlanStatus.COMPLETE

        retry = timeline.events_of_type(EventType.STEP_RETRY_SUCCESS, plan.id)[0]
        assert retry.summary == "Retried: Check coverage"
        assert retry.step_id == "step-2"
        assert retry.can_undo
        assert timeline.events[-1].type == "plan.complete"
        assert timeline.events[-1].summary == "Completed after retry: Test plan"

    @pytest.mark.asyncio
    async def test_retry_success_event_can_be_undone(self, executor, timeline, recorder):
        """测试重试成功的步骤随整计划撤销一起撤销"""
        plan = recorder.plan(recorder.step(1), recorder.step(2, fail_times=1))
        await executor.execute(plan)
        await executor.retry_failed(plan.id)

        assert await executor.undo_all_plan(plan.id) == 2
        assert recorder.undos == ["undo:2", "undo:1"]

    @pytest.mark.asyncio
    async def test_retry_failure_keeps_record(self, executor, timeline, recorder):
        """测试重试仍失败时保留记录并累加尝试次数"""
        plan = recorder.plan(recorder.step(1, label="Portal", fail_times=2, error="Portal unresponsive"))
        await executor.execute(plan)

        succeeded = await executor.retry_failed(plan.id)

        assert succeeded == 0
        record = timeline.get_failure(plan.id, "step-1")
        assert record is not None
        assert record.attempts == 2
        assert plan.status == PlanStatus.PARTIAL
        failed = timeline.events_of_type(EventType.STEP_RETRY_FAILED, plan.id)[0]
        assert failed.summary == "Retry failed: Portal - Portal unresponsive"
        assert failed.actor == Actor.SYSTEM

        # 第三次成功
        assert await executor.retry_failed(plan.id) == 1
        assert plan.status == PlanStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_retry_without_failures(self, executor, timeline, recorder):
        """测试没有失败记录时重试不产生事件"""
        plan = recorder.simple_plan(1)
        await executor.execute(plan)
        count = len(timeline.events)

        assert await executor.retry_failed(plan.id) == 0
        assert len(timeline.events) == count
