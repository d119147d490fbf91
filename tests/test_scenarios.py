"""
端到端场景测试：命令 → 计划 → 执行 → 撤销 / 重试
"""

import pytest

from practice_autopilot.core.autopilot import PracticeAutopilot
from practice_autopilot.models.event import EventType
from practice_autopilot.models.plan import PlanStatus
from practice_autopilot.models.practice import Patient


def _types(events):
    return [e.type for e in events]


class TestScheduleScenario:
    """预约：全部成功与整计划撤销"""

    @pytest.mark.asyncio
    async def test_schedule_completes(self, autopilot, store, gateway):
        """测试预约命令生成三步计划并全部成功"""
        plan = await autopilot.submit("schedule Sarah for Thu 2:30")
        assert len(plan.steps) == 3

        status = await autopilot.execute(plan)

        assert status == PlanStatus.COMPLETE
        events = autopilot.timeline.events_for_plan(plan.id)
        # plan.start + 每步 start/complete + plan.complete
        assert _types(events) == [
            "plan.start",
            "step.start", "step.complete",
            "step.start", "step.complete",
            "step.start", "step.complete",
            "plan.complete",
        ]
        assert [e.seq for e in events] == sorted(e.seq for e in events)

        booked = [a for a in store.appointments.values() if a.start == "Thu 2:30"]
        assert len(booked) == 1
        assert booked[0].patient_id == "p2"
        assert len(gateway.calls("calendar.hold_slot", "perform")) == 1
        assert len(gateway.calls("sms.send", "perform")) == 1

    @pytest.mark.asyncio
    async def test_undo_all_reverses_in_lifo_order(self, autopilot, store, gateway):
        """测试整计划撤销按第三、二、一步的顺序执行补偿"""
        plan = await autopilot.submit("schedule Sarah for Thu 2:30")
        await autopilot.execute(plan)
        before = len(autopilot.timeline.events)

        undone = await autopilot.undo_all_plan(plan.id)

        assert undone == 3
        appended = autopilot.timeline.events[before:]
        assert _types(appended) == [
            "plan.undo.start", "system.undo", "system.undo", "system.undo", "plan.undo.complete",
        ]
        assert [e.step_id for e in appended[1:4]] == ["step-3", "step-2", "step-1"]
        assert not [a for a in store.appointments.values() if a.start == "Thu 2:30"]
        reverts = [c["action"] for c in gateway.history if c["phase"] == "revert"]
        assert reverts == ["sms.send", "calendar.hold_slot"]


class TestCoverageScenario:
    """保险核验：门户无响应与重试"""

    @pytest.mark.asyncio
    async def test_unresponsive_portal_gives_partial(self, autopilot):
        """测试第三步因门户无响应失败，计划为 partial"""
        plan = await autopilot.submit("verify coverage for Mrs Smith (AXA)")

        status = await autopilot.execute(plan)

        assert status == PlanStatus.PARTIAL
        failed = autopilot.timeline.events_of_type(EventType.STEP_FAILED, plan.id)
        assert len(failed) == 1
        assert failed[0].step_id == "step-3"
        assert failed[0].summary == "Check Mrs Smith coverage (AXA) - Portal unresponsive"
        assert autopilot.timeline.get_failure(plan.id, "step-3") is not None

    @pytest.mark.asyncio
    async def test_retry_after_portal_recovers(self, autopilot, gateway):
        """测试门户恢复后重试成功并移除失败记录"""
        plan = await autopilot.submit("verify coverage for Mrs Smith (AXA)")
        await autopilot.execute(plan)

        gateway.set_portal_status("AXA", responsive=True)
        succeeded = await autopilot.retry_failed(plan.id)

        assert succeeded == 1
        retried = autopilot.timeline.events_of_type(EventType.STEP_RETRY_SUCCESS, plan.id)
        assert len(retried) == 1
        assert retried[0].step_id == "step-3"
        assert autopilot.timeline.get_failure(plan.id, "step-3") is None
        assert plan.status == PlanStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_retry_while_portal_still_down(self, autopilot):
        """测试门户仍无响应时重试失败"""
        plan = await autopilot.submit("verify coverage for Mrs Smith (AXA)")
        await autopilot.execute(plan)

        assert await autopilot.retry_failed(plan.id) == 0
        assert autopilot.timeline.get_failure(plan.id, "step-3").attempts == 2
        assert plan.status == PlanStatus.PARTIAL


class TestFallbackScenario:
    """无法识别的命令"""

    @pytest.mark.asyncio
    async def test_nonsense_runs_echo_plan(self, autopilot):
        """测试无 AI、无命中时回显计划执行完成"""
        plan, status = await autopilot.run_command("asdkjasdkj nonsense")

        assert plan.title == "Execute: asdkjasdkj nonsense"
        assert len(plan.steps) == 1
        assert status == PlanStatus.COMPLETE


class TestAutopilotFacade:
    """主类的其他行为"""

    @pytest.mark.asyncio
    async def test_blank_command(self, autopilot):
        plan, status = await autopilot.run_command("   ")
        assert plan is None
        assert status is None

    @pytest.mark.asyncio
    async def test_clarification_round_trip(self, autopilot, store):
        """测试待澄清计划不执行，作答后得到可执行计划"""
        await store.add_patient(Patient(id="p9", name="Sarah Lee"))

        pending, status = await autopilot.run_command("schedule Sarah for Thu 2:30")
        assert pending.needs_clarification
        assert status is None
        assert autopilot.timeline.events == []

        plan = await autopilot.resolve_clarification(pending, {"patient": "Sarah Jones"})
        assert await autopilot.execute(plan) == PlanStatus.COMPLETE
        booked = [a for a in store.appointments.values() if a.start == "Thu 2:30"]
        assert booked[0].patient_id == "p2"

    @pytest.mark.asyncio
    async def test_status(self, autopilot):
        await autopilot.run_command("verify coverage for Mrs Smith (AXA)")
        status = autopilot.status()
        assert status["started"] is True
        assert status["active_plan_id"] is None
        assert status["pending_failures"] == 1
        assert status["ai_enabled"] is False
        assert status["events"] > 0

    @pytest.mark.asyncio
    async def test_audit_log(self, tmp_path, store, gateway, ids):
        """测试启动时挂接审计日志，停止后不再写入"""
        log_file = tmp_path / "timeline.log"
        autopilot = PracticeAutopilot(store=store, gateway=gateway, pacing=(0, 0), ids=ids,
                                      audit_log_file=str(log_file))
        await autopilot.start()
        await autopilot.run_command("schedule Sarah for Thu 2:30")
        await autopilot.stop()
        await autopilot.run_command("review pricing")

        content = log_file.read_text(encoding="utf-8")
        assert "PLAN.START" in content
        assert "Completed: Schedule Sarah for Thu 2:30" in content
        assert "review" not in content.lower()
