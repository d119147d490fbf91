"""
事件时间线测试
"""

import pytest

from practice_autopilot.core.timeline import EventTimeline
from practice_autopilot.models.event import EventType, FailureRecord
from practice_autopilot.models.plan import Actor, Source
from practice_autopilot.utils.timeline_logger import TimelineLogger


async def _noop():
    return None


class TestEventTimeline:
    """时间线基本行为"""

    def test_events_are_appended_in_order(self, timeline):
        """测试事件按追加顺序编号，时间戳单调不减"""
        first = timeline.add_event(EventType.PLAN_START, "Starting plan: A", Actor.USER, Source.COMMAND_BAR,
                                   plan_id="p1")
        second = timeline.add_event(EventType.STEP_START, "Starting: one", Actor.USER, Source.COMMAND_BAR,
                                    plan_id="p1", step_id="step-1")
        third = timeline.add_event("custom.note", "Free text", Actor.SYSTEM, Source.KPI_PANEL)

        assert [e.seq for e in timeline.events] == [1, 2, 3]
        assert first.ts <= second.ts <= third.ts
        assert len({first.id, second.id, third.id}) == 3
        assert first.type == "plan.start"
        assert third.type == "custom.note"
        assert len(timeline) == 3

    def test_events_returns_copy(self, timeline):
        """测试外部修改事件列表不影响时间线"""
        timeline.add_event(EventType.PLAN_START, "Starting plan: A", Actor.USER, Source.COMMAND_BAR)
        events = timeline.events
        events.clear()
        assert len(timeline.events) == 1

    def test_filter_by_plan_and_type(self, timeline):
        """测试按计划与类型过滤"""
        timeline.add_event(EventType.PLAN_START, "a", Actor.USER, Source.COMMAND_BAR, plan_id="p1")
        timeline.add_event(EventType.PLAN_START, "b", Actor.USER, Source.COMMAND_BAR, plan_id="p2")
        timeline.add_event(EventType.PLAN_COMPLETE, "c", Actor.USER, Source.COMMAND_BAR, plan_id="p1")

        assert [e.summary for e in timeline.events_for_plan("p1")] == ["a", "c"]
        assert [e.summary for e in timeline.events_of_type(EventType.PLAN_START)] == ["a", "b"]
        assert [e.summary for e in timeline.events_of_type("plan.start", plan_id="p2")] == ["b"]

    def test_get_event_by_id(self, timeline):
        """测试按 id 获取事件"""
        event = timeline.add_event(EventType.STEP_COMPLETE, "done", Actor.USER, Source.COMMAND_BAR, undo=_noop)
        assert timeline.get_event(event.id) is event
        assert timeline.get_event("evt-missing") is None
        assert event.can_undo
        assert not event.undone

    def test_to_dict(self, timeline):
        """测试事件序列化"""
        event = timeline.add_event(EventType.STEP_FAILED, "Step - boom", Actor.SYSTEM, Source.DRAG_DROP,
                                   plan_id="p1", step_id="step-1")
        data = event.to_dict()
        assert data["type"] == "step.failed"
        assert data["actor"] == "system"
        assert data["source"] == "drag"
        assert data["can_undo"] is False
        assert data["seq"] == 1

    def test_reset(self, timeline):
        """测试清空时间线"""
        timeline.add_event(EventType.PLAN_START, "a", Actor.USER, Source.COMMAND_BAR, plan_id="p1")
        timeline.record_failure(FailureRecord(plan_id="p1", step_id="step-1", label="x", run=_noop))
        timeline.reset()
        assert timeline.events == []
        assert timeline.failures == []


class TestSubscribers:
    """订阅者通知"""

    def test_subscriber_receives_events(self, timeline):
        """测试订阅与取消订阅"""
        received = []
        unsubscribe = timeline.subscribe(received.append)

        timeline.add_event(EventType.PLAN_START, "a", Actor.USER, Source.COMMAND_BAR)
        unsubscribe()
        timeline.add_event(EventType.PLAN_COMPLETE, "b", Actor.USER, Source.COMMAND_BAR)

        assert [e.summary for e in received] == ["a"]

    def test_failing_subscriber_does_not_block_append(self, timeline):
        """测试订阅者异常不影响事件追加与其他订阅者"""
        received = []

        def broken(event):
            raise RuntimeError("subscriber down")

        timeline.subscribe(broken)
        timeline.subscribe(received.append)
        timeline.add_event(EventType.PLAN_START, "a", Actor.USER, Source.COMMAND_BAR)

        assert len(timeline.events) == 1
        assert len(received) == 1


class TestFailureRecords:
    """失败记录"""

    def test_record_and_remove(self, timeline):
        """测试记录与移除失败"""
        record = FailureRecord(plan_id="p1", step_id="step-3", label="Check", run=_noop, error="Portal unresponsive")
        timeline.record_failure(record)

        assert timeline.has_failures("p1")
        assert not timeline.has_failures("p2")
        assert timeline.get_failure("p1", "step-3") is record
        assert timeline.failures_for_plan("p1") == [record]

        removed = timeline.remove_failure("p1", "step-3")
        assert removed is record
        assert not timeline.has_failures("p1")
        assert timeline.remove_failure("p1", "step-3") is None

    def test_repeated_failure_counts_attempts(self, timeline):
        """测试同一步骤再次失败时累加尝试次数"""
        timeline.record_failure(FailureRecord(plan_id="p1", step_id="step-1", label="x", run=_noop))
        again = timeline.record_failure(FailureRecord(plan_id="p1", step_id="step-1", label="x", run=_noop))
        assert again.attempts == 2
        assert len(timeline.failures) == 1


class TestTimelineLogger:
    """审计日志"""

    def test_writes_events_to_file(self, tmp_path):
        """测试订阅时间线后逐条写入文件"""
        log_file = tmp_path / "audit" / "timeline.log"
        timeline = EventTimeline()
        audit = TimelineLogger(str(log_file)).attach(timeline)

        timeline.add_event(EventType.PLAN_START, "Starting plan: Demo", Actor.USER, Source.COMMAND_BAR,
                           plan_id="p1")
        audit.detach()
        timeline.add_event(EventType.PLAN_COMPLETE, "Completed: Demo", Actor.USER, Source.COMMAND_BAR,
                           plan_id="p1")

        content = log_file.read_text(encoding="utf-8")
        assert "Timeline Started" in content
        assert "PLAN.START" in content
        assert "summary: Starting plan: Demo" in content
        assert "PLAN.COMPLETE" not in content

    def test_no_file_is_noop(self):
        """测试未设置文件时不写入"""
        audit = TimelineLogger()
        audit.log("PLAN.START", {"summary": "x"})
        assert audit.log_file is None
