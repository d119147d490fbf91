"""
事件时间线

只追加的审计日志，同时持有失败步骤记录（FailureRecord）。撤销与重试都基于这里的数据。
"""

import logging
import time
from typing import Callable, Dict, List, Optional

from ..models.event import Event, EventCategory, EventType, FailureRecord, failure_key
from ..models.plan import Actor, Source, StepAction
from .id_generator import IDGenerator, id_generator as default_id_generator

logger = logging.getLogger(__name__)

EventSubscriber = Callable[[Event], None]


class EventTimeline:
    """事件时间线"""

    def __init__(self, id_generator: Optional[IDGenerator] = None):
        self._events: List[Event] = []
        self._index: Dict[str, Event] = {}
        self._failures: Dict[str, FailureRecord] = {}
        self._subscribers: List[EventSubscriber] = []
        self._last_ts = 0.0
        self.id_generator = id_generator or default_id_generator

    # ========== 事件 ==========

    @property
    def events(self) -> List[Event]:
        """按创建顺序返回事件副本列表"""
        return list(self._events)

    def __len__(self) -> int:
        return len(self._events)

    def add_event(
        self,
        type: str,
        summary: str,
        actor: Actor,
        source: Source,
        plan_id: Optional[str] = None,
        step_id: Optional[str] = None,
        undo: Optional[StepAction] = None,
        category: EventCategory = EventCategory.PLAN,
        automated: bool = False,
    ) -> Event:
        """追加事件并通知订阅者"""
        if isinstance(type, EventType):
            type = type.value
        # 保证时间戳单调不减
        ts = max(time.time(), self._last_ts)
        self._last_ts = ts
        event = Event(
            id=self.id_generator.generate_event_id(),
            seq=len(self._events) + 1,
            ts=ts,
            type=type,
            summary=summary,
            actor=actor,
            source=source,
            plan_id=plan_id,
            step_id=step_id,
            undo=undo,
            category=category,
            automated=automated,
        )
        self._events.append(event)
        self._index[event.id] = event
        logger.debug(f"Timeline event #{event.seq} {event.type}: {event.summary}")
        self._notify(event)
        return event

    def get_event(self, event_id: str) -> Optional[Event]:
        return self._index.get(event_id)

    def events_for_plan(self, plan_id: str) -> List[Event]:
        return [e for e in self._events if e.plan_id == plan_id]

    def events_in_category(self, category: EventCategory, automated: Optional[bool] = None) -> List[Event]:
        """按分类筛选事件，automated 不为 None 时同时按是否自动发起筛选"""
        return [
            e for e in self._events
            if e.category == category and (automated is None or e.automated == automated)
        ]

    def events_of_type(self, type: str, plan_id: Optional[str] = None) -> List[Event]:
        if isinstance(type, EventType):
            type = type.value
        return [
            e for e in self._events
            if e.type == type and (plan_id is None or e.plan_id == plan_id)
        ]

    # ========== 订阅 ==========

    def subscribe(self, callback: EventSubscriber) -> Callable[[], None]:
        """注册事件订阅者，返回取消订阅函数"""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, event: Event):
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Timeline subscriber {callback!r} failed on {event.type}: {e}")

    # ========== 失败记录 ==========

    def record_failure(self, record: FailureRecord) -> FailureRecord:
        """保存失败记录；同一步骤再次失败时累加尝试次数"""
        existing = self._failures.get(record.key)
        if existing:
            record.attempts = existing.attempts + 1
        self._failures[record.key] = record
        return record

    def get_failure(self, plan_id: str, step_id: str) -> Optional[FailureRecord]:
        return self._failures.get(failure_key(plan_id, step_id))

    def remove_failure(self, plan_id: str, step_id: str) -> Optional[FailureRecord]:
        return self._failures.pop(failure_key(plan_id, step_id), None)

    def failures_for_plan(self, plan_id: str) -> List[FailureRecord]:
        return [r for r in self._failures.values() if r.plan_id == plan_id]

    def has_failures(self, plan_id: str) -> bool:
        return any(r.plan_id == plan_id for r in self._failures.values())

    @property
    def failures(self) -> List[FailureRecord]:
        return list(self._failures.values())

    # ========== 维护 ==========

    def reset(self):
        """清空事件与失败记录（演示重置）"""
        self._events.clear()
        self._index.clear()
        self._failures.clear()
        logger.info("Timeline reset")
