"""
事件与失败记录数据模型
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from .plan import Actor, EventCategory, Source, StepAction

UNDO_EVENT_PREFIX = "system.undo"


class EventType(Enum):
    """时间线事件类型"""
    PLAN_START = "plan.start"
    PLAN_COMPLETE = "plan.complete"
    PLAN_PARTIAL = "plan.partial"
    PLAN_FAILED = "plan.failed"
    STEP_START = "step.start"
    STEP_COMPLETE = "step.complete"
    STEP_FAILED = "step.failed"
    STEP_RETRY_SUCCESS = "step.retry.success"
    STEP_RETRY_FAILED = "step.retry.failed"
    SYSTEM_UNDO = "system.undo"
    SYSTEM_UNDO_FAILED = "system.undo.failed"
    PLAN_UNDO_START = "plan.undo.start"
    PLAN_UNDO_COMPLETE = "plan.undo.complete"


@dataclass
class Event:
    """时间线事件

    undo 从产生它的 Step 复制而来，使事件可以脱离计划被单独撤销。
    """
    id: str
    seq: int
    ts: float
    type: str
    summary: str
    actor: Actor
    source: Source
    plan_id: Optional[str] = None
    step_id: Optional[str] = None
    undo: Optional[StepAction] = None
    category: EventCategory = EventCategory.PLAN
    automated: bool = False
    undone: bool = False

    @property
    def is_undo_bookkeeping(self) -> bool:
        return self.type.startswith(UNDO_EVENT_PREFIX)

    @property
    def can_undo(self) -> bool:
        return self.undo is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "seq": self.seq,
            "ts": self.ts,
            "time": datetime.fromtimestamp(self.ts).isoformat(),
            "type": self.type,
            "summary": self.summary,
            "actor": self.actor.value,
            "source": self.source.value,
            "plan_id": self.plan_id,
            "step_id": self.step_id,
            "can_undo": self.can_undo,
            "undone": self.undone,
            "category": self.category.value,
            "automated": self.automated,
        }


@dataclass
class FailureRecord:
    """失败步骤的重试句柄，按 (plan_id, step_id) 索引"""
    plan_id: str
    step_id: str
    label: str
    run: StepAction
    undo: Optional[StepAction] = None
    error: str = ""
    attempts: int = 1
    failed_at: datetime = field(default_factory=datetime.now)

    @property
    def key(self) -> str:
        return failure_key(self.plan_id, self.step_id)


def failure_key(plan_id: str, step_id: str) -> str:
    return f"{plan_id}:{step_id}"
