"""
数据模型

包含系统的核心数据模型：
- Plan / Step (计划与步骤)
- ClarificationQuestion (澄清问题)
- Event / FailureRecord (时间线事件与失败记录)
- InterpretationContext (解释上下文)
- Patient / Appointment / Invoice / Task / Message / Note / CallRecord (诊所领域记录)
"""

from .plan import (
    Actor,
    ClarificationQuestion,
    Plan,
    PlanStatus,
    QuestionType,
    Source,
    Step,
)
from .event import Event, EventCategory, EventType, FailureRecord
from .context import AutopilotMode, InterpretationContext, Role
from .practice import Appointment, CallIntent, CallRecord, Invoice, Message, Note, Patient, Task

__all__ = [
    "Actor",
    "Source",
    "Plan",
    "PlanStatus",
    "Step",
    "ClarificationQuestion",
    "QuestionType",
    "Event",
    "EventType",
    "EventCategory",
    "FailureRecord",
    "InterpretationContext",
    "Role",
    "AutopilotMode",
    "Patient",
    "Appointment",
    "Invoice",
    "Task",
    "Message",
    "Note",
    "CallRecord",
    "CallIntent",
]
