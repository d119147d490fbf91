"""
Practice Autopilot

诊所管理看板的指令到计划流水线：自然语言命令 → 计划 → 顺序执行、审计、重试与撤销。
"""

from .core import (
    CommandInterpreter,
    EventTimeline,
    PatternCascade,
    PlanExecutor,
    PracticeAutopilot,
    Rule,
)
from .models import (
    Actor,
    ClarificationQuestion,
    Event,
    EventType,
    InterpretationContext,
    Plan,
    PlanStatus,
    QuestionType,
    Source,
    Step,
)

__all__ = [
    "PracticeAutopilot",
    "CommandInterpreter",
    "PatternCascade",
    "Rule",
    "PlanExecutor",
    "EventTimeline",
    "Actor",
    "Source",
    "Plan",
    "PlanStatus",
    "Step",
    "ClarificationQuestion",
    "QuestionType",
    "Event",
    "EventType",
    "InterpretationContext",
]
