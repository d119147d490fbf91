"""
核心模块

包含系统的核心功能模块：
- 事件时间线 (Event Timeline)
- 计划执行器 (Plan Executor)
- 模式级联 (Pattern Cascade)
- 指令解释器 (Command Interpreter)
- 澄清子协议 (Clarification)
"""

from .errors import (
    ActionFailedError,
    ClarificationAnswerError,
    ClarificationRequired,
    PlanAlreadyRunningError,
    PlanExecutionError,
    PlanNotExecutableError,
    PracticeAutopilotError,
    UnderstandingError,
)
from .timeline import EventTimeline
from .plan_executor import PlanExecutor
from .pattern_cascade import PatternCascade, Rule
from .command_interpreter import CommandInterpreter
from .clarification import build_refined_command, make_clarification_plan, resolve_clarification
from .autopilot import PracticeAutopilot

__all__ = [
    "PracticeAutopilotError",
    "PlanExecutionError",
    "PlanAlreadyRunningError",
    "PlanNotExecutableError",
    "ActionFailedError",
    "ClarificationRequired",
    "ClarificationAnswerError",
    "UnderstandingError",
    "EventTimeline",
    "PlanExecutor",
    "PatternCascade",
    "Rule",
    "CommandInterpreter",
    "make_clarification_plan",
    "build_refined_command",
    "resolve_clarification",
    "PracticeAutopilot",
]
