"""
异常定义
"""

from typing import Any, Dict, List, Optional

from ..models.plan import ClarificationQuestion


class PracticeAutopilotError(Exception):
    """系统基础异常"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class PlanExecutionError(PracticeAutopilotError):
    """计划无法交给执行器"""


class PlanAlreadyRunningError(PlanExecutionError):
    """已有计划正在执行"""

    def __init__(self, active_plan_id: str, requested_plan_id: str):
        super().__init__(
            f"Plan {active_plan_id} is still running; refusing to start {requested_plan_id}",
            {"active_plan_id": active_plan_id, "requested_plan_id": requested_plan_id},
        )
        self.active_plan_id = active_plan_id
        self.requested_plan_id = requested_plan_id


class PlanNotExecutableError(PlanExecutionError):
    """待澄清的计划不可执行"""


class ActionFailedError(PracticeAutopilotError):
    """外部动作执行失败"""

    def __init__(self, action: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.action = action


class ClarificationRequired(PracticeAutopilotError):
    """计划工厂在生成计划前需要更多信息"""

    def __init__(self, questions: List[ClarificationQuestion], message: str = "Clarification required"):
        super().__init__(message)
        self.questions = questions


class ClarificationAnswerError(PracticeAutopilotError):
    """澄清答案不完整"""

    def __init__(self, missing: List[str]):
        super().__init__(f"Missing answers for required questions: {', '.join(missing)}", {"missing": missing})
        self.missing = missing


class UnderstandingError(PracticeAutopilotError):
    """AI 协作方返回了无法使用的结果"""
