"""
AI 命令理解

把命令与解释上下文交给 LLM，要求返回 JSON，再用 pydantic 校验后转换为计划。
LLM 只是尽力而为的协作方：解析或校验失败统一抛出 UnderstandingError，由解释器决定如何降级。
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..core.clarification import make_clarification_plan
from ..core.constants import SystemConstants
from ..core.errors import UnderstandingError
from ..core.id_generator import IDGenerator, id_generator as default_id_generator
from ..models.context import InterpretationContext
from ..models.plan import ClarificationQuestion, EventCategory, Plan, QuestionType, Step
from .action_gateway import ActionGateway
from .llm_client import LLMClient

logger = logging.getLogger(__name__)

AI_STEP_ACTION = "ai.step"

SYSTEM_PROMPT = (
    "You are the command planner of a medical practice dashboard. "
    "Turn the operator's command into a short, ordered plan of concrete actions. "
    "Reply with a single JSON object and nothing else."
)

RESPONSE_SCHEMA_HINT = """{
  "intent": "<short intent name>",
  "confidence": <0.0 - 1.0>,
  "needs_clarification": <true|false>,
  "clarification_questions": [
    {"id": "<id>", "question": "<text>", "type": "single_choice|multiple_choice|text_input|date_picker",
     "options": ["<option>"], "required": true}
  ],
  "suggested_plan": {"title": "<plan title>", "steps": ["<step label>"]}
}"""

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class SuggestedQuestion(BaseModel):
    """LLM 给出的澄清问题"""
    id: str
    question: str
    type: QuestionType = QuestionType.TEXT_INPUT
    options: List[str] = Field(default_factory=list)
    required: bool = True

    @field_validator("type", mode="before")
    @classmethod
    def _lenient_type(cls, value: Any) -> Any:
        # 未知的答案形态按自由文本处理
        valid = {t.value for t in QuestionType}
        if isinstance(value, str) and value.lower() in valid:
            return value.lower()
        if isinstance(value, QuestionType):
            return value
        return QuestionType.TEXT_INPUT.value


class SuggestedPlan(BaseModel):
    """LLM 给出的计划草案"""
    title: str
    steps: List[str] = Field(default_factory=list)


class UnderstandingResult(BaseModel):
    """LLM 理解结果"""
    intent: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    needs_clarification: bool = False
    clarification_questions: List[SuggestedQuestion] = Field(default_factory=list)
    suggested_plan: Optional[SuggestedPlan] = None


def parse_understanding(text: str) -> UnderstandingResult:
    """从 LLM 输出中提取 JSON 并校验"""
    cleaned = _FENCE.sub("", (text or "").strip())
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start < 0 or end <= start:
        raise UnderstandingError("LLM response contains no JSON object", {"response": (text or "")[:200]})
    try:
        data = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as e:
        raise UnderstandingError(f"LLM response is not valid JSON: {e}", {"response": cleaned[:200]})
    try:
        return UnderstandingResult.model_validate(data)
    except ValidationError as e:
        raise UnderstandingError(f"LLM response failed validation: {e.error_count()} errors", {"data": data})


class CommandUnderstanding:
    """基于 LLM 的命令理解"""

    def __init__(
        self,
        llm_client: LLMClient,
        gateway: ActionGateway,
        confidence_threshold: float = SystemConstants.DEFAULT_CONFIDENCE_THRESHOLD,
        ids: Optional[IDGenerator] = None,
    ):
        self.llm_client = llm_client
        self.gateway = gateway
        self.confidence_threshold = confidence_threshold
        self.ids = ids or default_id_generator

    def _build_prompt(self, command: str, context: InterpretationContext, generic: bool = False) -> str:
        task = (
            "No predefined workflow matched this command. Propose a generic plan of 1 to "
            f"{SystemConstants.MAX_GENERATED_STEPS} steps; do not ask for clarification."
            if generic else
            "If the command is ambiguous (unknown patient, missing time, several possible targets), "
            "set needs_clarification and ask questions instead of guessing."
        )
        return (
            f"Command: {command}\n\n"
            f"Context:\n{json.dumps(context.to_prompt_dict(), ensure_ascii=False, default=str)}\n\n"
            f"{task}\n\nRespond with JSON shaped like:\n{RESPONSE_SCHEMA_HINT}"
        )

    async def understand(self, command: str, context: InterpretationContext, generic: bool = False) -> UnderstandingResult:
        prompt = self._build_prompt(command, context, generic=generic)
        logger.debug(f"Understanding prompt: {prompt[:500]}")
        response = await self.llm_client.generate(prompt, system=SYSTEM_PROMPT)
        result = parse_understanding(response)
        logger.info(
            f"Understanding for {command!r}: intent={result.intent!r} confidence={result.confidence:.2f} "
            f"clarify={result.needs_clarification}"
        )
        return result

    async def create_plan(self, command: str, context: InterpretationContext) -> Optional[Plan]:
        """结构化解释：返回可执行计划、待澄清计划，或置信度不足时返回 None"""
        result = await self.understand(command, context)

        if result.needs_clarification and result.clarification_questions:
            questions = [
                ClarificationQuestion(id=q.id, question=q.question, type=q.type,
                                      options=list(q.options), required=q.required)
                for q in result.clarification_questions
            ]
            return make_clarification_plan(command, questions, context, self.ids)

        if result.confidence < self.confidence_threshold:
            logger.info(f"Confidence {result.confidence:.2f} below threshold {self.confidence_threshold}")
            return None
        if not result.suggested_plan or not result.suggested_plan.steps:
            return None
        return self._plan_from_suggestion(command, result.suggested_plan, context)

    async def generate_generic_plan(self, command: str, context: InterpretationContext) -> Plan:
        """通用兜底计划；LLM 没给出步骤时抛出 UnderstandingError"""
        result = await self.understand(command, context, generic=True)
        if not result.suggested_plan or not result.suggested_plan.steps:
            raise UnderstandingError("LLM returned no plan steps", {"command": command})
        return self._plan_from_suggestion(command, result.suggested_plan, context, EventCategory.GENERAL)

    def _plan_from_suggestion(self, command: str, suggestion: SuggestedPlan, context: InterpretationContext,
                              category: EventCategory = EventCategory.PLAN) -> Plan:
        labels = [s.strip() for s in suggestion.steps if s and s.strip()][:SystemConstants.MAX_GENERATED_STEPS]
        if not labels:
            raise UnderstandingError("LLM returned only blank step labels", {"command": command})
        steps = [
            self._ai_step(self.ids.generate_step_id(index), label, command)
            for index, label in enumerate(labels, start=1)
        ]
        return Plan(
            id=self.ids.generate_plan_id("ai"),
            title=suggestion.title.strip() or command,
            actor=context.actor,
            source=context.source,
            steps=steps,
            original_command=command,
            category=category,
        )

    def _ai_step(self, step_id: str, label: str, command: str) -> Step:
        payload: Dict[str, Any] = {"label": label, "command": command}
        gateway = self.gateway

        async def run():
            await gateway.perform(AI_STEP_ACTION, payload)

        async def undo():
            await gateway.revert(AI_STEP_ACTION, payload)

        return Step(id=step_id, label=label, run=run, undo=undo)
