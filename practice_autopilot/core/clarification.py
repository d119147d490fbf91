"""
澄清子协议

解释有歧义时返回待澄清计划而不是最终计划；调用方收集答案后拼接成新的命令重新解释。
这里不保存任何中间答案，进行中的澄清状态由调用方负责。
"""

import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, Union

from ..models.context import InterpretationContext
from ..models.plan import ClarificationQuestion, Plan
from .constants import SystemConstants
from .errors import ClarificationAnswerError
from .id_generator import IDGenerator, id_generator as default_id_generator

logger = logging.getLogger(__name__)

Answer = Union[str, Sequence[str], None]


def make_clarification_plan(
    command: str,
    questions: List[ClarificationQuestion],
    context: InterpretationContext,
    ids: Optional[IDGenerator] = None,
) -> Plan:
    """构造待澄清计划：没有步骤，只携带问题与原始命令"""
    ids = ids or default_id_generator
    return Plan(
        id=ids.generate_plan_id("clarify"),
        title=f"Clarify: {command}",
        actor=context.actor,
        source=context.source,
        needs_clarification=True,
        clarification_questions=list(questions),
        original_command=command,
    )


def _is_blank(answer: Answer) -> bool:
    if answer is None:
        return True
    if isinstance(answer, str):
        return not answer.strip()
    return not [a for a in answer if str(a).strip()]


def _render(answer: Answer) -> str:
    if answer is None:
        return ""
    if isinstance(answer, str):
        return answer.strip()
    return ", ".join(str(a).strip() for a in answer if str(a).strip())


def missing_required_answers(questions: List[ClarificationQuestion], answers: Dict[str, Answer]) -> List[str]:
    """返回未作答的必答问题 id"""
    return [q.id for q in questions if q.required and _is_blank(answers.get(q.id))]


def build_refined_command(
    original: str,
    answers: Dict[str, Answer],
    questions: Optional[List[ClarificationQuestion]] = None,
) -> str:
    """原始命令 + " - " + 按问题顺序拼接的答案（多选答案以 ", " 连接）"""
    if questions:
        ordered = [answers.get(q.id) for q in questions]
    else:
        ordered = list(answers.values())
    parts = [_render(a) for a in ordered if not _is_blank(a)]
    if not parts:
        return original
    return f"{original}{SystemConstants.REFINEMENT_SEPARATOR}{' '.join(parts)}"


async def resolve_clarification(
    interpreter: Any,
    plan: Plan,
    answers: Dict[str, Answer],
    context: InterpretationContext,
) -> Optional[Plan]:
    """校验答案、拼接新命令并重新解释

    结果可能是可执行计划，也可能再次是待澄清计划。
    """
    if not plan.needs_clarification:
        raise ValueError(f"Plan {plan.id} does not need clarification")
    missing = missing_required_answers(plan.clarification_questions, answers)
    if missing:
        raise ClarificationAnswerError(missing)

    original = plan.original_command or plan.title
    refined = build_refined_command(original, answers, plan.clarification_questions)
    if refined != original:
        context = replace(context, clarification=refined[len(original) + len(SystemConstants.REFINEMENT_SEPARATOR):])
    logger.info(f"Re-interpreting clarified command: {refined!r}")
    return await interpreter.interpret(refined, context)
