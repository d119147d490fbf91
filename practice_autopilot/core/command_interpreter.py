"""
指令解释器

解析顺序（第一个成功的阶段生效）：
1. AI 结构化解释：可能直接给出计划或待澄清计划，异常视为无结果
2. 模式级联：第一条命中的规则生成领域计划
3. 通用兜底：再请 AI 生成通用计划；仍失败则生成回显命令的单步计划

解释过程中不执行任何步骤。
"""

import logging
from typing import Optional

from ..infrastructure.command_understanding import CommandUnderstanding
from ..models.context import InterpretationContext
from ..models.plan import EventCategory, Plan, Step
from .clarification import make_clarification_plan
from .constants import SystemConstants
from .errors import ClarificationRequired
from .id_generator import IDGenerator, id_generator as default_id_generator
from .pattern_cascade import PatternCascade

logger = logging.getLogger(__name__)


class CommandInterpreter:
    """指令解释器"""

    def __init__(
        self,
        cascade: PatternCascade,
        understanding: Optional[CommandUnderstanding] = None,
        ids: Optional[IDGenerator] = None,
    ):
        self.cascade = cascade
        self.understanding = understanding
        self.ids = ids or default_id_generator

    async def interpret(self, command: str, context: Optional[InterpretationContext] = None) -> Optional[Plan]:
        """把命令解释为计划；空白命令返回 None"""
        command = (command or "").strip()
        if not command:
            logger.info("Ignoring blank command")
            return None
        context = context or InterpretationContext()

        plan = await self._from_understanding(command, context)
        if plan is None:
            plan = await self._from_cascade(command, context)
        if plan is None:
            plan = await self._fallback(command, context)

        if plan.original_command is None:
            plan.original_command = command
        logger.info(
            f"Interpreted {command!r} as plan {plan.id} '{plan.title}' "
            f"({len(plan.steps)} steps, clarification={plan.needs_clarification})"
        )
        return plan

    async def _from_understanding(self, command: str, context: InterpretationContext) -> Optional[Plan]:
        if self.understanding is None:
            return None
        try:
            return await self.understanding.create_plan(command, context)
        except Exception as e:
            logger.warning(f"AI interpretation failed, trying patterns: {e}")
            return None

    async def _from_cascade(self, command: str, context: InterpretationContext) -> Optional[Plan]:
        try:
            return await self.cascade.build_plan(command, context)
        except ClarificationRequired as e:
            logger.info(f"Cascade needs clarification for {command!r}: {e.message}")
            return make_clarification_plan(command, e.questions, context, self.ids)

    async def _fallback(self, command: str, context: InterpretationContext) -> Plan:
        if self.understanding is not None:
            try:
                return await self.understanding.generate_generic_plan(command, context)
            except Exception as e:
                logger.warning(f"Fallback plan generation failed: {e}")
        return self.echo_plan(command, context)

    def echo_plan(self, command: str, context: InterpretationContext) -> Plan:
        """最终兜底：单步计划，步骤标签回显原始命令"""

        async def run():
            logger.info(f"Executing: {command}")

        async def undo():
            logger.info(f"Undoing: {command}")

        return Plan(
            id=self.ids.generate_plan_id("plan"),
            title=SystemConstants.FALLBACK_TITLE.format(command=command),
            actor=context.actor,
            source=context.source,
            steps=[Step(
                id=self.ids.generate_step_id(1),
                label=SystemConstants.FALLBACK_STEP_LABEL.format(command=command),
                run=run,
                undo=undo,
            )],
            original_command=command,
            category=EventCategory.GENERAL,
        )
