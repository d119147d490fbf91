"""
通用任务计划
"""

import re

from ..models.context import InterpretationContext
from ..models.plan import Plan
from .common import PlanBuilder, StepServices, capture


async def create_task(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    description = capture(match, "description")
    builder = PlanBuilder(f"Create Task: {description}", context, services, prefix="task")
    builder.task(f'Create task: "{description}"', description)
    builder.action("Assign to appropriate team member", "tasks.assign",
                   {"task": description, "role": context.role.value})
    return builder.build()
