"""
模式级联

有序的 (正则, 计划工厂) 规则列表。按声明顺序逐条匹配，第一条命中的规则生效，
不做最佳匹配搜索。
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Pattern, Tuple, Union

from ..models.context import InterpretationContext
from ..models.plan import Plan
from ..plans.common import PlanFactory, StepServices
from .constants import SystemConstants

logger = logging.getLogger(__name__)


@dataclass
class Rule:
    """一条级联规则"""
    name: str
    pattern: Union[str, Pattern]
    factory: PlanFactory
    _compiled: Pattern = field(init=False, repr=False)

    def __post_init__(self):
        if isinstance(self.pattern, str):
            self._compiled = re.compile(self.pattern, re.IGNORECASE)
        else:
            self._compiled = self.pattern

    def match(self, text: str) -> Optional[re.Match]:
        return self._compiled.search(text)

    async def build(self, match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
        return await self.factory(match, context, services)


class PatternCascade:
    """模式级联"""

    def __init__(self, rules: Iterable[Rule], services: StepServices):
        self._rules: List[Rule] = list(rules)
        self.services = services
        names = [r.name for r in self._rules]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"Duplicate rule names: {sorted(duplicates)}")

    @property
    def rules(self) -> List[Rule]:
        return list(self._rules)

    def find(self, text: str) -> Optional[Tuple[Rule, re.Match]]:
        """返回第一条命中的规则及其匹配结果"""
        for rule in self._rules:
            found = rule.match(text)
            if found:
                return rule, found
        return None

    async def build_plan(self, text: str, context: InterpretationContext) -> Optional[Plan]:
        """用第一条命中规则的工厂生成计划；无命中返回 None

        工厂抛出的 ClarificationRequired 原样向上传递。澄清后的命令只用原始部分匹配，
        答案文本经 context.clarification 交给工厂。
        """
        suffix = f"{SystemConstants.REFINEMENT_SEPARATOR}{context.clarification}" if context.clarification else ""
        if suffix and text.endswith(suffix) and len(text) > len(suffix):
            text = text[:-len(suffix)]
        hit = self.find(text)
        if hit is None:
            logger.debug(f"No cascade rule matched: {text!r}")
            return None
        rule, found = hit
        logger.info(f"Cascade rule '{rule.name}' matched command: {text!r}")
        return await rule.build(found, context, self.services)
