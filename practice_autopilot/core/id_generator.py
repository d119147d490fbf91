"""
ID生成器 - 用于生成计划、步骤和事件ID
"""

import re
import secrets
import time
from typing import Dict, Optional

from .constants import SystemConstants


class IDGenerator:
    """ID生成器"""

    def __init__(self):
        self._counters: Dict[str, int] = {}

    def _next(self, key: str) -> int:
        self._counters[key] = self._counters.get(key, 0) + 1
        return self._counters[key]

    def generate_plan_id(self, prefix: str = "plan") -> str:
        """生成计划ID，同一毫秒内依靠序号保证唯一"""
        clean_prefix = re.sub(r"[^a-z0-9]+", "-", prefix.lower()).strip("-") or "plan"
        return SystemConstants.PLAN_ID_PATTERN.format(
            prefix=clean_prefix,
            millis=int(time.time() * 1000),
            sequence=self._next(f"plan_{clean_prefix}"),
        )

    def generate_event_id(self) -> str:
        """生成事件ID"""
        return SystemConstants.EVENT_ID_PATTERN.format(
            millis=int(time.time() * 1000),
            suffix=secrets.token_hex(5),
        )

    def generate_step_id(self, index: int) -> str:
        """生成步骤ID（从1开始）"""
        return SystemConstants.STEP_ID_PATTERN.format(index=index)

    def generate_record_id(self, kind: str, sequence: Optional[int] = None) -> str:
        """生成领域记录ID，如 appt-001"""
        if sequence is None:
            sequence = self._next(f"record_{kind}")
        return f"{kind}-{sequence:03d}"


# 全局ID生成器实例
id_generator = IDGenerator()
