"""
解释上下文数据模型
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .plan import Actor, Source


class Role(Enum):
    """操作者角色（仅作参考，不做权限校验）"""
    RECEPTION = "reception"
    CLINICIAN = "clinician"
    MANAGER = "manager"


class AutopilotMode(Enum):
    """自动驾驶模式"""
    MANUAL = "manual"
    ASK = "ask"
    SCHEDULED = "scheduled"


@dataclass
class InterpretationContext:
    """指令解释上下文

    patients / appointments / invoices 为只读快照（字典列表），可以为空。
    current_time 为 ISO8601 字符串，未提供时取当前时间。
    clarification 仅在澄清后的重新解释中设置。
    """
    actor: Actor = Actor.USER
    source: Source = Source.COMMAND_BAR
    role: Role = Role.RECEPTION
    autopilot_mode: AutopilotMode = AutopilotMode.MANUAL
    patients: List[Dict[str, Any]] = field(default_factory=list)
    appointments: List[Dict[str, Any]] = field(default_factory=list)
    invoices: List[Dict[str, Any]] = field(default_factory=list)
    current_time: Optional[str] = None
    # resolve_clarification 追加到命令末尾的答案文本
    clarification: Optional[str] = None

    def __post_init__(self):
        if self.current_time is None:
            self.current_time = datetime.now().isoformat()

    def find_patients(self, name: str) -> List[Dict[str, Any]]:
        """按姓名在快照中查找患者（不区分大小写，子串匹配）"""
        needle = (name or "").strip().lower()
        if not needle:
            return []
        exact = [p for p in self.patients if str(p.get("name", "")).lower() == needle]
        if exact:
            return exact
        return [p for p in self.patients if needle in str(p.get("name", "")).lower()]

    def to_prompt_dict(self) -> Dict[str, Any]:
        """渲染为提供给 AI 协作方的上下文"""
        return {
            "role": self.role.value,
            "autopilot_mode": self.autopilot_mode.value,
            "actor": self.actor.value,
            "source": self.source.value,
            "current_time": self.current_time,
            "patients": self.patients,
            "appointments": self.appointments,
            "invoices": self.invoices,
        }
