"""
诊所领域记录模型

仅供计划步骤读写的最小字段集合，领域存储本身属于外部协作方。
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass
class Patient:
    """患者"""
    id: str
    name: str
    dob: str = ""
    phone: str = ""
    insurer: str = "Self-pay"
    insurance_expiry: Optional[str] = None
    last_seen: Optional[str] = None
    risk_factors: List[str] = field(default_factory=list)
    next_due: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Appointment:
    """预约"""
    id: str
    patient_id: Optional[str]
    start: str
    patient_name: Optional[str] = None
    service: Optional[str] = None
    clinician: Optional[str] = None
    status: str = "scheduled"  # scheduled | confirmed | arrived | dna | completed | cancelled
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Invoice:
    """账单"""
    id: str
    patient_id: str
    amount: float
    due_date: str
    payer: str = "Self-pay"
    status: str = "Draft"  # Draft | Sent | Overdue | Paid | Void

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Task:
    """前台/临床任务"""
    id: str
    title: str
    patient_id: Optional[str] = None
    status: str = "open"  # open | done

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Message:
    """外发消息"""
    id: str
    to: str
    body: str
    status: str = "draft"  # draft | sent

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class CallIntent(Enum):
    """来电意图"""
    RESCHEDULE = "reschedule"
    NEW_BOOKING = "new_booking"
    PRESCRIPTION = "prescription"
    BILLING = "billing"
    INQUIRY = "inquiry"


@dataclass
class CallRecord:
    """来电记录

    patient_id 为空表示来电号码未匹配到已有患者。
    """
    id: str
    phone: str
    patient_id: Optional[str] = None
    patient_name: Optional[str] = None
    intent: Optional[CallIntent] = None
    summary: str = ""
    key_details: Optional[str] = None
    requested_time: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    transcript: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["intent"] = self.intent.value if self.intent else None
        return data


@dataclass
class Note:
    """临床记录"""
    id: str
    patient_id: Optional[str]
    author: str
    text: str
    type: str = "consultation"  # consultation | lab | referral | admin
    status: str = "draft"  # draft | final

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
