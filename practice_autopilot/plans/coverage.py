"""
保险核验类计划

核验步骤经外部保险门户完成；门户无响应时步骤失败，可在门户恢复后重试。
"""

import logging
import re
from typing import Any, Dict, Optional, Tuple

from ..models.context import InterpretationContext
from ..models.plan import EventCategory, Plan
from .common import PlanBuilder, StepServices, capture, display_name, lookup_patient, resolve_patient

logger = logging.getLogger(__name__)

SELF_PAY = "self-pay"

_INSURER_IN_PARENS = re.compile(r"^(?P<name>.+?)\s*\((?P<insurer>[^)]+)\)\s*$")
_INSURER_WITH = re.compile(r"^(?P<name>.+?)\s+(?:with|through)\s+(?P<insurer>.+)$", re.IGNORECASE)


def split_subject(subject: str) -> Tuple[str, Optional[str]]:
    """拆分 "Mrs Smith (AXA)" / "Mrs Smith with AXA" 为 (姓名, 保险公司)"""
    for pattern in (_INSURER_IN_PARENS, _INSURER_WITH):
        found = pattern.match(subject.strip())
        if found:
            return found.group("name").strip(), found.group("insurer").strip()
    return subject.strip(), None


async def verify_coverage(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    name, insurer = split_subject(capture(match, "subject"))
    resolved = resolve_patient(name, context, match.string)
    if insurer is None:
        insurer = str(resolved.get("insurer")) if resolved and resolved.get("insurer") else "Self-pay"
    state: Dict[str, Any] = {}

    builder = PlanBuilder(f"Verify coverage for {capture(match, 'subject')}", context, services,
                          category=EventCategory.VERIFICATION)

    async def locate():
        patient = await lookup_patient(services, name, resolved)
        if patient is None:
            raise LookupError(f"No patient record for {name}")
        state["patient"] = patient

    async def check_expiry():
        patient = state.get("patient") or await lookup_patient(services, name, resolved)
        expiry = patient.insurance_expiry if patient else None
        if expiry and expiry < context.current_time[:10]:
            logger.warning(f"Policy for {name} with {insurer} expired on {expiry}")
            state["expired"] = True

    builder.step(f"Locate insurance record for {name}", locate)
    builder.step(f"Check policy expiry for {name}", check_expiry)

    if insurer.lower() == SELF_PAY:
        builder.action(f"Verify {name} self-pay status", "billing.confirm_self_pay",
                       {"patient": display_name(name, resolved)})
    else:
        builder.action(f"Check {name} coverage ({insurer})", "insurer.verify_coverage",
                       {"portal": insurer, "patient": display_name(name, resolved)})
    return builder.build()


async def verify_insurance_eligibility(match: re.Match, context: InterpretationContext,
                                       services: StepServices) -> Plan:
    raw_name = capture(match, "patient")
    insurer = capture(match, "insurer")
    resolved = resolve_patient(raw_name, context, match.string)
    store = services.store
    state: Dict[str, Any] = {}

    builder = PlanBuilder(f"Verify {raw_name} insurance with {insurer}", context, services, prefix="task",
                          category=EventCategory.VERIFICATION)
    builder.action(f"Connect to {insurer} portal", "insurer.connect", {"portal": insurer}, reversible=False)
    builder.action(f"Submit eligibility check for {raw_name}", "insurer.check_eligibility",
                   {"portal": insurer, "patient": display_name(raw_name, resolved)}, reversible=False)

    async def update_record():
        patient = await lookup_patient(services, raw_name, resolved)
        if patient is None:
            raise LookupError(f"No patient record for {raw_name}")
        state["patient_id"] = patient.id
        state["previous_insurer"] = patient.insurer
        await store.update_patient(patient.id, {"insurer": insurer})

    async def restore_record():
        patient_id = state.pop("patient_id", None)
        if patient_id:
            await store.update_patient(patient_id, {"insurer": state["previous_insurer"]})

    builder.step("Update patient record with coverage details", update_record, restore_record)
    return builder.build()
