"""
主动照护类计划

慢病管理路径入组、照护缺口、异常读数分诊、用药依从、出院随访、批量化验与血压提醒、
预约前 AI 问诊。
"""

import logging
import re
from typing import Any, Dict

from ..models.context import InterpretationContext
from ..models.plan import EventCategory, Plan
from ..models.practice import Appointment
from .common import PlanBuilder, StepServices, capture, display_name, lookup_patient, resolve_patient

logger = logging.getLogger(__name__)


def _patient_id(resolved) -> Any:
    return resolved.get("id") if resolved else None


def _book_step(builder: PlanBuilder, label: str, raw_name: str, resolved, service: str) -> PlanBuilder:
    """预约一个待定时间的随访，撤销时删除"""
    services = builder.services
    state: Dict[str, Any] = {}

    async def book():
        patient = await lookup_patient(services, raw_name, resolved)
        appointment = Appointment(
            id=services.ids.generate_record_id("appt"),
            patient_id=patient.id if patient else None,
            patient_name=patient.name if patient else raw_name,
            start="TBC",
            service=service,
            status="scheduled",
        )
        if await services.store.add_appointment(appointment):
            state["appointment_id"] = appointment.id

    async def cancel():
        appointment_id = state.pop("appointment_id", None)
        if appointment_id:
            await services.store.remove_appointment(appointment_id)

    return builder.step(label, book, cancel)


def _count_with_risk(context: InterpretationContext, risk: str) -> int:
    return sum(1 for p in context.patients if risk in (p.get("risk_factors") or []))


async def enrol_to_pathway(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    raw_name = capture(match, "patient")
    condition = capture(match, "condition")
    resolved = resolve_patient(raw_name, context, match.string)
    recipient = display_name(raw_name, resolved)

    builder = PlanBuilder(f"Welcome {raw_name} to personalized {condition} support", context, services,
                          prefix="care")
    builder.message(f"Send warm welcome message to {raw_name}", recipient,
                    f"Welcome to our {condition} support programme.")
    builder.task(f"Set up personalized check-in schedule based on {raw_name}'s preferences",
                 f"{condition} check-ins for {recipient}", _patient_id(resolved))
    builder.action(f"Share helpful resources tailored to {raw_name}'s lifestyle", "content.share_resources",
                   {"to": recipient, "topic": condition})
    _book_step(builder, "Schedule comfortable follow-up chat with doctor", raw_name, resolved,
               f"{condition} review")
    return builder.build()


async def close_care_gap(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    test_type = capture(match, "test")
    raw_name = capture(match, "patient")
    resolved = resolve_patient(raw_name, context, match.string) if raw_name else None
    recipient = display_name(raw_name or "patient", resolved)

    builder = PlanBuilder(f"Gentle reminder for {raw_name or 'patient'}'s {test_type}", context, services,
                          prefix="care")
    builder.message(f"Send caring reminder about {test_type} to {raw_name or 'patient'}", recipient,
                    f"You're due a {test_type}. Booking takes a minute.")
    builder.action("Offer convenient appointment booking options", "calendar.offer_slots",
                   {"to": recipient, "service": test_type})
    builder.task("Set up friendly follow-up check-in", f"Check {recipient} booked {test_type}",
                 _patient_id(resolved))
    return builder.build()


async def triage_abnormal_reading(match: re.Match, context: InterpretationContext,
                                  services: StepServices) -> Plan:
    reading = capture(match, "reading")
    raw_name = capture(match, "patient")
    resolved = resolve_patient(raw_name, context, match.string)
    recipient = display_name(raw_name, resolved)

    builder = PlanBuilder(f"Supportive outreach for {raw_name}'s {reading} readings", context, services,
                          prefix="care")

    async def review():
        if await lookup_patient(services, raw_name, resolved) is None:
            raise LookupError(f"No patient record for {raw_name}")

    builder.step(f"Review {raw_name}'s recent {reading} patterns", review)
    builder.message(f"Send caring check-in message to {raw_name}", recipient,
                    f"We noticed your recent {reading} readings and wanted to check in.")
    builder.action("Offer easy ways for patient to connect with doctor", "calendar.offer_slots",
                   {"to": recipient, "service": "doctor call-back"})
    builder.task("Flag for doctor's personal attention during next interaction",
                 f"Discuss {reading} readings with {recipient}", _patient_id(resolved))
    return builder.build()


async def medication_adherence(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    raw_name = capture(match, "patient")
    resolved = resolve_patient(raw_name, context, match.string)
    recipient = display_name(raw_name, resolved)

    builder = PlanBuilder(f"Supportive medication check-in for {raw_name}", context, services, prefix="care")
    builder.message(f"Send understanding message about medication routine to {raw_name}", recipient,
                    "How are you getting on with your medication?")
    builder.action("Offer practical help with medication management", "content.share_resources",
                   {"to": recipient, "topic": "medication management"})
    _book_step(builder, "Schedule comfortable conversation with care team", raw_name, resolved,
               "Care team conversation")
    return builder.build()


async def discharge_coordination(match: re.Match, context: InterpretationContext,
                                 services: StepServices) -> Plan:
    raw_name = capture(match, "patient")
    resolved = resolve_patient(raw_name, context, match.string)
    recipient = display_name(raw_name, resolved)

    builder = PlanBuilder(f"Caring discharge support for {raw_name}", context, services, prefix="care")
    builder.message(f'Send warm "welcome home" message to {raw_name}', recipient,
                    "Welcome home. We're here if you need anything.")
    builder.action("Share easy-to-understand home care instructions", "content.share_resources",
                   {"to": recipient, "topic": "home care"})
    _book_step(builder, "Schedule comfortable follow-up appointment", raw_name, resolved, "Discharge follow-up")
    builder.action("Offer 24/7 support contact for any concerns", "sms.send",
                   {"to": recipient, "template": "support_contact"})
    return builder.build()


async def bulk_hba1c_orders(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    count_text = capture(match, "count")
    count = int(count_text) if count_text.isdigit() else _count_with_risk(context, "diabetes")
    store = services.store
    state: Dict[str, Any] = {"patient_ids": []}

    builder = PlanBuilder(f"Order HbA1c tests for {count} diabetic patients", context, services, prefix="care")

    async def identify():
        diabetic = [p.id for p in store.patients.values() if "diabetes" in p.risk_factors]
        state["patient_ids"] = diabetic[:count] if count else diabetic

    async def order():
        await services.gateway.perform("lab.order_batch",
                                       {"portal": "Lab", "test": "HbA1c", "patient_ids": state["patient_ids"]})

    async def cancel_order():
        await services.gateway.revert("lab.order_batch",
                                      {"portal": "Lab", "test": "HbA1c", "patient_ids": state["patient_ids"]})

    builder.step(f"Identify {count} patients with overdue HbA1c", identify)
    builder.step("Generate batch lab orders", order, cancel_order)
    builder.action("Send appointment booking invitations", "sms.batch_send", {"template": "hba1c_booking"})
    builder.task("Update care gap tracking", f"Track HbA1c results for {count} patients")
    return builder.build()


async def bulk_bp_reminders(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    count_text = capture(match, "count")
    count = int(count_text) if count_text.isdigit() else _count_with_risk(context, "hypertension")

    builder = PlanBuilder(f"Send BP monitoring reminders to {count} patients", context, services, prefix="care",
                          category=EventCategory.REMINDER)

    async def identify():
        logger.info(f"Selecting {count} hypertension patients without recent BP readings")

    builder.step(f"Identify {count} patients without recent BP readings", identify)
    builder.action("Generate personalized reminder messages", "content.generate_reminders",
                   {"topic": "bp_monitoring", "count": count})
    builder.action("Queue SMS delivery batch", "sms.batch_send", {"template": "bp_monitoring"})
    builder.task("Set up monitoring compliance tracking", f"Track BP submissions from {count} patients")
    return builder.build()


async def request_ai_intake(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    raw_name = capture(match, "patient")
    appointment = capture(match, "appointment", "their appointment")
    resolved = resolve_patient(raw_name, context, match.string)
    recipient = display_name(raw_name, resolved)

    builder = PlanBuilder(f"Request AI pre-appointment intake for {raw_name}", context, services,
                          prefix="intake")
    builder.action(f"Prepare personalized intake link for {raw_name}", "intake.create_link",
                   {"patient": recipient, "appointment": appointment})
    builder.message(f"Send caring message to {raw_name} with intake link", recipient,
                    f"Please complete a short questionnaire before {appointment}.")
    builder.action("Set up intake completion monitoring", "intake.monitor", {"patient": recipient})
    builder.task("Schedule intake summary review before appointment", f"Review intake summary for {recipient}",
                 _patient_id(resolved))
    return builder.build()
