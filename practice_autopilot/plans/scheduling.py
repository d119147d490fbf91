"""
预约类计划：预约、改期、DNA 收费、批量确认短信、门诊资料包
"""

import logging
import re
from typing import Any, Dict, List

from ..models.context import InterpretationContext
from ..models.plan import EventCategory, Plan
from ..models.practice import Appointment, Invoice, Message
from .common import PlanBuilder, StepServices, capture, display_name, lookup_patient, parse_amount, resolve_patient

logger = logging.getLogger(__name__)


async def schedule_appointment(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    raw_name = capture(match, "patient")
    service = capture(match, "service")
    when = capture(match, "time")
    resolved = resolve_patient(raw_name, context, match.string)
    store, gateway, ids = services.store, services.gateway, services.ids
    state: Dict[str, Any] = {}

    title = f"Schedule {raw_name} for {service}" if service else f"Schedule {raw_name} for {when}"
    slot_label = f"Find available slot for {service} at {when}" if service else f"Find available slot at {when}"
    builder = PlanBuilder(title, context, services)
    builder.action(slot_label, "calendar.hold_slot", {"time": when, "service": service or "Consultation"})

    async def book():
        patient = await lookup_patient(services, raw_name, resolved)
        appointment = Appointment(
            id=ids.generate_record_id("appt"),
            patient_id=patient.id if patient else None,
            patient_name=patient.name if patient else raw_name,
            start=when,
            service=service or "Consultation",
        )
        if await store.add_appointment(appointment):
            state["appointment_id"] = appointment.id

    async def cancel_booking():
        appointment_id = state.pop("appointment_id", None)
        if appointment_id:
            await store.remove_appointment(appointment_id)

    builder.step(f"Book appointment for {raw_name}", book, cancel_booking)

    phone = resolved.get("phone") if resolved else ""
    builder.action("Send confirmation SMS", "sms.send",
                   {"to": phone or display_name(raw_name, resolved), "template": "appointment_confirmation",
                    "time": when})
    return builder.build()


async def current_appointment(services: StepServices, raw_name: str, resolved) -> Appointment:
    patient = await lookup_patient(services, raw_name, resolved)
    if patient is None:
        raise LookupError(f"No patient record for {raw_name}")
    appointments = [
        a for a in await services.store.appointments_for_patient(patient.id)
        if a.status not in ("completed", "dna")
    ]
    if not appointments:
        raise LookupError(f"No current appointment for {patient.name}")
    return sorted(appointments, key=lambda a: a.start)[0]


async def reschedule_appointment(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    raw_name = capture(match, "patient")
    when = capture(match, "time")
    resolved = resolve_patient(raw_name, context, match.string)
    store, ids = services.store, services.ids
    state: Dict[str, Any] = {}

    builder = PlanBuilder(f"Reschedule {raw_name} to {when}", context, services)

    async def cancel_current():
        appointment = await current_appointment(services, raw_name, resolved)
        state["original"] = appointment
        state["previous_status"] = appointment.status
        await store.update_appointment(appointment.id, {"status": "cancelled"})

    async def restore_current():
        original = state.get("original")
        if original:
            await store.update_appointment(original.id, {"status": state["previous_status"]})

    async def book_new():
        original = state.get("original")
        if original is None:
            original = await current_appointment(services, raw_name, resolved)
        appointment = Appointment(
            id=ids.generate_record_id("appt"),
            patient_id=original.patient_id,
            patient_name=original.patient_name,
            start=when,
            service=original.service,
            clinician=original.clinician,
        )
        if await store.add_appointment(appointment):
            state["new_id"] = appointment.id

    async def cancel_new():
        new_id = state.pop("new_id", None)
        if new_id:
            await store.remove_appointment(new_id)

    builder.step(f"Cancel current appointment for {raw_name}", cancel_current, restore_current)
    builder.step(f"Book new slot at {when}", book_new, cancel_new)
    builder.action("Send reschedule notification", "sms.send",
                   {"to": display_name(raw_name, resolved), "template": "reschedule", "time": when})
    return builder.build()


async def reschedule_with_notification(match: re.Match, context: InterpretationContext,
                                       services: StepServices) -> Plan:
    raw_name = capture(match, "patient")
    when = capture(match, "time")
    resolved = resolve_patient(raw_name, context, match.string)
    store = services.store
    state: Dict[str, Any] = {}

    builder = PlanBuilder(f"Reschedule {raw_name} to {when}", context, services)
    builder.action(f"Find available slot at {when}", "calendar.hold_slot", {"time": when})

    async def move():
        appointment = await current_appointment(services, raw_name, resolved)
        state["appointment_id"] = appointment.id
        state["previous_start"] = appointment.start
        await store.update_appointment(appointment.id, {"start": when})

    async def move_back():
        appointment_id = state.pop("appointment_id", None)
        if appointment_id:
            await store.update_appointment(appointment_id, {"start": state["previous_start"]})

    builder.step(f"Move {raw_name}'s appointment", move, move_back)
    builder.message("Send notification to patient", display_name(raw_name, resolved),
                    f"Your appointment has moved to {when}.")
    return builder.build()


async def mark_dna_with_fee(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    raw_name = capture(match, "patient")
    fee_text = capture(match, "fee")
    amount = parse_amount(fee_text)
    resolved = resolve_patient(raw_name, context, match.string)
    store, ids = services.store, services.ids
    state: Dict[str, Any] = {}

    builder = PlanBuilder(f"Mark {raw_name} as DNA and charge {fee_text}", context, services)

    async def mark_dna():
        appointment = await current_appointment(services, raw_name, resolved)
        state["appointment"] = appointment
        state["previous_status"] = appointment.status
        await store.update_appointment(appointment.id, {"status": "dna"})

    async def unmark_dna():
        appointment = state.get("appointment")
        if appointment:
            await store.update_appointment(appointment.id, {"status": state["previous_status"]})

    async def raise_invoice():
        appointment = state.get("appointment") or await current_appointment(services, raw_name, resolved)
        invoice = Invoice(
            id=ids.generate_record_id("inv"),
            patient_id=appointment.patient_id,
            amount=amount,
            due_date=context.current_time[:10],
            payer="Self-pay",
            status="Sent",
        )
        if await store.add_invoice(invoice):
            state["invoice_id"] = invoice.id

    async def void_invoice():
        invoice_id = state.pop("invoice_id", None)
        if invoice_id:
            await store.remove_invoice(invoice_id)

    builder.step(f"Mark appointment as DNA for {raw_name}", mark_dna, unmark_dna)
    builder.step(f"Generate invoice for {fee_text} DNA fee", raise_invoice, void_invoice)
    builder.message("Send fee notification to patient", display_name(raw_name, resolved),
                    f"A missed appointment fee of {fee_text} has been applied.")
    return builder.build()


async def batch_sms_confirmations(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    timeframe = capture(match, "timeframe")
    store, gateway, ids = services.store, services.gateway, services.ids
    state: Dict[str, Any] = {"appointments": [], "message_ids": []}

    builder = PlanBuilder(f"Send SMS confirmations for {timeframe}", context, services,
                          category=EventCategory.REMINDER)

    async def identify():
        state["appointments"] = [a for a in store.appointments.values() if a.status != "cancelled"]
        logger.info(f"Found {len(state['appointments'])} appointments for {timeframe}")

    async def filter_unconfirmed():
        state["appointments"] = [a for a in state["appointments"] if a.status == "scheduled"]

    async def draft_messages():
        for appointment in state["appointments"]:
            message = Message(
                id=ids.generate_record_id("msg"),
                to=appointment.patient_name or appointment.patient_id or "patient",
                body=f"Please confirm your appointment at {appointment.start}.",
            )
            if await store.add_message(message):
                state["message_ids"].append(message.id)

    async def discard_messages():
        while state["message_ids"]:
            await store.remove_message(state["message_ids"].pop())

    builder.step(f"Identify appointments for {timeframe}", identify)
    builder.step("Filter patients requiring confirmation", filter_unconfirmed)
    builder.step("Generate personalized SMS messages", draft_messages, discard_messages)

    async def queue():
        await gateway.perform("sms.batch_send", {"message_ids": list(state["message_ids"])})

    async def unqueue():
        await gateway.revert("sms.batch_send", {"message_ids": list(state["message_ids"])})

    builder.step("Queue for batch delivery", queue, unqueue)
    return builder.build()


async def prepare_clinic_pack(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    practitioner = capture(match, "practitioner")
    store = services.store
    state: Dict[str, List[Any]] = {"appointments": [], "notes": []}

    builder = PlanBuilder(f"Prepare clinic pack for {practitioner}", context, services)

    async def list_appointments():
        needle = practitioner.lower()
        state["appointments"] = [
            a for a in store.appointments.values()
            if a.status != "cancelled" and (not a.clinician or needle in a.clinician.lower() or needle == "today")
        ]

    async def pull_records():
        patient_ids = {a.patient_id for a in state["appointments"]}
        state["notes"] = [n for n in store.notes.values() if n.patient_id in patient_ids]

    builder.step("Generate appointment list", list_appointments)
    builder.step("Pull patient records and notes", pull_records)
    builder.action("Generate consent forms and documents", "documents.generate_consent_forms",
                   {"practitioner": practitioner})
    builder.action("Compile clinic pack PDF", "documents.compile_clinic_pack", {"practitioner": practitioner})
    return builder.build()
