"""
来电跟进计划

由来电记录而不是命令文本生成计划：改期并通知、创建跟进任务、核验保险、发送支付链接、
新建患者、新预约。生成的计划来源统一标记为 Source.CALL。
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List

from ..core.errors import ActionFailedError
from ..models.context import InterpretationContext
from ..models.plan import EventCategory, Plan, Source
from ..models.practice import Appointment, CallIntent, CallRecord, Patient
from .common import PlanBuilder, StepServices
from .scheduling import current_appointment

logger = logging.getLogger(__name__)

DEFAULT_CALL_SLOT = "next Thursday 2:30pm"
DEFAULT_BOOKING_SLOT = "next Tuesday 3:00pm"
DEFAULT_PAYMENT_AMOUNT = 145.0

CallPlanFactory = Callable[[CallRecord, InterpretationContext, StepServices], Awaitable[Plan]]


def _call_context(context: InterpretationContext) -> InterpretationContext:
    if context.source == Source.CALL:
        return context
    return replace(context, source=Source.CALL)


def _caller(call: CallRecord, default: str = "caller") -> str:
    return call.patient_name or default


def _tomorrow_at_nine(context: InterpretationContext) -> str:
    try:
        now = datetime.fromisoformat(context.current_time.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable current_time {context.current_time!r}; using now")
        now = datetime.now()
    return (now + timedelta(days=1)).replace(hour=9, minute=0, second=0, microsecond=0).isoformat()


def _resolved(call: CallRecord) -> Dict[str, Any]:
    return {"id": call.patient_id, "name": call.patient_name} if call.patient_id else {}


async def reschedule_from_call(call: CallRecord, context: InterpretationContext, services: StepServices) -> Plan:
    name = _caller(call)
    when = call.requested_time or DEFAULT_CALL_SLOT
    store = services.store
    state: Dict[str, Any] = {}

    builder = PlanBuilder(f"Reschedule {name} + notify", _call_context(context), services)

    async def find_current():
        state["appointment"] = await current_appointment(services, name, _resolved(call))

    async def forget_current():
        state.pop("appointment", None)

    async def move():
        appointment = state.get("appointment") or await current_appointment(services, name, _resolved(call))
        state["moved_id"] = appointment.id
        state["previous_start"] = appointment.start
        await store.update_appointment(appointment.id, {"start": when})

    async def move_back():
        moved_id = state.pop("moved_id", None)
        if moved_id:
            await store.update_appointment(moved_id, {"start": state["previous_start"]})

    builder.step(f"Find {name}'s current appointment", find_current, forget_current)
    builder.action("Check availability for preferred time", "calendar.hold_slot", {"time": when})
    builder.step("Move appointment to new time", move, move_back)
    builder.message("Send confirmation SMS", call.phone, f"Your appointment has moved to {when}.")
    return builder.build()


async def create_task_from_call(call: CallRecord, context: InterpretationContext, services: StepServices) -> Plan:
    name = _caller(call)
    description = f"Follow up on call with {name}"
    if call.summary:
        description = f"{description} - {call.summary}"

    builder = PlanBuilder(f"Create follow-up task for {name}", _call_context(context), services, prefix="task")
    builder.task("Create follow-up task", description, call.patient_id)
    builder.action("Assign to appropriate staff member", "tasks.assign",
                   {"task": description, "role": context.role.value})
    builder.action("Set reminder for tomorrow", "reminders.schedule",
                   {"task": description, "at": _tomorrow_at_nine(context)})
    return builder.build()


async def verify_insurance_from_call(call: CallRecord, context: InterpretationContext,
                                     services: StepServices) -> Plan:
    name = _caller(call)
    store, gateway = services.store, services.gateway
    state: Dict[str, Any] = {}

    builder = PlanBuilder(f"Verify insurance for {name}", _call_context(context), services, prefix="coverage",
                          category=EventCategory.VERIFICATION)

    async def read_details():
        patient = await store.get_patient(call.patient_id) if call.patient_id else None
        if patient is None:
            raise LookupError(f"No patient record for {name}")
        state["insurer"] = patient.insurer

    async def contact_insurer():
        insurer = state.get("insurer")
        if insurer is None:
            raise ActionFailedError("insurer.verify_eligibility", "Insurance details not loaded")
        if insurer.lower() == "self-pay":
            logger.info(f"{name} is self-pay; no insurer to contact")
            return
        await gateway.perform("insurer.verify_eligibility", {"portal": insurer, "patient_id": call.patient_id})

    builder.step(f"Check {name}'s insurance details", read_details)
    builder.step("Contact insurer for eligibility verification", contact_insurer)

    note_text = f"Coverage verification requested by call {call.id}"
    builder.note("Update patient record with verification status", call.patient_id, note_text, note_type="admin")
    return builder.build()


async def payment_link_from_call(call: CallRecord, context: InterpretationContext, services: StepServices) -> Plan:
    name = _caller(call)
    outstanding = [
        i for i in services.store.invoices.values()
        if call.patient_id and i.patient_id == call.patient_id and i.status in ("Sent", "Overdue")
    ]
    amount = outstanding[0].amount if outstanding else DEFAULT_PAYMENT_AMOUNT
    amount_text = f"£{amount:.2f}"

    builder = PlanBuilder(f"Send {amount_text} payment link to {name}", _call_context(context), services)
    builder.action(f"Generate secure payment link for {amount_text}", "payments.create_link",
                   {"patient": name, "amount": amount,
                    "invoice_id": outstanding[0].id if outstanding else None})
    builder.message(f"Send payment SMS to {name}", call.phone,
                    f"Please use this secure link to pay {amount_text}.")
    return builder.build()


async def create_patient_from_call(call: CallRecord, context: InterpretationContext,
                                   services: StepServices) -> Plan:
    store, ids = services.store, services.ids
    name = call.patient_name or f"New patient {call.phone}"
    state: Dict[str, Any] = {}

    builder = PlanBuilder("Create new patient + welcome", _call_context(context), services)

    async def create():
        patient = Patient(id=ids.generate_record_id("pat"), name=name, phone=call.phone)
        if await store.add_patient(patient):
            state["patient_id"] = patient.id

    async def delete():
        patient_id = state.pop("patient_id", None)
        if patient_id:
            await store.remove_patient(patient_id)

    async def book_consultation():
        appointment = Appointment(
            id=ids.generate_record_id("appt"),
            patient_id=state.get("patient_id"),
            patient_name=name,
            start="next week",
            service="Initial consultation",
        )
        if await store.add_appointment(appointment):
            state["appointment_id"] = appointment.id

    async def cancel_consultation():
        appointment_id = state.pop("appointment_id", None)
        if appointment_id:
            await store.remove_appointment(appointment_id)

    builder.step("Create new patient record", create, delete)
    builder.message("Send welcome information pack", call.phone,
                    "Welcome to the practice. Your information pack is attached.", channel="email")
    builder.step("Schedule initial consultation", book_consultation, cancel_consultation)
    return builder.build()


async def new_booking_from_call(call: CallRecord, context: InterpretationContext, services: StepServices) -> Plan:
    store, ids = services.store, services.ids
    name = _caller(call, "new patient")
    when = call.requested_time or DEFAULT_BOOKING_SLOT
    state: Dict[str, Any] = {}

    builder = PlanBuilder(f"New booking for {name}", _call_context(context), services)
    builder.action("Check practitioner availability", "calendar.hold_slot", {"time": when})

    async def book():
        appointment = Appointment(
            id=ids.generate_record_id("appt"),
            patient_id=call.patient_id,
            patient_name=name,
            start=when,
            service="Consultation",
        )
        if await store.add_appointment(appointment):
            state["appointment_id"] = appointment.id

    async def cancel():
        appointment_id = state.pop("appointment_id", None)
        if appointment_id:
            await store.remove_appointment(appointment_id)

    builder.step(f"Book appointment for {name}", book, cancel)
    builder.message("Send confirmation with directions", call.phone,
                    f"Your appointment is booked for {when}. Directions and parking details are attached.")
    return builder.build()


CALL_PLAN_FACTORIES: Dict[str, CallPlanFactory] = {
    "reschedule": reschedule_from_call,
    "create_task": create_task_from_call,
    "verify_insurance": verify_insurance_from_call,
    "payment_link": payment_link_from_call,
    "create_patient": create_patient_from_call,
    "new_booking": new_booking_from_call,
}

_PRIMARY_FOLLOW_UP = {
    CallIntent.RESCHEDULE: "reschedule",
    CallIntent.NEW_BOOKING: "new_booking",
    CallIntent.BILLING: "payment_link",
}


def follow_ups_for_call(call: CallRecord, patient_known: bool) -> List[str]:
    """按来电意图与患者是否已建档给出可选跟进，首项为主要跟进"""
    kinds = []
    primary = _PRIMARY_FOLLOW_UP.get(call.intent)
    if primary:
        kinds.append(primary)
    kinds.append("create_task")
    kinds.append("verify_insurance" if patient_known else "create_patient")
    return kinds


async def build_call_plan(kind: str, call: CallRecord, context: InterpretationContext,
                          services: StepServices) -> Plan:
    factory = CALL_PLAN_FACTORIES.get(kind)
    if factory is None:
        raise ValueError(f"Unknown call follow-up '{kind}'; expected one of {sorted(CALL_PLAN_FACTORIES)}")
    plan = await factory(call, context, services)
    logger.info(f"Built call follow-up '{kind}' for call {call.id}: plan {plan.id}")
    return plan
