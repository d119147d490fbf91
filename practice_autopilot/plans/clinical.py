"""
临床类计划：诊疗收尾、环境录音转写、生成/添加临床记录、电子处方、电子签名同意书、转诊附件
"""

import logging
import re
from typing import Any, Dict

from ..models.context import InterpretationContext
from ..models.plan import EventCategory, Plan
from ..models.practice import Note
from .common import (
    PlanBuilder, StepServices, capture, display_name, lookup_patient, resolve_patient, searchable_command,
)

logger = logging.getLogger(__name__)


def _patient_id(resolved) -> Any:
    return resolved.get("id") if resolved else None


async def clinical_wrapup(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    raw_name = capture(match, "patient")
    specialty = capture(match, "specialty", "specialist")
    review = capture(match, "review", "follow-up")
    resolved = resolve_patient(raw_name, context, match.string)
    patient_id = _patient_id(resolved)
    store = services.store
    note_state: Dict[str, Any] = {}

    builder = PlanBuilder(f"Clinical wrap-up for {raw_name}", context, services)

    async def finalise():
        # 有草稿则定稿，否则新建一份已定稿记录
        drafts = [n for n in store.notes.values() if n.patient_id == patient_id and n.status == "draft"]
        if drafts:
            note_state["finalised_id"] = drafts[-1].id
            await store.update_note(drafts[-1].id, {"status": "final"})
            return
        note = Note(id=services.ids.generate_record_id("note"), patient_id=patient_id, author="Clinician",
                    text=f"Consultation note for {display_name(raw_name, resolved)}", status="final")
        if await store.add_note(note):
            note_state["created_id"] = note.id

    async def unfinalise():
        finalised_id = note_state.pop("finalised_id", None)
        if finalised_id:
            await store.update_note(finalised_id, {"status": "draft"})
        created_id = note_state.pop("created_id", None)
        if created_id:
            await store.remove_note(created_id)

    builder.step(f"Finalize clinical note for {raw_name}", finalise, unfinalise)
    builder.note(f"Draft referral to {specialty}", patient_id,
                 f"Referral to {specialty} for {display_name(raw_name, resolved)}", note_type="referral")
    builder.action("Send prescription to pharmacy", "pharmacy.send_prescription",
                   {"patient": display_name(raw_name, resolved)})
    builder.task(f"Task reception for {review} review", f"Book {review} review for {display_name(raw_name, resolved)}",
                 patient_id)
    return builder.build()


async def start_scribe_recording(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    raw_name = capture(match, "patient")
    suffix = f" for {raw_name}" if raw_name else ""
    with_suffix = f" with {raw_name}" if raw_name else ""

    builder = PlanBuilder(f"Start ambient scribe recording{suffix}", context, services, prefix="scribe",
                           category=EventCategory.SCRIBE)
    builder.action("Initialize ambient scribe system", "scribe.initialize", reversible=False)
    builder.action("Request microphone permissions", "scribe.request_microphone", reversible=False)
    builder.action(f"Begin recording consultation{with_suffix}", "scribe.start_recording",
                   {"patient": raw_name or None})
    return builder.build()


async def stop_scribe_recording(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    builder = PlanBuilder("Stop ambient scribe and generate clinical note", context, services, prefix="scribe",
                           category=EventCategory.SCRIBE)
    builder.action("Stop ambient recording", "scribe.stop_recording", reversible=False)
    builder.action("Process audio transcript", "scribe.transcribe", reversible=False)
    builder.note("Generate structured clinical note", None, "Structured note from ambient transcript",
                 author="Ambient Scribe")
    return builder.build()


async def generate_note(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    content = capture(match, "content")
    store = services.store
    note_state: Dict[str, Any] = {}

    # 取命令中出现的第一个已知患者作为记录归属
    lowered = searchable_command(match.string, context).lower()
    owner = next((p for p in context.patients if str(p.get("name", "")).lower() in lowered), None)

    builder = PlanBuilder(f"Generate clinical note: {content}", context, services, prefix="scribe",
                           category=EventCategory.SCRIBE)
    builder.action("Analyze command context", "scribe.analyze_command", {"content": content}, reversible=False)
    builder.note("Generate structured note", _patient_id(owner), content, author="Ambient Scribe", state=note_state)

    async def mark_for_review():
        note_id = note_state.get("note_id")
        if note_id:
            await store.update_note(note_id, {"status": "review"})

    async def unmark():
        note_id = note_state.get("note_id")
        if note_id and note_id in store.notes:
            await store.update_note(note_id, {"status": "draft"})

    builder.step("Format for review and approval", mark_for_review, unmark)
    return builder.build()


async def add_clinical_note(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    raw_name = capture(match, "patient")
    content = capture(match, "content") or f"{capture(match, 'template', 'standard')} template"
    resolved = resolve_patient(raw_name, context, match.string)

    builder = PlanBuilder(f"Add clinical note for {raw_name}", context, services, prefix="task")

    async def open_record():
        if await lookup_patient(services, raw_name, resolved) is None:
            raise LookupError(f"No patient record for {raw_name}")

    builder.step(f"Open patient record for {raw_name}", open_record)
    builder.note(f"Add note: {content}", _patient_id(resolved), content, author="Clinician")
    return builder.build()


async def send_eprescription(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    raw_name = capture(match, "patient")
    medication = capture(match, "medication")
    pharmacy = capture(match, "pharmacy")
    resolved = resolve_patient(raw_name, context, match.string)

    builder = PlanBuilder(f"Send e-prescription for {raw_name}: {medication} to {pharmacy}",
                          context, services, prefix="task")

    async def verify():
        if not medication:
            raise ValueError("No medication given")

    builder.step(f"Verify prescription details for {medication}", verify)
    builder.action(f"Connect to {pharmacy} system", "pharmacy.connect", {"portal": pharmacy}, reversible=False)
    builder.action(f"Transmit prescription for {raw_name}", "pharmacy.transmit_prescription",
                   {"portal": pharmacy, "patient": display_name(raw_name, resolved), "medication": medication})
    builder.note("Confirm receipt and update patient record", _patient_id(resolved),
                 f"{medication} sent to {pharmacy}", note_type="admin", status="final")
    return builder.build()


async def request_consent_signature(match: re.Match, context: InterpretationContext,
                                    services: StepServices) -> Plan:
    raw_name = capture(match, "patient")
    consent = capture(match, "consent")
    resolved = resolve_patient(raw_name, context, match.string)
    recipient = display_name(raw_name, resolved)

    builder = PlanBuilder(f"Request e-signature from {raw_name} for {consent}", context, services, prefix="task")
    builder.action(f"Prepare {consent} consent form", "documents.prepare_consent", {"consent": consent})
    builder.action(f"Send to {raw_name} for e-signature", "esign.send", {"to": recipient, "consent": consent})
    builder.task("Set up signature tracking and reminders", f"Chase {consent} signature from {recipient}",
                 _patient_id(resolved))
    return builder.build()


async def attach_referral(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    raw_name = capture(match, "patient")
    service = capture(match, "service")
    resolved = resolve_patient(raw_name, context, match.string)
    store = services.store
    state: Dict[str, Any] = {}

    builder = PlanBuilder(f"Attach referral for {raw_name} to {service}", context, services, prefix="task")

    async def locate():
        patient = await lookup_patient(services, raw_name, resolved)
        referrals = [
            n for n in store.notes.values()
            if n.type == "referral" and patient is not None and n.patient_id == patient.id
        ]
        if not referrals:
            raise LookupError(f"No referral document for {raw_name}")
        state["note_id"] = referrals[-1].id

    async def attach():
        await services.gateway.perform("documents.attach", {"note_id": state.get("note_id"), "target": service})

    async def detach():
        await services.gateway.revert("documents.attach", {"note_id": state.get("note_id"), "target": service})

    builder.step(f"Locate referral document for {raw_name}", locate)
    builder.step(f"Attach to {service} record", attach, detach)
    return builder.build()

