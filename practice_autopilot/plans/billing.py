"""
账单类计划：逾期催款、保险理赔催办、支付链接、Xero 同步、分期付款
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict

from ..models.context import InterpretationContext
from ..models.plan import Plan
from ..models.practice import Message
from .common import PlanBuilder, StepServices, capture, display_name, parse_amount, resolve_patient

logger = logging.getLogger(__name__)

DEFAULT_OVERDUE_DAYS = 30


def _context_date(context: InterpretationContext):
    try:
        return datetime.fromisoformat(context.current_time.replace("Z", "+00:00")).date()
    except ValueError:
        logger.warning(f"Unparseable current_time {context.current_time!r}; using today")
        return datetime.now().date()


async def chase_overdue_invoices(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    days_text = capture(match, "days")
    min_days = int(days_text) if days_text.isdigit() else DEFAULT_OVERDUE_DAYS
    today = _context_date(context)
    store, gateway, ids = services.store, services.gateway, services.ids
    state: Dict[str, Any] = {"invoices": [], "message_ids": []}

    builder = PlanBuilder("Prepare payment chase batch", context, services)

    async def identify():
        state["invoices"] = await store.overdue_invoices(min_days=min_days, today=today)
        logger.info(f"Found {len(state['invoices'])} invoices overdue by more than {min_days} days")

    async def draft():
        for invoice in state["invoices"]:
            patient = await store.get_patient(invoice.patient_id)
            message = Message(
                id=ids.generate_record_id("msg"),
                to=patient.phone if patient and patient.phone else invoice.patient_id,
                body=f"Reminder: invoice {invoice.id} for £{invoice.amount:.2f} is overdue.",
            )
            if await store.add_message(message):
                state["message_ids"].append(message.id)

    async def discard():
        while state["message_ids"]:
            await store.remove_message(state["message_ids"].pop())

    async def queue():
        await gateway.perform("sms.batch_send", {"message_ids": list(state["message_ids"])})

    async def unqueue():
        await gateway.revert("sms.batch_send", {"message_ids": list(state["message_ids"])})

    builder.step(f"Identify overdue invoices (>{min_days} days)", identify)
    builder.step("Generate personalized chase messages", draft, discard)
    builder.step("Queue for batch SMS delivery", queue, unqueue)
    return builder.build()


async def prepare_claim_chase_batch(match: re.Match, context: InterpretationContext,
                                    services: StepServices) -> Plan:
    store = services.store
    today = _context_date(context)
    state: Dict[str, Any] = {"claims": []}

    builder = PlanBuilder("Prepare insurer claim chase batch", context, services)

    async def identify():
        overdue = await store.overdue_invoices(min_days=45, today=today)
        state["claims"] = [i for i in overdue if i.payer != "Self-pay"]

    builder.step("Identify outstanding claims (>45 days)", identify)
    builder.action("Generate claim status reports", "claims.generate_status_reports", {"kind": "insurer"})
    builder.action("Prepare chase documentation", "claims.prepare_documentation", {"kind": "insurer"})

    async def submit():
        for invoice in state["claims"]:
            await services.gateway.perform("insurer.submit_claim_chase",
                                           {"portal": invoice.payer, "invoice_id": invoice.id})

    async def withdraw():
        for invoice in state["claims"]:
            await services.gateway.revert("insurer.submit_claim_chase",
                                          {"portal": invoice.payer, "invoice_id": invoice.id})

    builder.step("Queue for insurer submission", submit, withdraw)
    return builder.build()


async def sync_invoice_to_xero(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    invoice_ref = capture(match, "invoice")
    store = services.store

    builder = PlanBuilder(f"Sync {invoice_ref} to Xero", context, services)
    builder.action("Authenticate with Xero API", "xero.authenticate", {"portal": "Xero"}, reversible=False)

    async def prepare():
        if await store.get_invoice(invoice_ref) is None:
            raise LookupError(f"Invoice {invoice_ref} not found")

    builder.step(f"Prepare invoice data for {invoice_ref}", prepare)
    builder.action("Submit to Xero and verify sync", "xero.sync_invoice",
                   {"portal": "Xero", "invoice_id": invoice_ref})
    return builder.build()


async def send_payment_link(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    raw_name = capture(match, "patient")
    amount_text = capture(match, "amount")
    resolved = resolve_patient(raw_name, context, match.string)
    amount = parse_amount(amount_text)
    recipient = display_name(raw_name, resolved)

    builder = PlanBuilder(f"Send payment link to {raw_name} for {amount_text}", context, services)
    builder.action(f"Generate secure payment link for {amount_text}", "payments.create_link",
                   {"patient": recipient, "amount": amount})
    builder.message(f"Send via SMS/email to {raw_name}", recipient,
                    f"Please use this secure link to pay {amount_text}.")
    builder.task("Set up payment tracking", f"Track payment of {amount_text} from {recipient}",
                 resolved.get("id") if resolved else None)
    return builder.build()


async def setup_payment_plans(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    store = services.store
    state: Dict[str, Any] = {"invoices": []}

    builder = PlanBuilder("Setup patient payment plans", context, services, prefix="kpi")

    async def identify():
        state["invoices"] = [i for i in store.invoices.values() if i.status in ("Sent", "Overdue")]

    builder.step("Identify patients with outstanding balances", identify)
    builder.action("Generate payment plan options", "payments.generate_plan_options", {"instalments": [3, 6]})
    builder.action("Send payment plan offers to patients", "sms.batch_send", {"template": "payment_plan_offer"})
    return builder.build()