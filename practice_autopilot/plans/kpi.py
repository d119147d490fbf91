"""
KPI 面板发起的运营类计划
"""

import re
from datetime import datetime, timedelta
from typing import Any, Dict

from ..models.context import InterpretationContext
from ..models.plan import EventCategory, Plan
from .common import PlanBuilder, StepServices


async def send_surveys(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    builder = PlanBuilder("Send patient satisfaction surveys", context, services, prefix="kpi")
    store = services.store
    state: Dict[str, Any] = {"patient_ids": []}

    async def identify():
        cutoff = (datetime.now() - timedelta(days=7)).date().isoformat()
        state["patient_ids"] = [p.id for p in store.patients.values() if (p.last_seen or "") >= cutoff]

    builder.step("Identify recent patients (last 7 days)", identify)
    builder.action("Generate personalized survey links", "surveys.create_links", {"window_days": 7})
    builder.action("Send via SMS with follow-up schedule", "sms.batch_send", {"template": "satisfaction_survey"})
    return builder.build()


async def optimise_schedule(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    builder = PlanBuilder("Optimize appointment schedule", context, services, prefix="kpi")
    builder.action("Analyze current appointment gaps", "analytics.appointment_gaps", reversible=False)
    builder.action("Identify optimization opportunities", "analytics.schedule_opportunities", reversible=False)
    builder.action("Propose schedule adjustments", "calendar.propose_adjustments")
    return builder.build()


async def review_pricing(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    builder = PlanBuilder("Review and optimize pricing strategy", context, services, prefix="kpi")
    builder.action("Compare current pricing with market rates", "analytics.market_rates", reversible=False)
    builder.action("Review service profitability", "analytics.service_profitability", reversible=False)
    builder.task("Generate pricing recommendations", "Review pricing recommendations")
    return builder.build()


async def setup_reminders(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    builder = PlanBuilder("Setup automated appointment reminders", context, services, prefix="kpi",
                          category=EventCategory.REMINDER)
    builder.action("Configure appointment reminder templates", "reminders.configure_templates")
    builder.action("Set reminder timing preferences", "reminders.set_timing", {"hours_before": [48, 2]})
    builder.action("Enable automated reminder system", "reminders.enable")
    return builder.build()


async def schedule_follow_ups(match: re.Match, context: InterpretationContext, services: StepServices) -> Plan:
    builder = PlanBuilder("Schedule patient follow-up appointments", context, services, prefix="kpi")
    store = services.store
    state: Dict[str, Any] = {"patient_ids": []}

    async def review():
        state["patient_ids"] = sorted({
            a.patient_id for a in store.appointments.values() if a.status == "completed" and a.patient_id
        })

    builder.step("Review recent consultations requiring follow-up", review)
    builder.action("Determine optimal follow-up timing", "analytics.follow_up_timing", reversible=False)
    builder.action("Send follow-up booking invitations", "sms.batch_send", {"template": "follow_up_invite"})
    return builder.build()


async def optimise_high_risk_slots(match: re.Match, context: InterpretationContext,
                                   services: StepServices) -> Plan:
    builder = PlanBuilder("Optimize high-risk appointment slots", context, services, prefix="kpi")
    builder.action("Identify high-risk appointment slots", "analytics.high_risk_slots", reversible=False)
    builder.action("Calculate no-show probability scores", "analytics.no_show_scores", reversible=False)
    builder.action("Apply dynamic overbooking strategy", "calendar.apply_overbooking")
    return builder.build()
