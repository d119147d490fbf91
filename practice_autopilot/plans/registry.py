"""
默认规则表

规则按声明顺序匹配，第一条命中即生效：具体措辞必须排在宽泛措辞之前。
"""

from typing import List

from ..core.pattern_cascade import Rule
from . import billing, care, clinical, coverage, kpi, scheduling, tasks


def default_rules() -> List[Rule]:
    return [
        # 临床收尾
        Rule("clinical_wrapup_full",
             r"finali[sz]e note for (?P<patient>.+?), draft referral to (?P<specialty>.+?), "
             r"send (?:her |his |their )?prescription,? and task reception for (?:a )?(?P<review>.+?) review",
             clinical.clinical_wrapup),
        Rule("clinical_wrapup_short",
             r"(?:finali[sz]e (?:note for )?)?(?P<patient>[^,]+?),?\s*send\s+(?:her |his |their )?prescription\s+"
             r"and\s+task\s+reception\s+for\s+(?:a\s+)?(?P<review>.+?)\s+review",
             clinical.clinical_wrapup),
        Rule("clinical_wrapup", r"clinical wrap-?up for (?P<patient>.+)", clinical.clinical_wrapup),

        # 主动照护
        Rule("enrol_pathway",
             r"enrol{1,2} (?:patient )?(?P<patient>.+?) (?:to|in|for|into) (?:the )?(?P<condition>.+?) pathway",
             care.enrol_to_pathway),
        Rule("enrol_condition",
             r"enrol{1,2} (?:patient )?(?P<patient>.+?) (?:to|in|into) (?P<condition>diabetes|hypertension|copd)",
             care.enrol_to_pathway),
        Rule("close_care_gap",
             r"close care gap[:\s]+overdue (?P<test>.+?)(?: for (?P<patient>.+))?$",
             care.close_care_gap),
        Rule("abnormal_reading",
             r"(?:triage|handle) abnormal (?P<reading>\S+) (?:readings? )?(?:for )?(?P<patient>.+)",
             care.triage_abnormal_reading),
        Rule("medication_adherence",
             r"medication adherence (?:risk )?(?:for )?(?P<patient>.+)",
             care.medication_adherence),
        Rule("discharge_coordination",
             r"\b(?:coordinate )?discharge (?:follow-?up )?(?:for )?(?P<patient>.+)",
             care.discharge_coordination),
        Rule("bulk_hba1c",
             r"order hba1c (?:tests? )?(?:for )?(?P<count>\d+)?\s*(?:diabetic )?patients?",
             care.bulk_hba1c_orders),
        Rule("bulk_bp_send",
             r"send bp (?:monitoring )?reminders? (?:to )?(?P<count>\d+)?\s*patients?",
             care.bulk_bp_reminders),
        Rule("bulk_bp_nudge",
             r"(?:nudge|remind) (?P<count>\d+)?\s*(?:hypertension )?patients? (?:about )?bp monitoring",
             care.bulk_bp_reminders),

        # 预约前 AI 问诊
        Rule("ai_intake",
             r"(?:request|send) (?:an? )?(?:ai )?(?:pre-?appointment )?intake (?:to |for )?(?P<patient>.+?)"
             r"(?:\s+(?:for|before)\s+(?P<appointment>.+))?$",
             care.request_ai_intake),
        Rule("ai_intake_prepare",
             r"prepare (?P<patient>.+?) for (?:their |her |his )?(?:appointment|visit)",
             care.request_ai_intake),

        # 环境录音
        Rule("scribe_start", r"\b(?:start|begin) (?:ambient )?(?:scribe|recording)(?: for (?P<patient>.+))?",
             clinical.start_scribe_recording),
        Rule("scribe_stop", r"\b(?:stop|end) (?:ambient )?(?:scribe|recording)", clinical.stop_scribe_recording),
        Rule("note_generate", r"(?:generate|create) (?:a )?(?:clinical )?note (?:for |from )?(?P<content>.+)",
             clinical.generate_note),
        Rule("note_document", r"^document (?:consultation (?:for |with )?)?(?P<content>.+)", clinical.generate_note),

        # 诊所系统内的简单操作
        Rule("create_task", r"create task[:\s]+(?P<description>.+)", tasks.create_task),
        Rule("add_note_content", r"add (?:a )?(?:clinical )?note for (?P<patient>.+?):\s*(?P<content>.+)",
             clinical.add_clinical_note),
        Rule("add_note_template",
             r"add (?:a )?(?:clinical )?note (?:for )?(?P<patient>.+?) (?:using|from) (?P<template>.+?)(?: template)?$",
             clinical.add_clinical_note),
        Rule("reschedule_notify",
             r"reschedule (?P<patient>.+?) (?:to|for) (?P<time>.+?) (?:and notify|with notification)",
             scheduling.reschedule_with_notification),
        Rule("mark_dna",
             r"mark (?P<patient>.+?) (?:as )?DNA (?:and charge|with fee) (?:of )?(?P<fee>.+)",
             scheduling.mark_dna_with_fee),
        Rule("attach_referral",
             r"attach referral (?:pdf )?(?:for )?(?P<patient>.+?) to (?P<service>.+)",
             clinical.attach_referral),

        # 诊所系统内的多步编排
        Rule("clinic_pack", r"prepare (?:daily )?clinic pack (?:for )?(?P<practitioner>.+)",
             scheduling.prepare_clinic_pack),
        Rule("sms_confirmations",
             r"(?:send )?(?:batch )?(?:sms )?confirmations? for (?P<timeframe>.+)",
             scheduling.batch_sms_confirmations),

        # 外部系统
        Rule("verify_insurance",
             r"verify insurance (?:eligibility )?(?:for )?(?P<patient>.+?) (?:with|through) (?P<insurer>.+)",
             coverage.verify_insurance_eligibility),
        Rule("claim_chase", r"prepare (?:insurer )?claim chase batch", billing.prepare_claim_chase_batch),
        Rule("xero_sync", r"sync (?:invoice )?(?P<invoice>.+?) to xero", billing.sync_invoice_to_xero),
        Rule("payment_link", r"send payment link (?:to )?(?P<patient>.+?) for (?P<amount>.+)",
             billing.send_payment_link),
        Rule("consent_signature",
             r"request (?:consent )?e-?signature (?:from )?(?P<patient>.+?) for (?P<consent>.+)",
             clinical.request_consent_signature),
        Rule("eprescription",
             r"(?:send )?e-?prescription (?:for )?(?P<patient>.+?)[:,]\s*(?P<medication>.+?) to (?P<pharmacy>.+)",
             clinical.send_eprescription),
        Rule("chase_batch", r"prepare (?:payment )?chase batch", billing.chase_overdue_invoices),
        Rule("chase_invoices",
             r"chase (?:overdue )?invoices?(?:\s*(?:>|over|older than)\s*(?P<days>\d+)\s*d(?:ays)?)?",
             billing.chase_overdue_invoices),

        # KPI 面板
        Rule("kpi_follow_ups", r"\bschedule follow-?ups", kpi.schedule_follow_ups),
        Rule("kpi_surveys", r"send more surveys", kpi.send_surveys),
        Rule("kpi_high_risk_slots", r"optimi[sz]e high-risk slots", kpi.optimise_high_risk_slots),
        Rule("kpi_optimise_schedule", r"optimi[sz]e (?:the )?schedule", kpi.optimise_schedule),
        Rule("kpi_pricing", r"review pricing", kpi.review_pricing),
        Rule("kpi_reminders", r"set ?up reminders", kpi.setup_reminders),
        Rule("kpi_payment_plans", r"set ?up payment plans", billing.setup_payment_plans),

        # 预约与核验
        Rule("schedule_service", r"\bschedule (?P<patient>.+?) for (?P<service>.+?) at (?P<time>.+)",
             scheduling.schedule_appointment),
        Rule("schedule", r"\bschedule (?P<patient>.+?) (?:for|on) (?P<time>.+)", scheduling.schedule_appointment),
        Rule("verify_coverage", r"verify coverage for (?P<subject>.+)", coverage.verify_coverage),
        Rule("reschedule", r"reschedule (?P<patient>.+?) to (?P<time>.+)", scheduling.reschedule_appointment),
    ]
