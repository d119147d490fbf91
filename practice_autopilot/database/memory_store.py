"""
内存版本的诊所数据存储

计划步骤通过这里读写患者、预约、账单、任务、消息与临床记录。
mutation_locked 只是演示模式下的粗粒度开关：锁定时写操作被跳过并记录警告，不提供事务隔离。
"""

import copy
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from ..models.practice import Appointment, Invoice, Message, Note, Patient, Task

logger = logging.getLogger(__name__)

DEMO_PATIENTS = [
    Patient(
        id="p1", name="Amelia Ali", dob="1987-03-14", phone="+44 7700 900101",
        insurer="Bupa", insurance_expiry="2025-12-31", last_seen="2024-08-15",
        risk_factors=["diabetes", "family_history_heart"], next_due="6-month-checkup",
    ),
    Patient(
        id="p2", name="Sarah Jones", dob="1994-09-10", phone="+44 7700 900102",
        insurer="Self-pay", last_seen="2024-09-10", next_due="annual-screening",
    ),
    Patient(
        id="p3", name="Mrs Smith", dob="1963-01-22", phone="+44 7700 900103",
        insurer="AXA", insurance_expiry="2025-03-15", last_seen="2024-03-10",
        risk_factors=["hypertension", "osteoporosis"], next_due="6-month-checkup",
    ),
]

DEMO_APPOINTMENTS = [
    Appointment(id="a1", patient_id="p1", patient_name="Amelia Ali", start="2025-09-11T10:00:00Z",
                service="Consultation", clinician="Dr Patel"),
    Appointment(id="a2", patient_id="p2", patient_name="Sarah Jones", start="2025-09-12T09:30:00Z",
                service="Follow-up", clinician="Dr Patel"),
    Appointment(id="a3", patient_id="p3", patient_name="Mrs Smith", start="2025-09-15T14:00:00Z",
                service="Consultation", clinician="Dr Jones"),
]

DEMO_INVOICES = [
    Invoice(id="inv-101", patient_id="p1", amount=220.0, due_date="2025-08-01", payer="Bupa", status="Overdue"),
    Invoice(id="inv-102", patient_id="p2", amount=145.0, due_date="2025-09-25", payer="Self-pay", status="Draft"),
    Invoice(id="inv-103", patient_id="p3", amount=90.0, due_date="2025-07-10", payer="AXA", status="Sent"),
]


class MemoryPracticeStore:
    """内存版本的诊所数据存储"""

    def __init__(self, load_demo: bool = True):
        self.patients: Dict[str, Patient] = {}
        self.appointments: Dict[str, Appointment] = {}
        self.invoices: Dict[str, Invoice] = {}
        self.tasks: Dict[str, Task] = {}
        self.messages: Dict[str, Message] = {}
        self.notes: Dict[str, Note] = {}
        self.mutation_locked = False
        if load_demo:
            self.load_demo_data()

    def load_demo_data(self):
        """载入演示数据（覆盖现有数据）"""
        self.patients = {p.id: copy.deepcopy(p) for p in DEMO_PATIENTS}
        self.appointments = {a.id: copy.deepcopy(a) for a in DEMO_APPOINTMENTS}
        self.invoices = {i.id: copy.deepcopy(i) for i in DEMO_INVOICES}
        self.tasks = {}
        self.messages = {}
        self.notes = {}
        logger.info("Memory: Loaded demo practice data")

    def set_mutation_locked(self, locked: bool):
        self.mutation_locked = locked
        logger.info(f"Memory: mutation lock {'enabled' if locked else 'disabled'}")

    def _writable(self, operation: str) -> bool:
        if self.mutation_locked:
            logger.warning(f"Memory: Skipped {operation} while mutations are locked")
            return False
        return True

    def snapshot(self) -> Dict[str, List[Dict[str, Any]]]:
        """只读快照，用于构建解释上下文"""
        return {
            "patients": [p.to_dict() for p in self.patients.values()],
            "appointments": [a.to_dict() for a in self.appointments.values()],
            "invoices": [i.to_dict() for i in self.invoices.values()],
        }

    # ========== 患者 ==========

    async def get_patient(self, patient_id: str) -> Optional[Patient]:
        return self.patients.get(patient_id)

    async def find_patients(self, name: str) -> List[Patient]:
        """按姓名查找患者，精确匹配优先，否则子串匹配"""
        needle = (name or "").strip().lower()
        if not needle:
            return []
        exact = [p for p in self.patients.values() if p.name.lower() == needle]
        if exact:
            return exact
        return [p for p in self.patients.values() if needle in p.name.lower()]

    async def add_patient(self, patient: Patient) -> Optional[Patient]:
        if not self._writable("add_patient"):
            return None
        self.patients[patient.id] = patient
        logger.info(f"Memory: Created patient {patient.id}")
        return patient

    async def update_patient(self, patient_id: str, updates: Dict[str, Any]) -> Optional[Patient]:
        if not self._writable("update_patient"):
            return None
        patient = self.patients.get(patient_id)
        if patient is None:
            raise KeyError(f"Patient {patient_id} not found")
        for key, value in updates.items():
            if hasattr(patient, key):
                setattr(patient, key, value)
        logger.info(f"Memory: Updated patient {patient_id}")
        return patient

    async def remove_patient(self, patient_id: str) -> bool:
        if not self._writable("remove_patient"):
            return False
        return self.patients.pop(patient_id, None) is not None

    # ========== 预约 ==========

    async def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        return self.appointments.get(appointment_id)

    async def appointments_for_patient(self, patient_id: str, include_cancelled: bool = False) -> List[Appointment]:
        return [
            a for a in self.appointments.values()
            if a.patient_id == patient_id and (include_cancelled or a.status != "cancelled")
        ]

    async def add_appointment(self, appointment: Appointment) -> Optional[Appointment]:
        if not self._writable("add_appointment"):
            return None
        self.appointments[appointment.id] = appointment
        logger.info(f"Memory: Created appointment {appointment.id} at {appointment.start}")
        return appointment

    async def update_appointment(self, appointment_id: str, updates: Dict[str, Any]) -> Optional[Appointment]:
        if not self._writable("update_appointment"):
            return None
        appointment = self.appointments.get(appointment_id)
        if appointment is None:
            raise KeyError(f"Appointment {appointment_id} not found")
        for key, value in updates.items():
            if hasattr(appointment, key):
                setattr(appointment, key, value)
        logger.info(f"Memory: Updated appointment {appointment_id}")
        return appointment

    async def remove_appointment(self, appointment_id: str) -> bool:
        if not self._writable("remove_appointment"):
            return False
        removed = self.appointments.pop(appointment_id, None)
        if removed:
            logger.info(f"Memory: Removed appointment {appointment_id}")
        return removed is not None

    # ========== 账单 ==========

    async def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        return self.invoices.get(invoice_id)

    async def overdue_invoices(self, min_days: int = 30, today: Optional[date] = None) -> List[Invoice]:
        """逾期超过 min_days 天且未结清的账单"""
        today = today or date.today()
        result = []
        for invoice in self.invoices.values():
            if invoice.status in ("Paid", "Void"):
                continue
            try:
                due = datetime.fromisoformat(invoice.due_date).date()
            except ValueError:
                logger.warning(f"Memory: Invoice {invoice.id} has unparseable due date {invoice.due_date!r}")
                continue
            if (today - due).days > min_days:
                result.append(invoice)
        return result

    async def update_invoice(self, invoice_id: str, updates: Dict[str, Any]) -> Optional[Invoice]:
        if not self._writable("update_invoice"):
            return None
        invoice = self.invoices.get(invoice_id)
        if invoice is None:
            raise KeyError(f"Invoice {invoice_id} not found")
        for key, value in updates.items():
            if hasattr(invoice, key):
                setattr(invoice, key, value)
        logger.info(f"Memory: Updated invoice {invoice_id}")
        return invoice

    async def add_invoice(self, invoice: Invoice) -> Optional[Invoice]:
        if not self._writable("add_invoice"):
            return None
        self.invoices[invoice.id] = invoice
        logger.info(f"Memory: Created invoice {invoice.id}")
        return invoice

    async def remove_invoice(self, invoice_id: str) -> bool:
        if not self._writable("remove_invoice"):
            return False
        return self.invoices.pop(invoice_id, None) is not None

    async def mark_invoice_paid(self, invoice_id: str) -> Optional[Invoice]:
        return await self.update_invoice(invoice_id, {"status": "Paid"})

    # ========== 任务 / 消息 / 记录 ==========

    async def add_task(self, task: Task) -> Optional[Task]:
        if not self._writable("add_task"):
            return None
        self.tasks[task.id] = task
        logger.info(f"Memory: Created task {task.id}: {task.title}")
        return task

    async def complete_task(self, task_id: str) -> Optional[Task]:
        if not self._writable("complete_task"):
            return None
        task = self.tasks.get(task_id)
        if task:
            task.status = "done"
        return task

    async def remove_task(self, task_id: str) -> bool:
        if not self._writable("remove_task"):
            return False
        return self.tasks.pop(task_id, None) is not None

    async def add_message(self, message: Message) -> Optional[Message]:
        if not self._writable("add_message"):
            return None
        self.messages[message.id] = message
        logger.info(f"Memory: Queued message {message.id} to {message.to}")
        return message

    async def remove_message(self, message_id: str) -> bool:
        if not self._writable("remove_message"):
            return False
        return self.messages.pop(message_id, None) is not None

    async def add_note(self, note: Note) -> Optional[Note]:
        if not self._writable("add_note"):
            return None
        self.notes[note.id] = note
        logger.info(f"Memory: Created note {note.id}")
        return note

    async def update_note(self, note_id: str, updates: Dict[str, Any]) -> Optional[Note]:
        if not self._writable("update_note"):
            return None
        note = self.notes.get(note_id)
        if note is None:
            raise KeyError(f"Note {note_id} not found")
        for key, value in updates.items():
            if hasattr(note, key):
                setattr(note, key, value)
        return note

    async def remove_note(self, note_id: str) -> bool:
        if not self._writable("remove_note"):
            return False
        return self.notes.pop(note_id, None) is not None
