from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

from services.documents.models import AppointmentDocument, DocCategory, Worker


@dataclass(frozen=True)
class ManualAppointmentEntry:
    category: DocCategory
    worker_name: str
    date: str
    location: str = ""
    quincena: str = ""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_manual_appointment(entry: ManualAppointmentEntry) -> Optional[AppointmentDocument]:
    """
    Created -> Filed for a hand-entered appointment.
    Returns None when the worker name or date is missing; the caller keeps its form open.
    """
    name = (entry.worker_name or "").strip()
    when = (entry.date or "").strip()
    if not name or not when:
        return None

    is_training = entry.category == DocCategory.FORMACION
    return AppointmentDocument(
        id=uuid4().hex,
        name=f"Cita PRL 20h - {name}" if is_training else f"Cita Médica - {name}",
        category=entry.category,
        upload_date=_now_iso(),
        expiry_date=when,
        worker_name=name,
        summary="Cita programada formación 20h" if is_training else "Cita programada reconocimiento médico",
        is_valid=True,
        location=entry.location,
        quincena=entry.quincena,
    )


def appointments_for_new_worker(worker: Worker) -> List[AppointmentDocument]:
    """Appointment records filed automatically when a worker is registered."""
    out: List[AppointmentDocument] = []
    now = _now_iso()
    full_name = worker.full_name

    prl = worker.prl_appointment
    if not worker.has_prl_20h and prl is not None and prl.date:
        out.append(AppointmentDocument(
            id=f"appt-prl-{uuid4().hex}",
            name=f"Cita PRL - {full_name}",
            category=DocCategory.FORMACION,
            upload_date=now,
            worker_name=full_name,
            expiry_date=prl.date,
            location=prl.location,
            quincena=worker.quincena,
            summary=f"Cita automática: {prl.date} {prl.time or ''}".rstrip(),
            is_valid=True,
        ))

    med = worker.medical_appointment
    if med is not None and med.date:
        out.append(AppointmentDocument(
            id=f"appt-med-{uuid4().hex}",
            name=f"Cita Médica - {full_name}",
            category=DocCategory.RECONOCIMIENTOS,
            upload_date=now,
            worker_name=full_name,
            expiry_date=med.date,
            location=med.location,
            quincena=worker.quincena,
            summary=f"Cita automática: {med.date} {med.time or ''}".rstrip(),
            is_valid=True,
        ))

    return out
