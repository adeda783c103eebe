from __future__ import annotations

from datetime import date
from typing import List, Optional, Sequence

from services.documents.models import (
    DocCategory,
    DocumentRecord,
    Reminder,
    ReminderType,
    Worker,
    parse_iso_date,
)


def _is_upcoming(value: Optional[str], today: date) -> bool:
    d = parse_iso_date(value)
    return d is not None and d >= today


def derive_reminders(workers: Sequence[Worker], today: Optional[date] = None) -> List[Reminder]:
    """
    One reminder per worker per appointment dated today or later, earliest first.
    Training appointments only count for workers without the 20h PRL course;
    past-dated appointments are left out rather than reported as overdue.
    """
    today = today or date.today()
    reminders: List[Reminder] = []

    for w in workers:
        prl = w.prl_appointment
        if not w.has_prl_20h and prl is not None and prl.date and _is_upcoming(prl.date, today):
            reminders.append(Reminder(
                id=f"prl-{w.id}",
                type=ReminderType.TRAINING,
                worker=w.full_name,
                date=prl.date,
                time=prl.time,
                location=prl.location,
            ))

        med = w.medical_appointment
        if med is not None and med.date and _is_upcoming(med.date, today):
            reminders.append(Reminder(
                id=f"med-{w.id}",
                type=ReminderType.MEDICAL,
                worker=w.full_name,
                date=med.date,
                time=med.time,
                location=med.location,
            ))

    # sorted() is stable, ties keep worker order
    return sorted(reminders, key=lambda r: parse_iso_date(r.date))


def pending_workers(
    category: DocCategory,
    workers: Sequence[Worker],
    documents: Sequence[DocumentRecord],
) -> List[Worker]:
    """
    Workers still owing paperwork in `category`: training for those without the
    20h PRL course, medical exams for those without a booked appointment, and in
    both cases no document of that category naming them yet.
    """
    docs = [d for d in documents if d.category == category]

    def has_doc(w: Worker) -> bool:
        return any(d.worker_name and w.last_name in d.worker_name for d in docs)

    if category == DocCategory.FORMACION:
        return [w for w in workers if not w.has_prl_20h and not has_doc(w)]
    if category == DocCategory.RECONOCIMIENTOS:
        return [w for w in workers if w.medical_appointment is None and not has_doc(w)]
    return []
