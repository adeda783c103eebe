from __future__ import annotations

from datetime import date

from services.documents.models import Appointment, AppointmentDocument, DocCategory, ReminderType, Worker
from services.reminders.deriver import derive_reminders, pending_workers

TODAY = date(2024, 5, 10)


def _worker(wid, last, has_prl=False, prl=None, med=None):
    return Worker(
        id=wid,
        first_name="Ana",
        last_name=last,
        has_prl_20h=has_prl,
        prl_appointment=Appointment(date=prl, time="09:00", location="Centro") if prl else None,
        medical_appointment=Appointment(date=med, location="Mutua") if med else None,
    )


def test_reminders_are_filtered_and_sorted():
    workers = [
        _worker("w1", "García", prl="2024-05-20", med="2024-05-12"),
        _worker("w2", "López", has_prl=True, prl="2024-05-11", med="2024-05-10"),
        _worker("w3", "Ruiz", med="2024-05-01"),
    ]
    out = derive_reminders(workers, TODAY)
    assert [(r.id, r.type, r.date) for r in out] == [
        ("med-w2", ReminderType.MEDICAL, "2024-05-10"),
        ("med-w1", ReminderType.MEDICAL, "2024-05-12"),
        ("prl-w1", ReminderType.TRAINING, "2024-05-20"),
    ]
    assert out[2].worker == "Ana García"
    assert out[2].time == "09:00"
    assert out[2].location == "Centro"


def test_training_reminder_needs_missing_prl_course():
    out = derive_reminders([_worker("w1", "García", has_prl=True, prl="2024-06-01")], TODAY)
    assert out == []


def test_today_is_included_and_yesterday_is_not():
    workers = [_worker("w1", "A", med="2024-05-10"), _worker("w2", "B", med="2024-05-09")]
    assert [r.id for r in derive_reminders(workers, TODAY)] == ["med-w1"]


def test_ties_keep_worker_order():
    workers = [_worker("w1", "A", med="2024-06-01"), _worker("w2", "B", med="2024-06-01")]
    assert [r.id for r in derive_reminders(workers, TODAY)] == ["med-w1", "med-w2"]


def test_unparseable_dates_are_skipped():
    assert derive_reminders([_worker("w1", "A", med="pronto")], TODAY) == []


def test_pending_training_workers():
    workers = [
        _worker("w1", "García"),
        _worker("w2", "López", has_prl=True),
        _worker("w3", "Ruiz"),
    ]
    docs = [
        AppointmentDocument(
            id="d1",
            name="Certificado PRL.pdf",
            category=DocCategory.FORMACION,
            upload_date="2024-01-01",
            worker_name="Pedro Ruiz",
        )
    ]
    assert [w.id for w in pending_workers(DocCategory.FORMACION, workers, docs)] == ["w1"]


def test_pending_medical_workers():
    workers = [_worker("w1", "García", med="2024-06-01"), _worker("w2", "López")]
    assert [w.id for w in pending_workers(DocCategory.RECONOCIMIENTOS, workers, [])] == ["w2"]
    assert pending_workers(DocCategory.SAE, workers, []) == []
