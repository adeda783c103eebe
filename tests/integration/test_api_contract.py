# tests/integration/test_api_contract.py
from __future__ import annotations

from fastapi.testclient import TestClient

from apps.api_gateway.app_factory import create_app
from apps.common.settings import AppSettings
from apps.common.workspace_loader import build_workspace
from services.ingestion.storage import MemoryStorage


class FakeClassifier:
    def __init__(self, category="Contratos de Trabajo"):
        self.category = category

    def classify(self, _image_b64):
        return {
            "category": self.category,
            "summary": "Documento escaneado",
            "expiryDate": "2030-01-01",
            "workerName": "Juan Pérez",
            "isValid": True,
        }


def _client(category="Contratos de Trabajo"):
    ws = build_workspace(AppSettings(), classifier=FakeClassifier(category), storage=MemoryStorage())
    return TestClient(create_app(workspace=ws)), ws


def _bulk(client, make_jpeg, *names, params=None):
    files = [("files", (n, make_jpeg(), "image/jpeg")) for n in names]
    return client.post("/intake", params=params, files=files)


def test_health():
    client, _ = _client()
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "healthy"}


def test_single_intake_returns_draft_then_confirm(make_jpeg):
    client, ws = _client()
    r = client.post(
        "/intake", params={"quincena": "1ª Enero 2025"}, files={"files": ("contrato.jpg", make_jpeg(), "image/jpeg")}
    )
    assert r.status_code == 200
    j = r.json()
    assert j["mode"] == "review"
    draft = j["draft"]
    assert draft["name"] == "contrato"
    assert draft["category"] == "Contratos de Trabajo"
    assert draft["quincena"] == "1ª Enero 2025"
    assert draft["analysis"]["summary"] == "Documento escaneado"
    assert draft["thumbnail_url"].startswith("data:image/jpeg;base64,")

    assert client.get(f"/drafts/{draft['draft_id']}").status_code == 200

    r = client.post(
        f"/drafts/{draft['draft_id']}/confirm",
        json={"category": "Formación de Trabajadores", "expiry_date": "2025-01-01"},
    )
    assert r.status_code == 200
    doc = r.json()
    assert doc["name"] == "contrato.pdf"
    assert doc["category"] == "Formación de Trabajadores"
    assert doc["expiry_date"] == "2025-01-01"
    assert doc["record_type"] == "file"
    assert doc["can_sign"] is False
    assert "image_url" not in doc
    assert len(ws.documents) == 1

    assert client.get(f"/drafts/{draft['draft_id']}").status_code == 404


def test_cancel_draft(make_jpeg):
    client, ws = _client()
    r = client.post("/intake", files={"files": ("c.jpg", make_jpeg(), "image/jpeg")})
    draft_id = r.json()["draft"]["draft_id"]
    assert client.delete(f"/drafts/{draft_id}").json() == {"ok": True}
    assert ws.drafts == {}


def test_bulk_intake_contract(make_jpeg):
    client, _ = _client()
    r = _bulk(client, make_jpeg, "a.jpg", "b.jpg")
    assert r.status_code == 200
    j = r.json()
    assert j["mode"] == "bulk"
    assert j["count"] == 2
    assert j["filed"] == 2
    assert all(row["ok"] for row in j["results"])
    assert all(row["document"]["can_sign"] for row in j["results"])


def test_bulk_intake_reports_failures(make_jpeg):
    client, _ = _client()
    files = [
        ("files", ("a.jpg", make_jpeg(), "image/jpeg")),
        ("files", ("roto.jpg", b"garbage", "image/jpeg")),
    ]
    j = client.post("/intake", files=files).json()
    assert j["filed"] == 1
    failed = [row for row in j["results"] if not row["ok"]]
    assert [row["filename"] for row in failed] == ["roto.jpg"]


def test_single_unreadable_file_is_400():
    client, _ = _client()
    r = client.post("/intake", files={"files": ("roto.jpg", b"garbage", "image/jpeg")})
    assert r.status_code == 400


def test_unknown_category_is_422(make_jpeg):
    client, _ = _client()
    r = client.post("/intake", params={"category": "Facturas"}, files={"files": ("a.jpg", make_jpeg(), "image/jpeg")})
    assert r.status_code == 422


def test_listing_pdf_edit_delete(make_jpeg):
    client, ws = _client()
    _bulk(client, make_jpeg, "a.jpg", "b.jpg", params={"category": "Documentación SAE"})

    listing = client.get("/documents").json()
    assert list(listing)[0] == "Contratos de Trabajo"
    assert [d["name"] for d in listing["Documentación SAE"]] == ["b.pdf", "a.pdf"]
    assert client.get("/documents", params={"category": "Documentación SAE"}).json().keys() == {"Documentación SAE"}

    doc_id = ws.documents[0].id
    r = client.get(f"/documents/{doc_id}/pdf")
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/pdf"
    assert r.content.startswith(b"%PDF")

    assert client.get(f"/documents/{doc_id}").json()["image_url"].startswith("data:image/jpeg")

    r = client.patch(f"/documents/{doc_id}", json={"name": "Alta SAE.pdf"})
    assert r.json()["name"] == "Alta SAE.pdf"
    assert r.json()["expiry_date"] == "2030-01-01"

    r = client.patch(f"/documents/{doc_id}", json={"expiry_date": None})
    assert r.json()["expiry_date"] is None

    assert client.delete(f"/documents/{doc_id}").status_code == 200
    assert client.delete(f"/documents/{doc_id}").status_code == 404
    assert client.get("/documents/nope/pdf").status_code == 404


def test_sign_contract(make_jpeg, signature):
    client, ws = _client()
    _bulk(client, make_jpeg, "contrato.jpg", "otro.jpg")
    original = next(d for d in ws.documents if d.name == "contrato.pdf")

    r = client.post(
        f"/documents/{original.id}/sign",
        files={"signature": ("firma.png", signature, "image/png")},
        data={"x": "0.9", "y": "0.95"},
    )
    assert r.status_code == 200
    signed = r.json()
    assert signed["name"] == "contrato_FIRMADO.pdf"
    assert signed["is_signed"] is True
    assert len(ws.documents) == 3

    r = client.post(
        f"/documents/{original.id}/sign",
        files={"signature": ("firma.png", signature, "image/png")},
        data={"x": "1.5", "y": "0.5"},
    )
    assert r.status_code == 422


def test_sign_refusals(make_jpeg, signature):
    client, ws = _client(category="Administrativa")
    _bulk(client, make_jpeg, "a.jpg", "b.jpg")
    doc_id = ws.documents[0].id

    r = client.post(f"/documents/{doc_id}/sign", files={"signature": ("firma.png", signature, "image/png")})
    assert r.status_code == 409
    r = client.post("/documents/nope/sign", files={"signature": ("firma.png", signature, "image/png")})
    assert r.status_code == 404


def test_checklist_and_toggle():
    client, _ = _client()
    j = client.get("/checklist").json()
    assert j["total"] == 6
    assert j["satisfied"] == 0

    j = client.post("/checklist/toggle", json={"label": "Certificado Inscripción REA"}).json()
    assert j["satisfied"] == 1
    assert client.post("/checklist/toggle", json={"label": "Inventado"}).status_code == 404


def test_appointments_workers_reminders():
    client, _ = _client()

    r = client.post("/appointments", json={"category": "Formación de Trabajadores", "worker_name": "Ana"})
    assert r.json() == {"created": False}
    r = client.post(
        "/appointments",
        json={"category": "Formación de Trabajadores", "worker_name": "Ana", "date": "2099-05-01"},
    )
    assert r.json()["created"] is True
    assert r.json()["document"]["name"] == "Cita PRL 20h - Ana"

    r = client.post(
        "/workers",
        json={
            "first_name": "Luis",
            "last_name": "Martín",
            "prl_appointment": {"date": "2099-06-03", "time": "09:00"},
            "medical_appointment": {"date": "2099-06-05"},
        },
    )
    assert r.status_code == 200
    worker_id = r.json()["worker"]["id"]
    assert [d["name"] for d in r.json()["documents"]] == ["Cita PRL - Luis Martín", "Cita Médica - Luis Martín"]

    reminders = client.get("/reminders?today=2099-01-01").json()
    assert [(x["type"], x["worker"]) for x in reminders] == [("PRL", "Luis Martín"), ("MED", "Luis Martín")]

    assert client.get("/workers/pending", params={"category": "Reconocimientos Médicos"}).json() == []

    assert client.delete(f"/workers/{worker_id}").json() == {"ok": True}
    assert client.get("/reminders?today=2099-01-01").json() == []


def test_pending_workers_needs_a_known_category():
    client, _ = _client()
    assert client.get("/workers/pending", params={"category": ""}).status_code == 422
    assert client.get("/workers/pending", params={"category": "Facturas"}).status_code == 422
    assert client.get("/workers/pending").status_code == 422
    r = client.get("/workers/pending", params={"category": "Formación de Trabajadores"})
    assert r.status_code == 200
    assert r.json() == []
