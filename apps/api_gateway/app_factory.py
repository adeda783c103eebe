# apps/api_gateway/app_factory.py
from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import Any, Dict, List, Optional
from uuid import uuid4

from fastapi import FastAPI, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import RedirectResponse, Response

from apps.api_gateway.schemas import (
    AppointmentIn,
    DocumentEditIn,
    RequirementToggleIn,
    ReviewEditsIn,
    WorkerIn,
)
from services.documents.appointments import ManualAppointmentEntry
from services.documents.collection import is_expired
from services.documents.models import (
    Appointment,
    DocCategory,
    DocumentRecord,
    PendingIntakeDraft,
    Worker,
    is_signable,
)
from services.pipeline import (
    CaptureError,
    DocumentNotFoundError,
    DocumentWorkspace,
    DraftNotFoundError,
    IntakeContext,
    IntakeError,
    RenderError,
    ReviewEdits,
    SigningNotAllowedError,
    UploadedFile,
)


def _category_or_422(value: Optional[str]) -> Optional[DocCategory]:
    if value is None or value == "":
        return None
    category = DocCategory.parse(value)
    if category is None:
        raise HTTPException(status_code=422, detail=f"unknown category: {value}")
    return category


def _http_error(e: IntakeError) -> HTTPException:
    if isinstance(e, CaptureError):
        return HTTPException(status_code=400, detail="Could not decode image.")
    if isinstance(e, (DocumentNotFoundError, DraftNotFoundError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, SigningNotAllowedError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, RenderError):
        return HTTPException(status_code=500, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def document_json(doc: DocumentRecord, include_image: bool = False) -> Dict[str, Any]:
    out = doc.to_dict()
    if not include_image:
        out.pop("image_url", None)
    out["expired"] = is_expired(doc)
    out["can_sign"] = is_signable(doc)
    return out


def draft_json(draft: PendingIntakeDraft) -> Dict[str, Any]:
    analysis = draft.analysis
    return {
        "draft_id": draft.id,
        "original_name": draft.original_name,
        "name": draft.name,
        "category": draft.category.value,
        "worker_name": draft.worker_name,
        "expiry_date": draft.expiry_date,
        "quincena": draft.quincena,
        "thumbnail_url": draft.thumbnail.data_uri,
        "pdf_url": draft.pdf_url,
        "analysis": {
            "category": analysis.category.value if analysis.category else None,
            "summary": analysis.summary,
            "expiry_date": analysis.expiry_date,
            "worker_name": analysis.worker_name,
            "is_valid": analysis.is_valid,
        },
    }


def _appointment(slot) -> Optional[Appointment]:
    if slot is None:
        return None
    return Appointment(date=slot.date, time=slot.time, location=slot.location)


def create_app(*, workspace: DocumentWorkspace) -> FastAPI:
    app = FastAPI(title="PROFEA Site Documents API")
    app.state.workspace = workspace

    @app.get("/")
    async def root():
        return RedirectResponse(url="/docs")

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    # --- intake ---

    @app.post("/intake")
    async def intake(
        files: List[UploadFile] = File(...),
        category: Optional[str] = Query(None),
        worker: Optional[str] = Query(None),
        quincena: Optional[str] = Query(None),
    ):
        ctx = IntakeContext(
            category_override=_category_or_422(category),
            worker_override=worker or None,
            quincena=quincena or None,
        )
        uploads = [UploadedFile(filename=f.filename or "documento", content=await f.read()) for f in files]

        try:
            outcome = await workspace.upload(uploads, ctx)
        except IntakeError as e:
            raise _http_error(e) from e

        if outcome.draft is not None:
            return {"mode": "review", "draft": draft_json(outcome.draft)}

        results = [{"filename": f.filename, "ok": False, "error": f.error} for f in outcome.failures]
        results = [{"filename": d.name, "ok": True, "document": document_json(d)} for d in outcome.filed] + results
        return {"mode": "bulk", "count": len(uploads), "filed": len(outcome.filed), "results": results}

    @app.get("/drafts/{draft_id}")
    def get_draft(draft_id: str):
        try:
            return draft_json(workspace.get_draft(draft_id))
        except IntakeError as e:
            raise _http_error(e) from e

    @app.post("/drafts/{draft_id}/confirm")
    def confirm_draft(draft_id: str, body: Optional[ReviewEditsIn] = None):
        body = body or ReviewEditsIn()
        edits = ReviewEdits(
            name=body.name,
            category=_category_or_422(body.category),
            worker_name=body.worker_name,
            expiry_date=body.expiry_date,
            quincena=body.quincena,
        )
        try:
            doc = workspace.confirm_draft(draft_id, edits)
        except IntakeError as e:
            raise _http_error(e) from e
        return document_json(doc)

    @app.delete("/drafts/{draft_id}")
    def cancel_draft(draft_id: str):
        workspace.cancel_draft(draft_id)
        return {"ok": True}

    # --- documents ---

    @app.get("/documents")
    def list_documents(quincena: Optional[str] = Query(None), category: Optional[str] = Query(None)):
        grouped = workspace.listing(quincena)
        wanted = _category_or_422(category)
        return {
            c.value: [document_json(d) for d in docs]
            for c, docs in grouped.items()
            if wanted is None or c == wanted
        }

    @app.get("/documents/{doc_id}")
    def get_document(doc_id: str):
        try:
            return document_json(workspace.get_document(doc_id), include_image=True)
        except IntakeError as e:
            raise _http_error(e) from e

    @app.get("/documents/{doc_id}/pdf")
    def get_document_pdf(doc_id: str):
        try:
            doc = workspace.get_document(doc_id)
        except IntakeError as e:
            raise _http_error(e) from e
        file_url = getattr(doc, "file_url", None)
        if not file_url:
            raise HTTPException(status_code=404, detail="document has no PDF")
        blob = workspace.pipeline.storage.get_bytes(uri=file_url)
        return Response(
            content=blob,
            media_type="application/pdf",
            headers={"Content-Disposition": f'inline; filename="{doc.name}"'},
        )

    @app.patch("/documents/{doc_id}")
    def edit_document(doc_id: str, body: DocumentEditIn):
        kwargs: Dict[str, Any] = {"name": body.name}
        if "expiry_date" in body.model_fields_set:
            kwargs["expiry_date"] = body.expiry_date
        try:
            return document_json(workspace.edit_document(doc_id, **kwargs))
        except IntakeError as e:
            raise _http_error(e) from e

    @app.delete("/documents/{doc_id}")
    def delete_document(doc_id: str):
        try:
            workspace.delete_document(doc_id)
        except IntakeError as e:
            raise _http_error(e) from e
        return {"ok": True}

    @app.post("/documents/{doc_id}/sign")
    async def sign_document(
        doc_id: str,
        signature: UploadFile = File(...),
        x: Optional[float] = Form(None),
        y: Optional[float] = Form(None),
        discard_original: bool = Form(False),
    ):
        position = None
        if x is not None and y is not None:
            if not (0.0 <= x <= 1.0 and 0.0 <= y <= 1.0):
                raise HTTPException(status_code=422, detail="signature position must be within [0, 1]")
            position = (x, y)

        try:
            signed = await workspace.sign_document(
                doc_id,
                await signature.read(),
                position,
                discard_original=discard_original,
            )
        except IntakeError as e:
            raise _http_error(e) from e
        return document_json(signed)

    @app.post("/appointments")
    def add_appointment(body: AppointmentIn):
        category = _category_or_422(body.category)
        if category is None:
            raise HTTPException(status_code=422, detail="category is required")
        entry = ManualAppointmentEntry(
            category=category,
            worker_name=body.worker_name,
            date=body.date,
            location=body.location,
            quincena=body.quincena,
        )
        doc = workspace.add_appointment(entry)
        if doc is None:
            return {"created": False}
        return {"created": True, "document": document_json(doc)}

    # --- workers, reminders, checklist ---

    @app.post("/workers")
    def add_worker(body: WorkerIn):
        worker = Worker(
            id=uuid4().hex,
            first_name=body.first_name,
            last_name=body.last_name,
            dni=body.dni,
            quincena=body.quincena,
            has_prl_20h=body.has_prl_20h,
            prl_appointment=None if body.has_prl_20h else _appointment(body.prl_appointment),
            medical_appointment=_appointment(body.medical_appointment),
            offer_number=body.offer_number,
            birth_date=body.birth_date,
            contract_start=body.contract_start,
            contract_end=body.contract_end,
            phone=body.phone,
            shoe_size=body.shoe_size,
        )
        auto_docs = workspace.add_worker(worker)
        return {"worker": asdict(worker), "documents": [document_json(d) for d in auto_docs]}

    @app.delete("/workers/{worker_id}")
    def remove_worker(worker_id: str):
        workspace.remove_worker(worker_id)
        return {"ok": True}

    @app.get("/workers/pending")
    def pending(category: str = Query(...)):
        wanted = _category_or_422(category)
        if wanted is None:
            raise HTTPException(status_code=422, detail="category is required")
        return [asdict(w) for w in workspace.pending_workers(wanted)]

    @app.get("/reminders")
    def reminders(today: Optional[date] = Query(None)):
        return [
            {**asdict(r), "type": r.type.value}
            for r in workspace.reminders(today)
        ]

    @app.get("/checklist")
    def checklist():
        report = workspace.checklist()
        return {
            "satisfied": report.satisfied_count,
            "total": report.total_count,
            "items": [asdict(i) for i in report.items],
        }

    @app.post("/checklist/toggle")
    def toggle_requirement(body: RequirementToggleIn):
        try:
            workspace.toggle_requirement(body.label)
        except ValueError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        return checklist()

    return app
