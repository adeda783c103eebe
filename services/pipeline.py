# services/pipeline.py
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

from services.checklist.matcher import ChecklistReport, SUBCONTRACTOR_REQUIREMENTS, match_requirements, toggle_check
from services.doc_classifier.classifier import ClassificationAdapter, resolve_category
from services.documents import collection
from services.documents.appointments import (
    ManualAppointmentEntry,
    appointments_for_new_worker,
    build_manual_appointment,
)
from services.documents.models import (
    AppointmentDocument,
    Bitmap,
    DocCategory,
    DocumentRecord,
    FileDocument,
    PendingIntakeDraft,
    Reminder,
    Worker,
    ClassificationResult,
    is_signable,
)
from services.ingestion.storage import Storage, StoredObject
from services.preprocessing.normalize import ImageDecodeError, normalize_image
from services.reminders.deriver import derive_reminders, pending_workers
from services.rendering.compositor import CompositionError, PageLayout, compose_pdf

logger = logging.getLogger(__name__)

PDF_SUFFIX = ".pdf"
SIGNED_SUFFIX = "_FIRMADO"
_EXT_RE = re.compile(r"\.[^/.]+$")
_UNSET = object()


class IntakeError(RuntimeError):
    """Fatal failure of a single intake or signing operation; nothing was filed."""


class CaptureError(IntakeError):
    """The raw capture could not be decoded."""


class RenderError(IntakeError):
    """PDF synthesis failed."""


class DocumentNotFoundError(IntakeError):
    pass


class DraftNotFoundError(IntakeError):
    pass


class SigningNotAllowedError(IntakeError):
    pass


@dataclass(frozen=True)
class PipelineConfig:
    archival_max_width: int = 1024
    archival_quality: float = 0.6
    thumbnail_max_width: int = 150
    thumbnail_quality: float = 0.5
    layout: PageLayout = PageLayout()


@dataclass(frozen=True)
class UploadedFile:
    filename: str
    content: bytes


@dataclass(frozen=True)
class IntakeContext:
    """What the entry point knows before the file is read."""

    category_override: Optional[DocCategory] = None
    worker_override: Optional[str] = None
    quincena: Optional[str] = None


# --- stage results ---

@dataclass(frozen=True)
class Captured:
    filename: str
    archival: Bitmap
    thumbnail: Bitmap


@dataclass(frozen=True)
class Classified:
    captured: Captured
    analysis: ClassificationResult


@dataclass(frozen=True)
class Composited:
    classified: Classified
    pdf: StoredObject

    @property
    def captured(self) -> Captured:
        return self.classified.captured

    @property
    def analysis(self) -> ClassificationResult:
        return self.classified.analysis


@dataclass(frozen=True)
class ReviewEdits:
    """Human corrections applied on confirm; None keeps the pre-filled value."""

    name: Optional[str] = None
    category: Optional[DocCategory] = None
    worker_name: Optional[str] = None
    expiry_date: Optional[str] = None
    quincena: Optional[str] = None


@dataclass(frozen=True)
class IntakeFailure:
    filename: str
    error: str


@dataclass(frozen=True)
class UploadOutcome:
    draft: Optional[PendingIntakeDraft] = None
    filed: Tuple[FileDocument, ...] = ()
    failures: Tuple[IntakeFailure, ...] = ()

    @property
    def needs_review(self) -> bool:
        return self.draft is not None


@dataclass(frozen=True)
class WorkspaceSnapshot:
    documents: Tuple[DocumentRecord, ...]
    workers: Tuple[Worker, ...]


def file_stem(filename: str) -> str:
    return _EXT_RE.sub("", filename or "")


def signed_name(name: str) -> str:
    return name.replace(PDF_SUFFIX, "", 1) + SIGNED_SUFFIX + PDF_SUFFIX


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid4().hex


class IntakePipeline:
    """
    Stage transitions for one capture:
      capture -> classify -> composite -> (open_review -> confirm) | file
    and the second pass sign(FileDocument) -> FileDocument.
    Each async stage runs its blocking work off the event loop and is awaited
    before the next one starts.
    """

    def __init__(
        self,
        *,
        classifier: ClassificationAdapter,
        storage: Storage,
        config: Optional[PipelineConfig] = None,
    ) -> None:
        self.classifier = classifier
        self.storage = storage
        self.config = config or PipelineConfig()

    async def capture(self, upload: UploadedFile) -> Captured:
        cfg = self.config
        try:
            archival = await asyncio.to_thread(
                normalize_image, upload.content, cfg.archival_max_width, cfg.archival_quality
            )
            thumbnail = await asyncio.to_thread(
                normalize_image, upload.content, cfg.thumbnail_max_width, cfg.thumbnail_quality
            )
        except ImageDecodeError as e:
            raise CaptureError(f"{upload.filename}: {e}") from e
        return Captured(filename=upload.filename, archival=archival, thumbnail=thumbnail)

    async def classify(self, captured: Captured) -> Classified:
        analysis = await asyncio.to_thread(self.classifier.analyze, captured.archival.payload)
        return Classified(captured=captured, analysis=analysis)

    async def composite(self, classified: Classified) -> Composited:
        pdf = await self._render(classified.captured.archival.data_uri)
        return Composited(classified=classified, pdf=pdf)

    async def process(self, upload: UploadedFile) -> Composited:
        captured = await self.capture(upload)
        classified = await self.classify(captured)
        return await self.composite(classified)

    async def _render(self, page_data_uri: str, **kwargs) -> StoredObject:
        try:
            blob = await asyncio.to_thread(compose_pdf, page_data_uri, layout=self.config.layout, **kwargs)
        except CompositionError as e:
            raise RenderError(str(e)) from e
        return self.storage.put_bytes(blob_id=_new_id(), blob=blob)

    def open_review(self, composited: Composited, ctx: IntakeContext) -> PendingIntakeDraft:
        analysis = composited.analysis
        return PendingIntakeDraft(
            id=_new_id(),
            archival=composited.captured.archival,
            thumbnail=composited.captured.thumbnail,
            pdf_url=composited.pdf.uri,
            original_name=file_stem(composited.captured.filename),
            analysis=analysis,
            name=file_stem(composited.captured.filename),
            category=resolve_category(ctx.category_override, analysis),
            worker_name=ctx.worker_override or analysis.worker_name or "",
            expiry_date=analysis.expiry_date or "",
            quincena=ctx.quincena or "",
        )

    def confirm(self, draft: PendingIntakeDraft, edits: Optional[ReviewEdits] = None) -> FileDocument:
        edits = edits or ReviewEdits()

        def pick(edited, prefilled):
            return prefilled if edited is None else edited

        return FileDocument(
            id=_new_id(),
            name=pick(edits.name, draft.name) + PDF_SUFFIX,
            category=pick(edits.category, draft.category),
            upload_date=_now_iso(),
            image_url=draft.archival.data_uri,
            thumbnail_url=draft.thumbnail.data_uri,
            file_url=draft.pdf_url,
            summary=draft.analysis.summary,
            expiry_date=pick(edits.expiry_date, draft.expiry_date) or None,
            worker_name=pick(edits.worker_name, draft.worker_name) or None,
            is_valid=draft.analysis.is_valid,
            quincena=pick(edits.quincena, draft.quincena) or None,
            is_signed=False,
        )

    def file(self, composited: Composited, ctx: IntakeContext) -> FileDocument:
        analysis = composited.analysis
        captured = composited.captured
        return FileDocument(
            id=_new_id(),
            name=file_stem(captured.filename) + PDF_SUFFIX,
            category=resolve_category(ctx.category_override, analysis),
            upload_date=_now_iso(),
            image_url=captured.archival.data_uri,
            thumbnail_url=captured.thumbnail.data_uri,
            file_url=composited.pdf.uri,
            summary=analysis.summary,
            expiry_date=analysis.expiry_date,
            worker_name=ctx.worker_override or analysis.worker_name,
            is_valid=analysis.is_valid,
            quincena=ctx.quincena or None,
            is_signed=False,
        )

    def discard(self, draft: PendingIntakeDraft) -> None:
        self.storage.discard(uri=draft.pdf_url)

    async def sign(
        self,
        doc: DocumentRecord,
        signature_png: bytes,
        position: Optional[Tuple[float, float]] = None,
        signed_on: Optional[date] = None,
    ) -> FileDocument:
        """Filed -> Signed: a new record with a fresh id; `doc` itself is left untouched."""
        if not is_signable(doc):
            raise SigningNotAllowedError(
                f"document {doc.id} ({doc.category.value}, {doc.record_type}) cannot be signed"
            )
        if not signature_png:
            raise SigningNotAllowedError("empty signature")

        new_id = _new_id()
        sig = self.storage.put_bytes(blob_id=new_id, blob=signature_png, name="signature.png")
        try:
            # always re-render from the unsigned archival bitmap
            pdf = await self._render(
                doc.image_url,
                signature=signature_png,
                position=position,
                signed_on=signed_on,
            )
        except (IntakeError, OSError):
            self.storage.discard(uri=sig.uri)
            raise
        return replace(
            doc,
            id=new_id,
            name=signed_name(doc.name),
            file_url=pdf.uri,
            signature_url=sig.uri,
            is_signed=True,
        )


OnUpdate = Callable[[WorkspaceSnapshot], None]


class DocumentWorkspace:
    """
    The one owner of a project's document and worker collections for the session.
    Every mutation builds a new tuple, swaps it in and reports the snapshot
    through `on_update`.
    """

    def __init__(
        self,
        *,
        pipeline: IntakePipeline,
        documents: Sequence[DocumentRecord] = (),
        workers: Sequence[Worker] = (),
        on_update: Optional[OnUpdate] = None,
    ) -> None:
        self.pipeline = pipeline
        self._documents: Tuple[DocumentRecord, ...] = tuple(documents)
        self._workers: Tuple[Worker, ...] = tuple(workers)
        self._drafts: Dict[str, PendingIntakeDraft] = {}
        self._manual_checks: Dict[str, bool] = {}
        self.on_update = on_update

    @property
    def documents(self) -> Tuple[DocumentRecord, ...]:
        return self._documents

    @property
    def workers(self) -> Tuple[Worker, ...]:
        return self._workers

    @property
    def drafts(self) -> Mapping[str, PendingIntakeDraft]:
        return dict(self._drafts)

    def snapshot(self) -> WorkspaceSnapshot:
        return WorkspaceSnapshot(documents=self._documents, workers=self._workers)

    def _commit(
        self,
        documents: Optional[Tuple[DocumentRecord, ...]] = None,
        workers: Optional[Tuple[Worker, ...]] = None,
    ) -> None:
        if documents is not None:
            self._documents = documents
        if workers is not None:
            self._workers = workers
        if self.on_update is not None:
            self.on_update(self.snapshot())

    def get_document(self, doc_id: str) -> DocumentRecord:
        doc = collection.find_document(self._documents, doc_id)
        if doc is None:
            raise DocumentNotFoundError(f"document not found: {doc_id}")
        return doc

    def get_draft(self, draft_id: str) -> PendingIntakeDraft:
        try:
            return self._drafts[draft_id]
        except KeyError:
            raise DraftNotFoundError(f"draft not found: {draft_id}") from None

    # --- intake ---

    async def upload(
        self,
        files: Sequence[UploadedFile],
        ctx: Optional[IntakeContext] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> UploadOutcome:
        """
        One file -> PendingReview draft (raises IntakeError on a fatal stage failure).
        Several files -> each one filed in turn, failures collected per file.
        """
        if not files:
            raise ValueError("no files to upload")
        ctx = ctx or IntakeContext()
        total = len(files)

        if total == 1:
            composited = await self.pipeline.process(files[0])
            draft = self.pipeline.open_review(composited, ctx)
            self._drafts[draft.id] = draft
            if on_progress is not None:
                on_progress(1, 1)
            return UploadOutcome(draft=draft)

        filed: List[FileDocument] = []
        failures: List[IntakeFailure] = []
        for i, f in enumerate(files):
            try:
                composited = await self.pipeline.process(f)
            except IntakeError as e:
                logger.error("Bulk intake failed for %s: %s", f.filename, e)
                failures.append(IntakeFailure(filename=f.filename, error=str(e)))
            else:
                doc = self.pipeline.file(composited, ctx)
                self._commit(documents=collection.add_document(self._documents, doc))
                filed.append(doc)
                logger.info("Filed %s under %s", doc.name, doc.category.value)
            if on_progress is not None:
                on_progress(i + 1, total)

        return UploadOutcome(filed=tuple(filed), failures=tuple(failures))

    def confirm_draft(self, draft_id: str, edits: Optional[ReviewEdits] = None) -> FileDocument:
        draft = self.get_draft(draft_id)
        doc = self.pipeline.confirm(draft, edits)
        del self._drafts[draft_id]
        self._commit(documents=collection.add_document(self._documents, doc))
        logger.info("Filed reviewed %s under %s", doc.name, doc.category.value)
        return doc

    def cancel_draft(self, draft_id: str) -> None:
        draft = self._drafts.pop(draft_id, None)
        if draft is not None:
            self.pipeline.discard(draft)

    def add_appointment(self, entry: ManualAppointmentEntry) -> Optional[AppointmentDocument]:
        doc = build_manual_appointment(entry)
        if doc is None:
            return None
        self._commit(documents=collection.add_document(self._documents, doc))
        return doc

    # --- filed documents ---

    def edit_document(self, doc_id: str, *, name: Optional[str] = None, expiry_date=_UNSET) -> DocumentRecord:
        """Rename and/or change the expiry date; payloads, category and type are kept."""
        doc = self.get_document(doc_id)
        changes = {}
        if name is not None and name.strip():
            changes["name"] = name.strip()
        if expiry_date is not _UNSET:
            changes["expiry_date"] = expiry_date or None
        updated = replace(doc, **changes)
        self._commit(documents=collection.replace_document(self._documents, updated))
        return updated

    def delete_document(self, doc_id: str) -> None:
        self.get_document(doc_id)
        self._commit(documents=collection.remove_document(self._documents, doc_id))

    def can_sign(self, doc_id: str) -> bool:
        return is_signable(self.get_document(doc_id))

    async def sign_document(
        self,
        doc_id: str,
        signature_png: bytes,
        position: Optional[Tuple[float, float]] = None,
        *,
        discard_original: bool = False,
        signed_on: Optional[date] = None,
    ) -> FileDocument:
        doc = self.get_document(doc_id)
        signed = await self.pipeline.sign(doc, signature_png, position, signed_on)
        docs = collection.add_document(self._documents, signed)
        if discard_original:
            docs = collection.remove_document(docs, doc_id)
        self._commit(documents=docs)
        logger.info("Signed %s as %s", doc.name, signed.name)
        return signed

    def listing(self, quincena: Optional[str] = None) -> Dict[DocCategory, List[DocumentRecord]]:
        return collection.group_by_category(self._documents, quincena)

    # --- workers ---

    def add_worker(self, worker: Worker) -> List[AppointmentDocument]:
        auto_docs = appointments_for_new_worker(worker)
        self._commit(
            documents=collection.add_documents(self._documents, auto_docs),
            workers=(worker, *self._workers),
        )
        return auto_docs

    def remove_worker(self, worker_id: str) -> None:
        # historical documents stay
        self._commit(workers=tuple(w for w in self._workers if w.id != worker_id))

    def reminders(self, today: Optional[date] = None) -> List[Reminder]:
        return derive_reminders(self._workers, today)

    def pending_workers(self, category: DocCategory) -> List[Worker]:
        return pending_workers(category, self._workers, self._documents)

    # --- subcontractor checklist ---

    def checklist(self) -> ChecklistReport:
        return match_requirements(self._documents, self._manual_checks)

    def toggle_requirement(self, label: str) -> ChecklistReport:
        if label not in SUBCONTRACTOR_REQUIREMENTS:
            raise ValueError(f"unknown requirement: {label}")
        self._manual_checks = toggle_check(self._manual_checks, label)
        return self.checklist()
