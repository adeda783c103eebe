# apps/review_ui/adapters.py
import asyncio
import logging
from datetime import date
from typing import Dict, List, Optional, Sequence

from apps.common.settings import AppSettings
from apps.common.workspace_loader import build_workspace
from apps.review_ui.domain import DocumentEditForm, ReviewForm, SignatureRequest
from services.documents.appointments import ManualAppointmentEntry
from services.documents.models import (
    AppointmentDocument,
    DocCategory,
    DocumentRecord,
    FileDocument,
    PendingIntakeDraft,
    Reminder,
    Worker,
)
from services.checklist.matcher import ChecklistReport
from services.pipeline import DocumentWorkspace, IntakeContext, UploadedFile, UploadOutcome, WorkspaceSnapshot

logger = logging.getLogger(__name__)


class SessionWorkspaceAdapter:
    """
    Binds one browser session to one DocumentWorkspace.
    Streamlit callbacks are synchronous, so the async stages are driven with
    asyncio.run; `revision` bumps on every committed mutation.
    """

    def __init__(self, settings: AppSettings, offline: bool = False):
        self.revision = 0
        self.workspace: DocumentWorkspace = build_workspace(settings, offline=offline, on_update=self._on_update)

    def _on_update(self, snapshot: WorkspaceSnapshot) -> None:
        self.revision += 1
        logger.debug("Workspace revision %d: %d documents", self.revision, len(snapshot.documents))

    # --- intake ---

    def upload(
        self,
        files: Sequence[UploadedFile],
        ctx: IntakeContext,
        on_progress=None,
    ) -> UploadOutcome:
        return asyncio.run(self.workspace.upload(files, ctx, on_progress))

    def draft(self, draft_id: str) -> PendingIntakeDraft:
        return self.workspace.get_draft(draft_id)

    def save_review(self, form: ReviewForm) -> FileDocument:
        return self.workspace.confirm_draft(form.draft_id, form.to_edits())

    def cancel_review(self, draft_id: str) -> None:
        self.workspace.cancel_draft(draft_id)

    # --- documents ---

    def listing(self, quincena: Optional[str]) -> Dict[DocCategory, List[DocumentRecord]]:
        return self.workspace.listing(quincena)

    def pdf_bytes(self, doc: FileDocument) -> bytes:
        return self.workspace.pipeline.storage.get_bytes(uri=doc.file_url)

    def edit(self, form: DocumentEditForm) -> DocumentRecord:
        return self.workspace.edit_document(form.doc_id, **form.to_changes())

    def delete(self, doc_id: str) -> None:
        self.workspace.delete_document(doc_id)

    def sign(self, request: SignatureRequest) -> FileDocument:
        return asyncio.run(
            self.workspace.sign_document(
                request.doc_id,
                request.signature_png,
                request.position,
                discard_original=request.discard_original,
            )
        )

    def add_appointment(self, entry: ManualAppointmentEntry) -> Optional[AppointmentDocument]:
        return self.workspace.add_appointment(entry)

    # --- workers / reminders / checklist ---

    def workers(self) -> Sequence[Worker]:
        return self.workspace.workers

    def add_worker(self, worker: Worker) -> List[AppointmentDocument]:
        return self.workspace.add_worker(worker)

    def remove_worker(self, worker_id: str) -> None:
        self.workspace.remove_worker(worker_id)

    def pending(self, category: DocCategory) -> List[Worker]:
        return self.workspace.pending_workers(category)

    def reminders(self, today: Optional[date] = None) -> List[Reminder]:
        return self.workspace.reminders(today)

    def checklist(self) -> ChecklistReport:
        return self.workspace.checklist()

    def toggle(self, label: str) -> ChecklistReport:
        return self.workspace.toggle_requirement(label)
