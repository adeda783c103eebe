# apps/review_ui/domain.py
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from services.documents.models import (
    CATEGORY_DISPLAY_ORDER,
    DocCategory,
    DocumentRecord,
    PendingIntakeDraft,
    parse_iso_date,
)
from services.pipeline import ReviewEdits

CATEGORY_LABELS: List[str] = [c.value for c in CATEGORY_DISPLAY_ORDER]


@dataclass
class ReviewForm:
    draft_id: str
    name: str
    category: str
    worker_name: str
    expiry_date: Optional[date]
    quincena: str
    summary: str
    is_valid: bool

    def to_edits(self) -> ReviewEdits:
        return ReviewEdits(
            name=self.name.strip() or None,
            category=DocCategory.parse(self.category),
            worker_name=self.worker_name.strip(),
            expiry_date=self.expiry_date.isoformat() if self.expiry_date else "",
            quincena=self.quincena,
        )


def form_from_draft(draft: PendingIntakeDraft) -> ReviewForm:
    return ReviewForm(
        draft_id=draft.id,
        name=draft.name,
        category=draft.category.value,
        worker_name=draft.worker_name,
        expiry_date=parse_iso_date(draft.expiry_date),
        quincena=draft.quincena,
        summary=draft.analysis.summary,
        is_valid=draft.analysis.is_valid,
    )


@dataclass
class DocumentEditForm:
    """Filed -> Filed: only the name and the expiry date are editable."""

    doc_id: str
    name: str
    expiry_date: Optional[date]

    def to_changes(self) -> dict:
        return {
            "name": self.name.strip() or None,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
        }


def form_from_document(doc: DocumentRecord) -> DocumentEditForm:
    return DocumentEditForm(doc_id=doc.id, name=doc.name, expiry_date=parse_iso_date(doc.expiry_date))


@dataclass
class SignatureRequest:
    doc_id: str
    signature_png: bytes
    x: float = 0.9
    y: float = 0.95
    use_default_position: bool = False
    discard_original: bool = False

    @property
    def position(self):
        if self.use_default_position:
            return None
        return (self.x, self.y)
