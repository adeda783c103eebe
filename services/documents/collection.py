# services/documents/collection.py
"""
Copy-on-write helpers over a project's ordered document collection.

Every function takes a snapshot (any sequence) and returns a brand-new tuple;
nothing here mutates its input.
"""
from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from services.documents.models import (
    CATEGORY_DISPLAY_ORDER,
    DocCategory,
    DocumentRecord,
    parse_iso_date,
)

Documents = Tuple[DocumentRecord, ...]


def add_document(documents: Sequence[DocumentRecord], doc: DocumentRecord) -> Documents:
    # newest first
    return (doc, *documents)


def add_documents(documents: Sequence[DocumentRecord], docs: Iterable[DocumentRecord]) -> Documents:
    return (*docs, *documents)


def replace_document(documents: Sequence[DocumentRecord], doc: DocumentRecord) -> Documents:
    return tuple(doc if d.id == doc.id else d for d in documents)


def remove_document(documents: Sequence[DocumentRecord], doc_id: str) -> Documents:
    return tuple(d for d in documents if d.id != doc_id)


def find_document(documents: Sequence[DocumentRecord], doc_id: str) -> Optional[DocumentRecord]:
    for d in documents:
        if d.id == doc_id:
            return d
    return None


def filter_by_period(documents: Sequence[DocumentRecord], quincena: Optional[str]) -> Documents:
    if not quincena:
        return tuple(documents)
    return tuple(d for d in documents if d.quincena == quincena)


def in_category(documents: Sequence[DocumentRecord], category: DocCategory) -> Documents:
    return tuple(d for d in documents if d.category == category)


def group_by_category(
    documents: Sequence[DocumentRecord],
    quincena: Optional[str] = None,
) -> Dict[DocCategory, List[DocumentRecord]]:
    """
    Category -> documents, in display order, every category present (possibly empty).
    Within a category documents are ordered by period label.
    """
    visible = filter_by_period(documents, quincena)
    out: Dict[DocCategory, List[DocumentRecord]] = {}
    for category in CATEGORY_DISPLAY_ORDER:
        docs = [d for d in visible if d.category == category]
        docs.sort(key=lambda d: d.quincena or "")
        out[category] = docs
    return out


def is_expired(doc: DocumentRecord, today: Optional[date] = None) -> bool:
    expiry = parse_iso_date(doc.expiry_date)
    if expiry is None:
        return False
    return expiry < (today or date.today())
