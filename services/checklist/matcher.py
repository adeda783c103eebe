from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple

from services.documents.models import DocCategory, DocumentRecord

SUBCONTRACTOR_REQUIREMENTS: Tuple[str, ...] = (
    "Adhesión Plan Seguridad y Salud",
    "Certificado Inscripción REA",
    "Seguro Responsabilidad Civil (RC) + Recibo",
    "TC1/TC2 (Seguridad Social)",
    "Certificado Corriente Pagos (Hacienda/SS)",
    "Evaluación de Riesgos Específica",
)

NAME_PROBE_LEN = 10


@dataclass(frozen=True)
class RequirementStatus:
    label: str
    satisfied: bool
    manually_checked: bool
    matched_document_id: Optional[str]


@dataclass(frozen=True)
class ChecklistReport:
    items: Tuple[RequirementStatus, ...]

    @property
    def satisfied_count(self) -> int:
        return sum(1 for i in self.items if i.satisfied)

    @property
    def total_count(self) -> int:
        return len(self.items)

    def as_map(self) -> Dict[str, bool]:
        return {i.label: i.satisfied for i in self.items}


def find_matching_document(label: str, documents: Sequence[DocumentRecord]) -> Optional[DocumentRecord]:
    """
    Heuristic: the summary mentions the whole label, or the name mentions the
    first NAME_PROBE_LEN characters of it (both case-insensitive).
    """
    full_probe = label.lower()
    name_probe = label[:NAME_PROBE_LEN].lower()
    for d in documents:
        if d.summary and full_probe in d.summary.lower():
            return d
        if name_probe in (d.name or "").lower():
            return d
    return None


def match_requirements(
    documents: Sequence[DocumentRecord],
    manual_checks: Optional[Mapping[str, bool]] = None,
    requirements: Sequence[str] = SUBCONTRACTOR_REQUIREMENTS,
) -> ChecklistReport:
    """
    A requirement is satisfied when it was ticked by hand or a subcontractor
    document matches it. A manual tick is never overridden by the heuristic.
    """
    manual_checks = manual_checks or {}
    candidates = [d for d in documents if d.category == DocCategory.SUBCONTRATAS]

    items = []
    for label in requirements:
        manual = bool(manual_checks.get(label, False))
        match = find_matching_document(label, candidates)
        items.append(RequirementStatus(
            label=label,
            satisfied=manual or match is not None,
            manually_checked=manual,
            matched_document_id=match.id if match is not None else None,
        ))
    return ChecklistReport(items=tuple(items))


def toggle_check(manual_checks: Mapping[str, bool], label: str) -> Dict[str, bool]:
    """New manual-check map with `label` flipped."""
    out = dict(manual_checks)
    out[label] = not out.get(label, False)
    return out
