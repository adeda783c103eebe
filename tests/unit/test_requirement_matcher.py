from __future__ import annotations

from services.checklist.matcher import (
    SUBCONTRACTOR_REQUIREMENTS,
    find_matching_document,
    match_requirements,
    toggle_check,
)
from services.documents.models import AppointmentDocument, DocCategory

RC = "Seguro Responsabilidad Civil (RC) + Recibo"
REA = "Certificado Inscripción REA"


def _doc(doc_id, name, summary="", category=DocCategory.SUBCONTRATAS):
    return AppointmentDocument(
        id=doc_id, name=name, category=category, upload_date="2024-01-01T00:00:00+00:00", summary=summary
    )


def test_name_prefix_satisfies_requirement():
    docs = [_doc("d1", "Seguro Responsabilidad Civil (RC) + Recibo.pdf")]
    report = match_requirements(docs)
    status = {i.label: i for i in report.items}
    assert status[RC].satisfied
    assert status[RC].matched_document_id == "d1"
    assert report.satisfied_count == 1


def test_unrelated_document_satisfies_nothing():
    report = match_requirements([_doc("d1", "Factura de Material.pdf", summary="Factura de material de obra")])
    assert report.satisfied_count == 0
    assert report.total_count == len(SUBCONTRACTOR_REQUIREMENTS) == 6


def test_summary_with_full_label_satisfies_requirement():
    docs = [_doc("d1", "scan01.pdf", summary="Incluye el Certificado Inscripción REA vigente")]
    assert match_requirements(docs).as_map()[REA] is True


def test_match_is_case_insensitive():
    assert find_matching_document(RC, [_doc("d1", "SEGURO RESPONSABILIDAD.pdf")]) is not None


def test_documents_outside_subcontractor_category_do_not_count():
    docs = [_doc("d1", "Seguro Responsabilidad Civil.pdf", category=DocCategory.ADMINISTRATIVA)]
    assert match_requirements(docs).as_map()[RC] is False


def test_manual_check_persists_without_documents():
    checks = toggle_check({}, REA)
    report = match_requirements([], checks)
    item = next(i for i in report.items if i.label == REA)
    assert item.satisfied and item.manually_checked
    assert item.matched_document_id is None

    # a later change to the collection leaves the tick alone
    report = match_requirements([_doc("d9", "Factura.pdf")], checks)
    assert report.as_map()[REA] is True


def test_toggle_flips_and_returns_new_map():
    first = toggle_check({}, RC)
    second = toggle_check(first, RC)
    assert first == {RC: True}
    assert second == {RC: False}


def test_aggregate_counts_matched_and_manual():
    docs = [_doc("d1", "Seguro Responsabilidad Civil (RC) + Recibo.pdf")]
    report = match_requirements(docs, {REA: True})
    assert report.satisfied_count == 2
