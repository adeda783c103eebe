from __future__ import annotations

import json
import sys

import pytest

import tools.bulk_intake as bulk_intake
from apps.common.settings import AppSettings
from apps.common.workspace_loader import build_pipeline
from services.doc_classifier.classifier import FALLBACK_SUMMARY
from services.documents.models import DocCategory
from services.ingestion.storage import MemoryStorage


def _cfg(tmp_path, **kw):
    defaults = dict(
        input_dir=tmp_path / "in",
        out_dir=tmp_path / "out",
        category=None,
        worker=None,
        quincena=None,
        max_images=None,
        offline=True,
    )
    defaults.update(kw)
    return bulk_intake.BulkConfig(**defaults)


def _seed(tmp_path, make_jpeg):
    src = tmp_path / "in" / "obra"
    src.mkdir(parents=True)
    (src / "acta.jpg").write_bytes(make_jpeg())
    (src / "roto.png").write_bytes(b"garbage")
    (src / "notas.txt").write_text("ignored", encoding="utf-8")


def test_run_files_images_and_writes_pdfs(tmp_path, make_jpeg):
    _seed(tmp_path, make_jpeg)
    pipeline = build_pipeline(AppSettings(), offline=True, storage=MemoryStorage())

    rows = bulk_intake.run(_cfg(tmp_path, category=DocCategory.SAE, quincena="1ª Enero 2025"), pipeline)

    assert len(rows) == 2
    ok = next(r for r in rows if r["ok"])
    assert ok["category"] == "Documentación SAE"
    assert ok["summary"] == FALLBACK_SUMMARY
    assert (tmp_path / "out" / "acta.pdf").read_bytes().startswith(b"%PDF")
    failed = next(r for r in rows if not r["ok"])
    assert failed["source"].endswith("roto.png")

    bulk_intake.print_summary(rows)


def test_run_keeps_every_pdf_when_stems_collide(tmp_path, make_jpeg):
    for sub in ("obra_a", "obra_b"):
        (tmp_path / "in" / sub).mkdir(parents=True)
        (tmp_path / "in" / sub / "acta.jpg").write_bytes(make_jpeg())
    (tmp_path / "in" / "obra_a" / "acta.png").write_bytes(make_jpeg())
    pipeline = build_pipeline(AppSettings(), offline=True, storage=MemoryStorage())

    rows = bulk_intake.run(_cfg(tmp_path), pipeline)

    pdfs = [r["pdf"] for r in rows if r["ok"]]
    assert len(pdfs) == 3
    assert len(set(pdfs)) == 3
    out = tmp_path / "out"
    assert sorted(p.name for p in out.glob("*.pdf")) == ["acta-2.pdf", "acta-3.pdf", "acta.pdf"]


def test_run_does_not_overwrite_existing_output(tmp_path, make_jpeg):
    _seed(tmp_path, make_jpeg)
    out = tmp_path / "out"
    out.mkdir()
    (out / "acta.pdf").write_bytes(b"previous run")
    pipeline = build_pipeline(AppSettings(), offline=True, storage=MemoryStorage())

    rows = bulk_intake.run(_cfg(tmp_path), pipeline)

    assert (out / "acta.pdf").read_bytes() == b"previous run"
    ok = next(r for r in rows if r["ok"])
    assert ok["pdf"].endswith("acta-2.pdf")


def test_run_without_images_exits(tmp_path):
    (tmp_path / "in").mkdir()
    pipeline = build_pipeline(AppSettings(), offline=True, storage=MemoryStorage())
    with pytest.raises(SystemExit):
        bulk_intake.run(_cfg(tmp_path), pipeline)


def test_main_writes_manifest(tmp_path, make_jpeg, monkeypatch):
    _seed(tmp_path, make_jpeg)
    out_dir = tmp_path / "out"
    monkeypatch.delenv("PROFEA_BLOB_ROOT", raising=False)
    monkeypatch.setattr(
        sys,
        "argv",
        [
            "bulk_intake",
            "--input-dir", str(tmp_path / "in"),
            "--out-dir", str(out_dir),
            "--offline",
            "--config", str(tmp_path / "missing.yaml"),
        ],
    )

    bulk_intake.main()

    manifest = json.loads((out_dir / "manifest.json").read_text(encoding="utf-8"))
    assert [r["ok"] for r in manifest] == [True, False]
    assert manifest[0]["category"] == "Documentación de Obra"


def test_main_rejects_unknown_category(tmp_path, monkeypatch):
    monkeypatch.setattr(sys, "argv", ["bulk_intake", "--input-dir", str(tmp_path), "--category", "Facturas"])
    with pytest.raises(SystemExit):
        bulk_intake.main()
