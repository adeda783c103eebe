#!/usr/bin/env python3
# tools/bulk_intake.py
import argparse
import asyncio
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from rich.console import Console
from rich.table import Table
from tqdm import tqdm

from apps.common.logging_setup import setup_logging
from apps.common.settings import load_settings
from apps.common.workspace_loader import build_pipeline
from services.documents.models import DocCategory, FileDocument
from services.pipeline import IntakeContext, IntakeError, IntakePipeline, UploadedFile

console = Console()

IMG_EXTS = (".jpg", ".jpeg", ".png", ".webp")


@dataclass(frozen=True)
class BulkConfig:
    input_dir: Path
    out_dir: Path
    category: Optional[DocCategory]
    worker: Optional[str]
    quincena: Optional[str]
    max_images: Optional[int]
    offline: bool


def _iter_images(input_dir: Path) -> List[Path]:
    return [p for p in sorted(input_dir.rglob("*")) if p.is_file() and p.suffix.lower() in IMG_EXTS]


def _unique_pdf_path(out_dir: Path, name: str, taken: Set[Path]) -> Path:
    # same stem from another subfolder or extension gets a -N suffix
    out_path = out_dir / name
    stem, suffix = out_path.stem, out_path.suffix
    n = 1
    while out_path in taken or out_path.exists():
        n += 1
        out_path = out_dir / f"{stem}-{n}{suffix}"
    taken.add(out_path)
    return out_path


def _write_pdf(pipeline: IntakePipeline, doc: FileDocument, out_path: Path) -> Path:
    out_path.write_bytes(pipeline.storage.get_bytes(uri=doc.file_url))
    return out_path


def run(cfg: BulkConfig, pipeline: IntakePipeline) -> List[Dict[str, Any]]:
    """Files every image under cfg.input_dir; one row per image, failures included."""
    images = _iter_images(cfg.input_dir)
    if cfg.max_images is not None:
        images = images[: cfg.max_images]
    if not images:
        raise SystemExit(f"No images found under: {cfg.input_dir}")

    cfg.out_dir.mkdir(parents=True, exist_ok=True)
    ctx = IntakeContext(category_override=cfg.category, worker_override=cfg.worker, quincena=cfg.quincena)

    rows: List[Dict[str, Any]] = []
    taken: Set[Path] = set()
    for path in tqdm(images, desc="Filing"):
        upload = UploadedFile(filename=path.name, content=path.read_bytes())
        try:
            composited = asyncio.run(pipeline.process(upload))
        except IntakeError as e:
            rows.append({"source": str(path), "ok": False, "error": str(e)})
            continue

        doc = pipeline.file(composited, ctx)
        pdf_path = _write_pdf(pipeline, doc, _unique_pdf_path(cfg.out_dir, doc.name, taken))
        rows.append({
            "source": str(path),
            "ok": True,
            "pdf": str(pdf_path),
            "category": doc.category.value,
            "worker_name": doc.worker_name,
            "expiry_date": doc.expiry_date,
            "is_valid": doc.is_valid,
            "summary": doc.summary,
        })
    return rows


def print_summary(rows: List[Dict[str, Any]]) -> None:
    filed = sum(1 for r in rows if r["ok"])
    console.print(f"\n[bold green]✅ Filed: {filed}/{len(rows)}[/bold green]")

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("File")
    table.add_column("Category")
    table.add_column("Worker")
    table.add_column("Expiry")
    table.add_column("Status", justify="right")
    for r in rows:
        name = Path(r["source"]).name
        if r["ok"]:
            status = "[green]OK[/green]" if r["is_valid"] else "[yellow]CHECK[/yellow]"
            table.add_row(name, r["category"], r["worker_name"] or "", r["expiry_date"] or "", status)
        else:
            table.add_row(name, "", "", "", f"[red]{r['error']}[/red]")
    console.print(table)


def main() -> None:
    ap = argparse.ArgumentParser(description="File a folder of document photos as PDFs.")
    ap.add_argument("--input-dir", required=True, help="Folder containing images (recursively).")
    ap.add_argument("--out-dir", default=None, help="Where PDFs and manifest.json are written.")
    ap.add_argument("--category", default=None, help="Force this category label for every file.")
    ap.add_argument("--worker", default=None, help="Worker name to attach to every file.")
    ap.add_argument("--quincena", default=None, help="Fortnight label, e.g. '1ª Septiembre 2023'.")
    ap.add_argument("--max-images", type=int, default=0, help="Cap number of images (0 = no cap).")
    ap.add_argument("--offline", action="store_true", help="Skip the classifier; every file gets the fallback.")
    ap.add_argument("--config", default=None, help="Path to app.yaml.")
    args = ap.parse_args()

    category = None
    if args.category:
        category = DocCategory.parse(args.category)
        if category is None:
            raise SystemExit(f"Unknown category: {args.category}. Expected one of: {[c.value for c in DocCategory]}")

    started = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    cfg = BulkConfig(
        input_dir=Path(args.input_dir),
        out_dir=Path(args.out_dir) if args.out_dir else Path("artifacts") / "intake" / started,
        category=category,
        worker=(args.worker.strip() if args.worker else None),
        quincena=(args.quincena.strip() if args.quincena else None),
        max_images=(None if int(args.max_images) <= 0 else int(args.max_images)),
        offline=bool(args.offline),
    )

    setup_logging()
    settings = load_settings(args.config)
    console.print("[bold blue]🚀 Loading Pipeline...[/bold blue]")
    pipeline = build_pipeline(settings, offline=cfg.offline)

    rows = run(cfg, pipeline)
    (cfg.out_dir / "manifest.json").write_text(json.dumps(rows, indent=2, ensure_ascii=False), encoding="utf-8")
    print_summary(rows)
    console.print(f"[bold]PDFs written to {cfg.out_dir}[/bold]")


if __name__ == "__main__":
    main()
