# apps/common/settings.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from services.doc_classifier.classifier import ClassifierConfig
from services.pipeline import PipelineConfig
from services.rendering.compositor import PageLayout


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    return data or {}


def _env(key: str) -> Optional[str]:
    v = os.getenv(key)
    return v.strip() if isinstance(v, str) and v.strip() else None


def _as_path(v: str) -> Path:
    return Path(v).expanduser().resolve()


@dataclass(frozen=True)
class IntakeSettings:
    archival_max_width: int = 1024
    archival_quality: float = 0.6
    thumbnail_max_width: int = 150
    thumbnail_quality: float = 0.5


@dataclass(frozen=True)
class AppSettings:
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    intake: IntakeSettings = field(default_factory=IntakeSettings)
    compositor: PageLayout = field(default_factory=PageLayout)
    blob_root: Optional[Path] = None
    config_path: Optional[Path] = None

    def pipeline_config(self) -> PipelineConfig:
        return PipelineConfig(
            archival_max_width=self.intake.archival_max_width,
            archival_quality=self.intake.archival_quality,
            thumbnail_max_width=self.intake.thumbnail_max_width,
            thumbnail_quality=self.intake.thumbnail_quality,
            layout=self.compositor,
        )


def _section(cfg: Dict[str, Any], name: str) -> Dict[str, Any]:
    v = cfg.get(name) or {}
    if not isinstance(v, dict):
        raise ValueError(f"Config section '{name}' must be a mapping")
    return v


def load_settings(config_path: Optional[str] = None) -> AppSettings:
    """
    Resolution order (highest -> lowest):
      1) Explicit function argument
      2) PROFEA_CONFIG_PATH env var
      3) config/app.yaml
    Individual fields can be overridden via env vars:
      - PROFEA_OLLAMA_URL
      - PROFEA_OLLAMA_MODEL
      - PROFEA_OLLAMA_TIMEOUT_S
      - PROFEA_BLOB_ROOT
    Missing keys fall back to the dataclass defaults.
    """
    cfg_path = (
        Path(config_path)
        if config_path
        else Path(_env("PROFEA_CONFIG_PATH") or "config/app.yaml")
    )
    cfg = _read_yaml(cfg_path)

    clf = _section(cfg, "classifier")
    intake = _section(cfg, "intake")
    comp = _section(cfg, "compositor")

    defaults = ClassifierConfig()
    classifier = ClassifierConfig(
        base_url=_env("PROFEA_OLLAMA_URL") or clf.get("ollama_url") or defaults.base_url,
        model=_env("PROFEA_OLLAMA_MODEL") or clf.get("ollama_model") or defaults.model,
        timeout_s=float(_env("PROFEA_OLLAMA_TIMEOUT_S") or clf.get("timeout_s") or defaults.timeout_s),
    )

    problems = []
    intake_defaults = IntakeSettings()
    intake_values = {}
    for k, v in intake.items():
        if k not in IntakeSettings.__dataclass_fields__:
            continue
        kind = type(getattr(intake_defaults, k))
        try:
            intake_values[k] = kind(v)
        except (TypeError, ValueError):
            problems.append(f"intake.{k} must be {kind.__name__}, got {v!r}")
    intake_settings = IntakeSettings(**intake_values)
    layout = PageLayout(**{k: float(v) for k, v in comp.items() if k in PageLayout.__dataclass_fields__})

    blob_root_raw = _env("PROFEA_BLOB_ROOT") or cfg.get("blob_root")

    for key in ("archival_max_width", "thumbnail_max_width"):
        if getattr(intake_settings, key) < 1:
            problems.append(f"intake.{key} must be >= 1")
    for key in ("archival_quality", "thumbnail_quality"):
        if not 0.0 < getattr(intake_settings, key) <= 1.0:
            problems.append(f"intake.{key} must be in (0, 1]")
    for key in ("page_width_mm", "signature_width_mm", "signature_height_mm"):
        if getattr(layout, key) <= 0:
            problems.append(f"compositor.{key} must be > 0")
    if classifier.timeout_s <= 0:
        problems.append("classifier.timeout_s must be > 0")

    if problems:
        raise ValueError(
            "Invalid configuration: " + ", ".join(problems) +
            f". Config file used: {cfg_path}"
        )

    return AppSettings(
        classifier=classifier,
        intake=intake_settings,
        compositor=layout,
        blob_root=_as_path(str(blob_root_raw)) if blob_root_raw else None,
        config_path=cfg_path,
    )
