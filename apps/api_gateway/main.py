# apps/api_gateway/main.py
from __future__ import annotations

from apps.api_gateway.app_factory import create_app
from apps.common.logging_setup import setup_logging
from apps.common.settings import load_settings
from apps.common.workspace_loader import build_workspace

setup_logging()
settings = load_settings()
workspace = build_workspace(settings)

app = create_app(workspace=workspace)
