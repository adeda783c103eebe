from __future__ import annotations

from typing import Optional

from apps.common.settings import AppSettings, load_settings
from services.doc_classifier.classifier import (
    ClassificationAdapter,
    DocumentClassifier,
    OllamaDocClassifier,
    UnavailableClassifier,
)
from services.ingestion.storage import LocalStorage, MemoryStorage, Storage
from services.pipeline import DocumentWorkspace, IntakePipeline, OnUpdate


def build_storage(settings: AppSettings) -> Storage:
    if settings.blob_root is not None:
        return LocalStorage(root_dir=str(settings.blob_root))
    return MemoryStorage()


def build_pipeline(
    settings: Optional[AppSettings] = None,
    *,
    classifier: Optional[DocumentClassifier] = None,
    offline: bool = False,
    storage: Optional[Storage] = None,
) -> IntakePipeline:
    settings = settings or load_settings()
    if classifier is None:
        classifier = UnavailableClassifier() if offline else OllamaDocClassifier(settings.classifier)

    return IntakePipeline(
        classifier=ClassificationAdapter(classifier),
        storage=storage if storage is not None else build_storage(settings),
        config=settings.pipeline_config(),
    )


def build_workspace(
    settings: Optional[AppSettings] = None,
    *,
    classifier: Optional[DocumentClassifier] = None,
    offline: bool = False,
    storage: Optional[Storage] = None,
    on_update: Optional[OnUpdate] = None,
) -> DocumentWorkspace:
    pipeline = build_pipeline(settings, classifier=classifier, offline=offline, storage=storage)
    return DocumentWorkspace(pipeline=pipeline, on_update=on_update)
