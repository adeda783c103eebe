# services/doc_classifier/classifier.py
from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import requests

from services.documents.models import DEFAULT_CATEGORY, ClassificationResult, DocCategory
from services.extraction.normalize import normalize_classification
from services.validation.schema_validation import load_schema, validate_with_schema

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_BASE_URL = (os.getenv("PROFEA_OLLAMA_URL") or "http://localhost:11434").strip()
DEFAULT_OLLAMA_MODEL = (os.getenv("PROFEA_OLLAMA_MODEL") or "llama3.2-vision").strip()
DEFAULT_TIMEOUT_S = float((os.getenv("PROFEA_OLLAMA_TIMEOUT_S") or "30").strip() or "30")

OLLAMA_GENERATE_PATH = "/api/generate"
TEMPERATURE = 0.0
SCHEMA_NAME = "classification"

FALLBACK_SUMMARY = "No se pudo analizar automáticamente el documento."

INSTRUCTION = (
    "Analiza este documento de construcción para obras PROFEA. "
    "Clasifícalo estrictamente en una de estas categorías: "
    + ", ".join(f"'{c.value}'" for c in DocCategory)
    + ". Extrae la fecha de caducidad si existe (formato YYYY-MM-DD), "
    "el nombre del trabajador si aplica, y un resumen breve. "
    "Determina si parece un documento válido oficial. "
    "Devuelve SOLO un objeto JSON con las claves category, summary, expiryDate, workerName, isValid."
)


class ClassifierError(RuntimeError):
    pass


class DocumentClassifier(Protocol):
    """External collaborator: encoded image payload -> raw classification JSON object."""

    def classify(self, image_b64: str) -> Dict[str, Any]: ...


@dataclass(frozen=True)
class ClassifierConfig:
    base_url: str = DEFAULT_OLLAMA_BASE_URL
    model: str = DEFAULT_OLLAMA_MODEL
    timeout_s: float = DEFAULT_TIMEOUT_S


def response_format_schema() -> Dict[str, Any]:
    """Response schema sent to the model, with category pinned to the closed label set."""
    schema = copy.deepcopy(load_schema(SCHEMA_NAME))
    schema.pop("$schema", None)
    schema.pop("title", None)
    schema["properties"]["category"]["enum"] = [c.value for c in DocCategory]
    return schema


class OllamaDocClassifier:
    """
    Thin Ollama wrapper around a vision model.
    Contract:
      - Input: base64 JPEG payload (no data-URI prefix)
      - Output: the parsed JSON object the model produced
      - Raises ClassifierError on any transport or Ollama-side error
    """

    def __init__(self, config: Optional[ClassifierConfig] = None, session: Optional[requests.Session] = None) -> None:
        self.config = config or ClassifierConfig()
        self.session = session or requests.Session()

    def classify(self, image_b64: str) -> Dict[str, Any]:
        payload = {
            "model": self.config.model,
            "prompt": INSTRUCTION,
            "images": [image_b64],
            "stream": False,
            "format": response_format_schema(),
            "options": {"temperature": TEMPERATURE},
        }

        resp = self._post_json(self._build_url(OLLAMA_GENERATE_PATH), payload)

        if resp.get("done") is not True:
            raise ClassifierError(f"Ollama generation not done: done={resp.get('done')}")

        raw = resp.get("response")
        if not isinstance(raw, str) or not raw.strip():
            raise ClassifierError("Ollama returned empty 'response'")

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ClassifierError(f"Ollama response was not valid JSON: {e}") from e

        if not isinstance(parsed, dict):
            raise ClassifierError("Ollama JSON was not an object")
        return parsed

    def _build_url(self, path: str) -> str:
        base = (self.config.base_url or "").strip()
        if not base:
            raise ClassifierError("Missing Ollama base_url (PROFEA_OLLAMA_URL)")
        return base.rstrip("/") + path

    def _post_json(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            r = self.session.post(url, json=payload, timeout=self.config.timeout_s)
            r.raise_for_status()
        except requests.RequestException as e:
            raise ClassifierError(f"Ollama request failed: {e}") from e

        try:
            parsed = r.json()
        except ValueError as e:
            raise ClassifierError(f"Ollama HTTP {r.status_code} but body was not JSON: {e}") from e

        if not isinstance(parsed, dict):
            raise ClassifierError("Ollama body JSON was not an object")

        err = parsed.get("error")
        if isinstance(err, str) and err.strip():
            raise ClassifierError(f"Ollama error: {err.strip()}")

        if "response" not in parsed and "done" not in parsed:
            raise ClassifierError(f"Ollama unexpected response keys: {list(parsed.keys())}")
        return parsed


class UnavailableClassifier:
    """Stand-in used when no classifier is configured; every call degrades to the fallback."""

    def classify(self, image_b64: str) -> Dict[str, Any]:
        raise ClassifierError("no classifier configured")


def fallback_result() -> ClassificationResult:
    return ClassificationResult(
        category=DEFAULT_CATEGORY,
        summary=FALLBACK_SUMMARY,
        expiry_date=None,
        worker_name=None,
        is_valid=True,
    )


def parse_classification(raw: Any) -> ClassificationResult:
    """
    Schema-check and normalize a raw classifier object.
    An unknown category yields category=None; schema failures raise ClassifierError.
    """
    if not isinstance(raw, dict):
        raise ClassifierError("classification payload is not an object")

    ok, msg = validate_with_schema(raw, SCHEMA_NAME)
    if not ok:
        raise ClassifierError(f"classification failed schema validation: {msg}")

    clean = normalize_classification(raw)
    category = DocCategory.parse(clean["category"])
    if category is None:
        logger.warning("Classifier returned unknown category %r; ignoring it", clean["category"])

    return ClassificationResult(
        category=category,
        summary=clean["summary"],
        expiry_date=clean["expiryDate"],
        worker_name=clean["workerName"],
        is_valid=clean["isValid"],
    )


class ClassificationAdapter:
    """
    Boundary around the external classifier. `analyze` never raises:
    any transport, parsing or schema failure returns `fallback_result()`.
    """

    def __init__(self, classifier: Optional[DocumentClassifier] = None) -> None:
        self.classifier = classifier or UnavailableClassifier()

    def analyze(self, image_b64: str) -> ClassificationResult:
        payload = image_b64.split(",", 1)[1] if image_b64.startswith("data:") else image_b64
        try:
            return parse_classification(self.classifier.classify(payload))
        except Exception as e:
            logger.warning("Document classification failed, using fallback: %s", e)
            return fallback_result()


def resolve_category(
    override: Optional[DocCategory],
    result: Optional[ClassificationResult],
    default: DocCategory = DEFAULT_CATEGORY,
) -> DocCategory:
    """Explicit override > valid classifier category > default."""
    if override is not None:
        return override
    if result is not None and result.category is not None:
        return result.category
    return default
