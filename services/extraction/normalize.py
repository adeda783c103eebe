# services/extraction/normalize.py
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Dict, Optional


_WS_RE = re.compile(r"\s+")
_DMY_RE = re.compile(r"^(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{4})$")


def _safe_str(x: Any) -> str:
    if x is None:
        return ""
    if isinstance(x, str):
        return x.strip()
    return str(x).strip()


def normalize_expiry_date(value: Any) -> Optional[str]:
    """
    Canonical YYYY-MM-DD or None.
    Accepts ISO dates/datetimes and day-first DD/MM/YYYY (how Spanish paperwork prints dates).
    """
    v = _safe_str(value)
    if not v or v.lower() in ("null", "none", "n/a"):
        return None

    try:
        return date.fromisoformat(v[:10]).isoformat()
    except ValueError:
        pass

    try:
        return datetime.fromisoformat(v.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        pass

    m = _DMY_RE.match(v)
    if m:
        d, mth, y = (int(g) for g in m.groups())
        try:
            return date(y, mth, d).isoformat()
        except ValueError:
            return None
    return None


def normalize_person_name(value: Any) -> Optional[str]:
    v = _WS_RE.sub(" ", _safe_str(value).replace("_", " ")).strip()
    if not v or v.lower() in ("null", "none", "n/a"):
        return None
    return v


def normalize_classification(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Canonicalize a schema-valid classifier payload before it is trusted.
    Returns a new dict with the same keys; category is left to the caller.
    """
    return {
        "category": _safe_str(raw.get("category")),
        "summary": _WS_RE.sub(" ", _safe_str(raw.get("summary"))),
        "expiryDate": normalize_expiry_date(raw.get("expiryDate")),
        "workerName": normalize_person_name(raw.get("workerName")),
        "isValid": bool(raw.get("isValid")),
    }
