from functools import lru_cache
from pathlib import Path
from typing import List, Tuple
import json
import jsonschema

REPO_ROOT = Path(__file__).resolve().parents[2]
SCHEMA_DIR = REPO_ROOT / "config" / "schemas"


@lru_cache(maxsize=None)
def load_schema(name: str) -> dict:
    schema_path = SCHEMA_DIR / f"{name}.schema.json"
    if not schema_path.exists():
        raise FileNotFoundError(f"Schema not found: {schema_path}")
    return json.loads(schema_path.read_text(encoding="utf-8"))


@lru_cache(maxsize=None)
def _validator(name: str) -> jsonschema.Draft7Validator:
    schema = load_schema(name)
    jsonschema.Draft7Validator.check_schema(schema)
    return jsonschema.Draft7Validator(schema)


def schema_errors(data: dict, name: str) -> List[str]:
    """Every violation as 'path: message', root-level ones as '<root>: message'."""
    out = []
    for err in sorted(_validator(name).iter_errors(data), key=lambda e: [str(p) for p in e.path]):
        where = ".".join(str(p) for p in err.path) or "<root>"
        out.append(f"{where}: {err.message}")
    return out


def validate_with_schema(data: dict, name: str) -> Tuple[bool, str]:
    try:
        errors = schema_errors(data, name)
    except (OSError, ValueError, jsonschema.exceptions.SchemaError) as e:
        return False, str(e)

    if errors:
        return False, "; ".join(errors)
    return True, "Valid"
