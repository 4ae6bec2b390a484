"""Schema loading utilities for the build metadata contracts."""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any, Dict

import jsonschema

_SCHEMA_ROOT = Path(__file__).resolve().parent / "schemas"

SCHEMA_FILES: Dict[str, str] = {
    "BuildManifest": "manifest.schema.json",
    "FractionCatalog": "fraction-catalog.schema.json",
}

_schema_cache: Dict[str, Dict[str, Any]] = {}
_compiled_cache: Dict[str, Any] = {}


def load_schema(document_type: str) -> Dict[str, Any]:
    """Load the JSON schema registered for *document_type*."""

    if document_type not in SCHEMA_FILES:
        raise KeyError(f"Unknown document type: {document_type}")

    if document_type in _schema_cache:
        return copy.deepcopy(_schema_cache[document_type])

    resolved = (_SCHEMA_ROOT / SCHEMA_FILES[document_type]).resolve()
    schema = json.loads(resolved.read_text("utf-8"))
    _schema_cache[document_type] = schema
    return copy.deepcopy(schema)


def compiled_validator(document_type: str) -> Any:
    """Return a cached ``jsonschema`` validator for *document_type*."""

    if document_type in _compiled_cache:
        return _compiled_cache[document_type]

    schema = load_schema(document_type)
    validator_cls = jsonschema.validators.validator_for(schema)
    validator_cls.check_schema(schema)
    validator = validator_cls(schema)
    _compiled_cache[document_type] = validator
    return validator


__all__ = [
    "SCHEMA_FILES",
    "compiled_validator",
    "load_schema",
]
