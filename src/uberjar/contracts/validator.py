"""Public facade for validating build metadata documents."""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Tuple

from . import loader
from .errors import FormatError, ValidationIssue, format_issues, make_error


def _jsonschema_path(exc: Any) -> str:
    path = getattr(exc, "absolute_path", [])
    if not path:
        return "$"
    components: List[str] = ["$"]
    for part in path:
        if isinstance(part, int):
            components.append(f"[{part}]")
        else:
            components.append(f".{part}")
    return "".join(components)


def _offending_key(exc: Any) -> Optional[str]:
    path = list(getattr(exc, "absolute_path", []))
    if path:
        return str(path[0])
    if getattr(exc, "validator", None) == "required":
        # jsonschema phrases these as "'main-class' is a required property"
        message = str(getattr(exc, "message", ""))
        if message.startswith("'") and "'" in message[1:]:
            return message[1 : message.index("'", 1)]
    return None


def _string_key_checks(document: Mapping[str, Any], mapping_keys: Iterable[str]) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    for field in mapping_keys:
        value = document.get(field)
        if not isinstance(value, Mapping):
            continue
        for key in value.keys():
            if not isinstance(key, str):
                issues.append(
                    make_error("key.bad_type", f"{field} keys must be strings, got {key!r}", f"$.{field}")
                )
    return issues


def _collect(
    document: Any,
    document_type: str,
    string_keyed: Iterable[str],
) -> Tuple[List[ValidationIssue], Optional[str]]:
    if not isinstance(document, Mapping):
        issue = make_error(
            "document.bad_type",
            f"{document_type} must be a mapping (type={type(document).__name__})",
            "$",
        )
        return [issue], None

    validator = loader.compiled_validator(document_type)
    errors = sorted(validator.iter_errors(document), key=lambda exc: (_jsonschema_path(exc), exc.message))
    issues = [make_error(f"schema.{exc.validator}", exc.message, _jsonschema_path(exc)) for exc in errors]
    key = _offending_key(errors[0]) if errors else None

    # Manual invariants complement JSON Schema, which cannot see non-string keys.
    manual = _string_key_checks(document, string_keyed)
    if manual and key is None:
        key = manual[0].path[2:]
    issues.extend(manual)
    return issues, key


def validate(
    document: Any,
    document_type: str,
    *,
    string_keyed: Iterable[str] = (),
) -> List[ValidationIssue]:
    """Return every issue found in *document* for the given *document_type*."""

    issues, _ = _collect(document, document_type, string_keyed)
    return issues


def assert_valid(
    document: Any,
    document_type: str,
    *,
    string_keyed: Iterable[str] = (),
) -> None:
    """Raise :class:`FormatError` when *document* violates its contract."""

    issues, key = _collect(document, document_type, string_keyed)
    if not issues:
        return
    message = f"Invalid {document_type} document: " + "; ".join(format_issues(issues))
    raise FormatError(message, key=key, issues=issues)


__all__ = ["assert_valid", "validate"]
