"""Canonical JSON helpers used to fingerprint build inputs and outputs.

Objects are reduced to a canonical form by recursively sorting mapping keys,
turning paths into POSIX strings and sets into sorted lists, and emitting
UTF-8 bytes without insignificant whitespace.  Two configurations that differ
only in dictionary or set ordering therefore produce the same digest.
"""

from __future__ import annotations

import hashlib
import json
import math
from collections.abc import Mapping, Set
from pathlib import PurePath
from typing import Any

__all__ = ["jcs_dump", "jcs_sha256", "sha256_file"]

_CHUNK_SIZE = 1024 * 1024


def _canonicalize(obj: Any) -> Any:
    if obj is None or isinstance(obj, (bool, int, str)):
        return obj
    if isinstance(obj, float):
        if math.isnan(obj) or math.isinf(obj):
            raise ValueError("NaN and Infinity are not permitted in canonical payloads")
        if obj.is_integer():
            return int(obj)
        return obj
    if isinstance(obj, PurePath):
        return obj.as_posix()
    if isinstance(obj, (list, tuple)):
        return [_canonicalize(item) for item in obj]
    if isinstance(obj, Set):
        return sorted((_canonicalize(item) for item in obj), key=lambda item: json.dumps(item, sort_keys=True))
    if isinstance(obj, Mapping):
        return {str(key): _canonicalize(obj[key]) for key in sorted(obj.keys(), key=str)}
    raise TypeError(f"Unsupported type for canonicalisation: {type(obj)!r}")


def jcs_dump(obj: Any) -> bytes:
    """Return canonical JSON bytes for ``obj``."""

    canonical = _canonicalize(obj)
    dumped = json.dumps(
        canonical,
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
    )
    return dumped.encode("utf-8")


def jcs_sha256(obj: Any) -> str:
    """Return the ``sha256`` digest of the canonical representation of ``obj``."""

    digest = hashlib.sha256(jcs_dump(obj)).hexdigest()
    return f"sha256-{digest}"


def sha256_file(path: str | PurePath) -> str:
    """Return the ``sha256-`` prefixed digest of a file on disk."""

    hasher = hashlib.sha256()
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
            hasher.update(chunk)
    return f"sha256-{hasher.hexdigest()}"
