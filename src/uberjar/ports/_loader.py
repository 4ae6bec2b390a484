"""Helpers for loading port implementations dynamically."""

from __future__ import annotations

import importlib
from typing import Any, Dict

from uberjar.contracts.errors import ConfigurationError

_OBJECT_CACHE: Dict[str, Any] = {}


def load_object(reference: str) -> Any:
    """Import the object named by a ``package.module:attr`` reference and cache it."""

    cached = _OBJECT_CACHE.get(reference)
    if cached is not None:
        return cached

    module_name, sep, attr_path = str(reference).partition(":")
    if not sep or not module_name or not attr_path:
        raise ConfigurationError(f"Port reference must look like 'package.module:attr': {reference!r}")

    try:
        target: Any = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigurationError(f"Could not import port module {module_name!r}: {exc}") from exc

    for part in attr_path.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as exc:
            raise ConfigurationError(f"Port module {module_name!r} does not expose {attr_path!r}") from exc

    _OBJECT_CACHE[reference] = target
    return target


__all__ = ["load_object"]
