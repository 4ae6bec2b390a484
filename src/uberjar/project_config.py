"""Utility helpers for loading build configuration files."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

try:  # Python 3.11+
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - fallback for older Python
    import tomli as tomllib  # type: ignore[import-untyped]

from uberjar.contracts.errors import ConfigurationError

CONFIG_FILENAME = "uberjar.toml"

_MISSING = object()


def load_config(path: Path | str) -> Dict[str, Any]:
    """Load a TOML configuration file as a dictionary."""

    config_path = Path(path)
    try:
        with config_path.open("rb") as fh:
            return tomllib.load(fh)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Configuration file '{config_path}' was not found") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Configuration file '{config_path}' is not valid TOML: {exc}") from exc


def get_section(config: Dict[str, Any], path: str, default: Any = _MISSING) -> Any:
    """Retrieve a nested configuration value using dotted notation."""

    data: Any = config
    for part in path.split("."):
        if isinstance(data, dict) and part in data:
            data = data[part]
        else:
            if default is not _MISSING:
                return default
            raise ConfigurationError(f"Configuration path '{path}' not found")
    return data


__all__ = ["CONFIG_FILENAME", "get_section", "load_config"]
