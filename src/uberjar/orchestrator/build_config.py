"""Immutable build configuration and its precedence-aware loader.

Precedence, lowest to highest: the ``[build]`` table of a TOML file, then
``UBERJAR_*`` environment variables, then keyword overrides passed by the
caller.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from uberjar.artifacts.artifact_spec import ArtifactSpec
from uberjar.contracts.errors import ConfigurationError, FormatError
from uberjar.project_config import get_section, load_config

from .fraction_catalog import FractionCatalog

__all__ = ["BuildConfig", "load_build_config"]

_ENV_KEYS = {
    "main_class": "UBERJAR_MAIN_CLASS",
    "bundle_dependencies": "UBERJAR_BUNDLE_DEPENDENCIES",
    "resolve_transitive_dependencies": "UBERJAR_RESOLVE_TRANSITIVE",
    "auto_detect_fractions": "UBERJAR_AUTO_DETECT_FRACTIONS",
    "hollow": "UBERJAR_HOLLOW",
    "local_repository": "UBERJAR_LOCAL_REPOSITORY",
}

_BOOL_KEYS = {
    "bundle_dependencies",
    "resolve_transitive_dependencies",
    "auto_detect_fractions",
    "hollow",
}


@dataclass(frozen=True)
class BuildConfig:
    """Everything a build needs, fixed before the pipeline starts."""

    project: Optional[ArtifactSpec] = None
    main_class: Optional[str] = None
    properties: Mapping[str, Any] = field(default_factory=dict)
    bundle_dependencies: bool = True
    resolve_transitive_dependencies: bool = False
    auto_detect_fractions: bool = True
    hollow: bool = False
    dependencies: Tuple[ArtifactSpec, ...] = ()
    fractions: Tuple[ArtifactSpec, ...] = ()
    additional_modules: Tuple[Path, ...] = ()
    fraction_catalog: Optional[FractionCatalog] = None
    local_repository: Optional[Path] = None
    resolver: Optional[str] = None
    scanner: Optional[str] = None
    journal_dir: Optional[Path] = None

    def with_dependency(self, spec: ArtifactSpec) -> "BuildConfig":
        return replace(self, dependencies=self.dependencies + (spec,))

    def with_fraction(self, spec: ArtifactSpec) -> "BuildConfig":
        return replace(self, fractions=self.fractions + (spec,))

    def describe(self) -> Dict[str, Any]:
        """Plain-data view used for logging and the configuration digest."""

        def _spec(spec: Optional[ArtifactSpec]) -> Optional[Dict[str, Any]]:
            if spec is None:
                return None
            return {"gav": spec.gav, "scope": spec.scope, "file": spec.file}

        return {
            "project": _spec(self.project),
            "main_class": self.main_class,
            "properties": dict(self.properties),
            "bundle_dependencies": self.bundle_dependencies,
            "resolve_transitive_dependencies": self.resolve_transitive_dependencies,
            "auto_detect_fractions": self.auto_detect_fractions,
            "hollow": self.hollow,
            "dependencies": [_spec(spec) for spec in self.dependencies],
            "fractions": [spec.gav for spec in self.fractions],
            "additional_modules": list(self.additional_modules),
            "fraction_catalog": sorted(d.ga for d in self.fraction_catalog) if self.fraction_catalog else None,
            "local_repository": self.local_repository,
            "resolver": self.resolver,
            "scanner": self.scanner,
        }


def _coerce_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalised = value.strip().lower()
        if normalised in {"1", "true", "yes", "on"}:
            return True
        if normalised in {"0", "false", "no", "off"}:
            return False
    return None


def _require_bool(key: str, value: Any, source: str) -> bool:
    coerced = _coerce_bool(value)
    if coerced is None:
        raise ConfigurationError(f"{source} {key} must be a boolean (got {value!r})")
    return coerced


def _require_str(key: str, value: Any, source: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"{source} {key} must be a non-empty string (got {value!r})")
    return value.strip()


def _resolve_path(value: Any, base_dir: Path, key: str) -> Path:
    text = _require_str(key, value, "build")
    path = Path(text).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path


def _spec_from_table(table: Any, base_dir: Path, key: str, *, default_scope: str = "compile") -> ArtifactSpec:
    if isinstance(table, str):
        return ArtifactSpec.parse(table, scope=default_scope)
    if not isinstance(table, Mapping):
        raise ConfigurationError(f"build {key} entries must be tables or coordinate strings")
    gav = _require_str(f"{key}.gav", table.get("gav"), "build")
    scope = table.get("scope", default_scope)
    file_value = table.get("file")
    file_path = _resolve_path(file_value, base_dir, f"{key}.file") if file_value is not None else None
    return ArtifactSpec.parse(gav, scope=scope, file=file_path)


def _from_table(build: Mapping[str, Any], base_dir: Path) -> Dict[str, Any]:
    values: Dict[str, Any] = {}

    for key in _BOOL_KEYS:
        if key in build:
            values[key] = _require_bool(key, build[key], "build")

    if "main_class" in build:
        values["main_class"] = _require_str("main_class", build["main_class"], "build")
    for key in ("resolver", "scanner"):
        if key in build:
            values[key] = _require_str(key, build[key], "build")
    for key in ("local_repository", "journal_dir"):
        if key in build:
            values[key] = _resolve_path(build[key], base_dir, key)

    if "properties" in build:
        properties = build["properties"]
        if not isinstance(properties, Mapping):
            raise ConfigurationError("build properties must be a table")
        values["properties"] = dict(properties)

    if "project" in build:
        values["project"] = _spec_from_table(build["project"], base_dir, "project", default_scope="compile")

    for key in ("dependencies", "fractions"):
        if key in build:
            entries = build[key]
            if not isinstance(entries, list):
                raise ConfigurationError(f"build {key} must be an array")
            values[key] = tuple(_spec_from_table(entry, base_dir, key) for entry in entries)

    if "additional_modules" in build:
        modules = build["additional_modules"]
        if not isinstance(modules, list):
            raise ConfigurationError("build additional_modules must be an array")
        values["additional_modules"] = tuple(
            _resolve_path(entry, base_dir, "additional_modules") for entry in modules
        )

    if "fraction_catalog" in build:
        catalog_path = _resolve_path(build["fraction_catalog"], base_dir, "fraction_catalog")
        try:
            values["fraction_catalog"] = FractionCatalog.load(catalog_path)
        except FormatError as exc:
            raise ConfigurationError(f"build fraction_catalog {catalog_path}: {exc}") from exc

    return values


def _from_env(env: Mapping[str, str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for key, env_key in _ENV_KEYS.items():
        raw = env.get(env_key)
        if raw is None or raw == "":
            continue
        if key in _BOOL_KEYS:
            values[key] = _require_bool(env_key, raw, "environment")
        elif key == "local_repository":
            values[key] = Path(raw).expanduser()
        else:
            values[key] = raw
    return values


def load_build_config(
    path: Path | str | None = None,
    *,
    env: Mapping[str, str] | None = None,
    **overrides: Any,
) -> BuildConfig:
    """Build a :class:`BuildConfig` from a TOML file, the environment and overrides."""

    values: Dict[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        config = load_config(config_path)
        build = get_section(config, "build", default={})
        if not isinstance(build, Mapping):
            raise ConfigurationError("build must be a table")
        values.update(_from_table(build, config_path.resolve().parent))

    env_map = dict(os.environ) if env is None else dict(env)
    values.update(_from_env(env_map))

    known = {f.name for f in fields(BuildConfig)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ConfigurationError(f"Unknown build configuration keys: {', '.join(unknown)}")
    for key, value in overrides.items():
        if key in _BOOL_KEYS:
            value = _require_bool(key, value, "override")
        elif key in ("dependencies", "fractions"):
            value = tuple(value)
        elif key == "additional_modules":
            value = tuple(Path(entry) for entry in value)
        values[key] = value

    return BuildConfig(**values)
