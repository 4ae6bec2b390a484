"""Typed model of the YAML build manifest embedded in every uber-jar."""

from __future__ import annotations

import io
import zipfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

import yaml

from uberjar.contracts import validator
from uberjar.contracts.errors import BuildIOError, FormatError

__all__ = [
    "BUNDLED_DEPENDENCIES_PROPERTY",
    "CLASSPATH_LOCATION",
    "DEFAULT_MAIN_CLASS",
    "BuildManifest",
]

CLASSPATH_LOCATION = "META-INF/wildfly-swarm-manifest.yaml"
DEFAULT_MAIN_CLASS = "org.wildfly.swarm.Swarm"
BUNDLED_DEPENDENCIES_PROPERTY = "wildfly.swarm.bundled.dependencies"

ASSET = "asset"
MAIN_CLASS = "main-class"
HOLLOW = "hollow"
PROPERTIES = "properties"
MODULES = "modules"
BOOTSTRAP_ARTIFACTS = "bootstrap-artifacts"
BUNDLE_DEPENDENCIES = "bundle-dependencies"
DEPENDENCIES = "dependencies"


def _ordered_set(values: Iterable[str]) -> Dict[str, None]:
    return {str(value): None for value in values}


def _render_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class BuildManifest:
    """Build metadata: main class, hollow flag, properties and artifact lists.

    A hollow manifest never carries an asset.  ``hollow = True`` clears any
    asset already set, and assigning an asset while hollow is silently ignored.
    """

    def __init__(self) -> None:
        self._asset: Optional[str] = None
        self._main_class: str = DEFAULT_MAIN_CLASS
        self._hollow: bool = False
        self._properties: Dict[str, Any] = {}
        self._bootstrap_modules: Dict[str, None] = {}
        self._bootstrap_artifacts: Dict[str, None] = {}
        self._bundle_dependencies: Optional[bool] = None
        self._dependencies: Dict[str, None] = {}

    # -- hollow / asset ---------------------------------------------------

    @property
    def asset(self) -> Optional[str]:
        return self._asset

    @asset.setter
    def asset(self, value: Optional[str]) -> None:
        if not self._hollow:
            self._asset = value

    @property
    def hollow(self) -> bool:
        return self._hollow

    @hollow.setter
    def hollow(self, value: bool) -> None:
        self._hollow = bool(value)
        if self._hollow:
            self._asset = None

    # -- scalar fields ----------------------------------------------------

    @property
    def main_class(self) -> str:
        return self._main_class

    @main_class.setter
    def main_class(self, value: Optional[str]) -> None:
        if value is not None:
            self._main_class = value

    @property
    def bundle_dependencies(self) -> bool:
        """Effective bundling policy; an unset value means "bundle"."""

        if self._bundle_dependencies is None:
            return True
        return self._bundle_dependencies

    @bundle_dependencies.setter
    def bundle_dependencies(self, value: Optional[bool]) -> None:
        self._bundle_dependencies = None if value is None else bool(value)

    @property
    def bundle_dependencies_setting(self) -> Optional[bool]:
        return self._bundle_dependencies

    # -- collections ------------------------------------------------------

    @property
    def properties(self) -> Dict[str, Any]:
        return self._properties

    @properties.setter
    def properties(self, value: Mapping[str, Any]) -> None:
        self._properties = dict(value)

    @property
    def bootstrap_modules(self) -> List[str]:
        return list(self._bootstrap_modules)

    def add_bootstrap_module(self, module: str) -> None:
        self._bootstrap_modules[str(module)] = None

    @property
    def bootstrap_artifacts(self) -> List[str]:
        return list(self._bootstrap_artifacts)

    def add_bootstrap_artifact(self, artifact: str) -> None:
        self._bootstrap_artifacts[str(artifact)] = None

    @property
    def dependencies(self) -> List[str]:
        return list(self._dependencies)

    def add_dependency(self, gav: str) -> None:
        self._dependencies[str(gav)] = None

    # -- serialisation ----------------------------------------------------

    def as_document(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self._asset is not None:
            data[ASSET] = self._asset
        data[MAIN_CLASS] = self._main_class
        data[HOLLOW] = self._hollow
        data[PROPERTIES] = dict(self._properties)
        data[MODULES] = list(self._bootstrap_modules)
        data[BOOTSTRAP_ARTIFACTS] = list(self._bootstrap_artifacts)
        data[BUNDLE_DEPENDENCIES] = self._bundle_dependencies
        data[DEPENDENCIES] = list(self._dependencies)
        return data

    def to_yaml(self) -> str:
        return yaml.safe_dump(
            self.as_document(),
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )

    def __str__(self) -> str:
        return self.to_yaml()

    def write(self, path: Path | str) -> Path:
        target = Path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(self.to_yaml(), encoding="utf-8")
        except OSError as exc:
            raise BuildIOError(f"Cannot write manifest to {target}: {exc}", path=target) from exc
        return target

    @classmethod
    def from_document(cls, data: Any) -> "BuildManifest":
        validator.assert_valid(data, "BuildManifest", string_keyed=(PROPERTIES,))

        manifest = cls()
        manifest._main_class = data[MAIN_CLASS]
        manifest._hollow = data[HOLLOW]
        manifest._asset = None if manifest._hollow else data.get(ASSET)
        manifest._properties = dict(data[PROPERTIES])
        manifest._bootstrap_modules = _ordered_set(data[MODULES])
        manifest._bootstrap_artifacts = _ordered_set(data[BOOTSTRAP_ARTIFACTS])
        if data.get(BUNDLE_DEPENDENCIES) is not None:
            manifest._bundle_dependencies = data[BUNDLE_DEPENDENCIES]
        manifest._dependencies = _ordered_set(data[DEPENDENCIES])
        return manifest

    @classmethod
    def read(cls, source: Path | str | bytes | io.IOBase) -> "BuildManifest":
        """Parse a manifest from a path, raw bytes or an open stream."""

        try:
            if isinstance(source, (str, Path)):
                with open(source, "rb") as handle:
                    data = yaml.safe_load(handle)
            else:
                data = yaml.safe_load(source)
        except OSError as exc:
            raise BuildIOError(f"Cannot read manifest {source}: {exc}", path=str(source)) from exc
        except yaml.YAMLError as exc:
            raise FormatError(f"Manifest is not valid YAML: {exc}") from exc
        return cls.from_document(data)

    @classmethod
    def from_archive(cls, archive_path: Path | str) -> "BuildManifest":
        """Read the manifest embedded at :data:`CLASSPATH_LOCATION` in a jar."""

        try:
            with zipfile.ZipFile(archive_path) as handle:
                raw = handle.read(CLASSPATH_LOCATION)
        except KeyError as exc:
            raise FormatError(
                f"{archive_path} does not contain {CLASSPATH_LOCATION}", key=CLASSPATH_LOCATION
            ) from exc
        except (OSError, zipfile.BadZipFile) as exc:
            raise BuildIOError(f"Cannot read archive {archive_path}: {exc}", path=archive_path) from exc
        return cls.read(raw)

    def merge_properties(self, base: Mapping[str, str], *, overwrite: bool = False) -> Dict[str, str]:
        """Return *base* extended with this manifest's properties.

        Keys already present in *base* are kept unless ``overwrite`` is set.
        Properties whose value is ``None`` are skipped.  An explicit
        ``bundle-dependencies: true`` also contributes the bundled-dependencies
        flag, under the same rule.
        """

        merged: Dict[str, str] = dict(base)
        for name, value in self._properties.items():
            if value is None:
                continue
            if overwrite or name not in merged:
                merged[name] = _render_value(value)

        if self._bundle_dependencies:
            if overwrite or BUNDLED_DEPENDENCIES_PROPERTY not in merged:
                merged[BUNDLED_DEPENDENCIES_PROPERTY] = "true"
        return merged

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BuildManifest):
            return NotImplemented
        return self.as_document() == other.as_document()

    __hash__ = None  # type: ignore[assignment]
