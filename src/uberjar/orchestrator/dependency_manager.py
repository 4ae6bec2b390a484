"""Working set of resolved dependencies and the documents derived from it."""

from __future__ import annotations

import logging
import shutil
import xml.etree.ElementTree as ET
import zipfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from uberjar.artifacts.archive import Archive
from uberjar.artifacts.artifact_spec import ArtifactSpec, IdentityKey
from uberjar.contracts.errors import BuildIOError, FormatError, ResolutionError
from uberjar.ports.resolver_port import ArtifactResolver

from .descriptors import ApplicationConf, BootstrapConf, DependenciesConf

__all__ = [
    "BOOTSTRAP_ARTIFACT_ID",
    "FRACTION_MARKER",
    "MODULE_LOADER_ARTIFACT_ID",
    "MODULE_LOADER_GROUP_ID",
    "PROJECT_ROOT",
    "REPOSITORY_ROOT",
    "SWARM_GROUP_ID",
    "DependencyManager",
]

_LOGGER = logging.getLogger(__name__)

SWARM_GROUP_ID = "org.wildfly.swarm"
BOOTSTRAP_ARTIFACT_ID = "bootstrap"
MODULE_LOADER_GROUP_ID = "org.jboss.modules"
MODULE_LOADER_ARTIFACT_ID = "jboss-modules"

FRACTION_MARKER = "META-INF/fraction-manifest.yaml"
REPOSITORY_ROOT = "m2repo"
PROJECT_ROOT = "_bootstrap"

_DEFAULT_SLOT = "main"


def _is_fraction_jar(path: Path) -> bool:
    if not zipfile.is_zipfile(path):
        return False
    try:
        with zipfile.ZipFile(path) as handle:
            handle.getinfo(FRACTION_MARKER)
    except KeyError:
        return False
    except (OSError, zipfile.BadZipFile) as exc:
        raise BuildIOError(f"Cannot read dependency archive {path}: {exc}", path=path) from exc
    return True


class DependencyManager:
    """Owns the dependency working set.

    Entries are keyed by :attr:`ArtifactSpec.key`; adding a spec whose key is
    already present replaces the earlier entry (last write wins).  Declared
    dependencies are tracked as *primary*, everything discovered through
    transitive resolution or additional modules as *extra*.
    """

    def __init__(self, resolver: ArtifactResolver | None = None) -> None:
        self.resolver = resolver
        self._dependencies: Dict[IdentityKey, ArtifactSpec] = {}
        self._primary: Dict[IdentityKey, None] = {}
        self._modules: Dict[str, None] = {}

    def __len__(self) -> int:
        return len(self._dependencies)

    def __contains__(self, spec: object) -> bool:
        return isinstance(spec, ArtifactSpec) and spec.key in self._dependencies

    @property
    def dependencies(self) -> Tuple[ArtifactSpec, ...]:
        return tuple(self._dependencies.values())

    @property
    def additional_modules(self) -> Tuple[str, ...]:
        return tuple(self._modules)

    def is_primary(self, spec: ArtifactSpec) -> bool:
        return spec.key in self._primary

    def add_dependency(self, spec: ArtifactSpec, *, primary: bool = True) -> None:
        previous = self._dependencies.get(spec.key)
        if previous is not None and previous != spec:
            if previous.version != spec.version or (previous.file and spec.file and previous.file != spec.file):
                _LOGGER.warning(
                    "Replacing %s with %s (last declaration wins)",
                    previous.gav,
                    spec.gav,
                )
        self._dependencies[spec.key] = spec
        if primary:
            self._primary[spec.key] = None

    # -- resolution -------------------------------------------------------

    def _resolve_one(self, spec: ArtifactSpec) -> ArtifactSpec:
        if spec.file is not None and spec.file.is_file():
            return spec
        if self.resolver is None:
            raise ResolutionError(
                f"No resolver configured to locate {spec.gav}",
                coordinate=spec.gav,
            )
        resolved = self.resolver.resolve(spec)
        if resolved is None or resolved.file is None:
            raise ResolutionError(f"Unable to resolve {spec.gav}", coordinate=spec.gav)
        return resolved

    def analyze_dependencies(self, resolve_transitive: bool) -> None:
        """Resolve declared dependencies, then optionally their transitive closures.

        Roots are processed in declaration order and each closure is merged
        breadth-first with the same last-write-wins rule, so a closure entry
        replaces an earlier one with the same identity.  An entry declared
        as primary keeps its primary mark.
        """

        roots = [self._dependencies[key] for key in self._primary if key in self._dependencies]
        for spec in roots:
            resolved = self._resolve_one(spec)
            self.add_dependency(resolved, primary=True)
            if not resolve_transitive:
                continue
            if self.resolver is None:
                raise ResolutionError(
                    f"No resolver configured to expand {spec.gav}",
                    coordinate=spec.gav,
                )
            for dep in self.resolver.resolve_transitive(resolved):
                if dep.file is None:
                    raise ResolutionError(f"Unable to resolve {dep.gav}", coordinate=dep.gav)
                self.add_dependency(dep, primary=False)

    def _find(self, group_id: str, artifact_id: str) -> Optional[ArtifactSpec]:
        for spec in self._dependencies.values():
            if spec.group_id == group_id and spec.artifact_id == artifact_id and spec.packaging == "jar":
                return spec
        return None

    def find_bootstrap_artifact(self) -> Optional[ArtifactSpec]:
        return self._find(SWARM_GROUP_ID, BOOTSTRAP_ARTIFACT_ID)

    def find_module_loader_artifact(self) -> Optional[ArtifactSpec]:
        return self._find(MODULE_LOADER_GROUP_ID, MODULE_LOADER_ARTIFACT_ID)

    def bootstrap_artifacts(self) -> List[ArtifactSpec]:
        """Resolved dependencies that carry the fraction marker."""

        return [
            spec
            for spec in self._dependencies.values()
            if spec.file is not None and _is_fraction_jar(spec.file)
        ]

    # -- additional modules -----------------------------------------------

    def add_additional_module(self, module_xml: Path | str) -> str:
        """Register a JBoss Modules ``module.xml`` and resolve its artifact resources."""

        path = Path(module_xml)
        try:
            root = ET.parse(path).getroot()
        except ET.ParseError as exc:
            raise FormatError(f"Malformed module descriptor {path}: {exc}", key=str(path)) from exc
        except OSError as exc:
            raise BuildIOError(f"Cannot read module descriptor {path}: {exc}", path=path) from exc

        name = root.get("name")
        if not name:
            raise FormatError(f"Module descriptor {path} has no name attribute", key="name")
        slot = root.get("slot") or _DEFAULT_SLOT
        module_id = f"{name}:{slot}"
        self._modules[module_id] = None

        for element in root.iter():
            if element.tag.rsplit("}", 1)[-1] != "artifact":
                continue
            gav = element.get("name")
            if not gav or "${" in gav:
                continue
            spec = ArtifactSpec.parse(gav, scope="compile")
            self.add_dependency(self._resolve_one(spec), primary=False)
        return module_id

    # -- repositories -----------------------------------------------------

    def _resolved(self) -> Iterable[ArtifactSpec]:
        for spec in self._dependencies.values():
            if spec.file is None:
                raise ResolutionError(f"{spec.gav} has not been resolved", coordinate=spec.gav)
            yield spec

    def populate_embedded_repository(self, archive: Archive) -> List[str]:
        """Copy every resolved dependency into the archive's embedded repository."""

        added: List[str] = []
        for spec in self._resolved():
            added.append(archive.add_file(f"{REPOSITORY_ROOT}/{spec.repository_path()}", spec.file))
        return added

    def populate_external_repository(self, local_repository: Path | str) -> List[Path]:
        """Make sure every resolved file exists in the on-disk local repository."""

        root = Path(local_repository)
        installed: List[Path] = []
        for spec in self._resolved():
            target = root / spec.repository_path()
            if target.exists():
                continue
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(spec.file, target)
            except OSError as exc:
                raise BuildIOError(f"Cannot install {spec.gav} into {root}: {exc}", path=target) from exc
            installed.append(target)
        return installed

    # -- generated documents ----------------------------------------------

    def bootstrap_conf(self) -> BootstrapConf:
        conf = BootstrapConf()
        for spec in self.bootstrap_artifacts():
            conf.add_entry(spec.msc_gav)
        return conf

    def dependencies_conf(self) -> DependenciesConf:
        conf = DependenciesConf()
        for spec in self._dependencies.values():
            if spec.key in self._primary:
                conf.add_primary(spec.msc_gav)
            else:
                conf.add_extra(spec.msc_gav)
        return conf

    def application_conf(self, project_asset: Optional[str]) -> ApplicationConf:
        conf = ApplicationConf()
        if project_asset:
            conf.add_path(f"{PROJECT_ROOT}/{project_asset}")
        for module in self._modules:
            conf.add_module(module)
        return conf
