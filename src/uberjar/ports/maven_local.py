"""Resolver backed by a Maven-layout directory on the local filesystem."""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Deque, Dict, List, Optional, Sequence, Set

from uberjar.artifacts.artifact_spec import ArtifactSpec, IdentityKey
from uberjar.contracts.errors import FormatError, ResolutionError

__all__ = ["MavenLocalRepository", "PomModel", "default_local_repository", "parse_pom"]

_LOGGER = logging.getLogger(__name__)

_TRANSITIVE_SCOPES = {"compile", "runtime"}
_PROPERTY_RE = re.compile(r"\$\{([^}]+)\}")


def default_local_repository() -> Path:
    return Path.home() / ".m2" / "repository"


@dataclass
class PomDependency:
    group_id: str
    artifact_id: str
    version: Optional[str]
    scope: str = "compile"
    packaging: str = "jar"
    classifier: Optional[str] = None
    optional: bool = False


@dataclass
class PomModel:
    group_id: Optional[str]
    artifact_id: str
    version: Optional[str]
    properties: Dict[str, str] = field(default_factory=dict)
    dependencies: List[PomDependency] = field(default_factory=list)
    managed: Dict[tuple, str] = field(default_factory=dict)


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child(element: ET.Element, name: str) -> Optional[ET.Element]:
    for child in element:
        if _local(child.tag) == name:
            return child
    return None


def _text(element: ET.Element, name: str) -> Optional[str]:
    child = _child(element, name)
    if child is None or child.text is None:
        return None
    value = child.text.strip()
    return value or None


def _parse_dependency(element: ET.Element) -> Optional[PomDependency]:
    group_id = _text(element, "groupId")
    artifact_id = _text(element, "artifactId")
    if not group_id or not artifact_id:
        return None
    return PomDependency(
        group_id=group_id,
        artifact_id=artifact_id,
        version=_text(element, "version"),
        scope=_text(element, "scope") or "compile",
        packaging=_text(element, "type") or "jar",
        classifier=_text(element, "classifier"),
        optional=(_text(element, "optional") or "false").lower() == "true",
    )


def parse_pom(path: Path) -> PomModel:
    """Parse the parts of a POM needed for dependency resolution."""

    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as exc:
        raise FormatError(f"Malformed POM {path}: {exc}", key=str(path)) from exc

    parent = _child(root, "parent")
    parent_group = _text(parent, "groupId") if parent is not None else None
    parent_version = _text(parent, "version") if parent is not None else None

    artifact_id = _text(root, "artifactId")
    if not artifact_id:
        raise FormatError(f"POM {path} does not declare an artifactId", key="artifactId")

    model = PomModel(
        group_id=_text(root, "groupId") or parent_group,
        artifact_id=artifact_id,
        version=_text(root, "version") or parent_version,
    )

    properties = _child(root, "properties")
    if properties is not None:
        for prop in properties:
            model.properties[_local(prop.tag)] = (prop.text or "").strip()

    management = _child(root, "dependencyManagement")
    managed_deps = _child(management, "dependencies") if management is not None else None
    if managed_deps is not None:
        for element in managed_deps:
            dep = _parse_dependency(element)
            if dep is not None and dep.version:
                model.managed[(dep.group_id, dep.artifact_id)] = dep.version

    dependencies = _child(root, "dependencies")
    if dependencies is not None:
        for element in dependencies:
            dep = _parse_dependency(element)
            if dep is not None:
                model.dependencies.append(dep)
    return model


def _interpolate(value: Optional[str], model: PomModel) -> Optional[str]:
    if value is None:
        return None

    builtins = {
        "project.version": model.version or "",
        "pom.version": model.version or "",
        "version": model.version or "",
        "project.groupId": model.group_id or "",
        "project.artifactId": model.artifact_id,
    }

    def _replace(match: re.Match) -> str:
        name = match.group(1)
        if name in model.properties:
            return model.properties[name]
        if name in builtins:
            return builtins[name]
        return match.group(0)

    # Properties may reference other properties; bound the passes.
    result = value
    for _ in range(10):
        updated = _PROPERTY_RE.sub(_replace, result)
        if updated == result:
            break
        result = updated
    return result


class MavenLocalRepository:
    """Default :class:`~uberjar.ports.resolver_port.ArtifactResolver`.

    Artifacts are looked up at their Maven repository path below ``root``;
    transitive dependencies come from the artifact's POM.  Only ``compile``
    and ``runtime`` dependencies that are not optional take part in the
    closure, and the first occurrence of an identity wins inside one closure.
    """

    def __init__(self, root: Path | str | None = None) -> None:
        self.root = Path(root) if root is not None else default_local_repository()

    def __repr__(self) -> str:
        return f"MavenLocalRepository({str(self.root)!r})"

    def resolve(self, spec: ArtifactSpec) -> ArtifactSpec | None:
        candidate = self.root / spec.repository_path()
        if candidate.is_file():
            return spec.with_file(candidate)
        _LOGGER.debug("Artifact %s not found at %s", spec.gav, candidate)
        return None

    def _direct_dependencies(self, spec: ArtifactSpec) -> List[ArtifactSpec]:
        pom_path = self.root / spec.pom_path()
        if not pom_path.is_file():
            _LOGGER.debug("No POM for %s; treating it as a leaf", spec.gav)
            return []

        model = parse_pom(pom_path)
        result: List[ArtifactSpec] = []
        for dep in model.dependencies:
            scope = _interpolate(dep.scope, model) or "compile"
            if dep.optional or scope not in _TRANSITIVE_SCOPES:
                continue
            group_id = _interpolate(dep.group_id, model) or dep.group_id
            artifact_id = _interpolate(dep.artifact_id, model) or dep.artifact_id
            version = _interpolate(dep.version, model) or _interpolate(
                model.managed.get((dep.group_id, dep.artifact_id)), model
            )
            if not version or "${" in version:
                raise ResolutionError(
                    f"Cannot determine version of {group_id}:{artifact_id} declared by {spec.gav}",
                    coordinate=f"{group_id}:{artifact_id}",
                )
            result.append(
                ArtifactSpec(
                    scope=scope,
                    group_id=group_id,
                    artifact_id=artifact_id,
                    version=version,
                    packaging=dep.packaging,
                    classifier=_interpolate(dep.classifier, model),
                )
            )
        return result

    def resolve_transitive(self, spec: ArtifactSpec) -> Sequence[ArtifactSpec]:
        seen: Set[IdentityKey] = {spec.key}
        queue: Deque[ArtifactSpec] = deque([spec])
        closure: List[ArtifactSpec] = []

        while queue:
            current = queue.popleft()
            for dep in self._direct_dependencies(current):
                if dep.key in seen:
                    continue
                seen.add(dep.key)
                resolved = self.resolve(dep)
                if resolved is None:
                    raise ResolutionError(
                        f"Transitive dependency {dep.gav} of {spec.gav} was not found in {self.root}",
                        coordinate=dep.gav,
                    )
                closure.append(resolved)
                queue.append(resolved)
        return closure
