"""Port for the dependency-repository resolver."""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from uberjar.artifacts.artifact_spec import ArtifactSpec


@runtime_checkable
class ArtifactResolver(Protocol):
    """Locates artifacts and reports their dependency closures."""

    def resolve(self, spec: ArtifactSpec) -> ArtifactSpec | None:
        """Return *spec* with ``file`` set, or ``None`` when it cannot be found."""

    def resolve_transitive(self, spec: ArtifactSpec) -> Sequence[ArtifactSpec]:
        """Return the resolved transitive closure of *spec*, breadth-first, excluding *spec*."""


__all__ = ["ArtifactResolver"]
