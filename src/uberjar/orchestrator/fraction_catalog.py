"""Catalog of the optional feature modules ("fractions") a build may select."""

from __future__ import annotations

import io
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

import yaml

from uberjar.artifacts.artifact_spec import ArtifactSpec
from uberjar.contracts import validator
from uberjar.contracts.errors import FormatError

__all__ = ["FractionCatalog", "FractionDescriptor"]


@dataclass(frozen=True)
class FractionDescriptor:
    """A fraction's coordinate, the packages it exposes and the fractions it needs."""

    group_id: str
    artifact_id: str
    version: str
    name: str = ""
    packages: Tuple[str, ...] = ()
    dependencies: Tuple[str, ...] = ()

    @property
    def ga(self) -> str:
        return f"{self.group_id}:{self.artifact_id}"

    @property
    def av(self) -> str:
        return f"{self.artifact_id}:{self.version}"

    def to_artifact_spec(self) -> ArtifactSpec:
        return ArtifactSpec(
            scope="compile",
            group_id=self.group_id,
            artifact_id=self.artifact_id,
            version=self.version,
            packaging="jar",
        )

    def exposes(self, package: str) -> bool:
        """Return ``True`` when *package* is covered by one of this fraction's patterns.

        ``javax.ws.rs`` matches that package only; ``javax.ws.rs.*`` also matches
        every subpackage.
        """

        for pattern in self.packages:
            if pattern.endswith(".*"):
                stem = pattern[:-2]
                if package == stem or package.startswith(stem + "."):
                    return True
            elif package == pattern:
                return True
        return False


class FractionCatalog:
    """Known fractions, indexed by ``groupId:artifactId``."""

    def __init__(self, descriptors: Iterable[FractionDescriptor]) -> None:
        self._by_ga: Dict[str, FractionDescriptor] = {}
        for descriptor in descriptors:
            self._by_ga[descriptor.ga] = descriptor

    def __len__(self) -> int:
        return len(self._by_ga)

    def __iter__(self) -> Iterator[FractionDescriptor]:
        return iter(self._by_ga.values())

    @property
    def descriptors(self) -> Tuple[FractionDescriptor, ...]:
        return tuple(self._by_ga.values())

    def get(self, group_id: str, artifact_id: str) -> Optional[FractionDescriptor]:
        return self._by_ga.get(f"{group_id}:{artifact_id}")

    def dependencies_of(self, descriptor: FractionDescriptor) -> List[FractionDescriptor]:
        """Direct fraction dependencies of *descriptor*, skipping unknown references."""

        result: List[FractionDescriptor] = []
        for ga in descriptor.dependencies:
            found = self._by_ga.get(ga)
            if found is not None:
                result.append(found)
        return result

    @classmethod
    def from_document(cls, document: Any) -> "FractionCatalog":
        validator.assert_valid(document, "FractionCatalog")
        descriptors: List[FractionDescriptor] = []
        for entry in document["fractions"]:
            descriptors.append(
                FractionDescriptor(
                    group_id=entry["groupId"],
                    artifact_id=entry["artifactId"],
                    version=entry["version"],
                    name=entry.get("name") or entry["artifactId"],
                    packages=tuple(entry.get("packages") or ()),
                    dependencies=tuple(entry.get("dependencies") or ()),
                )
            )
        return cls(descriptors)

    @classmethod
    def load(cls, source: Path | str | bytes | io.IOBase) -> "FractionCatalog":
        """Load a catalog from a YAML or JSON document.

        *source* is a filesystem path (``str`` or :class:`~pathlib.Path`), raw
        document bytes, or an open stream.
        """

        try:
            if isinstance(source, (str, Path)):
                with open(source, "rb") as handle:
                    document = yaml.safe_load(handle)
            else:
                document = yaml.safe_load(source)
        except OSError as exc:
            raise FormatError(f"Cannot read fraction catalog {source}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise FormatError(f"Fraction catalog is not valid YAML: {exc}") from exc
        return cls.from_document(document)

    def as_document(self) -> Mapping[str, Any]:
        return {
            "fractions": [
                {
                    "groupId": d.group_id,
                    "artifactId": d.artifact_id,
                    "version": d.version,
                    "name": d.name,
                    "packages": list(d.packages),
                    "dependencies": list(d.dependencies),
                }
                for d in self._by_ga.values()
            ]
        }
