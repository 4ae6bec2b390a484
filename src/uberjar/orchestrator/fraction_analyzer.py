"""Detect which catalog fractions a compiled artifact actually uses."""

from __future__ import annotations

import logging
import tempfile
import zipfile
from pathlib import Path
from typing import FrozenSet, Iterator, Set

from uberjar.contracts.errors import AnalysisError
from uberjar.ports.classfile import ClassFileScanner, ClassFormatError
from uberjar.ports.scanner_port import ClassScanner

from .fraction_catalog import FractionCatalog, FractionDescriptor

__all__ = ["FractionUsageAnalyzer"]

_LOGGER = logging.getLogger(__name__)

_NESTED_LIB_DIRS = ("WEB-INF/lib/", "lib/")


def _package_of(class_name: str) -> str:
    head, _, _ = class_name.rpartition(".")
    return head


class FractionUsageAnalyzer:
    """Scan class files and map the packages they reference onto fractions."""

    def __init__(self, catalog: FractionCatalog, scanner: ClassScanner | None = None) -> None:
        self.catalog = catalog
        self.scanner: ClassScanner = scanner if scanner is not None else ClassFileScanner()

    def detect_needed_fractions(self, artifact_path: Path | str) -> FrozenSet[FractionDescriptor]:
        source = Path(artifact_path)
        if not source.is_file():
            raise AnalysisError(f"Artifact to analyze does not exist: {source}", path=source)

        with tempfile.TemporaryDirectory(prefix="uberjar-analyze-") as tmp:
            root = Path(tmp)
            self._unpack(source, root / "root")
            packages = self._referenced_packages(root)

        detected = frozenset(
            descriptor
            for descriptor in self.catalog
            if any(descriptor.exposes(package) for package in packages)
        )
        _LOGGER.debug("Scanned %d packages in %s, %d fractions matched", len(packages), source, len(detected))
        return detected

    def _unpack(self, archive: Path, target: Path) -> None:
        try:
            with zipfile.ZipFile(archive) as handle:
                handle.extractall(target)
                nested = [
                    info.filename
                    for info in handle.infolist()
                    if not info.is_dir()
                    and info.filename.endswith(".jar")
                    and info.filename.startswith(_NESTED_LIB_DIRS)
                ]
        except (OSError, zipfile.BadZipFile) as exc:
            raise AnalysisError(f"Cannot unpack {archive}: {exc}", path=archive) from exc

        for index, name in enumerate(sorted(nested)):
            self._unpack(target / name, target.parent / f"{target.name}-nested-{index}")

    def _class_files(self, root: Path) -> Iterator[Path]:
        for path in sorted(root.rglob("*.class")):
            if path.is_file():
                yield path

    def _referenced_packages(self, root: Path) -> Set[str]:
        packages: Set[str] = set()
        for class_file in self._class_files(root):
            try:
                data = class_file.read_bytes()
            except OSError as exc:
                raise AnalysisError(f"Cannot read {class_file.name}: {exc}", path=class_file) from exc
            try:
                referenced = self.scanner.referenced_classes(data)
            except ClassFormatError as exc:
                raise AnalysisError(f"Unreadable class file {class_file.name}: {exc}", path=class_file) from exc
            except Exception as exc:
                # Scanners may be loaded from configuration and raise anything.
                raise AnalysisError(
                    f"Scanner failed on {class_file.name}: {type(exc).__name__}: {exc}",
                    path=class_file,
                ) from exc
            for name in referenced:
                package = _package_of(name)
                if package:
                    packages.add(package)
        return packages
