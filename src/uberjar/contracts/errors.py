"""Error taxonomy shared by every stage of the uber-jar build."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Tuple

SEVERITY_ERROR = "ERROR"


@dataclass(frozen=True)
class ValidationIssue:
    """Single finding produced while checking a metadata document."""

    code: str
    msg: str
    path: str
    severity: str


def make_error(code: str, msg: str, path: str) -> ValidationIssue:
    """Construct an error-level :class:`ValidationIssue`."""

    return ValidationIssue(code=code, msg=msg, path=path, severity=SEVERITY_ERROR)


class BuildError(RuntimeError):
    """Base class for every failure surfaced by the build pipeline."""


class ConfigurationError(BuildError):
    """Raised when the build configuration is invalid or contradictory."""


class ResolutionError(BuildError):
    """Raised when a declared or transitive coordinate cannot be located."""

    def __init__(self, message: str, *, coordinate: str | None = None) -> None:
        super().__init__(message)
        self.coordinate = coordinate


class AnalysisError(BuildError):
    """Raised when a compiled artifact cannot be unpacked or scanned."""

    def __init__(self, message: str, *, path: str | Path | None = None) -> None:
        super().__init__(message)
        self.path = str(path) if path is not None else None


class FormatError(BuildError):
    """Raised when a metadata document is malformed or misses required keys."""

    def __init__(
        self,
        message: str,
        *,
        key: str | None = None,
        issues: Iterable[ValidationIssue] = (),
    ) -> None:
        super().__init__(message)
        self.key = key
        self.issues: Tuple[ValidationIssue, ...] = tuple(issues)


class BuildIOError(BuildError, OSError):
    """Raised when reading a source archive or writing the output fails."""

    def __init__(self, message: str, *, path: str | Path | None = None) -> None:
        BuildError.__init__(self, message)
        self.path = str(path) if path is not None else None

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class ArchiveError(BuildIOError):
    """Raised on entry collisions, invalid entry paths or use after export."""


def format_issues(issues: Iterable[ValidationIssue]) -> List[str]:
    return [f"{issue.path}: {issue.msg} ({issue.code})" for issue in issues]


__all__ = [
    "SEVERITY_ERROR",
    "AnalysisError",
    "ArchiveError",
    "BuildError",
    "BuildIOError",
    "ConfigurationError",
    "FormatError",
    "ResolutionError",
    "ValidationIssue",
    "format_issues",
    "make_error",
]
