"""Contracts shared across the uber-jar build: errors, schemas, canonical digests."""

from __future__ import annotations

from .errors import (
    AnalysisError,
    ArchiveError,
    BuildError,
    BuildIOError,
    ConfigurationError,
    FormatError,
    ResolutionError,
    ValidationIssue,
)
from .validator import assert_valid, validate

__all__ = [
    "AnalysisError",
    "ArchiveError",
    "BuildError",
    "BuildIOError",
    "ConfigurationError",
    "FormatError",
    "ResolutionError",
    "ValidationIssue",
    "assert_valid",
    "validate",
]
