"""Artifact descriptors and the archive model."""

from __future__ import annotations

from .archive import Archive, FileAsset, InlineAsset, ZipEntryAsset
from .artifact_spec import ArtifactSpec

__all__ = ["Archive", "ArtifactSpec", "FileAsset", "InlineAsset", "ZipEntryAsset"]
