"""Uber-jar assembly: dependency management, fraction detection and the build pipeline."""

from __future__ import annotations

from .build_config import BuildConfig, load_build_config
from .build_tool import BuildResult, BuildState, PipelineState, assemble, build
from .dependency_manager import DependencyManager
from .fraction_analyzer import FractionUsageAnalyzer
from .fraction_catalog import FractionCatalog, FractionDescriptor
from .manifest import BuildManifest

__all__ = [
    "BuildConfig",
    "BuildManifest",
    "BuildResult",
    "BuildState",
    "DependencyManager",
    "FractionCatalog",
    "FractionDescriptor",
    "FractionUsageAnalyzer",
    "PipelineState",
    "assemble",
    "build",
    "load_build_config",
]
