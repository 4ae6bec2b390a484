"""Ports through which the build reaches its external collaborators."""

from __future__ import annotations

from ._loader import load_object
from .classfile import ClassFileScanner, ClassFormatError
from .maven_local import MavenLocalRepository
from .resolver_port import ArtifactResolver
from .scanner_port import ClassScanner

__all__ = [
    "ArtifactResolver",
    "ClassFileScanner",
    "ClassFormatError",
    "ClassScanner",
    "MavenLocalRepository",
    "load_object",
]
