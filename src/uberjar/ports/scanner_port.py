"""Port for bytecode usage scanning."""

from __future__ import annotations

from typing import Protocol, Set, runtime_checkable


@runtime_checkable
class ClassScanner(Protocol):
    """Reports the classes a compiled class file refers to."""

    def referenced_classes(self, data: bytes) -> Set[str]:
        """Return dotted names of every class referenced by the class file *data*.

        Implementations raise :class:`ValueError` for unreadable input.
        """


__all__ = ["ClassScanner"]
