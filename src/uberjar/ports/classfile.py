"""Constant-pool based class file scanner.

Referenced types are collected from two places in the constant pool:
``CONSTANT_Class`` entries (types the code touches directly) and type
descriptors embedded in ``CONSTANT_Utf8`` entries, which is where annotation
types, field types and method signatures live.
"""

from __future__ import annotations

import re
import struct
from typing import List, Optional, Set, Tuple

__all__ = ["ClassFileScanner", "ClassFormatError"]

_MAGIC = 0xCAFEBABE

_TAG_UTF8 = 1
_TAG_CLASS = 7
# Fixed payload sizes for every other constant pool tag.
_FIXED_SIZES = {
    3: 4,  # Integer
    4: 4,  # Float
    5: 8,  # Long
    6: 8,  # Double
    8: 2,  # String
    9: 4,  # Fieldref
    10: 4,  # Methodref
    11: 4,  # InterfaceMethodref
    12: 4,  # NameAndType
    15: 3,  # MethodHandle
    16: 2,  # MethodType
    17: 4,  # Dynamic
    18: 4,  # InvokeDynamic
    19: 2,  # Module
    20: 2,  # Package
}
_WIDE_TAGS = {5, 6}

_DESCRIPTOR_RE = re.compile(r"L([A-Za-z_$][\w$]*(?:/[A-Za-z_$][\w$]*)+)[;<]")


class ClassFormatError(ValueError):
    """Raised when bytes do not form a readable class file."""


def _internal_to_dotted(name: str) -> Optional[str]:
    stripped = name.lstrip("[")
    if stripped != name:
        # array class, e.g. "[Ljava/lang/String;" or "[I"
        if not (stripped.startswith("L") and stripped.endswith(";")):
            return None
        stripped = stripped[1:-1]
    if not stripped:
        return None
    return stripped.replace("/", ".")


def _read_constant_pool(data: bytes) -> Tuple[List[Optional[str]], List[int]]:
    if len(data) < 10:
        raise ClassFormatError("class file is truncated")
    magic, _minor, _major, count = struct.unpack_from(">IHHH", data, 0)
    if magic != _MAGIC:
        raise ClassFormatError(f"bad magic number 0x{magic:08X}")

    utf8: List[Optional[str]] = [None] * count
    class_refs: List[int] = []
    offset = 10
    index = 1
    try:
        while index < count:
            tag = data[offset]
            offset += 1
            if tag == _TAG_UTF8:
                (length,) = struct.unpack_from(">H", data, offset)
                offset += 2
                raw = data[offset : offset + length]
                if len(raw) != length:
                    raise ClassFormatError("truncated Utf8 constant")
                utf8[index] = raw.decode("utf-8", errors="replace")
                offset += length
            elif tag == _TAG_CLASS:
                (name_index,) = struct.unpack_from(">H", data, offset)
                class_refs.append(name_index)
                offset += 2
            elif tag in _FIXED_SIZES:
                offset += _FIXED_SIZES[tag]
            else:
                raise ClassFormatError(f"unknown constant pool tag {tag} at index {index}")
            index += 2 if tag in _WIDE_TAGS else 1
    except (IndexError, struct.error) as exc:
        raise ClassFormatError("class file is truncated") from exc

    if offset > len(data):
        raise ClassFormatError("class file is truncated")
    return utf8, class_refs


class ClassFileScanner:
    """Default :class:`~uberjar.ports.scanner_port.ClassScanner` implementation."""

    def referenced_classes(self, data: bytes) -> Set[str]:
        utf8, class_refs = _read_constant_pool(bytes(data))
        found: Set[str] = set()

        for name_index in class_refs:
            if name_index <= 0 or name_index >= len(utf8) or utf8[name_index] is None:
                raise ClassFormatError(f"class constant points at invalid index {name_index}")
            dotted = _internal_to_dotted(utf8[name_index] or "")
            if dotted:
                found.add(dotted)

        for text in utf8:
            if not text or "L" not in text:
                continue
            for match in _DESCRIPTOR_RE.finditer(text):
                found.add(match.group(1).replace("/", "."))

        return found
