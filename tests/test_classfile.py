from __future__ import annotations

import struct

import pytest

from conftest import class_bytes
from uberjar.ports.classfile import ClassFileScanner, ClassFormatError
from uberjar.ports.scanner_port import ClassScanner


def test_collects_class_constants_and_descriptors() -> None:
    data = class_bytes(
        "com/example/Resource",
        references=["javax/ws/rs/core/Response", "[Ljavax/inject/Provider;", "[I"],
        descriptors=["Ljavax/ws/rs/Path;", "(Ljava/util/List<Ljavax/enterprise/Event;>;)V"],
    )
    found = ClassFileScanner().referenced_classes(data)
    assert {
        "com.example.Resource",
        "java.lang.Object",
        "javax.ws.rs.core.Response",
        "javax.inject.Provider",
        "javax.ws.rs.Path",
        "java.util.List",
        "javax.enterprise.Event",
    } <= found
    assert not any(name.startswith("[") for name in found)


def test_scanner_satisfies_port() -> None:
    assert isinstance(ClassFileScanner(), ClassScanner)


def test_wide_constants_take_two_slots() -> None:
    pool = [
        struct.pack(">Bq", 5, 42),  # Long at 1, slot 2 unusable
        struct.pack(">BH", 1, 12) + b"com/x/Target",  # Utf8 at 3
        struct.pack(">BH", 7, 3),  # Class at 4
    ]
    data = struct.pack(">IHHH", 0xCAFEBABE, 0, 52, 5) + b"".join(pool)
    assert ClassFileScanner().referenced_classes(data) == {"com.x.Target"}


@pytest.mark.parametrize(
    "data",
    [
        b"",
        b"\x00\x00\x00\x00" + b"\x00" * 8,
        struct.pack(">IHHH", 0xCAFEBABE, 0, 52, 3) + struct.pack(">BH", 1, 50) + b"short",
        struct.pack(">IHHH", 0xCAFEBABE, 0, 52, 2) + b"\x63",
    ],
)
def test_malformed_class_files(data: bytes) -> None:
    with pytest.raises(ClassFormatError):
        ClassFileScanner().referenced_classes(data)
