"""Plain-text descriptor documents written into the uber-jar's ``META-INF``."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Mapping

__all__ = [
    "APP_ARTIFACT_PROPERTY",
    "BOOTSTRAP_MAIN_CLASS",
    "JAR_MANIFEST_LOCATION",
    "PROPERTIES_LOCATION",
    "ApplicationConf",
    "BootstrapConf",
    "DependenciesConf",
    "jar_manifest",
    "properties_document",
]

APP_ARTIFACT_PROPERTY = "wildfly.swarm.app.artifact"
BOOTSTRAP_MAIN_CLASS = "org.wildfly.swarm.bootstrap.Main"
JAR_MANIFEST_LOCATION = "META-INF/MANIFEST.MF"
PROPERTIES_LOCATION = "META-INF/wildfly-swarm.properties"
PROPERTIES_HEADER = "Generated by uberjar"


@dataclass
class BootstrapConf:
    """One ``msc_gav`` per line for every artifact the bootstrap must load."""

    CLASSPATH_LOCATION = "META-INF/wildfly-swarm-bootstrap.conf"

    entries: List[str] = field(default_factory=list)

    def add_entry(self, msc_gav: str) -> None:
        if msc_gav not in self.entries:
            self.entries.append(msc_gav)

    def __str__(self) -> str:
        return "".join(f"{entry}\n" for entry in self.entries)


@dataclass
class DependenciesConf:
    """Resolved dependencies, ``primary:`` when declared and ``extra:`` when transitive."""

    CLASSPATH_LOCATION = "META-INF/wildfly-swarm-dependencies.conf"

    primary: List[str] = field(default_factory=list)
    extra: List[str] = field(default_factory=list)

    def add_primary(self, msc_gav: str) -> None:
        self.primary.append(msc_gav)

    def add_extra(self, msc_gav: str) -> None:
        self.extra.append(msc_gav)

    def __str__(self) -> str:
        lines = [f"primary:{entry}" for entry in self.primary]
        lines.extend(f"extra:{entry}" for entry in self.extra)
        return "".join(f"{line}\n" for line in lines)


@dataclass
class ApplicationConf:
    """How the bootstrap locates the application: its archive path and extra modules."""

    CLASSPATH_LOCATION = "META-INF/wildfly-swarm-application.conf"

    paths: List[str] = field(default_factory=list)
    modules: List[str] = field(default_factory=list)

    def add_path(self, path: str) -> None:
        self.paths.append(path)

    def add_module(self, module: str) -> None:
        self.modules.append(module)

    def __str__(self) -> str:
        lines = [f"path:{entry}" for entry in self.paths]
        lines.extend(f"module:{entry}" for entry in self.modules)
        return "".join(f"{line}\n" for line in lines)


def jar_manifest(main_class: str) -> str:
    """Return ``META-INF/MANIFEST.MF`` text launching the bootstrap with *main_class*."""

    lines = [
        "Manifest-Version: 1.0",
        f"Main-Class: {BOOTSTRAP_MAIN_CLASS}",
        f"Wildfly-Swarm-Main-Class: {main_class}",
    ]
    return "\r\n".join(lines) + "\r\n\r\n"


def _escape(text: str, *, is_key: bool) -> str:
    out: List[str] = []
    for index, char in enumerate(text):
        if char == "\\":
            out.append("\\\\")
        elif char == "\t":
            out.append("\\t")
        elif char == "\n":
            out.append("\\n")
        elif char == "\r":
            out.append("\\r")
        elif char == "\f":
            out.append("\\f")
        elif char in "=:#!":
            out.append("\\" + char)
        elif char == " " and (is_key or index == 0):
            out.append("\\ ")
        elif ord(char) < 0x20 or ord(char) > 0x7E:
            out.append(f"\\u{ord(char):04x}" if ord(char) <= 0xFFFF else _surrogates(char))
        else:
            out.append(char)
    return "".join(out)


def _surrogates(char: str) -> str:
    code = ord(char) - 0x10000
    high = 0xD800 + (code >> 10)
    low = 0xDC00 + (code & 0x3FF)
    return f"\\u{high:04x}\\u{low:04x}"


def _render(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def properties_document(properties: Mapping[str, Any]) -> str:
    """Render *properties* in Java ``.properties`` syntax with sorted keys."""

    lines = [f"#{PROPERTIES_HEADER}"]
    for key in sorted(properties, key=str):
        value = properties[key]
        if value is None:
            continue
        lines.append(f"{_escape(str(key), is_key=True)}={_escape(_render(value), is_key=False)}")
    return "\n".join(lines) + "\n"
