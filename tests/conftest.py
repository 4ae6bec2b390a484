from __future__ import annotations

import struct
import zipfile
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import pytest

from uberjar.artifacts.artifact_spec import ArtifactSpec, IdentityKey

FRACTION_MARKER = "META-INF/fraction-manifest.yaml"

Content = Union[bytes, str]


def class_bytes(
    name: str,
    references: Iterable[str] = (),
    descriptors: Iterable[str] = (),
) -> bytes:
    """Return a minimal class file whose constant pool names *references*."""

    pool: List[bytes] = []

    def utf8(text: str) -> int:
        raw = text.encode("utf-8")
        pool.append(struct.pack(">BH", 1, len(raw)) + raw)
        return len(pool)

    def klass(internal: str) -> int:
        index = utf8(internal)
        pool.append(struct.pack(">BH", 7, index))
        return len(pool)

    this_class = klass(name)
    super_class = klass("java/lang/Object")
    for reference in references:
        klass(reference)
    for descriptor in descriptors:
        utf8(descriptor)

    header = struct.pack(">IHHH", 0xCAFEBABE, 0, 52, len(pool) + 1)
    tail = struct.pack(">HHHHHHH", 0x0021, this_class, super_class, 0, 0, 0, 0)
    return header + b"".join(pool) + tail


def write_jar(path: Path, entries: Mapping[str, Content]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as handle:
        for name, data in entries.items():
            handle.writestr(name, data.encode("utf-8") if isinstance(data, str) else data)
    return path


def jar_entries(path: Path) -> List[str]:
    with zipfile.ZipFile(path) as handle:
        return handle.namelist()


def read_entry(path: Path, name: str) -> str:
    with zipfile.ZipFile(path) as handle:
        return handle.read(name).decode("utf-8")


_POM_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<project xmlns="http://maven.apache.org/POM/4.0.0">
  <modelVersion>4.0.0</modelVersion>
  <groupId>{group_id}</groupId>
  <artifactId>{artifact_id}</artifactId>
  <version>{version}</version>
  <dependencies>
{dependencies}
  </dependencies>
</project>
"""

_POM_DEPENDENCY = """    <dependency>
      <groupId>{group_id}</groupId>
      <artifactId>{artifact_id}</artifactId>
      <version>{version}</version>
      <scope>{scope}</scope>
      <optional>{optional}</optional>
    </dependency>"""


class MavenRepo:
    """Writes jars and POMs into a Maven-layout directory under ``tmp_path``."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def install(
        self,
        gav: str,
        *,
        entries: Optional[Mapping[str, Content]] = None,
        dependencies: Sequence[Union[str, Tuple[str, str], Tuple[str, str, bool]]] = (),
        fraction: bool = False,
        pom: bool = True,
    ) -> ArtifactSpec:
        spec = ArtifactSpec.parse(gav)
        contents: Dict[str, Content] = {"META-INF/MANIFEST.MF": "Manifest-Version: 1.0\r\n\r\n"}
        if fraction:
            contents[FRACTION_MARKER] = f"name: {spec.artifact_id}\n"
        contents.update(entries or {})
        jar = write_jar(self.root / spec.repository_path(), contents)

        if pom:
            rendered = []
            for entry in dependencies:
                if isinstance(entry, str):
                    dep_gav, scope, optional = entry, "compile", False
                elif len(entry) == 2:
                    dep_gav, scope = entry  # type: ignore[misc]
                    optional = False
                else:
                    dep_gav, scope, optional = entry  # type: ignore[misc]
                dep = ArtifactSpec.parse(dep_gav)
                rendered.append(
                    _POM_DEPENDENCY.format(
                        group_id=dep.group_id,
                        artifact_id=dep.artifact_id,
                        version=dep.version,
                        scope=scope,
                        optional=str(optional).lower(),
                    )
                )
            (self.root / spec.pom_path()).write_text(
                _POM_TEMPLATE.format(
                    group_id=spec.group_id,
                    artifact_id=spec.artifact_id,
                    version=spec.version,
                    dependencies="\n".join(rendered),
                ),
                encoding="utf-8",
            )
        return spec.with_file(jar)


class FakeResolver:
    """In-memory resolver with canned closures."""

    def __init__(self) -> None:
        self.files: Dict[IdentityKey, ArtifactSpec] = {}
        self.closures: Dict[IdentityKey, List[ArtifactSpec]] = {}
        self.resolve_calls: List[str] = []

    def add(self, spec: ArtifactSpec, closure: Sequence[ArtifactSpec] = ()) -> None:
        self.files[spec.key] = spec
        self.closures[spec.key] = list(closure)

    def resolve(self, spec: ArtifactSpec) -> Optional[ArtifactSpec]:
        self.resolve_calls.append(spec.gav)
        return self.files.get(spec.key)

    def resolve_transitive(self, spec: ArtifactSpec) -> Sequence[ArtifactSpec]:
        return list(self.closures.get(spec.key, ()))


@pytest.fixture
def maven_repo(tmp_path: Path) -> MavenRepo:
    return MavenRepo(tmp_path / "repository")


@pytest.fixture
def fake_resolver() -> FakeResolver:
    return FakeResolver()


SWARM_VERSION = "2017.1.0"

CATALOG_YAML = f"""
fractions:
  - groupId: org.wildfly.swarm
    artifactId: jaxrs
    version: "{SWARM_VERSION}"
    name: JAX-RS
    packages:
      - javax.ws.rs.*
    dependencies:
      - org.wildfly.swarm:container
  - groupId: org.wildfly.swarm
    artifactId: container
    version: "{SWARM_VERSION}"
    packages: []
  - groupId: org.wildfly.swarm
    artifactId: cdi
    version: "{SWARM_VERSION}"
    packages:
      - javax.inject
"""


@pytest.fixture
def catalog_file(tmp_path: Path) -> Path:
    path = tmp_path / "fractions.yaml"
    path.write_text(CATALOG_YAML, encoding="utf-8")
    return path


@pytest.fixture
def swarm_repo(maven_repo: MavenRepo) -> MavenRepo:
    """A repository holding the runtime pieces a JAX-RS application needs."""

    maven_repo.install(
        "org.jboss.modules:jboss-modules:1.5.2",
        entries={
            "org/jboss/modules/Main.class": class_bytes("org/jboss/modules/Main"),
            "org/jboss/modules/ModuleLoader.class": class_bytes("org/jboss/modules/ModuleLoader"),
        },
    )
    maven_repo.install(
        f"org.wildfly.swarm:bootstrap:{SWARM_VERSION}",
        entries={
            "org/wildfly/swarm/bootstrap/Main.class": class_bytes("org/wildfly/swarm/bootstrap/Main"),
        },
    )
    maven_repo.install(
        f"org.wildfly.swarm:container:{SWARM_VERSION}",
        fraction=True,
        dependencies=[
            f"org.wildfly.swarm:bootstrap:{SWARM_VERSION}",
            "org.jboss.modules:jboss-modules:1.5.2",
            ("junit:junit:4.12", "test"),
        ],
    )
    maven_repo.install(
        f"org.wildfly.swarm:jaxrs:{SWARM_VERSION}",
        fraction=True,
        entries={"org/wildfly/swarm/jaxrs/JAXRSFraction.class": class_bytes("org/wildfly/swarm/jaxrs/JAXRSFraction")},
        dependencies=[f"org.wildfly.swarm:container:{SWARM_VERSION}"],
    )
    return maven_repo


@pytest.fixture
def project_war(tmp_path: Path) -> ArtifactSpec:
    """A web archive whose classes use JAX-RS annotations."""

    war = write_jar(
        tmp_path / "project" / "app-1.0.war",
        {
            "WEB-INF/web.xml": "<web-app/>",
            "WEB-INF/classes/com/example/Resource.class": class_bytes(
                "com/example/Resource",
                references=["javax/ws/rs/core/Response"],
                descriptors=["Ljavax/ws/rs/Path;"],
            ),
            "index.html": "<html></html>",
        },
    )
    return ArtifactSpec.parse("com.example:app:war:1.0", file=war)
