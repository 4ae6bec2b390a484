from __future__ import annotations

from pathlib import Path

import pytest

from uberjar.artifacts.artifact_spec import ArtifactSpec
from uberjar.contracts.errors import ConfigurationError


def test_parse_three_part_coordinate_defaults_to_jar() -> None:
    spec = ArtifactSpec.parse("org.wildfly.swarm:jaxrs:2017.1.0")
    assert spec.packaging == "jar"
    assert spec.classifier is None
    assert spec.scope == "compile"
    assert spec.gav == "org.wildfly.swarm:jaxrs:jar:2017.1.0"
    assert spec.msc_gav == "org.wildfly.swarm:jaxrs:2017.1.0"
    assert spec.ga == "org.wildfly.swarm:jaxrs"


def test_parse_with_classifier() -> None:
    spec = ArtifactSpec.parse("com.example:lib:jar:tests:1.2")
    assert spec.classifier == "tests"
    assert spec.gav == "com.example:lib:jar:tests:1.2"
    assert spec.msc_gav == "com.example:lib:1.2:tests"
    assert spec.simple_name == "lib-1.2-tests.jar"


@pytest.mark.parametrize("gav", ["a:b", "a:b:c:d:e:f", "a::1.0", ""])
def test_parse_rejects_malformed_coordinates(gav: str) -> None:
    with pytest.raises(ConfigurationError):
        ArtifactSpec.parse(gav)


def test_repository_path_and_extension_mapping() -> None:
    bundle = ArtifactSpec.parse("org.jboss.modules:jboss-modules:bundle:1.5.2")
    assert bundle.extension == "jar"
    assert bundle.repository_path() == "org/jboss/modules/jboss-modules/1.5.2/jboss-modules-1.5.2.jar"
    assert bundle.pom_path() == "org/jboss/modules/jboss-modules/1.5.2/jboss-modules-1.5.2.pom"

    war = ArtifactSpec.parse("com.example:app:war:1.0")
    assert war.simple_name == "app-1.0.war"


def test_identity_ignores_version_scope_and_file(tmp_path: Path) -> None:
    first = ArtifactSpec.parse("g:a:1.0", scope="compile")
    second = ArtifactSpec.parse("g:a:2.0", scope="runtime", file=tmp_path / "a.jar")
    assert first.key == second.key
    assert first != second

    classified = ArtifactSpec.parse("g:a:jar:sources:1.0")
    assert classified.key != first.key


def test_with_file_returns_new_instance(tmp_path: Path) -> None:
    spec = ArtifactSpec.parse("g:a:1.0")
    resolved = spec.with_file(str(tmp_path / "a.jar"))
    assert spec.file is None
    assert resolved.file == tmp_path / "a.jar"
    assert str(resolved) == "g:a:jar:1.0"
