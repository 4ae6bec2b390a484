from __future__ import annotations

import io
from pathlib import Path

import pytest
import yaml

from conftest import write_jar
from uberjar.contracts import validate
from uberjar.contracts.errors import BuildIOError, FormatError
from uberjar.orchestrator.manifest import (
    BUNDLED_DEPENDENCIES_PROPERTY,
    CLASSPATH_LOCATION,
    DEFAULT_MAIN_CLASS,
    BuildManifest,
)


def _populated() -> BuildManifest:
    manifest = BuildManifest()
    manifest.asset = "app-1.0.war"
    manifest.main_class = "com.example.Main"
    manifest.properties = {"swarm.http.port": 8081, "swarm.debug": True, "name": "demo"}
    manifest.add_bootstrap_module("com.example.ext:main")
    manifest.add_bootstrap_artifact("org.wildfly.swarm:jaxrs:2017.1.0")
    manifest.add_bootstrap_artifact("org.wildfly.swarm:jaxrs:2017.1.0")
    manifest.add_dependency("org.example:lib:1.0")
    manifest.bundle_dependencies = False
    return manifest


def test_defaults() -> None:
    manifest = BuildManifest()
    assert manifest.main_class == DEFAULT_MAIN_CLASS
    assert manifest.asset is None
    assert manifest.hollow is False
    assert manifest.bundle_dependencies is True
    assert manifest.bundle_dependencies_setting is None


def test_hollow_clears_and_blocks_asset() -> None:
    manifest = BuildManifest()
    manifest.asset = "app.war"
    manifest.hollow = True
    assert manifest.asset is None
    manifest.asset = "other.war"
    assert manifest.asset is None
    manifest.hollow = False
    manifest.asset = "other.war"
    assert manifest.asset == "other.war"


def test_none_main_class_keeps_previous_value() -> None:
    manifest = BuildManifest()
    manifest.main_class = "com.example.Main"
    manifest.main_class = None
    assert manifest.main_class == "com.example.Main"


def test_yaml_uses_fixed_key_order_and_block_style() -> None:
    text = _populated().to_yaml()
    keys = [line.split(":", 1)[0] for line in text.splitlines() if line and not line.startswith((" ", "-"))]
    assert keys == [
        "asset",
        "main-class",
        "hollow",
        "properties",
        "modules",
        "bootstrap-artifacts",
        "bundle-dependencies",
        "dependencies",
    ]
    assert "{" not in text
    assert text.count("org.wildfly.swarm:jaxrs:2017.1.0") == 1


def test_asset_key_omitted_when_unset() -> None:
    assert "asset" not in yaml.safe_load(BuildManifest().to_yaml())


def test_write_then_read_is_identity(tmp_path: Path) -> None:
    original = _populated()
    target = original.write(tmp_path / "nested" / "manifest.yaml")
    assert BuildManifest.read(target) == original
    assert BuildManifest.read(str(target)) == original
    assert BuildManifest.read(target.read_bytes()) == original
    assert BuildManifest.read(io.BytesIO(target.read_bytes())) == original


def test_missing_required_key_names_the_key() -> None:
    document = _populated().as_document()
    del document["main-class"]
    with pytest.raises(FormatError) as excinfo:
        BuildManifest.from_document(document)
    assert excinfo.value.key == "main-class"
    assert excinfo.value.issues


def test_wrong_type_names_the_key() -> None:
    document = _populated().as_document()
    document["hollow"] = "yes"
    with pytest.raises(FormatError) as excinfo:
        BuildManifest.from_document(document)
    assert excinfo.value.key == "hollow"


def test_non_string_property_keys_are_rejected() -> None:
    text = "main-class: x\nhollow: false\nproperties:\n  1: one\nmodules: []\nbootstrap-artifacts: []\ndependencies: []\n"
    with pytest.raises(FormatError) as excinfo:
        BuildManifest.read(text.encode("utf-8"))
    assert excinfo.value.key == "properties"


def test_invalid_yaml_and_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FormatError):
        BuildManifest.read(b"main-class: [unterminated")
    with pytest.raises(BuildIOError):
        BuildManifest.read(tmp_path / "absent.yaml")


def test_hollow_document_drops_asset() -> None:
    document = _populated().as_document()
    document["hollow"] = True
    assert BuildManifest.from_document(document).asset is None


def test_from_archive(tmp_path: Path) -> None:
    original = _populated()
    jar = write_jar(tmp_path / "app-swarm.jar", {CLASSPATH_LOCATION: original.to_yaml()})
    assert BuildManifest.from_archive(jar) == original

    empty = write_jar(tmp_path / "empty.jar", {"a.txt": "a"})
    with pytest.raises(FormatError):
        BuildManifest.from_archive(empty)


def test_merge_properties_never_overwrites_by_default() -> None:
    manifest = _populated()
    manifest.bundle_dependencies = True
    base = {"swarm.http.port": "8080", BUNDLED_DEPENDENCIES_PROPERTY: "false"}

    merged = manifest.merge_properties(base)
    assert merged["swarm.http.port"] == "8080"
    assert merged["swarm.debug"] == "true"
    assert merged["name"] == "demo"
    assert merged[BUNDLED_DEPENDENCIES_PROPERTY] == "false"
    assert base == {"swarm.http.port": "8080", BUNDLED_DEPENDENCIES_PROPERTY: "false"}

    forced = manifest.merge_properties(base, overwrite=True)
    assert forced["swarm.http.port"] == "8081"
    assert forced[BUNDLED_DEPENDENCIES_PROPERTY] == "true"


def test_merge_properties_bundled_flag_requires_explicit_true() -> None:
    manifest = BuildManifest()
    assert BUNDLED_DEPENDENCIES_PROPERTY not in manifest.merge_properties({})
    manifest.bundle_dependencies = False
    assert BUNDLED_DEPENDENCIES_PROPERTY not in manifest.merge_properties({})


def test_validate_reports_every_issue() -> None:
    assert validate(_populated().as_document(), "BuildManifest") == []

    issues = validate({"hollow": "no"}, "BuildManifest")
    codes = {issue.code for issue in issues}
    assert "schema.required" in codes
    assert "schema.type" in codes
    assert all(issue.severity == "ERROR" for issue in issues)
