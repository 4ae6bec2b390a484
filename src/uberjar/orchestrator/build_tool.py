"""Uber-jar build pipeline.

The build is a linear state machine::

    CONFIGURING -> ANALYZING_DEPENDENCIES -> RESOLVING_MODULES
        -> MERGING_ARCHIVES -> EMITTING_METADATA -> EXPORTING -> DONE

Each stage function receives the previous :class:`PipelineState` together
with the immutable :class:`BuildConfig` and returns the next state.  Any
exception ends the build; nothing touches the output location before the
export stage, so a failed build never leaves a partial archive behind.
"""

from __future__ import annotations

import enum
import logging
import os
import zipfile
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, Iterator, List, Optional, Tuple

from uberjar.artifacts.archive import Archive
from uberjar.artifacts.artifact_spec import ArtifactSpec, IdentityKey
from uberjar.contracts.errors import BuildIOError, ConfigurationError, ResolutionError
from uberjar.contracts.jsoncanon import jcs_sha256, sha256_file
from uberjar.ports._loader import load_object
from uberjar.ports.classfile import ClassFileScanner
from uberjar.ports.maven_local import MavenLocalRepository, default_local_repository
from uberjar.ports.resolver_port import ArtifactResolver
from uberjar.ports.scanner_port import ClassScanner

from . import manifest as manifest_model
from .build_config import BuildConfig
from .dependency_manager import PROJECT_ROOT, SWARM_GROUP_ID, DependencyManager
from .descriptors import (
    APP_ARTIFACT_PROPERTY,
    JAR_MANIFEST_LOCATION,
    PROPERTIES_LOCATION,
    ApplicationConf,
    BootstrapConf,
    DependenciesConf,
    jar_manifest,
    properties_document,
)
from .fraction_analyzer import FractionUsageAnalyzer
from .fraction_catalog import FractionDescriptor
from .log import BuildJournal

__all__ = [
    "BuildResult",
    "BuildState",
    "PipelineState",
    "analyze_dependencies",
    "assemble",
    "build",
    "configure",
    "emit_metadata",
    "export_archive",
    "merge_archives",
    "output_path",
    "resolve_modules",
    "stripped_swarm_gav",
]

_LOGGER = logging.getLogger(__name__)

MODULE_LOADER_MARKER = "org/jboss/modules/ModuleLoader"
MODULES_ROOT = "modules"
MODULE_DESCRIPTOR = "module.xml"
MODULE_SEARCH_DEPTH = 20
OUTPUT_SUFFIX = "-swarm.jar"


class BuildState(enum.Enum):
    CONFIGURING = "configuring"
    ANALYZING_DEPENDENCIES = "analyzing-dependencies"
    RESOLVING_MODULES = "resolving-modules"
    MERGING_ARCHIVES = "merging-archives"
    EMITTING_METADATA = "emitting-metadata"
    EXPORTING = "exporting"
    DONE = "done"


_ORDER: Tuple[BuildState, ...] = tuple(BuildState)


@dataclass(frozen=True)
class PipelineState:
    """Snapshot handed from one stage to the next."""

    state: BuildState
    archive: Archive
    manager: DependencyManager
    scanner: ClassScanner
    config_digest: str
    detected_fractions: FrozenSet[FractionDescriptor] = frozenset()
    bootstrap: Optional[ArtifactSpec] = None
    output: Optional[Path] = None
    journal: Optional[BuildJournal] = None


@dataclass(frozen=True)
class BuildResult:
    output: Path
    state: BuildState
    detected_fractions: FrozenSet[FractionDescriptor]
    digest: str


def stripped_swarm_gav(spec: ArtifactSpec) -> str:
    """``artifactId:version`` for swarm artifacts, ``msc_gav`` for everything else."""

    if spec.group_id == SWARM_GROUP_ID:
        return f"{spec.artifact_id}:{spec.version}"
    return spec.msc_gav


def output_path(base_name: str, output_dir: Path | str) -> Path:
    return Path(output_dir) / f"{base_name}{OUTPUT_SUFFIX}"


def _expect(state: PipelineState, target: BuildState) -> None:
    expected = _ORDER[_ORDER.index(target) - 1]
    if state.state is not expected:
        raise ConfigurationError(f"Cannot enter {target.name} from {state.state.name}")


def _enter(state: PipelineState, target: BuildState, **changes: Any) -> PipelineState:
    _expect(state, target)
    _LOGGER.info("Build state %s -> %s", state.state.name, target.name)
    if state.journal is not None:
        state.journal.append(
            {
                "event": "transition",
                "from": state.state.value,
                "to": target.value,
                "config_digest": state.config_digest,
            }
        )
    return replace(state, state=target, **changes)


def _resolver_for(config: BuildConfig) -> ArtifactResolver:
    if config.resolver:
        factory = load_object(config.resolver)
        return factory() if callable(factory) else factory
    return MavenLocalRepository(config.local_repository)


def _scanner_for(config: BuildConfig) -> ClassScanner:
    if config.scanner:
        factory = load_object(config.scanner)
        return factory() if callable(factory) else factory
    return ClassFileScanner()


def _validate(config: BuildConfig) -> None:
    if not config.hollow:
        if config.project is None:
            raise ConfigurationError("A project artifact is required unless the build is hollow")
        if config.project.file is None or not config.project.file.is_file():
            raise ConfigurationError(f"Project artifact file does not exist: {config.project.file}")
    for module_dir in config.additional_modules:
        if not Path(module_dir).is_dir():
            raise ConfigurationError(f"Additional module directory does not exist: {module_dir}")


def configure(
    config: BuildConfig,
    *,
    resolver: ArtifactResolver | None = None,
    scanner: ClassScanner | None = None,
) -> PipelineState:
    """Validate *config* and seed the dependency working set."""

    _validate(config)
    digest = jcs_sha256(config.describe())
    _LOGGER.info("Resolved build configuration %s", digest)

    manager = DependencyManager(resolver if resolver is not None else _resolver_for(config))
    for spec in config.dependencies:
        manager.add_dependency(spec)

    journal = BuildJournal(config.journal_dir) if config.journal_dir is not None else None
    state = PipelineState(
        state=BuildState.CONFIGURING,
        archive=Archive(config.project.simple_name if config.project else "hollow"),
        manager=manager,
        scanner=scanner if scanner is not None else _scanner_for(config),
        config_digest=digest,
        journal=journal,
    )
    if journal is not None:
        journal.append({"event": "configured", "config_digest": digest, "config": config.describe()})
    return state


def analyze_dependencies(state: PipelineState, config: BuildConfig) -> PipelineState:
    _expect(state, BuildState.ANALYZING_DEPENDENCIES)
    state.manager.analyze_dependencies(config.resolve_transitive_dependencies)
    return _enter(state, BuildState.ANALYZING_DEPENDENCIES)


def _detect_fractions(state: PipelineState, config: BuildConfig) -> FrozenSet[FractionDescriptor]:
    if not config.auto_detect_fractions:
        _LOGGER.info("No bootstrap dependency found and fraction detection disabled")
        return frozenset()
    if config.fraction_catalog is None:
        raise ConfigurationError("Fraction detection requested, but no fraction catalog provided")
    if config.project is None or config.project.file is None:
        _LOGGER.info("No project artifact to scan for needed fractions")
        return frozenset()

    _LOGGER.info("No bootstrap dependency found; scanning for needed fractions")
    analyzer = FractionUsageAnalyzer(config.fraction_catalog, state.scanner)
    detected = analyzer.detect_needed_fractions(config.project.file)
    _LOGGER.info("Detected fractions: %s", ", ".join(sorted(d.av for d in detected)))
    return detected


def _fraction_specs(config: BuildConfig, detected: FrozenSet[FractionDescriptor]) -> List[ArtifactSpec]:
    selected: Dict[IdentityKey, ArtifactSpec] = {}
    for spec in config.fractions:
        selected[spec.key] = spec
    for descriptor in sorted(detected, key=lambda d: d.ga):
        spec = descriptor.to_artifact_spec()
        selected[spec.key] = spec
    return list(selected.values())


def resolve_modules(state: PipelineState, config: BuildConfig) -> PipelineState:
    """Fall back to declared and detected fractions when no bootstrap artifact is present."""

    _expect(state, BuildState.RESOLVING_MODULES)
    manager = state.manager
    bootstrap = manager.find_bootstrap_artifact()
    detected: FrozenSet[FractionDescriptor] = frozenset()

    if bootstrap is None:
        detected = _detect_fractions(state, config)
        fractions = _fraction_specs(config, detected)

        everything = {spec.key: spec for spec in fractions}
        if config.fraction_catalog is not None:
            for spec in fractions:
                descriptor = config.fraction_catalog.get(spec.group_id, spec.artifact_id)
                if descriptor is None:
                    continue
                for dependency in config.fraction_catalog.dependencies_of(descriptor):
                    dep_spec = dependency.to_artifact_spec()
                    everything.setdefault(dep_spec.key, dep_spec)
        _LOGGER.info(
            "Adding fractions: %s",
            ", ".join(sorted(stripped_swarm_gav(spec) for spec in everything.values())),
        )

        for spec in fractions:
            manager.add_dependency(spec)
        manager.analyze_dependencies(True)

        bootstrap = manager.find_bootstrap_artifact()
        if bootstrap is None:
            raise ResolutionError(
                f"No {SWARM_GROUP_ID}:bootstrap artifact among the resolved dependencies",
                coordinate=f"{SWARM_GROUP_ID}:bootstrap",
            )

    return _enter(state, BuildState.RESOLVING_MODULES, bootstrap=bootstrap, detected_fractions=detected)


def _shades_module_loader(jar: Path) -> bool:
    try:
        with zipfile.ZipFile(jar) as handle:
            return any(name.startswith(MODULE_LOADER_MARKER) for name in handle.namelist())
    except (OSError, zipfile.BadZipFile) as exc:
        raise BuildIOError(f"Cannot read bootstrap archive {jar}: {exc}", path=jar) from exc


def _module_descriptors(root: Path) -> Iterator[Path]:
    # A file directly under root is at depth 1; nothing deeper than the limit is visited.
    for dirpath, dirnames, filenames in os.walk(root):
        depth = len(Path(dirpath).relative_to(root).parts)
        dirnames.sort()
        if depth + 1 >= MODULE_SEARCH_DEPTH:
            dirnames[:] = []
        if MODULE_DESCRIPTOR in filenames:
            yield Path(dirpath) / MODULE_DESCRIPTOR


def merge_archives(state: PipelineState, config: BuildConfig) -> PipelineState:
    _expect(state, BuildState.MERGING_ARCHIVES)
    archive = state.archive
    manager = state.manager
    bootstrap = state.bootstrap
    if bootstrap is None or bootstrap.file is None:
        raise ConfigurationError("Bootstrap artifact must be resolved before merging archives")

    if not _shades_module_loader(bootstrap.file):
        module_loader = manager.find_module_loader_artifact()
        if module_loader is None or module_loader.file is None:
            raise ResolutionError(
                "Bootstrap artifact does not shade the module loader and none was resolved",
                coordinate="org.jboss.modules:jboss-modules",
            )
        archive.expand(module_loader.file)
    archive.expand(bootstrap.file)

    for module_dir in config.additional_modules:
        archive.add_directory(module_dir, MODULES_ROOT)
        for descriptor in _module_descriptors(Path(module_dir)):
            module_id = manager.add_additional_module(descriptor)
            _LOGGER.debug("Registered additional module %s", module_id)

    if not config.hollow and config.project is not None:
        archive.add_file(f"{PROJECT_ROOT}/{config.project.simple_name}", config.project.file)

    if config.bundle_dependencies:
        manager.populate_embedded_repository(archive)
    else:
        manager.populate_external_repository(config.local_repository or default_local_repository())

    return _enter(state, BuildState.MERGING_ARCHIVES)


def _build_manifest(
    state: PipelineState,
    config: BuildConfig,
    bootstrap_conf: BootstrapConf,
) -> manifest_model.BuildManifest:
    built = manifest_model.BuildManifest()
    built.main_class = config.main_class
    built.hollow = config.hollow
    if config.project is not None:
        built.asset = config.project.simple_name
    built.properties = config.properties
    built.bundle_dependencies = config.bundle_dependencies
    for module in state.manager.additional_modules:
        built.add_bootstrap_module(module)
    for entry in bootstrap_conf.entries:
        built.add_bootstrap_artifact(entry)
    for spec in state.manager.dependencies:
        built.add_dependency(spec.msc_gav)
    return built


def emit_metadata(state: PipelineState, config: BuildConfig) -> PipelineState:
    _expect(state, BuildState.EMITTING_METADATA)
    archive = state.archive
    manager = state.manager

    bootstrap_conf = manager.bootstrap_conf()
    dependencies_conf = manager.dependencies_conf()
    project_asset = None if config.hollow or config.project is None else config.project.simple_name
    application_conf = manager.application_conf(project_asset)
    built = _build_manifest(state, config, bootstrap_conf)

    properties = built.merge_properties({}, overwrite=True)
    if project_asset is not None:
        properties[APP_ARTIFACT_PROPERTY] = project_asset

    archive.add_text(JAR_MANIFEST_LOCATION, jar_manifest(built.main_class))
    archive.add_text(manifest_model.CLASSPATH_LOCATION, built.to_yaml())
    archive.add_text(PROPERTIES_LOCATION, properties_document(properties))
    archive.add_text(BootstrapConf.CLASSPATH_LOCATION, str(bootstrap_conf))
    archive.add_text(DependenciesConf.CLASSPATH_LOCATION, str(dependencies_conf))
    archive.add_text(ApplicationConf.CLASSPATH_LOCATION, str(application_conf))

    return _enter(state, BuildState.EMITTING_METADATA)


def export_archive(
    state: PipelineState,
    config: BuildConfig,
    base_name: str,
    output_dir: Path | str,
) -> PipelineState:
    _expect(state, BuildState.EXPORTING)
    target = state.archive.export(output_path(base_name, output_dir))
    return _enter(state, BuildState.EXPORTING, output=target)


_STAGES: Tuple[Callable[[PipelineState, BuildConfig], PipelineState], ...] = (
    analyze_dependencies,
    resolve_modules,
    merge_archives,
    emit_metadata,
)


def _run_to_metadata(
    config: BuildConfig,
    resolver: ArtifactResolver | None,
    scanner: ClassScanner | None,
) -> PipelineState:
    state = configure(config, resolver=resolver, scanner=scanner)
    for stage in _STAGES:
        state = stage(state, config)
    return state


def assemble(
    config: BuildConfig,
    *,
    resolver: ArtifactResolver | None = None,
    scanner: ClassScanner | None = None,
) -> Archive:
    """Run every stage up to metadata emission and return the in-memory archive."""

    return _run_to_metadata(config, resolver, scanner).archive


def build(
    config: BuildConfig,
    base_name: str,
    output_dir: Path | str,
    *,
    resolver: ArtifactResolver | None = None,
    scanner: ClassScanner | None = None,
) -> BuildResult:
    """Assemble the uber-jar and write it to ``<output_dir>/<base_name>-swarm.jar``."""

    state = _run_to_metadata(config, resolver, scanner)
    state = export_archive(state, config, base_name, output_dir)
    assert state.output is not None
    digest = sha256_file(state.output)
    state = _enter(state, BuildState.DONE)
    _LOGGER.info("Built %s (%s)", state.output, digest)
    if state.journal is not None:
        state.journal.append({"event": "built", "output": state.output, "digest": digest})
    return BuildResult(
        output=state.output,
        state=state.state,
        detected_fractions=state.detected_fractions,
        digest=digest,
    )
