"""In-memory model of the uber-jar being assembled.

The archive is an ordered mapping from entry path to a content source.  Nothing
touches the output location until :meth:`Archive.export`, which may run once.
"""

from __future__ import annotations

import logging
import os
import tempfile
import zipfile
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Union

from uberjar.contracts.errors import ArchiveError, BuildIOError

__all__ = [
    "METADATA_DIR",
    "Archive",
    "ArchiveAsset",
    "FileAsset",
    "InlineAsset",
    "ZipEntryAsset",
]

_LOGGER = logging.getLogger(__name__)

METADATA_DIR = "META-INF/"

# 1980-01-01 is the earliest timestamp the zip format can represent.
_FIXED_DATE_TIME = (1980, 1, 1, 0, 0, 0)
_FILE_MODE = 0o644 << 16


@dataclass(frozen=True)
class InlineAsset:
    data: bytes

    def read(self, zips: Dict[Path, zipfile.ZipFile] | None = None) -> bytes:
        return self.data


@dataclass(frozen=True)
class FileAsset:
    path: Path

    def read(self, zips: Dict[Path, zipfile.ZipFile] | None = None) -> bytes:
        return self.path.read_bytes()


@dataclass(frozen=True)
class ZipEntryAsset:
    """Leaf entry forwarded from another zip archive."""

    archive_path: Path
    name: str

    def read(self, zips: Dict[Path, zipfile.ZipFile] | None = None) -> bytes:
        if zips is not None and self.archive_path in zips:
            return zips[self.archive_path].read(self.name)
        with zipfile.ZipFile(self.archive_path) as handle:
            return handle.read(self.name)


ArchiveAsset = Union[InlineAsset, FileAsset, ZipEntryAsset]


def _normalise_path(path: str) -> str:
    candidate = str(path).replace("\\", "/").lstrip("/")
    if not candidate or candidate.endswith("/"):
        raise ArchiveError(f"Archive entry path must name a file: {path!r}", path=path)
    segments = candidate.split("/")
    if any(segment in ("", ".", "..") for segment in segments):
        raise ArchiveError(f"Archive entry path is not normalised: {path!r}", path=path)
    return candidate


class Archive:
    """Ordered, collision-checked set of archive entries."""

    def __init__(self, name: str = "uberjar") -> None:
        self.name = name
        self._entries: Dict[str, ArchiveAsset] = {}
        self._exported_to: Path | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and path.lstrip("/") in self._entries

    @property
    def exported(self) -> bool:
        return self._exported_to is not None

    def paths(self) -> List[str]:
        return list(self._entries)

    def get(self, path: str) -> ArchiveAsset:
        return self._entries[_normalise_path(path)]

    def read(self, path: str) -> bytes:
        return self.get(path).read()

    def _check_open(self) -> None:
        if self._exported_to is not None:
            raise ArchiveError(
                f"Archive {self.name!r} was already exported to {self._exported_to}",
                path=self._exported_to,
            )

    def add(self, path: str, asset: ArchiveAsset, *, overwrite: bool = False) -> str:
        """Add *asset* at *path*.

        Collisions are rejected, except that ``overwrite=True`` may replace an
        existing entry under ``META-INF/``.
        """

        self._check_open()
        normalised = _normalise_path(path)
        if normalised in self._entries:
            if not (overwrite and normalised.startswith(METADATA_DIR)):
                raise ArchiveError(f"Duplicate archive entry: {normalised}", path=normalised)
            _LOGGER.debug("Replacing metadata entry %s", normalised)
        self._entries[normalised] = asset
        return normalised

    def add_bytes(self, path: str, data: bytes, *, overwrite: bool = False) -> str:
        return self.add(path, InlineAsset(bytes(data)), overwrite=overwrite)

    def add_text(self, path: str, text: str, *, overwrite: bool = False) -> str:
        return self.add(path, InlineAsset(text.encode("utf-8")), overwrite=overwrite)

    def add_file(self, path: str, source: Path | str) -> str:
        source_path = Path(source)
        if not source_path.is_file():
            raise BuildIOError(f"Source file does not exist: {source_path}", path=source_path)
        return self.add(path, FileAsset(source_path))

    def add_directory(self, source_dir: Path | str, prefix: str) -> List[str]:
        """Copy every file below *source_dir* under *prefix*, in sorted order."""

        root = Path(source_dir)
        if not root.is_dir():
            raise BuildIOError(f"Source directory does not exist: {root}", path=root)
        added: List[str] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            for filename in sorted(filenames):
                full = Path(dirpath) / filename
                relative = full.relative_to(root).as_posix()
                added.append(self.add_file(f"{prefix.rstrip('/')}/{relative}", full))
        return added

    def expand(self, jar_path: Path | str, *, skip_metadata: bool = True) -> List[str]:
        """Forward every leaf entry of *jar_path* into this archive.

        Directory entries are never copied, and entries under ``META-INF/`` are
        skipped so that merged archives cannot clash on their metadata.
        """

        self._check_open()
        source = Path(jar_path)
        try:
            with zipfile.ZipFile(source) as handle:
                infos = handle.infolist()
        except (OSError, zipfile.BadZipFile) as exc:
            raise BuildIOError(f"Cannot read archive {source}: {exc}", path=source) from exc

        added: List[str] = []
        for info in infos:
            if info.is_dir():
                continue
            if skip_metadata and info.filename.startswith(METADATA_DIR):
                continue
            added.append(self.add(info.filename, ZipEntryAsset(source, info.filename)))
        return added

    def export(self, destination: Path | str) -> Path:
        """Write the archive to *destination* and seal it against further changes."""

        self._check_open()
        target = Path(destination)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
            os.close(fd)
        except OSError as exc:
            raise BuildIOError(f"Cannot prepare output location {target}: {exc}", path=target) from exc

        tmp_path = Path(tmp_name)
        try:
            with ExitStack() as stack:
                zips: Dict[Path, zipfile.ZipFile] = {}
                for asset in self._entries.values():
                    if isinstance(asset, ZipEntryAsset) and asset.archive_path not in zips:
                        zips[asset.archive_path] = stack.enter_context(zipfile.ZipFile(asset.archive_path))

                with zipfile.ZipFile(tmp_path, "w", compression=zipfile.ZIP_DEFLATED) as out:
                    for path, asset in self._entries.items():
                        info = zipfile.ZipInfo(path, date_time=_FIXED_DATE_TIME)
                        info.compress_type = zipfile.ZIP_DEFLATED
                        info.external_attr = _FILE_MODE
                        out.writestr(info, asset.read(zips))
            os.replace(tmp_path, target)
        except (OSError, KeyError, zipfile.BadZipFile) as exc:
            tmp_path.unlink(missing_ok=True)
            raise BuildIOError(f"Failed to export archive to {target}: {exc}", path=target) from exc

        self._exported_to = target
        _LOGGER.info("Exported %d entries to %s", len(self._entries), target)
        return target
