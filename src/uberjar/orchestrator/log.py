"""Light-weight JSONL build journal with size-based rotation."""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from uberjar.contracts.errors import BuildIOError

__all__ = ["BuildJournal"]

_DEFAULT_MAX_BYTES = 10 * 1024 * 1024


def _date_prefix() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d")


class BuildJournal:
    """Append one JSON object per line under ``base_dir/<YYYYMMDD>/``."""

    def __init__(self, base_dir: str | Path, *, max_bytes: int | None = None) -> None:
        self.base_dir = Path(base_dir)
        self.max_bytes = max_bytes or _DEFAULT_MAX_BYTES
        self._lock = threading.Lock()
        self._current: Path | None = None

    @property
    def current_path(self) -> Path | None:
        return self._current

    def _resolve_path(self) -> Path:
        date_dir = self.base_dir / _date_prefix()
        date_dir.mkdir(parents=True, exist_ok=True)

        if self._current is not None and self._current.parent == date_dir and self._current.exists():
            if self._current.stat().st_size < self.max_bytes:
                return self._current

        counter = 0
        while True:
            candidate = date_dir / f"build_{counter:02d}.jsonl"
            if not candidate.exists() or candidate.stat().st_size < self.max_bytes:
                self._current = candidate
                return candidate
            counter += 1

    def append(self, event: Dict[str, Any]) -> Path:
        """Append ``event`` to the active file and return the file path."""

        payload = dict(event)
        payload.setdefault("ts", datetime.now(timezone.utc).isoformat(timespec="milliseconds"))

        line = json.dumps(payload, sort_keys=True, ensure_ascii=False, default=str)
        with self._lock:
            try:
                path = self._resolve_path()
                with path.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
            except OSError as exc:
                raise BuildIOError(f"Cannot write build journal under {self.base_dir}: {exc}", path=self.base_dir) from exc
        return path
