#!/usr/bin/env python3
"""Smoke-test that two builds from the same configuration are byte-identical."""

from __future__ import annotations

import argparse
import sys
import tempfile
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from uberjar.contracts.errors import BuildError
from uberjar.orchestrator import build, load_build_config
from uberjar.project_config import CONFIG_FILENAME


def _build_once(config_path: Path, base_name: str, output_dir: Path) -> str:
    config = load_build_config(config_path)
    result = build(config, base_name, output_dir)
    return result.digest


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "config",
        nargs="?",
        type=Path,
        default=Path(CONFIG_FILENAME),
        help=f"Build configuration file (default: {CONFIG_FILENAME}).",
    )
    parser.add_argument("--name", default="smoke", help="Base name of the output archive.")
    args = parser.parse_args(argv)

    try:
        with tempfile.TemporaryDirectory(prefix="uberjar-smoke-") as tmp:
            first = _build_once(args.config, args.name, Path(tmp) / "first")
            second = _build_once(args.config, args.name, Path(tmp) / "second")
    except BuildError as exc:
        print(f"build failed: {exc}")
        return 1

    if first != second:
        print(f"determinism failed: {first} vs {second}")
        return 1

    print(f"Determinism smoke-test passed ({first}).")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
