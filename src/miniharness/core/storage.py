"""Filesystem helpers shared by the agent manager, message queue and task board.

Identifiers are allocated by scanning a directory for the highest numeric
suffix and then claiming the next one with an exclusive create (``mkdir`` or
``open(..., "x")``).  A process that loses the race sees ``FileExistsError``
and rescans, so two processes never end up with the same id.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_MAX_ALLOCATION_ATTEMPTS = 64


def utc_now() -> str:
    """ISO-8601 UTC timestamp with fixed-width microseconds.

    Fixed width keeps lexicographic order equal to chronological order.
    """
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def max_counter(names: Iterable[str], prefix: str = "", suffix: str = "") -> int:
    """Highest integer found in *names* of the form ``<prefix><int><suffix>``."""
    highest = 0
    for name in names:
        if not name.startswith(prefix) or not name.endswith(suffix):
            continue
        core = name[len(prefix): len(name) - len(suffix) if suffix else None]
        if core.isdigit():
            highest = max(highest, int(core))
    return highest


def allocate_dir(parent: Path, prefix: str, width: int) -> tuple[str, Path]:
    """Claim the next ``<prefix><NNN>`` subdirectory of *parent*."""
    parent.mkdir(parents=True, exist_ok=True)
    for _ in range(_MAX_ALLOCATION_ATTEMPTS):
        n = max_counter((p.name for p in parent.iterdir()), prefix) + 1
        ident = f"{prefix}{n:0{width}d}"
        path = parent / ident
        try:
            path.mkdir()
        except FileExistsError:
            logger.debug("Id %s taken concurrently, rescanning", ident)
            continue
        return ident, path
    raise RuntimeError(f"Could not allocate an id under {parent}")


def allocate_file(
    parent: Path,
    width: int,
    suffix: str,
    render: Callable[[str], str],
) -> tuple[str, Path]:
    """Claim the next ``<NNNN><suffix>`` file in *parent* and write ``render(id)``."""
    parent.mkdir(parents=True, exist_ok=True)
    for _ in range(_MAX_ALLOCATION_ATTEMPTS):
        n = max_counter((p.name for p in parent.iterdir()), "", suffix) + 1
        ident = f"{n:0{width}d}"
        path = parent / f"{ident}{suffix}"
        try:
            with open(path, "x", encoding="utf-8") as f:
                f.write(render(ident))
        except FileExistsError:
            logger.debug("Id %s taken concurrently, rescanning", ident)
            continue
        return ident, path
    raise RuntimeError(f"Could not allocate an id under {parent}")


def read_json(path: Path) -> Any | None:
    """Load a JSON file, returning None when missing or malformed."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as exc:
        logger.debug("Unreadable JSON at %s: %s", path, exc)
        return None


def write_json(path: Path, data: Any) -> None:
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def append_jsonl(path: Path, entry: dict[str, Any]) -> None:
    """Append one timestamped record to a JSON-lines log."""
    record = {**entry, "timestamp": utc_now()}
    with open(path, "a", encoding="utf-8") as f:
        f.write(json.dumps(record, default=str) + "\n")


def read_jsonl(path: Path) -> list[dict[str, Any]]:
    """Read a JSON-lines log, skipping blank and malformed lines."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    records: list[dict[str, Any]] = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            records.append(json.loads(line))
        except ValueError:
            continue
    return records
