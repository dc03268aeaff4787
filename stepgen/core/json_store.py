"""JSON file helpers: atomic writes and JSON-lines append/read."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def utc_iso(moment: datetime | None = None) -> str:
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.isoformat()


def parse_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _ensure_parent(path: Path) -> None:
    folder = path.parent
    if str(folder) and not folder.exists():
        folder.mkdir(parents=True, exist_ok=True)


def read_json(path: PathLike) -> Any:
    """Load a JSON document. Missing file -> None; parse errors propagate."""
    path = Path(path)
    if not path.exists():
        return None
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def atomic_write_json(path: PathLike, data: Any) -> None:
    """Write to a sibling temp file, then rename over the target."""
    path = Path(path)
    _ensure_parent(path)
    tmp_path = path.with_suffix(path.suffix + f".{os.getpid()}.tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.write("\n")
    os.replace(tmp_path, path)


def append_jsonl(path: PathLike, record: Dict[str, Any]) -> None:
    path = Path(path)
    _ensure_parent(path)
    with open(path, "a", encoding="utf-8") as f:
        f.write(json.dumps(record, ensure_ascii=False, sort_keys=True))
        f.write("\n")


def iter_jsonl(path: PathLike) -> Iterator[Dict[str, Any]]:
    """Yield records from a JSON-lines file, skipping lines that do not parse."""
    path = Path(path)
    if not path.exists():
        return
    with open(path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                logger.warning("Skipping unreadable line %d in %s", lineno, path)
                continue
            if isinstance(record, dict):
                yield record
