"""
Persistent storage for learned patterns.

The on-disk document is::

    {"version": "1.0", "lastUpdated": "<iso>", "patterns": [...]}

Writers go through :meth:`KnowledgeStore.transaction`, which takes the
file lock, re-reads the document, lets the caller mutate it and writes it
back atomically. Readers use :meth:`load` and never lock.
"""
from __future__ import annotations

import copy
import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from pydantic import ValidationError

from ..core.errors import CorruptKnowledgeBaseError
from ..core.file_lock import FileLock
from ..core.json_store import atomic_write_json, read_json, utc_iso
from .models import LearnedPattern

logger = logging.getLogger(__name__)

STORE_VERSION = "1.0"


class KnowledgeStore:
    """JSON file store; ``path=None`` keeps everything in memory."""

    def __init__(self, path: Union[str, Path, None] = None, lock: Optional[FileLock] = None) -> None:
        self.path = Path(path) if path else None
        self.lock = lock or (FileLock(self.path) if self.path else None)
        self._memory: List[Dict[str, Any]] = []

    @property
    def persistent(self) -> bool:
        return self.path is not None

    def _read_document(self) -> List[Dict[str, Any]]:
        if self.path is None:
            return copy.deepcopy(self._memory)
        try:
            data = read_json(self.path)
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise CorruptKnowledgeBaseError(
                f"Cannot read knowledge base {self.path}: {exc}", details={"path": str(self.path)}
            ) from exc
        if data is None:
            return []
        if not isinstance(data, dict) or not isinstance(data.get("patterns"), list):
            raise CorruptKnowledgeBaseError(
                f"Knowledge base {self.path} has no 'patterns' list", details={"path": str(self.path)}
            )
        return data["patterns"]

    def load(self) -> List[LearnedPattern]:
        """All stored patterns. Raises CorruptKnowledgeBaseError on unreadable state."""
        records = self._read_document()
        patterns: List[LearnedPattern] = []
        for index, record in enumerate(records):
            try:
                patterns.append(LearnedPattern.from_dict(record))
            except (KeyError, TypeError, ValueError, ValidationError) as exc:
                raise CorruptKnowledgeBaseError(
                    f"Invalid learned pattern #{index} in {self.path or 'memory'}: {exc}",
                    details={"index": index},
                ) from exc
        return patterns

    def save(self, patterns: List[LearnedPattern]) -> None:
        records = [p.to_dict() for p in patterns]
        if self.path is None:
            self._memory = records
            return
        document = {
            "version": STORE_VERSION,
            "lastUpdated": utc_iso(),
            "patterns": records,
        }
        atomic_write_json(self.path, document)

    @contextmanager
    def transaction(self) -> Iterator[List[LearnedPattern]]:
        """Locked read-modify-write; the yielded list is saved when the block exits cleanly."""
        if self.lock is None:
            patterns = self.load()
            yield patterns
            self.save(patterns)
            return
        with self.lock:
            patterns = self.load()
            yield patterns
            self.save(patterns)

    def backup_corrupt(self) -> Optional[Path]:
        """Move an unreadable store aside so a fresh one can be started."""
        if self.path is None or not self.path.exists():
            return None
        stamp = utc_iso().replace(":", "").replace("+", "Z")
        target = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        self.path.rename(target)
        logger.warning("Moved unreadable knowledge base %s to %s", self.path, target)
        return target
