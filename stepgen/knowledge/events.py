"""Append-only audit trail of learning events."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Union

from ..core.json_store import append_jsonl, iter_jsonl
from .models import LearningEvent

logger = logging.getLogger(__name__)


class LearningEventLog:
    """JSON-lines file of ``{event, patternId, context, timestamp}`` records."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def append(self, event: LearningEvent) -> None:
        append_jsonl(self.path, event.to_dict())

    def extend(self, events: Iterable[Optional[LearningEvent]]) -> int:
        count = 0
        for event in events:
            if event is None:
                continue
            self.append(event)
            count += 1
        if count:
            logger.debug("Appended %d learning events to %s", count, self.path)
        return count

    def read(self, pattern_id: Optional[str] = None) -> List[LearningEvent]:
        events = []
        for record in iter_jsonl(self.path):
            if pattern_id and record.get("patternId") != pattern_id:
                continue
            try:
                events.append(
                    LearningEvent(
                        event=record["event"],
                        pattern_id=record["patternId"],
                        context=record.get("context"),
                        timestamp=record.get("timestamp", ""),
                    )
                )
            except (KeyError, ValueError) as exc:
                logger.warning("Skipping malformed learning event %r: %s", record, exc)
        return events
