"""JSON-lines log of blocked steps, used to find gaps in the pattern catalog."""
from __future__ import annotations

import logging
from collections import Counter, OrderedDict
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..core.json_store import append_jsonl, iter_jsonl, utc_iso
from ..mapping.catalog import phrase_regex
from .engine import BlockedStepAnalysis

logger = logging.getLogger(__name__)


class BlockedStepTelemetry:
    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def record(
        self,
        analysis: BlockedStepAnalysis,
        journey_id: Optional[str] = None,
        user_fix: Optional[str] = None,
    ) -> Dict[str, Any]:
        nearest = analysis.nearest_pattern
        record = {
            "timestamp": utc_iso(),
            "journeyId": journey_id,
            "stepText": analysis.step,
            "normalizedText": analysis.normalized_text,
            "category": analysis.category,
            "reason": analysis.reason,
            "nearestPattern": nearest.name if nearest else None,
            "nearestDistance": nearest.distance if nearest else None,
            "suggestedFix": analysis.suggestions[0].text if analysis.suggestions else None,
        }
        if user_fix:
            record["userFix"] = user_fix
        append_jsonl(self.path, record)
        return record

    def read(self) -> List[Dict[str, Any]]:
        return list(iter_jsonl(self.path))

    def record_user_fix(self, original_text: str, fixed_text: str) -> bool:
        """Append a copy of the latest unfixed record for ``original_text`` carrying the fix."""
        for record in reversed(self.read()):
            if record.get("stepText") == original_text and not record.get("userFix"):
                updated = dict(record, timestamp=utc_iso(), userFix=fixed_text)
                append_jsonl(self.path, updated)
                return True
        return False

    def gaps(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Blocked phrasings grouped by normalized text, most frequent first."""
        groups: "OrderedDict[str, List[Dict[str, Any]]]" = OrderedDict()
        for record in self.read():
            groups.setdefault(record.get("normalizedText", ""), []).append(record)

        gaps = []
        for normalized, records in groups.items():
            timestamps = sorted(r.get("timestamp", "") for r in records)
            variants = list(OrderedDict.fromkeys(r.get("stepText", "") for r in records))
            gaps.append({
                "exampleText": variants[0],
                "normalizedText": normalized,
                "count": len(records),
                "category": records[0].get("category", "unknown"),
                "variants": variants,
                "suggestedPattern": phrase_regex(normalized)[0] if normalized else None,
                "firstSeen": timestamps[0],
                "lastSeen": timestamps[-1],
            })
        gaps.sort(key=lambda g: -g["count"])
        return gaps[:limit] if limit else gaps

    def stats(self, top: int = 5) -> Dict[str, Any]:
        records = self.read()
        by_category = Counter(r.get("category", "unknown") for r in records)
        texts = Counter(r.get("normalizedText", "") for r in records)
        timestamps = sorted(r.get("timestamp", "") for r in records)
        return {
            "totalRecords": len(records),
            "uniquePatterns": len(texts),
            "byCategory": dict(by_category),
            "mostFrequent": [{"normalizedText": t, "count": c} for t, c in texts.most_common(top)],
            "dateRange": {
                "earliest": timestamps[0] if timestamps else "",
                "latest": timestamps[-1] if timestamps else "",
            },
        }

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.info("Cleared blocked-step telemetry at %s", self.path)
