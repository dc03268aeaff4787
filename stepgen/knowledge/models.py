"""Records persisted by the knowledge base."""
from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.json_store import parse_iso, utc_iso
from ..ir import models as ir

CANDIDATE = "candidate"
TRUSTED = "trusted"
PROMOTED = "promoted"
ARCHIVED = "archived"
DISCARDED = "discarded"

STATES = (CANDIDATE, TRUSTED, PROMOTED, ARCHIVED, DISCARDED)
ACTIVE_STATES = (CANDIDATE, TRUSTED)

EVENT_TYPES = ("matched", "confirmed", "failed")


def pattern_id_for(normalized_text: str) -> str:
    """Content-derived id, stable across runs and knowledge base instances."""
    digest = hashlib.sha256(normalized_text.encode("utf-8")).hexdigest()
    return f"lp-{digest[:12]}"


def _timestamp(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not value:
        return utc_iso()
    if not isinstance(value, str):
        raise ValueError(f"{key} must be an ISO timestamp, got {value!r}")
    try:
        parse_iso(value)
    except ValueError as exc:
        raise ValueError(f"{key} is not an ISO timestamp: {value!r}") from exc
    return value


@dataclass
class LearnedPattern:
    id: str
    original_text: str
    normalized_text: str
    mapped_primitive: Any
    confidence: float = 0.5
    success_count: int = 0
    fail_count: int = 0
    match_count: int = 0
    source_contexts: List[str] = field(default_factory=list)
    created_at: str = field(default_factory=utc_iso)
    last_used: str = field(default_factory=utc_iso)
    state: str = CANDIDATE
    promoted_rule_id: Optional[str] = None

    @property
    def promoted(self) -> bool:
        return self.state == PROMOTED

    @property
    def active(self) -> bool:
        return self.state in ACTIVE_STATES

    @property
    def primitive_type(self) -> str:
        return self.mapped_primitive.type

    def add_context(self, context: Optional[str]) -> None:
        if context and context not in self.source_contexts:
            self.source_contexts.append(context)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "originalText": self.original_text,
            "normalizedText": self.normalized_text,
            "mappedPrimitive": ir.primitive_to_dict(self.mapped_primitive),
            "confidence": round(self.confidence, 6),
            "successCount": self.success_count,
            "failCount": self.fail_count,
            "matchCount": self.match_count,
            "sourceContexts": list(self.source_contexts),
            "createdAt": self.created_at,
            "lastUsed": self.last_used,
            "state": self.state,
            "promoted": self.promoted,
            "promotedRuleId": self.promoted_rule_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LearnedPattern":
        state = data.get("state") or (PROMOTED if data.get("promoted") else CANDIDATE)
        if state not in STATES:
            raise ValueError(f"Unknown learned pattern state {state!r}")
        return cls(
            id=data["id"],
            original_text=data.get("originalText", data["normalizedText"]),
            normalized_text=data["normalizedText"],
            mapped_primitive=ir.primitive_from_dict(data["mappedPrimitive"]),
            confidence=float(data.get("confidence", 0.5)),
            success_count=int(data.get("successCount", 0)),
            fail_count=int(data.get("failCount", 0)),
            match_count=int(data.get("matchCount", 0)),
            source_contexts=list(data.get("sourceContexts", [])),
            created_at=_timestamp(data, "createdAt"),
            last_used=_timestamp(data, "lastUsed"),
            state=state,
            promoted_rule_id=data.get("promotedRuleId"),
        )


@dataclass
class LearningEvent:
    event: str
    pattern_id: str
    context: Optional[str]
    timestamp: str = field(default_factory=utc_iso)

    def __post_init__(self) -> None:
        if self.event not in EVENT_TYPES:
            raise ValueError(f"Unknown learning event {self.event!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event,
            "patternId": self.pattern_id,
            "context": self.context,
            "timestamp": self.timestamp,
        }
