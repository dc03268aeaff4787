"""
Step mapper: natural-language step text -> IR primitive.

Order of attempts, first hit wins:

1. catalog rules (exact regex match on normalized text)
2. learned patterns from the knowledge base (exact normalized text, then
   edit-distance similarity)
3. fuzzy match against catalog canonical examples
4. blocked, with a keyword-derived category
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, TYPE_CHECKING

from ..core.config import Settings
from ..core.errors import LockTimeoutError
from ..ir import models as ir
from .catalog import PatternCatalog, category_for_primitive
from .glossary import Glossary
from .hints import apply_hints, extract_inline_hints
from .normalize import normalize_step_text

if TYPE_CHECKING:  # pragma: no cover
    from ..knowledge.engine import LearningEngine
    from ..knowledge.models import LearningEvent

logger = logging.getLogger(__name__)

EXACT = "exact-pattern"
FUZZY = "fuzzy-pattern"
LEARNED = "learned"
BLOCKED = "blocked"

STEP_CATEGORIES = ("navigation", "interaction", "assertion", "wait", "unknown")

CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    "navigation": ["navigate", "go to", "open", "visit", "url", "page", "reload", "back", "forward", "redirect"],
    "interaction": ["click", "press", "fill", "enter", "select", "check", "uncheck", "hover", "focus",
                    "clear", "drag", "drop", "upload", "scroll", "submit", "type", "tap"],
    "assertion": ["see", "verify", "should", "expect", "visible", "contain", "display", "show", "assert",
                  "hidden", "title", "match"],
    "wait": ["wait", "until", "load", "appear", "disappear", "idle", "timeout"],
}


def categorize_step(text: str) -> str:
    """Keyword heuristic used for blocked steps; earlier categories win ties."""
    lowered = text.lower()
    best, best_hits = "unknown", 0
    for category, keywords in CATEGORY_KEYWORDS.items():
        hits = sum(1 for kw in keywords if re.search(rf"\b{re.escape(kw)}\b", lowered))
        if hits > best_hits:
            best, best_hits = category, hits
    return best


@dataclass
class MapOptions:
    use_knowledge_base: bool = True
    use_fuzzy: bool = True
    record_usage: bool = True
    context: Optional[str] = None
    fuzzy_threshold: float = 0.85

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "MapOptions":
        values = {
            "use_knowledge_base": settings.use_knowledge_base,
            "record_usage": settings.record_usage,
            "fuzzy_threshold": settings.fuzzy_threshold,
        }
        values.update(overrides)
        return cls(**values)


@dataclass
class StepMappingResult:
    source_text: str
    normalized_text: str
    primitive: Any
    match_source: str
    confidence: float = 1.0
    pattern_id: Optional[str] = None
    message: Optional[str] = None
    category: Optional[str] = None
    similarity: Optional[float] = None
    events: List["LearningEvent"] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return self.match_source == BLOCKED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sourceText": self.source_text,
            "normalizedText": self.normalized_text,
            "primitive": ir.primitive_to_dict(self.primitive) if self.primitive is not None else None,
            "matchSource": self.match_source,
            "confidence": round(self.confidence, 4),
            "patternId": self.pattern_id,
            "message": self.message,
            "category": self.category,
            "similarity": round(self.similarity, 4) if self.similarity is not None else None,
        }


class StepMapper:
    def __init__(
        self,
        catalog: Optional[PatternCatalog] = None,
        knowledge: Optional["LearningEngine"] = None,
        settings: Optional[Settings] = None,
        glossary: Optional[Glossary] = None,
    ) -> None:
        self.catalog = catalog or PatternCatalog(glossary=glossary)
        self.glossary = glossary or self.catalog.glossary
        self.knowledge = knowledge
        self.settings = settings or Settings()

    def normalize(self, text: str) -> str:
        return normalize_step_text(text, self.glossary)

    def map(self, text: str, options: Optional[MapOptions] = None) -> StepMappingResult:
        options = options or MapOptions.from_settings(self.settings)
        source = text or ""
        clean, inline_hints = extract_inline_hints(source)
        result = self._map(source, self.normalize(clean), options)
        if inline_hints and not result.blocked:
            result.primitive = apply_hints(result.primitive, inline_hints)
        return result

    def _map(self, source: str, normalized: str, options: MapOptions) -> StepMappingResult:
        if not normalized:
            return self._blocked(source, normalized, "Step text is empty")

        exact = self.catalog.match(normalized)
        if exact is not None:
            return StepMappingResult(
                source_text=source,
                normalized_text=normalized,
                primitive=exact.primitive,
                match_source=EXACT,
                confidence=exact.rule.confidence,
                pattern_id=exact.rule.id,
                category=exact.rule.category,
            )

        if options.use_knowledge_base and self.knowledge is not None:
            learned = self.knowledge.find_match(source, normalized=normalized)
            if learned is not None:
                result = StepMappingResult(
                    source_text=source,
                    normalized_text=normalized,
                    primitive=learned.pattern.mapped_primitive,
                    match_source=LEARNED,
                    confidence=learned.confidence,
                    pattern_id=learned.pattern.id,
                    similarity=learned.similarity,
                    category=category_for_primitive(learned.pattern.primitive_type),
                    message=f"Matched learned phrasing {learned.pattern.normalized_text!r}",
                )
                if options.record_usage:
                    try:
                        event = self.knowledge.record_match(learned.pattern.id, options.context)
                    except LockTimeoutError as exc:
                        logger.warning("Usage of %s not recorded: %s", learned.pattern.id, exc)
                        event = None
                    if event is not None:
                        result.events.append(event)
                return result

        if options.use_fuzzy:
            fuzzy = self.catalog.fuzzy_match(normalized, options.fuzzy_threshold)
            if fuzzy is not None:
                return StepMappingResult(
                    source_text=source,
                    normalized_text=normalized,
                    primitive=fuzzy.primitive,
                    match_source=FUZZY,
                    confidence=fuzzy.similarity,
                    pattern_id=fuzzy.rule.id,
                    category=fuzzy.rule.category,
                    similarity=fuzzy.similarity,
                    message=f"Closest to {fuzzy.matched_example!r}",
                )

        category = categorize_step(normalized)
        return self._blocked(source, normalized, f"No pattern matches this {category} step", category)

    def _blocked(self, source: str, normalized: str, reason: str, category: str = "unknown") -> StepMappingResult:
        logger.debug("Blocked step %r: %s", source, reason)
        return StepMappingResult(
            source_text=source,
            normalized_text=normalized,
            primitive=ir.Blocked(reason=reason, source_text=source),
            match_source=BLOCKED,
            confidence=0.0,
            message=reason,
            category=category,
        )

    def map_steps(self, steps: Iterable[Any], options: Optional[MapOptions] = None) -> List[StepMappingResult]:
        """
        Map an ordered list of step records.

        Each record is a string or an object/dict with ``text`` and optional
        ``hints``. A failing step never stops the batch.
        """
        results: List[StepMappingResult] = []
        for step in steps:
            if isinstance(step, str):
                text, hints = step, None
            elif isinstance(step, dict):
                text, hints = step.get("text", ""), step.get("hints")
            else:
                text, hints = getattr(step, "text", ""), getattr(step, "hints", None)
            result = self.map(text, options)
            if hints and not result.blocked:
                result.primitive = apply_hints(result.primitive, hints)
            results.append(result)
        return results


def mapping_stats(results: List[StepMappingResult]) -> Dict[str, Any]:
    counts = {EXACT: 0, FUZZY: 0, LEARNED: 0, BLOCKED: 0}
    for result in results:
        counts[result.match_source] = counts.get(result.match_source, 0) + 1
    total = len(results)
    mapped = total - counts[BLOCKED]
    return {
        "total": total,
        "mapped": mapped,
        "bySource": counts,
        "coverage": round(mapped / total, 4) if total else 1.0,
    }
