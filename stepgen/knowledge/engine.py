"""
Learning engine: confidence bookkeeping and lifecycle of learned patterns.

Lifecycle per pattern::

    candidate -> trusted -> promoted
    candidate/trusted -> archived     (unused past the retention window)
    candidate -> discarded            (too many failures)

Reads are served from an in-memory snapshot; every mutation runs as a
locked read-modify-write against the store and refreshes the snapshot.
If the stored state cannot be read the engine logs it and runs
catalog-only: lookups find nothing and writes are skipped.
"""
from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from ..core.config import Settings
from ..core.errors import CorruptKnowledgeBaseError, LockTimeoutError
from ..core.json_store import parse_iso, utc_iso
from ..mapping.catalog import PatternCatalog, rule_from_phrase
from ..mapping.glossary import Glossary
from ..mapping.normalize import normalize_step_text
from ..mapping.similarity import similarity
from .confidence import pattern_confidence, success_rate
from .models import (
    ACTIVE_STATES,
    ARCHIVED,
    CANDIDATE,
    DISCARDED,
    PROMOTED,
    TRUSTED,
    LearnedPattern,
    LearningEvent,
    pattern_id_for,
)
from .store import KnowledgeStore

logger = logging.getLogger(__name__)


@dataclass
class LearnedMatch:
    pattern: LearnedPattern
    similarity: float
    confidence: float


@dataclass
class PromotionResult:
    pattern_id: str
    rule_id: str
    normalized_text: str
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patternId": self.pattern_id,
            "ruleId": self.rule_id,
            "normalizedText": self.normalized_text,
            "confidence": round(self.confidence, 4),
        }


@dataclass
class MaintenanceReport:
    promoted: List[PromotionResult] = field(default_factory=list)
    archived: List[str] = field(default_factory=list)
    merged: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "promoted": [p.to_dict() for p in self.promoted],
            "archived": list(self.archived),
            "merged": self.merged,
        }


def _camel_words(text: str, limit: int = 6) -> str:
    words = re.findall(r"[a-z0-9]+", text.lower())[:limit]
    if not words:
        return "pattern"
    return words[0] + "".join(w.capitalize() for w in words[1:])


def learned_rule_id(pattern: LearnedPattern) -> str:
    return f"learned-{pattern.primitive_type}-{_camel_words(pattern.normalized_text)}"


class LearningEngine:
    def __init__(
        self,
        store: Optional[KnowledgeStore] = None,
        settings: Optional[Settings] = None,
        glossary: Optional[Glossary] = None,
        z: Optional[float] = None,
    ) -> None:
        self.store = store or KnowledgeStore()
        self.settings = settings or Settings()
        self.glossary = glossary
        self.z = z if z is not None else self.settings.wilson_z
        self.available = True
        self.error: Optional[str] = None
        self._patterns: List[LearnedPattern] = []
        self._maintenance_lock = threading.Lock()
        self.reload()

    # ------------------------------------------------------------------
    # snapshot handling

    def normalize(self, text: str) -> str:
        return normalize_step_text(text, self.glossary)

    def reload(self) -> None:
        try:
            self._patterns = self.store.load()
        except CorruptKnowledgeBaseError as exc:
            self._degrade(exc)
            return
        self.available = True
        self.error = None
        logger.debug("Knowledge base loaded with %d patterns", len(self._patterns))

    def _degrade(self, exc: CorruptKnowledgeBaseError) -> None:
        logger.error("Knowledge base unavailable, continuing catalog-only: %s", exc)
        self.available = False
        self.error = str(exc)
        self._patterns = []

    def reset(self) -> None:
        """Start a fresh store after corruption (the unreadable file is kept aside)."""
        self.store.backup_corrupt()
        self.store.save([])
        self.reload()

    def patterns(self, include_inactive: bool = True) -> List[LearnedPattern]:
        if include_inactive:
            return list(self._patterns)
        return [p for p in self._patterns if p.active]

    def get(self, pattern_id: str) -> Optional[LearnedPattern]:
        for pattern in self._patterns:
            if pattern.id == pattern_id:
                return pattern
        return None

    def _mutate(self, operation):
        """Run ``operation(patterns)`` inside a store transaction; None when degraded."""
        if not self.available:
            logger.warning("Knowledge base is degraded; skipping write")
            return None
        try:
            with self.store.transaction() as patterns:
                result = operation(patterns)
                snapshot = list(patterns)
        except CorruptKnowledgeBaseError as exc:
            self._degrade(exc)
            return None
        except LockTimeoutError:
            logger.error("Could not acquire knowledge base lock; update dropped")
            raise
        self._patterns = snapshot
        return result

    # ------------------------------------------------------------------
    # confidence and state

    def _score(self, pattern: LearnedPattern) -> None:
        pattern.confidence = pattern_confidence(pattern.success_count, pattern.fail_count, self.z)

    def _update_state(self, pattern: LearnedPattern) -> None:
        s = self.settings
        if pattern.state in (PROMOTED, ARCHIVED):
            return
        rate = success_rate(pattern.success_count, pattern.fail_count)
        if pattern.fail_count > s.max_fail_count and rate < s.min_success_rate:
            if pattern.state != DISCARDED:
                logger.info("Discarding learned pattern %s (%d failures)", pattern.id, pattern.fail_count)
            pattern.state = DISCARDED
            return
        if pattern.confidence >= s.trusted_confidence and pattern.success_count >= 2:
            pattern.state = TRUSTED
        else:
            pattern.state = CANDIDATE

    # ------------------------------------------------------------------
    # lookups

    def find_match(self, text: str, normalized: Optional[str] = None) -> Optional[LearnedMatch]:
        """
        Learned pattern for the step: exact normalized text first, then the
        most similar active entry at or above the similarity threshold.
        Promoted entries are served by the catalog and skipped here.
        """
        if not self.available:
            return None
        normalized = normalized if normalized is not None else self.normalize(text)
        min_confidence = self.settings.learned_min_confidence
        candidates = [p for p in self._patterns if p.active and p.confidence >= min_confidence]

        for pattern in candidates:
            if pattern.normalized_text == normalized:
                return LearnedMatch(pattern=pattern, similarity=1.0, confidence=pattern.confidence)

        best: Optional[LearnedMatch] = None
        for pattern in candidates:
            score = similarity(normalized, pattern.normalized_text)
            if score >= self.settings.learned_similarity_threshold and (best is None or score > best.similarity):
                best = LearnedMatch(pattern=pattern, similarity=score, confidence=pattern.confidence)
        return best

    # ------------------------------------------------------------------
    # recording

    def _find_by_text(self, patterns: List[LearnedPattern], normalized: str) -> Optional[LearnedPattern]:
        for pattern in patterns:
            if pattern.normalized_text == normalized:
                return pattern
        return None

    def record_success(self, text: str, primitive, context: Optional[str] = None) -> Optional[LearningEvent]:
        """Confirmed successful use of ``primitive`` for ``text``."""
        normalized = self.normalize(text)
        now = utc_iso()

        def operation(patterns: List[LearnedPattern]) -> LearningEvent:
            pattern = self._find_by_text(patterns, normalized)
            if pattern is None:
                candidate = LearnedPattern(
                    id=pattern_id_for(normalized),
                    original_text=text,
                    normalized_text=normalized,
                    mapped_primitive=primitive,
                    success_count=1,
                    created_at=now,
                    last_used=now,
                )
                candidate.add_context(context)
                self._score(candidate)
                merged_into = self._merge_candidate(patterns, candidate)
                if merged_into is None:
                    patterns.append(candidate)
                    logger.info("New learned candidate %s for %r", candidate.id, normalized)
                    pattern = candidate
                else:
                    pattern = merged_into
            else:
                pattern.success_count += 1
                pattern.last_used = now
                pattern.add_context(context)
                if pattern.state == ARCHIVED:
                    pattern.state = CANDIDATE
                self._score(pattern)
            if pattern.state == DISCARDED and success_rate(pattern.success_count, pattern.fail_count) >= self.settings.min_success_rate:
                pattern.state = CANDIDATE
            self._update_state(pattern)
            return LearningEvent("confirmed", pattern.id, context, now)

        return self._mutate(operation)

    def record_failure(
        self,
        text: Optional[str] = None,
        context: Optional[str] = None,
        pattern_id: Optional[str] = None,
    ) -> Optional[LearningEvent]:
        """A learned mapping was used and the step failed at runtime."""
        normalized = self.normalize(text) if text else None
        now = utc_iso()

        def operation(patterns: List[LearnedPattern]) -> Optional[LearningEvent]:
            pattern = None
            if pattern_id:
                pattern = next((p for p in patterns if p.id == pattern_id), None)
            if pattern is None and normalized is not None:
                pattern = self._find_by_text(patterns, normalized)
            if pattern is None:
                logger.debug("Failure for unknown learned pattern (%s, %r)", pattern_id, normalized)
                return None
            pattern.fail_count += 1
            pattern.last_used = now
            pattern.add_context(context)
            self._score(pattern)
            self._update_state(pattern)
            return LearningEvent("failed", pattern.id, context, now)

        return self._mutate(operation)

    def record_match(self, pattern_id: str, context: Optional[str] = None) -> Optional[LearningEvent]:
        """The mapper served a step from this pattern; not yet confirmed by execution."""
        now = utc_iso()

        def operation(patterns: List[LearnedPattern]) -> Optional[LearningEvent]:
            pattern = next((p for p in patterns if p.id == pattern_id), None)
            if pattern is None:
                return None
            pattern.match_count += 1
            pattern.last_used = now
            return LearningEvent("matched", pattern.id, context, now)

        return self._mutate(operation)

    # ------------------------------------------------------------------
    # deduplication

    def _merge(self, target: LearnedPattern, other: LearnedPattern) -> None:
        # a promoted entry keeps the primitive its catalog rule was built from
        if other.success_count > target.success_count and target.state != PROMOTED:
            target.mapped_primitive = other.mapped_primitive
        target.success_count += other.success_count
        target.fail_count += other.fail_count
        target.match_count += other.match_count
        for context in other.source_contexts:
            target.add_context(context)
        target.created_at = min(target.created_at, other.created_at)
        target.last_used = max(target.last_used, other.last_used)
        self._score(target)
        self._update_state(target)

    def _merge_candidate(self, patterns: List[LearnedPattern], candidate: LearnedPattern) -> Optional[LearnedPattern]:
        threshold = self.settings.merge_threshold
        best: Optional[LearnedPattern] = None
        best_score = 0.0
        for existing in patterns:
            score = similarity(candidate.normalized_text, existing.normalized_text)
            if score >= threshold and score > best_score:
                best, best_score = existing, score
        if best is None:
            return None
        logger.info(
            "Merging candidate %r into %s (similarity %.2f)", candidate.normalized_text, best.id, best_score
        )
        if best.state == ARCHIVED and candidate.active:
            best.state = CANDIDATE
        self._merge(best, candidate)
        return best

    def deduplicate(self, candidate: LearnedPattern) -> Optional[LearnedPattern]:
        """
        Merge ``candidate`` into a stored near-duplicate, or insert it.

        Returns the stored entry that absorbed the candidate, or None when the
        candidate was inserted as a new entry.
        """

        def operation(patterns: List[LearnedPattern]) -> Optional[LearnedPattern]:
            merged = self._merge_candidate(patterns, candidate)
            if merged is None:
                patterns.append(candidate)
            return merged

        return self._mutate(operation)

    def _deduplicate_all(self, patterns: List[LearnedPattern]) -> int:
        merged = 0
        kept: List[LearnedPattern] = []
        ordered = sorted(patterns, key=lambda p: (p.state != PROMOTED, -p.success_count, p.created_at))
        for pattern in ordered:
            if pattern.state == PROMOTED:
                kept.append(pattern)
                continue
            if self._merge_candidate(kept, pattern) is None:
                kept.append(pattern)
            else:
                merged += 1
        patterns[:] = kept
        return merged

    # ------------------------------------------------------------------
    # batch maintenance

    def _promotion_gaps(self, pattern: LearnedPattern) -> List[str]:
        s = self.settings
        gaps = []
        if pattern.confidence < s.promotion_confidence:
            gaps.append(f"confidence {pattern.confidence:.2f} < {s.promotion_confidence:.2f}")
        if pattern.success_count < s.promotion_min_successes:
            gaps.append(f"successes {pattern.success_count} < {s.promotion_min_successes}")
        if len(pattern.source_contexts) < s.promotion_min_contexts:
            gaps.append(f"contexts {len(pattern.source_contexts)} < {s.promotion_min_contexts}")
        if pattern.fail_count > s.max_fail_count:
            gaps.append(f"failures {pattern.fail_count} > {s.max_fail_count}")
        if success_rate(pattern.success_count, pattern.fail_count) < s.min_success_rate:
            gaps.append("success rate below minimum")
        return gaps

    def promote(self, catalog: PatternCatalog) -> List[PromotionResult]:
        """Copy qualifying patterns into ``catalog`` as learned rules (each at most once)."""
        with self._maintenance_lock:
            return self._mutate(lambda patterns: self._promote(patterns, catalog)) or []

    def _promote(self, patterns: List[LearnedPattern], catalog: PatternCatalog) -> List[PromotionResult]:
        results: List[PromotionResult] = []
        for pattern in patterns:
            if pattern.state not in ACTIVE_STATES or self._promotion_gaps(pattern):
                continue
            rule_id = learned_rule_id(pattern)
            existing = catalog.get(rule_id)
            if existing is not None and existing.example != pattern.normalized_text:
                rule_id = f"{rule_id}-{pattern.id[-6:]}"
            rule = rule_from_phrase(
                rule_id,
                pattern.normalized_text,
                pattern.mapped_primitive,
                origin="learned",
                confidence=pattern.confidence,
                description=f"promoted from {pattern.id}",
            )
            if not catalog.add_rule(rule) and catalog.get(rule_id).origin != "learned":
                continue
            pattern.state = PROMOTED
            pattern.promoted_rule_id = rule_id
            results.append(PromotionResult(pattern.id, rule_id, pattern.normalized_text, pattern.confidence))
            logger.info("Promoted learned pattern %s to catalog rule %s", pattern.id, rule_id)
        return results

    def sync_catalog(self, catalog: PatternCatalog) -> int:
        """Re-add rules for already promoted patterns to a freshly built catalog."""
        added = 0
        for pattern in self._patterns:
            if pattern.state != PROMOTED:
                continue
            rule_id = pattern.promoted_rule_id or learned_rule_id(pattern)
            rule = rule_from_phrase(rule_id, pattern.normalized_text, pattern.mapped_primitive,
                                    origin="learned", confidence=pattern.confidence)
            if catalog.add_rule(rule):
                added += 1
        return added

    def decay(self, now: Optional[datetime] = None) -> List[str]:
        """Archive active patterns unused for longer than the retention window."""
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=self.settings.retention_days)

        def operation(patterns: List[LearnedPattern]) -> List[str]:
            archived = []
            for pattern in patterns:
                if pattern.state in ACTIVE_STATES and parse_iso(pattern.last_used) < cutoff:
                    pattern.state = ARCHIVED
                    archived.append(pattern.id)
            if archived:
                logger.info("Archived %d stale learned patterns", len(archived))
            return archived

        with self._maintenance_lock:
            return self._mutate(operation) or []

    def run_maintenance(self, catalog: PatternCatalog, now: Optional[datetime] = None) -> MaintenanceReport:
        """Deduplicate, decay and promote in one exclusive pass."""
        report = MaintenanceReport()
        if not self.available:
            return report
        lock = self.store.lock
        if lock is not None:
            lock.acquire()
        try:
            report.merged = self._mutate(self._deduplicate_all) or 0
            report.archived = self.decay(now)
            report.promoted = self.promote(catalog)
        finally:
            if lock is not None:
                lock.release()
        return report

    # ------------------------------------------------------------------
    # reporting

    def promotion_report(self) -> Dict[str, Any]:
        promotable, near = [], []
        for pattern in self._patterns:
            if pattern.state not in ACTIVE_STATES:
                continue
            gaps = self._promotion_gaps(pattern)
            entry = {
                "id": pattern.id,
                "normalizedText": pattern.normalized_text,
                "confidence": round(pattern.confidence, 4),
                "successCount": pattern.success_count,
                "failCount": pattern.fail_count,
                "contexts": len(pattern.source_contexts),
                "missing": gaps,
            }
            if not gaps:
                promotable.append(entry)
            elif len(gaps) == 1:
                near.append(entry)
        return {"promotable": promotable, "nearPromotion": near}

    def stats(self) -> Dict[str, Any]:
        by_state: Dict[str, int] = {}
        for pattern in self._patterns:
            by_state[pattern.state] = by_state.get(pattern.state, 0) + 1
        active = [p for p in self._patterns if p.active]
        return {
            "available": self.available,
            "error": self.error,
            "total": len(self._patterns),
            "byState": by_state,
            "averageConfidence": round(sum(p.confidence for p in active) / len(active), 4) if active else 0.0,
        }
