"""
Explain blocked steps and suggest rewrites.

The engine only reads the catalog; it never changes mapper or knowledge
base state. Suggestions carry a confidence, and only those at or above the
auto-apply floor are flagged for automatic use.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..core.config import Settings
from ..mapping.catalog import PatternCatalog
from ..mapping.hints import format_inline_hints
from ..mapping.normalize import normalize_step_text
from ..mapping.patterns import ROLE_WORDS, PatternRule
from ..mapping.similarity import levenshtein_distance
from ..mapping.step_mapper import StepMappingResult, categorize_step

logger = logging.getLogger(__name__)

STOPWORDS = {
    "the", "a", "an", "to", "on", "in", "into", "of", "for", "with", "and", "then", "that",
    "is", "be", "should", "please", "it", "this", "my", "at", "from", "by",
}

CATEGORY_TEMPLATES: Dict[str, Tuple[str, str]] = {
    "navigation": ("navigate to /path", "Navigation steps need a URL or path, or end in '<name> page'"),
    "interaction": ("click the 'Label' button", "Quote the visible name of the element and name its kind"),
    "assertion": ("see 'Text'", "Assertions need the expected text in quotes"),
    "wait": ("wait for the 'Text' message to appear", "Waits need a quoted element or a duration"),
}

FILL_TEMPLATE = ("fill 'value' in the 'Field' field", "Quote both the value and the field label")

_QUOTED_RE = re.compile(r"""["']([^"']+)["']""")


@dataclass
class Suggestion:
    text: str
    explanation: str
    confidence: float
    auto_apply: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "explanation": self.explanation,
            "confidence": round(self.confidence, 4),
            "autoApply": self.auto_apply,
        }


@dataclass
class NearestPattern:
    name: str
    distance: int
    similarity: float
    example: str
    mismatch: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "distance": self.distance,
            "similarity": round(self.similarity, 4),
            "example": self.example,
            "mismatch": self.mismatch,
        }


@dataclass
class BlockedStepAnalysis:
    step: str
    normalized_text: str
    reason: str
    category: str
    nearest_pattern: Optional[NearestPattern] = None
    suggestions: List[Suggestion] = field(default_factory=list)
    hint_suggestion: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "normalizedText": self.normalized_text,
            "reason": self.reason,
            "category": self.category,
            "nearestPattern": self.nearest_pattern.to_dict() if self.nearest_pattern else None,
            "suggestions": [s.to_dict() for s in self.suggestions],
            "hintSuggestion": self.hint_suggestion,
        }


def _quoted(text: str) -> List[str]:
    return _QUOTED_RE.findall(text)


def _fill_quotes(template: str, values: List[str]) -> str:
    """Put the step's own quoted values into the template's quoted slots, in order."""
    remaining = list(values)

    def replace(m: re.Match) -> str:
        return f"'{remaining.pop(0)}'" if remaining else m.group(0)

    return _QUOTED_RE.sub(replace, template)


def _content_words(normalized: str) -> List[str]:
    unquoted = _QUOTED_RE.sub(" ", normalized)
    return [w for w in re.findall(r"[a-z][a-z0-9-]*", unquoted) if w not in STOPWORDS]


class DiagnosticEngine:
    def __init__(self, catalog: PatternCatalog, settings: Optional[Settings] = None) -> None:
        self.catalog = catalog
        self.settings = settings or Settings()
        self._verbs = {example.split(" ", 1)[0] for example, _ in catalog.examples() if example}

    def analyze(self, results: Iterable[StepMappingResult]) -> List[BlockedStepAnalysis]:
        return [self.analyze_step(r) for r in results if r.blocked]

    def analyze_step(self, result: StepMappingResult) -> BlockedStepAnalysis:
        normalized = result.normalized_text or normalize_step_text(result.source_text, self.catalog.glossary)
        category = result.category if result.category and result.category != "unknown" else categorize_step(normalized)
        nearest_rule, nearest = self._nearest(normalized)

        suggestions: List[Suggestion] = []
        rewrite = None
        if nearest_rule is not None and nearest is not None:
            rewrite = self._rewrite_suggestion(normalized, nearest_rule, nearest)
            if rewrite is not None:
                suggestions.append(rewrite)

        hint = None
        if category == "interaction":
            hint, hint_confidence = self._infer_hint(normalized)
            if hint:
                # hints refine a match, they cannot create one
                base = rewrite.text if rewrite is not None and self._maps(rewrite.text) else result.source_text
                if not self._maps(base):
                    hint_confidence = min(hint_confidence, 0.3)
                suggestions.append(
                    Suggestion(
                        text=f"{base} {hint}",
                        explanation="Add a locator hint naming the target element",
                        confidence=hint_confidence,
                    )
                )

        template = self._template_for(category, normalized, nearest_rule)
        if template is not None:
            text, explanation = template
            suggestions.append(
                Suggestion(text=_fill_quotes(text, _quoted(normalized)), explanation=explanation, confidence=0.3)
            )

        suggestions = self._rank(suggestions)
        reason = result.message or (result.primitive.reason if result.primitive is not None else "No match")
        analysis = BlockedStepAnalysis(
            step=result.source_text,
            normalized_text=normalized,
            reason=reason,
            category=category,
            nearest_pattern=nearest,
            suggestions=suggestions,
            hint_suggestion=hint,
        )
        logger.debug("Analyzed blocked step %r -> %s", result.source_text, category)
        return analysis

    def _nearest(self, normalized: str) -> Tuple[Optional[PatternRule], Optional[NearestPattern]]:
        found = self.catalog.nearest(normalized)
        if found is None:
            return None, None
        (rule, example), score = found
        nearest = NearestPattern(
            name=rule.id,
            distance=levenshtein_distance(normalized, example),
            similarity=score,
            example=rule.example,
            mismatch=self.explain_mismatch(normalized, rule, example),
        )
        return rule, nearest

    def explain_mismatch(self, normalized: str, rule: PatternRule, example: str) -> str:
        verb = normalized.split(" ", 1)[0] if normalized else ""
        if verb and verb not in self._verbs:
            return f"unsupported verb '{verb}'"
        step_quotes, example_quotes = _quoted(normalized), _quoted(example)
        if rule.primitive_type in ("fill", "selectOption", "expectText") and len(step_quotes) < len(example_quotes):
            return "missing value: quote the value and the target"
        if example_quotes and not step_quotes:
            return "missing locator hint: quote the element's visible name"
        return f"phrasing differs from '{rule.example}'"

    def _rewrite_suggestion(
        self, normalized: str, rule: PatternRule, nearest: NearestPattern
    ) -> Optional[Suggestion]:
        if nearest.similarity < 0.4:
            return None
        candidate = _fill_quotes(rule.example, _quoted(normalized))
        confidence = nearest.similarity if self._maps(candidate) else nearest.similarity * 0.5
        return Suggestion(
            text=candidate,
            explanation=f"Closest known phrasing ({rule.id}): {nearest.mismatch}",
            confidence=confidence,
        )

    def _maps(self, text: str) -> bool:
        return self.catalog.match(normalize_step_text(text, self.catalog.glossary)) is not None

    def _infer_hint(self, normalized: str) -> Tuple[Optional[str], float]:
        words = _content_words(normalized)
        quoted = _quoted(normalized)
        role = next((ROLE_WORDS[w] for w in words if w in ROLE_WORDS), None)
        nouns = [w for w in words[1:] if w not in ROLE_WORDS and w not in self._verbs]
        name = quoted[0] if quoted else (" ".join(nouns[-2:]) if nouns else None)
        if role and name:
            return format_inline_hints({"role": role, "name": name}), 0.6
        if name:
            return format_inline_hints({"text": name}), 0.4
        return None, 0.0

    def _template_for(
        self, category: str, normalized: str, rule: Optional[PatternRule]
    ) -> Optional[Tuple[str, str]]:
        if category == "interaction" and (
            (rule is not None and rule.primitive_type == "fill") or re.search(r"\b(fill|enter|field)\b", normalized)
        ):
            return FILL_TEMPLATE
        return CATEGORY_TEMPLATES.get(category)

    def _rank(self, suggestions: List[Suggestion]) -> List[Suggestion]:
        seen = set()
        unique: List[Suggestion] = []
        for suggestion in sorted(suggestions, key=lambda s: -s.confidence):
            if suggestion.text in seen:
                continue
            seen.add(suggestion.text)
            suggestion.auto_apply = suggestion.confidence >= self.settings.auto_apply_floor
            unique.append(suggestion)
        return unique[: self.settings.max_suggestions]


def auto_fixable(analyses: Iterable[BlockedStepAnalysis]) -> List[Tuple[BlockedStepAnalysis, Suggestion]]:
    """Top suggestion per step, when it may be applied without confirmation."""
    fixes = []
    for analysis in analyses:
        if analysis.suggestions and analysis.suggestions[0].auto_apply:
            fixes.append((analysis, analysis.suggestions[0]))
    return fixes
