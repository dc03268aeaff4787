"""Ordered, versioned pattern catalog (core + promoted + discovered rules)."""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from itertools import combinations
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from ..core.errors import AmbiguousCatalogError
from ..ir import models as ir
from .glossary import DEFAULT_GLOSSARY, Glossary
from .normalize import normalize_step_text
from .patterns import PATTERN_VERSION, PatternRule, build_core_rules, generic_primitive
from .similarity import best_match

logger = logging.getLogger(__name__)

LEARNED_PRIORITY = 100
DISCOVERED_LAYER_PRIORITY = {
    "app-specific": 200,
    "framework": 300,
    "universal": 400,
}

PRIMITIVE_CATEGORY = {
    "navigate": "navigation", "waitForUrl": "wait", "reload": "navigation",
    "goBack": "navigation", "goForward": "navigation",
    "waitForVisible": "wait", "waitForHidden": "wait", "waitForTimeout": "wait",
    "waitForNetworkIdle": "wait",
    "expectVisible": "assertion", "expectHidden": "assertion", "expectText": "assertion",
    "expectUrl": "assertion", "expectTitle": "assertion", "expectAriaSnapshot": "assertion",
    "setClock": "other", "blocked": "other",
}

_QUOTED_RE = re.compile(r"""(["'])([^"']+)\1""")


def category_for_primitive(primitive_type: str) -> str:
    return PRIMITIVE_CATEGORY.get(primitive_type, "interaction")


@dataclass(frozen=True)
class CatalogMatch:
    rule: PatternRule
    primitive: Any
    similarity: float = 1.0
    matched_example: Optional[str] = None


def _replace_strings(data: Any, replacements: Dict[str, str]) -> Any:
    if isinstance(data, dict):
        return {k: v if k == "type" else _replace_strings(v, replacements) for k, v in data.items()}
    if isinstance(data, list):
        return [_replace_strings(v, replacements) for v in data]
    if isinstance(data, str) and data in replacements:
        return replacements[data]
    return data


def phrase_regex(normalized_text: str) -> Tuple[str, List[str]]:
    """
    Regex matching ``normalized_text`` exactly, with each quoted literal
    generalized into a capture group ``v0``, ``v1``...

    Returns the regex and the original literals in capture order.
    """
    parts: List[str] = []
    literals: List[str] = []
    pos = 0
    for m in _QUOTED_RE.finditer(normalized_text):
        parts.append(re.escape(normalized_text[pos:m.start()]))
        parts.append(rf"""["'](?P<v{len(literals)}>[^"']+)["']""")
        literals.append(m.group(2))
        pos = m.end()
    parts.append(re.escape(normalized_text[pos:]))
    return "^" + "".join(parts) + "$", literals


def rule_from_phrase(
    rule_id: str,
    normalized_text: str,
    primitive: Any,
    origin: str = "learned",
    priority: int = LEARNED_PRIORITY,
    confidence: float = 1.0,
    description: str = "",
) -> PatternRule:
    """Build a rule that reproduces ``primitive`` for ``normalized_text`` and its re-quoted variants."""
    regex, literals = phrase_regex(normalized_text)
    template = ir.primitive_to_dict(primitive)

    def build(groups, glossary):
        replacements = {
            literal: groups[f"v{i}"]
            for i, literal in enumerate(literals)
            if groups.get(f"v{i}") is not None
        }
        return ir.primitive_from_dict(_replace_strings(template, replacements))

    return PatternRule(
        id=rule_id,
        category=category_for_primitive(primitive.type),
        regex=regex,
        builder=build,
        primitive_type=primitive.type,
        example=normalized_text,
        priority=priority,
        origin=origin,
        confidence=confidence,
        description=description,
    )


def find_ambiguities(rules: List[PatternRule]) -> List[Tuple[str, str]]:
    """Core rule pairs in one category with equal priority and overlapping literal prefixes."""
    conflicts: List[Tuple[str, str]] = []
    core = [r for r in rules if r.origin == "core"]
    for a, b in combinations(core, 2):
        if a.category != b.category or a.priority != b.priority:
            continue
        pa, pb = a.literal_prefix, b.literal_prefix
        if pa.startswith(pb) or pb.startswith(pa):
            conflicts.append((a.id, b.id))
    return conflicts


class PatternCatalog:
    """
    Rules in match order: ascending priority, then insertion order.

    Core rules are validated once at construction; an ambiguous core set is
    a build error. Learned and discovered rules can be added later, but never
    under the id of a core rule.
    """

    def __init__(
        self,
        rules: Optional[List[PatternRule]] = None,
        glossary: Optional[Glossary] = None,
        version: str = PATTERN_VERSION,
    ) -> None:
        self.glossary = glossary or DEFAULT_GLOSSARY
        self.version = version
        self._rules: List[PatternRule] = []
        self._by_id: Dict[str, PatternRule] = {}
        self._examples: Optional[List[Tuple[str, PatternRule]]] = None

        initial = build_core_rules() if rules is None else list(rules)
        seen = set()
        for rule in initial:
            if rule.id in seen:
                raise AmbiguousCatalogError([(rule.id, rule.id)])
            seen.add(rule.id)
        conflicts = find_ambiguities(initial)
        if conflicts:
            raise AmbiguousCatalogError(conflicts)
        for rule in initial:
            self._by_id[rule.id] = rule
        self._rules = sorted(initial, key=lambda r: r.priority)
        logger.debug("Pattern catalog %s loaded with %d rules", self.version, len(self._rules))

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[PatternRule]:
        return iter(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._by_id

    @property
    def rules(self) -> List[PatternRule]:
        return list(self._rules)

    def get(self, rule_id: str) -> Optional[PatternRule]:
        return self._by_id.get(rule_id)

    def core_rules(self) -> List[PatternRule]:
        return [r for r in self._rules if r.origin == "core"]

    def add_rule(self, rule: PatternRule) -> bool:
        """Insert a learned/discovered rule. Returns False when the id already exists."""
        if rule.origin == "core":
            raise ValueError(f"Core rules are fixed at catalog construction: {rule.id}")
        existing = self._by_id.get(rule.id)
        if existing is not None:
            if existing.origin == "core":
                logger.warning("Refusing to shadow core pattern %s with a %s rule", rule.id, rule.origin)
            return False
        self._by_id[rule.id] = rule
        self._rules.append(rule)
        self._rules.sort(key=lambda r: r.priority)
        self._examples = None
        return True

    def match(self, normalized_text: str) -> Optional[CatalogMatch]:
        for rule in self._rules:
            primitive = rule.match(normalized_text, self.glossary)
            if primitive is not None:
                return CatalogMatch(rule=rule, primitive=primitive)
        return None

    def examples(self) -> List[Tuple[str, PatternRule]]:
        """(normalized canonical example, rule) for every rule, in match order."""
        if self._examples is None:
            self._examples = [
                (normalize_step_text(rule.example, self.glossary), rule) for rule in self._rules
            ]
        return self._examples

    def nearest(self, normalized_text: str, origins: Tuple[str, ...] = ("core", "learned")):
        """Rule whose canonical example is closest to the text, with its similarity."""
        candidates = ((example, (rule, example)) for example, rule in self.examples() if rule.origin in origins)
        return best_match(normalized_text, candidates)

    def fuzzy_match(self, normalized_text: str, threshold: float) -> Optional[CatalogMatch]:
        """Near-miss match against canonical examples, building a generic primitive."""
        found = self.nearest(normalized_text, origins=("core",))
        if found is None:
            return None
        (rule, example), score = found
        if score < threshold:
            return None
        primitive = rule.match(normalized_text, self.glossary)
        if primitive is None:
            primitive = generic_primitive(rule.primitive_type, normalized_text, self.glossary)
        if primitive is None:
            logger.debug("Fuzzy candidate %s has no generic form for %r", rule.id, normalized_text)
            return None
        return CatalogMatch(rule=rule, primitive=primitive, similarity=score, matched_example=example)

    def extend_discovered(self, path: Union[str, Path], min_confidence: float = 0.5) -> int:
        added = 0
        for rule in load_discovered_patterns(path, min_confidence=min_confidence, glossary=self.glossary):
            if self.add_rule(rule):
                added += 1
        logger.info("Added %d discovered patterns from %s", added, path)
        return added

    def stats(self) -> Dict[str, Any]:
        by_origin: Dict[str, int] = {}
        by_category: Dict[str, int] = {}
        for rule in self._rules:
            by_origin[rule.origin] = by_origin.get(rule.origin, 0) + 1
            by_category[rule.category] = by_category.get(rule.category, 0) + 1
        return {
            "version": self.version,
            "total": len(self._rules),
            "byOrigin": by_origin,
            "byCategory": by_category,
        }


def _discovered_primitive(entry: Dict[str, Any], normalized_text: str, glossary: Glossary):
    ir_type = entry.get("irType") or entry.get("primitiveType")
    primitive = generic_primitive(ir_type, normalized_text, glossary) if ir_type else None
    if primitive is None:
        return None
    hints = entry.get("selectorHints") or []
    if hints and hasattr(primitive, "locator") and primitive.locator is not None:
        hint = hints[0]
        try:
            locator = ir.LocatorSpec(
                strategy=hint.get("strategy", "text"),
                value=hint.get("value", ""),
                name=hint.get("name"),
            )
        except ValueError:
            logger.warning("Ignoring selector hint %r on discovered pattern %s", hint, entry.get("id"))
        else:
            primitive = primitive.model_copy(update={"locator": locator})
    return primitive


def load_discovered_patterns(
    path: Union[str, Path],
    min_confidence: float = 0.5,
    glossary: Optional[Glossary] = None,
) -> List[PatternRule]:
    """
    Read mined patterns (``{"patterns": [...]}``) into ``discovered`` rules.

    Layers map to priority bands: app-specific before framework before
    universal. Entries below ``min_confidence`` or without a usable primitive
    are skipped. A missing file yields no rules.
    """
    glossary = glossary or DEFAULT_GLOSSARY
    file_path = Path(path)
    if not file_path.exists():
        logger.info("No discovered patterns at %s", file_path)
        return []
    with open(file_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    rules: List[PatternRule] = []
    for entry in data.get("patterns", []) if isinstance(data, dict) else []:
        confidence = float(entry.get("confidence", 0.0))
        if confidence < min_confidence:
            continue
        text = entry.get("normalizedText") or entry.get("originalText") or ""
        normalized = normalize_step_text(text, glossary)
        if not normalized:
            continue
        primitive = _discovered_primitive(entry, normalized, glossary)
        if primitive is None:
            logger.debug("Skipping discovered pattern %s: no primitive for %r", entry.get("id"), text)
            continue
        layer = entry.get("layer", "universal")
        rules.append(
            rule_from_phrase(
                rule_id=f"discovered-{entry.get('id') or len(rules)}",
                normalized_text=normalized,
                primitive=primitive,
                origin="discovered",
                priority=DISCOVERED_LAYER_PRIORITY.get(layer, DISCOVERED_LAYER_PRIORITY["universal"]),
                confidence=confidence,
                description=f"{layer} pattern",
            )
        )
    return rules
