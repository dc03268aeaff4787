"""
Vocabulary tables used to normalize step text before matching.

The default glossary ships with the package; a project can extend it with a
YAML file of the form::

    synonyms:
      click: [tap, smash]
    abbreviations:
      cta: button
    labelAliases:
      - label: email
        testid: email-input
        role: textbox
        variants: [e-mail, email address]
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import yaml

from ..core.errors import GlossaryError
from ..ir.models import LocatorSpec

logger = logging.getLogger(__name__)


# Inflected verb forms -> base verb.
VERB_STEMS: Dict[str, str] = {
    "clicks": "click", "clicked": "click", "clicking": "click",
    "taps": "tap", "tapped": "tap", "tapping": "tap",
    "presses": "press", "pressed": "press", "pressing": "press",
    "hits": "hit", "hitting": "hit",
    "fills": "fill", "filled": "fill", "filling": "fill",
    "enters": "fill", "entered": "fill", "entering": "fill",
    "types": "type", "typed": "type", "typing": "type",
    "selects": "select", "selected": "select", "selecting": "select",
    "chooses": "choose", "chose": "choose", "chosen": "choose", "choosing": "choose",
    "picks": "pick", "picked": "pick", "picking": "pick",
    "checks": "check", "checking": "check",
    "unchecks": "uncheck", "unchecked": "uncheck", "unchecking": "uncheck",
    "navigates": "navigate", "navigated": "navigate", "navigating": "navigate",
    "goes": "go", "going": "go", "went": "go",
    "visits": "visit", "visited": "visit", "visiting": "visit",
    "opens": "open", "opened": "open", "opening": "open",
    "sees": "see", "saw": "see", "seeing": "see",
    "verifies": "verify", "verified": "verify", "verifying": "verify",
    "confirms": "verify", "confirming": "verify",
    "ensures": "verify", "ensured": "verify", "ensuring": "verify",
    "waits": "wait", "waited": "wait", "waiting": "wait",
    "hovers": "hover", "hovered": "hover", "hovering": "hover",
    "focuses": "focus", "focused": "focus", "focusing": "focus",
    "clears": "clear", "cleared": "clear", "clearing": "clear",
    "refreshes": "refresh", "refreshed": "refresh", "refreshing": "refresh",
    "reloads": "reload", "reloaded": "reload", "reloading": "reload",
    "appears": "appear", "appeared": "appear", "appearing": "appear",
    "disappears": "disappear", "disappeared": "disappear", "disappearing": "disappear",
    "contains": "contain", "containing": "contain",
    "displays": "display", "displaying": "display",
    "shows": "show", "showed": "show", "showing": "show",
    "dismisses": "dismiss", "dismissed": "dismiss", "dismissing": "dismiss",
    "accepts": "accept", "accepted": "accept", "accepting": "accept",
    "closes": "close", "closing": "close",
}

# Shorthand -> full word.
ABBREVIATIONS: Dict[str, str] = {
    "btn": "button",
    "msg": "message",
    "err": "error",
    "pwd": "password",
    "usr": "user",
    "pg": "page",
    "txt": "text",
    "img": "image",
    "lbl": "label",
    "chk": "checkbox",
    "chkbox": "checkbox",
    "dd": "dropdown",
    "dlg": "dialog",
    "lnk": "link",
    "tbl": "table",
    "plz": "please",
    "pls": "please",
    "secs": "seconds",
    "sec": "second",
    "ms": "milliseconds",
}

# Canonical word -> variants rewritten to it (after stemming).
DEFAULT_SYNONYMS: Dict[str, List[str]] = {
    "click": ["tap"],
    "press": ["hit"],
    "fill": ["type", "write"],
    "select": ["choose", "pick"],
    "navigate": ["visit", "browse"],
    "reload": ["refresh"],
    "visible": ["displayed", "shown", "present"],
    "modal": ["dialog", "popup", "overlay"],
    "field": ["textbox", "textfield", "input-field"],
    "dropdown": ["combobox", "picker", "drop-down"],
    "page": ["screen"],
}

# Multi-word phrases rewritten before tokenization.
PHRASE_REWRITES: Dict[str, str] = {
    "double-click": "double click",
    "double-clicks": "double click",
    "right-click": "right click",
    "right-clicks": "right click",
    "mouse over": "hover over",
    "mouses over": "hover over",
    "moves the mouse over": "hover over",
    "drop down": "dropdown",
    "text field": "field",
    "text box": "field",
    "input field": "field",
    "e-mail": "email",
    "email address": "email",
    "user name": "username",
    "log in": "login",
    "sign in": "login",
}

# Leading words that name who performs the step.
ACTOR_PREFIXES: List[List[str]] = [
    ["as", "a", "user"],
    ["the", "user"],
    ["user"],
    ["i"],
    ["we"],
]

GHERKIN_KEYWORDS = {"given", "when", "then", "and", "but"}


@dataclass(frozen=True)
class LabelAlias:
    """Canonical field identifier for a commonly used label."""

    label: str
    testid: Optional[str] = None
    role: Optional[str] = None
    variants: tuple = ()

    def to_locator(self) -> LocatorSpec:
        if self.testid:
            return LocatorSpec(strategy="testid", value=self.testid)
        if self.role:
            return LocatorSpec(strategy="role", value=self.role, name=self.label)
        return LocatorSpec(strategy="label", value=self.label)


DEFAULT_LABEL_ALIASES: List[LabelAlias] = [
    LabelAlias("email", testid="email-input", role="textbox", variants=("mail",)),
    LabelAlias("password", testid="password-input", role="textbox", variants=("passcode",)),
    LabelAlias("username", testid="username-input", role="textbox", variants=("login name",)),
    LabelAlias("search", testid="search-input", role="searchbox"),
    LabelAlias("submit", testid="submit-button", role="button"),
    LabelAlias("cancel", testid="cancel-button", role="button"),
    LabelAlias("close", testid="close-button", role="button"),
]


@dataclass
class Glossary:
    synonyms: Dict[str, str] = field(default_factory=dict)
    abbreviations: Dict[str, str] = field(default_factory=dict)
    verb_stems: Dict[str, str] = field(default_factory=dict)
    phrases: Dict[str, str] = field(default_factory=dict)
    label_aliases: Dict[str, LabelAlias] = field(default_factory=dict)

    @classmethod
    def default(cls) -> "Glossary":
        glossary = cls(
            abbreviations=dict(ABBREVIATIONS),
            verb_stems=dict(VERB_STEMS),
            phrases=dict(PHRASE_REWRITES),
        )
        glossary.add_synonyms(DEFAULT_SYNONYMS)
        for alias in DEFAULT_LABEL_ALIASES:
            glossary.add_label_alias(alias)
        return glossary

    def add_synonyms(self, table: Dict[str, Iterable[str]]) -> None:
        for canonical, variants in table.items():
            canonical = str(canonical).lower()
            for variant in variants or []:
                variant = str(variant).lower()
                if " " in variant:
                    self.phrases[variant] = canonical
                else:
                    self.synonyms[variant] = canonical

    def add_label_alias(self, alias: LabelAlias) -> None:
        self.label_aliases[alias.label] = alias
        for variant in alias.variants:
            self.phrases[variant] = alias.label

    def canonical(self, word: str) -> str:
        """Resolve one lower-case token through abbreviation, stem and synonym tables."""
        word = self.abbreviations.get(word, word)
        word = self.verb_stems.get(word, word)
        return self.synonyms.get(word, word)

    def resolve_label_alias(self, label: str) -> Optional[LabelAlias]:
        key = label.strip().lower()
        alias = self.label_aliases.get(key)
        if alias is None and key.endswith((" field", " button", " input")):
            alias = self.label_aliases.get(key.rsplit(" ", 1)[0])
        return alias

    def merged(self, other: "Glossary") -> "Glossary":
        """Return a new glossary with ``other``'s entries layered over ours."""
        return Glossary(
            synonyms={**self.synonyms, **other.synonyms},
            abbreviations={**self.abbreviations, **other.abbreviations},
            verb_stems={**self.verb_stems, **other.verb_stems},
            phrases={**self.phrases, **other.phrases},
            label_aliases={**self.label_aliases, **other.label_aliases},
        )

    def stats(self) -> Dict[str, int]:
        return {
            "synonyms": len(self.synonyms),
            "abbreviations": len(self.abbreviations),
            "verbStems": len(self.verb_stems),
            "phrases": len(self.phrases),
            "labelAliases": len(self.label_aliases),
        }


def _parse_glossary_document(data: object, source: str) -> Glossary:
    if data is None:
        return Glossary()
    if not isinstance(data, dict):
        raise GlossaryError(f"Glossary {source} must be a mapping at the top level")

    extension = Glossary()
    synonyms = data.get("synonyms") or {}
    if not isinstance(synonyms, dict):
        raise GlossaryError(f"Glossary {source}: 'synonyms' must map a canonical word to a list")
    extension.add_synonyms({k: v if isinstance(v, list) else [v] for k, v in synonyms.items()})

    abbreviations = data.get("abbreviations") or {}
    if not isinstance(abbreviations, dict):
        raise GlossaryError(f"Glossary {source}: 'abbreviations' must be a mapping")
    extension.abbreviations.update({str(k).lower(): str(v).lower() for k, v in abbreviations.items()})

    for entry in data.get("labelAliases") or []:
        if not isinstance(entry, dict) or not entry.get("label"):
            raise GlossaryError(f"Glossary {source}: every label alias needs a 'label'")
        extension.add_label_alias(
            LabelAlias(
                label=str(entry["label"]).lower(),
                testid=entry.get("testid"),
                role=entry.get("role"),
                variants=tuple(str(v).lower() for v in entry.get("variants") or []),
            )
        )
    return extension


def load_glossary(path: Union[str, Path, None] = None) -> Glossary:
    """Default glossary, extended by the YAML file at ``path`` when given."""
    base = Glossary.default()
    if not path:
        return base
    glossary_path = Path(path)
    if not glossary_path.exists():
        raise GlossaryError(f"Glossary file not found: {glossary_path}")
    try:
        data = yaml.safe_load(glossary_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise GlossaryError(f"Invalid glossary YAML in {glossary_path}: {exc}") from exc
    extension = _parse_glossary_document(data, str(glossary_path))
    logger.info("Loaded glossary extension from %s (%s)", glossary_path, extension.stats())
    return base.merged(extension)


DEFAULT_GLOSSARY = Glossary.default()
