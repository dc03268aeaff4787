"""Step text normalization.

``normalize_step_text`` is the single normalizer used both for catalog
matching and for storing/looking up learned patterns.
"""
from __future__ import annotations

import re
from typing import List, Optional, Tuple

from .glossary import ACTOR_PREFIXES, DEFAULT_GLOSSARY, GHERKIN_KEYWORDS, Glossary

_QUOTED_RE = re.compile(r"""(?<!\w)("[^"]*"|'[^']*')""")
_PUNCT = ".,;:!?"


def split_quoted(text: str) -> List[Tuple[str, bool]]:
    """Split text into (segment, is_quoted) pairs; quoted segments keep their quotes."""
    parts: List[Tuple[str, bool]] = []
    pos = 0
    for m in _QUOTED_RE.finditer(text):
        if m.start() > pos:
            parts.append((text[pos:m.start()], False))
        parts.append((m.group(0), True))
        pos = m.end()
    if pos < len(text):
        parts.append((text[pos:], False))
    return parts


def _rewrite_phrases(segment: str, glossary: Glossary) -> str:
    for phrase in sorted(glossary.phrases, key=len, reverse=True):
        pattern = r"(?<![\w-])" + re.escape(phrase) + r"(?![\w-])"
        segment = re.sub(pattern, glossary.phrases[phrase], segment)
    return segment


def _clean_token(token: str) -> str:
    return token.strip(_PUNCT)


def _strip_prefixes(tokens: List[str]) -> List[str]:
    while tokens and tokens[0] in GHERKIN_KEYWORDS:
        tokens = tokens[1:]
    for prefix in ACTOR_PREFIXES:
        if tokens[: len(prefix)] == prefix and len(tokens) > len(prefix):
            tokens = tokens[len(prefix):]
            break
    return tokens


def normalize_step_text(text: str, glossary: Optional[Glossary] = None) -> str:
    """
    Canonical form of a step sentence.

    Lower-cases everything outside quotes, expands abbreviations, stems verbs,
    applies synonyms and label-alias variants, drops leading Gherkin keywords
    and actor prefixes ("the user", "I") and collapses whitespace. Quoted
    literals are kept byte-for-byte.
    """
    glossary = glossary or DEFAULT_GLOSSARY
    if not text:
        return ""

    tokens: List[str] = []
    for segment, quoted in split_quoted(text.strip()):
        if quoted:
            tokens.append(segment)
            continue
        lowered = _rewrite_phrases(segment.lower(), glossary)
        for raw in lowered.split():
            token = _clean_token(raw)
            if not token:
                continue
            canonical = glossary.canonical(token)
            if canonical != token:
                # a rewritten token may itself be a phrase ("double-click" -> "double click")
                tokens.extend(canonical.split())
            else:
                tokens.append(token)

    tokens = _strip_prefixes(tokens)
    return " ".join(tokens)


def strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1]
    return value
