"""Edit-distance similarity shared by mapping, learning and diagnostics."""
from __future__ import annotations

from typing import Iterable, Optional, Tuple, TypeVar

T = TypeVar("T")


def levenshtein_distance(s1: str, s2: str) -> int:
    """Number of single-character insertions, deletions or substitutions."""
    if len(s1) < len(s2):
        s1, s2 = s2, s1
    if not s2:
        return len(s1)

    previous_row = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row
    return previous_row[-1]


def similarity(s1: str, s2: str) -> float:
    """1.0 for identical strings, 0.0 for completely different ones."""
    if s1 == s2:
        return 1.0
    max_len = max(len(s1), len(s2))
    if max_len == 0:
        return 1.0
    return max(0.0, 1.0 - levenshtein_distance(s1, s2) / max_len)


def best_match(text: str, candidates: Iterable[Tuple[str, T]]) -> Optional[Tuple[T, float]]:
    """
    Highest-similarity candidate for ``text``.

    ``candidates`` yields ``(comparison_text, payload)`` pairs. Ties keep the
    first candidate so the result is stable for a stable input order.
    """
    best: Optional[Tuple[T, float]] = None
    for candidate_text, payload in candidates:
        score = similarity(text, candidate_text)
        if best is None or score > best[1]:
            best = (payload, score)
    return best
