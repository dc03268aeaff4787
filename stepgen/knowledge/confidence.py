"""Confidence estimation for learned patterns."""
from __future__ import annotations

import math

DEFAULT_Z = 1.96
NEUTRAL_CONFIDENCE = 0.5


def wilson_lower_bound(successes: int, failures: int, z: float = DEFAULT_Z) -> float:
    """
    Lower bound of the Wilson score interval for the success rate.

    Sparse evidence yields a conservative value; with no evidence at all the
    estimate is 0.5.
    """
    n = successes + failures
    if n <= 0:
        return NEUTRAL_CONFIDENCE
    p = successes / n
    z2 = z * z
    denominator = 1 + z2 / n
    center = p + z2 / (2 * n)
    spread = z * math.sqrt((p * (1 - p) + z2 / (4 * n)) / n)
    return max(0.0, min(1.0, (center - spread) / denominator))


def pattern_confidence(successes: int, failures: int, z: float = DEFAULT_Z) -> float:
    """
    Confidence stored on a learned pattern.

    A pattern with a clean record keeps the neutral 0.5 seed until the
    Wilson bound rises above it. The first failure switches to the plain
    bound.
    """
    score = wilson_lower_bound(successes, failures, z)
    if failures == 0:
        return max(NEUTRAL_CONFIDENCE, score)
    return score


def success_rate(successes: int, failures: int) -> float:
    n = successes + failures
    return successes / n if n else 0.0
