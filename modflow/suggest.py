"""Edit-distance helpers for "did you mean" suggestions."""
from __future__ import annotations

from typing import Iterable, Optional

DEFAULT_MAX_DISTANCE = 3


def levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        cur = [i]
        for j, cb in enumerate(b, 1):
            cur.append(
                min(
                    prev[j] + 1,  # deletion
                    cur[j - 1] + 1,  # insertion
                    prev[j - 1] + (ca != cb),  # substitution
                )
            )
        prev = cur
    return prev[-1]


def closest(
    needle: str,
    haystack: Iterable[str],
    max_distance: int = DEFAULT_MAX_DISTANCE,
) -> Optional[str]:
    """Closest candidate (case-insensitive) within ``max_distance``.

    Ties go to the first candidate in iteration order.
    """
    best: Optional[str] = None
    best_d = max_distance + 1
    low = needle.lower()
    for cand in haystack:
        if cand == needle:
            continue
        d = levenshtein(low, cand.lower())
        if d < best_d:
            best, best_d = cand, d
    return best


__all__ = ["levenshtein", "closest", "DEFAULT_MAX_DISTANCE"]
