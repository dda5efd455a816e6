from __future__ import annotations

import re
import unicodedata
from typing import Optional


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance with unit insert, delete and substitute costs."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i] + [0] * len(b)
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current[j] = min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + cost,
            )
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Normalized edit similarity in [0, 1].

    Operates on the strings as given; case folding is up to the caller.
    Two empty strings are identical, one empty string matches nothing.
    """
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - edit_distance(a, b) / longest


def normalize_match_text(value: Optional[str]) -> str:
    if not value:
        return ""
    cleaned = unicodedata.normalize("NFKD", value)
    cleaned = cleaned.encode("ascii", "ignore").decode("ascii")
    cleaned = cleaned.lower()
    cleaned = re.sub(r"[^a-z0-9]+", " ", cleaned)
    return cleaned.strip()


def name_similarity(local: Optional[str], candidate: Optional[str]) -> float:
    """Similarity of two display names after accent, case and punctuation folding."""
    norm_local = normalize_match_text(local)
    norm_candidate = normalize_match_text(candidate)
    if not norm_local and not norm_candidate:
        # Names made only of symbols ("!!!") fold to nothing; compare them raw.
        return similarity((local or "").strip().lower(), (candidate or "").strip().lower())
    return similarity(norm_local, norm_candidate)


def normalize_query_key(value: str) -> str:
    """Cache key form of a query: lower-cased with whitespace collapsed."""
    return re.sub(r"\s+", " ", (value or "").strip().lower())
