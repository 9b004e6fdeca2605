"""Free-text similarity for bank and merchant descriptions.

Scores are in [0, 1]:
  - 1.0 when the normalized strings are identical
  - 0.9 when one contains the other
  - otherwise 70% word overlap + 30% character-level Levenshtein similarity

Two cutoffs are exposed: a soft "similar" flag used when scoring pairs and
a stricter "high similarity" flag used for display and exact-match checks.
"""

import re

from rapidfuzz.distance import Levenshtein

SIMILAR_THRESHOLD = 0.3
HIGH_SIMILARITY_THRESHOLD = 0.6

_SEPARATORS = re.compile(r"[-_.,/]")
_WHITESPACE = re.compile(r"\s+")


def normalize(text: str | None) -> str:
    """Lowercase, spell out '&', turn separators into spaces, collapse whitespace."""
    if not text:
        return ""
    text = text.lower().replace("&", " and ")
    text = _SEPARATORS.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def similarity(first: str | None, second: str | None) -> float:
    a, b = normalize(first), normalize(second)
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    if a in b or b in a:
        return 0.9

    words_a, words_b = set(a.split()), set(b.split())
    word_overlap = len(words_a & words_b) / max(len(words_a), len(words_b))
    char_similarity = Levenshtein.normalized_similarity(a, b)
    return round(0.7 * word_overlap + 0.3 * char_similarity, 4)


def is_similar(first: str | None, second: str | None, threshold: float = SIMILAR_THRESHOLD) -> bool:
    return similarity(first, second) >= threshold


def is_highly_similar(first: str | None, second: str | None) -> bool:
    return similarity(first, second) >= HIGH_SIMILARITY_THRESHOLD


def mean_pairwise_similarity(texts: list[str], max_items: int = 20) -> float:
    """Average similarity over all pairs of (at most ``max_items``) texts."""
    items = sorted(texts)[:max_items]
    if len(items) < 2:
        return 1.0 if items else 0.0
    total = 0.0
    pairs = 0
    for i in range(len(items)):
        for j in range(i + 1, len(items)):
            total += similarity(items[i], items[j])
            pairs += 1
    return total / pairs
