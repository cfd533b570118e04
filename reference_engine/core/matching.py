from __future__ import annotations

import re
from collections import Counter
from typing import Iterable, List, Set

from rapidfuzz.distance import Levenshtein

from reference_engine.core.identifiers import normalize_title


STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with",
        "by", "from", "up", "about", "into", "through", "during", "before", "after",
        "above", "below", "between", "among", "that", "this", "these", "those", "is",
        "are", "was", "were", "be", "been", "being", "have", "has", "had", "do", "does",
        "did", "will", "would", "could", "should", "may", "might", "must", "can",
        "they", "said",
    }
)


def lowered_set(values: Iterable[str] | None) -> Set[str]:
    """Lowercase and strip ``values`` into a set, skipping blanks and non-strings."""

    if not values:
        return set()
    return {value.strip().lower() for value in values if isinstance(value, str) and value.strip()}


def jaccard(a: Iterable[str] | None, b: Iterable[str] | None) -> float:
    """Compute the Jaccard similarity between two collections of terms.

    Terms are compared case-insensitively. The score is ``0.0`` when either side
    is empty so that missing metadata never reads as a perfect match.
    """

    set_a = lowered_set(a)
    set_b = lowered_set(b)

    if not set_a or not set_b:
        return 0.0

    return len(set_a & set_b) / len(set_a | set_b)


def _bigrams(text: str) -> Counter:
    compact = "".join(text.split())
    return Counter(compact[i : i + 2] for i in range(len(compact) - 1))


def dice_coefficient(first: str | None, second: str | None) -> float:
    """Sørensen-Dice similarity over character bigrams, whitespace ignored.

    Identical strings score ``1.0``; strings shorter than two characters can only
    match exactly.
    """

    left = "".join((first or "").split())
    right = "".join((second or "").split())

    if left == right:
        return 1.0 if left else 0.0
    if len(left) < 2 or len(right) < 2:
        return 0.0

    left_bigrams = _bigrams(left)
    right_bigrams = _bigrams(right)
    overlap = sum((left_bigrams & right_bigrams).values())
    total = sum(left_bigrams.values()) + sum(right_bigrams.values())
    return (2.0 * overlap) / total if total else 0.0


def title_similarity(first: str | None, second: str | None) -> float:
    """Normalized edit-distance similarity between two titles.

    Titles are normalized with :func:`normalize_title`; an empty title on either
    side scores ``0.0``.
    """

    left = normalize_title(first)
    right = normalize_title(second)
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    return Levenshtein.normalized_similarity(left, right)


def content_words(text: str | None, *, min_length: int = 4, limit: int | None = None) -> List[str]:
    """Return unique words of at least ``min_length`` letters in order of appearance."""

    if not text:
        return []

    words: List[str] = []
    seen: Set[str] = set()
    for word in re.findall(r"\b\w+\b", text.lower()):
        if len(word) < min_length or word in STOP_WORDS or word in seen:
            continue
        seen.add(word)
        words.append(word)
        if limit is not None and len(words) >= limit:
            break
    return words
