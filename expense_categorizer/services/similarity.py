"""Trigram similarity between merchant strings.

Mirrors PostgreSQL pg_trgm so in-process scores agree with `similarity()` in SQL:
- text is normalized, then split into words
- each word is padded with two leading spaces and one trailing space
- score = |shared trigrams| / |all trigrams| (Jaccard over trigram sets)
"""

from expense_categorizer.services.normalizer import normalize


def trigrams(text: str | None) -> set[str]:
    """Return the pg_trgm-style trigram set of a string."""
    normalized = normalize(text)
    if not normalized:
        return set()

    result: set[str] = set()
    for word in normalized.split():
        padded = f"  {word} "
        for i in range(len(padded) - 2):
            result.add(padded[i : i + 3])
    return result


def similarity(a: str | None, b: str | None) -> float:
    """Similarity score in [0, 1] between two merchant strings.

    Returns 0.0 when either input is empty. Symmetric, and 1.0 for identical
    non-empty inputs.
    """
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0

    ta = trigrams(a)
    tb = trigrams(b)
    if not ta or not tb:
        return 0.0

    union = ta | tb
    return len(ta & tb) / len(union)
