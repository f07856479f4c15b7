"""Edit-distance based text similarity."""


def levenshtein_distance(a: str, b: str) -> int:
    """Return the minimum number of single-character edits turning ``a`` into ``b``."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(
                min(
                    previous[j] + 1,  # deletion
                    current[j - 1] + 1,  # insertion
                    previous[j - 1] + cost,  # substitution
                )
            )
        previous = current
    return previous[-1]


def text_similarity(a: str | None, b: str | None) -> float:
    """Compare two descriptions case-insensitively.

    Emptiness is judged on the raw texts, so whitespace counts as content.

    Args:
        a: First text (None is treated as empty)
        b: Second text (None is treated as empty)

    Returns:
        Score in [0, 1]; 1.0 when both are empty, 0.0 when exactly one is
    """
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0

    a = a.lower().strip()
    b = b.lower().strip()
    if a == b:
        return 1.0

    max_len = max(len(a), len(b))
    return (max_len - levenshtein_distance(a, b)) / max_len
