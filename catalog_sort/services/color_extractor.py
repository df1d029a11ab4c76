"""Color extraction from variant display titles.

Title format contract (what product data must honor for ranking to work):
- "<Color> / <Size>"  -> color is the part before the first " / "
- "<Color>"           -> the whole title, unless it looks like a size

The heuristic is intentionally lossy. A bare title containing a digit
(e.g. "007") is never treated as a color, and standard size tokens
(XS..6XL) are rejected. Callers decide how to report a failed extraction;
ranking treats a missing color as zero aggregated color sales.
"""

import re

TITLE_SEPARATOR = " / "

SIZE_TOKENS = frozenset(
    {"xs", "s", "m", "l", "xl", "xxl", "2xl", "3xl", "4xl", "5xl", "6xl"}
)

_DIGIT_RE = re.compile(r"\d")


def is_size_token(value: str) -> bool:
    """True if value is exactly one of the standard size tokens (case-insensitive)."""
    return value.strip().lower() in SIZE_TOKENS


def extract_color(title: str | None) -> str | None:
    """Extract a color label from a variant title.

    Args:
        title: Variant display title, e.g. "Red / L" or "Red".

    Returns:
        The color label, or None if the title does not follow the format.

    Example:
        >>> extract_color("Red / L")
        'Red'
        >>> extract_color("XL") is None
        True
    """
    if not title:
        return None

    if TITLE_SEPARATOR in title:
        color = title.split(TITLE_SEPARATOR, 1)[0].strip()
        return color or None

    candidate = title.strip()
    if not candidate:
        return None
    if _DIGIT_RE.search(candidate) or is_size_token(candidate):
        return None
    return candidate
