"""
Text normalization for matching.

Place names arrive with accents, apostrophes and mixed case ("Aéroport N'djili"), while
users type "aeroport ndjili". Everything that compares text goes through `fold()`.
"""

from __future__ import annotations

import re
import unicodedata

_SEPARATORS = re.compile(r"[\s\-_/'’`,.;:()\[\]]+")


def fold(text: str | None) -> str:
    """Lower-case, strip accents, and collapse separators to single spaces."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", str(text))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _SEPARATORS.sub(" ", stripped.lower()).strip()


def compact(text: str | None) -> str:
    """`fold()` without any spaces; "N'djili" and "Ndjili" compare equal."""
    return fold(text).replace(" ", "")


def normalize_query(text: str | None) -> str:
    """Trim and collapse internal whitespace, preserving case and accents for display."""
    return " ".join(str(text or "").split())
