"""
Relevance scoring for address search.

Score = text-match bonus + source bonus, applied uniformly to every source before the
final sort. Matching is case- and accent-insensitive (see `core.text.fold`), and a
place's aliases count as its title.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable

from wayfinder.config.settings import ScoringSettings
from wayfinder.core.text import compact, fold
from wayfinder.domain.models import SourceType


class MatchKind(str, Enum):
    EXACT = "exact"
    PREFIX = "prefix"
    SUBSTRING = "substring"
    SUBTITLE = "subtitle"
    NONE = "none"


def _title_match(query: str, candidate: str) -> MatchKind:
    q, c = fold(query), fold(candidate)
    if not q or not c:
        return MatchKind.NONE
    qc, cc = compact(query), compact(candidate)
    if q == c or qc == cc:
        return MatchKind.EXACT
    if c.startswith(q) or cc.startswith(qc):
        return MatchKind.PREFIX
    if q in c or qc in cc:
        return MatchKind.SUBSTRING
    return MatchKind.NONE


_RANK = {MatchKind.EXACT: 0, MatchKind.PREFIX: 1, MatchKind.SUBSTRING: 2, MatchKind.SUBTITLE: 3, MatchKind.NONE: 4}


def match_kind(
    query: str,
    title: str,
    *,
    subtitle: str | None = None,
    aliases: Iterable[str] = (),
    extra: Iterable[str | None] = (),
) -> MatchKind:
    """Best match of `query` against a title (or alias), else against subtitle/extra text."""
    best = MatchKind.NONE
    for candidate in (title, *aliases):
        kind = _title_match(query, candidate)
        if _RANK[kind] < _RANK[best]:
            best = kind
        if best is MatchKind.EXACT:
            return best
    if best is not MatchKind.NONE:
        return best

    q = compact(query)
    for text in (subtitle, *extra):
        if q and text and q in compact(text):
            return MatchKind.SUBTITLE
    return MatchKind.NONE


def match_bonus(kind: MatchKind, scoring: ScoringSettings) -> float:
    m = scoring.match
    return {
        MatchKind.EXACT: m.exact,
        MatchKind.PREFIX: m.prefix,
        MatchKind.SUBSTRING: m.substring,
        MatchKind.SUBTITLE: m.subtitle,
    }.get(kind, 0.0)


def source_bonus(source_type: SourceType, scoring: ScoringSettings) -> float:
    return float(getattr(scoring.source, source_type.value))


def relevance_score(kind: MatchKind, source_type: SourceType, scoring: ScoringSettings) -> float:
    return float(match_bonus(kind, scoring)) + source_bonus(source_type, scoring)
