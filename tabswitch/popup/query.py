"""Query parsing and ranking for the switcher.

One input box serves two query languages. Whitespace-separated
``key:value`` tokens naming a registered search field form a structured
filter: every resolved field must hold, results stay in input order and
nothing is highlighted. When no token resolves, the whole query is a fuzzy
search: each term must appear, in order but not necessarily contiguously,
in the tab title or the URL hostname, and the matched characters are
reported as highlight ranges.

Highlight ranges are half-open ``(start, end)`` offsets into the field's
own string, sorted, non-overlapping and never past its end, so
``highlight_runs`` can always rebuild the original text from them.
"""

import re
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from ..models import TabSnapshot


Range = Tuple[int, int]
StructuredQuery = Dict[str, Optional[str]]

_HTTP_SCHEME = re.compile(r"^https?://", re.IGNORECASE)


@dataclass(frozen=True)
class SearchField:
    """A structured query field: which values it takes and how it filters."""
    name: str
    aliases: FrozenSet[str]
    accepts: Callable[[Optional[str]], bool]
    matches: Callable[[TabSnapshot, Optional[str]], bool]


@dataclass(frozen=True)
class MatchSpan:
    """Matched character ranges within one searchable field."""
    field: str
    ranges: Tuple[Range, ...]


@dataclass(frozen=True)
class RankedResult:
    """One tab in a query's result list. ``score`` is 0 unless fuzzy-ranked."""
    tab: TabSnapshot
    rank: int
    match_spans: Tuple[MatchSpan, ...] = ()
    score: float = 0.0

    def ranges_for(self, field: str) -> Tuple[Range, ...]:
        for span in self.match_spans:
            if span.field == field:
                return span.ranges
        return ()


def hostname(url: str) -> str:
    """Hostname of a URL, or an empty string if it has none."""
    if not url:
        return ""
    try:
        return urlsplit(url).hostname or ""
    except ValueError:
        return ""


def _is_bool(value: Optional[str]) -> bool:
    return value is not None and value.lower() in ("true", "false")


def _as_bool(value: Optional[str]) -> bool:
    return value is not None and value.lower() == "true"


def _is_system(tab: TabSnapshot) -> bool:
    return not _HTTP_SCHEME.match(tab.url or "")


SEARCH_FIELDS: Tuple[SearchField, ...] = (
    SearchField(
        name="sys",
        aliases=frozenset(),
        accepts=_is_bool,
        matches=lambda tab, value: _is_system(tab) == _as_bool(value),
    ),
    SearchField(
        name="pinned",
        aliases=frozenset(),
        accepts=_is_bool,
        matches=lambda tab, value: tab.pinned == _as_bool(value),
    ),
    SearchField(
        name="hostname",
        aliases=frozenset({"domain"}),
        accepts=lambda value: bool(value),
        matches=lambda tab, value: value is not None and value.lower() in hostname(tab.url),
    ),
)

_FIELDS_BY_NAME: Dict[str, SearchField] = {f.name: f for f in SEARCH_FIELDS}
_FIELDS_BY_KEY: Dict[str, SearchField] = {
    key: f for f in SEARCH_FIELDS for key in (f.name, *f.aliases)
}


def resolve_field(key: str) -> Optional[SearchField]:
    return _FIELDS_BY_KEY.get(key.lower())


def parse(query: str) -> StructuredQuery:
    """
    Extract the structured part of a query.

    Tokens with an unknown key or a value the field rejects are dropped.
    ``key:`` with nothing after the colon counts as a bare ``key``. When a
    field appears twice the last occurrence wins.
    """
    parsed: StructuredQuery = {}
    for token in query.split():
        key, _, value = token.partition(":")
        field = resolve_field(key)
        if field is None:
            continue
        value = value or None
        if not field.accepts(value):
            continue
        parsed[field.name] = value
    return parsed


# Fuzzy matching

SEARCHABLE: Tuple[Tuple[str, Callable[[TabSnapshot], str]], ...] = (
    ("title", lambda tab: tab.title or ""),
    ("hostname", lambda tab: hostname(tab.url)),
)
FIELD_WEIGHTS = {"title": 1.0, "hostname": 0.9}


def _fold(text: str) -> str:
    # Lowercase without changing length so offsets stay valid
    return "".join(c.lower() if len(c.lower()) == 1 else c for c in text)


def _best_occurrence(pattern: str, text: str) -> Optional[List[int]]:
    """Positions of the tightest occurrence of ``pattern`` as a subsequence of ``text``."""
    best: Optional[List[int]] = None
    m = len(pattern)

    for start in range(len(text)):
        if text[start] != pattern[0]:
            continue

        i, j = start, 0
        while i < len(text) and j < m:
            if text[i] == pattern[j]:
                j += 1
            i += 1
        if j < m:
            # No later start can complete either
            break

        # Walk back from the end to pull the start as far right as possible
        positions = []
        i, j = i - 1, m - 1
        while j >= 0:
            if text[i] == pattern[j]:
                positions.append(i)
                j -= 1
            i -= 1
        positions.reverse()

        if best is None or positions[-1] - positions[0] < best[-1] - best[0]:
            best = positions

    return best


def _occurrence_score(positions: List[int], text: str) -> float:
    """Score in (0, 1]: contiguity first, then word-boundary start, then earliness."""
    first, last = positions[0], positions[-1]
    compactness = len(positions) / (last - first + 1)
    boundary = 1.0 if first == 0 or not text[first - 1].isalnum() else 0.0
    earliness = 1.0 - first / len(text)
    return 0.7 * compactness + 0.2 * boundary + 0.1 * earliness


def _to_ranges(positions: List[int], length: int) -> Tuple[Range, ...]:
    ranges: List[Range] = []
    for pos in sorted(set(positions)):
        if pos < 0 or pos >= length:
            continue
        if ranges and pos <= ranges[-1][1]:
            ranges[-1] = (ranges[-1][0], max(ranges[-1][1], pos + 1))
        else:
            ranges.append((pos, pos + 1))
    return tuple(ranges)


def _match_tab(tab: TabSnapshot, terms: List[str]) -> Optional[Tuple[float, Tuple[MatchSpan, ...]]]:
    fields = [(name, getter(tab)) for name, getter in SEARCHABLE]
    folded = [_fold(text) for _, text in fields]

    positions: Dict[str, List[int]] = {}
    total = 0.0
    for term in terms:
        best = None
        for (name, _), text in zip(fields, folded):
            if not text:
                continue
            occurrence = _best_occurrence(term, text)
            if occurrence is None:
                continue
            score = _occurrence_score(occurrence, text) * FIELD_WEIGHTS[name]
            # Strictly greater keeps the earlier field on ties
            if best is None or score > best[0]:
                best = (score, name, occurrence)
        if best is None:
            return None
        total += best[0]
        positions.setdefault(best[1], []).extend(best[2])

    spans = tuple(
        MatchSpan(field=name, ranges=_to_ranges(positions[name], len(text)))
        for name, text in fields
        if name in positions
    )
    return total / len(terms), spans


def fuzzy_search(tabs: Sequence[TabSnapshot], query: str, min_score: float = 0.0) -> List[RankedResult]:
    """Rank tabs whose title or hostname contains every query term as a subsequence."""
    terms = [_fold(term) for term in query.split()]
    if not terms:
        return []

    scored = []
    for index, tab in enumerate(tabs):
        match = _match_tab(tab, terms)
        if match is None:
            continue
        score, spans = match
        if score < min_score:
            continue
        scored.append((index, tab, score, spans))

    # Input order breaks ties so equal scores keep recency order
    scored.sort(key=lambda item: (-item[2], item[0]))
    return [
        RankedResult(tab=tab, rank=rank, match_spans=spans, score=score)
        for rank, (_, tab, score, spans) in enumerate(scored)
    ]


def evaluate(tabs: Sequence[TabSnapshot], query: str, min_score: float = 0.0) -> List[RankedResult]:
    """
    Filter and rank ``tabs`` against ``query``.

    - blank query: every tab, rank = input index
    - structured query: tabs satisfying every field, input order
    - anything else: fuzzy ranking with highlight spans
    """
    if not query.strip():
        return [RankedResult(tab=tab, rank=i) for i, tab in enumerate(tabs)]

    structured = parse(query)
    if structured:
        matched = [
            tab for tab in tabs
            if all(_FIELDS_BY_NAME[name].matches(tab, value) for name, value in structured.items())
        ]
        return [RankedResult(tab=tab, rank=i) for i, tab in enumerate(matched)]

    return fuzzy_search(tabs, query, min_score)


def highlight_runs(text: str, ranges: Sequence[Range]) -> List[Tuple[str, bool]]:
    """
    Split ``text`` into alternating ``(segment, matched)`` runs.

    Joining the segments gives back ``text`` exactly.
    """
    runs: List[Tuple[str, bool]] = []
    cursor = 0
    for start, end in ranges:
        start = max(start, cursor)
        end = min(end, len(text))
        if start >= end:
            continue
        if start > cursor:
            runs.append((text[cursor:start], False))
        runs.append((text[start:end], True))
        cursor = end
    if cursor < len(text):
        runs.append((text[cursor:], False))
    return runs
