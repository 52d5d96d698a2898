"""Query builder: SearchRequest -> IndexQuery.

Access control is always a filter, whatever else the request carries. Text
relevance is an OR of three strategies (phrase-prefix, fuzzy, exact term),
each boosted independently. A request with no text, tags or dates has no
search criteria and is answered by a plain listing instead.
"""

import logging
from datetime import UTC, date, datetime, time
from typing import Any

import pydantic

from personal_notes.errors import ValidationError
from personal_notes.models.search import (
    DateRange,
    SearchRequest,
    SortDirection,
    SortField,
    SortSpec,
)
from personal_notes.search.query import (
    AccessFilter,
    Clause,
    DateRangeFilter,
    FieldBoost,
    Filter,
    FuzzyMulti,
    Highlight,
    HighlightField,
    IndexQuery,
    MatchPhrasePrefix,
    TagsFilter,
    TermExact,
)

logger = logging.getLogger(__name__)

PHRASE_PREFIX_BOOSTS = {"title": 4.0, "content": 2.0}
PHRASE_SLOP = 3
FUZZY_FIELDS = (FieldBoost("title", 3.0), FieldBoost("content", 2.0), FieldBoost("tags", 1.0))
FUZZY_PREFIX_LENGTH = 2
FUZZY_MINIMUM_SHOULD_MATCH = "50%"
TERM_BOOSTS = {"title": 5.0, "content": 3.0, "tags": 4.0}
CONTENT_FRAGMENT_SIZE = 200

DEFAULT_SORT = SortSpec(field=SortField.CREATED_AT, direction=SortDirection.DESC)

_END_OF_DAY = time(23, 59, 59, 999000)


def parse_request(**raw: Any) -> SearchRequest:
    """Validate raw request parameters, raising ValidationError on bad input."""
    try:
        return SearchRequest.model_validate(raw)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(p) for p in first["loc"]) or "request"
        raise ValidationError(f"Invalid search request ({where}): {first['msg']}") from e


def build_query(request: SearchRequest) -> IndexQuery | None:
    """Translate a search request into an index query.

    Returns None when the request has no search criteria; the caller should
    fall back to a plain listing rather than query the index.
    """
    if not request.has_criteria:
        logger.debug("No search criteria for %s, plain listing", request.requesting_user)
        return None

    filters: list[Filter] = [AccessFilter(request.requesting_user)]
    if request.tag_filter:
        filters.append(TagsFilter(tuple(request.tag_filter)))
    if request.date_range is not None:
        gte, lte = day_bounds(request.date_range)
        filters.append(DateRangeFilter(gte=gte, lte=lte))

    relevance: tuple[Clause, ...] = ()
    highlight = None
    if request.query_text:
        relevance = text_clauses(request.query_text)
        highlight = Highlight(
            clauses=relevance,
            fields=(
                HighlightField("title", fragments=0),
                HighlightField("content", fragments=1, fragment_size=CONTENT_FRAGMENT_SIZE),
                HighlightField("tags", fragments=0),
            ),
        )

    return IndexQuery(
        filters=tuple(filters),
        sort=resolve_sort(request),
        offset=request.offset,
        size=request.page_size,
        relevance=relevance,
        highlight=highlight,
    )


def text_clauses(text: str) -> tuple[Clause, ...]:
    """Scoring clauses for free text; any one of them matching is enough."""
    clauses: list[Clause] = [
        MatchPhrasePrefix(field=f, query=text, boost=boost, slop=PHRASE_SLOP)
        for f, boost in PHRASE_PREFIX_BOOSTS.items()
    ]
    clauses.append(
        FuzzyMulti(
            query=text,
            fields=FUZZY_FIELDS,
            prefix_length=FUZZY_PREFIX_LENGTH,
            minimum_should_match=FUZZY_MINIMUM_SHOULD_MATCH,
        )
    )
    for token in dict.fromkeys(text.lower().split()):
        clauses.extend(
            TermExact(field=f, value=token, boost=boost) for f, boost in TERM_BOOSTS.items()
        )
    return tuple(clauses)


def day_bounds(date_range: DateRange) -> tuple[datetime | None, datetime | None]:
    """Start of the first day and the last millisecond of the final day, in UTC."""
    gte = _at(date_range.date_from, time.min) if date_range.date_from else None
    lte = _at(date_range.date_to, _END_OF_DAY) if date_range.date_to else None
    return gte, lte


def resolve_sort(request: SearchRequest) -> SortSpec:
    """Requested sort, else newest-first.

    Relevance is only used when asked for, and only with query text.
    """
    sort = request.sort
    if sort is None:
        return DEFAULT_SORT
    if sort.field is SortField.RELEVANCE and not request.query_text:
        return DEFAULT_SORT
    return sort


def _at(day: date, at: time) -> datetime:
    return datetime.combine(day, at, tzinfo=UTC)
