"""Search index query AST.

The query builder composes these clauses; each search index adapter renders
them to its own wire format. Field names here are logical note fields
(``title``, ``content``, ``tags``, ``createdAt``), not index sub-fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from personal_notes.models.search import SortSpec


@dataclass(frozen=True, slots=True)
class MatchPhrasePrefix:
    """Phrase match whose last term may be a prefix, with ``slop`` extra tokens allowed."""

    field: str
    query: str
    boost: float
    slop: int = 3


@dataclass(frozen=True, slots=True)
class FieldBoost:
    """A field and its relative weight."""

    field: str
    boost: float = 1.0


@dataclass(frozen=True, slots=True)
class FuzzyMulti:
    """Typo-tolerant match across several fields.

    Edit distance scales with term length; the first ``prefix_length``
    characters must match exactly and at least ``minimum_should_match`` of
    the query terms must match.
    """

    query: str
    fields: tuple[FieldBoost, ...]
    prefix_length: int = 2
    minimum_should_match: str = "50%"


@dataclass(frozen=True, slots=True)
class TermExact:
    """Exact, non-analyzed match of a single lower-cased token."""

    field: str
    value: str
    boost: float


@dataclass(frozen=True, slots=True)
class AccessFilter:
    """Restrict to notes owned by, or shared with, ``user_id``."""

    user_id: str


@dataclass(frozen=True, slots=True)
class TagsFilter:
    """Notes carrying at least one of ``tags``."""

    tags: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class DateRangeFilter:
    """Inclusive bounds on a date field. Either bound may be open."""

    gte: datetime | None = None
    lte: datetime | None = None
    field: str = "createdAt"


Clause = MatchPhrasePrefix | FuzzyMulti | TermExact
Filter = AccessFilter | TagsFilter | DateRangeFilter


@dataclass(frozen=True, slots=True)
class HighlightField:
    """Highlighting for one field. ``fragments=0`` returns the whole field."""

    field: str
    fragments: int = 0
    fragment_size: int = 200


@dataclass(frozen=True, slots=True)
class Highlight:
    """Highlight request driven by the same clauses that scored the document."""

    clauses: tuple[Clause, ...]
    fields: tuple[HighlightField, ...]
    pre_tag: str = "<mark>"
    post_tag: str = "</mark>"


@dataclass(frozen=True, slots=True)
class IndexQuery:
    """A complete search: scoring clauses (OR), filters (AND), order, page window."""

    filters: tuple[Filter, ...]
    sort: SortSpec
    offset: int
    size: int
    relevance: tuple[Clause, ...] = ()
    highlight: Highlight | None = None

    @property
    def access(self) -> AccessFilter:
        """The mandatory access filter."""
        for f in self.filters:
            if isinstance(f, AccessFilter):
                return f
        raise ValueError("IndexQuery has no access filter")
