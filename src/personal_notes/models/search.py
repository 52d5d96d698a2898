"""Search request, index response and search result models."""

from datetime import date, datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from personal_notes.models.note import ContentType, UserRef

MAX_PAGE_SIZE = 50
DEFAULT_PAGE_SIZE = 10


class SortField(StrEnum):
    """Fields a search or listing may be ordered by."""

    CREATED_AT = "createdAt"
    UPDATED_AT = "updatedAt"
    TITLE = "title"
    RELEVANCE = "relevance"


class SortDirection(StrEnum):
    """Sort direction."""

    ASC = "asc"
    DESC = "desc"


class SortSpec(BaseModel):
    """A single sort key."""

    field: SortField = SortField.CREATED_AT
    direction: SortDirection = SortDirection.DESC

    @classmethod
    def parse(cls, raw: str | None) -> "SortSpec | None":
        """Parse ``field:direction``. Returns None for empty or malformed input."""
        if not raw or not raw.strip():
            return None
        field_name, _, direction = raw.strip().partition(":")
        try:
            return cls(
                field=SortField(field_name.strip()),
                direction=SortDirection((direction or "desc").strip().lower()),
            )
        except ValueError:
            return None


class DateRange(BaseModel):
    """Inclusive calendar-day range on note creation time."""

    date_from: date | None = Field(default=None, validation_alias=AliasChoices("date_from", "from"))
    date_to: date | None = Field(default=None, validation_alias=AliasChoices("date_to", "to"))

    @field_validator("date_from", "date_to", mode="before")
    @classmethod
    def _calendar_day(cls, value: object) -> object:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return None
            if "T" in value or " " in value:
                return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        return value

    @model_validator(mode="after")
    def _ordered(self) -> "DateRange":
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date range start is after its end")
        return self

    @property
    def is_empty(self) -> bool:
        """True when neither bound is set."""
        return self.date_from is None and self.date_to is None


class SearchRequest(BaseModel):
    """A user's search request. Page and page size are clamped, not rejected."""

    requesting_user: str = Field(min_length=1)
    query_text: str | None = None
    tag_filter: list[str] = Field(default_factory=list)
    date_range: DateRange | None = None
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    sort: SortSpec | None = None

    @field_validator("query_text", mode="before")
    @classmethod
    def _strip_query(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("tag_filter", mode="before")
    @classmethod
    def _split_tags(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple, set, frozenset)):
            cleaned = {str(t).strip() for t in value}
            return sorted(t for t in cleaned if t)
        return value

    @field_validator("sort", mode="before")
    @classmethod
    def _parse_sort(cls, value: object) -> object:
        if isinstance(value, str) or value is None:
            return SortSpec.parse(value)
        return value

    @field_validator("page", mode="after")
    @classmethod
    def _clamp_page(cls, value: int) -> int:
        return max(1, value)

    @field_validator("page_size", mode="after")
    @classmethod
    def _clamp_page_size(cls, value: int) -> int:
        return min(MAX_PAGE_SIZE, max(1, value))

    @field_validator("date_range", mode="after")
    @classmethod
    def _drop_empty_range(cls, value: DateRange | None) -> DateRange | None:
        if value is not None and value.is_empty:
            return None
        return value

    @property
    def offset(self) -> int:
        """Zero-based index of the first result on this page."""
        return (self.page - 1) * self.page_size

    @property
    def has_criteria(self) -> bool:
        """True if any of query text, tag filter or date range is present."""
        return bool(self.query_text or self.tag_filter or self.date_range)


class SearchDocument(BaseModel):
    """Flat, index-friendly projection of a note. Serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    title: str
    content: str
    content_type: str = ContentType.TEXT.value
    tags: list[str] = Field(default_factory=list)
    owner: str
    collaborators: list[str] = Field(default_factory=list)
    folder_id: str | None = None
    is_pinned: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_source(self, fields: set[str] | None = None) -> dict[str, Any]:
        """Index body. ``fields`` limits the output to those camelCase keys."""
        source = self.model_dump(mode="json", by_alias=True)
        if fields is None:
            return source
        return {k: v for k, v in source.items() if k in fields}


class SearchHit(BaseModel):
    """One scored hit as returned by the search index."""

    id: str
    score: float | None = None
    highlight: dict[str, list[str]] = Field(default_factory=dict)
    source: dict[str, Any] = Field(default_factory=dict)


class IndexResponse(BaseModel):
    """Search index answer: hits in ranking order plus the total match count."""

    hits: list[SearchHit] = Field(default_factory=list)
    total: int = Field(default=0, ge=0)


class SearchResultItem(BaseModel):
    """A note reconciled against the record store, with scoring and highlights."""

    id: str
    title: str
    content: str
    content_type: ContentType
    tags: list[str]
    owner: UserRef
    collaborators: list[UserRef]
    folder_id: str | None = None
    is_pinned: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    relevance_score: float | None = None
    title_highlight: str
    content_highlight: str
    matched_fields: list[str] = Field(default_factory=list)


class SearchResult(BaseModel):
    """One page of search or listing results."""

    items: list[SearchResultItem] = Field(default_factory=list)
    page: int
    page_size: int
    total_count: int
    total_pages: int
    mode: Literal["search", "listing"] = "search"
    dropped_count: int = 0
