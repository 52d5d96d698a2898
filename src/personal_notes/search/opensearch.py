"""OpenSearch implementation of the SearchIndex protocol over its REST API.

``render_query`` is the only place that knows the OpenSearch query DSL;
everything upstream works with the query AST in ``personal_notes.search.query``.
"""

import logging
from datetime import UTC, datetime
from typing import Any

import httpx
import pydantic

from personal_notes.config import (
    get_index_name,
    get_opensearch_auth,
    get_opensearch_url,
    get_search_timeout,
)
from personal_notes.errors import IndexSchemaMismatch, SearchUnavailable, SyncFailure
from personal_notes.models.search import IndexResponse, SearchHit, SortField
from personal_notes.search.query import (
    AccessFilter,
    Clause,
    DateRangeFilter,
    Filter,
    FuzzyMulti,
    IndexQuery,
    MatchPhrasePrefix,
    TagsFilter,
    TermExact,
)

logger = logging.getLogger(__name__)

# OpenSearch's default index.max_result_window; from + size may not exceed it
MAX_RESULT_WINDOW = 10000

# Logical field -> non-analyzed field used for exact term matching and sorting
KEYWORD_FIELDS = {"title": "title.keyword", "content": "content.keyword", "tags": "tags"}
SORT_FIELDS = {
    SortField.CREATED_AT: "createdAt",
    SortField.UPDATED_AT: "updatedAt",
    SortField.TITLE: "title.keyword",
}

_TEXT_WITH_KEYWORD = {
    "type": "text",
    "analyzer": "standard",
    "fields": {
        "keyword": {"type": "keyword", "ignore_above": 256, "normalizer": "lowercase"},
    },
}

INDEX_BODY: dict[str, Any] = {
    "settings": {
        "number_of_shards": 1,
        "number_of_replicas": 0,
        "analysis": {
            "normalizer": {
                "lowercase": {"type": "custom", "filter": ["lowercase"]},
            },
        },
    },
    "mappings": {
        "properties": {
            "id": {"type": "keyword"},
            "title": _TEXT_WITH_KEYWORD,
            "content": _TEXT_WITH_KEYWORD,
            "contentType": {"type": "keyword"},
            "tags": {"type": "keyword"},
            "owner": {"type": "keyword"},
            "collaborators": {"type": "keyword"},
            "folderId": {"type": "keyword"},
            "isPinned": {"type": "boolean"},
            "createdAt": {"type": "date"},
            "updatedAt": {"type": "date"},
        },
    },
}

# Field types a usable existing index must have
REQUIRED_FIELD_TYPES = {
    "id": "keyword",
    "title": "text",
    "title.keyword": "keyword",
    "content": "text",
    "content.keyword": "keyword",
    "tags": "keyword",
    "owner": "keyword",
    "collaborators": "keyword",
    "createdAt": "date",
    "updatedAt": "date",
}


def render_query(query: IndexQuery) -> dict[str, Any]:
    """Render an IndexQuery as an OpenSearch ``_search`` request body.

    A page that ends past ``MAX_RESULT_WINDOW`` asks for the total only.
    Raises ValueError if the query carries no access filter.
    """
    access = query.access
    filters = [_render_filter(access)]
    filters.extend(_render_filter(f) for f in query.filters if f is not access)
    bool_query: dict[str, Any] = {"filter": filters}
    if query.relevance:
        bool_query["must"] = [_should(query.relevance)]

    offset, size = query.offset, query.size
    if offset + size > MAX_RESULT_WINDOW:
        logger.debug("Page at offset %d is past the result window, returning no hits", offset)
        offset, size = 0, 0

    body: dict[str, Any] = {
        "from": offset,
        "size": size,
        "track_total_hits": True,
        "track_scores": True,
        "query": {"bool": bool_query},
        "sort": _render_sort(query),
    }

    if query.highlight is not None:
        hl = query.highlight
        fields: dict[str, Any] = {}
        for f in hl.fields:
            options: dict[str, Any] = {"number_of_fragments": f.fragments}
            if f.fragments:
                options["fragment_size"] = f.fragment_size
            fields[f.field] = options
        body["highlight"] = {
            "pre_tags": [hl.pre_tag],
            "post_tags": [hl.post_tag],
            "require_field_match": False,
            "fields": fields,
            "highlight_query": _should(hl.clauses),
        }
    return body


def _should(clauses: tuple[Clause, ...]) -> dict[str, Any]:
    return {"bool": {"should": [_render_clause(c) for c in clauses], "minimum_should_match": 1}}


def _render_clause(clause: Clause) -> dict[str, Any]:
    match clause:
        case MatchPhrasePrefix(field=f, query=q, boost=boost, slop=slop):
            return {"match_phrase_prefix": {f: {"query": q, "boost": boost, "slop": slop}}}
        case FuzzyMulti():
            return {
                "multi_match": {
                    "query": clause.query,
                    "fields": [f"{fb.field}^{fb.boost:g}" for fb in clause.fields],
                    "fuzziness": "AUTO",
                    "prefix_length": clause.prefix_length,
                    "operator": "or",
                    "minimum_should_match": clause.minimum_should_match,
                }
            }
        case TermExact(field=f, value=value, boost=boost):
            return {"term": {KEYWORD_FIELDS.get(f, f): {"value": value, "boost": boost}}}
    raise TypeError(f"Unsupported clause: {clause!r}")


def _render_filter(flt: Filter) -> dict[str, Any]:
    match flt:
        case AccessFilter(user_id=user_id):
            return {
                "bool": {
                    "should": [
                        {"term": {"owner": user_id}},
                        {"term": {"collaborators": user_id}},
                    ],
                    "minimum_should_match": 1,
                }
            }
        case TagsFilter(tags=tags):
            return {"terms": {"tags": list(tags)}}
        case DateRangeFilter(gte=gte, lte=lte, field=f):
            bounds: dict[str, str] = {}
            if gte is not None:
                bounds["gte"] = format_instant(gte)
            if lte is not None:
                bounds["lte"] = format_instant(lte)
            return {"range": {f: bounds}}
    raise TypeError(f"Unsupported filter: {flt!r}")


def _render_sort(query: IndexQuery) -> list[Any]:
    direction = query.sort.direction.value
    if query.sort.field is SortField.RELEVANCE:
        primary: Any = {"_score": {"order": direction}}
        return [primary, {"createdAt": {"order": "desc"}}, {"id": {"order": "asc"}}]
    return [{SORT_FIELDS[query.sort.field]: {"order": direction}}, {"id": {"order": "asc"}}]


def format_instant(value: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_response(body: Any) -> IndexResponse:
    """Convert a raw ``_search`` response body to an IndexResponse."""
    try:
        hits_section = body["hits"]
        total = hits_section["total"]
        total_value = total["value"] if isinstance(total, dict) else total
        hits = [
            SearchHit(
                id=str(raw["_id"]),
                score=raw.get("_score"),
                highlight=raw.get("highlight") or {},
                source=raw.get("_source") or {},
            )
            for raw in hits_section["hits"]
        ]
        return IndexResponse(hits=hits, total=int(total_value))
    except (KeyError, TypeError, ValueError, pydantic.ValidationError) as e:
        raise SearchUnavailable(f"Malformed search response: {e}") from e


def mapping_problems(mapping: dict[str, Any]) -> list[str]:
    """Differences between an existing index mapping and the required field types."""
    properties = mapping.get("mappings", {}).get("properties", {})
    problems = []
    for path, expected in REQUIRED_FIELD_TYPES.items():
        name, _, sub = path.partition(".")
        field_mapping = properties.get(name, {})
        if sub:
            field_mapping = field_mapping.get("fields", {}).get(sub, {})
        actual = field_mapping.get("type")
        if actual != expected:
            problems.append(f"{path}: expected {expected}, found {actual or 'nothing'}")
    return problems


class OpenSearchIndex:
    """Search index backed by an OpenSearch cluster."""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        base_url: str | None = None,
        index_name: str | None = None,
        timeout: float | None = None,
    ):
        """Initialize with an optional HTTP client. Unset options come from config."""
        self._http = http_client
        self.base_url = (base_url or get_opensearch_url()).rstrip("/")
        self.index_name = index_name or get_index_name()
        self.timeout = timeout if timeout is not None else get_search_timeout()

    # -- Schema --

    async def ensure_index_schema(self, *, recreate: bool = False) -> str:
        """Create the index when absent; keep a compatible existing one.

        An incompatible index raises IndexSchemaMismatch unless ``recreate``
        is set, in which case it is dropped and created again (all search
        documents are lost and need a re-sync).
        """
        resp = await self._send("HEAD", "", error=SearchUnavailable, allow_missing=True)
        if resp.status_code == 404:
            await self._send("PUT", "", json=INDEX_BODY, error=SearchUnavailable)
            logger.info("Created search index %s", self.index_name)
            return "created"

        resp = await self._send("GET", "/_mapping", error=SearchUnavailable)
        mappings = _json(resp)
        mapping = next(iter(mappings.values()), {}) if isinstance(mappings, dict) else {}
        problems = mapping_problems(mapping)
        if not problems:
            logger.info("Search index %s exists with a compatible mapping", self.index_name)
            return "exists"
        if not recreate:
            raise IndexSchemaMismatch(
                f"Index {self.index_name} is incompatible: {'; '.join(problems)}"
            )

        logger.warning("Recreating incompatible search index %s", self.index_name)
        await self._send("DELETE", "", error=SearchUnavailable)
        await self._send("PUT", "", json=INDEX_BODY, error=SearchUnavailable)
        return "recreated"

    # -- Writes --

    async def index_document(
        self, doc_id: str, document: dict[str, Any], *, refresh: bool = False
    ) -> None:
        """Create or replace a document."""
        await self._send(
            "PUT", f"/_doc/{doc_id}", json=document, params=_refresh(refresh), error=SyncFailure
        )

    async def update_document(
        self, doc_id: str, partial: dict[str, Any], *, refresh: bool = False
    ) -> bool:
        """Overwrite some fields. Returns False if the document does not exist."""
        resp = await self._send(
            "POST",
            f"/_update/{doc_id}",
            json={"doc": partial},
            params=_refresh(refresh),
            error=SyncFailure,
            allow_missing=True,
        )
        return resp.status_code != 404

    async def delete_document(self, doc_id: str, *, refresh: bool = False) -> bool:
        """Remove a document. Returns False if it was already absent."""
        resp = await self._send(
            "DELETE",
            f"/_doc/{doc_id}",
            params=_refresh(refresh),
            error=SyncFailure,
            allow_missing=True,
        )
        return resp.status_code != 404

    # -- Reads --

    async def search(self, query: IndexQuery) -> IndexResponse:
        """Run a query and return hits in ranking order."""
        resp = await self._send(
            "POST", "/_search", json=render_query(query), error=SearchUnavailable
        )
        return parse_response(_json(resp))

    async def refresh(self) -> None:
        """Make all writes so far visible to search."""
        await self._send("POST", "/_refresh", error=SyncFailure)

    async def scan_ids(self, after: str | None, limit: int) -> list[str]:
        """Page through document IDs in ascending order, strictly after ``after``."""
        body: dict[str, Any] = {
            "size": limit,
            "_source": False,
            "query": {"match_all": {}},
            "sort": [{"id": {"order": "asc"}}],
        }
        if after is not None:
            body["search_after"] = [after]
        resp = await self._send("POST", "/_search", json=body, error=SearchUnavailable)
        return [hit.id for hit in parse_response(_json(resp)).hits]

    # -- Transport --

    async def _send(
        self,
        method: str,
        path: str,
        *,
        error: type[Exception],
        json: Any = None,
        params: dict[str, str] | None = None,
        allow_missing: bool = False,
    ) -> httpx.Response:
        url = f"{self.base_url}/{self.index_name}{path}"
        try:
            resp = await self._get_client().request(
                method, url, json=json, params=params, timeout=self.timeout
            )
        except httpx.TimeoutException as e:
            raise error(f"{method} {url} timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise error(f"{method} {url} failed: {e}") from e

        if resp.status_code == 404 and allow_missing:
            return resp
        if resp.status_code >= 400:
            raise error(f"{method} {url} returned {resp.status_code}: {resp.text[:200]}")
        return resp

    def _get_client(self) -> httpx.AsyncClient:
        if self._http is None:
            auth = get_opensearch_auth()
            self._http = httpx.AsyncClient(auth=auth) if auth else httpx.AsyncClient()
        return self._http

    async def close(self) -> None:
        """Close the HTTP client if open."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None


def _refresh(refresh: bool) -> dict[str, str] | None:
    return {"refresh": "true"} if refresh else None


def _json(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError as e:
        raise SearchUnavailable("Search response is not JSON") from e
