"""Shared test fixtures."""

import asyncio
import re
from datetime import datetime

import pytest_asyncio

from personal_notes.db.connection import create_connection
from personal_notes.errors import SearchUnavailable, SyncFailure
from personal_notes.models.search import IndexResponse, SearchHit, SortDirection, SortField
from personal_notes.search.query import (
    AccessFilter,
    DateRangeFilter,
    FuzzyMulti,
    IndexQuery,
    MatchPhrasePrefix,
    TagsFilter,
    TermExact,
)
from personal_notes.search.service import NoteSearchService
from personal_notes.store.note_store import NoteStore
from personal_notes.sync.synchronizer import IndexSynchronizer

_WORD = re.compile(r"\w+")


def _tokens(text: str) -> list[str]:
    return _WORD.findall(text.lower())


def _edit_distance(a: str, b: str) -> int:
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        cur = [i]
        for j, cb in enumerate(b, 1):
            cur.append(min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + (ca != cb)))
        prev = cur
    return prev[-1]


def _auto_fuzziness(term: str) -> int:
    if len(term) <= 2:
        return 0
    return 1 if len(term) <= 5 else 2


def _parse_instant(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class FakeSearchIndex:
    """In-process search index that evaluates the query AST.

    Matching is a rough stand-in for the real analyzers: word tokens,
    lower-cased, with prefix, edit-distance and exact-keyword variants.
    """

    def __init__(self):
        self.docs: dict[str, dict] = {}
        self.search_calls = 0
        self.refresh_calls = 0
        self.last_query: IndexQuery | None = None
        self.fail_search = False
        self.fail_writes = False
        self.fail_ids: set[str] = set()
        self.delay = 0.0
        self.extra_hits: list[SearchHit] = []
        self.exists = True

    # -- Schema --

    async def ensure_index_schema(self, *, recreate: bool = False) -> str:
        if not self.exists:
            self.exists = True
            return "created"
        if recreate:
            self.docs.clear()
            return "recreated"
        return "exists"

    # -- Writes --

    def _check_write(self, doc_id: str) -> None:
        if self.fail_writes or doc_id in self.fail_ids:
            raise SyncFailure(f"fake index write failed for {doc_id}")

    async def index_document(self, doc_id, document, *, refresh=False):
        self._check_write(doc_id)
        self.docs[doc_id] = dict(document)

    async def update_document(self, doc_id, partial, *, refresh=False):
        self._check_write(doc_id)
        if doc_id not in self.docs:
            return False
        self.docs[doc_id].update(partial)
        return True

    async def delete_document(self, doc_id, *, refresh=False):
        self._check_write(doc_id)
        return self.docs.pop(doc_id, None) is not None

    async def refresh(self):
        self.refresh_calls += 1

    async def scan_ids(self, after, limit):
        return sorted(i for i in self.docs if after is None or i > after)[:limit]

    async def close(self):
        pass

    # -- Reads --

    async def search(self, query: IndexQuery) -> IndexResponse:
        self.search_calls += 1
        self.last_query = query
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_search:
            raise SearchUnavailable("fake index is down")

        scored: list[tuple[str, float]] = []
        for doc_id, doc in self.docs.items():
            if not all(self._passes(f, doc) for f in query.filters):
                continue
            score = 0.0
            if query.relevance:
                score = sum(self._clause_score(c, doc) for c in query.relevance)
                if score <= 0:
                    continue
            scored.append((doc_id, score))

        ordered = self._sorted(scored, query)
        page = ordered[query.offset : query.offset + query.size]
        hits = [
            SearchHit(
                id=doc_id,
                score=score if query.relevance else None,
                highlight=self._highlight(query, self.docs[doc_id]),
                source=self.docs[doc_id],
            )
            for doc_id, score in page
        ]
        hits.extend(self.extra_hits)
        return IndexResponse(hits=hits, total=len(ordered) + len(self.extra_hits))

    def _passes(self, flt, doc) -> bool:
        if isinstance(flt, AccessFilter):
            return doc["owner"] == flt.user_id or flt.user_id in doc.get("collaborators", [])
        if isinstance(flt, TagsFilter):
            return bool(set(flt.tags) & set(doc.get("tags", [])))
        if isinstance(flt, DateRangeFilter):
            created = _parse_instant(doc[flt.field])
            if flt.gte is not None and created < flt.gte:
                return False
            return not (flt.lte is not None and created > flt.lte)
        raise TypeError(flt)

    def _field_tokens(self, doc, field) -> list[str]:
        value = doc.get(field, "")
        if isinstance(value, list):
            value = " ".join(value)
        return _tokens(value)

    def _clause_score(self, clause, doc) -> float:
        if isinstance(clause, MatchPhrasePrefix):
            words = self._field_tokens(doc, clause.field)
            terms = _tokens(clause.query)
            if not terms:
                return 0.0
            *head, last = terms
            if all(t in words for t in head) and any(w.startswith(last) for w in words):
                return clause.boost
            return 0.0
        if isinstance(clause, FuzzyMulti):
            terms = _tokens(clause.query)
            total = 0.0
            for fb in clause.fields:
                words = self._field_tokens(doc, fb.field)
                matched = sum(1 for t in terms if self._fuzzy_hit(t, words, clause.prefix_length))
                if terms and matched / len(terms) >= 0.5:
                    total += fb.boost
            return total
        if isinstance(clause, TermExact):
            value = doc.get(clause.field)
            if isinstance(value, list):
                return clause.boost if clause.value in value else 0.0
            return clause.boost if (value or "").lower() == clause.value else 0.0
        raise TypeError(clause)

    @staticmethod
    def _fuzzy_hit(term: str, words: list[str], prefix_length: int) -> bool:
        allowed = _auto_fuzziness(term)
        return any(
            w[:prefix_length] == term[:prefix_length] and _edit_distance(term, w) <= allowed
            for w in words
        )

    def _highlight(self, query: IndexQuery, doc) -> dict[str, list[str]]:
        if query.highlight is None:
            return {}
        terms = set()
        for clause in query.relevance:
            if isinstance(clause, (MatchPhrasePrefix, FuzzyMulti)):
                terms.update(_tokens(clause.query))
        out: dict[str, list[str]] = {}
        hl = query.highlight
        for hf in hl.fields:
            values = doc.get(hf.field)
            values = values if isinstance(values, list) else [values or ""]
            marked = []
            for value in values:
                new = _WORD.sub(
                    lambda m: (
                        f"{hl.pre_tag}{m.group(0)}{hl.post_tag}"
                        if any(m.group(0).lower().startswith(t) for t in terms)
                        else m.group(0)
                    ),
                    value,
                )
                if new != value:
                    marked.append(new)
            if marked:
                out[hf.field] = marked
        return out

    def _sorted(self, scored, query: IndexQuery):
        by_id = sorted(scored, key=lambda item: item[0])
        reverse = query.sort.direction is SortDirection.DESC
        if query.sort.field is SortField.RELEVANCE:
            by_created = sorted(
                by_id, key=lambda item: self.docs[item[0]]["createdAt"], reverse=True
            )
            return sorted(by_created, key=lambda item: item[1], reverse=reverse)
        key = query.sort.field.value
        return sorted(by_id, key=lambda item: str(self.docs[item[0]][key]).lower(), reverse=reverse)


@pytest_asyncio.fixture
async def db():
    """In-memory record store database with full schema."""
    conn = await create_connection(":memory:")
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def store(db):
    """Note store backed by in-memory DB."""
    return NoteStore(db)


@pytest_asyncio.fixture
async def users(store):
    """Three registered users: alice (user-00001), bob (user-00002), carol (user-00003)."""
    alice = await store.create_user("alice", "alice@example.com")
    bob = await store.create_user("bob", "bob@example.com")
    carol = await store.create_user("carol", "carol@example.com")
    return {"alice": alice, "bob": bob, "carol": carol}


@pytest_asyncio.fixture
async def fake_index():
    """Deterministic in-process search index."""
    return FakeSearchIndex()


@pytest_asyncio.fixture
async def synchronizer(store, fake_index):
    """Index synchronizer wired to the fake index."""
    return IndexSynchronizer(store, fake_index, timeout=5.0)


@pytest_asyncio.fixture
async def service(store, fake_index):
    """Search service wired to the fake index."""
    return NoteSearchService(store, fake_index, search_timeout=5.0, store_timeout=5.0)
