"""Tests for MCP output formatters."""

from datetime import UTC, datetime

from personal_notes.models.note import ContentType, Note, UserRef
from personal_notes.models.search import SearchResult, SearchResultItem
from personal_notes.tools.formatters import (
    format_note,
    format_note_header,
    format_note_meta,
    format_result_item,
    format_search_result,
)

ALICE = UserRef(id="user-00001", username="alice", email="alice@example.com")
BOB = UserRef(id="user-00002", username="bob", email="bob@example.com")


def _item(**kwargs) -> SearchResultItem:
    defaults = {
        "id": "note-00001",
        "title": "Alpha",
        "content": "Body",
        "content_type": ContentType.TEXT,
        "tags": ["work"],
        "owner": ALICE,
        "collaborators": [BOB],
        "created_at": datetime(2024, 1, 2, tzinfo=UTC),
        "relevance_score": 3.25,
        "title_highlight": "<mark>Alpha</mark>",
        "content_highlight": "Body",
        "matched_fields": ["title"],
    }
    return SearchResultItem(**{**defaults, **kwargs})


def test_header_and_meta():
    header = format_note_header("note-00001", "Title", is_pinned=True)
    assert header == "[note-00001] Title (pinned)"
    assert format_note_meta(["a", "b"], "folder-1") == "#a #b | folder folder-1"
    assert format_note_meta([]) == ""


def test_result_item():
    text = format_result_item(_item())
    assert text.startswith("[note-00001] <mark>Alpha</mark>")
    assert "by alice, shared with bob | 2024-01-02 | score 3.25" in text
    assert "#work" in text
    assert "matched: title" in text


def test_search_result_summary():
    result = SearchResult(
        items=[_item()], page=1, page_size=10, total_count=1, total_pages=1, dropped_count=1
    )
    text = format_search_result(result)
    assert text.startswith("1 result(s), page 1 of 1")
    assert "1 stale result(s) omitted" in text


def test_listing_and_empty():
    listing = SearchResult(
        items=[_item(relevance_score=None, matched_fields=[])],
        page=1,
        page_size=10,
        total_count=4,
        total_pages=1,
        mode="listing",
    )
    assert format_search_result(listing).startswith("4 note(s)")
    assert "score" not in format_search_result(listing)

    empty = SearchResult(page=1, page_size=10, total_count=0, total_pages=0)
    assert format_search_result(empty) == "No results found."

    beyond = SearchResult(page=9, page_size=10, total_count=12, total_pages=2)
    assert "No results on page 9" in format_search_result(beyond)


def test_format_note():
    note = Note(
        id="note-00003",
        title="Plan",
        content="Steps",
        owner="user-00001",
        collaborators=["user-00002"],
        tags=["x"],
    )
    text = format_note(note)
    assert text.splitlines()[0] == "[note-00003] Plan"
    assert "collaborators: user-00002" in text
    assert text.endswith("  Steps")
