"""Tests for note and search models."""

from datetime import UTC, date, datetime

import pydantic
import pytest

from personal_notes.models.note import Note, User
from personal_notes.models.search import DateRange, SearchRequest, SortField, SortSpec
from personal_notes.search.documents import to_search_document


def test_owner_cannot_be_collaborator():
    with pytest.raises(pydantic.ValidationError):
        Note(id="note-00001", title="T", content="C", owner="u1", collaborators=["u1"])


def test_visibility():
    note = Note(id="note-00001", title="T", content="C", owner="u1", collaborators=["u2"])
    assert note.is_visible_to("u1")
    assert note.is_visible_to("u2")
    assert not note.is_visible_to("u3")


def test_user_ref():
    user = User(id="user-00001", username="alice", email="Alice@Example.com")
    assert user.ref.email == "alice@example.com"


def test_sort_spec_parse():
    assert SortSpec.parse("title:ASC") == SortSpec(field=SortField.TITLE, direction="asc")
    assert SortSpec.parse("createdAt").direction == "desc"
    assert SortSpec.parse("") is None
    assert SortSpec.parse("size:asc") is None


def test_date_range_accepts_datetimes():
    rng = DateRange.model_validate({"from": "2024-01-01T18:30:00Z", "to": date(2024, 1, 2)})
    assert rng.date_from == date(2024, 1, 1)
    assert rng.date_to == date(2024, 1, 2)
    assert DateRange().is_empty


def test_request_drops_empty_range():
    request = SearchRequest(requesting_user="u1", date_range={"from": "", "to": None})
    assert request.date_range is None
    assert not request.has_criteria


def test_search_document_uses_camel_case():
    created = datetime(2024, 1, 1, tzinfo=UTC)
    note = Note(
        id="note-00001",
        title="T",
        content="C",
        owner="u1",
        collaborators=["u2"],
        folder_id="f1",
        created_at=created,
        updated_at=created,
    )
    source = to_search_document(note).to_source()
    assert source["folderId"] == "f1"
    assert source["isPinned"] is False
    assert source["contentType"] == "text"
    assert source["createdAt"] == "2024-01-01T00:00:00Z"
    assert "images" not in source
    assert "needs_reindex" not in source and "needsReindex" not in source
