"""Tests for the index synchronizer."""

import asyncio
import logging

import pytest

from personal_notes.errors import SyncFailure
from personal_notes.search.documents import partial_document, to_search_document


@pytest.mark.asyncio
async def test_create_indexes_and_refreshes(synchronizer, fake_index, store, users):
    note = await store.create_note(users["alice"].id, "Alpha", "Body", ["a", "b"])
    assert await synchronizer.on_note_created(note) is True

    doc = fake_index.docs[note.id]
    assert doc["title"] == "Alpha"
    assert doc["owner"] == users["alice"].id
    assert doc["tags"] == ["a", "b"]
    assert doc["createdAt"].endswith("Z")
    assert (await store.get_note(note.id)).needs_reindex is False


@pytest.mark.asyncio
async def test_create_failure_is_non_fatal(synchronizer, fake_index, store, users, caplog):
    fake_index.fail_writes = True
    note = await store.create_note(users["alice"].id, "Alpha", "Body")

    with caplog.at_level(logging.WARNING):
        assert await synchronizer.on_note_created(note) is False

    assert synchronizer.failure_count == 1
    assert synchronizer.last_failure == f"index {note.id}"
    assert "stale until re-sync" in caplog.text
    assert (await store.get_note(note.id)).needs_reindex is True
    assert await store.get_stale_note_ids() == [note.id]


@pytest.mark.asyncio
async def test_update_sends_partial_with_updated_at(synchronizer, fake_index, store, users):
    alice = users["alice"]
    note = await store.create_note(alice.id, "Alpha", "Body", ["x"])
    await synchronizer.on_note_created(note)
    fake_index.docs[note.id]["content"] = "index-only marker"

    updated, changed = await store.update_note(note.id, alice.id, title="Beta")
    assert changed == {"title", "updated_at"}
    assert await synchronizer.on_note_updated(updated, changed)

    doc = fake_index.docs[note.id]
    assert doc["title"] == "Beta"
    assert doc["content"] == "index-only marker"
    assert doc["updatedAt"] == to_search_document(updated).to_source()["updatedAt"]


def test_partial_document_always_has_updated_at():
    from personal_notes.models.note import Note

    note = Note(id="note-00001", title="T", content="C", owner="user-00001")
    assert set(partial_document(note, {"images"})) == {"updatedAt"}
    assert set(partial_document(note, {"is_pinned", "folder_id"})) == {
        "isPinned",
        "folderId",
        "updatedAt",
    }


@pytest.mark.asyncio
async def test_update_of_missing_document_writes_full(synchronizer, fake_index, store, users):
    alice = users["alice"]
    note = await store.create_note(alice.id, "Alpha", "Body")
    updated = await store.toggle_pin(note.id, alice.id)

    assert note.id not in fake_index.docs
    assert await synchronizer.on_note_updated(updated, {"is_pinned", "updated_at"})
    assert fake_index.docs[note.id]["title"] == "Alpha"
    assert fake_index.docs[note.id]["isPinned"] is True


@pytest.mark.asyncio
async def test_delete_removes_document(synchronizer, fake_index, store, users):
    alice = users["alice"]
    note = await store.create_note(alice.id, "Alpha", "Body")
    await synchronizer.on_note_created(note)

    await store.delete_note(note.id, alice.id)
    assert await synchronizer.on_note_deleted(note.id)
    assert note.id not in fake_index.docs
    # Already gone is fine
    assert await synchronizer.on_note_deleted(note.id)


@pytest.mark.asyncio
async def test_resync_rebuilds_and_prunes(synchronizer, fake_index, store, users, monkeypatch):
    monkeypatch.setenv("NOTES_RESYNC_BATCH_SIZE", "2")
    alice = users["alice"]
    notes = [await store.create_note(alice.id, f"Note {i}", "text") for i in range(5)]
    fake_index.docs["note-99999"] = {"title": "orphan", "owner": alice.id}

    count = await synchronizer.resync()

    assert count == 5
    assert set(fake_index.docs) == {n.id for n in notes}
    assert synchronizer.last_synced_id == notes[-1].id
    assert await store.get_stale_note_ids() == []
    assert fake_index.refresh_calls >= 1


@pytest.mark.asyncio
async def test_resync_is_idempotent(synchronizer, fake_index, store, users):
    alice = users["alice"]
    for i in range(3):
        await store.create_note(alice.id, f"Note {i}", "text", ["t"])

    assert await synchronizer.resync() == 3
    first = {k: dict(v) for k, v in fake_index.docs.items()}
    assert await synchronizer.resync() == 3
    assert fake_index.docs == first


@pytest.mark.asyncio
async def test_resync_resumes_after_failure(synchronizer, fake_index, store, users):
    alice = users["alice"]
    notes = [await store.create_note(alice.id, f"Note {i}", "text") for i in range(4)]
    fake_index.fail_ids = {notes[2].id}

    with pytest.raises(SyncFailure, match=f"start_after={notes[1].id}"):
        await synchronizer.resync()
    assert synchronizer.last_synced_id == notes[1].id
    assert set(fake_index.docs) == {notes[0].id, notes[1].id}

    fake_index.fail_ids = set()
    assert await synchronizer.resync(start_after=synchronizer.last_synced_id) == 2
    assert set(fake_index.docs) == {n.id for n in notes}


@pytest.mark.asyncio
async def test_partial_resync_does_not_prune(synchronizer, fake_index, store, users):
    await store.create_note(users["alice"].id, "Only", "text")
    fake_index.docs["note-00000"] = {"title": "orphan"}
    await synchronizer.resync(start_after="note-00000")
    assert "note-00000" in fake_index.docs


@pytest.mark.asyncio
async def test_sync_stale_catches_up(synchronizer, fake_index, store, users):
    alice = users["alice"]
    fake_index.fail_writes = True
    failed = await store.create_note(alice.id, "Missed", "text")
    await synchronizer.on_note_created(failed)
    fake_index.fail_writes = False
    ok = await store.create_note(alice.id, "Fine", "text")
    await synchronizer.on_note_created(ok)

    assert await store.get_stale_note_ids() == [failed.id]
    assert await synchronizer.sync_stale() == 1
    assert failed.id in fake_index.docs
    assert await store.get_stale_note_ids() == []
    assert await synchronizer.sync_stale() == 0


@pytest.mark.asyncio
async def test_late_update_does_not_clear_newer_stale_flag(
    synchronizer, fake_index, store, users
):
    alice = users["alice"]
    note = await store.create_note(alice.id, "Title one", "Body")
    await synchronizer.on_note_created(note)

    release = asyncio.Event()
    real_update = fake_index.update_document

    async def held_update(doc_id, partial, *, refresh=False):
        await release.wait()
        return await real_update(doc_id, partial, refresh=refresh)

    first, first_changed = await store.update_note(note.id, alice.id, content="Body two")
    fake_index.update_document = held_update
    in_flight = asyncio.create_task(synchronizer.on_note_updated(first, first_changed))
    await asyncio.sleep(0)

    second, second_changed = await store.update_note(note.id, alice.id, title="Renamed title")
    fake_index.update_document = real_update
    fake_index.fail_writes = True
    assert await synchronizer.on_note_updated(second, second_changed) is False
    fake_index.fail_writes = False

    release.set()
    assert await in_flight is True
    assert fake_index.docs[note.id]["title"] == "Title one"
    assert await store.get_stale_note_ids() == [note.id]

    assert await synchronizer.sync_stale() == 1
    assert fake_index.docs[note.id]["title"] == "Renamed title"
    assert await store.get_stale_note_ids() == []


@pytest.mark.asyncio
async def test_failed_write_reflags_indexed_note(synchronizer, fake_index, store, users):
    note = await store.create_note(users["alice"].id, "Alpha", "Body")
    await synchronizer.on_note_created(note)
    assert await store.get_stale_note_ids() == []

    fake_index.fail_writes = True
    assert await synchronizer.on_note_updated(note, {"title"}) is False
    assert await store.get_stale_note_ids() == [note.id]
