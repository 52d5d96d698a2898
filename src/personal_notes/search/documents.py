"""Projection of notes into search documents."""

from pydantic.alias_generators import to_camel

from personal_notes.models.note import Note
from personal_notes.models.search import SearchDocument

# Note fields mirrored into the index (snake_case, as on the Note model)
INDEXED_FIELDS = frozenset(SearchDocument.model_fields) - {"id"}


def to_search_document(note: Note) -> SearchDocument:
    """Build the full search document for a note."""
    return SearchDocument(
        id=note.id,
        title=note.title,
        content=note.content,
        content_type=note.content_type.value,
        tags=list(note.tags),
        owner=note.owner,
        collaborators=list(note.collaborators),
        folder_id=note.folder_id,
        is_pinned=note.is_pinned,
        created_at=note.created_at,
        updated_at=note.updated_at,
    )


def partial_document(note: Note, changed_fields: set[str]) -> dict[str, object]:
    """Index body holding only the changed indexed fields, plus ``updatedAt``.

    Fields that are not indexed (images, for instance) are dropped; the
    timestamp is always sent so the index never lags the record store on it.
    """
    wanted = {to_camel(f) for f in (set(changed_fields) & INDEXED_FIELDS) | {"updated_at"}}
    return to_search_document(note).to_source(wanted)
