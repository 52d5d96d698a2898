"""Exception hierarchy for the notes service.

Read-path engine failures are retryable and must reach the caller; index
write failures are reported by the synchronizer and never fail the
triggering mutation.
"""


class NotesError(Exception):
    """Base class for all notes service errors."""

    retryable = False


class ValidationError(NotesError, ValueError):
    """A request or note payload is malformed."""


class NoteNotFound(NotesError):
    """The note does not exist or is not visible to the acting user."""


class PermissionDenied(NotesError):
    """The acting user may see the note but not perform this operation."""


class SearchUnavailable(NotesError):
    """The search index is unreachable, timed out, or answered with garbage."""

    retryable = True


class RecordStoreUnavailable(NotesError):
    """The record store did not answer within the configured timeout."""

    retryable = True


class SyncFailure(NotesError):
    """A search index write (index, update, delete) failed."""


class IndexSchemaMismatch(NotesError):
    """An existing search index has a mapping this service cannot use."""
