"""Environment-variable-based configuration."""

import os
from pathlib import Path


def get_db_path() -> Path:
    """Return the database file path from NOTES_DB_PATH."""
    raw = os.environ.get("NOTES_DB_PATH", "~/.local/share/personal_notes/notes.db")
    return Path(raw).expanduser()


def get_opensearch_url() -> str:
    """Return the OpenSearch node URL from NOTES_OPENSEARCH_URL."""
    return os.environ.get("NOTES_OPENSEARCH_URL", "http://localhost:9200").rstrip("/")


def get_opensearch_auth() -> tuple[str, str] | None:
    """Return basic-auth credentials from NOTES_OPENSEARCH_AUTH ("user:password")."""
    raw = os.environ.get("NOTES_OPENSEARCH_AUTH", "")
    if ":" not in raw:
        return None
    user, _, password = raw.partition(":")
    return user, password


def get_index_name() -> str:
    """Return the search index name from NOTES_INDEX_NAME."""
    return os.environ.get("NOTES_INDEX_NAME", "notes")


def get_search_timeout() -> float:
    """Return the search index call timeout in seconds from NOTES_SEARCH_TIMEOUT."""
    return float(os.environ.get("NOTES_SEARCH_TIMEOUT", "10.0"))


def get_store_timeout() -> float:
    """Return the record store read timeout in seconds from NOTES_STORE_TIMEOUT."""
    return float(os.environ.get("NOTES_STORE_TIMEOUT", "10.0"))


def get_resync_batch_size() -> int:
    """Return the number of notes per re-sync batch from NOTES_RESYNC_BATCH_SIZE."""
    return max(1, int(os.environ.get("NOTES_RESYNC_BATCH_SIZE", "100")))


def is_manager_mode() -> bool:
    """Return True if NOTES_MANAGER is set to TRUE."""
    return os.environ.get("NOTES_MANAGER", "").upper() == "TRUE"


def get_log_level() -> str:
    """Return the logging level from NOTES_LOG_LEVEL."""
    return os.environ.get("NOTES_LOG_LEVEL", "WARNING")
