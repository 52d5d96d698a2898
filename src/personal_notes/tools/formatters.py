"""Compact output formatters for MCP tool responses."""

from personal_notes.models.note import Note
from personal_notes.models.search import SearchResult, SearchResultItem


def format_note_header(note_id: str, title: str, is_pinned: bool = False) -> str:
    """Format: [note-00012] Title (pinned)."""
    pin = " (pinned)" if is_pinned else ""
    return f"[{note_id}] {title}{pin}"


def format_note_meta(tags: list[str], folder_id: str | None = None) -> str:
    """Format: #tag1 #tag2 | folder."""
    parts: list[str] = []
    if tags:
        parts.append(" ".join(f"#{t}" for t in tags))
    if folder_id:
        parts.append(f"folder {folder_id}")
    return " | ".join(parts)


def format_result_item(item: SearchResultItem) -> str:
    """Header + owner/sharing line + meta + highlighted snippet."""
    lines = [format_note_header(item.id, item.title_highlight, item.is_pinned)]

    people = f"by {item.owner.username}"
    if item.collaborators:
        people += ", shared with " + ", ".join(c.username for c in item.collaborators)
    if item.created_at:
        people += f" | {item.created_at:%Y-%m-%d}"
    if item.relevance_score is not None:
        people += f" | score {item.relevance_score:.2f}"
    lines.append(f"  {people}")

    meta = format_note_meta(item.tags, item.folder_id)
    if meta:
        lines.append(f"  {meta}")
    if item.matched_fields:
        lines.append(f"  matched: {', '.join(item.matched_fields)}")
    lines.append(f"  {item.content_highlight}")
    return "\n".join(lines)


def format_search_result(result: SearchResult) -> str:
    """Page summary followed by items separated by blank lines."""
    if not result.items:
        if result.total_count:
            return (
                f"No results on page {result.page}"
                f" ({result.total_count} result(s) over {result.total_pages} page(s))."
            )
        return "No results found."

    label = "note(s)" if result.mode == "listing" else "result(s)"
    lines = [
        f"{result.total_count} {label}, page {result.page} of {result.total_pages}",
    ]
    if result.dropped_count:
        lines.append(f"Note: {result.dropped_count} stale result(s) omitted")
    lines.append("")
    lines.append("\n\n".join(format_result_item(i) for i in result.items))
    return "\n".join(lines)


def format_note(note: Note) -> str:
    """Header + meta + full content. For write confirmations."""
    lines = [format_note_header(note.id, note.title, note.is_pinned)]
    meta = format_note_meta(note.tags, note.folder_id)
    if meta:
        lines.append(f"  {meta}")
    if note.collaborators:
        lines.append(f"  collaborators: {', '.join(note.collaborators)}")
    if note.images:
        lines.append(f"  images: {len(note.images)}")
    lines.append(f"  {note.content}")
    return "\n".join(lines)
