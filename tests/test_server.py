"""Tests for server wiring through an in-memory MCP client."""

import pytest
from fastmcp import Client

from personal_notes.server import create_server


@pytest.fixture
def offline_env(monkeypatch, tmp_path):
    """Record store in a temp dir and a search index nobody listens on."""
    monkeypatch.setenv("NOTES_DB_PATH", str(tmp_path / "notes.db"))
    monkeypatch.setenv("NOTES_OPENSEARCH_URL", "http://127.0.0.1:9")
    monkeypatch.setenv("NOTES_SEARCH_TIMEOUT", "1.0")
    monkeypatch.delenv("NOTES_OPENSEARCH_AUTH", raising=False)


def _text(result) -> str:
    return "".join(getattr(block, "text", "") for block in result.content)


@pytest.mark.asyncio
async def test_tools_without_manager_mode(offline_env, monkeypatch):
    monkeypatch.delenv("NOTES_MANAGER", raising=False)
    async with Client(create_server()) as client:
        names = {tool.name for tool in await client.list_tools()}
    assert {"notes_search", "notes_write"} <= names
    assert "notes_maintain" not in names


@pytest.mark.asyncio
async def test_manager_mode_adds_maintenance(offline_env, monkeypatch):
    monkeypatch.setenv("NOTES_MANAGER", "TRUE")
    async with Client(create_server()) as client:
        names = {tool.name for tool in await client.list_tools()}
    assert "notes_maintain" in names


@pytest.mark.asyncio
async def test_writes_commit_while_index_is_down(offline_env):
    async with Client(create_server()) as client:
        registered = _text(
            await client.call_tool(
                "notes_write",
                {"action": "register_user", "username": "alice", "email": "a@example.com"},
            )
        )
        assert registered.startswith("Registered user-00001")

        created = _text(
            await client.call_tool(
                "notes_write",
                {
                    "action": "create",
                    "user_id": "user-00001",
                    "title": "Alpha",
                    "content": "Body",
                },
            )
        )
        assert created.startswith("Created note-00001")
        assert "search index not updated yet" in created

        listing = _text(await client.call_tool("notes_search", {"user_id": "user-00001"}))
        assert listing.startswith("1 note(s)")

        failed = _text(
            await client.call_tool("notes_search", {"user_id": "user-00001", "query": "alpha"})
        )
        assert failed.startswith("Error: search is temporarily unavailable")
