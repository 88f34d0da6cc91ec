"""Tests for the notes.* tools and the in-memory note store."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from tool_chat.tools.notes import (
    InMemoryNoteStore,
    NoteStore,
    create_snippet,
    derive_title,
    ensure_boolean,
    ensure_number,
    ensure_string,
    register_notes_tools,
)
from tool_chat.tools.registry import ToolRegistry


@pytest.fixture
def store():
    return InMemoryNoteStore()


@pytest.fixture
def registry(store):
    registry = ToolRegistry()
    register_notes_tools(registry, store)
    return registry


def test_registers_four_tools(registry):
    assert [d.name for d in registry.list_definitions()] == [
        "notes.create",
        "notes.list",
        "notes.get",
        "notes.update",
    ]


def test_coercion_helpers():
    assert ensure_string(12) == "12"
    assert ensure_string(True) is None
    assert ensure_number("7") == 7.0
    assert ensure_number("seven") is None
    assert ensure_number(True) is None
    assert ensure_boolean("TRUE") is True
    assert ensure_boolean("false") is False
    assert ensure_boolean("yes") is None


def test_derive_title():
    assert derive_title("\n\n## Exam topics\n- calculus") == "Exam topics"
    assert derive_title("   ") == "New Note"
    long_line = "x" * 100
    assert derive_title(long_line) == "x" * 77 + "..."


def test_create_snippet():
    assert create_snippet("  short  ") == "short"
    assert create_snippet("abcdefghij", 8) == "abcde..."


@pytest.mark.asyncio
async def test_create_derives_title_and_serializes(registry):
    result = await registry.execute("notes.create", {"content": "First line\nbody", "isPinned": "true"})
    assert result.success is True
    assert result.data["id"] == 1
    assert result.data["title"] == "First line"
    assert result.data["content"] == "First line\nbody"
    assert result.data["isPinned"] is True
    assert result.data["createdAt"].endswith("+00:00")


@pytest.mark.asyncio
async def test_create_requires_content(registry):
    result = await registry.execute("notes.create", {"content": "   "})
    assert result.success is False
    assert result.error.code == "INVALID_ARGUMENT"


@pytest.mark.asyncio
async def test_explicit_title_is_capped(registry):
    result = await registry.execute("notes.create", {"content": "c", "title": "t" * 200})
    assert len(result.data["title"]) == 120


@pytest.mark.asyncio
async def test_list_defaults_to_snippets(registry, store):
    for i in range(3):
        await store.create(f"note {i} " + "y" * 300)
    result = await registry.execute("notes.list", {})
    assert result.success is True
    assert len(result.data) == 3
    assert "content" not in result.data[0]
    assert len(result.data[0]["snippet"]) == 160


@pytest.mark.asyncio
async def test_list_limit_clamp_and_filters(registry, store):
    for i in range(5):
        await store.create(f"note {i}", is_pinned=(i % 2 == 0))

    limited = await registry.execute("notes.list", {"limit": "2"})
    assert len(limited.data) == 2

    pinned = await registry.execute("notes.list", {"pinnedOnly": True, "includeContent": True})
    assert len(pinned.data) == 3
    assert all(note["isPinned"] for note in pinned.data)
    assert "content" in pinned.data[0]

    invalid = await registry.execute("notes.list", {"limit": -4})
    assert len(invalid.data) == 5


@pytest.mark.asyncio
async def test_get_by_id_or_title(registry, store):
    note = await store.create("Shopping\nmilk")

    by_id = await registry.execute("notes.get", {"id": str(note.id)})
    assert by_id.data["content"] == "Shopping\nmilk"

    by_title = await registry.execute("notes.get", {"title": "Shopping", "includeContent": False})
    assert by_title.data["id"] == note.id
    assert "content" not in by_title.data


@pytest.mark.asyncio
async def test_get_validation_and_not_found(registry):
    missing_args = await registry.execute("notes.get", {})
    assert missing_args.error.code == "INVALID_ARGUMENT"

    missing_note = await registry.execute("notes.get", {"id": 42})
    assert missing_note.error.code == "NOT_FOUND"


@pytest.mark.asyncio
async def test_update(registry, store):
    note = await store.create("Draft")

    updated = await registry.execute("notes.update", {"id": note.id, "content": "Final", "isPinned": True})
    assert updated.success is True
    assert updated.data["content"] == "Final"
    assert updated.data["isPinned"] is True
    assert updated.data["title"] == "Draft"

    nothing = await registry.execute("notes.update", {"id": note.id})
    assert nothing.error.code == "INVALID_ARGUMENT"

    no_id = await registry.execute("notes.update", {"title": "x"})
    assert no_id.error.code == "INVALID_ARGUMENT"

    missing = await registry.execute("notes.update", {"id": 99, "title": "x"})
    assert missing.error.code == "NOT_FOUND"


@pytest.mark.asyncio
async def test_store_failure_becomes_tool_error():
    failing_store = MagicMock(spec=NoteStore)
    failing_store.list = AsyncMock(side_effect=OSError("database locked"))
    registry = ToolRegistry()
    register_notes_tools(registry, failing_store)

    result = await registry.execute("notes.list", {})
    assert result.success is False
    assert result.error.code == "TOOL_EXECUTION_ERROR"
    assert result.error.message == "database locked"
