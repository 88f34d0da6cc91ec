"""Tool registry, text-embedded tool calls and the notes tools."""

from .notes import InMemoryNoteStore, Note, NoteStore, register_notes_tools
from .registry import (
    ToolDefinition,
    ToolExecutionContext,
    ToolParameter,
    ToolRegistry,
    create_tool_context,
)
from .text_calls import inject_tool_instructions, parse_tool_calls_from_text

__all__ = [
    "InMemoryNoteStore",
    "Note",
    "NoteStore",
    "ToolDefinition",
    "ToolExecutionContext",
    "ToolParameter",
    "ToolRegistry",
    "create_tool_context",
    "inject_tool_instructions",
    "parse_tool_calls_from_text",
    "register_notes_tools",
]
