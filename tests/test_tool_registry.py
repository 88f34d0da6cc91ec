"""Tests for the tool registry and provider schema adapters."""

import re

import pytest

from tool_chat.models import ToolCallResult
from tool_chat.tools.notes import InMemoryNoteStore, register_notes_tools
from tool_chat.tools.registry import (
    ToolDefinition,
    ToolParameter,
    ToolRegistry,
    create_tool_context,
    to_gemini_function_declarations,
    to_json_schema,
    to_openai_function_name,
    to_openai_tools,
)


def _echo_definition(name="echo"):
    return ToolDefinition(
        name=name,
        description="Echo the message back.",
        parameters=(
            ToolParameter("message", "string", "Text to echo", required=True),
            ToolParameter("times", "integer", "Repeat count"),
        ),
    )


def test_register_duplicate_raises():
    registry = ToolRegistry()
    registry.register(_echo_definition(), lambda args, ctx: ToolCallResult.ok(args))
    with pytest.raises(ValueError, match="already registered"):
        registry.register(_echo_definition(), lambda args, ctx: ToolCallResult.ok(args))


def test_list_definitions_keeps_registration_order_and_filters():
    registry = ToolRegistry()
    for name in ("b", "a", "c"):
        registry.register(_echo_definition(name), lambda args, ctx: None)
    assert [d.name for d in registry.list_definitions()] == ["b", "a", "c"]
    assert [d.name for d in registry.list_definitions(["c", "b", "missing"])] == ["b", "c"]
    assert registry.list_definitions([]) == []
    assert len(registry) == 3
    assert "a" in registry
    assert registry.get("missing") is None


def test_invalid_parameter_type_rejected():
    with pytest.raises(ValueError, match="Unsupported parameter type"):
        ToolParameter("x", "date")


@pytest.mark.asyncio
async def test_execute_unknown_tool_returns_failure():
    result = await ToolRegistry().execute("nonexistent", {})
    assert result.success is False
    assert result.error.code == "UNKNOWN_TOOL"
    assert result.error.message == 'Tool "nonexistent" not found'


@pytest.mark.asyncio
async def test_execute_sync_and_async_executors():
    registry = ToolRegistry()

    def sync_echo(args, context):
        return ToolCallResult.ok({"echo": args["message"], "origin": context.origin})

    async def async_echo(args, context):
        return ToolCallResult.ok({"echo": args["message"].upper()})

    registry.register(_echo_definition("sync"), sync_echo)
    registry.register(_echo_definition("async"), async_echo)

    sync_result = await registry.execute("sync", {"message": "hi"})
    async_result = await registry.execute("async", {"message": "hi"}, create_tool_context("test"))

    assert sync_result.data == {"echo": "hi", "origin": "ai-tool"}
    assert async_result.data == {"echo": "HI"}


@pytest.mark.asyncio
async def test_execute_wraps_executor_exception():
    registry = ToolRegistry()

    def broken(args, context):
        raise RuntimeError("disk on fire")

    registry.register(_echo_definition("broken"), broken)
    result = await registry.execute("broken", {"message": "x"})
    assert result.success is False
    assert result.error.code == "TOOL_EXECUTION_ERROR"
    assert result.error.message == "disk on fire"


@pytest.mark.asyncio
async def test_execute_wraps_plain_return_value():
    registry = ToolRegistry()
    registry.register(_echo_definition(), lambda args, ctx: [1, 2, 3])
    result = await registry.execute("echo", None)
    assert result.success is True
    assert result.data == [1, 2, 3]


def test_json_schema_and_openai_tools():
    definition = _echo_definition()
    schema = to_json_schema(definition)
    assert schema == {
        "type": "object",
        "properties": {
            "message": {"type": "string", "description": "Text to echo"},
            "times": {"type": "integer", "description": "Repeat count"},
        },
        "required": ["message"],
    }
    tools = to_openai_tools([definition])
    assert tools[0]["type"] == "function"
    assert tools[0]["function"]["name"] == "echo"
    assert tools[0]["function"]["parameters"] == schema


def test_gemini_declarations_are_sanitized():
    definition = ToolDefinition(
        name="tag",
        description="Tag things",
        parameters=(
            ToolParameter(
                "labels",
                "array",
                "Labels",
                required=True,
                items=ToolParameter("label", "string", enum=("a", "b")),
            ),
        ),
    )
    no_params = ToolDefinition(name="ping", description="Ping")

    declarations = to_gemini_function_declarations([definition, no_params])

    params = declarations[0]["parameters"]
    assert params["type"] == "OBJECT"
    assert params["properties"]["labels"]["type"] == "ARRAY"
    assert params["properties"]["labels"]["items"] == {"type": "STRING", "enum": ["a", "b"]}
    assert params["required"] == ["labels"]
    assert "parameters" not in declarations[1]


def test_openai_function_names_are_valid_wire_names():
    registry = ToolRegistry()
    register_notes_tools(registry, InMemoryNoteStore())

    names = [tool["function"]["name"] for tool in to_openai_tools(registry.list_definitions())]

    assert "notes_list" in names
    assert all(re.fullmatch(r"[a-zA-Z0-9_-]{1,64}", name) for name in names)
    assert to_openai_function_name("a.b c/d") == "a_b_c_d"
    assert len(to_openai_function_name("x" * 80)) == 64
