"""Tests for the Gemini provider (google-genai SDK mocked)."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from tool_chat.cancellation import CancelToken
from tool_chat.errors import ChatError, ErrorCode
from tool_chat.models import Attachment, ConversationTurn, ToolCallResult
from tool_chat.providers.gemini import GeminiProvider
from tool_chat.tools.registry import ToolDefinition, ToolParameter


def _part(text=None, function_call=None, thought=False):
    return SimpleNamespace(text=text, function_call=function_call, thought=thought)


def _chunk(*parts):
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))])


def _client_streaming(*chunks):
    async def stream():
        for chunk in chunks:
            yield chunk

    client = MagicMock()
    client.aio.models.generate_content_stream = AsyncMock(return_value=stream())
    return client


def test_missing_api_key_is_config_error():
    with pytest.raises(ChatError) as exc_info:
        GeminiProvider(api_key=None)
    assert exc_info.value.code == ErrorCode.CONFIG_ERROR


def test_video_model_is_config_error():
    with pytest.raises(ChatError) as exc_info:
        GeminiProvider(api_key="key", model_name="veo-3")
    assert exc_info.value.code == ErrorCode.CONFIG_ERROR


def test_translate_keeps_order_and_inlines_attachments():
    provider = GeminiProvider(client=MagicMock())
    pdf = Attachment("application/pdf", b"%PDF-1.4", name="doc.pdf")
    history = [ConversationTurn.user("hi"), ConversationTurn.assistant("hello")]
    new_turn = ConversationTurn.user("read this", [pdf])

    contents = provider.translate(history, new_turn, "system text")

    assert contents == [
        {"role": "user", "parts": [{"text": "hi"}]},
        {"role": "model", "parts": [{"text": "hello"}]},
        {
            "role": "user",
            "parts": [
                {"text": "read this"},
                {"inline_data": {"mime_type": "application/pdf", "data": b"%PDF-1.4"}},
            ],
        },
    ]
    assert contents == provider.translate(history, new_turn, "system text")


def test_translate_empty_turn_gets_empty_text_part():
    provider = GeminiProvider(client=MagicMock())
    assert provider.translate([], ConversationTurn.user(""))[0]["parts"] == [{"text": ""}]


@pytest.mark.asyncio
async def test_stream_round_forwards_text_and_collects_calls():
    call = SimpleNamespace(id=None, name="notes.list", args={"limit": 3})
    client = _client_streaming(
        _chunk(_part(text="Let me "), _part(text="hidden", thought=True)),
        _chunk(_part(text="look."), _part(function_call=call)),
    )
    provider = GeminiProvider(client=client)
    tools = [ToolDefinition("notes.list", "List notes", (ToolParameter("limit", "number"),))]
    received = []

    result = await provider.stream_round(
        [{"role": "user", "parts": [{"text": "hi"}]}], tools, received.append, CancelToken(), "sys"
    )

    assert received == ["Let me ", "look."]
    assert result.text == "Let me look."
    assert [(c.id, c.name, c.arguments) for c in result.tool_calls] == [
        ("notes.list-1", "notes.list", {"limit": 3})
    ]
    assert result.message == {
        "role": "model",
        "parts": [
            {"text": "Let me look."},
            {"function_call": {"name": "notes.list", "args": {"limit": 3}}},
        ],
    }

    kwargs = client.aio.models.generate_content_stream.call_args.kwargs
    config = kwargs["config"]
    assert kwargs["model"] == "gemini-2.5-flash"
    assert config.system_instruction == "sys"
    assert config.automatic_function_calling.disable is True
    assert config.tools[0].function_declarations[0].name == "notes.list"


@pytest.mark.asyncio
async def test_stream_round_stops_when_cancelled():
    token = CancelToken()
    client = _client_streaming(_chunk(_part(text="first")), _chunk(_part(text="second")))
    provider = GeminiProvider(client=client)
    received = []

    def on_text(text):
        received.append(text)
        token.cancel()

    with pytest.raises(ChatError) as exc_info:
        await provider.stream_round([], [], on_text, token)

    assert exc_info.value.code == ErrorCode.CANCELLED
    assert received == ["first"]


@pytest.mark.asyncio
async def test_cancel_abandons_a_stalled_stream():
    closed = []

    async def stalled():
        try:
            yield _chunk(_part(text="partial"))
            await asyncio.sleep(5)
            yield _chunk(_part(text="never"))
        finally:
            closed.append(True)

    client = MagicMock()
    client.aio.models.generate_content_stream = AsyncMock(return_value=stalled())
    provider = GeminiProvider(client=client)
    token = CancelToken()
    received = []
    asyncio.get_running_loop().call_later(0.05, token.cancel)

    with pytest.raises(ChatError) as exc_info:
        await asyncio.wait_for(provider.stream_round([], [], received.append, token), timeout=1.0)

    assert exc_info.value.code == ErrorCode.CANCELLED
    assert received == ["partial"]
    assert closed == [True]


def test_append_tool_results_uses_native_ids_only():
    provider = GeminiProvider(client=MagicMock())
    conversation = [
        {
            "role": "model",
            "parts": [
                {"function_call": {"id": "abc", "name": "a", "args": {}}},
                {"function_call": {"name": "b", "args": {}}},
            ],
        }
    ]
    results = [
        ToolCallResult.ok({"x": 1}, name="a", id="abc"),
        ToolCallResult.fail("NOT_FOUND", "gone", name="b", id="b-2"),
    ]

    provider.append_tool_results(conversation, results)

    assert conversation[-1] == {
        "role": "user",
        "parts": [
            {
                "function_response": {
                    "id": "abc",
                    "name": "a",
                    "response": {"success": True, "data": {"x": 1}, "error": None},
                }
            },
            {
                "function_response": {
                    "name": "b",
                    "response": {
                        "success": False,
                        "data": None,
                        "error": {"code": "NOT_FOUND", "message": "gone"},
                    },
                }
            },
        ],
    }


def test_append_text_tool_results_adds_user_message():
    provider = GeminiProvider(client=MagicMock())
    conversation = []
    provider.append_text_tool_results(conversation, [ToolCallResult.ok([], name="n", id="n-1")])
    assert conversation[0]["role"] == "user"
    assert conversation[0]["parts"][0]["text"].startswith("<tool_results>")
