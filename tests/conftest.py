from typing import List

import pytest

from tool_chat.models import ToolCallRequest
from tool_chat.providers.base import ChatProvider, RoundResult, emit_text


def pytest_configure(config):
    """Initialize runtime before test collection (pytest plugin hook)."""
    from tool_chat.runtime import init_runtime, is_initialized

    if not is_initialized():
        init_runtime()


@pytest.fixture(autouse=True)
def ensure_config_initialized():
    """Ensure configuration is initialized before each test."""
    from tool_chat.config import (
        is_config_initialized,
        load_config_from_env,
        set_config,
    )

    # If config was reset by a previous test, reinitialize it
    if not is_config_initialized():
        config = load_config_from_env()
        set_config(config)

    yield


@pytest.fixture(autouse=True)
def mock_api_keys(monkeypatch):
    """Patch API keys to avoid environment dependency"""
    monkeypatch.setenv("GOOGLE_API_KEY", "test-key")
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")


class ScriptedProvider(ChatProvider):
    """ChatProvider that replays scripted rounds.

    Each script entry is either a RoundResult-like tuple ``(chunks, calls)``
    or an exception instance to raise for that round. The last entry is
    repeated when the script runs out.
    """

    name = "scripted"

    def __init__(self, script, supports_native_tools=True):
        self.script = list(script)
        self.supports_native_tools = supports_native_tools
        self.calls = 0
        self.seen_conversations: List[list] = []
        self.seen_tools: List[list] = []
        self.seen_system: List[str] = []

    def translate(self, history, new_turn, system_instruction=""):
        messages = [{"role": t.role, "content": t.text} for t in [*history, new_turn]]
        return messages

    async def stream_round(self, conversation, tools, on_text, cancel_token, system_instruction=""):
        step = self.script[min(self.calls, len(self.script) - 1)]
        self.calls += 1
        self.seen_conversations.append([dict(m) for m in conversation])
        self.seen_tools.append([t.name for t in tools])
        self.seen_system.append(system_instruction)
        if isinstance(step, BaseException):
            raise step
        chunks, calls = step
        text = ""
        for chunk in chunks:
            if callable(chunk):
                chunk(cancel_token)
                continue
            cancel_token.raise_if_cancelled()
            text += chunk
            await emit_text(on_text, chunk)
        tool_calls = [
            call if isinstance(call, ToolCallRequest) else ToolCallRequest(*call) for call in calls
        ]
        message = {"role": "assistant", "content": text, "tool_calls": [c.id for c in tool_calls]}
        return RoundResult(text=text, tool_calls=tool_calls, message=message)

    def append_tool_results(self, conversation, results):
        for result in results:
            conversation.append({"role": "tool", "id": result.id, "content": result.to_payload()})

    def user_message(self, text):
        return {"role": "user", "content": text}


@pytest.fixture
def scripted_provider():
    """Factory for ScriptedProvider instances."""
    return ScriptedProvider
