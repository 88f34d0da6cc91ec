"""Provider-agnostic streaming chat client with tool calling."""

from .cancellation import CancelToken
from .config import AppConfig, ChatConfig
from .core import LoopResult, LoopState, StreamController, run_tool_loop, send, send_with_retry
from .errors import ChatError, ErrorCode, classify_error
from .models import Attachment, ConversationTurn, ToolCallRequest, ToolCallResult, ToolEvent
from .providers import ChatProvider, GeminiProvider, OpenAIProvider, create_provider
from .thinking import ThinkingSegments, ThinkingTracker, extract
from .tools import (
    InMemoryNoteStore,
    NoteStore,
    ToolDefinition,
    ToolParameter,
    ToolRegistry,
    parse_tool_calls_from_text,
    register_notes_tools,
)

__all__ = [
    "AppConfig",
    "Attachment",
    "CancelToken",
    "ChatConfig",
    "ChatError",
    "ChatProvider",
    "ConversationTurn",
    "ErrorCode",
    "GeminiProvider",
    "InMemoryNoteStore",
    "LoopResult",
    "LoopState",
    "NoteStore",
    "OpenAIProvider",
    "StreamController",
    "ThinkingSegments",
    "ThinkingTracker",
    "ToolCallRequest",
    "ToolCallResult",
    "ToolDefinition",
    "ToolEvent",
    "ToolParameter",
    "ToolRegistry",
    "classify_error",
    "create_provider",
    "extract",
    "parse_tool_calls_from_text",
    "register_notes_tools",
    "run_tool_loop",
    "send",
    "send_with_retry",
]
