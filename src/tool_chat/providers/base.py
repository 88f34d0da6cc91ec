"""Base classes for chat providers

This module defines the strategy interface every backend implements. The tool
loop only talks to ``ChatProvider``; it never inspects the provider-shaped
conversation itself.
"""

import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..cancellation import CancelToken
from ..models import ConversationTurn, ToolCallRequest, ToolCallResult
from ..tools.registry import ToolDefinition
from ..tools.text_calls import format_tool_results_for_text

TextCallback = Callable[[str], Any]


@dataclass(frozen=True)
class RoundResult:
    """Outcome of one model call.

    Attributes:
        text: All answer text streamed during the round
        tool_calls: Native tool calls requested by the model, in order
        message: Provider-native assistant entry to append to the conversation
    """

    text: str = ""
    tool_calls: List[ToolCallRequest] = field(default_factory=list)
    message: Optional[Dict[str, Any]] = None


async def emit_text(callback: Optional[TextCallback], text: str) -> None:
    """Deliver ``text`` to a sync or async chunk callback."""
    if callback is None or not text:
        return
    result = callback(text)
    if inspect.isawaitable(result):
        await result


class ChatProvider(ABC):
    """Abstract base class for chat providers"""

    name = "base"
    supports_native_tools = True

    @abstractmethod
    def translate(
        self,
        history: Sequence[ConversationTurn],
        new_turn: ConversationTurn,
        system_instruction: str = "",
    ) -> List[Dict[str, Any]]:
        """Convert neutral turns to the provider's request conversation

        Args:
            history: Earlier turns of the conversation, oldest first
            new_turn: The turn being sent
            system_instruction: System prompt. Providers that carry it in the
                request config instead of the conversation ignore it here.

        Returns:
            list: Provider-shaped messages made of plain dicts and lists

        Raises:
            ChatError: UNSUPPORTED_ATTACHMENT when an attachment cannot be sent
        """
        pass

    @abstractmethod
    async def stream_round(
        self,
        conversation: List[Dict[str, Any]],
        tools: Sequence[ToolDefinition],
        on_text: Optional[TextCallback],
        cancel_token: CancelToken,
        system_instruction: str = "",
    ) -> RoundResult:
        """Run one model call and stream its text through ``on_text``

        ``conversation`` MUST NOT be mutated here; the loop appends
        ``RoundResult.message`` itself.

        Raises:
            ChatError: CANCELLED when ``cancel_token`` fires mid-stream, or a
                classified provider error
        """
        pass

    def append_assistant(self, conversation: List[Dict[str, Any]], round_result: RoundResult) -> None:
        if round_result.message is not None:
            conversation.append(round_result.message)

    @abstractmethod
    def append_tool_results(
        self, conversation: List[Dict[str, Any]], results: Sequence[ToolCallResult]
    ) -> None:
        """Append provider-native messages answering native tool calls"""
        pass

    @abstractmethod
    def user_message(self, text: str) -> Dict[str, Any]:
        """A plain-text user message in the provider's shape"""
        pass

    def append_text_tool_results(
        self, conversation: List[Dict[str, Any]], results: Sequence[ToolCallResult]
    ) -> None:
        """Answer calls that were written as markup in the answer text"""
        conversation.append(self.user_message(format_tool_results_for_text(list(results))))
