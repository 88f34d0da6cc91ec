"""Public facade for sending one chat exchange.

This module re-exports the loop and controller APIs from core_modules so
callers only need ``tool_chat.core``.
"""

import logging
from typing import Optional, Sequence

from .cancellation import CancelToken
from .config import ChatConfig
from .errors import ChatError
from .models import ConversationTurn
from .providers import ChatProvider, create_provider, emit_text
from .providers.base import TextCallback
from .core_modules.agentic_loop import (
    LoopResult,
    LoopState,
    ToolEventCallback,
    execute_tool_calls,
    run_tool_loop,
)
from .core_modules.stream_controller import StreamController, backoff_delay, send_with_retry
from .tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


async def send(
    history: Sequence[ConversationTurn],
    new_turn: ConversationTurn,
    config: ChatConfig,
    on_chunk: Optional[TextCallback] = None,
    cancel_token: Optional[CancelToken] = None,
    on_tool_event: Optional[ToolEventCallback] = None,
    registry: Optional[ToolRegistry] = None,
    provider: Optional[ChatProvider] = None,
) -> str:
    """Send ``new_turn`` and stream the reply through ``on_chunk``.

    Args:
        history: Earlier turns, oldest first (not mutated)
        new_turn: The user turn to send
        config: Exchange configuration; selects the provider
        on_chunk: Receives text deltas, and the error message if one is surfaced
        cancel_token: Cancelling it ends the exchange quietly
        on_tool_event: Advisory tool progress callback
        registry: Tools offered to the model
        provider: Use this provider instead of building one from ``config``

    Returns:
        str: See ``send_with_retry``
    """
    if provider is None:
        try:
            provider = create_provider(config)
        except ChatError as e:
            logger.error("Cannot create provider '%s': %s", config.provider, e.code.value)
            await emit_text(on_chunk, e.user_message)
            return e.user_message

    return await send_with_retry(
        provider,
        history,
        new_turn,
        config,
        on_chunk=on_chunk,
        cancel_token=cancel_token,
        on_tool_event=on_tool_event,
        registry=registry,
    )


__all__ = [
    "LoopResult",
    "LoopState",
    "StreamController",
    "backoff_delay",
    "execute_tool_calls",
    "run_tool_loop",
    "send",
    "send_with_retry",
]
