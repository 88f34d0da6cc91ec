"""Retry and cancellation around one exchange

``send_with_retry`` decides what happens with the error a tool loop ends on:
cancellation ends the exchange quietly, rate limits and transient network
failures are retried with exponential backoff, and everything else is turned
into a single user-visible message delivered through the chunk callback.

A retry resumes at the round that failed, so completed rounds and their tool
calls are not repeated. Text the failed round already streamed is not
forwarded a second time when the retried round starts with it.
"""

import logging
from typing import List, Optional, Sequence

from ..cancellation import CancelToken
from ..config import ChatConfig
from ..errors import ChatError
from ..models import ConversationTurn
from ..providers.base import ChatProvider, TextCallback, emit_text
from ..tools.registry import ToolRegistry
from .agentic_loop import LoopResult, LoopState, ToolEventCallback, run_tool_loop

logger = logging.getLogger(__name__)


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Delay before retry number ``attempt + 1``."""
    return base_delay * (2**attempt)


def common_prefix_length(a: str, b: str) -> int:
    size = min(len(a), len(b))
    for index in range(size):
        if a[index] != b[index]:
            return index
    return size


async def send_with_retry(
    provider: ChatProvider,
    history: Sequence[ConversationTurn],
    new_turn: ConversationTurn,
    config: ChatConfig,
    on_chunk: Optional[TextCallback] = None,
    cancel_token: Optional[CancelToken] = None,
    on_tool_event: Optional[ToolEventCallback] = None,
    registry: Optional[ToolRegistry] = None,
) -> str:
    """Run one exchange, retrying recoverable failures.

    Returns:
        str: The last round's text on success. After a cancellation or a
        surfaced error, everything delivered through ``on_chunk`` during the
        exchange, including the error message.
    """
    cancel_token = cancel_token or CancelToken()
    delivered: List[str] = []
    resume: Optional[LoopResult] = None
    # Text of the failed round already shown, and how much of it the retry has repeated
    replay = ""
    replay_round = -1
    cursor = 0

    async def forward(text: str) -> None:
        nonlocal cursor
        if cursor < len(replay):
            shared = common_prefix_length(replay[cursor:], text)
            cursor = cursor + shared if shared == len(text) else len(replay)
            text = text[shared:]
            if not text:
                return
        delivered.append(text)
        await emit_text(on_chunk, text)

    attempt = 0
    while True:
        result = await run_tool_loop(
            provider,
            history,
            new_turn,
            config,
            registry=registry,
            on_text=forward,
            cancel_token=cancel_token,
            on_tool_event=on_tool_event,
            resume_from=resume,
        )

        if result.state == LoopState.CANCELLED:
            return "".join(delivered)
        if result.error is None:
            return result.final_text

        error: ChatError = result.error
        if error.recoverable and attempt < config.max_retries:
            delay = backoff_delay(attempt, config.retry_base_delay)
            attempt += 1
            logger.warning(
                "Retrying after %s (attempt %d/%d, waiting %.2fs)",
                error.code.value,
                attempt,
                config.max_retries,
                delay,
            )
            try:
                await cancel_token.sleep(delay)
            except ChatError:
                return "".join(delivered)

            if result.resumable:
                resume = result
                shown, shown_round = result.partial_text, result.rounds
            else:
                resume = None
                shown, shown_round = "".join(delivered), -1
            # A retry that failed before getting past earlier text leaves that text on screen
            if shown_round != replay_round or not replay.startswith(shown):
                replay = shown
            replay_round = shown_round
            cursor = 0
            continue

        logger.error("Exchange failed with %s: %s", error.code.value, error.user_message)
        delivered.append(error.user_message)
        await emit_text(on_chunk, error.user_message)
        return "".join(delivered)


class StreamController:
    """Keeps at most one exchange running at a time.

    Starting a new exchange cancels the previous one (last writer wins).
    """

    def __init__(self):
        self._token: Optional[CancelToken] = None

    @property
    def active(self) -> bool:
        return self._token is not None and not self._token.cancelled

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if self._token is not None:
            self._token.cancel(reason)
            self._token = None

    async def start(
        self,
        provider: ChatProvider,
        history: Sequence[ConversationTurn],
        new_turn: ConversationTurn,
        config: ChatConfig,
        on_chunk: Optional[TextCallback] = None,
        on_tool_event: Optional[ToolEventCallback] = None,
        registry: Optional[ToolRegistry] = None,
    ) -> str:
        self.cancel("superseded by a new request")
        token = CancelToken()
        self._token = token
        try:
            return await send_with_retry(
                provider,
                history,
                new_turn,
                config,
                on_chunk=on_chunk,
                cancel_token=token,
                on_tool_event=on_tool_event,
                registry=registry,
            )
        finally:
            if self._token is token:
                self._token = None
