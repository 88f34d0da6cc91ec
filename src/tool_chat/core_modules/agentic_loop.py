"""Tool invocation loop

The loop repeatedly calls the model and executes the tools it asks for until:
- the model answers without tool calls
- max_iterations model calls have been made
- the exchange is cancelled
- an error occurs

Errors never escape ``run_tool_loop``: they are classified and returned on the
LoopResult so the retry controller can decide what to do with them.

Main components:
- LoopState: States of the loop's state machine
- LoopResult: Immutable result data structure
- run_tool_loop: Runs one exchange against one provider
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..cancellation import CancelToken
from ..config import ChatConfig
from ..errors import ChatError, ErrorCode, classify_error
from ..models import (
    TOOL_STATUS_CALLING,
    TOOL_STATUS_ERROR,
    TOOL_STATUS_SUCCESS,
    ConversationTurn,
    ToolCallRequest,
    ToolCallResult,
    ToolEvent,
)
from ..providers.base import ChatProvider, TextCallback, emit_text
from ..thinking import extract
from ..tools.registry import ToolRegistry, create_tool_context
from ..tools.text_calls import inject_tool_instructions, parse_tool_calls_from_text

logger = logging.getLogger(__name__)

ToolEventCallback = Callable[[ToolEvent], Any]


class LoopState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    MODEL_RESPONDED = "model_responded"
    EXECUTING_TOOLS = "executing_tools"
    RESULTS_APPENDED = "results_appended"
    DONE = "done"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    CANCELLED = "cancelled"
    FATAL_ERROR = "fatal_error"


@dataclass(frozen=True)
class LoopResult:
    """Result of run_tool_loop() execution.

    Attributes:
        final_text: Text of the last model round (earlier rounds were streamed)
        rounds: Number of model calls that completed
        state: Terminal LoopState
        tool_results: Every tool result of the exchange, in request order
        conversation: Provider-shaped conversation at the end of the loop
        answer_text: ``final_text`` with reasoning blocks removed
        error: Classified error when ``state`` is FATAL_ERROR or CANCELLED
        resumable: The failure happened while waiting on the model, so
            ``conversation`` holds every completed round and the exchange can
            continue from there without repeating tool calls
        partial_text: Text streamed by the round that failed
    """

    final_text: str
    rounds: int
    state: LoopState
    tool_results: Tuple[ToolCallResult, ...] = ()
    conversation: List[Dict[str, Any]] = field(default_factory=list)
    answer_text: str = ""
    error: Optional[ChatError] = None
    resumable: bool = False
    partial_text: str = ""


async def _notify(callback: Optional[ToolEventCallback], event: ToolEvent) -> None:
    if callback is None:
        return
    try:
        result = callback(event)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        # Tool events are advisory
        logger.warning("Tool event callback failed for %s: %s", event.name, e)


async def execute_tool_calls(
    registry: ToolRegistry,
    calls: Sequence[ToolCallRequest],
    cancel_token: Optional[CancelToken] = None,
    on_tool_event: Optional[ToolEventCallback] = None,
) -> List[ToolCallResult]:
    """Run all calls of one round concurrently.

    Returns:
        Results in the same order as ``calls``, each bound to its request id.
    """
    context = create_tool_context(cancel_token=cancel_token)

    async def run_one(call: ToolCallRequest) -> ToolCallResult:
        await _notify(
            on_tool_event, ToolEvent(call.id, call.name, TOOL_STATUS_CALLING, call.arguments)
        )
        result = await registry.execute(call.name, call.arguments, context)
        result = result.with_call(call)
        status = TOOL_STATUS_SUCCESS if result.success else TOOL_STATUS_ERROR
        await _notify(on_tool_event, ToolEvent(call.id, call.name, status, call.arguments, result))
        return result

    return list(await asyncio.gather(*(run_one(call) for call in calls)))


async def run_tool_loop(
    provider: ChatProvider,
    history: Sequence[ConversationTurn],
    new_turn: ConversationTurn,
    config: ChatConfig,
    registry: Optional[ToolRegistry] = None,
    on_text: Optional[TextCallback] = None,
    cancel_token: Optional[CancelToken] = None,
    on_tool_event: Optional[ToolEventCallback] = None,
    resume_from: Optional[LoopResult] = None,
) -> LoopResult:
    """Run one exchange, executing tool calls until the model is done.

    Args:
        provider: ChatProvider strategy for the configured backend
        history: Earlier turns (read-only)
        new_turn: The user turn being sent
        config: Exchange configuration
        registry: Tools available to the model. None disables tools.
        on_text: Receives every text delta as it arrives
        cancel_token: Cooperative cancellation signal
        on_tool_event: Advisory callback for tool progress
        resume_from: A resumable result of an earlier attempt. Its completed
            rounds and tool results are kept and the failed round is retried.

    Returns:
        LoopResult. Errors are reported through ``state`` and ``error``.
    """
    cancel_token = cancel_token or CancelToken()
    registry = registry if registry is not None else ToolRegistry()

    definitions = registry.list_definitions(config.tool_definitions)
    text_mode = config.text_tool_calls and bool(definitions)
    system_instruction = config.system_instruction or ""
    if text_mode:
        system_instruction = inject_tool_instructions(system_instruction, definitions)
    native_tools = definitions if provider.supports_native_tools else []

    state = LoopState.AWAITING_MODEL
    conversation: List[Dict[str, Any]] = []
    all_results: List[ToolCallResult] = []
    final_text = ""
    rounds = 0
    error: Optional[ChatError] = None
    translated = False
    failed_in: Optional[LoopState] = None
    round_text: List[str] = []

    async def on_round_text(text: str) -> None:
        round_text.append(text)
        await emit_text(on_text, text)

    try:
        if resume_from is not None and resume_from.resumable:
            conversation = list(resume_from.conversation)
            all_results = list(resume_from.tool_results)
            rounds = resume_from.rounds
            logger.debug("Resuming tool loop at round %d", rounds + 1)
        else:
            conversation = provider.translate(history, new_turn, system_instruction)
        translated = True

        while True:
            if rounds >= config.max_iterations:
                logger.info("Tool loop reached max_iterations=%d", config.max_iterations)
                state = LoopState.MAX_ITERATIONS_REACHED
                break

            state = LoopState.AWAITING_MODEL
            round_text.clear()
            cancel_token.raise_if_cancelled()
            round_result = await provider.stream_round(
                conversation, native_tools, on_round_text, cancel_token, system_instruction
            )
            rounds += 1
            final_text = round_result.text
            state = LoopState.MODEL_RESPONDED
            provider.append_assistant(conversation, round_result)
            cancel_token.raise_if_cancelled()

            calls = list(round_result.tool_calls)
            native = bool(calls)
            if not calls and text_mode:
                calls = parse_tool_calls_from_text(round_result.text)
            if not calls:
                state = LoopState.DONE
                break

            logger.debug(
                "Round %d requested %d tool call(s): %s",
                rounds,
                len(calls),
                ", ".join(call.name for call in calls),
            )
            state = LoopState.EXECUTING_TOOLS
            results = await execute_tool_calls(registry, calls, cancel_token, on_tool_event)

            # Running tools finish, but nothing is committed after a cancel
            cancel_token.raise_if_cancelled()
            if native:
                provider.append_tool_results(conversation, results)
            else:
                provider.append_text_tool_results(conversation, results)
            all_results.extend(results)
            state = LoopState.RESULTS_APPENDED

    except Exception as e:
        failed_in = state
        error = classify_error(e)
        if error.cancelled:
            logger.debug("Tool loop cancelled after %d round(s)", rounds)
            state = LoopState.CANCELLED
        elif error.code == ErrorCode.UNKNOWN_ERROR:
            logger.exception("Unhandled error during tool loop in state %s: %s", state.value, e)
            state = LoopState.FATAL_ERROR
        else:
            logger.warning("Tool loop failed in state %s: %s", state.value, error.code.value)
            state = LoopState.FATAL_ERROR

    resumable = state == LoopState.FATAL_ERROR and translated and failed_in == LoopState.AWAITING_MODEL
    answer = extract(
        final_text, config.thinking_tags, config.implicit_close_markers, finished=True
    ).answer
    return LoopResult(
        final_text=final_text,
        rounds=rounds,
        state=state,
        tool_results=tuple(all_results),
        conversation=conversation,
        answer_text=answer,
        error=error,
        resumable=resumable,
        partial_text="".join(round_text) if resumable else "",
    )
