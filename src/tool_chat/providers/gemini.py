"""Google Gemini provider implementation (google-genai SDK)

Function calling is native: the SDK reports ``function_call`` parts, which are
collected for the tool loop. Automatic function calling is disabled so the
SDK never executes anything on its own.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import google.genai as genai
from google.genai import types

from ..config import DEFAULT_GEMINI_MODEL, PROVIDER_GEMINI
from ..errors import ChatError, ErrorCode
from ..models import ROLE_ASSISTANT, ConversationTurn, ToolCallRequest, ToolCallResult
from ..tools.registry import ToolDefinition, to_gemini_function_declarations
from .base import ChatProvider, RoundResult, emit_text

logger = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = "Gemini API key is not set. Please add it in Settings."
VIDEO_MODEL_MESSAGE = (
    "Configuration Error: Video generation models are not supported in chat. "
    "Please select a text-based model in settings."
)


def _coerce_function_args(raw_args: Any) -> Dict[str, Any]:
    if raw_args is None:
        return {}
    if isinstance(raw_args, dict):
        return dict(raw_args)
    try:
        return dict(raw_args)
    except (TypeError, ValueError) as e:
        logger.warning("Failed to convert function args: %s (type: %s)", e, type(raw_args).__name__)
        return {}


def _chunk_parts(chunk) -> List[Any]:
    candidates = getattr(chunk, "candidates", None) or []
    if not candidates:
        return []
    content = getattr(candidates[0], "content", None)
    return list(getattr(content, "parts", None) or [])


class GeminiProvider(ChatProvider):
    """Gemini backend using ``client.aio.models.generate_content_stream``"""

    name = PROVIDER_GEMINI
    supports_native_tools = True

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        client: Optional[genai.Client] = None,
    ):
        self.model_name = model_name or DEFAULT_GEMINI_MODEL
        if client is None and not api_key:
            raise ChatError(ErrorCode.CONFIG_ERROR, MISSING_KEY_MESSAGE)
        if "veo" in self.model_name.lower():
            raise ChatError(ErrorCode.CONFIG_ERROR, VIDEO_MODEL_MESSAGE)
        self.client = client or genai.Client(api_key=api_key)

    @staticmethod
    def _turn_to_content(turn: ConversationTurn) -> Dict[str, Any]:
        parts: List[Dict[str, Any]] = []
        if turn.text or not turn.attachments:
            parts.append({"text": turn.text or ""})
        for attachment in turn.attachments:
            parts.append(
                {"inline_data": {"mime_type": attachment.mime_type, "data": attachment.as_bytes()}}
            )
        role = "model" if turn.role == ROLE_ASSISTANT else "user"
        return {"role": role, "parts": parts}

    def translate(self, history, new_turn, system_instruction=""):
        """Convert turns to Gemini ``contents``.

        Every attachment is sent inline. The system instruction travels in
        the request config, so it is not part of the result.
        """
        return [self._turn_to_content(turn) for turn in [*history, new_turn]]

    def _build_config(
        self, tools: Sequence[ToolDefinition], system_instruction: str
    ) -> types.GenerateContentConfig:
        declarations = to_gemini_function_declarations(list(tools))
        return types.GenerateContentConfig(
            system_instruction=system_instruction or None,
            tools=[types.Tool(function_declarations=declarations)] if declarations else None,
            automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
        )

    async def stream_round(self, conversation, tools, on_text, cancel_token, system_instruction=""):
        cancel_token.raise_if_cancelled()
        config = self._build_config(tools, system_instruction)
        return await cancel_token.run(self._stream(conversation, config, on_text, cancel_token))

    async def _stream(self, conversation, config, on_text, cancel_token) -> RoundResult:
        text_parts: List[str] = []
        call_parts: List[Dict[str, Any]] = []
        tool_calls: List[ToolCallRequest] = []

        stream = await self.client.aio.models.generate_content_stream(
            model=self.model_name, contents=conversation, config=config
        )
        try:
            async for chunk in stream:
                cancel_token.raise_if_cancelled()
                for part in _chunk_parts(chunk):
                    function_call = getattr(part, "function_call", None)
                    if function_call is not None and getattr(function_call, "name", None):
                        native_id = getattr(function_call, "id", None)
                        args = _coerce_function_args(getattr(function_call, "args", None))
                        call: Dict[str, Any] = {"name": function_call.name, "args": args}
                        if native_id:
                            call["id"] = native_id
                        entry: Dict[str, Any] = {"function_call": call}
                        signature = getattr(part, "thought_signature", None)
                        if signature:
                            entry["thought_signature"] = signature
                        call_parts.append(entry)
                        tool_calls.append(
                            ToolCallRequest(
                                id=native_id or f"{function_call.name}-{len(tool_calls) + 1}",
                                name=function_call.name,
                                arguments=args,
                            )
                        )
                        logger.debug("Gemini function call: %s", function_call.name)
                        continue

                    if getattr(part, "thought", False):
                        continue
                    text = getattr(part, "text", None)
                    if text:
                        text_parts.append(text)
                        await emit_text(on_text, text)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        text = "".join(text_parts)
        parts: List[Dict[str, Any]] = [{"text": text}] if text else []
        parts.extend(call_parts)
        message = {"role": "model", "parts": parts or [{"text": ""}]}
        return RoundResult(text=text, tool_calls=tool_calls, message=message)

    @staticmethod
    def _native_call_ids(conversation: List[Dict[str, Any]]) -> set:
        for content in reversed(conversation):
            if content.get("role") != "model":
                continue
            return {
                part["function_call"]["id"]
                for part in content.get("parts", [])
                if "function_call" in part and part["function_call"].get("id")
            }
        return set()

    def append_tool_results(self, conversation, results):
        native_ids = self._native_call_ids(conversation)
        parts = []
        for result in results:
            response: Dict[str, Any] = {"name": result.name, "response": result.to_payload()}
            if result.id in native_ids:
                response["id"] = result.id
            parts.append({"function_response": response})
        if parts:
            conversation.append({"role": "user", "parts": parts})

    def user_message(self, text):
        return {"role": "user", "parts": [{"text": text}]}
