"""OpenAI-compatible chat completions provider over raw HTTP

Text-only rounds stream ``data: {...}`` delta records and stop at
``data: [DONE]``. Rounds that advertise tools use one non-streaming request,
since tool call deltas would have to be reassembled from fragments.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..attachments import is_document, is_image, is_text, summarize_text_attachment, to_data_url
from ..config import DEFAULT_OPENAI_BASE_URL, DEFAULT_OPENAI_MODEL, PROVIDER_OPENAI
from ..errors import ChatError, ErrorCode, error_for_status
from ..models import ROLE_ASSISTANT, ConversationTurn, ToolCallRequest
from ..tools.registry import to_openai_function_name, to_openai_tools
from .base import ChatProvider, RoundResult, emit_text

logger = logging.getLogger(__name__)

STREAM_DATA_PREFIX = "data: "
STREAM_DONE = "[DONE]"

MISSING_KEY_MESSAGE = "OpenAI API key is not set. Please add it in Settings."
VIDEO_MODEL_MESSAGE = (
    "Configuration Error: Video generation models are not supported in chat. "
    "Please select a text-based model in settings."
)
WRONG_PROVIDER_MESSAGE = (
    "Configuration Error: It looks like you've set a Google API endpoint for the OpenAI "
    "provider. Please switch to the 'Google Gemini' provider in Settings to use Google models."
)
PDF_UNSUPPORTED_MESSAGE = (
    "PDF attachments are not supported for OpenAI-compatible providers. "
    "Please switch to Gemini to analyze PDFs."
)
EMPTY_RESPONSE_MESSAGE = "OpenAI returned an empty response."


def _parse_arguments(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        logger.warning("Tool call arguments are not valid JSON: %r", raw)
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _message_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text") or "" for part in content if isinstance(part, dict) and part.get("type") == "text"
        )
    return ""


class OpenAIProvider(ChatProvider):
    """OpenAI-compatible backend talking to ``{base_url}/chat/completions``"""

    name = PROVIDER_OPENAI
    supports_native_tools = True

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model_name = model_name or DEFAULT_OPENAI_MODEL
        self.base_url = (base_url or DEFAULT_OPENAI_BASE_URL).rstrip("/")
        self.timeout = httpx.Timeout(timeout)
        self._transport = transport
        if not api_key:
            raise ChatError(ErrorCode.CONFIG_ERROR, MISSING_KEY_MESSAGE)
        if "veo" in self.model_name.lower():
            raise ChatError(ErrorCode.CONFIG_ERROR, VIDEO_MODEL_MESSAGE)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    # ---- Translation ----

    @staticmethod
    def _turn_to_message(turn: ConversationTurn) -> Dict[str, Any]:
        if turn.role == ROLE_ASSISTANT:
            return {"role": "assistant", "content": turn.text or ""}
        if not turn.attachments:
            return {"role": "user", "content": turn.text or ""}

        text = turn.text or ""
        image_parts = []
        for attachment in turn.attachments:
            if is_image(attachment.mime_type):
                image_parts.append(
                    {
                        "type": "image_url",
                        "image_url": {"url": to_data_url(attachment.mime_type, attachment.as_bytes())},
                    }
                )
            elif is_document(attachment.mime_type):
                raise ChatError(ErrorCode.UNSUPPORTED_ATTACHMENT, PDF_UNSUPPORTED_MESSAGE)
            elif is_text(attachment.mime_type):
                text += summarize_text_attachment(attachment.name, attachment.as_text())
            else:
                text += (
                    f"\n\n[Attachment {attachment.name} ({attachment.mime_type}) omitted. "
                    "Unsupported type for OpenAI]"
                )
        return {"role": "user", "content": [{"type": "text", "text": text}, *image_parts]}

    def translate(self, history, new_turn, system_instruction=""):
        messages: List[Dict[str, Any]] = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        messages.extend(self._turn_to_message(turn) for turn in [*history, new_turn])
        return messages

    # ---- Requests ----

    def _with_system(self, conversation, system_instruction):
        if system_instruction and not (conversation and conversation[0].get("role") == "system"):
            return [{"role": "system", "content": system_instruction}, *conversation]
        return list(conversation)

    async def _raise_for_status(self, response: httpx.Response) -> None:
        if response.status_code < 400:
            return
        if response.status_code == 404 and "googleapis.com" in self.base_url:
            raise ChatError(ErrorCode.CONFIG_ERROR, WRONG_PROVIDER_MESSAGE, status_code=404)
        body = (await response.aread()).decode("utf-8", errors="replace")
        detail = body
        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            payload = None
        if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
            detail = payload["error"].get("message") or body
        logger.warning("OpenAI request failed (%s): %s", response.status_code, detail[:200])
        raise error_for_status(response.status_code, detail)

    async def stream_round(self, conversation, tools, on_text, cancel_token, system_instruction=""):
        cancel_token.raise_if_cancelled()
        messages = self._with_system(conversation, system_instruction)
        if tools:
            return await cancel_token.run(self._complete_with_tools(messages, tools, on_text, cancel_token))
        return await cancel_token.run(self._stream_text(messages, on_text, cancel_token))

    async def _stream_text(self, messages, on_text, cancel_token) -> RoundResult:
        payload = {"model": self.model_name, "messages": messages, "stream": True}
        text_parts: List[str] = []
        async with self._client() as client:
            async with client.stream("POST", self.endpoint, json=payload, headers=self._headers()) as response:
                await self._raise_for_status(response)
                async for line in response.aiter_lines():
                    cancel_token.raise_if_cancelled()
                    if not line.startswith(STREAM_DATA_PREFIX):
                        continue
                    data = line[len(STREAM_DATA_PREFIX) :].strip()
                    if data == STREAM_DONE:
                        break
                    try:
                        record = json.loads(data)
                        content = record["choices"][0]["delta"].get("content")
                    except (json.JSONDecodeError, KeyError, IndexError, TypeError, AttributeError) as e:
                        logger.warning("Could not parse OpenAI stream chunk: %s (data=%r)", e, data[:200])
                        continue
                    if content:
                        text_parts.append(content)
                        await emit_text(on_text, content)

        text = "".join(text_parts)
        return RoundResult(text=text, message={"role": "assistant", "content": text})

    async def _complete_with_tools(self, messages, tools, on_text, cancel_token) -> RoundResult:
        payload = {
            "model": self.model_name,
            "messages": messages,
            "tools": to_openai_tools(list(tools)),
            "tool_choice": "auto",
        }
        async with self._client() as client:
            response = await client.post(self.endpoint, json=payload, headers=self._headers())
            await self._raise_for_status(response)
            data = response.json()
        cancel_token.raise_if_cancelled()

        choices = data.get("choices") or []
        message = choices[0].get("message") if choices else None
        if not message:
            await emit_text(on_text, EMPTY_RESPONSE_MESSAGE)
            return RoundResult(
                text=EMPTY_RESPONSE_MESSAGE,
                message={"role": "assistant", "content": EMPTY_RESPONSE_MESSAGE},
            )

        text = _message_text(message.get("content"))
        await emit_text(on_text, text)

        registry_names = {to_openai_function_name(d.name): d.name for d in tools}
        tool_calls = []
        raw_calls = message.get("tool_calls") or []
        for index, call in enumerate(raw_calls):
            function = call.get("function") or {}
            wire_name = function.get("name") or ""
            if not wire_name:
                continue
            name = registry_names.get(wire_name, wire_name)
            tool_calls.append(
                ToolCallRequest(
                    id=call.get("id") or f"{name}-{index + 1}",
                    name=name,
                    arguments=_parse_arguments(function.get("arguments")),
                )
            )

        assistant: Dict[str, Any] = {"role": "assistant", "content": text or None}
        if tool_calls:
            assistant["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {
                        "name": to_openai_function_name(call.name),
                        "arguments": json.dumps(call.arguments),
                    },
                }
                for call in tool_calls
            ]
        else:
            assistant["content"] = text
        return RoundResult(text=text, tool_calls=tool_calls, message=assistant)

    # ---- Conversation updates ----

    def append_tool_results(self, conversation, results):
        for result in results:
            conversation.append(
                {
                    "role": "tool",
                    "tool_call_id": result.id,
                    "content": json.dumps(result.to_payload(), ensure_ascii=False, default=str),
                }
            )

    def user_message(self, text):
        return {"role": "user", "content": text}
