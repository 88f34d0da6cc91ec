"""Tool calls embedded as markup in the model's answer text.

Models without native function calling are asked to write calls as::

    <tool_calls>
    [{"name": "notes.list", "arguments": {"limit": 5}}]
    </tool_calls>

The payload may be a JSON array or a single object, optionally wrapped in a
fenced code block. Entries may use ``name``/``tool``/``function`` for the tool
name and ``arguments``/``args``/``parameters``/``params`` for the arguments.
"""

import json
import logging
import re
from typing import Any, Iterable, List

from ..models import ToolCallRequest, ToolCallResult
from .registry import ToolDefinition

logger = logging.getLogger(__name__)

TOOL_BLOCK_RE = re.compile(r"<(tool_calls|function_calls)>(.*?)</\1>", re.IGNORECASE | re.DOTALL)

NAME_KEYS = ("name", "tool", "function")
ARGUMENT_KEYS = ("arguments", "args", "parameters", "params")

TOOL_PROMPT_HEADER = "## Tool Function Calls"


def strip_code_fence(payload: str) -> str:
    """Remove a surrounding ``` fence (with optional language tag)."""
    trimmed = payload.strip()
    if not trimmed.startswith("```"):
        return trimmed
    lines = trimmed.split("\n")
    if len(lines) <= 2:
        return trimmed
    rest = lines[1:]
    closing = [i for i, line in enumerate(rest) if line.strip() == "```"]
    if not closing:
        return "\n".join(rest).strip()
    return "\n".join(rest[: closing[-1]]).strip()


def _first_present(record: dict, keys: Iterable[str], default=None):
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return default


def normalize_tool_calls(raw: Any, start_index: int = 0) -> List[ToolCallRequest]:
    """Normalize a decoded JSON payload into ToolCallRequests.

    Entries without a string name are skipped. String arguments are decoded
    as JSON when possible. Entries without an ``id`` get ``<name>-<n>`` where
    n counts from ``start_index + 1``.
    """
    if not raw:
        return []
    items = raw if isinstance(raw, list) else [raw]
    calls = []
    for item in items:
        if not isinstance(item, dict):
            continue
        name = _first_present(item, NAME_KEYS)
        if isinstance(name, dict):
            # {"function": {"name": ..., "arguments": ...}} shape
            nested = name
            name = nested.get("name")
            item = {**item, **nested}
        if not isinstance(name, str) or not name:
            continue
        arguments = _first_present(item, ARGUMENT_KEYS, {})
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments) if arguments.strip() else {}
            except json.JSONDecodeError:
                logger.warning("Tool call arguments for %s are not valid JSON", name)
                arguments = {}
        if not isinstance(arguments, dict):
            arguments = {}
        call_id = item.get("id") if isinstance(item.get("id"), str) else None
        calls.append(
            ToolCallRequest(
                id=call_id or f"{name}-{start_index + len(calls) + 1}",
                name=name,
                arguments=arguments,
            )
        )
    return calls


def _parse_json_payload(payload: str, start_index: int = 0) -> List[ToolCallRequest]:
    clean = strip_code_fence(payload)
    if not clean:
        return []
    try:
        parsed = json.loads(clean)
    except json.JSONDecodeError as e:
        logger.warning("Failed to parse tool JSON payload: %s (payload=%r)", e, payload[:200])
        return []
    if isinstance(parsed, list):
        return normalize_tool_calls(parsed, start_index)
    if isinstance(parsed, dict):
        if isinstance(parsed.get("tool_calls"), list):
            return normalize_tool_calls(parsed["tool_calls"], start_index)
        if any(key in parsed for key in NAME_KEYS):
            return normalize_tool_calls(parsed, start_index)
    return []


def parse_tool_calls_from_text(text: str) -> List[ToolCallRequest]:
    """Extract every tool call from the ``<tool_calls>`` blocks in ``text``.

    Generated ids are numbered across all blocks of the text.
    """
    if not text or not isinstance(text, str):
        return []
    calls: List[ToolCallRequest] = []
    for match in TOOL_BLOCK_RE.finditer(text):
        calls.extend(_parse_json_payload(match.group(2), len(calls)))
    return calls


def format_tool_results_for_text(results: List[ToolCallResult]) -> str:
    """Render results as the user message that answers a text-embedded call."""
    payload = [{"id": r.id, "name": r.name, **r.to_payload()} for r in results]
    body = json.dumps(payload, ensure_ascii=False, default=str)
    return (
        f"<tool_results>\n{body}\n</tool_results>\n"
        "Continue with the results above. Do not repeat the tool_calls block."
    )


def build_tool_prompt(definitions: List[ToolDefinition]) -> str:
    lines = [
        TOOL_PROMPT_HEADER,
        "You can call the following tools. Whenever you need a tool, place a JSON "
        "array inside a <tool_calls>...</tool_calls> block.",
        "Each tool call object must contain:",
        '- "name": the tool name',
        '- "arguments": an object with the required fields',
        "",
        "Available tools:",
    ]
    for index, definition in enumerate(definitions, start=1):
        required = ", ".join(definition.required_params) or "none"
        optional = ", ".join(p.key for p in definition.parameters if not p.required)
        line = f"{index}. {definition.name} - {definition.description} Required: {required}."
        if optional:
            line += f" Optional: {optional}."
        lines.append(line)
        for example in definition.examples:
            lines.append(f"   Example: {example}")
    lines += [
        "",
        "After the tool results arrive, continue and include the outcome in your reply.",
        "Never expose the raw JSON or the <tool_calls> block in the final answer.",
    ]
    return "\n".join(lines) + "\n"


def inject_tool_instructions(system_instruction: str, definitions: List[ToolDefinition]) -> str:
    """Append the tool usage section to ``system_instruction`` once."""
    base = system_instruction or ""
    if not definitions or TOOL_PROMPT_HEADER in base:
        return base
    prompt = build_tool_prompt(definitions)
    if not base.strip():
        return prompt
    return f"{base.strip()}\n\n{prompt.strip()}"
