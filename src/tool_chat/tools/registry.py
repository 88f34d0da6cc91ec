"""Tool registry: definitions, executors and provider schema adapters.

A registry is constructed explicitly and handed to the loop, so tests can use
a fresh instance each time.
"""

import inspect
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from ..cancellation import CancelToken
from ..errors import ErrorCode
from ..models import ToolCallResult

logger = logging.getLogger(__name__)

PARAMETER_TYPES = ("string", "number", "integer", "boolean", "object", "array")

# Fields the Gemini function declaration schema accepts
GEMINI_SCHEMA_FIELDS = ("type", "properties", "required", "description", "items", "enum")

# OpenAI function names must match ^[a-zA-Z0-9_-]{1,64}$
OPENAI_NAME_INVALID_CHARS = re.compile(r"[^a-zA-Z0-9_-]")
OPENAI_NAME_MAX_LENGTH = 64


@dataclass(frozen=True)
class ToolParameter:
    """One parameter of a tool, described with JSON Schema vocabulary."""

    key: str
    type: str = "string"
    description: str = ""
    required: bool = False
    enum: Optional[Tuple[str, ...]] = None
    items: Optional["ToolParameter"] = None
    properties: Tuple["ToolParameter", ...] = ()

    def __post_init__(self):
        if self.type not in PARAMETER_TYPES:
            raise ValueError(f"Unsupported parameter type '{self.type}' for '{self.key}'")

    def to_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {"type": self.type}
        if self.description:
            schema["description"] = self.description
        if self.enum:
            schema["enum"] = list(self.enum)
        if self.items is not None:
            schema["items"] = self.items.to_schema()
        if self.properties:
            schema["properties"] = {p.key: p.to_schema() for p in self.properties}
            nested_required = [p.key for p in self.properties if p.required]
            if nested_required:
                schema["required"] = nested_required
        return schema


@dataclass(frozen=True)
class ToolDefinition:
    """Name, description and parameter schema advertised to the model."""

    name: str
    description: str
    parameters: Tuple[ToolParameter, ...] = ()
    examples: Tuple[str, ...] = ()

    def __post_init__(self):
        if not self.name:
            raise ValueError("Tool definition requires a name")
        object.__setattr__(self, "parameters", tuple(self.parameters))
        object.__setattr__(self, "examples", tuple(self.examples))

    @property
    def required_params(self) -> List[str]:
        return [p.key for p in self.parameters if p.required]


@dataclass(frozen=True)
class ToolExecutionContext:
    """Context passed to every executor call."""

    origin: str = "ai-tool"
    timestamp: float = field(default_factory=time.time)
    cancel_token: Optional[CancelToken] = None


ToolExecutor = Callable[
    [Dict[str, Any], ToolExecutionContext],
    Union[ToolCallResult, Awaitable[ToolCallResult]],
]


@dataclass(frozen=True)
class RegisteredTool:
    definition: ToolDefinition
    executor: ToolExecutor


def create_tool_context(
    origin: str = "ai-tool", cancel_token: Optional[CancelToken] = None
) -> ToolExecutionContext:
    return ToolExecutionContext(origin=origin, cancel_token=cancel_token)


class ToolRegistry:
    """Maps tool names to definitions and executors.

    ``execute`` never raises: unknown tools and executor exceptions are turned
    into failed ToolCallResults so every tool call resolves to a result.
    """

    def __init__(self):
        self._tools: Dict[str, RegisteredTool] = {}

    def register(self, definition: ToolDefinition, executor: ToolExecutor) -> None:
        if definition.name in self._tools:
            raise ValueError(f"Tool '{definition.name}' is already registered")
        self._tools[definition.name] = RegisteredTool(definition, executor)
        logger.debug("Registered tool: %s", definition.name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def get(self, name: str) -> Optional[RegisteredTool]:
        return self._tools.get(name)

    def list_definitions(self, names: Optional[List[str]] = None) -> List[ToolDefinition]:
        """Registered definitions in registration order.

        Args:
            names: Optional allow-list of tool names. Unknown names are ignored.
        """
        definitions = [tool.definition for tool in self._tools.values()]
        if names is None:
            return definitions
        wanted = set(names)
        return [d for d in definitions if d.name in wanted]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name) -> bool:
        return self.has(name)

    async def execute(
        self,
        name: str,
        args: Optional[Dict[str, Any]] = None,
        context: Optional[ToolExecutionContext] = None,
    ) -> ToolCallResult:
        """Run the executor registered under ``name``.

        Returns:
            ToolCallResult; ``success`` is False for unknown tools and for
            executors that raise.
        """
        tool = self._tools.get(name)
        if tool is None:
            logger.warning("Tool not found in registry: %s", name)
            return ToolCallResult.fail(
                ErrorCode.UNKNOWN_TOOL, f'Tool "{name}" not found', name=name
            )

        if context is None:
            context = create_tool_context()
        if not isinstance(args, dict):
            args = {}

        try:
            result = tool.executor(args, context)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.warning("Tool execution failed for %s: %s", name, e)
            return ToolCallResult.fail(
                ErrorCode.TOOL_EXECUTION_ERROR,
                str(e) or f'Failed to execute tool "{name}"',
                name=name,
            )

        if not isinstance(result, ToolCallResult):
            # Plain return values are treated as successful data
            result = ToolCallResult.ok(result, name=name)
        return result


# Provider schema adapters


def to_json_schema(definition: ToolDefinition) -> Dict[str, Any]:
    """Object schema describing all parameters of ``definition``."""
    return {
        "type": "object",
        "properties": {p.key: p.to_schema() for p in definition.parameters},
        "required": definition.required_params,
    }


def to_openai_function_name(name: str) -> str:
    """Wire name for a registry tool, e.g. ``notes.list`` -> ``notes_list``."""
    return OPENAI_NAME_INVALID_CHARS.sub("_", name)[:OPENAI_NAME_MAX_LENGTH]


def to_openai_tools(definitions: List[ToolDefinition]) -> List[Dict[str, Any]]:
    """Convert definitions to the OpenAI ``tools`` request field.

    Names go through ``to_openai_function_name``; the provider maps them back.
    """
    return [
        {
            "type": "function",
            "function": {
                "name": to_openai_function_name(d.name),
                "description": d.description,
                "parameters": to_json_schema(d),
            },
        }
        for d in definitions
    ]


def _sanitize_schema_for_gemini(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only fields Gemini accepts and upper-case type names."""
    cleaned = {}
    for key, value in schema.items():
        if key not in GEMINI_SCHEMA_FIELDS:
            continue
        if key == "properties" and isinstance(value, dict):
            cleaned[key] = {
                prop_name: _sanitize_schema_for_gemini(prop_schema)
                for prop_name, prop_schema in value.items()
            }
        elif key == "items" and isinstance(value, dict):
            cleaned[key] = _sanitize_schema_for_gemini(value)
        elif key == "type" and isinstance(value, str):
            cleaned[key] = value.upper()
        else:
            cleaned[key] = value
    return cleaned


def to_gemini_function_declarations(definitions: List[ToolDefinition]) -> List[Dict[str, Any]]:
    """Convert definitions to Gemini function declaration dictionaries."""
    declarations = []
    for d in definitions:
        declaration: Dict[str, Any] = {"name": d.name, "description": d.description}
        if d.parameters:
            declaration["parameters"] = _sanitize_schema_for_gemini(to_json_schema(d))
        declarations.append(declaration)
    return declarations
