"""Provider-neutral data model for conversations and tool calls."""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from .attachments import decode_data_url

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLES = (ROLE_USER, ROLE_ASSISTANT)

TOOL_STATUS_CALLING = "calling"
TOOL_STATUS_SUCCESS = "success"
TOOL_STATUS_ERROR = "error"


@dataclass(frozen=True)
class Attachment:
    """A file attached to a single turn.

    ``data`` holds raw bytes for binary payloads or ``str`` for text payloads.
    """

    mime_type: str
    data: Union[bytes, str]
    name: str = "attachment"
    size: Optional[int] = None

    def __post_init__(self):
        if self.size is None:
            payload = self.data.encode("utf-8") if isinstance(self.data, str) else self.data
            object.__setattr__(self, "size", len(payload))

    @classmethod
    def from_data_url(cls, data_url: str, name: str = "attachment") -> "Attachment":
        """Build an attachment from a ``data:<mime>;base64,<payload>`` URL."""
        mime_type, payload = decode_data_url(data_url)
        return cls(mime_type=mime_type, data=payload, name=name)

    def as_bytes(self) -> bytes:
        if isinstance(self.data, str):
            return self.data.encode("utf-8")
        return self.data

    def as_text(self) -> str:
        if isinstance(self.data, str):
            return self.data
        return self.data.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class ConversationTurn:
    """One message contributed by the user or the model."""

    role: str
    text: str = ""
    attachments: tuple = ()

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Invalid role: '{self.role}'. Must be one of {ROLES}")
        if not isinstance(self.attachments, tuple):
            object.__setattr__(self, "attachments", tuple(self.attachments))

    @classmethod
    def user(cls, text: str, attachments=()) -> "ConversationTurn":
        return cls(ROLE_USER, text, tuple(attachments))

    @classmethod
    def assistant(cls, text: str) -> "ConversationTurn":
        return cls(ROLE_ASSISTANT, text)


@dataclass(frozen=True)
class ToolCallRequest:
    """A request by the model to run a registered tool."""

    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolError:
    code: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"code": self.code, "message": self.message}


@dataclass(frozen=True)
class ToolCallResult:
    """Outcome of executing one ToolCallRequest.

    Exactly one of ``data`` / ``error`` is meaningful depending on ``success``.
    """

    id: str
    name: str
    success: bool
    data: Any = None
    error: Optional[ToolError] = None

    @classmethod
    def ok(cls, data: Any, name: str = "", id: str = "") -> "ToolCallResult":
        return cls(id=id, name=name, success=True, data=data)

    @classmethod
    def fail(cls, code: str, message: str, name: str = "", id: str = "") -> "ToolCallResult":
        code = getattr(code, "value", code)
        return cls(id=id, name=name, success=False, error=ToolError(code, message))

    def with_call(self, request: ToolCallRequest) -> "ToolCallResult":
        """Return a copy bound to the id and name of ``request``."""
        return ToolCallResult(
            id=request.id,
            name=request.name,
            success=self.success,
            data=self.data,
            error=self.error,
        )

    def to_payload(self) -> Dict[str, Any]:
        """Payload sent back to the model."""
        return {
            "success": self.success,
            "data": self.data,
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass(frozen=True)
class ToolEvent:
    """Advisory notification about a tool call, for UI wiring."""

    id: str
    name: str
    status: str
    arguments: Dict[str, Any]
    result: Optional[ToolCallResult] = None
    timestamp: float = field(default_factory=time.time)

