"""Error taxonomy for chat exchanges.

Every failure that crosses a round boundary is converted to a ``ChatError``
by ``classify_error`` before any retry decision is taken. The ``user_message``
is what the caller renders through the normal chunk channel.
"""

import asyncio
from enum import Enum
from typing import Optional

import httpx
from google.genai import errors as genai_errors


class ErrorCode(str, Enum):
    CONFIG_ERROR = "CONFIG_ERROR"
    CANCELLED = "CANCELLED"
    RATE_LIMIT = "RATE_LIMIT"
    TRANSIENT_NETWORK = "TRANSIENT_NETWORK"
    UNSUPPORTED_ATTACHMENT = "UNSUPPORTED_ATTACHMENT"
    AUTH_ERROR = "AUTH_ERROR"
    API_ERROR = "API_ERROR"
    TOOL_EXECUTION_ERROR = "TOOL_EXECUTION_ERROR"
    UNKNOWN_TOOL = "UNKNOWN_TOOL"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    NOT_FOUND = "NOT_FOUND"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


RECOVERABLE_CODES = frozenset({ErrorCode.RATE_LIMIT, ErrorCode.TRANSIENT_NETWORK})
FATAL_CODES = frozenset(
    {ErrorCode.CONFIG_ERROR, ErrorCode.UNSUPPORTED_ATTACHMENT, ErrorCode.AUTH_ERROR}
)

RATE_LIMIT_MESSAGE = "You are sending requests too quickly. Please wait a moment and try again."
NETWORK_MESSAGE = (
    "Could not connect to the API server. "
    "Please check your network connection and Base URL in Settings."
)
AUTH_MESSAGE = "Authentication failed. Please check your API key in Settings."

# Known provider error fragments and their user-facing translations
KNOWN_API_ERROR_MESSAGES = {
    "api key not valid": (ErrorCode.AUTH_ERROR, "Your API key is not valid. Please check it in Settings."),
    "quota exceeded": (ErrorCode.RATE_LIMIT, "You have exceeded your API quota. Please check your account."),
    "rate limit": (ErrorCode.RATE_LIMIT, RATE_LIMIT_MESSAGE),
    "failed to fetch": (ErrorCode.TRANSIENT_NETWORK, NETWORK_MESSAGE),
}


class ChatError(Exception):
    """Application error carrying a machine code and a user-facing message.

    Attributes:
        code: ErrorCode member
        user_message: Text suitable for showing to the end user
        original: The exception this error was derived from, if any
        status_code: HTTP status reported by the provider, if any
    """

    def __init__(
        self,
        code: ErrorCode,
        user_message: str,
        original: Optional[BaseException] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(user_message)
        self.code = ErrorCode(code)
        self.user_message = user_message
        self.original = original
        self.status_code = status_code

    @property
    def recoverable(self) -> bool:
        return self.code in RECOVERABLE_CODES

    @property
    def fatal(self) -> bool:
        return self.code in FATAL_CODES

    @property
    def cancelled(self) -> bool:
        return self.code == ErrorCode.CANCELLED

    def __repr__(self):
        return f"ChatError(code={self.code.value!r}, user_message={self.user_message!r})"


def cancelled_error() -> ChatError:
    return ChatError(ErrorCode.CANCELLED, "Request was cancelled by the user.")


def error_for_status(status_code: int, detail: str = "", original=None) -> ChatError:
    """Map an HTTP status reported by a provider to a ChatError."""
    if status_code == 429:
        return ChatError(ErrorCode.RATE_LIMIT, RATE_LIMIT_MESSAGE, original, status_code)
    if status_code in (401, 403):
        return ChatError(ErrorCode.AUTH_ERROR, AUTH_MESSAGE, original, status_code)
    if status_code == 404:
        return ChatError(
            ErrorCode.API_ERROR,
            "The API endpoint or model was not found. Please check the Base URL "
            "and model name in Settings.",
            original,
            status_code,
        )
    if status_code >= 500:
        return ChatError(
            ErrorCode.TRANSIENT_NETWORK,
            f"The API server returned an error ({status_code}). Please try again.",
            original,
            status_code,
        )
    message = f"API error ({status_code})"
    if detail:
        message = f"{message}: {detail}"
    return ChatError(
        ErrorCode.API_ERROR,
        f"An API error occurred: {message}. Please check your settings or try again.",
        original,
        status_code,
    )


def classify_error(error: BaseException) -> ChatError:
    """Convert any exception raised during an exchange into a ChatError.

    ChatError instances are returned unchanged.
    """
    if isinstance(error, ChatError):
        return error

    if isinstance(error, asyncio.CancelledError):
        return ChatError(ErrorCode.CANCELLED, "Request was cancelled by the user.", error)

    if isinstance(error, httpx.TimeoutException):
        return ChatError(
            ErrorCode.TRANSIENT_NETWORK,
            "The request to the API server timed out. Please try again.",
            error,
        )

    if isinstance(error, httpx.TransportError):
        return ChatError(ErrorCode.TRANSIENT_NETWORK, NETWORK_MESSAGE, error)

    if isinstance(error, httpx.HTTPStatusError):
        return error_for_status(error.response.status_code, error.response.text, error)

    if isinstance(error, genai_errors.APIError):
        status_code = getattr(error, "code", None)
        if isinstance(status_code, int):
            return error_for_status(status_code, getattr(error, "message", "") or "", error)

    error_message = str(error) or type(error).__name__
    lowered = error_message.lower()

    for fragment, (code, user_message) in KNOWN_API_ERROR_MESSAGES.items():
        if fragment in lowered:
            return ChatError(code, user_message, error)

    if "429" in lowered:
        return ChatError(ErrorCode.RATE_LIMIT, RATE_LIMIT_MESSAGE, error)
    if "401" in lowered or "authentication" in lowered:
        return ChatError(ErrorCode.AUTH_ERROR, AUTH_MESSAGE, error)

    return ChatError(
        ErrorCode.UNKNOWN_ERROR,
        f"An API error occurred: {error_message}. Please check your settings or try again.",
        error,
    )
