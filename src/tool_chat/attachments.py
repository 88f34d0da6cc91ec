"""Attachment helpers shared by the provider translators."""

import base64
import binascii
import re
from typing import Tuple, Union

MAX_TEXT_ATTACHMENT_CHARS = 4000
TRUNCATION_MARKER = "\n... [truncated]"

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]*)(?P<params>(;[^;,]*)*),(?P<payload>.*)$", re.S)


def decode_data_url(data_url: str) -> Tuple[str, Union[bytes, str]]:
    """Split a data URL into ``(mime_type, payload)``.

    Base64 payloads are decoded to bytes; plain payloads are returned as text.

    Raises:
        ValueError: If the string is not a data URL.
    """
    match = _DATA_URL_RE.match(data_url or "")
    if not match:
        raise ValueError("Invalid data URL")
    mime_type = match.group("mime") or "text/plain"
    payload = match.group("payload")
    if ";base64" in match.group("params"):
        try:
            return mime_type, base64.b64decode(payload, validate=False)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid base64 payload in data URL: {e}") from e
    return mime_type, payload


def to_data_url(mime_type: str, payload: bytes) -> str:
    encoded = base64.b64encode(payload).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def truncate_text(text: str, limit: int = MAX_TEXT_ATTACHMENT_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def summarize_text_attachment(name: str, text: str) -> str:
    """Inline block used when a provider cannot carry text files natively."""
    return f"\n\n--- Attachment summary: {name} ---\n{truncate_text(text)}"


def is_image(mime_type: str) -> bool:
    return (mime_type or "").startswith("image/")


def is_text(mime_type: str) -> bool:
    return (mime_type or "").startswith("text/")


def is_document(mime_type: str) -> bool:
    return mime_type == "application/pdf"
