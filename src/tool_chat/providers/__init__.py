"""Chat provider implementations

Each backend implements the ChatProvider strategy; ``create_provider`` picks
one from a ChatConfig.
"""

from typing import Optional

import httpx

from ..config import PROVIDER_GEMINI, PROVIDER_OPENAI, ChatConfig
from ..errors import ChatError, ErrorCode
from .base import ChatProvider, RoundResult, emit_text
from .gemini import GeminiProvider
from .openai import OpenAIProvider


def create_provider(
    config: ChatConfig, transport: Optional[httpx.AsyncBaseTransport] = None
) -> ChatProvider:
    """Build the provider selected by ``config.provider``.

    Raises:
        ChatError: CONFIG_ERROR for an unknown provider, a missing API key or
            an unsupported model
    """
    if config.provider == PROVIDER_GEMINI:
        return GeminiProvider(api_key=config.api_key, model_name=config.model)
    if config.provider == PROVIDER_OPENAI:
        return OpenAIProvider(
            api_key=config.api_key,
            model_name=config.model,
            base_url=config.openai_base_url,
            timeout=config.request_timeout,
            transport=transport,
        )
    raise ChatError(
        ErrorCode.CONFIG_ERROR,
        f"Unknown provider '{config.provider}'. Please choose a provider in Settings.",
    )


__all__ = [
    "ChatProvider",
    "RoundResult",
    "GeminiProvider",
    "OpenAIProvider",
    "create_provider",
    "emit_text",
]
