"""Application configuration repository.

Centralizes access to configuration values loaded from environment variables.
``AppConfig`` is the process-wide configuration set once at startup;
``ChatConfig`` is the per-exchange configuration handed to ``send()``.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

PROVIDER_GEMINI = "gemini"
PROVIDER_OPENAI = "openai"
SUPPORTED_PROVIDERS = (PROVIDER_GEMINI, PROVIDER_OPENAI)

DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_OPENAI_MODEL = "gpt-4o"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"

DEFAULT_THINKING_TAGS = (
    "thinking",
    "thought",
    "scratchpad",
    "tool_code",
    "function_calls",
    "tool_calls",
)
DEFAULT_IMPLICIT_CLOSE_MARKERS = ("<tool_code>",)


@dataclass
class AppConfig:
    """Application configuration container.

    Values are typically loaded from environment variables during
    initialization (see ``load_config_from_env``).
    """

    provider: str = PROVIDER_GEMINI

    # API Keys
    google_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None

    # Model settings
    gemini_model: str = DEFAULT_GEMINI_MODEL
    openai_model: str = DEFAULT_OPENAI_MODEL
    openai_base_url: str = DEFAULT_OPENAI_BASE_URL

    # Exchange settings
    max_iterations: int = 10
    max_retries: int = 2
    retry_base_delay: float = 0.5
    request_timeout: float = 120.0
    text_tool_calls: bool = True

    def validate(self) -> list[str]:
        """Validate configuration and return list of warnings.

        Returns:
            list[str]: List of warning messages for missing or invalid configuration.
        """
        issues = []

        if self.provider not in SUPPORTED_PROVIDERS:
            issues.append(f"Unknown TOOL_CHAT_PROVIDER: '{self.provider}'")

        if not self.google_api_key:
            issues.append("GOOGLE_API_KEY not set - Gemini features will be unavailable")

        if not self.openai_api_key:
            issues.append("OPENAI_API_KEY not set - OpenAI features will be unavailable")

        if self.max_iterations <= 0:
            issues.append(f"Invalid TOOL_CHAT_MAX_ITERATIONS: {self.max_iterations}")

        if self.max_retries < 0:
            issues.append(f"Invalid TOOL_CHAT_MAX_RETRIES: {self.max_retries}")

        if self.retry_base_delay < 0:
            issues.append(f"Invalid TOOL_CHAT_RETRY_BASE_DELAY: {self.retry_base_delay}")

        if self.request_timeout <= 0:
            issues.append(f"Invalid TOOL_CHAT_REQUEST_TIMEOUT: {self.request_timeout}")

        return issues


@dataclass(frozen=True)
class ChatConfig:
    """Configuration for a single exchange.

    Attributes:
        system_instruction: System prompt sent with every round
        provider: "gemini" or "openai"
        tool_definitions: Optional list of registry tool names to advertise.
            None advertises every registered tool, an empty list disables tools.
        text_tool_calls: Parse ``<tool_calls>`` markup out of the answer text
        thinking_tags: Tag names recognised as reasoning blocks
        implicit_close_markers: Markers that close an unterminated reasoning
            block. Empty disables implicit closing.
    """

    system_instruction: str = ""
    provider: str = PROVIDER_GEMINI
    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    openai_api_key: Optional[str] = None
    openai_model: str = DEFAULT_OPENAI_MODEL
    openai_base_url: str = DEFAULT_OPENAI_BASE_URL
    tool_definitions: Optional[List[str]] = None
    max_iterations: int = 10
    max_retries: int = 2
    retry_base_delay: float = 0.5
    request_timeout: float = 120.0
    text_tool_calls: bool = True
    thinking_tags: Tuple[str, ...] = DEFAULT_THINKING_TAGS
    implicit_close_markers: Tuple[str, ...] = field(default=DEFAULT_IMPLICIT_CLOSE_MARKERS)

    @classmethod
    def from_app_config(cls, app_config: AppConfig, **overrides) -> "ChatConfig":
        """Build an exchange configuration from the application configuration."""
        config = cls(
            provider=app_config.provider,
            gemini_api_key=app_config.google_api_key,
            gemini_model=app_config.gemini_model,
            openai_api_key=app_config.openai_api_key,
            openai_model=app_config.openai_model,
            openai_base_url=app_config.openai_base_url,
            max_iterations=app_config.max_iterations,
            max_retries=app_config.max_retries,
            retry_base_delay=app_config.retry_base_delay,
            request_timeout=app_config.request_timeout,
            text_tool_calls=app_config.text_tool_calls,
        )
        return replace(config, **overrides) if overrides else config

    @property
    def api_key(self) -> Optional[str]:
        """API key of the selected provider."""
        if self.provider == PROVIDER_OPENAI:
            return self.openai_api_key
        return self.gemini_api_key

    @property
    def model(self) -> str:
        """Model id of the selected provider."""
        if self.provider == PROVIDER_OPENAI:
            return self.openai_model or DEFAULT_OPENAI_MODEL
        return self.gemini_model or DEFAULT_GEMINI_MODEL


# Global configuration instance (set once at startup)
_config: Optional[AppConfig] = None


def _get_env_float(key: str, default: float) -> float:
    """Safely parse float from environment variable with fallback."""
    val_str = os.getenv(key)
    if val_str is None:
        return default
    try:
        return float(val_str)
    except (ValueError, TypeError):
        logger.warning(f"Invalid value for {key}: '{val_str}'. Using default value: {default}.")
        return default


def _get_env_int(key: str, default: int) -> int:
    """Safely parse int from environment variable with fallback."""
    val_str = os.getenv(key)
    if val_str is None:
        return default
    try:
        return int(val_str)
    except (ValueError, TypeError):
        logger.warning(f"Invalid value for {key}: '{val_str}'. Using default value: {default}.")
        return default


def _get_env_bool(key: str, default: bool) -> bool:
    val_str = os.getenv(key)
    if val_str is None:
        return default
    return val_str.strip().lower() in ("true", "1", "yes")


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables.

    This should be called once during application initialization
    (typically from init_runtime()).

    Returns:
        AppConfig: Configuration instance populated from environment variables.
    """
    config = AppConfig(
        provider=os.getenv("TOOL_CHAT_PROVIDER", PROVIDER_GEMINI).strip().lower(),
        google_api_key=os.getenv("GOOGLE_API_KEY"),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        gemini_model=os.getenv("GEMINI_MODEL", DEFAULT_GEMINI_MODEL),
        openai_model=os.getenv("OPENAI_MODEL", DEFAULT_OPENAI_MODEL),
        openai_base_url=os.getenv("OPENAI_BASE_URL", DEFAULT_OPENAI_BASE_URL).rstrip("/"),
        max_iterations=_get_env_int("TOOL_CHAT_MAX_ITERATIONS", 10),
        max_retries=_get_env_int("TOOL_CHAT_MAX_RETRIES", 2),
        retry_base_delay=_get_env_float("TOOL_CHAT_RETRY_BASE_DELAY", 0.5),
        request_timeout=_get_env_float("TOOL_CHAT_REQUEST_TIMEOUT", 120.0),
        text_tool_calls=_get_env_bool("TOOL_CHAT_TEXT_TOOL_CALLS", True),
    )

    # Log validation issues
    for issue in config.validate():
        logger.warning(issue)

    return config


def set_config(config: AppConfig) -> None:
    """Set the global configuration instance.

    Raises:
        RuntimeError: If configuration has already been set.
    """
    global _config
    if _config is not None:
        raise RuntimeError("Configuration already set. Call reset_config() first.")
    _config = config
    logger.debug("Configuration initialized")


def get_config() -> AppConfig:
    """Get the global configuration instance.

    Raises:
        RuntimeError: If configuration has not been initialized.
                     Call init_runtime() first.
    """
    if _config is None:
        raise RuntimeError(
            "Configuration not initialized. Call init_runtime() at application startup."
        )
    return _config


def reset_config() -> None:
    """Reset configuration state (for testing purposes only)."""
    global _config
    _config = None


def is_config_initialized() -> bool:
    """Check if configuration has been initialized."""
    return _config is not None
