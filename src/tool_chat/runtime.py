"""Process startup for tool-chat.

``init_runtime()`` must run once before anything reads the global
configuration (``get_config()``). The CLI calls it first thing; library users
call it themselves or pass a ``ChatConfig`` built by hand.
"""

import logging
import os
import threading
from typing import Optional

from dotenv import load_dotenv

from .config import (
    AppConfig,
    get_config,
    is_config_initialized,
    load_config_from_env,
    reset_config,
    set_config,
)

logger = logging.getLogger(__name__)

LOG_LEVEL_ENV = "TOOL_CHAT_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Libraries that log every HTTP request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "google_genai")

_initialized = False
_init_lock = threading.Lock()


def _configure_logging(log_level: str) -> None:
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {log_level}")
    logging.basicConfig(level=numeric_level, format=LOG_FORMAT)
    if numeric_level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def init_runtime(log_level: Optional[str] = None, env_file: Optional[str] = None) -> AppConfig:
    """Load ``.env``, build the global AppConfig and set up logging.

    Later calls return the existing configuration and ignore their arguments.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL. Falls back to
            ``TOOL_CHAT_LOG_LEVEL``; when neither is set logging is untouched.
        env_file: Path of the dotenv file. Defaults to ``.env`` lookup.

    Returns:
        AppConfig: The process-wide configuration.

    Raises:
        ValueError: If the log level is not a logging level name.
    """
    global _initialized

    with _init_lock:
        if _initialized:
            logger.debug("Runtime already initialized, skipping")
            return get_config()

        load_dotenv(env_file)
        level = log_level or os.getenv(LOG_LEVEL_ENV)
        if level:
            _configure_logging(level)

        if is_config_initialized():
            # A configuration installed by the caller wins over the environment
            config = get_config()
        else:
            config = load_config_from_env()
            set_config(config)
        _initialized = True
        logger.debug("Runtime initialized (provider=%s)", config.provider)
        return config


def is_initialized() -> bool:
    return _initialized


def reset_runtime() -> None:
    """Forget the runtime state. Tests only."""
    global _initialized
    with _init_lock:
        _initialized = False
        reset_config()
