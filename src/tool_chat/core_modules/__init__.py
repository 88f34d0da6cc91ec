"""Core sub-package for tool_chat

- agentic_loop: Tool invocation loop (state machine over model rounds)
- stream_controller: Retry/backoff and cancellation around one exchange

The parent core.py module re-exports the public APIs.
"""

__all__ = []  # Public APIs are re-exported from parent core.py
