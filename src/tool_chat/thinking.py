"""Incremental separation of reasoning markup from answer text.

Some models write their reasoning inline, e.g. ``<thinking>...</thinking>``,
before the final answer. ``extract`` is called on the growing stream buffer
after every delta and splits it into the reasoning segment and the answer.

Some models also open a reasoning block and then emit a tool marker such as
``<tool_code>`` without ever closing the block. Markers listed in
``implicit_close_markers`` end the reasoning block in that case; pass an empty
tuple to turn the heuristic off.
"""

import re
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Sequence, Tuple

from .config import DEFAULT_IMPLICIT_CLOSE_MARKERS, DEFAULT_THINKING_TAGS


@dataclass(frozen=True)
class ThinkingSegments:
    reasoning: str
    answer: str
    reasoning_complete: bool


@lru_cache(maxsize=32)
def _open_tag_pattern(tags: Tuple[str, ...]) -> "re.Pattern[str]":
    names = "|".join(re.escape(tag) for tag in tags)
    return re.compile(f"<({names})>")


def _partial_suffix_length(text: str, candidates: Sequence[str]) -> int:
    """Length of the longest tail of ``text`` that could still grow into a candidate.

    Such a tail is withheld from both segments until the next delta decides it.
    """
    longest = 0
    for candidate in candidates:
        for size in range(min(len(candidate) - 1, len(text)), longest, -1):
            if text.endswith(candidate[:size]):
                longest = size
                break
    return longest


def extract(
    buffer: str,
    tags: Sequence[str] = DEFAULT_THINKING_TAGS,
    implicit_close_markers: Sequence[str] = DEFAULT_IMPLICIT_CLOSE_MARKERS,
    finished: bool = False,
) -> ThinkingSegments:
    """Split ``buffer`` into reasoning and answer text.

    While the stream is running, a trailing fragment that may still become a
    tag or marker (e.g. ``"<thin"``) is left out of both segments, so neither
    boundary ever moves backwards as the buffer grows.

    Args:
        buffer: Everything streamed so far
        tags: Tag names that open a reasoning block
        implicit_close_markers: Literal markers that close an open block when
            they appear before its closing tag
        finished: The stream has ended; nothing is withheld

    Returns:
        ThinkingSegments. Without an opening tag the whole buffer is the answer.
    """
    if not buffer or not tags:
        return ThinkingSegments("", buffer or "", False)

    start_match = _open_tag_pattern(tuple(tags)).search(buffer)
    if start_match is None:
        held = 0 if finished else _partial_suffix_length(buffer, [f"<{tag}>" for tag in tags])
        return ThinkingSegments("", buffer[: len(buffer) - held], False)

    tag_name = start_match.group(1)
    body_start = start_match.end()
    prefix = buffer[: start_match.start()]

    close_tag = f"</{tag_name}>"
    close_at = buffer.find(close_tag, body_start)
    close_len = len(close_tag)

    # The earliest close wins so the boundary never moves backwards.
    for marker in implicit_close_markers:
        if not marker or marker == start_match.group(0):
            continue
        marker_at = buffer.find(marker, body_start)
        if marker_at != -1 and (close_at == -1 or marker_at < close_at):
            close_at = marker_at
            close_len = 0

    if close_at == -1:
        body = buffer[body_start:]
        pending = [close_tag] + [m for m in implicit_close_markers if m and m != start_match.group(0)]
        held = 0 if finished else _partial_suffix_length(body, pending)
        return ThinkingSegments(body[: len(body) - held], prefix, False)

    reasoning = buffer[body_start:close_at]
    suffix = buffer[close_at + close_len :]
    return ThinkingSegments(reasoning, prefix + suffix, True)


class ThinkingTracker:
    """Feeds streamed deltas into ``extract`` and times the reasoning block.

    Usage:
        ```python
        tracker = ThinkingTracker()
        for delta in stream:
            segments = tracker.feed(delta)
            render(segments.reasoning.strip(), segments.answer)
        print(tracker.reasoning_seconds)
        ```
    """

    def __init__(
        self,
        tags: Sequence[str] = DEFAULT_THINKING_TAGS,
        implicit_close_markers: Sequence[str] = DEFAULT_IMPLICIT_CLOSE_MARKERS,
        clock=None,
    ):
        self._tags = tuple(tags)
        self._markers = tuple(implicit_close_markers)
        self._clock = clock or time.monotonic
        self._started_at = self._clock()
        self._buffer = ""
        self.reasoning_seconds: Optional[float] = None
        self.segments = ThinkingSegments("", "", False)

    @property
    def buffer(self) -> str:
        return self._buffer

    def feed(self, delta: str) -> ThinkingSegments:
        self._buffer += delta
        return self._update(finished=False)

    def finish(self) -> ThinkingSegments:
        """Release any withheld tail once the stream has ended."""
        return self._update(finished=True)

    def _update(self, finished: bool) -> ThinkingSegments:
        self.segments = extract(self._buffer, self._tags, self._markers, finished=finished)
        if self.segments.reasoning_complete and self.reasoning_seconds is None:
            self.reasoning_seconds = self._clock() - self._started_at
        return self.segments
