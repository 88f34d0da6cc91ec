"""Tests for the thinking-segment extractor."""

import pytest

from tool_chat.thinking import ThinkingTracker, extract


def test_no_tag_returns_buffer_as_answer():
    segments = extract("Hello there")
    assert segments.answer == "Hello there"
    assert segments.reasoning == ""
    assert segments.reasoning_complete is False


def test_empty_buffer():
    segments = extract("")
    assert segments.answer == ""
    assert segments.reasoning_complete is False


def test_open_block_is_reasoning_until_closed():
    segments = extract("Intro <thinking>weighing options")
    assert segments.reasoning == "weighing options"
    assert segments.answer == "Intro "
    assert segments.reasoning_complete is False


def test_closed_block_splits_prefix_reasoning_suffix():
    segments = extract("A<thought>plan</thought>B")
    assert segments.reasoning == "plan"
    assert segments.answer == "AB"
    assert segments.reasoning_complete is True


def test_close_tag_must_match_open_tag():
    segments = extract("<thinking>x</thought>y")
    assert segments.reasoning == "x</thought>y"
    assert segments.reasoning_complete is False


def test_implicit_close_marker_ends_reasoning():
    segments = extract("<thinking>plan<tool_code>print(1)")
    assert segments.reasoning == "plan"
    assert segments.answer == "<tool_code>print(1)"
    assert segments.reasoning_complete is True


def test_explicit_close_before_marker_wins():
    segments = extract("<thinking>plan</thinking>answer<tool_code>")
    assert segments.reasoning == "plan"
    assert segments.answer == "answer<tool_code>"


def test_implicit_close_can_be_disabled():
    segments = extract("<thinking>plan<tool_code>x", implicit_close_markers=())
    assert segments.reasoning == "plan<tool_code>x"
    assert segments.reasoning_complete is False


def test_marker_equal_to_opening_tag_is_ignored():
    segments = extract("<tool_code>print(1)")
    assert segments.reasoning == "print(1)"
    assert segments.reasoning_complete is False


def test_custom_tags():
    segments = extract("<plan>a</plan>b", tags=("plan",))
    assert segments.reasoning == "a"
    assert segments.answer == "b"


@pytest.mark.parametrize(
    "text",
    [
        "Before <thinking>reason about it</thinking> after",
        "<scratchpad>draft<tool_code>run()</tool_code> done",
        "<thinking>draft</thinking>answer",
        "Hello <thinking>x</thinking>",
        "a < b and <tag> is not a thinking tag",
        "plain answer without tags",
    ],
)
def test_boundaries_only_move_forward(text):
    """Growing the buffer never shrinks reasoning or retracts answer text."""
    previous = extract("")
    for end in range(1, len(text) + 1):
        current = extract(text[:end])
        assert current.reasoning.startswith(previous.reasoning), text[:end]
        assert current.answer.startswith(previous.answer), text[:end]
        if previous.reasoning_complete:
            assert current.reasoning_complete
            assert current.reasoning == previous.reasoning
        previous = current

    final = extract(text, finished=True)
    assert final.reasoning.startswith(previous.reasoning)
    assert final.answer.startswith(previous.answer)


def test_partial_tags_are_withheld_until_resolved():
    assert extract("Hello <thin").answer == "Hello "
    assert extract("Hello <thin", finished=True).answer == "Hello <thin"
    assert extract("<thinking>draft</think").reasoning == "draft"
    assert extract("<thinking>draft<tool_").reasoning == "draft"
    assert extract("a < b").answer == "a < b"


def test_tracker_records_reasoning_duration_once():
    ticks = iter([10.0, 12.5, 99.0])
    tracker = ThinkingTracker(clock=lambda: next(ticks))

    tracker.feed("<thinking>hm")
    assert tracker.reasoning_seconds is None

    segments = tracker.feed("m</thinking>Answer")
    assert segments.answer == "Answer"
    assert tracker.reasoning_seconds == 2.5

    tracker.feed(" more")
    assert tracker.reasoning_seconds == 2.5
    assert tracker.buffer == "<thinking>hmm</thinking>Answer more"


def test_tracker_finish_releases_withheld_tail():
    tracker = ThinkingTracker(clock=lambda: 0.0)
    assert tracker.feed("Answer ends with <").answer == "Answer ends with "
    assert tracker.finish().answer == "Answer ends with <"
