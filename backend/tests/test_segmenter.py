"""
Tests for segmenter.py

Covers the flush predicate, trailing summary steps, numbering and the
per-fragment evaluation rule.
"""
import pytest

from app.services.segmenter import (
    STEP_TYPE_ANALYSIS,
    STEP_TYPE_SUMMARY,
    StreamSegmenter,
)


class TestFlushPredicate:
    """The buffer flushes only when it is long enough AND holds a line break."""

    def test_long_buffer_with_newline_flushes(self):
        """120 chars containing a newline should flush immediately."""
        seg = StreamSegmenter()
        step = seg.feed("abc\n" * 30)
        assert step is not None
        assert step.step_type == STEP_TYPE_ANALYSIS
        assert step.step_number == 1
        assert step.content == ("abc\n" * 30).strip()
        assert seg.buffered == ""

    def test_long_buffer_without_newline_waits(self):
        """200 chars with no newline should accumulate until a newline arrives."""
        seg = StreamSegmenter()
        assert seg.feed("x" * 200) is None
        assert seg.buffered == "x" * 200

        step = seg.feed("\n")
        assert step is not None
        assert step.content == "x" * 200
        assert step.tokens_used == 51  # ceil(201 / 4)

    def test_short_buffer_with_newline_waits(self):
        """A newline alone is not enough below the threshold."""
        seg = StreamSegmenter()
        assert seg.feed("short line\n") is None
        assert seg.feed("x" * 89) is None  # exactly 100 chars, not > 100
        assert len(seg.buffered) == 100
        assert seg.feed("y") is not None

    def test_predicate_checked_once_per_fragment(self):
        """A fragment with many line breaks still produces at most one step."""
        seg = StreamSegmenter()
        fragment = ("line of text that is long enough\n" * 10)
        step = seg.feed(fragment)
        assert step is not None
        assert step.content == fragment.strip()
        assert seg.emitted == 1

    def test_custom_threshold(self):
        seg = StreamSegmenter(threshold=10)
        assert seg.feed("0123456789") is None
        assert seg.feed("\n") is not None


class TestSegmentStream:
    """End-to-end behaviour of segment() over a fragment sequence."""

    def test_zero_fragments_yield_zero_steps(self):
        assert list(StreamSegmenter().segment([])) == []

    def test_trailing_content_becomes_summary(self):
        """Leftover text is emitted as a summary step without the predicate."""
        steps = list(StreamSegmenter().segment(["Final answer: 42"]))
        assert len(steps) == 1
        assert steps[0].step_type == STEP_TYPE_SUMMARY
        assert steps[0].content == "Final answer: 42"

    def test_whitespace_remainder_is_dropped(self):
        steps = list(StreamSegmenter().segment(["a" * 101 + "\n", "   \n\t"]))
        assert [s.step_type for s in steps] == [STEP_TYPE_ANALYSIS]

    def test_whitespace_only_flush_does_not_consume_a_number(self):
        """A flushed buffer of pure whitespace must not produce an empty step."""
        steps = list(StreamSegmenter().segment([" " * 120 + "\n", "b" * 101 + "\n"]))
        assert len(steps) == 1
        assert steps[0].step_number == 1
        assert steps[0].content == "b" * 101

    def test_reference_scenario(self):
        """["a"*50+"\\n", "b"*60] flushes once after the second fragment, 28 tokens."""
        fragments = ["a" * 50 + "\n", "b" * 60]
        steps = list(StreamSegmenter().segment(fragments))
        assert len(steps) == 1
        assert steps[0].step_number == 1
        assert steps[0].step_type == STEP_TYPE_ANALYSIS
        assert steps[0].content == "a" * 50 + "\n" + "b" * 60
        assert steps[0].tokens_used == 28

    def test_step_numbers_are_contiguous(self):
        """Numbers run 1..N in emission order, with the summary last."""
        fragments = []
        for i in range(25):
            fragments.append(f"chunk {i} " * (i % 7 + 1))
            if i % 3 == 0:
                fragments.append("\n")
        fragments.append("z" * 101 + "\n")
        fragments.append("tail without newline")

        steps = list(StreamSegmenter().segment(fragments))
        assert [s.step_number for s in steps] == list(range(1, len(steps) + 1))
        assert all(s.content for s in steps)
        assert steps[-1].step_type == STEP_TYPE_SUMMARY
        assert all(s.step_type == STEP_TYPE_ANALYSIS for s in steps[:-1])

    def test_empty_fragments_are_ignored(self):
        steps = list(StreamSegmenter().segment(["", "", "hello", ""]))
        assert [s.content for s in steps] == ["hello"]

    def test_feed_after_finish_raises(self):
        seg = StreamSegmenter()
        seg.finish()
        with pytest.raises(RuntimeError):
            seg.feed("late")
