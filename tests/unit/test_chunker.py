"""
Unit tests for StoryChunker.

Tests cover:
- Boundary preference (paragraph, sentence, space)
- Size bounds and final flags
- Empty and oversized input
- Estimation helpers
- Rejoin and length properties over varied text
- Encoded size bound for multibyte text
"""

import pytest

from verum_protocol import (
    MAX_SEGMENT_CONTENT_BYTES,
    MAX_SEGMENT_SIZE,
    MIN_SEGMENT_SIZE,
    ContentTooLargeError,
    EmptyContentError,
    StoryChunker,
)
from verum_protocol.chunker import encoded_size

VARIED_TEXTS = {
    "words": " ".join(f"word{i}" for i in range(600)),
    "paragraphs": "\n\n".join("Line one.\nLine two! Is it? Yes; maybe, no. " * 3 for _ in range(30)),
    "unbroken_runs": "x" * 1500 + " " + "y" * 900,
    "sentences_then_run": "Short. " * 200 + "z" * 700,
    "emoji": "\U0001F642" * 300,
}


def squash(text):
    return "".join(text.split())


@pytest.fixture
def chunker():
    return StoryChunker()


class TestSplit:
    """Tests for StoryChunker.split."""

    def test_short_text_is_one_final_segment(self, chunker):
        """Text within one segment is returned whole and trimmed."""
        chunks = chunker.split("  a short story  ")

        assert len(chunks) == 1
        assert chunks[0].content == "a short story"
        assert chunks[0].segment == 1
        assert chunks[0].total == 1
        assert chunks[0].is_final

    def test_cuts_at_space_before_limit(self, chunker):
        """800 characters with one space at 399 split into two segments."""
        text = "a" * 399 + " " + "b" * 400

        chunks = chunker.split(text)

        assert [c.content for c in chunks] == ["a" * 399, "b" * 400]
        assert [c.total for c in chunks] == [2, 2]
        assert [c.is_final for c in chunks] == [False, True]

    def test_unbroken_text_is_cut_at_minimum(self, chunker):
        """Without any boundary the cut falls at 70% of the maximum."""
        chunks = chunker.split("a" * 800)

        assert [len(c.content) for c in chunks] == [280, 280, 240]
        assert "".join(c.content for c in chunks) == "a" * 800

    def test_prefers_paragraph_break(self, chunker):
        """A paragraph break beats later sentence ends."""
        first = "x" * 300
        second = "y. " * 60
        text = first + "\n\n" + second + "z" * 200

        chunks = chunker.split(text)

        assert chunks[0].content == first

    def test_prefers_sentence_end_over_space(self, chunker):
        """Sentence end is chosen over a later plain space."""
        text = "w" * 300 + ". " + "v" * 50 + " " + "u" * 300

        chunks = chunker.split(text)

        assert chunks[0].content == "w" * 300 + "."

    def test_non_final_segments_respect_maximum(self, chunker):
        """Every segment fits the maximum and numbering is 1..n."""
        text = " ".join(f"word{i}" for i in range(1000))

        chunks = chunker.split(text)

        assert all(len(c.content) <= MAX_SEGMENT_SIZE for c in chunks)
        assert [c.segment for c in chunks] == list(range(1, len(chunks) + 1))
        assert [c.is_final for c in chunks].count(True) == 1
        assert chunks[-1].is_final

    def test_split_is_deterministic(self, chunker):
        """Same input, same segments."""
        text = "The quick brown fox. " * 100

        assert chunker.split(text) == chunker.split(text)

    @pytest.mark.parametrize("text", ["", "   ", "\n\n\t"])
    def test_empty_text(self, chunker, text):
        """Blank input is rejected."""
        with pytest.raises(EmptyContentError):
            chunker.split(text)

    def test_too_many_segments(self):
        """Input needing more than max_segments fails before returning anything."""
        small = StoryChunker(max_segment_size=100, min_segment_size=50, max_segments=3)

        with pytest.raises(ContentTooLargeError) as exc_info:
            small.split("a" * 1000)

        assert exc_info.value.details["max_segments"] == 3


class TestConfiguration:
    """Constructor bounds."""

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_segment_size": 40, "min_segment_size": 50},
            {"min_segment_size": 0},
            {"max_segments": 0},
        ],
    )
    def test_inconsistent_bounds(self, kwargs):
        """Impossible bounds raise ValueError."""
        with pytest.raises(ValueError):
            StoryChunker(**kwargs)


class TestEstimates:
    """Tests for estimate_segment_count and within_limits."""

    def test_estimate_matches_split(self, chunker):
        """Estimate equals the real segment count when within limits."""
        text = "a" * 399 + " " + "b" * 400

        assert chunker.estimate_segment_count(text) == 2

    def test_estimate_never_raises(self):
        """Oversized and empty input are estimated, not raised."""
        small = StoryChunker(max_segment_size=100, min_segment_size=50, max_segments=3)

        assert small.estimate_segment_count("a" * 1000) == 10
        assert small.estimate_segment_count("   ") == 0

    def test_within_limits(self):
        """Blank and oversized text are out of limits."""
        small = StoryChunker(max_segment_size=100, min_segment_size=50, max_segments=3)

        assert small.within_limits("a" * 150)
        assert not small.within_limits("a" * 1000)
        assert not small.within_limits("")


class TestSplitProperties:
    """Properties that hold for any input."""

    @pytest.mark.parametrize("name", sorted(VARIED_TEXTS))
    def test_segments_rejoin_to_input(self, chunker, name):
        """Concatenated segments equal the input up to whitespace."""
        text = VARIED_TEXTS[name]

        chunks = chunker.split(text)

        assert squash("".join(c.content for c in chunks)) == squash(text)

    @pytest.mark.parametrize("name", sorted(VARIED_TEXTS))
    def test_segment_lengths_within_bounds(self, chunker, name):
        """Non-final segments lie within [min, max]; none is empty."""
        chunks = chunker.split(VARIED_TEXTS[name])

        assert len(chunks) > 1
        for chunk in chunks[:-1]:
            assert MIN_SEGMENT_SIZE <= len(chunk.content) <= MAX_SEGMENT_SIZE
        assert 0 < len(chunks[-1].content) <= MAX_SEGMENT_SIZE
        assert len(chunks) <= chunker.max_segments


class TestEncodedSize:
    """Byte bound on segments."""

    def test_multibyte_segments_fit_byte_budget(self, chunker):
        """Three-byte characters are split by encoded size, not length."""
        text = "a" * 399 + " " + "界" * 390

        chunks = chunker.split(text)

        assert [len(c.content) for c in chunks] == [399, 163, 227]
        assert all(encoded_size(c.content) <= MAX_SEGMENT_CONTENT_BYTES for c in chunks)
        assert "".join(c.content for c in chunks) == "a" * 399 + "界" * 390

    def test_json_escapes_count(self):
        """Escaped characters count at their encoded width."""
        assert encoded_size('a"b\n') == 6
        assert encoded_size("界") == 3

    def test_byte_bound_can_be_disabled(self):
        """Without a byte bound only characters are counted."""
        chunks = StoryChunker(max_segment_bytes=None).split("界" * 400)

        assert len(chunks) == 1

    def test_byte_bound_must_hold_minimum_segment(self):
        """A byte budget too small for the minimum segment is rejected."""
        with pytest.raises(ValueError):
            StoryChunker(min_segment_size=50, max_segment_bytes=200)
