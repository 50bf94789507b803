"""
Unit tests for PayloadBuilder.

Tests cover:
- Chain reference placement per operation kind
- Story segment parent linking
- Timestamps from the injected clock
"""

import pytest

from verum_protocol import (
    ChainReferences,
    PayloadBuilder,
    PayloadValidator,
    StoryChunk,
    TransactionType,
)

NOW = 1_730_000_000
PREV = "1" * 64
LAST_SUB = "2" * 64
PARENT = "3" * 64
TARGET = "kaspa:" + "t" * 61
CHAIN = ChainReferences(prev_tx_id=PREV, last_subscribe=LAST_SUB)


@pytest.fixture
def builder():
    return PayloadBuilder(clock=lambda: NOW + 0.75)


@pytest.fixture
def validator():
    return PayloadValidator(clock=lambda: NOW)


class TestReferencePlacement:
    """Which references each kind carries."""

    def test_start_has_no_references(self, builder, validator):
        """Registration starts the chain."""
        payload = builder.start("  alice  ", avatar="aGk=")

        assert payload.type is TransactionType.START
        assert payload.prev_tx_id is None
        assert payload.last_subscribe is None
        assert '"nickname":"alice"' in payload.content.replace(" ", "")
        assert validator.validate(payload.to_wire()) == []

    @pytest.mark.parametrize(
        "make",
        [
            lambda b: b.post("hello", CHAIN),
            lambda b: b.comment(PARENT, "nice", CHAIN),
            lambda b: b.like(PARENT, CHAIN),
            lambda b: b.unsubscribe(TARGET, CHAIN),
        ],
    )
    def test_referenced_kinds_carry_both(self, builder, validator, make):
        """Posts, comments, likes and unsubscribes carry both references."""
        payload = make(builder)

        assert payload.prev_tx_id == PREV
        assert payload.last_subscribe == LAST_SUB
        assert validator.validate(payload.to_wire()) == []

    def test_subscribe_carries_prev_only(self, builder):
        """A subscribe becomes the latest subscription itself."""
        payload = builder.subscribe(TARGET, CHAIN)

        assert payload.prev_tx_id == PREV
        assert payload.last_subscribe is None
        assert payload.content == TARGET

    def test_like_has_null_content(self, builder):
        """Likes carry no text."""
        payload = builder.like(PARENT)

        assert payload.content is None
        assert payload.parent_id == PARENT

    def test_timestamp_is_whole_seconds(self, builder):
        """Clock fractions are truncated."""
        assert builder.post("hello").timestamp == NOW


class TestStorySegments:
    """Segment payloads and parent links."""

    def test_first_segment_carries_author_references(self, builder):
        """Segment 1 anchors the story in the author's chain."""
        chunk = StoryChunk(content="part one", segment=1, total=2, is_final=False)

        payload = builder.story_segment(chunk, CHAIN, parent_id=PARENT)

        assert payload.prev_tx_id == PREV
        assert payload.last_subscribe == LAST_SUB
        assert payload.parent_id is None
        assert payload.params == {"segment": 1, "total": 2, "is_final": False}

    def test_later_segment_links_to_parent(self, builder, validator):
        """Later segments point at their predecessor only."""
        chunk = StoryChunk(content="part two", segment=2, total=2, is_final=True)

        payload = builder.story_segment(chunk, CHAIN, parent_id=PARENT)

        assert payload.parent_id == PARENT
        assert payload.prev_tx_id is None
        assert payload.last_subscribe is None
        assert validator.validate(payload.to_wire()) == []

    def test_later_segment_without_parent(self, builder):
        """Building segment 2 before segment 1 is published is an error."""
        chunk = StoryChunk(content="part two", segment=2, total=2, is_final=True)

        with pytest.raises(ValueError):
            builder.story_segment(chunk, CHAIN)

    def test_story_segments_splits_content(self, builder):
        """Every chunk gets a payload; only the first has references."""
        payloads = builder.story_segments("a" * 399 + " " + "b" * 400, CHAIN)

        assert [p.segment.segment for p in payloads] == [1, 2]
        assert payloads[0].prev_tx_id == PREV
        assert payloads[1].prev_tx_id is None
        assert payloads[1].parent_id is None
        assert payloads[1].segment.is_final
