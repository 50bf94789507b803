"""
Unit tests for PayloadValidator.

Tests cover:
- Common rules (version, type, timestamp, size)
- Per-kind rules (START, POST, COMMENT, LIKE, STORY, subscriptions)
- Chain reference formats
"""

import json

import pytest

from verum_protocol import (
    PROTOCOL_EPOCH,
    PayloadValidator,
    is_valid_address,
    is_valid_transaction_id,
)
from verum_protocol.constants import MAX_FUTURE_DRIFT
from verum_protocol.validate import issues_by_field

NOW = 1_730_000_000
TX_ID = "0f" * 32
ADDRESS = "kaspa:" + "q" * 61


def wire(kind: str, content=None, **extra) -> dict:
    data = {"verum": "0.1", "type": kind, "content": content, "timestamp": NOW}
    data.update(extra)
    return data


def codes(issues) -> list:
    return [issue.code for issue in issues]


@pytest.fixture
def validator():
    return PayloadValidator(clock=lambda: NOW)


class TestCommonRules:
    """Rules shared by every message kind."""

    def test_valid_post(self, validator):
        """A plain post passes."""
        assert validator.validate(wire("post", "hello")) == []

    def test_missing_version_and_type(self, validator):
        """Version and type are required."""
        issues = validator.validate({"content": "x", "timestamp": NOW})

        assert "MISSING_VERSION" in codes(issues)
        assert "MISSING_TYPE" in codes(issues)

    def test_unknown_type(self, validator):
        """Unknown kinds are reported, not raised."""
        assert codes(validator.validate(wire("dance", "x"))) == ["INVALID_TYPE"]

    def test_non_mapping_payload(self, validator):
        """Non-object payloads produce a single issue."""
        assert codes(validator.validate(["post"])) == ["INVALID_PAYLOAD"]

    @pytest.mark.parametrize(
        "timestamp, code",
        [
            (None, "INVALID_TIMESTAMP"),
            ("1730000000", "INVALID_TIMESTAMP"),
            (True, "INVALID_TIMESTAMP"),
            (PROTOCOL_EPOCH - 1, "TIMESTAMP_TOO_OLD"),
            (NOW + MAX_FUTURE_DRIFT + 1, "TIMESTAMP_FUTURE"),
        ],
    )
    def test_timestamp_rules(self, validator, timestamp, code):
        """Timestamps must be numbers between the epoch and now + drift."""
        data = wire("post", "hello")
        data["timestamp"] = timestamp

        assert codes(validator.validate(data)) == [code]

    def test_timestamp_at_drift_boundary(self, validator):
        """Exactly now + drift is still accepted."""
        data = wire("post", "hello")
        data["timestamp"] = NOW + MAX_FUTURE_DRIFT

        assert validator.validate(data) == []

    def test_payload_size_limit_counts_bytes(self, validator):
        """500 two-byte characters fit the length limit but not the byte limit."""
        issues = validator.validate(wire("post", "é" * 500))

        assert codes(issues) == ["PAYLOAD_TOO_LARGE"]


class TestPostAndComment:
    """Text limits for posts and comments."""

    def test_post_length_boundary(self, validator):
        """500 characters pass, 501 do not."""
        assert validator.validate(wire("post", "x" * 500)) == []
        assert codes(validator.validate(wire("post", "x" * 501))) == ["CONTENT_TOO_LONG"]

    def test_blank_post(self, validator):
        """Whitespace-only posts are empty."""
        assert codes(validator.validate(wire("post", "   "))) == ["EMPTY_CONTENT"]
        assert codes(validator.validate(wire("post", None))) == ["MISSING_CONTENT"]

    def test_comment_needs_parent(self, validator):
        """Comments require a well-formed parent id."""
        assert codes(validator.validate(wire("comment", "nice"))) == ["MISSING_PARENT_ID"]
        assert codes(validator.validate(wire("comment", "nice", parent_id="abc"))) == [
            "INVALID_PARENT_ID"
        ]
        assert validator.validate(wire("comment", "nice", parent_id=TX_ID)) == []

    def test_comment_length_boundary(self, validator):
        """Comments are limited to 300 characters."""
        assert validator.validate(wire("comment", "x" * 300, parent_id=TX_ID)) == []
        assert codes(validator.validate(wire("comment", "x" * 301, parent_id=TX_ID))) == [
            "CONTENT_TOO_LONG"
        ]


class TestLike:
    """Likes carry no content and a parent."""

    def test_valid_like(self, validator):
        """A like with null content and a parent passes."""
        assert validator.validate(wire("like", None, parent_id=TX_ID)) == []

    def test_like_with_content(self, validator):
        """Content on a like is rejected."""
        assert codes(validator.validate(wire("like", "yay", parent_id=TX_ID))) == ["INVALID_CONTENT"]


class TestStart:
    """Registration payload rules."""

    def test_valid_start(self, validator):
        """Nickname plus optional avatar passes."""
        content = json.dumps({"nickname": "alice", "avatar": "aGVsbG8="})

        assert validator.validate(wire("start", content)) == []

    def test_start_rejects_chain_references(self, validator):
        """START begins a chain and may not reference one."""
        content = json.dumps({"nickname": "alice"})

        assert codes(validator.validate(wire("start", content, prev_tx_id=TX_ID))) == [
            "INVALID_CHAIN_REFS"
        ]

    @pytest.mark.parametrize(
        "content, code",
        [
            (None, "MISSING_PROFILE"),
            ("{not json", "INVALID_JSON"),
            ("[1]", "INVALID_JSON"),
            (json.dumps({"nickname": "  "}), "MISSING_NICKNAME"),
            (json.dumps({"nickname": "n" * 51}), "NICKNAME_TOO_LONG"),
            (json.dumps({"nickname": "alice", "avatar": 5}), "INVALID_AVATAR"),
        ],
    )
    def test_start_profile_rules(self, validator, content, code):
        """Profile JSON must carry a bounded nickname."""
        assert codes(validator.validate(wire("start", content))) == [code]


class TestStory:
    """Segment block and parent rules."""

    def test_first_segment(self, validator):
        """Segment 1 needs no parent."""
        params = {"segment": 1, "total": 2, "is_final": False}

        assert validator.validate(wire("story", "part one", params=params)) == []

    def test_later_segment_needs_parent(self, validator):
        """Segments after the first must name their predecessor."""
        params = {"segment": 2, "total": 2, "is_final": True}

        assert codes(validator.validate(wire("story", "part two", params=params))) == [
            "MISSING_PARENT_ID"
        ]
        assert codes(
            validator.validate(wire("story", "part two", params=params, parent_id="nope"))
        ) == ["INVALID_PARENT_ID"]
        assert validator.validate(wire("story", "part two", params=params, parent_id=TX_ID)) == []

    def test_missing_params(self, validator):
        """A story without a segment block is invalid."""
        assert codes(validator.validate(wire("story", "text"))) == ["MISSING_PARAMS"]

    def test_bad_params(self, validator):
        """Each malformed field is reported."""
        params = {"segment": 0, "total": "two"}

        result = codes(validator.validate(wire("story", "text", params=params)))

        assert result == ["INVALID_SEGMENT", "INVALID_TOTAL", "MISSING_FINAL_FLAG"]

    def test_segment_beyond_total(self, validator):
        """Segment numbers cannot exceed the declared total."""
        params = {"segment": 3, "total": 2, "is_final": True}

        issues = validator.validate(wire("story", "text", params=params, parent_id=TX_ID))

        assert codes(issues) == ["INVALID_SEGMENT_RANGE"]


class TestSubscriptions:
    """Subscription targets must be addresses."""

    @pytest.mark.parametrize("kind", ["subscribe", "unsubscribe"])
    def test_target_address(self, validator, kind):
        """Valid, missing and malformed targets."""
        assert validator.validate(wire(kind, ADDRESS)) == []
        assert codes(validator.validate(wire(kind, None))) == ["MISSING_ADDRESS"]
        assert codes(validator.validate(wire(kind, "bitcoin:abc"))) == ["INVALID_ADDRESS"]


class TestChainReferences:
    """Reference format checks."""

    def test_valid_references(self, validator):
        """Absent or well-formed references pass."""
        assert validator.validate_chain_references() == []
        assert validator.validate_chain_references(TX_ID, TX_ID) == []

    def test_invalid_references(self, validator):
        """Each malformed reference is reported on its own field."""
        issues = validator.validate_chain_references("xyz", "ABC" * 10)

        assert issues_by_field(issues) == {
            "prev_tx_id": ["INVALID_PREV_TX_ID"],
            "last_subscribe": ["INVALID_SUBSCRIBE_ID"],
        }

    def test_references_checked_on_posts(self, validator):
        """Posts carrying a malformed reference fail."""
        assert codes(validator.validate(wire("post", "hi", prev_tx_id="short"))) == [
            "INVALID_PREV_TX_ID"
        ]


class TestFormatHelpers:
    """Identifier format predicates."""

    def test_transaction_id(self):
        """64 lowercase hex characters."""
        assert is_valid_transaction_id(TX_ID)
        assert not is_valid_transaction_id(TX_ID.upper())
        assert not is_valid_transaction_id(TX_ID[:-1])
        assert not is_valid_transaction_id(None)

    def test_address(self):
        """Mainnet and testnet prefixes are accepted."""
        assert is_valid_address(ADDRESS)
        assert is_valid_address("kaspatest:" + "q" * 62)
        assert not is_valid_address("kaspa:" + "q" * 10)
        assert not is_valid_address(42)
