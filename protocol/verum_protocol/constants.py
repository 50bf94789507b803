"""
Protocol constants for Verum.

Every limit the codec, validator and chunker enforce lives here so the
writer and the reconstructor agree on the same numbers.

Invariants:
    - PROTOCOL_VERSION is embedded in every payload this package encodes
    - PROTOCOL_EPOCH is the earliest legal payload timestamp (unix seconds)
    - Limits are measured in characters except MAX_PAYLOAD_SIZE and
      MAX_SEGMENT_CONTENT_BYTES (UTF-8 bytes)

How to change safely:
    - Never lower a limit: payloads already on the ledger must stay valid
    - A new TransactionType needs validator rules and reconstructor handling
"""

from __future__ import annotations

import re
from enum import Enum

PROTOCOL_VERSION = "0.1"

# 2024-08-01 00:00:00 UTC
PROTOCOL_EPOCH = 1722470400

# Allowed clock drift for payload timestamps (seconds)
MAX_FUTURE_DRIFT = 5 * 60


class TransactionType(str, Enum):
    """Operation kinds carried in the ``type`` field of a payload."""

    START = "start"
    POST = "post"
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    LIKE = "like"
    COMMENT = "comment"
    STORY = "story"

    @classmethod
    def parse(cls, value: object) -> TransactionType | None:
        """Return the matching kind, or None for anything unrecognized."""
        if not isinstance(value, str):
            return None
        try:
            return cls(value)
        except ValueError:
            return None


MAX_PAYLOAD_SIZE = 1000
MAX_POST_LENGTH = 500
MAX_COMMENT_LENGTH = 300
MAX_NICKNAME_LENGTH = 50
MAX_STORY_SEGMENTS = 200
MAX_SEGMENT_SIZE = 400
MIN_SEGMENT_SIZE = 50

# Encoded bytes left for segment content once the largest segment envelope
# (params block plus prev_tx_id and last_subscribe) is counted against
# MAX_PAYLOAD_SIZE
MAX_SEGMENT_CONTENT_BYTES = 700

# Segment timestamps may run backwards by this much along a story chain
MAX_SEGMENT_SKEW = 60

TRANSACTION_ID_PATTERN = re.compile(r"^[a-f0-9]{64}$")
ADDRESS_PATTERN = re.compile(r"^kaspa(test|dev)?:[a-z0-9]{61,63}$")
