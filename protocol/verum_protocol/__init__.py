"""
Verum protocol - payload codec, validator and story chunker.

Verum embeds social messages in ledger transactions. This package defines
what a legal message looks like:
- ContentPayload and its wire form
- encode/decode between payloads and output script bytes
- PayloadValidator returning structured issues
- StoryChunker splitting long text into chained segments
- PayloadBuilder with one factory per operation kind

Example:
    >>> from verum_protocol import PayloadBuilder, encode, decode_bytes
    >>>
    >>> payload = PayloadBuilder().post("hello ledger")
    >>> data = encode(payload)
    >>> decode_bytes(data).content
    'hello ledger'

Invariants:
    - Nothing in this package performs I/O
    - Decoding and validation never raise

Version: 0.1.0
"""

__version__ = "0.1.0"

from .builder import PayloadBuilder
from .chunker import StoryChunk, StoryChunker
from .codec import decode, decode_bytes, encode, encode_payload, to_script_hex
from .constants import (
    MAX_COMMENT_LENGTH,
    MAX_NICKNAME_LENGTH,
    MAX_PAYLOAD_SIZE,
    MAX_POST_LENGTH,
    MAX_SEGMENT_CONTENT_BYTES,
    MAX_SEGMENT_SIZE,
    MAX_SEGMENT_SKEW,
    MAX_STORY_SEGMENTS,
    MIN_SEGMENT_SIZE,
    PROTOCOL_EPOCH,
    PROTOCOL_VERSION,
    TransactionType,
)
from .errors import (
    ContentTooLargeError,
    EmptyContentError,
    PayloadValidationError,
    ProtocolError,
    ValidationIssue,
)
from .payload import ChainReferences, ContentPayload, ProfileBody, SegmentParams
from .validate import (
    PayloadValidator,
    is_valid_address,
    is_valid_transaction_id,
    payload_size,
    validate,
)

__all__ = [
    # Version
    "__version__",
    # Constants
    "PROTOCOL_VERSION",
    "PROTOCOL_EPOCH",
    "TransactionType",
    "MAX_PAYLOAD_SIZE",
    "MAX_POST_LENGTH",
    "MAX_COMMENT_LENGTH",
    "MAX_NICKNAME_LENGTH",
    "MAX_STORY_SEGMENTS",
    "MAX_SEGMENT_CONTENT_BYTES",
    "MAX_SEGMENT_SIZE",
    "MIN_SEGMENT_SIZE",
    "MAX_SEGMENT_SKEW",
    # Payloads
    "ContentPayload",
    "SegmentParams",
    "ChainReferences",
    "ProfileBody",
    # Codec
    "encode",
    "encode_payload",
    "decode",
    "decode_bytes",
    "to_script_hex",
    # Validation
    "PayloadValidator",
    "validate",
    "payload_size",
    "is_valid_address",
    "is_valid_transaction_id",
    # Chunking and building
    "StoryChunk",
    "StoryChunker",
    "PayloadBuilder",
    # Errors
    "ProtocolError",
    "EmptyContentError",
    "ContentTooLargeError",
    "PayloadValidationError",
    "ValidationIssue",
]
