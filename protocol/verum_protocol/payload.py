"""
Payload types for the Verum protocol.

A payload is the JSON object embedded in a ledger transaction output.
Wire format (keys omitted when absent):

    {
        "verum": "0.1",
        "type": "story",
        "content": "Once upon a time...",
        "timestamp": 1730000000,
        "parent_id": "<64 hex>",
        "params": {"segment": 2, "total": 3, "is_final": false},
        "prev_tx_id": "<64 hex>",
        "last_subscribe": "<64 hex>"
    }

Invariants:
    - ContentPayload keeps ``params`` exactly as found on the wire so the
      validator can report malformed segment blocks
    - ``segment`` only returns a SegmentParams when the block is well formed
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from .constants import TransactionType


@dataclass(frozen=True)
class SegmentParams:
    """Segment block of a story payload.

    Attributes:
        segment: 1-based segment number
        total: Number of segments in the story
        is_final: Whether this is the last segment
    """

    segment: int
    total: int
    is_final: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"segment": self.segment, "total": self.total, "is_final": self.is_final}

    @classmethod
    def from_wire(cls, params: Any) -> Optional[SegmentParams]:
        """Parse a wire ``params`` block, returning None when malformed."""
        if not isinstance(params, Mapping):
            return None
        segment = params.get("segment")
        total = params.get("total")
        if not _is_int(segment) or not _is_int(total):
            return None
        return cls(segment=segment, total=total, is_final=params.get("is_final") is True)


@dataclass(frozen=True)
class ChainReferences:
    """Author chain pointers carried by non-registration payloads.

    Attributes:
        prev_tx_id: The author's previous protocol transaction
        last_subscribe: The author's latest subscription transaction
    """

    prev_tx_id: Optional[str] = None
    last_subscribe: Optional[str] = None


@dataclass(frozen=True)
class ProfileBody:
    """Profile carried as JSON text in a START payload."""

    nickname: str
    avatar: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps(
            {"nickname": self.nickname, "avatar": self.avatar},
            separators=(",", ":"),
            ensure_ascii=False,
        )

    @classmethod
    def from_content(cls, content: Optional[str]) -> Optional[ProfileBody]:
        """Parse START content, returning None when it is not a profile."""
        if not content:
            return None
        try:
            data = json.loads(content)
        except (json.JSONDecodeError, TypeError):
            return None
        if not isinstance(data, dict):
            return None
        nickname = data.get("nickname")
        if not isinstance(nickname, str):
            return None
        avatar = data.get("avatar")
        return cls(nickname=nickname, avatar=avatar if isinstance(avatar, str) else None)


@dataclass(frozen=True)
class ContentPayload:
    """A decoded protocol message.

    Attributes:
        version: Protocol version string (``verum`` on the wire)
        type: Operation kind
        content: Text content, or None (likes)
        timestamp: Unix seconds claimed by the author
        parent_id: Referenced transaction (comment/like target, previous segment)
        params: Raw segment block as found on the wire
        prev_tx_id: Author's previous transaction
        last_subscribe: Author's latest subscription transaction
    """

    version: str
    type: TransactionType
    content: Optional[str]
    timestamp: Any
    parent_id: Optional[str] = None
    params: Any = None
    prev_tx_id: Optional[str] = None
    last_subscribe: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def segment(self) -> Optional[SegmentParams]:
        """Parsed segment block, or None if absent or malformed."""
        return SegmentParams.from_wire(self.params)

    @property
    def is_first_segment(self) -> bool:
        seg = self.segment
        return self.type == TransactionType.STORY and seg is not None and seg.segment == 1

    @property
    def chain(self) -> ChainReferences:
        return ChainReferences(prev_tx_id=self.prev_tx_id, last_subscribe=self.last_subscribe)

    def to_wire(self) -> Dict[str, Any]:
        """Build the wire dictionary, dropping absent optional keys."""
        wire: Dict[str, Any] = {
            "verum": self.version,
            "type": self.type.value,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.parent_id is not None:
            wire["parent_id"] = self.parent_id
        if self.params is not None:
            wire["params"] = dict(self.params) if isinstance(self.params, Mapping) else self.params
        if self.prev_tx_id is not None:
            wire["prev_tx_id"] = self.prev_tx_id
        if self.last_subscribe is not None:
            wire["last_subscribe"] = self.last_subscribe
        return wire

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> Optional[ContentPayload]:
        """Build a payload from a wire dictionary.

        Returns None when the object is not a protocol message (missing
        version, unknown type, or wrongly typed reference fields).
        """
        version = data.get("verum")
        kind = TransactionType.parse(data.get("type"))
        if not isinstance(version, str) or kind is None:
            return None

        content = data.get("content")
        if content is not None and not isinstance(content, str):
            return None

        refs = {}
        for key in ("parent_id", "prev_tx_id", "last_subscribe"):
            value = data.get(key)
            if value is not None and not isinstance(value, str):
                return None
            refs[key] = value

        params = data.get("params")
        known = {"verum", "type", "content", "timestamp", "params", *refs}
        return cls(
            version=version,
            type=kind,
            content=content,
            timestamp=data.get("timestamp"),
            params=dict(params) if isinstance(params, Mapping) else params,
            extra={k: v for k, v in data.items() if k not in known},
            **refs,
        )


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
