"""
Payload validation for the Verum protocol.

This module checks a payload against the protocol rules:
- Common fields (version, type, timestamp window, encoded size)
- Per-kind rules (profile body, text limits, segment block, targets)
- Chain reference format

Invariants:
    - Validation is pure and never raises; it returns a list of issues
    - An empty list means the payload is valid
    - Issue codes are stable and safe to match on programmatically
"""

from __future__ import annotations

import json
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from .constants import (
    ADDRESS_PATTERN,
    MAX_COMMENT_LENGTH,
    MAX_FUTURE_DRIFT,
    MAX_NICKNAME_LENGTH,
    MAX_PAYLOAD_SIZE,
    MAX_POST_LENGTH,
    PROTOCOL_EPOCH,
    TRANSACTION_ID_PATTERN,
    TransactionType,
)
from .errors import ValidationIssue
from .payload import ContentPayload

PayloadLike = Union[ContentPayload, Mapping[str, Any]]


def is_valid_transaction_id(value: Any) -> bool:
    """Whether value is 64 lowercase hex characters."""
    return isinstance(value, str) and TRANSACTION_ID_PATTERN.match(value) is not None


def is_valid_address(value: Any) -> bool:
    """Whether value matches the ledger address grammar."""
    return isinstance(value, str) and ADDRESS_PATTERN.match(value) is not None


def payload_size(payload: PayloadLike) -> int:
    """Size of the compact JSON encoding in UTF-8 bytes."""
    wire = payload.to_wire() if isinstance(payload, ContentPayload) else dict(payload)
    return len(json.dumps(wire, separators=(",", ":"), ensure_ascii=False).encode("utf-8"))


class PayloadValidator:
    """Validates payloads against protocol rules.

    Example:
        >>> issues = PayloadValidator().validate(payload)
        >>> if issues:
        ...     print([i.code for i in issues])
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        """Initialize the validator.

        Args:
            clock: Returns the current unix time; injected for tests
        """
        self._clock = clock

    def validate(self, payload: PayloadLike) -> List[ValidationIssue]:
        """Validate a complete payload.

        Args:
            payload: A ContentPayload or a raw wire dictionary

        Returns:
            List of issues, empty when the payload is valid
        """
        wire = payload.to_wire() if isinstance(payload, ContentPayload) else payload
        if not isinstance(wire, Mapping):
            return [ValidationIssue("payload", "INVALID_PAYLOAD", "Payload must be an object")]

        issues: List[ValidationIssue] = []

        if not wire.get("verum") or not isinstance(wire.get("verum"), str):
            issues.append(ValidationIssue("verum", "MISSING_VERSION", "Protocol version is required"))

        raw_type = wire.get("type")
        kind = TransactionType.parse(raw_type)
        if not raw_type:
            issues.append(ValidationIssue("type", "MISSING_TYPE", "Transaction type is required"))
        elif kind is None:
            issues.append(
                ValidationIssue("type", "INVALID_TYPE", f"Invalid transaction type: {raw_type}")
            )

        issues.extend(self._check_timestamp(wire.get("timestamp")))

        try:
            size = payload_size(wire)
        except (TypeError, ValueError):
            issues.append(ValidationIssue("payload", "INVALID_PAYLOAD", "Payload is not JSON serializable"))
        else:
            if size > MAX_PAYLOAD_SIZE:
                issues.append(
                    ValidationIssue(
                        "payload",
                        "PAYLOAD_TOO_LARGE",
                        f"Payload too large: {size} bytes (max {MAX_PAYLOAD_SIZE})",
                    )
                )

        if kind is not None:
            issues.extend(self._check_kind(kind, wire))

        return issues

    def is_valid(self, payload: PayloadLike) -> bool:
        return not self.validate(payload)

    def validate_chain_references(
        self,
        prev_tx_id: Optional[str] = None,
        last_subscribe: Optional[str] = None,
    ) -> List[ValidationIssue]:
        """Validate the format of author chain references."""
        issues: List[ValidationIssue] = []
        if prev_tx_id and not is_valid_transaction_id(prev_tx_id):
            issues.append(
                ValidationIssue("prev_tx_id", "INVALID_PREV_TX_ID", "Invalid previous transaction ID format")
            )
        if last_subscribe and not is_valid_transaction_id(last_subscribe):
            issues.append(
                ValidationIssue("last_subscribe", "INVALID_SUBSCRIBE_ID", "Invalid last subscribe ID format")
            )
        return issues

    def _check_timestamp(self, timestamp: Any) -> List[ValidationIssue]:
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            return [
                ValidationIssue(
                    "timestamp", "INVALID_TIMESTAMP", "Timestamp is required and must be a number"
                )
            ]
        if timestamp < PROTOCOL_EPOCH:
            return [
                ValidationIssue(
                    "timestamp",
                    "TIMESTAMP_TOO_OLD",
                    "Timestamp cannot be before protocol creation date",
                )
            ]
        if timestamp > int(self._clock()) + MAX_FUTURE_DRIFT:
            return [
                ValidationIssue(
                    "timestamp",
                    "TIMESTAMP_FUTURE",
                    "Timestamp cannot be more than 5 minutes in the future",
                )
            ]
        return []

    def _check_kind(self, kind: TransactionType, wire: Mapping[str, Any]) -> List[ValidationIssue]:
        if kind == TransactionType.START:
            return self._check_start(wire)

        issues = self.validate_chain_references(wire.get("prev_tx_id"), wire.get("last_subscribe"))
        if kind == TransactionType.POST:
            issues.extend(_check_text(wire.get("content"), MAX_POST_LENGTH, "Post"))
        elif kind == TransactionType.STORY:
            issues.extend(self._check_story(wire))
        elif kind in (TransactionType.SUBSCRIBE, TransactionType.UNSUBSCRIBE):
            issues.extend(self._check_subscription(wire))
        elif kind == TransactionType.LIKE:
            if wire.get("content") is not None:
                issues.append(
                    ValidationIssue("content", "INVALID_CONTENT", "Like transaction should have null content")
                )
            issues.extend(_check_parent(wire.get("parent_id")))
        elif kind == TransactionType.COMMENT:
            issues.extend(_check_text(wire.get("content"), MAX_COMMENT_LENGTH, "Comment"))
            issues.extend(_check_parent(wire.get("parent_id")))
        return issues

    def _check_start(self, wire: Mapping[str, Any]) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []

        if wire.get("prev_tx_id") or wire.get("last_subscribe") or wire.get("parent_id"):
            issues.append(
                ValidationIssue(
                    "chain_references",
                    "INVALID_CHAIN_REFS",
                    "START transaction should not have chain references",
                )
            )

        content = wire.get("content")
        if not content or not isinstance(content, str):
            issues.append(ValidationIssue("content", "MISSING_PROFILE", "User profile data is required"))
            return issues

        try:
            profile = json.loads(content)
        except json.JSONDecodeError:
            issues.append(ValidationIssue("content", "INVALID_JSON", "Invalid JSON in user profile"))
            return issues
        if not isinstance(profile, dict):
            issues.append(ValidationIssue("content", "INVALID_JSON", "User profile must be a JSON object"))
            return issues

        nickname = profile.get("nickname")
        if not isinstance(nickname, str) or not nickname.strip():
            issues.append(ValidationIssue("content.nickname", "MISSING_NICKNAME", "Nickname is required"))
        elif len(nickname.strip()) > MAX_NICKNAME_LENGTH:
            issues.append(
                ValidationIssue(
                    "content.nickname",
                    "NICKNAME_TOO_LONG",
                    f"Nickname too long (max {MAX_NICKNAME_LENGTH} characters)",
                )
            )

        avatar = profile.get("avatar")
        if avatar is not None and not isinstance(avatar, str):
            issues.append(ValidationIssue("content.avatar", "INVALID_AVATAR", "Avatar must be a base64 string"))

        return issues

    def _check_story(self, wire: Mapping[str, Any]) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []

        content = wire.get("content")
        if not content or not isinstance(content, str):
            issues.append(ValidationIssue("content", "MISSING_CONTENT", "Story content is required"))

        params = wire.get("params")
        if not isinstance(params, Mapping):
            issues.append(ValidationIssue("params", "MISSING_PARAMS", "Story parameters are required"))
            return issues

        segment = params.get("segment")
        total = params.get("total")
        segment_ok = _is_number(segment) and segment >= 1
        total_ok = _is_number(total) and total >= 1

        if not segment_ok:
            issues.append(ValidationIssue("params.segment", "INVALID_SEGMENT", "Valid segment number is required"))
        if not total_ok:
            issues.append(ValidationIssue("params.total", "INVALID_TOTAL", "Valid total segments is required"))
        if not isinstance(params.get("is_final"), bool):
            issues.append(ValidationIssue("params.is_final", "MISSING_FINAL_FLAG", "is_final flag is required"))
        if segment_ok and total_ok and segment > total:
            issues.append(
                ValidationIssue(
                    "params", "INVALID_SEGMENT_RANGE", "Segment number cannot exceed total segments"
                )
            )

        parent_id = wire.get("parent_id")
        if segment_ok and segment > 1:
            if not parent_id:
                issues.append(
                    ValidationIssue("parent_id", "MISSING_PARENT_ID", "parent_id is required for non-first segments")
                )
            elif not is_valid_transaction_id(parent_id):
                issues.append(ValidationIssue("parent_id", "INVALID_PARENT_ID", "Invalid transaction ID format"))

        return issues

    def _check_subscription(self, wire: Mapping[str, Any]) -> List[ValidationIssue]:
        content = wire.get("content")
        if not content or not isinstance(content, str):
            return [ValidationIssue("content", "MISSING_ADDRESS", "Target address is required")]
        if not is_valid_address(content):
            return [ValidationIssue("content", "INVALID_ADDRESS", "Invalid Kaspa address format")]
        return []


def _check_text(content: Any, limit: int, label: str) -> List[ValidationIssue]:
    if not content or not isinstance(content, str):
        return [ValidationIssue("content", "MISSING_CONTENT", f"{label} content is required")]
    if not content.strip():
        return [ValidationIssue("content", "EMPTY_CONTENT", f"{label} content cannot be empty")]
    if len(content) > limit:
        return [
            ValidationIssue("content", "CONTENT_TOO_LONG", f"{label} too long (max {limit} characters)")
        ]
    return []


def _check_parent(parent_id: Any) -> List[ValidationIssue]:
    if not parent_id:
        return [ValidationIssue("parent_id", "MISSING_PARENT_ID", "parent_id (post ID) is required")]
    if not is_valid_transaction_id(parent_id):
        return [ValidationIssue("parent_id", "INVALID_PARENT_ID", "Invalid transaction ID format")]
    return []


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


_default_validator = PayloadValidator()


def validate(payload: PayloadLike) -> List[ValidationIssue]:
    """Validate with the default (wall clock) validator."""
    return _default_validator.validate(payload)


def issues_by_field(issues: List[ValidationIssue]) -> Dict[str, List[str]]:
    """Group issue codes by field, for error reporting."""
    grouped: Dict[str, List[str]] = {}
    for issue in issues:
        grouped.setdefault(issue.field, []).append(issue.code)
    return grouped
