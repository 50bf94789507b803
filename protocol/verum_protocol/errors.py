"""
Error types for the Verum protocol package.

- ProtocolError: Base exception
- EmptyContentError: Text to encode or split is empty
- ContentTooLargeError: Text needs more segments than allowed
- PayloadValidationError: Strict encoding refused an invalid payload

Validation itself never raises; ``validate()`` returns a list of
ValidationIssue. These exceptions are only raised by callers that asked
for strict behaviour, or for misuse of the API.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class ValidationIssue:
    """One validation problem.

    Attributes:
        field: Dotted path of the offending field (e.g. ``params.segment``)
        code: Stable machine-readable code (e.g. ``CONTENT_TOO_LONG``)
        message: Human readable explanation
    """

    field: str
    code: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "code": self.code, "message": self.message}


class ProtocolError(Exception):
    """Base exception for protocol errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "PROTOCOL_ERROR"
        self.details = details or {}


class EmptyContentError(ProtocolError):
    """Content is empty or whitespace only."""

    def __init__(self, message: str = "Content cannot be empty") -> None:
        super().__init__(message, code="EMPTY_CONTENT")


class ContentTooLargeError(ProtocolError):
    """Content would need more story segments than the protocol allows."""

    def __init__(self, max_segments: int, length: int) -> None:
        super().__init__(
            f"Content too large - would require more than {max_segments} segments",
            code="CONTENT_TOO_LARGE",
            details={"max_segments": max_segments, "length": length},
        )
        self.max_segments = max_segments
        self.length = length


class PayloadValidationError(ProtocolError):
    """A payload failed validation during strict encoding."""

    def __init__(self, issues: List[ValidationIssue]) -> None:
        summary = "; ".join(f"{i.field}: {i.message}" for i in issues)
        super().__init__(
            f"Invalid payload: {summary}",
            code="VALIDATION_ERROR",
            details={"issues": [i.to_dict() for i in issues]},
        )
        self.issues = issues
