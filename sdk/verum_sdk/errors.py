"""
Error types for the Verum SDK.

This module defines the exceptions raised on the write side:
- VerumSdkError: Base exception
- SubmitError: A submit adapter could not publish a payload
- WriteFailedError: A segment exhausted its retries
- WriteCancelledError: A write was cancelled

Invariants:
    - All errors inherit from VerumSdkError
    - A failed write records the segment index it stopped at
    - Submit adapters raise SubmitError (or a LedgerError) for transient
      failures; both trigger a retry
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class VerumSdkError(Exception):
    """Base exception for all Verum SDK errors.

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
        self.code = code or "VERUM_SDK_ERROR"
        self.details = details or {}


class SubmitError(VerumSdkError):
    """A payload could not be published to the ledger."""

    def __init__(self, message: str, sender: Optional[str] = None) -> None:
        super().__init__(message, code="SUBMIT_FAILED", details={"sender": sender})
        self.sender = sender


class WriteFailedError(VerumSdkError):
    """A segmented write stopped at a segment that exhausted its retries.

    Attributes:
        write_id: Progress record id
        segment_index: Zero-based index of the failed segment
        attempts: Attempts made for that segment
        resumable: Whether ``resume`` can continue the write
    """

    def __init__(
        self,
        write_id: str,
        segment_index: int,
        attempts: int,
        reason: str,
        resumable: bool = True,
    ) -> None:
        super().__init__(
            f"Segment {segment_index + 1} failed after {attempts} attempts: {reason}",
            code="WRITE_FAILED",
            details={
                "write_id": write_id,
                "segment_index": segment_index,
                "attempts": attempts,
                "resumable": resumable,
            },
        )
        self.write_id = write_id
        self.segment_index = segment_index
        self.attempts = attempts
        self.resumable = resumable


class WriteCancelledError(VerumSdkError):
    """A write was cancelled; published segments stay published."""

    def __init__(self, write_id: str) -> None:
        super().__init__(
            f"Write {write_id} was cancelled",
            code="WRITE_CANCELLED",
            details={"write_id": write_id},
        )
        self.write_id = write_id
