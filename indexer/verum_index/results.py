"""
Uniform result envelopes for indexer and SDK operations.

Expected conditions (not found, incomplete chain, exhausted fetch retries)
come back as failed results instead of exceptions, so one bad transaction
never aborts a larger scan.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")
ItemT = TypeVar("ItemT")

# Error codes carried by failed results
NOT_FOUND = "NOT_FOUND"
NOT_REGISTERED = "NOT_REGISTERED"
FETCH_FAILED = "FETCH_FAILED"
INVALID_STORY = "INVALID_STORY"
VALIDATION_FAILED = "VALIDATION_FAILED"
SUBMIT_FAILED = "SUBMIT_FAILED"
WRITE_FAILED = "WRITE_FAILED"
WRITE_CANCELLED = "WRITE_CANCELLED"


@dataclass
class Pagination:
    """Page metadata.

    Attributes:
        offset: Offset of the first returned item
        limit: Requested page size
        has_more: Whether the page was full, so another may follow
        next_offset: Offset to request for the next page
    """

    offset: int
    limit: int
    has_more: bool

    @property
    def next_offset(self) -> int:
        return self.offset + self.limit


@dataclass
class Result(Generic[T]):
    """Success/data/error envelope.

    Attributes:
        success: Whether the operation succeeded
        data: Payload on success (and optionally partial data on failure)
        error: Error message on failure
        code: Machine-readable error code on failure
        pagination: Page metadata for list operations
        message: Informational note accompanying a successful result
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    code: Optional[str] = None
    pagination: Optional[Pagination] = None
    message: Optional[str] = None

    @classmethod
    def ok(
        cls,
        data: T,
        pagination: Optional[Pagination] = None,
        message: Optional[str] = None,
    ) -> Result[T]:
        return cls(success=True, data=data, pagination=pagination, message=message)

    @classmethod
    def fail(cls, error: str, code: Optional[str] = None, data: Optional[T] = None) -> Result[T]:
        return cls(success=False, data=data, error=error, code=code)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success}
        if self.data is not None:
            result["data"] = self.data
        if self.error is not None:
            result["error"] = self.error
        if self.code is not None:
            result["code"] = self.code
        if self.message is not None:
            result["message"] = self.message
        if self.pagination is not None:
            result["pagination"] = {
                "offset": self.pagination.offset,
                "limit": self.pagination.limit,
                "has_more": self.pagination.has_more,
            }
        return result


@dataclass
class BatchFailure(Generic[ItemT]):
    """One item a batch operation could not process."""

    item: ItemT
    error: str


@dataclass
class BatchResult(Generic[ItemT, T]):
    """Partial-success outcome of a batch operation.

    Attributes:
        successful: Results for items that succeeded
        failed: Items that failed, each with its error
        total_processed: Number of items attempted
    """

    successful: List[T] = field(default_factory=list)
    failed: List[BatchFailure[ItemT]] = field(default_factory=list)
    total_processed: int = 0

    @property
    def all_succeeded(self) -> bool:
        return not self.failed
