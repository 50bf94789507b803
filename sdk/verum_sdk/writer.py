"""
Resumable segmented story writer.

A story is split once, up front, and published as a chain of segment
transactions. Segment i+1 names segment i's transaction id as its
``parent_id``, so segments go out strictly one after another.

State machine per write:

    creating -> (segment fails -> retrying -> creating) -> completed
    creating -> failed (resumable: retries exhausted or the run was interrupted)
    any non-terminal state -> cancelled (terminal)

Invariants:
    - Segments are never re-split; resume continues from the first
      unpublished segment using the recorded transaction ids
    - At most one run is active per write; concurrent create calls for
      the same author and text coalesce onto it
    - Cancellation stops further attempts; published segments stay
      published because the ledger has no retraction
    - A completed write's record is kept for inspection

How to change safely:
    - The write id is derived from (author, normalized text); changing the
      normalization changes which calls coalesce
    - Keep event publication in state-machine order
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from verum_index.config import WriterConfig
from verum_index.ledger.base import LedgerError
from verum_index.results import (
    NOT_FOUND,
    VALIDATION_FAILED,
    WRITE_CANCELLED,
    WRITE_FAILED,
    Result,
)
from verum_protocol import (
    ChainReferences,
    PayloadBuilder,
    PayloadValidationError,
    PayloadValidator,
    ProtocolError,
    StoryChunk,
    encode,
)

from .errors import SubmitError, WriteCancelledError, WriteFailedError
from .events import EventChannel, ProgressEvent, ProgressEventType
from .submit import LedgerSubmitter

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

# Stands in for parents not yet published when checking segment payloads
PLACEHOLDER_TX_ID = "0" * 64


class WriteStatus(str, Enum):
    CREATING = "creating"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class StoryWrite:
    """Progress record of one segmented write.

    Attributes:
        write_id: Stable id derived from author and text
        author: Sender address
        chunks: Segments as split at creation
        chain: Author references placed on segment 1
        status: Current state
        published: Transaction ids of published segments, in order
        failed_segment: Zero-based index of the segment that exhausted its
            retries, while the write is failed
        attempts: Attempts made on the current segment
        errors: Failure messages, oldest first
        resumable: Whether ``resume`` may continue the write
        created_at: Creation time (unix seconds)
        updated_at: Last state change (unix seconds)
    """

    write_id: str
    author: str
    chunks: List[StoryChunk]
    chain: ChainReferences
    status: WriteStatus = WriteStatus.CREATING
    published: List[str] = field(default_factory=list)
    failed_segment: Optional[int] = None
    attempts: int = 0
    errors: List[str] = field(default_factory=list)
    resumable: bool = True
    created_at: float = 0.0
    updated_at: float = 0.0

    @property
    def total_segments(self) -> int:
        return len(self.chunks)

    @property
    def completed_segments(self) -> int:
        return len(self.published)

    @property
    def first_tx_id(self) -> Optional[str]:
        """Canonical story id once segment 1 is published."""
        return self.published[0] if self.published else None

    @property
    def is_active(self) -> bool:
        return self.status in (WriteStatus.CREATING, WriteStatus.RETRYING)

    def snapshot(self) -> StoryWrite:
        return replace(
            self,
            chunks=list(self.chunks),
            published=list(self.published),
            errors=list(self.errors),
        )


def content_fingerprint(author: str, content: str) -> str:
    """SHA-256 of author and whitespace-normalized text."""
    normalized = " ".join(content.split())
    return hashlib.sha256(f"{author}\n{normalized}".encode("utf-8")).hexdigest()


class StoryWriter:
    """Publishes long text as a chain of story segments.

    Example:
        >>> writer = StoryWriter(ledger)
        >>> result = await writer.write("kaspa:qq...", long_text, chain)
        >>> if not result.success and result.data.resumable:
        ...     result = await writer.resume(result.data.write_id)
        >>> result.data.first_tx_id
    """

    def __init__(
        self,
        submitter: LedgerSubmitter,
        builder: Optional[PayloadBuilder] = None,
        config: Optional[WriterConfig] = None,
        validator: Optional[PayloadValidator] = None,
        events: Optional[EventChannel] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the writer.

        Args:
            submitter: Ledger submit backend
            builder: Payload builder; its chunker decides segmentation
            config: Segment delay and per-segment retry policy
            validator: Validator applied to every segment before submission
            events: Channel receiving progress events
            sleep: Async sleep used for retry and inter-segment delays
            clock: Wall clock for progress timestamps
        """
        self.submitter = submitter
        self.builder = builder or PayloadBuilder(clock=clock)
        self.config = config or WriterConfig()
        self.retry = self.config.retry.to_policy()
        self.validator = validator or PayloadValidator(clock=clock)
        self.events = events or EventChannel()
        self._sleep = sleep
        self._clock = clock

        self._writes: Dict[str, StoryWrite] = {}
        self._runs: Dict[str, asyncio.Task] = {}

    # =========================================================================
    # Public API
    # =========================================================================

    async def write(
        self,
        author: str,
        content: str,
        chain: ChainReferences = ChainReferences(),
    ) -> Result[StoryWrite]:
        """Publish a story, or join the open write for the same author and text.

        An in-progress write with the same fingerprint is awaited rather
        than duplicated; an unfinished one that is not running (failed, or
        interrupted mid-run) is resumed.

        Every segment payload is validated before segment 1 is submitted,
        so a story that cannot be published leaves nothing on the ledger.

        Returns:
            The completed write, or a failure carrying the progress record
            (WRITE_FAILED, WRITE_CANCELLED, VALIDATION_FAILED)
        """
        write_id = content_fingerprint(author, content)
        existing = self._writes.get(write_id)
        if existing is not None:
            if write_id in self._runs:
                logger.info(f"Joining in-progress write {write_id[:12]}", extra={"write_id": write_id})
                return await asyncio.shield(self._runs[write_id])
            if existing.resumable:
                return await self.resume(write_id)

        chain_issues = self.validator.validate_chain_references(chain.prev_tx_id, chain.last_subscribe)
        if chain_issues:
            return Result.fail(
                "; ".join(issue.message for issue in chain_issues), code=VALIDATION_FAILED
            )
        try:
            chunks = self.builder.chunker.split(content)
        except ProtocolError as e:
            return Result.fail(e.message, code=VALIDATION_FAILED)
        problem = self._check_segments(chunks, chain)
        if problem is not None:
            return Result.fail(problem, code=VALIDATION_FAILED)

        now = self._clock()
        record = StoryWrite(
            write_id=write_id,
            author=author,
            chunks=chunks,
            chain=chain,
            created_at=now,
            updated_at=now,
        )
        self._writes[write_id] = record
        logger.info(
            f"Starting story write with {record.total_segments} segments",
            extra={"write_id": write_id, "author": author, "segments": record.total_segments},
        )
        self._publish(ProgressEventType.STARTED, record)
        return await self._start(record)

    async def resume(self, write_id: str) -> Result[StoryWrite]:
        """Continue a failed write from its first unpublished segment."""
        record = self._writes.get(write_id)
        if record is None:
            return Result.fail(f"No write with id {write_id}", code=NOT_FOUND)
        if write_id in self._runs:
            return await asyncio.shield(self._runs[write_id])
        if record.status == WriteStatus.COMPLETED:
            return Result.fail("Story write already completed", code=WRITE_FAILED, data=record.snapshot())
        if record.status == WriteStatus.CANCELLED:
            return Result.fail("Story write was cancelled", code=WRITE_CANCELLED, data=record.snapshot())
        if not record.resumable:
            return Result.fail("Story write cannot be resumed", code=WRITE_FAILED, data=record.snapshot())

        logger.info(
            f"Resuming story write at segment {record.completed_segments + 1}/{record.total_segments}",
            extra={"write_id": write_id, "published": record.completed_segments},
        )
        self._set_status(record, WriteStatus.CREATING)
        record.failed_segment = None
        self._publish(ProgressEventType.RESUMED, record)
        return await self._start(record)

    def cancel(self, write_id: str) -> bool:
        """Stop a write. Returns False if it is unknown or already finished."""
        record = self._writes.get(write_id)
        if record is None or record.status in (WriteStatus.COMPLETED, WriteStatus.CANCELLED):
            return False
        self._set_status(record, WriteStatus.CANCELLED)
        record.resumable = False
        logger.info(
            f"Cancelled story write after {record.completed_segments} published segments",
            extra={"write_id": write_id, "published": record.completed_segments},
        )
        self._publish(ProgressEventType.CANCELLED, record)
        return True

    def get_progress(self, write_id: str) -> Optional[StoryWrite]:
        record = self._writes.get(write_id)
        return record.snapshot() if record is not None else None

    def active_writes(self) -> List[StoryWrite]:
        """Writes currently publishing."""
        return [w.snapshot() for w in self._writes.values() if w.is_active]

    def resumable_writes(self) -> List[StoryWrite]:
        return [
            w.snapshot()
            for w in self._writes.values()
            if w.status == WriteStatus.FAILED and w.resumable
        ]

    # =========================================================================
    # Execution
    # =========================================================================

    async def _start(self, record: StoryWrite) -> Result[StoryWrite]:
        task = asyncio.ensure_future(self._execute(record))
        self._runs[record.write_id] = task
        task.add_done_callback(lambda _: self._runs.pop(record.write_id, None))
        return await asyncio.shield(task)

    async def _execute(self, record: StoryWrite) -> Result[StoryWrite]:
        try:
            await self._publish_remaining(record)
        except WriteCancelledError as e:
            return Result.fail(e.message, code=WRITE_CANCELLED, data=record.snapshot())
        except WriteFailedError as e:
            return Result.fail(e.message, code=WRITE_FAILED, data=record.snapshot())
        except PayloadValidationError as e:
            record.resumable = False
            record.errors.append(e.message)
            self._set_status(record, WriteStatus.FAILED)
            self._publish(ProgressEventType.FAILED, record, error=e.message)
            return Result.fail(e.message, code=VALIDATION_FAILED, data=record.snapshot())
        except asyncio.CancelledError:
            self._interrupt(record, "run cancelled")
            raise
        except Exception as e:
            logger.exception(
                f"Unexpected error publishing segment {record.completed_segments + 1}",
                extra={"write_id": record.write_id, "segment": record.completed_segments + 1},
            )
            self._interrupt(record, f"{type(e).__name__}: {e}")
            if record.status == WriteStatus.CANCELLED:
                return Result.fail(
                    f"Write {record.write_id} was cancelled", code=WRITE_CANCELLED, data=record.snapshot()
                )
            return Result.fail(
                f"Segment {record.failed_segment + 1} failed: {e}", code=WRITE_FAILED, data=record.snapshot()
            )

        if record.status == WriteStatus.CANCELLED:
            return Result.fail(
                f"Write {record.write_id} was cancelled", code=WRITE_CANCELLED, data=record.snapshot()
            )
        self._set_status(record, WriteStatus.COMPLETED)
        record.resumable = False
        logger.info(
            f"Story write completed as {record.first_tx_id}",
            extra={"write_id": record.write_id, "first_tx_id": record.first_tx_id},
        )
        self._publish(ProgressEventType.COMPLETED, record, tx_id=record.first_tx_id)
        return Result.ok(record.snapshot())

    async def _publish_remaining(self, record: StoryWrite) -> None:
        """Submit every unpublished segment in order.

        Raises:
            WriteFailedError: If a segment exhausts its retries
            WriteCancelledError: If the write is cancelled between attempts
            PayloadValidationError: If a segment payload breaks protocol rules
        """
        for index in range(record.completed_segments, record.total_segments):
            self._ensure_not_cancelled(record)
            record.attempts = 0
            tx_id = await self._submit_segment(record, index)

            record.published.append(tx_id)
            self._set_status(record, WriteStatus.CREATING)
            logger.info(
                f"Published segment {index + 1}/{record.total_segments}",
                extra={"write_id": record.write_id, "segment": index + 1, "tx_id": tx_id},
            )
            self._publish(ProgressEventType.SEGMENT_COMPLETED, record, segment_index=index, tx_id=tx_id)

            if index < record.total_segments - 1:
                await self._sleep(self.config.segment_delay_seconds)

    async def _submit_segment(self, record: StoryWrite, index: int) -> str:
        chunk = record.chunks[index]
        parent_id = record.published[index - 1] if index > 0 else None

        async def attempt() -> str:
            self._ensure_not_cancelled(record)
            record.attempts += 1
            payload = self.builder.story_segment(chunk, record.chain, parent_id=parent_id)
            return await self.submitter.submit(encode(payload, self.validator), record.author)

        async def on_retry(attempt_number: int, error: BaseException, delay: float) -> None:
            record.errors.append(f"Segment {index + 1} attempt {attempt_number}: {error}")
            self._set_status(record, WriteStatus.RETRYING)
            self._publish(
                ProgressEventType.RETRYING,
                record,
                segment_index=index,
                attempt=attempt_number,
                delay=delay,
                error=str(error),
            )

        try:
            return await self.retry.run(
                attempt,
                retry_on=(SubmitError, LedgerError),
                sleep=self._sleep,
                on_retry=on_retry,
            )
        except (SubmitError, LedgerError) as e:
            record.errors.append(f"Segment {index + 1} attempt {record.attempts}: {e}")
            record.failed_segment = index
            record.resumable = True
            self._set_status(record, WriteStatus.FAILED)
            logger.warning(
                f"Segment {index + 1}/{record.total_segments} exhausted retries: {e}",
                extra={"write_id": record.write_id, "segment": index + 1, "attempts": record.attempts},
            )
            self._publish(
                ProgressEventType.FAILED,
                record,
                segment_index=index,
                attempt=record.attempts,
                error=str(e),
            )
            raise WriteFailedError(record.write_id, index, record.attempts, str(e)) from e

    # =========================================================================
    # Helpers
    # =========================================================================

    def _check_segments(self, chunks: List[StoryChunk], chain: ChainReferences) -> Optional[str]:
        """First validation problem among the segment payloads, if any.

        Parents are unknown until each predecessor is published, so later
        segments are checked against a placeholder id of the same size.
        """
        for chunk in chunks:
            parent_id = PLACEHOLDER_TX_ID if chunk.segment > 1 else None
            payload = self.builder.story_segment(chunk, chain, parent_id=parent_id)
            issues = self.validator.validate(payload)
            if issues:
                details = "; ".join(f"{issue.field}: {issue.message}" for issue in issues)
                return f"Segment {chunk.segment}/{chunk.total} is invalid: {details}"
        return None

    def _interrupt(self, record: StoryWrite, reason: str) -> None:
        """Leave a write that stopped unexpectedly failed and resumable."""
        index = record.completed_segments
        record.errors.append(f"Segment {index + 1} attempt {record.attempts}: {reason}")
        if record.status == WriteStatus.CANCELLED:
            return
        record.failed_segment = index
        record.resumable = True
        self._set_status(record, WriteStatus.FAILED)
        self._publish(
            ProgressEventType.FAILED,
            record,
            segment_index=index,
            attempt=record.attempts,
            error=reason,
        )

    def _ensure_not_cancelled(self, record: StoryWrite) -> None:
        if record.status == WriteStatus.CANCELLED:
            raise WriteCancelledError(record.write_id)

    def _set_status(self, record: StoryWrite, status: WriteStatus) -> None:
        if record.status == WriteStatus.CANCELLED:
            return
        record.status = status
        record.updated_at = self._clock()

    def _publish(
        self,
        kind: ProgressEventType,
        record: StoryWrite,
        segment_index: Optional[int] = None,
        tx_id: Optional[str] = None,
        attempt: Optional[int] = None,
        delay: Optional[float] = None,
        error: Optional[str] = None,
    ) -> None:
        self.events.publish(
            ProgressEvent(
                type=kind,
                write_id=record.write_id,
                total_segments=record.total_segments,
                completed_segments=record.completed_segments,
                segment_index=segment_index,
                tx_id=tx_id,
                attempt=attempt,
                delay=delay,
                error=error,
                timestamp=self._clock(),
            )
        )
