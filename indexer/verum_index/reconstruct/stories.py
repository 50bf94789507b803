"""
Story reconstruction from chained segment transactions.

A story is keyed by its first segment's transaction id. Later segments
are found in the author's history and accepted strictly in segment order:
segment N is accepted only if its ``parent_id`` equals the id of the
already accepted segment N-1. A candidate whose timestamp runs more than
MAX_SEGMENT_SKEW seconds behind its predecessor is treated as forged.

Completeness:
    - the number of accepted segments equals the declared total
    - segment numbers are exactly 1..total
    - the segment numbered ``total`` is marked final

Invariants:
    - Reconstruction never raises for broken chains; it reports an
      incomplete story with the problems found
    - Story content is the accepted segments' contents joined in order,
      then stripped
    - Incomplete stories are cached for a shorter TTL than complete ones
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from verum_protocol import MAX_SEGMENT_SKEW, MAX_STORY_SEGMENTS, TransactionType

from ..cache import TtlCache
from ..ledger.base import LedgerError, TransactionNotFoundError
from ..results import (
    FETCH_FAILED,
    INVALID_STORY,
    NOT_FOUND,
    BatchFailure,
    BatchResult,
    Result,
)
from .transactions import ChainReader, ProtocolTransaction

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 100
WORDS_PER_MINUTE = 200

# Incomplete stories are rechecked sooner than complete ones
INCOMPLETE_STORY_TTL = 10.0


@dataclass(frozen=True)
class StorySegment:
    """One accepted segment.

    Attributes:
        tx_id: Segment transaction
        segment: 1-based position
        total: Declared segment count
        content: Segment text
        timestamp: Unix seconds
        is_final: Final flag as published
        parent_id: Previous segment's transaction (None for segment 1)
    """

    tx_id: str
    segment: int
    total: int
    content: str
    timestamp: int
    is_final: bool
    parent_id: Optional[str] = None

    @classmethod
    def from_transaction(cls, tx: ProtocolTransaction) -> Optional[StorySegment]:
        params = tx.payload.segment
        if tx.kind != TransactionType.STORY or params is None:
            return None
        return cls(
            tx_id=tx.tx_id,
            segment=params.segment,
            total=params.total,
            content=tx.payload.content or "",
            timestamp=tx.timestamp,
            is_final=params.is_final,
            parent_id=tx.payload.parent_id,
        )


@dataclass
class Story:
    """A reconstructed story.

    Attributes:
        first_tx_id: Canonical id (first segment's transaction)
        author: Author address
        title: First line of segment 1 when it looks like a title
        content: Joined segment contents
        segments: Accepted segments in order
        total_segments: Declared segment count
        timestamp: First segment's time
        is_complete: Whether every segment is present and linked
        issues: Chain problems found during reconstruction
        like_count: Likes on the first segment
        comment_count: Comments on the first segment
        is_liked_by_viewer: Whether the viewer liked it, when a viewer is known
    """

    first_tx_id: str
    author: Optional[str]
    title: Optional[str]
    content: str
    segments: List[StorySegment]
    total_segments: int
    timestamp: int
    is_complete: bool
    issues: List[str] = field(default_factory=list)
    like_count: int = 0
    comment_count: int = 0
    is_liked_by_viewer: Optional[bool] = None

    @property
    def missing_segments(self) -> List[int]:
        present = {s.segment for s in self.segments}
        upper = min(self.total_segments, MAX_STORY_SEGMENTS)
        return [n for n in range(1, upper + 1) if n not in present]


@dataclass(frozen=True)
class StoryStats:
    """Derived reading statistics for a story."""

    segment_count: int
    total_length: int
    average_segment_length: float
    creation_span_seconds: int
    reading_time_minutes: int


@dataclass(frozen=True)
class ChainValidation:
    """Outcome of checking a segment chain."""

    is_valid: bool
    is_complete: bool
    issues: List[str]


def validate_segment_chain(segments: Sequence[StorySegment]) -> ChainValidation:
    """Check an ordered segment list for integrity and completeness.

    Integrity covers numbering (1..n, no duplicates), a consistent total,
    parent links to the immediately preceding segment, and bounded
    timestamp skew. Completeness additionally requires all ``total``
    segments with the last one final.
    """
    if not segments:
        return ChainValidation(is_valid=False, is_complete=False, issues=["no segments"])

    ordered = sorted(segments, key=lambda s: s.segment)
    total = ordered[0].total
    issues: List[str] = []

    for index, seg in enumerate(ordered):
        expected = index + 1
        if seg.segment != expected:
            issues.append(f"segment {expected} missing or duplicated (found {seg.segment})")
            break
        if seg.total != total:
            issues.append(f"segment {seg.segment} declares total {seg.total}, expected {total}")
        if index == 0:
            continue
        previous = ordered[index - 1]
        if seg.parent_id != previous.tx_id:
            issues.append(f"segment {seg.segment} does not link to segment {previous.segment}")
        if seg.timestamp < previous.timestamp - MAX_SEGMENT_SKEW:
            issues.append(f"segment {seg.segment} predates segment {previous.segment} beyond allowed skew")

    last = ordered[-1]
    if last.segment == last.total and not last.is_final:
        issues.append(f"segment {last.segment} is last but not marked final")

    is_valid = not issues
    is_complete = is_valid and len(ordered) == total and last.segment == total and last.is_final
    return ChainValidation(is_valid=is_valid, is_complete=is_complete, issues=issues)


def extract_title(first_segment: str) -> Optional[str]:
    """First line of the opening segment when it reads like a title."""
    first_line = first_segment.split("\n", 1)[0].strip()
    if first_line.endswith(":") and len(first_line) < MAX_TITLE_LENGTH:
        return first_line[:-1].strip() or None
    return None


def assemble_story(
    first: ProtocolTransaction, candidates: Iterable[ProtocolTransaction]
) -> Story:
    """Build a story from its first segment and the author's other transactions.

    Candidates are STORY segments numbered 2+ with the same declared total.
    For each position the earliest candidate linking to the accepted
    predecessor wins (ties on transaction id). Acceptance stops at the
    first position with no valid candidate.
    """
    head = StorySegment.from_transaction(first)
    if head is None or head.segment != 1:
        raise ValueError(f"{first.tx_id} is not a first story segment")

    by_position: Dict[int, List[StorySegment]] = {}
    for tx in candidates:
        if tx.tx_id == first.tx_id:
            continue
        seg = StorySegment.from_transaction(tx)
        if seg is None or seg.total != head.total or seg.segment < 2 or seg.segment > head.total:
            continue
        by_position.setdefault(seg.segment, []).append(seg)

    accepted = [head]
    issues: List[str] = []
    for position in range(2, head.total + 1):
        previous = accepted[-1]
        linked = sorted(
            (s for s in by_position.get(position, []) if s.parent_id == previous.tx_id),
            key=lambda s: (s.timestamp, s.tx_id),
        )
        in_window = [s for s in linked if s.timestamp >= previous.timestamp - MAX_SEGMENT_SKEW]
        if not in_window:
            if linked:
                issues.append(f"segment {position} predates segment {position - 1} beyond allowed skew")
            else:
                issues.append(f"segment {position} missing or not linked to segment {position - 1}")
            break
        accepted.append(in_window[0])

    check = validate_segment_chain(accepted)
    issues.extend(i for i in check.issues if i not in issues)
    complete = check.is_complete and len(accepted) == head.total

    return Story(
        first_tx_id=first.tx_id,
        author=first.sender,
        title=extract_title(head.content),
        content="".join(s.content for s in accepted).strip(),
        segments=accepted,
        total_segments=head.total,
        timestamp=first.timestamp,
        is_complete=complete,
        issues=issues,
    )


def story_stats(story: Story) -> StoryStats:
    lengths = [len(s.content) for s in story.segments]
    times = [s.timestamp for s in story.segments]
    words = len(story.content.split())
    return StoryStats(
        segment_count=len(story.segments),
        total_length=sum(lengths),
        average_segment_length=sum(lengths) / len(lengths) if lengths else 0.0,
        creation_span_seconds=max(times) - min(times) if times else 0,
        reading_time_minutes=max(1, -(-words // WORDS_PER_MINUTE)) if words else 0,
    )


class StoryReconstructor:
    """Reassembles stories from the ledger.

    Example:
        >>> stories = StoryReconstructor(reader)
        >>> result = await stories.get_story(first_tx_id)
        >>> result.data.is_complete
        True
    """

    def __init__(
        self,
        reader: ChainReader,
        cache: Optional[TtlCache] = None,
        incomplete_ttl: float = INCOMPLETE_STORY_TTL,
    ) -> None:
        self.reader = reader
        self.cache: TtlCache = cache or TtlCache(default_ttl=120.0)
        self.incomplete_ttl = incomplete_ttl

    async def get_story(self, first_tx_id: str) -> Result[Story]:
        """Reconstruct a story from its first segment's transaction id.

        Returns:
            The story (possibly incomplete), NOT_FOUND when the transaction
            does not exist, INVALID_STORY when it is not a first segment,
            or FETCH_FAILED when the ledger is unavailable
        """
        key = f"story:{first_tx_id}"
        cached = self.cache.get(key)
        if cached is not None:
            return Result.ok(cached)

        try:
            first = await self.reader.transaction(first_tx_id)
        except TransactionNotFoundError:
            return Result.fail("First segment transaction not found", code=NOT_FOUND)
        except LedgerError as e:
            return Result.fail(f"Failed to fetch first segment: {e}", code=FETCH_FAILED)

        if first is None or not first.is_story_start:
            return Result.fail("Transaction is not the first segment of a story", code=INVALID_STORY)

        params = first.payload.segment
        candidates: List[ProtocolTransaction] = []
        history_failed = False
        if params is not None and params.total > 1:
            if first.sender is None:
                logger.warning(
                    f"Story {first_tx_id} has no resolved author; later segments cannot be located",
                    extra={"tx_id": first_tx_id},
                )
            else:
                try:
                    candidates = await self.reader.history(first.sender)
                except LedgerError as e:
                    history_failed = True
                    logger.warning(
                        f"Failed to fetch author history for story {first_tx_id}: {e}",
                        extra={"tx_id": first_tx_id, "author": first.sender},
                    )

        story = assemble_story(first, candidates)
        if not story.is_complete:
            logger.info(
                f"Story {first_tx_id} is incomplete",
                extra={"tx_id": first_tx_id, "issues": story.issues},
            )
        if not history_failed:
            # Missing segments may still be on their way
            ttl = None if story.is_complete else self.incomplete_ttl
            self.cache.set(key, story, ttl=ttl)
        return Result.ok(story)

    async def get_stories(self, first_tx_ids: List[str]) -> BatchResult[str, Story]:
        results = await asyncio.gather(*(self.get_story(tx_id) for tx_id in first_tx_ids))
        batch: BatchResult[str, Story] = BatchResult(total_processed=len(first_tx_ids))
        for tx_id, result in zip(first_tx_ids, results):
            if result.success and result.data is not None:
                batch.successful.append(result.data)
            else:
                batch.failed.append(BatchFailure(item=tx_id, error=result.error or "unknown error"))
        return batch

    def invalidate(self, first_tx_id: str) -> None:
        self.cache.invalidate(f"story:{first_tx_id}")
