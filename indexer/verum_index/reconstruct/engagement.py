"""
Engagement: likes and comments attributed to a content item.

Engagement is found by scanning the network's recent transactions (up to
``max_search_depth``) for LIKE and COMMENT messages whose ``parent_id``
equals the target. The kind of the target is resolved by re-decoding the
target transaction itself.

Invariants:
    - One like per liker: repeated likes collapse to the latest
    - Comments are ordered oldest first
    - Unresolvable targets fall back to the "post" kind
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from verum_protocol import TransactionType

from ..cache import TtlCache
from ..ledger.base import LedgerError
from ..results import FETCH_FAILED, Result
from .transactions import ChainReader, ProtocolTransaction

logger = logging.getLogger(__name__)

RECENT_WINDOW_SECONDS = 24 * 60 * 60

CONTENT_POST = "post"
CONTENT_STORY = "story"
CONTENT_COMMENT = "comment"


@dataclass(frozen=True)
class Like:
    tx_id: str
    liker: Optional[str]
    target_tx_id: str
    target_type: str
    timestamp: int


@dataclass(frozen=True)
class Comment:
    tx_id: str
    author: Optional[str]
    parent_tx_id: str
    parent_type: str
    content: str
    timestamp: int


@dataclass(frozen=True)
class EngagementMetrics:
    """Aggregate counts for one content item.

    Attributes:
        like_count: Distinct likers
        comment_count: Comments
        total_engagement: likes + comments
        recent_activity: Likes and comments in the last 24 hours
    """

    like_count: int
    comment_count: int
    total_engagement: int
    recent_activity: int


@dataclass(frozen=True)
class ViewerLikeStatus:
    has_liked: bool
    like_tx_id: Optional[str] = None
    liked_at: Optional[int] = None


@dataclass(frozen=True)
class ContentEngagement:
    """Full engagement detail for one content item."""

    tx_id: str
    content_type: str
    metrics: EngagementMetrics
    likes: List[Like]
    comments: List[Comment]
    viewer_like_status: Optional[ViewerLikeStatus] = None


@dataclass(frozen=True)
class EngagementSummary:
    """Counts attached to feed items."""

    like_count: int = 0
    comment_count: int = 0
    liked_by_viewer: Optional[bool] = None

    @property
    def total(self) -> int:
        return self.like_count + self.comment_count


def _liker_key(like: Like) -> str:
    return like.liker.lower() if like.liker else f"tx:{like.tx_id}"


def dedupe_likes(likes: Iterable[Like]) -> List[Like]:
    """Keep each liker's most recent like."""
    latest: Dict[str, Like] = {}
    for like in sorted(likes, key=lambda like: (like.timestamp, like.tx_id)):
        latest[_liker_key(like)] = like
    return sorted(latest.values(), key=lambda like: (like.timestamp, like.tx_id))


def collect_likes(
    target_tx_id: str, txs: Iterable[ProtocolTransaction], target_type: str = CONTENT_POST
) -> List[Like]:
    likes = [
        Like(
            tx_id=tx.tx_id,
            liker=tx.sender,
            target_tx_id=target_tx_id,
            target_type=target_type,
            timestamp=tx.timestamp,
        )
        for tx in txs
        if tx.kind == TransactionType.LIKE and tx.payload.parent_id == target_tx_id
    ]
    return dedupe_likes(likes)


def collect_comments(
    parent_tx_id: str, txs: Iterable[ProtocolTransaction], parent_type: str = CONTENT_POST
) -> List[Comment]:
    comments = [
        Comment(
            tx_id=tx.tx_id,
            author=tx.sender,
            parent_tx_id=parent_tx_id,
            parent_type=parent_type,
            content=tx.payload.content or "",
            timestamp=tx.timestamp,
        )
        for tx in txs
        if tx.kind == TransactionType.COMMENT and tx.payload.parent_id == parent_tx_id
    ]
    return sorted(comments, key=lambda c: (c.timestamp, c.tx_id))


def compute_metrics(likes: Sequence[Like], comments: Sequence[Comment], now: float) -> EngagementMetrics:
    cutoff = now - RECENT_WINDOW_SECONDS
    recent = sum(1 for like in likes if like.timestamp > cutoff) + sum(
        1 for c in comments if c.timestamp > cutoff
    )
    return EngagementMetrics(
        like_count=len(likes),
        comment_count=len(comments),
        total_engagement=len(likes) + len(comments),
        recent_activity=recent,
    )


def viewer_status(likes: Iterable[Like], viewer: str) -> ViewerLikeStatus:
    wanted = viewer.lower()
    for like in likes:
        if like.liker and like.liker.lower() == wanted:
            return ViewerLikeStatus(has_liked=True, like_tx_id=like.tx_id, liked_at=like.timestamp)
    return ViewerLikeStatus(has_liked=False)


class EngagementService:
    """Computes likes, comments and metrics from recent ledger activity.

    Example:
        >>> engagement = EngagementService(reader)
        >>> result = await engagement.get_content_engagement(post_id, viewer=me)
        >>> result.data.metrics.like_count
    """

    def __init__(
        self,
        reader: ChainReader,
        cache: Optional[TtlCache] = None,
        max_search_depth: int = 1000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the service.

        Args:
            reader: Cached transaction reader
            cache: Cache for per-item engagement
            max_search_depth: Recent transactions scanned per lookup
            clock: Wall clock for the 24 hour activity window
        """
        self.reader = reader
        self.cache: TtlCache = cache or TtlCache(default_ttl=30.0)
        self.max_search_depth = max_search_depth
        self._clock = clock

    async def _scan(self) -> List[ProtocolTransaction]:
        return await self.reader.recent(self.max_search_depth)

    async def determine_content_type(self, tx_id: str) -> str:
        """Kind of a like target: post, story or comment (fallback post)."""
        kind = await self._kind_of(tx_id)
        if kind == TransactionType.STORY:
            return CONTENT_STORY
        if kind == TransactionType.COMMENT:
            return CONTENT_COMMENT
        return CONTENT_POST

    async def determine_parent_type(self, tx_id: str) -> str:
        """Kind of a comment parent: post or story (fallback post)."""
        kind = await self._kind_of(tx_id)
        return CONTENT_STORY if kind == TransactionType.STORY else CONTENT_POST

    async def _kind_of(self, tx_id: str) -> Optional[TransactionType]:
        try:
            tx = await self.reader.transaction(tx_id)
        except LedgerError as e:
            logger.debug(f"Could not resolve kind of {tx_id}: {e}")
            return None
        return tx.kind if tx is not None else None

    async def get_likes(self, target_tx_id: str) -> Result[List[Like]]:
        key = f"likes:{target_tx_id}"
        cached = self.cache.get(key)
        if cached is not None:
            return Result.ok(cached)
        try:
            txs = await self._scan()
        except LedgerError as e:
            return Result.fail(f"Failed to fetch transactions: {e}", code=FETCH_FAILED)

        likes = collect_likes(target_tx_id, txs, await self.determine_content_type(target_tx_id))
        self.cache.set(key, likes)
        return Result.ok(likes)

    async def get_comments(self, parent_tx_id: str) -> Result[List[Comment]]:
        key = f"comments:{parent_tx_id}"
        cached = self.cache.get(key)
        if cached is not None:
            return Result.ok(cached)
        try:
            txs = await self._scan()
        except LedgerError as e:
            return Result.fail(f"Failed to fetch transactions: {e}", code=FETCH_FAILED)

        comments = collect_comments(parent_tx_id, txs, await self.determine_parent_type(parent_tx_id))
        self.cache.set(key, comments)
        return Result.ok(comments)

    async def get_content_engagement(
        self, tx_id: str, viewer: Optional[str] = None
    ) -> Result[ContentEngagement]:
        """Likes, comments, metrics and the viewer's like status for one item."""
        likes = await self.get_likes(tx_id)
        comments = await self.get_comments(tx_id)
        if not likes.success or not comments.success:
            return Result.fail("Failed to fetch engagement data", code=FETCH_FAILED)

        like_list = likes.data or []
        comment_list = comments.data or []
        engagement = ContentEngagement(
            tx_id=tx_id,
            content_type=await self.determine_content_type(tx_id),
            metrics=compute_metrics(like_list, comment_list, self._clock()),
            likes=like_list,
            comments=comment_list,
            viewer_like_status=viewer_status(like_list, viewer) if viewer else None,
        )
        logger.debug(
            f"Engagement for {tx_id}: {len(like_list)} likes, {len(comment_list)} comments",
            extra={"tx_id": tx_id},
        )
        return Result.ok(engagement)

    async def get_metrics(self, tx_id: str) -> Result[EngagementMetrics]:
        detail = await self.get_content_engagement(tx_id)
        if not detail.success or detail.data is None:
            return Result.fail(detail.error or "Failed to calculate engagement", code=detail.code)
        return Result.ok(detail.data.metrics)

    async def has_liked(self, tx_id: str, viewer: str) -> Result[ViewerLikeStatus]:
        likes = await self.get_likes(tx_id)
        if not likes.success:
            return Result.fail(likes.error or "Failed to get likes data", code=likes.code)
        return Result.ok(viewer_status(likes.data or [], viewer))

    async def summaries(
        self, tx_ids: Iterable[str], viewer: Optional[str] = None
    ) -> Dict[str, EngagementSummary]:
        """Counts for many items from a single scan.

        Raises:
            LedgerError: If the recent transactions cannot be fetched
        """
        wanted = set(tx_ids)
        txs = await self._scan()
        likes: Dict[str, List[Like]] = {tx_id: [] for tx_id in wanted}
        comments: Dict[str, int] = {tx_id: 0 for tx_id in wanted}
        for tx in txs:
            parent = tx.payload.parent_id
            if parent not in wanted:
                continue
            if tx.kind == TransactionType.LIKE:
                likes[parent].append(Like(tx.tx_id, tx.sender, parent, CONTENT_POST, tx.timestamp))
            elif tx.kind == TransactionType.COMMENT:
                comments[parent] += 1

        summaries: Dict[str, EngagementSummary] = {}
        for tx_id in wanted:
            unique = dedupe_likes(likes[tx_id])
            summaries[tx_id] = EngagementSummary(
                like_count=len(unique),
                comment_count=comments[tx_id],
                liked_by_viewer=viewer_status(unique, viewer).has_liked if viewer else None,
            )
        return summaries

    def invalidate(self, tx_id: str) -> None:
        self.cache.invalidate(f"likes:{tx_id}")
        self.cache.invalidate(f"comments:{tx_id}")
