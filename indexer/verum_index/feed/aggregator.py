"""
Feed aggregation over reconstructed ledger state.

Every view runs the same pipeline:

    candidates -> classify -> engagement -> filter -> sort -> paginate

Candidates come either from the network-wide recent list (global,
trending, by-type, search) or from author histories (personal, user).
The recent list is over-fetched so that filtering still leaves a full
page.

Invariants:
    - A story appears once, under its first segment
    - A failure fetching candidates fails the whole view
    - A failure building one item drops that item only
    - An engagement scan failure leaves counts at zero; the view still
      succeeds
    - ``has_more`` is True exactly when the page is full

How to change safely:
    - Views are cached per (view, scope, options); options that change
      the result must be part of ``FeedOptions.cache_key``
    - New item kinds go in ``items.py`` first; ``_classify`` and
      ``engagement_score`` must handle them
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from verum_protocol import TransactionType

from ..cache import TtlCache
from ..ledger.base import LedgerError
from ..reconstruct.engagement import EngagementService, EngagementSummary
from ..reconstruct.profiles import ProfileReconstructor
from ..reconstruct.stories import StoryReconstructor
from ..reconstruct.transactions import ChainReader, ProtocolTransaction
from ..results import FETCH_FAILED, Pagination, Result
from .items import (
    FeedComment,
    FeedItem,
    FeedItemKind,
    FeedPage,
    FeedPost,
    FeedStory,
    engagement_score,
    searchable_text,
)

logger = logging.getLogger(__name__)

OVERFETCH_FACTOR = 3
TYPE_FILTER_FACTOR = 2

SORT_TIMESTAMP = "timestamp"
SORT_ENGAGEMENT = "engagement"


@dataclass(frozen=True)
class FeedOptions:
    """Parameters shared by every feed view.

    Attributes:
        limit: Page size
        offset: Items to skip
        include_replies: Whether comments appear as feed items
        min_timestamp: Drop items older than this (unix seconds)
        max_timestamp: Drop items newer than this (unix seconds)
        authors: Restrict to these authors (empty means any)
        viewer: Address whose like status is attached to items
        refresh: Bypass the view cache for this call
    """

    limit: int = 50
    offset: int = 0
    include_replies: bool = True
    min_timestamp: Optional[int] = None
    max_timestamp: Optional[int] = None
    authors: Tuple[str, ...] = ()
    viewer: Optional[str] = None
    refresh: bool = False

    def cache_key(self) -> str:
        return (
            f"{self.limit}:{self.offset}:{int(self.include_replies)}:"
            f"{self.min_timestamp}:{self.max_timestamp}:{','.join(sorted(self.authors))}:"
            f"{self.viewer or ''}"
        )

    @property
    def window(self) -> int:
        return self.offset + self.limit


def _by_recency(item: FeedItem) -> Tuple[int, str]:
    return (item.timestamp, item.tx_id)


def _by_engagement(item: FeedItem) -> Tuple[int, int, str]:
    return (engagement_score(item), item.timestamp, item.tx_id)


class FeedAggregator:
    """Builds paginated feed views from the ledger.

    Example:
        >>> feed = FeedAggregator(reader, profiles, stories, engagement)
        >>> result = await feed.personal("kaspa:qq...", FeedOptions(limit=20))
        >>> for item in result.data.items:
        ...     print(item.kind, item.tx_id)
    """

    def __init__(
        self,
        reader: ChainReader,
        profiles: ProfileReconstructor,
        stories: StoryReconstructor,
        engagement: EngagementService,
        cache: Optional[TtlCache] = None,
    ) -> None:
        """Initialize the aggregator.

        Args:
            reader: Transaction source
            profiles: Used to resolve who an address follows
            stories: Used to reassemble stories from first segments
            engagement: Used to attach like and comment counts
            cache: View cache; a 30 second cache is created if omitted
        """
        self.reader = reader
        self.profiles = profiles
        self.stories = stories
        self.engagement = engagement
        self.cache: TtlCache = cache or TtlCache(default_ttl=30.0)

    # =========================================================================
    # Views
    # =========================================================================

    async def personal(self, address: str, options: Optional[FeedOptions] = None) -> Result[FeedPage]:
        """Content from everyone address follows, plus address itself."""
        options = options or FeedOptions()

        async def build() -> Result[FeedPage]:
            edges = await self.profiles.get_subscriptions(address)
            if not edges.success or edges.data is None:
                return Result.fail(edges.error or "Failed to fetch following list", code=FETCH_FAILED)
            followees = [edge.target for edge in edges.data.values() if edge.is_active]
            viewer_options = options if options.viewer else replace(options, viewer=address)
            return await self._author_view([*followees, address], viewer_options)

        return await self._cached(f"feed:personal:{address}", options, build)

    async def global_feed(self, options: Optional[FeedOptions] = None) -> Result[FeedPage]:
        """Recent content from the whole network, newest first."""
        options = options or FeedOptions()

        async def build() -> Result[FeedPage]:
            return await self._recent_view(options, OVERFETCH_FACTOR, sort_key=_by_recency)

        return await self._cached("feed:global", options, build)

    async def user(self, address: str, options: Optional[FeedOptions] = None) -> Result[FeedPage]:
        """Content authored by a single address."""
        options = options or FeedOptions()

        async def build() -> Result[FeedPage]:
            return await self._author_view([address], options)

        return await self._cached(f"feed:user:{address}", options, build)

    async def trending(self, options: Optional[FeedOptions] = None) -> Result[FeedPage]:
        """Recent network content ranked by likes plus comments."""
        options = options or FeedOptions()

        async def build() -> Result[FeedPage]:
            return await self._recent_view(options, OVERFETCH_FACTOR, sort_key=_by_engagement)

        return await self._cached("feed:trending", options, build)

    async def by_type(
        self, types: Iterable[TransactionType], options: Optional[FeedOptions] = None
    ) -> Result[FeedPage]:
        """Recent network content restricted to the given message kinds.

        Kinds that never appear in feeds (START, LIKE, subscriptions) are
        ignored; a request naming none of the feed kinds yields an empty page.
        """
        options = options or FeedOptions()
        kinds = {k for k in (FeedItemKind.from_transaction_type(t) for t in types) if k is not None}
        if FeedItemKind.COMMENT in kinds and not options.include_replies:
            kinds.discard(FeedItemKind.COMMENT)
        scope = ",".join(sorted(k.value for k in kinds))

        async def build() -> Result[FeedPage]:
            return await self._recent_view(
                options,
                OVERFETCH_FACTOR * TYPE_FILTER_FACTOR,
                sort_key=_by_recency,
                kinds=kinds,
            )

        return await self._cached(f"feed:type:{scope}", options, build)

    async def search(
        self,
        query: str,
        author: Optional[str] = None,
        types: Optional[Iterable[TransactionType]] = None,
        sort_by: str = SORT_TIMESTAMP,
        sort_order: str = "desc",
        limit: int = 50,
        offset: int = 0,
        viewer: Optional[str] = None,
    ) -> Result[FeedPage]:
        """Case-insensitive content search over one author or the recent network.

        Raises:
            ValueError: If sort_by or sort_order is not recognised
        """
        if sort_by not in (SORT_TIMESTAMP, SORT_ENGAGEMENT):
            raise ValueError(f"Unknown sort_by: {sort_by}")
        if sort_order not in ("asc", "desc"):
            raise ValueError(f"Unknown sort_order: {sort_order}")

        options = FeedOptions(limit=limit, offset=offset, viewer=viewer)
        kinds = None
        if types is not None:
            kinds = {k for k in (FeedItemKind.from_transaction_type(t) for t in types) if k is not None}
        needle = query.strip().lower()

        try:
            if author is not None:
                candidates = await self.reader.history(author)
            else:
                candidates = await self.reader.recent(options.window * OVERFETCH_FACTOR)
        except LedgerError as e:
            return Result.fail(f"Failed to fetch transactions: {e}", code=FETCH_FAILED)

        items = await self._classify(candidates, options, kinds)
        items = [item for item in items if needle in searchable_text(item).lower()]
        items = await self._attach_engagement(items, viewer)
        sort_key = _by_engagement if sort_by == SORT_ENGAGEMENT else _by_recency
        items.sort(key=sort_key, reverse=sort_order == "desc")
        return self._paginate(items, options)

    def invalidate(self) -> None:
        """Drop every cached view."""
        self.cache.invalidate_prefix("feed:")

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def _cached(
        self,
        scope: str,
        options: FeedOptions,
        build: Callable[[], Awaitable[Result[FeedPage]]],
    ) -> Result[FeedPage]:
        key = f"{scope}:{options.cache_key()}"
        if not options.refresh:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        result = await build()
        if result.success:
            self.cache.set(key, result)
        return result

    async def _recent_view(
        self,
        options: FeedOptions,
        factor: int,
        sort_key: Callable[[FeedItem], tuple],
        kinds: Optional[set] = None,
    ) -> Result[FeedPage]:
        try:
            candidates = await self.reader.recent(options.window * factor)
        except LedgerError as e:
            logger.warning(f"Failed to fetch recent transactions: {e}")
            return Result.fail(f"Failed to fetch recent transactions: {e}", code=FETCH_FAILED)
        return await self._build(candidates, options, sort_key, kinds)

    async def _author_view(self, authors: Sequence[str], options: FeedOptions) -> Result[FeedPage]:
        unique = list(dict.fromkeys(authors))
        try:
            histories = await asyncio.gather(*(self.reader.history(a) for a in unique))
        except LedgerError as e:
            logger.warning(
                f"Failed to fetch author history: {e}",
                extra={"authors": len(unique)},
            )
            return Result.fail(f"Failed to fetch author transactions: {e}", code=FETCH_FAILED)

        candidates = [tx for history in histories for tx in history]
        return await self._build(candidates, options, _by_recency, None)

    async def _build(
        self,
        candidates: Sequence[ProtocolTransaction],
        options: FeedOptions,
        sort_key: Callable[[FeedItem], tuple],
        kinds: Optional[set],
    ) -> Result[FeedPage]:
        items = await self._classify(candidates, options, kinds)
        items = await self._attach_engagement(items, options.viewer)
        items = self._filter(items, options)
        items.sort(key=sort_key, reverse=True)
        return self._paginate(items, options)

    async def _classify(
        self,
        candidates: Sequence[ProtocolTransaction],
        options: FeedOptions,
        kinds: Optional[set],
    ) -> List[FeedItem]:
        """Turn decoded transactions into feed items.

        Only first story segments become stories, each at most once. Items
        that fail to build are logged and dropped.
        """
        items: List[FeedItem] = []
        story_heads: Dict[str, ProtocolTransaction] = {}
        comments: List[ProtocolTransaction] = []

        for tx in candidates:
            kind = FeedItemKind.from_transaction_type(tx.kind)
            if kind is None or (kinds is not None and kind not in kinds):
                continue
            if kind is FeedItemKind.POST:
                if tx.payload.content:
                    items.append(
                        FeedPost(
                            tx_id=tx.tx_id,
                            author=tx.sender,
                            content=tx.payload.content,
                            timestamp=tx.timestamp,
                        )
                    )
            elif kind is FeedItemKind.STORY:
                if tx.is_story_start and tx.tx_id not in story_heads:
                    story_heads[tx.tx_id] = tx
            elif kind is FeedItemKind.COMMENT:
                if options.include_replies and tx.payload.content and tx.payload.parent_id:
                    comments.append(tx)

        stories = await asyncio.gather(*(self._story_item(tx_id) for tx_id in story_heads))
        items.extend(story for story in stories if story is not None)

        built = await asyncio.gather(*(self._comment_item(tx) for tx in comments))
        items.extend(comment for comment in built if comment is not None)
        return items

    async def _story_item(self, first_tx_id: str) -> Optional[FeedStory]:
        result = await self.stories.get_story(first_tx_id)
        if not result.success or result.data is None:
            logger.warning(
                f"Dropping story {first_tx_id} from feed: {result.error}",
                extra={"tx_id": first_tx_id, "code": result.code},
            )
            return None
        return FeedStory(story=result.data)

    async def _comment_item(self, tx: ProtocolTransaction) -> Optional[FeedComment]:
        parent_id = tx.payload.parent_id
        if parent_id is None:
            return None
        return FeedComment(
            tx_id=tx.tx_id,
            author=tx.sender,
            parent_tx_id=parent_id,
            parent_type=await self.engagement.determine_parent_type(parent_id),
            content=tx.payload.content or "",
            timestamp=tx.timestamp,
        )

    async def _attach_engagement(self, items: List[FeedItem], viewer: Optional[str]) -> List[FeedItem]:
        if not items:
            return items
        try:
            summaries = await self.engagement.summaries((item.tx_id for item in items), viewer)
        except LedgerError as e:
            logger.warning(f"Engagement unavailable, counts left at zero: {e}")
            return items

        for item in items:
            summary = summaries.get(item.tx_id, EngagementSummary())
            item.like_count = summary.like_count
            item.liked_by_viewer = summary.liked_by_viewer
            if item.kind is not FeedItemKind.COMMENT:
                item.comment_count = summary.comment_count
            if item.kind is FeedItemKind.STORY:
                # The reconstructed story is a shared cache entry; copy it.
                item.story = replace(
                    item.story,
                    like_count=summary.like_count,
                    comment_count=summary.comment_count,
                    is_liked_by_viewer=summary.liked_by_viewer,
                )
        return items

    @staticmethod
    def _filter(items: List[FeedItem], options: FeedOptions) -> List[FeedItem]:
        authors = set(options.authors)
        return [
            item
            for item in items
            if (options.min_timestamp is None or item.timestamp >= options.min_timestamp)
            and (options.max_timestamp is None or item.timestamp <= options.max_timestamp)
            and (not authors or item.author in authors)
        ]

    @staticmethod
    def _paginate(items: List[FeedItem], options: FeedOptions) -> Result[FeedPage]:
        page = items[options.offset : options.window]
        has_more = options.limit > 0 and len(page) == options.limit
        return Result.ok(
            FeedPage(items=page, offset=options.offset, limit=options.limit, has_more=has_more),
            pagination=Pagination(offset=options.offset, limit=options.limit, has_more=has_more),
        )
