"""
VerumIndexer: the read-side facade.

Wires one ledger fetcher into the reconstruction components and the feed
aggregator, each with its own cache sized from CacheConfig. Callers that
only read protocol state need nothing else from this package.

Invariants:
    - All components share one ChainReader, so a fetched history is
      decoded once per TTL window
    - Writes elsewhere must call ``invalidate_address`` for the author;
      otherwise reads lag by at most the relevant TTL

How to change safely:
    - New read operations delegate to a component; keep the facade thin
    - Add cache sizing to CacheConfig rather than hard-coding TTLs here
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from verum_protocol import TransactionType

from .cache import TtlCache
from .config import IndexerConfig
from .feed import FeedAggregator, FeedOptions, FeedPage
from .ledger.base import LedgerFetcher, create_fetcher
from .reconstruct import (
    ChainReader,
    ContentEngagement,
    EngagementService,
    ProfileReconstructor,
    Story,
    StoryReconstructor,
    StoryStats,
    Subscription,
    UserProfile,
    UserStats,
    story_stats,
)
from .results import BatchResult, Result

if TYPE_CHECKING:
    from .reconstruct.engagement import EngagementMetrics, ViewerLikeStatus

logger = logging.getLogger(__name__)


class VerumIndexer:
    """Read access to profiles, stories, engagement and feeds.

    Example:
        >>> async with VerumIndexer.from_config(IndexerConfig.from_env()) as indexer:
        ...     profile = await indexer.get_profile("kaspa:qq...")
        ...     feed = await indexer.global_feed(FeedOptions(limit=20))
    """

    def __init__(
        self,
        fetcher: LedgerFetcher,
        config: Optional[IndexerConfig] = None,
    ) -> None:
        """Initialize the indexer.

        Args:
            fetcher: Ledger read backend
            config: Configuration; defaults are used when omitted
        """
        self.config = config or IndexerConfig()
        self.fetcher = fetcher
        caching = self.config.cache

        def cache(ttl: float) -> TtlCache:
            return TtlCache(default_ttl=ttl, enabled=caching.enabled)

        self.reader = ChainReader(
            fetcher,
            ledger_config=self.config.ledger,
            cache_config=caching,
            cache=cache(caching.transaction_ttl_seconds),
        )
        self.profiles = ProfileReconstructor(self.reader, cache=cache(caching.profile_ttl_seconds))
        self.stories = StoryReconstructor(
            self.reader,
            cache=cache(caching.story_ttl_seconds),
            incomplete_ttl=caching.incomplete_story_ttl_seconds,
        )
        self.engagement = EngagementService(
            self.reader,
            cache=cache(caching.engagement_ttl_seconds),
            max_search_depth=self.config.ledger.max_history,
        )
        self.feed = FeedAggregator(
            self.reader,
            self.profiles,
            self.stories,
            self.engagement,
            cache=cache(caching.feed_ttl_seconds),
        )

    @classmethod
    def from_config(cls, config: IndexerConfig) -> VerumIndexer:
        """Create an indexer reading from the HTTP ledger API in config."""
        fetcher = create_fetcher(config.ledger, retry=config.retry.to_policy())
        return cls(fetcher, config)

    async def __aenter__(self) -> VerumIndexer:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self.fetcher.close()

    # =========================================================================
    # Profiles and subscriptions
    # =========================================================================

    async def get_profile(self, address: str) -> Result[UserProfile]:
        return await self.profiles.get_profile(address)

    async def get_profiles(self, addresses: List[str]) -> BatchResult[str, UserProfile]:
        return await self.profiles.get_profiles(addresses)

    async def get_stats(self, address: str) -> Result[UserStats]:
        return await self.profiles.get_stats(address)

    async def get_following(
        self, address: str, limit: int = 50, offset: int = 0
    ) -> Result[List[Subscription]]:
        return await self.profiles.get_following(address, limit=limit, offset=offset)

    async def get_followers(
        self, address: str, limit: int = 50, offset: int = 0
    ) -> Result[List[Subscription]]:
        return await self.profiles.get_followers(address, limit=limit, offset=offset)

    async def is_following(self, subscriber: str, target: str) -> bool:
        return await self.profiles.is_following(subscriber, target)

    async def subscription_status(
        self, subscriber: str, target: str
    ) -> Result[Optional[Subscription]]:
        return await self.profiles.subscription_status(subscriber, target)

    # =========================================================================
    # Stories
    # =========================================================================

    async def get_story(self, first_tx_id: str) -> Result[Story]:
        return await self.stories.get_story(first_tx_id)

    async def get_stories(self, first_tx_ids: List[str]) -> BatchResult[str, Story]:
        return await self.stories.get_stories(first_tx_ids)

    async def get_story_stats(self, first_tx_id: str) -> Result[StoryStats]:
        story = await self.stories.get_story(first_tx_id)
        if not story.success or story.data is None:
            return Result.fail(story.error or "Story not available", code=story.code)
        return Result.ok(story_stats(story.data))

    # =========================================================================
    # Engagement
    # =========================================================================

    async def get_content_engagement(
        self, tx_id: str, viewer: Optional[str] = None
    ) -> Result[ContentEngagement]:
        return await self.engagement.get_content_engagement(tx_id, viewer)

    async def get_engagement_metrics(self, tx_id: str) -> Result[EngagementMetrics]:
        return await self.engagement.get_metrics(tx_id)

    async def has_liked(self, tx_id: str, viewer: str) -> Result[ViewerLikeStatus]:
        return await self.engagement.has_liked(tx_id, viewer)

    # =========================================================================
    # Feeds
    # =========================================================================

    async def personal_feed(self, address: str, options: Optional[FeedOptions] = None) -> Result[FeedPage]:
        return await self.feed.personal(address, options)

    async def global_feed(self, options: Optional[FeedOptions] = None) -> Result[FeedPage]:
        return await self.feed.global_feed(options)

    async def user_feed(self, address: str, options: Optional[FeedOptions] = None) -> Result[FeedPage]:
        return await self.feed.user(address, options)

    async def trending_feed(self, options: Optional[FeedOptions] = None) -> Result[FeedPage]:
        return await self.feed.trending(options)

    async def feed_by_type(
        self, types: Iterable[TransactionType], options: Optional[FeedOptions] = None
    ) -> Result[FeedPage]:
        return await self.feed.by_type(types, options)

    async def search(self, query: str, **kwargs) -> Result[FeedPage]:
        """Content search; see ``FeedAggregator.search`` for parameters."""
        return await self.feed.search(query, **kwargs)

    # =========================================================================
    # Cache control
    # =========================================================================

    def invalidate_address(self, address: str, touched: Iterable[str] = ()) -> None:
        """Forget cached state derived from an address's history.

        Args:
            address: Author whose history changed
            touched: Transaction ids whose engagement or story changed
        """
        self.reader.invalidate_address(address)
        self.profiles.invalidate(address)
        for tx_id in touched:
            self.engagement.invalidate(tx_id)
            self.stories.invalidate(tx_id)
            self.reader.cache.invalidate(f"tx:{tx_id}")
        self.feed.invalidate()
        logger.debug(f"Invalidated cached state for {address}", extra={"address": address})

    def cache_sizes(self) -> Dict[str, int]:
        return {
            "transactions": len(self.reader.cache),
            "profiles": len(self.profiles.cache),
            "stories": len(self.stories.cache),
            "engagement": len(self.engagement.cache),
            "feeds": len(self.feed.cache),
        }
