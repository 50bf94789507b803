"""
Feed views built from reconstructed ledger state.

Five views share one pipeline: personal, global, user, trending and
by-type, plus content search on top of the same candidates.

Example:
    >>> from verum_index.feed import FeedOptions
    >>> page = (await feed.global_feed(FeedOptions(limit=20))).data
    >>> [item.kind.value for item in page.items]
"""

from .aggregator import SORT_ENGAGEMENT, SORT_TIMESTAMP, FeedAggregator, FeedOptions
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

__all__ = [
    # Aggregation
    "FeedAggregator",
    "FeedOptions",
    "SORT_TIMESTAMP",
    "SORT_ENGAGEMENT",
    # Items
    "FeedItem",
    "FeedItemKind",
    "FeedPost",
    "FeedStory",
    "FeedComment",
    "FeedPage",
    "engagement_score",
    "searchable_text",
]
