"""
Read-side reconstruction of protocol state.

Nothing here is stored. Profiles, subscriptions, stories and engagement are
derived on demand by replaying decoded transactions from the ledger, with
short-lived caches in front.

Invariants:
    - Replay is order-independent: inputs are sorted by (timestamp, tx_id)
    - Expected absence (unregistered address, missing story) is a failure
      result, never an exception
    - Ledger failures surface as FETCH_FAILED results
"""

from .engagement import (
    Comment,
    ContentEngagement,
    EngagementMetrics,
    EngagementService,
    EngagementSummary,
    Like,
    ViewerLikeStatus,
    collect_comments,
    collect_likes,
    compute_metrics,
    dedupe_likes,
)
from .profiles import (
    FOLLOWERS_NOTE,
    ProfileReconstructor,
    Subscription,
    UserProfile,
    UserStats,
    compute_stats,
    replay_profile,
    replay_subscriptions,
)
from .stories import (
    ChainValidation,
    Story,
    StoryReconstructor,
    StorySegment,
    StoryStats,
    assemble_story,
    extract_title,
    story_stats,
    validate_segment_chain,
)
from .transactions import ChainReader, ProtocolTransaction, parse_all, parse_transaction

__all__ = [
    # Transactions
    "ChainReader",
    "ProtocolTransaction",
    "parse_transaction",
    "parse_all",
    # Profiles
    "ProfileReconstructor",
    "UserProfile",
    "UserStats",
    "Subscription",
    "FOLLOWERS_NOTE",
    "replay_profile",
    "replay_subscriptions",
    "compute_stats",
    # Stories
    "StoryReconstructor",
    "Story",
    "StorySegment",
    "StoryStats",
    "ChainValidation",
    "assemble_story",
    "extract_title",
    "story_stats",
    "validate_segment_chain",
    # Engagement
    "EngagementService",
    "Like",
    "Comment",
    "EngagementMetrics",
    "EngagementSummary",
    "ContentEngagement",
    "ViewerLikeStatus",
    "collect_likes",
    "collect_comments",
    "compute_metrics",
    "dedupe_likes",
]
