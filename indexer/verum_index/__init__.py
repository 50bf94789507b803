"""
Verum index - read-side reconstruction of protocol state from the ledger.

The ledger is the only store. Everything here is derived by replaying
decoded transactions:

    ┌───────────────┐     ┌──────────────┐     ┌──────────────────────┐
    │ LedgerFetcher │────▶│ ChainReader  │────▶│ Profiles / Stories / │
    │ (HTTP, memory)│     │ decode+cache │     │ Engagement           │
    └───────────────┘     └──────────────┘     └──────────┬───────────┘
                                                          │
                                                          ▼
                                               ┌──────────────────────┐
                                               │ FeedAggregator       │
                                               └──────────────────────┘

Example:
    >>> from verum_index import IndexerConfig, VerumIndexer
    >>>
    >>> async with VerumIndexer.from_config(IndexerConfig.from_env()) as indexer:
    ...     result = await indexer.get_profile("kaspa:qq...")
    ...     print(result.data.nickname if result.success else result.code)

Invariants:
    - Derived state is never persisted; caches are short-lived snapshots
    - Expected absence is a failed Result, not an exception
    - One undecodable or unfetchable transaction never aborts a scan

How to change safely:
    - Replay rules live in reconstruct/; keep them order-independent
    - Ledger API changes belong in ledger/http.py models only

Version: 0.1.0
"""

__version__ = "0.1.0"

from .cache import TtlCache
from .config import (
    CacheConfig,
    IndexerConfig,
    LedgerConfig,
    Network,
    ObservabilityConfig,
    RetryConfig,
    WriterConfig,
)
from .feed import (
    FeedAggregator,
    FeedComment,
    FeedItem,
    FeedItemKind,
    FeedOptions,
    FeedPage,
    FeedPost,
    FeedStory,
)
from .indexer import VerumIndexer
from .ledger import (
    HttpLedgerFetcher,
    InMemoryLedger,
    LedgerConnectionError,
    LedgerError,
    LedgerFetcher,
    LedgerTimeoutError,
    RawTransaction,
    TransactionInput,
    TransactionNotFoundError,
    TransactionOutput,
    create_fetcher,
)
from .reconstruct import (
    ChainReader,
    Comment,
    ContentEngagement,
    EngagementMetrics,
    EngagementService,
    Like,
    ProfileReconstructor,
    ProtocolTransaction,
    Story,
    StoryReconstructor,
    StorySegment,
    StoryStats,
    Subscription,
    UserProfile,
    UserStats,
)
from .results import (
    FETCH_FAILED,
    INVALID_STORY,
    NOT_FOUND,
    NOT_REGISTERED,
    SUBMIT_FAILED,
    VALIDATION_FAILED,
    WRITE_CANCELLED,
    WRITE_FAILED,
    BatchFailure,
    BatchResult,
    Pagination,
    Result,
)
from .retry import RetryPolicy

__all__ = [
    "__version__",
    # Facade
    "VerumIndexer",
    # Configuration
    "IndexerConfig",
    "LedgerConfig",
    "RetryConfig",
    "CacheConfig",
    "WriterConfig",
    "ObservabilityConfig",
    "Network",
    # Infrastructure
    "TtlCache",
    "RetryPolicy",
    # Ledger
    "LedgerFetcher",
    "HttpLedgerFetcher",
    "InMemoryLedger",
    "RawTransaction",
    "TransactionInput",
    "TransactionOutput",
    "LedgerError",
    "LedgerConnectionError",
    "LedgerTimeoutError",
    "TransactionNotFoundError",
    "create_fetcher",
    # Reconstruction
    "ChainReader",
    "ProtocolTransaction",
    "ProfileReconstructor",
    "UserProfile",
    "UserStats",
    "Subscription",
    "StoryReconstructor",
    "Story",
    "StorySegment",
    "StoryStats",
    "EngagementService",
    "Like",
    "Comment",
    "EngagementMetrics",
    "ContentEngagement",
    # Feeds
    "FeedAggregator",
    "FeedOptions",
    "FeedPage",
    "FeedItem",
    "FeedItemKind",
    "FeedPost",
    "FeedStory",
    "FeedComment",
    # Results
    "Result",
    "BatchResult",
    "BatchFailure",
    "Pagination",
    "NOT_FOUND",
    "NOT_REGISTERED",
    "FETCH_FAILED",
    "INVALID_STORY",
    "VALIDATION_FAILED",
    "SUBMIT_FAILED",
    "WRITE_FAILED",
    "WRITE_CANCELLED",
]
