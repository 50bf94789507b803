"""
Verum indexer command line.

One-shot queries against the configured ledger API:

    python -m verum_index.main profile kaspa:qq...
    python -m verum_index.main story <first-segment-tx-id>
    python -m verum_index.main feed global --limit 20
    python -m verum_index.main feed user kaspa:qq...
    python -m verum_index.main search "kaspa" --author kaspa:qq...

Results are printed as JSON. Configuration is entirely via environment
variables; see config.py.

Invariants:
    - Exit code 0 only for a successful result
    - Misconfiguration exits with code 2 before any network call
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import Any, List, Optional

import json_log_formatter

from .config import IndexerConfig
from .feed import FeedOptions
from .indexer import VerumIndexer
from .results import Result

logger = logging.getLogger(__name__)


def setup_logging(config: IndexerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Indexer configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        data = {f.name: _jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
        # Feed stories expose their identity through properties
        for name in ("tx_id", "author", "timestamp"):
            if name not in data and hasattr(value, name):
                data[name] = getattr(value, name)
        return data
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if hasattr(value, "value") and not isinstance(value, (str, int, float, bool)):
        return value.value
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Query Verum protocol state from the ledger")
    subparsers = parser.add_subparsers(dest="command", required=True)

    profile_parser = subparsers.add_parser("profile", help="Reconstruct a profile")
    profile_parser.add_argument("address")

    stats_parser = subparsers.add_parser("stats", help="Activity counters for an address")
    stats_parser.add_argument("address")

    following_parser = subparsers.add_parser("following", help="Active subscriptions")
    following_parser.add_argument("address")
    following_parser.add_argument("--limit", type=int, default=50)
    following_parser.add_argument("--offset", type=int, default=0)

    story_parser = subparsers.add_parser("story", help="Reassemble a story")
    story_parser.add_argument("tx_id", help="First segment transaction id")

    engagement_parser = subparsers.add_parser("engagement", help="Likes and comments on an item")
    engagement_parser.add_argument("tx_id")
    engagement_parser.add_argument("--viewer")

    feed_parser = subparsers.add_parser("feed", help="Feed views")
    feed_parser.add_argument("view", choices=["global", "trending", "user", "personal"])
    feed_parser.add_argument("address", nargs="?")
    feed_parser.add_argument("--limit", type=int, default=50)
    feed_parser.add_argument("--offset", type=int, default=0)
    feed_parser.add_argument("--no-replies", action="store_true")

    search_parser = subparsers.add_parser("search", help="Search content")
    search_parser.add_argument("query")
    search_parser.add_argument("--author")
    search_parser.add_argument("--sort-by", choices=["timestamp", "engagement"], default="timestamp")
    search_parser.add_argument("--limit", type=int, default=50)

    return parser


async def run(indexer: VerumIndexer, args: argparse.Namespace) -> Result[Any]:
    """Execute one parsed command."""
    if args.command == "profile":
        return await indexer.get_profile(args.address)
    if args.command == "stats":
        return await indexer.get_stats(args.address)
    if args.command == "following":
        return await indexer.get_following(args.address, limit=args.limit, offset=args.offset)
    if args.command == "story":
        return await indexer.get_story(args.tx_id)
    if args.command == "engagement":
        return await indexer.get_content_engagement(args.tx_id, viewer=args.viewer)
    if args.command == "search":
        return await indexer.search(args.query, author=args.author, sort_by=args.sort_by, limit=args.limit)

    options = FeedOptions(limit=args.limit, offset=args.offset, include_replies=not args.no_replies)
    if args.view in ("user", "personal") and not args.address:
        raise ValueError(f"feed {args.view} requires an address")
    if args.view == "global":
        return await indexer.global_feed(options)
    if args.view == "trending":
        return await indexer.trending_feed(options)
    if args.view == "user":
        return await indexer.user_feed(args.address, options)
    return await indexer.personal_feed(args.address, options)


async def _main(config: IndexerConfig, args: argparse.Namespace) -> int:
    async with VerumIndexer.from_config(config) as indexer:
        result = await run(indexer, args)
    print(json.dumps(_jsonable(result), indent=2, default=str))
    return 0 if result.success else 1


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = IndexerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(config)
    config.log_config()

    try:
        code = asyncio.run(_main(config, args))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    sys.exit(code)


if __name__ == "__main__":
    main()
