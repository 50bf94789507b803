"""
Profile and subscription reconstruction by replaying an address's history.

Replay rules:
    - The earliest START transaction anchors identity; without one the
      address is not registered (a normal not-found outcome)
    - The latest transaction becomes the last-activity pointer
    - POSTs and first story segments count as content
    - SUBSCRIBE/UNSUBSCRIBE events collapse per target, latest wins; the
      follow count is the number of active edges

Invariants:
    - Replay is deterministic for a given set of transactions regardless
      of fetch order; block-time ties break on the payload timestamp, then
      on the author's prev_tx_id links, then on transaction id
    - Follower counts are always 0: they need a network-wide index that
      per-address replay cannot provide
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from itertools import groupby
from typing import Dict, Iterable, List, Optional, Set

from verum_protocol import ProfileBody, TransactionType

from ..cache import TtlCache
from ..ledger.base import LedgerError
from ..results import (
    FETCH_FAILED,
    NOT_REGISTERED,
    BatchFailure,
    BatchResult,
    Pagination,
    Result,
)
from .transactions import ChainReader, ProtocolTransaction

logger = logging.getLogger(__name__)

FOLLOWERS_NOTE = "Follower lists require a network-wide index and are not available"

_SUBSCRIPTION_KINDS = (TransactionType.SUBSCRIBE, TransactionType.UNSUBSCRIBE)


@dataclass(frozen=True)
class UserProfile:
    """Profile derived from an address's history.

    Attributes:
        address: Ledger address
        nickname: Display name from the START payload
        avatar: Optional base64 avatar
        start_tx_id: Registration transaction
        last_tx_id: Latest protocol transaction by this address
        last_subscribe_tx_id: Latest SUBSCRIBE/UNSUBSCRIBE transaction
        post_count: POSTs plus stories (first segments)
        follower_count: Always 0, see FOLLOWERS_NOTE
        following_count: Active subscriptions
        created_at: Registration time
        updated_at: Time of last activity
    """

    address: str
    nickname: str
    avatar: Optional[str]
    start_tx_id: str
    last_tx_id: str
    last_subscribe_tx_id: Optional[str]
    post_count: int
    follower_count: int
    following_count: int
    created_at: int
    updated_at: int


@dataclass(frozen=True)
class Subscription:
    """One logical (subscriber, target) edge.

    Attributes:
        tx_id: The event that set the current state
        subscriber: Address that subscribed
        target: Address subscribed to
        timestamp: Time of the deciding event
        is_active: False once the latest event is an UNSUBSCRIBE
    """

    tx_id: str
    subscriber: str
    target: str
    timestamp: int
    is_active: bool


@dataclass(frozen=True)
class UserStats:
    """Activity counters for an address."""

    address: str
    post_count: int
    story_count: int
    comment_count: int
    like_count: int
    follower_count: int
    following_count: int
    total_engagement: int
    joined_at: int


def _claimed_time(tx: ProtocolTransaction) -> float:
    claimed = tx.payload.timestamp
    if isinstance(claimed, (int, float)) and not isinstance(claimed, bool):
        return claimed
    return 0


def _follow_links(group: List[ProtocolTransaction]) -> List[ProtocolTransaction]:
    """Order same-time transactions so each follows the one its prev_tx_id names."""
    if len(group) < 2:
        return group
    members = {tx.tx_id for tx in group}
    emitted: Set[str] = set()
    ordered: List[ProtocolTransaction] = []
    pending = list(group)
    while pending:
        # Falls back to id order when links are missing or circular
        ready = next(
            (
                tx
                for tx in pending
                if tx.payload.prev_tx_id not in members or tx.payload.prev_tx_id in emitted
            ),
            pending[0],
        )
        pending.remove(ready)
        emitted.add(ready.tx_id)
        ordered.append(ready)
    return ordered


def _chronological(txs: Iterable[ProtocolTransaction]) -> List[ProtocolTransaction]:
    by_time = sorted(txs, key=lambda tx: (tx.timestamp, _claimed_time(tx), tx.tx_id))
    ordered: List[ProtocolTransaction] = []
    for _, group in groupby(by_time, key=lambda tx: (tx.timestamp, _claimed_time(tx))):
        ordered.extend(_follow_links(list(group)))
    return ordered


def replay_subscriptions(
    subscriber: str, txs: Iterable[ProtocolTransaction]
) -> Dict[str, Subscription]:
    """Collapse subscription events to one edge per target, latest wins."""
    edges: Dict[str, Subscription] = {}
    for tx in _chronological(txs):
        if tx.kind not in _SUBSCRIPTION_KINDS:
            continue
        target = (tx.payload.content or "").strip()
        if not target:
            continue
        edges[target] = Subscription(
            tx_id=tx.tx_id,
            subscriber=subscriber,
            target=target,
            timestamp=tx.timestamp,
            is_active=tx.kind == TransactionType.SUBSCRIBE,
        )
    return edges


def replay_profile(address: str, txs: Iterable[ProtocolTransaction]) -> Optional[UserProfile]:
    """Build a profile from history. Returns None when there is no START."""
    ordered = _chronological(txs)
    start = next((tx for tx in ordered if tx.kind == TransactionType.START), None)
    if start is None:
        return None

    body = ProfileBody.from_content(start.payload.content)
    last = ordered[-1]
    post_count = sum(
        1 for tx in ordered if tx.kind == TransactionType.POST or tx.is_story_start
    )
    subscription_events = [tx for tx in ordered if tx.kind in _SUBSCRIPTION_KINDS]
    edges = replay_subscriptions(address, ordered)

    return UserProfile(
        address=address,
        nickname=body.nickname if body and body.nickname.strip() else "Unknown",
        avatar=body.avatar if body else None,
        start_tx_id=start.tx_id,
        last_tx_id=last.tx_id,
        last_subscribe_tx_id=subscription_events[-1].tx_id if subscription_events else None,
        post_count=post_count,
        follower_count=0,
        following_count=sum(1 for edge in edges.values() if edge.is_active),
        created_at=start.timestamp,
        updated_at=last.timestamp,
    )


def compute_stats(profile: UserProfile, txs: Iterable[ProtocolTransaction]) -> UserStats:
    counts = {kind: 0 for kind in TransactionType}
    story_count = 0
    for tx in txs:
        counts[tx.kind] += 1
        if tx.is_story_start:
            story_count += 1

    likes = counts[TransactionType.LIKE]
    comments = counts[TransactionType.COMMENT]
    return UserStats(
        address=profile.address,
        post_count=counts[TransactionType.POST],
        story_count=story_count,
        comment_count=comments,
        like_count=likes,
        follower_count=profile.follower_count,
        following_count=profile.following_count,
        total_engagement=likes + comments,
        joined_at=profile.created_at,
    )


class ProfileReconstructor:
    """Derives profiles, stats and follow edges from address histories.

    Example:
        >>> profiles = ProfileReconstructor(reader)
        >>> result = await profiles.get_profile("kaspa:qq...")
        >>> if result.success:
        ...     print(result.data.nickname, result.data.following_count)
    """

    def __init__(
        self,
        reader: ChainReader,
        cache: Optional[TtlCache] = None,
        batch_size: int = 10,
    ) -> None:
        self.reader = reader
        self.cache: TtlCache = cache or TtlCache(default_ttl=60.0)
        self.batch_size = batch_size

    async def get_profile(self, address: str) -> Result[UserProfile]:
        """Reconstruct one profile.

        Returns:
            The profile, a NOT_REGISTERED failure when the address has no
            START, or a FETCH_FAILED failure when its history is unavailable
        """
        key = f"profile:{address}"
        cached = self.cache.get(key)
        if cached is not None:
            return Result.ok(cached)

        try:
            history = await self.reader.history(address)
        except LedgerError as e:
            logger.warning(f"Failed to fetch history for {address}: {e}", extra={"address": address})
            return Result.fail(f"Failed to fetch user transactions: {e}", code=FETCH_FAILED)

        profile = replay_profile(address, history)
        if profile is None:
            return Result.fail("User not found - no START transaction", code=NOT_REGISTERED)

        self.cache.set(key, profile)
        return Result.ok(profile)

    async def get_profiles(self, addresses: List[str]) -> BatchResult[str, UserProfile]:
        """Reconstruct many profiles in concurrent groups of ``batch_size``.

        Each group completes before the next starts. Failures are reported
        per address without failing the batch.
        """
        batch: BatchResult[str, UserProfile] = BatchResult()
        for start in range(0, len(addresses), self.batch_size):
            group = addresses[start : start + self.batch_size]
            results = await asyncio.gather(*(self.get_profile(a) for a in group))
            for address, result in zip(group, results):
                if result.success and result.data is not None:
                    batch.successful.append(result.data)
                else:
                    batch.failed.append(BatchFailure(item=address, error=result.error or "unknown error"))
            batch.total_processed += len(group)
        return batch

    async def get_stats(self, address: str) -> Result[UserStats]:
        key = f"stats:{address}"
        cached = self.cache.get(key)
        if cached is not None:
            return Result.ok(cached)

        profile = await self.get_profile(address)
        if not profile.success or profile.data is None:
            return Result.fail(profile.error or "Failed to fetch user profile", code=profile.code)

        try:
            history = await self.reader.history(address)
        except LedgerError as e:
            return Result.fail(f"Failed to fetch user transactions: {e}", code=FETCH_FAILED)

        stats = compute_stats(profile.data, history)
        self.cache.set(key, stats)
        return Result.ok(stats)

    async def get_subscriptions(self, address: str) -> Result[Dict[str, Subscription]]:
        """Every logical edge from address, active or not, keyed by target."""
        try:
            history = await self.reader.history(address)
        except LedgerError as e:
            return Result.fail(f"Failed to fetch user transactions: {e}", code=FETCH_FAILED)
        return Result.ok(replay_subscriptions(address, history))

    async def get_following(
        self, address: str, limit: int = 50, offset: int = 0
    ) -> Result[List[Subscription]]:
        """Active subscriptions, most recent first, paginated."""
        edges = await self.get_subscriptions(address)
        if not edges.success or edges.data is None:
            return Result.fail(edges.error or "Failed to fetch following list", code=edges.code)

        active = sorted(
            (edge for edge in edges.data.values() if edge.is_active),
            key=lambda edge: (edge.timestamp, edge.tx_id),
            reverse=True,
        )
        page = active[offset : offset + limit]
        return Result.ok(
            page,
            pagination=Pagination(offset=offset, limit=limit, has_more=offset + limit < len(active)),
        )

    async def get_followers(
        self, address: str, limit: int = 50, offset: int = 0
    ) -> Result[List[Subscription]]:
        return Result.ok(
            [],
            pagination=Pagination(offset=offset, limit=limit, has_more=False),
            message=FOLLOWERS_NOTE,
        )

    async def subscription_status(
        self, subscriber: str, target: str
    ) -> Result[Optional[Subscription]]:
        """Current edge between two addresses, or None if there never was one."""
        edges = await self.get_subscriptions(subscriber)
        if not edges.success or edges.data is None:
            return Result.fail(edges.error or "Failed to fetch subscriptions", code=edges.code)
        return Result.ok(edges.data.get(target))

    async def is_following(self, subscriber: str, target: str) -> bool:
        status = await self.subscription_status(subscriber, target)
        return bool(status.success and status.data is not None and status.data.is_active)

    def invalidate(self, address: str) -> None:
        self.cache.invalidate(f"profile:{address}")
        self.cache.invalidate(f"stats:{address}")
