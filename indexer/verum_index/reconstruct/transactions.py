"""
Decoded protocol transactions and the cached reader that produces them.

ChainReader is the only component that talks to the LedgerFetcher on the
read side. It decodes every fetched transaction and silently drops the
ones that carry no protocol payload.

Invariants:
    - A ProtocolTransaction always has a decoded payload
    - ``timestamp`` is unix seconds: confirmation time when the ledger
      reports one, otherwise the payload's own timestamp
    - Address history only contains transactions authored by that address
    - Fetch failures propagate as LedgerError; callers turn them into
      failure results
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from verum_protocol import ContentPayload, TransactionType, decode

from ..cache import TtlCache
from ..config import CacheConfig, LedgerConfig
from ..ledger.base import LedgerFetcher, RawTransaction, fetch_address_history

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProtocolTransaction:
    """A ledger transaction carrying a protocol payload.

    Attributes:
        tx_id: Transaction id
        timestamp: Unix seconds
        sender: Author address, None when the ledger could not resolve it
        payload: Decoded payload
        raw: The underlying ledger transaction
    """

    tx_id: str
    timestamp: int
    sender: Optional[str]
    payload: ContentPayload
    raw: RawTransaction = field(compare=False, repr=False)

    @property
    def kind(self) -> TransactionType:
        return self.payload.type

    @property
    def is_story_start(self) -> bool:
        return self.payload.is_first_segment


def parse_transaction(raw: RawTransaction) -> Optional[ProtocolTransaction]:
    """Decode a raw transaction. Returns None when it is not a protocol message."""
    payload = decode(raw)
    if payload is None:
        return None

    timestamp = raw.confirmed_at
    if timestamp is None:
        claimed = payload.timestamp
        valid_claim = isinstance(claimed, (int, float)) and not isinstance(claimed, bool)
        timestamp = int(claimed) if valid_claim else 0

    return ProtocolTransaction(
        tx_id=raw.id,
        timestamp=timestamp,
        sender=raw.sender_address,
        payload=payload,
        raw=raw,
    )


def parse_all(raws: List[RawTransaction]) -> List[ProtocolTransaction]:
    """Decode many transactions, skipping non-protocol ones and duplicate ids."""
    seen: set[str] = set()
    parsed: List[ProtocolTransaction] = []
    for raw in raws:
        if raw.id in seen:
            continue
        seen.add(raw.id)
        tx = parse_transaction(raw)
        if tx is None:
            logger.debug(f"Skipping non-protocol transaction {raw.id}")
            continue
        parsed.append(tx)
    return parsed


class ChainReader:
    """Fetches and decodes transactions, with short-lived caching.

    Example:
        >>> reader = ChainReader(fetcher)
        >>> history = await reader.history("kaspa:qq...")
        >>> [tx.kind for tx in history]
    """

    def __init__(
        self,
        fetcher: LedgerFetcher,
        ledger_config: Optional[LedgerConfig] = None,
        cache_config: Optional[CacheConfig] = None,
        cache: Optional[TtlCache] = None,
    ) -> None:
        """Initialize the reader.

        Args:
            fetcher: Ledger read backend
            ledger_config: Paging limits for address history
            cache_config: TTLs for transactions and the recent list
            cache: Cache instance; one is created from cache_config if omitted
        """
        self.fetcher = fetcher
        self.ledger_config = ledger_config or LedgerConfig()
        self.cache_config = cache_config or CacheConfig()
        self.cache: TtlCache = cache or TtlCache(
            default_ttl=self.cache_config.transaction_ttl_seconds,
            enabled=self.cache_config.enabled,
        )

    async def history(self, address: str) -> List[ProtocolTransaction]:
        """Protocol transactions authored by address, newest first.

        Raises:
            LedgerError: If the history cannot be fetched
        """
        key = f"history:{address}"
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        raws = await fetch_address_history(
            self.fetcher,
            address,
            page_size=self.ledger_config.page_size,
            max_history=self.ledger_config.max_history,
        )
        authored = [tx for tx in parse_all(raws) if tx.sender == address]
        logger.debug(
            f"Loaded history for {address}",
            extra={"address": address, "fetched": len(raws), "protocol": len(authored)},
        )
        self.cache.set(key, authored)
        return authored

    async def transaction(self, tx_id: str) -> Optional[ProtocolTransaction]:
        """One transaction by id; None when it carries no protocol payload.

        Raises:
            TransactionNotFoundError: If the ledger has no such transaction
            LedgerError: If the request fails
        """
        key = f"tx:{tx_id}"
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        tx = parse_transaction(await self.fetcher.get_transaction(tx_id))
        if tx is not None:
            self.cache.set(key, tx)
        return tx

    async def recent(self, limit: int) -> List[ProtocolTransaction]:
        """Network-wide recent protocol transactions, newest first.

        Raises:
            LedgerError: If the request fails
        """
        key = f"recent:{limit}"
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        recent = parse_all(await self.fetcher.get_recent_transactions(limit))
        self.cache.set(key, recent, ttl=self.cache_config.recent_ttl_seconds)
        return recent

    def invalidate_address(self, address: str) -> None:
        self.cache.invalidate(f"history:{address}")
        self.cache.invalidate_prefix("recent:")
