"""
Base protocol and types for ledger access.

This module defines the LedgerFetcher protocol every ledger backend
implements, along with the raw transaction types and fetch errors.

Invariants:
    - RawTransaction is immutable and owned by the ledger; the indexer
      only reads it
    - Transaction ids are unique and serve as dedup keys
    - ``sender_address`` is resolved by the backend; None means unknown,
      never a guess

How to change safely:
    - Protocol changes require updating all implementations
    - Add new methods as optional with default implementations
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Protocol,
    runtime_checkable,
    TYPE_CHECKING,
)
import logging

if TYPE_CHECKING:
    from ..config import LedgerConfig
    from ..retry import RetryPolicy

logger = logging.getLogger(__name__)

# Block times above this are milliseconds
_MILLIS_THRESHOLD = 1_000_000_000_000


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class LedgerConnectionError(LedgerError):
    """Connection to the ledger API failed."""
    pass


class LedgerTimeoutError(LedgerError):
    """Ledger request timed out."""
    pass


class TransactionNotFoundError(LedgerError):
    """The requested transaction does not exist."""

    def __init__(self, tx_id: str) -> None:
        super().__init__(f"Transaction not found: {tx_id}")
        self.tx_id = tx_id


@dataclass(frozen=True)
class TransactionInput:
    """Reference to a previous output being spent.

    Attributes:
        previous_tx_id: Transaction holding the spent output
        index: Output index within that transaction
        address: Resolved address of the spent output, if known
    """
    previous_tx_id: str
    index: int = 0
    address: Optional[str] = None


@dataclass(frozen=True)
class TransactionOutput:
    """A transaction output.

    Attributes:
        amount: Output value in the ledger's smallest unit
        script: Hex encoded script bytes, where protocol payloads live
        address: Resolved destination address, if known
    """
    amount: int
    script: str
    address: Optional[str] = None


@dataclass(frozen=True)
class RawTransaction:
    """A transaction as supplied by the ledger.

    Attributes:
        id: 64-hex transaction id
        block_time: Confirmation time as reported (seconds or milliseconds)
        inputs: Spent outputs
        outputs: Created outputs
        sender_address: Author address resolved by the backend
    """
    id: str
    block_time: Optional[int]
    inputs: List[TransactionInput] = field(default_factory=list)
    outputs: List[TransactionOutput] = field(default_factory=list)
    sender_address: Optional[str] = None

    @property
    def confirmed_at(self) -> Optional[int]:
        """Confirmation time normalized to unix seconds."""
        if self.block_time is None:
            return None
        if self.block_time > _MILLIS_THRESHOLD:
            return self.block_time // 1000
        return self.block_time

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "block_time": self.block_time,
            "sender_address": self.sender_address,
            "inputs": [
                {"previous_tx_id": i.previous_tx_id, "index": i.index, "address": i.address}
                for i in self.inputs
            ],
            "outputs": [
                {"amount": o.amount, "script": o.script, "address": o.address}
                for o in self.outputs
            ],
        }


@runtime_checkable
class LedgerFetcher(Protocol):
    """Protocol for ledger read backends.

    Every call is a suspension point and carries its own timeout; backends
    raise LedgerError subclasses and the reconstructor turns those into
    failure results.

    Example:
        >>> fetcher = HttpLedgerFetcher(config.ledger)
        >>> txs = await fetcher.get_transactions_by_address(address, limit=50)
    """

    @abstractmethod
    async def get_transactions_by_address(
        self,
        address: str,
        limit: int = 100,
        offset: int = 0,
    ) -> List[RawTransaction]:
        """Fetch one page of an address's transactions, newest first.

        Raises:
            LedgerError: If the page cannot be fetched
        """
        ...

    @abstractmethod
    async def get_transaction(self, tx_id: str) -> RawTransaction:
        """Fetch one transaction by id.

        Raises:
            TransactionNotFoundError: If no such transaction exists
            LedgerError: If the request fails
        """
        ...

    @abstractmethod
    async def get_recent_transactions(self, limit: int = 100) -> List[RawTransaction]:
        """Fetch the network's most recent transactions.

        Raises:
            LedgerError: If the request fails
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release any held resources."""
        ...


async def fetch_address_history(
    fetcher: LedgerFetcher,
    address: str,
    page_size: int = 100,
    max_history: int = 1000,
) -> List[RawTransaction]:
    """Page through an address's history up to ``max_history`` transactions.

    Stops at the first short page. Duplicate ids across pages are dropped.

    Raises:
        LedgerError: If any page fails
    """
    seen: set[str] = set()
    history: List[RawTransaction] = []
    offset = 0
    while len(history) < max_history:
        limit = min(page_size, max_history - len(history))
        page = await fetcher.get_transactions_by_address(address, limit=limit, offset=offset)
        for tx in page:
            if tx.id not in seen:
                seen.add(tx.id)
                history.append(tx)
        if len(page) < limit:
            break
        offset += len(page)
    return history[:max_history]


def create_fetcher(config: LedgerConfig, retry: Optional[RetryPolicy] = None) -> LedgerFetcher:
    """Factory function to create the HTTP ledger fetcher.

    Args:
        config: Ledger API configuration
        retry: Retry policy for transient fetch failures

    Returns:
        LedgerFetcher talking to ``config.api_url``
    """
    from .http import HttpLedgerFetcher

    logger.info(
        "Creating ledger fetcher",
        extra={"api_url": config.api_url, "network": config.network.value},
    )
    return HttpLedgerFetcher(config, retry=retry)
