"""
In-memory ledger for testing and local development.

InMemoryLedger is both a LedgerFetcher and a submit adapter: submitted
payloads become transactions that later fetches return, so the writer
and the reconstructor can be exercised end to end.

Invariants:
    - All data is lost on process exit
    - Address pages are newest first, like the production API
    - Generated transaction ids are 64 lowercase hex characters

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with LedgerFetcher
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from verum_protocol import ContentPayload, decode_bytes, encode_payload

from .base import (
    LedgerConnectionError,
    RawTransaction,
    TransactionNotFoundError,
    TransactionOutput,
)

logger = logging.getLogger(__name__)

SubmitPredicate = Callable[[Optional[ContentPayload]], bool]


@dataclass
class _Stored:
    tx: RawTransaction
    sequence: int


class InMemoryLedger:
    """In-memory implementation of LedgerFetcher and the submit adapter.

    Failure injection:
        - ``fail_next(n)``: the next n submits raise LedgerConnectionError
        - ``fail_on(predicate)``: submits whose decoded payload matches fail
        - ``fail_fetches(n)``: the next n fetch calls raise LedgerConnectionError

    Example:
        >>> ledger = InMemoryLedger()
        >>> tx_id = await ledger.submit(encode_payload(payload), sender=address)
        >>> tx = await ledger.get_transaction(tx_id)
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        """Initialize the ledger.

        Args:
            clock: Source of block times (unix seconds)
        """
        self._clock = clock
        self._transactions: Dict[str, _Stored] = {}
        self._sequence = 0
        self._lock = asyncio.Lock()
        self._fail_submits = 0
        self._fail_fetches = 0
        self._fail_predicate: Optional[SubmitPredicate] = None
        self.submitted: List[str] = []
        self.submit_attempts = 0

    def add(self, tx: RawTransaction) -> RawTransaction:
        """Store a transaction as-is. Replaces any transaction with the same id."""
        self._sequence += 1
        self._transactions[tx.id] = _Stored(tx=tx, sequence=self._sequence)
        return tx

    def add_payload(
        self,
        sender: str,
        payload: ContentPayload | bytes,
        block_time: Optional[int] = None,
        tx_id: Optional[str] = None,
    ) -> RawTransaction:
        """Wrap a payload into a new transaction and store it.

        Args:
            sender: Author address
            payload: Payload or already encoded bytes
            block_time: Confirmation time; defaults to the ledger clock
            tx_id: Transaction id; generated when omitted

        Returns:
            The stored transaction
        """
        data = payload if isinstance(payload, bytes) else encode_payload(payload)
        tx = RawTransaction(
            id=tx_id or self._next_id(data),
            block_time=int(self._clock()) if block_time is None else block_time,
            outputs=[TransactionOutput(amount=0, script=data.hex(), address=sender)],
            sender_address=sender,
        )
        return self.add(tx)

    def remove(self, tx_id: str) -> bool:
        return self._transactions.pop(tx_id, None) is not None

    def fail_next(self, count: int = 1) -> None:
        self._fail_submits = count

    def fail_on(self, predicate: Optional[SubmitPredicate]) -> None:
        self._fail_predicate = predicate

    def fail_fetches(self, count: int = 1) -> None:
        self._fail_fetches = count

    def clear_failures(self) -> None:
        self._fail_submits = 0
        self._fail_fetches = 0
        self._fail_predicate = None

    async def submit(self, payload: bytes, sender: str) -> str:
        """Publish an encoded payload as a new transaction.

        Raises:
            LedgerConnectionError: When a failure was injected
        """
        async with self._lock:
            self.submit_attempts += 1
            if self._fail_submits > 0:
                self._fail_submits -= 1
                raise LedgerConnectionError("Injected submit failure")
            if self._fail_predicate is not None and self._fail_predicate(decode_bytes(payload)):
                raise LedgerConnectionError("Injected submit failure (predicate)")

            tx = self.add_payload(sender, payload)
            self.submitted.append(tx.id)
            logger.debug(f"Submitted transaction {tx.id}", extra={"sender": sender})
            return tx.id

    async def get_transactions_by_address(
        self,
        address: str,
        limit: int = 100,
        offset: int = 0,
    ) -> List[RawTransaction]:
        self._check_fetch()
        matching = [
            stored
            for stored in self._transactions.values()
            if stored.tx.sender_address == address
            or any(o.address == address for o in stored.tx.outputs)
        ]
        return [s.tx for s in self._newest_first(matching)[offset : offset + limit]]

    async def get_transaction(self, tx_id: str) -> RawTransaction:
        self._check_fetch()
        stored = self._transactions.get(tx_id)
        if stored is None:
            raise TransactionNotFoundError(tx_id)
        return stored.tx

    async def get_recent_transactions(self, limit: int = 100) -> List[RawTransaction]:
        self._check_fetch()
        return [s.tx for s in self._newest_first(self._transactions.values())[:limit]]

    async def close(self) -> None:
        """Close (no-op for in-memory)."""
        logger.debug("InMemoryLedger closed")

    def __len__(self) -> int:
        return len(self._transactions)

    def _check_fetch(self) -> None:
        if self._fail_fetches > 0:
            self._fail_fetches -= 1
            raise LedgerConnectionError("Injected fetch failure")

    def _next_id(self, data: bytes) -> str:
        seed = f"{self._sequence}:{len(self._transactions)}:".encode("utf-8") + data
        candidate = hashlib.sha256(seed).hexdigest()
        while candidate in self._transactions:
            candidate = hashlib.sha256(candidate.encode("utf-8")).hexdigest()
        return candidate

    @staticmethod
    def _newest_first(stored) -> List[_Stored]:
        return sorted(stored, key=lambda s: (s.tx.confirmed_at or 0, s.sequence), reverse=True)
