"""
Ledger access for the Verum indexer.

This module provides a pluggable read interface over the ledger:
- REST API via httpx (production)
- In-memory (tests and local development; also accepts submissions)

The ledger is the source of truth. Every view the indexer produces is
derived by replaying transactions fetched through this interface.

Invariants:
    - Backends raise LedgerError subclasses, never raw transport errors
    - Transaction ids are unique dedup keys
    - Sender addresses are resolved by the backend or left unknown

How to change safely:
    - New backends must implement the LedgerFetcher protocol
    - Keep field-spelling tolerance in the HTTP models when the API changes
"""

from .base import (
    LedgerConnectionError,
    LedgerError,
    LedgerFetcher,
    LedgerTimeoutError,
    RawTransaction,
    TransactionInput,
    TransactionNotFoundError,
    TransactionOutput,
    create_fetcher,
    fetch_address_history,
)
from .http import HttpLedgerFetcher
from .memory import InMemoryLedger

__all__ = [
    # Protocol and types
    "LedgerFetcher",
    "RawTransaction",
    "TransactionInput",
    "TransactionOutput",
    "LedgerError",
    "LedgerConnectionError",
    "LedgerTimeoutError",
    "TransactionNotFoundError",
    # Helpers
    "create_fetcher",
    "fetch_address_history",
    # Implementations
    "HttpLedgerFetcher",
    "InMemoryLedger",
]
