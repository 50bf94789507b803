"""
Ledger submit adapter interface.

Signing and broadcasting belong to the wallet. The SDK hands an encoded
payload and the sender address to a LedgerSubmitter and gets back the
resulting transaction id.

Invariants:
    - ``submit`` returns only after the ledger accepted the transaction
    - Transient failures raise SubmitError or a LedgerError

How to change safely:
    - Wallet bindings implement this protocol; nothing else in the SDK
      knows how transactions are signed
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Protocol, runtime_checkable


@runtime_checkable
class LedgerSubmitter(Protocol):
    """Publishes encoded protocol payloads.

    ``verum_index.InMemoryLedger`` implements this protocol for tests and
    local development.
    """

    @abstractmethod
    async def submit(self, payload: bytes, sender: str) -> str:
        """Publish one payload.

        Args:
            payload: Encoded payload bytes
            sender: Address paying for and authoring the transaction

        Returns:
            The new transaction id

        Raises:
            SubmitError: If the payload could not be published
        """
        ...
