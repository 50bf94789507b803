"""
HTTP ledger fetcher backed by the ledger REST API.

Endpoints:
    GET /addresses/{address}/transactions?limit=&offset=
    GET /transactions/{tx_id}
    GET /transactions/recent?limit=

Response bodies are mapped through pydantic models that accept both field
spellings the upstream API has used (``transaction_id``/``txid``,
``block_time``/``timestamp``, ``script_public_key.script``/``scriptPubKey``,
``amount``/``value``).

Invariants:
    - Each request carries its own timeout
    - Connection errors, timeouts and 5xx responses are retried under the
      shared RetryPolicy; 404 and other 4xx responses are not
    - A malformed item in a list response is skipped, never fatal
    - The sender address comes from the API; it is never derived locally
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from ..config import LedgerConfig
from ..retry import RetryPolicy
from .base import (
    LedgerConnectionError,
    LedgerError,
    LedgerTimeoutError,
    RawTransaction,
    TransactionInput,
    TransactionNotFoundError,
    TransactionOutput,
)

logger = logging.getLogger(__name__)


# --- Response Models ---


class ApiScript(BaseModel):
    """Script block of an output."""

    model_config = ConfigDict(extra="ignore")

    version: int | None = 0
    script: str = ""


class ApiOutpoint(BaseModel):
    """Previous output referenced by an input."""

    model_config = ConfigDict(extra="ignore")

    transaction_id: str = Field("", validation_alias=AliasChoices("transaction_id", "txid"))
    index: int | None = 0


class ApiInput(BaseModel):
    """Transaction input."""

    model_config = ConfigDict(extra="ignore")

    previous_outpoint: ApiOutpoint | None = None
    txid: str | None = None
    vout: int | None = None
    address: str | None = Field(
        None, validation_alias=AliasChoices("address", "previous_outpoint_address")
    )

    def to_input(self) -> TransactionInput:
        outpoint = self.previous_outpoint
        return TransactionInput(
            previous_tx_id=(outpoint.transaction_id if outpoint else "") or self.txid or "",
            index=(outpoint.index if outpoint else None) or self.vout or 0,
            address=self.address,
        )


class ApiOutput(BaseModel):
    """Transaction output."""

    model_config = ConfigDict(extra="ignore")

    amount: int | None = Field(0, validation_alias=AliasChoices("amount", "value"))
    script_public_key: ApiScript | str | None = None
    script_pub_key: str | None = Field(None, validation_alias="scriptPubKey")
    address: str | None = Field(
        None, validation_alias=AliasChoices("address", "script_public_key_address")
    )

    @property
    def script(self) -> str:
        if isinstance(self.script_public_key, ApiScript) and self.script_public_key.script:
            return self.script_public_key.script
        if isinstance(self.script_public_key, str) and self.script_public_key:
            return self.script_public_key
        return self.script_pub_key or ""

    def to_output(self) -> TransactionOutput:
        return TransactionOutput(amount=self.amount or 0, script=self.script, address=self.address)


class ApiTransaction(BaseModel):
    """Transaction as returned by the REST API."""

    model_config = ConfigDict(extra="ignore")

    transaction_id: str = Field(validation_alias=AliasChoices("transaction_id", "txid"))
    block_time: int | None = Field(None, validation_alias=AliasChoices("block_time", "timestamp"))
    inputs: list[ApiInput] | None = None
    outputs: list[ApiOutput] | None = None
    sender: str | None = Field(None, validation_alias=AliasChoices("sender", "sender_address"))

    def to_raw(self) -> RawTransaction:
        inputs = [i.to_input() for i in self.inputs or []]
        sender = self.sender or next((i.address for i in inputs if i.address), None)
        return RawTransaction(
            id=self.transaction_id,
            block_time=self.block_time,
            inputs=inputs,
            outputs=[o.to_output() for o in self.outputs or []],
            sender_address=sender,
        )


class ApiTransactionPage(BaseModel):
    """List response wrapper."""

    model_config = ConfigDict(extra="ignore")

    transactions: list[Any] = Field(default_factory=list)
    total: int | None = None


# --- Fetcher ---


class HttpLedgerFetcher:
    """LedgerFetcher over the ledger REST API.

    Example:
        >>> async with HttpLedgerFetcher(LedgerConfig()) as fetcher:
        ...     tx = await fetcher.get_transaction(tx_id)
    """

    def __init__(
        self,
        config: LedgerConfig,
        retry: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the fetcher.

        Args:
            config: Ledger API configuration
            retry: Retry policy for transient failures
            transport: Optional httpx transport (tests pass a MockTransport)
            sleep: Async sleep used between retries
        """
        self.config = config
        self.retry = retry or RetryPolicy()
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=config.api_url.rstrip("/"),
            timeout=httpx.Timeout(config.timeout_seconds),
            headers={"Accept": "application/json", "User-Agent": config.user_agent},
            transport=transport,
        )

    async def __aenter__(self) -> "HttpLedgerFetcher":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()
        logger.debug("HttpLedgerFetcher closed")

    async def get_transactions_by_address(
        self,
        address: str,
        limit: int = 100,
        offset: int = 0,
    ) -> list[RawTransaction]:
        data = await self._get_json(
            f"/addresses/{address}/transactions", params={"limit": limit, "offset": offset}
        )
        return self._parse_page(data)

    async def get_transaction(self, tx_id: str) -> RawTransaction:
        data = await self._get_json(f"/transactions/{tx_id}", not_found_id=tx_id)
        try:
            return ApiTransaction.model_validate(data).to_raw()
        except ValidationError as e:
            raise LedgerError(f"Malformed transaction {tx_id}: {e}") from e

    async def get_recent_transactions(self, limit: int = 100) -> list[RawTransaction]:
        data = await self._get_json("/transactions/recent", params={"limit": limit})
        return self._parse_page(data)

    async def transaction_exists(self, tx_id: str) -> bool:
        try:
            await self.get_transaction(tx_id)
        except TransactionNotFoundError:
            return False
        return True

    async def iter_address_history(self, address: str) -> AsyncIterator[list[RawTransaction]]:
        """Yield pages of an address's history up to ``max_history`` transactions."""
        fetched = 0
        while fetched < self.config.max_history:
            limit = min(self.config.page_size, self.config.max_history - fetched)
            page = await self.get_transactions_by_address(address, limit=limit, offset=fetched)
            if page:
                yield page
            if len(page) < limit:
                return
            fetched += len(page)

    async def _get_json(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        not_found_id: str | None = None,
    ) -> Any:
        async def attempt() -> Any:
            try:
                response = await self._client.get(path, params=params)
            except httpx.TimeoutException as e:
                raise LedgerTimeoutError(f"Timed out fetching {path}") from e
            except httpx.TransportError as e:
                raise LedgerConnectionError(f"Failed to fetch {path}: {e}") from e

            if response.status_code == 404 and not_found_id is not None:
                raise TransactionNotFoundError(not_found_id)
            if response.status_code >= 500:
                raise LedgerConnectionError(f"HTTP {response.status_code} from {path}")
            if response.status_code >= 400:
                raise LedgerError(f"HTTP {response.status_code} from {path}")

            try:
                return response.json()
            except ValueError as e:
                raise LedgerError(f"Invalid JSON from {path}") from e

        return await self.retry.run(
            attempt,
            retry_on=(LedgerConnectionError, LedgerTimeoutError),
            sleep=self._sleep,
        )

    def _parse_page(self, data: Any) -> list[RawTransaction]:
        if isinstance(data, list):
            items = data
        elif isinstance(data, dict):
            items = ApiTransactionPage.model_validate(data).transactions
        else:
            raise LedgerError("Unexpected transaction list response")
        transactions: list[RawTransaction] = []
        for item in items:
            try:
                transactions.append(ApiTransaction.model_validate(item).to_raw())
            except ValidationError as e:
                logger.warning(
                    f"Skipping malformed transaction in response: {e.error_count()} errors",
                    extra={"item_keys": sorted(item) if isinstance(item, dict) else None},
                )
        return transactions
