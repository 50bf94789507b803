"""
Unit tests for HttpLedgerFetcher.

All HTTP traffic goes through httpx.MockTransport.
"""

import httpx
import pytest

from verum_index import (
    HttpLedgerFetcher,
    LedgerConfig,
    LedgerConnectionError,
    LedgerError,
    RetryPolicy,
    TransactionNotFoundError,
)

TX_ID = "ab" * 32
SENDER = "kaspa:" + "s" * 61


def api_transaction(tx_id=TX_ID, **overrides):
    data = {
        "transaction_id": tx_id,
        "block_time": 1_730_000_000_000,
        "inputs": [
            {
                "previous_outpoint": {"transaction_id": "cd" * 32, "index": 1},
                "previous_outpoint_address": SENDER,
            }
        ],
        "outputs": [
            {"amount": 0, "script_public_key": {"version": 0, "script": "7b7d"}},
        ],
    }
    data.update(overrides)
    return data


class Api:
    """Scripted handler recording every request."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_fetcher(api, sleeps, **config):
    return HttpLedgerFetcher(
        LedgerConfig(api_url="https://api.test", **config),
        retry=RetryPolicy(max_attempts=3),
        transport=httpx.MockTransport(api),
        sleep=sleeps,
    )


class TestGetTransaction:
    """Single transaction lookups."""

    @pytest.mark.asyncio
    async def test_maps_response(self, sleeps):
        """API fields map onto RawTransaction."""
        api = Api([httpx.Response(200, json=api_transaction())])

        async with make_fetcher(api, sleeps) as fetcher:
            tx = await fetcher.get_transaction(TX_ID)

        assert tx.id == TX_ID
        assert tx.confirmed_at == 1_730_000_000
        assert tx.sender_address == SENDER
        assert tx.inputs[0].previous_tx_id == "cd" * 32
        assert tx.outputs[0].script == "7b7d"
        assert api.requests[0].url.path == f"/transactions/{TX_ID}"

    @pytest.mark.asyncio
    async def test_alternate_field_spellings(self, sleeps):
        """Older field names are accepted."""
        body = {
            "txid": TX_ID,
            "timestamp": 1_730_000_000,
            "inputs": [{"txid": "cd" * 32, "vout": 2, "address": SENDER}],
            "outputs": [{"value": 5, "scriptPubKey": "00ff"}],
        }
        api = Api([httpx.Response(200, json=body)])

        async with make_fetcher(api, sleeps) as fetcher:
            tx = await fetcher.get_transaction(TX_ID)

        assert tx.block_time == 1_730_000_000
        assert tx.inputs[0].index == 2
        assert tx.outputs[0].amount == 5
        assert tx.outputs[0].script == "00ff"
        assert tx.sender_address == SENDER

    @pytest.mark.asyncio
    async def test_not_found_is_not_retried(self, sleeps):
        """404 maps to TransactionNotFoundError on the first attempt."""
        api = Api([httpx.Response(404)])

        async with make_fetcher(api, sleeps) as fetcher:
            with pytest.raises(TransactionNotFoundError):
                await fetcher.get_transaction(TX_ID)
            assert len(api.requests) == 1

        assert sleeps.delays == []

    @pytest.mark.asyncio
    async def test_transaction_exists(self, sleeps):
        """Existence checks swallow only not-found."""
        api = Api([httpx.Response(200, json=api_transaction()), httpx.Response(404)])

        async with make_fetcher(api, sleeps) as fetcher:
            assert await fetcher.transaction_exists(TX_ID) is True
            assert await fetcher.transaction_exists(TX_ID) is False

    @pytest.mark.asyncio
    async def test_server_errors_are_retried(self, sleeps):
        """5xx responses and connection errors are retried."""
        api = Api(
            [
                httpx.Response(503),
                httpx.ConnectError("refused"),
                httpx.Response(200, json=api_transaction()),
            ]
        )

        async with make_fetcher(api, sleeps) as fetcher:
            tx = await fetcher.get_transaction(TX_ID)

        assert tx.id == TX_ID
        assert sleeps.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_server_errors_exhaust_retries(self, sleeps):
        """Persistent 5xx raises LedgerConnectionError."""
        api = Api([httpx.Response(500) for _ in range(3)])

        async with make_fetcher(api, sleeps) as fetcher:
            with pytest.raises(LedgerConnectionError):
                await fetcher.get_transaction(TX_ID)

        assert len(api.requests) == 3

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self, sleeps):
        """Other 4xx responses fail immediately."""
        api = Api([httpx.Response(400)])

        async with make_fetcher(api, sleeps) as fetcher:
            with pytest.raises(LedgerError):
                await fetcher.get_transaction(TX_ID)

        assert len(api.requests) == 1


class TestListings:
    """Address history and recent transactions."""

    @pytest.mark.asyncio
    async def test_malformed_items_are_skipped(self, sleeps):
        """A bad item does not fail the page."""
        body = {"transactions": [api_transaction(), {"inputs": []}, "junk"]}
        api = Api([httpx.Response(200, json=body)])

        async with make_fetcher(api, sleeps) as fetcher:
            txs = await fetcher.get_recent_transactions(limit=10)

        assert [tx.id for tx in txs] == [TX_ID]
        assert api.requests[0].url.params["limit"] == "10"

    @pytest.mark.asyncio
    async def test_bare_list_response(self, sleeps):
        """List responses may be a bare JSON array."""
        api = Api([httpx.Response(200, json=[api_transaction()])])

        async with make_fetcher(api, sleeps) as fetcher:
            txs = await fetcher.get_transactions_by_address(SENDER, limit=5, offset=10)

        assert len(txs) == 1
        assert api.requests[0].url.path == f"/addresses/{SENDER}/transactions"
        assert api.requests[0].url.params["offset"] == "10"

    @pytest.mark.asyncio
    async def test_iter_history_stops_at_short_page(self, sleeps):
        """Paging stops when a page comes back short."""
        full = [api_transaction(f"{i:064x}") for i in range(2)]
        short = [api_transaction(f"{9:064x}")]
        api = Api([httpx.Response(200, json=full), httpx.Response(200, json=short)])

        async with make_fetcher(api, sleeps, page_size=2) as fetcher:
            pages = [page async for page in fetcher.iter_address_history(SENDER)]

        assert [len(p) for p in pages] == [2, 1]
        assert [r.url.params["offset"] for r in api.requests] == ["0", "2"]

    @pytest.mark.asyncio
    async def test_unexpected_body(self, sleeps):
        """A scalar body is a ledger error."""
        api = Api([httpx.Response(200, json=42)])

        async with make_fetcher(api, sleeps) as fetcher:
            with pytest.raises(LedgerError):
                await fetcher.get_recent_transactions()
