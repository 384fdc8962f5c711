"""Tests for the KuCoin REST client."""

import httpx
import pytest

from tradeflow.app.clients import KucoinRestClient, RateLimiter, to_millis

BASE_NS = 1_700_000_000_000 * 1_000_000


def make_item(seq: int, time_ns: int, price: str = "100.5", side: str = "buy") -> dict:
    return {
        "sequence": str(seq),
        "price": price,
        "size": "0.25",
        "side": side,
        "time": time_ns,
    }


class FakeHistory:
    """Serves /api/v1/market/histories newest first, honouring limit and endAt."""

    def __init__(self, items: list[dict]):
        self.items = sorted(items, key=lambda i: i["time"], reverse=True)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        assert request.url.path == "/api/v1/market/histories"

        limit = int(request.url.params["limit"])
        end_at = request.url.params.get("endAt")
        items = self.items
        if end_at is not None:
            items = [i for i in items if i["time"] <= int(end_at)]
        return httpx.Response(200, json={"code": "200000", "data": items[:limit]})


def make_client(handler) -> KucoinRestClient:
    client = KucoinRestClient(
        base_url="https://kucoin.test",
        timeout_ms=1_000,
        transport=httpx.MockTransport(handler),
    )
    client.rate_limiter = RateLimiter(calls_per_minute=600_000)
    return client


class TestToMillis:
    """Tests for timestamp normalization."""

    def test_nanoseconds(self):
        assert to_millis(BASE_NS) == 1_700_000_000_000

    def test_milliseconds_unchanged(self):
        assert to_millis(1_700_000_000_000) == 1_700_000_000_000


class TestFetchBatch:
    """Tests for a single history request."""

    @pytest.mark.asyncio
    async def test_parses_trades(self):
        history = FakeHistory([make_item(1, BASE_NS, price="101.25", side="sell")])
        client = make_client(history)

        batch = await client.fetch_batch("BTC-USDT", 10)
        await client.close()

        raw_time, trade = batch[0]
        assert raw_time == BASE_NS
        assert trade.sequence_id == "1"
        assert trade.price == 101.25
        assert trade.size == 0.25
        assert trade.side == "sell"
        assert trade.timestamp_ms == 1_700_000_000_000

        params = history.requests[0].url.params
        assert params["symbol"] == "BTC-USDT"
        assert params["limit"] == "10"
        assert "endAt" not in params

    @pytest.mark.asyncio
    async def test_limit_capped(self):
        history = FakeHistory([])
        client = make_client(history)

        await client.fetch_batch("BTC-USDT", 2_000)
        await client.close()

        assert history.requests[0].url.params["limit"] == "500"

    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        client = make_client(lambda request: httpx.Response(503, json={}))

        with pytest.raises(httpx.HTTPStatusError):
            await client.fetch_batch("BTC-USDT", 10)
        await client.close()


class TestFetchRecentTrades:
    """Tests for paginated history."""

    @pytest.mark.asyncio
    async def test_pages_backwards_until_count(self):
        items = [make_item(i, BASE_NS + i * 1_000_000_000) for i in range(1_200)]
        history = FakeHistory(items)
        client = make_client(history)

        trades = await client.fetch_recent_trades("BTC-USDT", 1_100)
        await client.close()

        assert len(trades) == 1_100
        assert len(history.requests) == 3
        # Newest 1100 trades, oldest first
        assert trades[0].sequence_id == "100"
        assert trades[-1].sequence_id == "1199"
        assert [t.timestamp_ms for t in trades] == sorted(t.timestamp_ms for t in trades)

        second = history.requests[1].url.params
        assert int(second["endAt"]) == BASE_NS + 700 * 1_000_000_000 - 1
        assert history.requests[2].url.params["limit"] == "100"

    @pytest.mark.asyncio
    async def test_stops_on_short_batch(self):
        history = FakeHistory([make_item(i, BASE_NS + i) for i in range(30)])
        client = make_client(history)

        trades = await client.fetch_recent_trades("BTC-USDT", 500)
        await client.close()

        assert len(trades) == 30
        assert len(history.requests) == 1

    @pytest.mark.asyncio
    async def test_stops_on_empty_batch(self):
        history = FakeHistory([])
        client = make_client(history)

        assert await client.fetch_recent_trades("BTC-USDT", 10) == []
        await client.close()

    @pytest.mark.asyncio
    async def test_deduplicates_sequences(self):
        pages = [
            [make_item(3, BASE_NS + 3_000_000), make_item(2, BASE_NS + 2_000_000)],
            [make_item(2, BASE_NS + 2_000_000), make_item(1, BASE_NS + 1_000_000)],
            [],
        ]
        calls = iter(pages)

        def handler(request):
            return httpx.Response(200, json={"code": "200000", "data": next(calls)})

        client = make_client(handler)
        client.MAX_BATCH_SIZE = 2

        trades = await client.fetch_recent_trades("BTC-USDT", 3)
        await client.close()

        assert [t.sequence_id for t in trades] == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_rejects_non_positive_count(self):
        client = make_client(FakeHistory([]))

        with pytest.raises(ValueError):
            await client.fetch_recent_trades("BTC-USDT", 0)
