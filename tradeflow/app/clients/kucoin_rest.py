"""KuCoin REST API client for fetching recent trade history."""

import asyncio
import logging
from typing import Any

import httpx

from tradeflow.core.models import Trade

logger = logging.getLogger(__name__)

# KuCoin reports trade time in nanoseconds
NANOS_PER_MILLI = 1_000_000

# Anything above this cannot be a millisecond timestamp
_MAX_MILLIS = 10**14


class RateLimiter:
    """Simple rate limiter for API calls."""

    def __init__(self, calls_per_minute: int = 600):
        self.calls_per_minute = calls_per_minute
        self.interval = 60.0 / calls_per_minute
        self.last_call = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait if necessary to respect rate limit."""
        async with self._lock:
            loop = asyncio.get_running_loop()
            wait_time = self.last_call + self.interval - loop.time()
            if wait_time > 0:
                await asyncio.sleep(wait_time)
            self.last_call = loop.time()


def to_millis(raw_time: int) -> int:
    """Normalize an exchange timestamp (ns or ms) to milliseconds."""
    raw_time = int(raw_time)
    if raw_time > _MAX_MILLIS:
        return raw_time // NANOS_PER_MILLI
    return raw_time


class KucoinRestClient:
    """KuCoin spot market REST client."""

    BASE_URL = "https://api.kucoin.com"
    MAX_BATCH_SIZE = 500

    def __init__(
        self,
        base_url: str | None = None,
        timeout_ms: int = 10_000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or self.BASE_URL
        self.timeout = timeout_ms / 1000
        self.rate_limiter = RateLimiter()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(
        self, method: str, endpoint: str, params: dict[str, Any] | None = None
    ) -> Any:
        """Make an API request with rate limiting."""
        await self.rate_limiter.acquire()
        client = await self._get_client()
        response = await client.request(method, endpoint, params=params)
        response.raise_for_status()
        return response.json()

    async def fetch_batch(
        self,
        symbol: str,
        limit: int,
        end_at: int | None = None,
    ) -> list[tuple[int, Trade]]:
        """
        Fetch one page of trade history.

        Args:
            symbol: Trading pair (e.g., "BTC-USDT")
            limit: Maximum number of trades (capped at 500)
            end_at: Only trades strictly before this exchange time

        Returns:
            List of (raw exchange time, Trade), in the order returned by the API
        """
        params: dict[str, Any] = {
            "symbol": symbol,
            "limit": min(limit, self.MAX_BATCH_SIZE),
        }
        if end_at:
            params["endAt"] = end_at

        body = await self._request("GET", "/api/v1/market/histories", params)
        data = body.get("data") or []
        logger.debug(f"KuCoin returned {len(data)} trades for {symbol} (code={body.get('code')})")

        batch = []
        for item in data:
            raw_time = int(item["time"])
            batch.append(
                (
                    raw_time,
                    Trade(
                        sequence_id=str(item["sequence"]),
                        price=float(item["price"]),
                        size=float(item["size"]),
                        side=item["side"],
                        timestamp_ms=to_millis(raw_time),
                    ),
                )
            )
        return batch

    async def fetch_recent_trades(
        self,
        symbol: str,
        desired_count: int = MAX_BATCH_SIZE,
    ) -> list[Trade]:
        """
        Fetch up to ``desired_count`` recent trades, paging backwards in time.

        Trades are de-duplicated on their sequence id.

        Returns:
            Trades sorted by timestamp (oldest first)
        """
        if desired_count <= 0:
            raise ValueError("desired_count must be positive")

        collected: list[Trade] = []
        seen: set[str] = set()
        remaining = desired_count
        end_at: int | None = None

        while remaining > 0:
            request_limit = min(remaining, self.MAX_BATCH_SIZE)
            batch = await self.fetch_batch(symbol, request_limit, end_at)
            if not batch:
                break

            for _, trade in batch:
                if trade.sequence_id not in seen:
                    collected.append(trade)
                    seen.add(trade.sequence_id)

            remaining = desired_count - len(collected)

            if len(batch) < request_limit:
                break

            oldest_time = min(raw for raw, _ in batch)
            end_at = oldest_time - 1

        collected.sort(key=lambda t: t.timestamp_ms)
        logger.info(f"Fetched {len(collected)} trades for {symbol}")
        return collected
