"""Exchange API clients."""

from tradeflow.app.clients.kucoin_rest import KucoinRestClient, RateLimiter, to_millis

__all__ = ["KucoinRestClient", "RateLimiter", "to_millis"]
