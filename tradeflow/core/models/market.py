"""Hot path market data models.

These models use:
- @dataclass(slots=True, frozen=True) for a small, immutable footprint
- float for prices and sizes
- integer Unix timestamps in milliseconds
"""

from dataclasses import dataclass
from typing import Literal

TradeSide = Literal["buy", "sell"]

SIDE_BUY = "buy"
SIDE_SELL = "sell"


@dataclass(slots=True, frozen=True)
class Trade:
    """A single executed trade as reported by the exchange."""

    sequence_id: str
    price: float
    size: float
    side: TradeSide
    timestamp_ms: int

    @property
    def notional(self) -> float:
        """Quote value of the trade (price * size)."""
        return self.price * self.size

    @property
    def is_buy(self) -> bool:
        return self.side == SIDE_BUY


@dataclass(slots=True, frozen=True)
class Bar:
    """OHLCV summary of all trades inside one fixed time bucket.

    ``start_time`` is aligned to ``floor(t / interval) * interval`` and
    ``end_time`` is exclusive.
    """

    start_time: int  # Unix timestamp in milliseconds
    end_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float
    buy_volume: float
    sell_volume: float
    notional: float
    trade_count: int
    vwap: float

    @property
    def interval_ms(self) -> int:
        return self.end_time - self.start_time

    @property
    def body(self) -> float:
        """Signed candle body (close - open)."""
        return self.close - self.open

    @property
    def range_size(self) -> float:
        """Get the full range (high - low) of the bar."""
        return self.high - self.low

    @property
    def upper_shadow(self) -> float:
        return self.high - max(self.open, self.close)

    @property
    def lower_shadow(self) -> float:
        return min(self.open, self.close) - self.low
