"""Trade-to-bar aggregation.

Buckets a trade stream into fixed-duration OHLCV bars.

Aggregation rules:
- Trades are processed in timestamp order (stable for equal timestamps)
- Bucket start is aligned to floor(timestamp / interval) * interval
- Only buckets containing at least one trade produce a bar (gaps are not filled)

This is the only place where ordering and bucket alignment are decided;
everything downstream assumes bars are time-ordered and gap-tolerant.
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Sequence

from tradeflow.core.models import Bar, Trade, SIDE_BUY, SIDE_SELL

logger = logging.getLogger(__name__)

# Guards vwap against empty-volume buckets
MIN_VOLUME = 1e-12

# Decimal places kept for volume, notional and vwap
VALUE_PRECISION = 8


def bucket_start(timestamp_ms: int, interval_ms: int) -> int:
    """Get the aligned bucket start for a timestamp."""
    return (timestamp_ms // interval_ms) * interval_ms


def is_valid_trade(trade: Trade) -> bool:
    """Check that a trade has a finite positive price and size and a known side."""
    return (
        math.isfinite(trade.price)
        and math.isfinite(trade.size)
        and trade.price > 0
        and trade.size > 0
        and trade.side in (SIDE_BUY, SIDE_SELL)
    )


def filter_valid_trades(trades: Iterable[Trade]) -> list[Trade]:
    """Drop malformed trades before aggregation."""
    valid = []
    dropped = 0
    for trade in trades:
        if is_valid_trade(trade):
            valid.append(trade)
        else:
            dropped += 1

    if dropped:
        logger.warning(f"Dropped {dropped} malformed trade(s) before aggregation")
    return valid


@dataclass(slots=True)
class _BarAccumulator:
    """Running OHLCV state for the bucket currently being filled."""

    start_time: int
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

    @classmethod
    def seed(cls, start_time: int, end_time: int, trade: Trade) -> "_BarAccumulator":
        return cls(
            start_time=start_time,
            end_time=end_time,
            open=trade.price,
            high=trade.price,
            low=trade.price,
            close=trade.price,
            volume=trade.size,
            buy_volume=trade.size if trade.is_buy else 0.0,
            sell_volume=0.0 if trade.is_buy else trade.size,
            notional=trade.notional,
            trade_count=1,
        )

    def add(self, trade: Trade) -> None:
        self.high = max(self.high, trade.price)
        self.low = min(self.low, trade.price)
        self.close = trade.price
        self.volume += trade.size
        self.notional += trade.notional
        self.trade_count += 1
        if trade.is_buy:
            self.buy_volume += trade.size
        else:
            self.sell_volume += trade.size

    def to_bar(self) -> Bar:
        return Bar(
            start_time=self.start_time,
            end_time=self.end_time,
            open=self.open,
            high=self.high,
            low=self.low,
            close=self.close,
            volume=round(self.volume, VALUE_PRECISION),
            buy_volume=round(self.buy_volume, VALUE_PRECISION),
            sell_volume=round(self.sell_volume, VALUE_PRECISION),
            notional=round(self.notional, VALUE_PRECISION),
            trade_count=self.trade_count,
            vwap=round(self.notional / max(self.volume, MIN_VOLUME), VALUE_PRECISION),
        )


def aggregate(
    trades: Sequence[Trade],
    interval_ms: int,
    max_bars: int | None = None,
) -> list[Bar]:
    """
    Aggregate trades into fixed-duration bars.

    Args:
        trades: Trades in any order
        interval_ms: Bar duration in milliseconds
        max_bars: Keep only the most recent ``max_bars`` bars

    Returns:
        Time-ordered bars, one per non-empty bucket
    """
    if interval_ms <= 0:
        raise ValueError(f"interval_ms must be positive, got {interval_ms}")

    if not trades:
        return []

    # sorted() is stable: equal timestamps keep their arrival order
    ordered = sorted(trades, key=lambda t: t.timestamp_ms)

    bars: list[Bar] = []
    start = bucket_start(ordered[0].timestamp_ms, interval_ms)
    end = start + interval_ms
    accumulator: _BarAccumulator | None = None

    for trade in ordered:
        if trade.timestamp_ms >= end:
            if accumulator is not None:
                bars.append(accumulator.to_bar())
                accumulator = None
            # Jump over empty buckets in whole intervals
            start = bucket_start(trade.timestamp_ms, interval_ms)
            end = start + interval_ms

        if accumulator is None:
            accumulator = _BarAccumulator.seed(start, end, trade)
        else:
            accumulator.add(trade)

    if accumulator is not None:
        bars.append(accumulator.to_bar())

    if max_bars and len(bars) > max_bars:
        bars = bars[-max_bars:]

    return bars


class BarAggregator:
    """Aggregates trade streams into bars of a fixed interval.

    Usage:
        aggregator = BarAggregator(interval_ms=60_000, max_bars=500)
        bars = aggregator.aggregate(trades)
    """

    def __init__(self, interval_ms: int, max_bars: int | None = None):
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        self.interval_ms = interval_ms
        self.max_bars = max_bars

    def aggregate(self, trades: Sequence[Trade]) -> list[Bar]:
        """Aggregate trades into bars using this aggregator's interval."""
        bars = aggregate(trades, self.interval_ms, self.max_bars)
        logger.debug(
            f"Aggregated {len(trades)} trades into {len(bars)} bars "
            f"(interval={self.interval_ms}ms)"
        )
        return bars
