"""Probability-to-exposure risk mapping.

The model's up-probability p is mapped to a signal 2p - 1 in [-1, 1].
Low-conviction signals inside the neutral zone produce no exposure;
otherwise the signal is scaled down when forecast volatility exceeds
the target (never scaled up) and clamped to the exposure limit.
"""

import math
from typing import Sequence

import numpy as np

from tradeflow.core.indicators import log_return
from tradeflow.core.models import Bar, RiskConfig


def compute_returns(bars: Sequence[Bar]) -> list[float]:
    """Log returns of consecutive closes (0 for the first bar or non-positive closes)."""
    returns = []
    for i, bar in enumerate(bars):
        if i == 0:
            returns.append(0.0)
            continue
        returns.append(log_return(bar.close, bars[i - 1].close))
    return returns


def compute_forecast_volatility(
    returns: Sequence[float],
    lookback: int,
    default: float = RiskConfig().volatility_target,
) -> float:
    """
    Sample standard deviation of the trailing ``lookback`` returns.

    Args:
        returns: Log returns, oldest first
        lookback: Number of trailing returns to use
        default: Returned when no return is available

    Returns:
        Forecast volatility (>= 0)
    """
    if len(returns) == 0 or lookback <= 0:
        return default

    window = np.asarray(returns[-lookback:], dtype=np.float64)
    n = len(window)
    mean = window.sum() / n
    variance = ((window - mean) ** 2).sum() / max(n - 1, 1)
    return math.sqrt(max(float(variance), 0.0))


class RiskMapper:
    """Maps a probability and a volatility forecast to a bounded exposure."""

    def __init__(self, config: RiskConfig | None = None):
        self.config = config or RiskConfig()

    def map(self, probability: float, forecast_volatility: float) -> float:
        """
        Convert a model probability into an exposure.

        Args:
            probability: Probability that the next bar closes higher
            forecast_volatility: Trailing return volatility estimate

        Returns:
            Exposure in [-max_exposure, max_exposure]
        """
        cfg = self.config

        if math.isnan(probability) or math.isnan(forecast_volatility):
            return 0.0

        clipped = min(max(probability, 0.0), 1.0)
        signal = clipped * 2 - 1

        if abs(signal) < cfg.neutral_zone:
            return 0.0

        vol = max(forecast_volatility, cfg.volatility_floor)
        scale = min(cfg.volatility_target / vol, 1.0)

        return max(-cfg.max_exposure, min(cfg.max_exposure, signal * scale))

    def forecast_volatility(self, returns: Sequence[float], lookback: int) -> float:
        """Forecast volatility, defaulting to the configured target on empty history."""
        return compute_forecast_volatility(
            returns, lookback, default=self.config.volatility_target
        )


def apply_risk_map(
    probability: float,
    forecast_volatility: float,
    config: RiskConfig | None = None,
) -> float:
    """Functional form of ``RiskMapper.map``."""
    return RiskMapper(config).map(probability, forecast_volatility)
