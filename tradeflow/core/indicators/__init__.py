"""Technical indicators (pure math, no I/O)."""

from tradeflow.core.indicators.indicators import (
    EPSILON,
    RSI_DEFAULT,
    safe_divide,
    log_return,
    log_returns,
    rolling_std,
    rolling_std_series,
    sma,
    ema,
    rsi,
    macd,
    tsi,
    true_range,
    atr_ratio,
    bollinger_percent,
    momentum,
    volume_sma_ratio,
    ma_ratio,
    IndicatorCalculator,
)

__all__ = [
    "EPSILON",
    "RSI_DEFAULT",
    "safe_divide",
    "log_return",
    "log_returns",
    "rolling_std",
    "rolling_std_series",
    "sma",
    "ema",
    "rsi",
    "macd",
    "tsi",
    "true_range",
    "atr_ratio",
    "bollinger_percent",
    "momentum",
    "volume_sma_ratio",
    "ma_ratio",
    "IndicatorCalculator",
]
