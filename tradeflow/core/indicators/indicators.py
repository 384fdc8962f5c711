"""Technical indicators for feature extraction.

Pure NumPy implementations. Every function returns a float64 array
aligned with its input (same length). Non-finite inputs are read as 0
and every division goes through ``safe_divide``, so no indicator
raises on degenerate data.

Conventions differ from TA-Lib on purpose:
- EMA is seeded with the first value (no SMA warmup, no NaN prefix)
- SMA is 0 (not NaN) before ``period`` values exist
- RSI is scaled to [0, 1] and defaults to 0.5 before it is defined
"""

import math
from typing import Sequence

import numpy as np

from tradeflow.core.models import Bar

# Denominators with a smaller magnitude are treated as zero
EPSILON = 1e-12

# Neutral RSI before ``period`` deltas exist
RSI_DEFAULT = 0.5

# RS used when there were no losses
RSI_MAX_RS = 100.0

ArrayLike = Sequence[float] | np.ndarray


def _as_array(values: ArrayLike) -> np.ndarray:
    """Convert to float64, replacing non-finite values with 0."""
    arr = np.asarray(values, dtype=np.float64)
    if arr.size == 0:
        return arr.reshape(0)
    return np.where(np.isfinite(arr), arr, 0.0)


def safe_divide(numerator: float, denominator: float, fallback: float = 0.0) -> float:
    """Divide, returning ``fallback`` for non-finite operands or a ~0 denominator."""
    if not math.isfinite(numerator) or not math.isfinite(denominator):
        return fallback
    if abs(denominator) < EPSILON:
        return fallback
    return numerator / denominator


def _ratio_minus_one(values: np.ndarray, bases: np.ndarray) -> np.ndarray:
    """``value / base - 1`` per element, 0 where the base is ~0."""
    result = np.zeros(len(values), dtype=np.float64)
    for i in range(len(values)):
        base = bases[i]
        if math.isfinite(base) and abs(base) >= EPSILON:
            result[i] = values[i] / base - 1.0
    return result


# =============================================================================
# Return / dispersion
# =============================================================================

def log_return(current_close: float, prev_close: float) -> float:
    """ln(current / previous), 0 when the previous close is not positive."""
    if prev_close <= 0 or current_close <= 0:
        return 0.0
    return math.log(current_close / prev_close)


def log_returns(closes: ArrayLike) -> np.ndarray:
    """Calculate per-bar log returns (the first value is always 0)."""
    arr = _as_array(closes)
    result = np.zeros(len(arr), dtype=np.float64)
    for i in range(1, len(arr)):
        result[i] = log_return(arr[i], arr[i - 1])
    return result


def rolling_std(values: ArrayLike, index: int, lookback: int) -> float:
    """
    Sample standard deviation of the trailing ``lookback`` values ending at ``index``.

    The window is shorter near the start of the series. The divisor is
    ``max(n - 1, 1)`` so a single value yields 0.
    """
    arr = _as_array(values)
    return _sample_std(arr[max(0, index - lookback + 1) : index + 1])


def _sample_std(window: np.ndarray) -> float:
    n = len(window)
    if n == 0:
        return 0.0
    mean = window.sum() / n
    variance = ((window - mean) ** 2).sum() / max(n - 1, 1)
    return math.sqrt(max(variance, 0.0))


def rolling_std_series(values: ArrayLike, lookback: int) -> np.ndarray:
    """Calculate ``rolling_std`` at every index."""
    arr = _as_array(values)
    lookback = max(lookback, 1)
    return np.array(
        [_sample_std(arr[max(0, i - lookback + 1) : i + 1]) for i in range(len(arr))],
        dtype=np.float64,
    )


# =============================================================================
# Moving averages
# =============================================================================

def sma(values: ArrayLike, period: int) -> np.ndarray:
    """
    Calculate Simple Moving Average.

    Args:
        values: Sequence of values
        period: SMA period

    Returns:
        Array of SMA values, 0 for indices before ``period - 1``
    """
    arr = _as_array(values)
    result = np.zeros(len(arr), dtype=np.float64)
    running = 0.0
    for i in range(len(arr)):
        running += arr[i]
        if i >= period:
            running -= arr[i - period]
        if i >= period - 1:
            result[i] = running / period
    return result


def ema(values: ArrayLike, period: int) -> np.ndarray:
    """
    Calculate Exponential Moving Average.

    alpha = 2 / (period + 1), seeded with the first value:
    ema[i] = alpha * v[i] + (1 - alpha) * ema[i - 1]

    Args:
        values: Sequence of values
        period: EMA period

    Returns:
        Array of EMA values (same length as input)
    """
    arr = _as_array(values)
    result = np.zeros(len(arr), dtype=np.float64)
    if len(arr) == 0:
        return result

    alpha = 2.0 / (period + 1)
    result[0] = arr[0]
    for i in range(1, len(arr)):
        result[i] = alpha * arr[i] + (1 - alpha) * result[i - 1]
    return result


# =============================================================================
# Oscillators
# =============================================================================

def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    rs = RSI_MAX_RS if avg_loss == 0 else avg_gain / avg_loss
    return 1.0 - 1.0 / (1.0 + rs)


def rsi(values: ArrayLike, period: int = 14) -> np.ndarray:
    """
    Calculate Relative Strength Index scaled to [0, 1].

    The first average gain/loss is the simple average of the first
    ``period`` deltas; afterwards Wilder smoothing is applied:
    avg = (avg * (period - 1) + current) / period

    Returns:
        Array of RSI values, 0.5 where RSI is not yet defined
    """
    arr = _as_array(values)
    n = len(arr)
    result = np.full(n, RSI_DEFAULT, dtype=np.float64)
    if n < 2:
        return result

    gain = 0.0
    loss = 0.0
    for i in range(1, min(period, n - 1) + 1):
        diff = arr[i] - arr[i - 1]
        if diff >= 0:
            gain += diff
        else:
            loss -= diff

    avg_gain = gain / period
    avg_loss = loss / period
    if period < n:
        result[period] = _rsi_from_averages(avg_gain, avg_loss)

    for i in range(period + 1, n):
        diff = arr[i] - arr[i - 1]
        current_gain = diff if diff > 0 else 0.0
        current_loss = -diff if diff < 0 else 0.0
        avg_gain = (avg_gain * (period - 1) + current_gain) / period
        avg_loss = (avg_loss * (period - 1) + current_loss) / period
        result[i] = _rsi_from_averages(avg_gain, avg_loss)

    return result


def macd(
    values: ArrayLike,
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Calculate MACD line and signal line.

    Returns:
        Tuple of (macd, signal) arrays
    """
    fast = ema(values, fast_period)
    slow = ema(values, slow_period)
    macd_line = fast - slow
    signal = ema(macd_line, signal_period)
    return macd_line, signal


def tsi(values: ArrayLike, long_period: int = 25, short_period: int = 13) -> np.ndarray:
    """
    Calculate True Strength Index.

    Momentum and absolute momentum are each smoothed twice
    (EMA at ``short_period``, then at ``long_period``);
    TSI = smoothed momentum / smoothed absolute momentum.
    """
    arr = _as_array(values)
    n = len(arr)
    if n < 2:
        return np.zeros(n, dtype=np.float64)

    momentum = np.zeros(n, dtype=np.float64)
    momentum[1:] = np.diff(arr)

    smoothed = ema(ema(momentum, short_period), long_period)
    smoothed_abs = ema(ema(np.abs(momentum), short_period), long_period)

    return np.array(
        [safe_divide(smoothed[i], smoothed_abs[i]) for i in range(n)],
        dtype=np.float64,
    )


# =============================================================================
# Range / volatility
# =============================================================================

def true_range(highs: ArrayLike, lows: ArrayLike, closes: ArrayLike) -> np.ndarray:
    """
    Calculate True Range.

    TR = max(high - low, abs(high - prev_close), abs(low - prev_close))

    The first bar uses its own close as the previous close.
    """
    h = _as_array(highs)
    l = _as_array(lows)
    c = _as_array(closes)
    result = np.zeros(len(h), dtype=np.float64)
    for i in range(len(h)):
        prev_close = c[i - 1] if i > 0 else c[i]
        result[i] = max(h[i] - l[i], abs(h[i] - prev_close), abs(l[i] - prev_close))
    return result


def atr_ratio(
    highs: ArrayLike,
    lows: ArrayLike,
    closes: ArrayLike,
    period: int = 14,
) -> np.ndarray:
    """
    Calculate ATR relative to price (ATR / close).

    ATR here is the EMA of True Range (alpha = 2 / (period + 1)),
    not Wilder's RMA.
    """
    c = _as_array(closes)
    atr_values = ema(true_range(highs, lows, c), period)
    return np.array(
        [safe_divide(atr_values[i], c[i]) for i in range(len(c))],
        dtype=np.float64,
    )


def bollinger_percent(values: ArrayLike, period: int = 20, deviation: float = 2.0) -> np.ndarray:
    """
    Calculate position of each value inside its Bollinger band.

    (value - SMA(period)) / (deviation * rolling stdev(period))
    """
    arr = _as_array(values)
    mid = sma(arr, period)
    std = rolling_std_series(arr, period)
    return np.array(
        [safe_divide(arr[i] - mid[i], deviation * std[i]) for i in range(len(arr))],
        dtype=np.float64,
    )


# =============================================================================
# Relative / momentum
# =============================================================================

def momentum(values: ArrayLike, lookback: int = 5) -> np.ndarray:
    """Calculate ``value[i] / value[i - lookback] - 1`` (0 before ``lookback``)."""
    arr = _as_array(values)
    bases = np.zeros(len(arr), dtype=np.float64)
    if lookback < len(arr):
        bases[lookback:] = arr[: len(arr) - lookback]
    return _ratio_minus_one(arr, bases)


def volume_sma_ratio(volumes: ArrayLike, period: int = 20) -> np.ndarray:
    """Calculate ``volume / SMA(volume, period) - 1``."""
    arr = _as_array(volumes)
    return _ratio_minus_one(arr, sma(arr, period))


def ma_ratio(values: ArrayLike, averages: ArrayLike) -> np.ndarray:
    """Calculate ``value / average - 1`` (0 where the average is ~0)."""
    return _ratio_minus_one(_as_array(values), _as_array(averages))


# =============================================================================
# IndicatorCalculator class
# =============================================================================

class IndicatorCalculator:
    """Calculator for every indicator series used by the feature windows."""

    def __init__(
        self,
        sma_period: int = 20,
        ema_period: int = 12,
        rsi_period: int = 14,
        macd_fast: int = 12,
        macd_slow: int = 26,
        macd_signal: int = 9,
        tsi_long: int = 25,
        tsi_short: int = 13,
        atr_period: int = 14,
        volume_sma_period: int = 20,
        momentum_lookback: int = 5,
        bollinger_period: int = 20,
        bollinger_deviation: float = 2.0,
    ):
        self.sma_period = sma_period
        self.ema_period = ema_period
        self.rsi_period = rsi_period
        self.macd_fast = macd_fast
        self.macd_slow = macd_slow
        self.macd_signal = macd_signal
        self.tsi_long = tsi_long
        self.tsi_short = tsi_short
        self.atr_period = atr_period
        self.volume_sma_period = volume_sma_period
        self.momentum_lookback = momentum_lookback
        self.bollinger_period = bollinger_period
        self.bollinger_deviation = bollinger_deviation

    def calculate_all(
        self,
        bars: Sequence[Bar],
        returns: ArrayLike | None = None,
        volatility_lookback: int = 16,
    ) -> dict[str, np.ndarray]:
        """
        Calculate all indicators for the given bars.

        Args:
            bars: Time-ordered bars
            returns: Precomputed log returns (computed from closes if None)
            volatility_lookback: Lookback of the rolling return volatility

        Returns:
            Dict of indicator name to array aligned with ``bars``
        """
        closes = np.array([b.close for b in bars], dtype=np.float64)
        highs = np.array([b.high for b in bars], dtype=np.float64)
        lows = np.array([b.low for b in bars], dtype=np.float64)
        volumes = np.array([b.volume for b in bars], dtype=np.float64)

        if returns is None:
            returns = log_returns(closes)
        returns = _as_array(returns)

        macd_line, macd_signal = macd(closes, self.macd_fast, self.macd_slow, self.macd_signal)

        return {
            "returns": returns,
            "volatility": rolling_std_series(returns, max(volatility_lookback, 1)),
            "sma_ratio": ma_ratio(closes, sma(closes, self.sma_period)),
            "ema_ratio": ma_ratio(closes, ema(closes, self.ema_period)),
            "rsi": rsi(closes, self.rsi_period),
            "macd": macd_line,
            "macd_signal": macd_signal,
            "tsi": tsi(closes, self.tsi_long, self.tsi_short),
            "atr_ratio": atr_ratio(highs, lows, closes, self.atr_period),
            "volume_sma_ratio": volume_sma_ratio(volumes, self.volume_sma_period),
            "momentum": momentum(closes, self.momentum_lookback),
            "bollinger_percent": bollinger_percent(
                closes, self.bollinger_period, self.bollinger_deviation
            ),
        }
