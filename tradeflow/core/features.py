"""Feature windows for model training and inference.

For every bar a fixed-order feature vector is built from the bar itself
and the indicator series. Sliding windows of ``window_size`` vectors are
then labeled with the direction of the following bar's close.

Normalization is local to each window: the z-score of a column uses only
the rows of that window, so later bars never leak into earlier windows.
"""

import logging
from typing import Sequence

import numpy as np

from tradeflow.core.indicators import IndicatorCalculator, safe_divide
from tradeflow.core.models import Bar, FeatureWindow

logger = logging.getLogger(__name__)

FEATURE_NAMES: tuple[str, ...] = (
    "close",
    "vwap",
    "log_return",
    "spread_ratio",
    "body_ratio",
    "upper_shadow_ratio",
    "lower_shadow_ratio",
    "volume",
    "notional",
    "buy_volume_share",
    "signed_volume_delta",
    "return_volatility",
    "sma20_ratio",
    "ema12_ratio",
    "rsi14",
    "macd",
    "macd_signal",
    "tsi",
    "atr14_ratio",
    "volume_sma20_ratio",
    "momentum5",
    "bollinger_percent",
)

FEATURE_COUNT = len(FEATURE_NAMES)

DEFAULT_VOLATILITY_LOOKBACK = 16

# Columns flatter than this are zeroed instead of z-scored
MIN_COLUMN_STD = 1e-6

MIN_SPREAD = 1e-12


def normalize_window(matrix: np.ndarray) -> np.ndarray:
    """
    Z-score each column using only this window's rows.

    Uses the sample standard deviation (divisor ``max(rows - 1, 1)``).
    Columns with stdev < 1e-6 are set to 0.
    """
    rows = matrix.shape[0]
    if rows == 0 or matrix.ndim != 2 or matrix.shape[1] == 0:
        return matrix.copy()

    means = matrix.mean(axis=0)
    centered = matrix - means
    stds = np.sqrt((centered**2).sum(axis=0) / max(rows - 1, 1))

    flat = stds < MIN_COLUMN_STD
    safe_stds = np.where(flat, 1.0, stds)
    normalized = centered / safe_stds
    normalized[:, flat] = 0.0
    return normalized


def build_feature_matrix(
    bars: Sequence[Bar],
    volatility_lookback: int = DEFAULT_VOLATILITY_LOOKBACK,
    calculator: IndicatorCalculator | None = None,
) -> np.ndarray:
    """Build the ``(len(bars), FEATURE_COUNT)`` matrix of raw features."""
    calculator = calculator or IndicatorCalculator()
    indicators = calculator.calculate_all(bars, volatility_lookback=volatility_lookback)
    returns = indicators["returns"]

    matrix = np.zeros((len(bars), FEATURE_COUNT), dtype=np.float64)
    for i, bar in enumerate(bars):
        spread = max(bar.range_size, MIN_SPREAD)
        total_volume = bar.volume or MIN_SPREAD
        matrix[i] = (
            bar.close,
            bar.vwap,
            returns[i],
            safe_divide(spread, bar.close),
            safe_divide(bar.body, bar.open),
            safe_divide(bar.upper_shadow, bar.close),
            safe_divide(bar.lower_shadow, bar.close),
            bar.volume,
            bar.notional,
            safe_divide(bar.buy_volume, total_volume),
            safe_divide(bar.buy_volume - bar.sell_volume, total_volume),
            indicators["volatility"][i],
            indicators["sma_ratio"][i],
            indicators["ema_ratio"][i],
            indicators["rsi"][i],
            indicators["macd"][i],
            indicators["macd_signal"][i],
            indicators["tsi"][i],
            indicators["atr_ratio"][i],
            indicators["volume_sma_ratio"][i],
            indicators["momentum"][i],
            indicators["bollinger_percent"][i],
        )

    return matrix


def build_windows(
    bars: Sequence[Bar],
    window_size: int,
    normalize: bool = True,
    volatility_lookback: int = DEFAULT_VOLATILITY_LOOKBACK,
) -> list[FeatureWindow]:
    """
    Build labeled sliding feature windows.

    Windows end at every index from ``window_size - 1`` to ``len(bars) - 2``;
    the final bar only ever serves as the label of the last window.

    Args:
        bars: Time-ordered bars
        window_size: Rows per window
        normalize: Z-score each window's columns
        volatility_lookback: Lookback of the rolling return volatility feature

    Returns:
        Windows in chronological order (empty if ``len(bars) <= window_size``)
    """
    if window_size <= 0 or len(bars) <= window_size:
        return []

    matrix = build_feature_matrix(bars, max(volatility_lookback, 1))
    windows: list[FeatureWindow] = []

    for idx in range(window_size - 1, len(bars) - 1):
        start = idx - window_size + 1
        raw = matrix[start : idx + 1]
        window = normalize_window(raw) if normalize else raw.copy()

        last_close = bars[idx].close
        next_close = bars[idx + 1].close
        windows.append(
            FeatureWindow(
                window=window,
                label=1 if next_close > last_close else 0,
                last_close=last_close,
                next_close=next_close,
                bars=tuple(bars[start : idx + 1]),
            )
        )

    return windows


class FeatureWindower:
    """Builds feature windows with a fixed configuration.

    Usage:
        windower = FeatureWindower(window_size=64)
        windows = windower.build_windows(bars)
    """

    def __init__(
        self,
        window_size: int,
        normalize: bool = True,
        volatility_lookback: int = DEFAULT_VOLATILITY_LOOKBACK,
    ):
        if window_size <= 0:
            raise ValueError(f"window_size must be positive, got {window_size}")
        self.window_size = window_size
        self.normalize = normalize
        self.volatility_lookback = volatility_lookback

    @property
    def feature_count(self) -> int:
        return FEATURE_COUNT

    def build_windows(self, bars: Sequence[Bar]) -> list[FeatureWindow]:
        """Build all labeled windows for ``bars``."""
        windows = build_windows(
            bars,
            self.window_size,
            normalize=self.normalize,
            volatility_lookback=self.volatility_lookback,
        )
        logger.debug(
            f"Built {len(windows)} feature windows from {len(bars)} bars "
            f"(window={self.window_size})"
        )
        return windows

    def latest_window(self, bars: Sequence[Bar]) -> FeatureWindow | None:
        """Get the most recent window, or None if there is not enough data."""
        windows = self.build_windows(bars)
        return windows[-1] if windows else None
