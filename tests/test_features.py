"""Tests for feature windows."""

import math

import numpy as np
import pytest

from tradeflow.core.bars import aggregate
from tradeflow.core.features import (
    FEATURE_COUNT,
    FEATURE_NAMES,
    MIN_SPREAD,
    FeatureWindower,
    build_feature_matrix,
    build_windows,
    normalize_window,
)
from tradeflow.core.models import Bar, Trade


def make_bar(i: int, close: float, volume: float = 10.0) -> Bar:
    """Helper to create a one-minute bar around ``close``."""
    return Bar(
        start_time=i * 60_000,
        end_time=(i + 1) * 60_000,
        open=close * 0.999,
        high=close * 1.002,
        low=close * 0.997,
        close=close,
        volume=volume,
        buy_volume=volume * 0.6,
        sell_volume=volume * 0.4,
        notional=close * volume,
        trade_count=3,
        vwap=close,
    )


def wavy_bars(count: int) -> list[Bar]:
    return [
        make_bar(i, 100.0 + 3 * math.sin(i / 4) + 0.1 * i, volume=10.0 + (i % 7))
        for i in range(count)
    ]


class TestFeatureMatrix:
    """Tests for the raw per-bar feature vectors."""

    def test_feature_count(self):
        assert FEATURE_COUNT == 22
        assert len(FEATURE_NAMES) == len(set(FEATURE_NAMES))

    def test_shape_and_finite(self):
        bars = wavy_bars(40)
        matrix = build_feature_matrix(bars)
        assert matrix.shape == (40, FEATURE_COUNT)
        assert np.all(np.isfinite(matrix))

    def test_bar_derived_columns(self):
        bar = make_bar(0, 100.0, volume=10.0)
        row = build_feature_matrix([bar])[0]
        features = dict(zip(FEATURE_NAMES, row))

        assert features["close"] == 100.0
        assert features["log_return"] == 0.0
        assert features["buy_volume_share"] == pytest.approx(0.6)
        assert features["signed_volume_delta"] == pytest.approx(0.2)
        assert features["spread_ratio"] == pytest.approx((100.2 - 99.7) / 100.0)
        assert features["rsi14"] == 0.5

    def test_flat_bar_spread_floored(self):
        bar = Bar(
            start_time=0,
            end_time=60_000,
            open=100.0,
            high=100.0,
            low=100.0,
            close=100.0,
            volume=1.0,
            buy_volume=1.0,
            sell_volume=0.0,
            notional=100.0,
            trade_count=1,
            vwap=100.0,
        )
        features = dict(zip(FEATURE_NAMES, build_feature_matrix([bar])[0]))

        assert bar.range_size == 0.0
        assert features["spread_ratio"] == MIN_SPREAD / 100.0


class TestNormalizeWindow:
    """Tests for per-window z-scoring."""

    def test_columns_standardized(self):
        rng = np.random.default_rng(3)
        matrix = rng.normal(5.0, 2.0, size=(30, 4))

        normalized = normalize_window(matrix)

        assert np.allclose(normalized.mean(axis=0), 0.0, atol=1e-9)
        assert np.allclose(normalized.std(axis=0, ddof=1), 1.0)

    def test_flat_column_zeroed(self):
        matrix = np.column_stack([np.arange(10.0), np.full(10, 7.0)])

        normalized = normalize_window(matrix)

        assert np.all(normalized[:, 1] == 0.0)

    def test_input_not_mutated(self):
        matrix = np.arange(12.0).reshape(6, 2)
        original = matrix.copy()
        normalize_window(matrix)
        assert np.array_equal(matrix, original)


class TestBuildWindows:
    """Tests for labeled sliding windows."""

    def test_window_count_and_shape(self):
        bars = wavy_bars(50)

        windows = build_windows(bars, 20)

        assert len(windows) == 30
        assert all(w.shape == (20, FEATURE_COUNT) for w in windows)

    def test_no_windows_when_bars_equal_window_size(self):
        assert build_windows(wavy_bars(20), 20) == []

    def test_no_windows_when_fewer_bars(self):
        assert build_windows(wavy_bars(5), 20) == []

    def test_labels_follow_next_close(self):
        bars = wavy_bars(60)

        windows = build_windows(bars, 10)

        for w in windows:
            assert w.label == (1 if w.next_close > w.last_close else 0)
            assert w.bars[-1].close == w.last_close

    def test_increasing_series_all_labeled_up(self):
        bars = [make_bar(i, 100.0 + i) for i in range(40)]

        windows = build_windows(bars, 8)

        assert len(windows) == 32
        assert all(w.label == 1 for w in windows)
        # The final bar only serves as a label
        assert windows[-1].next_close == bars[-1].close

    def test_normalized_windows(self):
        windows = build_windows(wavy_bars(60), 16, normalize=True)

        for w in windows:
            means = w.window.mean(axis=0)
            stds = w.window.std(axis=0, ddof=1)
            for col in range(FEATURE_COUNT):
                if stds[col] == 0.0:
                    assert np.all(w.window[:, col] == 0.0)
                else:
                    assert means[col] == pytest.approx(0.0, abs=1e-9)
                    assert stds[col] == pytest.approx(1.0)

    def test_raw_windows_match_matrix(self):
        bars = wavy_bars(30)
        matrix = build_feature_matrix(bars)

        windows = build_windows(bars, 10, normalize=False)

        assert np.array_equal(windows[0].window, matrix[0:10])
        assert np.array_equal(windows[-1].window, matrix[19:29])

    def test_window_only_uses_own_rows(self):
        """Appending later bars does not change earlier normalized windows."""
        bars = wavy_bars(60)

        short = build_windows(bars[:40], 10)
        full = build_windows(bars, 10)

        assert np.array_equal(short[5].window, full[5].window)

    def test_deterministic_pipeline(self):
        trades = [
            Trade(
                sequence_id=str(i),
                price=100.0 + math.sin(i / 11) * 2,
                size=0.5 + (i % 3),
                side="buy" if i % 2 else "sell",
                timestamp_ms=i * 9_000,
            )
            for i in range(400)
        ]

        first = build_windows(aggregate(trades, 60_000), 12)
        second = build_windows(aggregate(trades, 60_000), 12)

        assert len(first) == len(second) > 0
        for a, b in zip(first, second):
            assert np.array_equal(a.window, b.window)
            assert a.label == b.label


class TestFeatureWindower:
    """Tests for the FeatureWindower wrapper."""

    def test_latest_window(self):
        windower = FeatureWindower(window_size=10)
        bars = wavy_bars(30)

        latest = windower.latest_window(bars)

        assert latest is not None
        assert latest.last_close == bars[-2].close
        assert windower.feature_count == FEATURE_COUNT

    def test_latest_window_insufficient(self):
        assert FeatureWindower(window_size=10).latest_window(wavy_bars(10)) is None

    def test_rejects_bad_window(self):
        with pytest.raises(ValueError):
            FeatureWindower(window_size=0)
