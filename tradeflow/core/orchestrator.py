"""Trading cycle orchestration.

One cycle runs: fetch trades -> bars -> feature windows -> model
(train, predict) -> risk mapping -> decision.

This module has no I/O of its own. The trade fetch and the model
lifecycle are injected, so the same orchestrator runs against the live
exchange client and the torch model store, or against test stubs.

Cycles are single-flight: a call made while a cycle is running is
rejected immediately instead of queued.
"""

import asyncio
import logging
import math
from typing import Awaitable, Callable, Sequence

from tradeflow.core.bars import aggregate, filter_valid_trades
from tradeflow.core.features import build_windows
from tradeflow.core.model_port import ModelPort, ModelRepository
from tradeflow.core.models import (
    NEUTRAL_PROBABILITY,
    Bar,
    FeatureWindow,
    PipelineConfig,
    Trade,
    TradingDecision,
    WindowShape,
)
from tradeflow.core.risk import RiskMapper, compute_returns

logger = logging.getLogger(__name__)

# Type alias for the ingestion callback
FetchTradesCallback = Callable[[], Awaitable[Sequence[Trade]]]


class CycleOrchestrator:
    """Runs trading cycles for a single symbol.

    Usage:
        orchestrator = CycleOrchestrator(config, fetch_trades, model_store)
        decision = await orchestrator.run_cycle()  # None if a cycle is running

    Multiple symbols need independent orchestrators and model repositories.
    """

    def __init__(
        self,
        config: PipelineConfig,
        fetch_trades: FetchTradesCallback,
        models: ModelRepository,
    ):
        self.config = config
        self._fetch_trades = fetch_trades
        self._models = models
        self._risk = RiskMapper(config.risk)
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def run_cycle(self) -> TradingDecision | None:
        """
        Run one full cycle.

        Returns:
            The cycle's decision, or None if another cycle is still running.

        Raises:
            Whatever the trade fetch or the model raises; the failure is
            confined to this cycle.
        """
        # No await between check and set: atomic on the event loop
        if self._running:
            logger.info(
                f"Previous cycle for {self.config.symbol} still running; skipping trigger"
            )
            return None

        self._running = True
        try:
            return await self._run()
        finally:
            self._running = False

    async def _run(self) -> TradingDecision:
        cfg = self.config

        trades = filter_valid_trades(await self._fetch_trades())
        bars = aggregate(trades, cfg.bar_interval_ms, cfg.trade_history_limit)
        logger.info(
            f"{cfg.symbol}: {len(trades)} trades -> {len(bars)} bars "
            f"(interval={cfg.bar_interval_ms}ms)"
        )

        if len(bars) <= cfg.window_size:
            logger.info(
                f"{cfg.symbol}: not enough bars ({len(bars)} <= {cfg.window_size}), "
                f"returning neutral decision"
            )
            return TradingDecision.neutral(len(bars))

        windows = build_windows(
            bars,
            cfg.window_size,
            normalize=True,
            volatility_lookback=cfg.effective_feature_volatility_lookback,
        )
        if not windows:
            return TradingDecision.neutral(len(bars))

        training_samples = windows[:-1]
        latest = windows[-1]
        window_size, feature_count = latest.shape

        model, is_new = self._resolve_model(window_size, feature_count)

        trained_samples = 0
        if training_samples:
            trained_samples = await asyncio.to_thread(model.train, training_samples)

        probability = await asyncio.to_thread(model.predict, latest)
        probability = self._sanitize_probability(probability)

        decision = self._decide(bars, latest, probability, trained_samples)

        if trained_samples > 0 or is_new:
            self._save_model(model)

        return decision

    def _resolve_model(self, window_size: int, feature_count: int) -> tuple[ModelPort, bool]:
        """Reuse the stored model if its shape matches, else build a fresh one.

        Returns:
            Tuple of (model, is_new)
        """
        symbol = self.config.symbol
        expected = (window_size, feature_count)

        try:
            stored = self._models.load(symbol)
        except Exception as e:
            logger.warning(f"Failed to load stored model for {symbol}: {e}")
            stored = None

        if stored is not None:
            shape = tuple(stored.shape_of())
            if shape == expected:
                logger.info(f"{symbol}: reusing stored model {shape[0]}x{shape[1]}")
                return stored, False
            logger.warning(
                f"Stored model shape mismatch for {symbol} (expected "
                f"{window_size}x{feature_count}, got {shape[0]}x{shape[1]}). Rebuilding."
            )

        logger.info(f"{symbol}: building new model {window_size}x{feature_count}")
        return self._models.create(window_size, feature_count), True

    def _save_model(self, model: ModelPort) -> None:
        """Persist the model; failures never abort a cycle that has a decision."""
        try:
            self._models.save(self.config.symbol, model)
        except Exception as e:
            logger.error(f"Failed to save model for {self.config.symbol}: {e}")

    @staticmethod
    def _sanitize_probability(probability: float) -> float:
        probability = float(probability)
        if math.isnan(probability):
            logger.warning("Model returned NaN probability, using neutral 0.5")
            return NEUTRAL_PROBABILITY
        return min(max(probability, 0.0), 1.0)

    def _decide(
        self,
        bars: list[Bar],
        latest: FeatureWindow,
        probability: float,
        trained_samples: int,
    ) -> TradingDecision:
        returns = compute_returns(bars)
        lookback = min(self.config.volatility_lookback, len(bars))
        forecast_volatility = self._risk.forecast_volatility(returns, lookback)
        exposure = self._risk.map(probability, forecast_volatility)

        return TradingDecision(
            probability=probability,
            exposure=exposure,
            forecast_volatility=forecast_volatility,
            bars_count=len(bars),
            trained_samples=trained_samples,
            window_shape=WindowShape(rows=latest.rows, cols=latest.cols),
        )
