"""Periodic trading cycle runner.

Wraps a CycleOrchestrator with scheduling, logging, an in-memory history
of recent payloads, persistence and websocket broadcast.
"""

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Protocol, runtime_checkable

import orjson

from tradeflow.core.orchestrator import CycleOrchestrator

logger = logging.getLogger(__name__)

DEFAULT_RECENT_SIZE = 100


@runtime_checkable
class PredictionSink(Protocol):
    async def save(self, payload: dict[str, Any]) -> None: ...


@runtime_checkable
class PredictionBroadcaster(Protocol):
    async def send_prediction(self, payload: dict[str, Any]) -> None: ...


class CycleRunner:
    """Triggers cycles on a fixed interval and publishes their payloads.

    Triggers fire on schedule regardless of how long a cycle takes; an
    overlapping trigger is skipped by the orchestrator.
    """

    def __init__(
        self,
        orchestrator: CycleOrchestrator,
        symbol: str,
        interval_seconds: float,
        repository: PredictionSink | None = None,
        broadcaster: PredictionBroadcaster | None = None,
        recent_size: int = DEFAULT_RECENT_SIZE,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.orchestrator = orchestrator
        self.symbol = symbol
        self.interval_seconds = interval_seconds
        self.repository = repository
        self.broadcaster = broadcaster

        self.trigger_count = 0
        self.cycle_count = 0
        self.failed_cycles = 0
        self.skipped_cycles = 0
        self._recent: deque[dict[str, Any]] = deque(maxlen=recent_size)
        self._ticker: asyncio.Task | None = None
        self._cycles: set[asyncio.Task] = set()

    @property
    def is_started(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    @property
    def last_payload(self) -> dict[str, Any] | None:
        return self._recent[-1] if self._recent else None

    def recent(self, limit: int | None = None) -> list[dict[str, Any]]:
        """Recent payloads, newest first."""
        items = list(reversed(self._recent))
        return items if limit is None else items[:limit]

    async def run_once(self) -> dict[str, Any] | None:
        """
        Run one cycle and publish its payload.

        Returns:
            The payload, or None if the cycle was skipped or failed
        """
        self.trigger_count += 1
        cycle = self.trigger_count
        cfg = self.orchestrator.config

        logger.info(f"Cycle #{cycle} start for {self.symbol}")
        logger.info(
            f"Config: window={cfg.window_size}, interval={cfg.bar_interval_ms}ms, "
            f"vol_lookback={cfg.volatility_lookback}, history={cfg.trade_history_limit}"
        )

        try:
            decision = await self.orchestrator.run_cycle()
        except Exception:
            self.cycle_count += 1
            self.failed_cycles += 1
            logger.exception(f"Cycle #{cycle} failed for {self.symbol}")
            return None

        if decision is None:
            self.skipped_cycles += 1
            logger.info(f"Cycle #{cycle} skipped: previous cycle still running")
            return None

        self.cycle_count += 1
        payload = decision.to_payload(self.symbol)
        logger.info(
            f"Prediction {self.symbol}: prob={decision.probability:.4f}, "
            f"exposure={decision.exposure:.4f}, vol={decision.forecast_volatility:.6f}, "
            f"bars={decision.bars_count}, trained={decision.trained_samples}"
        )
        logger.info(f"Payload: {orjson.dumps(payload).decode('utf-8')}")

        self._recent.append(payload)

        if self.repository is not None:
            await self._publish("persist", self.repository.save(payload))
        if self.broadcaster is not None:
            await self._publish("broadcast", self.broadcaster.send_prediction(payload))

        return payload

    async def _publish(self, step: str, operation: Awaitable[None]) -> None:
        try:
            await operation
        except Exception as e:
            logger.error(f"Failed to {step} prediction for {self.symbol}: {e}")

    def start(self) -> None:
        """Start the periodic trigger; the first cycle runs immediately."""
        if self.is_started:
            return
        self._ticker = asyncio.create_task(self._tick())
        logger.info(f"Cycle runner started: {self.symbol} every {self.interval_seconds:g}s")

    async def stop(self) -> None:
        """Stop triggering and cancel in-flight cycles."""
        tasks = list(self._cycles)
        if self._ticker is not None:
            tasks.append(self._ticker)
            self._ticker = None

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._cycles.clear()
        logger.info(f"Cycle runner stopped for {self.symbol}")

    async def _tick(self) -> None:
        while True:
            task = asyncio.create_task(self.run_once())
            self._cycles.add(task)
            task.add_done_callback(self._cycles.discard)
            await asyncio.sleep(self.interval_seconds)
