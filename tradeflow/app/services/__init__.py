"""Application services."""

from tradeflow.app.services.cycle_runner import (
    CycleRunner,
    PredictionBroadcaster,
    PredictionSink,
)

__all__ = ["CycleRunner", "PredictionBroadcaster", "PredictionSink"]
