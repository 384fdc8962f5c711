"""Data models."""

from tradeflow.core.models.market import Bar, Trade, TradeSide, SIDE_BUY, SIDE_SELL
from tradeflow.core.models.window import FeatureWindow
from tradeflow.core.models.config import (
    DEFAULT_BAR_INTERVAL_MS,
    PipelineConfig,
    RiskConfig,
)
from tradeflow.core.models.decision import (
    NEUTRAL_PROBABILITY,
    TradingDecision,
    WindowShape,
)

__all__ = [
    # Hot path (dataclass)
    "Bar",
    "Trade",
    "TradeSide",
    "SIDE_BUY",
    "SIDE_SELL",
    "FeatureWindow",
    # Cold path (Pydantic)
    "DEFAULT_BAR_INTERVAL_MS",
    "PipelineConfig",
    "RiskConfig",
    "NEUTRAL_PROBABILITY",
    "TradingDecision",
    "WindowShape",
]
