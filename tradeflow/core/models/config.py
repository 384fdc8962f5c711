"""Pipeline configuration models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_BAR_INTERVAL_MS = 60_000


class RiskConfig(BaseModel):
    """Parameters of the probability-to-exposure transform."""

    model_config = ConfigDict(frozen=True)

    # Deadband around a zero signal where no exposure is taken
    neutral_zone: float = Field(default=0.05, ge=0)
    # Forecast volatility above this level scales exposure down
    volatility_target: float = Field(default=0.015, gt=0)
    volatility_floor: float = Field(default=1e-4, gt=0)
    max_exposure: float = Field(default=0.5, ge=0)


class PipelineConfig(BaseModel):
    """Immutable configuration of one symbol's trading cycle."""

    model_config = ConfigDict(frozen=True)

    symbol: str = "BTC-USDT"
    window_size: int = Field(default=64, gt=0)
    bar_interval_ms: int = Field(default=DEFAULT_BAR_INTERVAL_MS, gt=0)
    volatility_lookback: int = Field(default=64, gt=0)

    # Also caps the number of bars kept per cycle
    trade_history_limit: int = Field(default=500, gt=0)

    # Rolling return volatility lookback used inside feature vectors,
    # capped by window_size at build time
    feature_volatility_lookback: int = Field(default=16, gt=0)

    risk: RiskConfig = RiskConfig()

    @property
    def effective_feature_volatility_lookback(self) -> int:
        return min(self.window_size, self.feature_volatility_lookback)
