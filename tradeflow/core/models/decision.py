"""Trading decision produced once per cycle."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

NEUTRAL_PROBABILITY = 0.5


class WindowShape(BaseModel):
    """Shape of the inference window fed to the model."""

    model_config = ConfigDict(frozen=True)

    rows: int = Field(ge=0)
    cols: int = Field(ge=0)


class TradingDecision(BaseModel):
    """Bounded exposure decision for one cycle.

    Serialized with camelCase keys (``forecastVolatility``, ``barsCount``,
    ``trainedSamples``, ``windowShape``) for downstream subscribers.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    probability: float = Field(ge=0, le=1)
    exposure: float
    forecast_volatility: float = Field(ge=0)
    bars_count: int = Field(ge=0)
    trained_samples: int = Field(ge=0)
    window_shape: WindowShape | None = None

    @classmethod
    def neutral(cls, bars_count: int) -> TradingDecision:
        """Decision used when there is not enough data to predict."""
        return cls(
            probability=NEUTRAL_PROBABILITY,
            exposure=0.0,
            forecast_volatility=0.0,
            bars_count=bars_count,
            trained_samples=0,
            window_shape=None,
        )

    @property
    def is_neutral(self) -> bool:
        return self.exposure == 0.0

    def to_payload(self, symbol: str | None = None) -> dict[str, Any]:
        """Serialize for persistence and broadcast."""
        payload = self.model_dump(by_alias=True)
        if symbol is not None:
            payload["symbol"] = symbol
        return payload
