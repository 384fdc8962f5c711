"""Application configuration."""

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from tradeflow.app.ml.tcn_config import TcnConfig, TrainingConfig
from tradeflow.core.models import PipelineConfig, RiskConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Instrument (TICKET takes precedence over SYMBOL)
    symbol: str = Field(
        default="BTC-USDT",
        validation_alias=AliasChoices("TICKET", "SYMBOL"),
    )

    # Pipeline
    trade_history_limit: int = Field(default=500, gt=0)
    bar_interval_minutes: float = Field(default=1, gt=0)
    feature_window_size: int = Field(default=64, gt=0)
    volatility_lookback: int = Field(default=64, gt=0)

    # Risk map
    risk_neutral_zone: float = 0.05
    risk_vol_target: float = 0.015
    risk_vol_floor: float = 1e-4
    risk_max_exposure: float = 0.5

    # Training
    training_epochs: int = 8
    training_batch_size: int = 32
    training_val_split: float = 0.1
    training_shuffle: bool = True

    # TCN (filters as a comma separated list, e.g. "32,64,64")
    tcn_filters: str = "32,64,64"
    tcn_kernel: int = 3
    tcn_dropout: float = 0.1
    tcn_dense_units: int = 64
    tcn_learning_rate: float = 1e-3

    # KuCoin API
    kucoin_base_url: str = "https://api.kucoin.com"
    kucoin_timeout_ms: int = 10_000

    # Scheduling
    run_interval_minutes: float = Field(default=15, gt=0)

    # Storage (empty database_url disables prediction persistence)
    model_store_path: str = "models"
    database_url: str = ""

    # Logging
    log_file: str = "logs/trading.log"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    @property
    def bar_interval_ms(self) -> int:
        return int(self.bar_interval_minutes * 60_000)

    @property
    def run_interval_seconds(self) -> float:
        return self.run_interval_minutes * 60

    @property
    def persistence_enabled(self) -> bool:
        return bool(self.database_url)

    def tcn_filter_list(self) -> tuple[int, ...]:
        """Parse ``tcn_filters``; invalid entries are skipped."""
        filters = []
        for part in self.tcn_filters.split(","):
            part = part.strip()
            if part.isdigit() and int(part) > 0:
                filters.append(int(part))
        return tuple(filters) or TcnConfig().filters_per_layer

    def to_risk_config(self) -> RiskConfig:
        return RiskConfig(
            neutral_zone=self.risk_neutral_zone,
            volatility_target=self.risk_vol_target,
            volatility_floor=self.risk_vol_floor,
            max_exposure=self.risk_max_exposure,
        )

    def to_pipeline_config(self) -> PipelineConfig:
        return PipelineConfig(
            symbol=self.symbol,
            window_size=self.feature_window_size,
            bar_interval_ms=self.bar_interval_ms,
            volatility_lookback=self.volatility_lookback,
            trade_history_limit=self.trade_history_limit,
            risk=self.to_risk_config(),
        )

    def to_tcn_config(self) -> TcnConfig:
        return TcnConfig(
            filters_per_layer=self.tcn_filter_list(),
            kernel_size=self.tcn_kernel,
            dropout_rate=self.tcn_dropout,
            dense_units=self.tcn_dense_units,
            learning_rate=self.tcn_learning_rate,
        )

    def to_training_config(self) -> TrainingConfig:
        return TrainingConfig(
            epochs=self.training_epochs,
            batch_size=self.training_batch_size,
            validation_split=self.training_val_split,
            shuffle=self.training_shuffle,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
