"""TCN architecture and training parameters."""

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TcnConfig(BaseModel):
    """TCN architecture and optimizer parameters."""

    model_config = ConfigDict(frozen=True)

    filters_per_layer: tuple[int, ...] = (32, 64, 64)
    kernel_size: int = Field(default=3, gt=0)
    dropout_rate: float = Field(default=0.1, ge=0, lt=1)
    dense_units: int = Field(default=64, gt=0)
    learning_rate: float = Field(default=1e-3, gt=0)

    @field_validator("filters_per_layer")
    @classmethod
    def _require_blocks(cls, value: tuple[int, ...]) -> tuple[int, ...]:
        if not value:
            raise ValueError("TCN config requires at least one convolutional block")
        if any(f <= 0 for f in value):
            raise ValueError("filters_per_layer entries must be positive")
        return value


class TrainingConfig(BaseModel):
    """Fit loop parameters."""

    model_config = ConfigDict(frozen=True)

    epochs: int = Field(default=8, ge=0)
    batch_size: int = Field(default=32, gt=0)
    validation_split: float = Field(default=0.1, ge=0, lt=1)
    shuffle: bool = True
    # Epochs without validation improvement before stopping
    patience: int = Field(default=3, gt=0)
