"""Contracts between the pipeline and the trainable probability model.

This module provides:
- ModelPort: Runtime-checkable Protocol any trainable model must satisfy
- ModelRepository: Protocol for loading, creating and saving models

The pipeline never depends on a concrete model; any implementation with
matching methods can be injected, including deterministic test stubs.
"""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from tradeflow.core.models import FeatureWindow


@runtime_checkable
class ModelPort(Protocol):
    """Protocol of a trainable binary-direction model.

    A model instance is bound to one (symbol, window_size, feature_count).
    """

    def train(self, windows: Sequence[FeatureWindow]) -> int:
        """Fit on labeled windows.

        Must accept an empty sequence as a no-op.

        Returns:
            Number of windows trained on.
        """
        ...

    def predict(self, window: FeatureWindow) -> float:
        """Probability in [0, 1] that the next bar closes higher.

        Must not change state visible to the caller.
        """
        ...

    def shape_of(self) -> tuple[int, int]:
        """(window_size, feature_count) this model accepts."""
        ...


@runtime_checkable
class ModelRepository(Protocol):
    """Protocol for the model lifecycle (load, create, persist)."""

    def load(self, symbol: str) -> ModelPort | None:
        """Load the stored model for ``symbol``, or None if there is none."""
        ...

    def create(self, window_size: int, feature_count: int) -> ModelPort:
        """Build a fresh, untrained model for the given input shape."""
        ...

    def save(self, symbol: str, model: ModelPort) -> None:
        """Persist ``model`` for ``symbol``."""
        ...
