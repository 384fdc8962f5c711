"""Feature window model shared by the windower, the model port and the orchestrator."""

from dataclasses import dataclass

import numpy as np

from tradeflow.core.models.market import Bar


@dataclass(slots=True, frozen=True)
class FeatureWindow:
    """A ``(window_size, feature_count)`` matrix of per-bar features.

    ``label`` is 1 when the bar following the window closed above
    ``last_close``, else 0.
    """

    window: np.ndarray
    label: int
    last_close: float
    next_close: float
    bars: tuple[Bar, ...]

    @property
    def rows(self) -> int:
        return int(self.window.shape[0])

    @property
    def cols(self) -> int:
        return int(self.window.shape[1]) if self.window.ndim == 2 else 0

    @property
    def shape(self) -> tuple[int, int]:
        return self.rows, self.cols
