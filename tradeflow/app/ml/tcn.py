"""Temporal convolutional network implementing the ModelPort contract.

Architecture:
- N residual blocks: Conv1d -> ReLU -> Dropout -> Conv1d -> ReLU,
  plus a 1x1 Conv1d residual path, summed and layer-normalized
- Global average pooling over time
- Dense ReLU -> Dropout -> Dense sigmoid (probability of an up move)

Trained with Adam on binary cross-entropy, optionally holding out the
most recent windows for early stopping on validation loss.
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

import numpy as np
import torch
import torch.nn as nn

from tradeflow.app.ml.tcn_config import TcnConfig, TrainingConfig
from tradeflow.core.models import FeatureWindow

logger = logging.getLogger(__name__)


class ResidualBlock(nn.Module):
    def __init__(self, in_channels: int, filters: int, kernel_size: int, dropout_rate: float):
        super().__init__()
        self.conv1 = nn.Conv1d(in_channels, filters, kernel_size, padding="same")
        self.dropout = nn.Dropout(dropout_rate) if dropout_rate > 0 else nn.Identity()
        self.conv2 = nn.Conv1d(filters, filters, kernel_size, padding="same")
        self.residual = nn.Conv1d(in_channels, filters, kernel_size=1)
        self.norm = nn.LayerNorm(filters, eps=1e-6)
        self.relu = nn.ReLU()

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        # x: (batch, channels, time)
        out = self.relu(self.conv1(x))
        out = self.dropout(out)
        out = self.relu(self.conv2(out))
        out = out + self.residual(x)
        # LayerNorm over channels
        return self.norm(out.transpose(1, 2)).transpose(1, 2)


class TcnNet(nn.Module):
    def __init__(self, feature_count: int, config: TcnConfig):
        super().__init__()
        blocks = []
        in_channels = feature_count
        for filters in config.filters_per_layer:
            blocks.append(
                ResidualBlock(in_channels, filters, config.kernel_size, config.dropout_rate)
            )
            in_channels = filters
        self.blocks = nn.Sequential(*blocks)
        self.head = nn.Sequential(
            nn.Linear(in_channels, config.dense_units),
            nn.ReLU(),
            nn.Dropout(config.dropout_rate) if config.dropout_rate > 0 else nn.Identity(),
            nn.Linear(config.dense_units, 1),
        )

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        # x: (batch, time, features) -> (batch, features, time)
        out = self.blocks(x.transpose(1, 2))
        pooled = out.mean(dim=2)
        return torch.sigmoid(self.head(pooled)).squeeze(-1)


def windows_to_tensors(windows: Sequence[FeatureWindow]) -> tuple[torch.Tensor, torch.Tensor]:
    """Stack windows into (samples, window, features) inputs and (samples,) labels."""
    if not windows:
        raise ValueError("No feature windows available to build tensors")

    first = windows[0]
    if first.cols == 0:
        raise ValueError("Feature vectors have zero length")

    xs = torch.as_tensor(
        np.stack([w.window for w in windows]).astype(np.float32)
    )
    ys = torch.as_tensor(np.array([w.label for w in windows], dtype=np.float32))
    return xs, ys


class TcnModel:
    """Trainable up/down probability model for one (symbol, window, features) shape."""

    def __init__(
        self,
        window_size: int,
        feature_count: int,
        config: TcnConfig | None = None,
        training: TrainingConfig | None = None,
        seed: int | None = None,
    ):
        self.window_size = window_size
        self.feature_count = feature_count
        self.config = config or TcnConfig()
        self.training = training or TrainingConfig()

        self._generator = torch.Generator()
        if seed is not None:
            self._generator.manual_seed(seed)
            # Seeded init must not disturb the process-wide RNG
            with torch.random.fork_rng():
                torch.manual_seed(seed)
                self.net = TcnNet(feature_count, self.config)
        else:
            self.net = TcnNet(feature_count, self.config)
        self.optimizer = torch.optim.Adam(self.net.parameters(), lr=self.config.learning_rate)
        self.loss_fn = nn.BCELoss()

    # ------------------------------------------------------------------
    # ModelPort
    # ------------------------------------------------------------------

    def shape_of(self) -> tuple[int, int]:
        return self.window_size, self.feature_count

    def train(self, windows: Sequence[FeatureWindow]) -> int:
        """Fit on labeled windows; returns the number of windows used."""
        if not windows:
            return 0

        xs, ys = windows_to_tensors(windows)
        self._check_shape(tuple(xs.shape[1:]))

        n = len(windows)
        val_count = int(n * self.training.validation_split)
        if val_count >= n:
            val_count = 0

        # Hold out the most recent windows for validation
        train_x, train_y = xs[: n - val_count], ys[: n - val_count]
        val_x, val_y = xs[n - val_count :], ys[n - val_count :]

        best_val = math.inf
        stale_epochs = 0

        for epoch in range(self.training.epochs):
            train_loss = self._fit_epoch(train_x, train_y)

            if val_count == 0:
                logger.debug(f"Epoch {epoch + 1}: loss={train_loss:.4f}")
                continue

            val_loss = self._evaluate(val_x, val_y)
            logger.debug(f"Epoch {epoch + 1}: loss={train_loss:.4f} val_loss={val_loss:.4f}")

            if val_loss < best_val:
                best_val = val_loss
                stale_epochs = 0
            else:
                stale_epochs += 1
                if stale_epochs >= self.training.patience:
                    logger.info(
                        f"Early stopping after epoch {epoch + 1} "
                        f"(best val_loss={best_val:.4f})"
                    )
                    break

        return n

    def predict(self, window: FeatureWindow) -> float:
        """Probability in [0, 1] that the next bar closes higher."""
        self._check_shape(window.shape)
        x = torch.as_tensor(window.window.astype(np.float32)).unsqueeze(0)

        self.net.eval()
        with torch.no_grad():
            probability = float(self.net(x).item())
        return probability

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_shape(self, shape: tuple[int, ...]) -> None:
        if tuple(shape) != self.shape_of():
            raise ValueError(
                f"Window shape {tuple(shape)} does not match model shape {self.shape_of()}"
            )

    def _fit_epoch(self, xs: torch.Tensor, ys: torch.Tensor) -> float:
        self.net.train()
        n = len(xs)
        if self.training.shuffle:
            order = torch.randperm(n, generator=self._generator)
        else:
            order = torch.arange(n)

        total = 0.0
        for start in range(0, n, self.training.batch_size):
            idx = order[start : start + self.training.batch_size]
            self.optimizer.zero_grad()
            loss = self.loss_fn(self.net(xs[idx]), ys[idx])
            loss.backward()
            self.optimizer.step()
            total += loss.item() * len(idx)

        return total / max(n, 1)

    def _evaluate(self, xs: torch.Tensor, ys: torch.Tensor) -> float:
        self.net.eval()
        with torch.no_grad():
            return float(self.loss_fn(self.net(xs), ys).item())

    # ------------------------------------------------------------------
    # Persistence helpers (used by ModelStore)
    # ------------------------------------------------------------------

    def metadata(self) -> dict:
        return {
            "window_size": self.window_size,
            "feature_count": self.feature_count,
            "tcn": self.config.model_dump(mode="json"),
        }

    def state_dict(self) -> dict:
        return {
            "net": self.net.state_dict(),
            "optimizer": self.optimizer.state_dict(),
        }

    def load_state_dict(self, state: dict) -> None:
        self.net.load_state_dict(state["net"])
        if "optimizer" in state:
            self.optimizer.load_state_dict(state["optimizer"])
