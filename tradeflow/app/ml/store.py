"""On-disk model store.

Layout per symbol::

    <root>/<sanitized symbol>/model.json   shape + architecture
    <root>/<sanitized symbol>/model.pt     torch state dicts

Implements the ModelRepository protocol used by the orchestrator.
"""

import json
import logging
import re
from pathlib import Path

import torch

from tradeflow.app.ml.tcn import TcnConfig, TcnModel, TrainingConfig

logger = logging.getLogger(__name__)

METADATA_FILE = "model.json"
WEIGHTS_FILE = "model.pt"


def sanitize_symbol(symbol: str) -> str:
    """Make a symbol safe to use as a directory name."""
    return re.sub(r"[^a-zA-Z0-9_\-]", "_", symbol)


class ModelStore:
    """Loads, creates and saves TCN models under a root directory."""

    def __init__(
        self,
        root: str | Path,
        tcn_config: TcnConfig | None = None,
        training_config: TrainingConfig | None = None,
    ):
        self.root = Path(root)
        self.tcn_config = tcn_config or TcnConfig()
        self.training_config = training_config or TrainingConfig()

    def model_dir(self, symbol: str) -> Path:
        return self.root / sanitize_symbol(symbol)

    def exists(self, symbol: str) -> bool:
        directory = self.model_dir(symbol)
        return (directory / METADATA_FILE).is_file() and (directory / WEIGHTS_FILE).is_file()

    def create(self, window_size: int, feature_count: int) -> TcnModel:
        """Build a fresh model with the store's architecture and training settings."""
        return TcnModel(
            window_size=window_size,
            feature_count=feature_count,
            config=self.tcn_config,
            training=self.training_config,
        )

    def load(self, symbol: str) -> TcnModel | None:
        """
        Load the stored model for a symbol.

        The stored architecture is used (not the current config) so the
        weights always fit; the orchestrator decides on shape reuse.

        Returns:
            The model, or None if nothing is stored
        """
        if not self.exists(symbol):
            return None

        directory = self.model_dir(symbol)
        metadata = json.loads((directory / METADATA_FILE).read_text(encoding="utf-8"))

        model = TcnModel(
            window_size=int(metadata["window_size"]),
            feature_count=int(metadata["feature_count"]),
            config=TcnConfig(**metadata.get("tcn", {})),
            training=self.training_config,
        )
        state = torch.load(directory / WEIGHTS_FILE, map_location="cpu", weights_only=True)
        model.load_state_dict(state)

        logger.debug(f"Loaded model for {symbol} from {directory}")
        return model

    def save(self, symbol: str, model: TcnModel) -> None:
        """Write the model's metadata and weights."""
        directory = self.model_dir(symbol)
        directory.mkdir(parents=True, exist_ok=True)

        torch.save(model.state_dict(), directory / WEIGHTS_FILE)
        (directory / METADATA_FILE).write_text(
            json.dumps(model.metadata(), indent=2), encoding="utf-8"
        )
        logger.info(f"Saved model for {symbol} to {directory}")
