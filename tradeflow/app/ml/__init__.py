"""Trainable probability model and its persistence.

Only the parameter models are exported here; ``tradeflow.app.ml.tcn`` and
``tradeflow.app.ml.store`` import torch and are imported directly.
"""

from tradeflow.app.ml.tcn_config import TcnConfig, TrainingConfig

__all__ = ["TcnConfig", "TrainingConfig"]
