"""Prediction storage."""

from tradeflow.app.storage.database import (
    Base,
    Database,
    PredictionTable,
    close_database,
    get_database,
    init_database,
)
from tradeflow.app.storage.prediction_repo import NOTIFY_CHANNEL, PredictionRepository

__all__ = [
    "Base",
    "Database",
    "PredictionTable",
    "close_database",
    "get_database",
    "init_database",
    "NOTIFY_CHANNEL",
    "PredictionRepository",
]
