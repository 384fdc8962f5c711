"""Prediction persistence and Postgres notification."""

import logging
from typing import Any

import orjson
from sqlalchemy import insert, select, text

from tradeflow.app.storage.database import Database, PredictionTable, get_database

logger = logging.getLogger(__name__)

NOTIFY_CHANNEL = "predictions"


class PredictionRepository:
    """Stores one row per cycle and announces it on the ``predictions`` channel."""

    def __init__(self, database: Database | None = None):
        self._database = database

    @property
    def database(self) -> Database:
        return self._database or get_database()

    async def save(self, payload: dict[str, Any]) -> None:
        """
        Insert a prediction payload, then publish it with pg_notify.

        A failed notify is logged; the inserted row is kept.
        """
        shape = payload.get("windowShape") or {}

        async with self.database.session() as session:
            await session.execute(
                insert(PredictionTable).values(
                    symbol=payload["symbol"],
                    probability=payload["probability"],
                    exposure=payload["exposure"],
                    forecast_volatility=payload["forecastVolatility"],
                    bars_count=payload["barsCount"],
                    trained_samples=payload["trainedSamples"],
                    window_rows=shape.get("rows"),
                    window_cols=shape.get("cols"),
                )
            )

        try:
            async with self.database.session() as session:
                await session.execute(
                    text("SELECT pg_notify(:channel, :payload)"),
                    {
                        "channel": NOTIFY_CHANNEL,
                        "payload": orjson.dumps(payload).decode("utf-8"),
                    },
                )
        except Exception as e:
            logger.error(f"Failed to notify prediction for {payload['symbol']}: {e}")

    async def get_recent(self, limit: int = 100, symbol: str | None = None) -> list[dict[str, Any]]:
        """Get recent predictions as payloads, newest first."""
        async with self.database.session() as session:
            stmt = select(PredictionTable)
            if symbol:
                stmt = stmt.where(PredictionTable.symbol == symbol)
            stmt = stmt.order_by(PredictionTable.created_at.desc(), PredictionTable.id.desc())
            stmt = stmt.limit(limit)

            result = await session.execute(stmt)
            return [self._row_to_payload(row) for row in result.scalars().all()]

    @staticmethod
    def _row_to_payload(row: PredictionTable) -> dict[str, Any]:
        window_shape = None
        if row.window_rows is not None and row.window_cols is not None:
            window_shape = {"rows": row.window_rows, "cols": row.window_cols}

        return {
            "symbol": row.symbol,
            "probability": row.probability,
            "exposure": row.exposure,
            "forecastVolatility": row.forecast_volatility,
            "barsCount": row.bars_count,
            "trainedSamples": row.trained_samples,
            "windowShape": window_shape,
            "createdAt": row.created_at.isoformat() if row.created_at else None,
        }
