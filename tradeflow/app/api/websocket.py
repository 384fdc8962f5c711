"""WebSocket relay for prediction payloads."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

import orjson
from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel

logger = logging.getLogger(__name__)

# Seconds without client traffic before the server sends a ping
IDLE_PING_SECONDS = 60.0


def _orjson_dumps(obj: Any) -> str:
    """Serialize object to JSON string using orjson."""
    return orjson.dumps(obj, default=str).decode("utf-8")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _frame(msg_type: str, data: dict[str, Any]) -> str:
    return _orjson_dumps({"type": msg_type, "data": data, "timestamp": _now().isoformat()})


class WebSocketMessage(BaseModel):
    """WebSocket message format."""

    type: str  # "prediction"
    data: dict[str, Any]
    timestamp: datetime

    def to_json(self) -> str:
        return _orjson_dumps(self.model_dump())


class ConnectionManager:
    """Manage WebSocket connections and broadcasts."""

    def __init__(self):
        self._connections: list[WebSocket] = []
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> None:
        """Accept a new WebSocket connection."""
        await websocket.accept()
        async with self._lock:
            self._connections.append(websocket)
        logger.info(f"WebSocket connected. Total connections: {len(self._connections)}")

    async def disconnect(self, websocket: WebSocket) -> None:
        """Remove a disconnected WebSocket."""
        async with self._lock:
            if websocket in self._connections:
                self._connections.remove(websocket)
        logger.info(f"WebSocket disconnected. Total connections: {len(self._connections)}")

    async def broadcast(self, message: WebSocketMessage) -> None:
        """Send a message to every client, dropping the ones that fail."""
        if not self._connections:
            return

        message_text = message.to_json()
        disconnected = []

        async with self._lock:
            for websocket in self._connections:
                try:
                    await websocket.send_text(message_text)
                except Exception as e:
                    logger.warning(f"Failed to send message: {e}")
                    disconnected.append(websocket)

            for ws in disconnected:
                self._connections.remove(ws)

    async def send_prediction(self, payload: dict[str, Any]) -> None:
        """Broadcast a cycle's prediction payload."""
        await self.broadcast(
            WebSocketMessage(type="prediction", data=payload, timestamp=_now())
        )

    @property
    def connection_count(self) -> int:
        return len(self._connections)


# Global connection manager
manager = ConnectionManager()


async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint relaying predictions.

    Messages sent to clients:
    - connected: Sent once after the handshake
    - prediction: Payload of a completed cycle
    - ping / pong: Keepalive
    - error: Invalid client message

    Message format:
    {
        "type": "prediction",
        "data": {...},
        "timestamp": "2024-01-01T00:00:00+00:00"
    }
    """
    await manager.connect(websocket)

    try:
        await websocket.send_text(_frame("connected", {"message": "Connected to prediction feed"}))

        while True:
            try:
                data = await asyncio.wait_for(
                    websocket.receive_text(),
                    timeout=IDLE_PING_SECONDS,
                )

                try:
                    message = orjson.loads(data)
                except orjson.JSONDecodeError:
                    await websocket.send_text(_frame("error", {"message": "Invalid JSON"}))
                    continue

                await handle_client_message(websocket, message)

            except asyncio.TimeoutError:
                await websocket.send_text(_frame("ping", {}))

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
    finally:
        await manager.disconnect(websocket)


async def handle_client_message(websocket: WebSocket, message: Any) -> None:
    """Handle incoming message from client."""
    msg_type = message.get("type", "") if isinstance(message, dict) else ""

    if msg_type == "ping":
        await websocket.send_text(_frame("pong", {}))
    else:
        await websocket.send_text(
            _frame("error", {"message": f"Unknown message type: {msg_type}"})
        )
