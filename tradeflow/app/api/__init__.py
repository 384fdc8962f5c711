"""HTTP and websocket API."""

from tradeflow.app.api.routes import router
from tradeflow.app.api.websocket import ConnectionManager, manager, websocket_endpoint

__all__ = ["router", "ConnectionManager", "manager", "websocket_endpoint"]
