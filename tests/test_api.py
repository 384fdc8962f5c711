"""Tests for the REST routes and websocket relay."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import orjson
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tradeflow.app.api import ConnectionManager, router, websocket_endpoint
from tradeflow.app.services import CycleRunner
from tradeflow.core.models import PipelineConfig, TradingDecision


def make_runner() -> CycleRunner:
    orchestrator = MagicMock()
    orchestrator.config = PipelineConfig(symbol="BTC-USDT")
    orchestrator.is_running = False
    orchestrator.run_cycle = AsyncMock(return_value=TradingDecision.neutral(3))
    return CycleRunner(orchestrator, "BTC-USDT", interval_seconds=900)


def make_app(runner=None, repo=None) -> FastAPI:
    app = FastAPI()
    app.include_router(router, prefix="/api")
    app.websocket("/ws")(websocket_endpoint)
    app.state.runner = runner
    app.state.prediction_repo = repo
    return app


class TestStatusRoute:
    """Tests for /api/status."""

    def test_status(self):
        runner = make_runner()
        client = TestClient(make_app(runner))

        response = client.get("/api/status")

        assert response.status_code == 200
        body = response.json()
        assert body["symbol"] == "BTC-USDT"
        assert body["status"] == "idle"
        assert body["interval_seconds"] == 900
        assert body["persistence"] is False
        assert body["last_prediction"] is None
        assert body["cycles"] == 0
        assert body["skipped_cycles"] == 0

    @pytest.mark.asyncio
    async def test_status_counts_skipped_triggers_separately(self):
        runner = make_runner()
        runner.orchestrator.run_cycle.side_effect = [None, TradingDecision.neutral(3)]
        await runner.run_once()
        await runner.run_once()
        client = TestClient(make_app(runner))

        body = client.get("/api/status").json()

        assert body["cycles"] == 1
        assert body["skipped_cycles"] == 1
        assert body["failed_cycles"] == 0

    def test_status_without_runner(self):
        client = TestClient(make_app())

        assert client.get("/api/status").status_code == 503


class TestRecentRoute:
    """Tests for /api/recent."""

    def test_recent_from_memory(self):
        runner = make_runner()
        asyncio.run(runner.run_once())
        client = TestClient(make_app(runner))

        response = client.get("/api/recent", params={"limit": 5})

        assert response.status_code == 200
        body = response.json()
        assert len(body) == 1
        assert body[0]["symbol"] == "BTC-USDT"
        assert body[0]["barsCount"] == 3

    def test_recent_from_repository(self):
        repo = MagicMock()
        repo.get_recent = AsyncMock(return_value=[{"symbol": "BTC-USDT", "probability": 0.6}])
        client = TestClient(make_app(make_runner(), repo))

        response = client.get("/api/recent", params={"limit": 2})

        assert response.json() == [{"symbol": "BTC-USDT", "probability": 0.6}]
        repo.get_recent.assert_awaited_once_with(limit=2)

    def test_repository_failure(self):
        repo = MagicMock()
        repo.get_recent = AsyncMock(side_effect=RuntimeError("db down"))
        client = TestClient(make_app(make_runner(), repo))

        assert client.get("/api/recent").status_code == 503

    def test_limit_validated(self):
        client = TestClient(make_app(make_runner()))

        assert client.get("/api/recent", params={"limit": 0}).status_code == 422


class TestWebSocketEndpoint:
    """Tests for /ws."""

    def test_connect_and_ping(self):
        client = TestClient(make_app(make_runner()))

        with client.websocket_connect("/ws") as ws:
            hello = orjson.loads(ws.receive_text())
            assert hello["type"] == "connected"

            ws.send_text(orjson.dumps({"type": "ping"}).decode())
            assert orjson.loads(ws.receive_text())["type"] == "pong"

            ws.send_text("not json")
            assert orjson.loads(ws.receive_text())["type"] == "error"

            ws.send_text(orjson.dumps({"type": "subscribe"}).decode())
            assert orjson.loads(ws.receive_text())["type"] == "error"


class TestConnectionManager:
    """Tests for broadcasting."""

    @pytest.mark.asyncio
    async def test_send_prediction(self):
        manager = ConnectionManager()
        ws = MagicMock()
        ws.accept = AsyncMock()
        ws.send_text = AsyncMock()
        await manager.connect(ws)

        await manager.send_prediction({"symbol": "BTC-USDT", "exposure": 0.5})

        message = orjson.loads(ws.send_text.await_args.args[0])
        assert message["type"] == "prediction"
        assert message["data"] == {"symbol": "BTC-USDT", "exposure": 0.5}
        assert "timestamp" in message

    @pytest.mark.asyncio
    async def test_failed_client_dropped(self):
        manager = ConnectionManager()
        good, bad = MagicMock(), MagicMock()
        for ws in (good, bad):
            ws.accept = AsyncMock()
            ws.send_text = AsyncMock()
            await manager.connect(ws)
        bad.send_text.side_effect = RuntimeError("closed")

        await manager.send_prediction({"symbol": "BTC-USDT"})

        assert manager.connection_count == 1
        good.send_text.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_clients(self):
        await ConnectionManager().send_prediction({"symbol": "BTC-USDT"})
