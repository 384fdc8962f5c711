#!/usr/bin/env python3
"""
Run a single trading cycle and print its payload.

Usage:
    python scripts/run_cycle.py
    python scripts/run_cycle.py --symbol ETH-USDT --window 32 --persist
"""

import argparse
import asyncio
import logging

import orjson

from tradeflow.app.clients import KucoinRestClient
from tradeflow.app.config import get_settings
from tradeflow.app.main import build_orchestrator, configure_logging
from tradeflow.app.storage import PredictionRepository, close_database, init_database

logger = logging.getLogger(__name__)


async def run(args: argparse.Namespace) -> int:
    overrides = {}
    if args.symbol:
        overrides["symbol"] = args.symbol
    if args.window:
        overrides["feature_window_size"] = args.window
    if args.limit:
        overrides["trade_history_limit"] = args.limit
    settings = get_settings().model_copy(update=overrides)

    client = KucoinRestClient(settings.kucoin_base_url, settings.kucoin_timeout_ms)
    try:
        orchestrator = build_orchestrator(settings, client)
        decision = await orchestrator.run_cycle()
    finally:
        await client.close()

    if decision is None:
        logger.error("Cycle was skipped")
        return 1

    payload = decision.to_payload(settings.symbol)

    if args.persist:
        if not settings.persistence_enabled:
            logger.error("--persist needs DATABASE_URL")
            return 1
        await init_database()
        try:
            await PredictionRepository().save(payload)
        finally:
            await close_database()

    print(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode("utf-8"))
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Run one trading cycle")
    parser.add_argument("--symbol", help="Trading pair, e.g. BTC-USDT (default: from env)")
    parser.add_argument("--window", type=int, help="Feature window size")
    parser.add_argument("--limit", type=int, help="Number of trades to fetch")
    parser.add_argument("--persist", action="store_true", help="Store the prediction in DATABASE_URL")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()

    configure_logging(None, logging.DEBUG if args.verbose else logging.INFO)
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
