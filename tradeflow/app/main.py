"""Main application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from tradeflow import __version__
from tradeflow.app.api import manager, router, websocket_endpoint
from tradeflow.app.clients import KucoinRestClient
from tradeflow.app.config import Settings, get_settings
from tradeflow.app.ml.store import ModelStore
from tradeflow.app.services import CycleRunner
from tradeflow.app.storage import PredictionRepository, close_database, init_database
from tradeflow.core.orchestrator import CycleOrchestrator

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

# Database startup timeout in seconds
DB_INIT_TIMEOUT = 30

logger = logging.getLogger(__name__)


def configure_logging(log_file: str | None = None, level: int = logging.INFO) -> None:
    """Log to stderr and, when given, to ``log_file`` (parent dirs are created)."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    # Reduce noise from third-party libraries
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def build_orchestrator(settings: Settings, client: KucoinRestClient) -> CycleOrchestrator:
    """Wire the orchestrator to the exchange client and the on-disk model store."""
    config = settings.to_pipeline_config()
    store = ModelStore(
        settings.model_store_path,
        tcn_config=settings.to_tcn_config(),
        training_config=settings.to_training_config(),
    )

    async def fetch_trades():
        return await client.fetch_recent_trades(config.symbol, config.trade_history_limit)

    return CycleOrchestrator(config, fetch_trades, store)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    configure_logging(settings.log_file, logging.DEBUG if settings.debug else logging.INFO)

    logger.info(f"Starting tradeflow {__version__} for {settings.symbol}...")

    repository: PredictionRepository | None = None
    client = KucoinRestClient(settings.kucoin_base_url, settings.kucoin_timeout_ms)
    runner: CycleRunner | None = None

    try:
        if settings.persistence_enabled:
            try:
                await asyncio.wait_for(init_database(), timeout=DB_INIT_TIMEOUT)
            except asyncio.TimeoutError:
                raise RuntimeError(f"Database initialization timed out after {DB_INIT_TIMEOUT}s")
            repository = PredictionRepository()
            logger.info("Database initialized")
        else:
            logger.info("DATABASE_URL not set; predictions are not persisted")

        runner = CycleRunner(
            build_orchestrator(settings, client),
            symbol=settings.symbol,
            interval_seconds=settings.run_interval_seconds,
            repository=repository,
            broadcaster=manager,
        )
        app.state.runner = runner
        app.state.prediction_repo = repository
        runner.start()

    except Exception as e:
        logger.error(f"Startup failed: {e}")
        await client.close()
        if repository is not None:
            try:
                await close_database()
            except Exception as cleanup_err:
                logger.warning(f"Error closing database: {cleanup_err}")
        raise

    yield

    logger.info("Shutting down...")
    app.state.runner = None
    await runner.stop()
    await client.close()

    if repository is not None:
        try:
            await close_database()
            logger.info("Database connections closed")
        except Exception as e:
            logger.warning(f"Error closing database: {e}")

    logger.info("Shutdown complete")


app = FastAPI(
    title="Tradeflow",
    description="Trade-to-exposure prediction service",
    version=__version__,
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")

app.websocket("/ws")(websocket_endpoint)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Tradeflow",
        "version": __version__,
        "symbol": get_settings().symbol,
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


def main():
    """Run the application."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "tradeflow.app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
