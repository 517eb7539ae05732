"""FastAPI application entry point."""

from contextlib import asynccontextmanager
import os
from typing import AsyncGenerator, Awaitable, Callable, cast

from fastapi import APIRouter, FastAPI, Request
from starlette.responses import Response
import structlog

from .api.routes import sync_router
from .config import current_sync_config, load_settings
from .core.errors import AppError, app_error_handler
from .db.postgres import (
    PostgresClient,
    PostgresRunLogStore,
    PostgresSourceReader,
    PostgresTargetStore,
)
from .sync import (
    InMemoryRunLogStore,
    InMemorySourceReader,
    InMemoryTargetStore,
    SyncOrchestrator,
    create_sync_scheduler,
)

logger = structlog.get_logger(__name__)


def _should_skip_pool() -> bool:
    return os.getenv("SKIP_DB_POOL") == "1"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Connects PostgreSQL, builds the sync orchestrator and starts the timer
    jobs on startup; stops and closes them on shutdown. Without a database the
    orchestrator runs against in-memory stores.
    """
    settings = load_settings()
    app.state.settings = settings
    app.state.postgres = None

    if settings.database_url and not _should_skip_pool():
        postgres = PostgresClient(settings.database_url)
        await postgres.connect()
        await postgres.create_tables()
        app.state.postgres = postgres
        reader = PostgresSourceReader(postgres)
        target = PostgresTargetStore(postgres)
        log_store = PostgresRunLogStore(postgres)
        logger.info("database_connections_initialized")
    else:
        logger.warning("sync_using_in_memory_stores", app_env=settings.app_env)
        reader = InMemorySourceReader()
        target = InMemoryTargetStore()
        log_store = InMemoryRunLogStore()

    # Fresh snapshot per run so configuration changes apply on the next run
    app.state.sync_orchestrator = SyncOrchestrator(
        reader=reader,
        target=target,
        log_store=log_store,
        config=current_sync_config,
        retry_backoff_seconds=settings.retry_backoff_seconds,
    )
    app.state.sync_scheduler = create_sync_scheduler(
        app.state.sync_orchestrator,
        delta_schedule=settings.delta_schedule,
        full_schedule=settings.full_schedule,
        enabled=settings.scheduler_enabled,
    )
    await app.state.sync_scheduler.start()

    yield

    await app.state.sync_scheduler.stop()
    if app.state.postgres is not None:
        await app.state.postgres.disconnect()
    logger.info("database_connections_closed")


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(
        title="Unified File Sync",
        version="0.1.0",
        description="Batch sync of documents, notes and attachments into one report table",
        lifespan=lifespan,
    )

    app.add_exception_handler(
        AppError,
        cast(Callable[[Request, Exception], Awaitable[Response]], app_error_handler),
    )

    app.include_router(router)
    app.include_router(sync_router, prefix="/api/v1")

    return app


router = APIRouter()


@router.get("/health")
async def health(request: Request) -> dict[str, object]:
    scheduler = getattr(request.app.state, "sync_scheduler", None)
    orchestrator = getattr(request.app.state, "sync_orchestrator", None)
    return {
        "status": "ok",
        "schedulerRunning": bool(scheduler and scheduler.is_running),
        "syncRunning": bool(orchestrator and orchestrator.is_running),
    }


def run() -> None:
    """Run the application with uvicorn."""
    import uvicorn

    settings = load_settings()
    uvicorn.run("unified_file_sync.main:app", host=settings.backend_host, port=settings.backend_port)


app = create_app()
