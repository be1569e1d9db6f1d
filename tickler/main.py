"""tickler - personal task tracker with a recurrence/occurrence engine."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from tickler.core.db_client import close_connection, init_db
from tickler.core.logging import configure_logfire, instrument_fastapi
from tickler.interface.api_router import router as api_router
from tickler.modules.occurrences import window_ensurer


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    configure_logfire()

    await init_db()
    logger.info("Database initialized")

    skipped = await window_ensurer.ensure_all()
    logger.info("startup_ensure_pass", extra={"skipped": len(skipped)})
    yield
    # Shutdown
    await close_connection()


app = FastAPI(
    title="tickler",
    description="Personal task tracker with recurring occurrences",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

# Register routers
app.include_router(api_router)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=200)
