"""FastAPI application factory."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from pantry_scanner.api.scanner import router as scanner_router
from pantry_scanner.app_logging import configure_logging
from pantry_scanner.containers import AppContainer


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        orchestrator = app.state.container.orchestrator
        try:
            orchestrator.boot()
        except Exception:
            logger.exception("Failed to resume checkpointed scan")
        detection_task = asyncio.create_task(orchestrator.run_detection())
        yield
        detection_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await detection_task
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(scanner_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app
