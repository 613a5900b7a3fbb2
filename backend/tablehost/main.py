"""FastAPI application entry point for the floor engine."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api.deps import get_connection_manager, get_engine
from .api.errors import register_error_handlers
from .api.routes import reservations, tables, waitlist, websocket
from .config import settings
from .services.broadcast import EventBroadcaster

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan handler for startup/shutdown."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting %s...", settings.app_name)

    if settings.storage_backend == "sql":
        from .models import init_db

        await init_db()
        logger.info("Database initialized")

    engine = get_engine()
    broadcaster = EventBroadcaster(get_connection_manager())
    engine.bus.subscribe(broadcaster.on_event)

    # Start background services
    tasks = [asyncio.create_task(broadcaster.start())]
    if settings.promotion_enabled:
        tasks.append(asyncio.create_task(engine.promoter.start()))

    yield

    logger.info("Shutting down...")
    await broadcaster.stop()
    await engine.promoter.stop()
    for task in tasks:
        task.cancel()
    for task in tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass


app = FastAPI(
    title=settings.app_name,
    description="Reservations, table assignment and waitlist for restaurant floors",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware for host-stand frontends
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Include routers
app.include_router(tables.router, prefix=settings.api_prefix)
app.include_router(reservations.router, prefix=settings.api_prefix)
app.include_router(waitlist.router, prefix=settings.api_prefix)
app.include_router(websocket.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "status": "running",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tablehost.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
