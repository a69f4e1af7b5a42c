"""FastAPI application: main entry point."""

import structlog
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from pulse.config import get_settings
from pulse.core.logging import configure_logging
from pulse.core.middleware import setup_middleware
from pulse.core.exceptions import global_exception_handler
from pulse.application.services.lifecycle_service import LifecycleService
from pulse.infrastructure.repositories.memory_state_repository import InMemoryStateRepository

# Import routers
from pulse.interfaces.api.health import router as health_router
from pulse.interfaces.websocket.sync import router as sync_router

settings = get_settings()

# Configure logging immediately
configure_logging()
logger = structlog.get_logger(__name__)


class SPAStaticFiles(StaticFiles):
    """Static bundle with a fallback to index.html for client-side routes."""

    async def get_response(self, path, scope):
        try:
            return await super().get_response(path, scope)
        except StarletteHTTPException as e:
            if e.status_code != 404:
                raise
            return await super().get_response("index.html", scope)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: one authoritative state store per process."""
    app.state.lifecycle = LifecycleService(InMemoryStateRepository())
    logger.info("Starting Pulse Sync", env=settings.ENVIRONMENT, ws_path=settings.WS_PATH)

    yield

    logger.info(
        "Pulse Sync stopped",
        connections=len(app.state.lifecycle.store.registry),
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Pulse Sync",
        description="Real-time proposal, comment and vote synchronization over WebSocket",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Setup Middleware (Correlation ID, Logging)
    setup_middleware(app)

    # Global Exception Handling
    app.add_exception_handler(Exception, global_exception_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health_router)
    app.include_router(sync_router)

    # Built client bundle, if present
    dist_dir = Path(settings.CLIENT_DIST_DIR)
    if (dist_dir / "index.html").is_file():
        app.mount("/", SPAStaticFiles(directory=dist_dir, html=True), name="client")
        logger.info("Serving client bundle", path=str(dist_dir))

    return app


app = create_app()


def run() -> None:
    uvicorn.run("pulse.main:app", host=settings.HOST, port=settings.PORT, log_config=None)
