"""
App Config - FastAPI Main Application
"""
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional
import asyncio
import contextlib
import json
import logging

from .config import Settings, settings as default_settings
from .database import Base, Database
from .errors import InvariantViolation, NotFoundError
from .services.commands import AppConfigCommands
from .services.executor import ConfigExecutor, ContentUpdater
from .services.live_query import InvalidationTracker
from .services.store import AppConfigStore
from .services.updaters import HttpContentUpdater
from .websocket.handlers import WebSocketHandler, WebSocketPresenter
from .websocket.manager import manager, start_heartbeat

logger = logging.getLogger(__name__)


def setup_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def create_app(settings: Settings = default_settings, updater: Optional[ContentUpdater] = None) -> FastAPI:
    """Build the service; ``updater`` defaults to the HTTP content updater"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.APP_NAME} {settings.APP_VERSION}...")

        database = Database(
            settings.DATABASE_URL,
            echo=settings.DATABASE_ECHO,
            timeout=settings.DATABASE_TIMEOUT,
        )
        database.init_db()

        tracker = InvalidationTracker(Base.metadata)
        store = AppConfigStore(database, tracker)
        content_updater = updater or HttpContentUpdater(
            scheme=settings.UPDATE_SCHEME,
            timeout=settings.UPDATE_TIMEOUT,
        )
        commands = AppConfigCommands(
            store,
            ConfigExecutor(store, content_updater),
            WebSocketPresenter(),
            workers=settings.COMMAND_WORKERS,
            cloned_name_format=settings.CLONED_NAME_FORMAT,
        )
        app.state.store = store
        app.state.commands = commands

        heartbeat = asyncio.create_task(start_heartbeat(settings.WS_HEARTBEAT_INTERVAL))
        logger.info(f"✅ {settings.APP_NAME} started")

        yield

        logger.info(f"Shutting down {settings.APP_NAME}...")
        heartbeat.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await heartbeat
        commands.close()
        tracker.close()
        if updater is None:
            content_updater.close()
        database.dispose()
        logger.info("✅ Shutdown complete")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Named parameter sets applied on demand to external authorities",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
        }

    # Error handlers
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request, exc):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail, "status_code": exc.status_code},
        )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request, exc):
        return JSONResponse(status_code=404, content={"error": str(exc), "status_code": 404})

    @app.exception_handler(InvariantViolation)
    async def invariant_violation_handler(request, exc):
        logger.critical(f"Invariant violated: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Invariant violated", "detail": str(exc) if settings.DEBUG else None},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if settings.DEBUG else "An error occurred",
            },
        )

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Live projections and navigation/error events"""
        await manager.connect(websocket)
        try:
            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    logger.warning(f"Ignoring non-JSON websocket message: {data[:100]}")
                    continue
                await WebSocketHandler.handle_message(websocket, message)
        except WebSocketDisconnect:
            manager.disconnect(websocket)
        except Exception as e:
            logger.error(f"WebSocket error: {e}")
            manager.disconnect(websocket)

    # Import and include routers
    from .api import configs, key_values

    app.include_router(configs.router, prefix=f"{settings.API_V1_PREFIX}/configs", tags=["Configs"])
    app.include_router(key_values.router, prefix=f"{settings.API_V1_PREFIX}/key-values", tags=["Key-Values"])

    return app


setup_logging(default_settings.LOG_LEVEL)
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "appconfig.main:app",
        host=default_settings.HOST,
        port=default_settings.PORT,
        reload=default_settings.DEBUG,
        log_level=default_settings.LOG_LEVEL.lower(),
    )
