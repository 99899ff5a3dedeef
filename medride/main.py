"""
MedRide Backend - FastAPI Entry Point
Application factory with CORS, middleware, realtime hub and route registration
"""

import logging
import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from medride import __version__
from medride.config import Settings
from medride.database import connect_db, disconnect_db
from medride.exceptions import NotFound, RealtimeError, Unauthorized, ValidationFailure
from medride.logging_config import configure_logging
from medride.routes import realtime_routes
from medride.sockets import realtime_socket
from medride.sockets.hub import RealtimeHub
from medride.sockets.manager import ConnectionManager
from medride.sockets.notifications import LoggingNotificationSink, NotificationSink
from medride.store.base import RealtimeStore
from medride.store.mongo_store import MongoRealtimeStore

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    NotFound: 404,
    Unauthorized: 403,
    ValidationFailure: 422,
}


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[RealtimeStore] = None,
    notifier: Optional[NotificationSink] = None,
) -> FastAPI:
    """
    Build one application instance with its own connection manager.

    When no store is given the MongoEngine store is used and MongoDB is
    connected on startup.
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    uses_mongo = store is None
    hub = RealtimeHub(
        store=store or MongoRealtimeStore(),
        settings=settings,
        manager=ConnectionManager(),
        notifier=notifier or LoggingNotificationSink(),
    )

    app = FastAPI(
        title="MedRide API",
        description="Realtime chat, presence and ride-booking relay",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.hub = hub

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming requests with timing"""
        start_time = time.time()
        logger.info(f"Request: {request.method} {request.url.path}")

        response = await call_next(request)

        process_time = time.time() - start_time
        logger.info(f"Completed in {process_time:.2f}s - Status: {response.status_code}")
        return response

    @app.exception_handler(RealtimeError)
    async def realtime_exception_handler(request: Request, exc: RealtimeError):
        status_code = ERROR_STATUS_CODES.get(type(exc), 503)
        return JSONResponse(
            status_code=status_code, content={"success": False, **exc.to_payload()}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle all unhandled exceptions"""
        logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Internal server error"},
        )

    @app.on_event("startup")
    async def startup_event():
        logger.info("Starting MedRide API...")
        if uses_mongo:
            connect_db(settings)
        await hub.manager.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Shutting down MedRide API...")
        await hub.manager.stop()
        if uses_mongo:
            disconnect_db(settings)

    @app.get("/health")
    async def health_check():
        """Detailed health check"""
        stats = hub.manager.get_stats()
        return {
            "success": True,
            "status": "healthy",
            "service": "MedRide",
            "version": __version__,
            "active_connections": stats["active_connections"],
        }

    app.include_router(realtime_routes.router, prefix="/realtime", tags=["Realtime"])
    app.include_router(realtime_socket.router, prefix="/ws", tags=["WebSocket"])

    return app


def run() -> None:
    import uvicorn

    uvicorn.run("medride.main:create_app", factory=True, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
