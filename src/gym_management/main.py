"""
Application entry point.

`create_app()` builds the FastAPI application; its lifespan creates the service container, connects
MongoDB and Redis, starts the intent-expiry listener and the job scheduler, and tears them down on
shutdown. Run with `uvicorn gym_management.main:app`.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from gym_management import __version__
from gym_management.config import Settings, settings as default_settings
from gym_management.container import ServiceContainer
from gym_management.managers.logging_manager import get_logger
from gym_management.routes import (
    bookings,
    class_enrollments,
    class_sessions,
    health,
    notifications,
    payments,
    subscriptions,
    websocket,
)

logger = get_logger(prefix="[App]")


def create_app(settings: Optional[Settings] = None, container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the application.

    Passing `container` skips the connect/disconnect lifespan; tests use it to serve routes over
    mocked services.
    """
    cfg = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if container is not None:
            app.state.container = container
            yield
            return
        services = ServiceContainer(cfg)
        await services.connect()
        app.state.container = services
        logger.info("Gym management API ready")
        try:
            yield
        finally:
            await services.disconnect()

    app = FastAPI(title="Gym Management API", version=__version__, lifespan=lifespan)
    if container is not None:
        app.state.container = container
    for module in (
        payments,
        subscriptions,
        bookings,
        class_sessions,
        class_enrollments,
        notifications,
        health,
        websocket,
    ):
        app.include_router(module.router)
    return app


app = create_app()
