"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from switchboard.api.deps import Services
from switchboard.api.routes import chat, confirmations, executions, health

logger = logging.getLogger(__name__)


def create_app(services: Services) -> FastAPI:
    """Create and configure the FastAPI application around prebuilt services."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services.confirmations.start()
        logger.info("Switchboard API started")
        yield
        await services.manager.shutdown()
        await services.confirmations.stop()
        close = getattr(services.history, "close", None)
        if close is not None:
            await close()
        logger.info("Switchboard API stopped")

    app = FastAPI(
        title="Switchboard",
        description="Agent delegation and streaming orchestration engine",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services

    @app.exception_handler(RequestValidationError)
    async def malformed_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "success": False,
                "message": "Malformed request",
                "detail": jsonable_encoder(exc.errors()),
            },
        )

    app.include_router(chat.router, prefix="/api", tags=["chat"])
    app.include_router(executions.router, prefix="/api", tags=["executions"])
    app.include_router(confirmations.router, prefix="/api", tags=["confirmations"])
    app.include_router(health.router, tags=["health"])
    return app
