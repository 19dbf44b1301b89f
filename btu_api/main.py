# btu_api/main.py
"""
FastAPI application factory.

Run locally with:
    uvicorn btu_api.main:app --reload
"""

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from btu_api.config import get_settings
from btu_api.database import dispose_engine, init_db
from btu_api.errors import AppError
from btu_api.logging_config import configure_logging, request_id_var
from btu_api.routers import health_router, news_router, proxy_router
from btu_api.storage.factory import get_storage_provider

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


async def warm_up_storage() -> bool:
    """
    Resolve credentials and prepare the upload container ahead of the first
    request. Failure leaves uploads disabled until a later request succeeds.
    """
    storage = get_storage_provider()
    try:
        container = await storage.ensure_container()
    except Exception as e:
        logger.warning(
            f"Storage warm-up failed for {storage.name}: {type(e).__name__}; uploads disabled for now",
            extra={"event": "storage_warmup_failed", "backend": storage.name},
        )
        return False
    logger.info(
        f"Storage ready: {storage.name} ({container})",
        extra={"event": "storage_warmup_complete", "backend": storage.name},
    )
    return True


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(json_format=settings.LOG_JSON, level=settings.LOG_LEVEL)
    logger.info(f"Starting up ({settings.ENVIRONMENT})")

    await init_db()
    await warm_up_storage()

    yield

    await dispose_engine()
    logger.info("Shut down")


async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            f"{request.method} {request.url.path} failed: {exc.error}",
            extra={"method": request.method, "path": request.url.path, "status_code": exc.status_code},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "error": exc.error},
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        f"Unhandled error on {request.method} {request.url.path}",
        extra={"method": request.method, "path": request.url.path, "status_code": 500},
    )
    return JSONResponse(
        status_code=500,
        content={"message": "Internal server error", "error": "internal_error"},
    )


def create_app() -> FastAPI:
    app = FastAPI(title="Burial Society API", lifespan=lifespan)

    @app.middleware("http")
    async def assign_request_id(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    app.add_exception_handler(AppError, handle_app_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    app.include_router(news_router)
    app.include_router(proxy_router)
    app.include_router(health_router)

    return app


app = create_app()
