from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from contextlib import asynccontextmanager

from app.utils.config import Settings
from app.utils.logging import setup_logging
from app.utils.posthog_client import shutdown_posthog
from app.utils.singleton import reset_singletons
from app.utils.tasks import wait_for_background_tasks
from app.routers import (
    conversation,
    extraction,
    pregeneration,
    summary,
)

import asyncio
import logging

# Load configuration
settings = Settings()

# Configure logging
setup_logging(settings.log_format)

SHUTDOWN_GRACE_SECONDS = 10


async def close_shared_clients() -> None:
    """Closes job queues and the record store created during the process lifetime."""
    for name, value in reset_singletons().items():
        close = getattr(value, "close", None)
        if close is None:
            continue
        try:
            result = close()
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logging.error(f"Error closing {name}: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown."""
    # Startup
    logging.info(f"🚀 Slide summary service starting on {settings.host}:{settings.port}")
    logging.info(f"Environment: {settings.app_env}")
    logging.info(
        "Routers registered: /lectures, /slides, /summaries/queue, /slide-summary, /extraction"
    )
    yield
    # Shutdown: let in-flight saves finish before closing the store
    try:
        await asyncio.wait_for(wait_for_background_tasks(), SHUTDOWN_GRACE_SECONDS)
    except asyncio.TimeoutError:
        logging.warning("Background tasks still running at shutdown")
    shutdown_posthog()
    await close_shared_clients()


app = FastAPI(title="Slide Summary Service", lifespan=lifespan)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log all failed requests."""

    async def dispatch(self, request: Request, call_next):
        try:
            response = await call_next(request)
            return response
        except Exception as e:
            logging.error(
                f"Request failed: {request.method} {request.url.path} - {type(e).__name__}: {e}"
            )
            raise


app.add_middleware(RequestLoggingMiddleware)


# Health endpoint
@app.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}


# Exception handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logging.warning(f"Invalid request for {request.method} {request.url.path}")
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logging.error(
        f"Unhandled exception for {request.method} {request.url.path}: {type(exc).__name__}",
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


app.include_router(summary.router)
app.include_router(conversation.router)
app.include_router(pregeneration.router)
# Pub/Sub push subscriptions
app.include_router(extraction.router)
