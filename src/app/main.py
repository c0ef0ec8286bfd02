"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import router as api_router
from .core.config import settings
from .core.logger import setup_logging
from .schemas.search import ApiErrorResponse, ErrorDetail
from .services.scout.engine import SearchEngine
from .services.scout.exceptions import CircuitOpenException, ErrorKind, ScoutException
from .services.scout.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def status_code_for(error: ScoutException) -> int:
    """400 for bad input, 503 for anything worth retrying, 500 otherwise."""
    if error.kind == ErrorKind.INVALID_QUERY:
        return 400
    if error.retryable:
        return 503
    return 500


def error_response(status_code: int, detail: ErrorDetail) -> JSONResponse:
    body = ApiErrorResponse(status_code=status_code, error=detail)
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True, exclude_none=True))


async def scout_exception_handler(request: Request, exc: ScoutException) -> JSONResponse:
    status_code = status_code_for(exc)
    headers = {}
    if isinstance(exc, CircuitOpenException) and exc.retry_after > 0:
        headers["Retry-After"] = str(max(1, int(exc.retry_after)))

    response = error_response(
        status_code,
        ErrorDetail(
            code=exc.kind.value,
            message=exc.message,
            retryable=exc.retryable,
            retry_after=exc.retry_after if isinstance(exc, CircuitOpenException) else None,
        ),
    )
    response.headers.update(headers)
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return error_response(
        400,
        ErrorDetail(
            code=ErrorKind.INVALID_QUERY.value,
            message=f"{location}: {message}" if location else message,
            retryable=False,
        ),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return error_response(
        500,
        ErrorDetail(code=ErrorKind.INTERNAL.value, message="Internal server error", retryable=False),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the search engine on startup and close its sessions on shutdown."""
    logger.info(f"{settings.APP_NAME} starting up ({settings.ENVIRONMENT.value})")

    if getattr(app.state, "engine", None) is None:
        app.state.engine = SearchEngine.from_settings(settings)
    if settings.SCOUT_RATE_LIMIT_ENABLED and getattr(app.state, "rate_limiter", None) is None:
        app.state.rate_limiter = RateLimiter.from_settings(settings)

    yield

    await app.state.engine.shutdown()
    logger.info(f"{settings.APP_NAME} shut down")


def create_app(engine: SearchEngine | None = None, rate_limiter: RateLimiter | None = None) -> FastAPI:
    """Factory function to create the FastAPI application.

    ``engine`` and ``rate_limiter`` are used as-is when given; otherwise the
    lifespan builds them from settings.
    """
    setup_logging(
        level=settings.LOG_LEVEL,
        fmt=settings.LOG_FORMAT.value,
        log_file=settings.LOG_FILE_PATH,
    )

    app = FastAPI(
        title=settings.APP_NAME,
        description=settings.APP_DESCRIPTION,
        version=settings.APP_VERSION or "0.0.0",
        lifespan=lifespan,
    )
    app.state.engine = engine
    app.state.rate_limiter = rate_limiter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=settings.CORS_METHODS,
        allow_headers=settings.CORS_HEADERS,
    )

    app.add_exception_handler(ScoutException, scout_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(api_router)
    return app
