"""
Scout - Search API Endpoints

Runs searches synchronously against the engine held in app state and exposes
the region table and service status.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from ...api.dependencies import get_engine, rate_limiter_dependency
from ...core.config import settings
from ...schemas.search import ApiErrorResponse, ApiResponse, CountryInfo, SearchRequest
from ...services.scout.engine import SearchEngine
from ...services.scout.metrics import get_prometheus_metrics
from ...services.scout.regions import get_country_list, get_supported_countries

logger = logging.getLogger(__name__)

router = APIRouter(tags=["search"])

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ApiErrorResponse, "description": "Invalid query or request body"},
    500: {"model": ApiErrorResponse, "description": "Non-retryable failure"},
    503: {"model": ApiErrorResponse, "description": "Retryable failure (blocked, timeout, breaker open)"},
}


@router.post(
    "/search",
    response_model=ApiResponse,
    dependencies=[Depends(rate_limiter_dependency)],
    responses=ERROR_RESPONSES,
    summary="Run a search",
    description="Fetches the localized results page in a fresh browser session and returns structured results.",
)
async def search(request: SearchRequest, engine: SearchEngine = Depends(get_engine)) -> ApiResponse:
    """
    Run one search.

    - **region**: 2-letter country code; omit or use `auto` to resolve from the server's IP
    - **limit**: 1..10 results
    - **include_raw_html**: also return the fetched page HTML

    Failures are returned as `{statusCode, error{code, message, retryable}}`.
    """
    response = await engine.search(request)
    return ApiResponse(status_code=200, result=response.model_dump())


@router.get("/health", summary="Liveness and breaker state")
async def health(engine: SearchEngine = Depends(get_engine)) -> dict[str, Any]:
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "breaker": engine.breaker.snapshot(),
    }


@router.get("/countries", response_model=ApiResponse, summary="Supported regions")
async def countries() -> ApiResponse:
    return ApiResponse(result=[CountryInfo(**country).model_dump() for country in get_country_list()])


@router.get("/info", response_model=ApiResponse, summary="Service information and metrics")
async def info(engine: SearchEngine = Depends(get_engine)) -> ApiResponse:
    return ApiResponse(
        result={
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT.value,
            "default_region": settings.SCOUT_DEFAULT_REGION,
            "max_results": settings.SCOUT_MAX_RESULTS,
            "supported_countries": get_supported_countries(),
            "metrics": engine.get_metrics(),
        }
    )


@router.get("/metrics", response_class=PlainTextResponse, summary="Prometheus metrics")
async def metrics() -> str:
    return get_prometheus_metrics()
