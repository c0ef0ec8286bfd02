import logging

from fastapi import HTTPException, Request

from ..services.scout.engine import SearchEngine
from ..services.scout.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def get_engine(request: Request) -> SearchEngine:
    engine: SearchEngine | None = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Search engine is not available")
    return engine


async def rate_limiter_dependency(request: Request) -> None:
    """Space searches out like a human would. Waits instead of rejecting."""
    limiter: RateLimiter | None = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        return

    waited = await limiter.throttle()
    if waited > 0:
        logger.info(f"Search request delayed {waited:.1f}s by rate limiter")
