"""Rate limiting middleware using slowapi."""

import logging

from fastapi import Request

from fluxfolio.config import settings
from fluxfolio.dependencies import bearer_token
from fluxfolio.repositories.user_repo import hash_token

logger = logging.getLogger(__name__)


def get_rate_limit_key(request: Request) -> str:
    """Key by session for authenticated callers, by IP otherwise."""
    from slowapi.util import get_remote_address

    token = bearer_token(request)
    if token:
        return f"session:{hash_token(token)[:16]}"
    return get_remote_address(request)


def setup_rate_limiter(app) -> None:
    """Attach slowapi limiter to the FastAPI app."""
    if not settings.rate_limit_enabled:
        return

    try:
        from slowapi import Limiter, _rate_limit_exceeded_handler
        from slowapi.errors import RateLimitExceeded
        from slowapi.middleware import SlowAPIMiddleware

        limiter = Limiter(
            key_func=get_rate_limit_key,
            default_limits=[f"{settings.rate_limit_per_minute}/minute"],
            storage_uri="memory://" if settings.local_mode else settings.redis_url,
        )
        app.state.limiter = limiter
        app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
        app.add_middleware(SlowAPIMiddleware)
        logger.info("Rate limiter configured (%d/min)", settings.rate_limit_per_minute)
    except ImportError:
        logger.debug("slowapi not installed, rate limiting disabled")
