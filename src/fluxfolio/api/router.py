"""Master API router mounted at /api/v1."""

from fastapi import APIRouter
from fluxfolio.api.routes import (
    agents,
    auth,
    bundles,
    health,
    jobs,
    portfolio,
    quotes,
)

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(auth.router)
api_router.include_router(jobs.router)
api_router.include_router(portfolio.router)
api_router.include_router(bundles.router)
api_router.include_router(agents.router)
api_router.include_router(quotes.router)
