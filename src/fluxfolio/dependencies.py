"""FastAPI dependency injection providers."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from fluxfolio.clients.bridge import BridgeClient
from fluxfolio.clients.relay import RelayClient
from fluxfolio.config import settings
from fluxfolio.db.models.user import UserRow
from fluxfolio.errors.exceptions import AuthenticationError
from fluxfolio.logging_config import bind_request_context
from fluxfolio.repositories.user_repo import SessionRepository, UserRepository
from fluxfolio.workers.queue import enqueue_job


async def get_db(request: Request) -> AsyncGenerator:
    """Yield a database session from the app's session factory."""
    session_factory = request.app.state.db_session_factory
    async with session_factory() as session:
        yield session


def get_workflow_deps(request: Request):
    """Workflow collaborators used when no Redis queue is configured."""
    return getattr(request.app.state, "workflow_deps", None)


def get_relay(request: Request):
    return request.app.state.relay


def get_bridge(request: Request):
    return request.app.state.bridge


def get_trace_id(request: Request) -> str:
    """Extract trace_id from request state (set by middleware)."""
    return getattr(request.state, "trace_id", "unknown")


def bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> UserRow:
    """Resolve the Bearer session token to its user or raise 401."""
    token = bearer_token(request)
    if token is None:
        raise AuthenticationError()
    session_row = await SessionRepository(db).resolve(token)
    if session_row is None:
        raise AuthenticationError()
    user = await UserRepository(db).get(session_row.user_id)
    if user is None:
        raise AuthenticationError()
    bind_request_context(get_trace_id(request), user.user_id)
    return user


# Type aliases for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[UserRow, Depends(get_current_user)]
Relay = Annotated[RelayClient, Depends(get_relay)]
Bridge = Annotated[BridgeClient, Depends(get_bridge)]


class JobStarter:
    """Creates a job for the current request and hands it to the queue."""

    def __init__(self, request: Request, db: DBSession):
        self.db = db
        self.redis = getattr(request.app.state, "redis", None)
        self.deps = get_workflow_deps(request)

    async def __call__(self, payload) -> dict:
        accepted = await enqueue_job(
            self.db,
            payload,
            redis=self.redis,
            deps=self.deps,
            queue_key=settings.job_queue_key,
        )
        return accepted.model_dump()


StartJob = Annotated[JobStarter, Depends(JobStarter)]
