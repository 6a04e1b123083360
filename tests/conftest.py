"""Shared test fixtures."""

import os

# Must be set before fluxfolio.config is imported
os.environ.setdefault("FLUXFOLIO_RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("FLUXFOLIO_LOCAL", "1")

from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from fluxfolio.config import Settings  # noqa: E402
from fluxfolio.db.base import Base  # noqa: E402
# Import all models to register with Base.metadata
import fluxfolio.db.models  # noqa: F401,E402
from fluxfolio.models.intents import FinalizeResult, Quote  # noqa: E402
from fluxfolio.repositories.user_repo import SessionRepository, UserRepository  # noqa: E402
from fluxfolio.services.signing.keys import derive_signer_id, generate_keypair  # noqa: E402
from fluxfolio.workers.context import build_deps  # noqa: E402


@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite async engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def user(session_factory):
    """A user whose portfolio already exists on-chain."""
    secret, _ = generate_keypair()
    async with session_factory() as session:
        row = await UserRepository(session).create(
            user_id="usr_alice",
            username="alice",
            sudo_key=secret,
            portfolio_account_id="7",
            intents_address=derive_signer_id(secret),
        )
        await session.commit()
    return row


@pytest.fixture
async def new_user(session_factory):
    """A registered user without a portfolio."""
    async with session_factory() as session:
        row = await UserRepository(session).create(user_id="usr_bob", username="bob")
        await session.commit()
    return row


async def _issue_headers(session_factory, user_id: str) -> dict:
    async with session_factory() as session:
        token = await SessionRepository(session).issue(user_id, ttl_hours=1)
        await session.commit()
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def auth_headers(session_factory, user):
    return await _issue_headers(session_factory, user.user_id)


@pytest.fixture
async def new_user_headers(session_factory, new_user):
    return await _issue_headers(session_factory, new_user.user_id)


@pytest.fixture
def make_quote():
    def _make(asset_in: str, asset_out: str, amount_in: int | str, amount_out: int | str, quote_hash: str = "qh") -> Quote:
        return Quote(
            amount_in=str(amount_in),
            amount_out=str(amount_out),
            defuse_asset_identifier_in=asset_in,
            defuse_asset_identifier_out=asset_out,
            quote_hash=quote_hash,
        )

    return _make


@pytest.fixture
def fake_relay():
    relay = AsyncMock()
    relay.publish_intent.return_value = "intent_hash_1"
    relay.finalize_intent.return_value = FinalizeResult(finalized="SETTLED", hash="tx_hash_1", attempts=1)
    return relay


@pytest.fixture
def fake_near_rpc():
    rpc = AsyncMock()
    rpc.is_nonce_used.return_value = False
    rpc.fetch_batch_balances.return_value = ["0"]
    return rpc


@pytest.fixture
def fake_gateway():
    return AsyncMock()


@pytest.fixture
def test_settings():
    return Settings(local_mode=True, step_write_attempts=1, min_deadline_ms=120000)


@pytest.fixture
def deps(session_factory, fake_relay, fake_near_rpc, fake_gateway, test_settings):
    """Workflow collaborators with every network client mocked."""
    workflow_deps = build_deps(
        test_settings,
        session_factory,
        relay=fake_relay,
        near_rpc=fake_near_rpc,
        gateway=fake_gateway,
    )
    workflow_deps.cancel_poll_interval = 60.0
    return workflow_deps


@pytest.fixture
def app(db_engine, session_factory):
    """Create a test application instance with in-memory DB."""
    from fluxfolio.main import create_app

    _app = create_app()
    _app.state.db_engine = db_engine
    _app.state.db_session_factory = session_factory
    _app.state.redis = None
    # Jobs stay pending unless a test installs workflow deps
    _app.state.workflow_deps = None
    _app.state.relay = AsyncMock()
    _app.state.bridge = AsyncMock()
    return _app


@pytest.fixture
async def client(app):
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
