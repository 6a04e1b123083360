"""Collaborators shared by every workflow run."""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fluxfolio.clients.contract_gateway import ContractCaller
from fluxfolio.clients.near_rpc import NearRpcClient
from fluxfolio.clients.relay import RelayClient
from fluxfolio.config import Settings
from fluxfolio.services.intents.builder import IntentBuilder
from fluxfolio.services.ledger import StepLedger
from fluxfolio.services.signing.service import SigningService
from fluxfolio.services.tokens import TokenRegistry, default_registry


@dataclass
class WorkflowDeps:
    session_factory: async_sessionmaker[AsyncSession]
    ledger: StepLedger
    relay: RelayClient
    near_rpc: NearRpcClient
    gateway: ContractCaller
    signing: SigningService
    builder: IntentBuilder
    settings: Settings
    tokens: TokenRegistry = default_registry
    cancel_poll_interval: float = 2.0


def build_deps(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    relay: RelayClient,
    near_rpc: NearRpcClient,
    gateway: ContractCaller,
) -> WorkflowDeps:
    """Wire the ledger, builder and signer around already-open clients."""
    return WorkflowDeps(
        session_factory=session_factory,
        ledger=StepLedger(session_factory, write_attempts=settings.step_write_attempts),
        relay=relay,
        near_rpc=near_rpc,
        gateway=gateway,
        signing=SigningService(gateway),
        builder=IntentBuilder(
            near_rpc,
            verifying_contract=settings.verifying_contract,
            min_deadline_ms=settings.min_deadline_ms,
            nonce_max_attempts=settings.nonce_max_attempts,
        ),
        settings=settings,
    )
