"""Workflow for assign-agent jobs."""

import logging
import time

import base58

from fluxfolio.clients.contract_gateway import decode_success_value
from fluxfolio.errors.exceptions import ValidationError
from fluxfolio.models.enums import JobType
from fluxfolio.models.job import JobModel
from fluxfolio.models.payloads import AssignAgentJob
from fluxfolio.repositories.user_repo import UserRepository
from fluxfolio.services.intents.canonical import canonical_json
from fluxfolio.services.signing.keys import KEY_PREFIX, parse_secret_key, public_key_string
from fluxfolio.services.signing.local import sign_ephemeral
from fluxfolio.workers.base import BaseWorkflow, portfolio_id_arg

logger = logging.getLogger(__name__)


def check_agent_pubkey(agent_pubkey: str) -> None:
    if not agent_pubkey.startswith(KEY_PREFIX):
        raise ValidationError('Agent public key must start with "ed25519:"')
    try:
        raw = base58.b58decode(agent_pubkey[len(KEY_PREFIX):])
    except ValueError as exc:
        raise ValidationError("Agent public key is not valid base58") from exc
    if len(raw) != 32:
        raise ValidationError(f"Agent public key must be 32 bytes, got {len(raw)}")


class AssignAgentWorkflow(BaseWorkflow):
    job_type = JobType.ASSIGN_AGENT
    steps = (
        ("Validating Agent", "validate_agent"),
        ("Linking to Portfolio", "link_agent"),
    )
    repeatable_steps = frozenset({"Validating Agent"})

    async def restore(self, job: JobModel, payload: AssignAgentJob) -> None:
        self.user = await self.load_user(payload.user_id)

    async def validate_agent(self, job_id: str, payload: AssignAgentJob) -> None:
        check_agent_pubkey(payload.agent_pubkey)
        self.user = await self.load_user(payload.user_id)
        if not (self.user.portfolio_account_id and self.user.sudo_key):
            raise ValidationError("User has no portfolio; create a portfolio first")

    async def link_agent(self, job_id: str, payload: AssignAgentJob) -> None:
        settings = self.deps.settings
        ephemeral = {
            "owner_pubkey": public_key_string(parse_secret_key(self.user.sudo_key)),
            "nonce": int(time.time() * 1000),
            "portfolio_id": portfolio_id_arg(self.user.portfolio_account_id),
        }
        outcome = await self.deps.gateway.function_call(
            signer_id=settings.platform_signer_id,
            contract_id=settings.contract_id,
            method_name="assign_portfolio_agent",
            args={
                "signed_payload": canonical_json(ephemeral),
                "signature": sign_ephemeral(ephemeral, self.user.sudo_key),
                "agent_pubkey": payload.agent_pubkey,
                "portfolio_id": ephemeral["portfolio_id"],
            },
            gas=settings.function_call_gas,
        )
        # Raises when the call did not succeed; the method itself returns nothing.
        decode_success_value(outcome)

        async with self.deps.session_factory() as session:
            repo = UserRepository(session)
            row = await repo.get(self.user.user_id, for_update=True)
            await repo.set_agent(row, payload.agent_id, payload.agent_pubkey)
            await session.commit()

        logger.info("Agent %s linked to portfolio %s", payload.agent_id, self.user.portfolio_account_id)
        self.result = {"agent_id": payload.agent_id, "portfolio_id": self.user.portfolio_account_id}
