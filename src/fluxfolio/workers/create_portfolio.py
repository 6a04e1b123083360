"""Workflow for create-portfolio jobs."""

import logging

from fluxfolio.errors.exceptions import ConflictError
from fluxfolio.models.enums import JobType
from fluxfolio.models.payloads import CreatePortfolioJob
from fluxfolio.repositories.user_repo import UserRepository
from fluxfolio.services.signing.keys import derive_signer_id, generate_keypair
from fluxfolio.workers.base import BaseWorkflow, parse_portfolio_id

logger = logging.getLogger(__name__)


class CreatePortfolioWorkflow(BaseWorkflow):
    job_type = JobType.CREATE_PORTFOLIO
    steps = (("Adding User Portfolio", "add_user_portfolio"),)

    async def add_user_portfolio(self, job_id: str, payload: CreatePortfolioJob) -> None:
        settings = self.deps.settings
        user = await self.load_user(payload.user_id)
        if user.portfolio_account_id:
            raise ConflictError(f"User {user.username} already has portfolio {user.portfolio_account_id}")

        secret, public = generate_keypair()
        logger.info("Registering portfolio for user %s on %s", user.user_id, settings.contract_id)
        outcome = await self.deps.gateway.function_call(
            signer_id=settings.platform_signer_id,
            contract_id=settings.contract_id,
            method_name="add_user_portfolio",
            args={"user_id": user.user_id, "sudo_pubkey": public},
            gas=settings.function_call_gas,
        )
        portfolio_id = parse_portfolio_id(outcome)
        intents_address = derive_signer_id(secret)

        async with self.deps.session_factory() as session:
            repo = UserRepository(session)
            row = await repo.get(user.user_id, for_update=True)
            await repo.set_portfolio_keys(
                row,
                portfolio_account_id=portfolio_id,
                sudo_key=secret,
                intents_address=intents_address,
            )
            await session.commit()

        logger.info("Portfolio %s created for user %s", portfolio_id, user.user_id)
        self.result = {"portfolio_id": portfolio_id, "intents_address": intents_address, "sudo_pubkey": public}
