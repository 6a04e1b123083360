"""Workflow for buy-bundle jobs."""

import logging

from fluxfolio.errors.exceptions import ValidationError
from fluxfolio.models.enums import JobType, StepStatus
from fluxfolio.models.job import JobModel
from fluxfolio.models.payloads import BuyBundleJob
from fluxfolio.repositories.portfolio_repo import PortfolioRepository
from fluxfolio.services.intents.builder import net_token_deltas
from fluxfolio.workers.base import BaseWorkflow

logger = logging.getLogger(__name__)


class BuyBundleWorkflow(BaseWorkflow):
    job_type = JobType.BUY_BUNDLE
    steps = (
        ("Approve Funds", "approve_funds"),
        ("Swap to Bundle", "swap_to_bundle"),
        ("Update Portfolio", "update_portfolio"),
    )
    repeatable_steps = frozenset({"Approve Funds", "Update Portfolio"})

    async def restore(self, job: JobModel, payload: BuyBundleJob) -> None:
        self.user = await self.load_user(payload.user_id)
        swap = job.step("Swap to Bundle")
        if swap is not None and swap.status == StepStatus.COMPLETED:
            self.settlement = await self.recorded_settlement(job)

    async def approve_funds(self, job_id: str, payload: BuyBundleJob) -> None:
        self.user = await self.load_user(payload.user_id)
        if not self.user.intents_address or not self.user.portfolio_account_id:
            raise ValidationError("User has no portfolio; create a portfolio first")

        source = self.deps.tokens.by_symbol(payload.source_asset)
        spend = sum(int(leg.quote.amount_in) for leg in payload.legs)
        if spend > int(payload.amount):
            raise ValidationError(
                f"Quotes spend {spend} but only {payload.amount} was approved",
                {"spend": str(spend), "amount": payload.amount},
            )
        [balance] = await self.deps.near_rpc.fetch_batch_balances(
            self.user.intents_address, [source.defuse_asset_id]
        )
        if int(balance) < spend:
            raise ValidationError(
                f"Insufficient {source.symbol} balance",
                {"balance": balance, "required": str(spend)},
            )

    async def swap_to_bundle(self, job_id: str, payload: BuyBundleJob) -> None:
        swap = await self.deps.builder.build_swap_intents(
            payload.source_asset,
            payload.legs,
            signer_id=self.user.intents_address,
        )
        logger.info("Bundle %s swap deltas: %s", payload.bundle_id, net_token_deltas(swap.payload))
        self.settlement = await self.settle_intent(job_id, swap, self.signing_key_for(self.user))

    async def update_portfolio(self, job_id: str, payload: BuyBundleJob) -> None:
        allocation = {
            leg.quote.defuse_asset_identifier_out: int(leg.percentage * 100)
            for leg in payload.legs
        }
        async with self.deps.session_factory() as session:
            await PortfolioRepository(session).set_allocation(
                self.user.portfolio_account_id,
                self.user.user_id,
                allocation,
                bundle_id=payload.bundle_id,
            )
            await session.commit()
        self.result = {
            "bundle_id": payload.bundle_id,
            "tx_hash": self.settlement.hash,
            "status": self.settlement.finalized,
            "allocation": allocation,
        }
