"""Workflow for rebalance jobs."""

import logging

from fluxfolio.errors.exceptions import ValidationError
from fluxfolio.models.enums import JobType
from fluxfolio.models.job import JobModel
from fluxfolio.models.payloads import RebalanceJob
from fluxfolio.repositories.portfolio_repo import PortfolioRepository
from fluxfolio.services.rebalance import TradeLeg, fit_buys, plan_rebalance
from fluxfolio.workers.base import BaseWorkflow

logger = logging.getLogger(__name__)


class RebalanceWorkflow(BaseWorkflow):
    job_type = JobType.REBALANCE
    steps = (
        ("Preparing Rebalance Tx", "prepare"),
        ("Executing Rebalance On-Chain", "execute_on_chain"),
    )
    repeatable_steps = frozenset({"Preparing Rebalance Tx"})

    async def _quote(self, leg: TradeLeg):
        return await self.deps.relay.best_quote(
            leg.asset_in,
            leg.asset_out,
            str(leg.amount_in),
            self.deps.settings.min_deadline_ms,
        )

    async def prepare(self, job_id: str, payload: RebalanceJob) -> str | None:
        tokens = self.deps.tokens
        self.user = await self.load_user(payload.user_id)
        if not self.user.intents_address or not self.user.portfolio_account_id:
            raise ValidationError("User has no portfolio; create a portfolio first")

        stable = tokens.by_symbol(self.deps.settings.source_asset_symbol).defuse_asset_id
        targets = {tokens.by_symbol(sym).defuse_asset_id: pct for sym, pct in payload.new_allocations.items()}

        async with self.deps.session_factory() as session:
            portfolio = await PortfolioRepository(session).get(self.user.portfolio_account_id)
        held = set(portfolio.allocation) if portfolio else set()
        asset_ids = sorted(held | set(targets) | {stable})

        raw = await self.deps.near_rpc.fetch_batch_balances(self.user.intents_address, asset_ids)
        balances = {asset: int(b) for asset, b in zip(asset_ids, raw)}

        valuations: dict[str, int] = {}
        for asset, amount in balances.items():
            if asset == stable or amount <= 0:
                continue
            quote = await self._quote(TradeLeg(asset, stable, amount))
            valuations[asset] = int(quote.amount_out)

        self.plan = plan_rebalance(balances, valuations, targets, stable)
        self.stable_balance = balances[stable]
        logger.info(
            "Rebalance plan for %s: %d sells, %d buys (value %d)",
            self.user.portfolio_account_id, len(self.plan.sells), len(self.plan.buys), self.plan.total_value,
        )
        if self.plan.is_noop:
            return "Portfolio already matches target allocation"
        return None

    async def restore(self, job: JobModel, payload: RebalanceJob) -> None:
        # Planning only reads balances and quotes
        await self.prepare(job.id, payload)

    async def execute_on_chain(self, job_id: str, payload: RebalanceJob) -> None:
        plan = self.plan
        settlement = None
        if not plan.is_noop:
            sell_quotes = [await self._quote(leg) for leg in plan.sells]
            proceeds = sum(int(q.amount_out) for q in sell_quotes)
            keep = plan.total_value * plan.target_bps.get(plan.stable_asset, 0) // 10000
            buys = fit_buys(plan.buys, max(self.stable_balance + proceeds - keep, 0))
            buy_quotes = [await self._quote(leg) for leg in buys]

            swap = await self.deps.builder.build_trade_intents(
                sell_quotes + buy_quotes,
                signer_id=self.user.intents_address,
            )
            settlement = await self.settle_intent(job_id, swap, self.signing_key_for(self.user))

        async with self.deps.session_factory() as session:
            await PortfolioRepository(session).set_allocation(
                self.user.portfolio_account_id,
                self.user.user_id,
                {asset: bps for asset, bps in plan.target_bps.items() if bps > 0},
            )
            await session.commit()

        self.result = {
            "plan": plan.to_dict(),
            "tx_hash": settlement.hash if settlement else None,
            "status": settlement.finalized if settlement else None,
        }
