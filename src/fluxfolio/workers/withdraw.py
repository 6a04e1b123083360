"""Workflow for withdraw jobs."""

import logging
import time

from fluxfolio.errors.exceptions import ValidationError
from fluxfolio.models.enums import JobType
from fluxfolio.models.job import JobModel
from fluxfolio.models.payloads import WithdrawJob
from fluxfolio.services.intents.canonical import canonical_json
from fluxfolio.services.signing.keys import parse_secret_key, public_key_string
from fluxfolio.services.signing.local import sign_ephemeral
from fluxfolio.services.units import to_base_units
from fluxfolio.workers.base import BaseWorkflow, portfolio_id_arg

logger = logging.getLogger(__name__)


class WithdrawWorkflow(BaseWorkflow):
    job_type = JobType.WITHDRAW
    steps = (
        ("Check Balance", "check_balance"),
        ("Initiate On-Chain Withdraw", "initiate_withdraw"),
    )
    repeatable_steps = frozenset({"Check Balance"})

    async def _load(self, payload: WithdrawJob) -> None:
        self.user = await self.load_user(payload.user_id)
        if not (self.user.intents_address and self.user.portfolio_account_id and self.user.sudo_key):
            raise ValidationError("User has no portfolio; create a portfolio first")

        self.token = self.deps.tokens.by_symbol(payload.asset)
        self.amount = to_base_units(payload.amount, self.token.decimals)
        if self.amount <= 0:
            raise ValidationError(f"Amount {payload.amount} is below one base unit of {self.token.symbol}")

    async def restore(self, job: JobModel, payload: WithdrawJob) -> None:
        await self._load(payload)

    async def check_balance(self, job_id: str, payload: WithdrawJob) -> None:
        await self._load(payload)
        [balance] = await self.deps.near_rpc.fetch_batch_balances(
            self.user.intents_address, [self.token.defuse_asset_id]
        )
        if int(balance) < self.amount:
            raise ValidationError(
                f"Insufficient {self.token.symbol} balance",
                {"balance": balance, "required": str(self.amount)},
            )

    async def initiate_withdraw(self, job_id: str, payload: WithdrawJob) -> None:
        settings = self.deps.settings
        intent = await self.deps.builder.build_withdraw_intents(
            self.token.defuse_asset_id,
            self.amount,
            payload.to_address,
            signer_id=self.user.intents_address,
        )
        ephemeral = {
            "owner_pubkey": public_key_string(parse_secret_key(self.user.sudo_key)),
            "nonce": int(time.time() * 1000),
            "defuse_intents": {"intents": intent.message_dict()["intents"]},
            "portfolio_id": portfolio_id_arg(self.user.portfolio_account_id),
        }
        outcome = await self.deps.gateway.function_call(
            signer_id=settings.platform_signer_id,
            contract_id=settings.contract_id,
            method_name="withdraw_funds",
            args={
                "ephemeral_json": canonical_json(ephemeral),
                "signature": sign_ephemeral(ephemeral, self.user.sudo_key),
            },
            gas=settings.function_call_gas,
            attached_deposit=settings.withdraw_attached_deposit,
        )
        tx_hash = ((outcome or {}).get("transaction") or {}).get("hash")
        if tx_hash:
            await self.deps.ledger.attach_external_run_id(job_id, tx_hash)
        logger.info("Withdraw of %s %s to %s submitted", self.amount, self.token.symbol, payload.to_address)
        self.result = {
            "asset": self.token.symbol,
            "amount": str(self.amount),
            "to_address": payload.to_address,
            "tx_hash": tx_hash,
        }
