"""Construction of swap and withdraw intent payloads."""

import base64
import logging
import secrets
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Protocol

from fluxfolio.errors.exceptions import NonceExhaustedError, ValidationError
from fluxfolio.models.intents import (
    FtWithdrawIntent,
    IntentPayload,
    Quote,
    QuotedLeg,
    SwapIntents,
    TokenDiffIntent,
)
from fluxfolio.services.tokens import TokenRegistry, default_registry
from fluxfolio.services.units import HUNDRED

logger = logging.getLogger(__name__)

NEP141_PREFIX = "nep141:"


class NonceChecker(Protocol):
    async def is_nonce_used(self, nonce: str, signer_id: str) -> bool: ...


def format_deadline(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. ``2025-01-01T00:02:00.000Z``."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def net_token_deltas(payload: IntentPayload) -> dict[str, int]:
    """Sum the signed ``token_diff`` deltas per asset across all legs."""
    totals: dict[str, int] = {}
    for leg in payload.intents:
        if isinstance(leg, TokenDiffIntent):
            for asset, delta in leg.diff.items():
                totals[asset] = totals.get(asset, 0) + int(delta)
    return totals


def withdraw_token_address(asset_id: str) -> str:
    """Bridged token withdrawals use the bare contract, without ``nep141:``."""
    return asset_id.removeprefix(NEP141_PREFIX)


def ft_withdraw_leg(asset_id: str, amount: int | str, withdraw_address: str) -> FtWithdrawIntent:
    token = withdraw_token_address(asset_id)
    return FtWithdrawIntent(
        token=token,
        receiver_id=token,
        amount=str(amount),
        memo=f"WITHDRAW_TO:{withdraw_address}",
    )


def token_diff_leg(quote: Quote) -> TokenDiffIntent:
    return TokenDiffIntent(
        diff={
            quote.defuse_asset_identifier_in: f"-{int(quote.amount_in)}",
            quote.defuse_asset_identifier_out: str(int(quote.amount_out)),
        }
    )


class IntentBuilder:
    """Builds payloads ready for the signing service.

    Every payload gets a fresh nonce that the verifying contract reports as
    unused for the signer at build time.
    """

    def __init__(
        self,
        nonce_checker: NonceChecker,
        verifying_contract: str = "intents.near",
        min_deadline_ms: int = 120000,
        nonce_max_attempts: int = 5,
        tokens: TokenRegistry = default_registry,
    ):
        self._nonce_checker = nonce_checker
        self.verifying_contract = verifying_contract
        self.min_deadline_ms = min_deadline_ms
        self.nonce_max_attempts = nonce_max_attempts
        self.tokens = tokens

    async def generate_nonce(self, signer_id: str) -> str:
        for attempt in range(1, self.nonce_max_attempts + 1):
            nonce = base64.b64encode(secrets.token_bytes(32)).decode("ascii")
            if not await self._nonce_checker.is_nonce_used(nonce, signer_id):
                return nonce
            logger.warning("Nonce collision for %s (attempt %d/%d)", signer_id, attempt, self.nonce_max_attempts)
        raise NonceExhaustedError(self.nonce_max_attempts)

    def default_deadline(self) -> str:
        return format_deadline(datetime.now(timezone.utc) + timedelta(milliseconds=self.min_deadline_ms))

    async def _payload(self, signer_id: str, legs: list, deadline: str | None) -> IntentPayload:
        nonce = await self.generate_nonce(signer_id)
        return IntentPayload(
            signer_id=signer_id,
            verifying_contract=self.verifying_contract,
            deadline=deadline or self.default_deadline(),
            nonce=nonce,
            intents=legs,
        )

    def _check_legs(self, source_asset: str, legs: Sequence[QuotedLeg]) -> None:
        if not legs:
            raise ValidationError("At least one quoted leg is required")
        total_pct = sum((leg.percentage for leg in legs), Decimal(0))
        if total_pct != HUNDRED:
            raise ValidationError(f"Bundle distribution must sum to 100, got {total_pct}")
        source_id = self.tokens.by_symbol(source_asset).defuse_asset_id
        for leg in legs:
            expected_out = self.tokens.by_symbol(leg.symbol).defuse_asset_id
            if leg.quote.defuse_asset_identifier_out != expected_out:
                raise ValidationError(
                    f"Quote for {leg.symbol} settles {leg.quote.defuse_asset_identifier_out}, expected {expected_out}"
                )
            if leg.quote.defuse_asset_identifier_in != source_id:
                raise ValidationError(
                    f"Quote for {leg.symbol} spends {leg.quote.defuse_asset_identifier_in}, expected {source_id}"
                )

    async def build_swap_intents(
        self,
        source_asset: str,
        legs: Sequence[QuotedLeg],
        signer_id: str,
        deadline: str | None = None,
    ) -> SwapIntents:
        """One ``token_diff`` per leg spending ``amount_in`` of the source asset.

        Each leg is matched to its asset by symbol, not by position.
        """
        self._check_legs(source_asset, legs)
        diffs = [token_diff_leg(leg.quote) for leg in legs]
        payload = await self._payload(signer_id, diffs, deadline)
        return SwapIntents(payload=payload, quote_hashes=[leg.quote.quote_hash for leg in legs])

    async def build_trade_intents(
        self,
        quotes: Sequence[Quote],
        signer_id: str,
        deadline: str | None = None,
    ) -> SwapIntents:
        """Arbitrary quoted swaps (e.g. a rebalance), one ``token_diff`` each."""
        if not quotes:
            raise ValidationError("At least one quote is required")
        payload = await self._payload(signer_id, [token_diff_leg(q) for q in quotes], deadline)
        return SwapIntents(payload=payload, quote_hashes=[q.quote_hash for q in quotes])

    async def build_withdraw_intents(
        self,
        asset_id: str,
        amount: int,
        withdraw_address: str,
        signer_id: str,
        deadline: str | None = None,
    ) -> IntentPayload:
        if amount <= 0:
            raise ValidationError("Withdraw amount must be positive")
        return await self._payload(signer_id, [ft_withdraw_leg(asset_id, amount, withdraw_address)], deadline)

    async def prepare_intent(
        self,
        quote: Quote,
        signer_id: str,
        withdraw_address: str | None = None,
        deadline: str | None = None,
    ) -> SwapIntents:
        """Single swap; with ``withdraw_address`` the output is withdrawn there."""
        legs: list = [token_diff_leg(quote)]
        if withdraw_address:
            legs.append(ft_withdraw_leg(quote.defuse_asset_identifier_out, quote.amount_out, withdraw_address))
        payload = await self._payload(signer_id, legs, deadline)
        return SwapIntents(payload=payload, quote_hashes=[quote.quote_hash])
