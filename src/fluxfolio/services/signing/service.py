"""Signing service: one entry point for local and remote (MPC) signatures."""

import asyncio
import logging
from dataclasses import dataclass, field

from fluxfolio.clients.contract_gateway import ContractCaller, decode_success_json
from fluxfolio.errors.exceptions import ExternalCallError, SigningError
from fluxfolio.models.enums import SigningStandard
from fluxfolio.models.intents import IntentPayload, SignedEnvelope
from fluxfolio.services.intents.canonical import canonical_json
from fluxfolio.services.signing.keys import parse_secret_key, public_key_string
from fluxfolio.services.signing.local import sign_message
from fluxfolio.services.signing.mpc import convert_mpc_signature, erc191_hash

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalKey:
    """A raw ed25519 secret held for the duration of one request."""

    secret: str = field(repr=False)


@dataclass(frozen=True)
class RemoteSignerRef:
    """Where to ask for an MPC signature on behalf of a portfolio."""

    signer_account_id: str
    contract_id: str
    portfolio_account_id: str
    method_name: str = "balance_portfolio"
    gas: str = "300000000000000"
    attached_deposit: str = "0"
    timeout: float = 120.0


class SigningService:
    def __init__(self, caller: ContractCaller | None = None):
        self._caller = caller

    async def sign(self, payload: IntentPayload, key: LocalKey | RemoteSignerRef) -> SignedEnvelope:
        """Serialize ``payload`` once and sign exactly those bytes."""
        message = canonical_json(payload.message_dict())
        match key:
            case LocalKey(secret=secret):
                return self._sign_local(message, secret)
            case RemoteSignerRef():
                return await self._sign_remote(message, payload, key)
            case _:
                raise SigningError(f"Unsupported key material: {type(key).__name__}")

    def _sign_local(self, message: str, secret: str) -> SignedEnvelope:
        signature = sign_message(secret, message)
        return SignedEnvelope(
            standard=SigningStandard.RAW_ED25519,
            payload=message,
            signature=f"ed25519:{signature}",
            public_key=public_key_string(parse_secret_key(secret)),
        )

    async def _sign_remote(self, message: str, payload: IntentPayload, ref: RemoteSignerRef) -> SignedEnvelope:
        if self._caller is None:
            raise SigningError("No contract caller configured for remote signing")
        digest = erc191_hash(message)
        args = {
            "user_portfolio": ref.portfolio_account_id,
            "hash": "0x" + digest.hex(),
            "defuse_intents": {"intents": payload.message_dict()["intents"]},
        }
        logger.info("Requesting MPC signature for portfolio %s", ref.portfolio_account_id)
        try:
            outcome = await asyncio.wait_for(
                self._caller.function_call(
                    signer_id=ref.signer_account_id,
                    contract_id=ref.contract_id,
                    method_name=ref.method_name,
                    args=args,
                    gas=ref.gas,
                    attached_deposit=ref.attached_deposit,
                ),
                timeout=ref.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise SigningError(f"MPC signature request timed out after {ref.timeout}s") from exc
        except ExternalCallError as exc:
            raise SigningError(f"MPC signature request failed: {exc.message}", details=exc.details) from exc

        try:
            components = decode_success_json(outcome)
        except ExternalCallError as exc:
            raise SigningError(f"MPC signer returned no signature: {exc.message}", details=exc.details) from exc

        return SignedEnvelope(
            standard=SigningStandard.ERC191,
            payload=message,
            signature=convert_mpc_signature(components),
        )
