"""Quote, intent and signed-envelope models for the settlement relay."""

from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fluxfolio.models.enums import SigningStandard


class Quote(BaseModel):
    """Time-bounded exchange-rate attestation returned by the relay."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    amount_in: str = Field(..., pattern=r"^\d+$")
    amount_out: str = Field(..., pattern=r"^\d+$")
    defuse_asset_identifier_in: str
    defuse_asset_identifier_out: str
    expiration_time: str | None = None
    quote_hash: str


class DistributionEntry(BaseModel):
    """Target share of one asset within a bundle, in percent."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    symbol: str = Field(..., min_length=1)
    percentage: Decimal = Field(..., gt=0, le=100)


class QuotedLeg(BaseModel):
    """A quote tagged with the asset symbol it was requested for."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    symbol: str
    percentage: Decimal = Field(..., gt=0, le=100)
    quote: Quote


class TokenDiffIntent(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    intent: Literal["token_diff"] = "token_diff"
    diff: dict[str, str]

    @field_validator("diff")
    @classmethod
    def _signed_integers(cls, value: dict[str, str]) -> dict[str, str]:
        for asset, delta in value.items():
            if not delta.lstrip("-").isdigit():
                raise ValueError(f"Delta for {asset} must be a signed integer string, got {delta!r}")
        return value


class FtWithdrawIntent(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    intent: Literal["ft_withdraw"] = "ft_withdraw"
    token: str
    receiver_id: str
    amount: str = Field(..., pattern=r"^\d+$")
    memo: str | None = None


IntentLeg = Annotated[TokenDiffIntent | FtWithdrawIntent, Field(discriminator="intent")]


class IntentPayload(BaseModel):
    """The message that is serialized, signed and published verbatim."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    signer_id: str
    verifying_contract: str
    deadline: str
    nonce: str
    intents: list[IntentLeg]

    def message_dict(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


class SwapIntents(BaseModel):
    """Builder output: the payload to sign plus the quote hashes it settles."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    payload: IntentPayload
    quote_hashes: list[str]


class SignedEnvelope(BaseModel):
    """Signed data in the shape the relay's publish_intent expects."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    standard: SigningStandard
    payload: str
    signature: str
    public_key: str | None = None

    def to_relay(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


class IntentStatusResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: str
    intent_hash: str | None = None
    data: dict | None = None


class FinalizeResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    finalized: str
    hash: str | None = None
    attempts: int
