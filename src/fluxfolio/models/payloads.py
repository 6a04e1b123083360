"""Typed job payloads, one variant per job type, dispatched on ``kind``."""

from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from fluxfolio.models.intents import QuotedLeg


class _JobPayload(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    user_id: str


class CreatePortfolioJob(_JobPayload):
    kind: Literal["create-portfolio"] = "create-portfolio"


class BuyBundleJob(_JobPayload):
    kind: Literal["buy-bundle"] = "buy-bundle"
    bundle_id: str
    source_asset: str
    amount: str = Field(..., pattern=r"^\d+$", description="Total input in source-asset base units")
    legs: list[QuotedLeg] = Field(..., min_length=1)


class RebalanceJob(_JobPayload):
    kind: Literal["rebalance"] = "rebalance"
    new_allocations: dict[str, Decimal] = Field(..., min_length=1)

    @field_validator("new_allocations")
    @classmethod
    def _non_negative(cls, value: dict[str, Decimal]) -> dict[str, Decimal]:
        for symbol, pct in value.items():
            if pct < 0 or pct > 100:
                raise ValueError(f"Allocation for {symbol} must be within 0..100")
        return value


class WithdrawJob(_JobPayload):
    kind: Literal["withdraw"] = "withdraw"
    asset: str
    amount: Decimal = Field(..., gt=0)
    to_address: str = Field(..., min_length=1)


class AssignAgentJob(_JobPayload):
    kind: Literal["assign-agent"] = "assign-agent"
    agent_id: str = Field(..., min_length=1)
    agent_pubkey: str = Field(..., min_length=1)


JobPayload = Annotated[
    CreatePortfolioJob | BuyBundleJob | RebalanceJob | WithdrawJob | AssignAgentJob,
    Field(discriminator="kind"),
]

_PAYLOAD_ADAPTER = TypeAdapter(JobPayload)


def parse_payload(raw: dict) -> CreatePortfolioJob | BuyBundleJob | RebalanceJob | WithdrawJob | AssignAgentJob:
    return _PAYLOAD_ADAPTER.validate_python(raw)
