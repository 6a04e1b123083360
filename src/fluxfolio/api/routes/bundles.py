"""Bundle purchase endpoint."""

from decimal import Decimal

from fastapi import APIRouter
from pydantic import BaseModel, Field

from fluxfolio.api.routes.portfolio import require_portfolio
from fluxfolio.dependencies import CurrentUser, StartJob
from fluxfolio.errors.exceptions import ValidationError
from fluxfolio.models.intents import DistributionEntry, QuotedLeg
from fluxfolio.models.payloads import BuyBundleJob
from fluxfolio.services.tokens import default_registry
from fluxfolio.services.units import check_distribution, to_base_units

router = APIRouter(tags=["Bundles"])


class BuyBundleRequest(BaseModel):
    bundle_id: str = Field(..., min_length=1)
    source_asset: str = "USDC"
    amount: Decimal = Field(..., gt=0, description="Human amount of the source asset")
    legs: list[QuotedLeg] = Field(..., min_length=1)


@router.post("/bundles/buy", status_code=202)
async def buy_bundle(body: BuyBundleRequest, user: CurrentUser, start_job: StartJob) -> dict:
    """Start a buy-bundle job from quotes previously fetched via /quotes."""
    require_portfolio(user)
    source = default_registry.by_symbol(body.source_asset)
    check_distribution([DistributionEntry(symbol=leg.symbol, percentage=leg.percentage) for leg in body.legs])
    for leg in body.legs:
        default_registry.by_symbol(leg.symbol)

    amount = to_base_units(body.amount, source.decimals)
    if amount <= 0:
        raise ValidationError(f"Amount {body.amount} is below one base unit of {source.symbol}")
    return await start_job(
        BuyBundleJob(
            user_id=user.user_id,
            bundle_id=body.bundle_id,
            source_asset=source.symbol,
            amount=str(amount),
            legs=body.legs,
        )
    )
