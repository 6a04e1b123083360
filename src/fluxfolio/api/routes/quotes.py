"""Quote endpoint: price a bundle before buying it."""

from decimal import Decimal

from fastapi import APIRouter
from pydantic import BaseModel, Field

from fluxfolio.config import settings
from fluxfolio.dependencies import CurrentUser, Relay
from fluxfolio.errors.exceptions import ValidationError
from fluxfolio.models.intents import DistributionEntry, QuotedLeg
from fluxfolio.services.tokens import default_registry
from fluxfolio.services.units import allocate_amounts, format_amount, to_base_units

router = APIRouter(tags=["Quotes"])


class QuoteRequest(BaseModel):
    source_asset: str = "USDC"
    amount: Decimal = Field(..., gt=0)
    distribution: list[DistributionEntry] = Field(..., min_length=1)


@router.post("/quotes")
async def quote_bundle(body: QuoteRequest, user: CurrentUser, relay: Relay) -> dict:
    """Best quote per leg, tagged with its symbol so it can be passed to /bundles/buy."""
    source = default_registry.by_symbol(body.source_asset)
    total = to_base_units(body.amount, source.decimals)
    if total <= 0:
        raise ValidationError(f"Amount {body.amount} is below one base unit of {source.symbol}")
    parts = allocate_amounts(total, body.distribution)

    legs = []
    for entry, part in zip(body.distribution, parts):
        token = default_registry.by_symbol(entry.symbol)
        quote = await relay.best_quote(
            source.defuse_asset_id, token.defuse_asset_id, str(part), settings.min_deadline_ms
        )
        leg = QuotedLeg(symbol=token.symbol, percentage=entry.percentage, quote=quote)
        legs.append(
            {
                **leg.model_dump(mode="json"),
                "amount_in_display": format_amount(quote.amount_in, source.decimals),
                "amount_out_display": format_amount(quote.amount_out, token.decimals),
            }
        )

    return {"source_asset": source.symbol, "amount": str(total), "legs": legs}
