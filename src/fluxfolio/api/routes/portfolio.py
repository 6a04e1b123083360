"""Portfolio API routes: creation, rebalance, withdraw and deposits."""

from decimal import Decimal

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from fluxfolio.db.models.user import UserRow
from fluxfolio.dependencies import Bridge, CurrentUser, DBSession, StartJob
from fluxfolio.errors.exceptions import ConflictError, ValidationError
from fluxfolio.models.payloads import CreatePortfolioJob, RebalanceJob, WithdrawJob
from fluxfolio.repositories.portfolio_repo import PortfolioRepository
from fluxfolio.services.tokens import default_registry
from fluxfolio.services.units import HUNDRED, to_base_units

router = APIRouter(tags=["Portfolio"])


# --- Request models ---


class RebalanceRequest(BaseModel):
    new_allocations: dict[str, Decimal] = Field(..., min_length=1)


class WithdrawRequest(BaseModel):
    asset: str
    amount: Decimal = Field(..., gt=0)
    to_address: str = Field(..., min_length=1)


# --- Helpers ---


def require_portfolio(user: UserRow) -> None:
    if not user.portfolio_account_id:
        raise ValidationError("User has no portfolio; create a portfolio first")


# --- Routes ---


@router.get("/portfolio")
async def get_portfolio(user: CurrentUser, db: DBSession) -> dict:
    require_portfolio(user)
    row = await PortfolioRepository(db).get(user.portfolio_account_id)
    return {
        "portfolio_id": user.portfolio_account_id,
        "intents_address": user.intents_address,
        "agent_id": user.agent_id,
        "bundle_id": row.bundle_id if row else None,
        "allocation": row.allocation if row else {},
    }


@router.post("/portfolio", status_code=202)
async def create_portfolio(user: CurrentUser, start_job: StartJob) -> dict:
    if user.portfolio_account_id:
        raise ConflictError(f"Portfolio {user.portfolio_account_id} already exists")
    return await start_job(CreatePortfolioJob(user_id=user.user_id))


@router.post("/portfolio/rebalance", status_code=202)
async def rebalance_portfolio(body: RebalanceRequest, user: CurrentUser, start_job: StartJob) -> dict:
    require_portfolio(user)
    allocations = {}
    for symbol, pct in body.new_allocations.items():
        allocations[default_registry.by_symbol(symbol).symbol] = pct
    total = sum(allocations.values(), Decimal(0))
    if total != HUNDRED:
        raise ValidationError(f"Allocations must sum to 100, got {total}")
    return await start_job(RebalanceJob(user_id=user.user_id, new_allocations=allocations))


@router.post("/portfolio/withdraw", status_code=202)
async def withdraw(body: WithdrawRequest, user: CurrentUser, start_job: StartJob) -> dict:
    require_portfolio(user)
    token = default_registry.by_symbol(body.asset)
    if to_base_units(body.amount, token.decimals) <= 0:
        raise ValidationError(f"Amount {body.amount} is below one base unit of {token.symbol}")
    return await start_job(
        WithdrawJob(user_id=user.user_id, asset=token.symbol, amount=body.amount, to_address=body.to_address)
    )


@router.get("/portfolio/deposit-address")
async def deposit_address(
    user: CurrentUser,
    bridge: Bridge,
    network: str = Query(..., description="solana, evm or bitcoin"),
) -> dict:
    require_portfolio(user)
    address = await bridge.fetch_deposit_address(network, user.intents_address)
    return {"network": network, "address": address}
