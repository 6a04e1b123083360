"""Agent assignment endpoint."""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from fluxfolio.api.routes.portfolio import require_portfolio
from fluxfolio.dependencies import CurrentUser, StartJob
from fluxfolio.models.payloads import AssignAgentJob
from fluxfolio.workers.assign_agent import check_agent_pubkey

router = APIRouter(tags=["Agents"])


class AssignAgentRequest(BaseModel):
    agent_id: str = Field(..., min_length=1)
    agent_pubkey: str = Field(..., min_length=1)


@router.post("/agents/assign", status_code=202)
async def assign_agent(body: AssignAgentRequest, user: CurrentUser, start_job: StartJob) -> dict:
    require_portfolio(user)
    check_agent_pubkey(body.agent_pubkey)
    return await start_job(
        AssignAgentJob(user_id=user.user_id, agent_id=body.agent_id, agent_pubkey=body.agent_pubkey)
    )
