"""Workflow registry mapping job types to workflow classes."""

from fluxfolio.models.enums import JobType
from fluxfolio.models.job import JobModel
from fluxfolio.workers.base import BaseWorkflow
from fluxfolio.workers.context import WorkflowDeps


def _build_registry() -> dict[str, type[BaseWorkflow]]:
    from fluxfolio.workers.assign_agent import AssignAgentWorkflow
    from fluxfolio.workers.buy_bundle import BuyBundleWorkflow
    from fluxfolio.workers.create_portfolio import CreatePortfolioWorkflow
    from fluxfolio.workers.rebalance import RebalanceWorkflow
    from fluxfolio.workers.withdraw import WithdrawWorkflow

    return {
        JobType.CREATE_PORTFOLIO.value: CreatePortfolioWorkflow,
        JobType.BUY_BUNDLE.value: BuyBundleWorkflow,
        JobType.REBALANCE.value: RebalanceWorkflow,
        JobType.WITHDRAW.value: WithdrawWorkflow,
        JobType.ASSIGN_AGENT.value: AssignAgentWorkflow,
    }


_registry: dict[str, type[BaseWorkflow]] = {}


def _ensure_registry() -> None:
    if not _registry:
        _registry.update(_build_registry())


def register_workflow(job_type: str, workflow_class: type[BaseWorkflow]) -> None:
    """Register a workflow class for a job type."""
    _ensure_registry()
    _registry[job_type] = workflow_class


def get_workflow_class(job_type: str) -> type[BaseWorkflow] | None:
    _ensure_registry()
    return _registry.get(str(job_type))


def get_workflow(job_type: str, deps: WorkflowDeps) -> BaseWorkflow | None:
    """Get a fresh workflow instance for a job type."""
    cls = get_workflow_class(job_type)
    return cls(deps) if cls else None


async def run_job(deps: WorkflowDeps, job_id: str, payload) -> JobModel | None:
    workflow = get_workflow(payload.kind, deps)
    if workflow is None:
        raise ValueError(f"No workflow registered for job type {payload.kind!r}")
    return await workflow.execute(job_id, payload)
