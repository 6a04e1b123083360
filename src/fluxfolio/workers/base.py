"""Base workflow: ordered steps recorded on the job's step ledger."""

import asyncio
import contextlib
import logging
from abc import ABC
from typing import Any, ClassVar

from fluxfolio.clients.contract_gateway import decode_success_value
from fluxfolio.db.models.user import UserRow
from fluxfolio.errors.exceptions import (
    ExternalCallError,
    FluxfolioError,
    JobCancelledError,
    NotFoundError,
    ValidationError,
)
from fluxfolio.logging_config import bind_job_context, clear_context
from fluxfolio.models.enums import JobType, StepStatus
from fluxfolio.models.intents import FinalizeResult, SwapIntents
from fluxfolio.models.job import JobModel
from fluxfolio.repositories.user_repo import UserRepository
from fluxfolio.services.signing.service import LocalKey, RemoteSignerRef
from fluxfolio.workers.context import WorkflowDeps

logger = logging.getLogger(__name__)

WORKER_RESTARTED = "Worker restarted during this step; outcome unknown"


def failure_message(exc: BaseException) -> str:
    if isinstance(exc, FluxfolioError):
        return exc.message
    return str(exc) or type(exc).__name__


def portfolio_id_arg(portfolio_id: str) -> int | str:
    """Contract portfolio ids are integers; keep anything else verbatim."""
    return int(portfolio_id) if portfolio_id.isdigit() else portfolio_id


def parse_portfolio_id(outcome: dict) -> str:
    text = decode_success_value(outcome).strip()
    if len(text) >= 2 and text[0] == text[-1] == '"':
        text = text[1:-1]
    if not text:
        raise ValidationError("Contract returned an empty portfolio id")
    return text


class BaseWorkflow(ABC):
    """Runs ``steps`` in order against one job.

    Each entry of ``steps`` pairs the ledger step name with the name of an
    ``async (job_id, payload)`` method. A step is marked ``in-progress``
    before it runs and ``completed`` after; the first exception marks it
    ``failed`` with the error message and no later step runs. Cancellation
    is checked between steps and while waiting on settlement.
    """

    job_type: ClassVar[JobType]
    steps: ClassVar[tuple[tuple[str, str], ...]]
    # Steps without external side effects, safe to run again after a crash
    repeatable_steps: ClassVar[frozenset[str]] = frozenset()

    def __init__(self, deps: WorkflowDeps):
        self.deps = deps
        self.cancel_event = asyncio.Event()
        self.result: Any = None

    @classmethod
    def step_names(cls) -> list[str]:
        return [name for name, _ in cls.steps]

    async def load_user(self, user_id: str) -> UserRow:
        async with self.deps.session_factory() as session:
            user = await UserRepository(session).get(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def signing_key_for(self, user: UserRow) -> LocalKey | RemoteSignerRef:
        """Agent-managed portfolios sign through MPC, others with the sudo key."""
        settings = self.deps.settings
        if user.agent_id and user.portfolio_account_id:
            return RemoteSignerRef(
                signer_account_id=settings.agent_account_id,
                contract_id=settings.contract_id,
                portfolio_account_id=user.portfolio_account_id,
                gas=settings.function_call_gas,
            )
        if user.sudo_key:
            return LocalKey(user.sudo_key)
        raise ValidationError("User has no portfolio key; create a portfolio first")

    async def settle_intent(self, job_id: str, swap: SwapIntents, key: LocalKey | RemoteSignerRef) -> FinalizeResult:
        """Sign, publish and wait for settlement; the intent hash becomes the run id."""
        envelope = await self.deps.signing.sign(swap.payload, key)
        intent_hash = await self.deps.relay.publish_intent(envelope, swap.quote_hashes)
        await self.deps.ledger.attach_external_run_id(job_id, intent_hash)
        result = await self.deps.relay.finalize_intent(intent_hash, self.cancel_event)
        if result.hash is None:
            raise ExternalCallError(f"Intent {intent_hash} ended with status {result.finalized}")
        return result

    async def recorded_settlement(self, job: JobModel) -> FinalizeResult:
        """Re-read the outcome of an intent an earlier run already published."""
        if not job.external_run_id:
            raise ExternalCallError(f"Job {job.id} has no recorded intent hash")
        result = await self.deps.relay.finalize_intent(job.external_run_id, self.cancel_event)
        if result.hash is None:
            raise ExternalCallError(f"Intent {job.external_run_id} ended with status {result.finalized}")
        return result

    async def _watch_cancel(self, job_id: str) -> None:
        while not self.cancel_event.is_set():
            await asyncio.sleep(self.deps.cancel_poll_interval)
            if await self.deps.ledger.is_cancel_requested(job_id):
                logger.info("Cancellation requested for job %s", job_id)
                self.cancel_event.set()

    async def restore(self, job: JobModel, payload) -> None:
        """Rebuild state that skipped steps would have set. No-op by default."""

    async def execute(self, job_id: str, payload) -> JobModel | None:
        """Run the steps the ledger has not finished, then return the job.

        Completed steps are skipped and ``restore`` rebuilds what they left on
        the instance. A recorded failure halts. A step caught ``in-progress``
        is run again only when listed in ``repeatable_steps``; otherwise it is
        failed, since its side effect may already have happened.
        """
        ledger = self.deps.ledger
        job = await ledger.get_job(job_id)
        bind_job_context(job_id, self.job_type.value, getattr(payload, "user_id", None))
        recorded = {s.name: s.status for s in job.steps} if job else {}
        needs_restore = False
        watcher = asyncio.create_task(self._watch_cancel(job_id))
        try:
            for name, method in self.steps:
                status = recorded.get(name, StepStatus.PENDING)
                if status == StepStatus.COMPLETED:
                    logger.info("Job %s step '%s' already completed; skipping", job_id, name)
                    needs_restore = True
                    continue
                if status == StepStatus.FAILED:
                    logger.info("Job %s already failed at step '%s'; not resuming", job_id, name)
                    break

                if self.cancel_event.is_set() or await ledger.is_cancel_requested(job_id):
                    await ledger.mark(job_id, name, StepStatus.FAILED, "Cancelled")
                    logger.info("Job %s cancelled before step '%s'", job_id, name)
                    break

                if status == StepStatus.IN_PROGRESS and name not in self.repeatable_steps:
                    await ledger.mark(job_id, name, StepStatus.FAILED, WORKER_RESTARTED)
                    logger.warning("Job %s interrupted during step '%s'; not repeating it", job_id, name)
                    break

                await ledger.mark(job_id, name, StepStatus.IN_PROGRESS)
                try:
                    if needs_restore:
                        await self.restore(job, payload)
                        needs_restore = False
                    message = await getattr(self, method)(job_id, payload)
                except JobCancelledError:
                    await ledger.mark(job_id, name, StepStatus.FAILED, "Cancelled")
                    logger.info("Job %s cancelled during step '%s'", job_id, name)
                    break
                except Exception as exc:
                    await ledger.mark(job_id, name, StepStatus.FAILED, failure_message(exc))
                    logger.exception("Job %s failed at step '%s'", job_id, name)
                    break
                await ledger.mark(job_id, name, StepStatus.COMPLETED, message)
            else:
                if self.result is not None:
                    await ledger.set_return_value(job_id, self.result)
                logger.info("Job %s succeeded (type=%s)", job_id, self.job_type.value)
        finally:
            watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await watcher
            clear_context()

        return await ledger.get_job(job_id)
