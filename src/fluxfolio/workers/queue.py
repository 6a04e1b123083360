"""Job queue management using Redis or an in-process fallback."""

import asyncio
import json
import logging

from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from fluxfolio.errors.exceptions import StorageError, ValidationError
from fluxfolio.models.common import JobAccepted
from fluxfolio.models.enums import StepStatus
from fluxfolio.repositories.job_repo import JobRepository
from fluxfolio.workers.context import WorkflowDeps
from fluxfolio.workers.registry import get_workflow_class, run_job

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_KEY = "fluxfolio:jobs"

# Strong references so in-process runs are not garbage collected mid-flight
_background_tasks: set[asyncio.Task] = set()


def _on_task_done(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("In-process run %s crashed", task.get_name(), exc_info=exc)


def _spawn(deps: WorkflowDeps, job_id: str, payload) -> asyncio.Task:
    task = asyncio.create_task(run_job(deps, job_id, payload), name=f"job:{job_id}")
    _background_tasks.add(task)
    task.add_done_callback(_on_task_done)
    return task


async def enqueue_job(
    session: AsyncSession,
    payload,
    redis=None,
    deps: WorkflowDeps | None = None,
    queue_key: str = DEFAULT_QUEUE_KEY,
) -> JobAccepted:
    """Create the job record (all steps pending) and hand it to a runner.

    The record is committed before the job is announced, so the returned id
    can be polled immediately. With Redis the job goes onto ``queue_key``;
    otherwise it runs as a background task of this process.
    """
    workflow_cls = get_workflow_class(payload.kind)
    if workflow_cls is None:
        raise ValidationError(f"Unknown job type: {payload.kind}")

    repo = JobRepository(session)
    step_names = workflow_cls.step_names()
    row = await repo.create_job(
        payload.kind,
        step_names,
        owner_id=payload.user_id,
        payload=payload.model_dump(mode="json"),
    )
    await session.commit()
    job_id = row.job_id

    if redis is not None:
        try:
            await redis.rpush(queue_key, json.dumps({"job_id": job_id, "payload": payload.model_dump(mode="json")}))
        except RedisError as exc:
            # Fail the first step so the record reads as halted, not waiting
            await repo.update_step(job_id, step_names[0], StepStatus.FAILED, "Could not be queued")
            await session.commit()
            raise StorageError(f"Job {job_id} created but could not be queued: {exc}") from exc
        logger.info("Queued %s job %s", payload.kind, job_id)
    elif deps is not None:
        _spawn(deps, job_id, payload)
        logger.info("Started %s job %s in-process", payload.kind, job_id)
    else:
        logger.warning("No job runner configured; %s job %s stays pending", payload.kind, job_id)

    return JobAccepted(job_id=job_id, job_type=payload.kind)
