"""Background consumer draining the Redis job queue."""

import asyncio
import json
import logging

from pydantic import ValidationError as PydanticValidationError

from fluxfolio.models.job import JobModel
from fluxfolio.models.payloads import parse_payload
from fluxfolio.workers.context import WorkflowDeps
from fluxfolio.workers.registry import run_job

logger = logging.getLogger(__name__)

# BLMOVE timeout in seconds; bounds how long shutdown waits on an idle queue
_POP_TIMEOUT = 5


def processing_key(queue_key: str, worker_name: str) -> str:
    return f"{queue_key}:processing:{worker_name}"


async def process_message(deps: WorkflowDeps, raw: str | bytes) -> JobModel | None:
    """Run one queued job.

    Redelivered jobs that already settled are skipped; partly finished ones
    resume from the ledger (see ``BaseWorkflow.execute``).
    """
    try:
        message = json.loads(raw)
        job_id = message["job_id"]
        payload = parse_payload(message["payload"])
    except (ValueError, KeyError, TypeError, PydanticValidationError) as exc:
        logger.error("Dropping malformed queue message: %s", exc)
        return None

    job = await deps.ledger.get_job(job_id)
    if job is None:
        logger.warning("Queued job %s has no record; dropping", job_id)
        return None
    if job.settled:
        logger.info("Job %s already settled; skipping redelivery", job_id)
        return job
    return await run_job(deps, job_id, payload)


async def requeue_in_flight(redis, queue_key: str, in_flight_key: str) -> int:
    """Put messages a previous run of this consumer never finished back on the queue."""
    moved = 0
    while await redis.lmove(in_flight_key, queue_key, src="RIGHT", dest="LEFT") is not None:
        moved += 1
    if moved:
        logger.warning("Requeued %d unfinished job message(s) from %s", moved, in_flight_key)
    return moved


async def run_job_consumer(app) -> None:
    """Background task that moves queued jobs to an in-flight list and runs them.

    A message leaves the in-flight list only after its workflow returned, so
    a crashed consumer's jobs are delivered again when it restarts.
    """
    settings = app.state.settings
    queue_key = settings.job_queue_key
    in_flight_key = processing_key(queue_key, settings.job_worker_name)
    swept = False
    logger.info("Job consumer started (queue=%s, in-flight=%s)", queue_key, in_flight_key)

    while True:
        try:
            redis = getattr(app.state, "redis", None)
            deps = getattr(app.state, "workflow_deps", None)
            if redis is None or deps is None:
                await asyncio.sleep(_POP_TIMEOUT)
                continue

            if not swept:
                await requeue_in_flight(redis, queue_key, in_flight_key)
                swept = True

            raw = await redis.blmove(queue_key, in_flight_key, _POP_TIMEOUT, src="LEFT", dest="RIGHT")
            if raw is None:
                continue
            await process_message(deps, raw)
            await redis.lrem(in_flight_key, 1, raw)

        except asyncio.CancelledError:
            logger.info("Job consumer stopped")
            break
        except Exception as exc:
            logger.exception("Job consumer error: %s", exc)
            await asyncio.sleep(1)
