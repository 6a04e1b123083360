"""Job status polling and cancellation endpoints."""

from fastapi import APIRouter

from fluxfolio.dependencies import CurrentUser, DBSession
from fluxfolio.errors.exceptions import ConflictError, NotFoundError
from fluxfolio.models.job import JobModel
from fluxfolio.repositories.job_repo import JobRepository

router = APIRouter(tags=["Jobs"])


async def _owned_job(repo: JobRepository, job_id: str, user_id: str) -> JobModel:
    job = await repo.get_job(job_id)
    # Other users' jobs are reported as missing
    if job is None or job.owner_id != user_id:
        raise NotFoundError("Job", job_id)
    return job


@router.get("/jobs/{job_id}")
async def get_job_status(job_id: str, user: CurrentUser, db: DBSession) -> dict:
    job = await _owned_job(JobRepository(db), job_id, user.user_id)
    return job.to_response()


@router.post("/jobs/{job_id}/cancel")
async def cancel_job(job_id: str, user: CurrentUser, db: DBSession) -> dict:
    """Ask a running job to stop; it halts at its next checkpoint."""
    repo = JobRepository(db)
    job = await _owned_job(repo, job_id, user.user_id)
    if job.settled:
        raise ConflictError(f"Job {job_id} has already finished")
    await repo.request_cancel(job_id)
    await db.commit()
    return {"success": True, "job_id": job_id, "cancel_requested": True}
