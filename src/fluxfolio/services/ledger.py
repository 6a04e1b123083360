"""Step ledger: committed, retried status writes for running workflows."""

import asyncio
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fluxfolio.models.enums import StepStatus
from fluxfolio.models.job import JobModel
from fluxfolio.repositories.job_repo import JobRepository

logger = logging.getLogger(__name__)


class StepLedger:
    """Records step transitions, each in its own committed transaction.

    A status write that keeps failing is logged and dropped: the workflow
    itself is never aborted because the ledger could not be updated.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        write_attempts: int = 2,
        retry_delay: float = 0.2,
    ):
        self._session_factory = session_factory
        self._write_attempts = max(1, write_attempts)
        self._retry_delay = retry_delay

    async def _write(self, what: str, job_id: str, op) -> bool:
        for attempt in range(1, self._write_attempts + 1):
            try:
                async with self._session_factory() as session:
                    ok = await op(JobRepository(session))
                    await session.commit()
                    return ok
            except (SQLAlchemyError, OSError) as exc:
                logger.warning(
                    "Ledger write '%s' for job %s failed (attempt %d/%d): %s",
                    what, job_id, attempt, self._write_attempts, exc,
                )
                if attempt < self._write_attempts:
                    await asyncio.sleep(self._retry_delay)
        logger.error("Ledger write '%s' for job %s lost after %d attempts", what, job_id, self._write_attempts)
        return False

    async def mark(self, job_id: str, step_name: str, status: StepStatus, message: str | None = None) -> bool:
        return await self._write(
            f"{step_name}={status}",
            job_id,
            lambda repo: repo.update_step(job_id, step_name, status, message),
        )

    async def attach_external_run_id(self, job_id: str, run_id: str) -> bool:
        return await self._write("external_run_id", job_id, lambda repo: repo.attach_external_run_id(job_id, run_id))

    async def set_return_value(self, job_id: str, value: Any) -> bool:
        return await self._write("return_value", job_id, lambda repo: repo.set_return_value(job_id, value))

    async def get_job(self, job_id: str) -> JobModel | None:
        async with self._session_factory() as session:
            return await JobRepository(session).get_job(job_id)

    async def is_cancel_requested(self, job_id: str) -> bool:
        try:
            async with self._session_factory() as session:
                return await JobRepository(session).is_cancel_requested(job_id)
        except SQLAlchemyError as exc:
            logger.warning("Could not read cancel flag for job %s: %s", job_id, exc)
            return False
