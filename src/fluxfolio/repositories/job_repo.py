"""Job repository: the durable store behind the step ledger."""

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fluxfolio.db.base import utcnow
from fluxfolio.db.models.job import JobRow
from fluxfolio.errors.exceptions import StorageError
from fluxfolio.models.enums import JobType, StepStatus
from fluxfolio.models.job import (
    TERMINAL_STATUSES,
    JobModel,
    can_transition,
    decode_steps,
    encode_steps,
    initial_steps,
)
from fluxfolio.repositories.base import BaseRepository
from fluxfolio.services.id_generator import generate_id

logger = logging.getLogger(__name__)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _bump(row: JobRow) -> None:
    """Advance updated_at without ever moving it backwards."""
    now = utcnow()
    previous = _aware(row.updated_at) if row.updated_at else now
    row.updated_at = max(now, previous)


def row_to_model(row: JobRow) -> JobModel:
    return JobModel(
        id=row.job_id,
        type=JobType(row.job_type),
        steps=decode_steps(row.steps),
        owner_id=row.owner_id,
        external_run_id=row.external_run_id,
        return_value=row.return_value,
        cancel_requested=bool(row.cancel_requested),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


class JobRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session, JobRow)

    async def get(self, job_id: str, for_update: bool = False) -> JobRow | None:
        return await self.get_by_id("job_id", job_id, for_update=for_update)

    async def get_job(self, job_id: str) -> JobModel | None:
        row = await self.get(job_id)
        return row_to_model(row) if row else None

    async def create_job(
        self,
        job_type: JobType | str,
        step_names: list[str],
        owner_id: str | None = None,
        payload: dict | None = None,
    ) -> JobRow:
        """Persist a new job with every step pending."""
        steps = initial_steps(step_names)
        now = utcnow()
        try:
            return await self.create(
                job_id=generate_id("job_"),
                job_type=JobType(job_type).value,
                owner_id=owner_id,
                steps=encode_steps(steps),
                payload=payload,
                created_at=now,
                updated_at=now,
            )
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not create {job_type} job: {exc}") from exc

    async def update_step(
        self,
        job_id: str,
        step_name: str,
        status: StepStatus | str,
        message: str | None = None,
    ) -> bool:
        """Set one step's status by exact name.

        Missing jobs or steps are logged and reported as ``False`` rather than
        raised. Moves out of a terminal status are refused; repeating the
        current status is a no-op, and a terminal step keeps its message.
        """
        target = StepStatus(status)
        row = await self.get(job_id, for_update=True)
        if row is None:
            logger.error("Job %s not found while setting step '%s'", job_id, step_name)
            return False

        steps = decode_steps(row.steps)
        step = next((s for s in steps if s.name == step_name), None)
        if step is None:
            logger.error("Step '%s' not found in job %s", step_name, job_id)
            return False

        if step.status == target and (
            step.status in TERMINAL_STATUSES or message is None or message == step.message
        ):
            return True
        if not can_transition(step.status, target):
            logger.warning(
                "Refusing step transition %s -> %s for '%s' in job %s",
                step.status, target, step_name, job_id,
            )
            return False

        step.status = target
        if message:
            step.message = message
        row.steps = encode_steps(steps)
        _bump(row)
        await self.session.flush()
        return True

    async def attach_external_run_id(self, job_id: str, run_id: str) -> bool:
        row = await self.get(job_id, for_update=True)
        if row is None:
            logger.error("Job %s not found while attaching run id", job_id)
            return False
        row.external_run_id = run_id
        _bump(row)
        await self.session.flush()
        return True

    async def set_return_value(self, job_id: str, value: Any) -> bool:
        row = await self.get(job_id, for_update=True)
        if row is None:
            logger.error("Job %s not found while storing return value", job_id)
            return False
        row.return_value = value
        _bump(row)
        await self.session.flush()
        return True

    async def request_cancel(self, job_id: str) -> bool:
        row = await self.get(job_id, for_update=True)
        if row is None:
            return False
        row.cancel_requested = True
        _bump(row)
        await self.session.flush()
        return True

    async def is_cancel_requested(self, job_id: str) -> bool:
        row = await self.get(job_id)
        return bool(row and row.cancel_requested)
