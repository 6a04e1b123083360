"""Client-side job poller over ``GET /api/v1/jobs/{id}``."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

import httpx

from fluxfolio.models.job import JobModel, decode_steps, is_settled

logger = logging.getLogger(__name__)

OnUpdate = Callable[[JobModel], Awaitable[None] | None]


class JobStatusPoller:
    """Fetches a job at a fixed interval until it is settled.

    Stopping the poller only stops this client; the job keeps running on
    the server.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        interval: float = 1.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.interval = interval
        self._client = http_client or httpx.AsyncClient(base_url=base_url, timeout=10.0)
        self._owns_client = http_client is None
        self._headers = {"Authorization": f"Bearer {token}"}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "JobStatusPoller":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def fetch(self, job_id: str) -> JobModel:
        response = await self._client.get(f"/api/v1/jobs/{job_id}", headers=self._headers)
        response.raise_for_status()
        data = response.json()
        return JobModel(
            id=data["id"],
            type=data["type"],
            steps=decode_steps(data["steps"]),
            owner_id=data.get("owner_id"),
            external_run_id=data.get("external_run_id"),
            return_value=data.get("return_value"),
            cancel_requested=data.get("cancel_requested", False),
            created_at=data["created_at"],
            updated_at=data["updated_at"],
        )

    async def poll(
        self,
        job_id: str,
        on_update: OnUpdate | None = None,
        max_polls: int | None = None,
    ) -> JobModel:
        polls = 0
        while True:
            job = await self.fetch(job_id)
            polls += 1
            if on_update is not None:
                maybe = on_update(job)
                if asyncio.iscoroutine(maybe):
                    await maybe
            if is_settled(job.steps):
                logger.info("Job %s settled (successful=%s)", job_id, job.successful)
                return job
            if max_polls is not None and polls >= max_polls:
                return job
            await asyncio.sleep(self.interval)
