"""Job and Step models plus the ledger predicates built on them."""

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from fluxfolio.models.enums import JobType, StepStatus

TERMINAL_STATUSES = frozenset({StepStatus.COMPLETED, StepStatus.FAILED})

# Allowed forward moves. Re-writing the current status is accepted as a no-op.
_TRANSITIONS: dict[StepStatus, frozenset[StepStatus]] = {
    StepStatus.PENDING: frozenset({StepStatus.IN_PROGRESS, StepStatus.COMPLETED, StepStatus.FAILED}),
    StepStatus.IN_PROGRESS: frozenset({StepStatus.COMPLETED, StepStatus.FAILED}),
    StepStatus.COMPLETED: frozenset(),
    StepStatus.FAILED: frozenset(),
}


class Step(BaseModel):
    """One named unit of work within a Job."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1)
    status: StepStatus = StepStatus.PENDING
    message: str | None = None


_STEP_LIST = TypeAdapter(list[Step])


def can_transition(current: StepStatus, target: StepStatus) -> bool:
    """True when ``current -> target`` moves forward or repeats ``current``."""
    return current == target or target in _TRANSITIONS[current]


def encode_steps(steps: list[Step]) -> str:
    """Serialize steps to the JSON string stored on the job record."""
    return json.dumps([s.model_dump(mode="json", exclude_none=True) for s in steps])


def decode_steps(raw: str | list | None) -> list[Step]:
    """Parse the stored step column; tolerates an already-decoded list."""
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        raw = json.loads(raw)
    return _STEP_LIST.validate_python(raw)


def initial_steps(names: list[str]) -> list[Step]:
    if len(set(names)) != len(names):
        raise ValueError(f"Step names must be unique: {names}")
    return [Step(name=name) for name in names]


def is_complete(steps: list[Step]) -> bool:
    """Literal completeness: every step is completed or failed."""
    return all(s.status in TERMINAL_STATUSES for s in steps)


def is_halted(steps: list[Step]) -> bool:
    """A failed step exists and every step after it is still pending."""
    for idx, step in enumerate(steps):
        if step.status == StepStatus.FAILED:
            return all(s.status == StepStatus.PENDING for s in steps[idx + 1:])
    return False


def is_settled(steps: list[Step]) -> bool:
    """No further progress will happen: complete, or halted on a failure."""
    return is_complete(steps) or is_halted(steps)


def is_successful(steps: list[Step]) -> bool:
    return is_complete(steps) and not any(s.status == StepStatus.FAILED for s in steps)


def failed_step(steps: list[Step]) -> Step | None:
    return next((s for s in steps if s.status == StepStatus.FAILED), None)


class JobModel(BaseModel):
    """Read model for a Job record."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., pattern=r"^job_[A-Za-z0-9_-]+$")
    type: JobType
    steps: list[Step]
    owner_id: str | None = None
    external_run_id: str | None = None
    return_value: Any | None = None
    cancel_requested: bool = False
    created_at: datetime
    updated_at: datetime

    @property
    def complete(self) -> bool:
        return is_complete(self.steps)

    @property
    def settled(self) -> bool:
        return is_settled(self.steps)

    @property
    def successful(self) -> bool:
        return is_successful(self.steps)

    def step(self, name: str) -> Step | None:
        return next((s for s in self.steps if s.name == name), None)

    def to_response(self) -> dict:
        """Polling payload: the stored step string plus decoded helpers."""
        return {
            "id": self.id,
            "type": self.type.value,
            "steps": encode_steps(self.steps),
            "step_list": [s.model_dump(mode="json", exclude_none=True) for s in self.steps],
            "owner_id": self.owner_id,
            "external_run_id": self.external_run_id,
            "return_value": self.return_value,
            "cancel_requested": self.cancel_requested,
            "complete": self.complete,
            "settled": self.settled,
            "successful": self.successful,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
