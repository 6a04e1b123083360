"""Tests for the job store, step ledger and step predicates."""

import json

import pytest
from sqlalchemy.exc import OperationalError

from fluxfolio.models.enums import JobType, StepStatus
from fluxfolio.models.job import (
    Step,
    can_transition,
    failed_step,
    is_complete,
    is_halted,
    is_settled,
    is_successful,
)
from fluxfolio.repositories.job_repo import JobRepository
from fluxfolio.services.ledger import StepLedger

BUY_STEPS = ["Approve Funds", "Swap to Bundle", "Update Portfolio"]


def _steps(*statuses: str) -> list[Step]:
    return [Step(name=f"s{i}", status=s) for i, s in enumerate(statuses)]


@pytest.mark.asyncio
async def test_create_job_starts_all_pending(db_session):
    repo = JobRepository(db_session)
    row = await repo.create_job(JobType.BUY_BUNDLE, BUY_STEPS)
    await db_session.commit()

    job = await repo.get_job(row.job_id)
    assert job.id.startswith("job_")
    assert job.type == JobType.BUY_BUNDLE
    assert [s.name for s in job.steps] == BUY_STEPS
    assert all(s.status == StepStatus.PENDING for s in job.steps)
    assert not job.complete


@pytest.mark.asyncio
async def test_create_job_rejects_duplicate_step_names(db_session):
    with pytest.raises(ValueError):
        await JobRepository(db_session).create_job(JobType.WITHDRAW, ["Check Balance", "Check Balance"])


@pytest.mark.asyncio
async def test_failed_step_halts_job(db_session):
    repo = JobRepository(db_session)
    row = await repo.create_job(JobType.BUY_BUNDLE, BUY_STEPS)
    assert await repo.update_step(row.job_id, "Approve Funds", StepStatus.COMPLETED)
    assert await repo.update_step(row.job_id, "Swap to Bundle", StepStatus.FAILED, "Relay timeout")
    await db_session.commit()

    job = await repo.get_job(row.job_id)
    assert [s.status for s in job.steps] == [StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.PENDING]
    assert job.step("Swap to Bundle").message == "Relay timeout"
    assert job.successful is False
    # literal completeness stays false while a step is pending
    assert job.complete is False
    assert job.settled is True


@pytest.mark.asyncio
async def test_repeated_update_is_idempotent(db_session):
    repo = JobRepository(db_session)
    row = await repo.create_job(JobType.BUY_BUNDLE, BUY_STEPS)

    assert await repo.update_step(row.job_id, "Swap to Bundle", StepStatus.COMPLETED) is True
    assert await repo.update_step(row.job_id, "Swap to Bundle", StepStatus.COMPLETED) is True

    job = await repo.get_job(row.job_id)
    assert job.step("Swap to Bundle").status == StepStatus.COMPLETED
    assert json.loads(row.steps)[1] == {"name": "Swap to Bundle", "status": "completed"}


@pytest.mark.asyncio
async def test_terminal_status_is_never_left(db_session):
    repo = JobRepository(db_session)
    row = await repo.create_job(JobType.WITHDRAW, ["Check Balance", "Initiate On-Chain Withdraw"])

    assert await repo.update_step(row.job_id, "Check Balance", StepStatus.IN_PROGRESS)
    assert await repo.update_step(row.job_id, "Check Balance", StepStatus.COMPLETED)
    assert await repo.update_step(row.job_id, "Check Balance", StepStatus.IN_PROGRESS) is False
    assert await repo.update_step(row.job_id, "Check Balance", StepStatus.PENDING) is False

    assert await repo.update_step(row.job_id, "Initiate On-Chain Withdraw", StepStatus.FAILED, "boom")
    assert await repo.update_step(row.job_id, "Initiate On-Chain Withdraw", StepStatus.COMPLETED) is False

    job = await repo.get_job(row.job_id)
    assert [s.status for s in job.steps] == [StepStatus.COMPLETED, StepStatus.FAILED]


@pytest.mark.asyncio
async def test_terminal_step_keeps_its_message(db_session):
    repo = JobRepository(db_session)
    row = await repo.create_job(JobType.BUY_BUNDLE, BUY_STEPS)

    assert await repo.update_step(row.job_id, "Swap to Bundle", StepStatus.FAILED, "Relay timeout")
    assert await repo.update_step(row.job_id, "Swap to Bundle", StepStatus.FAILED, "something else") is True
    assert await repo.update_step(row.job_id, "Approve Funds", StepStatus.COMPLETED, "ok")
    assert await repo.update_step(row.job_id, "Approve Funds", StepStatus.COMPLETED, "again") is True

    job = await repo.get_job(row.job_id)
    assert job.step("Swap to Bundle").message == "Relay timeout"
    assert job.step("Approve Funds").message == "ok"


@pytest.mark.asyncio
async def test_update_unknown_job_or_step_returns_false(db_session):
    repo = JobRepository(db_session)
    row = await repo.create_job(JobType.ASSIGN_AGENT, ["Validating Agent", "Linking to Portfolio"])

    assert await repo.update_step("job_missing", "Validating Agent", StepStatus.COMPLETED) is False
    assert await repo.update_step(row.job_id, "validating agent", StepStatus.COMPLETED) is False


@pytest.mark.asyncio
async def test_updated_at_moves_forward(db_session):
    repo = JobRepository(db_session)
    row = await repo.create_job(JobType.CREATE_PORTFOLIO, ["Adding User Portfolio"])
    before = (await repo.get_job(row.job_id)).updated_at

    await repo.update_step(row.job_id, "Adding User Portfolio", StepStatus.IN_PROGRESS)
    after = (await repo.get_job(row.job_id)).updated_at
    assert after >= before


@pytest.mark.asyncio
async def test_cancel_flag(db_session):
    repo = JobRepository(db_session)
    row = await repo.create_job(JobType.REBALANCE, ["Preparing Rebalance Tx", "Executing Rebalance On-Chain"])
    assert await repo.is_cancel_requested(row.job_id) is False
    assert await repo.request_cancel(row.job_id) is True
    assert await repo.is_cancel_requested(row.job_id) is True
    assert await repo.request_cancel("job_missing") is False


@pytest.mark.asyncio
async def test_ledger_writes_are_committed(session_factory):
    async with session_factory() as session:
        row = await JobRepository(session).create_job(JobType.BUY_BUNDLE, BUY_STEPS)
        await session.commit()

    ledger = StepLedger(session_factory)
    assert await ledger.mark(row.job_id, "Approve Funds", StepStatus.IN_PROGRESS)
    assert await ledger.attach_external_run_id(row.job_id, "intent_abc")
    assert await ledger.set_return_value(row.job_id, {"ok": True})

    job = await ledger.get_job(row.job_id)
    assert job.step("Approve Funds").status == StepStatus.IN_PROGRESS
    assert job.external_run_id == "intent_abc"
    assert job.return_value == {"ok": True}


@pytest.mark.asyncio
async def test_ledger_retries_failed_write(session_factory, monkeypatch):
    async with session_factory() as session:
        row = await JobRepository(session).create_job(JobType.BUY_BUNDLE, BUY_STEPS)
        await session.commit()

    original = JobRepository.update_step
    calls = {"n": 0}

    async def flaky(self, *args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise OperationalError("UPDATE jobs", {}, Exception("database is locked"))
        return await original(self, *args, **kwargs)

    monkeypatch.setattr(JobRepository, "update_step", flaky)
    ledger = StepLedger(session_factory, write_attempts=2, retry_delay=0)

    assert await ledger.mark(row.job_id, "Approve Funds", StepStatus.COMPLETED) is True
    assert calls["n"] == 2
    job = await ledger.get_job(row.job_id)
    assert job.step("Approve Funds").status == StepStatus.COMPLETED


@pytest.mark.asyncio
async def test_ledger_gives_up_without_raising(session_factory, monkeypatch):
    async def broken(self, *args, **kwargs):
        raise OperationalError("UPDATE jobs", {}, Exception("disk I/O error"))

    monkeypatch.setattr(JobRepository, "update_step", broken)
    ledger = StepLedger(session_factory, write_attempts=2, retry_delay=0)
    assert await ledger.mark("job_any", "Approve Funds", StepStatus.FAILED, "x") is False


def test_transition_table():
    assert can_transition(StepStatus.PENDING, StepStatus.IN_PROGRESS)
    assert can_transition(StepStatus.IN_PROGRESS, StepStatus.FAILED)
    assert can_transition(StepStatus.COMPLETED, StepStatus.COMPLETED)
    assert not can_transition(StepStatus.COMPLETED, StepStatus.PENDING)
    assert not can_transition(StepStatus.FAILED, StepStatus.IN_PROGRESS)


def test_step_predicates():
    done = _steps("completed", "completed")
    assert is_complete(done) and is_successful(done) and is_settled(done)

    halted = _steps("completed", "failed", "pending")
    assert not is_complete(halted)
    assert is_halted(halted)
    assert is_settled(halted)
    assert not is_successful(halted)
    assert failed_step(halted).name == "s1"

    running = _steps("completed", "in-progress", "pending")
    assert not is_settled(running)
    assert failed_step(running) is None

    # a failure followed by progress is not a clean halt
    assert not is_halted(_steps("failed", "in-progress"))
