"""Background worker tests.

Covers:
- Orphan recovery after a restart (pending re-enqueued, interrupted refunded)
- Fallback status polling of stale processing jobs
- Dispatch worker draining the queue
"""

import asyncio
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import update

from conftest import FakeAdapter, get_balance, get_job
from mediaforge.core.timezone import utcnow
from mediaforge.models.generation_job import GenerationJob, JobKind, JobStatus
from mediaforge.services.callbacks import CallbackStatus, NormalizedCallback
from mediaforge.services.container import build_services
from mediaforge.services.exceptions import TransientProviderError
from mediaforge.services.generation.queue import DispatchQueue
from mediaforge.workers.dispatch_worker import (
    INTERRUPTED_DISPATCH_MESSAGE,
    recover_orphaned_jobs,
    run_dispatch_worker,
)
from mediaforge.workers.status_poller import poll_stale_jobs


@pytest.fixture
def kie():
    return FakeAdapter("kie")


@pytest.fixture
def queue():
    return DispatchQueue()


@pytest.fixture
def services(uow_factory, settings, kie, queue):
    return build_services(settings, uow_factory, adapters={"kie": kie}, queue=queue)


@pytest_asyncio.fixture
async def credentials(add_credential):
    await add_credential(provider="kie", name="KIE_API_KEY_1")


async def backdate(uow_factory, job_id, hours=1):
    async with await uow_factory() as uow:
        await uow.session.execute(
            update(GenerationJob)
            .where(GenerationJob.id == job_id)
            .values(updated_at=utcnow() - timedelta(hours=hours))
        )


async def create_job(services, user):
    dispatched = await services.dispatcher.create_and_dispatch(
        user.id, JobKind.VIDEO, "wan-2.5", prompt="Waves at night"
    )
    return dispatched.job.id


async def submitted_job(services, uow_factory, user):
    job_id = await create_job(services, user)
    await services.dispatcher.dispatch(job_id)
    await backdate(uow_factory, job_id)
    return job_id


@pytest.mark.asyncio
class TestOrphanRecovery:
    async def test_pending_jobs_are_re_enqueued(self, services, make_user, credentials, queue):
        user = await make_user(credits=500)
        job_id = await create_job(services, user)
        while queue.qsize():
            await queue.get()
            queue.task_done()

        enqueued, failed = await recover_orphaned_jobs(services)

        assert (enqueued, failed) == (1, 0)
        assert await queue.get() == job_id

    async def test_interrupted_dispatch_is_failed_and_refunded(
        self, services, uow_factory, make_user, credentials
    ):
        user = await make_user(credits=500)
        job_id = await create_job(services, user)
        async with await uow_factory() as uow:
            assert await uow.generation_jobs.claim_for_dispatch(job_id)
        await backdate(uow_factory, job_id)

        enqueued, failed = await recover_orphaned_jobs(services)

        assert (enqueued, failed) == (0, 1)
        job = await get_job(uow_factory, job_id)
        assert job.status == JobStatus.FAILED
        assert job.error_message == INTERRUPTED_DISPATCH_MESSAGE
        assert await get_balance(uow_factory, user.id) == 500

    async def test_submitted_jobs_are_left_alone(
        self, services, uow_factory, make_user, credentials
    ):
        user = await make_user(credits=500)
        job_id = await submitted_job(services, uow_factory, user)

        assert await recover_orphaned_jobs(services) == (0, 0)
        assert (await get_job(uow_factory, job_id)).status == JobStatus.PROCESSING


@pytest.mark.asyncio
class TestStatusPoller:
    async def test_stale_job_completed_by_poll(
        self, services, settings, uow_factory, make_user, credentials, kie
    ):
        user = await make_user(credits=500)
        job_id = await submitted_job(services, uow_factory, user)
        kie.status = NormalizedCallback(
            status=CallbackStatus.SUCCESS, result_urls=["https://cdn.example.com/night.mp4"]
        )

        polled = await poll_stale_jobs(services, settings)

        assert polled == 1
        assert kie.polled == ["task-1"]
        job = await get_job(uow_factory, job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.result_url == "https://cdn.example.com/night.mp4"

    async def test_stale_job_failed_by_poll_is_refunded(
        self, services, settings, uow_factory, make_user, credentials, kie
    ):
        user = await make_user(credits=500)
        job_id = await submitted_job(services, uow_factory, user)
        kie.status = NormalizedCallback(status=CallbackStatus.FAILURE, error_message="NSFW")

        await poll_stale_jobs(services, settings)

        job = await get_job(uow_factory, job_id)
        assert job.status == JobStatus.FAILED
        assert job.error_message == "NSFW"
        assert await get_balance(uow_factory, user.id) == 500

    async def test_in_flight_job_is_touched_not_finalized(
        self, services, settings, uow_factory, make_user, credentials, kie
    ):
        user = await make_user(credits=500)
        job_id = await submitted_job(services, uow_factory, user)
        kie.status = NormalizedCallback(status=CallbackStatus.IN_FLIGHT)

        await poll_stale_jobs(services, settings)
        second = await poll_stale_jobs(services, settings)

        assert second == 0
        assert (await get_job(uow_factory, job_id)).status == JobStatus.PROCESSING

    async def test_fresh_jobs_are_not_polled(
        self, services, settings, uow_factory, make_user, credentials, kie
    ):
        user = await make_user(credits=500)
        job_id = await create_job(services, user)
        await services.dispatcher.dispatch(job_id)

        assert await poll_stale_jobs(services, settings) == 0
        assert kie.polled == []

    async def test_poll_error_keeps_job_processing(
        self, services, settings, uow_factory, make_user, credentials, kie, monkeypatch
    ):
        user = await make_user(credits=500)
        job_id = await submitted_job(services, uow_factory, user)

        async def unreachable(task_id, credential):
            raise TransientProviderError("AI service is temporarily unavailable")

        monkeypatch.setattr(kie, "fetch_status", unreachable)

        assert await poll_stale_jobs(services, settings) == 0
        assert (await get_job(uow_factory, job_id)).status == JobStatus.PROCESSING


@pytest.mark.asyncio
async def test_dispatch_worker_drains_queue(
    services, settings, uow_factory, make_user, credentials, queue, kie
):
    user = await make_user(credits=500)
    job_id = await create_job(services, user)

    worker = asyncio.create_task(run_dispatch_worker(services, settings))
    try:
        await asyncio.wait_for(queue.join(), timeout=5)
    finally:
        worker.cancel()
        with pytest.raises(asyncio.CancelledError):
            await worker

    assert len(kie.submissions) == 1
    assert (await get_job(uow_factory, job_id)).external_task_id == "task-1"
