"""Post media fan-out tests.

Tests focus on:
- One reservation for all of a post's jobs
- Insufficient credits marking the post failed without creating jobs
- Jobs that cannot be created are skipped and their share refunded
"""

import pytest
import pytest_asyncio
from sqlalchemy.exc import SQLAlchemyError

from conftest import FakeAdapter, get_balance
from mediaforge.models.generation_job import JobKind, JobStatus
from mediaforge.models.scheduled_post import MediaGenerationStatus, ScheduledPost
from mediaforge.repositories.generation_job import GenerationJobRepository
from mediaforge.services.container import build_services
from mediaforge.services.exceptions import PostNotFoundError
from mediaforge.services.generation.fanout import (
    NO_JOBS_CREATED_MESSAGE,
    MediaJobSpec,
    build_media_specs,
)
from mediaforge.services.generation.queue import DispatchQueue

IMAGE = MediaJobSpec(kind=JobKind.IMAGE, model="flux-kontext", prompt="A sunrise over Lisbon")
VIDEO = MediaJobSpec(
    kind=JobKind.VIDEO,
    model="wan-2.5",
    prompt="Slow pan over Lisbon at sunrise",
    parameters={"aspectRatio": "16:9"},
)


@pytest.fixture
def queue():
    return DispatchQueue()


@pytest.fixture
def services(uow_factory, settings, queue):
    return build_services(settings, uow_factory, adapters={"kie": FakeAdapter("kie")}, queue=queue)


@pytest_asyncio.fixture
async def credentials(add_credential):
    await add_credential(provider="kie", name="KIE_API_KEY_1")


@pytest.fixture
def make_post(uow_factory):
    async def _make_post(user_id) -> ScheduledPost:
        async with await uow_factory() as uow:
            return await uow.scheduled_posts.add(
                ScheduledPost(user_id=user_id, caption="Morning in Lisbon", platforms=["x"])
            )

    return _make_post


async def load_post(uow_factory, post_id):
    async with await uow_factory() as uow:
        post = await uow.scheduled_posts.get_by_id(post_id)
        jobs = await uow.generation_jobs.list_by_post(post_id)
    return post, jobs


@pytest.mark.asyncio
async def test_fanout_reserves_total_and_queues_all_jobs(
    services, uow_factory, make_user, make_post, credentials, queue
):
    user = await make_user(credits=200)
    post = await make_post(user.id)

    result = await services.fanout.enqueue_media_generations(post.id, user.id, [IMAGE, VIDEO])

    assert result.success
    assert result.job_count == 2
    assert result.total_credits_used == 130
    assert await get_balance(uow_factory, user.id) == 70
    assert queue.qsize() == 2

    post, jobs = await load_post(uow_factory, post.id)
    assert post.media_generation_status == MediaGenerationStatus.GENERATING
    assert {job.model for job in jobs} == {"flux-kontext", "wan-2.5"}
    assert all(job.status == JobStatus.PENDING for job in jobs)
    assert all(job.source == "social_auto" for job in jobs)


@pytest.mark.asyncio
async def test_fanout_insufficient_credits_marks_post_failed(
    services, uow_factory, make_user, make_post, credentials, queue
):
    user = await make_user(credits=100)
    post = await make_post(user.id)

    result = await services.fanout.enqueue_media_generations(post.id, user.id, [IMAGE, VIDEO])

    assert not result.success
    assert result.required == 130
    assert result.available == 100
    assert await get_balance(uow_factory, user.id) == 100
    assert queue.qsize() == 0

    post, jobs = await load_post(uow_factory, post.id)
    assert post.media_generation_status == MediaGenerationStatus.FAILED
    assert "Insufficient credits" in post.error_message
    assert jobs == []


@pytest.mark.asyncio
async def test_fanout_partial_creation_refunds_skipped_share(
    services, uow_factory, make_user, make_post, credentials, monkeypatch
):
    user = await make_user(credits=200)
    post = await make_post(user.id)
    original_add = GenerationJobRepository.add

    async def flaky_add(self, job):
        if job.model == "wan-2.5":
            raise SQLAlchemyError("constraint violated")
        return await original_add(self, job)

    monkeypatch.setattr(GenerationJobRepository, "add", flaky_add)

    result = await services.fanout.enqueue_media_generations(post.id, user.id, [IMAGE, VIDEO])

    assert result.success
    assert result.job_count == 1
    assert result.total_credits_used == 5
    assert await get_balance(uow_factory, user.id) == 195

    _, jobs = await load_post(uow_factory, post.id)
    assert [job.model for job in jobs] == ["flux-kontext"]


@pytest.mark.asyncio
async def test_fanout_no_jobs_created_refunds_everything(
    services, uow_factory, make_user, make_post, credentials, monkeypatch
):
    user = await make_user(credits=200)
    post = await make_post(user.id)

    async def failing_add(self, job):
        raise SQLAlchemyError("database unavailable")

    monkeypatch.setattr(GenerationJobRepository, "add", failing_add)

    result = await services.fanout.enqueue_media_generations(post.id, user.id, [IMAGE])

    assert not result.success
    assert result.error == NO_JOBS_CREATED_MESSAGE
    assert await get_balance(uow_factory, user.id) == 200

    post, _ = await load_post(uow_factory, post.id)
    assert post.media_generation_status == MediaGenerationStatus.FAILED


@pytest.mark.asyncio
async def test_fanout_invalid_spec_leaves_post_untouched(
    services, uow_factory, make_user, make_post, credentials
):
    user = await make_user(credits=200)
    post = await make_post(user.id)
    bad = MediaJobSpec(kind=JobKind.VIDEO, model="not-a-model", prompt="x")

    result = await services.fanout.enqueue_media_generations(post.id, user.id, [IMAGE, bad])

    assert not result.success
    assert "Unsupported" in result.error
    assert await get_balance(uow_factory, user.id) == 200
    post, _ = await load_post(uow_factory, post.id)
    assert post.media_generation_status is None


@pytest.mark.asyncio
async def test_fanout_rejects_someone_elses_post(
    services, make_user, make_post, credentials
):
    owner = await make_user(credits=200)
    other = await make_user(credits=200)
    post = await make_post(owner.id)

    with pytest.raises(PostNotFoundError):
        await services.fanout.enqueue_media_generations(post.id, other.id, [IMAGE])


@pytest.mark.parametrize(
    "level, expected",
    [
        ("manual", []),
        ("ai_suggests", []),
        ("semi_auto", [JobKind.IMAGE]),
        ("full_auto", [JobKind.IMAGE, JobKind.VIDEO]),
    ],
)
def test_build_media_specs_by_automation_level(level, expected):
    specs = build_media_specs(level, image_prompt="image", video_prompt="video")

    assert [spec.kind for spec in specs] == expected


def test_build_media_specs_skips_missing_prompts():
    specs = build_media_specs("full_auto", image_prompt=None, video_prompt="video")

    assert [spec.model for spec in specs] == ["wan-2.5"]
