"""Scheduled post media status tests.

Tests focus on the aggregate status derived from a post's jobs and on the
post being refreshed when each job reaches a terminal state.
"""

import pytest

from mediaforge.models.generation_job import GenerationJob, JobKind, JobOutcome, JobStatus
from mediaforge.models.scheduled_post import MediaGenerationStatus, ScheduledPost
from mediaforge.services.generation.notifier import PostMediaNotifier, aggregate_media_status
from mediaforge.services.generation.reconciler import CompletionReconciler

P, R, C, F = JobStatus.PENDING, JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED


@pytest.mark.parametrize(
    "statuses, expected",
    [
        ([], None),
        ([P], MediaGenerationStatus.GENERATING),
        ([C, R, F], MediaGenerationStatus.GENERATING),
        ([C, C], MediaGenerationStatus.COMPLETED),
        ([F, F], MediaGenerationStatus.FAILED),
        ([C, F, C], MediaGenerationStatus.PARTIAL),
    ],
)
def test_aggregate_media_status(statuses, expected):
    assert aggregate_media_status(statuses) == expected


@pytest.fixture
def post_with_jobs(uow_factory, make_user):
    async def _post_with_jobs(count: int):
        user = await make_user(credits=0)
        async with await uow_factory() as uow:
            post = await uow.scheduled_posts.add(ScheduledPost(user_id=user.id, caption="launch"))
            jobs = [
                await uow.generation_jobs.add(
                    GenerationJob(
                        user_id=user.id,
                        kind=JobKind.IMAGE,
                        model="flux-kontext",
                        prompt=f"image {i}",
                        credits_reserved=5,
                        status=JobStatus.PROCESSING,
                        post_id=post.id,
                        source="social_auto",
                    )
                )
                for i in range(count)
            ]
        return post, jobs

    return _post_with_jobs


async def get_post(uow_factory, post_id):
    async with await uow_factory() as uow:
        return await uow.scheduled_posts.get_by_id(post_id)


@pytest.mark.asyncio
async def test_post_status_follows_its_jobs(uow_factory, post_with_jobs):
    """Three jobs: success, failure, success -> generating until the last, then partial."""
    post, (first, second, third) = await post_with_jobs(3)
    reconciler = CompletionReconciler(uow_factory, PostMediaNotifier(uow_factory))

    await reconciler.finalize(
        first.id, JobOutcome.SUCCESS, result_urls=["https://cdn.example.com/1.png"]
    )
    assert (await get_post(uow_factory, post.id)).media_generation_status == (
        MediaGenerationStatus.GENERATING
    )

    await reconciler.finalize(second.id, JobOutcome.FAILURE, error_message="content policy")
    generating = await get_post(uow_factory, post.id)
    assert generating.media_generation_status == MediaGenerationStatus.GENERATING
    assert generating.error_message is None

    await reconciler.finalize(
        third.id, JobOutcome.SUCCESS, result_urls=["https://cdn.example.com/3.png"]
    )
    final = await get_post(uow_factory, post.id)
    assert final.media_generation_status == MediaGenerationStatus.PARTIAL
    assert final.media_urls == ["https://cdn.example.com/1.png", "https://cdn.example.com/3.png"]
    assert final.error_message == "content policy"


@pytest.mark.asyncio
async def test_all_jobs_failed_marks_post_failed(uow_factory, post_with_jobs):
    post, jobs = await post_with_jobs(2)
    reconciler = CompletionReconciler(uow_factory, PostMediaNotifier(uow_factory))

    for job in jobs:
        await reconciler.finalize(job.id, JobOutcome.FAILURE, error_message="timeout")

    final = await get_post(uow_factory, post.id)
    assert final.media_generation_status == MediaGenerationStatus.FAILED
    assert final.media_urls == []


@pytest.mark.asyncio
async def test_notifier_for_missing_post_returns_none(uow_factory):
    from uuid import uuid4

    assert await PostMediaNotifier(uow_factory).on_job_terminal(uuid4()) is None
