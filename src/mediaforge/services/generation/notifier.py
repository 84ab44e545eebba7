"""Scheduled-post media status derived from the post's generation jobs."""

from collections.abc import Awaitable, Callable, Iterable
from uuid import UUID

import structlog

from mediaforge.models.generation_job import TERMINAL_STATUSES, GenerationJob, JobStatus
from mediaforge.models.scheduled_post import MediaGenerationStatus
from mediaforge.uow import UnitOfWork

logger = structlog.get_logger()


def aggregate_media_status(statuses: Iterable[JobStatus]) -> MediaGenerationStatus | None:
    """Derive a post's media status from its jobs' statuses.

    - generating: any job not yet terminal
    - completed: all terminal, all succeeded
    - partial: all terminal, at least one success and one failure
    - failed: all terminal, none succeeded

    Returns None for a post without jobs.
    """
    statuses = list(statuses)
    if not statuses:
        return None
    if any(status not in TERMINAL_STATUSES for status in statuses):
        return MediaGenerationStatus.GENERATING

    succeeded = sum(1 for status in statuses if status == JobStatus.COMPLETED)
    if succeeded == len(statuses):
        return MediaGenerationStatus.COMPLETED
    if succeeded == 0:
        return MediaGenerationStatus.FAILED
    return MediaGenerationStatus.PARTIAL


def merge_media_urls(existing: list[str], jobs: Iterable[GenerationJob]) -> list[str]:
    """Append the results of succeeded jobs to ``existing``, keeping order, no duplicates."""
    urls = list(existing)
    for job in jobs:
        if not job.succeeded:
            continue
        for url in job.result_urls or [job.result_url]:
            if url and url not in urls:
                urls.append(url)
    return urls


class PostMediaNotifier:
    """Recomputes a scheduled post's media state when one of its jobs ends."""

    def __init__(self, uow_factory: Callable[[], Awaitable[UnitOfWork]]):
        self.uow_factory = uow_factory

    async def on_job_terminal(self, post_id: UUID) -> MediaGenerationStatus | None:
        """Refresh the aggregate status, media list and error of a post.

        The whole state is recomputed from all jobs of the post, so concurrent
        notifications converge. Errors are logged and swallowed; the job's own
        finalization has already committed.

        Returns:
            The new aggregate status, or None if nothing was updated
        """
        try:
            async with await self.uow_factory() as uow:
                post = await uow.scheduled_posts.get_for_update(post_id)
                if post is None:
                    logger.warning("notifier.post_not_found", post_id=str(post_id))
                    return None

                jobs = await uow.generation_jobs.list_by_post(post_id)
                status = aggregate_media_status(job.status for job in jobs)
                if status is None:
                    return None

                failures = [job for job in jobs if job.status == JobStatus.FAILED]
                error_message = None
                if failures and status != MediaGenerationStatus.GENERATING:
                    last = max(failures, key=lambda job: job.completed_at or job.updated_at)
                    error_message = last.error_message

                await uow.scheduled_posts.set_media_state(
                    post,
                    status,
                    merge_media_urls(post.media_urls or [], jobs),
                    error_message,
                )
        except Exception as e:
            logger.error(
                "notifier.failed",
                post_id=str(post_id),
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return None

        logger.info(
            "notifier.post_updated",
            post_id=str(post_id),
            status=status.value,
            job_count=len(jobs),
        )
        return status
