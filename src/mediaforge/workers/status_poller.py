"""Fallback status poller for jobs whose callback never arrived.

Polls ``processing`` jobs that have a provider task id and have not changed
for STATUS_POLL_STALE_AFTER_SECONDS.
"""

import asyncio
from datetime import timedelta

import structlog

from mediaforge.core.config import Settings
from mediaforge.core.timezone import utcnow
from mediaforge.services.container import AppServices
from mediaforge.services.exceptions import GenerationServiceError
from mediaforge.services.generation.status_sync import poll_job

logger = structlog.get_logger()


async def poll_stale_jobs(services: AppServices, settings: Settings) -> int:
    """Poll one batch of stale processing jobs.

    Returns:
        Number of jobs polled
    """
    cutoff = utcnow() - timedelta(seconds=settings.status_poll_stale_after_seconds)
    async with await services.uow_factory() as uow:
        jobs = await uow.generation_jobs.get_stale_processing(
            older_than=cutoff, limit=settings.status_poll_batch_size
        )

    polled = 0
    for job in jobs:
        try:
            if await poll_job(services, job) is not None:
                polled += 1
        except GenerationServiceError as e:
            # Provider unreachable or record unreadable; retry after the next interval
            logger.warning(
                "poller.job_poll_failed",
                job_id=str(job.id),
                error=str(e),
                error_type=type(e).__name__,
            )
            async with await services.uow_factory() as uow:
                await uow.generation_jobs.touch(job.id)
    return polled


async def run_status_poller(services: AppServices, settings: Settings) -> None:
    """Main worker loop for fallback status polling.

    Args:
        services: Application services (adapters, reconciler)
        settings: Application settings (interval, staleness threshold, batch size)
    """
    logger.info(
        "worker.started",
        worker="status_poller",
        poll_interval=settings.status_poll_interval_seconds,
        stale_after=settings.status_poll_stale_after_seconds,
        batch_size=settings.status_poll_batch_size,
    )

    try:
        while True:
            try:
                await poll_stale_jobs(services, settings)
                await asyncio.sleep(settings.status_poll_interval_seconds)

            except asyncio.CancelledError:
                raise

            except Exception as e:
                logger.error(
                    "worker.error",
                    worker="status_poller",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    exc_info=True,
                )
                await asyncio.sleep(5)

    except asyncio.CancelledError:
        logger.info("worker.stopped", worker="status_poller")
        raise
