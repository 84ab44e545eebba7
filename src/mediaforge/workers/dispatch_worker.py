"""Dispatch worker: drains the dispatch queue and submits jobs to providers.

Several copies run concurrently (DISPATCH_WORKER_COUNT); each takes one job
id at a time. A failing dispatch is logged and the worker moves on; the job
itself has already been finalized by the dispatcher.
"""

import asyncio
from datetime import timedelta

import structlog

from mediaforge.core.config import Settings
from mediaforge.core.timezone import utcnow
from mediaforge.models.generation_job import JobOutcome
from mediaforge.services.container import AppServices

logger = structlog.get_logger()

INTERRUPTED_DISPATCH_MESSAGE = "Dispatch was interrupted before the job reached the AI service"


async def recover_orphaned_jobs(services: AppServices, limit: int = 1000) -> tuple[int, int]:
    """Recover jobs left behind by a restart.

    - ``pending`` jobs are put back on the dispatch queue.
    - ``processing`` jobs without a provider task id were claimed but never
      submitted; they are finalized as failed so their credits are refunded.

    Returns:
        (re-enqueued count, failed count)
    """
    settings = services.settings
    cutoff = utcnow() - timedelta(seconds=settings.provider_submit_timeout_seconds)

    async with await services.uow_factory() as uow:
        pending_ids = await uow.generation_jobs.get_pending_ids(limit=limit)
        interrupted_ids = await uow.generation_jobs.get_unsubmitted_processing_ids(
            older_than=cutoff, limit=limit
        )

    for job_id in pending_ids:
        services.dispatcher.enqueue(job_id)

    for job_id in interrupted_ids:
        await services.reconciler.finalize(
            job_id, JobOutcome.FAILURE, error_message=INTERRUPTED_DISPATCH_MESSAGE
        )

    if pending_ids or interrupted_ids:
        logger.info(
            "worker.recovery",
            orphaned_jobs_enqueued=len(pending_ids),
            interrupted_jobs_failed=len(interrupted_ids),
        )
    return len(pending_ids), len(interrupted_ids)


async def run_dispatch_worker(services: AppServices, settings: Settings) -> None:
    """Main worker loop for provider submission.

    Args:
        services: Application services (queue and dispatcher)
        settings: Application settings
    """
    queue = services.queue
    if queue is None:
        raise RuntimeError("Dispatch worker requires a dispatch queue")

    logger.info(
        "worker.started",
        worker="dispatch",
        timeout=settings.provider_submit_timeout_seconds,
    )

    try:
        while True:
            job_id = await queue.get()
            try:
                await services.dispatcher.dispatch(job_id)

            except asyncio.CancelledError:
                raise

            except Exception as e:
                logger.error(
                    "worker.error",
                    worker="dispatch",
                    job_id=str(job_id),
                    error_type=type(e).__name__,
                    error_message=str(e),
                    exc_info=True,
                )

            finally:
                queue.task_done()

    except asyncio.CancelledError:
        logger.info("worker.stopped", worker="dispatch")
        raise
