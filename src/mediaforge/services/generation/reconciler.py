"""Completion reconciler: the single path that moves a job to a terminal state."""

from collections.abc import Awaitable, Callable
from uuid import UUID

import structlog

from mediaforge.models.generation_job import GenerationJob, JobOutcome
from mediaforge.services.exceptions import JobNotFoundError
from mediaforge.services.generation.notifier import PostMediaNotifier
from mediaforge.services.ledger import CreditLedger
from mediaforge.uow import UnitOfWork

logger = structlog.get_logger()

NO_RESULT_MESSAGE = "Generation finished without a result"
DEFAULT_FAILURE_MESSAGE = "Generation failed"


class CompletionReconciler:
    """Idempotent job finalization with exactly-once refund.

    Callbacks, status polls, immediate provider results, dispatch failures and
    operators all finalize through ``finalize``. The first terminal write wins;
    every later call returns the stored job unchanged.
    """

    def __init__(
        self,
        uow_factory: Callable[[], Awaitable[UnitOfWork]],
        notifier: PostMediaNotifier | None = None,
    ):
        self.uow_factory = uow_factory
        self.notifier = notifier

    async def finalize(
        self,
        job_id: UUID,
        outcome: JobOutcome,
        result_urls: list[str] | None = None,
        error_message: str | None = None,
    ) -> GenerationJob:
        """Move a job to completed or failed, refunding on failure.

        A success report without any result URL is recorded as a failure.

        Args:
            job_id: Job to finalize
            outcome: Reported outcome
            result_urls: Result locators (success only)
            error_message: Failure cause (failure only)

        Returns:
            The job after finalization, or unchanged if it was already terminal

        Raises:
            JobNotFoundError: If the job does not exist
        """
        urls = [url for url in dict.fromkeys(result_urls or []) if url]
        claimed = False

        async with await self.uow_factory() as uow:
            job = await uow.generation_jobs.get_for_update(job_id)
            if job is None:
                raise JobNotFoundError(f"Generation job not found: {job_id}")

            if job.is_terminal:
                logger.info(
                    "reconciler.already_terminal",
                    job_id=str(job_id),
                    status=job.status.value,
                    reported=outcome.value,
                )
                return job

            with uow.session.no_autoflush:
                if outcome == JobOutcome.SUCCESS and urls:
                    job.mark_completed(urls)
                else:
                    if outcome == JobOutcome.SUCCESS:
                        error_message = NO_RESULT_MESSAGE
                    job.mark_failed(error_message or DEFAULT_FAILURE_MESSAGE)
                claimed = await uow.generation_jobs.claim_terminal(job)

            if not claimed:
                # Another finalizer committed first; discard our in-memory transition
                await uow.session.refresh(job)
                logger.info(
                    "reconciler.lost_race",
                    job_id=str(job_id),
                    status=job.status.value,
                    reported=outcome.value,
                )
                return job

            if not job.succeeded and job.credits_reserved > 0:
                await CreditLedger(uow).refund(job.user_id, job.credits_reserved)

        logger.info(
            "reconciler.finalized",
            job_id=str(job.id),
            user_id=str(job.user_id),
            status=job.status.value,
            refunded=0 if job.succeeded else job.credits_reserved,
            result_count=len(job.result_urls or []),
            error=job.error_message,
        )

        if job.post_id is not None and self.notifier is not None:
            await self.notifier.on_job_terminal(job.post_id)

        return job
