"""Provider status polling for a single job.

Used by the fallback status poller and by operators reconciling a stuck job.
Terminal answers go through the completion reconciler, so a callback racing
with a poll is harmless.
"""

import structlog

from mediaforge.models.generation_job import GenerationJob, JobOutcome
from mediaforge.services.callbacks import CallbackStatus
from mediaforge.services.catalog import resolve
from mediaforge.services.container import AppServices
from mediaforge.services.key_rotator import ApiKeyRotator

logger = structlog.get_logger()


async def poll_job(services: AppServices, job: GenerationJob) -> CallbackStatus | None:
    """Ask the provider for the state of one job and act on the answer.

    In-flight and unrecognized answers only bump the job's ``updated_at``.

    Returns:
        The normalized status, or None if the job's provider cannot be polled

    Raises:
        ProviderSubmissionError: If the provider cannot be reached
        ProviderCallbackError: If the provider's answer has an unknown shape
        NoCredentialAvailable: If the provider has no active credential
    """
    spec = resolve(job.model, job.kind)
    adapter = services.adapters.get(spec.provider)
    fetch_status = getattr(adapter, "fetch_status", None)
    if fetch_status is None or job.external_task_id is None:
        return None

    async with await services.uow_factory() as uow:
        credential = await ApiKeyRotator(uow).next(spec.provider)

    callback = await fetch_status(job.external_task_id, credential)

    if callback.status == CallbackStatus.SUCCESS:
        await services.reconciler.finalize(
            job.id, JobOutcome.SUCCESS, result_urls=callback.result_urls
        )
    elif callback.status == CallbackStatus.FAILURE:
        await services.reconciler.finalize(
            job.id, JobOutcome.FAILURE, error_message=callback.error_message
        )
    else:
        async with await services.uow_factory() as uow:
            await uow.generation_jobs.touch(job.id)

    logger.info(
        "poller.job_polled",
        job_id=str(job.id),
        task_id=job.external_task_id,
        status=callback.status.value,
        raw_status=callback.raw_status,
    )
    return callback.status
