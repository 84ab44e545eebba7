"""Provider callback endpoint.

POST /callback/{job_id} receives the provider's completion notice for a job.
Payload shapes differ per provider and are normalized by the ordered callback
strategies. Providers retry on non-2xx responses, so everything except an
unknown job or unparseable JSON is acknowledged with 200.
"""

import json
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status

from mediaforge.api.dependencies import get_reconciler, get_uow_factory
from mediaforge.models.generation_job import JobOutcome
from mediaforge.services.callbacks import CallbackStatus, normalize_callback
from mediaforge.services.exceptions import JobNotFoundError, ProviderCallbackError
from mediaforge.services.generation.reconciler import CompletionReconciler

logger = structlog.get_logger()
router = APIRouter(tags=["callbacks"])


@router.post("/callback/{job_id}")
async def receive_callback(
    job_id: UUID,
    request: Request,
    uow_factory=Depends(get_uow_factory),
    reconciler: CompletionReconciler = Depends(get_reconciler),
):
    """Receive a provider callback and finalize the job when it is terminal.

    HTTP Status Codes:
        200: Callback applied, acknowledged (in flight / duplicate) or ignored
        400: Body is not valid JSON
        404: Unknown job
    """
    raw_body = await request.body()
    try:
        payload = json.loads(raw_body)
    except ValueError as e:
        # JSONDecodeError and UnicodeDecodeError (non UTF-8 body)
        logger.error("callback.invalid_json", job_id=str(job_id), error=str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid JSON payload: {str(e)}",
        )

    async with await uow_factory() as uow:
        job = await uow.generation_jobs.get_by_id(job_id)

    if job is None:
        logger.warning("callback.unknown_job", job_id=str(job_id))
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Generation not found: {job_id}"
        )

    try:
        callback = normalize_callback(payload)
    except ProviderCallbackError as e:
        logger.warning(
            "callback.unrecognized",
            job_id=str(job_id),
            error=str(e),
            payload_preview=raw_body[:1000].decode("utf-8", errors="replace"),
        )
        return {"status": "ignored", "reason": str(e)}

    log = logger.bind(
        job_id=str(job_id),
        task_id=callback.task_id,
        strategy=callback.strategy,
        raw_status=callback.raw_status,
    )

    if callback.task_id and job.external_task_id and callback.task_id != job.external_task_id:
        log.warning("callback.task_id_mismatch", expected_task_id=job.external_task_id)
        return {"status": "ignored", "reason": "Task id does not match the job"}

    if callback.status == CallbackStatus.UNRECOGNIZED:
        log.warning("callback.unrecognized_status")
        return {"status": "ignored", "reason": f"Unrecognized status: {callback.raw_status}"}

    if callback.status == CallbackStatus.IN_FLIGHT:
        log.info("callback.in_flight")
        return {"status": "acknowledged"}

    if job.is_terminal:
        log.info("callback.duplicate", job_status=job.status.value)
        return {"status": "acknowledged", "job_status": job.status.value}

    outcome = (
        JobOutcome.SUCCESS if callback.status == CallbackStatus.SUCCESS else JobOutcome.FAILURE
    )
    try:
        job = await reconciler.finalize(
            job_id,
            outcome,
            result_urls=callback.result_urls,
            error_message=callback.error_message,
        )
    except JobNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    log.info("callback.processed", job_status=job.status.value)
    return {"status": "processed", "job_status": job.status.value}
