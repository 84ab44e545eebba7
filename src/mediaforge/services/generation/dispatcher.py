"""Generation dispatcher: price, reserve, create, then submit in the background.

Errors found before reservation (unknown model, invalid parameters, no
credential, insufficient credits) are raised to the caller with no side
effects. Once credits are reserved, every failure is routed through the
completion reconciler so the reservation is refunded exactly once.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from uuid import UUID

import structlog

from mediaforge.core.config import Settings
from mediaforge.models.generation_job import GenerationJob, JobKind, JobOutcome
from mediaforge.services.catalog import resolve
from mediaforge.services.exceptions import (
    GenerationServiceError,
    InsufficientCredits,
    UnsupportedModel,
)
from mediaforge.services.generation.queue import DispatchQueue
from mediaforge.services.generation.reconciler import CompletionReconciler
from mediaforge.services.key_rotator import ApiKeyRotator
from mediaforge.services.ledger import CreditLedger
from mediaforge.services.pricing import lookup_cost
from mediaforge.services.providers.base import ProviderAdapter, SubmitRequest
from mediaforge.uow import UnitOfWork

logger = structlog.get_logger()


@dataclass
class DispatchedJob:
    """A newly created pending job and the owner's balance after reservation."""

    job: GenerationJob
    credits_remaining: int


class GenerationDispatcher:
    """Creates generation jobs and submits them to provider adapters."""

    def __init__(
        self,
        uow_factory: Callable[[], Awaitable[UnitOfWork]],
        settings: Settings,
        adapters: dict[str, ProviderAdapter],
        reconciler: CompletionReconciler,
        queue: DispatchQueue | None = None,
    ):
        self.uow_factory = uow_factory
        self.settings = settings
        self.adapters = adapters
        self.reconciler = reconciler
        self.queue = queue

    async def create_and_dispatch(
        self,
        user_id: UUID,
        kind: JobKind,
        model: str,
        prompt: str = "",
        reference_inputs: list[str] | None = None,
        parameters: dict | None = None,
        post_id: UUID | None = None,
        source: str = "api",
    ) -> DispatchedJob:
        """Reserve credits, create a pending job and queue its submission.

        Returns before the provider is contacted.

        Raises:
            UnsupportedModel: Unknown model, or model of another kind
            InvalidParameters: Parameters rejected by the model's validator
            NoCredentialAvailable: Provider has no active credential
            InsufficientCredits: Balance lower than the model's cost
            UserNotFoundError: User does not exist
        """
        reference_inputs = list(reference_inputs or [])
        parameters = dict(parameters or {})

        spec = resolve(model, kind)
        spec.validate(prompt, reference_inputs, parameters)
        if spec.provider not in self.adapters:
            raise UnsupportedModel(model, kind.value)

        async with await self.uow_factory() as uow:
            await ApiKeyRotator(uow).ensure_available(spec.provider)
            cost = await lookup_cost(uow, spec.name, self.settings.default_credit_cost)

            reservation = await CreditLedger(uow).reserve(user_id, cost)
            if not reservation.ok:
                raise InsufficientCredits(required=cost, available=reservation.available)

            job = await uow.generation_jobs.add(
                GenerationJob(
                    user_id=user_id,
                    kind=kind,
                    model=spec.name,
                    prompt=prompt,
                    reference_inputs=reference_inputs,
                    parameters=parameters,
                    credits_reserved=cost,
                    post_id=post_id,
                    source=source,
                )
            )

        logger.info(
            "generation.created",
            job_id=str(job.id),
            user_id=str(user_id),
            kind=kind.value,
            model=spec.name,
            credits_reserved=cost,
        )
        self.enqueue(job.id)
        return DispatchedJob(job=job, credits_remaining=reservation.new_balance or 0)

    def enqueue(self, job_id: UUID) -> None:
        """Hand a pending job to the dispatch workers.

        Without a queue (CLI, some tests) the caller dispatches explicitly.
        """
        if self.queue is not None:
            self.queue.enqueue(job_id)

    async def dispatch(self, job_id: UUID) -> None:
        """Submit a pending job to its provider.

        Claims the job (pending -> processing, attempts + 1); a job in any
        other state is skipped. Submission failures finalize the job as failed.
        """
        async with await self.uow_factory() as uow:
            claimed = await uow.generation_jobs.claim_for_dispatch(job_id)
            job = await uow.generation_jobs.get_by_id(job_id) if claimed else None

        if job is None:
            logger.info("generation.dispatch.skipped", job_id=str(job_id))
            return

        log = logger.bind(job_id=str(job.id), model=job.model, attempt=job.attempts)
        log.info("generation.dispatch.started")
        timeout = self.settings.provider_submit_timeout_seconds

        try:
            spec = resolve(job.model, job.kind)
            adapter = self.adapters.get(spec.provider)
            if adapter is None:
                raise UnsupportedModel(job.model, job.kind.value)

            async with await self.uow_factory() as uow:
                credential = await ApiKeyRotator(uow).next(spec.provider)

            request = SubmitRequest(
                job_id=job.id,
                kind=job.kind,
                model=job.model,
                prompt=job.prompt,
                reference_inputs=list(job.reference_inputs or []),
                parameters=dict(job.parameters or {}),
                callback_url=self.settings.callback_url(job.id),
            )
            result = await asyncio.wait_for(adapter.submit(request, credential), timeout)
        except asyncio.TimeoutError:
            log.warning("generation.dispatch.timeout", timeout_seconds=timeout)
            await self.reconciler.finalize(
                job.id,
                JobOutcome.FAILURE,
                error_message=f"AI service did not respond within {timeout:g} seconds",
            )
            return
        except GenerationServiceError as e:
            log.warning(
                "generation.dispatch.failed",
                error=str(e),
                error_type=type(e).__name__,
                retryable=getattr(e, "retryable", False),
            )
            await self.reconciler.finalize(job.id, JobOutcome.FAILURE, error_message=str(e))
            return
        except Exception as e:
            log.error("generation.dispatch.error", error=str(e), exc_info=True)
            await self.reconciler.finalize(
                job.id, JobOutcome.FAILURE, error_message=f"Dispatch failed: {e}"
            )
            return

        async with await self.uow_factory() as uow:
            await uow.generation_jobs.attach_submission(
                job.id, result.external_task_id, credential.name
            )

        log.info(
            "generation.dispatch.submitted",
            external_task_id=result.external_task_id,
            credential=credential.name,
            immediate=result.is_immediate,
        )

        if result.is_immediate:
            await self.reconciler.finalize(
                job.id, JobOutcome.SUCCESS, result_urls=result.immediate_result_urls
            )
