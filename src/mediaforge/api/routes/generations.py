"""Generation job API endpoints.

This module implements:
- POST /generate/{kind} - Reserve credits and create a generation job
- GET /generations/{job_id} - Poll one of the caller's jobs
- GET /generations - Paginated list of the caller's jobs
- GET /models - Supported models and their credit cost

Job creation returns 202 as soon as the job is persisted; the provider is
contacted by the dispatch workers.
"""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from mediaforge.api.dependencies import (
    get_current_user_id,
    get_dispatcher,
    get_rate_limiter,
    get_settings,
    get_uow_factory,
)
from mediaforge.core.config import Settings
from mediaforge.models.generation_job import GenerationJob, JobKind
from mediaforge.services.catalog import MAX_PROMPT_LENGTH, MODEL_CATALOG, supported_models
from mediaforge.services.exceptions import (
    InsufficientCredits,
    InvalidParameters,
    NoCredentialAvailable,
    UnsupportedModel,
    UserNotFoundError,
)
from mediaforge.services.generation.dispatcher import GenerationDispatcher
from mediaforge.services.pricing import lookup_cost
from mediaforge.services.ratelimit import RateLimiter

logger = structlog.get_logger()
router = APIRouter(tags=["generations"])


# Request/Response Models


class GenerateRequest(BaseModel):
    """Request model for creating a generation job."""

    model: str = Field(..., description="Model identifier from GET /models", min_length=1)
    prompt: str = Field(default="", max_length=MAX_PROMPT_LENGTH)
    reference_inputs: list[str] = Field(
        default_factory=list,
        description="Reference image/audio/video URLs (model dependent)",
    )
    parameters: dict = Field(
        default_factory=dict,
        description="Model-specific options (aspectRatio, duration, ...)",
    )


class GenerateResponse(BaseModel):
    id: UUID
    status: str
    credits_cost: int
    credits_remaining: int


class InsufficientCreditsResponse(BaseModel):
    detail: str
    required: int
    available: int


class GenerationDTO(BaseModel):
    """Data Transfer Object for generation jobs in API responses."""

    id: UUID
    kind: str
    model: str
    status: str
    result_url: str | None = Field(
        default=None,
        description="First result URL (null until completed)",
    )
    result_urls: list[str] = Field(default_factory=list)
    credits_cost: int = Field(..., description="Credits reserved for this job")
    created_at: datetime
    completed_at: datetime | None = None
    error_message: str | None = None

    @classmethod
    def from_job(cls, job: GenerationJob) -> "GenerationDTO":
        return cls(
            id=job.id,
            kind=job.kind.value,
            model=job.model,
            status=job.status.value,
            result_url=job.result_url,
            result_urls=list(job.result_urls or []),
            credits_cost=job.credits_reserved,
            created_at=job.created_at,
            completed_at=job.completed_at,
            error_message=job.error_message,
        )


class GenerationsResponse(BaseModel):
    """Response model for paginated generation list."""

    generations: list[GenerationDTO]
    total: int = Field(..., description="Total number of the caller's jobs")
    offset: int
    limit: int


class ModelDTO(BaseModel):
    model: str
    kind: str
    provider: str
    credits_cost: int
    description: str


def insufficient_credits_response(e: InsufficientCredits) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        content={"detail": str(e), "required": e.required, "available": e.available},
    )


# API Endpoints


@router.post(
    "/generate/{kind}",
    response_model=GenerateResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={402: {"model": InsufficientCreditsResponse}},
)
async def create_generation(
    kind: JobKind,
    request: GenerateRequest,
    response: Response,
    user_id: UUID = Depends(get_current_user_id),
    dispatcher: GenerationDispatcher = Depends(get_dispatcher),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Reserve credits and create a generation job.

    HTTP Status Codes:
        202: Job created and queued for submission
        400: Unsupported model or invalid parameters
        402: Insufficient credits ({required, available})
        404: Unknown user
        429: Generation rate limit exceeded
        503: No provider credential configured for the model
    """
    decision = rate_limiter.check(f"generate:{user_id}")
    if not decision.allowed:
        logger.info("generation.rate_limited", user_id=str(user_id))
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many generation requests. Please try again later.",
            headers={"Retry-After": str(decision.retry_after_seconds)},
        )

    try:
        dispatched = await dispatcher.create_and_dispatch(
            user_id=user_id,
            kind=kind,
            model=request.model,
            prompt=request.prompt,
            reference_inputs=request.reference_inputs,
            parameters=request.parameters,
        )
    except InsufficientCredits as e:
        logger.info(
            "generation.insufficient_credits",
            user_id=str(user_id),
            required=e.required,
            available=e.available,
        )
        return insufficient_credits_response(e)
    except (UnsupportedModel, InvalidParameters) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except NoCredentialAvailable as e:
        logger.error("generation.no_credential", provider=e.provider)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
    job = dispatched.job
    return GenerateResponse(
        id=job.id,
        status=job.status.value,
        credits_cost=job.credits_reserved,
        credits_remaining=dispatched.credits_remaining,
    )


@router.get("/generations/{job_id}", response_model=GenerationDTO)
async def get_generation(
    job_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    uow_factory=Depends(get_uow_factory),
) -> GenerationDTO:
    """Get one of the caller's generation jobs.

    Jobs owned by someone else are reported as missing.
    """
    async with await uow_factory() as uow:
        job = await uow.generation_jobs.get_for_user(job_id, user_id)

    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Generation not found: {job_id}"
        )
    return GenerationDTO.from_job(job)


@router.get("/generations", response_model=GenerationsResponse)
async def list_generations(
    offset: int = Query(default=0, ge=0, description="Number of jobs to skip"),
    limit: int = Query(default=20, ge=1, le=100, description="Maximum jobs to return"),
    user_id: UUID = Depends(get_current_user_id),
    uow_factory=Depends(get_uow_factory),
) -> GenerationsResponse:
    """List the caller's generation jobs, newest first."""
    async with await uow_factory() as uow:
        jobs, total = await uow.generation_jobs.list_for_user(user_id, offset=offset, limit=limit)

    return GenerationsResponse(
        generations=[GenerationDTO.from_job(job) for job in jobs],
        total=total,
        offset=offset,
        limit=limit,
    )


@router.get("/models", response_model=list[ModelDTO])
async def list_models(
    kind: JobKind | None = Query(default=None),
    uow_factory=Depends(get_uow_factory),
    settings: Settings = Depends(get_settings),
) -> list[ModelDTO]:
    """List supported models with their current credit cost."""
    models = []
    async with await uow_factory() as uow:
        for name in supported_models(kind):
            spec = MODEL_CATALOG[name]
            models.append(
                ModelDTO(
                    model=spec.name,
                    kind=spec.kind.value,
                    provider=spec.provider,
                    credits_cost=await lookup_cost(uow, spec.name, settings.default_credit_cost),
                    description=spec.description,
                )
            )
    return models
