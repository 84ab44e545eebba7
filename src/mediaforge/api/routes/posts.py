"""Scheduled post API endpoints.

This module implements:
- POST /posts - Create a scheduled post
- GET /posts/{post_id} - Read a post with its media generation state
- POST /posts/{post_id}/media - Generate the post's media (fan-out)
"""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, model_validator

from mediaforge.api.dependencies import get_current_user_id, get_fanout, get_uow_factory
from mediaforge.models.generation_job import JobKind
from mediaforge.models.scheduled_post import ScheduledPost
from mediaforge.services.exceptions import (
    NoCredentialAvailable,
    PostNotFoundError,
    UserNotFoundError,
)
from mediaforge.services.generation.fanout import (
    DEFAULT_IMAGE_MODEL,
    DEFAULT_VIDEO_MODEL,
    NO_JOBS_CREATED_MESSAGE,
    MediaFanout,
    MediaJobSpec,
    build_media_specs,
)

logger = structlog.get_logger()
router = APIRouter(prefix="/posts", tags=["posts"])


# Request/Response Models


class CreatePostRequest(BaseModel):
    caption: str = Field(default="", max_length=10000)
    platforms: list[str] = Field(default_factory=list)
    scheduled_for: datetime | None = None


class PostJobDTO(BaseModel):
    id: UUID
    kind: str
    model: str
    status: str
    error_message: str | None = None


class PostDTO(BaseModel):
    """Data Transfer Object for scheduled posts in API responses."""

    id: UUID
    caption: str
    platforms: list[str]
    scheduled_for: datetime | None = None
    media_generation_status: str | None = Field(
        default=None,
        description="generating, completed, partial or failed (null until requested)",
    )
    media_urls: list[str] = Field(default_factory=list)
    error_message: str | None = None
    jobs: list[PostJobDTO] = Field(default_factory=list)
    created_at: datetime


class MediaJobRequest(BaseModel):
    kind: JobKind
    model: str
    prompt: str = ""
    reference_inputs: list[str] = Field(default_factory=list)
    parameters: dict = Field(default_factory=dict)


class GenerateMediaRequest(BaseModel):
    """Request model for post media generation.

    Either list the jobs explicitly or give an automation level with prompts.
    """

    jobs: list[MediaJobRequest] = Field(default_factory=list)
    automation_level: str | None = Field(
        default=None,
        description="semi_auto (image) or full_auto (image + video)",
    )
    image_prompt: str | None = None
    video_prompt: str | None = None
    image_model: str = DEFAULT_IMAGE_MODEL
    video_model: str = DEFAULT_VIDEO_MODEL
    aspect_ratio: str = "16:9"

    @model_validator(mode="after")
    def validate_source(self) -> "GenerateMediaRequest":
        if not self.jobs and not self.automation_level:
            raise ValueError("Provide either jobs or automation_level")
        return self

    def to_specs(self) -> list[MediaJobSpec]:
        if self.jobs:
            return [
                MediaJobSpec(
                    kind=job.kind,
                    model=job.model,
                    prompt=job.prompt,
                    reference_inputs=job.reference_inputs,
                    parameters=job.parameters,
                )
                for job in self.jobs
            ]
        return build_media_specs(
            self.automation_level or "",
            image_prompt=self.image_prompt,
            video_prompt=self.video_prompt,
            image_model=self.image_model,
            video_model=self.video_model,
            aspect_ratio=self.aspect_ratio,
        )


class GenerateMediaResponse(BaseModel):
    success: bool
    total_credits_used: int
    job_count: int
    job_ids: list[UUID] = Field(default_factory=list)


def _post_dto(post: ScheduledPost, jobs) -> PostDTO:
    return PostDTO(
        id=post.id,
        caption=post.caption,
        platforms=list(post.platforms or []),
        scheduled_for=post.scheduled_for,
        media_generation_status=(
            post.media_generation_status.value if post.media_generation_status else None
        ),
        media_urls=list(post.media_urls or []),
        error_message=post.error_message,
        jobs=[
            PostJobDTO(
                id=job.id,
                kind=job.kind.value,
                model=job.model,
                status=job.status.value,
                error_message=job.error_message,
            )
            for job in jobs
        ],
        created_at=post.created_at,
    )


# API Endpoints


@router.post("", response_model=PostDTO, status_code=status.HTTP_201_CREATED)
async def create_post(
    request: CreatePostRequest,
    user_id: UUID = Depends(get_current_user_id),
    uow_factory=Depends(get_uow_factory),
) -> PostDTO:
    async with await uow_factory() as uow:
        if await uow.users.get_by_id(user_id) is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail=f"User not found: {user_id}"
            )
        post = await uow.scheduled_posts.add(
            ScheduledPost(
                user_id=user_id,
                caption=request.caption,
                platforms=request.platforms,
                scheduled_for=request.scheduled_for,
            )
        )

    logger.info("post.created", post_id=str(post.id), user_id=str(user_id))
    return _post_dto(post, [])


@router.get("/{post_id}", response_model=PostDTO)
async def get_post(
    post_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    uow_factory=Depends(get_uow_factory),
) -> PostDTO:
    async with await uow_factory() as uow:
        post = await uow.scheduled_posts.get_for_user(post_id, user_id)
        if post is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail=f"Post not found: {post_id}"
            )
        jobs = await uow.generation_jobs.list_by_post(post_id)

    return _post_dto(post, jobs)


@router.post(
    "/{post_id}/media",
    response_model=GenerateMediaResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def generate_post_media(
    post_id: UUID,
    request: GenerateMediaRequest,
    user_id: UUID = Depends(get_current_user_id),
    fanout: MediaFanout = Depends(get_fanout),
):
    """Reserve credits for and queue all media jobs of a post.

    HTTP Status Codes:
        202: Jobs created and queued
        400: Nothing to generate, unsupported model or invalid parameters
        402: Insufficient credits ({required, available}); the post is marked failed
        404: Unknown post or user
        503: No provider credential configured
    """
    specs = request.to_specs()
    try:
        result = await fanout.enqueue_media_generations(post_id, user_id, specs)
    except (PostNotFoundError, UserNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except NoCredentialAvailable as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    if result.required is not None:
        return JSONResponse(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            content={
                "detail": result.error,
                "required": result.required,
                "available": result.available,
            },
        )
    if result.error == NO_JOBS_CREATED_MESSAGE:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=result.error
        )
    if not result.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)

    return GenerateMediaResponse(
        success=True,
        total_credits_used=result.total_credits_used,
        job_count=result.job_count,
        job_ids=result.job_ids,
    )
