"""Media generation fan-out for scheduled posts.

One request creates several generation jobs for a post. The sum of their
costs is reserved in one ledger call; jobs that cannot be created are skipped
and their share is refunded before the transaction commits.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError

from mediaforge.core.config import Settings
from mediaforge.models.generation_job import GenerationJob, JobKind
from mediaforge.models.scheduled_post import MediaGenerationStatus
from mediaforge.services.catalog import ModelSpec, resolve
from mediaforge.services.exceptions import (
    InsufficientCredits,
    InvalidParameters,
    PostNotFoundError,
    UnsupportedModel,
)
from mediaforge.services.generation.dispatcher import GenerationDispatcher
from mediaforge.services.key_rotator import ApiKeyRotator
from mediaforge.services.ledger import CreditLedger
from mediaforge.services.pricing import lookup_cost
from mediaforge.uow import UnitOfWork

logger = structlog.get_logger()

SOCIAL_SOURCE = "social_auto"

AUTOMATION_MANUAL = "manual"
AUTOMATION_AI_SUGGESTS = "ai_suggests"
AUTOMATION_SEMI_AUTO = "semi_auto"
AUTOMATION_FULL_AUTO = "full_auto"

DEFAULT_IMAGE_MODEL = "flux-kontext"
DEFAULT_VIDEO_MODEL = "wan-2.5"

NO_JOBS_CREATED_MESSAGE = "Failed to create any media generation jobs"


@dataclass
class MediaJobSpec:
    """One generation job requested for a post."""

    kind: JobKind
    model: str
    prompt: str
    reference_inputs: list[str] = field(default_factory=list)
    parameters: dict = field(default_factory=dict)


@dataclass
class EnqueueResult:
    """Outcome of a fan-out request.

    ``required``/``available`` are set when the reservation was rejected.
    """

    success: bool
    total_credits_used: int = 0
    job_count: int = 0
    error: str | None = None
    job_ids: list[UUID] = field(default_factory=list)
    required: int | None = None
    available: int | None = None


def build_media_specs(
    automation_level: str,
    image_prompt: str | None = None,
    video_prompt: str | None = None,
    image_model: str = DEFAULT_IMAGE_MODEL,
    video_model: str = DEFAULT_VIDEO_MODEL,
    aspect_ratio: str = "16:9",
) -> list[MediaJobSpec]:
    """Translate a post's automation level into media job specs.

    ``semi_auto`` generates the image only; ``full_auto`` generates the image
    and the video. Other levels generate nothing.
    """
    specs: list[MediaJobSpec] = []
    if automation_level not in (AUTOMATION_SEMI_AUTO, AUTOMATION_FULL_AUTO):
        return specs

    if image_prompt:
        specs.append(
            MediaJobSpec(
                kind=JobKind.IMAGE,
                model=image_model,
                prompt=image_prompt,
                parameters={"aspectRatio": aspect_ratio},
            )
        )
    if video_prompt and automation_level == AUTOMATION_FULL_AUTO:
        specs.append(
            MediaJobSpec(
                kind=JobKind.VIDEO,
                model=video_model,
                prompt=video_prompt,
                parameters={"aspectRatio": aspect_ratio},
            )
        )
    return specs


class MediaFanout:
    """Creates and dispatches the generation jobs a scheduled post depends on."""

    def __init__(
        self,
        uow_factory: Callable[[], Awaitable[UnitOfWork]],
        settings: Settings,
        dispatcher: GenerationDispatcher,
    ):
        self.uow_factory = uow_factory
        self.settings = settings
        self.dispatcher = dispatcher

    async def enqueue_media_generations(
        self, post_id: UUID, user_id: UUID, specs: list[MediaJobSpec]
    ) -> EnqueueResult:
        """Reserve, create and dispatch all media jobs for a post.

        Raises:
            PostNotFoundError: If the post does not exist or belongs to someone else
            NoCredentialAvailable: If a required provider has no active credential
        """
        if not specs:
            return EnqueueResult(success=False, error="No media generations requested")

        resolved: list[tuple[MediaJobSpec, ModelSpec]] = []
        try:
            for spec in specs:
                model_spec = resolve(spec.model, spec.kind)
                model_spec.validate(spec.prompt, spec.reference_inputs, spec.parameters)
                resolved.append((spec, model_spec))
        except (UnsupportedModel, InvalidParameters) as e:
            logger.warning("fanout.invalid_spec", post_id=str(post_id), error=str(e))
            return EnqueueResult(success=False, error=str(e))

        async with await self.uow_factory() as uow:
            post = await uow.scheduled_posts.get_for_user(post_id, user_id)
            if post is None:
                raise PostNotFoundError(f"Scheduled post not found: {post_id}")

            rotator = ApiKeyRotator(uow)
            for provider in {model_spec.provider for _, model_spec in resolved}:
                await rotator.ensure_available(provider)

            costs = [
                await lookup_cost(uow, model_spec.name, self.settings.default_credit_cost)
                for _, model_spec in resolved
            ]
            total = sum(costs)

            ledger = CreditLedger(uow)
            reservation = await ledger.reserve(user_id, total)
            if not reservation.ok:
                error = InsufficientCredits(required=total, available=reservation.available)
                await uow.scheduled_posts.set_media_state(
                    post, MediaGenerationStatus.FAILED, error_message=str(error)
                )
                logger.info(
                    "fanout.insufficient_credits",
                    post_id=str(post_id),
                    required=total,
                    available=reservation.available,
                )
                return EnqueueResult(
                    success=False,
                    error=str(error),
                    required=total,
                    available=reservation.available,
                )

            created: list[GenerationJob] = []
            used = 0
            for (spec, model_spec), cost in zip(resolved, costs):
                try:
                    async with uow.session.begin_nested():
                        job = await uow.generation_jobs.add(
                            GenerationJob(
                                user_id=user_id,
                                kind=spec.kind,
                                model=model_spec.name,
                                prompt=spec.prompt,
                                reference_inputs=list(spec.reference_inputs),
                                parameters=dict(spec.parameters),
                                credits_reserved=cost,
                                post_id=post_id,
                                source=SOCIAL_SOURCE,
                            )
                        )
                except SQLAlchemyError as e:
                    logger.warning(
                        "fanout.job_creation_failed",
                        post_id=str(post_id),
                        model=model_spec.name,
                        error=str(e),
                    )
                    continue
                created.append(job)
                used += cost

            if total - used > 0:
                await ledger.refund(user_id, total - used)

            if not created:
                await uow.scheduled_posts.set_media_state(
                    post,
                    MediaGenerationStatus.FAILED,
                    error_message=NO_JOBS_CREATED_MESSAGE,
                )
                return EnqueueResult(success=False, error=NO_JOBS_CREATED_MESSAGE)

            await uow.scheduled_posts.set_media_state(post, MediaGenerationStatus.GENERATING)

        for job in created:
            self.dispatcher.enqueue(job.id)

        logger.info(
            "fanout.enqueued",
            post_id=str(post_id),
            job_count=len(created),
            total_credits_used=used,
            skipped=len(resolved) - len(created),
        )
        return EnqueueResult(
            success=True,
            total_credits_used=used,
            job_count=len(created),
            job_ids=[job.id for job in created],
        )
