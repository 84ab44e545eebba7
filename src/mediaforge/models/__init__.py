"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from mediaforge.models.api_credential import ApiCredential
from mediaforge.models.generation_job import (
    InvalidStateTransition,
    GenerationJob,
    JobKind,
    JobOutcome,
    JobStatus,
)
from mediaforge.models.model_price import ModelPrice
from mediaforge.models.scheduled_post import MediaGenerationStatus, ScheduledPost
from mediaforge.models.user import User

__all__ = [
    "User",
    "GenerationJob",
    "JobKind",
    "JobStatus",
    "JobOutcome",
    "InvalidStateTransition",
    "ApiCredential",
    "ScheduledPost",
    "MediaGenerationStatus",
    "ModelPrice",
]
