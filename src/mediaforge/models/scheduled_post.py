"""ScheduledPost entity - social post whose media is produced by generation jobs."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from mediaforge.core.timezone import utcnow


class MediaGenerationStatus(str, Enum):
    """Aggregate status of all generation jobs attached to a post."""

    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"


class ScheduledPost(SQLModel, table=True):
    """ScheduledPost depends on zero or more GenerationJobs for its media.

    ``media_generation_status`` is derived from the jobs referencing the post
    and is None until media generation is requested.
    """

    __tablename__ = "scheduled_posts"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    caption: str = Field(default="")
    platforms: list = Field(default_factory=list, sa_column=Column(JSON))
    scheduled_for: Optional[datetime] = Field(default=None)
    media_generation_status: Optional[MediaGenerationStatus] = Field(default=None, index=True)
    media_urls: list = Field(default_factory=list, sa_column=Column(JSON))
    error_message: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
