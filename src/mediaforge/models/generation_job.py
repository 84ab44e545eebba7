"""GenerationJob entity - one unit of requested media generation work."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, Index
from sqlmodel import Field, SQLModel

from mediaforge.core.timezone import utcnow


class JobKind(str, Enum):
    """Kind of media a job produces."""

    VIDEO = "video"
    IMAGE = "image"
    MUSIC = "music"
    AUDIO = "audio"
    SPEECH = "speech"
    SOUND_EFFECTS = "sound_effects"


class JobStatus(str, Enum):
    """Generation job lifecycle status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)
ACTIVE_STATUSES = (JobStatus.PENDING, JobStatus.PROCESSING)


class JobOutcome(str, Enum):
    """Outcome reported to the completion reconciler."""

    SUCCESS = "success"
    FAILURE = "failure"


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid job state transition."""

    pass


class GenerationJob(SQLModel, table=True):
    """GenerationJob tracks a provider submission from reservation to terminal state.

    ``credits_reserved`` is fixed at creation and is the exact amount refunded
    if the job fails. Terminal states (completed, failed) are final.
    """

    __tablename__ = "generation_jobs"  # type: ignore[assignment]
    __table_args__ = (Index("ix_generation_jobs_status_updated_at", "status", "updated_at"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    kind: JobKind = Field(index=True)
    model: str = Field(max_length=100)
    prompt: str = Field(default="")
    reference_inputs: list = Field(default_factory=list, sa_column=Column(JSON))
    parameters: dict = Field(default_factory=dict, sa_column=Column(JSON))
    status: JobStatus = Field(default=JobStatus.PENDING, index=True)
    credits_reserved: int = Field(ge=0)
    external_task_id: Optional[str] = Field(default=None, max_length=255, index=True)
    result_url: Optional[str] = Field(default=None)
    result_urls: Optional[list] = Field(default=None, sa_column=Column(JSON))
    error_message: Optional[str] = Field(default=None, max_length=1000)
    attempts: int = Field(default=0, ge=0)
    api_credential_name: Optional[str] = Field(default=None, max_length=100)
    post_id: Optional[UUID] = Field(default=None, foreign_key="scheduled_posts.id", index=True)
    source: str = Field(default="api", max_length=50)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = Field(default=None)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def succeeded(self) -> bool:
        return self.status == JobStatus.COMPLETED

    def mark_processing(self) -> None:
        """Transition from pending to processing and count the attempt.

        Raises:
            InvalidStateTransition: If current status is not pending
        """
        if self.status != JobStatus.PENDING:
            raise InvalidStateTransition(
                f"Cannot mark processing from {self.status.value}. Job must be in pending state."
            )
        self.status = JobStatus.PROCESSING
        self.attempts += 1
        self.updated_at = utcnow()

    def mark_completed(self, result_urls: list[str]) -> None:
        """Transition from a non-terminal state to completed.

        Args:
            result_urls: One or more result locators; the first becomes result_url

        Raises:
            InvalidStateTransition: If the job is already terminal
            ValueError: If no result URL is given
        """
        if self.is_terminal:
            raise InvalidStateTransition(
                f"Cannot mark completed from terminal state {self.status.value}."
            )
        if not result_urls:
            raise ValueError("A completed job requires at least one result URL")
        self.result_url = result_urls[0]
        self.result_urls = list(result_urls)
        self.error_message = None
        self.status = JobStatus.COMPLETED
        self.completed_at = self.updated_at = utcnow()

    def mark_failed(self, error_message: str) -> None:
        """Transition from a non-terminal state to failed.

        Args:
            error_message: Human-readable failure cause (truncated to 1000 characters)

        Raises:
            InvalidStateTransition: If the job is already terminal
        """
        if self.is_terminal:
            raise InvalidStateTransition(
                f"Cannot mark failed from terminal state {self.status.value}."
            )
        self.error_message = (error_message or "Generation failed")[:1000]
        self.status = JobStatus.FAILED
        self.completed_at = self.updated_at = utcnow()
