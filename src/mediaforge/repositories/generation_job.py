"""GenerationJob repository for mediaforge.

Provides data access methods for GenerationJob entities. Status changes that
race between tasks (dispatch claim, terminal claim) are conditional UPDATE
statements so the database decides the winner.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mediaforge.core.timezone import utcnow
from mediaforge.models.generation_job import (
    ACTIVE_STATUSES,
    GenerationJob,
    JobStatus,
)


class GenerationJobRepository:
    """Repository for GenerationJob entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, job: GenerationJob) -> GenerationJob:
        """Persist new generation job to database.

        Args:
            job: GenerationJob entity to persist

        Returns:
            Persisted job with generated ID
        """
        self.session.add(job)
        await self.session.flush()
        return job

    async def get_by_id(self, job_id: UUID) -> GenerationJob | None:
        """Retrieve generation job by UUID.

        Args:
            job_id: Job's unique identifier

        Returns:
            GenerationJob if found, None otherwise
        """
        result = await self.session.execute(
            select(GenerationJob).where(GenerationJob.id == job_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_for_update(self, job_id: UUID) -> GenerationJob | None:
        """Retrieve a job and lock its row for the rest of the transaction.

        Concurrent finalizers of the same job queue behind this lock
        (SELECT ... FOR UPDATE); the loaded row is always re-read so a waiter
        sees the status committed by the winner.
        """
        result = await self.session.execute(
            select(GenerationJob)
            .where(GenerationJob.id == job_id)  # type: ignore[arg-type]
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_for_user(self, job_id: UUID, user_id: UUID) -> GenerationJob | None:
        """Retrieve a job only if it belongs to ``user_id``."""
        result = await self.session.execute(
            select(GenerationJob).where(
                GenerationJob.id == job_id,  # type: ignore[arg-type]
                GenerationJob.user_id == user_id,  # type: ignore[arg-type]
            )
        )
        return result.scalar_one_or_none()

    async def list_for_user(
        self, user_id: UUID, offset: int = 0, limit: int = 20
    ) -> tuple[list[GenerationJob], int]:
        """Retrieve a user's jobs, newest first, with the total count.

        Returns:
            Tuple of (jobs for current page, total number of jobs)
        """
        count_result = await self.session.execute(
            select(func.count(GenerationJob.id)).where(GenerationJob.user_id == user_id)  # type: ignore[arg-type]
        )
        total = count_result.scalar() or 0

        result = await self.session.execute(
            select(GenerationJob)
            .where(GenerationJob.user_id == user_id)  # type: ignore[arg-type]
            .order_by(GenerationJob.created_at.desc())  # type: ignore[attr-defined]
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def list_by_post(self, post_id: UUID) -> list[GenerationJob]:
        """Retrieve all jobs a scheduled post depends on, oldest first."""
        result = await self.session.execute(
            select(GenerationJob)
            .where(GenerationJob.post_id == post_id)  # type: ignore[arg-type]
            .order_by(GenerationJob.created_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def claim_for_dispatch(self, job_id: UUID) -> bool:
        """Move a job from pending to processing and count the attempt.

        Query:
            UPDATE generation_jobs
            SET status = 'processing', attempts = attempts + 1
            WHERE id = :job_id AND status = 'pending'

        Returns:
            True if this caller claimed the job, False if it was not pending
        """
        result = await self.session.execute(
            update(GenerationJob)
            .where(GenerationJob.id == job_id)  # type: ignore[arg-type]
            .where(GenerationJob.status == JobStatus.PENDING)  # type: ignore[arg-type]
            .values(
                status=JobStatus.PROCESSING,
                attempts=GenerationJob.attempts + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def attach_submission(
        self, job_id: UUID, external_task_id: str | None, credential_name: str | None
    ) -> None:
        """Record the provider task id and the credential used for a submission."""
        await self.session.execute(
            update(GenerationJob)
            .where(GenerationJob.id == job_id)  # type: ignore[arg-type]
            .values(
                external_task_id=external_task_id,
                api_credential_name=credential_name,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

    async def claim_terminal(self, job: GenerationJob) -> bool:
        """Write the terminal state held on ``job`` if the row is still active.

        ``job`` must already carry its terminal status, result/error and
        completion time (set via ``mark_completed``/``mark_failed``). The
        update only applies while the stored status is pending or processing,
        so the first terminal write wins.

        Returns:
            True if this caller wrote the terminal state, False otherwise
        """
        result = await self.session.execute(
            update(GenerationJob)
            .where(GenerationJob.id == job.id)  # type: ignore[arg-type]
            .where(GenerationJob.status.in_(ACTIVE_STATUSES))  # type: ignore[attr-defined]
            .values(
                status=job.status,
                result_url=job.result_url,
                result_urls=job.result_urls,
                error_message=job.error_message,
                completed_at=job.completed_at,
                updated_at=job.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def get_stale_processing(
        self, older_than: datetime, limit: int = 25
    ) -> list[GenerationJob]:
        """Retrieve processing jobs not updated since ``older_than``.

        Only jobs with a provider task id can be polled. Oldest first.
        """
        result = await self.session.execute(
            select(GenerationJob)
            .where(GenerationJob.status == JobStatus.PROCESSING)  # type: ignore[arg-type]
            .where(GenerationJob.external_task_id.is_not(None))  # type: ignore[union-attr]
            .where(GenerationJob.updated_at < older_than)  # type: ignore[arg-type]
            .order_by(GenerationJob.updated_at.asc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        return list(result.scalars().all())

    async def touch(self, job_id: UUID) -> None:
        """Bump updated_at so the poller waits a full interval before retrying."""
        await self.session.execute(
            update(GenerationJob)
            .where(GenerationJob.id == job_id)  # type: ignore[arg-type]
            .values(updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

    async def get_pending_ids(self, limit: int = 100) -> list[UUID]:
        """Retrieve ids of jobs still pending dispatch, oldest first."""
        result = await self.session.execute(
            select(GenerationJob.id)
            .where(GenerationJob.status == JobStatus.PENDING)  # type: ignore[arg-type]
            .order_by(GenerationJob.created_at.asc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_unsubmitted_processing_ids(
        self, older_than: datetime, limit: int = 100
    ) -> list[UUID]:
        """Retrieve ids of processing jobs that never recorded a provider task id.

        These were claimed for dispatch but the process stopped before the
        submission was attached.
        """
        result = await self.session.execute(
            select(GenerationJob.id)
            .where(GenerationJob.status == JobStatus.PROCESSING)  # type: ignore[arg-type]
            .where(GenerationJob.external_task_id.is_(None))  # type: ignore[union-attr]
            .where(GenerationJob.updated_at < older_than)  # type: ignore[arg-type]
            .order_by(GenerationJob.updated_at.asc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        return list(result.scalars().all())
