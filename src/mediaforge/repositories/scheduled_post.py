"""ScheduledPost repository for mediaforge.

Provides data access methods for ScheduledPost entities.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mediaforge.core.timezone import utcnow
from mediaforge.models.scheduled_post import MediaGenerationStatus, ScheduledPost


class ScheduledPostRepository:
    """Repository for ScheduledPost entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, post: ScheduledPost) -> ScheduledPost:
        """Persist new scheduled post to database.

        Args:
            post: ScheduledPost entity to persist

        Returns:
            Persisted post with generated ID
        """
        self.session.add(post)
        await self.session.flush()
        return post

    async def get_by_id(self, post_id: UUID) -> ScheduledPost | None:
        result = await self.session.execute(
            select(ScheduledPost).where(ScheduledPost.id == post_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_for_user(self, post_id: UUID, user_id: UUID) -> ScheduledPost | None:
        """Retrieve a post only if it belongs to ``user_id``."""
        result = await self.session.execute(
            select(ScheduledPost).where(
                ScheduledPost.id == post_id,  # type: ignore[arg-type]
                ScheduledPost.user_id == user_id,  # type: ignore[arg-type]
            )
        )
        return result.scalar_one_or_none()

    async def get_for_update(self, post_id: UUID) -> ScheduledPost | None:
        """Retrieve a post with a row lock, re-reading any cached state."""
        result = await self.session.execute(
            select(ScheduledPost)
            .where(ScheduledPost.id == post_id)  # type: ignore[arg-type]
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def set_media_state(
        self,
        post: ScheduledPost,
        status: MediaGenerationStatus,
        media_urls: list[str] | None = None,
        error_message: str | None = None,
    ) -> ScheduledPost:
        """Record the aggregate media status of a post.

        Args:
            post: Post to update
            status: New aggregate status
            media_urls: Replacement media list, unchanged if None
            error_message: Last failure message (truncated to 1000 characters)
        """
        post.media_generation_status = status
        if media_urls is not None:
            post.media_urls = list(media_urls)
        post.error_message = error_message[:1000] if error_message else None
        post.updated_at = utcnow()
        self.session.add(post)
        await self.session.flush()
        return post
