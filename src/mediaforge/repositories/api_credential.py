"""ApiCredential repository for mediaforge.

Provides data access methods for provider credentials and their usage
accounting.
"""

from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mediaforge.core.timezone import utcnow
from mediaforge.models.api_credential import ApiCredential


class ApiCredentialRepository:
    """Repository for ApiCredential entities.

    Selection order for a provider is lowest ``usage_count`` first, ties broken
    by ``last_used_at`` with never-used credentials first.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def list_all(self, provider: str | None = None) -> list[ApiCredential]:
        query = select(ApiCredential).order_by(ApiCredential.provider, ApiCredential.name)  # type: ignore[arg-type]
        if provider is not None:
            query = query.where(ApiCredential.provider == provider)  # type: ignore[arg-type]
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_by_id(self, credential_id: UUID) -> ApiCredential | None:
        result = await self.session.execute(
            select(ApiCredential).where(ApiCredential.id == credential_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_by_name(self, name: str) -> ApiCredential | None:
        result = await self.session.execute(
            select(ApiCredential).where(ApiCredential.name == name)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def add_if_absent(self, credential: ApiCredential) -> tuple[ApiCredential, bool]:
        """Insert a credential unless one with the same name exists.

        The insert runs in a savepoint so a concurrent registration of the same
        name leaves the surrounding transaction usable.

        Returns:
            Tuple of (stored credential, True if this call created it)
        """
        existing = await self.get_by_name(credential.name)
        if existing is not None:
            return existing, False

        try:
            async with self.session.begin_nested():
                self.session.add(credential)
                await self.session.flush()
        except IntegrityError:
            existing = await self.get_by_name(credential.name)
            if existing is None:
                raise
            return existing, False
        return credential, True

    async def count_active(self, provider: str) -> int:
        result = await self.session.execute(
            select(func.count(ApiCredential.id))  # type: ignore[arg-type]
            .where(ApiCredential.provider == provider)  # type: ignore[arg-type]
            .where(ApiCredential.is_active.is_(True))  # type: ignore[attr-defined]
        )
        return result.scalar() or 0

    async def get_least_used_for_update(
        self, provider: str, skip_locked: bool = True
    ) -> ApiCredential | None:
        """Lock and return the next credential to use for ``provider``.

        Query:
            SELECT * FROM api_credentials
            WHERE provider = :provider AND is_active
            ORDER BY usage_count ASC, last_used_at ASC NULLS FIRST
            LIMIT 1
            FOR UPDATE SKIP LOCKED

        Rows locked by a concurrent selector are skipped, so simultaneous
        callers spread across credentials instead of queueing on one. With
        ``skip_locked=False`` the caller waits for the lock instead.
        """
        result = await self.session.execute(
            select(ApiCredential)
            .where(ApiCredential.provider == provider)  # type: ignore[arg-type]
            .where(ApiCredential.is_active.is_(True))  # type: ignore[attr-defined]
            .order_by(
                ApiCredential.usage_count.asc(),  # type: ignore[attr-defined]
                ApiCredential.last_used_at.asc().nulls_first(),  # type: ignore[union-attr]
                ApiCredential.name.asc(),  # type: ignore[attr-defined]
            )
            .limit(1)
            .with_for_update(skip_locked=skip_locked)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def increment_usage(self, credential_id: UUID, seen_usage_count: int) -> bool:
        """Count one use of a credential if nobody else counted it first.

        Query:
            UPDATE api_credentials
            SET usage_count = usage_count + 1, last_used_at = now()
            WHERE id = :id AND usage_count = :seen_usage_count

        Returns:
            True if the increment applied, False if the counter moved since
            the credential was read
        """
        result = await self.session.execute(
            update(ApiCredential)
            .where(ApiCredential.id == credential_id)  # type: ignore[arg-type]
            .where(ApiCredential.usage_count == seen_usage_count)  # type: ignore[arg-type]
            .values(usage_count=ApiCredential.usage_count + 1, last_used_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def set_active(self, credential: ApiCredential, active: bool) -> ApiCredential:
        credential.is_active = active
        self.session.add(credential)
        await self.session.flush()
        return credential
