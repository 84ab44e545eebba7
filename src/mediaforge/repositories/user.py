"""User repository for mediaforge.

Provides data access methods for User entities, including the single-statement
conditional balance updates the credit ledger is built on.
"""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mediaforge.core.timezone import utcnow
from mediaforge.models.user import User


class UserRepository:
    """Repository for User entities.

    Balance changes never read-modify-write in Python: both
    ``deduct_credits_if_sufficient`` and ``add_credits`` are one UPDATE
    statement each, so concurrent callers cannot lose updates.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_by_id(self, user_id: UUID) -> User | None:
        """Retrieve user by UUID.

        Args:
            user_id: User's unique identifier

        Returns:
            User if found, None otherwise
        """
        result = await self.session.execute(select(User).where(User.id == user_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def add(self, user: User) -> User:
        """Persist new user to database.

        Args:
            user: User entity to persist

        Returns:
            Persisted user with generated ID
        """
        self.session.add(user)
        await self.session.flush()
        return user

    async def get_balance(self, user_id: UUID) -> int | None:
        """Read the current balance without loading the entity.

        Returns:
            Balance if the user exists, None otherwise
        """
        result = await self.session.execute(select(User.credits).where(User.id == user_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def deduct_credits_if_sufficient(self, user_id: UUID, amount: int) -> int | None:
        """Atomically decrement the balance only if it covers ``amount``.

        Query:
            UPDATE users
            SET credits = credits - :amount
            WHERE id = :user_id AND credits >= :amount
            RETURNING credits

        Args:
            user_id: User to debit
            amount: Non-negative number of credits

        Returns:
            New balance if the debit applied, None if the balance was
            insufficient or the user does not exist
        """
        result = await self.session.execute(
            update(User)
            .where(User.id == user_id)  # type: ignore[arg-type]
            .where(User.credits >= amount)  # type: ignore[arg-type]
            .values(credits=User.credits - amount, updated_at=utcnow())
            .returning(User.credits)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def add_credits(self, user_id: UUID, amount: int) -> int | None:
        """Atomically increment the balance (no upper bound).

        Query:
            UPDATE users SET credits = credits + :amount WHERE id = :user_id RETURNING credits

        Returns:
            New balance, or None if the user does not exist
        """
        result = await self.session.execute(
            update(User)
            .where(User.id == user_id)  # type: ignore[arg-type]
            .values(credits=User.credits + amount, updated_at=utcnow())
            .returning(User.credits)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()
