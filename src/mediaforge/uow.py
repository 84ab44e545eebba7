"""Transaction boundary for mediaforge.

One UnitOfWork is one database transaction. Every repository it exposes
shares its session, so a reservation and the job row it pays for commit
together or not at all.
"""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mediaforge.repositories.api_credential import ApiCredentialRepository
from mediaforge.repositories.generation_job import GenerationJobRepository
from mediaforge.repositories.model_price import ModelPriceRepository
from mediaforge.repositories.scheduled_post import ScheduledPostRepository
from mediaforge.repositories.user import UserRepository

logger = structlog.get_logger()


class UnitOfWork:
    """Async context manager owning one session and its repositories.

    Commits when the block exits normally, rolls back when it raises.

    Example:
        async with await uow_factory() as uow:
            new_balance = await uow.users.deduct_credits_if_sufficient(user_id, 100)
            await uow.generation_jobs.add(job)
    """

    def __init__(self, session: AsyncSession):
        self.session = session

        self.users = UserRepository(session)
        self.generation_jobs = GenerationJobRepository(session)
        self.api_credentials = ApiCredentialRepository(session)
        self.scheduled_posts = ScheduledPostRepository(session)
        self.model_prices = ModelPriceRepository(session)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Commit or roll back, then close the session.

        Exceptions from the block are never suppressed.
        """
        try:
            if exc_type is None:
                await self.session.commit()
                logger.debug("transaction.committed")
            else:
                await self.session.rollback()
                logger.info("transaction.rolled_back", exc_type=exc_type.__name__)
        finally:
            await self.session.close()

        return False


def create_uow_factory(session_factory: async_sessionmaker[AsyncSession]):
    """Return an async callable producing a UnitOfWork on a fresh session.

    Services receive this factory instead of a session so each operation
    controls its own transaction:

        uow_factory = create_uow_factory(setup_db_session(db_url, pool_size=50))
        async with await uow_factory() as uow:
            await uow.users.add(user)
    """

    async def _create_uow():
        return UnitOfWork(session_factory())

    return _create_uow
