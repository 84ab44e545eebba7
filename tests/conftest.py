"""pytest fixtures for mediaforge tests.

Provides:
- db_url: isolated SQLite file per test, or a session-scoped PostgreSQL
  testcontainer (with migrations applied) when TEST_POSTGRES=1
- session_factory / session / uow_factory: database access for a test
- settings: test Settings instance
- make_user / add_credential: data builders
- FakeAdapter: provider adapter double recording submissions
"""

import os

os.environ.setdefault("APP_ENV", "test")
os.environ["TZ"] = "UTC"

import asyncio  # noqa: E402
import subprocess  # noqa: E402
from typing import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import text  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from mediaforge.core.config import Settings  # noqa: E402
from mediaforge.core.database import create_all_tables, setup_db_session  # noqa: E402
from mediaforge.models.api_credential import ApiCredential  # noqa: E402
from mediaforge.models.user import User  # noqa: E402
from mediaforge.services.callbacks import NormalizedCallback  # noqa: E402
from mediaforge.services.providers.base import SubmitRequest, SubmitResult  # noqa: E402
from mediaforge.uow import create_uow_factory  # noqa: E402

USE_POSTGRES = os.environ.get("TEST_POSTGRES") == "1"

TABLES = ("generation_jobs", "scheduled_posts", "api_credentials", "model_prices", "users")


@pytest.fixture(scope="session")
def postgres_container():
    """Provide session-scoped PostgreSQL container with migrations applied.

    Migrations run in a subprocess to avoid asyncio event loop conflicts.
    """
    from testcontainers.postgres import PostgresContainer

    with PostgresContainer(
        image="postgres:17",
        username="test",
        password="test",
        dbname="test_mediaforge",
    ).with_bind_ports(5432, None) as container:
        db_url = container.get_connection_url(driver="psycopg")

        env = os.environ.copy()
        env["DATABASE_URL"] = db_url
        subprocess.run(
            ["alembic", "upgrade", "head"],
            check=True,
            capture_output=True,
            text=True,
            env=env,
        )

        yield container


@pytest.fixture
def db_url(request, tmp_path) -> str:
    if USE_POSTGRES:
        container = request.getfixturevalue("postgres_container")
        return container.get_connection_url(driver="psycopg")
    return f"sqlite+aiosqlite:///{tmp_path / 'mediaforge.db'}"


@pytest_asyncio.fixture
async def session_factory(db_url):
    """Session factory on a fresh schema; rows are removed after the test."""
    factory = setup_db_session(db_url, pool_size=5)
    if not USE_POSTGRES:
        await create_all_tables(factory)

    yield factory

    if USE_POSTGRES:
        async with factory() as cleanup:
            for table in TABLES:
                await cleanup.execute(text(f"DELETE FROM {table}"))
            await cleanup.commit()
    await factory.kw["bind"].dispose()


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def uow_factory(session_factory):
    return create_uow_factory(session_factory)


@pytest.fixture
def settings() -> Settings:
    return Settings(  # type: ignore[call-arg]
        APP_ENV="test",
        DATABASE_URL="sqlite+aiosqlite:///unused.db",
        PUBLIC_BASE_URL="https://media.example.com",
        ADMIN_TOKEN="admin-secret",
        DEFAULT_CREDIT_COST=100,
        PROVIDER_SUBMIT_TIMEOUT_SECONDS=0.2,
        GENERATION_RATE_LIMIT=30,
        GENERATION_RATE_WINDOW_SECONDS=60,
    )


@pytest.fixture
def make_user(uow_factory):
    async def _make_user(credits: int = 0, email: str | None = None) -> User:
        async with await uow_factory() as uow:
            return await uow.users.add(User(credits=credits, email=email))

    return _make_user


@pytest.fixture
def add_credential(uow_factory):
    async def _add_credential(
        provider: str = "kie",
        name: str = "KIE_API_KEY_1",
        usage_count: int = 0,
        is_active: bool = True,
    ) -> ApiCredential:
        async with await uow_factory() as uow:
            credential, _ = await uow.api_credentials.add_if_absent(
                ApiCredential(
                    provider=provider,
                    name=name,
                    secret=f"secret-{name}",
                    usage_count=usage_count,
                    is_active=is_active,
                )
            )
            return credential

    return _add_credential


async def get_balance(uow_factory, user_id) -> int | None:
    async with await uow_factory() as uow:
        return await uow.users.get_balance(user_id)


async def get_job(uow_factory, job_id):
    async with await uow_factory() as uow:
        return await uow.generation_jobs.get_by_id(job_id)


class FakeAdapter:
    """Provider adapter double.

    ``behaviour`` decides what ``submit`` does:
    - "task": return an external task id
    - "immediate": return ``result_urls`` as an immediate result
    - "hang": never return (exercises the submit timeout)
    - an exception instance: raise it
    """

    def __init__(self, name: str = "kie", behaviour="task", result_urls=None, status=None):
        self.name = name
        self.behaviour = behaviour
        self.result_urls = result_urls or ["https://cdn.example.com/result.mp4"]
        self.status = status
        self.submissions: list[tuple[SubmitRequest, str]] = []
        self.polled: list[str] = []

    async def submit(self, request: SubmitRequest, credential: ApiCredential) -> SubmitResult:
        self.submissions.append((request, credential.name))
        if isinstance(self.behaviour, Exception):
            raise self.behaviour
        if self.behaviour == "hang":
            await asyncio.sleep(3600)
        if self.behaviour == "immediate":
            return SubmitResult(immediate_result_urls=list(self.result_urls))
        return SubmitResult(external_task_id=f"task-{len(self.submissions)}")

    async def fetch_status(self, task_id: str, credential: ApiCredential) -> NormalizedCallback:
        self.polled.append(task_id)
        return self.status
