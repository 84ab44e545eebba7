"""FastAPI application factory."""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from mediaforge.api.routes import admin, callbacks, generations, posts
from mediaforge.core import timezone  # noqa: F401  (sets TZ=UTC)
from mediaforge.core.config import Settings, configure_logging
from mediaforge.core.database import create_all_tables, setup_db_session
from mediaforge.services.container import AppServices, build_services
from mediaforge.services.generation.queue import DispatchQueue
from mediaforge.services.key_rotator import ApiKeyRotator
from mediaforge.services.pricing import seed_prices
from mediaforge.uow import create_uow_factory
from mediaforge.workers.dispatch_worker import recover_orphaned_jobs, run_dispatch_worker
from mediaforge.workers.rate_limit_sweeper import run_rate_limit_sweeper
from mediaforge.workers.status_poller import run_status_poller

logger = structlog.get_logger()


def create_resilient_worker(
    coro_func,
    services: AppServices,
    settings: Settings,
    worker_name: str,
    shutdown_event: asyncio.Event,
):
    """Start ``coro_func(services, settings)`` as a task that restarts itself.

    A worker that crashes or returns is started again after RESTART_DELAY
    seconds unless ``shutdown_event`` is set. Only the first task handle is
    returned.
    """
    RESTART_DELAY = 1  # seconds

    def on_worker_done(task: asyncio.Task):
        if shutdown_event.is_set():
            logger.info("worker.shutdown_complete", worker=worker_name)
            return

        if task.cancelled():
            logger.info("worker.cancelled", worker=worker_name)
            return

        exc = task.exception()
        if exc:
            logger.error(
                "worker.crashed",
                worker=worker_name,
                error=str(exc),
                error_type=type(exc).__name__,
                retry_in_seconds=RESTART_DELAY,
                exc_info=exc,
            )
        else:
            logger.warning(
                "worker.stopped_unexpectedly",
                worker=worker_name,
                retry_in_seconds=RESTART_DELAY,
            )

        async def restart_worker():
            await asyncio.sleep(RESTART_DELAY)

            # Shutdown may have been requested during the sleep
            if shutdown_event.is_set():
                return

            logger.info("worker.restarting", worker=worker_name)
            new_task = asyncio.create_task(coro_func(services, settings))
            new_task.add_done_callback(on_worker_done)

        asyncio.create_task(restart_worker())

    task = asyncio.create_task(coro_func(services, settings))
    task.add_done_callback(on_worker_done)
    return task


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start and stop everything the API depends on.

    - Startup: settings, logging, database, credential provisioning, price
      seeding, orphan recovery, workers
    - Shutdown: stop workers
    """
    settings = Settings()  # type: ignore[call-arg]

    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    if settings.database_url.startswith("sqlite"):
        # Local runs without Alembic
        await create_all_tables(session_factory)

    uow_factory = create_uow_factory(session_factory)

    async with await uow_factory() as uow:
        await ApiKeyRotator(uow).provision_from_settings(settings)
        seeded = await seed_prices(uow)
    logger.info("startup.prices_seeded", inserted=seeded)

    queue = DispatchQueue()
    services = build_services(settings, uow_factory, queue=queue)

    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.services = services

    try:
        await recover_orphaned_jobs(services)
    except Exception as e:
        # Pending jobs stay pending and are picked up on the next restart
        logger.error(
            "startup.recovery_failed",
            error=str(e),
            error_type=type(e).__name__,
        )

    shutdown_event = asyncio.Event()

    worker_tasks = [
        create_resilient_worker(
            run_dispatch_worker, services, settings, f"dispatch_{i}", shutdown_event
        )
        for i in range(settings.dispatch_worker_count)
    ]
    worker_tasks.append(
        create_resilient_worker(
            run_status_poller, services, settings, "status_poller", shutdown_event
        )
    )
    worker_tasks.append(
        create_resilient_worker(
            run_rate_limit_sweeper, services, settings, "rate_limit_sweeper", shutdown_event
        )
    )

    logger.info(
        "application.startup",
        db_url=settings.database_url.split("@")[-1],
        providers=sorted(services.adapters),
        dispatch_workers=settings.dispatch_worker_count,
    )

    yield

    logger.info("application.shutdown", queued_jobs=queue.qsize())
    shutdown_event.set()

    for task in worker_tasks:
        task.cancel()

    # Cancelled workers raise CancelledError; collect instead of propagating
    await asyncio.gather(*worker_tasks, return_exceptions=True)


def create_app() -> FastAPI:
    """Build the FastAPI application; startup work happens in ``lifespan``."""
    settings = Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="MediaForge API",
        description="Credit-metered AI media generation",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(generations.router)
    app.include_router(callbacks.router)
    app.include_router(posts.router)  # Posts router has prefix="/posts" in definition
    app.include_router(admin.router)  # Admin router has prefix="/admin" in definition

    @app.get("/health")
    async def health_check(response: Response):
        """Report 200 when the database answers SELECT 1, else 503 with the error."""
        try:
            async with app.state.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            logger.debug("health_check.success")
            return {"status": "healthy"}

        except Exception as e:
            logger.error(
                "health_check.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {
                "status": "unhealthy",
                "error": {
                    "type": type(e).__name__,
                    "message": str(e),
                },
            }

    return app


# Create app instance for uvicorn
app = create_app()
