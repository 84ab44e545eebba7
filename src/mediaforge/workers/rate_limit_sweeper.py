"""Periodic removal of expired rate-limit counters."""

import asyncio

import structlog

from mediaforge.core.config import Settings
from mediaforge.services.container import AppServices

logger = structlog.get_logger()


async def run_rate_limit_sweeper(services: AppServices, settings: Settings) -> None:
    logger.info(
        "worker.started",
        worker="rate_limit_sweeper",
        interval=settings.rate_limit_sweep_interval_seconds,
    )

    try:
        while True:
            try:
                await asyncio.sleep(settings.rate_limit_sweep_interval_seconds)
                removed = services.rate_limiter.sweep()
                if removed:
                    logger.debug("rate_limit.swept", removed=removed)

            except asyncio.CancelledError:
                raise

            except Exception as e:
                logger.error(
                    "worker.error",
                    worker="rate_limit_sweeper",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    exc_info=True,
                )
                await asyncio.sleep(5)

    except asyncio.CancelledError:
        logger.info("worker.stopped", worker="rate_limit_sweeper")
        raise
