"""In-process queue of job ids waiting for provider submission."""

import asyncio
from uuid import UUID

import structlog

logger = structlog.get_logger()


class DispatchQueue:
    """asyncio.Queue of job ids drained by dispatch workers.

    Enqueueing never blocks the caller. Jobs lost with the process (restart
    before a worker picked them up) stay ``pending`` in the database and are
    re-enqueued by orphan recovery.
    """

    def __init__(self, maxsize: int = 0):
        self._queue: asyncio.Queue[UUID] = asyncio.Queue(maxsize=maxsize)

    def enqueue(self, job_id: UUID) -> None:
        self._queue.put_nowait(job_id)
        logger.debug("dispatch_queue.enqueued", job_id=str(job_id), depth=self._queue.qsize())

    async def get(self) -> UUID:
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every enqueued job id has been processed."""
        await self._queue.join()

    def qsize(self) -> int:
        return self._queue.qsize()
