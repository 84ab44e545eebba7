"""Background workers for async processing tasks."""

from mediaforge.workers.dispatch_worker import recover_orphaned_jobs, run_dispatch_worker
from mediaforge.workers.rate_limit_sweeper import run_rate_limit_sweeper
from mediaforge.workers.status_poller import run_status_poller

__all__ = [
    "recover_orphaned_jobs",
    "run_dispatch_worker",
    "run_rate_limit_sweeper",
    "run_status_poller",
]
