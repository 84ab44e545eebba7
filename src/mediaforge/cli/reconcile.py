"""CLI command for resolving stuck generation jobs.

Usage:
    python -m mediaforge.cli.reconcile [OPTIONS] [JOB_ID ...]

Examples:
    # List processing jobs unchanged for more than 30 minutes
    python -m mediaforge.cli.reconcile --list --older-than 1800

    # Ask the provider for the current state of a job
    python -m mediaforge.cli.reconcile --poll 7f0c...

    # Fail a job and refund its credits
    python -m mediaforge.cli.reconcile --fail 7f0c... --message "Provider lost the task"
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace
from datetime import timedelta
from uuid import UUID

import structlog

from mediaforge.core import timezone  # noqa: F401
from mediaforge.core.config import Settings, configure_logging
from mediaforge.core.database import setup_db_session
from mediaforge.core.timezone import utcnow
from mediaforge.models.generation_job import JobOutcome
from mediaforge.services.container import build_services
from mediaforge.services.exceptions import GenerationServiceError
from mediaforge.services.generation.status_sync import poll_job
from mediaforge.uow import create_uow_factory

logger = structlog.get_logger()

MANUAL_FAILURE_MESSAGE = "Marked as failed by an operator"


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        description="Resolve generation jobs stuck in processing",
        epilog="Failing a job refunds its reserved credits exactly once",
    )

    parser.add_argument("job_ids", nargs="*", type=UUID, metavar="JOB_ID")

    action = parser.add_mutually_exclusive_group(required=True)
    action.add_argument(
        "--list",
        action="store_true",
        help="List stuck processing jobs instead of resolving them",
    )
    action.add_argument(
        "--poll",
        action="store_true",
        help="Ask the provider for the task state and finalize if terminal",
    )
    action.add_argument(
        "--fail",
        action="store_true",
        help="Finalize the jobs as failed",
    )

    parser.add_argument(
        "--message",
        default=MANUAL_FAILURE_MESSAGE,
        help="Error message recorded with --fail",
    )
    parser.add_argument(
        "--older-than",
        type=int,
        default=600,
        help="Seconds without change before a job counts as stuck (default: 600)",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=100,
        help="Maximum number of jobs to list (default: 100)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    args = parser.parse_args(argv)
    if not args.list and not args.job_ids:
        parser.error("JOB_ID is required with --poll and --fail")
    return args


async def async_main(argv: list[str] | None = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error), 2 (some jobs could not be resolved)
    """
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)
    services = build_services(settings, uow_factory)

    if args.list:
        cutoff = utcnow() - timedelta(seconds=args.older_than)
        async with await uow_factory() as uow:
            jobs = await uow.generation_jobs.get_stale_processing(cutoff, limit=args.limit)
            unsubmitted = await uow.generation_jobs.get_unsubmitted_processing_ids(
                cutoff, limit=args.limit
            )

        print(f"Stuck jobs with a provider task: {len(jobs)}")
        for job in jobs:
            print(
                f"  {job.id}  {job.model:<28} "
                f"task={job.external_task_id}  since={job.updated_at}"
            )
        print(f"Stuck jobs never submitted: {len(unsubmitted)}")
        for job_id in unsubmitted:
            print(f"  {job_id}")
        return 0

    unresolved = 0
    for job_id in args.job_ids:
        try:
            async with await uow_factory() as uow:
                job = await uow.generation_jobs.get_by_id(job_id)
            if job is None:
                print(f"{job_id}: not found", file=sys.stderr)
                unresolved += 1
                continue

            if args.fail:
                job = await services.reconciler.finalize(
                    job_id, JobOutcome.FAILURE, error_message=args.message
                )
                print(f"{job_id}: {job.status.value}")
                continue

            status = await poll_job(services, job)
            if status is None:
                print(f"{job_id}: cannot be polled (no provider task)", file=sys.stderr)
                unresolved += 1
            else:
                print(f"{job_id}: provider reports {status.value}")

        except GenerationServiceError as e:
            logger.error(
                "cli.reconcile_failed",
                job_id=str(job_id),
                error=str(e),
                error_type=type(e).__name__,
            )
            print(f"{job_id}: {e}", file=sys.stderr)
            unresolved += 1

        except KeyboardInterrupt:
            logger.info("cli.interrupted")
            print("\nReconciliation interrupted by user", file=sys.stderr)
            return 130

    if unresolved == 0:
        return 0
    if unresolved == len(args.job_ids):
        return 1
    return 2


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
