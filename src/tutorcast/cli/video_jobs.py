"""CLI commands for operating on video jobs.

Usage:
    python -m tutorcast.cli COMMAND [OPTIONS]

Examples:
    # Run one reconciliation sweep (poll provider, relocate completed assets)
    python -m tutorcast.cli sweep

    # Relocate a completed job's video now (ignores the automatic attempt cap)
    python -m tutorcast.cli relocate 6f1e8a52-3c1b-4c43-9a55-0d3f3f1c2b7e

    # Retry a failed job
    python -m tutorcast.cli retry 6f1e8a52-3c1b-4c43-9a55-0d3f3f1c2b7e

    # Verbose logging
    python -m tutorcast.cli -v sweep
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace
from uuid import UUID

import structlog

from tutorcast.core import timezone  # noqa: F401
from tutorcast.core.config import Settings, configure_logging
from tutorcast.core.database import setup_db_session
from tutorcast.services.exceptions import ServiceError
from tutorcast.services.heygen.client import HeyGenClient
from tutorcast.services.relocation.relocator import AssetRelocator
from tutorcast.services.relocation.service import relocate_video_job
from tutorcast.services.storage.supabase_client import SupabaseStorageClient
from tutorcast.services.video_generation.retry_policy import RetryPolicy
from tutorcast.uow import create_uow_factory
from tutorcast.workers.video_sync_worker import VideoSyncSweeper

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(description="Operate on avatar video generation jobs")

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("sweep", help="Run one reconciliation sweep now")

    relocate = subparsers.add_parser("relocate", help="Relocate a completed job's video")
    relocate.add_argument("job_id", type=UUID, help="Video job id")

    retry = subparsers.add_parser("retry", help="Retry a failed job")
    retry.add_argument("job_id", type=UUID, help="Video job id")

    return parser.parse_args(argv)


def build_clients(settings: Settings) -> tuple[HeyGenClient, AssetRelocator]:
    client = HeyGenClient(
        api_key=settings.heygen_api_key,
        api_url=settings.heygen_api_url,
        upload_url=settings.heygen_upload_url,
        timeout=settings.heygen_timeout_seconds,
    )
    storage = SupabaseStorageClient(
        url=settings.supabase_url,
        service_key=settings.supabase_service_key,
        bucket=settings.supabase_bucket,
        timeout=settings.storage_timeout_seconds,
    )
    return client, AssetRelocator.from_settings(storage, settings)


async def async_main(argv: list[str] | None = None, settings: Settings | None = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error)
    """
    args = parse_args(argv)

    settings = settings or Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    logger.info("cli.started", command=args.command)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    client, relocator = build_clients(settings)

    try:
        if args.command == "sweep":
            sweeper = VideoSyncSweeper(session_factory, client, relocator, settings)
            result = await sweeper.run_once()
            if result is None:
                print("Sweep skipped: another sweep is running")
                return 0

            print("\n" + "=" * 60)
            print("Video Sync Summary")
            print("=" * 60)
            print(f"Jobs checked: {result.checked}")
            print(f"Jobs updated: {result.updated}")
            print(f"Sync errors: {result.errors}")
            print(f"Videos relocated: {result.relocated}")
            print(f"Relocation errors: {result.relocation_errors}")
            print(f"Duration: {result.duration_seconds}s")
            print("=" * 60 + "\n")
            return 1 if result.errors else 0

        if args.command == "relocate":
            durable_url = await relocate_video_job(args.job_id, session_factory, relocator)
            print(f"Relocated {args.job_id}: {durable_url}")
            return 0

        if args.command == "retry":
            uow_factory = create_uow_factory(session_factory)
            async with await uow_factory() as uow:
                job = await RetryPolicy(client).retry(uow, args.job_id)
            print(
                f"Retried {job.id}: status={job.status.value} "
                f"retry_count={job.retry_count}/{job.max_retries}"
            )
            if job.error_message:
                print(f"Error: {job.error_message}", file=sys.stderr)
                return 1
            return 0

        return 1  # pragma: no cover

    except ServiceError as e:
        logger.error("cli.command_failed", command=args.command, error=str(e), error_type=type(e).__name__)
        print(f"\nError: {e}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        logger.info("cli.interrupted")
        print("\nInterrupted by user", file=sys.stderr)
        return 130  # Standard exit code for SIGINT


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
