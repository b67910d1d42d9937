"""CLI command for inspecting and replaying the local upload queue.

Usage:
    python -m fieldsync.cli [OPTIONS]

Examples:
    # Retry every pending/failed upload once
    python -m fieldsync.cli

    # Show the queue without touching the network
    python -m fieldsync.cli --list --offline

    # Retry, then purge synced records
    python -m fieldsync.cli --cleanup

    # Verbose logging
    python -m fieldsync.cli -v
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace

import structlog

from fieldsync.core.config import Settings, configure_logging
from fieldsync.core.dependencies import SyncEngine, build_sync_engine
from fieldsync.models.upload_record import UploadRecord

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        description="Replay photos captured offline against the employee uploads endpoint",
        epilog="Pending and failed uploads are retried; synced uploads are kept until cleanup",
    )

    parser.add_argument(
        "--list",
        action="store_true",
        help="Print the upload queue",
    )

    parser.add_argument(
        "--cleanup",
        action="store_true",
        help="Purge synced records after the run",
    )

    parser.add_argument(
        "--offline",
        action="store_true",
        help="Do not contact the backend (no sync pass)",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args(argv)


def format_record(record: UploadRecord) -> str:
    stage = record.stage.value if record.stage else "customer"
    line = (
        f"  {record.id}  ticket={record.ticket_id:<6} stage={stage:<8} "
        f"status={record.status.value:<7} attempts={record.attempts}"
    )
    if record.last_error:
        line += f"  error={record.last_error[:60]}"
    return line


def print_queue(engine: SyncEngine) -> None:
    records = engine.store.get_all()
    print("\n" + "=" * 60)
    print(f"Upload Queue ({len(records)} records)")
    print("=" * 60)
    for record in records:
        print(format_record(record))
    print("=" * 60 + "\n")


async def async_main(argv: list[str] | None = None, settings: Settings | None = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success or nothing to do), 1 (error / nothing synced), 2 (partial success)
    """
    args = parse_args(argv)

    settings = settings or Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    logger.info("cli.started", offline=args.offline, cleanup=args.cleanup)

    engine = await build_sync_engine(settings, initially_connected=not args.offline)
    try:
        if args.list:
            print_queue(engine)

        exit_code = 0
        if not args.offline:
            result = await engine.coordinator.retry_pending_uploads()

            print("\n" + "=" * 60)
            print("Upload Sync Summary")
            print("=" * 60)
            print(f"Uploads attempted: {result.attempted}")
            print(f"Uploads synced: {result.synced}")
            print(f"Uploads failed: {result.failed}")
            print(f"Uploads deferred (retry policy): {result.deferred}")
            print("=" * 60 + "\n")

            if result.failed and result.synced:
                logger.warning("cli.partial_success")
                exit_code = 2
            elif result.failed:
                logger.error("cli.failure")
                exit_code = 1
            else:
                logger.info("cli.success")

        if args.cleanup:
            removed = await engine.coordinator.cleanup_synced()
            print(f"Synced records removed: {removed}")

        return exit_code

    except KeyboardInterrupt:
        logger.info("cli.interrupted")
        print("\nSync interrupted by user", file=sys.stderr)
        return 130  # Standard exit code for SIGINT

    except Exception as e:
        logger.error(
            "cli.unexpected_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        return 1

    finally:
        await engine.aclose()


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
