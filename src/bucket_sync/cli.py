"""Command-line interface for the bucket-sync tool."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import click
from dotenv import load_dotenv
from rich.logging import RichHandler

from bucket_sync.config import SyncConfig, load_config
from bucket_sync.exceptions import BucketSyncError
from bucket_sync.pipeline import SessionReport, run_sync
from bucket_sync.signals import FORCED_EXIT_CODE, GracefulShutdown

logger: logging.Logger = logging.getLogger(__name__)

EXIT_OK: int = 0
EXIT_UNEXPECTED: int = 1
EXIT_UNRECOVERED: int = 6
EXIT_INTERRUPTED: int = FORCED_EXIT_CODE


def setup_logging(level: str) -> None:
    """Configure rich-based logging for the application."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # Silence noisy loggers
    for logger_name in ["botocore", "aiobotocore", "urllib3"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


async def main_async(config: SyncConfig) -> int:
    """
    Runs one sync session under signal handling.

    Args:
        config (SyncConfig): The application configuration.

    Returns:
        int: The process exit code describing the outcome.
    """
    async with GracefulShutdown() as shutdown_event:
        report: SessionReport = await run_sync(config, shutdown_event)

    if report.interrupted:
        return EXIT_INTERRUPTED
    if report.unrecovered:
        return EXIT_UNRECOVERED
    return EXIT_OK


@click.command(context_settings=dict(help_option_names=["-h", "--help"]))
@click.option(
    "--configfile",
    type=click.Path(dir_okay=False, path_type=Path),
    default="config.ini",
    help="General configuration file.",
    show_default=True,
)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Set the logging level.",
    show_default=True,
)
def cli(**kwargs: Any) -> None:
    """
    Replicate every object of a source bucket into a destination bucket.

    Objects under `srcPrefix` are listed page by page and copied by a
    bounded pool of workers, optionally keeping a local copy under
    `downloadDir`. Objects that fail are retried once at the end. If listing
    fails or the run is interrupted, the listing position is saved so the
    next run resumes from it.

    Exit codes: 0 success, 1 unexpected error, 3 configuration error,
    4 connection error, 5 listing error, 6 objects left unreplicated,
    130 interrupted.
    """
    load_dotenv()
    setup_logging(kwargs["log_level"])

    try:
        config: SyncConfig = load_config(kwargs["configfile"])
        exit_code: int = asyncio.run(main_async(config))
    except BucketSyncError as e:
        logger.critical(f"A critical application error occurred: {e}")
        sys.exit(e.exit_code)
    except Exception:
        logger.critical(
            "An unexpected error caused the application to fail:", exc_info=True
        )
        sys.exit(EXIT_UNEXPECTED)

    if exit_code == EXIT_OK:
        logger.info("✅ Run completed successfully.")
    sys.exit(exit_code)


if __name__ == "__main__":
    cli()
