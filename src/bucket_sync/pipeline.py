"""Core orchestration logic for the bucket-sync engine."""

import asyncio
import functools
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from rich.progress import (
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from bucket_sync.aggregator import ErrorAggregator
from bucket_sync.checkpoint import CheckpointStore
from bucket_sync.config import SyncConfig
from bucket_sync.exceptions import ListingError
from bucket_sync.paginator import Paginator
from bucket_sync.pool import WorkerPool, run_page
from bucket_sync.retry import RetryOutcome, RetryProcessor
from bucket_sync.store import (
    ObjectRecord,
    ObjectStore,
    default_boto_config,
    open_store,
)
from bucket_sync.transfer import Transfer, TransferFailure, make_transfer

logger: logging.Logger = logging.getLogger(__name__)


@dataclass
class SessionReport:
    """
    The outcome of one replication session.

    Attributes:
        synced (int): Objects transferred during the main pass.
        failed (Tuple[TransferFailure, ...]): Failures of the main pass.
        resynced (List[str]): Keys that succeeded on retry.
        unrecovered (List[str]): Keys that failed on retry as well, or whose
            retry was skipped by a shutdown signal.
        interrupted (bool): Whether a shutdown signal stopped the main pass
            or cut the retry pass short.
        elapsed_s (float): Wall-clock duration of the session in seconds.
    """

    synced: int = 0
    failed: Tuple[TransferFailure, ...] = ()
    resynced: List[str] = field(default_factory=list)
    unrecovered: List[str] = field(default_factory=list)
    interrupted: bool = False
    elapsed_s: float = 0.0

    @property
    def ok(self) -> bool:
        """True when the run finished and every object reached the destination."""
        return not self.interrupted and not self.unrecovered


class SyncSession:
    """Orchestrates one replication run from listing to retry."""

    def __init__(
        self,
        config: SyncConfig,
        source: ObjectStore,
        destination: ObjectStore,
        shutdown_event: Optional[asyncio.Event] = None,
    ) -> None:
        """
        Initializes the session.

        Args:
            config (SyncConfig): The validated configuration.
            source (ObjectStore): The bucket to replicate from.
            destination (ObjectStore): The bucket to replicate to.
            shutdown_event (asyncio.Event, optional): When set, no further
                pages are dispatched.
        """
        self._config: SyncConfig = config
        self._source: ObjectStore = source
        self._shutdown_event: asyncio.Event = shutdown_event or asyncio.Event()
        self._checkpoint: CheckpointStore = CheckpointStore(config.checkpoint_path)
        self._transfer: Transfer = make_transfer(
            source, destination, config.mirror_dir
        )

    async def run(self) -> SessionReport:
        """
        Executes the main pass and, if it completes, the retry pass.

        The checkpoint is cleared once the main pass finishes without a
        listing error or interruption, regardless of how many objects failed.
        A shutdown signal arriving after that skips the remaining retries but
        leaves no checkpoint, since the listing is complete.

        Returns:
            SessionReport: Counts and keys describing the run.

        Raises:
            ListingError: If a page could not be listed. The checkpoint then
                holds the cursor of that page.
        """
        start_time: float = time.monotonic()
        report: SessionReport = SessionReport()
        try:
            await self._run_main_pass(report)
            if not report.interrupted:
                self._checkpoint.clear()
                # A signal during the last page leaves only the retries to skip
                report.interrupted = (
                    bool(report.failed) and self._shutdown_event.is_set()
                )
            if report.interrupted:
                logger.warning("Sync interrupted. Skipping the retry pass.")
            elif report.failed:
                await self._run_retry_pass(report)
        finally:
            report.elapsed_s = time.monotonic() - start_time
            self._log_summary(report)
        return report

    async def _run_main_pass(self, report: SessionReport) -> None:
        """
        Lists the source page by page and dispatches one page task per page.

        Returns only after every dispatched page task has finished.

        Args:
            report (SessionReport): Updated with sync counts and failures.
        """
        cursor: str = self._checkpoint.read()
        if cursor:
            logger.info(f"Resuming listing from checkpoint '{cursor}'.")

        paginator: Paginator = Paginator(
            self._source, self._config.src_prefix, self._config.max_keys
        )
        pool: WorkerPool = WorkerPool(self._config.thread_count)
        aggregator: ErrorAggregator = ErrorAggregator()
        aggregator.start()
        listing_error: Optional[ListingError] = None

        logger.info(
            f"Sync started: page size {paginator.page_size}, "
            f"{pool.size} concurrent pages."
        )
        if self._config.mirror_dir is not None:
            logger.info(f"Objects will be mirrored to '{self._config.mirror_dir}'.")

        progress: Progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            TextColumn("[bold cyan]{task.completed} synced"),
            TimeElapsedColumn(),
            transient=True,
        )
        with progress:
            task_id: TaskID = progress.add_task("Syncing...", total=None)

            def on_synced(_: ObjectRecord) -> None:
                report.synced += 1
                progress.advance(task_id)

            try:
                while True:
                    if self._shutdown_event.is_set():
                        logger.warning("Shutdown signal received. Stopping dispatch.")
                        report.interrupted = True
                        break

                    records, next_cursor = await paginator.fetch_page(cursor)
                    dispatched: bool = await pool.dispatch(
                        functools.partial(
                            run_page, records, self._transfer, aggregator, on_synced
                        ),
                        self._shutdown_event,
                    )
                    if not dispatched:
                        # The fetched page is listed again on resume
                        logger.warning("Shutdown signal received. Stopping dispatch.")
                        report.interrupted = True
                        break
                    if not next_cursor:
                        break
                    cursor = next_cursor
            except ListingError as e:
                logger.error(str(e))
                listing_error = e
            finally:
                await pool.join()
                report.failed = await aggregator.close()

        if listing_error is not None or report.interrupted:
            self._checkpoint.write(cursor)
        if listing_error is not None:
            raise listing_error

    async def _run_retry_pass(self, report: SessionReport) -> None:
        """
        Retries each main-pass failure once and records the outcomes.

        Args:
            report (SessionReport): Holds the failures; updated with outcomes.
        """
        logger.info(f"Retrying {len(report.failed)} failed objects...")
        results: asyncio.Queue[RetryOutcome] = asyncio.Queue()
        processor: RetryProcessor = RetryProcessor(self._transfer)
        retry_task: asyncio.Task[None] = asyncio.create_task(
            processor.run(report.failed, results, self._shutdown_event)
        )

        for _ in range(len(report.failed)):
            outcome: RetryOutcome = await results.get()
            if outcome.skipped:
                report.interrupted = True
                report.unrecovered.append(outcome.record.key)
            elif outcome.succeeded:
                logger.info(f"resynced: {outcome.record.key}")
                report.resynced.append(outcome.record.key)
            else:
                report.unrecovered.append(outcome.record.key)
        await retry_task

    def _log_summary(self, report: SessionReport) -> None:
        logger.info(
            f"Main pass: {report.synced} synced, {len(report.failed)} failed."
        )
        retried: int = len(report.resynced) + len(report.unrecovered)
        if retried:
            logger.info(
                f"Retry pass: {len(report.resynced)} resynced, "
                f"{len(report.unrecovered)} unrecovered."
            )
            for key in report.unrecovered:
                logger.warning(f"Not replicated: {key}")
        else:
            # The run stopped before the retry pass.
            for failure in report.failed:
                logger.warning(f"Not retried: {failure.record.key}")
        logger.info(f"runTime: {report.elapsed_s:.1f} seconds")


async def run_sync(
    config: SyncConfig, shutdown_event: Optional[asyncio.Event] = None
) -> SessionReport:
    """
    Connects to both buckets and runs one session.

    Args:
        config (SyncConfig): The validated configuration.
        shutdown_event (asyncio.Event, optional): Graceful shutdown signal.

    Returns:
        SessionReport: The outcome of the session.
    """
    boto_config = default_boto_config(max_pool_connections=config.thread_count + 10)
    async with (
        open_store(config.source, boto_config) as source,
        open_store(config.destination, boto_config) as destination,
    ):
        session: SyncSession = SyncSession(config, source, destination, shutdown_event)
        return await session.run()
