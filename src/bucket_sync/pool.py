"""
Bounded concurrency for page processing.

The `WorkerPool` admits at most N page tasks at a time. Each page task keeps
its slot until every record of its page has been attempted, so concurrency
is across pages, never within one.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Set

from bucket_sync.aggregator import ErrorAggregator
from bucket_sync.exceptions import TransferError
from bucket_sync.store import ObjectRecord
from bucket_sync.transfer import Transfer, TransferFailure

logger: logging.Logger = logging.getLogger(__name__)


class WorkerPool:
    """A capacity-limited set of tasks with a join barrier."""

    def __init__(self, size: int) -> None:
        """
        Args:
            size (int): The maximum number of tasks in flight. Must be >= 1.
        """
        if size < 1:
            raise ValueError(f"WorkerPool size must be at least 1, got {size}.")
        self.size: int = size
        self._semaphore: asyncio.Semaphore = asyncio.Semaphore(size)
        self._tasks: Set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> int:
        """The number of dispatched tasks that have not finished yet."""
        return len(self._tasks)

    async def dispatch(
        self,
        job: Callable[[], Awaitable[None]],
        stop_event: Optional[asyncio.Event] = None,
    ) -> bool:
        """
        Waits for a free slot, then runs `job` in a new task holding that slot.

        Args:
            job (Callable[[], Awaitable[None]]): Creates the coroutine to run.
                It is only called once a slot has been acquired.
            stop_event (asyncio.Event, optional): Abandons the wait for a slot
                when set.

        Returns:
            bool: False if `stop_event` fired first and `job` was not run.
        """
        if not await self._acquire(stop_event):
            return False
        try:
            task: asyncio.Task[None] = asyncio.create_task(self._run(job))
        except BaseException:
            self._semaphore.release()
            raise
        self._tasks.add(task)
        return True

    async def _acquire(self, stop_event: Optional[asyncio.Event]) -> bool:
        if stop_event is None or not self._semaphore.locked():
            await self._semaphore.acquire()
            return True

        acquire: asyncio.Task[bool] = asyncio.create_task(self._semaphore.acquire())
        stopped: asyncio.Task[bool] = asyncio.create_task(stop_event.wait())
        try:
            await asyncio.wait(
                {acquire, stopped}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            stopped.cancel()
            if not acquire.done():
                acquire.cancel()

        try:
            await acquire
        except asyncio.CancelledError:
            return False
        if stopped.done() and not stopped.cancelled():
            # Both fired together; stopping wins
            self._semaphore.release()
            return False
        return True

    async def _run(self, job: Callable[[], Awaitable[None]]) -> None:
        try:
            await job()
        except Exception:
            logger.exception("Unexpected error in page task.")
        finally:
            # Leave the in-flight set before the slot can be handed out again
            self._tasks.discard(asyncio.current_task())  # type: ignore[arg-type]
            self._semaphore.release()

    async def join(self) -> None:
        """Returns once every dispatched task has finished and released its slot."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))


async def run_page(
    records: List[ObjectRecord],
    transfer: Transfer,
    aggregator: ErrorAggregator,
    on_synced: Optional[Callable[[ObjectRecord], None]] = None,
) -> None:
    """
    Transfers the records of one page sequentially, in listing order.

    A failed record is reported to `aggregator` and the page continues with
    the next record.

    Args:
        records (List[ObjectRecord]): The page.
        transfer (Transfer): Copies one record.
        aggregator (ErrorAggregator): Receives failures.
        on_synced (Callable[[ObjectRecord], None], optional): Called after
            each successful transfer.
    """
    for record in records:
        try:
            await transfer(record)
        except TransferError as e:
            logger.error(str(e))
            await aggregator.submit(TransferFailure(record, str(e)))
            continue
        except Exception as e:
            logger.exception(
                f"An unexpected error occurred transferring '{record.key}'"
            )
            await aggregator.submit(
                TransferFailure(record, f"{type(e).__name__} - {e}")
            )
            continue

        logger.info(f"synced: {record.key}")
        if on_synced is not None:
            on_synced(record)
