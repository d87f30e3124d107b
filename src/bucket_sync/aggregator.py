"""
Single-owner collection of transfer failures.

Page tasks never touch the failure list directly. They put `TransferFailure`
messages on a queue, and one consumer task appends them in arrival order.
"""

import asyncio
import logging
from typing import Any, List, Optional, Tuple

from bucket_sync.transfer import TransferFailure

logger: logging.Logger = logging.getLogger(__name__)


class ErrorAggregator:
    """Owns the failure list of one session and serializes all insertions."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Optional[TransferFailure]] = asyncio.Queue()
        self._failures: List[TransferFailure] = []
        self._task: Optional[asyncio.Task[None]] = None
        self._closed: bool = False

    def start(self) -> None:
        """Starts the consumer task. Must be called from a running event loop."""
        if self._task is None:
            self._task = asyncio.create_task(self._consume())

    async def submit(self, failure: TransferFailure) -> None:
        """
        Hands a failure to the aggregator.

        Args:
            failure (TransferFailure): The failed transfer.

        Raises:
            RuntimeError: If the aggregator has already been closed.
        """
        if self._closed:
            raise RuntimeError("Cannot submit to a closed ErrorAggregator.")
        await self._queue.put(failure)

    async def close(self) -> Tuple[TransferFailure, ...]:
        """
        Drains pending messages, stops the consumer and returns the failures.

        Returns:
            Tuple[TransferFailure, ...]: The frozen failure snapshot, in
                arrival order.
        """
        if not self._closed:
            self._closed = True
            if self._task is None:
                self.start()
            await self._queue.put(None)
            assert self._task is not None
            await self._task
        return tuple(self._failures)

    async def _consume(self) -> None:
        """The consumer loop; exits on the `None` sentinel."""
        while True:
            failure: Optional[TransferFailure] = await self._queue.get()
            if failure is None:
                break
            self._failures.append(failure)
            logger.debug(f"Recorded failure for '{failure.record.key}'.")

    async def __aenter__(self) -> "ErrorAggregator":
        self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
