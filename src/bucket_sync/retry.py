"""
The single retry pass over failed transfers.

Every record that failed during the main pass gets exactly one more attempt,
sequentially. Each record, whether retried or skipped after a shutdown
signal, produces one `RetryOutcome` on the result queue so the consumer can
count them to completion.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from bucket_sync.exceptions import RetryTransferError
from bucket_sync.store import ObjectRecord
from bucket_sync.transfer import Transfer, TransferFailure

logger: logging.Logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryOutcome:
    """
    The result of retrying one record.

    Attributes:
        record (ObjectRecord): The retried object.
        succeeded (bool): Whether the retry transferred the object.
        reason (str, optional): Why the retry failed, if it did.
        skipped (bool): True when a shutdown signal prevented the attempt.
    """

    record: ObjectRecord
    succeeded: bool
    reason: Optional[str] = None
    skipped: bool = False


class RetryProcessor:
    """Re-attempts each failed transfer once, in order, without concurrency."""

    def __init__(self, transfer: Transfer) -> None:
        """
        Args:
            transfer (Transfer): The same transfer used by the main pass.
        """
        self._transfer: Transfer = transfer

    async def run(
        self,
        failures: Sequence[TransferFailure],
        results: asyncio.Queue[RetryOutcome],
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        """
        Retries every failure and reports one outcome per record.

        Args:
            failures (Sequence[TransferFailure]): The frozen failure snapshot
                of the main pass. It is never modified.
            results (asyncio.Queue[RetryOutcome]): Receives the outcomes.
            stop_event (asyncio.Event, optional): Once set, the remaining
                records are reported as skipped without being attempted.
        """
        for failure in failures:
            record: ObjectRecord = failure.record
            if stop_event is not None and stop_event.is_set():
                logger.warning(f"Retry of '{record.key}' skipped: shutting down.")
                await results.put(RetryOutcome(record, False, skipped=True))
                continue
            try:
                await self._transfer(record)
            except Exception as e:
                error: RetryTransferError = RetryTransferError(
                    record, f"Giving up on '{record.key}': {e}"
                )
                logger.error(str(error))
                await results.put(RetryOutcome(record, False, str(error)))
            else:
                await results.put(RetryOutcome(record, True))
