"""
Graceful interruption of a sync session.

A first SIGINT or SIGTERM sets an `asyncio.Event`. The session stops
dispatching pages as soon as it sees the event, including while it waits for
a free slot, lets in-flight pages finish and checkpoints the listing cursor.
A second signal exits immediately.
"""

import asyncio
import logging
import os
import signal
from typing import Any, Dict, Optional, Tuple

logger: logging.Logger = logging.getLogger(__name__)

HANDLED_SIGNALS: Tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)
FORCED_EXIT_CODE: int = 130


class GracefulShutdown:
    """
    An async context manager that turns shutdown signals into an event.

    Handlers are installed on the running event loop, so they run as regular
    loop callbacks. Whatever handler was active before is put back on exit.
    """

    def __init__(self) -> None:
        self._event: asyncio.Event = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._previous: Dict[signal.Signals, Any] = {}

    @property
    def requested(self) -> bool:
        """Whether a shutdown signal has been received."""
        return self._event.is_set()

    def _on_signal(self, sig: signal.Signals) -> None:
        if self._event.is_set():
            logger.critical(f"Received {sig.name} again. Exiting now.")
            os._exit(FORCED_EXIT_CODE)
        else:
            logger.warning(
                f"Received {sig.name}. No further pages will be started; "
                "send it again to exit immediately."
            )
            self._event.set()

    async def __aenter__(self) -> asyncio.Event:
        """
        Installs the handlers on the running loop.

        Returns:
            asyncio.Event: Set when the first handled signal arrives.
        """
        self._loop = asyncio.get_running_loop()
        for sig in HANDLED_SIGNALS:
            previous: Any = signal.getsignal(sig)
            try:
                self._loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                # No loop signal support here (non-main thread or Windows)
                logger.warning(f"Could not set handler for {sig.name}: {e}")
                continue
            self._previous[sig] = previous
        return self._event

    async def __aexit__(self, *args: Any) -> None:
        """Removes the loop handlers and reinstalls the previous ones."""
        if self._loop is None:
            return
        for sig, previous in self._previous.items():
            self._loop.remove_signal_handler(sig)
            if previous is not None:
                signal.signal(sig, previous)
        self._previous.clear()
