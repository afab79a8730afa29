"""Per-session debounce timers.

One :class:`TimerWheel` belongs to one picker session. It holds at most one
pending timer per key ("reverse", "search"); scheduling a key again replaces
the previous timer for that key.
"""

import asyncio
from typing import Callable, Hashable, Optional

from geopicker.core.logging import get_logger

logger = get_logger(__name__)


class TimerWheel:
    """Keyed single-shot timers on the running event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop
        self._handles: dict[Hashable, asyncio.TimerHandle] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(
        self, key: Hashable, delay: float, callback: Callable[[], None]
    ) -> None:
        """Start (or restart) the timer for ``key``.

        Args:
            key: Logical operation the timer belongs to
            delay: Seconds until ``callback`` fires
            callback: Zero-argument callable run on the event loop
        """
        if self._closed:
            logger.debug("timer_schedule_after_close", key=str(key))
            return
        self.cancel(key)
        self._handles[key] = self._get_loop().call_later(
            max(delay, 0.0), self._fire, key, callback
        )

    def _fire(self, key: Hashable, callback: Callable[[], None]) -> None:
        self._handles.pop(key, None)
        if self._closed:
            return
        callback()

    def cancel(self, key: Hashable) -> bool:
        """Cancel the pending timer for ``key``; True if one was pending."""
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def is_pending(self, key: Hashable) -> bool:
        return key in self._handles

    def close(self) -> None:
        """Cancel every pending timer and refuse new ones."""
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        self._closed = True
