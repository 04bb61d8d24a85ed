"""Single-slot change signal between the watcher and the orchestrator."""

import asyncio
import logging

logger = logging.getLogger(__name__)


class ChangeSignal:
    """Bounded single-slot channel carrying "something changed" pulses.

    At most one pulse is pending at a time: firing while a pulse is pending is
    absorbed. fire() and close() may be called from any thread; wait() must be
    awaited on the owning loop.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop):
        """Initialize signal.

        Args:
            loop: Event loop that consumes the signal
        """
        self._loop = loop
        self._event = asyncio.Event()
        self._closed = False
        self._error: BaseException | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def error(self) -> BaseException | None:
        """Terminal error the channel was closed with, if any."""
        return self._error

    def fire(self) -> None:
        """Post a pulse (thread-safe)."""
        self._call(self._set)

    def close(self, error: BaseException | None = None) -> None:
        """Close the channel, optionally recording a terminal error (thread-safe)."""
        self._call(self._close, error)

    async def wait(self) -> bool:
        """Wait for the next pulse.

        Returns:
            True if a pulse was consumed, False once the channel is closed
        """
        if not self._closed:
            await self._event.wait()
        if self._closed:
            return False
        self._event.clear()
        return True

    def _set(self) -> None:
        if not self._closed:
            self._event.set()

    def _close(self, error: BaseException | None) -> None:
        if self._closed:
            return
        self._closed = True
        self._error = error
        self._event.set()

    def _call(self, callback, *args) -> None:
        if self._loop.is_closed():
            logger.debug("Change signal loop already closed, dropping pulse")
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            callback(*args)
        else:
            self._loop.call_soon_threadsafe(callback, *args)
