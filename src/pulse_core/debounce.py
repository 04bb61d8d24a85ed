"""Timer-based debouncer used by the file watcher."""

import logging
from collections.abc import Callable
from threading import Lock, Timer

logger = logging.getLogger(__name__)


class Debouncer:
    """Collapse a burst of arm() calls into one callback after a quiet period.

    Every arm() restarts the timer from zero. cancel() disables the debouncer
    for good. Timer replacement, cancellation and firing are serialized by a
    single lock, so arm() and cancel() may race with the timer thread.
    """

    def __init__(self, delay_ms: int, callback: Callable[[], None]):
        """Initialize debouncer.

        Args:
            delay_ms: Quiet period in milliseconds
            callback: Called on the timer thread once the quiet period elapses
        """
        self.delay_ms = delay_ms
        self.callback = callback
        self._lock = Lock()
        self._timer: Timer | None = None
        self._generation = 0
        self._done = False

    @property
    def cancelled(self) -> bool:
        return self._done

    def arm(self) -> None:
        """Schedule the callback, restarting any pending timer."""
        with self._lock:
            if self._done:
                return
            if self._timer:
                self._timer.cancel()

            self._generation += 1
            timer = Timer(self.delay_ms / 1000.0, self._fire, args=(self._generation,))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        """Stop the pending timer and refuse further arm() calls."""
        with self._lock:
            if self._timer:
                self._timer.cancel()
                self._timer = None
            self._done = True

    def _fire(self, generation: int) -> None:
        with self._lock:
            # A timer superseded while waiting on the lock must not fire
            if self._done or generation != self._generation:
                return
            self._timer = None
            try:
                self.callback()
            except Exception as e:
                logger.error(f"Debounced callback failed: {e}")
