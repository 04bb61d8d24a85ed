"""File watcher implementation using watchdog."""

import asyncio
import logging
import os
from pathlib import Path
from threading import Lock

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import ObservedWatch

from pulse_core.cancel import CancelToken
from pulse_core.change_signal import ChangeSignal
from pulse_core.debounce import Debouncer
from pulse_core.errors import WalkCancelledError, WatcherError
from pulse_core.ignore import IgnoreMatcher
from pulse_core.watchers import ChangeNotifier, EventCallback, WatcherConfig

logger = logging.getLogger(__name__)


class _ForwardingHandler(FileSystemEventHandler):
    """Hand every raw watchdog event to a callback."""

    def __init__(self, on_event: EventCallback):
        self.on_event = on_event

    def on_any_event(self, event: FileSystemEvent) -> None:
        self.on_event(event)


class WatchdogNotifier:
    """ChangeNotifier backed by a watchdog Observer.

    Each directory gets its own non-recursive watch so that ignored subtrees
    are never subscribed. Events are delivered on the observer thread.
    """

    def __init__(self, on_event: EventCallback):
        """Initialize notifier.

        Args:
            on_event: Called with every raw event (observer thread)
        """
        self.observer = Observer()
        self._handler = _ForwardingHandler(on_event)
        self._watches: dict[str, ObservedWatch] = {}
        self._lock = Lock()

    def add(self, path: str) -> None:
        """Subscribe a directory (no-op if already subscribed)."""
        path = os.path.abspath(path)
        with self._lock:
            if path in self._watches:
                return
            self._watches[path] = self.observer.schedule(self._handler, path, recursive=False)

    def discard(self, path: str) -> None:
        """Drop the subscription of a directory that went away."""
        path = os.path.abspath(path)
        with self._lock:
            watch = self._watches.pop(path, None)
        if watch is None:
            return
        try:
            self.observer.unschedule(watch)
        except KeyError:
            # Emitter already gone with the directory
            pass

    @property
    def watched(self) -> list[str]:
        with self._lock:
            return list(self._watches)

    def start(self) -> None:
        self.observer.start()

    def stop(self) -> None:
        if self.observer.is_alive():
            self.observer.stop()
            self.observer.join(timeout=2.0)


class FileWatcher:
    """Watch source trees and emit a debounced change signal.

    Usage:
        watcher = FileWatcher(WatcherConfig(dirs=[Path(".")]))
        for root in watcher.config.dirs:
            watcher.add_directory(root)
        signal = watcher.listen(asyncio.get_running_loop())
        while await signal.wait():
            ...
        watcher.close()
    """

    def __init__(
        self,
        config: WatcherConfig,
        matcher: IgnoreMatcher | None = None,
        notifier: ChangeNotifier | None = None,
    ):
        """Initialize watcher.

        Args:
            config: Watcher configuration
            matcher: Ignore matcher (built from config.ignore_patterns if omitted)
            notifier: Native notifier (WatchdogNotifier if omitted)
        """
        self.config = config
        self.matcher = matcher or IgnoreMatcher(config.ignore_patterns, config.dirs)
        self.notifier: ChangeNotifier = notifier or WatchdogNotifier(self.dispatch)
        self._signal: ChangeSignal | None = None
        self._debouncer: Debouncer | None = None
        self._stamps: dict[str, tuple[int, int]] = {}

    def add_directory(self, root: str | Path, token: CancelToken | None = None) -> int:
        """Recursively subscribe root and its non-ignored subdirectories.

        Ignored directories are pruned together with their whole subtree.
        Walk and subscription errors are logged and skipped.

        Args:
            root: Directory to walk
            token: Optional token; cancelling it aborts the walk

        Returns:
            Number of directories subscribed

        Raises:
            WalkCancelledError: If token was cancelled during the walk
        """
        root = os.path.abspath(root)
        added = 0

        def on_walk_error(error: OSError) -> None:
            logger.error(f"Failed walking directory {error.filename}: {error}")

        for dirpath, dirnames, filenames in os.walk(root, onerror=on_walk_error):
            if token is not None and token.cancelled:
                raise WalkCancelledError(f"Walk of {root} cancelled")

            if self.matcher.matches(dirpath, is_dir=True):
                logger.debug(f"Skipping ignored directory: {dirpath}")
                dirnames[:] = []
                continue

            try:
                self.notifier.add(dirpath)
            except Exception as e:
                logger.error(f"Failed to add directory {dirpath} to watcher: {e}")
            else:
                added += 1
                logger.debug(f"Added directory to watcher: {dirpath}")

            dirnames[:] = [d for d in dirnames if not self.matcher.matches(os.path.join(dirpath, d), is_dir=True)]
            for name in filenames:
                path = os.path.join(dirpath, name)
                if not self.matcher.matches(path, is_dir=False):
                    self._remember(path)

        return added

    def listen(self, loop: asyncio.AbstractEventLoop) -> ChangeSignal:
        """Start watching and return the debounced change signal.

        The signal fires once right away so the first build needs no edit.

        Args:
            loop: Event loop that consumes the signal

        Returns:
            ChangeSignal; closed with the terminal error if watching fails
        """
        self._signal = ChangeSignal(loop)
        self._debouncer = Debouncer(self.config.debounce_ms, self._signal.fire)
        self._debouncer.arm()

        try:
            self.notifier.start()
        except Exception as e:
            self.fail(e)
        else:
            logger.info(f"Watching {len(self.config.dirs)} root(s) (debounce: {self.config.debounce_ms}ms)")
        return self._signal

    def dispatch(self, event: FileSystemEvent) -> None:
        """Handle a raw event from the notifier thread."""
        try:
            should_fire = self.handle_event(event)
        except Exception as e:
            logger.warning(f"Event handling failed for {event.src_path}: {e}")
            return

        if should_fire and self._debouncer is not None:
            self._debouncer.arm()

    def handle_event(self, event: FileSystemEvent) -> bool:
        """Classify one event and keep the subscription in sync.

        Args:
            event: Raw watchdog event

        Returns:
            True if the event is a change that should trigger a rebuild
        """
        src = os.fsdecode(event.src_path)
        kind = event.event_type

        if kind == EVENT_TYPE_MOVED:
            return self._handle_move(event, src, os.fsdecode(event.dest_path))

        is_dir = event.is_directory or (kind == EVENT_TYPE_CREATED and os.path.isdir(src))
        if self.matcher.matches(src, is_dir=is_dir):
            logger.debug(f"Ignoring {kind} event for {src}")
            return False

        if kind == EVENT_TYPE_CREATED:
            logger.debug(f"Created: {src}")
            if is_dir:
                self.add_directory(src)
                return self._tree_has_sources(src)
            self._remember(src)
            return self._matches_filters(src)

        if kind == EVENT_TYPE_MODIFIED:
            if event.is_directory:
                return False
            # watchdog reports attribute changes as modifications
            return self._matches_filters(src) and self._content_changed(src)

        if kind == EVENT_TYPE_DELETED:
            logger.debug(f"Deleted: {src}")
            self._stamps.pop(src, None)
            if event.is_directory:
                self._discard(src)
                return self._forget_tree(src)
            return self._matches_filters(src)

        return False

    def fail(self, error: BaseException) -> None:
        """Stop signalling and close the signal with a terminal error."""
        logger.error(f"File watcher failed: {error}")
        if self._debouncer is not None:
            self._debouncer.cancel()
        if self._signal is not None:
            self._signal.close(WatcherError(str(error)))

    def close(self) -> None:
        """Stop watching and close the signal."""
        if self._debouncer is not None:
            self._debouncer.cancel()
        try:
            self.notifier.stop()
        except Exception as e:
            logger.error(f"Failed to stop file watcher: {e}")
        if self._signal is not None:
            self._signal.close()
        logger.debug("File watcher stopped")

    def _handle_move(self, event: FileSystemEvent, src: str, dest: str) -> bool:
        src_ignored = self.matcher.matches(src, is_dir=event.is_directory)
        dest_ignored = self.matcher.matches(dest, is_dir=event.is_directory)
        if src_ignored and dest_ignored:
            logger.debug(f"Ignoring move {src} -> {dest}")
            return False

        self._stamps.pop(src, None)
        if event.is_directory:
            self._discard(src)
            had_sources = self._forget_tree(src)
            if dest_ignored:
                return had_sources
            self.add_directory(dest)
            return had_sources or self._tree_has_sources(dest)

        if not dest_ignored:
            self._remember(dest)
        return self._matches_filters(src) or self._matches_filters(dest)

    def _matches_filters(self, path: str) -> bool:
        """Check if a file path passes the extension filter."""
        if self.config.extensions is None:
            return True
        return Path(path).suffix in self.config.extensions

    def _tree_has_sources(self, path: str) -> bool:
        """Whether a directory holds a file passing the extension filter."""
        if self.config.extensions is None:
            return True
        prefix = os.path.join(path, "")
        return any(p.startswith(prefix) and self._matches_filters(p) for p in list(self._stamps))

    def _forget_tree(self, path: str) -> bool:
        """Drop the stamps under a removed directory; True if any passed the extension filter."""
        prefix = os.path.join(path, "")
        gone = [p for p in list(self._stamps) if p.startswith(prefix)]
        for p in gone:
            self._stamps.pop(p, None)
        return self.config.extensions is None or any(self._matches_filters(p) for p in gone)

    def _remember(self, path: str) -> None:
        stamp = self._stamp(path)
        if stamp is not None:
            self._stamps[path] = stamp

    def _content_changed(self, path: str) -> bool:
        stamp = self._stamp(path)
        if stamp is None:
            self._stamps.pop(path, None)
            return True
        previous = self._stamps.get(path)
        self._stamps[path] = stamp
        return previous != stamp

    @staticmethod
    def _stamp(path: str) -> tuple[int, int] | None:
        try:
            st = os.stat(path)
        except OSError:
            return None
        return st.st_mtime_ns, st.st_size

    def _discard(self, path: str) -> None:
        try:
            self.notifier.discard(path)
        except Exception as e:
            logger.debug(f"Failed to drop watch for {path}: {e}")
