"""Watcher configuration and the protocol for native change notifiers."""

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from watchdog.events import FileSystemEvent


@dataclass
class WatcherConfig:
    """Configuration for the file watcher."""

    dirs: list[Path] = field(default_factory=lambda: [Path(".")])
    """Root directories to watch recursively."""

    ignore_patterns: list[str] = field(default_factory=list)
    """Gitignore-style exclusion patterns."""

    extensions: list[str] | None = None
    """Only file events with these suffixes trigger (None = any file)."""

    debounce_ms: int = 100
    """Quiet period in milliseconds before a change is signalled."""


EventCallback = Callable[[FileSystemEvent], None]


class ChangeNotifier(Protocol):
    """Protocol for native filesystem notification sources.

    Implementations subscribe single directories (non-recursively) and hand
    raw events to the callback given at construction.
    """

    def add(self, path: str) -> None:
        """Subscribe a single directory."""
        ...

    def discard(self, path: str) -> None:
        """Drop the subscription of a directory that went away."""
        ...

    def start(self) -> None:
        """Start delivering events."""
        ...

    def stop(self) -> None:
        """Stop delivering events."""
        ...
