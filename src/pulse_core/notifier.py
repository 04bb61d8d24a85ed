"""Pluggable notification protocol for pulse_core.

Builder, runner and orchestrator report user-facing progress ("Building...",
"Build failed", "Process exited with code 1") through a notifier, so an
embedding host can route it somewhere other than the log.
"""

import logging
from typing import Protocol

PROGRESS_LOGGER = "pulse"


class PulseNotifier(Protocol):
    """Receiver of progress messages, one method per severity."""

    def info(self, message: str) -> None:
        """Routine progress: build started, build succeeded, process started."""
        ...

    def warning(self, message: str) -> None:
        """Recoverable trouble: non-zero exit, forced kill."""
        ...

    def error(self, message: str) -> None:
        """Failed build or failed spawn. The loop keeps running."""
        ...


class NoOpNotifier:
    """Drops every message. Used when a component is embedded without a notifier."""

    def info(self, message: str) -> None:
        return None

    warning = info
    error = info


class LoggingNotifier:
    """Forwards messages to a logger ("pulse" unless another one is given)."""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(PROGRESS_LOGGER)

    def info(self, message: str) -> None:
        self.logger.info(message)

    def warning(self, message: str) -> None:
        self.logger.warning(message)

    def error(self, message: str) -> None:
        self.logger.error(message)


class RecordingNotifier:
    """Keeps (level, message) pairs in memory, for tests and embedding hosts."""

    def __init__(self):
        self.messages: list[tuple[str, str]] = []

    def info(self, message: str) -> None:
        self.messages.append(("info", message))

    def warning(self, message: str) -> None:
        self.messages.append(("warning", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))

    def texts(self, level: str | None = None) -> list[str]:
        """Messages in arrival order, optionally only those of one level."""
        return [m for lv, m in self.messages if level is None or lv == level]
