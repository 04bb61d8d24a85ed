"""Exception types raised across pulse."""


class PulseError(Exception):
    """Base class for pulse errors."""


class ConfigError(PulseError):
    """Invalid configuration; fatal before the watch loop starts."""


class WatcherError(PulseError):
    """The filesystem watcher stopped with a terminal error."""


class WalkCancelledError(PulseError):
    """A directory walk was aborted through its cancellation token."""
