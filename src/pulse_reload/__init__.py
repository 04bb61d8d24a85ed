"""pulse: live-reload orchestrator for compiled programs."""

__version__ = "0.1.0"

# Public API
from pulse_reload.controller import Orchestrator

__all__ = [
    "__version__",
    "Orchestrator",
]
