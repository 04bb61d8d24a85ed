"""Allow `python -m pulse_reload`."""

from pulse_reload.cli import main

main()
