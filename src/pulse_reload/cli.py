"""CLI entry point for pulse: watch, rebuild and restart a Go program."""

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Sequence
from typing import Any

from pulse_core.cancel import CancelToken
from pulse_core.config import PulseConfig, build_config, load_config_file, validate_config
from pulse_core.errors import ConfigError, WatcherError
from pulse_core.models import RestartPolicy
from pulse_core.notifier import LoggingNotifier
from pulse_reload import __version__
from pulse_reload.controller import Orchestrator

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOGGER_NAMES = ("pulse", "pulse_core", "pulse_reload")


def split_run_args(argv: Sequence[str]) -> tuple[list[str], list[str]]:
    """Split argv at the first "--".

    Returns:
        Tuple of (pulse arguments, arguments for the target process)
    """
    argv = list(argv)
    if "--" in argv:
        i = argv.index("--")
        return argv[:i], argv[i + 1 :]
    return argv, []


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments (without the trailing "-- args").

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="pulse",
        description="Rebuild and restart a Go program whenever its sources change.",
        epilog="Examples:\n"
        "  pulse                              # Build and run the package in .\n"
        "  pulse -x dist -wd ../shared ./cmd/api\n"
        "  pulse -buildArgs=-race -- --port 8080\n"
        "\n"
        "Environment:\n"
        "  LOG_LEVEL  DEBUG, INFO, WARN(ING) or ERROR (default: INFO)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
    )

    parser.add_argument("package", nargs="?", default=None, help="Package to build (default: .)")
    parser.add_argument(
        "-x",
        dest="excludes",
        action="append",
        default=[],
        metavar="PATTERN",
        help="Exclude pattern (gitignore syntax). Can be set multiple times.",
    )
    parser.add_argument(
        "-wd",
        dest="watch_dirs",
        action="append",
        default=[],
        metavar="DIR",
        help="Directory to watch (default: .). Can be set multiple times.",
    )
    parser.add_argument("-cwd", dest="working_dir", default=None, metavar="DIR", help="Working directory of the program.")
    parser.add_argument(
        "-buildArgs",
        dest="build_args",
        action="append",
        default=[],
        metavar="ARG",
        help="Additional build argument; use -buildArgs=-flag for dashed values.",
    )
    parser.add_argument("-pbc", dest="prebuild_command", default=None, metavar="COMMAND", help="Command to run before every build.")
    parser.add_argument("-xp", dest="disable_preset", action="store_true", default=None, help="Disable built-in exclude preset.")
    parser.add_argument("-go", dest="only_go", action="store_true", default=None, help="Reload only when .go files change.")
    parser.add_argument("--config", default=None, help="Path to TOML config file (default: pulse.toml if present)")
    parser.add_argument("--debounce", dest="debounce_ms", type=int, default=None, metavar="MS", help="Quiet period in ms (default: 100)")
    parser.add_argument("--grace", dest="grace_period", type=float, default=None, metavar="SECONDS", help="Seconds before force-kill (default: 3)")
    parser.add_argument(
        "--keep-running",
        dest="restart_policy",
        action="store_const",
        const=RestartPolicy.KEEP_RUNNING.value,
        default=None,
        help="Keep the program running until a rebuild succeeds.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    return parser.parse_args(argv)


def config_from_args(args: argparse.Namespace, run_args: Sequence[str] = (), environ=None) -> PulseConfig:
    """Build and validate the run configuration.

    Raises:
        ConfigError: If the configuration is invalid
    """
    overrides: dict[str, Any] = {
        "package_path": args.package,
        "excludes": args.excludes,
        "watch_dirs": args.watch_dirs,
        "working_dir": args.working_dir,
        "build_args": args.build_args,
        "prebuild_command": args.prebuild_command,
        "disable_preset": args.disable_preset,
        "only_go": args.only_go,
        "debounce_ms": args.debounce_ms,
        "grace_period": args.grace_period,
        "restart_policy": args.restart_policy,
        "run_args": list(run_args),
    }
    config = build_config(overrides, load_config_file(args.config), environ)
    validate_config(config)
    return config


def configure_logging(level: str = "INFO") -> None:
    """Send pulse logs to stdout at the given level."""
    logging.basicConfig(format=LOG_FORMAT, datefmt="%H:%M:%S", stream=sys.stdout)
    for name in LOGGER_NAMES:
        logging.getLogger(name).setLevel(level)


async def run(config: PulseConfig) -> None:
    """Run the reload loop until interrupted."""
    token = CancelToken()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, token.cancel)
        except (NotImplementedError, RuntimeError):
            # Windows: KeyboardInterrupt cancels the main task instead
            pass

    orchestrator = Orchestrator.from_config(config, notifier=LoggingNotifier())
    await orchestrator.run(token)


def main(argv: Sequence[str] | None = None) -> None:
    """
    Main entry point for pulse CLI.

    Handles:
    - Argument parsing and configuration
    - Running the reload loop
    - Error handling and exit codes
    """
    pulse_argv, run_args = split_run_args(sys.argv[1:] if argv is None else argv)
    args = parse_args(pulse_argv)

    try:
        config = config_from_args(args, run_args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    configure_logging(config.log_level)

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        pass
    except WatcherError as e:
        print(f"Error: watcher stopped: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
