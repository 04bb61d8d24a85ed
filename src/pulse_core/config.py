"""Configuration for pulse: optional TOML file, CLI overrides and environment."""

import dataclasses
import hashlib
import logging
import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore

from pulse_core.builder import DEFAULT_BUILD_COMMAND
from pulse_core.errors import ConfigError
from pulse_core.models import RestartPolicy
from pulse_core.runner import DEFAULT_GRACE_PERIOD

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "pulse.toml"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
LOG_LEVEL_ALIASES = {"WARN": "WARNING"}
GO_EXTENSIONS = (".go",)


@dataclass(frozen=True)
class PulseConfig:
    """Immutable run configuration, built once and passed to every component."""

    package_path: Path = field(default_factory=lambda: Path(".").resolve())
    """Package to build."""

    watch_dirs: tuple[Path, ...] = (Path("."),)
    """Roots watched recursively."""

    working_dir: Path = Path(".")
    """Working directory of the target process."""

    excludes: tuple[str, ...] = ()
    """Extra gitignore-style exclusion patterns."""

    build_args: tuple[str, ...] = ()
    """Extra build tool arguments."""

    prebuild_command: str | None = None
    """Shell command run before every build."""

    disable_preset: bool = False
    """Skip the built-in exclusion preset."""

    only_go: bool = False
    """Only .go file changes trigger a rebuild."""

    run_args: tuple[str, ...] = ()
    """Arguments forwarded to the target process."""

    build_command: tuple[str, ...] = DEFAULT_BUILD_COMMAND
    """Build tool invocation."""

    debounce_ms: int = 100
    """Quiet period before a change is signalled."""

    grace_period: float = DEFAULT_GRACE_PERIOD
    """Seconds between interrupt and force-kill."""

    restart_policy: RestartPolicy = RestartPolicy.STOP_FIRST
    """When the running instance is stopped relative to a rebuild."""

    log_level: str = "INFO"
    """Minimum log severity."""

    @property
    def extensions(self) -> list[str] | None:
        """Trigger extensions (None means any file)."""
        return list(GO_EXTENSIONS) if self.only_go else None


_FIELDS = {f.name for f in dataclasses.fields(PulseConfig)}
_TUPLE_FIELDS = {"watch_dirs", "excludes", "build_args", "run_args", "build_command"}


def load_config_file(path: str | Path | None = None) -> dict[str, Any]:
    """Load config values from a TOML file.

    Args:
        path: Explicit file; when None, pulse.toml in the working directory is
            used if it exists

    Returns:
        Mapping of PulseConfig field names to raw values

    Raises:
        ConfigError: If an explicit file is missing, unparsable or has unknown keys
    """
    if path is None:
        path = Path(DEFAULT_CONFIG_FILE)
        if not path.is_file():
            return {}
    path = Path(path)

    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e

    unknown = sorted(set(raw) - _FIELDS)
    if unknown:
        raise ConfigError(f"Unknown keys in {path}: {', '.join(unknown)}")

    logger.debug(f"Loaded config file {path}: {raw}")
    return raw


def build_config(
    overrides: Mapping[str, Any] | None = None,
    file_values: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> PulseConfig:
    """Merge defaults, file values and CLI overrides into a PulseConfig.

    None-valued and empty overrides leave the file value in place, except for
    excludes which are concatenated.

    Args:
        overrides: Values from the command line
        file_values: Values from load_config_file()
        environ: Environment (LOG_LEVEL)

    Returns:
        Validated-for-type PulseConfig (see validate_config for filesystem checks)
    """
    overrides = overrides or {}
    values: dict[str, Any] = dict(file_values or {})

    for key, value in overrides.items():
        if key not in _FIELDS:
            raise ConfigError(f"Unknown option: {key}")
        if value is None or (key in _TUPLE_FIELDS and not value):
            continue
        if key == "excludes":
            value = [*values.get("excludes", []), *value]
        values[key] = value

    environ = os.environ if environ is None else environ
    if environ.get("LOG_LEVEL"):
        values["log_level"] = environ["LOG_LEVEL"]

    try:
        return _coerce(values)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def _coerce(values: dict[str, Any]) -> PulseConfig:
    kwargs: dict[str, Any] = {}
    for key, value in values.items():
        if key in _TUPLE_FIELDS:
            if isinstance(value, str):
                raise TypeError(f"{key} must be a list, got a string")
            value = tuple(Path(v) for v in value) if key == "watch_dirs" else tuple(str(v) for v in value)
        elif key == "package_path":
            value = Path(value).resolve()
        elif key == "working_dir":
            value = Path(value)
        elif key == "restart_policy" and not isinstance(value, RestartPolicy):
            value = RestartPolicy(value)
        elif key == "debounce_ms":
            value = int(value)
        elif key == "grace_period":
            value = float(value)
        elif key == "log_level":
            value = str(value).upper()
            value = LOG_LEVEL_ALIASES.get(value, value)
        elif key in ("disable_preset", "only_go"):
            value = bool(value)
        kwargs[key] = value
    return PulseConfig(**kwargs)


def validate_config(config: PulseConfig) -> None:
    """Check a configuration against the filesystem.

    Raises:
        ConfigError: On the first problem found
    """
    if config.log_level not in LOG_LEVELS:
        raise ConfigError(f"Invalid LOG_LEVEL {config.log_level!r}; expected one of {', '.join(LOG_LEVELS)}")
    if config.debounce_ms <= 0:
        raise ConfigError(f"debounce_ms must be positive, got {config.debounce_ms}")
    if config.grace_period <= 0:
        raise ConfigError(f"grace_period must be positive, got {config.grace_period}")
    if not config.build_command:
        raise ConfigError("build_command must not be empty")

    for watch_dir in config.watch_dirs:
        if not watch_dir.exists():
            raise ConfigError(f"Watch path {watch_dir} does not exist")
        if not watch_dir.is_dir():
            raise ConfigError(f"Watch path {watch_dir} is not a directory")

    if not config.working_dir.is_dir():
        raise ConfigError(f"Working directory {config.working_dir} is not a directory")


def output_binary_path(package_path: str | Path, scratch_dir: str | Path | None = None) -> Path:
    """Derive the output binary location for a package.

    The name is the package's base name plus the first four hex digits of the
    md5 of its absolute path, so distinct packages never share a binary.

    Args:
        package_path: Absolute package path
        scratch_dir: Directory for binaries (default: <tempdir>/pulse)

    Returns:
        Path inside the (created) scratch directory
    """
    package_path = str(package_path)
    digest = hashlib.md5(package_path.encode(), usedforsecurity=False).hexdigest()[:4]
    name = os.path.basename(package_path.rstrip("/\\")) + digest
    if os.name == "nt" and not name.endswith(".exe"):
        name += ".exe"

    directory = Path(scratch_dir) if scratch_dir is not None else Path(tempfile.gettempdir()) / "pulse"
    directory.mkdir(mode=0o755, parents=True, exist_ok=True)
    return directory / name
