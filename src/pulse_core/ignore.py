"""Gitignore-style path exclusion for the watcher."""

import logging
import os
from collections.abc import Iterable
from pathlib import Path

import pathspec

logger = logging.getLogger(__name__)

DEFAULT_PRESET = (".git", ".idea", ".yarn", ".vscode", ".github", "node_modules")
"""Directories excluded unless the preset is disabled."""

IGNORE_FILES = (".gitignore", ".pulseignore")

_UTF8_BOM = "\ufeff"


class IgnoreMatcher:
    """Answer whether a path is excluded from watching and triggering.

    Paths are matched relative to the watch root that contains them, using
    gitignore semantics. Paths outside every root are matched as given.
    """

    def __init__(self, patterns: Iterable[str] = (), roots: Iterable[str | Path] = ()):
        """Initialize matcher.

        Args:
            patterns: Ordered gitignore-style patterns
            roots: Watch roots that patterns are relative to
        """
        self.patterns: tuple[str, ...] = tuple(patterns)
        self.roots: tuple[Path, ...] = tuple(Path(os.path.abspath(r)) for r in roots)
        self._spec = pathspec.GitIgnoreSpec.from_lines(self.patterns)

    def matches(self, path: str | Path, is_dir: bool | None = None) -> bool:
        """Check whether path is ignored.

        A watch root is never ignored, whatever its name.

        Args:
            path: Absolute or root-relative path
            is_dir: Whether path is a directory; looked up on disk when None

        Returns:
            True if the path should be excluded
        """
        if not self.patterns:
            return False

        path = Path(os.path.abspath(path))
        if path in self.roots:
            return False

        if is_dir is None:
            is_dir = path.is_dir()

        candidate = self._relative(path).as_posix()
        if is_dir:
            candidate += "/"
        return self._spec.match_file(candidate)

    def _relative(self, path: Path) -> Path:
        for root in self.roots:
            try:
                return path.relative_to(root)
            except ValueError:
                continue
        return path


def read_ignore_file(path: str | Path) -> list[str]:
    """Read patterns from an ignore file.

    Args:
        path: Path to .gitignore-style file

    Returns:
        Lines of the file, or an empty list if it is missing or unreadable
    """
    path = Path(path)
    if not path.is_file():
        return []

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Failed to read {path}: {e}")
        return []

    if text.startswith(_UTF8_BOM):
        text = text[len(_UTF8_BOM) :]
    lines = text.splitlines()
    logger.debug(f"Read {path}: {lines}")
    return lines


def merge_ignore_patterns(*groups: Iterable[str]) -> list[str]:
    """Merge pattern groups, keeping first occurrences and dropping blanks."""
    seen: set[str] = set()
    merged: list[str] = []
    for group in groups:
        for pattern in group:
            if not pattern or pattern in seen:
                continue
            merged.append(pattern)
            seen.add(pattern)
    return merged


def collect_ignore_patterns(
    roots: Iterable[str | Path],
    excludes: Iterable[str] = (),
    use_preset: bool = True,
) -> list[str]:
    """Gather ignore files of every watch root, explicit excludes and the preset.

    Args:
        roots: Watch roots to read .gitignore and .pulseignore from
        excludes: Patterns given on the command line or in config
        use_preset: Whether to append DEFAULT_PRESET

    Returns:
        Merged pattern list
    """
    groups: list[Iterable[str]] = []
    for root in roots:
        for name in IGNORE_FILES:
            groups.append(read_ignore_file(Path(root) / name))
    groups.append(excludes)
    if use_preset:
        groups.append(DEFAULT_PRESET)
    return merge_ignore_patterns(*groups)
