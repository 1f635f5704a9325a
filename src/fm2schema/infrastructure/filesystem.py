"""Filesystem port and input discovery.

:class:`LocalFileSystem` is the only place that touches the disk for
reads, listings and writes.  OSErrors propagate; callers translate them
into the typed error for their stage.
"""

from __future__ import annotations

import builtins
import glob
from collections.abc import Iterable, Sequence
from pathlib import Path

DEFAULT_EXTENSIONS: tuple[str, ...] = (".md", ".markdown")

# Directories to skip when walking an input directory.
DEFAULT_SKIP_DIRS: frozenset[str] = frozenset({".git", "node_modules", ".venv"})


class LocalFileSystem:
    """Reads and writes UTF-8 text on the local disk."""

    def read_text(self, path: Path) -> str:
        return Path(path).read_text(encoding="utf-8")

    def write_text(self, path: Path, text: str) -> None:
        """Write *text*, creating parent directories if they don't exist."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")

    def exists(self, path: Path) -> bool:
        return Path(path).exists()

    def list(self, pattern: str) -> builtins.list[Path]:
        """Files matching a glob *pattern* (``**`` recurses), sorted."""
        return sorted(Path(p) for p in glob.glob(pattern, recursive=True) if Path(p).is_file())


def resolve_inputs(
    patterns: Sequence[str | Path],
    *,
    extensions: Iterable[str] = DEFAULT_EXTENSIONS,
    skip_dirs: Iterable[str] = DEFAULT_SKIP_DIRS,
    fs: LocalFileSystem | None = None,
) -> list[Path]:
    """Expand files, directories and globs into a de-duplicated file list.

    - An existing file is taken as-is, whatever its extension.
    - A directory is walked recursively for files with *extensions*,
      skipping *skip_dirs*.
    - Anything else is treated as a glob; matches are filtered by
      *extensions*.

    Order follows *patterns*; matches within one pattern are sorted.
    """
    fs = fs or LocalFileSystem()
    suffixes = {e.lower() for e in extensions}
    skipped = frozenset(skip_dirs)

    seen: set[Path] = set()
    results: list[Path] = []

    def add(path: Path) -> None:
        key = path.resolve()
        if key not in seen:
            seen.add(key)
            results.append(path)

    for raw in patterns:
        path = Path(raw)
        if path.is_file():
            add(path)
        elif path.is_dir():
            for found in sorted(path.rglob("*")):
                if not found.is_file() or found.suffix.lower() not in suffixes:
                    continue
                if any(part in skipped for part in found.relative_to(path).parts):
                    continue
                add(found)
        else:
            for found in fs.list(str(raw)):
                if found.suffix.lower() in suffixes:
                    add(found)
    return results
