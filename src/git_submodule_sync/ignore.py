"""Exclude submodules from synchronization with a gitignore-style file."""

from collections.abc import Iterable, Iterator
from pathlib import Path

import pathspec

from .models import SubmoduleEntry


def load_ignore_spec(root_dir: str | Path, ignore_filename: str) -> pathspec.PathSpec:
    """
    Build a matcher from every ignore file at or above root_dir.

    Ignore files are read from the outermost directory down to root_dir, so
    patterns in deeper files (including `!negations`) take precedence.

    Args:
        root_dir: Root repository directory.
        ignore_filename: Name of the ignore file (e.g., ".syncignore").

    Returns:
        A PathSpec using gitignore semantics. Empty if no file exists.

    """
    root_dir = Path(root_dir).resolve()

    # Walk up from root_dir to find all ignore files
    ignore_files = [
        ignore_file
        for parent in [root_dir, *root_dir.parents]
        if (ignore_file := parent / ignore_filename).is_file()
    ]

    # Read in reverse order (root first) so deeper files override
    ignore_files.reverse()

    patterns = []
    for ignore_file in ignore_files:
        with open(ignore_file) as f:
            patterns.extend(f.read().splitlines())

    return pathspec.PathSpec.from_lines("gitwildmatch", patterns)


def is_ignored(entry: SubmoduleEntry, spec: pathspec.PathSpec) -> bool:
    # Match both "libs/core" and "libs/core/" so directory patterns apply
    return spec.match_file(entry.path) or spec.match_file(f"{entry.path.rstrip('/')}/")


def filter_submodules_by_ignore_file(
    entries: Iterable[SubmoduleEntry],
    root_dir: str | Path,
    ignore_filename: str,
) -> Iterator[SubmoduleEntry]:
    """
    Drop submodules whose path matches the ignore file.

    Supports the usual gitignore syntax:
    - Simple patterns: vendor-lib
    - Wildcards: archived-*, libs/*
    - Negation: !libs/core
    - Comments: # lines starting with hash

    Example:
        entries = read_submodule_entries(root)
        for entry in filter_submodules_by_ignore_file(entries, root, ".syncignore"):
            print(entry.path)

    """
    spec = load_ignore_spec(root_dir, ignore_filename)
    for entry in entries:
        if not is_ignored(entry, spec):
            yield entry
