"""Locating the root working tree and its submodule checkouts."""

from pathlib import Path

from .errors import NotARepository


def is_working_tree(path: Path) -> bool:
    """
    Check whether path is an absolute directory with a `.git` entry.

    The entry is a directory in a regular clone and a `gitdir:` file in a
    submodule checkout or linked worktree.
    """
    return path.is_absolute() and path.is_dir() and (path / ".git").exists()


def resolve_repo(repo: str | Path | None = None) -> Path:
    """
    Turn a user supplied root path into an absolute working tree path.

    Args:
        repo: Root repository; `~` is expanded. Defaults to the current
              directory when None or empty.

    Raises:
        NotARepository: If the path is not a git working tree.

    Example:
        root = resolve_repo("~/develop/platform")
    """
    path = Path(repo).expanduser().resolve() if repo else Path.cwd()
    if not is_working_tree(path):
        raise NotARepository(f"{path} is not a git repository")
    return path


def submodule_checkout(root: Path, relative_path: str) -> Path | None:
    """
    Working tree of the submodule at relative_path, or None if not checked out.

    A submodule that was never initialized leaves an empty directory behind,
    which counts as not checked out.
    """
    path = root / relative_path
    return path if is_working_tree(path) else None
