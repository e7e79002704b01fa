"""Re-materialize submodules and put each one on its configured branch."""

import logging
from collections.abc import Iterable
from pathlib import Path

from .control import GitControl, RepositoryControl
from .errors import SubmoduleError
from .gitmodules import read_submodule_entries
from .ignore import filter_submodules_by_ignore_file
from .models import RefreshResult, SubmoduleEntry
from .paths import resolve_repo, submodule_checkout

logger = logging.getLogger(__name__)

UNCOMMITTED_CHANGES = "uncommitted changes"


def reinitialize_submodules(
    root: Path,
    control: RepositoryControl,
    paths: Iterable[str] | None = None,
) -> None:
    """
    Deinit, sync and recursively update submodules of root.

    Afterwards every reinitialized submodule is checked out at its recorded
    commit. `deinit -f` discards uncommitted changes, so callers pass
    `paths` to leave dirty submodules out.

    Args:
        root: Root repository.
        control: Repository control to use.
        paths: Limit deinit and update to these submodule paths. Defaults to
               every submodule. An empty list does nothing.

    Raises:
        SubmoduleError: If any of the three steps fails.

    """
    if paths is not None:
        paths = list(paths)
        if not paths:
            logger.info("No submodules to reinitialize in %s", root)
            return

    steps = (
        ("deinit", control.submodule_deinit, (paths,)),
        ("sync", control.submodule_sync, ()),
        ("update", control.submodule_update, (paths,)),
    )
    for name, step, args in steps:
        result = step(root, *args)
        if not result.ok:
            raise SubmoduleError(f"git submodule {name} failed in {root}", result.error_text)


def paths_to_reinitialize(
    entries: Iterable[SubmoduleEntry],
    kept: set[str],
) -> list[str] | None:
    """Every submodule path except `kept`, or None (all) when nothing is kept."""
    if not kept:
        return None
    return [entry.path for entry in entries if entry.path not in kept]


def refresh_submodules(
    root: str | Path | None = None,
    control: RepositoryControl | None = None,
    default_branch: str = "main",
    remote: str = "origin",
    ignore_file: str | None = None,
) -> list[RefreshResult]:
    """
    Reset submodules and switch each one to the branch `.gitmodules` names.

    For every submodule the branch is its `branch` field, or default_branch
    when unset. The submodule fetches from remote, then a local branch is
    reset to track `remote/branch`; if that ref doesn't exist the existing
    local branch is checked out instead. Submodules where neither works are
    left detached and reported with `switched=False`.

    Submodules with uncommitted changes are not reinitialized or switched;
    they are reported with `switched=False` and detail "uncommitted changes".

    Args:
        root: Root repository. Defaults to current directory.
        control: Repository control to use. Defaults to GitControl.
        default_branch: Branch for submodules without a `branch` field.
        remote: Remote to fetch and track.
        ignore_file: Optional gitignore-style file listing submodules to leave alone.

    Returns:
        One RefreshResult per submodule, in `.gitmodules` order.

    Raises:
        NotARepository: If root is not a repository.
        GitmodulesError: If `.gitmodules` is unreadable.
        SubmoduleError: If deinit, sync or update fails.

    Example:
        for result in refresh_submodules(Path("~/develop/platform")):
            print(result.path, result.branch, result.switched)

    """
    root = resolve_repo(root)
    control = control or GitControl()

    entries = all_entries = read_submodule_entries(root)
    if ignore_file:
        entries = list(filter_submodules_by_ignore_file(entries, root, ignore_file))

    dirty = set()
    for entry in entries:
        sub = submodule_checkout(root, entry.path)
        if sub is not None and control.has_changes(sub):
            logger.warning("[%s] has uncommitted changes, leaving it as is", entry.path)
            dirty.add(entry.path)

    reinitialize_submodules(root, control, paths_to_reinitialize(all_entries, dirty))

    results = []
    for entry in entries:
        branch = entry.branch or default_branch

        if entry.path in dirty:
            results.append(RefreshResult(entry.path, branch, False, UNCOMMITTED_CHANGES))
            continue

        sub = submodule_checkout(root, entry.path)
        if sub is None:
            logger.warning("[%s] not checked out after update, skipping", entry.path)
            results.append(RefreshResult(entry.path, branch, False, "missing path"))
            continue

        fetched = control.fetch(sub, remote=remote)
        if not fetched.ok:
            logger.warning("[%s] fetch from %s failed: %s", entry.path, remote, fetched.error_text)

        switched = control.switch_tracking(sub, branch, remote=remote)
        if not switched.ok:
            switched = control.checkout(sub, branch)

        if switched.ok:
            logger.info("[%s] on %s", entry.path, branch)
            results.append(RefreshResult(entry.path, branch, True))
        else:
            logger.warning("[%s] no branch %s", entry.path, branch)
            results.append(RefreshResult(entry.path, branch, False, switched.error_text))

    return results
