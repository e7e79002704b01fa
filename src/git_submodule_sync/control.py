"""Narrow interface to git used by the orchestrator and the refresher.

`RepositoryControl` is the only way the sync and refresh code touches a
repository. `GitControl` implements it by shelling out to the git CLI; tests
substitute an in-memory implementation.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

from . import git
from .models import CommandResult

logger = logging.getLogger(__name__)


class RepositoryControl(Protocol):
    """
    Queries return plain values. Commands return a `CommandResult` and never
    raise on a non-zero exit; the caller decides whether a failure matters.
    """

    # Queries

    def current_branch(self, repo: Path) -> str: ...

    def has_changes(self, repo: Path, ignore_submodules: bool = False) -> bool: ...

    def branch_exists(self, repo: Path, branch: str) -> bool: ...

    def remote_branch_exists(self, repo: Path, branch: str, remote: str = "origin") -> bool: ...

    def upstream(self, repo: Path, branch: str) -> str | None: ...

    def rev_parse(self, repo: Path, ref: str) -> str | None: ...

    def is_ancestor(self, repo: Path, ancestor: str, descendant: str) -> bool: ...

    def commits_ahead(self, repo: Path, base: str, ref: str) -> int: ...

    def has_staged_changes(self, repo: Path) -> bool: ...

    # Commands

    def submodule_deinit(self, repo: Path, paths: Iterable[str] | None = None) -> CommandResult: ...

    def submodule_sync(self, repo: Path) -> CommandResult: ...

    def submodule_update(self, repo: Path, paths: Iterable[str] | None = None) -> CommandResult: ...

    def fetch(
        self,
        repo: Path,
        remote: str = "origin",
        branch: str | None = None,
        all_remotes: bool = False,
    ) -> CommandResult: ...

    def create_branch(self, repo: Path, name: str, start_point: str) -> CommandResult: ...

    def checkout(self, repo: Path, branch: str) -> CommandResult: ...

    def switch_tracking(self, repo: Path, branch: str, remote: str = "origin") -> CommandResult: ...

    def merge(self, repo: Path, ref: str) -> CommandResult: ...

    def merge_abort(self, repo: Path) -> CommandResult: ...

    def rebase(self, repo: Path, onto: str) -> CommandResult: ...

    def rebase_abort(self, repo: Path) -> CommandResult: ...

    def push(
        self,
        repo: Path,
        remote: str,
        branch: str,
        set_upstream: bool = False,
    ) -> CommandResult: ...

    def add(self, repo: Path, paths: Iterable[str]) -> CommandResult: ...

    def add_all(self, repo: Path) -> CommandResult: ...

    def add_tracked(self, repo: Path, exclude: Iterable[str] = ()) -> CommandResult: ...

    def commit(self, repo: Path, message: str) -> CommandResult: ...


class GitControl:
    """`RepositoryControl` backed by the git command line."""

    def _run(self, repo: Path, *args: str) -> CommandResult:
        logger.debug("git -C %s %s", repo, " ".join(args))
        completed = git.run_git(*args, repo=repo, capture=True, check=False)
        result = CommandResult(
            args=tuple(args),
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )
        if not result.ok:
            logger.debug("git %s exited %d: %s", args[0], result.returncode, result.error_text)
        return result

    def current_branch(self, repo: Path) -> str:
        return git.current_branch(repo)

    def has_changes(self, repo: Path, ignore_submodules: bool = False) -> bool:
        return git.has_uncommitted_changes(repo, ignore_submodules=ignore_submodules)

    def branch_exists(self, repo: Path, branch: str) -> bool:
        return git.branch_exists(branch, repo)

    def remote_branch_exists(self, repo: Path, branch: str, remote: str = "origin") -> bool:
        return git.remote_branch_exists(branch, repo, remote_name=remote)

    def upstream(self, repo: Path, branch: str) -> str | None:
        return git.get_branch_upstream(branch, repo)

    def rev_parse(self, repo: Path, ref: str) -> str | None:
        return git.rev_parse(ref, repo)

    def is_ancestor(self, repo: Path, ancestor: str, descendant: str) -> bool:
        return git.is_ancestor(ancestor, descendant, repo)

    def commits_ahead(self, repo: Path, base: str, ref: str) -> int:
        return git.commits_ahead(base, ref, repo)

    def has_staged_changes(self, repo: Path) -> bool:
        return git.has_staged_changes(repo)

    def submodule_deinit(self, repo: Path, paths: Iterable[str] | None = None) -> CommandResult:
        if paths is None:
            return self._run(repo, "submodule", "deinit", "-f", "--all")
        return self._run(repo, "submodule", "deinit", "-f", "--", *paths)

    def submodule_sync(self, repo: Path) -> CommandResult:
        return self._run(repo, "submodule", "sync", "--recursive")

    def submodule_update(self, repo: Path, paths: Iterable[str] | None = None) -> CommandResult:
        return self._run(repo, "submodule", "update", "--init", "--recursive", "--", *(paths or ()))

    def fetch(
        self,
        repo: Path,
        remote: str = "origin",
        branch: str | None = None,
        all_remotes: bool = False,
    ) -> CommandResult:
        if all_remotes:
            return self._run(repo, "fetch", "--prune", "--all", "--tags")
        if branch is None:
            return self._run(repo, "fetch", remote)
        # Explicit refspec so the remote-tracking ref is updated
        return self._run(
            repo, "fetch", remote,
            f"+refs/heads/{branch}:refs/remotes/{remote}/{branch}",
        )

    def create_branch(self, repo: Path, name: str, start_point: str) -> CommandResult:
        return self._run(repo, "switch", "--no-track", "-c", name, start_point)

    def checkout(self, repo: Path, branch: str) -> CommandResult:
        return self._run(repo, "switch", branch)

    def switch_tracking(self, repo: Path, branch: str, remote: str = "origin") -> CommandResult:
        return self._run(repo, "switch", "-C", branch, "--track", f"{remote}/{branch}")

    def merge(self, repo: Path, ref: str) -> CommandResult:
        return self._run(repo, "merge", "--no-edit", ref)

    def merge_abort(self, repo: Path) -> CommandResult:
        return self._run(repo, "merge", "--abort")

    def rebase(self, repo: Path, onto: str) -> CommandResult:
        return self._run(repo, "rebase", onto)

    def rebase_abort(self, repo: Path) -> CommandResult:
        return self._run(repo, "rebase", "--abort")

    def push(
        self,
        repo: Path,
        remote: str,
        branch: str,
        set_upstream: bool = False,
    ) -> CommandResult:
        if set_upstream:
            return self._run(repo, "push", "--set-upstream", remote, branch)
        return self._run(repo, "push", remote, branch)

    def add(self, repo: Path, paths: Iterable[str]) -> CommandResult:
        return self._run(repo, "add", "--", *paths)

    def add_all(self, repo: Path) -> CommandResult:
        return self._run(repo, "add", "-A")

    def add_tracked(self, repo: Path, exclude: Iterable[str] = ()) -> CommandResult:
        return self._run(repo, "add", "-u", "--", ".", *(f":(exclude){path}" for path in exclude))

    def commit(self, repo: Path, message: str) -> CommandResult:
        return self._run(repo, "commit", "-m", message)
