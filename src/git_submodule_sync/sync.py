"""Converge a root repository and its submodules onto one branch.

For every submodule (in `.gitmodules` order) and then the root, the target
branch is created from the base branch when missing, or merged/rebased from
the base branch when present, and pushed. Finally the root commits the
updated submodule pointers.

Failures are recorded per repository; one broken submodule never stops the
others. Only root preconditions (not a repository, unreadable `.gitmodules`,
failed submodule initialization) raise.

Example:
    target = SyncTarget("develop", base_branch="main")
    results = synchronize(Path("~/develop/platform"), target, SyncOptions(rebase=True))
    print(summarize(results))
    sys.exit(exit_code(results))
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

import pathspec

from .control import GitControl, RepositoryControl
from .errors import (
    BaseBranchNotFound,
    CheckoutFailed,
    DirtyWorkingTreeUncommitted,
    MergeConflict,
    PushRejected,
    RebaseConflict,
    SyncError,
)
from .gitmodules import GITMODULES, GitmodulesFile
from .ignore import is_ignored, load_ignore_spec
from .models import (
    CommandResult,
    DirtyPolicy,
    Outcome,
    OutcomeKind,
    PlannedOperation,
    SubmoduleEntry,
    SyncOptions,
    SyncResult,
    SyncStatus,
    SyncTarget,
)
from .paths import resolve_repo, submodule_checkout
from .refresh import paths_to_reinitialize, reinitialize_submodules

logger = logging.getLogger(__name__)

ROOT_LABEL = "."

# Warning markers recorded on SyncResult.warnings
DETACHED_HEAD = "DetachedHead"
COMMIT_FAILED = "CommitFailed"

# Skip reasons
MISSING_PATH = "MissingPath"
IGNORED = "Ignored"


@dataclass(frozen=True)
class _Repo:
    label: str
    path: Path
    is_root: bool = False


class BranchSyncOrchestrator:
    """
    Synchronize a target branch across a root repository and its submodules.

    Args:
        root: Root repository path. Defaults to current directory.
        target: Branch to converge onto and the base branches to derive it from.
        options: Behavior switches. Defaults to SyncOptions().
        control: Repository control. Defaults to GitControl().
        submodule_paths: Restrict processing to these submodule paths. Paths
                         not listed in `.gitmodules` are still processed (and
                         usually end up skipped as missing). Defaults to every
                         submodule in `.gitmodules`.

    Raises:
        NotARepository: If root is not a git working tree.

    """

    def __init__(
        self,
        root: str | Path | None,
        target: SyncTarget,
        options: SyncOptions | None = None,
        control: RepositoryControl | None = None,
        submodule_paths: Iterable[str] | None = None,
    ) -> None:
        self.root = resolve_repo(root)
        self.target = target
        self.options = options or SyncOptions()
        self.control = control or GitControl()
        self.submodule_paths = list(submodule_paths) if submodule_paths is not None else None
        self._plans: dict[str, list[PlannedOperation]] = {}
        # Submodule path -> whether committing its local changes succeeded
        self._auto_commits: dict[str, bool] = {}

    def run(self) -> list[SyncResult]:
        """
        Run the synchronization.

        Returns:
            One SyncResult per submodule in order, followed by the root's.

        Raises:
            GitmodulesError: If `.gitmodules` is unreadable or malformed.
            SubmoduleError: If submodule deinit, sync or update fails.

        """
        self._plans = {}
        self._auto_commits = {}
        mode = " (dry run)" if self.options.dry_run else ""
        logger.info(
            "Synchronizing %s onto %s from %s%s",
            self.root, self.target.name, self.target.base_branch, mode,
        )

        gitmodules = GitmodulesFile.read(self.root / GITMODULES)
        entries = self._select_entries(gitmodules.entries())
        ignore_spec = (
            load_ignore_spec(self.root, self.options.ignore_file)
            if self.options.ignore_file
            else None
        )

        if self.options.update_submodule_branch_config:
            self._rewrite_branch_config(gitmodules)

        kept = self._protect_local_work(entries, ignore_spec)
        self._initialize_submodules(paths_to_reinitialize(gitmodules.entries(), kept))

        results = [self._sync_submodule(entry, ignore_spec) for entry in entries]
        results.append(self._sync_root(results))

        for result in results:
            result.planned = self._plans.get(result.path, [])
            _log_result(result)
        return results

    # Setup

    def _select_entries(self, entries: list[SubmoduleEntry]) -> list[SubmoduleEntry]:
        if self.submodule_paths is None:
            return entries
        by_path = {entry.path: entry for entry in entries}
        return [
            by_path.get(path) or SubmoduleEntry(name=path, path=path)
            for path in self.submodule_paths
        ]

    def _rewrite_branch_config(self, gitmodules: GitmodulesFile) -> None:
        changed = gitmodules.set_all_branches(self.target.name)
        if not changed:
            logger.info("%s already points every submodule at %s", GITMODULES, self.target.name)
            return

        root = _Repo(ROOT_LABEL, self.root, is_root=True)
        if self.options.dry_run:
            for name in changed:
                self._plan(root, "rewrite", f"{GITMODULES} submodule.{name}.branch = {self.target.name}")
            return

        gitmodules.write(self.root / GITMODULES)
        logger.info("Set branch = %s for %s in %s", self.target.name, ", ".join(changed), GITMODULES)

    def _protect_local_work(
        self,
        entries: list[SubmoduleEntry],
        ignore_spec: pathspec.PathSpec | None,
    ) -> set[str]:
        """
        Commit or set aside uncommitted submodule changes before reinitializing.

        With auto-commit the changes are committed where they are. Otherwise
        the submodule is kept out of deinit and update, which would discard
        them.

        Returns:
            Paths of submodules to leave out of reinitialization.

        """
        kept = set()
        for entry in entries:
            if ignore_spec is not None and is_ignored(entry, ignore_spec):
                continue
            path = submodule_checkout(self.root, entry.path)
            if path is None or not self.control.has_changes(path):
                continue

            repo = _Repo(entry.path, path)
            if self.options.auto_commit:
                committed = self._auto_commit(repo)
                self._auto_commits[repo.label] = committed
                if committed:
                    continue
            logger.warning("[%s] uncommitted changes, leaving its working tree as is", repo.label)
            kept.add(entry.path)
        return kept

    def _initialize_submodules(self, paths: list[str] | None) -> None:
        if not self.options.dry_run:
            reinitialize_submodules(self.root, self.control, paths)
            return

        if paths is not None and not paths:
            return
        root = _Repo(ROOT_LABEL, self.root, is_root=True)
        scope = "all submodules" if paths is None else ", ".join(paths)
        for verb in ("deinit", "sync", "update"):
            self._plan(root, f"submodule {verb}", scope)

    # Per repository

    def _sync_submodule(
        self,
        entry: SubmoduleEntry,
        ignore_spec: pathspec.PathSpec | None,
    ) -> SyncResult:
        if ignore_spec is not None and is_ignored(entry, ignore_spec):
            logger.info("[%s] ignored by %s", entry.path, self.options.ignore_file)
            return SyncResult(entry.path, SyncStatus.SKIPPED, reason=IGNORED)

        path = submodule_checkout(self.root, entry.path)
        if path is None:
            logger.warning("[%s] submodule is not checked out, skipping", entry.path)
            return SyncResult(entry.path, SyncStatus.SKIPPED, reason=MISSING_PATH)
        repo = _Repo(entry.path, path)

        result = SyncResult(repo.label, SyncStatus.ALREADY_CURRENT)
        try:
            if self._prepare_branch(repo, result):
                self._push(repo, result)
        except (SyncError, subprocess.CalledProcessError) as e:
            _fail(result, e)
        return result

    def _sync_root(self, submodule_results: list[SyncResult]) -> SyncResult:
        repo = _Repo(ROOT_LABEL, self.root, is_root=True)
        result = SyncResult(repo.label, SyncStatus.ALREADY_CURRENT)
        try:
            if not self._prepare_branch(repo, result):
                return result
            self._commit_submodule_pointers(repo, submodule_results, result)
            if self.options.skip_root_push:
                logger.info("[%s] skipping push of %s", repo.label, self.target.name)
            else:
                self._push(repo, result)
        except (SyncError, subprocess.CalledProcessError) as e:
            _fail(result, e)
        return result

    def _prepare_branch(self, repo: _Repo, result: SyncResult) -> bool:
        """
        Reconcile local changes, then create or update the target branch.

        Returns:
            False if the repository was skipped.

        """
        dirty = self._reconcile_dirty_state(repo, result)
        if result.status is SyncStatus.SKIPPED:
            return False

        name = self.target.name
        if self.control.branch_exists(repo.path, name):
            logger.info("[%s] %s exists, updating", repo.label, name)
            result.status = self._update_existing(repo, dirty)
        else:
            self._create(repo, dirty)
            result.status = SyncStatus.CREATED
        return True

    def _reconcile_dirty_state(self, repo: _Repo, result: SyncResult) -> bool:
        """
        Detect and optionally commit local changes.

        Returns:
            True if uncommitted changes remain in the working tree.

        """
        control = self.control

        if not control.current_branch(repo.path):
            logger.info("[%s] HEAD is detached", repo.label)
            result.warnings.append(DETACHED_HEAD)

        if repo.label in self._auto_commits:
            committed = self._auto_commits[repo.label]
        # Moved submodule pointers in the root are committed separately
        elif not control.has_changes(repo.path, ignore_submodules=repo.is_root):
            return False
        elif self.options.auto_commit:
            committed = self._auto_commit(repo)
        else:
            logger.warning("[%s] working tree has uncommitted changes", repo.label)
            result.warnings.append(DirtyWorkingTreeUncommitted.reason)
            if self.options.dirty_policy is DirtyPolicy.SKIP:
                result.status = SyncStatus.SKIPPED
                result.reason = DirtyWorkingTreeUncommitted.reason
            return True

        if committed:
            result.committed = not self.options.dry_run
            return False
        result.warnings.append(COMMIT_FAILED)
        return True

    def _auto_commit(self, repo: _Repo) -> bool:
        control = self.control
        message = self.options.message_for(self.target)
        self._execute(repo, "add", "all changes", control.add_all, tolerate=True)
        outcome = self._execute(repo, "commit", message, control.commit, message, tolerate=True)
        if not outcome.ok:
            logger.warning("[%s] auto-commit failed: %s", repo.label, outcome.result.error_text)
        return outcome.ok

    def _create(self, repo: _Repo, dirty: bool) -> None:
        control = self.control
        name, remote = self.target.name, self.target.remote
        base = self.target.base_for(repo.is_root)

        self._fetch_base(repo, base)
        if control.remote_branch_exists(repo.path, base, remote):
            start_point = f"{remote}/{base}"
        elif control.branch_exists(repo.path, base):
            start_point = base
        else:
            raise BaseBranchNotFound(f"Neither {remote}/{base} nor {base} exists in {repo.label}")

        logger.info("[%s] creating %s from %s", repo.label, name, start_point)
        outcome = self._execute(
            repo, "create branch", f"{name} from {start_point}",
            control.create_branch, name, start_point,
        )
        if outcome.fatal:
            raise _checkout_error(f"Cannot create {name} in {repo.label}", outcome, dirty)

    def _update_existing(self, repo: _Repo, dirty: bool) -> SyncStatus:
        control = self.control
        name, remote = self.target.name, self.target.remote
        base = self.target.base_for(repo.is_root)

        self._execute(repo, "fetch", "all remotes", control.fetch, remote, all_remotes=True, tolerate=True)

        if control.current_branch(repo.path) != name:
            outcome = self._execute(repo, "switch", name, control.checkout, name)
            if outcome.fatal:
                raise _checkout_error(f"Cannot switch to {name} in {repo.label}", outcome, dirty)

        self._fetch_base(repo, base)
        if control.remote_branch_exists(repo.path, base, remote):
            source = f"{remote}/{base}"
        elif control.branch_exists(repo.path, base):
            source = base
        else:
            logger.info("[%s] no %s to update from", repo.label, base)
            return SyncStatus.ALREADY_CURRENT

        if control.is_ancestor(repo.path, source, name):
            logger.info("[%s] %s already contains %s", repo.label, name, source)
            return SyncStatus.ALREADY_CURRENT

        if self.options.rebase:
            outcome = self._execute(repo, "rebase", f"{name} onto {source}", control.rebase, source)
            if outcome.fatal:
                self._abort(repo, control.rebase_abort)
                raise _conflict_error(RebaseConflict, f"Rebase onto {source} failed in {repo.label}", outcome, dirty)
            return SyncStatus.UPDATED_BY_REBASE

        outcome = self._execute(repo, "merge", f"{source} into {name}", control.merge, source)
        if outcome.fatal:
            self._abort(repo, control.merge_abort)
            raise _conflict_error(MergeConflict, f"Merge of {source} failed in {repo.label}", outcome, dirty)
        return SyncStatus.UPDATED_BY_MERGE

    def _fetch_base(self, repo: _Repo, base: str) -> None:
        remote = self.target.remote
        self._execute(
            repo, "fetch", f"{remote}/{base}",
            self.control.fetch, remote, branch=base, tolerate=True,
        )

    def _abort(self, repo: _Repo, abort: Callable[[Path], CommandResult]) -> None:
        result = abort(repo.path)
        if not result.ok:
            logger.warning("[%s] could not abort: %s", repo.label, result.error_text)

    def _push(self, repo: _Repo, result: SyncResult) -> None:
        control = self.control
        name, remote = self.target.name, self.target.remote

        tracking = f"{remote}/{name}"
        upstream = control.upstream(repo.path, name)
        if (
            upstream == tracking
            and control.rev_parse(repo.path, upstream) is not None
            and control.commits_ahead(repo.path, upstream, name) == 0
        ):
            logger.info("[%s] %s is up to date with %s", repo.label, name, upstream)
            return

        if upstream == tracking:
            outcome = self._execute(
                repo, "push", f"{name} -> {tracking}",
                control.push, remote, name,
            )
        else:
            # Also repoints a branch that tracks something else, e.g. the base
            if upstream is not None:
                logger.info("[%s] %s tracks %s, moving upstream to %s", repo.label, name, upstream, tracking)
            outcome = self._execute(
                repo, "push", f"{name} -> {tracking} (set upstream)",
                control.push, remote, name, set_upstream=True,
            )

        if outcome.fatal:
            raise PushRejected(f"Push of {name} rejected in {repo.label}", outcome.result.error_text)
        result.pushed = not self.options.dry_run

    def _commit_submodule_pointers(
        self,
        repo: _Repo,
        submodule_results: list[SyncResult],
        result: SyncResult,
    ) -> None:
        """Stage `.gitmodules`, synchronized submodule paths and tracked changes, then commit."""
        control = self.control

        synced = [r.path for r in submodule_results if r.status not in (SyncStatus.SKIPPED, SyncStatus.FAILED)]
        left_alone = [r.path for r in submodule_results if r.path not in synced]
        paths = [GITMODULES] if (self.root / GITMODULES).exists() else []
        paths.extend(synced)

        if paths:
            self._execute(repo, "add", ", ".join(paths), control.add, paths, tolerate=True)
        self._execute(
            repo, "add", "tracked changes",
            control.add_tracked, left_alone, tolerate=True,
        )

        if self.options.dry_run:
            if control.has_changes(repo.path) or control.has_staged_changes(repo.path):
                self._plan(repo, "commit", "submodule pointers")
            return

        if not control.has_staged_changes(repo.path):
            logger.info("[%s] no submodule pointer changes to commit", repo.label)
            return

        message = self.options.message_for(self.target)
        outcome = self._execute(repo, "commit", message, control.commit, message, tolerate=True)
        if outcome.ok:
            result.committed = True
        else:
            result.warnings.append(COMMIT_FAILED)

    # Command execution

    def _plan(self, repo: _Repo, verb: str, target: str, args: tuple[str, ...] = ()) -> None:
        operation = PlannedOperation(repo.label, verb, target, args)
        logger.info("Would %s", operation)
        self._plans.setdefault(repo.label, []).append(operation)

    def _execute(
        self,
        repo: _Repo,
        verb: str,
        target: str,
        call: Callable[..., CommandResult],
        *args,
        tolerate: bool = False,
        **kwargs,
    ) -> Outcome:
        """
        Run a mutating command, or only record it in dry-run.

        Args:
            repo: Repository the command runs in.
            verb: Short description of the operation (e.g., "merge").
            target: What it acts on (e.g., "origin/main into develop").
            call: RepositoryControl command; receives repo.path first.
            tolerate: Best-effort step: a failure is TOLERATED instead of FATAL.

        """
        if self.options.dry_run:
            planned_args = tuple(str(arg) for arg in args)
            self._plan(repo, verb, target, planned_args)
            return Outcome.of(CommandResult.planned((verb, *planned_args)))

        outcome = Outcome.of(call(repo.path, *args, **kwargs), tolerate=tolerate)
        if outcome.kind is OutcomeKind.TOLERATED:
            logger.warning(
                "[%s] %s %s failed, continuing: %s",
                repo.label, verb, target, outcome.result.error_text,
            )
        return outcome


def _checkout_error(message: str, outcome: Outcome, dirty: bool) -> SyncError:
    if dirty:
        return DirtyWorkingTreeUncommitted(message, outcome.result.error_text)
    return CheckoutFailed(message, outcome.result.error_text)


def _conflict_error(
    error: type[SyncError],
    message: str,
    outcome: Outcome,
    dirty: bool,
) -> SyncError:
    if dirty:
        return DirtyWorkingTreeUncommitted(message, outcome.result.error_text)
    return error(message, outcome.result.error_text)


def _fail(result: SyncResult, error: Exception) -> None:
    result.status = SyncStatus.FAILED
    if isinstance(error, SyncError):
        result.reason = error.reason
        result.detail = error.detail or str(error)
    else:
        result.reason = "GitError"
        result.detail = (getattr(error, "stderr", None) or str(error)).strip()


def _log_result(result: SyncResult) -> None:
    if result.failed:
        logger.error("[%s] failed (%s): %s", result.path, result.reason, result.detail)
    else:
        logger.info("[%s] %s", result.path, describe(result))


def synchronize(
    root: str | Path | None,
    target: SyncTarget,
    options: SyncOptions | None = None,
    control: RepositoryControl | None = None,
    submodule_paths: Iterable[str] | None = None,
) -> list[SyncResult]:
    """
    Synchronize a target branch across root and its submodules.

    See BranchSyncOrchestrator for arguments.

    Example:
        results = synchronize(".", SyncTarget("release"), SyncOptions(dry_run=True))
        for result in results:
            for operation in result.planned:
                print(operation)

    """
    return BranchSyncOrchestrator(root, target, options, control, submodule_paths).run()


def describe(result: SyncResult) -> str:
    """One-line description of a result, without the path."""
    text = result.status.value
    if result.reason:
        text += f" ({result.reason})"
    extras = []
    if result.committed:
        extras.append("committed")
    if result.pushed:
        extras.append("pushed")
    if result.planned:
        extras.append(f"{len(result.planned)} planned")
    if extras:
        text += f" [{', '.join(extras)}]"
    if result.warnings:
        text += f" warnings: {', '.join(result.warnings)}"
    if result.failed and result.detail:
        text += f": {result.detail.splitlines()[0]}"
    return text


def summarize(results: list[SyncResult]) -> str:
    """
    Render a summary with one line per repository.

    Example:
        libs/core  created [pushed]
        libs/ui    failed (MergeConflict): CONFLICT (content): Merge conflict in ui.py
        .          updated-by-merge [committed, pushed]

    """
    if not results:
        return ""
    width = max(len(result.path) for result in results)
    return "\n".join(f"{result.path:<{width}}  {describe(result)}" for result in results)


def exit_code(results: list[SyncResult]) -> int:
    """1 if any repository failed, else 0. Skipped repositories don't count."""
    return 1 if any(result.failed for result in results) else 0
