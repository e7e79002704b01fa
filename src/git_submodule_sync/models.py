"""Value types passed between the control layer and the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class CommandResult:
    """Exit status and output of a single git invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def error_text(self) -> str:
        return self.stderr.strip() or self.stdout.strip()

    @classmethod
    def planned(cls, args: tuple[str, ...]) -> CommandResult:
        """Stand-in result for a command that dry-run did not execute."""
        return cls(args=args, returncode=0)


class OutcomeKind(Enum):
    OK = "ok"
    TOLERATED = "tolerated"
    FATAL = "fatal"


@dataclass(frozen=True)
class Outcome:
    """
    How a step ended, after applying that step's failure policy.

    A best-effort step turns a failed command into TOLERATED; a required step
    turns it into FATAL. A successful command is always OK.

    """

    kind: OutcomeKind
    result: CommandResult

    @classmethod
    def of(cls, result: CommandResult, tolerate: bool = False) -> Outcome:
        if result.ok:
            return cls(OutcomeKind.OK, result)
        if tolerate:
            return cls(OutcomeKind.TOLERATED, result)
        return cls(OutcomeKind.FATAL, result)

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.OK

    @property
    def fatal(self) -> bool:
        return self.kind is OutcomeKind.FATAL


@dataclass(frozen=True)
class SubmoduleEntry:
    """One `[submodule "name"]` stanza of `.gitmodules`."""

    name: str
    path: str
    branch: str | None = None
    url: str | None = None


@dataclass(frozen=True)
class SyncTarget:
    """
    The branch every repository converges onto.

    Args:
        name: Target branch name (e.g., "develop").
        base_branch: Branch the target is created from in the root repository,
                     and merged or rebased from when it already exists.
        submodule_base_branch: Base branch for submodules. Defaults to
                               `base_branch`.
        remote: Remote to fetch from and push to.

    """

    name: str
    base_branch: str = "main"
    submodule_base_branch: str | None = None
    remote: str = "origin"

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Target branch name must not be empty")

    def base_for(self, is_root: bool) -> str:
        if is_root:
            return self.base_branch
        return self.submodule_base_branch or self.base_branch


class DirtyPolicy(Enum):
    """What to do with a dirty working tree when auto-commit is off."""

    CONTINUE = "continue"
    SKIP = "skip"


@dataclass(frozen=True)
class SyncOptions:
    dry_run: bool = False
    rebase: bool = False
    auto_commit: bool = False
    commit_message: str | None = None
    skip_root_push: bool = False
    update_submodule_branch_config: bool = False
    dirty_policy: DirtyPolicy = DirtyPolicy.CONTINUE
    ignore_file: str | None = ".syncignore"

    def message_for(self, target: SyncTarget) -> str:
        return self.commit_message or f"chore: sync {target.name}"


class SyncStatus(Enum):
    CREATED = "created"
    UPDATED_BY_MERGE = "updated-by-merge"
    UPDATED_BY_REBASE = "updated-by-rebase"
    ALREADY_CURRENT = "already-current"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class PlannedOperation:
    """A mutating command that dry-run reported instead of running."""

    repo: str
    verb: str
    target: str
    args: tuple[str, ...] = ()

    def __str__(self) -> str:
        return f"[{self.repo}] {self.verb} {self.target}"


@dataclass
class SyncResult:
    """
    Outcome of synchronizing one repository.

    `path` is relative to the root repository; the root itself is ".".

    """

    path: str
    status: SyncStatus
    reason: str | None = None
    detail: str = ""
    warnings: list[str] = field(default_factory=list)
    planned: list[PlannedOperation] = field(default_factory=list)
    pushed: bool = False
    committed: bool = False

    @property
    def failed(self) -> bool:
        return self.status is SyncStatus.FAILED


@dataclass(frozen=True)
class RefreshResult:
    """Outcome of switching one submodule to its configured branch."""

    path: str
    branch: str
    switched: bool
    detail: str = ""
