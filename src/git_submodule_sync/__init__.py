"""Keep a branch in sync across a git repository and its submodules.

This package converges a root repository and every submodule onto a shared
target branch, refreshes submodules onto their configured branches, and
edits `.gitmodules` without disturbing its layout.
"""

# Re-export all public names from submodules
from .control import GitControl, RepositoryControl
from .errors import (
    BaseBranchNotFound,
    CheckoutFailed,
    DirtyWorkingTreeUncommitted,
    GitmodulesError,
    MergeConflict,
    NotARepository,
    PushRejected,
    RebaseConflict,
    SubmoduleError,
    SyncError,
)
from .gitmodules import GitmodulesFile, read_submodule_entries
from .ignore import filter_submodules_by_ignore_file
from .models import (
    CommandResult,
    DirtyPolicy,
    Outcome,
    OutcomeKind,
    PlannedOperation,
    RefreshResult,
    SubmoduleEntry,
    SyncOptions,
    SyncResult,
    SyncStatus,
    SyncTarget,
)
from .paths import resolve_repo
from .refresh import refresh_submodules
from .sync import BranchSyncOrchestrator, exit_code, summarize, synchronize
from .workflow import get_sync_options, get_sync_target

__all__ = (
    "BaseBranchNotFound",
    "BranchSyncOrchestrator",
    "CheckoutFailed",
    "CommandResult",
    "DirtyPolicy",
    "DirtyWorkingTreeUncommitted",
    "GitControl",
    "GitmodulesError",
    "GitmodulesFile",
    "MergeConflict",
    "NotARepository",
    "Outcome",
    "OutcomeKind",
    "PlannedOperation",
    "PushRejected",
    "RebaseConflict",
    "RefreshResult",
    "RepositoryControl",
    "SubmoduleEntry",
    "SubmoduleError",
    "SyncError",
    "SyncOptions",
    "SyncResult",
    "SyncStatus",
    "SyncTarget",
    "exit_code",
    "filter_submodules_by_ignore_file",
    "get_sync_options",
    "get_sync_target",
    "read_submodule_entries",
    "refresh_submodules",
    "resolve_repo",
    "summarize",
    "synchronize",
)
