"""Exceptions raised while synchronizing submodule branches."""


class SyncError(Exception):
    """
    Base class for all synchronization errors.

    Args:
        message: Human readable description.
        detail: Error text of the git command that failed, if any.

    """

    reason = "SyncError"

    def __init__(self, message: str, detail: str = "") -> None:
        super().__init__(message)
        self.detail = detail


class NotARepository(SyncError):
    """The given path is not the root of a git working tree."""

    reason = "NotARepository"


class GitmodulesError(SyncError):
    """`.gitmodules` could not be read or parsed."""

    reason = "GitmodulesError"


class SubmoduleError(SyncError):
    """Submodule deinit, sync or update failed on the root repository."""

    reason = "SubmoduleError"


class BaseBranchNotFound(SyncError):
    """Neither the remote nor the local base branch exists."""

    reason = "BaseBranchNotFound"


class MergeConflict(SyncError):
    reason = "MergeConflict"


class RebaseConflict(SyncError):
    reason = "RebaseConflict"


class PushRejected(SyncError):
    reason = "PushRejected"


class DirtyWorkingTreeUncommitted(SyncError):
    """Uncommitted changes blocked a branch operation."""

    reason = "DirtyWorkingTreeUncommitted"


class CheckoutFailed(SyncError):
    """Creating or switching to the target branch failed."""

    reason = "CheckoutFailed"
