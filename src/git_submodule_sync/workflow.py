"""Workflow configuration read from git config.

All settings live under the `workflow.sync.*` namespace of the root
repository, so they can be set per repository or globally:

    git config workflow.sync.baseBranch develop
    git config --global workflow.sync.rebase true
"""

from pathlib import Path
from typing import Any

from .git import git_config, git_config_bool
from .models import DirtyPolicy, SyncOptions, SyncTarget


def get_workflow_config(
    key: str,
    repo: Path | None = None,
    default: str | None = None,
) -> str | None:
    """
    Get a workflow configuration value.

    Reads from git config under the `workflow.*` namespace.

    Args:
        key: Config key without the "workflow." prefix (e.g., "sync.baseBranch").
        repo: Optional repository path. If None, uses current directory.
        default: Default value if config key is not set.

    Returns:
        Config value if set, otherwise default.

    Example:
        base = get_workflow_config("sync.baseBranch", default="main")

    """
    return git_config(f"workflow.{key}", repo=repo, default=default)


def get_workflow_flag(key: str, repo: Path | None = None, default: bool = False) -> bool:
    return git_config_bool(f"workflow.{key}", repo=repo, default=default)


def get_sync_target(
    name: str,
    repo: Path | None = None,
    base_branch: str | None = None,
    submodule_base_branch: str | None = None,
    remote: str | None = None,
) -> SyncTarget:
    """
    Build the sync target for a branch name.

    Explicit arguments win over `workflow.sync.baseBranch`,
    `workflow.sync.submoduleBaseBranch` and `workflow.sync.remote`.

    Example:
        target = get_sync_target("develop", repo=root)
        # SyncTarget(name="develop", base_branch="main", ...)

    """
    return SyncTarget(
        name=name,
        base_branch=base_branch or get_workflow_config("sync.baseBranch", repo=repo) or "main",
        submodule_base_branch=(
            submodule_base_branch
            or get_workflow_config("sync.submoduleBaseBranch", repo=repo)
        ),
        remote=remote or get_workflow_config("sync.remote", repo=repo) or "origin",
    )


def _parse_dirty_policy(value: str) -> DirtyPolicy:
    try:
        return DirtyPolicy(value.strip().lower())
    except ValueError:
        choices = ", ".join(policy.value for policy in DirtyPolicy)
        raise ValueError(
            f"Invalid workflow.sync.onDirty: {value}. Must be one of: {choices}."
        ) from None


def get_sync_options(repo: Path | None = None, **overrides: Any) -> SyncOptions:
    """
    Build sync options from git config.

    Args:
        repo: Root repository path. If None, uses current directory.
        **overrides: SyncOptions fields that take precedence over config.
                     `None` values are ignored.

    Raises:
        ValueError: If `workflow.sync.onDirty` is not a known policy.

    Example:
        options = get_sync_options(root, dry_run=True)

    """
    options: dict[str, Any] = {
        "rebase": get_workflow_flag("sync.rebase", repo=repo),
        "auto_commit": get_workflow_flag("sync.autoCommit", repo=repo),
        "commit_message": get_workflow_config("sync.commitMessage", repo=repo),
        "skip_root_push": get_workflow_flag("sync.skipRootPush", repo=repo),
        "update_submodule_branch_config": get_workflow_flag("sync.updateBranchConfig", repo=repo),
        "dirty_policy": _parse_dirty_policy(
            get_workflow_config("sync.onDirty", repo=repo, default="continue")
        ),
        "ignore_file": get_workflow_config("sync.ignoreFile", repo=repo, default=".syncignore"),
    }
    options.update({key: value for key, value in overrides.items() if value is not None})
    if isinstance(options["dirty_policy"], str):
        options["dirty_policy"] = _parse_dirty_policy(options["dirty_policy"])
    return SyncOptions(**options)
