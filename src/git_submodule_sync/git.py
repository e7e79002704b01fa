"""Core git operations.

Everything here is read-only with respect to the repository. Mutating
commands go through `control.GitControl` so they can be planned in dry-run.
"""

import subprocess
from pathlib import Path
from typing import Any


def run_git(
    *args: str,
    repo: Path | None = None,
    check: bool = True,
    capture: bool = False,
    **kwargs: Any,
) -> subprocess.CompletedProcess:
    """
    Run a git command and return the result.

    Args:
        *args: Git command arguments (e.g., "status", "--porcelain")
        repo: Optional repository path. If None, runs in current directory.
        check: Whether to raise CalledProcessError on non-zero exit (default: True)
        capture: Whether to capture stdout/stderr (default: False)
        **kwargs: Additional arguments to pass to subprocess.run()

    Returns:
        CompletedProcess result

    Example:
        # Run in current directory
        run_git("status", "--short", capture=True)

        # Run in specific repo
        run_git("fetch", "--all", repo=Path("/path/to/repo"))
    """
    cmd = ["git"]

    # Add -C flag if repo is specified
    if repo is not None:
        cmd.extend(["-C", str(repo)])

    cmd.extend(args)

    # Set up capture if requested
    if capture:
        return subprocess.run(
            cmd, capture_output=True, text=True, check=check, **kwargs
        )

    return subprocess.run(cmd, check=check, **kwargs)


def git_config(
    key: str,
    repo: Path | None = None,
    default: str | None = None,
) -> str | None:
    """
    Get a git config value.

    Args:
        key: Config key to retrieve (e.g., "user.name", "workflow.sync.baseBranch")
        repo: Optional repository path. If None, uses current directory.
        default: Default value if config key is not set.

    Returns:
        Config value if set, otherwise default.

    Example:
        base = git_config("workflow.sync.baseBranch", default="main")
    """
    result = run_git("config", key, repo=repo, capture=True, check=False)
    if result.returncode == 0 and result.stdout.strip():
        return result.stdout.strip()
    return default


def git_config_bool(
    key: str,
    repo: Path | None = None,
    default: bool = False,
) -> bool:
    """
    Get a boolean git config value.

    Lets git normalize the value, so "yes", "on", "1" and "true" all count.
    Values git cannot interpret as a boolean fall back to the default.

    """
    result = run_git("config", "--type=bool", key, repo=repo, capture=True, check=False)
    if result.returncode != 0:
        return default
    return result.stdout.strip() == "true"


def current_branch(repo: Path | None = None) -> str:
    """
    Get the currently checked out branch name.

    Args:
        repo: Optional repository path. If None, uses current directory.

    Returns:
        Name of the current branch, or an empty string on a detached HEAD.

    Example:
        branch = current_branch()
        branch = current_branch(Path("/path/to/repo"))
    """
    result = run_git("branch", "--show-current", repo=repo, capture=True)
    return result.stdout.strip()


def has_uncommitted_changes(
    repo: Path | None = None,
    ignore_submodules: bool = False,
) -> bool:
    """
    Check if there are uncommitted changes in the working tree.

    This includes both tracked and untracked files, and submodules whose
    checked out commit differs from the recorded one.

    Args:
        repo: Optional repository path. If None, uses current directory.
        ignore_submodules: If True, changes inside or to submodules don't count.

    Returns:
        True if there are uncommitted changes, False otherwise

    Example:
        if has_uncommitted_changes():
            print("You have uncommitted changes")
    """
    args = ["status", "--porcelain"]
    if ignore_submodules:
        args.append("--ignore-submodules=all")
    result = run_git(*args, repo=repo, capture=True)
    return bool(result.stdout.strip())


def _ref_exists(ref: str, repo: Path | None) -> bool:
    result = run_git("show-ref", "--verify", "--quiet", ref, repo=repo, check=False)
    return result.returncode == 0


def branch_exists(branch: str, repo: Path | None = None) -> bool:
    """Check whether a local branch exists."""
    return _ref_exists(f"refs/heads/{branch}", repo)


def remote_branch_exists(
    branch: str,
    repo: Path | None = None,
    remote_name: str = "origin",
) -> bool:
    """
    Check whether a remote-tracking branch exists.

    Only looks at refs already fetched; it does not contact the remote.

    Example:
        if remote_branch_exists("main", repo):
            print("origin/main is known")
    """
    return _ref_exists(f"refs/remotes/{remote_name}/{branch}", repo)


def get_branch_upstream(branch: str, repo: Path | None = None) -> str | None:
    """
    Get the upstream tracking branch for a local branch.

    Args:
        branch: Name of the local branch.
        repo: Optional repository path. If None, uses current directory.

    Returns:
        Upstream branch in "remote/branch" format (e.g., "origin/main"),
        or None if no upstream is configured.

    Example:
        upstream = get_branch_upstream("feature")
        if upstream:
            print(f"Tracking: {upstream}")

    """
    # Get the remote name
    remote_result = run_git(
        "config", f"branch.{branch}.remote",
        repo=repo,
        capture=True,
        check=False,
    )
    if remote_result.returncode != 0 or not (remote := remote_result.stdout.strip()):
        return None

    # Get the merge ref
    merge_result = run_git(
        "config", f"branch.{branch}.merge",
        repo=repo,
        capture=True,
        check=False,
    )
    if merge_result.returncode != 0 or not (merge_ref := merge_result.stdout.strip()):
        return None

    # Convert refs/heads/branch to just branch
    branch_name = merge_ref.removeprefix("refs/heads/")
    return f"{remote}/{branch_name}"


def rev_parse(ref: str, repo: Path | None = None) -> str | None:
    """
    Resolve a ref to a full commit id.

    Returns:
        The commit id, or None if the ref does not resolve.

    """
    result = run_git(
        "rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}",
        repo=repo,
        capture=True,
        check=False,
    )
    if result.returncode == 0 and (sha := result.stdout.strip()):
        return sha
    return None


def is_ancestor(ancestor: str, descendant: str, repo: Path | None = None) -> bool:
    """
    Check whether `ancestor` is reachable from `descendant`.

    A commit counts as its own ancestor, so equal refs return True.

    """
    result = run_git(
        "merge-base", "--is-ancestor", ancestor, descendant,
        repo=repo,
        capture=True,
        check=False,
    )
    return result.returncode == 0


def commits_ahead(base: str, ref: str, repo: Path | None = None) -> int:
    """
    Count commits reachable from `ref` but not from `base`.

    Returns 0 when either ref cannot be resolved.

    Example:
        if commits_ahead("origin/develop", "develop"):
            print("develop has unpushed commits")
    """
    result = run_git(
        "rev-list", "--count", f"{base}..{ref}",
        repo=repo,
        capture=True,
        check=False,
    )
    if result.returncode != 0:
        return 0
    return int(result.stdout.strip() or 0)


def has_staged_changes(repo: Path | None = None) -> bool:
    # --quiet exits 1 when the index differs from HEAD
    result = run_git("diff", "--cached", "--quiet", repo=repo, check=False)
    return result.returncode == 1
