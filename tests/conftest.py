"""Shared pytest fixtures for git-submodule-sync tests."""

import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from types import SimpleNamespace

import pytest

from git_submodule_sync.models import CommandResult


@pytest.fixture(autouse=True)
def isolated_git_config(monkeypatch):
    """
    Keep tests independent of the user's git configuration.

    Local file URLs must be allowed for submodule clones, and every
    repository (including submodule clones) needs an identity to commit.
    """
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", os.devnull)
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    settings = {
        "protocol.file.allow": "always",
        "user.name": "Test User",
        "user.email": "test@example.com",
        "init.defaultBranch": "main",
        "commit.gpgsign": "false",
    }
    monkeypatch.setenv("GIT_CONFIG_COUNT", str(len(settings)))
    for i, (key, value) in enumerate(settings.items()):
        monkeypatch.setenv(f"GIT_CONFIG_KEY_{i}", key)
        monkeypatch.setenv(f"GIT_CONFIG_VALUE_{i}", value)


def _git(*args, cwd):
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


@pytest.fixture
def git():
    """
    Run a git command in a directory and return its stripped stdout.

    Example:
        git("branch", "--show-current", cwd=repo)
    """
    return _git


def _init_repo(path, readme="# Test Repo\n"):
    path.mkdir(parents=True)
    _git("init", "-b", "main", cwd=path)
    (path / "README.md").write_text(readme)
    _git("add", "README.md", cwd=path)
    _git("commit", "-m", "Initial commit", cwd=path)
    return path


def _add_bare_remote(repo, remote_path):
    remote_path.mkdir(parents=True)
    _git("init", "--bare", "-b", "main", cwd=remote_path)
    _git("remote", "add", "origin", str(remote_path), cwd=repo)
    _git("push", "-u", "origin", "main", cwd=repo)
    return remote_path


@pytest.fixture
def git_repo(tmp_path):
    """
    Create a temporary git repository for testing.

    Returns:
        Path: Path to the temporary git repository
    """
    return _init_repo(tmp_path / "test-repo")


@pytest.fixture
def git_repo_with_remote(tmp_path, git_repo):
    """
    Create a git repository with a remote (bare repo).

    Returns:
        tuple: (main_repo_path, remote_repo_path)
    """
    remote_repo = _add_bare_remote(git_repo, tmp_path / "remote")
    return git_repo, remote_repo


@pytest.fixture
def superproject(tmp_path):
    """
    Create a root repository with two submodules, each with a bare remote.

    Layout:
        remotes/{root,alpha,beta}.git   bare remotes
        upstream/{alpha,beta}           clones used to push new commits
        root/                           working tree, submodules under libs/

    Returns:
        SimpleNamespace with `root`, `remotes` (name -> Path), `upstream`
        (name -> Path) and `paths` (name -> submodule path relative to root).
    """
    remotes = {}
    upstream = {}
    for name in ("alpha", "beta"):
        source = _init_repo(tmp_path / "upstream" / name, readme=f"# {name}\n")
        remotes[name] = _add_bare_remote(source, tmp_path / "remotes" / f"{name}.git")
        upstream[name] = source

    root = _init_repo(tmp_path / "root")
    remotes["root"] = _add_bare_remote(root, tmp_path / "remotes" / "root.git")

    paths = {}
    for name in ("alpha", "beta"):
        paths[name] = f"libs/{name}"
        _git("submodule", "add", str(remotes[name]), paths[name], cwd=root)
    _git("commit", "-m", "Add submodules", cwd=root)
    _git("push", "origin", "main", cwd=root)

    return SimpleNamespace(root=root, remotes=remotes, upstream=upstream, paths=paths)


def commit_file(repo, name, content, message=None):
    """Write a file and commit it."""
    (repo / name).write_text(content)
    _git("add", name, cwd=repo)
    _git("commit", "-m", message or f"Update {name}", cwd=repo)
    return _git("rev-parse", "HEAD", cwd=repo)


@pytest.fixture
def commit():
    return commit_file


# In-memory RepositoryControl


@dataclass
class FakeRepo:
    """
    State of one repository as seen by FakeControl.

    A commit history is modeled as the set of commit ids reachable from a
    ref, so ancestry is set inclusion.
    """

    branches: dict[str, frozenset] = field(default_factory=dict)
    remote: dict[str, frozenset] = field(default_factory=dict)
    tracking: dict[str, frozenset] = field(default_factory=dict)
    upstreams: dict[str, str] = field(default_factory=dict)
    head: str | None = None
    changed: set[str] = field(default_factory=set)
    staged: set[str] = field(default_factory=set)
    submodule_paths: set[str] = field(default_factory=set)
    conflicts: set[str] = field(default_factory=set)
    reject_push: bool = False
    block_switch: bool = False
    fail_commit: bool = False
    commits: int = 0


class FakeControl:
    """
    RepositoryControl over FakeRepo state.

    Every command is recorded in `calls` as (repo label, method, args).
    """

    def __init__(self, root):
        self.root = root
        self.repos: dict[Path, FakeRepo] = {}
        self.calls: list[tuple[str, str, tuple]] = []
        self.fail_submodule_update = False
        self._next_id = 0

    def add_repo(self, path, base="main", on_remote=True, **state):
        """Register a repository with one commit on `base`."""
        history = self._new_history(frozenset())
        repo = FakeRepo(**state)
        if base is not None:
            repo.branches.setdefault(base, history)
            if on_remote:
                repo.remote.setdefault(base, history)
                repo.upstreams.setdefault(base, f"origin/{base}")
        self.repos[Path(path)] = repo
        return repo

    def advance_remote(self, path, branch):
        """Simulate someone pushing a new commit to `origin/branch`."""
        repo = self.repos[Path(path)]
        repo.remote[branch] = self._new_history(repo.remote[branch])

    def _new_history(self, history):
        self._next_id += 1
        return history | {f"c{self._next_id}"}

    def _label(self, path):
        return "." if path == self.root else str(path.relative_to(self.root))

    def _record(self, path, method, *args):
        self.calls.append((self._label(path), method, args))

    def _resolve(self, repo, ref):
        if ref.startswith("origin/"):
            return repo.tracking.get(ref.removeprefix("origin/"))
        return repo.branches.get(ref)

    @staticmethod
    def _scope(paths):
        # Whole-tree calls are recorded without arguments
        return () if paths is None else (tuple(paths),)

    @staticmethod
    def _ok(*args):
        return CommandResult(args=args, returncode=0)

    @staticmethod
    def _fail(message, *args):
        return CommandResult(args=args, returncode=1, stderr=message)

    # Queries

    def current_branch(self, repo):
        return self.repos[repo].head or ""

    def has_changes(self, repo, ignore_submodules=False):
        state = self.repos[repo]
        changed = state.changed | state.staged
        if ignore_submodules:
            changed = changed - state.submodule_paths
        return bool(changed)

    def branch_exists(self, repo, branch):
        return branch in self.repos[repo].branches

    def remote_branch_exists(self, repo, branch, remote="origin"):
        return branch in self.repos[repo].tracking

    def upstream(self, repo, branch):
        return self.repos[repo].upstreams.get(branch)

    def rev_parse(self, repo, ref):
        history = self._resolve(self.repos[repo], ref)
        return None if history is None else ",".join(sorted(history))

    def is_ancestor(self, repo, ancestor, descendant):
        state = self.repos[repo]
        return self._resolve(state, ancestor) <= self._resolve(state, descendant)

    def commits_ahead(self, repo, base, ref):
        state = self.repos[repo]
        return len(self._resolve(state, ref) - (self._resolve(state, base) or frozenset()))

    def has_staged_changes(self, repo):
        return bool(self.repos[repo].staged)

    # Commands

    def submodule_deinit(self, repo, paths=None):
        self._record(repo, "submodule_deinit", *self._scope(paths))
        return self._ok("submodule", "deinit")

    def submodule_sync(self, repo):
        self._record(repo, "submodule_sync")
        return self._ok("submodule", "sync")

    def submodule_update(self, repo, paths=None):
        self._record(repo, "submodule_update", *self._scope(paths))
        if self.fail_submodule_update:
            return self._fail("fatal: clone failed", "submodule", "update")
        return self._ok("submodule", "update")

    def fetch(self, repo, remote="origin", branch=None, all_remotes=False):
        self._record(repo, "fetch", remote, branch, all_remotes)
        state = self.repos[repo]
        if branch is None:
            state.tracking = dict(state.remote)
            return self._ok("fetch")
        if branch not in state.remote:
            return self._fail(f"fatal: couldn't find remote ref {branch}", "fetch")
        state.tracking[branch] = state.remote[branch]
        return self._ok("fetch")

    def create_branch(self, repo, name, start_point):
        self._record(repo, "create_branch", name, start_point)
        state = self.repos[repo]
        if state.block_switch and state.changed:
            return self._fail("error: Your local changes would be overwritten", "switch")
        state.branches[name] = self._resolve(state, start_point)
        state.head = name
        return self._ok("switch")

    def checkout(self, repo, branch):
        self._record(repo, "checkout", branch)
        state = self.repos[repo]
        if state.block_switch and state.changed:
            return self._fail("error: Your local changes would be overwritten", "switch")
        state.head = branch
        return self._ok("switch")

    def switch_tracking(self, repo, branch, remote="origin"):
        self._record(repo, "switch_tracking", branch, remote)
        state = self.repos[repo]
        if branch not in state.tracking:
            return self._fail(f"fatal: invalid reference: {remote}/{branch}", "switch")
        state.branches[branch] = state.tracking[branch]
        state.upstreams[branch] = f"{remote}/{branch}"
        state.head = branch
        return self._ok("switch")

    def _integrate(self, repo, method, ref):
        self._record(repo, method, ref)
        state = self.repos[repo]
        if ref in state.conflicts:
            return self._fail("CONFLICT (content): Merge conflict in README.md", method)
        state.branches[state.head] = self._new_history(
            state.branches[state.head] | self._resolve(state, ref)
        )
        return self._ok(method)

    def merge(self, repo, ref):
        return self._integrate(repo, "merge", ref)

    def rebase(self, repo, onto):
        return self._integrate(repo, "rebase", onto)

    def merge_abort(self, repo):
        self._record(repo, "merge_abort")
        return self._ok("merge", "--abort")

    def rebase_abort(self, repo):
        self._record(repo, "rebase_abort")
        return self._ok("rebase", "--abort")

    def push(self, repo, remote, branch, set_upstream=False):
        self._record(repo, "push", remote, branch, set_upstream)
        state = self.repos[repo]
        if state.reject_push:
            return self._fail("! [rejected] (non-fast-forward)", "push")
        state.remote[branch] = state.branches[branch]
        state.tracking[branch] = state.branches[branch]
        if set_upstream:
            state.upstreams[branch] = f"{remote}/{branch}"
        return self._ok("push")

    def add(self, repo, paths):
        self._record(repo, "add", tuple(paths))
        state = self.repos[repo]
        picked = state.changed & set(paths)
        state.changed -= picked
        state.staged |= picked
        return self._ok("add")

    def add_all(self, repo):
        self._record(repo, "add_all")
        state = self.repos[repo]
        state.staged |= state.changed
        state.changed = set()
        return self._ok("add")

    def add_tracked(self, repo, exclude=()):
        self._record(repo, "add_tracked", tuple(exclude))
        state = self.repos[repo]
        picked = state.changed - set(exclude)
        state.changed -= picked
        state.staged |= picked
        return self._ok("add")

    def commit(self, repo, message):
        self._record(repo, "commit", message)
        state = self.repos[repo]
        if state.fail_commit or not state.staged:
            return self._fail("nothing to commit, working tree clean", "commit")
        state.branches[state.head] = self._new_history(state.branches[state.head])
        state.staged = set()
        state.commits += 1
        return self._ok("commit")


@pytest.fixture
def fake_tree(tmp_path):
    """
    Create a directory tree that looks like a root repository with two
    submodules, and a FakeControl managing all three.

    Returns:
        SimpleNamespace with `root`, `control` and `subs` (path -> FakeRepo).
    """
    root = (tmp_path / "root").resolve()
    (root / ".git").mkdir(parents=True)
    (root / ".gitmodules").write_text(
        '[submodule "libs/alpha"]\n'
        "\tpath = libs/alpha\n"
        "\turl = https://example.com/alpha.git\n"
        '[submodule "libs/beta"]\n'
        "\tpath = libs/beta\n"
        "\turl = https://example.com/beta.git\n"
    )

    control = FakeControl(root)
    control.add_repo(root, head="main", submodule_paths={"libs/alpha", "libs/beta"})
    subs = {}
    for path in ("libs/alpha", "libs/beta"):
        sub = root / path
        sub.mkdir(parents=True)
        (sub / ".git").write_text(f"gitdir: ../../.git/modules/{path}\n")
        subs[path] = control.add_repo(sub)

    return SimpleNamespace(root=root, control=control, subs=subs)
