"""Tests for refresh module."""

import pytest

from git_submodule_sync.errors import NotARepository, SubmoduleError
from git_submodule_sync.gitmodules import GitmodulesFile
from git_submodule_sync.refresh import refresh_submodules
from git_submodule_sync.git import current_branch


def _set_branch(root, name, branch):
    doc = GitmodulesFile.read(root / ".gitmodules")
    doc.set_branch(name, branch)
    doc.write(root / ".gitmodules")


class TestRefreshSubmodules:
    """Tests for refresh_submodules function."""

    def test_switches_to_default_branch(self, superproject):
        results = refresh_submodules(superproject.root)

        assert [(r.path, r.branch, r.switched) for r in results] == [
            ("libs/alpha", "main", True),
            ("libs/beta", "main", True),
        ]
        assert current_branch(superproject.root / "libs/alpha") == "main"

    def test_uses_configured_branch(self, git, superproject):
        alpha = superproject.upstream["alpha"]
        git("push", "origin", "main:develop", cwd=alpha)
        _set_branch(superproject.root, "libs/alpha", "develop")

        results = refresh_submodules(superproject.root)

        assert results[0].branch == "develop"
        assert results[0].switched is True
        assert current_branch(superproject.root / "libs/alpha") == "develop"

    def test_tracks_latest_remote_commit(self, git, commit, superproject):
        new_head = commit(superproject.upstream["beta"], "feature.txt", "x")
        git("push", "origin", "main", cwd=superproject.upstream["beta"])

        refresh_submodules(superproject.root)

        beta = superproject.root / "libs/beta"
        assert git("rev-parse", "HEAD", cwd=beta) == new_head
        assert git("rev-parse", "--abbrev-ref", "main@{upstream}", cwd=beta) == "origin/main"

    def test_missing_branch_is_reported(self, superproject):
        _set_branch(superproject.root, "libs/beta", "nope")

        results = refresh_submodules(superproject.root)

        assert results[1].branch == "nope"
        assert results[1].switched is False
        assert results[1].detail
        assert current_branch(superproject.root / "libs/beta") == ""


    def test_dirty_submodule_is_left_alone(self, superproject):
        root = superproject.root
        (root / "libs/alpha/README.md").write_text("local work\n")

        results = refresh_submodules(root)

        assert results[0].path == "libs/alpha"
        assert not results[0].switched
        assert results[0].detail == "uncommitted changes"
        assert (root / "libs/alpha/README.md").read_text() == "local work\n"
        assert results[1].switched
        assert current_branch(root / "libs/beta") == "main"

    def test_custom_default_branch(self, superproject):
        results = refresh_submodules(superproject.root, default_branch="trunk")
        assert all(not result.switched for result in results)

    def test_ignore_file(self, superproject):
        (superproject.root / ".syncignore").write_text("libs/beta\n")
        results = refresh_submodules(superproject.root, ignore_file=".syncignore")
        assert [result.path for result in results] == ["libs/alpha"]

    def test_no_submodules(self, git_repo):
        assert refresh_submodules(git_repo) == []

    def test_not_a_repository(self, tmp_path):
        with pytest.raises(NotARepository):
            refresh_submodules(tmp_path)

    def test_update_failure_raises(self, fake_tree):
        fake_tree.control.fail_submodule_update = True
        with pytest.raises(SubmoduleError, match="update") as excinfo:
            refresh_submodules(fake_tree.root, control=fake_tree.control)
        assert excinfo.value.detail == "fatal: clone failed"
