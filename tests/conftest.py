"""Pytest configuration and fixtures for upstream_sync tests."""

import tempfile
from dataclasses import dataclass, field
from pathlib import Path

import pytest
from git import Repo

from upstream_sync.git_ops import GitSyncError, IntegrationError, RemoteBranchNotFoundError


def configure_user(repo: Repo) -> None:
    """Give the repository a committer identity."""
    repo.config_writer().set_value("user", "name", "Test User").release()
    repo.config_writer().set_value("user", "email", "test@example.com").release()


def commit_file(repo_path: Path, name: str, content: str, message: str) -> str:
    """Write a file, commit it and return the new commit hash."""
    repo = Repo(repo_path)
    (repo_path / name).write_text(content)
    repo.index.add([name])
    repo.index.commit(message)
    return repo.head.commit.hexsha


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def upstream_repo(temp_dir: Path):
    """Create a temporary git repository to act as the upstream project."""
    repo_path = temp_dir / "upstream"
    repo_path.mkdir()

    repo = Repo.init(repo_path)
    configure_user(repo)

    readme = repo_path / "README.md"
    readme.write_text("# Upstream\n")
    repo.index.add(["README.md"])
    repo.index.commit("Initial commit")
    # Independent of the init.defaultBranch setting
    repo.git.branch("-M", "main")

    yield repo_path


@pytest.fixture
def fork_repo(temp_dir: Path, upstream_repo: Path):
    """Clone the upstream repository to act as the fork (no 'upstream' remote yet)."""
    repo_path = temp_dir / "fork"
    repo = Repo.clone_from(str(upstream_repo), repo_path)
    configure_user(repo)

    yield repo_path


@dataclass
class FakeVersionControl:
    """In-memory stand-in for GitRepository that records every call."""

    branch: str | None = "main"
    dirty: bool = False
    remotes: dict[str, str] = field(default_factory=dict)
    # Branches that exist on each remote; they become tracking refs once fetched
    remote_branches: dict[str, list[str]] = field(
        default_factory=lambda: {"upstream": ["main"]}
    )
    tracking: set[str] = field(default_factory=set)
    ahead: int = 0
    behind: int = 0
    conflict: bool = False
    stash_pop_conflict: bool = False
    fetch_error: bool = False
    stashes: list[str] = field(default_factory=list)
    calls: list[tuple] = field(default_factory=list)

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]

    def get_current_branch(self) -> str | None:
        return self.branch

    def is_dirty(self) -> bool:
        return self.dirty

    def stash_push(self, message: str) -> None:
        self.calls.append(("stash_push", message))
        self.stashes.append(message)
        self.dirty = False

    def stash_pop(self) -> None:
        self.calls.append(("stash_pop",))
        if self.stash_pop_conflict:
            raise GitSyncError("Failed to restore stashed changes", "CONFLICT (content)")
        self.stashes.pop()
        self.dirty = True

    def stash_count(self) -> int:
        return len(self.stashes)

    def get_remote_names(self) -> list[str]:
        return list(self.remotes)

    def get_remote_url(self, name: str) -> str:
        return self.remotes[name]

    def add_remote(self, name: str, url: str) -> None:
        self.calls.append(("add_remote", name, url))
        self.remotes[name] = url

    def set_remote_url(self, name: str, url: str) -> None:
        self.calls.append(("set_remote_url", name, url))
        self.remotes[name] = url

    def fetch(self, remote: str, branch: str | None = None, prune: bool = False) -> None:
        self.calls.append(("fetch", remote, branch, prune))
        if self.fetch_error:
            raise GitSyncError(f"Failed to fetch from '{remote}'", "Could not resolve host")
        available = self.remote_branches.get(remote, [])
        if branch is not None:
            if branch not in available:
                raise RemoteBranchNotFoundError(
                    f"Branch '{branch}' not found on '{remote}'",
                    f"fatal: couldn't find remote ref {branch}",
                )
            available = [branch]
        if prune:
            self.tracking = {
                ref for ref in self.tracking
                if not ref.startswith(f"{remote}/") or ref[len(remote) + 1:] in available
            }
        self.tracking.update(f"{remote}/{name}" for name in available)

    def get_remote_branches(self, remote: str) -> list[str]:
        return sorted(ref for ref in self.tracking if ref.startswith(f"{remote}/"))

    def has_remote_branch(self, remote: str, branch: str) -> bool:
        return f"{remote}/{branch}" in self.tracking

    def count_commits(self, revision_range: str) -> int:
        self.calls.append(("count_commits", revision_range))
        return self.ahead if revision_range.endswith("..HEAD") else self.behind

    def merge(self, ref: str) -> None:
        self.calls.append(("merge", ref))
        if self.conflict:
            raise IntegrationError(f"Merge of {ref} failed", "CONFLICT (content): Merge conflict in README.md")

    def rebase(self, onto: str) -> None:
        self.calls.append(("rebase", onto))
        if self.conflict:
            raise IntegrationError(f"Rebase onto {onto} failed", "CONFLICT (content): Merge conflict in README.md")


@pytest.fixture
def fake_vcs():
    """A fake version-control collaborator with a clean working copy."""
    return FakeVersionControl()
