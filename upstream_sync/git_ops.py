"""
Git operations for the upstream syncer.

Provides a wrapper around the git commands the sync workflow needs using
GitPython: working-copy status, remote management, fetch, divergence
counting, merge, rebase and stash.
"""

from pathlib import Path
from typing import Protocol

from git import Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError


class GitSyncError(Exception):
    """A git command needed by the sync workflow failed."""

    def __init__(self, message: str, detail: str = ""):
        super().__init__(message)
        self.detail = detail


class NotARepositoryError(ValueError):
    """The given path is not inside a git working copy."""


class IntegrationError(GitSyncError):
    """A merge or rebase stopped, usually on conflicts."""


class RemoteBranchNotFoundError(GitSyncError):
    """The requested branch does not exist on the remote."""


def _stderr(error: GitCommandError) -> str:
    """Best-effort human-readable output of a failed git command."""
    text = error.stderr or error.stdout or ""
    if isinstance(text, bytes):
        text = text.decode(errors="replace")
    text = text.strip()
    # GitPython wraps captured output as "  stderr: '...'"
    for prefix in ("stderr:", "stdout:"):
        if text.startswith(prefix):
            text = text[len(prefix):].strip()
    return text.strip("'").strip()


class VersionControl(Protocol):
    """Capabilities the sync workflow requires from version control."""

    def get_current_branch(self) -> str | None: ...

    def is_dirty(self) -> bool: ...

    def stash_push(self, message: str) -> None: ...

    def stash_pop(self) -> None: ...

    def stash_count(self) -> int: ...

    def get_remote_names(self) -> list[str]: ...

    def get_remote_url(self, name: str) -> str: ...

    def add_remote(self, name: str, url: str) -> None: ...

    def set_remote_url(self, name: str, url: str) -> None: ...

    def fetch(self, remote: str, branch: str | None = None, prune: bool = False) -> None: ...

    def get_remote_branches(self, remote: str) -> list[str]: ...

    def has_remote_branch(self, remote: str, branch: str) -> bool: ...

    def count_commits(self, revision_range: str) -> int: ...

    def merge(self, ref: str) -> None: ...

    def rebase(self, onto: str) -> None: ...


class GitRepository:
    """Wrapper around a git working copy for sync operations."""

    def __init__(self, path: Path):
        """Open the working copy containing ``path``."""
        self.path = Path(path).resolve()
        try:
            self.repo = Repo(self.path, search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise NotARepositoryError(f"Not a valid git repository: {self.path}") from e
        if self.repo.bare:
            raise NotARepositoryError(f"Not a git working copy (bare repository): {self.path}")

    def get_current_branch(self) -> str | None:
        """Get the current branch name, or None on a detached HEAD."""
        try:
            return self.repo.active_branch.name
        except TypeError:
            return None

    def refresh_index(self) -> None:
        """Refresh the git index to ensure it's in sync with the working tree."""
        try:
            self.repo.git.update_index("-q", "--refresh")
        except GitCommandError:
            pass  # Files needing an update are reported by diff-index anyway

    def is_dirty(self) -> bool:
        """
        Check whether tracked files differ from HEAD (staged or not).

        Untracked files are ignored. A repository without any commit counts
        as dirty, since there is no HEAD to compare against.
        """
        self.refresh_index()
        try:
            self.repo.git.diff_index("--quiet", "HEAD", "--")
        except GitCommandError:
            return True
        return False

    def stash_push(self, message: str) -> None:
        """Stash uncommitted changes under ``message``."""
        try:
            self.repo.git.stash("push", "-m", message)
        except GitCommandError as e:
            raise GitSyncError("Failed to stash local changes", _stderr(e)) from e

    def stash_pop(self) -> None:
        """Re-apply and drop the most recent stash entry."""
        try:
            self.repo.git.stash("pop")
        except GitCommandError as e:
            raise GitSyncError("Failed to restore stashed changes", _stderr(e)) from e

    def stash_count(self) -> int:
        """Number of entries in the stash."""
        output = self.repo.git.stash("list")
        return len(output.splitlines())

    def get_remote_names(self) -> list[str]:
        """Names of all configured remotes."""
        return [remote.name for remote in self.repo.remotes]

    def get_remote_url(self, name: str) -> str:
        """Fetch URL of a remote."""
        return self.repo.git.remote("get-url", name).strip()

    def add_remote(self, name: str, url: str) -> None:
        """Add a new remote."""
        try:
            self.repo.create_remote(name, url)
        except GitCommandError as e:
            raise GitSyncError(f"Failed to add remote '{name}'", _stderr(e)) from e

    def set_remote_url(self, name: str, url: str) -> None:
        """Point an existing remote at a new URL."""
        try:
            self.repo.git.remote("set-url", name, url)
        except GitCommandError as e:
            raise GitSyncError(f"Failed to update URL of remote '{name}'", _stderr(e)) from e

    def fetch(self, remote: str, branch: str | None = None, prune: bool = False) -> None:
        """
        Fetch from remote, limited to ``branch`` when given.

        With ``prune`` remote-tracking refs whose branch is gone upstream are
        deleted.
        """
        args = ["--prune"] if prune else []
        args.append(remote)
        if branch is not None:
            args.append(branch)
        try:
            self.repo.git.fetch(*args)
        except GitCommandError as e:
            detail = _stderr(e)
            if branch is not None and "couldn't find remote ref" in detail:
                raise RemoteBranchNotFoundError(
                    f"Branch '{branch}' not found on '{remote}'", detail
                ) from e
            raise GitSyncError(f"Failed to fetch from '{remote}'", detail) from e

    def get_remote_branches(self, remote: str) -> list[str]:
        """Remote-tracking branches of ``remote``, e.g. ['upstream/main']."""
        prefix = f"{remote}/"
        branches = []
        for line in self.repo.git.branch("-r").splitlines():
            name = line.strip()
            # Skip symbolic refs such as "upstream/HEAD -> upstream/main"
            if "->" in name:
                continue
            if name.startswith(prefix):
                branches.append(name)
        return branches

    def has_remote_branch(self, remote: str, branch: str) -> bool:
        """Check if refs/remotes/<remote>/<branch> exists."""
        try:
            self.repo.git.show_ref("--verify", "--quiet", f"refs/remotes/{remote}/{branch}")
            return True
        except GitCommandError:
            return False

    def count_commits(self, revision_range: str) -> int:
        """Count commits in a revision range such as 'upstream/main..HEAD'."""
        try:
            return int(self.repo.git.rev_list("--count", revision_range))
        except GitCommandError as e:
            raise GitSyncError(f"Failed to count commits in {revision_range}", _stderr(e)) from e

    def merge(self, ref: str) -> None:
        """Merge ``ref`` into the current branch without opening an editor."""
        try:
            self.repo.git.merge(ref, "--no-edit")
        except GitCommandError as e:
            raise IntegrationError(f"Merge of {ref} failed", _stderr(e)) from e

    def rebase(self, onto: str) -> None:
        """Rebase local commits of the current branch onto ``onto``."""
        try:
            self.repo.git.rebase(onto)
        except GitCommandError as e:
            raise IntegrationError(f"Rebase onto {onto} failed", _stderr(e)) from e
