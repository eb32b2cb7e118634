"""
Main syncer logic for pulling upstream changes into a fork.

This module runs the sync workflow step by step: preflight checks, upstream
remote setup, fetch, divergence report, merge or rebase, stash restore and
follow-up guidance.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from .config import SyncConfig
from .git_ops import (
    GitRepository,
    GitSyncError,
    IntegrationError,
    NotARepositoryError,
    RemoteBranchNotFoundError,
    VersionControl,
)

console = Console()

RepoFactory = Callable[[Path], VersionControl]

STASH_MESSAGE_FORMAT = "Auto-stashed by sync-upstream at %Y-%m-%d %H:%M:%S"


@dataclass
class Divergence:
    """Commit counts between HEAD and the upstream branch."""

    ahead: int | None
    behind: int | None

    @property
    def available(self) -> bool:
        return self.ahead is not None and self.behind is not None


@dataclass
class SyncResult:
    """Result of a sync run."""

    success: bool
    branch: str
    strategy: str
    stashed: bool = False
    stash_restored: bool = False
    divergence: Divergence | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class SyncAborted(Exception):
    """Raised by a workflow step once it has reported a fatal condition."""


def _fmt_count(count: int | None) -> str:
    return "N/A" if count is None else str(count)


class UpstreamSyncer:
    """Synchronizes the current working copy with its upstream repository."""

    def __init__(
        self,
        config: SyncConfig,
        path: Path | None = None,
        open_repo: RepoFactory = GitRepository,
        verbose: bool = False,
    ):
        """Initialize the syncer with configuration."""
        self.config = config
        self.path = Path(path) if path is not None else Path.cwd()
        self.open_repo = open_repo
        self.verbose = verbose
        self.repo: VersionControl | None = None

    def _debug(self, message: str) -> None:
        if self.verbose:
            console.print(f"[dim]{escape(message)}[/dim]")

    def _fail(self, message: str, detail: str = "") -> SyncAborted:
        """Print a fatal error and build the exception that ends the run."""
        console.print(f"[red]✗ {escape(message)}[/red]")
        if detail:
            console.print(f"[dim]{escape(detail)}[/dim]")
        return SyncAborted(message)

    # Preflight

    def check_repository(self) -> VersionControl:
        """Open the working copy, failing if the path is not inside one."""
        try:
            self.repo = self.open_repo(self.path)
        except NotARepositoryError as e:
            raise self._fail("Current directory is not a git repository!", str(e)) from e
        return self.repo

    def check_working_directory(self, allow_stash: bool, basic_hints: bool = False) -> bool:
        """
        Make sure no uncommitted change can be lost by the sync.

        With ``allow_stash`` a dirty working copy is stashed instead of
        rejected. Returns True when a stash entry was created.
        """
        repo = self.repo
        if not repo.is_dirty():
            return False

        if allow_stash:
            console.print("[yellow]Working directory has uncommitted changes, stashing them...[/yellow]")
            message = datetime.now().strftime(STASH_MESSAGE_FORMAT)
            before = repo.stash_count()
            try:
                repo.stash_push(message)
            except GitSyncError as e:
                raise self._fail(str(e), e.detail) from e
            if repo.stash_count() == before:
                # Nothing was stashed, so nothing must be popped later
                console.print("[yellow]⚠ Nothing to stash[/yellow]")
                return False
            self._debug(f"git stash push -m '{message}'")
            console.print("[green]✓ Stashed local changes[/green]")
            return True

        error = self._fail("Working directory has uncommitted changes!")
        console.print()
        if basic_hints:
            console.print("Commit or stash your changes before running this script.")
            console.print()
            console.print("You can:")
            console.print("  1. Commit them: git add . && git commit -m 'your message'")
            console.print("  2. Stash them: git stash")
            console.print("  3. Discard them: git reset --hard HEAD")
        else:
            console.print("Commit or stash your changes first, or pass --force to stash them automatically.")
        raise error

    # Remote handling

    def setup_upstream(self) -> None:
        """Create the upstream remote, or repair its URL if it drifted."""
        repo = self.repo
        remote = self.config.upstream_remote
        url = self.config.upstream_url

        try:
            if remote in repo.get_remote_names():
                console.print(f"Upstream remote already exists: [cyan]{remote}[/cyan]")
                current_url = repo.get_remote_url(remote)
                if current_url != url:
                    console.print("[yellow]Upstream remote URL does not match, updating...[/yellow]")
                    self._debug(f"{current_url} -> {url}")
                    repo.set_remote_url(remote, url)
                    console.print("[green]✓ Updated upstream remote URL[/green]")
            else:
                console.print(f"Adding upstream remote: [cyan]{remote}[/cyan]")
                self._debug(f"git remote add {remote} {url}")
                repo.add_remote(remote, url)
                console.print("[green]✓ Added upstream remote[/green]")
        except GitSyncError as e:
            raise self._fail(str(e), e.detail) from e

    def fetch_upstream(self, all_branches: bool = False) -> None:
        """
        Fetch the configured branch, or every branch, from upstream.

        Fetching every branch also prunes tracking refs of branches deleted
        upstream, so a stale ref can never stand in for a missing branch.
        """
        remote = self.config.upstream_remote
        branch = None if all_branches else self.config.branch

        console.print("Fetching latest changes from upstream...")
        self._debug(f"git fetch {remote} {branch}" if branch else f"git fetch --prune {remote}")
        try:
            self.repo.fetch(remote, branch, prune=all_branches)
        except RemoteBranchNotFoundError as e:
            # Fetch everything so the missing branch can be reported with alternatives
            console.print(f"[yellow]⚠ {escape(str(e))}[/yellow]")
            self._debug(f"git fetch --prune {remote}")
            try:
                self.repo.fetch(remote, prune=True)
            except GitSyncError as fetch_error:
                raise self._fail(str(fetch_error), fetch_error.detail) from fetch_error
            return
        except GitSyncError as e:
            raise self._fail(str(e), e.detail) from e
        console.print("[green]✓ Fetched latest upstream changes[/green]")

    # Reporting

    def get_divergence(self) -> Divergence:
        """Count commits ahead of / behind the upstream branch, when it exists."""
        repo = self.repo
        upstream_ref = self.config.upstream_ref

        if not repo.has_remote_branch(self.config.upstream_remote, self.config.branch):
            return Divergence(ahead=None, behind=None)

        counts: list[int | None] = []
        for revision_range in (f"{upstream_ref}..HEAD", f"HEAD..{upstream_ref}"):
            try:
                counts.append(repo.count_commits(revision_range))
            except GitSyncError as e:
                self._debug(f"{e}: {e.detail}")
                counts.append(None)
        return Divergence(ahead=counts[0], behind=counts[1])

    def show_branch_info(self, divergence: Divergence) -> None:
        """Print the current/upstream branch summary shown before integration."""
        current = self.repo.get_current_branch() or "(detached HEAD)"

        console.print()
        console.print("[cyan]=== Branch info ===[/cyan]")
        console.print(f"  Current branch:  {escape(current)}")
        console.print(f"  Upstream branch: {escape(self.config.upstream_ref)}")
        console.print(f"  Strategy:        {self.config.strategy}")
        if divergence.available:
            console.print(f"  Local ahead:     {divergence.ahead} commits")
            console.print(f"  Upstream ahead:  {divergence.behind} commits")
        else:
            console.print("  Divergence:      unavailable")
        console.print()

    def show_merge_stats(self, divergence: Divergence) -> None:
        """Print divergence after a basic merge."""
        console.print("Merge statistics:")
        # HEAD ^upstream/<branch>: local work the merge kept on top of upstream
        console.print(f"  New local commits: {_fmt_count(divergence.ahead)}")
        console.print(f"  Current branch ahead: {_fmt_count(divergence.ahead)}")
        console.print(f"  Upstream ahead: {_fmt_count(divergence.behind)}")

    def show_next_steps(self) -> None:
        """Print follow-up commands after a successful sync."""
        console.print()
        console.print("[cyan]=== Next steps ===[/cyan]")
        console.print("  Review history:  git log --oneline --graph -10")
        console.print("  Push to origin:  git push")
        if self.config.strategy == "rebase":
            console.print("  Force push (if already pushed): git push --force-with-lease")
        console.print(f"  Show diff:       git diff {escape(self.config.upstream_ref)}..HEAD")
        console.print()

    # Integration

    def ensure_upstream_branch(self) -> None:
        """Fail with a list of available upstream branches if ours is missing."""
        repo = self.repo
        remote = self.config.upstream_remote
        if repo.has_remote_branch(remote, self.config.branch):
            return

        error = self._fail(f"Upstream branch {self.config.upstream_ref} does not exist!")
        console.print()
        console.print("Available upstream branches:")
        branches = repo.get_remote_branches(remote)
        limit = self.config.branch_list_limit
        for name in branches[:limit] if limit else branches:
            console.print(f"  {escape(name)}")
        if not branches:
            console.print("  [dim](none)[/dim]")
        raise error

    def integrate(self) -> None:
        """Merge or rebase onto the upstream branch, per the configured strategy."""
        upstream_ref = self.config.upstream_ref
        strategy = self.config.strategy

        console.print(f"Integrating {escape(upstream_ref)} using [cyan]{strategy}[/cyan]...")
        try:
            if strategy == "rebase":
                self.repo.rebase(upstream_ref)
            else:
                self.repo.merge(upstream_ref)
        except IntegrationError as e:
            error = self._fail(f"{strategy.capitalize()} failed, there are conflicts!", e.detail)
            self._print_conflict_help(strategy)
            raise error from e

        console.print(f"[green]✓ {strategy.capitalize()} succeeded![/green]")

    def _print_conflict_help(self, strategy: str) -> None:
        console.print()
        console.print("Resolve the conflicts manually:")
        console.print("  1. List conflicted files: git status")
        console.print("  2. Edit the files and resolve the conflict markers")
        console.print("  3. Mark them as resolved: git add <file>")
        if strategy == "rebase":
            console.print("  4. Continue the rebase: git rebase --continue")
            console.print("  5. Or cancel it: git rebase --abort")
        else:
            console.print("  4. Complete the merge: git commit")
            console.print("  5. Or cancel it: git merge --abort")

    def restore_stash(self, result: SyncResult) -> None:
        """Pop the auto-stash; a failure is only a warning."""
        console.print("Restoring stashed changes...")
        try:
            self.repo.stash_pop()
        except GitSyncError as e:
            warning = "Restoring stashed changes produced conflicts, resolve them manually"
            result.warnings.append(warning)
            console.print(f"[yellow]⚠ {warning}[/yellow]")
            if e.detail:
                console.print(f"[dim]{escape(e.detail)}[/dim]")
            return
        result.stash_restored = True
        console.print("[green]✓ Restored stashed changes[/green]")

    # Workflows

    def sync(self) -> SyncResult:
        """
        Run the configurable workflow.

        Fetches only the configured branch, reports divergence up front, then
        merges or rebases. Uncommitted changes are auto-stashed when
        ``config.force`` is set and restored after a successful integration.

        Returns:
            SyncResult describing the run
        """
        result = SyncResult(
            success=True,
            branch=self.config.branch,
            strategy=self.config.strategy,
        )

        console.print("[cyan]=========================================[/cyan]")
        console.print("[cyan]  Sync upstream repository[/cyan]")
        console.print("[cyan]=========================================[/cyan]")
        console.print()

        try:
            self.check_repository()
            result.stashed = self.check_working_directory(allow_stash=self.config.force)
            self.setup_upstream()
            self.fetch_upstream()
            result.divergence = self.get_divergence()
            self.show_branch_info(result.divergence)
            self.ensure_upstream_branch()
            self.integrate()
        except SyncAborted as e:
            result.success = False
            result.errors.append(str(e))
            if result.stashed:
                console.print()
                console.print(
                    "[yellow]Your local changes are still stashed; "
                    "run 'git stash pop' once the repository is back in shape.[/yellow]"
                )
            return result

        if result.stashed:
            self.restore_stash(result)
        self.show_next_steps()
        console.print("[green]✓ Sync complete![/green]")
        return result

    def sync_basic(self) -> SyncResult:
        """
        Run the fixed merge workflow.

        Fetches every upstream branch, refuses to touch a dirty working copy
        and always merges. Merge statistics are printed afterwards.
        """
        result = SyncResult(success=True, branch=self.config.branch, strategy="merge")
        if self.config.strategy != "merge":
            self.config = self.config.model_copy(update={"strategy": "merge"})

        console.print("Starting upstream sync...")
        console.print()

        try:
            self.check_repository()
            self.check_working_directory(allow_stash=False, basic_hints=True)
            self.setup_upstream()
            self.fetch_upstream(all_branches=True)
            self.ensure_upstream_branch()
            console.print(f"Current branch: {escape(self.repo.get_current_branch() or '(detached HEAD)')}")
            self.integrate()
        except SyncAborted as e:
            result.success = False
            result.errors.append(str(e))
            return result

        console.print("You can run 'git log' to inspect the merge commit")
        console.print()
        console.print("[green]✓ Sync complete![/green]")
        result.divergence = self.get_divergence()
        self.show_merge_stats(result.divergence)
        console.print()
        console.print("Tips:")
        console.print("  - Review the merge: git log --oneline --graph")
        console.print("  - Push to origin: git push")
        console.print(f"  - Show diff: git diff {escape(self.config.upstream_ref)}..HEAD")
        return result
