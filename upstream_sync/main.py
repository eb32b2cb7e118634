"""
CLI entry points for upstream_sync.

Provides two commands: ``sync-upstream`` (fixed merge workflow, optional
branch argument) and ``sync-upstream-advanced`` (branch, strategy and
auto-stash options).
"""

import sys
from collections.abc import Sequence
from pathlib import Path

import click
import yaml
from pydantic import ValidationError
from rich.console import Console

from .config import DEFAULT_BRANCH, STRATEGIES, SyncConfig, load_config
from .syncer import UpstreamSyncer

console = Console()

# Number of upstream branches the basic tool lists when the requested one is missing
BASIC_BRANCH_LIST_LIMIT = 10

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}

# Whichever of -b and the positional BRANCH comes last on the command line wins
BRANCH_META_KEY = "upstream_sync.branch"

ADVANCED_EPILOG = """\b
Examples:
  sync-upstream-advanced                      # sync main with merge
  sync-upstream-advanced -b main -s merge     # merge upstream/main
  sync-upstream-advanced -b develop -s rebase # rebase onto upstream/develop
  sync-upstream-advanced --force              # stash local changes first

\b
Strategies:
  merge  - create a merge commit, keeping the full history
  rebase - replay local commits on top of upstream, keeping history linear
"""


def _load_config(config_path: Path | None, **overrides) -> SyncConfig:
    """Load configuration, exiting with status 1 when it is invalid."""
    try:
        return load_config(config_path, **overrides)
    except FileNotFoundError:
        console.print(f"[red]Config file not found: {config_path}[/red]")
        raise SystemExit(1)
    except (ValidationError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading config: {e}[/red]")
        raise SystemExit(1)


def _remember_branch(ctx: click.Context, param: click.Parameter, value: str | None) -> str | None:
    """Record a branch given as -b or positionally; click calls this in command-line order."""
    if value is not None:
        ctx.meta[BRANCH_META_KEY] = value
    return value


@click.command(context_settings=CONTEXT_SETTINGS)
@click.argument("branch", required=False)
@click.option(
    "--upstream-url",
    envvar="SYNC_UPSTREAM_URL",
    hidden=True,
    help="URL of the upstream repository",
)
def basic(branch: str | None, upstream_url: str | None) -> int:
    """Fetch the upstream repository and merge BRANCH (default: main) into the current branch."""
    config = _load_config(
        None,
        branch=branch,
        upstream_url=upstream_url,
        branch_list_limit=BASIC_BRANCH_LIST_LIMIT,
    )
    result = UpstreamSyncer(config).sync_basic()
    return 0 if result.success else 1


@click.command(context_settings=CONTEXT_SETTINGS, epilog=ADVANCED_EPILOG)
@click.argument("branch_arg", metavar="[BRANCH]", required=False, callback=_remember_branch)
@click.option(
    "--branch",
    "-b",
    metavar="BRANCH",
    help=f"Upstream branch to sync (default: {DEFAULT_BRANCH})",
    callback=_remember_branch,
)
@click.option(
    "--strategy",
    "-s",
    type=click.Choice(STRATEGIES),
    help="Integration strategy: merge or rebase (default: merge)",
)
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Sync even with uncommitted changes (they are stashed and restored)",
)
@click.option(
    "--upstream-url",
    "-u",
    envvar="SYNC_UPSTREAM_URL",
    help="URL of the upstream repository (or set SYNC_UPSTREAM_URL env var)",
)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to a YAML config file (default: ./.sync-upstream.yaml if present)",
)
@click.option("--verbose", "-v", is_flag=True, help="Show the git actions taken")
def advanced(
    branch_arg: str | None,
    branch: str | None,
    strategy: str | None,
    force: bool,
    upstream_url: str | None,
    config_path: Path | None,
    verbose: bool,
) -> int:
    """Sync the current branch with the upstream repository."""
    config = _load_config(
        config_path,
        branch=click.get_current_context().meta.get(BRANCH_META_KEY),
        strategy=strategy,
        force=True if force else None,
        upstream_url=upstream_url,
    )
    result = UpstreamSyncer(config, verbose=verbose).sync()
    return 0 if result.success else 1


def _invoke(command: click.Command, args: Sequence[str] | None, prog_name: str) -> int:
    """
    Run a click command and return its exit status.

    Usage errors (unknown option, extra argument, invalid choice) exit with
    status 1 rather than click's default of 2.
    """
    try:
        rv = command.main(
            args=list(args) if args is not None else None,
            prog_name=prog_name,
            standalone_mode=False,
        )
    except click.ClickException as e:
        e.show()
        return 1
    except click.Abort:
        click.echo("Aborted!", err=True)
        return 1
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 1
    return rv if isinstance(rv, int) else 0


def run_basic(args: Sequence[str] | None = None) -> int:
    return _invoke(basic, args, "sync-upstream")


def run_advanced(args: Sequence[str] | None = None) -> int:
    return _invoke(advanced, args, "sync-upstream-advanced")


def basic_main() -> None:
    sys.exit(run_basic())


def advanced_main() -> None:
    sys.exit(run_advanced())


if __name__ == "__main__":
    advanced_main()
