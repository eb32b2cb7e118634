"""
Configuration handling for upstream_sync.

Defines the configuration schema and provides methods for loading/saving
the optional YAML configuration file.
"""

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field


# Canonical upstream repository this fork tracks
DEFAULT_UPSTREAM_URL = "https://github.com/coze-dev/coze-studio.git"
UPSTREAM_REMOTE = "upstream"
DEFAULT_BRANCH = "main"
DEFAULT_CONFIG_FILE = Path(".sync-upstream.yaml")

Strategy = Literal["merge", "rebase"]
STRATEGIES: tuple[str, ...] = ("merge", "rebase")


class SyncConfig(BaseModel):
    """Settings for a single synchronization run."""

    upstream_url: str = Field(
        default=DEFAULT_UPSTREAM_URL,
        description="URL the 'upstream' remote must point at",
    )
    branch: str = Field(
        default=DEFAULT_BRANCH, description="Upstream branch to integrate"
    )
    strategy: Strategy = Field(
        default="merge", description="Integration strategy: merge or rebase"
    )
    force: bool = Field(
        default=False,
        description="Auto-stash uncommitted changes instead of refusing to run",
    )
    # Maximum number of upstream branches listed when the requested one is missing
    branch_list_limit: int | None = Field(
        default=None,
        ge=1,
        description="Cap on listed upstream branches (None lists all)",
    )

    @property
    def upstream_remote(self) -> str:
        """Name of the upstream remote (fixed)."""
        return UPSTREAM_REMOTE

    @property
    def upstream_ref(self) -> str:
        """Remote-tracking ref for the configured branch, e.g. 'upstream/main'."""
        return f"{UPSTREAM_REMOTE}/{self.branch}"

    @classmethod
    def from_yaml(cls, path: Path) -> "SyncConfig":
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.model_validate(data)

    def to_yaml(self, path: Path) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w") as f:
            yaml.dump(
                self.model_dump(mode="json"),
                f,
                default_flow_style=False,
                sort_keys=False,
            )


def load_config(path: Path | None = None, **overrides: Any) -> SyncConfig:
    """
    Build the effective configuration.

    Values come from the YAML file at ``path`` (or ``DEFAULT_CONFIG_FILE`` in
    the current directory, when present), then ``overrides`` whose value is
    not None. The merged result is validated as a whole.

    Raises:
        FileNotFoundError: an explicit ``path`` does not exist
        pydantic.ValidationError: a setting has an invalid value
        yaml.YAMLError: the file is not valid YAML
    """
    data: dict[str, Any] = {}
    if path is not None:
        data = SyncConfig.from_yaml(path).model_dump()
    elif DEFAULT_CONFIG_FILE.is_file():
        data = SyncConfig.from_yaml(DEFAULT_CONFIG_FILE).model_dump()

    data.update({key: value for key, value in overrides.items() if value is not None})
    return SyncConfig.model_validate(data)
