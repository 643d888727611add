"""
Project paths and environment configuration.

Every file packwright reads or writes lives under a project root. ProjectPaths
derives all of those locations from the root in one place so the installer,
the trust manager and the source store agree on the layout.

Environment:
    PACKWRIGHT_HOME: name of the state directory (default ".packwright")
    PACKWRIGHT_GITHUB_TOKEN / GITHUB_TOKEN: default token for GitHub sources
    PACKWRIGHT_CACHE_TTL: cache lifetime in seconds for remote sources
"""

import os
from dataclasses import dataclass
from pathlib import Path


DEFAULT_STATE_DIR = ".packwright"
DEFAULT_AGENTS_DIR = ".claude/agents"
DEFAULT_CACHE_TTL = 300.0
DEFAULT_TIMEOUT = 30.0

BUNDLED_PACKS_DIR = Path(__file__).resolve().parent / "starter_packs"


@dataclass(frozen=True)
class ProjectPaths:
    """
    Filesystem layout for one project checkout.

    Attributes:
        root: Absolute project root
        state_dir_name: Name of the tool-state directory under root
    """

    root: Path
    state_dir_name: str = DEFAULT_STATE_DIR

    @classmethod
    def for_root(cls, root: Path | str) -> "ProjectPaths":
        """Build paths for a root, honouring PACKWRIGHT_HOME."""
        state = os.environ.get("PACKWRIGHT_HOME") or DEFAULT_STATE_DIR
        return cls(root=Path(root).resolve(), state_dir_name=state)

    @property
    def state_dir(self) -> Path:
        return self.root / self.state_dir_name

    @property
    def agents_dir(self) -> Path:
        return self.root / DEFAULT_AGENTS_DIR

    @property
    def packs_file(self) -> Path:
        return self.state_dir / "packs.json"

    @property
    def snapshots_dir(self) -> Path:
        return self.state_dir / "packs"

    @property
    def sources_file(self) -> Path:
        return self.state_dir / "sources.json"

    @property
    def config_file(self) -> Path:
        return self.state_dir / "config.json"

    @property
    def security_dir(self) -> Path:
        return self.state_dir / "security"

    @property
    def cache_dir(self) -> Path:
        return self.state_dir / "cache" / "packs"

    def component_dir(self, component_type: str) -> Path:
        """Directory holding installed components of one type."""
        if component_type == "agents":
            return self.agents_dir
        return self.state_dir / component_type

    def snapshot_path(self, pack_name: str) -> Path:
        return self.snapshots_dir / f"{pack_name}.manifest.json"


def github_token_from_env() -> str | None:
    """Return the GitHub token configured in the environment, if any."""
    return os.environ.get("PACKWRIGHT_GITHUB_TOKEN") or os.environ.get("GITHUB_TOKEN") or None


def cache_ttl_from_env() -> float:
    """Cache TTL in seconds, falling back to the default on bad input."""
    raw = os.environ.get("PACKWRIGHT_CACHE_TTL")
    if not raw:
        return DEFAULT_CACHE_TTL
    try:
        return max(0.0, float(raw))
    except ValueError:
        return DEFAULT_CACHE_TTL
