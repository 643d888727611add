"""
Persistent source configuration (sources.json).

sources.json lists the configured pack sources:

    {
      "sources": [
        {"id": "local", "type": "local", "enabled": true, "priority": 100,
         "config": {"path": "..."}},
        {"id": "community", "type": "github", "enabled": true, "priority": 0,
         "config": {"owner": "acme", "repo": "packs", "branch": "main"}}
      ],
      "defaultSource": "local"
    }

The local source is implicit: it is added when missing and cannot be removed.
create_source() turns a SourceConfig into a live PackSource.
"""

import logging
from pathlib import Path
from typing import Any

from packwright.config import BUNDLED_PACKS_DIR, DEFAULT_TIMEOUT, ProjectPaths, cache_ttl_from_env, github_token_from_env
from packwright.errors import ConfigurationError, SourceConfigError
from packwright.schema import SourceConfig, SourcesFile, SourceType
from packwright.sources.base import PackSource
from packwright.sources.github import GitHubPackSource, parse_github_url
from packwright.sources.http import HttpFetcher
from packwright.sources.local import LocalPackSource
from packwright.sources.remote import RemotePackSource
from packwright.store.files import atomic_write_json, project_lock, read_json


logger = logging.getLogger(__name__)

LOCAL_SOURCE_ID = "local"
LOCAL_PRIORITY = 100


def default_local_source() -> SourceConfig:
    return SourceConfig(
        id=LOCAL_SOURCE_ID,
        type=SourceType.LOCAL,
        enabled=True,
        priority=LOCAL_PRIORITY,
        config={"path": str(BUNDLED_PACKS_DIR)},
    )


def _seconds(config: SourceConfig, key: str, default: float) -> float:
    value = config.config.get(key, default)
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise SourceConfigError(
            source_id=config.id,
            message=f"Source '{config.id}' has an invalid '{key}' value: {value!r}",
        ) from e


def create_source(
    config: SourceConfig,
    paths: ProjectPaths,
    fetcher: HttpFetcher | None = None,
) -> PackSource:
    """
    Build a live source from its configuration.

    Args:
        config: The source definition
        paths: Project layout (relative local paths and the cache live here)
        fetcher: Optional shared HTTP transport

    Raises:
        SourceConfigError: If required settings are missing
    """
    settings: dict[str, Any] = config.config
    ttl = _seconds(config, "cacheTtl", cache_ttl_from_env())

    if config.type is SourceType.LOCAL:
        raw_path = settings.get("path") or str(BUNDLED_PACKS_DIR)
        base = Path(raw_path).expanduser()
        if not base.is_absolute():
            base = paths.root / base
        return LocalPackSource(base, source_id=config.id)

    if config.type is SourceType.REMOTE:
        url = settings.get("url")
        if not url:
            raise SourceConfigError(
                source_id=config.id,
                message=f"Remote source '{config.id}' requires a 'url' setting",
            )
        return RemotePackSource(
            config.id,
            url,
            cache_root=paths.cache_dir,
            cache_ttl=ttl,
            auth_token=settings.get("token"),
            timeout=_seconds(config, "timeout", DEFAULT_TIMEOUT),
            fetcher=fetcher,
        )

    owner, repo = settings.get("owner"), settings.get("repo")
    if not (owner and repo) and settings.get("url"):
        parsed = parse_github_url(settings["url"])
        if parsed:
            owner, repo = parsed
    if not (owner and repo):
        raise SourceConfigError(
            source_id=config.id,
            message=f"GitHub source '{config.id}' requires 'owner' and 'repo' (or a GitHub 'url')",
        )
    return GitHubPackSource(
        config.id,
        owner,
        repo,
        cache_root=paths.cache_dir,
        branch=settings.get("branch", "main"),
        directory=settings.get("directory", ""),
        auth_token=settings.get("token") or github_token_from_env(),
        cache_ttl=ttl,
        timeout=_seconds(config, "timeout", DEFAULT_TIMEOUT),
        archive_checksum=settings.get("checksum"),
        fetcher=fetcher,
    )


class SourceConfigStore:
    """
    Reads and writes sources.json for a project.

    Attributes:
        paths: Project layout

    Example:
        >>> store = SourceConfigStore(ProjectPaths.for_root("."))
        >>> store.add_source(SourceConfig(id="community", type="github",
        ...                               config={"owner": "acme", "repo": "packs"}))
    """

    def __init__(self, paths: ProjectPaths) -> None:
        self.paths = paths

    def load(self) -> SourcesFile:
        data = read_json(self.paths.sources_file, default={})
        try:
            sources = SourcesFile.model_validate(data or {})
        except ValueError as e:
            raise ConfigurationError(
                path=str(self.paths.sources_file),
                message=f"Malformed sources file {self.paths.sources_file}: {e}",
            ) from e

        if not any(s.id == LOCAL_SOURCE_ID for s in sources.sources):
            sources.sources.insert(0, default_local_source())
        return sources

    def save(self, sources: SourcesFile) -> None:
        atomic_write_json(self.paths.sources_file, sources.to_json_dict())

    def list_sources(self) -> list[SourceConfig]:
        """Configured sources, highest priority first."""
        return sorted(self.load().sources, key=lambda s: -s.priority)

    def get_source(self, source_id: str) -> SourceConfig | None:
        return next((s for s in self.load().sources if s.id == source_id), None)

    def add_source(self, config: SourceConfig) -> SourceConfig:
        """
        Register a new source.

        Raises:
            SourceConfigError: If the id is taken or the settings are invalid
        """
        create_source(config, self.paths)
        with project_lock(self.paths.root):
            sources = self.load()
            if any(s.id == config.id for s in sources.sources):
                raise SourceConfigError(
                    source_id=config.id,
                    message=f"Source '{config.id}' already exists",
                )
            sources.sources.append(config)
            self.save(sources)
        logger.info("Added %s source %s", config.type.value, config.id)
        return config

    def remove_source(self, source_id: str) -> None:
        """
        Remove a source.

        Raises:
            SourceConfigError: For the local source or an unknown id
        """
        if source_id == LOCAL_SOURCE_ID:
            raise SourceConfigError(source_id=source_id, message="Cannot remove the local source")
        with project_lock(self.paths.root):
            sources = self.load()
            remaining = [s for s in sources.sources if s.id != source_id]
            if len(remaining) == len(sources.sources):
                raise SourceConfigError(
                    source_id=source_id,
                    message=f"Source '{source_id}' not found",
                )
            sources.sources = remaining
            if sources.default_source == source_id:
                sources.default_source = LOCAL_SOURCE_ID
            self.save(sources)

    def update_source(
        self,
        source_id: str,
        enabled: bool | None = None,
        priority: int | None = None,
        config: dict[str, Any] | None = None,
    ) -> SourceConfig:
        """Change a source's enabled flag, priority or settings."""
        with project_lock(self.paths.root):
            sources = self.load()
            for index, existing in enumerate(sources.sources):
                if existing.id != source_id:
                    continue
                updates: dict[str, Any] = {}
                if enabled is not None:
                    updates["enabled"] = enabled
                if priority is not None:
                    updates["priority"] = priority
                if config is not None:
                    updates["config"] = {**existing.config, **config}
                updated = existing.model_copy(update=updates)
                sources.sources[index] = updated
                self.save(sources)
                return updated
        raise SourceConfigError(source_id=source_id, message=f"Source '{source_id}' not found")

    def set_default_source(self, source_id: str) -> None:
        with project_lock(self.paths.root):
            sources = self.load()
            if not any(s.id == source_id for s in sources.sources):
                raise SourceConfigError(
                    source_id=source_id,
                    message=f"Source '{source_id}' not found",
                )
            sources.default_source = source_id
            self.save(sources)

    def build_sources(self, fetcher: HttpFetcher | None = None) -> list[tuple[SourceConfig, PackSource]]:
        """Live sources for every enabled configuration; broken entries are skipped."""
        built = []
        for config in self.list_sources():
            if not config.enabled:
                continue
            try:
                built.append((config, create_source(config, self.paths, fetcher)))
            except SourceConfigError as e:
                logger.warning("Skipping source %s: %s", config.id, e.message)
        return built
