"""
Pack registry: prioritized multi-source lookup and dependency resolution.

The registry holds every configured source with a priority. Lookups of an
unbound pack name try sources in descending priority (ties in registration
order) and return the first success. The local source is always registered.

Dependency Resolution:
    resolve_dependencies() walks manifest.dependencies depth-first with an
    explicit stack, so deep chains cannot exhaust the interpreter stack.
    Two sets are kept apart:
    - on_path: packs on the active traversal path; meeting one again is a
      cycle and lands in `circular`
    - done: packs already fully resolved; meeting one again is a diamond
      and is skipped
    The result lists dependencies in install order (dependencies before
    dependents) and excludes the root pack.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from packwright.config import BUNDLED_PACKS_DIR
from packwright.errors import PackNotFoundError, PackwrightError, SourceConfigError
from packwright.pack.manifest import PackStructure
from packwright.schema import DependencyResult, ValidationResult
from packwright.sources.base import PackSource
from packwright.sources.config import LOCAL_PRIORITY, LOCAL_SOURCE_ID, SourceConfigStore
from packwright.sources.github import GitHubPackSource, parse_github_url
from packwright.sources.http import HttpFetcher
from packwright.sources.local import LocalPackSource
from packwright.sources.remote import RemotePackSource


logger = logging.getLogger(__name__)


@dataclass
class _Registration:
    source: PackSource
    priority: int
    order: int


@dataclass(frozen=True)
class LocatedPack:
    """A pack together with the source that provided it."""

    source_id: str
    source: PackSource
    structure: PackStructure


@dataclass
class _Frame:
    name: str
    dependencies: list[str]
    index: int = 0


class PackRegistry:
    """
    Prioritized collection of pack sources.

    Attributes:
        sources: Registered sources in search order

    Example:
        >>> registry = PackRegistry(LocalPackSource("./packs"))
        >>> registry.resolve_dependencies("full-stack").resolved
        ['base', 'python-tools']
    """

    def __init__(self, local_source: PackSource | None = None, local_priority: int = LOCAL_PRIORITY) -> None:
        self._registrations: dict[str, _Registration] = {}
        self._counter = 0
        self._pack_cache: dict[tuple[str, str], PackStructure] = {}
        self.register_source(local_source or LocalPackSource(BUNDLED_PACKS_DIR), local_priority)

    @classmethod
    def from_config(cls, store: SourceConfigStore, fetcher: HttpFetcher | None = None) -> "PackRegistry":
        """Build a registry from sources.json."""
        built = store.build_sources(fetcher)
        local = next(((c, s) for c, s in built if c.id == LOCAL_SOURCE_ID), None)
        if local is None:
            registry = cls()
        else:
            registry = cls(local[1], local[0].priority)
        for config, source in built:
            if config.id != LOCAL_SOURCE_ID:
                registry.register_source(source, config.priority)
        return registry

    # -------------------------------------------------------------------------
    # Source management
    # -------------------------------------------------------------------------

    def register_source(self, source: PackSource, priority: int = 0) -> None:
        """Add or replace a source."""
        if source.source_id in self._registrations:
            logger.debug("Replacing source %s", source.source_id)
        self._registrations[source.source_id] = _Registration(source, priority, self._counter)
        self._counter += 1
        self.clear_cache()

    def unregister_source(self, source_id: str) -> None:
        """
        Remove a source.

        Raises:
            SourceConfigError: For the local source or an unknown id
        """
        if source_id == LOCAL_SOURCE_ID:
            raise SourceConfigError(source_id=source_id, message="Cannot remove the local source")
        if self._registrations.pop(source_id, None) is None:
            raise SourceConfigError(source_id=source_id, message=f"Source '{source_id}' not found")
        self.clear_cache()

    def register_from_url(
        self,
        source_id: str,
        url: str,
        cache_root: Path,
        priority: int = 0,
        **options: Any,
    ) -> PackSource:
        """
        Register a GitHub repository or HTTP pack repository by URL.

        GitHub URLs (https, github:owner/repo, git@) become GitHubPackSource;
        other http(s) URLs become RemotePackSource.

        Raises:
            SourceConfigError: If the URL is not recognised
        """
        parsed = parse_github_url(url)
        source: PackSource
        if parsed is not None:
            owner, repo = parsed
            source = GitHubPackSource(source_id, owner, repo, cache_root=cache_root, **options)
        elif url.startswith(("http://", "https://")):
            source = RemotePackSource(source_id, url, cache_root=cache_root, **options)
        else:
            raise SourceConfigError(
                source_id=source_id,
                message=f"Unsupported source URL: {url}",
            )
        self.register_source(source, priority)
        return source

    def get_source(self, source_id: str) -> PackSource | None:
        registration = self._registrations.get(source_id)
        return registration.source if registration else None

    @property
    def sources(self) -> list[PackSource]:
        ordered = sorted(self._registrations.values(), key=lambda r: (-r.priority, r.order))
        return [r.source for r in ordered]

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def _load_from(self, source: PackSource, name: str) -> PackStructure:
        key = (source.source_id, name)
        cached = self._pack_cache.get(key)
        if cached is not None:
            return cached
        structure = source.load_pack(name)
        self._pack_cache[key] = structure
        return structure

    def locate(self, name: str, preferred_source_id: str | None = None) -> LocatedPack:
        """
        Find a pack and the source that provides it.

        Args:
            name: Pack name
            preferred_source_id: Load only from this source

        Raises:
            PackNotFoundError: If no source provides the pack
            InvalidManifestError / ManifestParseError: From the preferred
                source, when one is given
        """
        if preferred_source_id is not None:
            source = self.get_source(preferred_source_id)
            if source is None:
                raise PackNotFoundError(
                    pack_name=name,
                    sources=[preferred_source_id],
                    message=f"Source '{preferred_source_id}' is not registered",
                )
            return LocatedPack(preferred_source_id, source, self._load_from(source, name))

        attempted = []
        failures: dict[str, str] = {}
        for source in self.sources:
            attempted.append(source.source_id)
            try:
                return LocatedPack(source.source_id, source, self._load_from(source, name))
            except PackNotFoundError:
                continue
            except PackwrightError as e:
                logger.warning("Source %s failed to load %s: %s", source.source_id, name, e.message)
                failures[source.source_id] = e.message

        error = PackNotFoundError(pack_name=name, sources=attempted)
        if failures:
            error.context["failures"] = failures
        raise error

    def load_pack(self, name: str, preferred_source_id: str | None = None) -> PackStructure:
        return self.locate(name, preferred_source_id).structure

    def has_pack(self, name: str) -> bool:
        try:
            self.locate(name)
            return True
        except PackwrightError:
            return False

    # -------------------------------------------------------------------------
    # Dependencies
    # -------------------------------------------------------------------------

    def resolve_dependencies(self, name: str) -> DependencyResult:
        """
        Compute the dependency closure of a pack.

        Args:
            name: Root pack

        Returns:
            DependencyResult with disjoint resolved, missing and circular
            lists; resolved is in install order and excludes the root
        """
        result = DependencyResult()
        on_path: set[str] = set()
        done: set[str] = set()
        missing: set[str] = set()

        def enter(pack_name: str) -> _Frame | None:
            if pack_name in on_path:
                if pack_name not in result.circular:
                    result.circular.append(pack_name)
                return None
            if pack_name in done or pack_name in missing:
                return None
            try:
                structure = self.load_pack(pack_name)
            except PackwrightError as e:
                logger.debug("Dependency %s unavailable: %s", pack_name, e.message)
                missing.add(pack_name)
                result.missing.append(pack_name)
                return None
            on_path.add(pack_name)
            return _Frame(pack_name, list(structure.manifest.dependencies))

        root = enter(name)
        stack = [root] if root is not None else []
        while stack:
            frame = stack[-1]
            if frame.index < len(frame.dependencies):
                dependency = frame.dependencies[frame.index]
                frame.index += 1
                child = enter(dependency)
                if child is not None:
                    stack.append(child)
                continue

            stack.pop()
            on_path.discard(frame.name)
            done.add(frame.name)
            if frame.name != name:
                result.resolved.append(frame.name)

        cyclic = set(result.circular)
        result.resolved = [pack for pack in result.resolved if pack not in cyclic]
        return result

    def validate_dependencies(self, name: str) -> ValidationResult:
        """Report missing and circular dependencies as validation errors."""
        result = ValidationResult()
        resolution = self.resolve_dependencies(name)
        for pack in resolution.missing:
            result.error(f"Missing dependency: {pack}")
        for pack in resolution.circular:
            result.error(f"Circular dependency: {pack}")
        return result

    # -------------------------------------------------------------------------
    # Aggregation
    # -------------------------------------------------------------------------

    def list_available_packs(self) -> list[PackStructure]:
        """
        Every pack offered by any source.

        A name offered by several sources is reported once, from the
        highest-priority source. A failing source never aborts the others.
        """
        packs: list[PackStructure] = []
        seen: set[str] = set()
        for source in self.sources:
            try:
                names = source.list_packs()
            except (PackwrightError, OSError) as e:
                logger.warning("Failed to list packs from %s: %s", source.source_id, e)
                continue
            for pack_name in names:
                if pack_name in seen:
                    continue
                try:
                    packs.append(self._load_from(source, pack_name))
                except PackwrightError as e:
                    logger.warning("Skipping %s from %s: %s", pack_name, source.source_id, e.message)
                    continue
                seen.add(pack_name)
        return packs

    def search_packs(
        self,
        query: str | None = None,
        category: str | None = None,
        tags: list[str] | None = None,
        author: str | None = None,
        compatible_with: list[str] | None = None,
    ) -> list[PackStructure]:
        """
        Filter available packs.

        Args:
            query: Case-insensitive substring of name or description
            category: Exact category
            tags: Every tag must be present
            author: Exact author
            compatible_with: At least one of these must be listed
        """
        matches = []
        for structure in self.list_available_packs():
            manifest = structure.manifest
            if query and query.lower() not in f"{manifest.name} {manifest.description}".lower():
                continue
            if category and manifest.category != category:
                continue
            if tags and not all(tag in manifest.tags for tag in tags):
                continue
            if author and manifest.author != author:
                continue
            if compatible_with and not any(p in manifest.compatible_with for p in compatible_with):
                continue
            matches.append(structure)
        return sorted(matches, key=lambda s: s.name)

    def get_registry_stats(self) -> dict[str, Any]:
        packs = self.list_available_packs()
        return {
            "totalPacks": len(packs),
            "sourceCount": len(self._registrations),
            "categoryCounts": dict(Counter(p.manifest.category or "uncategorized" for p in packs)),
            "authorCounts": dict(Counter(p.manifest.author for p in packs)),
        }

    # -------------------------------------------------------------------------
    # Caches
    # -------------------------------------------------------------------------

    def clear_cache(self) -> None:
        """Forget loaded packs; source-level caches are untouched."""
        self._pack_cache.clear()

    def clear_expired_cache(self) -> None:
        for source in self.sources:
            if source.cache_capable:
                source.clear_expired_cache()

    def clear_all_cache(self) -> None:
        self.clear_cache()
        for source in self.sources:
            if source.cache_capable:
                source.clear_all_cache()
