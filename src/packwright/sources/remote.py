"""
HTTP pack source backed by an index and per-pack tarballs.

Layout served by the remote:

    <base_url>/index.json        {"packs": [{"name": ..., "version": ...,
                                            "url": ..., "checksum": ...}]}
    <base_url>/<name>.tar.gz     default archive location when "url" is absent

Each archive holds a single top-level directory containing manifest.json and
the component subdirectories.

load_pack() looks in the memory cache, then the disk cache, then the network.
An expired disk entry keeps its index entry, so a refresh downloads only the
archive; the index is fetched again if that entry turns out to be stale.
Archives with a declared checksum are verified before anything is cached.
"""

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any
from urllib.parse import urljoin

from packwright.config import DEFAULT_CACHE_TTL, DEFAULT_TIMEOUT
from packwright.errors import (
    ComponentNotFoundError,
    IntegrityError,
    PackNotFoundError,
    PackwrightError,
    SourceFetchError,
)
from packwright.pack.manifest import PackStructure
from packwright.schema import ComponentType, SourceInfo, SourceType
from packwright.sources.base import PackSource, component_relative_path
from packwright.sources.cache import PackCache
from packwright.sources.http import HttpFetcher


logger = logging.getLogger(__name__)

INDEX_KEY = "index:"


class RemotePackSource(PackSource):
    """
    Serves packs from an HTTP endpoint.

    Attributes:
        base_url: Root URL of the pack repository
        cache: Memory and disk cache for this source
        fetcher: HTTP transport

    Example:
        >>> source = RemotePackSource(
        ...     "community",
        ...     "https://packs.example.com",
        ...     cache_root=Path(".packwright/cache/packs"),
        ... )
        >>> source.list_packs()
        ['essentials']
    """

    cache_capable = True

    def __init__(
        self,
        source_id: str,
        base_url: str,
        cache_root: Path | str,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        auth_token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        headers: dict[str, str] | None = None,
        index_path: str = "index.json",
        fetcher: HttpFetcher | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(source_id)
        self.base_url = base_url.rstrip("/") + "/"
        self.index_url = urljoin(self.base_url, index_path)

        request_headers = dict(headers or {})
        if auth_token:
            request_headers["Authorization"] = f"Bearer {auth_token}"
        self.fetcher = fetcher or HttpFetcher(timeout=timeout, headers=request_headers)
        self.cache = PackCache(Path(cache_root) / source_id, source_id, ttl=cache_ttl, clock=clock)

    # -------------------------------------------------------------------------
    # Index
    # -------------------------------------------------------------------------

    def _index(self) -> dict[str, dict[str, Any]]:
        cached = self.cache.get(INDEX_KEY)
        if cached is not None:
            return cached

        data = self.fetcher.get_json(self.index_url)
        entries = data.get("packs", []) if isinstance(data, dict) else data
        index: dict[str, dict[str, Any]] = {}
        for entry in entries or []:
            if isinstance(entry, dict) and isinstance(entry.get("name"), str):
                index[entry["name"]] = entry
            else:
                logger.debug("Ignoring malformed index entry in %s: %r", self.index_url, entry)

        self.cache.put(INDEX_KEY, index)
        return index

    def fetch_metadata(self, name: str) -> dict[str, Any]:
        """
        Index entry for a pack.

        Raises:
            PackNotFoundError: If the index does not list the pack
            SourceFetchError: If the index cannot be fetched
        """
        metadata = self._index().get(name)
        if metadata is None:
            raise PackNotFoundError(pack_name=name, sources=[self.source_id])
        return metadata

    def archive_url(self, name: str, metadata: dict[str, Any]) -> str:
        url = metadata.get("url") or f"{name}.tar.gz"
        return urljoin(self.base_url, url)

    # -------------------------------------------------------------------------
    # PackSource
    # -------------------------------------------------------------------------

    def list_packs(self) -> list[str]:
        try:
            return sorted(self._index())
        except PackwrightError as e:
            logger.warning("Could not list packs from %s: %s", self.source_id, e.message)
            return []

    def has_pack(self, name: str) -> bool:
        if self.cache.get(f"pack:{name}") is not None or self.cache.has_on_disk(name):
            return True
        try:
            self.fetch_metadata(name)
            return True
        except PackwrightError:
            return False

    def load_pack(self, name: str) -> PackStructure:
        cached = self.cache.get(f"pack:{name}")
        if cached is not None:
            return cached

        stale_metadata = self.cache.read_disk_metadata(name)
        structure = self.cache.load_from_disk(name)
        if structure is not None:
            logger.debug("Loaded %s from disk cache of %s", name, self.source_id)
            self.cache.put(f"pack:{name}", structure)
            return structure

        if stale_metadata:
            logger.debug("Refreshing %s using its cached index entry", name)
            try:
                return self._download(name, stale_metadata)
            except (PackNotFoundError, IntegrityError) as e:
                logger.info("Cached index entry for %s is out of date: %s", name, e.message)
        return self._download(name, self.fetch_metadata(name))

    def _download(self, name: str, metadata: dict[str, Any]) -> PackStructure:
        url = self.archive_url(name, metadata)
        logger.info("Downloading pack %s from %s", name, url)
        try:
            archive = self.fetcher.get_bytes(url)
        except SourceFetchError as e:
            if e.status_code == 404:
                raise PackNotFoundError(pack_name=name, sources=[self.source_id]) from e
            raise
        return self.cache.store_archive(
            name,
            archive,
            metadata=metadata,
            checksum=metadata.get("checksum"),
        )

    def get_component_path(self, pack: str, component_type: ComponentType, name: str) -> str:
        structure = self.load_pack(pack)
        return str(Path(structure.component_root) / component_relative_path(component_type, name))

    def has_component(self, pack: str, component_type: ComponentType, name: str) -> bool:
        try:
            return Path(self.get_component_path(pack, component_type, name)).is_file()
        except PackwrightError:
            return False

    def read_component(self, pack: str, component_type: ComponentType, name: str) -> bytes:
        path = Path(self.get_component_path(pack, component_type, name))
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise ComponentNotFoundError(
                pack_name=pack,
                component_type=component_type.value,
                component_name=name,
            ) from e

    def get_source_info(self) -> SourceInfo:
        return SourceInfo(name=self.source_id, type=SourceType.REMOTE, path=self.base_url)

    def prefetch(self, name: str) -> None:
        self.load_pack(name)

    def clear_expired_cache(self) -> None:
        self.cache.clear_expired()

    def clear_all_cache(self) -> None:
        self.cache.clear_all()
