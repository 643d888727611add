"""
GitHub repository pack source.

Packs live in a repository as <directory>/<pack>/manifest.json plus component
subdirectories. Single files (manifests, components) are read through the
contents API, which returns base64 payloads; prefetch() downloads the
repository tarball for the configured branch and caches only the pack's
subdirectory, so an install reads every component from one snapshot.

API endpoints:
    GET /repos/{owner}/{repo}/contents/{path}?ref={branch}
    GET /repos/{owner}/{repo}/tarball/{branch}

HTTP 404 means the pack or component does not exist; every other non-2xx
response surfaces as SourceFetchError with its status.
"""

import base64
import binascii
import logging
import re
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any
from urllib.parse import quote

from packwright.config import DEFAULT_CACHE_TTL, DEFAULT_TIMEOUT
from packwright.errors import (
    ComponentNotFoundError,
    PackNotFoundError,
    PackwrightError,
    SourceFetchError,
)
from packwright.pack.manifest import MANIFEST_FILENAME, PackStructure, parse_manifest_bytes
from packwright.schema import ComponentType, SourceInfo, SourceType
from packwright.sources.base import PackSource, component_relative_path
from packwright.sources.cache import PackCache
from packwright.sources.http import HttpFetcher


logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
GITHUB_ACCEPT = "application/vnd.github.v3+json"

# Lighter settings for existence probes
PROBE_TIMEOUT = 15.0
PROBE_RETRIES = 1

_GITHUB_URL_PATTERNS = [
    re.compile(r"^https?://github\.com/(?P<owner>[\w.-]+)/(?P<repo>[\w.-]+?)(?:\.git)?/?$"),
    re.compile(r"^github:(?P<owner>[\w.-]+)/(?P<repo>[\w.-]+?)(?:\.git)?$"),
    re.compile(r"^git@github\.com:(?P<owner>[\w.-]+)/(?P<repo>[\w.-]+?)(?:\.git)?$"),
]


def parse_github_url(url: str) -> tuple[str, str] | None:
    """
    Extract (owner, repo) from a GitHub URL.

    Accepts https://github.com/owner/repo(.git), github:owner/repo and
    git@github.com:owner/repo.git.

    Returns:
        (owner, repo), or None if the URL is not a GitHub repository URL
    """
    for pattern in _GITHUB_URL_PATTERNS:
        match = pattern.match(url.strip())
        if match:
            return match.group("owner"), match.group("repo")
    return None


class GitHubPackSource(PackSource):
    """
    Serves packs from a GitHub repository.

    Attributes:
        owner: Repository owner
        repo: Repository name
        branch: Branch or ref to read from
        directory: Path inside the repository holding the packs
        cache: Memory and disk cache for this source

    Example:
        >>> source = GitHubPackSource(
        ...     "community", "acme", "packs", cache_root=Path(".packwright/cache/packs")
        ... )
        >>> structure = source.load_pack("essentials")
    """

    cache_capable = True

    def __init__(
        self,
        source_id: str,
        owner: str,
        repo: str,
        cache_root: Path | str,
        branch: str = "main",
        directory: str = "",
        auth_token: str | None = None,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        timeout: float = DEFAULT_TIMEOUT,
        api_base: str = GITHUB_API,
        archive_checksum: str | None = None,
        fetcher: HttpFetcher | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(source_id)
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self.directory = directory.strip("/")
        self.api_base = api_base.rstrip("/")
        self.archive_checksum = archive_checksum

        headers = {"Accept": GITHUB_ACCEPT}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        self.fetcher = fetcher or HttpFetcher(timeout=timeout, headers=headers)
        self.cache = PackCache(Path(cache_root) / source_id, source_id, ttl=cache_ttl, clock=clock)

    # -------------------------------------------------------------------------
    # URL helpers
    # -------------------------------------------------------------------------

    def _repo_path(self, *parts: str) -> str:
        return "/".join(p.strip("/") for p in (self.directory, *parts) if p and p.strip("/"))

    def _contents_url(self, path: str) -> str:
        return (
            f"{self.api_base}/repos/{self.owner}/{self.repo}/contents/"
            f"{quote(path)}?ref={quote(self.branch)}"
        )

    def _tarball_url(self) -> str:
        return f"{self.api_base}/repos/{self.owner}/{self.repo}/tarball/{quote(self.branch)}"

    def _web_url(self, path: str) -> str:
        return f"https://github.com/{self.owner}/{self.repo}/tree/{self.branch}/{path}"

    def _raw_url(self, path: str) -> str:
        return f"https://raw.githubusercontent.com/{self.owner}/{self.repo}/{self.branch}/{path}"

    def _fetch_file(self, path: str, **kwargs: Any) -> bytes:
        """
        Fetch one file through the contents API.

        Raises:
            SourceFetchError: On any non-2xx status or a non-file payload
        """
        url = self._contents_url(path)
        data = self.fetcher.get_json(url, **kwargs)
        if not isinstance(data, dict) or data.get("type") != "file":
            raise SourceFetchError(url=url, message=f"Not a file in {self.owner}/{self.repo}: {path}")
        try:
            return base64.b64decode(data.get("content", ""))
        except (binascii.Error, ValueError) as e:
            raise SourceFetchError(url=url, message=f"Undecodable content for {path}: {e}") from e

    # -------------------------------------------------------------------------
    # PackSource
    # -------------------------------------------------------------------------

    def list_packs(self) -> list[str]:
        try:
            entries = self.fetcher.get_json(self._contents_url(self.directory))
        except PackwrightError as e:
            logger.warning("Could not list packs from %s: %s", self.source_id, e.message)
            return []
        if not isinstance(entries, list):
            return []

        packs = []
        for entry in entries:
            if not isinstance(entry, dict) or entry.get("type") != "dir":
                continue
            name = entry.get("name", "")
            if self.has_pack(name):
                packs.append(name)
        return sorted(packs)

    def load_pack(self, name: str) -> PackStructure:
        cached = self.cache.get(f"pack:{name}")
        if cached is not None:
            return cached

        structure = self.cache.load_from_disk(name)
        if structure is not None:
            self.cache.put(f"pack:{name}", structure)
            return structure

        manifest_path = self._repo_path(name, MANIFEST_FILENAME)
        try:
            content = self._fetch_file(manifest_path)
        except SourceFetchError as e:
            if e.status_code == 404:
                raise PackNotFoundError(pack_name=name, sources=[self.source_id]) from e
            raise

        manifest = parse_manifest_bytes(content, name, self._raw_url(manifest_path))
        pack_url = self._web_url(self._repo_path(name))
        structure = PackStructure(
            manifest=manifest,
            path=pack_url,
            components_path=pack_url,
            source_id=self.source_id,
        )
        self.cache.put(f"pack:{name}", structure)
        return structure

    def get_component_path(self, pack: str, component_type: ComponentType, name: str) -> str:
        relative = component_relative_path(component_type, name)
        if self.cache.has_on_disk(pack):
            return str(self.cache.pack_dir(pack) / relative)
        return self._raw_url(self._repo_path(pack, relative))

    def has_component(self, pack: str, component_type: ComponentType, name: str) -> bool:
        relative = component_relative_path(component_type, name)
        if self.cache.get(f"content:{pack}/{relative}") is not None:
            return True
        if self.cache.has_on_disk(pack):
            return (self.cache.pack_dir(pack) / relative).is_file()
        try:
            self.fetcher.get(
                self._contents_url(self._repo_path(pack, relative)),
                timeout=PROBE_TIMEOUT,
                retries=PROBE_RETRIES,
            )
            return True
        except PackwrightError:
            return False

    def read_component(self, pack: str, component_type: ComponentType, name: str) -> bytes:
        relative = component_relative_path(component_type, name)
        key = f"content:{pack}/{relative}"
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        if self.cache.has_on_disk(pack):
            path = self.cache.pack_dir(pack) / relative
            if not path.is_file():
                raise ComponentNotFoundError(
                    pack_name=pack, component_type=component_type.value, component_name=name
                )
            content = path.read_bytes()
        else:
            try:
                content = self._fetch_file(self._repo_path(pack, relative))
            except SourceFetchError as e:
                if e.status_code == 404:
                    raise ComponentNotFoundError(
                        pack_name=pack, component_type=component_type.value, component_name=name
                    ) from e
                raise

        self.cache.put(key, content)
        return content

    def get_source_info(self) -> SourceInfo:
        return SourceInfo(
            name=self.source_id,
            type=SourceType.GITHUB,
            path=f"https://github.com/{self.owner}/{self.repo}",
        )

    def prefetch(self, name: str) -> None:
        """Download the branch tarball and cache this pack's subdirectory."""
        if self.cache.load_from_disk(name) is not None:
            return
        logger.info("Downloading %s/%s@%s for pack %s", self.owner, self.repo, self.branch, name)
        archive = self.fetcher.get_bytes(self._tarball_url())
        self.cache.store_archive(
            name,
            archive,
            metadata={"owner": self.owner, "repo": self.repo, "branch": self.branch},
            checksum=self.archive_checksum,
            subdir=self._repo_path(name),
        )

    def clear_expired_cache(self) -> None:
        self.cache.clear_expired()

    def clear_all_cache(self) -> None:
        self.cache.clear_all()
