"""
Pack sources for packwright.

Key Components:
    - PackSource: Abstract base class for all sources
    - LocalPackSource: Packs in a local directory
    - RemotePackSource: Packs served over HTTP as tarballs
    - GitHubPackSource: Packs in a GitHub repository
    - PackCache: Memory/disk cache with checksum verification
    - HttpFetcher: httpx transport with timeouts and retries
    - SourceConfigStore: sources.json persistence
"""

from packwright.sources.base import PackSource
from packwright.sources.cache import PackCache
from packwright.sources.config import SourceConfigStore, create_source
from packwright.sources.github import GitHubPackSource, parse_github_url
from packwright.sources.http import HttpFetcher
from packwright.sources.local import LocalPackSource
from packwright.sources.remote import RemotePackSource

__all__ = [
    "GitHubPackSource",
    "HttpFetcher",
    "LocalPackSource",
    "PackCache",
    "PackSource",
    "RemotePackSource",
    "SourceConfigStore",
    "create_source",
    "parse_github_url",
]
