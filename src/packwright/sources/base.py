"""
Base class for pack sources.

A source provides packs by name. Three implementations share this interface:
- LocalPackSource: a directory of pack directories
- RemotePackSource: an HTTP index plus per-pack tarballs
- GitHubPackSource: a GitHub repository via the REST API

Design Principles:
    - list_packs() is best-effort: unreadable entries are skipped
    - has_pack() never raises
    - load_pack() raises PackNotFoundError, InvalidManifestError or
      ManifestParseError
    - Single components can be located and read without loading the pack
    - get_source_info() performs no I/O
"""

import logging
from abc import ABC, abstractmethod

from packwright.errors import PackwrightError
from packwright.pack.manifest import PackStructure
from packwright.schema import ComponentType, SourceInfo


logger = logging.getLogger(__name__)


def component_relative_path(component_type: ComponentType, name: str) -> str:
    """Path of a component inside a pack: <type>/<name>.<ext>."""
    return f"{component_type.value}/{name}{component_type.extension}"


class PackSource(ABC):
    """
    Abstract base class for pack sources.

    Attributes:
        source_id: Identifier the registry knows this source by
    """

    #: Whether the source keeps a cache worth clearing
    cache_capable: bool = False

    def __init__(self, source_id: str) -> None:
        self.source_id = source_id

    @abstractmethod
    def list_packs(self) -> list[str]:
        """
        Names of the packs this source offers.

        Entries that cannot be read are skipped; this never raises.
        """
        ...

    @abstractmethod
    def load_pack(self, name: str) -> PackStructure:
        """
        Load a pack's manifest.

        Raises:
            PackNotFoundError: If the source has no such pack
            ManifestParseError: If the manifest is not valid JSON
            InvalidManifestError: If the manifest violates the schema
        """
        ...

    def has_pack(self, name: str) -> bool:
        """Whether load_pack(name) would succeed."""
        try:
            self.load_pack(name)
            return True
        except PackwrightError as e:
            logger.debug("Source %s cannot provide %s: %s", self.source_id, name, e.message)
            return False

    @abstractmethod
    def get_component_path(self, pack: str, component_type: ComponentType, name: str) -> str:
        """Filesystem path or URL of a component."""
        ...

    @abstractmethod
    def has_component(self, pack: str, component_type: ComponentType, name: str) -> bool:
        """Whether a component exists. Never raises."""
        ...

    @abstractmethod
    def read_component(self, pack: str, component_type: ComponentType, name: str) -> bytes:
        """
        Read a component's content.

        Raises:
            ComponentNotFoundError: If the component does not exist
            SourceFetchError: If a remote fetch fails
        """
        ...

    @abstractmethod
    def get_source_info(self) -> SourceInfo:
        """Identity of this source, without I/O."""
        ...

    def prefetch(self, name: str) -> None:
        """Warm any cache ahead of reading a pack's components."""
        return None

    def clear_expired_cache(self) -> None:
        return None

    def clear_all_cache(self) -> None:
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(source_id={self.source_id!r})"
