"""
Filesystem pack source.

A pack is a directory holding manifest.json plus one subdirectory per
component type:

    <base>/<pack>/manifest.json
    <base>/<pack>/modes/<name>.md
    <base>/<pack>/hooks/<name>.json

Directories without a readable manifest are not packs and are left out of
list_packs().
"""

import logging
from pathlib import Path

from packwright.errors import ComponentNotFoundError, PackNotFoundError, PackwrightError
from packwright.pack.manifest import MANIFEST_FILENAME, PackStructure, load_manifest_file
from packwright.schema import ComponentType, SourceInfo, SourceType
from packwright.sources.base import PackSource, component_relative_path


logger = logging.getLogger(__name__)


def load_pack_directory(pack_dir: Path, name: str, source_id: str) -> PackStructure:
    """
    Load the pack rooted at pack_dir.

    Raises:
        PackNotFoundError: If the directory or its manifest is missing
        ManifestParseError / InvalidManifestError: If the manifest is bad
    """
    manifest_path = pack_dir / MANIFEST_FILENAME
    if not pack_dir.is_dir() or not manifest_path.is_file():
        raise PackNotFoundError(pack_name=name, sources=[source_id])
    manifest = load_manifest_file(manifest_path, name)
    return PackStructure(
        manifest=manifest,
        path=str(pack_dir),
        components_path=str(pack_dir),
        source_id=source_id,
    )


class LocalPackSource(PackSource):
    """
    Serves packs from a local directory.

    Attributes:
        base_path: Directory containing one subdirectory per pack

    Example:
        >>> source = LocalPackSource("./packs")
        >>> source.list_packs()
        ['essentials', 'python-tools']
    """

    def __init__(self, base_path: Path | str, source_id: str = "local") -> None:
        super().__init__(source_id)
        self.base_path = Path(base_path).resolve()

    def _pack_dir(self, name: str) -> Path:
        return self.base_path / name

    def list_packs(self) -> list[str]:
        if not self.base_path.is_dir():
            return []

        packs = []
        for item in self.base_path.iterdir():
            if not item.is_dir():
                continue
            try:
                load_pack_directory(item, item.name, self.source_id)
            except PackwrightError as e:
                logger.debug("Skipping %s in %s: %s", item.name, self.base_path, e.message)
                continue
            packs.append(item.name)
        return sorted(packs)

    def load_pack(self, name: str) -> PackStructure:
        return load_pack_directory(self._pack_dir(name), name, self.source_id)

    def get_component_path(self, pack: str, component_type: ComponentType, name: str) -> str:
        return str(self._pack_dir(pack) / component_relative_path(component_type, name))

    def has_component(self, pack: str, component_type: ComponentType, name: str) -> bool:
        return Path(self.get_component_path(pack, component_type, name)).is_file()

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
        return SourceInfo(name=self.source_id, type=SourceType.LOCAL, path=str(self.base_path))
