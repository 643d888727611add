"""
Installed-state storage for a project.

ProjectStore owns the files that describe what packwright manages in a
project checkout:
- packs.json: one ProjectPackRecord per installed pack
- packs/<name>.manifest.json: manifest snapshot taken at install time
- config.json: project configuration that packs merge settings into

Design Decisions:
    - Snapshots decouple uninstall from the pack's original source
    - config.json merging is shallow; pack values override existing keys
      on install, and uninstall removes a key only while it still holds
      the value the pack wrote
    - Every read-modify-write runs under the per-project lock
"""

import json
import logging
from typing import Any

from packwright.config import ProjectPaths
from packwright.errors import ConfigurationError
from packwright.pack.manifest import PackManifest, validate_manifest_data
from packwright.schema import ProjectPackRecord, ProjectPacksFile, SourceInfo
from packwright.store.files import atomic_write_json, project_lock, read_json


logger = logging.getLogger(__name__)

DEFAULT_MODE_KEY = "defaultMode"


class ProjectStore:
    """
    Reads and writes packwright's per-project state files.

    Attributes:
        paths: Layout of the project being managed

    Example:
        >>> store = ProjectStore(ProjectPaths.for_root("."))
        >>> store.is_installed("essentials")
        False
    """

    def __init__(self, paths: ProjectPaths) -> None:
        self.paths = paths

    # -------------------------------------------------------------------------
    # packs.json
    # -------------------------------------------------------------------------

    def load_packs(self) -> ProjectPacksFile:
        data = read_json(self.paths.packs_file, default={"packs": {}})
        try:
            return ProjectPacksFile.model_validate(data)
        except ValueError as e:
            raise ConfigurationError(
                path=str(self.paths.packs_file),
                message=f"Malformed packs file {self.paths.packs_file}: {e}",
            ) from e

    def list_installed(self) -> dict[str, ProjectPackRecord]:
        return dict(self.load_packs().packs)

    def get_record(self, name: str) -> ProjectPackRecord | None:
        return self.load_packs().packs.get(name)

    def is_installed(self, name: str) -> bool:
        return self.get_record(name) is not None

    def record_install(self, manifest: PackManifest, source: SourceInfo) -> ProjectPackRecord:
        """Add or replace the packs.json entry for a pack."""
        record = ProjectPackRecord(version=manifest.version, source=source)
        with project_lock(self.paths.root):
            packs = self.load_packs()
            packs.packs[manifest.name] = record
            atomic_write_json(self.paths.packs_file, packs.to_json_dict())
        return record

    def remove_record(self, name: str) -> bool:
        """Drop a pack from packs.json. Returns False if it was not recorded."""
        with project_lock(self.paths.root):
            packs = self.load_packs()
            if name not in packs.packs:
                return False
            del packs.packs[name]
            atomic_write_json(self.paths.packs_file, packs.to_json_dict())
        return True

    # -------------------------------------------------------------------------
    # Manifest snapshots
    # -------------------------------------------------------------------------

    def write_snapshot(self, manifest: PackManifest) -> None:
        atomic_write_json(self.paths.snapshot_path(manifest.name), manifest.to_json_dict())

    def read_snapshot(self, name: str) -> PackManifest | None:
        """Load a snapshot; unreadable or invalid snapshots count as absent."""
        path = self.paths.snapshot_path(name)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable snapshot %s: %s", path, e)
            return None
        manifest, errors = validate_manifest_data(data)
        if manifest is None:
            logger.warning("Ignoring invalid snapshot %s: %s", path, "; ".join(errors))
        return manifest

    def delete_snapshot(self, name: str) -> None:
        path = self.paths.snapshot_path(name)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise ConfigurationError(path=str(path), message=f"Failed to delete {path}: {e}") from e

    # -------------------------------------------------------------------------
    # config.json
    # -------------------------------------------------------------------------

    def read_config(self) -> dict[str, Any]:
        data = read_json(self.paths.config_file, default={})
        if not isinstance(data, dict):
            raise ConfigurationError(
                path=str(self.paths.config_file),
                message=f"Project config {self.paths.config_file} must be a JSON object",
            )
        return data

    def merge_config(self, manifest: PackManifest) -> dict[str, Any]:
        """
        Shallow-merge a pack's projectSettings and defaultMode into config.json.

        Returns:
            The merged configuration as written
        """
        configuration = manifest.configuration
        if configuration is None:
            return self.read_config()

        with project_lock(self.paths.root):
            existing = self.read_config()
            merged = {**existing, **(configuration.project_settings or {})}
            merged[DEFAULT_MODE_KEY] = configuration.default_mode or existing.get(DEFAULT_MODE_KEY)
            if merged[DEFAULT_MODE_KEY] is None:
                del merged[DEFAULT_MODE_KEY]
            atomic_write_json(self.paths.config_file, merged)
        return merged

    def unmerge_config(self, manifest: PackManifest) -> list[str]:
        """
        Remove keys a pack merged into config.json.

        A key is only removed while it still holds the pack's value, so user
        edits made after install survive.

        Returns:
            Names of the keys that were removed
        """
        configuration = manifest.configuration
        if configuration is None:
            return []

        contributed = dict(configuration.project_settings or {})
        if configuration.default_mode:
            contributed[DEFAULT_MODE_KEY] = configuration.default_mode
        if not contributed:
            return []

        with project_lock(self.paths.root):
            config = self.read_config()
            removed = [
                key for key, value in contributed.items() if key in config and config[key] == value
            ]
            if removed:
                for key in removed:
                    del config[key]
                atomic_write_json(self.paths.config_file, config)
        return removed
