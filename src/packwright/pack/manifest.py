"""
Pack manifest schema definitions.

This module defines the Pydantic models for pack manifests:
- PackComponent: one installable artifact declared by a pack
- PackComponents: the four per-type component lists
- PackConfiguration / CustomCommand / PostInstall: optional sections
- ToolDependency: an external command-line tool a pack works with
- PackManifest: complete pack manifest (manifest.json)
- PackStructure: a loaded manifest plus where it was loaded from

Design Decisions:
    - The PackManifest model is the fixed manifest schema; there is no
      separate schema file to go missing at runtime
    - Manifest keys are camelCase on disk (defaultMode, customConfig, ...)
    - PackManifest is frozen and preserves unknown top-level keys, so a
      snapshot written at install time round-trips the original document
    - "dependencies" is either a list of pack names or an object
      {"packs": [...], "tools": [...]}; the object form is split into
      dependencies and tool_dependencies on load
    - Schema errors are collected, one message per violation, instead of
      failing on the first
"""

import hashlib
import json
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from packwright.errors import InvalidManifestError, ManifestParseError
from packwright.schema import ComponentType


MANIFEST_FILENAME = "manifest.json"

NAME_PATTERN = r"^[a-z0-9-]+$"
VERSION_PATTERN = r"^\d+\.\d+\.\d+$"
MAX_DESCRIPTION_LENGTH = 500


# =============================================================================
# Component Models
# =============================================================================


class PackComponent(BaseModel):
    """
    A single component declared by a pack.

    Attributes:
        name: Component name; the file is <type>/<name>.<ext>
        required: Required components cannot be skipped and must exist
        description: Optional human-readable description
        custom_config: Free-form settings passed through to the component
    """

    model_config = ConfigDict(
        frozen=True, extra="forbid", alias_generator=to_camel, populate_by_name=True
    )

    name: str = Field(..., min_length=1, description="Component name")
    required: bool = Field(default=False, description="Whether the component is required")
    description: str | None = Field(default=None, description="Component description")
    custom_config: dict[str, Any] | None = Field(
        default=None,
        description="Component-specific configuration",
    )


class PackComponents(BaseModel):
    """Per-type component lists."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    modes: list[PackComponent] = Field(default_factory=list)
    workflows: list[PackComponent] = Field(default_factory=list)
    agents: list[PackComponent] = Field(default_factory=list)
    hooks: list[PackComponent] = Field(default_factory=list)

    def of_type(self, component_type: ComponentType) -> list[PackComponent]:
        return getattr(self, component_type.value)


class CustomCommand(BaseModel):
    """A slash-command definition contributed by a pack."""

    model_config = ConfigDict(frozen=True, extra="allow")

    description: str = ""
    template: str = ""


class PackConfiguration(BaseModel):
    """
    Project configuration a pack contributes.

    Attributes:
        default_mode: Mode to activate after install; must be a declared mode
        custom_commands: Command name to definition
        project_settings: Keys shallow-merged into the project config.json
    """

    model_config = ConfigDict(
        frozen=True, extra="allow", alias_generator=to_camel, populate_by_name=True
    )

    default_mode: str | None = None
    custom_commands: dict[str, CustomCommand] | None = None
    project_settings: dict[str, Any] | None = None


class PostInstall(BaseModel):
    """Post-install section. Commands are reported, never executed."""

    model_config = ConfigDict(frozen=True, extra="allow")

    message: str | None = None
    commands: list[str] | None = None


class ToolDependency(BaseModel):
    """
    An external tool the pack's components expect on PATH.

    Missing tools never fail an install; they are reported with the
    install command, if one is given.
    """

    model_config = ConfigDict(
        frozen=True, extra="allow", alias_generator=to_camel, populate_by_name=True
    )

    name: str = Field(..., min_length=1)
    version: str | None = None
    required: bool = True
    install_command: str | None = None
    description: str | None = None


# =============================================================================
# Pack Manifest Model
# =============================================================================


class PackManifest(BaseModel):
    """
    Complete manifest for a pack, loaded from manifest.json.

    Attributes:
        name: Pack identifier (lowercase alphanumerics and hyphens)
        version: Semantic version string (e.g. "1.0.0")
        description: 1-500 characters
        author: Pack author or organization
        components: Declared modes, workflows, agents and hooks
        dependencies: Names of packs this pack needs installed first
        tags: Free-form tags used by search
        category: Single category used by search
        configuration: Project configuration to merge on install
        post_install: Message and (never executed) commands
        compatibility_range: Tool versions this pack supports
        compatible_with: Other packs this pack works alongside
        tool_dependencies: External tools the components expect on PATH
    """

    model_config = ConfigDict(
        frozen=True, extra="allow", alias_generator=to_camel, populate_by_name=True
    )

    name: str = Field(..., pattern=NAME_PATTERN, description="Pack identifier")
    version: str = Field(..., pattern=VERSION_PATTERN, description="Semantic version")
    description: str = Field(..., min_length=1, max_length=MAX_DESCRIPTION_LENGTH)
    author: str = Field(..., description="Pack author")
    components: PackComponents

    dependencies: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    category: str | None = None
    configuration: PackConfiguration | None = None
    post_install: PostInstall | None = None
    compatibility_range: str | None = None
    compatible_with: list[str] = Field(default_factory=list)
    tool_dependencies: list[ToolDependency] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def split_dependencies(cls, data: Any) -> Any:
        """Accept {"packs": [...], "tools": [...]} as the dependencies value."""
        if not isinstance(data, dict) or not isinstance(data.get("dependencies"), dict):
            return data
        data = dict(data)
        grouped = data.pop("dependencies")
        data["dependencies"] = grouped.get("packs", [])
        if "tools" in grouped:
            data["toolDependencies"] = grouped["tools"]
        return data

    def iter_components(self) -> Iterator[tuple[ComponentType, PackComponent]]:
        """Yield (type, component) pairs in a stable type order."""
        for component_type in ComponentType:
            for component in self.components.of_type(component_type):
                yield component_type, component

    @property
    def component_count(self) -> int:
        return sum(1 for _ in self.iter_components())

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with on-disk key names, omitting unset optional sections."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class PackStructure:
    """
    A loaded pack: its manifest and where its files live.

    Rebuilt on every load and never persisted as-is.

    Attributes:
        manifest: The parsed manifest
        path: Pack root (directory path or URL)
        components_path: Where <type>/<name>.<ext> files are resolved from
        source_id: Identifier of the source that produced this structure
    """

    manifest: PackManifest
    path: str
    components_path: str | None = None
    source_id: str = ""

    @property
    def name(self) -> str:
        return self.manifest.name

    @property
    def component_root(self) -> str:
        return self.components_path or self.path


# =============================================================================
# Helpers
# =============================================================================


def format_schema_errors(exc: ValidationError) -> list[str]:
    """Turn a pydantic ValidationError into one message per violation."""
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "manifest"
        if error["type"] == "missing":
            messages.append(f"Missing required field: {location}")
        else:
            messages.append(f"{location}: {error['msg']}")
    return messages


def validate_manifest_data(data: Any) -> tuple[PackManifest | None, list[str]]:
    """
    Validate raw manifest data against the manifest schema.

    Args:
        data: Decoded JSON document

    Returns:
        (manifest, []) on success, (None, errors) otherwise
    """
    if not isinstance(data, dict):
        return None, ["Manifest must be a JSON object"]
    try:
        return PackManifest.model_validate(data), []
    except ValidationError as e:
        return None, format_schema_errors(e)


def parse_manifest_bytes(content: bytes | str, pack_name: str, location: str = "") -> PackManifest:
    """
    Parse and validate manifest content.

    Raises:
        ManifestParseError: If the content is not valid JSON
        InvalidManifestError: If the document violates the schema
    """
    try:
        data = json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ManifestParseError(pack_name=pack_name, path=location, reason=str(e)) from e

    manifest, errors = validate_manifest_data(data)
    if manifest is None:
        raise InvalidManifestError(pack_name=pack_name, errors=errors)
    return manifest


def load_manifest_file(path: Path, pack_name: str) -> PackManifest:
    """
    Read and validate a manifest.json from disk.

    Raises:
        ManifestParseError: If the file cannot be read or parsed
        InvalidManifestError: If the document violates the schema
    """
    try:
        content = path.read_bytes()
    except OSError as e:
        raise ManifestParseError(pack_name=pack_name, path=str(path), reason=str(e)) from e
    return parse_manifest_bytes(content, pack_name, str(path))


def manifest_checksum(manifest: PackManifest) -> str:
    """SHA-256 of the canonical JSON form of a manifest."""
    content = json.dumps(manifest.to_json_dict(), sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(content).hexdigest()
