"""
Pack validation.

PackValidator runs two layers of checks, and both must pass for a pack to be
valid:

1. Schema: the manifest must satisfy the PackManifest model (required
   fields, name and version patterns, description length). Every violation
   is reported separately.
2. Semantic and content: names, duplicates, dependencies, default mode,
   post-install and custom command text, and, through the owning source,
   each declared component's presence, size, extension and content.

Design Decisions:
    - Validation never raises for a bad pack; it returns a ValidationResult
    - Warnings are informational and never flip valid to False
    - Post-install commands are never executed, but suspicious ones are
      still errors so a user can refuse the pack
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path, PurePath, PurePosixPath
from typing import Any
from urllib.parse import urlparse

from packwright.config import BUNDLED_PACKS_DIR
from packwright.errors import PackwrightError
from packwright.pack.manifest import PackManifest, PackStructure, validate_manifest_data
from packwright.schema import ComponentType, ValidationResult
from packwright.sources.base import PackSource


logger = logging.getLogger(__name__)


SUSPICIOUS_COMMAND_PATTERNS = [
    re.compile(r"rm\s+-rf\s*/"),
    re.compile(r"\brm\s+-rf\b"),
    re.compile(r"\bsudo\s+"),
    re.compile(r"chmod\s+777"),
    re.compile(r"curl\s+.*\|\s*(ba)?sh"),
    re.compile(r"wget\s+.*\|\s*(ba)?sh"),
    re.compile(r"\beval\s+"),
    re.compile(r"\bexec\s+"),
    re.compile(r"\bsystem\s*\("),
    re.compile(r"`[^`]*`"),
    re.compile(r"\$\(.*\)"),
    re.compile(r"\bnohup\b"),
    re.compile(r"&\s*$"),
]

SUSPICIOUS_CONTENT_PATTERNS = [
    re.compile(r"<script\b", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"<[^>]+\son[a-z]+\s*=", re.IGNORECASE),
]

COMPONENT_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")

FORBIDDEN_NAME_FRAGMENTS = ("..", "/", "\\", "~")

FORBIDDEN_PATH_PREFIXES = (
    "/etc",
    "/usr",
    "/bin",
    "/sbin",
    "/boot",
    "/dev",
    "/proc",
    "/sys",
    "C:\\Windows",
    "C:\\Program Files",
)


@dataclass(frozen=True)
class ValidationRules:
    """
    Limits applied by PackValidator.

    Attributes:
        max_name_length: Longest accepted pack name
        max_components_per_type: Most components of one type
        max_file_size: Largest accepted component file, in bytes
        allowed_extensions: Component file extensions that may be installed
        trusted_roots: Directories exempt from the system-directory check;
            the bundled packs live under site-packages, which may sit in /usr
    """

    max_name_length: int = 50
    max_components_per_type: int = 20
    max_file_size: int = 1024 * 1024
    allowed_extensions: frozenset[str] = frozenset({".md", ".json", ".sh"})
    trusted_roots: tuple[str, ...] = (str(BUNDLED_PACKS_DIR),)


def is_suspicious_command(command: str) -> bool:
    return any(pattern.search(command) for pattern in SUSPICIOUS_COMMAND_PATTERNS)


def _is_url(path: str) -> bool:
    return urlparse(path).scheme in ("http", "https")


class PackValidator:
    """
    Validates manifests and the files they reference.

    Attributes:
        rules: Limits to enforce

    Example:
        >>> validator = PackValidator()
        >>> result = validator.validate_manifest({"name": "demo"})
        >>> result.valid
        False
        >>> result.errors[0]
        'Missing required field: version'
    """

    def __init__(self, rules: ValidationRules | None = None) -> None:
        self.rules = rules or ValidationRules()

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def validate_manifest(self, manifest: PackManifest | dict[str, Any]) -> ValidationResult:
        """
        Validate a manifest without touching its files.

        Args:
            manifest: A parsed PackManifest or the raw decoded JSON

        Returns:
            ValidationResult with one error per schema violation, or the
            semantic findings when the schema is satisfied
        """
        result = ValidationResult()
        if not isinstance(manifest, PackManifest):
            parsed, errors = validate_manifest_data(manifest)
            if parsed is None:
                for error in errors:
                    result.error(error)
                return result
            manifest = parsed

        self._check_semantics(manifest, result)
        return result

    def validate_pack(
        self,
        structure: PackStructure,
        source: PackSource | None = None,
    ) -> ValidationResult:
        """
        Validate a loaded pack, including its component files.

        Args:
            structure: The loaded pack
            source: Source that owns the pack; component checks are skipped
                when omitted

        Returns:
            Combined ValidationResult
        """
        result = self.validate_manifest(structure.manifest)
        self._check_paths(structure, result)
        if source is not None:
            self._check_components(structure.manifest, source, result)

        if result.valid:
            logger.debug("Pack %s passed validation", structure.name)
        else:
            logger.debug("Pack %s failed validation: %s", structure.name, result.errors)
        return result

    # -------------------------------------------------------------------------
    # Semantic checks
    # -------------------------------------------------------------------------

    def _check_semantics(self, manifest: PackManifest, result: ValidationResult) -> None:
        name = manifest.name

        if len(name) > self.rules.max_name_length:
            result.error(f"Pack name too long (max {self.rules.max_name_length} characters)")
        if any(fragment in name for fragment in FORBIDDEN_NAME_FRAGMENTS):
            result.error(f"Pack name contains unsafe characters: {name}")

        seen: set[str] = set()
        for component_type in ComponentType:
            components = manifest.components.of_type(component_type)
            if len(components) > self.rules.max_components_per_type:
                result.error(
                    f"Too many {component_type.value} "
                    f"(max {self.rules.max_components_per_type})"
                )
            for component in components:
                if not COMPONENT_NAME_PATTERN.match(component.name) or ".." in component.name:
                    result.error(f"Invalid component name: {component.name}")
                if component.name in seen:
                    result.error(f"Duplicate component name: {component.name}")
                seen.add(component.name)

        if name in manifest.dependencies:
            result.error(f"Pack '{name}' cannot depend on itself")

        mode_names = {mode.name for mode in manifest.components.modes}
        if mode_names and not any(mode.required for mode in manifest.components.modes):
            result.warn("Pack has modes but none are marked as required")

        configuration = manifest.configuration
        if configuration is not None:
            default_mode = configuration.default_mode
            if default_mode and default_mode not in mode_names:
                result.error(f"Default mode '{default_mode}' not found in pack modes")
            for command_name, command in (configuration.custom_commands or {}).items():
                if is_suspicious_command(command.template):
                    result.warn(f"Custom command '{command_name}' has a suspicious template")

        if manifest.post_install is not None:
            for command in manifest.post_install.commands or []:
                if is_suspicious_command(command):
                    result.error(f"Suspicious post-install command: {command}")

    # -------------------------------------------------------------------------
    # Path checks
    # -------------------------------------------------------------------------

    def _is_trusted_root(self, path: Path) -> bool:
        return any(path.is_relative_to(Path(root).resolve()) for root in self.rules.trusted_roots)

    def _check_paths(self, structure: PackStructure, result: ValidationResult) -> None:
        if _is_url(structure.path):
            return

        raw = structure.path
        if ".." in PurePath(raw).parts or raw.startswith("~"):
            result.error(f"Pack path contains a forbidden pattern: {raw}")
            return

        resolved = Path(raw).resolve()
        if not self._is_trusted_root(resolved):
            for prefix in FORBIDDEN_PATH_PREFIXES:
                if "\\" in prefix:
                    if str(resolved).lower().startswith(prefix.lower()):
                        result.error(f"Pack path is inside a system directory: {resolved}")
                elif resolved.is_relative_to(prefix):
                    result.error(f"Pack path is inside a system directory: {resolved}")

        if structure.components_path and not _is_url(structure.components_path):
            components = Path(structure.components_path).resolve()
            if not components.is_relative_to(resolved):
                result.error("Components directory is outside pack directory")

    # -------------------------------------------------------------------------
    # Component checks
    # -------------------------------------------------------------------------

    def _check_components(
        self,
        manifest: PackManifest,
        source: PackSource,
        result: ValidationResult,
    ) -> None:
        for component_type, component in manifest.iter_components():
            if not COMPONENT_NAME_PATTERN.match(component.name) or ".." in component.name:
                continue
            label = f"{component_type.value}/{component.name}"

            if not source.has_component(manifest.name, component_type, component.name):
                if component.required:
                    result.error(f"Required component not found: {label}")
                else:
                    result.warn(f"Optional component not found: {label}")
                continue

            path = source.get_component_path(manifest.name, component_type, component.name)
            extension = PurePosixPath(urlparse(path).path if _is_url(path) else path).suffix
            if extension not in self.rules.allowed_extensions:
                result.error(f"Forbidden file extension: {extension or '(none)'} ({label})")
                continue

            try:
                content = source.read_component(manifest.name, component_type, component.name)
            except (PackwrightError, OSError) as e:
                result.error(f"Cannot read component {label}: {e}")
                continue

            if len(content) > self.rules.max_file_size:
                result.error(
                    f"Component file too large: {label} "
                    f"({len(content)} bytes, max {self.rules.max_file_size})"
                )
                continue
            if not content.strip():
                result.warn(f"Empty component file: {label}")
                continue

            text = content.decode("utf-8", errors="replace")
            if any(pattern.search(text) for pattern in SUSPICIOUS_CONTENT_PATTERNS):
                result.error(f"Suspicious content detected in file: {label}")
