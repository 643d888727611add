"""
Schema definitions for packwright state and results.

This module defines the models used throughout packwright:
- ComponentType / SourceType: the closed vocabularies
- SourceInfo / SourceConfig / SourcesFile: where packs come from
- ProjectPackRecord / ProjectPacksFile: what is installed (packs.json)
- TrustPolicy / TrustedSource / TrustRecord: the trust layer's state
- ValidationResult, SecurityValidationResult, DependencyResult,
  InstallOptions, InstallationResult: values returned by operations

Design Decisions:
    - Persisted models are Pydantic models serialized with camelCase aliases,
      so the JSON files keep their established key names
    - Result types are plain dataclasses; they are built up incrementally
      while an operation runs and are never persisted
    - Validation failures are results, never exceptions
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# =============================================================================
# Enums
# =============================================================================


class ComponentType(str, Enum):
    """The four kinds of installable component."""

    MODES = "modes"
    WORKFLOWS = "workflows"
    AGENTS = "agents"
    HOOKS = "hooks"

    @property
    def singular(self) -> str:
        return self.value[:-1]

    @property
    def extension(self) -> str:
        """File extension used both in sources and at the install target."""
        return ".json" if self is ComponentType.HOOKS else ".md"


class SourceType(str, Enum):
    """Kinds of pack source."""

    LOCAL = "local"
    REMOTE = "remote"
    GITHUB = "github"


class TrustAction(str, Enum):
    """Audit trail actions."""

    INSTALLED = "installed"
    UPDATED = "updated"
    REMOVED = "removed"


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(UTC).isoformat()


class _CamelModel(BaseModel):
    """Base for persisted models: camelCase on disk, snake_case in code."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Source Models
# =============================================================================


class SourceInfo(_CamelModel):
    """
    Identity of a source, obtainable without I/O.

    Attributes:
        name: Source identifier
        type: Kind of source
        path: Filesystem path or URL the source reads from
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str
    type: SourceType
    path: str = ""


class SourceConfig(_CamelModel):
    """
    A configured pack source (entry in sources.json).

    Attributes:
        id: Unique source identifier
        type: local, remote or github
        enabled: Disabled sources are skipped during lookup
        priority: Higher priorities are searched first
        config: Type-specific settings (path, url, owner, repo, branch, ...)
    """

    id: str = Field(..., min_length=1)
    type: SourceType
    enabled: bool = True
    priority: int = 0
    config: dict[str, Any] = Field(default_factory=dict)


class SourcesFile(_CamelModel):
    """Contents of sources.json."""

    sources: list[SourceConfig] = Field(default_factory=list)
    default_source: str = "local"


# =============================================================================
# Project Records
# =============================================================================


class ProjectPackRecord(_CamelModel):
    """
    One installed pack in packs.json.

    Attributes:
        version: Version that was installed
        installed_at: ISO-8601 timestamp of the install
        source: Where the pack came from
    """

    version: str
    installed_at: str = Field(default_factory=utc_now_iso)
    source: SourceInfo


class ProjectPacksFile(_CamelModel):
    """Contents of packs.json."""

    packs: dict[str, ProjectPackRecord] = Field(default_factory=dict)


# =============================================================================
# Trust Models
# =============================================================================


class TrustPolicy(_CamelModel):
    """
    Per-project trust policy (security/trust-policy.json).

    Attributes:
        allow_untrusted_sources: Install from untrusted sources without consent
        require_user_consent: Stored with the policy; the consent rules in
            TrustManager apply whatever its value
        audit_installations: Append a TrustRecord for every install
        max_pack_size: Upper bound on the on-disk size of a pack, in bytes
        allowed_domains: Domains that remote sources may use without a warning
        blocked_domains: Domains that are always rejected
        trusted_authors: Manifest authors whose packs are trusted
        trusted_sources: Source identifiers that bypass domain checks
    """

    allow_untrusted_sources: bool = False
    require_user_consent: bool = True
    audit_installations: bool = True
    max_pack_size: int = 10 * 1024 * 1024
    allowed_domains: list[str] = Field(default_factory=lambda: ["github.com", "gitlab.com"])
    blocked_domains: list[str] = Field(default_factory=list)
    trusted_authors: list[str] = Field(
        default_factory=lambda: ["packwright", "packwright-community"]
    )
    trusted_sources: list[str] = Field(default_factory=lambda: ["local"])


class TrustedSource(_CamelModel):
    """An explicitly trusted source (entry in security/trusted-sources.json)."""

    type: SourceType
    path: str = ""
    trusted: bool = True
    added_at: str = Field(default_factory=utc_now_iso)
    description: str | None = None


class TrustRecord(_CamelModel):
    """Append-only audit entry (security/trust-records.json)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    source_id: str
    pack_name: str
    pack_version: str
    author: str
    timestamp: str = Field(default_factory=utc_now_iso)
    action: TrustAction = TrustAction.INSTALLED
    user_consent: bool = False
    checksum: str = ""


# =============================================================================
# Results
# =============================================================================


@dataclass
class ValidationResult:
    """
    Outcome of a validation pass.

    Warnings never make a result invalid; only errors do.
    """

    valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def error(self, message: str) -> None:
        self.errors.append(message)
        self.valid = False

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def extend(self, other: "ValidationResult") -> None:
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.valid = self.valid and other.valid


@dataclass
class SecurityValidationResult(ValidationResult):
    """Validation result from the trust layer."""

    trusted: bool = False
    requires_consent: bool = False

    def merge(self, other: "SecurityValidationResult") -> None:
        """Fold another trust result into this one."""
        self.extend(other)
        self.requires_consent = self.requires_consent or other.requires_consent


@dataclass
class DependencyResult:
    """
    Dependency closure of a pack.

    Attributes:
        resolved: Dependencies in install order, excluding the root pack
        missing: Declared dependencies that no source provides
        circular: Packs revisited while still on the traversal path
    """

    resolved: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    circular: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing and not self.circular


@dataclass
class InstallOptions:
    """
    Options controlling a single install.

    Attributes:
        force: Overwrite existing component files
        dry_run: Run every check but write nothing
        skip_optional: Leave non-required components out
        interactive: A consent callback may be consulted
        assume_yes: Treat consent as granted
    """

    force: bool = False
    dry_run: bool = False
    skip_optional: bool = False
    interactive: bool = False
    assume_yes: bool = False


def _component_lists() -> dict[str, list[str]]:
    return {ct.value: [] for ct in ComponentType}


@dataclass
class InstallationResult:
    """
    Outcome of an install or uninstall.

    Partial failures are reported through installed/skipped/errors rather
    than hidden behind the success flag.
    """

    success: bool = True
    installed: dict[str, list[str]] = field(default_factory=_component_lists)
    skipped: dict[str, list[str]] = field(default_factory=_component_lists)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    post_install_message: str | None = None
    installed_packs: list[str] = field(default_factory=list)
    residual_files: list[str] = field(default_factory=list)

    @classmethod
    def failure(cls, *errors: str) -> "InstallationResult":
        return cls(success=False, errors=list(errors))

    def merge(self, other: "InstallationResult") -> None:
        """Accumulate another pack's result into this aggregate."""
        for kind in self.installed:
            self.installed[kind].extend(other.installed.get(kind, []))
            self.skipped[kind].extend(other.skipped.get(kind, []))
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.installed_packs.extend(other.installed_packs)
        self.residual_files.extend(other.residual_files)
        if other.post_install_message:
            if self.post_install_message:
                self.post_install_message += "\n" + other.post_install_message
            else:
                self.post_install_message = other.post_install_message
        self.success = self.success and other.success

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "installed": self.installed,
            "skipped": self.skipped,
            "errors": self.errors,
            "warnings": self.warnings,
            "postInstallMessage": self.post_install_message,
            "installedPacks": self.installed_packs,
            "residualFiles": self.residual_files,
        }
