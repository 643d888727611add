"""
Exception hierarchy for packwright.

All packwright exceptions inherit from PackwrightError, allowing callers to
catch every packwright-specific failure with a single except clause.

Exception Categories:
    - PackNotFoundError / InvalidManifestError / ManifestParseError: lookup
    - SourceFetchError / IntegrityError: remote transport and checksums
    - DependencyError: missing or circular dependencies
    - SecurityRejectedError: blocked domain or missing consent
    - ConflictError / InstallationError: writing components
    - ConfigurationError: state file I/O

Design Principles:
    - All errors have error codes for programmatic handling
    - Validation failures are never raised; they are returned as results
    - Filesystem and network layers raise, the manager folds errors into
      InstallationResult so nothing escapes to the top-level caller
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Source errors: 1xxx
ERROR_PACK_NOT_FOUND = 1001
ERROR_MANIFEST_INVALID = 1002
ERROR_MANIFEST_PARSE = 1003
ERROR_SOURCE_FETCH = 1004
ERROR_INTEGRITY = 1005
ERROR_COMPONENT_NOT_FOUND = 1006

# Dependency errors: 2xxx
ERROR_DEPENDENCY_MISSING = 2001
ERROR_DEPENDENCY_CIRCULAR = 2002

# Security errors: 3xxx
ERROR_SECURITY_REJECTED = 3001
ERROR_SECURITY_CONSENT_REQUIRED = 3002

# Installation errors: 4xxx
ERROR_INSTALL_CONFLICT = 4001
ERROR_INSTALL_FAILED = 4002
ERROR_INSTALL_RETRIES_EXHAUSTED = 4003

# Configuration errors: 5xxx
ERROR_CONFIG_IO = 5001
ERROR_CONFIG_SOURCE = 5002


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class PackwrightError(Exception):
    """
    Base exception for all packwright errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Source Errors
# =============================================================================


@dataclass
class PackNotFoundError(PackwrightError):
    """
    Raised when a pack cannot be found in any source.

    Attributes:
        pack_name: Name of the pack that was requested
        sources: Identifiers of every source that was searched
    """

    pack_name: str = ""
    sources: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.message:
            if self.sources:
                searched = ", ".join(self.sources)
                self.message = f"Pack '{self.pack_name}' not found in sources: {searched}"
            else:
                self.message = f"Pack '{self.pack_name}' not found"
        if self.code == 0:
            self.code = ERROR_PACK_NOT_FOUND
        if not self.suggestion:
            self.suggestion = "Use `packwright list` to see available packs."
        self.context.setdefault("pack_name", self.pack_name)
        if self.sources:
            self.context.setdefault("sources", self.sources)


@dataclass
class InvalidManifestError(PackwrightError):
    """
    Raised when a manifest parses as JSON but violates the manifest schema.

    Attributes:
        pack_name: Name of the pack whose manifest is invalid
        errors: One message per schema violation
    """

    pack_name: str = ""
    errors: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.message:
            detail = "; ".join(self.errors) if self.errors else "schema violation"
            self.message = f"Invalid manifest for pack '{self.pack_name}': {detail}"
        if self.code == 0:
            self.code = ERROR_MANIFEST_INVALID
        self.context.setdefault("pack_name", self.pack_name)
        self.context.setdefault("errors", self.errors)


@dataclass
class ManifestParseError(PackwrightError):
    """
    Raised when a manifest file cannot be read or is not valid JSON.

    Attributes:
        pack_name: Name of the pack being loaded
        path: Location of the manifest
        reason: Underlying parser or I/O message
    """

    pack_name: str = ""
    path: str = ""
    reason: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Failed to parse manifest for pack '{self.pack_name}': {self.reason}"
        if self.code == 0:
            self.code = ERROR_MANIFEST_PARSE
        self.context.setdefault("pack_name", self.pack_name)
        if self.path:
            self.context.setdefault("path", self.path)


@dataclass
class SourceFetchError(PackwrightError):
    """
    Raised when a remote source returns a non-success response.

    Attributes:
        url: The URL that failed
        status_code: HTTP status, or None for transport failures
    """

    url: str = ""
    status_code: int | None = None

    def __post_init__(self) -> None:
        if not self.message:
            if self.status_code is not None:
                self.message = f"Fetch failed with HTTP {self.status_code}: {self.url}"
            else:
                self.message = f"Fetch failed: {self.url}"
        if self.code == 0:
            self.code = ERROR_SOURCE_FETCH
        self.context.setdefault("url", self.url)
        self.context.setdefault("status_code", self.status_code)


@dataclass
class IntegrityError(PackwrightError):
    """
    Raised when fetched bytes do not match the declared SHA-256 checksum.

    Attributes:
        pack_name: Name of the pack being fetched
        expected: Declared checksum
        actual: Checksum of the bytes received
    """

    pack_name: str = ""
    expected: str = ""
    actual: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Pack integrity check failed for {self.pack_name}"
        if self.code == 0:
            self.code = ERROR_INTEGRITY
        self.context.setdefault("pack_name", self.pack_name)
        self.context.setdefault("expected", self.expected)
        self.context.setdefault("actual", self.actual)


@dataclass
class ComponentNotFoundError(PackwrightError):
    """Raised when a single component file is absent from its source."""

    pack_name: str = ""
    component_type: str = ""
    component_name: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = (
                f"Component {self.component_type}/{self.component_name} "
                f"not found in pack '{self.pack_name}'"
            )
        if self.code == 0:
            self.code = ERROR_COMPONENT_NOT_FOUND
        self.context.setdefault("pack_name", self.pack_name)
        self.context.setdefault("component", f"{self.component_type}/{self.component_name}")


# =============================================================================
# Dependency Errors
# =============================================================================


@dataclass
class DependencyError(PackwrightError):
    """
    Raised when a dependency closure cannot be installed.

    Attributes:
        pack_name: The pack whose closure was resolved
        missing: Dependencies not found in any source
        circular: Dependencies revisited on the active traversal path
    """

    pack_name: str = ""
    missing: list[str] = field(default_factory=list)
    circular: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.message:
            parts = []
            if self.missing:
                parts.append(f"missing dependencies: {', '.join(self.missing)}")
            if self.circular:
                parts.append(f"circular dependencies: {', '.join(self.circular)}")
            detail = "; ".join(parts) or "unresolvable dependencies"
            self.message = f"Cannot install pack '{self.pack_name}': {detail}"
        if self.code == 0:
            self.code = ERROR_DEPENDENCY_CIRCULAR if self.circular else ERROR_DEPENDENCY_MISSING
        self.context.setdefault("pack_name", self.pack_name)


# =============================================================================
# Security Errors
# =============================================================================


@dataclass
class SecurityRejectedError(PackwrightError):
    """
    Raised when the trust layer refuses a pack.

    Attributes:
        pack_name: The rejected pack
        reasons: Errors reported by the trust check
    """

    pack_name: str = ""
    reasons: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.message:
            detail = "; ".join(self.reasons) if self.reasons else "rejected by trust policy"
            self.message = f"Security check failed for pack '{self.pack_name}': {detail}"
        if self.code == 0:
            self.code = ERROR_SECURITY_REJECTED
        self.context.setdefault("pack_name", self.pack_name)


# =============================================================================
# Installation Errors
# =============================================================================


@dataclass
class ConflictError(PackwrightError):
    """Raised when a target file exists and force was not requested."""

    component_type: str = ""
    component_name: str = ""
    path: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"{self.component_type} '{self.component_name}' already exists"
        if self.code == 0:
            self.code = ERROR_INSTALL_CONFLICT
        if not self.suggestion:
            self.suggestion = "Re-run with --force to overwrite existing files."
        self.context.setdefault("path", self.path)


@dataclass
class InstallationError(PackwrightError):
    """Raised when writing or removing pack files fails."""

    pack_name: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Installation of pack '{self.pack_name}' failed"
        if self.code == 0:
            self.code = ERROR_INSTALL_FAILED
        self.context.setdefault("pack_name", self.pack_name)


# =============================================================================
# Configuration Errors
# =============================================================================


@dataclass
class ConfigurationError(PackwrightError):
    """
    Raised when a persisted state file cannot be read or written.

    Attributes:
        path: The state file involved
    """

    path: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Failed to access configuration file: {self.path}"
        if self.code == 0:
            self.code = ERROR_CONFIG_IO
        if self.path:
            self.context.setdefault("path", self.path)


@dataclass
class SourceConfigError(ConfigurationError):
    """Raised for invalid source registrations (duplicates, removing local)."""

    source_id: str = ""

    def __post_init__(self) -> None:
        if self.code == 0:
            self.code = ERROR_CONFIG_SOURCE
        if not self.message:
            self.message = f"Invalid source configuration: {self.source_id}"
        self.context.setdefault("source_id", self.source_id)
        super().__post_init__()
