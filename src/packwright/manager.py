"""
StarterPackManager: the entry point for installing and removing packs.

The manager wires the registry, validator, trust manager and installer
together for one project:

    install_pack(name)
        -> registry.resolve_dependencies(name)      fail fast on missing/circular
        -> for each dependency, then the pack itself:
               locate -> prefetch -> validate -> trust check -> consent
               -> installer.install_pack -> audit record
           each pack gets 1 + MAX_INSTALL_RETRIES attempts

Design Decisions:
    - Packs install strictly one after another in resolved order, since a
      later pack may rely on files or configuration from an earlier one
    - Both a failed result and an exception count as a failed attempt
    - Errors never escape: everything folds into an InstallationResult
    - Dependencies already recorded in packs.json are not reinstalled
      unless force is set
"""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from packwright.config import ProjectPaths
from packwright.errors import DependencyError, PackwrightError, SecurityRejectedError
from packwright.pack.installer import PackInstaller
from packwright.pack.manifest import PackStructure
from packwright.pack.registry import PackRegistry
from packwright.pack.validator import PackValidator
from packwright.schema import (
    DependencyResult,
    InstallationResult,
    InstallOptions,
    ProjectPackRecord,
    SecurityValidationResult,
    ValidationResult,
)
from packwright.sources.config import SourceConfigStore
from packwright.sources.http import HttpFetcher
from packwright.store.project import ProjectStore
from packwright.trust.manager import TrustManager


logger = logging.getLogger(__name__)

# Retries after the first failed attempt, per pack
MAX_INSTALL_RETRIES = 3

ConsentCallback = Callable[[PackStructure, SecurityValidationResult], bool]


class StarterPackManager:
    """
    Facade over lookup, resolution, validation, trust and installation.

    Attributes:
        paths: Project layout
        registry: Pack sources and dependency resolution
        validator: Manifest and content validation
        trust: Trust policy and audit trail
        installer: File writes and removals
        consent_callback: Asked for consent during interactive installs

    Example:
        >>> manager = StarterPackManager(Path("."))
        >>> result = manager.install_pack("essentials", InstallOptions(dry_run=True))
        >>> result.success
        True
    """

    def __init__(
        self,
        project_root: Path | str,
        registry: PackRegistry | None = None,
        validator: PackValidator | None = None,
        trust: TrustManager | None = None,
        installer: PackInstaller | None = None,
        consent_callback: ConsentCallback | None = None,
        fetcher: HttpFetcher | None = None,
    ) -> None:
        self.paths = ProjectPaths.for_root(project_root)
        self.store = ProjectStore(self.paths)
        self.source_store = SourceConfigStore(self.paths)
        self.registry = registry or PackRegistry.from_config(self.source_store, fetcher)
        self.validator = validator or PackValidator()
        self.trust = trust or TrustManager(self.paths)
        self.installer = installer or PackInstaller(self.paths, self.store)
        self.consent_callback = consent_callback

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def list_packs(self) -> list[PackStructure]:
        return self.registry.list_available_packs()

    def load_pack(self, name: str, source_id: str | None = None) -> PackStructure:
        return self.registry.load_pack(name, source_id)

    def has_pack(self, name: str) -> bool:
        return self.registry.has_pack(name)

    def search_packs(self, **criteria: Any) -> list[PackStructure]:
        return self.registry.search_packs(**criteria)

    def resolve_dependencies(self, name: str) -> DependencyResult:
        return self.registry.resolve_dependencies(name)

    def get_registry_stats(self) -> dict[str, Any]:
        return self.registry.get_registry_stats()

    def list_installed(self) -> dict[str, ProjectPackRecord]:
        return self.store.list_installed()

    def validate_pack(self, name: str, source_id: str | None = None) -> ValidationResult:
        """Validate a pack, including its component files, without installing it."""
        try:
            located = self.registry.locate(name, source_id)
        except PackwrightError as e:
            result = ValidationResult()
            result.error(e.message)
            return result
        return self.validator.validate_pack(located.structure, located.source)

    def clear_cache(self, expired_only: bool = False) -> None:
        if expired_only:
            self.registry.clear_expired_cache()
        else:
            self.registry.clear_all_cache()

    # -------------------------------------------------------------------------
    # Install
    # -------------------------------------------------------------------------

    def install_pack(
        self,
        name: str,
        options: InstallOptions | None = None,
        source_id: str | None = None,
    ) -> InstallationResult:
        """
        Install a pack and its dependencies, dependencies first.

        Args:
            name: Pack to install
            options: Install options, applied to every pack
            source_id: Load the target pack from this source only

        Returns:
            Aggregate InstallationResult; installed_packs lists packs in the
            order they were installed
        """
        options = options or InstallOptions()

        try:
            resolution = self.registry.resolve_dependencies(name)
        except PackwrightError as e:
            return InstallationResult.failure(e.message)

        if not resolution.ok:
            error = DependencyError(
                pack_name=name,
                missing=resolution.missing,
                circular=resolution.circular,
            )
            logger.error(error.message)
            return InstallationResult.failure(error.message)

        aggregate = InstallationResult()
        for dependency in resolution.resolved:
            if not options.force and self.store.is_installed(dependency):
                logger.info("Dependency %s is already installed", dependency)
                continue
            outcome = self._install_with_retries(dependency, options)
            aggregate.merge(outcome)
            if not outcome.success:
                return aggregate

        aggregate.merge(self._install_with_retries(name, options, source_id))
        return aggregate

    def install_pack_direct(
        self,
        name: str,
        options: InstallOptions | None = None,
        source_id: str | None = None,
    ) -> InstallationResult:
        """Install a single pack once, without resolving dependencies."""
        return self._attempt(name, options or InstallOptions(), source_id)

    def _install_with_retries(
        self,
        name: str,
        options: InstallOptions,
        source_id: str | None = None,
    ) -> InstallationResult:
        attempts = MAX_INSTALL_RETRIES + 1
        result = InstallationResult.failure(f"Pack '{name}' was not attempted")
        for attempt in range(1, attempts + 1):
            result = self._attempt(name, options, source_id)
            if result.success:
                if attempt > 1:
                    logger.info("Installed %s on attempt %d", name, attempt)
                return result
            logger.warning(
                "Attempt %d/%d to install %s failed: %s",
                attempt,
                attempts,
                name,
                "; ".join(result.errors),
            )

        result.errors.insert(
            0,
            f"Failed to install pack '{name}' after {MAX_INSTALL_RETRIES} attempts",
        )
        result.success = False
        return result

    def _attempt(self, name: str, options: InstallOptions, source_id: str | None) -> InstallationResult:
        try:
            return self._install_single(name, options, source_id)
        except PackwrightError as e:
            return InstallationResult.failure(e.message)
        except Exception as e:
            logger.debug("Unexpected error installing %s", name, exc_info=True)
            return InstallationResult.failure(f"Unexpected error installing '{name}': {e}")

    def _install_single(
        self,
        name: str,
        options: InstallOptions,
        source_id: str | None,
    ) -> InstallationResult:
        located = self.registry.locate(name, source_id)
        structure, source = located.structure, located.source

        try:
            source.prefetch(name)
        except PackwrightError as e:
            logger.warning("Prefetch of %s from %s failed: %s", name, source.source_id, e.message)

        validation = self.validator.validate_pack(structure, source)
        if not validation.valid:
            result = InstallationResult.failure(
                *(f"Validation failed: {error}" for error in validation.errors)
            )
            result.warnings.extend(validation.warnings)
            return result

        security = self.trust.validate_pack(structure, source)
        if not security.valid:
            rejected = SecurityRejectedError(pack_name=name, reasons=security.errors)
            return InstallationResult.failure(rejected.message)

        consent = False
        if security.requires_consent:
            consent = self._obtain_consent(structure, security, options)
            if not consent:
                rejected = SecurityRejectedError(
                    pack_name=name,
                    message=f"Pack '{name}' requires user consent to install",
                    suggestion="Re-run with --yes to accept the listed warnings.",
                )
                result = InstallationResult.failure(rejected.message)
                result.warnings.extend(security.warnings)
                return result

        threats = self.trust.scan_pack_for_threats(structure)
        for threat in threats:
            logger.warning(threat)

        result = self.installer.install_pack(structure, source, options)
        result.warnings[:0] = [*validation.warnings, *security.warnings, *threats]

        if result.success and not options.dry_run:
            self.trust.record_installation(source, structure, consent)
        return result

    def _obtain_consent(
        self,
        structure: PackStructure,
        security: SecurityValidationResult,
        options: InstallOptions,
    ) -> bool:
        if options.assume_yes:
            return True
        if options.interactive and self.consent_callback is not None:
            return bool(self.consent_callback(structure, security))
        return False

    # -------------------------------------------------------------------------
    # Uninstall
    # -------------------------------------------------------------------------

    def uninstall_pack(self, name: str) -> InstallationResult:
        """Remove an installed pack and record the removal."""
        try:
            record = self.store.get_record(name)
            snapshot = self.store.read_snapshot(name)
            source = self.registry.get_source(record.source.name) if record else None
            result = self.installer.uninstall_pack(name, source)
            if record is not None and snapshot is not None:
                self.trust.record_removal(record.source.name, snapshot)
            return result
        except PackwrightError as e:
            return InstallationResult.failure(e.message)
