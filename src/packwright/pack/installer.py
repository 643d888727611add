"""
Pack installer: writes and removes component files.

Install targets:
    agents     -> <root>/.claude/agents/<name>.md
    modes      -> <root>/.packwright/modes/<name>.md
    workflows  -> <root>/.packwright/workflows/<name>.md
    hooks      -> <root>/.packwright/hooks/<name>.json

Install Order:
    1. Plan targets; with skip_optional, optional components are skipped
    2. Conflict check: any existing target without force fails the whole
       call before anything is written. Targets declared by this pack's own
       snapshot are not conflicts, so an interrupted install can be retried
    3. Tool dependencies are looked up and missing ones reported as warnings
    4. Dry run stops here and reports what would be installed
    5. Write components, merge configuration into config.json
    6. Bookkeeping (packs.json record + manifest snapshot), even when some
       components failed, so uninstall never depends on the source

Security Note:
    Post-install commands are never executed. Targets are resolved and must
    stay inside their component directory.
"""

import logging
from pathlib import Path

from packwright.config import ProjectPaths
from packwright.errors import (
    ComponentNotFoundError,
    ConfigurationError,
    ConflictError,
    InstallationError,
    PackwrightError,
)
from packwright.pack.manifest import PackComponent, PackManifest, PackStructure
from packwright.pack.tools import ToolDependencyChecker
from packwright.schema import ComponentType, InstallationResult, InstallOptions
from packwright.sources.base import PackSource
from packwright.store.project import ProjectStore


logger = logging.getLogger(__name__)


class PackInstaller:
    """
    Installs packs into a project and removes them again.

    Attributes:
        paths: Project layout
        store: Installed-state storage
        tool_checker: Looks up tools the pack declares

    Example:
        >>> installer = PackInstaller(ProjectPaths.for_root("."))
        >>> result = installer.install_pack(structure, source, InstallOptions(dry_run=True))
        >>> result.installed["modes"]
        ['architect']
    """

    def __init__(
        self,
        paths: ProjectPaths,
        store: ProjectStore | None = None,
        tool_checker: ToolDependencyChecker | None = None,
    ) -> None:
        self.paths = paths
        self.store = store or ProjectStore(paths)
        self.tool_checker = tool_checker or ToolDependencyChecker()

    def target_path(self, component_type: ComponentType, name: str) -> Path:
        """
        Where a component is installed.

        Raises:
            InstallationError: If the name would escape the component directory
        """
        directory = self.paths.component_dir(component_type.value)
        target = directory / f"{name}{component_type.extension}"
        if not target.resolve().is_relative_to(directory.resolve()) or "/" in name or "\\" in name:
            raise InstallationError(message=f"Unsafe component name: {component_type.value}/{name}")
        return target

    # -------------------------------------------------------------------------
    # Install
    # -------------------------------------------------------------------------

    def install_pack(
        self,
        structure: PackStructure,
        source: PackSource,
        options: InstallOptions | None = None,
    ) -> InstallationResult:
        """
        Install every component of a pack.

        Args:
            structure: The loaded pack
            source: Source the component bytes are read from
            options: Install options

        Returns:
            InstallationResult; success is False when any error occurred
        """
        options = options or InstallOptions()
        manifest = structure.manifest
        result = InstallationResult()

        plan: list[tuple[ComponentType, PackComponent, Path]] = []
        for component_type, component in manifest.iter_components():
            if options.skip_optional and not component.required:
                result.skipped[component_type.value].append(component.name)
                continue
            try:
                plan.append((component_type, component, self.target_path(component_type, component.name)))
            except InstallationError as e:
                result.errors.append(e.message)
        if result.errors:
            result.success = False
            return result

        if not options.force:
            owned = self._owned_targets(manifest.name)
            conflicts = [
                ConflictError(
                    component_type=component_type.singular,
                    component_name=component.name,
                    path=str(target),
                )
                for component_type, component, target in plan
                if target.exists() and target not in owned
            ]
            if conflicts:
                logger.info("Install of %s blocked by %d conflict(s)", manifest.name, len(conflicts))
                return InstallationResult.failure(*(f"Conflict: {c.message}" for c in conflicts))

        self._check_tools(manifest, result)

        if options.dry_run:
            for component_type, component, _ in plan:
                result.installed[component_type.value].append(component.name)
            self._post_install(manifest, result)
            return result

        for component_type, component, target in plan:
            self._install_component(manifest, source, component_type, component, target, result)

        if manifest.configuration is not None:
            try:
                self.store.merge_config(manifest)
            except ConfigurationError as e:
                result.errors.append(f"Failed to merge configuration: {e.message}")

        try:
            self.store.record_install(manifest, source.get_source_info())
            self.store.write_snapshot(manifest)
        except ConfigurationError as e:
            result.errors.append(f"Failed to record installation: {e.message}")

        self._post_install(manifest, result)
        result.success = not result.errors
        if result.success:
            result.installed_packs.append(manifest.name)
            logger.info("Installed pack %s %s", manifest.name, manifest.version)
        return result

    def _owned_targets(self, name: str) -> set[Path]:
        """Targets a previous install of this pack wrote, per its snapshot."""
        if self.store.get_record(name) is None:
            return set()
        snapshot = self.store.read_snapshot(name)
        if snapshot is None:
            return set()
        owned = set()
        for component_type, component in snapshot.iter_components():
            try:
                owned.add(self.target_path(component_type, component.name))
            except InstallationError:
                continue
        return owned

    def _check_tools(self, manifest: PackManifest, result: InstallationResult) -> None:
        if not manifest.tool_dependencies:
            return
        logger.debug(
            "Checking %d tool dependencies for %s", len(manifest.tool_dependencies), manifest.name
        )
        results = self.tool_checker.check(manifest.tool_dependencies)
        result.warnings.extend(self.tool_checker.guidance(results))

    def _install_component(
        self,
        manifest: PackManifest,
        source: PackSource,
        component_type: ComponentType,
        component: PackComponent,
        target: Path,
        result: InstallationResult,
    ) -> None:
        label = f"{component_type.singular} '{component.name}'"
        try:
            content = source.read_component(manifest.name, component_type, component.name)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except ComponentNotFoundError:
            if component.required:
                result.errors.append(f"Required {label} not found in source")
            else:
                result.skipped[component_type.value].append(component.name)
                result.warnings.append(f"Optional {label} not found in source")
            return
        except (PackwrightError, OSError) as e:
            result.errors.append(f"Failed to install {label}: {e}")
            return
        result.installed[component_type.value].append(component.name)
        logger.debug("Wrote %s", target)

    def _post_install(self, manifest: PackManifest, result: InstallationResult) -> None:
        post_install = manifest.post_install
        if post_install is None:
            return
        result.post_install_message = post_install.message
        if post_install.commands:
            warning = (
                f"Pack {manifest.name} declares {len(post_install.commands)} post-install "
                "command(s); post-install commands are disabled for security and were not run"
            )
            logger.warning(warning)
            result.warnings.append(warning)

    # -------------------------------------------------------------------------
    # Uninstall
    # -------------------------------------------------------------------------

    def uninstall_pack(self, name: str, source: PackSource | None = None) -> InstallationResult:
        """
        Remove an installed pack.

        The manifest snapshot is preferred; the live source's manifest is the
        fallback. Without either, no files are removed because their
        provenance cannot be confirmed. The packs.json record and snapshot
        are deleted even if some removals fail; files that could not be
        removed are listed in residual_files.

        Args:
            name: Installed pack name
            source: Optional live source to fall back to

        Returns:
            InstallationResult where `installed` lists removed components
        """
        result = InstallationResult()
        if self.store.get_record(name) is None:
            return InstallationResult.failure(f"Pack '{name}' is not installed")

        manifest = self.store.read_snapshot(name)
        if manifest is None and source is not None:
            try:
                manifest = source.load_pack(name).manifest
                logger.info("No snapshot for %s; using manifest from %s", name, source.source_id)
            except PackwrightError as e:
                logger.warning("Cannot load %s from %s: %s", name, source.source_id, e.message)

        if manifest is None:
            result.warnings.append(
                f"No manifest available for pack '{name}'; component files were left in place"
            )
        else:
            self._remove_components(manifest, result)
            try:
                self.store.unmerge_config(manifest)
            except ConfigurationError as e:
                result.errors.append(f"Failed to update configuration: {e.message}")

        try:
            self.store.remove_record(name)
            self.store.delete_snapshot(name)
        except ConfigurationError as e:
            result.errors.append(f"Failed to update installation records: {e.message}")

        result.success = not result.errors
        logger.info("Uninstalled pack %s", name)
        return result

    def _remove_components(self, manifest: PackManifest, result: InstallationResult) -> None:
        for component_type, component in manifest.iter_components():
            try:
                target = self.target_path(component_type, component.name)
            except InstallationError as e:
                result.errors.append(e.message)
                continue
            if not target.exists():
                result.skipped[component_type.value].append(component.name)
                continue
            try:
                target.unlink()
            except OSError as e:
                result.errors.append(f"Failed to remove {component_type.singular} '{component.name}': {e}")
                result.residual_files.append(str(target))
                continue
            result.installed[component_type.value].append(component.name)
