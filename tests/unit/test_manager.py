"""
Unit tests for StarterPackManager.

Tests cover:
- Dependency-ordered installs
- Failing fast on missing and circular dependencies
- Per-pack retries and exhaustion
- Validation, trust and consent gates
- Uninstall with audit records
"""

from collections.abc import Callable
from pathlib import Path

import pytest

from packwright.config import ProjectPaths
from packwright.errors import SourceFetchError
from packwright.manager import MAX_INSTALL_RETRIES, StarterPackManager
from packwright.pack.installer import PackInstaller
from packwright.pack.registry import PackRegistry
from packwright.schema import ComponentType, InstallationResult, InstallOptions, TrustAction
from packwright.sources.local import LocalPackSource


# =============================================================================
# Fixtures
# =============================================================================


class FlakyInstaller(PackInstaller):
    """Fails the first `failures` install calls, then installs normally."""

    def __init__(self, paths: ProjectPaths, failures: int, exception: bool = False) -> None:
        super().__init__(paths)
        self.failures = failures
        self.exception = exception
        self.calls = 0

    def install_pack(self, structure, source, options=None) -> InstallationResult:
        self.calls += 1
        if self.calls <= self.failures:
            if self.exception:
                raise OSError("disk went away")
            return InstallationResult.failure("transient failure")
        return super().install_pack(structure, source, options)


class DroppingSource(LocalPackSource):
    """Fails one read of a component after the validator has read it."""

    def __init__(self, base_path: Path, component: str, fail_on_read: int = 2) -> None:
        super().__init__(base_path)
        self.component = component
        self.fail_on_read = fail_on_read
        self.reads = 0

    def read_component(self, pack: str, component_type: ComponentType, name: str) -> bytes:
        if name == self.component:
            self.reads += 1
            if self.reads == self.fail_on_read:
                raise SourceFetchError(url=f"file://{pack}/{name}", message="connection reset")
        return super().read_component(pack, component_type, name)


@pytest.fixture
def registry(packs_dir: Path) -> PackRegistry:
    return PackRegistry(LocalPackSource(packs_dir))


@pytest.fixture
def manager(project_root: Path, registry: PackRegistry) -> StarterPackManager:
    return StarterPackManager(project_root, registry=registry)


def make_chain(make_pack: Callable[..., Path]) -> None:
    make_pack("a", dependencies=["b"])
    make_pack("b", dependencies=["c"])
    make_pack("c", dependencies=["d"])
    make_pack("d", dependencies=["e"])
    make_pack("e")


# =============================================================================
# Install
# =============================================================================


class TestInstall:
    """Tests for install_pack."""

    def test_installs_dependencies_first(
        self, manager: StarterPackManager, make_pack: Callable[..., Path]
    ) -> None:
        make_chain(make_pack)
        result = manager.install_pack("a")
        assert result.success, result.errors
        assert result.installed_packs == ["e", "d", "c", "b", "a"]
        assert set(manager.list_installed()) == {"a", "b", "c", "d", "e"}

    def test_installed_dependencies_skipped(
        self, manager: StarterPackManager, make_pack: Callable[..., Path]
    ) -> None:
        make_pack("a", dependencies=["b"])
        make_pack("b")
        assert manager.install_pack("b").success

        result = manager.install_pack("a")
        assert result.success, result.errors
        assert result.installed_packs == ["a"]

    def test_force_reinstalls_dependencies(
        self, manager: StarterPackManager, make_pack: Callable[..., Path]
    ) -> None:
        make_pack("a", dependencies=["b"])
        make_pack("b")
        manager.install_pack("b")

        result = manager.install_pack("a", InstallOptions(force=True))
        assert result.installed_packs == ["b", "a"]

    def test_missing_dependency_fails_fast(
        self, manager: StarterPackManager, project_root: Path, make_pack: Callable[..., Path]
    ) -> None:
        make_pack("a", dependencies=["ghost"])
        result = manager.install_pack("a")
        assert not result.success
        assert "missing dependencies: ghost" in result.errors[0]
        assert not (project_root / ".packwright").exists()

    def test_circular_dependency_fails_fast(
        self, manager: StarterPackManager, make_pack: Callable[..., Path]
    ) -> None:
        make_pack("a", dependencies=["a"])
        result = manager.install_pack("a")
        assert not result.success
        assert "circular dependencies: a" in result.errors[0]

    def test_unknown_pack(self, manager: StarterPackManager) -> None:
        result = manager.install_pack("ghost")
        assert not result.success
        assert manager.list_installed() == {}

    def test_dry_run_records_nothing(
        self, manager: StarterPackManager, project_root: Path, make_pack: Callable[..., Path]
    ) -> None:
        make_pack("a")
        result = manager.install_pack("a", InstallOptions(dry_run=True))
        assert result.success
        assert result.installed["modes"] == ["a-mode"]
        assert manager.list_installed() == {}
        assert manager.trust.get_installation_history() == []

    def test_failed_dependency_stops_install(
        self, manager: StarterPackManager, project_root: Path, make_pack: Callable[..., Path]
    ) -> None:
        make_pack("a", dependencies=["b"])
        make_pack("b")
        existing = project_root / ".packwright/modes/b-mode.md"
        existing.parent.mkdir(parents=True)
        existing.write_text("mine")

        result = manager.install_pack("a")
        assert not result.success
        assert result.errors[0] == f"Failed to install pack 'b' after {MAX_INSTALL_RETRIES} attempts"
        assert "a" not in manager.list_installed()


class TestRetries:
    """Tests for the per-pack retry loop."""

    def test_flaky_install_succeeds(
        self, project_root: Path, registry: PackRegistry, make_pack: Callable[..., Path]
    ) -> None:
        make_pack("a")
        installer = FlakyInstaller(ProjectPaths.for_root(project_root), failures=2)
        manager = StarterPackManager(project_root, registry=registry, installer=installer)

        result = manager.install_pack("a")
        assert result.success, result.errors
        assert installer.calls == 3

    def test_exceptions_count_as_failures(
        self, project_root: Path, registry: PackRegistry, make_pack: Callable[..., Path]
    ) -> None:
        make_pack("a")
        installer = FlakyInstaller(ProjectPaths.for_root(project_root), failures=1, exception=True)
        manager = StarterPackManager(project_root, registry=registry, installer=installer)

        assert manager.install_pack("a").success
        assert installer.calls == 2

    def test_retries_exhausted(
        self, project_root: Path, registry: PackRegistry, make_pack: Callable[..., Path]
    ) -> None:
        make_pack("a")
        installer = FlakyInstaller(ProjectPaths.for_root(project_root), failures=100)
        manager = StarterPackManager(project_root, registry=registry, installer=installer)

        result = manager.install_pack("a")
        assert not result.success
        assert result.errors[0] == "Failed to install pack 'a' after 3 attempts"
        assert installer.calls == MAX_INSTALL_RETRIES + 1

    def test_retry_after_partial_write(
        self, project_root: Path, packs_dir: Path, make_pack: Callable[..., Path]
    ) -> None:
        make_pack(
            "p",
            components={"modes": [{"name": "p-one", "required": True}, {"name": "p-two"}]},
        )
        source = DroppingSource(packs_dir, "p-two")
        manager = StarterPackManager(project_root, registry=PackRegistry(source))

        result = manager.install_pack("p")
        assert result.success, result.errors
        assert result.installed["modes"] == ["p-one", "p-two"]
        assert (project_root / ".packwright/modes/p-two.md").is_file()
        assert source.reads == 4

    def test_other_packs_files_still_conflict(
        self, manager: StarterPackManager, project_root: Path, make_pack: Callable[..., Path]
    ) -> None:
        make_pack("a")
        make_pack("b", components={"modes": [{"name": "a-mode", "required": True}]})
        assert manager.install_pack("a").success

        result = manager.install_pack_direct("b")
        assert not result.success
        assert result.errors == ["Conflict: mode 'a-mode' already exists"]

    def test_direct_install_single_attempt(
        self, project_root: Path, registry: PackRegistry, make_pack: Callable[..., Path]
    ) -> None:
        make_pack("a", dependencies=["ghost"])
        installer = FlakyInstaller(ProjectPaths.for_root(project_root), failures=1)
        manager = StarterPackManager(project_root, registry=registry, installer=installer)

        result = manager.install_pack_direct("a")
        assert not result.success
        assert result.errors == ["transient failure"]
        assert installer.calls == 1


class TestGates:
    """Tests for validation, trust and consent."""

    def test_validation_errors_prefixed(
        self, manager: StarterPackManager, make_pack: Callable[..., Path]
    ) -> None:
        make_pack("a", postInstall={"commands": ["sudo rm -rf /"]})
        result = manager.install_pack_direct("a")
        assert not result.success
        assert all(e.startswith("Validation failed: ") for e in result.errors)

    def test_hooks_need_consent(self, manager: StarterPackManager, make_pack: Callable[..., Path]) -> None:
        make_pack(
            "a",
            components={"modes": [{"name": "m", "required": True}], "hooks": [{"name": "h"}]},
        )
        result = manager.install_pack_direct("a")
        assert not result.success
        assert result.errors == ["Pack 'a' requires user consent to install"]

    def test_assume_yes_grants_consent(
        self, manager: StarterPackManager, make_pack: Callable[..., Path]
    ) -> None:
        make_pack(
            "a",
            components={"modes": [{"name": "m", "required": True}], "hooks": [{"name": "h"}]},
        )
        result = manager.install_pack_direct("a", InstallOptions(assume_yes=True))
        assert result.success, result.errors
        record = manager.trust.get_installation_history("a")[0]
        assert record.user_consent is True

    def test_consent_callback(
        self, project_root: Path, registry: PackRegistry, make_pack: Callable[..., Path]
    ) -> None:
        make_pack(
            "a",
            components={"modes": [{"name": "m", "required": True}], "hooks": [{"name": "h"}]},
        )
        asked = []
        manager = StarterPackManager(
            project_root,
            registry=registry,
            consent_callback=lambda structure, security: asked.append(structure.name) or True,
        )
        result = manager.install_pack_direct("a", InstallOptions(interactive=True))
        assert result.success
        assert asked == ["a"]

    def test_threats_reported_as_warnings(
        self, manager: StarterPackManager, make_pack: Callable[..., Path]
    ) -> None:
        make_pack("a", components={"modes": [{"name": "eval-mode", "required": True}]})
        result = manager.install_pack_direct("a")
        assert result.success
        assert "Suspicious pattern in component name: eval-mode" in result.warnings


# =============================================================================
# Uninstall and queries
# =============================================================================


class TestUninstall:
    """Tests for uninstall_pack."""

    def test_uninstall_records_removal(
        self, manager: StarterPackManager, project_root: Path, make_pack: Callable[..., Path]
    ) -> None:
        make_pack("a")
        manager.install_pack("a")

        result = manager.uninstall_pack("a")
        assert result.success
        assert not (project_root / ".packwright/modes/a-mode.md").exists()
        actions = [r.action for r in manager.trust.get_installation_history("a")]
        assert actions == [TrustAction.INSTALLED, TrustAction.REMOVED]

    def test_uninstall_unknown(self, manager: StarterPackManager) -> None:
        assert not manager.uninstall_pack("ghost").success


class TestQueries:
    """Tests for read-only operations."""

    def test_validate_pack(self, manager: StarterPackManager, make_pack: Callable[..., Path]) -> None:
        make_pack("a", {"modes/a-mode.md": None})
        result = manager.validate_pack("a")
        assert result.errors == ["Required component not found: modes/a-mode"]

    def test_validate_unknown_pack(self, manager: StarterPackManager) -> None:
        result = manager.validate_pack("ghost")
        assert not result.valid

    def test_list_and_search(self, manager: StarterPackManager, make_pack: Callable[..., Path]) -> None:
        make_pack("a", tags=["x"])
        make_pack("b")
        assert [p.name for p in manager.list_packs()] == ["a", "b"]
        assert [p.name for p in manager.search_packs(tags=["x"])] == ["a"]
        assert manager.get_registry_stats()["totalPacks"] == 2
