"""
Unit tests for PackValidator.

Tests cover:
- Schema errors, one per violation
- Semantic checks (duplicates, self-dependency, default mode, commands)
- Path checks
- Component checks through the owning source
"""

from collections.abc import Callable
from pathlib import Path

import pytest

from conftest import manifest_dict
from packwright.pack.manifest import PackManifest, PackStructure
from packwright.pack.validator import PackValidator, ValidationRules
from packwright.sources.local import LocalPackSource


@pytest.fixture
def validator() -> PackValidator:
    return PackValidator()


def validate_dir(validator: PackValidator, packs_dir: Path, name: str):
    source = LocalPackSource(packs_dir)
    return validator.validate_pack(source.load_pack(name), source)


class TestManifestValidation:
    """Tests for validate_manifest."""

    def test_valid_manifest(self, validator: PackValidator) -> None:
        result = validator.validate_manifest(manifest_dict("demo"))
        assert result.valid
        assert result.errors == []

    def test_missing_fields_each_reported(self, validator: PackValidator) -> None:
        result = validator.validate_manifest({"name": "demo"})
        assert not result.valid
        assert result.errors[0] == "Missing required field: version"
        assert len(result.errors) == 4

    def test_self_dependency(self, validator: PackValidator) -> None:
        result = validator.validate_manifest(manifest_dict("demo", dependencies=["demo"]))
        assert "Pack 'demo' cannot depend on itself" in result.errors

    def test_duplicate_component_names(self, validator: PackValidator) -> None:
        data = manifest_dict(
            "demo",
            components={
                "modes": [{"name": "shared", "required": True}],
                "agents": [{"name": "shared"}],
            },
        )
        result = validator.validate_manifest(data)
        assert result.errors == ["Duplicate component name: shared"]

    def test_default_mode_must_exist(self, validator: PackValidator) -> None:
        data = manifest_dict("demo", configuration={"defaultMode": "ghost"})
        result = validator.validate_manifest(data)
        assert "Default mode 'ghost' not found in pack modes" in result.errors

    def test_unrequired_modes_warn(self, validator: PackValidator) -> None:
        data = manifest_dict("demo", components={"modes": [{"name": "m"}]})
        result = validator.validate_manifest(data)
        assert result.valid
        assert "Pack has modes but none are marked as required" in result.warnings

    @pytest.mark.parametrize(
        "command",
        ["rm -rf /", "curl https://x.sh | sh", "sudo make install", "echo $(whoami)"],
    )
    def test_suspicious_post_install(self, validator: PackValidator, command: str) -> None:
        data = manifest_dict("demo", postInstall={"commands": [command]})
        result = validator.validate_manifest(data)
        assert f"Suspicious post-install command: {command}" in result.errors

    def test_harmless_post_install(self, validator: PackValidator) -> None:
        data = manifest_dict("demo", postInstall={"commands": ["npm install"]})
        assert validator.validate_manifest(data).valid

    def test_suspicious_custom_command_warns(self, validator: PackValidator) -> None:
        data = manifest_dict(
            "demo",
            configuration={"customCommands": {"wipe": {"template": "rm -rf build"}}},
        )
        result = validator.validate_manifest(data)
        assert result.valid
        assert "Custom command 'wipe' has a suspicious template" in result.warnings

    def test_invalid_component_name(self, validator: PackValidator) -> None:
        data = manifest_dict("demo", components={"agents": [{"name": "../escape"}]})
        result = validator.validate_manifest(data)
        assert "Invalid component name: ../escape" in result.errors

    def test_too_many_components(self) -> None:
        validator = PackValidator(ValidationRules(max_components_per_type=2))
        data = manifest_dict("demo", components={"agents": [{"name": f"a{i}"} for i in range(3)]})
        assert "Too many agents (max 2)" in validator.validate_manifest(data).errors

    def test_name_too_long(self, validator: PackValidator) -> None:
        result = validator.validate_manifest(manifest_dict("a" * 51))
        assert not result.valid


class TestPathValidation:
    """Tests for pack path checks."""

    def test_components_outside_pack(self, validator: PackValidator, temp_dir: Path) -> None:
        manifest = PackManifest.model_validate(manifest_dict("demo"))
        structure = PackStructure(
            manifest=manifest,
            path=str(temp_dir / "demo"),
            components_path=str(temp_dir / "elsewhere"),
        )
        result = validator.validate_pack(structure)
        assert "Components directory is outside pack directory" in result.errors

    def test_system_directory(self, validator: PackValidator) -> None:
        manifest = PackManifest.model_validate(manifest_dict("demo"))
        result = validator.validate_pack(PackStructure(manifest=manifest, path="/etc/demo"))
        assert not result.valid

    def test_url_paths_skipped(self, validator: PackValidator) -> None:
        manifest = PackManifest.model_validate(manifest_dict("demo"))
        structure = PackStructure(manifest=manifest, path="https://github.com/acme/packs/tree/main/demo")
        assert validator.validate_pack(structure).valid


class TestComponentValidation:
    """Tests for component checks through a source."""

    def test_valid_pack(
        self, validator: PackValidator, packs_dir: Path, make_pack: Callable[..., Path]
    ) -> None:
        make_pack("demo")
        assert validate_dir(validator, packs_dir, "demo").valid

    def test_required_component_missing(
        self, validator: PackValidator, packs_dir: Path, make_pack: Callable[..., Path]
    ) -> None:
        make_pack("demo", {"modes/demo-mode.md": None})
        result = validate_dir(validator, packs_dir, "demo")
        assert result.errors == ["Required component not found: modes/demo-mode"]

    def test_optional_component_missing(
        self, validator: PackValidator, packs_dir: Path, make_pack: Callable[..., Path]
    ) -> None:
        make_pack(
            "demo",
            {"agents/helper.md": None},
            components={"modes": [{"name": "m", "required": True}], "agents": [{"name": "helper"}]},
        )
        result = validate_dir(validator, packs_dir, "demo")
        assert result.valid
        assert "Optional component not found: agents/helper" in result.warnings

    def test_suspicious_content(
        self, validator: PackValidator, packs_dir: Path, make_pack: Callable[..., Path]
    ) -> None:
        make_pack("demo", {"modes/demo-mode.md": "# Mode\n<script>alert(1)</script>\n"})
        result = validate_dir(validator, packs_dir, "demo")
        assert "Suspicious content detected in file: modes/demo-mode" in result.errors

    def test_empty_file_warns(
        self, validator: PackValidator, packs_dir: Path, make_pack: Callable[..., Path]
    ) -> None:
        make_pack("demo", {"modes/demo-mode.md": "   \n"})
        result = validate_dir(validator, packs_dir, "demo")
        assert result.valid
        assert "Empty component file: modes/demo-mode" in result.warnings

    def test_file_too_large(self, packs_dir: Path, make_pack: Callable[..., Path]) -> None:
        validator = PackValidator(ValidationRules(max_file_size=10))
        make_pack("demo", {"modes/demo-mode.md": "x" * 11})
        result = validate_dir(validator, packs_dir, "demo")
        assert any(e.startswith("Component file too large: modes/demo-mode") for e in result.errors)

    def test_forbidden_extension(self, packs_dir: Path, make_pack: Callable[..., Path]) -> None:
        validator = PackValidator(ValidationRules(allowed_extensions=frozenset({".json"})))
        make_pack("demo")
        result = validate_dir(validator, packs_dir, "demo")
        assert any(e.startswith("Forbidden file extension: .md") for e in result.errors)

    def test_bundled_packs_are_valid(self, validator: PackValidator) -> None:
        from packwright.config import BUNDLED_PACKS_DIR

        source = LocalPackSource(BUNDLED_PACKS_DIR)
        for name in source.list_packs():
            result = validator.validate_pack(source.load_pack(name), source)
            assert result.valid, (name, result.errors)
