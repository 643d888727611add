"""
Unit tests for pack manifest models and parsing helpers.

Tests cover:
- PackManifest validation (names, versions, description length)
- One schema error per violation
- camelCase keys and unknown-key preservation
- parse/load helpers and their errors
"""

import json
from pathlib import Path

import pytest

from conftest import manifest_dict
from packwright.errors import InvalidManifestError, ManifestParseError
from packwright.pack.manifest import (
    PackManifest,
    PackStructure,
    load_manifest_file,
    manifest_checksum,
    parse_manifest_bytes,
    validate_manifest_data,
)
from packwright.schema import ComponentType


class TestPackManifest:
    """Tests for the PackManifest model."""

    def test_minimal_manifest(self) -> None:
        manifest = PackManifest.model_validate(manifest_dict("demo"))
        assert manifest.name == "demo"
        assert manifest.dependencies == []
        assert manifest.components.modes[0].required is True

    @pytest.mark.parametrize("name", ["Demo", "demo_pack", "demo pack", ""])
    def test_invalid_names(self, name: str) -> None:
        manifest, errors = validate_manifest_data(manifest_dict("demo", name=name))
        assert manifest is None
        assert errors

    @pytest.mark.parametrize("version", ["1.0", "v1.0.0", "1.0.0-beta"])
    def test_invalid_versions(self, version: str) -> None:
        manifest, errors = validate_manifest_data(manifest_dict("demo", version=version))
        assert manifest is None
        assert any(e.startswith("version") for e in errors)

    def test_description_too_long(self) -> None:
        _, errors = validate_manifest_data(manifest_dict("demo", description="x" * 501))
        assert any(e.startswith("description") for e in errors)

    def test_camel_case_configuration(self) -> None:
        data = manifest_dict(
            "demo",
            configuration={"defaultMode": "demo-mode", "projectSettings": {"a": 1}},
            postInstall={"message": "Done"},
        )
        manifest = PackManifest.model_validate(data)
        assert manifest.configuration is not None
        assert manifest.configuration.default_mode == "demo-mode"
        assert manifest.configuration.project_settings == {"a": 1}
        assert manifest.post_install is not None
        assert manifest.post_install.message == "Done"

    def test_grouped_dependencies(self) -> None:
        manifest = PackManifest.model_validate(
            manifest_dict(
                "demo",
                dependencies={
                    "packs": ["essentials"],
                    "tools": [{"name": "ripgrep", "required": False, "installCommand": "brew install ripgrep"}],
                },
            )
        )
        assert manifest.dependencies == ["essentials"]
        tool = manifest.tool_dependencies[0]
        assert (tool.name, tool.required, tool.install_command) == ("ripgrep", False, "brew install ripgrep")

    def test_grouped_dependencies_without_tools(self) -> None:
        manifest = PackManifest.model_validate(manifest_dict("demo", dependencies={"packs": []}))
        assert manifest.dependencies == []
        assert manifest.tool_dependencies == []

    def test_unknown_keys_round_trip(self) -> None:
        data = manifest_dict("demo", homepage="https://example.com")
        manifest = PackManifest.model_validate(data)
        assert manifest.to_json_dict()["homepage"] == "https://example.com"

    def test_iter_components_order(self) -> None:
        data = manifest_dict(
            "demo",
            components={
                "hooks": [{"name": "h"}],
                "modes": [{"name": "m", "required": True}],
                "agents": [{"name": "a"}],
            },
        )
        manifest = PackManifest.model_validate(data)
        types = [component_type for component_type, _ in manifest.iter_components()]
        assert types == [ComponentType.MODES, ComponentType.AGENTS, ComponentType.HOOKS]
        assert manifest.component_count == 3

    def test_manifest_is_frozen(self) -> None:
        manifest = PackManifest.model_validate(manifest_dict("demo"))
        with pytest.raises(ValueError):
            manifest.name = "other"  # type: ignore[misc]


class TestSchemaErrors:
    """Every violation is reported on its own."""

    def test_each_missing_field_reported(self) -> None:
        manifest, errors = validate_manifest_data({"name": "demo"})
        assert manifest is None
        assert "Missing required field: version" in errors
        assert "Missing required field: description" in errors
        assert "Missing required field: author" in errors
        assert "Missing required field: components" in errors

    def test_non_object(self) -> None:
        manifest, errors = validate_manifest_data(["not", "an", "object"])
        assert manifest is None
        assert errors == ["Manifest must be a JSON object"]


class TestParsing:
    """Tests for parse_manifest_bytes and load_manifest_file."""

    def test_parse_bad_json(self) -> None:
        with pytest.raises(ManifestParseError) as exc_info:
            parse_manifest_bytes(b"{not json", "demo")
        assert exc_info.value.pack_name == "demo"

    def test_parse_schema_violation(self) -> None:
        with pytest.raises(InvalidManifestError) as exc_info:
            parse_manifest_bytes(json.dumps({"name": "demo"}), "demo")
        assert "Missing required field: version" in exc_info.value.errors

    def test_load_missing_file(self, temp_dir: Path) -> None:
        with pytest.raises(ManifestParseError):
            load_manifest_file(temp_dir / "manifest.json", "demo")

    def test_load_file(self, temp_dir: Path) -> None:
        path = temp_dir / "manifest.json"
        path.write_text(json.dumps(manifest_dict("demo")))
        assert load_manifest_file(path, "demo").name == "demo"


class TestPackStructure:
    """Tests for PackStructure and checksums."""

    def test_component_root_defaults_to_path(self) -> None:
        manifest = PackManifest.model_validate(manifest_dict("demo"))
        structure = PackStructure(manifest=manifest, path="/packs/demo")
        assert structure.component_root == "/packs/demo"
        assert structure.name == "demo"

    def test_checksum_stable(self) -> None:
        first = PackManifest.model_validate(manifest_dict("demo"))
        second = PackManifest.model_validate(manifest_dict("demo"))
        assert manifest_checksum(first) == manifest_checksum(second)
        assert len(manifest_checksum(first)) == 64
