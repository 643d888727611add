"""
Unit tests for LocalPackSource.

Tests cover:
- Listing packs (sorted, invalid entries skipped)
- Loading packs and manifest errors
- Component paths, existence and reads
"""

from collections.abc import Callable
from pathlib import Path

import pytest

from packwright.errors import (
    ComponentNotFoundError,
    InvalidManifestError,
    ManifestParseError,
    PackNotFoundError,
)
from packwright.schema import ComponentType, SourceType
from packwright.sources.local import LocalPackSource


class TestListPacks:
    """Tests for list_packs."""

    def test_sorted_names(self, packs_dir: Path, make_pack: Callable[..., Path]) -> None:
        make_pack("zeta")
        make_pack("alpha")
        assert LocalPackSource(packs_dir).list_packs() == ["alpha", "zeta"]

    def test_skips_invalid_entries(self, packs_dir: Path, make_pack: Callable[..., Path]) -> None:
        make_pack("good")
        (packs_dir / "no-manifest").mkdir()
        broken = packs_dir / "broken"
        broken.mkdir()
        (broken / "manifest.json").write_text("{oops")
        (packs_dir / "stray.txt").write_text("not a pack")

        assert LocalPackSource(packs_dir).list_packs() == ["good"]

    def test_missing_base_dir(self, temp_dir: Path) -> None:
        assert LocalPackSource(temp_dir / "nowhere").list_packs() == []


class TestLoadPack:
    """Tests for load_pack."""

    def test_load(self, packs_dir: Path, make_pack: Callable[..., Path]) -> None:
        make_pack("demo")
        structure = LocalPackSource(packs_dir, source_id="mine").load_pack("demo")
        assert structure.name == "demo"
        assert structure.source_id == "mine"
        assert Path(structure.path) == (packs_dir / "demo").resolve()

    def test_unknown_pack(self, packs_dir: Path) -> None:
        with pytest.raises(PackNotFoundError) as exc_info:
            LocalPackSource(packs_dir).load_pack("ghost")
        assert exc_info.value.sources == ["local"]

    def test_unparseable_manifest(self, packs_dir: Path) -> None:
        (packs_dir / "bad").mkdir()
        (packs_dir / "bad" / "manifest.json").write_text("{oops")
        with pytest.raises(ManifestParseError):
            LocalPackSource(packs_dir).load_pack("bad")

    def test_schema_violation(self, packs_dir: Path, make_pack: Callable[..., Path]) -> None:
        make_pack("bad", version="one")
        with pytest.raises(InvalidManifestError):
            LocalPackSource(packs_dir).load_pack("bad")

    def test_has_pack_never_raises(self, packs_dir: Path, make_pack: Callable[..., Path]) -> None:
        make_pack("bad", version="one")
        source = LocalPackSource(packs_dir)
        assert source.has_pack("bad") is False
        assert source.has_pack("ghost") is False


class TestComponents:
    """Tests for component access."""

    def test_read_component(self, packs_dir: Path, make_pack: Callable[..., Path]) -> None:
        make_pack("demo", {"modes/demo-mode.md": "# Demo\n"})
        source = LocalPackSource(packs_dir)
        assert source.has_component("demo", ComponentType.MODES, "demo-mode")
        assert source.read_component("demo", ComponentType.MODES, "demo-mode") == b"# Demo\n"

    def test_hook_path_uses_json(self, packs_dir: Path) -> None:
        source = LocalPackSource(packs_dir)
        path = source.get_component_path("demo", ComponentType.HOOKS, "on-save")
        assert path.endswith("hooks/on-save.json")

    def test_missing_component(self, packs_dir: Path, make_pack: Callable[..., Path]) -> None:
        make_pack("demo")
        source = LocalPackSource(packs_dir)
        assert not source.has_component("demo", ComponentType.AGENTS, "ghost")
        with pytest.raises(ComponentNotFoundError):
            source.read_component("demo", ComponentType.AGENTS, "ghost")

    def test_source_info(self, packs_dir: Path) -> None:
        info = LocalPackSource(packs_dir).get_source_info()
        assert info.name == "local"
        assert info.type is SourceType.LOCAL
        assert info.path == str(packs_dir.resolve())
