"""
Unit tests for project state storage.

Tests cover:
- JSON helpers (atomic writes, read errors)
- packs.json records
- Manifest snapshots
- Project path layout and environment overrides
"""

import json
import threading
from pathlib import Path

import pytest

from conftest import manifest_dict
from packwright.config import ProjectPaths, cache_ttl_from_env
from packwright.errors import ConfigurationError
from packwright.pack.manifest import PackManifest
from packwright.schema import SourceInfo, SourceType
from packwright.store.files import atomic_write_json, project_lock, read_json
from packwright.store.project import ProjectStore


@pytest.fixture
def store(project_paths: ProjectPaths) -> ProjectStore:
    return ProjectStore(project_paths)


def local_info() -> SourceInfo:
    return SourceInfo(name="local", type=SourceType.LOCAL, path="/packs")


class TestJsonFiles:
    """Tests for read_json and atomic_write_json."""

    def test_round_trip(self, temp_dir: Path) -> None:
        path = temp_dir / "nested" / "state.json"
        atomic_write_json(path, {"a": [1, 2]})
        assert read_json(path) == {"a": [1, 2]}
        assert [p.name for p in path.parent.iterdir()] == ["state.json"]

    def test_large_document_written_whole(self, temp_dir: Path) -> None:
        path = temp_dir / "big.json"
        data = {"items": ["x" * 1024 for _ in range(4096)]}
        atomic_write_json(path, data)
        assert read_json(path) == data

    def test_failed_replace_leaves_no_temp_file(
        self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def refuse(src: str, dst: str) -> None:
            raise OSError("read-only file system")

        monkeypatch.setattr("packwright.store.files.os.replace", refuse)
        with pytest.raises(ConfigurationError):
            atomic_write_json(temp_dir / "state.json", {"a": 1})
        assert list(temp_dir.iterdir()) == []

    def test_missing_file_default(self, temp_dir: Path) -> None:
        assert read_json(temp_dir / "nope.json", default={}) == {}

    def test_corrupt_file(self, temp_dir: Path) -> None:
        path = temp_dir / "bad.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError) as exc_info:
            read_json(path)
        assert exc_info.value.path == str(path)

    def test_project_lock_is_reentrant(self, temp_dir: Path) -> None:
        with project_lock(temp_dir):
            with project_lock(temp_dir):
                pass

    def test_concurrent_records(self, store: ProjectStore) -> None:
        manifests = [PackManifest.model_validate(manifest_dict(f"p{i}")) for i in range(10)]
        threads = [
            threading.Thread(target=store.record_install, args=(m, local_info())) for m in manifests
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert len(store.list_installed()) == 10


class TestPackRecords:
    """Tests for packs.json."""

    def test_record_and_remove(self, store: ProjectStore, project_paths: ProjectPaths) -> None:
        manifest = PackManifest.model_validate(manifest_dict("demo"))
        store.record_install(manifest, local_info())

        data = json.loads(project_paths.packs_file.read_text())
        assert data["packs"]["demo"]["version"] == "1.0.0"
        assert data["packs"]["demo"]["source"] == {"name": "local", "type": "local", "path": "/packs"}
        assert "installedAt" in data["packs"]["demo"]

        assert store.remove_record("demo") is True
        assert store.remove_record("demo") is False
        assert not store.is_installed("demo")

    def test_malformed_packs_file(self, store: ProjectStore, project_paths: ProjectPaths) -> None:
        project_paths.state_dir.mkdir(parents=True)
        project_paths.packs_file.write_text('{"packs": {"demo": {"version": 1}}}')
        with pytest.raises(ConfigurationError):
            store.list_installed()


class TestSnapshots:
    """Tests for manifest snapshots."""

    def test_snapshot_round_trip(self, store: ProjectStore) -> None:
        manifest = PackManifest.model_validate(manifest_dict("demo", homepage="https://x"))
        store.write_snapshot(manifest)
        snapshot = store.read_snapshot("demo")
        assert snapshot is not None
        assert snapshot.to_json_dict() == manifest.to_json_dict()

    def test_invalid_snapshot_is_absent(self, store: ProjectStore, project_paths: ProjectPaths) -> None:
        path = project_paths.snapshot_path("demo")
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"name": "demo"}))
        assert store.read_snapshot("demo") is None

    def test_delete_missing_snapshot(self, store: ProjectStore) -> None:
        store.delete_snapshot("ghost")


class TestProjectPaths:
    """Tests for ProjectPaths and environment settings."""

    def test_state_dir_override(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PACKWRIGHT_HOME", ".custom")
        paths = ProjectPaths.for_root(temp_dir)
        assert paths.state_dir == temp_dir.resolve() / ".custom"
        assert paths.agents_dir == temp_dir.resolve() / ".claude" / "agents"

    @pytest.mark.parametrize("raw,expected", [("60", 60.0), ("bogus", 300.0), ("-5", 0.0)])
    def test_cache_ttl_from_env(self, monkeypatch: pytest.MonkeyPatch, raw: str, expected: float) -> None:
        monkeypatch.setenv("PACKWRIGHT_CACHE_TTL", raw)
        assert cache_ttl_from_env() == expected
