"""
Pytest configuration and fixtures for packwright tests.

This module provides shared fixtures used across unit, integration,
and security tests.
"""

import io
import json
import tarfile
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any, Generator

import pytest

from packwright.config import ProjectPaths


DEFAULT_CONTENT = {
    "modes": "# Mode\n\nBe helpful.\n",
    "workflows": "# Workflow\n\n1. Do the thing.\n",
    "agents": "# Agent\n\nYou run tests.\n",
    "hooks": '{"event": "file-saved"}\n',
}


def manifest_dict(name: str, /, **overrides: Any) -> dict[str, Any]:
    """A valid manifest document with optional overrides."""
    data: dict[str, Any] = {
        "name": name,
        "version": "1.0.0",
        "description": f"The {name} pack",
        "author": "tester",
        "components": {"modes": [{"name": f"{name}-mode", "required": True}]},
    }
    data.update(overrides)
    return data


def write_pack(
    base: Path,
    name: str,
    files: dict[str, str | bytes] | None = None,
    **overrides: Any,
) -> Path:
    """
    Write a pack directory under base.

    Every declared component gets default content unless `files` provides
    it (keyed "<type>/<name>.<ext>"); a None value in files skips the file.
    """
    pack_dir = base / name
    pack_dir.mkdir(parents=True, exist_ok=True)
    data = manifest_dict(name, **overrides)
    (pack_dir / "manifest.json").write_text(json.dumps(data, indent=2))

    files = dict(files or {})
    for component_type, components in data.get("components", {}).items():
        extension = ".json" if component_type == "hooks" else ".md"
        for component in components:
            key = f"{component_type}/{component['name']}{extension}"
            files.setdefault(key, DEFAULT_CONTENT[component_type])

    for relative, content in files.items():
        if content is None:
            continue
        path = pack_dir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content)
    return pack_dir


def make_tarball(files: dict[str, str | bytes], top: str = "pack-1.0.0") -> bytes:
    """Build a gzipped tarball with every file under a single top-level directory."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for relative, content in files.items():
            data = content.encode("utf-8") if isinstance(content, str) else content
            info = tarfile.TarInfo(name=f"{top}/{relative}" if top else relative)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def packs_dir(temp_dir: Path) -> Path:
    """Directory served by a LocalPackSource."""
    path = temp_dir / "packs"
    path.mkdir()
    return path


@pytest.fixture
def project_root(temp_dir: Path) -> Path:
    """An empty project checkout."""
    path = temp_dir / "project"
    path.mkdir()
    return path


@pytest.fixture
def project_paths(project_root: Path) -> ProjectPaths:
    return ProjectPaths(root=project_root.resolve())


@pytest.fixture
def make_pack(packs_dir: Path) -> Callable[..., Path]:
    """Factory writing packs into packs_dir."""

    def _make(name: str, files: dict[str, str | bytes] | None = None, **overrides: Any) -> Path:
        return write_pack(packs_dir, name, files, **overrides)

    return _make


class FakeClock:
    """Manually advanced clock for cache TTL tests."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
