"""
JSON file helpers shared by every persisted state file.

Writes are atomic (temp file in the same directory, fsync, os.replace) so a
crash never leaves a half-written packs.json or trust record file behind.
Read-modify-write sequences on one project are serialized with project_lock.
"""

import json
import os
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from packwright.errors import ConfigurationError


_LOCKS: dict[str, threading.RLock] = {}
_LOCKS_GUARD = threading.Lock()


@contextmanager
def project_lock(root: Path) -> Iterator[None]:
    """
    Serialize read-modify-write of one project's state files.

    Locks are process-wide, keyed by the resolved project root, and
    re-entrant so an install can update packs.json while holding the lock
    for config.json.
    """
    key = str(Path(root).resolve())
    with _LOCKS_GUARD:
        lock = _LOCKS.setdefault(key, threading.RLock())
    with lock:
        yield


def read_json(path: Path, default: Any = None) -> Any:
    """
    Read a JSON file, returning default when it does not exist.

    Raises:
        ConfigurationError: If the file exists but cannot be read or parsed
    """
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(
            path=str(path),
            message=f"Failed to read {path}: {e}",
        ) from e


def atomic_write_json(path: Path, data: Any) -> None:
    """
    Atomically write a JSON document.

    Raises:
        ConfigurationError: If the file cannot be written
    """
    content = json.dumps(data, indent=2) + "\n"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp", prefix=f".{path.stem}-")
    except OSError as e:
        raise ConfigurationError(path=str(path), message=f"Failed to write {path}: {e}") from e

    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(content.encode("utf-8"))
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except OSError as e:
        if Path(tmp_path).exists():
            os.unlink(tmp_path)
        raise ConfigurationError(path=str(path), message=f"Failed to write {path}: {e}") from e
