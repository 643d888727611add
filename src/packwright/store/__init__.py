"""
Persistent project state for packwright.

Key Components:
    - ProjectStore: packs.json, manifest snapshots and config.json
    - atomic_write_json / read_json: JSON file helpers
    - project_lock: per-project serialization of read-modify-write
"""

from packwright.store.files import atomic_write_json, project_lock, read_json
from packwright.store.project import ProjectStore

__all__ = [
    "ProjectStore",
    "atomic_write_json",
    "project_lock",
    "read_json",
]
