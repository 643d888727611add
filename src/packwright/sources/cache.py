"""
Caching helper shared by the remote pack sources.

PackCache is composed into RemotePackSource and GitHubPackSource rather than
inherited, and bundles the three concerns they share:
- An in-memory TTL cache for manifests, metadata and component content
- A per-pack disk cache: <cache_dir>/<pack>/.metadata.json beside the
  extracted pack files
- SHA-256 checksum verification and safe tarball extraction

Security Note:
    Archives come from the network. Extraction rejects absolute paths and
    ".." segments, skips links and device files, and checks that every
    destination stays inside the target directory. Checksums are verified
    before anything touches the disk, so a mismatch leaves no cache entry.
"""

import hashlib
import io
import json
import logging
import shutil
import tarfile
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any

from packwright.errors import IntegrityError, PackNotFoundError, PackwrightError
from packwright.pack.manifest import MANIFEST_FILENAME, PackStructure
from packwright.sources.local import load_pack_directory


logger = logging.getLogger(__name__)

METADATA_FILENAME = ".metadata.json"


def sha256_hex(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def verify_checksum(pack_name: str, content: bytes, expected: str | None) -> None:
    """
    Compare content against a declared SHA-256 checksum.

    A missing declaration is accepted. An optional "sha256:" prefix on the
    declared value is ignored.

    Raises:
        IntegrityError: If the checksums differ
    """
    if not expected:
        return
    declared = expected.lower().removeprefix("sha256:")
    actual = sha256_hex(content)
    if actual != declared:
        raise IntegrityError(pack_name=pack_name, expected=declared, actual=actual)


def extract_archive(
    content: bytes,
    target: Path,
    pack_name: str,
    subdir: str | None = None,
) -> int:
    """
    Extract a tarball, dropping its single top-level directory.

    Args:
        content: Raw (optionally compressed) tar bytes
        target: Directory to extract into
        pack_name: Used in error messages
        subdir: If given, only members under this path (relative to the
            top-level directory) are extracted, re-rooted at target

    Returns:
        Number of regular files written

    Raises:
        IntegrityError: If the archive is corrupt or contains unsafe paths
    """
    target = target.resolve()
    prefix = PurePosixPath(subdir.strip("/")).parts if subdir and subdir.strip("/") else ()
    written = 0

    try:
        with tarfile.open(fileobj=io.BytesIO(content), mode="r:*") as tar:
            for member in tar.getmembers():
                member_path = PurePosixPath(member.name)
                if member_path.is_absolute() or ".." in member_path.parts:
                    raise IntegrityError(
                        pack_name=pack_name,
                        message=f"Unsafe path in archive for {pack_name}: {member.name}",
                    )

                relative = member_path.parts[1:]
                if prefix:
                    if relative[: len(prefix)] != prefix:
                        continue
                    relative = relative[len(prefix) :]
                if not relative:
                    continue

                if not (member.isdir() or member.isfile()):
                    logger.debug("Skipping non-regular archive member %s", member.name)
                    continue

                destination = target.joinpath(*relative).resolve()
                if not destination.is_relative_to(target):
                    raise IntegrityError(
                        pack_name=pack_name,
                        message=f"Archive member escapes target for {pack_name}: {member.name}",
                    )

                if member.isdir():
                    destination.mkdir(parents=True, exist_ok=True)
                    continue

                extracted = tar.extractfile(member)
                if extracted is None:
                    continue
                destination.parent.mkdir(parents=True, exist_ok=True)
                with extracted, open(destination, "wb") as out:
                    shutil.copyfileobj(extracted, out)
                written += 1
    except tarfile.TarError as e:
        raise IntegrityError(
            pack_name=pack_name,
            message=f"Corrupt archive for {pack_name}: {e}",
        ) from e

    return written


@dataclass
class CacheEntry:
    """A cached value with its creation time and lifetime in seconds."""

    value: Any
    timestamp: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl


class PackCache:
    """
    Memory and disk cache for one remote source.

    Attributes:
        cache_dir: Directory holding one subdirectory per cached pack
        source_id: Source the cached packs belong to
        ttl: Lifetime of memory and disk entries, in seconds

    Example:
        >>> cache = PackCache(Path(".packwright/cache/packs/community"), "community")
        >>> structure = cache.get_structure("essentials")
    """

    def __init__(
        self,
        cache_dir: Path,
        source_id: str,
        ttl: float = 300.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.source_id = source_id
        self.ttl = ttl
        self._clock = clock
        self._memory: dict[str, CacheEntry] = {}

    # -------------------------------------------------------------------------
    # Memory cache
    # -------------------------------------------------------------------------

    def get(self, key: str) -> Any:
        entry = self._memory.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._memory[key]
            return None
        return entry.value

    def put(self, key: str, value: Any) -> None:
        self._memory[key] = CacheEntry(value=value, timestamp=self._clock(), ttl=self.ttl)

    # -------------------------------------------------------------------------
    # Disk cache
    # -------------------------------------------------------------------------

    def pack_dir(self, name: str) -> Path:
        return self.cache_dir / name

    def load_from_disk(self, name: str) -> PackStructure | None:
        """Return the disk-cached pack if present and unexpired."""
        pack_dir = self.pack_dir(name)
        metadata_path = pack_dir / METADATA_FILENAME
        if not metadata_path.is_file():
            return None

        try:
            metadata = json.loads(metadata_path.read_text(encoding="utf-8"))
            entry = CacheEntry(
                value=metadata.get("metadata"),
                timestamp=float(metadata["timestamp"]),
                ttl=float(metadata.get("ttl", self.ttl)),
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Discarding unreadable cache entry %s: %s", pack_dir, e)
            self.invalidate(name)
            return None

        if entry.is_expired(self._clock()):
            self.invalidate(name)
            return None

        try:
            return load_pack_directory(pack_dir, name, self.source_id)
        except PackwrightError as e:
            logger.warning("Discarding corrupt cache entry %s: %s", pack_dir, e.message)
            self.invalidate(name)
            return None

    def read_disk_metadata(self, name: str) -> dict[str, Any] | None:
        """Source metadata stored with a disk entry, expired or not."""
        try:
            record = json.loads((self.pack_dir(name) / METADATA_FILENAME).read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        metadata = record.get("metadata") if isinstance(record, dict) else None
        return metadata if isinstance(metadata, dict) else None

    def has_on_disk(self, name: str) -> bool:
        return (self.pack_dir(name) / METADATA_FILENAME).is_file()

    def store_archive(
        self,
        name: str,
        archive: bytes,
        metadata: dict[str, Any] | None = None,
        checksum: str | None = None,
        subdir: str | None = None,
    ) -> PackStructure:
        """
        Verify, extract and cache a pack archive.

        The archive is extracted into a temporary sibling directory and moved
        into place only once it holds a manifest, so readers never observe a
        partial cache entry.

        Raises:
            IntegrityError: On checksum mismatch or unsafe archive content
            PackNotFoundError: If the archive holds no manifest for the pack
        """
        verify_checksum(name, archive, checksum)

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(dir=self.cache_dir, prefix=f".{name}-"))
        try:
            extract_archive(archive, staging, name, subdir=subdir)
            if not (staging / MANIFEST_FILENAME).is_file():
                raise PackNotFoundError(
                    pack_name=name,
                    sources=[self.source_id],
                    message=f"Archive for pack '{name}' contains no {MANIFEST_FILENAME}",
                )
            record = {
                "metadata": metadata or {},
                "checksum": sha256_hex(archive),
                "timestamp": self._clock(),
                "ttl": self.ttl,
            }
            (staging / METADATA_FILENAME).write_text(json.dumps(record, indent=2), encoding="utf-8")

            target = self.pack_dir(name)
            if target.exists():
                shutil.rmtree(target)
            staging.rename(target)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        structure = load_pack_directory(self.pack_dir(name), name, self.source_id)
        self.put(f"pack:{name}", structure)
        return structure

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    def invalidate(self, name: str) -> None:
        """Drop every memory and disk entry for one pack."""
        for key in [k for k in self._memory if k.split(":", 1)[-1].split("/", 1)[0] == name]:
            del self._memory[key]
        shutil.rmtree(self.pack_dir(name), ignore_errors=True)

    def clear_expired(self) -> int:
        """Remove expired memory and disk entries. Returns how many were dropped."""
        now = self._clock()
        expired = [key for key, entry in self._memory.items() if entry.is_expired(now)]
        for key in expired:
            del self._memory[key]

        removed = len(expired)
        if self.cache_dir.is_dir():
            for pack_dir in self.cache_dir.iterdir():
                if not pack_dir.is_dir() or pack_dir.name.startswith("."):
                    continue
                if not (pack_dir / METADATA_FILENAME).is_file():
                    shutil.rmtree(pack_dir, ignore_errors=True)
                    removed += 1
                elif self.load_from_disk(pack_dir.name) is None:
                    removed += 1
        return removed

    def clear_all(self) -> None:
        self._memory.clear()
        shutil.rmtree(self.cache_dir, ignore_errors=True)
