"""
Trust manager: policy-driven acceptance of sources and packs.

One TrustManager exists per project root and owns that project's trust
state, stored under <state>/security/:
- trust-policy.json: the TrustPolicy (seeded with defaults on first use)
- trusted-sources.json: explicitly trusted sources keyed by id
- trust-records.json: append-only audit trail of installs and removals

Design Decisions:
    - Trust checks return SecurityValidationResult; they never raise for a
      rejected pack
    - Local and explicitly trusted sources skip domain checks
    - Hooks change how the assistant behaves, so packs declaring hooks need
      consent unless their author is trusted
    - Threat scanning is a pure function over component names
"""

import logging
import re
from pathlib import Path
from urllib.parse import urlparse

from packwright.config import ProjectPaths
from packwright.errors import ConfigurationError
from packwright.pack.manifest import PackManifest, PackStructure, manifest_checksum
from packwright.schema import (
    SecurityValidationResult,
    SourceInfo,
    SourceType,
    TrustAction,
    TrustedSource,
    TrustPolicy,
    TrustRecord,
)
from packwright.sources.base import PackSource
from packwright.store.files import atomic_write_json, project_lock, read_json


logger = logging.getLogger(__name__)

THREAT_PATTERNS = [
    re.compile(r"eval", re.IGNORECASE),
    re.compile(r"exec", re.IGNORECASE),
    re.compile(r"system", re.IGNORECASE),
    re.compile(r"spawn", re.IGNORECASE),
    re.compile(r"\brm\s+-rf", re.IGNORECASE),
    re.compile(r"curl.*\|.*sh", re.IGNORECASE),
]

HIGH_COMPONENT_COUNT = 50


def domain_matches(domain: str, pattern: str) -> bool:
    """
    Check if a domain matches a pattern.

    Supports exact match and wildcard subdomains:
        github.com matches github.com
        api.github.com matches *.github.com
    """
    domain = domain.lower()
    pattern = pattern.lower()
    if pattern.startswith("*."):
        return domain.endswith(pattern[1:]) or domain == pattern[2:]
    return domain == pattern


def _directory_size(path: Path) -> int:
    return sum(f.stat().st_size for f in path.rglob("*") if f.is_file())


class TrustManager:
    """
    Per-project trust policy, trusted sources and audit trail.

    Attributes:
        paths: Layout of the project this manager guards

    Example:
        >>> trust = TrustManager(ProjectPaths.for_root("."))
        >>> result = trust.validate_pack(structure, source)
        >>> result.requires_consent
        True
    """

    def __init__(self, paths: ProjectPaths) -> None:
        self.paths = paths
        self._policy: TrustPolicy | None = None
        self._trusted_sources: dict[str, TrustedSource] = {}
        self._records: list[TrustRecord] = []

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def policy_file(self) -> Path:
        return self.paths.security_dir / "trust-policy.json"

    @property
    def sources_file(self) -> Path:
        return self.paths.security_dir / "trusted-sources.json"

    @property
    def records_file(self) -> Path:
        return self.paths.security_dir / "trust-records.json"

    def initialize(self) -> None:
        """
        Load trust state, seeding defaults on first use. Idempotent.

        Raises:
            ConfigurationError: If a trust file exists but is malformed
        """
        if self._policy is not None:
            return

        with project_lock(self.paths.root):
            self.paths.security_dir.mkdir(parents=True, exist_ok=True)

            policy_data = read_json(self.policy_file)
            try:
                policy = TrustPolicy.model_validate(policy_data or {})
                self._trusted_sources = {
                    source_id: TrustedSource.model_validate(entry)
                    for source_id, entry in (read_json(self.sources_file) or {}).items()
                }
                self._records = [
                    TrustRecord.model_validate(entry) for entry in read_json(self.records_file) or []
                ]
            except (ValueError, AttributeError) as e:
                raise ConfigurationError(
                    path=str(self.paths.security_dir),
                    message=f"Malformed trust state in {self.paths.security_dir}: {e}",
                ) from e

            if policy_data is None:
                atomic_write_json(self.policy_file, policy.to_json_dict())
            if not self.sources_file.exists():
                self._trusted_sources = {
                    "local": TrustedSource(type=SourceType.LOCAL, description="Bundled starter packs"),
                }
                self._save_trusted_sources()
            self._policy = policy

    def _save_trusted_sources(self) -> None:
        atomic_write_json(
            self.sources_file,
            {source_id: entry.to_json_dict() for source_id, entry in self._trusted_sources.items()},
        )

    def get_policy(self) -> TrustPolicy:
        self.initialize()
        assert self._policy is not None
        return self._policy

    def update_policy(self, **changes: object) -> TrustPolicy:
        """
        Change policy fields and persist the result.

        Raises:
            ValueError: If a change does not fit the policy model
        """
        current = self.get_policy()
        policy = TrustPolicy.model_validate({**current.model_dump(), **changes})
        with project_lock(self.paths.root):
            atomic_write_json(self.policy_file, policy.to_json_dict())
        self._policy = policy
        return policy

    # -------------------------------------------------------------------------
    # Trusted sources
    # -------------------------------------------------------------------------

    def add_trusted_source(
        self,
        source_id: str,
        source_type: SourceType,
        path: str = "",
        description: str | None = None,
    ) -> TrustedSource:
        self.initialize()
        entry = TrustedSource(type=source_type, path=path, description=description)
        with project_lock(self.paths.root):
            self._trusted_sources[source_id] = entry
            self._save_trusted_sources()
        logger.info("Trusted source %s added", source_id)
        return entry

    def remove_trusted_source(self, source_id: str) -> bool:
        self.initialize()
        with project_lock(self.paths.root):
            if self._trusted_sources.pop(source_id, None) is None:
                return False
            self._save_trusted_sources()
        return True

    def is_trusted_source(self, source_id: str) -> bool:
        policy = self.get_policy()
        entry = self._trusted_sources.get(source_id)
        return (entry is not None and entry.trusted) or source_id in policy.trusted_sources

    def get_trusted_sources(self) -> dict[str, TrustedSource]:
        self.initialize()
        return dict(self._trusted_sources)

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate_source(self, source: PackSource | SourceInfo) -> SecurityValidationResult:
        """
        Check a source against the trust policy.

        Local and trusted sources pass outright. Otherwise a blocked domain
        is an error, a domain outside a non-empty allow list needs consent,
        and untrusted sources need consent unless the policy allows them.
        """
        policy = self.get_policy()
        info = source if isinstance(source, SourceInfo) else source.get_source_info()
        result = SecurityValidationResult()

        if info.type is SourceType.LOCAL or self.is_trusted_source(info.name):
            result.trusted = True
            return result

        domain = urlparse(info.path).hostname or ""
        if domain and any(domain_matches(domain, blocked) for blocked in policy.blocked_domains):
            result.error(f"Source domain {domain} is blocked")
            return result

        if policy.allowed_domains and not any(
            domain_matches(domain, allowed) for allowed in policy.allowed_domains
        ):
            result.warn(f"Source domain {domain or info.path} is not in allowed list")
            result.requires_consent = True

        if not policy.allow_untrusted_sources:
            result.warn("Source is not trusted and requires user consent")
            result.requires_consent = True

        return result

    def validate_pack(self, structure: PackStructure, source: PackSource) -> SecurityValidationResult:
        """
        Check a pack and its source against the trust policy.

        Returns:
            The pack findings merged with validate_source(source)
        """
        policy = self.get_policy()
        manifest = structure.manifest
        result = SecurityValidationResult()
        result.trusted = manifest.author in policy.trusted_authors

        hooks = manifest.components.hooks
        if hooks:
            result.warn(f"Pack registers {len(hooks)} hooks that will modify assistant behavior")
            if not result.trusted:
                result.requires_consent = True

        if manifest.post_install is not None:
            result.warn("Pack contains post-install commands (disabled for security)")

        count = manifest.component_count
        if count > HIGH_COMPONENT_COUNT:
            result.warn(f"Pack contains {count} components, which is unusually high")

        pack_dir = Path(structure.path)
        if not urlparse(structure.path).scheme and pack_dir.is_dir():
            size = _directory_size(pack_dir)
            if size > policy.max_pack_size:
                result.error(
                    f"Pack size {size} bytes exceeds the limit of {policy.max_pack_size} bytes"
                )

        source_result = self.validate_source(source)
        result.trusted = result.trusted or source_result.trusted
        result.merge(source_result)
        return result

    @staticmethod
    def scan_pack_for_threats(pack: PackStructure | PackManifest) -> list[str]:
        """
        Flag component names that match known-suspicious patterns.

        Returns:
            One message per suspicious component, in declaration order
        """
        manifest = pack.manifest if isinstance(pack, PackStructure) else pack
        threats = []
        for _, component in manifest.iter_components():
            if any(pattern.search(component.name) for pattern in THREAT_PATTERNS):
                threats.append(f"Suspicious pattern in component name: {component.name}")
        return threats

    # -------------------------------------------------------------------------
    # Audit trail
    # -------------------------------------------------------------------------

    def _append_record(self, record: TrustRecord) -> TrustRecord | None:
        if not self.get_policy().audit_installations:
            return None
        with project_lock(self.paths.root):
            self._records.append(record)
            atomic_write_json(self.records_file, [r.to_json_dict() for r in self._records])
        return record

    def record_installation(
        self,
        source: PackSource | SourceInfo,
        pack: PackStructure | PackManifest,
        user_consent: bool,
        action: TrustAction = TrustAction.INSTALLED,
    ) -> TrustRecord | None:
        """
        Append an install record unless auditing is disabled.

        Returns:
            The appended record, or None when auditing is off
        """
        manifest = pack.manifest if isinstance(pack, PackStructure) else pack
        info = source if isinstance(source, SourceInfo) else source.get_source_info()
        return self._append_record(
            TrustRecord(
                source_id=info.name,
                pack_name=manifest.name,
                pack_version=manifest.version,
                author=manifest.author,
                action=action,
                user_consent=user_consent,
                checksum=manifest_checksum(manifest),
            )
        )

    def record_removal(self, source_id: str, manifest: PackManifest) -> TrustRecord | None:
        return self._append_record(
            TrustRecord(
                source_id=source_id,
                pack_name=manifest.name,
                pack_version=manifest.version,
                author=manifest.author,
                action=TrustAction.REMOVED,
                checksum=manifest_checksum(manifest),
            )
        )

    def get_installation_history(self, pack_name: str | None = None) -> list[TrustRecord]:
        self.initialize()
        if pack_name is None:
            return list(self._records)
        return [record for record in self._records if record.pack_name == pack_name]
