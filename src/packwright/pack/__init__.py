"""
Pack model and pack-level operations for packwright.

Key Components:
    - PackManifest: Pydantic model for manifest.json
    - PackStructure: A loaded manifest plus its location
    - PackValidator: Schema, semantic and content checks (pack.validator)
    - PackRegistry: Multi-source lookup and dependency resolution (pack.registry)
    - PackInstaller: Reversible install and uninstall (pack.installer)

Only the manifest models are re-exported here; the validator, registry and
installer depend on the sources package, which itself depends on the
manifest models.
"""

from packwright.pack.manifest import (
    PackComponent,
    PackComponents,
    PackConfiguration,
    PackManifest,
    PackStructure,
    PostInstall,
    validate_manifest_data,
)

__all__ = [
    "PackComponent",
    "PackComponents",
    "PackConfiguration",
    "PackManifest",
    "PackStructure",
    "PostInstall",
    "validate_manifest_data",
]
