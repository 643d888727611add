"""
packwright - install versioned configuration packs into a project.

A pack bundles modes, workflows, agents and hooks for an AI coding assistant.
packwright finds packs across local, HTTP and GitHub sources, resolves their
dependencies, validates and trust-checks them, and installs them reversibly.

Example usage:
    $ packwright list
    $ packwright install essentials --dry-run
    $ packwright uninstall essentials
"""

__version__ = "0.1.0"
__author__ = "packwright Contributors"

from packwright.manager import StarterPackManager
from packwright.schema import InstallationResult, InstallOptions

__all__ = [
    "InstallOptions",
    "InstallationResult",
    "StarterPackManager",
    "__author__",
    "__version__",
]
