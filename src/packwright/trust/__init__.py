"""
Trust layer for packwright.

Key Components:
    - TrustManager: Per-project policy, trusted sources and audit trail
    - domain_matches: Exact and wildcard domain matching
"""

from packwright.trust.manager import TrustManager, domain_matches

__all__ = ["TrustManager", "domain_matches"]
