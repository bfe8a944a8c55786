"""Bootstrapper bundles: prerequisite catalog and chain builders.

Public API:

BundleChainBuilder : class
    Chain for an explicit ``bundle`` description.
AutoBundleBuilder : class
    Chain wrapping a built MSI and its runtime requirements.
PREREQUISITES : dict
    Catalog of well-known prerequisites by type and version.
lookup_prerequisite : function
    Catalog lookup by (type, version).
"""

from .catalog import (
    PREREQUISITES,
    PrerequisiteDef,
    expand_arch,
    lookup_prerequisite,
    sanitize_id,
)
from .chain import (
    AutoBundleBuilder,
    BundleChainBuilder,
    allowed_archs_for_platform,
    requirements_to_prerequisites,
)

__all__ = [
    "PREREQUISITES",
    "AutoBundleBuilder",
    "BundleChainBuilder",
    "PrerequisiteDef",
    "allowed_archs_for_platform",
    "expand_arch",
    "lookup_prerequisite",
    "requirements_to_prerequisites",
    "sanitize_id",
]
