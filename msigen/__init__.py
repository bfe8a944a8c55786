"""
msigen - installer fragment generator for Windows Installer packages.

msigen turns a declarative setup description (YAML) into the XML fragments
a WiX build consumes: the directory/component/feature graph of an MSI
package, registry components from .reg files, shortcuts, services and
custom actions, and the chain of a bootstrapper bundle together with the
redistributable prerequisites it installs first.

Key Features
------------
  - Deterministic identifiers and GUIDs (stable across rebuilds)
  - Multiple install roots (program files, program data, user profile,
    common files, Windows and System folders)
  - Folder exclusion applying to nested and single-file sources
  - Registry import from .reg files, with optional key permissions
  - Runtime requirements as launch conditions or an auto-generated bundle
  - Architecture-gated prerequisite chains (x86, x64, ARM64)
  - Local prerequisite cache with integrity-checked downloads

Quick Start
-----------
Generate fragments for a setup description:

    $ msigen generate products/demo.yaml --output-dir build/wix

List cached prerequisite installers:

    $ msigen cache list

For full CLI documentation:

    $ msigen --help

Package Structure
-----------------
cli : module
    Command-line interface with argparse.
core : module
    High-level orchestration functions.
config : package
    YAML setup description loading and conversion.
generator : package
    Package graph builder and XML rendering.
registry : package
    .reg file parsing and registry components.
bundle : package
    Prerequisite catalog and bundle chain builders.
cache : package
    Prerequisite download table and local cache.
io : package
    Download operations.

Public API
----------
The primary interface is the CLI, but key functions are exported for
programmatic use:

    from msigen.core import generate_setup
    from msigen.config import load_setup
    from msigen.generator import PackageGraphBuilder
    from msigen.bundle import BundleChainBuilder
    from msigen.cache import PrerequisiteCache

For more details, see the individual module docstrings.

Project Information
-------------------
Author: Roger Cibrian
License: Apache-2.0
"""

__version__ = "0.1.0"
__author__ = "Roger Cibrian"
__license__ = "Apache-2.0"
__description__ = "Installer fragment generator for MSI packages and bundles"

# Re-export commonly used functions for convenience
from msigen.bundle import AutoBundleBuilder, BundleChainBuilder
from msigen.cache import PrerequisiteCache
from msigen.config import load_setup
from msigen.core import generate_setup
from msigen.generator import PackageGraphBuilder
from msigen.variables import Variables

__all__ = [
    "__version__",
    "__author__",
    "__license__",
    "__description__",
    "generate_setup",
    "load_setup",
    "PackageGraphBuilder",
    "BundleChainBuilder",
    "AutoBundleBuilder",
    "PrerequisiteCache",
    "Variables",
]
