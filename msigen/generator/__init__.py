"""Package graph builder: directory, component and feature graph generation.

Public API:

PackageGraphBuilder : class
    Builds the graph for one setup description and renders its fragments.
parse_target : function
    Split a target spec such as ``[INSTALLDIR]bin`` into root key and sub-path.

Example:
    from msigen.generator import PackageGraphBuilder

    output = PackageGraphBuilder(setup, variables, work_dir).build()
    print(output.feature_xml)
"""

from .context import PackageGraphBuilder, parse_target
from .model import CUSTOM_ACTION_TIMINGS, ROOT_KEYS

__all__ = ["CUSTOM_ACTION_TIMINGS", "PackageGraphBuilder", "ROOT_KEYS", "parse_target"]
