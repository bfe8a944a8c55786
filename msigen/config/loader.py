"""
Setup description loading and layered defaults for msigen.

A setup description is a YAML document describing one product: its
variables, features, items, runtime requirements and, for bootstrappers,
the bundle. Organization-wide settings (product vendor, permission flags,
the prerequisites folder...) usually repeat across products, so they can
live in a shared defaults file instead.

Configuration Layers
--------------------
1. **Organization defaults** (defaults/org.yaml)
   - Found by walking upward from the description's directory
   - Optional; an explicit ``defaults_path`` replaces discovery

2. **Setup description** (<name>.yaml)
   - Always required; defines the product itself
   - Overrides organization defaults

Merge Behavior
--------------
The loader performs deep merging with "last wins" semantics:
  - **Dicts**: Recursively merged (keys from overlay override base)
  - **Lists**: Completely replaced (NOT appended/extended)
  - **Scalars**: Overwritten (strings, numbers, booleans)

Path Resolution
---------------
Relative paths are left as written. Builders resolve them against the
description's directory, which is the working directory of the build.

Private Helpers
---------------
_load_yaml_file : Load YAML with error handling
_deep_merge_dicts : Recursive dict merging
_find_defaults_root : Locate defaults directory

Error Handling
--------------
- ConfigError: file missing, YAML parse errors, empty files, non-mapping
  top level
- All errors are chained with "from err" for better debugging
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from msigen.exceptions import ConfigError
from msigen.logging import get_global_logger

# -------------------------------
# YAML helpers
# -------------------------------


def _load_yaml_file(p: Path) -> Any:
    """
    Load a YAML file and return the parsed Python object.

    Raises:
      ConfigError - when the file is missing, unparsable or empty
    """
    if not p.exists():
        raise ConfigError(f"file not found: {p}")
    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as err:
        raise ConfigError(f"error parsing YAML: {p}: {err}") from err
    except OSError as err:
        raise ConfigError(f"cannot read {p}: {err}") from err
    if data is None:
        raise ConfigError(f"YAML file is empty: {p}")
    return data


# -------------------------------
# Merge logic
# -------------------------------


def _deep_merge_dicts(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """
    Deep-merge two dicts with "overlay wins".

    Rules:
      - dict + dict -> deep merge
      - list + list -> overlay REPLACES base (not concatenated)
      - everything else -> overlay overwrites base

    This function does not mutate inputs; returns a new dict.
    """
    result: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge_dicts(result[k], v)
        else:
            result[k] = v
    return result


# -------------------------------
# Defaults discovery
# -------------------------------


def _find_defaults_root(start_dir: Path) -> Path | None:
    """
    Walk upward from 'start_dir' looking for a 'defaults/org.yaml'.
    Returns the 'defaults' directory or None if not found.
    """
    for parent in [start_dir] + list(start_dir.parents):
        candidate = parent / "defaults" / "org.yaml"
        if candidate.exists():
            return parent / "defaults"
    return None


# -------------------------------
# Public API
# -------------------------------


def load_setup_document(
    setup_path: Path, *, defaults_path: Path | None = None
) -> dict[str, Any]:
    """
    Load a setup description and merge it over the organization defaults.

    Steps
      1) Read the description YAML.
      2) Use 'defaults_path' or find 'defaults/org.yaml' scanning upwards.
      3) Merge: org defaults -> description (dicts deep-merge, lists replace).

    Returns
      The merged document, ready for parse_setup().

    Raises
      ConfigError when a file is missing, unparsable, empty, or not a mapping.
    """
    logger = get_global_logger()

    setup_path = Path(setup_path).resolve()
    logger.verbose("CONFIG", f"Loading setup description: {setup_path}")

    document = _load_yaml_file(setup_path)
    if not isinstance(document, dict):
        raise ConfigError(f"top-level YAML must be a mapping (dict): {setup_path}")

    if defaults_path is None:
        defaults_root = _find_defaults_root(setup_path.parent)
        if defaults_root is not None:
            defaults_path = defaults_root / "org.yaml"

    merged: dict[str, Any] = {}
    layers_merged = 0
    if defaults_path is not None:
        logger.verbose("CONFIG", f"Loading defaults: {defaults_path}")
        defaults = _load_yaml_file(Path(defaults_path))
        if not isinstance(defaults, dict):
            raise ConfigError(
                f"top-level YAML must be a mapping (dict): {defaults_path}"
            )
        merged = _deep_merge_dicts(merged, defaults)
        layers_merged += 1

    merged = _deep_merge_dicts(merged, document)
    layers_merged += 1

    logger.verbose("CONFIG", f"Deep merging {layers_merged} layer(s)")
    logger.debug(
        "CONFIG",
        f"Top-level keys: {', '.join(str(key) for key in merged) or '(none)'}",
    )
    return merged
