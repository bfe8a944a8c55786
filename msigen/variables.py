"""Variable dictionary for setup descriptions.

Variables come from the description's ``set`` section, layered over a small
set of defaults. Values may reference other variables with ``{{NAME}}``;
``resolve_all`` expands those references in place.

Example:
    ```python
    from msigen.variables import Variables

    variables = Variables()
    variables["PRODUCT_NAME"] = "Demo"
    variables["PRODUCT_FULL_NAME"] = "{{PRODUCT_NAME}} Suite"
    variables.resolve_all()
    variables["PRODUCT_FULL_NAME"]  # "Demo Suite"
    variables.get_bool("ADD_TO_PATH")  # False
    ```
"""

from __future__ import annotations

import re

from msigen.ir import Setup

_TEMPLATE_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")

_TRUE_VALUES = frozenset({"true", "yes", "on", "1"})

# Nested references deeper than this are left unresolved (cycle guard).
_MAX_RESOLVE_PASSES = 10

DEFAULTS: dict[str, str] = {
    "PLATFORM": "x64",
    "APPDATADIR_PREFIX": "",
    "ADD_TO_PATH": "False",
    "REMOVE_REGISTRY_TREE": "False",
    "LOGO_PREFIX": "",
}

DEPRECATED_VARIABLES: dict[str, str] = {
    "INCLUDE_VCREDIST": (
        "INCLUDE_VCREDIST is deprecated. Use a 'requires' entry "
        "{type: vcredist, version: '2022'} instead."
    ),
    "INCLUDE_VC100": (
        "INCLUDE_VC100 (VC++ 2010) is deprecated. VC++ 2010 is obsolete; "
        "require vcredist 2022, which provides a newer runtime."
    ),
    "INCLUDE_VC140": (
        "INCLUDE_VC140 (VC++ 2015) is deprecated. Require vcredist 2022 "
        "instead (it is backward-compatible with 2015-2019)."
    ),
    "INCLUDE_MFC": (
        "INCLUDE_MFC is deprecated. Merge modules are no longer supported."
    ),
}


class Variables(dict[str, str]):
    """Name to value mapping with defaults and ``{{NAME}}`` resolution."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        super().__init__(DEFAULTS)
        if initial:
            self.update(initial)

    def load_from_setup(self, setup: Setup) -> None:
        """Overlay the description's ``set`` entries onto the defaults."""
        for assignment in setup.sets:
            self[assignment.name] = assignment.value

    def get_bool(self, name: str) -> bool:
        """Return True for "true", "yes", "on" or "1" (case-insensitive)."""
        return self.get(name, "").strip().lower() in _TRUE_VALUES

    def resolve(self, text: str) -> str:
        """Replace ``{{NAME}}`` references; unknown names become empty."""
        return _TEMPLATE_RE.sub(lambda m: self.get(m.group(1), ""), text)

    def resolve_all(self) -> None:
        """Resolve references between variables until nothing changes."""
        for _ in range(_MAX_RESOLVE_PASSES):
            changed = False
            for key, value in list(self.items()):
                if "{{" not in value:
                    continue
                resolved = self.resolve(value)
                if resolved != value:
                    self[key] = resolved
                    changed = True
            if not changed:
                return

    def check_deprecated(self) -> list[str]:
        """Return migration warnings for deprecated flags that are enabled."""
        return [
            message
            for name, message in DEPRECATED_VARIABLES.items()
            if self.get_bool(name)
        ]

    @property
    def platform(self) -> str:
        return self.get("PLATFORM", "") or "x64"

    @property
    def product_name(self) -> str:
        return self.get("PRODUCT_NAME", "")

    @property
    def product_version(self) -> str:
        return self.get("PRODUCT_VERSION", "")

    @property
    def build_target(self) -> str:
        return self.get("BUILD_TARGET", "")
