"""Prerequisite catalog.

Static table of well-known runtime prerequisites, keyed by type and
version. An entry knows its display name, installer file name pattern,
detection condition, silent-install arguments and, for architecture-bearing
types, which architectures it ships for.

Patterns use an ``{arch}`` placeholder, expanded with ``expand_arch``:

    >>> expand_arch("vc_redist.{arch}.exe", "x64")
    'vc_redist.x64.exe'
"""

from __future__ import annotations

from dataclasses import dataclass
import re

_VC_RUNTIME_KEY = r"HKLM\SOFTWARE\Microsoft\VisualStudio\14.0\VC\Runtimes"

# The 2015-2022 redistributables share one registry key family.
_VC_DETECT = (
    f'(VersionNT64 AND EXISTS("{_VC_RUNTIME_KEY}\\x64\\Installed")) OR '
    f'(NOT VersionNT64 AND EXISTS("{_VC_RUNTIME_KEY}\\x86\\Installed"))'
)

_VC_ARGS = "/install /quiet /norestart"
_NETFX_ARGS = "/passive /norestart"

# Display labels substituted into {arch} of display names.
ARCH_LABELS: dict[str, str] = {"x64": "x64", "x86": "x86", "arm64": "ARM64"}


@dataclass(frozen=True)
class PrerequisiteDef:
    """Catalog entry for one prerequisite version.

    Attributes:
        display_name: Name shown by the bootstrapper; may contain ``{arch}``.
        source: Installer file name; may contain ``{arch}``.
        detect_condition: Burn condition that is true when already installed.
        install_args: Silent-install command line.
        architectures: Architectures with their own installer. Empty for
            architecture-neutral prerequisites.
        per_machine: Installs machine-wide.
    """

    display_name: str
    source: str
    detect_condition: str
    install_args: str
    architectures: tuple[str, ...] = ()
    per_machine: bool = True

    @property
    def is_arch_specific(self) -> bool:
        return bool(self.architectures)

    @property
    def generic_display_name(self) -> str:
        """Display name without the architecture label."""
        return self.display_name.replace(" ({arch})", "").replace("{arch}", "")


def _vcredist(label: str, architectures: tuple[str, ...]) -> PrerequisiteDef:
    return PrerequisiteDef(
        display_name=f"Microsoft Visual C++ {label} Redistributable ({{arch}})",
        source="vc_redist.{arch}.exe",
        detect_condition=_VC_DETECT,
        install_args=_VC_ARGS,
        architectures=architectures,
    )


def _netfx(version: str, source: str, release: int) -> PrerequisiteDef:
    return PrerequisiteDef(
        display_name=f"Microsoft .NET Framework {version}",
        source=source,
        detect_condition=f"NETFRAMEWORK45 >= {release}",
        install_args=_NETFX_ARGS,
    )


PREREQUISITES: dict[str, dict[str, PrerequisiteDef]] = {
    "vcredist": {
        "2022": _vcredist("2015-2022", ("x64", "x86", "arm64")),
        "2019": _vcredist("2015-2019", ("x64", "x86")),
        "2017": _vcredist("2017", ("x64", "x86")),
        "2015": _vcredist("2015", ("x64", "x86")),
    },
    "netfx": {
        "4.8.1": _netfx("4.8.1", "ndp481-x86-x64-allos-enu.exe", 533320),
        "4.8": _netfx("4.8", "ndp48-x86-x64-allos-enu.exe", 528040),
        "4.7.2": _netfx("4.7.2", "ndp472-kb4054530-x86-x64-allos-enu.exe", 461808),
        "4.7.1": _netfx("4.7.1", "ndp471-kb4033342-x86-x64-allos-enu.exe", 461308),
        "4.7": _netfx("4.7", "ndp47-kb3186497-x86-x64-allos-enu.exe", 460798),
        "4.6.2": _netfx("4.6.2", "ndp462-kb3151800-x86-x64-allos-enu.exe", 394802),
    },
}

_ID_SEPARATORS = re.compile(r"[.\- ]")
_ID_INVALID = re.compile(r"[^A-Za-z0-9_]")


def lookup_prerequisite(prereq_type: str, version: str) -> PrerequisiteDef | None:
    """Return the catalog entry for (type, version), or None if unknown."""
    return PREREQUISITES.get(prereq_type, {}).get(version)


def expand_arch(text: str, arch: str) -> str:
    """Replace every ``{arch}`` placeholder with ``arch``."""
    return text.replace("{arch}", arch)


def sanitize_id(text: str) -> str:
    """Turn arbitrary text into a valid WiX identifier.

    Dots, dashes and spaces become underscores and any other character
    outside ``[A-Za-z0-9_]`` is dropped. An empty result becomes ``ID``
    and a leading digit gets an underscore prefix.

    Example:
        ```python
        sanitize_id("Prereq_netfx_4.8.1")  # "Prereq_netfx_4_8_1"
        sanitize_id("2022")                # "_2022"
        ```
    """
    result = _ID_INVALID.sub("", _ID_SEPARATORS.sub("_", text))
    if not result:
        return "ID"
    if result[0].isdigit():
        return f"_{result}"
    return result
