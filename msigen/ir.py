"""Intermediate representation of a setup description.

The IR is what the config loader produces and what every builder consumes.
It mirrors the declarative description language: a tree of features holding
items, optional top-level items, runtime requirements and, for
bootstrappers, a bundle descriptor.

Items form a closed set of variants (see ``Item``). Each variant carries its
own payload and the builders dispatch on the concrete type.

Example:
    Describe one feature installing a folder:
        ```python
        from msigen.ir import Feature, Files, Setup

        setup = Setup(
            features=[
                Feature(
                    name="Main",
                    items=[Files(source="bin", target="[INSTALLDIR]bin")],
                )
            ],
        )
        ```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class Set:
    """A variable assignment from the description's ``set`` section."""

    name: str
    value: str


@dataclass(frozen=True)
class Files:
    """Install a file or a directory tree.

    Attributes:
        source: File or directory, relative to the working directory or absolute.
        target: Target spec, e.g. ``[INSTALLDIR]bin``, ``APPDATADIR`` or ``bin``.
        do_not_overwrite: Mark the resulting components NeverOverwrite.
    """

    source: str
    target: str = "INSTALLDIR"
    do_not_overwrite: bool = False


@dataclass(frozen=True)
class Registry:
    """Import a .reg file as a registry component."""

    file: str
    sddl: str = ""
    permanent: bool = False
    condition: str = ""


@dataclass(frozen=True)
class SetEnv:
    """Set a system environment variable."""

    name: str
    value: str


@dataclass(frozen=True)
class Shortcut:
    """Create a shortcut on the desktop or in the start menu.

    Attributes:
        name: Shortcut display name.
        target: ``DESKTOP`` or ``STARTMENU`` (case-insensitive).
        file: Formatted path of the file to launch, e.g. ``[INSTALLDIR]app.exe``.
        description: Shortcut tooltip.
        icon: Optional icon source file.
    """

    name: str
    target: str
    file: str
    description: str = ""
    icon: str = ""


@dataclass(frozen=True)
class Service:
    """Install and control a Windows service."""

    file_name: str
    service_name: str
    display_name: str = ""
    start: str = ""
    description: str = ""
    service_type: str = ""
    error_control: str = ""


@dataclass(frozen=True)
class Exclude:
    """Exclude a folder from every file-set enumeration."""

    folder: str


@dataclass(frozen=True)
class Execute:
    """Run a command as a custom action at a fixed point of the install."""

    cmd: str
    when: str
    directory: str = ""


Item = Union[Files, Registry, SetEnv, Shortcut, Service, Exclude, Execute]


@dataclass(frozen=True)
class Feature:
    """A selectable unit of installed functionality.

    Identity is positional: two features with the same name are distinct
    if they sit at different positions in the tree.
    """

    name: str
    enabled: bool = True
    allowed: bool = True
    items: list[Item] = field(default_factory=list)
    sub_features: list[Feature] = field(default_factory=list)


@dataclass(frozen=True)
class Prerequisite:
    """A runtime prerequisite resolved against the catalog unless ``source`` is set."""

    type: str
    version: str
    source: str = ""


# Requirements share the prerequisite shape; they differ only in how they are
# satisfied (launch conditions or an auto-bundle).
Requirement = Prerequisite


@dataclass(frozen=True)
class BundleMSI:
    """Product package sources for a bundle."""

    source: str = ""
    source_64bit: str = ""
    source_32bit: str = ""
    source_arm64: str = ""


@dataclass(frozen=True)
class ExePackage:
    """A custom executable chained after the prerequisites."""

    source: str
    id: str = ""
    detect_condition: str = ""
    install_args: str = ""


@dataclass(frozen=True)
class Bundle:
    """Bootstrapper descriptor.

    The shorthand ``source_*`` fields are used when no ``msi`` block is given.
    """

    source_64bit: str = ""
    source_32bit: str = ""
    source_arm64: str = ""
    prerequisites: list[Prerequisite] = field(default_factory=list)
    msi: BundleMSI | None = None
    exe_packages: list[ExePackage] = field(default_factory=list)


@dataclass(frozen=True)
class Setup:
    """Root of a parsed setup description."""

    silent: bool = False
    sets: list[Set] = field(default_factory=list)
    features: list[Feature] = field(default_factory=list)
    items: list[Item] = field(default_factory=list)
    bundle: Bundle | None = None
    requires: list[Requirement] = field(default_factory=list)

    @property
    def is_bundle(self) -> bool:
        return self.bundle is not None
