"""Graph model produced by the package graph builder.

Directories form one tree per install root. A directory owns its children
(keyed by lower-cased name) and the components placed in it. Every component
carries exactly one payload, since a component is the atomic install and
uninstall unit and must never mix payload kinds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import NamedTuple, Union

# Well-known install roots, in fragment emission order.
ROOT_KEYS: tuple[str, ...] = (
    "INSTALLDIR",
    "APPDATADIR",
    "ROAMINGAPPDATADIR",
    "LOCALAPPDATADIR",
    "COMMONFILESDIR",
    "WINDOWSDIR",
    "SYSTEMDIR",
)


class Timing(NamedTuple):
    """Placement of a custom action in InstallExecuteSequence."""

    position: str
    anchor: str
    condition: str


# Single source of truth for custom-action timings: validation during item
# processing and sequence emission both read this table.
CUSTOM_ACTION_TIMINGS: dict[str, Timing] = {
    "after-install": Timing("Before", "InstallFinalize", '(NOT REMOVE = "ALL")'),
    "after-install-not-patch": Timing(
        "Before", "InstallFinalize", "NOT WIX_UPGRADE_DETECTED"
    ),
    "before-install": Timing("After", "CostFinalize", ""),
    "before-upgrade": Timing("After", "CostFinalize", "WIX_UPGRADE_DETECTED"),
    "before-uninstall": Timing("After", "InstallInitialize", '(REMOVE="ALL")'),
}

# The only timing that runs immediately (unelevated); all others are deferred.
IMMEDIATE_TIMING = "before-install"


@dataclass
class FileEntry:
    id: str
    name: str
    source_path: str
    short_name: str = ""
    key_path: bool = True


@dataclass
class Environment:
    id: str
    name: str
    value: str


@dataclass
class ServiceEntry:
    id: str
    name: str
    file_name: str
    display_name: str = ""
    description: str = ""
    start: str = "auto"
    service_type: str = ""
    error_control: str = ""


@dataclass
class PermissionMarker:
    """Empty-folder marker carrying the directory ACL."""

    restricted: bool = False


ComponentPayload = Union[FileEntry, Environment, ServiceEntry, PermissionMarker]


@dataclass
class Component:
    id: str
    guid: str
    payload: ComponentPayload
    never_overwrite: bool = False


@dataclass(eq=False)
class Directory:
    """A node of an install-root tree.

    Attributes:
        id: Generated ``DIR_ID`` identifier.
        name: Display name (root names come from variables and may be empty).
        root_key: Well-known root tag (only set on tree roots).
        parent: Owning directory, None for roots.
        children: Sub-directories keyed by lower-cased name.
        components: Components placed directly in this directory.
        feature_ids: Features that placed a component anywhere below here.
        permission: Per-directory ACL component, assigned after item processing.
    """

    id: str
    name: str
    root_key: str = ""
    parent: Directory | None = field(default=None, repr=False)
    children: dict[str, Directory] = field(default_factory=dict)
    components: list[Component] = field(default_factory=list)
    feature_ids: set[str] = field(default_factory=set)
    do_not_overwrite: bool = False
    permission: Component | None = None

    @property
    def xml_id(self) -> str:
        return self.root_key or self.id

    @property
    def is_named(self) -> bool:
        return bool(self.name or self.root_key)

    def sorted_children(self) -> list[Directory]:
        return [self.children[key] for key in sorted(self.children)]

    def full_path(self) -> str:
        parts: list[str] = []
        node: Directory | None = self
        while node is not None and node.name:
            parts.append(node.name)
            node = node.parent
        return "\\".join(reversed(parts)) or "root"


@dataclass
class ShortcutEntry:
    id: str
    name: str
    target: str
    working_dir: str
    description: str = ""
    icon: str = ""


@dataclass
class ShortcutComponent:
    id: str
    guid: str
    shortcut: ShortcutEntry


@dataclass
class CustomAction:
    id: str
    command: str
    directory: str
    when: str
