"""Registry components generated from .reg files.

Each ``registry`` item becomes exactly one component holding the whole key
tree of its file. Additions are emitted as nested ``RegistryKey`` elements;
key and value removals are hoisted to component level, where WiX expects
``RemoveRegistryKey`` and ``RemoveRegistryValue``.

Example:
    ```python
    from msigen.ir import Registry
    from msigen.registry import RegistryProcessor

    processor = RegistryProcessor(work_dir)
    components = processor.process(Registry(file="settings.reg"))
    xml = processor.generate_xml(components, set_permissions=True)
    ```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from msigen.exceptions import PackagingError
from msigen.ids import escape_xml_attr, generate_guid
from msigen.ir import Registry
from msigen.logging import get_global_logger
from msigen.registry.reg_file import HIVE_ROOTS, RegKeyNode, parse_reg_file

# System, Builtin Users, Authenticated Users, Local Admin and Local Service
# get generic access.
DEFAULT_SDDL = (
    "O:BAG:SYD:(A;CIOI;GA;;;SY)(A;CIOI;GA;;;BU)(A;CIOI;GA;;;AU)"
    "(A;CIOI;GA;;;LA)(A;CIOI;GA;;;LS)"
)

_INDENT = "    "


@dataclass
class RegistryValue:
    id: str
    name: str
    type: str
    value: str = ""
    multi_value: list[str] = field(default_factory=list)
    remove: bool = False


@dataclass
class RegistryKey:
    """A key below a hive; ``key`` is the full path without the root."""

    root: str
    key: str
    values: list[RegistryValue] = field(default_factory=list)
    sub_keys: list[RegistryKey] = field(default_factory=list)
    remove: bool = False

    @property
    def leaf_name(self) -> str:
        return self.key.rsplit("\\", 1)[-1]


@dataclass
class RegistryComponent:
    id: str
    guid: str
    sddl: str
    permanent: bool = False
    condition: str = ""
    keys: list[RegistryKey] = field(default_factory=list)


class RegistryProcessor:
    """Turns ``registry`` items into components and renders them.

    One processor belongs to one build, so its counters restart at zero for
    every build and the emitted identifiers are stable.
    """

    def __init__(self, work_dir: Path | str) -> None:
        self.work_dir = Path(work_dir)
        self._component_counter = 0
        self._value_counter = 0
        self._seen_files: set[str] = set()

    def process(self, item: Registry) -> list[RegistryComponent]:
        """Parse the item's .reg file into one component.

        Raises:
            PackagingError: If the .reg file does not exist.
            ConfigError: If the .reg file is malformed.
        """
        logger = get_global_logger()

        path = Path(item.file)
        if not path.is_absolute():
            path = self.work_dir / path
        if not path.is_file():
            raise PackagingError(f"registry file not found: {item.file}")

        logger.verbose("REGISTRY", f"Parsing {path}")
        tree = parse_reg_file(path)

        component_id = f"REG_CID_{self._component_counter:05d}"
        # A .reg file used again takes its GUID from the component id.
        guid_source = f"registry_{item.file}"
        if item.file in self._seen_files:
            guid_source = f"registry_{component_id}"
        self._seen_files.add(item.file)

        component = RegistryComponent(
            id=component_id,
            guid=generate_guid(guid_source),
            sddl=item.sddl or DEFAULT_SDDL,
            permanent=item.permanent,
            condition=item.condition,
        )
        self._component_counter += 1

        for hive in tree.sorted_children():
            root = HIVE_ROOTS[hive.name]
            for child in hive.sorted_children():
                component.keys.append(self._convert(child, root, child.name))

        logger.debug(
            "REGISTRY", f"{component.id}: {len(component.keys)} top-level key(s)"
        )
        return [component]

    def _convert(self, node: RegKeyNode, root: str, key_path: str) -> RegistryKey:
        key = RegistryKey(root=root, key=key_path, remove=node.remove)
        for entry in node.sorted_values():
            key.values.append(
                RegistryValue(
                    id=f"RV_{self._value_counter:05d}",
                    name=entry.name,
                    type=entry.type,
                    value=entry.value,
                    multi_value=list(entry.multi_value),
                    remove=entry.remove,
                )
            )
            self._value_counter += 1
        for child in node.sorted_children():
            key.sub_keys.append(
                self._convert(child, root, f"{key_path}\\{child.name}")
            )
        return key

    def generate_xml(
        self, components: list[RegistryComponent], set_permissions: bool
    ) -> str:
        """Render components, with per-key ACLs when ``set_permissions`` is set."""
        lines: list[str] = []
        for component in components:
            self._render_component(component, set_permissions, lines)
        return "".join(f"{line}\n" for line in lines)

    def _render_component(
        self, component: RegistryComponent, set_permissions: bool, lines: list[str]
    ) -> None:
        attrs = f"Id='{component.id}' Guid='{component.guid}' NeverOverwrite='yes'"
        if component.permanent:
            attrs += " Permanent='yes'"
        if component.condition:
            attrs += f" Condition='{escape_xml_attr(component.condition)}'"
        lines.append(f"{_INDENT * 2}<Component {attrs}>")

        inner = _INDENT * 3
        for key in component.keys:
            for is_key, root, path, name in _removals(key):
                if is_key:
                    lines.append(
                        f"{inner}<RemoveRegistryKey Action='removeOnInstall' "
                        f"Root='{root}' Key='{escape_xml_attr(path)}'/>"
                    )
                else:
                    name_attr = f" Name='{escape_xml_attr(name)}'" if name else ""
                    lines.append(
                        f"{inner}<RemoveRegistryValue Root='{root}' "
                        f"Key='{escape_xml_attr(path)}'{name_attr}/>"
                    )

        state = {"key_path_pending": True}
        sddl = component.sddl if set_permissions else ""
        for key in component.keys:
            if not key.remove:
                self._render_key(key, sddl, 3, True, state, lines)

        # MSI needs a key path even when the file only deletes things.
        if state["key_path_pending"]:
            first = _first_kept_key(component.keys)
            if first is not None:
                lines.append(
                    f"{inner}<RegistryValue Root='{first.root}' "
                    f"Key='{escape_xml_attr(first.key)}' Name='_msis_keypath' "
                    "Value='' Type='string' KeyPath='yes'/>"
                )

        lines.append(f"{_INDENT * 2}</Component>")

    def _render_key(
        self,
        key: RegistryKey,
        sddl: str,
        depth: int,
        top_level: bool,
        state: dict[str, bool],
        lines: list[str],
    ) -> None:
        indent = _INDENT * depth
        if top_level:
            opening = (
                f"<RegistryKey Root='{key.root}' Key='{escape_xml_attr(key.key)}' "
                "ForceCreateOnInstall='yes'>"
            )
        else:
            opening = (
                f"<RegistryKey Key='{escape_xml_attr(key.leaf_name)}' "
                "ForceCreateOnInstall='yes'>"
            )
        lines.append(indent + opening)
        if sddl:
            lines.append(f"{indent}{_INDENT}<util:PermissionEx Sddl='{escape_xml_attr(sddl)}'/>")

        for value in key.values:
            if not value.remove:
                self._render_value(value, depth + 1, state, lines)
        for sub_key in key.sub_keys:
            if not sub_key.remove:
                self._render_key(sub_key, sddl, depth + 1, False, state, lines)

        lines.append(f"{indent}</RegistryKey>")

    @staticmethod
    def _render_value(
        value: RegistryValue, depth: int, state: dict[str, bool], lines: list[str]
    ) -> None:
        indent = _INDENT * depth
        name_attr = f" Name='{escape_xml_attr(value.name)}'" if value.name else ""
        key_path_attr = ""
        if state["key_path_pending"]:
            key_path_attr = " KeyPath='yes'"
            state["key_path_pending"] = False

        if value.type == "multiString":
            lines.append(
                f"{indent}<RegistryValue Id='{value.id}'{name_attr} "
                f"Type='multiString'{key_path_attr}>"
            )
            for item in value.multi_value:
                lines.append(
                    f"{indent}{_INDENT}<MultiStringValue>{escape_xml_attr(item)}</MultiStringValue>"
                )
            lines.append(f"{indent}</RegistryValue>")
        else:
            lines.append(
                f"{indent}<RegistryValue Id='{value.id}'{name_attr} "
                f"Value='{escape_xml_attr(value.value)}' Type='{value.type}'{key_path_attr}/>"
            )


def _removals(key: RegistryKey):
    """Yield (is_key, root, key path, value name) for every removal below ``key``."""
    if key.remove:
        yield True, key.root, key.key, ""
        return
    for value in key.values:
        if value.remove:
            yield False, key.root, key.key, value.name
    for sub_key in key.sub_keys:
        yield from _removals(sub_key)


def _first_kept_key(keys: list[RegistryKey]) -> RegistryKey | None:
    for key in keys:
        if not key.remove:
            return key
        found = _first_kept_key(key.sub_keys)
        if found is not None:
            return found
    return None

