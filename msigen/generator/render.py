"""WiX fragment rendering for the package graph.

Pure functions: they read the finished graph and never allocate ids, so a
graph renders identically every time. Indentation is four spaces per level;
directory trees start at depth 2 to sit inside ``StandardDirectory``.
"""

from __future__ import annotations

from msigen.generator.model import (
    CUSTOM_ACTION_TIMINGS,
    IMMEDIATE_TIMING,
    Component,
    CustomAction,
    Directory,
    Environment,
    FileEntry,
    PermissionMarker,
    ServiceEntry,
    ShortcutComponent,
)
from msigen.ids import escape_xml_attr
from msigen.ir import Feature

_INDENT = "    "

_FULL_RIGHTS = "GenericAll='yes'"
_RESTRICTED_RIGHTS = "GenericRead='yes' Read='yes' GenericExecute='yes'"


def _join(lines: list[str]) -> str:
    return "".join(f"{line}\n" for line in lines)


def render_directory_tree(root: Directory, depth: int = 2) -> str:
    """Render one install-root tree with its components."""
    lines: list[str] = []
    _render_directory(root, depth, lines)
    return _join(lines)


def _render_directory(directory: Directory, depth: int, lines: list[str]) -> None:
    indent = _INDENT * depth
    named = directory.is_named

    if named:
        attrs = f"Id='{directory.xml_id}'"
        if directory.name:
            attrs += f" Name='{escape_xml_attr(directory.name)}'"
        lines.append(f"{indent}<Directory {attrs}>")

    if directory.permission is not None:
        _render_component(directory.permission, depth + 1, lines)
    for component in directory.components:
        _render_component(component, depth + 1, lines)
    for child in directory.sorted_children():
        _render_directory(child, depth + 1, lines)

    if named:
        lines.append(f"{indent}</Directory>")


def _render_component(component: Component, depth: int, lines: list[str]) -> None:
    indent = _INDENT * depth
    inner = indent + _INDENT
    attrs = f"Id='{component.id}' Guid='{component.guid}'"
    if component.never_overwrite:
        attrs += " NeverOverwrite='yes'"
    lines.append(f"{indent}<Component {attrs}>")

    payload = component.payload
    if isinstance(payload, FileEntry):
        short_name = f" ShortName='{payload.short_name}'" if payload.short_name else ""
        key_path = " KeyPath='yes'" if payload.key_path else ""
        lines.append(
            f"{inner}<File Id='{payload.id}' Name='{escape_xml_attr(payload.name)}'"
            f"{short_name} Source='{escape_xml_attr(payload.source_path)}'{key_path}/>"
        )
    elif isinstance(payload, Environment):
        lines.append(
            f"{inner}<Environment Id='{payload.id}' Name='{escape_xml_attr(payload.name)}' "
            f"Value='{escape_xml_attr(payload.value)}' "
            "Permanent='yes' Part='last' Action='set' System='yes'/>"
        )
    elif isinstance(payload, ServiceEntry):
        _render_service(payload, inner, lines)
    elif isinstance(payload, PermissionMarker):
        rights = _RESTRICTED_RIGHTS if payload.restricted else _FULL_RIGHTS
        lines.append(f"{inner}<CreateFolder>")
        lines.append(
            f"{inner}{_INDENT}<util:PermissionEx User='Users' "
            f"Domain='[MachineName]' {rights}/>"
        )
        lines.append(f"{inner}</CreateFolder>")
    else:
        raise TypeError(f"unsupported component payload: {type(payload).__name__}")

    lines.append(f"{indent}</Component>")


def _render_service(service: ServiceEntry, indent: str, lines: list[str]) -> None:
    name = escape_xml_attr(service.name)
    lines.append(
        f"{indent}<ServiceInstall Id='{service.id}' Name='{name}' "
        f"DisplayName='{escape_xml_attr(service.display_name)}' "
        f"Start='{service.start}' Type='{service.service_type}' "
        f"ErrorControl='{service.error_control}'>"
    )
    if service.description:
        lines.append(
            f"{indent}{_INDENT}<Description>{escape_xml_attr(service.description)}</Description>"
        )
    lines.append(f"{indent}</ServiceInstall>")
    lines.append(
        f"{indent}<ServiceControl Id='{service.id}_ctrl' Name='{name}' "
        "Start='install' Stop='both' Remove='uninstall' Wait='yes'/>"
    )


def render_features(
    features: list[Feature],
    feature_ids: dict[str, str],
    feature_components: dict[str, list[str]],
    depth: int = 2,
) -> str:
    """Render the feature tree with each feature's ComponentRefs.

    Args:
        features: Top-level features of the description.
        feature_ids: Positional path to feature id, as assigned before
            item processing.
        feature_components: Feature id to component ids, in attach order.
        depth: Indentation level of the top-level features.
    """
    lines: list[str] = []
    for index, feature in enumerate(features):
        _render_feature(
            feature, str(index), feature_ids, feature_components, depth, lines
        )
    return _join(lines)


def _render_feature(
    feature: Feature,
    path: str,
    feature_ids: dict[str, str],
    feature_components: dict[str, list[str]],
    depth: int,
    lines: list[str],
) -> None:
    indent = _INDENT * depth
    feature_id = feature_ids[path]
    level = "1" if feature.enabled else "32767"
    allow_absent = "yes" if feature.allowed else "no"

    lines.append(
        f"{indent}<Feature Id='{feature_id}' Title='{escape_xml_attr(feature.name)}' "
        f"Level='{level}' AllowAbsent='{allow_absent}'>"
    )
    for component_id in feature_components.get(feature_id, []):
        lines.append(f"{indent}{_INDENT}<ComponentRef Id='{component_id}'/>")
    for index, sub_feature in enumerate(feature.sub_features):
        _render_feature(
            sub_feature,
            f"{path}/{index}",
            feature_ids,
            feature_components,
            depth + 1,
            lines,
        )
    lines.append(f"{indent}</Feature>")


def render_shortcuts(shortcuts: list[ShortcutComponent], product_name: str) -> str:
    """Render shortcut components.

    A shortcut cannot be a key path, so each component carries an HKCU
    registry value named after the component id.
    """
    lines: list[str] = []
    outer = _INDENT * 3
    inner = _INDENT * 4
    for component in shortcuts:
        shortcut = component.shortcut
        lines.append(f"{outer}<Component Id='{component.id}' Guid='{component.guid}'>")
        attrs = (
            f"Id='{shortcut.id}' Name='{escape_xml_attr(shortcut.name)}' "
            f"Description='{escape_xml_attr(shortcut.description)}' "
            f"Target='{escape_xml_attr(shortcut.target)}' "
            f"WorkingDirectory='{escape_xml_attr(shortcut.working_dir)}'"
        )
        if shortcut.icon:
            lines.append(f"{inner}<Shortcut {attrs}>")
            lines.append(
                f"{inner}{_INDENT}<Icon Id='Icon_{shortcut.id}' "
                f"SourceFile='{escape_xml_attr(shortcut.icon)}'/>"
            )
            lines.append(f"{inner}</Shortcut>")
        else:
            lines.append(f"{inner}<Shortcut {attrs}/>")
        lines.append(
            f"{inner}<RegistryValue Root='HKCU' "
            f"Key='Software\\{escape_xml_attr(product_name)}\\Shortcuts' "
            f"Name='{component.id}' Type='integer' Value='1' KeyPath='yes'/>"
        )
        lines.append(f"{outer}</Component>")
    return _join(lines)


def render_custom_actions(actions: list[CustomAction]) -> str:
    lines: list[str] = []
    for action in actions:
        if action.when == IMMEDIATE_TIMING:
            execution = "Execute='immediate' Return='ignore'"
        else:
            execution = "Execute='deferred' Return='ignore' Impersonate='no'"
        lines.append(
            f"{_INDENT * 2}<CustomAction Id='{action.id}' "
            f"Directory='{escape_xml_attr(action.directory)}' "
            f"ExeCommand='{escape_xml_attr(action.command)}' {execution}/>"
        )
    return _join(lines)


def render_install_execute_sequence(actions: list[CustomAction]) -> str:
    """Render ``Custom`` elements placing each action relative to its anchor."""
    lines: list[str] = []
    for action in actions:
        timing = CUSTOM_ACTION_TIMINGS[action.when]
        element = f"<Custom Action='{action.id}' {timing.position}='{timing.anchor}'"
        if timing.condition:
            element += f" Condition='{timing.condition}'"
        lines.append(f"{_INDENT * 3}{element}/>")
    return _join(lines)
