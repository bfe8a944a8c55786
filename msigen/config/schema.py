"""Conversion of a merged setup document into the intermediate representation.

Each item in a ``features[*].items`` or top-level ``items`` list is a
single-key mapping whose key selects the variant::

    items:
      - files: {source: bin, target: "[INSTALLDIR]bin"}
      - shortcut: {name: Demo, target: DESKTOP, file: "[INSTALLDIR]demo.exe"}

Errors name the position of the offending node in the document, e.g.
``features[0].items[2].shortcut: missing required field 'file'``.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from msigen.exceptions import ConfigError
from msigen.ir import (
    Bundle,
    BundleMSI,
    Exclude,
    Execute,
    ExePackage,
    Feature,
    Files,
    Item,
    Prerequisite,
    Registry,
    Service,
    Set,
    SetEnv,
    Setup,
    Shortcut,
)


def _scalar(value: Any) -> str:
    # YAML booleans come back as True/False; keep the textual form the
    # variable layer understands.
    if value is None:
        return ""
    return str(value)


def _as_bool(value: Any, where: str, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "yes", "on", "1"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "no", "off", "0"):
        return False
    raise ConfigError(f"{where}: expected a boolean, got {value!r}")


def _mapping(value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ConfigError(f"{where}: expected a mapping")
    return value


def _sequence(value: Any, where: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"{where}: expected a list")
    return value


def _fields(
    node: dict[str, Any], where: str, required: tuple[str, ...], optional: tuple[str, ...]
) -> dict[str, str]:
    unknown = sorted(set(node) - set(required) - set(optional))
    if unknown:
        raise ConfigError(f"{where}: unknown field(s) {', '.join(unknown)}")
    values: dict[str, str] = {}
    for name in required:
        if _scalar(node.get(name)) == "":
            raise ConfigError(f"{where}: missing required field '{name}'")
        values[name] = _scalar(node[name])
    for name in optional:
        values[name] = _scalar(node.get(name))
    return values


# -------------------------------
# Item variants
# -------------------------------


def _files(node: dict[str, Any], where: str) -> Files:
    values = _fields(node, where, ("source",), ("target", "do_not_overwrite"))
    return Files(
        source=values["source"],
        target=values["target"] or "INSTALLDIR",
        do_not_overwrite=_as_bool(node.get("do_not_overwrite"), where, False),
    )


def _registry(node: dict[str, Any], where: str) -> Registry:
    values = _fields(node, where, ("file",), ("sddl", "permanent", "condition"))
    return Registry(
        file=values["file"],
        sddl=values["sddl"],
        permanent=_as_bool(node.get("permanent"), where, False),
        condition=values["condition"],
    )


def _set_env(node: dict[str, Any], where: str) -> SetEnv:
    values = _fields(node, where, ("name",), ("value",))
    return SetEnv(name=values["name"], value=values["value"])


def _shortcut(node: dict[str, Any], where: str) -> Shortcut:
    values = _fields(
        node, where, ("name", "target", "file"), ("description", "icon")
    )
    return Shortcut(**values)


def _service(node: dict[str, Any], where: str) -> Service:
    values = _fields(
        node,
        where,
        ("file_name", "service_name"),
        ("display_name", "start", "description", "type", "error_control"),
    )
    values["service_type"] = values.pop("type")
    return Service(**values)


def _exclude(node: dict[str, Any], where: str) -> Exclude:
    return Exclude(**_fields(node, where, ("folder",), ()))


def _execute(node: dict[str, Any], where: str) -> Execute:
    return Execute(**_fields(node, where, ("cmd", "when"), ("directory",)))


_ITEM_PARSERS: dict[str, Callable[[dict[str, Any], str], Item]] = {
    "files": _files,
    "registry": _registry,
    "set_env": _set_env,
    "shortcut": _shortcut,
    "service": _service,
    "exclude": _exclude,
    "execute": _execute,
}


def _item(node: Any, where: str) -> Item:
    if not isinstance(node, dict) or len(node) != 1:
        raise ConfigError(
            f"{where}: an item must be a mapping with exactly one key "
            f"({', '.join(_ITEM_PARSERS)})"
        )
    kind, body = next(iter(node.items()))
    parser = _ITEM_PARSERS.get(kind)
    if parser is None:
        raise ConfigError(
            f"{where}: unknown item kind '{kind}'; "
            f"expected one of {', '.join(_ITEM_PARSERS)}"
        )
    return parser(_mapping(body, f"{where}.{kind}"), f"{where}.{kind}")


def _items(value: Any, where: str) -> list[Item]:
    return [
        _item(node, f"{where}[{index}]")
        for index, node in enumerate(_sequence(value, where))
    ]


# -------------------------------
# Features, bundle, requirements
# -------------------------------


def _feature(node: Any, where: str) -> Feature:
    node = _mapping(node, where)
    name = _scalar(node.get("name"))
    if not name:
        raise ConfigError(f"{where}: missing required field 'name'")
    return Feature(
        name=name,
        enabled=_as_bool(node.get("enabled"), where, True),
        allowed=_as_bool(node.get("allow_absent"), where, True),
        items=_items(node.get("items"), f"{where}.items"),
        sub_features=[
            _feature(child, f"{where}.features[{index}]")
            for index, child in enumerate(
                _sequence(node.get("features"), f"{where}.features")
            )
        ],
    )


def _prerequisites(value: Any, where: str) -> list[Prerequisite]:
    result = []
    for index, node in enumerate(_sequence(value, where)):
        entry = f"{where}[{index}]"
        values = _fields(_mapping(node, entry), entry, ("type", "version"), ("source",))
        result.append(Prerequisite(**values))
    return result


def _bundle(node: Any) -> Bundle:
    node = _mapping(node, "bundle")
    msi: BundleMSI | None = None
    if node.get("msi") is not None:
        msi = BundleMSI(
            **_fields(
                _mapping(node["msi"], "bundle.msi"),
                "bundle.msi",
                (),
                ("source", "source_64bit", "source_32bit", "source_arm64"),
            )
        )

    exe_packages = []
    for index, raw in enumerate(
        _sequence(node.get("exe_packages"), "bundle.exe_packages")
    ):
        where = f"bundle.exe_packages[{index}]"
        exe_packages.append(
            ExePackage(
                **_fields(
                    _mapping(raw, where),
                    where,
                    ("source",),
                    ("id", "detect_condition", "install_args"),
                )
            )
        )

    return Bundle(
        source_64bit=_scalar(node.get("source_64bit")),
        source_32bit=_scalar(node.get("source_32bit")),
        source_arm64=_scalar(node.get("source_arm64")),
        prerequisites=_prerequisites(
            node.get("prerequisites"), "bundle.prerequisites"
        ),
        msi=msi,
        exe_packages=exe_packages,
    )


def _sets(value: Any) -> list[Set]:
    if value is None:
        return []
    return [
        Set(name=str(name), value=_scalar(raw))
        for name, raw in _mapping(value, "set").items()
    ]


def parse_setup(document: dict[str, Any]) -> Setup:
    """Build a Setup from a loaded description.

    Args:
        document: Merged YAML mapping from ``load_setup_document``.

    Returns:
        The intermediate representation consumed by the builders.

    Raises:
        ConfigError: If the document does not have the expected shape. The
            message names the offending position.
    """
    document = _mapping(document, "document")
    return Setup(
        silent=_as_bool(document.get("silent"), "silent", False),
        sets=_sets(document.get("set")),
        features=[
            _feature(node, f"features[{index}]")
            for index, node in enumerate(
                _sequence(document.get("features"), "features")
            )
        ],
        items=_items(document.get("items"), "items"),
        bundle=_bundle(document["bundle"]) if document.get("bundle") else None,
        requires=_prerequisites(document.get("requires"), "requires"),
    )
