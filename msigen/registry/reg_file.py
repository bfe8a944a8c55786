"""Parser for Windows Registry Editor (.reg) files.

Supports the format written by regedit (``Windows Registry Editor Version
5.00`` and ``REGEDIT4``), in UTF-16 with BOM or UTF-8:

- ``[HKEY_LOCAL_MACHINE\\SOFTWARE\\Vendor]`` opens a key, ``[-...]`` removes it
- ``"Name"="text"`` and ``@="text"`` set named and default string values
- ``"Name"=-`` removes a value
- ``dword:``, ``hex:``, ``hex(2):`` (expandable), ``hex(7):`` (multi-string),
  ``hex(b):`` (qword); other ``hex(n):`` kinds are kept as binary
- ``;`` and ``#`` comment lines, ``\\`` line continuations

The result is a tree of ``RegKeyNode`` objects rooted at a nameless
container whose children are the hives (by short name, e.g. HKLM), with
values already converted to their WiX representation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import re

from msigen.exceptions import ConfigError

HIVE_ROOTS: dict[str, str] = {
    "HKEY_LOCAL_MACHINE": "HKLM",
    "HKEY_CURRENT_USER": "HKCU",
    "HKEY_CLASSES_ROOT": "HKCR",
    "HKEY_USERS": "HKU",
    "HKEY_CURRENT_CONFIG": "HKCC",
    "HKLM": "HKLM",
    "HKCU": "HKCU",
    "HKCR": "HKCR",
    "HKU": "HKU",
    "HKCC": "HKCC",
}

_HEADERS = ("windows registry editor version", "regedit4")

_VALUE_LINE = re.compile(r'^(@|"(?:[^"\\]|\\.)*")\s*=\s*(.*)$')
_QUOTED = re.compile(r'^"((?:[^"\\]|\\.)*)"$')
_HEX_KIND = re.compile(r"^hex(?:\(([0-9a-fA-F]+)\))?:(.*)$", re.DOTALL)
_ESCAPE = re.compile(r"\\(.)")


@dataclass
class RegValueEntry:
    """A value converted to WiX terms.

    Attributes:
        name: Value name, empty for the default value.
        type: WiX type (string, expandable, integer, multiString, binary).
        value: Scalar value for every type except multiString.
        multi_value: Items of a multiString value.
        remove: The .reg file deletes this value.
    """

    name: str
    type: str = "string"
    value: str = ""
    multi_value: list[str] = field(default_factory=list)
    remove: bool = False


@dataclass(eq=False)
class RegKeyNode:
    name: str
    remove: bool = False
    values: dict[str, RegValueEntry] = field(default_factory=dict)
    default_value: RegValueEntry | None = None
    children: dict[str, RegKeyNode] = field(default_factory=dict)

    def child(self, name: str) -> RegKeyNode:
        key = name.lower()
        node = self.children.get(key)
        if node is None:
            node = RegKeyNode(name=name)
            self.children[key] = node
        return node

    def sorted_children(self) -> list[RegKeyNode]:
        return [self.children[key] for key in sorted(self.children)]

    def sorted_values(self) -> list[RegValueEntry]:
        """Named values in case-insensitive order, then the default value."""
        ordered = [self.values[key] for key in sorted(self.values)]
        if self.default_value is not None:
            ordered.append(self.default_value)
        return ordered


def _read_text(path: Path) -> str:
    raw = path.read_bytes()
    if raw.startswith((b"\xff\xfe", b"\xfe\xff")):
        return raw.decode("utf-16")
    return raw.decode("utf-8-sig")


def _logical_lines(text: str) -> list[tuple[int, str]]:
    """Join backslash-continued lines, keeping the first line number."""
    lines: list[tuple[int, str]] = []
    pending = ""
    start = 0
    for number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not pending:
            start = number
        if line.endswith("\\") and not _QUOTED.match(line.split("=", 1)[-1].strip()):
            pending += line[:-1]
            continue
        lines.append((start, pending + line))
        pending = ""
    if pending:
        lines.append((start, pending))
    return lines


def _unescape(text: str) -> str:
    return _ESCAPE.sub(r"\1", text)


def _parse_hex_bytes(data: str) -> bytes:
    return bytes.fromhex(data.replace(",", " "))


def _utf16_strings(payload: bytes) -> list[str]:
    text = payload.decode("utf-16-le", errors="replace")
    return [part for part in text.split("\x00") if part]


def _parse_data(name: str, data: str) -> RegValueEntry:
    """Convert the right-hand side of a value line."""
    if data == "-":
        return RegValueEntry(name=name, remove=True)

    quoted = _QUOTED.match(data)
    if quoted:
        return RegValueEntry(name=name, type="string", value=_unescape(quoted.group(1)))

    lowered = data.lower()
    if lowered.startswith("dword:"):
        return RegValueEntry(
            name=name, type="integer", value=str(int(data[6:].strip(), 16))
        )

    hex_match = _HEX_KIND.match(data)
    if hex_match is None:
        raise ValueError(f"unsupported value data {data!r}")

    kind = (hex_match.group(1) or "3").lower().lstrip("0") or "0"
    payload = _parse_hex_bytes(hex_match.group(2))

    if kind == "2":
        strings = _utf16_strings(payload)
        return RegValueEntry(
            name=name, type="expandable", value=strings[0] if strings else ""
        )
    if kind == "7":
        return RegValueEntry(
            name=name, type="multiString", multi_value=_utf16_strings(payload)
        )
    if kind in ("4", "b"):
        return RegValueEntry(
            name=name, type="integer", value=str(int.from_bytes(payload, "little"))
        )
    return RegValueEntry(name=name, type="binary", value=payload.hex().upper())


def parse_reg_text(text: str, source: str = "<string>") -> RegKeyNode:
    """Parse .reg content into a key tree.

    Args:
        text: Decoded file content.
        source: Name used in error messages.

    Returns:
        Nameless container whose children are the hives.

    Raises:
        ConfigError: On an unknown hive, a value outside any key, or
            malformed value data. The message names the file and line.
    """
    root = RegKeyNode(name="")
    current: RegKeyNode | None = None
    seen_header = False

    for number, line in _logical_lines(text):
        if not line or line.startswith((";", "#")):
            continue

        if not seen_header:
            seen_header = True
            if line.lower().startswith(_HEADERS):
                continue

        if line.startswith("["):
            if not line.endswith("]"):
                raise ConfigError(f"{source}:{number}: unterminated key header")
            path = line[1:-1].strip()
            remove = path.startswith("-")
            parts = [p for p in path.lstrip("-").split("\\") if p]
            if not parts or parts[0].upper() not in HIVE_ROOTS:
                raise ConfigError(f"{source}:{number}: unknown registry hive in {line}")
            node = root.child(HIVE_ROOTS[parts[0].upper()])
            for part in parts[1:]:
                node = node.child(part)
            if remove:
                node.remove = True
            current = node
            continue

        match = _VALUE_LINE.match(line)
        if match is None:
            raise ConfigError(f"{source}:{number}: cannot parse line {line!r}")
        if current is None:
            raise ConfigError(f"{source}:{number}: value outside of a key")

        raw_name, data = match.groups()
        name = "" if raw_name == "@" else _unescape(raw_name[1:-1])
        try:
            entry = _parse_data(name, data.strip())
        except ValueError as err:
            raise ConfigError(f"{source}:{number}: {err}") from err

        if name:
            current.values[name.lower()] = entry
        else:
            current.default_value = entry

    return root


def parse_reg_file(path: Path) -> RegKeyNode:
    """Read and parse a .reg file (UTF-16 with BOM or UTF-8)."""
    try:
        text = _read_text(path)
    except UnicodeDecodeError as err:
        raise ConfigError(f"cannot decode registry file {path}: {err}") from err
    return parse_reg_text(text, source=str(path))
