"""Deterministic identifiers for generated WiX elements.

Everything here is a pure function of its input or of an ``IdAllocator``
owned by a single build, so repeated builds of an unchanged description
produce identical identifiers.

Formats:

- Directories ``DIR_ID00000``, files ``FILE_ID00000``
- Components ``CID_<16 hex>`` from SHA-256 of a defining string, ``_N`` on collision
- Shortcuts ``SHORTCUT_ID0000``, environment ``ENV_ID0000``, services ``SVC_ID0000``
- Features ``FEATURE_00000``, custom actions ``CUSTOMACTION_00000``
- GUIDs ``xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx`` from SHA-256 of a defining string
"""

from __future__ import annotations

import hashlib
import os
import re

_SHORT_NAME_CHARS = re.compile(r"[^A-Z0-9_]")


def generate_guid(text: str) -> str:
    """Derive a GUID-shaped string from SHA-256 of ``text``.

    Args:
        text: Defining string (a source path or a component id).

    Returns:
        Lower-case GUID in 8-4-4-4-12 form.

    Example:
        ```python
        generate_guid("bin/app.exe") == generate_guid("bin/app.exe")  # True
        ```
    """
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
    return "-".join(
        (digest[0:8], digest[8:12], digest[12:16], digest[16:20], digest[20:32])
    )


def generate_short_name(file_name: str, occurrence: int) -> str:
    """Build an 8.3 short name for the Nth file targeting the same location.

    The base keeps only A-Z, 0-9 and underscore and is truncated so that
    ``BASE_N`` fits in 8 characters. The extension is cut to 3 characters.
    An underscore separator is used rather than a tilde so the result never
    looks like a Windows-generated short name.

    Args:
        file_name: Long file name, e.g. ``config.xml``.
        occurrence: 1-based occurrence count of this name in the directory.

    Returns:
        Short name such as ``CONFIG_2.XML``.
    """
    base, ext = os.path.splitext(file_name)
    ext = ext.lstrip(".")[:3].upper()

    occ = str(occurrence)
    max_base = max(8 - 1 - len(occ), 1)

    clean = _SHORT_NAME_CHARS.sub("", base.upper())[:max_base]
    if not clean:
        clean = "FILE"[:max_base]

    if ext:
        return f"{clean}_{occ}.{ext}"
    return f"{clean}_{occ}"


def base_component_id(defining: str) -> str:
    """Return the unsuffixed ``CID_`` id for ``defining``."""
    digest = hashlib.sha256(defining.encode("utf-8")).hexdigest()
    return f"CID_{digest[:16]}"


def escape_xml_attr(value: str) -> str:
    """Escape a value for use inside a quoted XML attribute."""
    return (
        value.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


class IdAllocator:
    """Per-build counters and the set of component ids handed out so far."""

    def __init__(self) -> None:
        self._counters: dict[str, int] = {}
        self._component_ids: set[str] = set()

    def _next(self, kind: str, fmt: str) -> str:
        value = self._counters.get(kind, 0)
        self._counters[kind] = value + 1
        return fmt % value

    def directory(self) -> str:
        return self._next("directory", "DIR_ID%05d")

    def file(self) -> str:
        return self._next("file", "FILE_ID%05d")

    def shortcut(self) -> str:
        return self._next("shortcut", "SHORTCUT_ID%04d")

    def environment(self) -> str:
        return self._next("environment", "ENV_ID%04d")

    def service(self) -> str:
        return self._next("service", "SVC_ID%04d")

    def feature(self) -> str:
        return self._next("feature", "FEATURE_%05d")

    def custom_action(self) -> str:
        return self._next("custom_action", "CUSTOMACTION_%05d")

    def component(self, defining: str) -> str:
        """Return a unique component id derived from ``defining``.

        The same defining string always maps to the same base id; later
        requests for an already issued id get ``_1``, ``_2``... appended.
        """
        base = base_component_id(defining)
        candidate = base
        counter = 0
        while candidate in self._component_ids:
            counter += 1
            candidate = f"{base}_{counter}"
        self._component_ids.add(candidate)
        return candidate

    @property
    def component_count(self) -> int:
        return len(self._component_ids)
