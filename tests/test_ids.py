"""
Tests for msigen.ids module.

Tests deterministic identifier helpers including:
- GUID derivation
- 8.3 short names
- XML attribute escaping
- Per-build id allocation and component id collisions
"""

from __future__ import annotations

import hashlib
import re

import pytest

from msigen.ids import (
    IdAllocator,
    base_component_id,
    escape_xml_attr,
    generate_guid,
    generate_short_name,
)

pytestmark = pytest.mark.unit

GUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")


class TestGenerateGuid:
    """Tests for GUID derivation."""

    def test_guid_shape(self):
        """Test that GUIDs are lower-case 8-4-4-4-12 hex."""
        assert GUID_RE.match(generate_guid("bin/app.exe"))

    def test_guid_is_prefix_of_sha256(self):
        """Test that the GUID is built from the first 16 digest bytes."""
        digest = hashlib.sha256(b"bin/app.exe").hexdigest()
        assert generate_guid("bin/app.exe").replace("-", "") == digest[:32]

    def test_guid_is_deterministic(self):
        """Test that the same text always yields the same GUID."""
        assert generate_guid("x") == generate_guid("x")
        assert generate_guid("x") != generate_guid("y")


class TestShortName:
    """Tests for 8.3 short-name generation."""

    def test_simple_name(self):
        """Test a name that fits without truncation."""
        assert generate_short_name("config.xml", 2) == "CONFIG_2.XML"

    def test_long_base_is_truncated_and_cleaned(self):
        """Test that invalid characters are dropped and the base truncated."""
        assert generate_short_name("my-long-file.txt", 3) == "MYLONG_3.TXT"

    def test_extension_is_cut_to_three(self):
        """Test that long extensions are shortened."""
        assert generate_short_name("page.html", 2) == "PAGE_2.HTM"

    def test_no_extension(self):
        """Test names without an extension."""
        assert generate_short_name("LICENSE", 2) == "LICENS_2"

    def test_fits_eight_characters_for_large_occurrence(self):
        """Test that the base shrinks as the occurrence counter grows."""
        short = generate_short_name("document.txt", 123)
        assert short == "DOCU_123.TXT"
        assert len(short.split(".")[0]) <= 8

    def test_empty_base_falls_back(self):
        """Test that a base with no valid characters becomes FILE."""
        assert generate_short_name("###.dat", 2) == "FILE_2.DAT"


class TestEscaping:
    """Tests for XML attribute escaping and id sanitizing."""

    def test_escape_all_special_characters(self):
        """Test that all five XML special characters are escaped."""
        assert (
            escape_xml_attr("a&b<c>d\"e'f")
            == "a&amp;b&lt;c&gt;d&quot;e&apos;f"
        )

    def test_escape_ampersand_first(self):
        """Test that existing entities are not double-unescaped."""
        assert escape_xml_attr("&lt;") == "&amp;lt;"

    def test_escape_working_directory_like_values(self):
        """Test that property references with markup characters are escaped."""
        assert escape_xml_attr("[A&B]") == "[A&amp;B]"


class TestIdAllocator:
    """Tests for per-build id counters."""

    def test_counters_are_independent(self):
        """Test that each id kind has its own counter and format."""
        ids = IdAllocator()
        assert ids.directory() == "DIR_ID00000"
        assert ids.directory() == "DIR_ID00001"
        assert ids.file() == "FILE_ID00000"
        assert ids.shortcut() == "SHORTCUT_ID0000"
        assert ids.environment() == "ENV_ID0000"
        assert ids.service() == "SVC_ID0000"
        assert ids.feature() == "FEATURE_00000"
        assert ids.custom_action() == "CUSTOMACTION_00000"

    def test_component_id_from_defining_string(self):
        """Test that component ids are CID_ plus 16 hex digits."""
        ids = IdAllocator()
        digest = hashlib.sha256(b"bin/app.exe").hexdigest()
        assert ids.component("bin/app.exe") == f"CID_{digest[:16]}"

    def test_component_collision_gets_suffix(self):
        """Test that repeated defining strings get _1, _2 suffixes."""
        ids = IdAllocator()
        first = ids.component("same")
        assert ids.component("same") == f"{first}_1"
        assert ids.component("same") == f"{first}_2"
        assert ids.component_count == 3

    def test_base_component_id_is_first_issue(self):
        """Test that the base id equals the first allocation only."""
        ids = IdAllocator()
        assert ids.component("same") == base_component_id("same")
        assert ids.component("same") != base_component_id("same")

    def test_fresh_allocators_agree(self):
        """Test that two builds allocate identical ids."""
        a, b = IdAllocator(), IdAllocator()
        assert [a.component("x"), a.directory()] == [b.component("x"), b.directory()]
