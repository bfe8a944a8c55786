"""
Tests for msigen.variables module.
"""

from __future__ import annotations

import pytest

from msigen.ir import Set, Setup
from msigen.variables import DEFAULTS, Variables

pytestmark = pytest.mark.unit


class TestVariables:
    """Tests for defaults, loading and lookups."""

    def test_defaults(self):
        """Test that defaults are present before anything is loaded."""
        variables = Variables()

        assert dict(variables) == DEFAULTS
        assert variables.platform == "x64"
        assert variables.get_bool("ADD_TO_PATH") is False

    def test_load_from_setup_overrides_defaults(self):
        """Test that set entries replace defaults."""
        variables = Variables()
        variables.load_from_setup(
            Setup(sets=[Set(name="PLATFORM", value="arm64"), Set(name="PRODUCT_NAME", value="Demo")])
        )

        assert variables.platform == "arm64"
        assert variables.product_name == "Demo"

    def test_empty_platform_falls_back(self):
        """Test that an empty PLATFORM means x64."""
        assert Variables({"PLATFORM": ""}).platform == "x64"

    @pytest.mark.parametrize("value", ["true", "YES", "On", "1", " True "])
    def test_truthy_values(self, value):
        """Test the accepted spellings of true."""
        assert Variables({"FLAG": value}).get_bool("FLAG") is True

    @pytest.mark.parametrize("value", ["false", "no", "0", "", "2"])
    def test_falsy_values(self, value):
        """Test that everything else is false."""
        assert Variables({"FLAG": value}).get_bool("FLAG") is False


class TestResolution:
    """Tests for {{NAME}} references."""

    def test_resolve_text(self):
        """Test substitution, whitespace inside braces and unknown names."""
        variables = Variables({"NAME": "Demo"})

        assert variables.resolve("{{NAME}}/{{ NAME }}/{{MISSING}}x") == "Demo/Demo/x"

    def test_resolve_all_nested(self):
        """Test chains of references regardless of order."""
        variables = Variables(
            {
                "FULL": "{{VENDOR}} {{PRODUCT}}",
                "PRODUCT": "{{BASE}} Suite",
                "BASE": "Demo",
                "VENDOR": "Acme",
            }
        )

        variables.resolve_all()

        assert variables["FULL"] == "Acme Demo Suite"

    def test_resolve_all_terminates_on_cycles(self):
        """Test that self-referencing values do not loop forever."""
        variables = Variables({"A": "{{B}}x", "B": "{{A}}y"})

        variables.resolve_all()

        assert "A" in variables


class TestDeprecations:
    """Tests for deprecated flag warnings."""

    def test_enabled_flags_warn(self):
        """Test that only enabled deprecated flags produce warnings."""
        variables = Variables({"INCLUDE_VCREDIST": "true", "INCLUDE_MFC": "false"})

        warnings = variables.check_deprecated()

        assert len(warnings) == 1
        assert "INCLUDE_VCREDIST is deprecated" in warnings[0]

    def test_no_flags_no_warnings(self):
        """Test a clean variable set."""
        assert Variables().check_deprecated() == []
