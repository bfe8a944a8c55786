"""
Tests for msigen.bundle.chain module.

Tests bundle chain generation including:
- Architecture gating of prerequisites and product packages
- Neutral and custom-source prerequisites
- Custom exe packages
- Auto-bundle platform filtering
- Cache integration
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import Mock

import pytest

from msigen.bundle import AutoBundleBuilder, BundleChainBuilder, allowed_archs_for_platform
from msigen.bundle.chain import (
    ARM64_CONDITION,
    X64_CONDITION,
    X64_NOT_ARM64_CONDITION,
    X86_CONDITION,
)
from msigen.exceptions import ConfigError
from msigen.ir import Bundle, BundleMSI, ExePackage, Prerequisite, Requirement, Setup
from msigen.variables import Variables

pytestmark = pytest.mark.unit


def _chain(bundle: Bundle, tmp_test_dir: Path, variables: Variables | None = None) -> str:
    builder = BundleChainBuilder(Setup(bundle=bundle), variables or Variables(), tmp_test_dir)
    return builder.generate().chain_xml


def _lines_with(xml: str, needle: str) -> list[str]:
    return [line for line in xml.splitlines() if needle in line]


class TestPrerequisitePackages:
    """Tests for prerequisite entries in the chain."""

    def test_vcredist_2022_gets_three_gated_entries(self, tmp_test_dir):
        """Test ARM64, x64 and x86 entries with exclusive conditions."""
        bundle = Bundle(
            source_64bit="Demo.msi",
            prerequisites=[Prerequisite(type="vcredist", version="2022")],
        )

        xml = _chain(bundle, tmp_test_dir)
        entries = _lines_with(xml, "<ExePackage ")

        assert len(entries) == 3
        assert "Id='Prereq_vcredist_2022_arm64'" in entries[0]
        assert f"InstallCondition='{ARM64_CONDITION}'" in entries[0]
        assert "DisplayName='Microsoft Visual C++ 2015-2022 Redistributable (ARM64)'" in entries[0]
        assert f"InstallCondition='{X64_NOT_ARM64_CONDITION}'" in entries[1]
        assert f"InstallCondition='{X86_CONDITION}'" in entries[2]
        expected_source = os.path.join(str(tmp_test_dir / "prerequisites"), "vc_redist.x86.exe")
        assert f"SourceFile='{expected_source}'" in entries[2]

    def test_vcredist_2019_has_no_arm64(self, tmp_test_dir):
        """Test that x64 uses the plain condition when no ARM64 entry exists."""
        bundle = Bundle(
            source_64bit="Demo.msi",
            prerequisites=[Prerequisite(type="vcredist", version="2019")],
        )

        entries = _lines_with(_chain(bundle, tmp_test_dir), "<ExePackage ")

        assert len(entries) == 2
        assert f"InstallCondition='{X64_CONDITION}'" in entries[0]
        assert "arm64" not in entries[0]

    def test_entry_attributes(self, tmp_test_dir):
        """Test detection, arguments and permanence of catalog entries."""
        bundle = Bundle(
            source_64bit="Demo.msi",
            prerequisites=[Prerequisite(type="vcredist", version="2019")],
        )

        entry = _lines_with(_chain(bundle, tmp_test_dir), "<ExePackage ")[0]

        assert "DetectCondition='(VersionNT64 AND EXISTS(&quot;HKLM" in entry
        assert "InstallArguments='/install /quiet /norestart'" in entry
        assert "Permanent='yes' Vital='yes'" in entry

    def test_neutral_prerequisite(self, tmp_test_dir):
        """Test a single ungated entry for .NET Framework."""
        variables = Variables({"PREREQUISITES_FOLDER": "redist"})
        bundle = Bundle(
            source_64bit="Demo.msi",
            prerequisites=[Prerequisite(type="netfx", version="4.8")],
        )

        entries = _lines_with(_chain(bundle, tmp_test_dir, variables), "<ExePackage ")

        assert len(entries) == 1
        assert "Id='Prereq_netfx_4_8'" in entries[0]
        assert f"SourceFile='{os.path.join('redist', 'ndp48-x86-x64-allos-enu.exe')}'" in entries[0]
        assert "InstallCondition" not in entries[0]

    def test_custom_source_single_entry(self, tmp_test_dir):
        """Test that a custom source yields one ungated entry."""
        bundle = Bundle(
            source_64bit="Demo.msi",
            prerequisites=[Prerequisite(type="vcredist", version="2022", source="own/vc.exe")],
        )

        entries = _lines_with(_chain(bundle, tmp_test_dir), "<ExePackage ")

        assert len(entries) == 1
        assert "SourceFile='own/vc.exe'" in entries[0]
        assert "DisplayName='Microsoft Visual C++ 2015-2022 Redistributable'" in entries[0]
        assert "InstallCondition" not in entries[0]

    def test_unknown_with_custom_source(self, tmp_test_dir):
        """Test that unknown prerequisites are accepted with a source."""
        bundle = Bundle(
            source_64bit="Demo.msi",
            prerequisites=[Prerequisite(type="acme", version="1.0", source="acme.exe")],
        )

        entry = _lines_with(_chain(bundle, tmp_test_dir), "<ExePackage ")[0]

        assert "Id='Prereq_acme_1_0' DisplayName='acme 1.0' SourceFile='acme.exe'" in entry

    def test_unknown_without_source_raises(self, tmp_test_dir):
        """Test that unknown prerequisites without a source fail."""
        bundle = Bundle(
            source_64bit="Demo.msi",
            prerequisites=[Prerequisite(type="acme", version="9.9")],
        )

        with pytest.raises(ConfigError, match="unknown prerequisite: type='acme' version='9.9'"):
            _chain(bundle, tmp_test_dir)


class TestProductPackages:
    """Tests for product MSI entries."""

    def test_single_msi_source(self, tmp_test_dir):
        """Test an ungated main package with the INSTALLDIR property."""
        variables = Variables({"OUT": "build"})
        bundle = Bundle(msi=BundleMSI(source="{{OUT}}/Demo.msi"))

        xml = _chain(bundle, tmp_test_dir, variables)

        assert xml == (
            "      <MsiPackage Id='MainPackage' SourceFile='build/Demo.msi'>\n"
            "        <MsiProperty Name='INSTALLDIR' Value='[InstallFolder]'/>\n"
            "      </MsiPackage>\n"
        )

    def test_per_architecture_sources(self, tmp_test_dir):
        """Test gated product packages in ARM64, x64, x86 order."""
        bundle = Bundle(
            source_64bit="x64/Demo.msi",
            source_32bit="x86/Demo.msi",
            source_arm64="arm64/Demo.msi",
        )

        entries = _lines_with(_chain(bundle, tmp_test_dir), "<MsiPackage ")

        assert entries == [
            f"      <MsiPackage Id='MainPackage_arm64' SourceFile='arm64/Demo.msi' "
            f"InstallCondition='{ARM64_CONDITION}'>",
            f"      <MsiPackage Id='MainPackage_x64' SourceFile='x64/Demo.msi' "
            f"InstallCondition='{X64_NOT_ARM64_CONDITION}'>",
            f"      <MsiPackage Id='MainPackage_x86' SourceFile='x86/Demo.msi' "
            f"InstallCondition='{X86_CONDITION}'>",
        ]

    def test_msi_block_per_architecture(self, tmp_test_dir):
        """Test that the msi block overrides the shorthand sources."""
        bundle = Bundle(
            source_64bit="ignored.msi",
            msi=BundleMSI(source_64bit="a.msi", source_32bit="b.msi"),
        )

        xml = _chain(bundle, tmp_test_dir)

        assert "ignored.msi" not in xml
        assert f"SourceFile='a.msi' InstallCondition='{X64_CONDITION}'" in xml

    def test_no_product_source_raises(self, tmp_test_dir):
        """Test that a bundle needs at least one product source."""
        with pytest.raises(ConfigError, match="no product source"):
            _chain(Bundle(prerequisites=[Prerequisite(type="netfx", version="4.8")]), tmp_test_dir)

    def test_setup_without_bundle_raises(self, tmp_test_dir):
        """Test that generate() requires a bundle section."""
        with pytest.raises(ConfigError):
            BundleChainBuilder(Setup(), Variables(), tmp_test_dir).generate()


class TestExePackages:
    """Tests for custom exe packages."""

    def test_chain_order_and_default_id(self, tmp_test_dir):
        """Test prerequisites, then exe packages, then the product."""
        variables = Variables({"TOOLS": "tools"})
        bundle = Bundle(
            source_64bit="Demo.msi",
            prerequisites=[Prerequisite(type="netfx", version="4.8")],
            exe_packages=[
                ExePackage(source="{{TOOLS}}/my-setup.exe"),
                ExePackage(
                    source="agent.exe",
                    id="Agent",
                    detect_condition="AgentInstalled",
                    install_args="/S",
                ),
            ],
        )

        lines = _chain(bundle, tmp_test_dir, variables).splitlines()

        assert "Prereq_netfx_4_8" in lines[0]
        assert lines[1] == (
            "      <ExePackage Id='ExePackage_my_setup_exe' "
            "SourceFile='tools/my-setup.exe' Permanent='yes' Vital='yes'/>"
        )
        assert lines[2] == (
            "      <ExePackage Id='Agent' SourceFile='agent.exe' "
            "DetectCondition='AgentInstalled' InstallArguments='/S' "
            "Permanent='yes' Vital='yes'/>"
        )
        assert "MainPackage_x64" in lines[3]


class TestAutoBundle:
    """Tests for the auto-generated bundle around a built MSI."""

    @pytest.mark.parametrize(
        "platform, expected",
        [
            ("x86", frozenset({"x86"})),
            ("X64", frozenset({"x64"})),
            ("arm64", frozenset({"arm64"})),
            ("anycpu", None),
        ],
    )
    def test_allowed_archs(self, platform, expected):
        """Test the PLATFORM to architecture mapping."""
        assert allowed_archs_for_platform(platform) == expected

    def test_x64_platform_only_x64_redist(self, tmp_test_dir):
        """Test that a 64-bit MSI only chains the x64 redistributable."""
        builder = AutoBundleBuilder(
            Variables({"PLATFORM": "x64"}),
            tmp_test_dir,
            "Demo.msi",
            [Requirement(type="vcredist", version="2022")],
        )

        xml = builder.generate().chain_xml
        entries = _lines_with(xml, "<ExePackage ")

        assert len(entries) == 1
        assert "Id='Prereq_vcredist_2022_x64'" in entries[0]
        assert f"InstallCondition='{X64_CONDITION}'" in entries[0]
        assert "      <MsiPackage Id='MainPackage' SourceFile='Demo.msi'>" in xml

    def test_arm64_platform(self, tmp_test_dir):
        """Test that an ARM64 MSI chains only the ARM64 redistributable."""
        builder = AutoBundleBuilder(
            Variables({"PLATFORM": "arm64"}),
            tmp_test_dir,
            "Demo.msi",
            [Requirement(type="vcredist", version="2022")],
        )

        entries = _lines_with(builder.generate().chain_xml, "<ExePackage ")

        assert len(entries) == 1
        assert f"InstallCondition='{ARM64_CONDITION}'" in entries[0]

    def test_unknown_platform_allows_all(self, tmp_test_dir):
        """Test that an unrecognized platform keeps every architecture."""
        builder = AutoBundleBuilder(
            Variables({"PLATFORM": "neutral"}),
            tmp_test_dir,
            "Demo.msi",
            [Requirement(type="vcredist", version="2022")],
        )

        assert len(_lines_with(builder.generate().chain_xml, "<ExePackage ")) == 3


class TestCacheIntegration:
    """Tests for ensure_prerequisites with a cache."""

    def test_ensure_order_and_cached_sources(self, tmp_test_dir):
        """Test resolution order and that cached paths feed the chain."""
        cache = Mock()
        cache.ensure_prerequisite.side_effect = (
            lambda prereq_type, version, arch, progress=None: Path(
                f"/cache/{prereq_type}/{version}/{arch or 'neutral'}.exe"
            )
        )
        bundle = Bundle(
            source_64bit="Demo.msi",
            prerequisites=[
                Prerequisite(type="vcredist", version="2022"),
                Prerequisite(type="netfx", version="4.8"),
                Prerequisite(type="vcredist", version="2019", source="own.exe"),
            ],
        )
        builder = BundleChainBuilder(Setup(bundle=bundle), Variables(), tmp_test_dir, cache=cache)
        progress = Mock()

        builder.ensure_prerequisites(progress)
        xml = builder.generate().chain_xml

        calls = [call.args[:3] for call in cache.ensure_prerequisite.call_args_list]
        assert calls == [
            ("vcredist", "2022", "x64"),
            ("vcredist", "2022", "x86"),
            ("vcredist", "2022", "arm64"),
            ("netfx", "4.8", ""),
        ]
        assert cache.ensure_prerequisite.call_args_list[0].kwargs["progress"] is progress
        assert f"SourceFile='{Path('/cache/vcredist/2022/arm64.exe')}'" in xml
        assert f"SourceFile='{Path('/cache/netfx/4.8/neutral.exe')}'" in xml

    def test_without_cache_nothing_happens(self, tmp_test_dir):
        """Test that ensure_prerequisites is a no-op without a cache."""
        bundle = Bundle(
            source_64bit="Demo.msi",
            prerequisites=[Prerequisite(type="vcredist", version="2022")],
        )
        builder = BundleChainBuilder(Setup(bundle=bundle), Variables(), tmp_test_dir)

        builder.ensure_prerequisites()

        assert builder.cached_paths == {}
