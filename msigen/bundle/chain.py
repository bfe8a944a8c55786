# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Bundle chain builder.

Produces the ``<Chain>`` content of a bootstrapper: prerequisites in
declaration order, then custom exe packages, then the product package(s).

Architecture-specific entries are gated by mutually exclusive install
conditions:

- ARM64: ``NativeMachine = 43620`` (IMAGE_FILE_MACHINE_ARM64)
- x64: ``VersionNT64``, or ``VersionNT64 AND NOT NativeMachine = 43620`` when
  an ARM64 entry for the same package is emitted
- x86: ``NOT VersionNT64``

Example:
    Explicit bundle with cached prerequisites:
        ```python
        from msigen.bundle import BundleChainBuilder
        from msigen.cache import PrerequisiteCache

        builder = BundleChainBuilder(setup, variables, work_dir, cache=PrerequisiteCache())
        builder.ensure_prerequisites(progress=print)
        chain_xml = builder.generate().chain_xml
        ```

    Wrap a built MSI together with its runtime requirements:
        ```python
        from msigen.bundle import AutoBundleBuilder

        builder = AutoBundleBuilder(variables, work_dir, "Demo.msi", setup.requires)
        chain_xml = builder.generate().chain_xml
        ```
"""

from __future__ import annotations

from collections.abc import Callable
import os
from pathlib import Path

from msigen.bundle.catalog import (
    ARCH_LABELS,
    PrerequisiteDef,
    expand_arch,
    lookup_prerequisite,
    sanitize_id,
)
from msigen.cache.downloads import lookup_download
from msigen.cache.store import PrerequisiteCache
from msigen.exceptions import ConfigError
from msigen.ids import escape_xml_attr
from msigen.ir import Bundle, ExePackage, Prerequisite, Requirement, Setup
from msigen.logging import get_global_logger
from msigen.results import GeneratedBundle
from msigen.variables import Variables

ARM64_CONDITION = "NativeMachine = 43620"
X64_CONDITION = "VersionNT64"
X64_NOT_ARM64_CONDITION = "VersionNT64 AND NOT NativeMachine = 43620"
X86_CONDITION = "NOT VersionNT64"

# Emission order of architecture-specific entries.
_ARCH_ORDER = ("arm64", "x64", "x86")
_ENSURE_ORDER = ("x64", "x86", "arm64")

_PACKAGE_INDENT = " " * 6
_PROPERTY_INDENT = " " * 8

CacheKey = tuple[str, str, str]


def allowed_archs_for_platform(platform: str) -> frozenset[str] | None:
    """Map a PLATFORM value to the prerequisite architectures it needs.

    Returns:
        The allowed architectures, or None when every architecture is allowed.
    """
    return {
        "x86": frozenset({"x86"}),
        "x64": frozenset({"x64"}),
        "arm64": frozenset({"arm64"}),
    }.get(platform.lower())


def requirements_to_prerequisites(requirements: list[Requirement]) -> list[Prerequisite]:
    return [Prerequisite(type=r.type, version=r.version, source=r.source) for r in requirements]


def arch_condition(arch: str, with_arm64: bool) -> str:
    """Install condition for one architecture variant."""
    if arch == "arm64":
        return ARM64_CONDITION
    if arch == "x64":
        return X64_NOT_ARM64_CONDITION if with_arm64 else X64_CONDITION
    return X86_CONDITION


def _msi_package(package_id: str, source: str, condition: str = "") -> list[str]:
    attrs = f"Id='{package_id}' SourceFile='{escape_xml_attr(source)}'"
    if condition:
        attrs += f" InstallCondition='{condition}'"
    return [
        f"{_PACKAGE_INDENT}<MsiPackage {attrs}>",
        f"{_PROPERTY_INDENT}<MsiProperty Name='INSTALLDIR' Value='[InstallFolder]'/>",
        f"{_PACKAGE_INDENT}</MsiPackage>",
    ]


def _exe_package(
    package_id: str,
    source: str,
    *,
    display_name: str = "",
    detect_condition: str = "",
    install_args: str = "",
    condition: str = "",
) -> str:
    attrs = f"Id='{package_id}'"
    if display_name:
        attrs += f" DisplayName='{escape_xml_attr(display_name)}'"
    attrs += f" SourceFile='{escape_xml_attr(source)}'"
    if detect_condition:
        attrs += f" DetectCondition='{escape_xml_attr(detect_condition)}'"
    if install_args:
        attrs += f" InstallArguments='{escape_xml_attr(install_args)}'"
    attrs += " Permanent='yes' Vital='yes'"
    if condition:
        attrs += f" InstallCondition='{condition}'"
    return f"{_PACKAGE_INDENT}<ExePackage {attrs}/>"


class BundleChainBuilder:
    """Builds the chain of an explicit ``bundle`` description.

    Args:
        setup: Parsed description; must carry a bundle for ``generate()``.
        variables: Resolved variables (PLATFORM, PREREQUISITES_FOLDER and
            whatever product sources reference).
        work_dir: Directory of the description.
        cache: Optional prerequisite cache. Without one, installers are
            expected in the prerequisites folder.

    Attributes:
        allowed_archs: Architectures emitted for architecture-bearing
            prerequisites, None for all.
        prerequisites_folder: Fallback location of uncached installers.
        cached_paths: (type, version, arch) to local path, filled by
            ``ensure_prerequisites``; arch is "" for neutral installers.
    """

    def __init__(
        self,
        setup: Setup,
        variables: Variables,
        work_dir: Path | str,
        cache: PrerequisiteCache | None = None,
    ) -> None:
        self.setup = setup
        self.variables = variables
        self.work_dir = Path(work_dir)
        self.cache = cache
        self.allowed_archs: frozenset[str] | None = None
        self.prerequisites_folder = variables.get("PREREQUISITES_FOLDER") or str(
            self.work_dir / "prerequisites"
        )
        self.cached_paths: dict[CacheKey, str] = {}

    @property
    def prerequisites(self) -> list[Prerequisite]:
        bundle = self.setup.bundle
        return list(bundle.prerequisites) if bundle is not None else []

    def _arch_allowed(self, arch: str) -> bool:
        return self.allowed_archs is None or arch in self.allowed_archs

    def ensure_prerequisites(self, progress: Callable[[str], None] | None = None) -> None:
        """Resolve every catalog prerequisite through the cache, one at a time.

        Custom-source prerequisites are skipped, and nothing happens without
        a cache. The first failure aborts the remaining prerequisites.

        Raises:
            ConfigError: If a prerequisite has no known download.
            NetworkError: On download or checksum failure.
        """
        if self.cache is None:
            return
        for prereq in self.prerequisites:
            if prereq.source:
                continue
            definition = lookup_prerequisite(prereq.type, prereq.version)
            if definition is not None and definition.is_arch_specific:
                for arch in _ENSURE_ORDER:
                    if arch not in definition.architectures or not self._arch_allowed(arch):
                        continue
                    # ARM64 installers only exist for recent versions.
                    if arch == "arm64" and lookup_download(
                        prereq.type, prereq.version, "arm64"
                    ) is None:
                        continue
                    self._ensure(self.cache, prereq, arch, progress)
            else:
                self._ensure(self.cache, prereq, "", progress)

    def _ensure(
        self,
        cache: PrerequisiteCache,
        prereq: Prerequisite,
        arch: str,
        progress: Callable[[str], None] | None,
    ) -> None:
        get_global_logger().verbose(
            "BUNDLE", f"Ensuring {prereq.type} {prereq.version} {arch or 'neutral'}"
        )
        path = cache.ensure_prerequisite(
            prereq.type, prereq.version, arch, progress=progress
        )
        self.cached_paths[(prereq.type, prereq.version, arch)] = str(path)

    def generate(self) -> GeneratedBundle:
        """Build the chain XML.

        Raises:
            ConfigError: If the setup has no bundle, a prerequisite is
                unknown and has no source, or no product source is given.
        """
        bundle = self.setup.bundle
        if bundle is None:
            raise ConfigError("setup does not contain a bundle")

        lines: list[str] = []
        for prereq in self.prerequisites:
            lines.extend(self._prerequisite_packages(prereq))
        for exe in bundle.exe_packages:
            lines.append(self._custom_exe_package(exe))
        lines.extend(self._product_packages(bundle))

        get_global_logger().verbose("BUNDLE", f"Chain has {len(lines)} line(s)")
        return GeneratedBundle(chain_xml="".join(f"{line}\n" for line in lines))

    def _prerequisite_packages(self, prereq: Prerequisite) -> list[str]:
        definition = lookup_prerequisite(prereq.type, prereq.version)
        if definition is None and not prereq.source:
            raise ConfigError(
                f"unknown prerequisite: type={prereq.type!r} version={prereq.version!r}"
            )

        package_id = sanitize_id(f"Prereq_{prereq.type}_{prereq.version}")

        # A custom source is opaque: one ungated entry, arch selection is the
        # user's business.
        if prereq.source:
            display_name = f"{prereq.type} {prereq.version}".strip()
            if definition is not None:
                return [
                    _exe_package(
                        package_id,
                        prereq.source,
                        display_name=definition.generic_display_name,
                        detect_condition=definition.detect_condition,
                        install_args=definition.install_args,
                    )
                ]
            return [_exe_package(package_id, prereq.source, display_name=display_name)]

        if definition is None:
            return []
        if not definition.is_arch_specific:
            source = self.cached_paths.get(
                (prereq.type, prereq.version, "")
            ) or os.path.join(self.prerequisites_folder, definition.source)
            return [
                _exe_package(
                    package_id,
                    source,
                    display_name=definition.display_name,
                    detect_condition=definition.detect_condition,
                    install_args=definition.install_args,
                )
            ]

        return self._arch_packages(prereq, definition, package_id)

    def _arch_packages(
        self, prereq: Prerequisite, definition: PrerequisiteDef, package_id: str
    ) -> list[str]:
        archs = [
            arch
            for arch in _ARCH_ORDER
            if arch in definition.architectures and self._arch_allowed(arch)
        ]
        with_arm64 = "arm64" in archs

        packages = []
        for arch in archs:
            source = self.cached_paths.get(
                (prereq.type, prereq.version, arch)
            ) or os.path.join(
                self.prerequisites_folder, expand_arch(definition.source, arch)
            )
            packages.append(
                _exe_package(
                    f"{package_id}_{arch}",
                    source,
                    display_name=expand_arch(definition.display_name, ARCH_LABELS[arch]),
                    detect_condition=definition.detect_condition,
                    install_args=definition.install_args,
                    condition=arch_condition(arch, with_arm64),
                )
            )
        return packages

    def _custom_exe_package(self, exe: ExePackage) -> str:
        source = self.variables.resolve(exe.source)
        package_id = exe.id or sanitize_id(f"ExePackage_{os.path.basename(source)}")
        return _exe_package(
            package_id,
            source,
            detect_condition=exe.detect_condition,
            install_args=exe.install_args,
        )

    def _product_packages(self, bundle: Bundle) -> list[str]:
        msi = bundle.msi
        if msi is not None:
            if msi.source:
                return _msi_package("MainPackage", self.variables.resolve(msi.source))
            sources = {
                "arm64": msi.source_arm64,
                "x64": msi.source_64bit,
                "x86": msi.source_32bit,
            }
        else:
            sources = {
                "arm64": bundle.source_arm64,
                "x64": bundle.source_64bit,
                "x86": bundle.source_32bit,
            }

        if not any(sources.values()):
            raise ConfigError(
                "bundle has no product source: set bundle.msi.source or one of "
                "source_64bit, source_32bit, source_arm64 (no MSI source specified)"
            )

        with_arm64 = bool(sources["arm64"])
        lines: list[str] = []
        for arch in _ARCH_ORDER:
            if sources[arch]:
                lines.extend(
                    _msi_package(
                        f"MainPackage_{arch}",
                        self.variables.resolve(sources[arch]),
                        arch_condition(arch, with_arm64),
                    )
                )
        return lines


class AutoBundleBuilder(BundleChainBuilder):
    """Wraps an already-built MSI and its runtime requirements in a bundle.

    Prerequisite architectures follow ``PLATFORM``: a single-platform MSI
    only needs the matching redistributable.
    """

    def __init__(
        self,
        variables: Variables,
        work_dir: Path | str,
        msi_path: str,
        requirements: list[Requirement],
        cache: PrerequisiteCache | None = None,
    ) -> None:
        super().__init__(Setup(), variables, work_dir, cache)
        self.msi_path = msi_path
        self.requirements = requirements_to_prerequisites(requirements)
        self.allowed_archs = allowed_archs_for_platform(variables.platform)

    @property
    def prerequisites(self) -> list[Prerequisite]:
        return self.requirements

    def generate(self) -> GeneratedBundle:
        lines: list[str] = []
        for prereq in self.prerequisites:
            lines.extend(self._prerequisite_packages(prereq))
        lines.extend(_msi_package("MainPackage", self.msi_path))
        return GeneratedBundle(chain_xml="".join(f"{line}\n" for line in lines))
