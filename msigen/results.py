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

"""Public API return types for msigen.

These dataclasses are what the builders and the orchestration layer hand
back to callers. All of them are frozen to prevent accidental mutation of
generated output.

Example:
    ```python
    from msigen.generator import PackageGraphBuilder

    output = PackageGraphBuilder(setup, variables, work_dir).build()
    print(output.feature_xml)
    for name, fragment in output.fragments().items():
        print(name, len(fragment))
    ```

Note:
    Only public API return types belong in this module. Graph nodes and
    other working state stay next to the code that builds them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class GeneratedOutput:
    """XML fragments produced by the package graph builder.

    Attributes:
        directory_xml: INSTALLDIR tree (under ProgramFilesFolder).
        app_data_dir_xml: APPDATADIR tree (under CommonAppDataFolder).
        roaming_app_data_dir_xml: ROAMINGAPPDATADIR tree (under AppDataFolder).
        local_app_data_dir_xml: LOCALAPPDATADIR tree (under LocalAppDataFolder).
        common_files_dir_xml: COMMONFILESDIR tree (under CommonFilesFolder).
        windows_dir_xml: WINDOWSDIR tree (under WindowsFolder).
        system_dir_xml: SYSTEMDIR tree (under SystemFolder).
        feature_xml: Nested Feature elements with their ComponentRefs.
        registry_xml: Components generated from .reg files.
        desktop_xml: Desktop shortcut components.
        start_menu_xml: Start menu shortcut components.
        custom_actions_xml: CustomAction elements.
        install_execute_sequence: Custom elements placing the actions.
        directory_count: Number of directory nodes in all trees.
        component_count: Number of component ids issued.
    """

    directory_xml: str = ""
    app_data_dir_xml: str = ""
    roaming_app_data_dir_xml: str = ""
    local_app_data_dir_xml: str = ""
    common_files_dir_xml: str = ""
    windows_dir_xml: str = ""
    system_dir_xml: str = ""
    feature_xml: str = ""
    registry_xml: str = ""
    desktop_xml: str = ""
    start_menu_xml: str = ""
    custom_actions_xml: str = ""
    install_execute_sequence: str = ""
    directory_count: int = 0
    component_count: int = 0

    def fragments(self) -> dict[str, str]:
        """Return every fragment keyed by its field name, in a fixed order."""
        return {
            "directory_xml": self.directory_xml,
            "app_data_dir_xml": self.app_data_dir_xml,
            "roaming_app_data_dir_xml": self.roaming_app_data_dir_xml,
            "local_app_data_dir_xml": self.local_app_data_dir_xml,
            "common_files_dir_xml": self.common_files_dir_xml,
            "windows_dir_xml": self.windows_dir_xml,
            "system_dir_xml": self.system_dir_xml,
            "feature_xml": self.feature_xml,
            "registry_xml": self.registry_xml,
            "desktop_xml": self.desktop_xml,
            "start_menu_xml": self.start_menu_xml,
            "custom_actions_xml": self.custom_actions_xml,
            "install_execute_sequence": self.install_execute_sequence,
        }


@dataclass(frozen=True)
class GeneratedBundle:
    """Chain content (ExePackage and MsiPackage elements) of a bootstrapper."""

    chain_xml: str


@dataclass(frozen=True)
class GenerateResult:
    """Result from generating fragments for one setup description.

    Attributes:
        setup_path: Description file that was processed.
        kind: "bundle" for bootstrapper descriptions, "package" otherwise.
        fragments: Fragment name to XML text (empty fragments included).
        written: Fragment files written to the output directory.
        warnings: Deprecation and integrity warnings collected on the way.
        status: Always "success" for a completed generation.
    """

    setup_path: Path
    kind: str
    fragments: dict[str, str]
    written: list[Path] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    status: str = "success"
