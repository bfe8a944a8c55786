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

"""Launch conditions for standalone packages.

When a package with runtime requirements is built without a bootstrapper,
the MSI itself has to refuse installation on machines that lack the
runtime. Each requirement becomes a registry search feeding an MSI property
and a ``Launch`` condition on that property.

Detection Logic:
    - vcredist (2015-2022): ``Installed`` value under
      HKLM\\SOFTWARE\\Microsoft\\VisualStudio\\14.0\\VC\\Runtimes\\<arch>
    - netfx (4.6.2-4.8.1): ``Release`` value under
      HKLM\\SOFTWARE\\Microsoft\\NET Framework Setup\\NDP\\v4\\Full compared
      against the minimum release of the requested version

Unknown types and versions produce no condition: the user is responsible
for detecting them.

Example:
    ```python
    from msigen.ir import Requirement
    from msigen.requirements import (
        generate_launch_conditions,
        generate_launch_conditions_xml,
    )

    conditions = generate_launch_conditions(
        [Requirement(type="vcredist", version="2022")], arch="x64"
    )
    searches_xml, conditions_xml = generate_launch_conditions_xml(conditions)
    ```
"""

from __future__ import annotations

from dataclasses import dataclass
import string

from msigen.bundle.catalog import PREREQUISITES
from msigen.ids import escape_xml_attr
from msigen.ir import Requirement
from msigen.logging import get_global_logger

_VC_RUNTIMES_KEY = "SOFTWARE\\Microsoft\\VisualStudio\\14.0\\VC\\Runtimes"
_NETFX_KEY = "SOFTWARE\\Microsoft\\NET Framework Setup\\NDP\\v4\\Full"

# Minimum ``Release`` DWORD per .NET Framework version.
NETFX_RELEASES: dict[str, int] = {
    "4.8.1": 533320,
    "4.8": 528040,
    "4.7.2": 461808,
    "4.7.1": 461308,
    "4.7": 460798,
    "4.6.2": 394802,
}

_REGISTRY_SEARCH_TEMPLATE = string.Template(
    '<Property Id="${prop}">'
    '<RegistrySearch Id="${prop}_Search" Root="HKLM" Key="${key}" '
    'Name="${value}" Type="raw"/>'
    "</Property>"
)

_LAUNCH_TEMPLATE = string.Template(
    '        <Launch Condition="${condition}" Message="${message}"/>'
)

_MISSING_MESSAGE = "{name} is required but not installed. Please install it first."


@dataclass(frozen=True)
class LaunchCondition:
    """One requirement check.

    Attributes:
        property_name: MSI property filled by the registry search.
        condition: Expression that must hold for installation to proceed.
        message: Shown when the condition fails.
        registry_search: ``Property``/``RegistrySearch`` XML.
    """

    property_name: str
    condition: str
    message: str
    registry_search: str


def _vcredist_condition(version: str, arch: str) -> LaunchCondition | None:
    if version not in PREREQUISITES["vcredist"]:
        return None
    arch = arch.lower() if arch.lower() in ("x64", "x86", "arm64") else "x86"
    prop = f"VCREDIST_{arch.upper()}_{version.replace('.', '_')}"
    display_name = f"Microsoft Visual C++ {version} Redistributable ({arch})"
    return LaunchCondition(
        property_name=prop,
        condition=prop,
        message=_MISSING_MESSAGE.format(name=display_name),
        registry_search=_REGISTRY_SEARCH_TEMPLATE.substitute(
            prop=prop, key=f"{_VC_RUNTIMES_KEY}\\{arch}", value="Installed"
        ),
    )


def _netfx_condition(version: str) -> LaunchCondition | None:
    release = NETFX_RELEASES.get(version)
    if release is None:
        return None
    prop = f"NETFX{version.replace('.', '')}_RELEASE"
    return LaunchCondition(
        property_name=prop,
        condition=f"{prop} >= {release}",
        message=_MISSING_MESSAGE.format(name=f"Microsoft .NET Framework {version}"),
        registry_search=_REGISTRY_SEARCH_TEMPLATE.substitute(
            prop=prop, key=_NETFX_KEY, value="Release"
        ),
    )


def generate_launch_conditions(
    requirements: list[Requirement], arch: str
) -> list[LaunchCondition]:
    """Create launch conditions for the given requirements.

    Args:
        requirements: Runtime requirements of the package.
        arch: Target architecture of the MSI (x64, x86 or arm64).

    Returns:
        One condition per recognized requirement, in declaration order.
    """
    logger = get_global_logger()
    conditions: list[LaunchCondition] = []
    for requirement in requirements:
        if requirement.type == "vcredist":
            condition = _vcredist_condition(requirement.version, arch)
        elif requirement.type == "netfx":
            condition = _netfx_condition(requirement.version)
        else:
            condition = None

        if condition is None:
            logger.verbose(
                "REQUIRES",
                f"No launch condition for {requirement.type} {requirement.version}",
            )
            continue
        logger.debug("REQUIRES", f"{condition.property_name}: {condition.condition}")
        conditions.append(condition)
    return conditions


def generate_launch_conditions_xml(
    conditions: list[LaunchCondition],
) -> tuple[str, str]:
    """Render conditions.

    Returns:
        A tuple (registry_searches_xml, launch_conditions_xml).
    """
    searches = "".join(f"        {c.registry_search}\n" for c in conditions)
    launches = "".join(
        _LAUNCH_TEMPLATE.substitute(
            condition=escape_xml_attr(c.condition), message=escape_xml_attr(c.message)
        )
        + "\n"
        for c in conditions
    )
    return searches, launches
