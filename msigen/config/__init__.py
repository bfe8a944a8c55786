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

"""Setup description loading for msigen.

This module reads YAML setup descriptions with a layered approach:

  - Organization-wide defaults (defaults/org.yaml)
  - The setup description itself (<name>.yaml)

The loader performs deep merging where dicts are merged recursively and
lists/scalars are replaced (last wins). The merged document is then
converted into the intermediate representation in ``msigen.ir``.

Public API:

- load_setup: Load, merge and convert a description into a Setup
- load_setup_document: Load and merge without converting
- parse_setup: Convert an already-loaded document

Example:
    Basic usage:

        from pathlib import Path
        from msigen.config import load_setup

        setup = load_setup(Path("products/demo.yaml"))
        print(setup.features[0].name)  # "Main"

"""

from __future__ import annotations

from pathlib import Path

from msigen.ir import Setup

from .loader import load_setup_document
from .schema import parse_setup


def load_setup(setup_path: Path, *, defaults_path: Path | None = None) -> Setup:
    """Load a setup description file into a Setup."""
    return parse_setup(load_setup_document(setup_path, defaults_path=defaults_path))


__all__ = ["load_setup", "load_setup_document", "parse_setup"]
