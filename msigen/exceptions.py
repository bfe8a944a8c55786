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

"""Exception hierarchy for msigen.

Library users can tell the three failure families apart:

- ConfigError: The setup description is malformed (bad YAML, bad target
  spec, invalid shortcut destination, unknown custom-action timing, unknown
  prerequisite, bundle without a product source, unreadable .reg syntax).
- NetworkError: A prerequisite download failed (HTTP error, connection
  failure, checksum mismatch).
- PackagingError: A resource the build depends on is unavailable (missing
  custom prerequisite source, unwritable cache or output directory).

All exceptions inherit from MsigenError, so a caller can catch every msigen
error with a single except clause.

Example:
    Catching specific error types:
        ```python
        from pathlib import Path
        from msigen.core import generate_setup
        from msigen.exceptions import ConfigError, NetworkError

        try:
            result = generate_setup(Path("product.yaml"), Path("./out"))
        except ConfigError as e:
            print(f"Setup description error: {e}")
        except NetworkError as e:
            print(f"Download error: {e}")
        ```

    Catching all msigen errors:
        ```python
        from msigen.exceptions import MsigenError

        try:
            result = generate_setup(Path("product.yaml"), Path("./out"))
        except MsigenError as e:
            print(f"msigen error: {e}")
        ```
"""

from __future__ import annotations

__all__ = [
    "MsigenError",
    "ConfigError",
    "NetworkError",
    "PackagingError",
]


class MsigenError(Exception):
    """Base exception for all msigen errors."""

    pass


class ConfigError(MsigenError):
    """Raised when the setup description is malformed.

    This covers:

    - YAML parsing problems and invalid document structure
    - Malformed target specs (unterminated bracket, unknown install root)
    - Shortcut destinations other than DESKTOP or STARTMENU
    - Custom-action timings outside the supported set
    - Prerequisites that are neither in the catalog nor given a source
    - Bundles without any product package source
    - Syntax errors in referenced .reg files
    """

    pass


class NetworkError(MsigenError):
    """Raised when a prerequisite download fails.

    This covers connection failures, non-2xx responses, HTML error pages
    served instead of an installer, and SHA-256 mismatches. Any partially
    written file is removed before this is raised.
    """

    pass


class PackagingError(MsigenError):
    """Raised when a resource needed for the build is unavailable.

    Example:
        A custom prerequisite source that does not exist:
            ```python
            from msigen.exceptions import PackagingError

            try:
                cache.ensure_prerequisite("vcredist", "2022", "x64",
                                          custom_source="missing.exe")
            except PackagingError as e:
                print(e)  # custom source not found: missing.exe
            ```
    """

    pass
