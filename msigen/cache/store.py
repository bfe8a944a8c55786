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

"""Local cache of prerequisite installers.

Installers live at ``<root>/<type>/<version>/<file name>`` and are shared by
every project on the machine. The layout is keyed by type, version and
architecture (through the file name), not by content, so an entry is never
invalidated automatically.

Cache behavior:

- A custom source bypasses the cache entirely; it only has to exist.
- An existing file is reused as-is when the download table publishes no
  SHA-256. When a hash is published, the cached file is re-hashed first and
  downloaded again on mismatch.
- Missing files are downloaded through ``msigen.io.download_file``, which
  writes a temporary sibling and renames it into place.

Progress messages (``Using cached: ...``, ``Downloading: ...``,
``Cached: ...``) go to an optional callback, in request order.

Example:
    ```python
    from msigen.cache import PrerequisiteCache

    cache = PrerequisiteCache()
    path = cache.ensure_prerequisite("vcredist", "2022", "x64", progress=print)
    ```
"""

from __future__ import annotations

from collections.abc import Callable
import hashlib
import os
from pathlib import Path
import shutil

from msigen.cache.downloads import available_versions_hint, lookup_download
from msigen.exceptions import ConfigError, PackagingError
from msigen.io.download import DEFAULT_TIMEOUT, download_file
from msigen.logging import get_global_logger

# Files list_cached() reports.
_INSTALLER_SUFFIXES = (".exe", ".msi", ".msu")

ProgressCallback = Callable[[str], None]


def default_cache_dir() -> Path:
    """Return ``%LOCALAPPDATA%/msis/prerequisites`` or its XDG-style fallback."""
    local_app_data = os.environ.get("LOCALAPPDATA")
    if local_app_data:
        base = Path(local_app_data)
    else:
        base = Path.home() / ".local" / "share"
    return base / "msis" / "prerequisites"


def _sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


class PrerequisiteCache:
    """Prerequisite installer cache rooted at ``cache_dir``.

    Args:
        cache_dir: Cache root. Defaults to ``default_cache_dir()``.
        create: Create the root directory if it is missing.
        timeout: Per-download timeout in seconds.

    Raises:
        PackagingError: If ``create`` is set and the root cannot be created.
    """

    def __init__(
        self,
        cache_dir: Path | None = None,
        *,
        create: bool = True,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> None:
        self.cache_dir = Path(cache_dir) if cache_dir else default_cache_dir()
        self.timeout = timeout
        if create:
            try:
                self.cache_dir.mkdir(parents=True, exist_ok=True)
            except OSError as err:
                raise PackagingError(
                    f"cannot create cache directory {self.cache_dir}: {err}"
                ) from err

    @classmethod
    def open_readonly(cls, cache_dir: Path | None = None) -> PrerequisiteCache | None:
        """Open an existing cache without creating anything.

        Returns:
            The cache, or None when the root directory does not exist.
        """
        root = Path(cache_dir) if cache_dir else default_cache_dir()
        if not root.is_dir():
            return None
        return cls(root, create=False)

    def _entry_path(self, prereq_type: str, version: str, file_name: str) -> Path:
        return self.cache_dir / prereq_type / version / file_name

    def get_cached_path(self, prereq_type: str, version: str, arch: str) -> Path | None:
        """Return the cached installer for (type, version, arch) if present."""
        info = lookup_download(prereq_type, version, arch)
        if info is None:
            return None
        path = self._entry_path(prereq_type, version, info.file_name)
        return path if path.is_file() else None

    def ensure_prerequisite(
        self,
        prereq_type: str,
        version: str,
        arch: str = "",
        custom_source: str = "",
        progress: ProgressCallback | None = None,
    ) -> Path:
        """Return a local path for the prerequisite, downloading it if needed.

        Args:
            prereq_type: Prerequisite type (vcredist, netfx).
            version: Prerequisite version.
            arch: x64, x86, arm64, or "" for architecture-neutral.
            custom_source: User-supplied installer; returned unchanged.
            progress: Optional callback receiving status messages.

        Returns:
            Absolute path of the installer in the cache (or the custom source).

        Raises:
            PackagingError: If the custom source does not exist.
            ConfigError: If no download is known for (type, version, arch).
            NetworkError: On download failure or checksum mismatch.
        """
        logger = get_global_logger()

        def report(message: str) -> None:
            logger.verbose("CACHE", message)
            if progress is not None:
                progress(message)

        if custom_source:
            if not Path(custom_source).exists():
                raise PackagingError(f"custom source not found: {custom_source}")
            return Path(custom_source)

        info = lookup_download(prereq_type, version, arch)
        if info is None:
            raise ConfigError(
                f"no download URL for {prereq_type} {version} ({arch or 'neutral'}); "
                f"{available_versions_hint(prereq_type)}"
            )

        target = self._entry_path(prereq_type, version, info.file_name)
        if target.is_file():
            if not info.sha256 or _sha256_file(target).lower() == info.sha256.lower():
                report(f"Using cached: {target.name}")
                return target
            logger.verbose(
                "CACHE", f"Cached {target.name} does not match its hash, downloading again"
            )

        report(f"Downloading: {info.file_name}")
        path, _digest = download_file(
            info.url,
            target,
            expected_sha256=info.sha256 or None,
            validate_content_type=True,
            timeout=self.timeout,
        )
        if not info.sha256:
            report(
                f"Warning: No SHA256 hash available for {info.file_name} "
                "(integrity not verified)"
            )
        report(f"Cached: {info.file_name}")
        return path

    def clear(self) -> None:
        """Delete the whole cache directory."""
        if self.cache_dir.exists():
            get_global_logger().verbose("CACHE", f"Removing {self.cache_dir}")
            shutil.rmtree(self.cache_dir)

    def list_cached(self) -> list[str]:
        """Return cached installers relative to the root, sorted."""
        if not self.cache_dir.is_dir():
            return []
        return sorted(
            path.relative_to(self.cache_dir).as_posix()
            for path in self.cache_dir.rglob("*")
            if path.is_file() and path.suffix.lower() in _INSTALLER_SUFFIXES
        )
