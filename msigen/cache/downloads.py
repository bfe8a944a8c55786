"""Official download locations for cacheable prerequisites.

Keyed by type, version and architecture; an empty architecture marks an
architecture-neutral installer. Microsoft rotates some of these links from
time to time, so a failed download usually means the table needs updating.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DownloadInfo:
    """Where to fetch one prerequisite installer.

    Attributes:
        type: Prerequisite type (vcredist, netfx).
        version: Prerequisite version (2022, 4.8...).
        arch: x64, x86, arm64, or "" when architecture-neutral.
        url: Download URL.
        file_name: File name inside the cache.
        sha256: Expected SHA-256 (hex), empty when not published.
    """

    type: str
    version: str
    arch: str
    url: str
    file_name: str
    sha256: str = ""


def _vcredist(version: str, channel: int, arch: str) -> DownloadInfo:
    return DownloadInfo(
        type="vcredist",
        version=version,
        arch=arch,
        url=f"https://aka.ms/vs/{channel}/release/vc_redist.{arch}.exe",
        file_name=f"vc_redist.{arch}.exe",
    )


def _netfx(version: str, url: str, file_name: str) -> DownloadInfo:
    return DownloadInfo(
        type="netfx", version=version, arch="", url=url, file_name=file_name
    )


DOWNLOAD_URLS: dict[str, dict[str, dict[str, DownloadInfo]]] = {
    "vcredist": {
        "2022": {arch: _vcredist("2022", 17, arch) for arch in ("x64", "x86", "arm64")},
        "2019": {arch: _vcredist("2019", 16, arch) for arch in ("x64", "x86")},
    },
    "netfx": {
        "4.8.1": {
            "": _netfx(
                "4.8.1",
                "https://go.microsoft.com/fwlink/?linkid=2203304",
                "ndp481-x86-x64-allos-enu.exe",
            )
        },
        "4.8": {
            "": _netfx(
                "4.8",
                "https://go.microsoft.com/fwlink/?linkid=2088631",
                "ndp48-x86-x64-allos-enu.exe",
            )
        },
        "4.7.2": {
            "": _netfx(
                "4.7.2",
                "https://go.microsoft.com/fwlink/?LinkId=863262",
                "ndp472-kb4054530-x86-x64-allos-enu.exe",
            )
        },
    },
}


def lookup_download(prereq_type: str, version: str, arch: str) -> DownloadInfo | None:
    """Find the download for (type, version, arch), falling back to neutral."""
    arches = DOWNLOAD_URLS.get(prereq_type, {}).get(version)
    if arches is None:
        return None
    return arches.get(arch) or arches.get("")


def available_versions_hint(prereq_type: str) -> str:
    """Describe what can be downloaded, for error messages."""
    versions = DOWNLOAD_URLS.get(prereq_type)
    if versions is not None:
        return (
            f"available {prereq_type} versions with auto-download: "
            f"{', '.join(versions)}"
        )
    return (
        f"unknown type {prereq_type!r}; available types: "
        f"{', '.join(DOWNLOAD_URLS)}"
    )
