"""Prerequisite download table and on-disk installer cache.

Public API:

PrerequisiteCache : class
    Resolve (type, version, architecture) to a local installer path.
DownloadInfo : class
    Download location of one installer.
lookup_download : function
    Find a download, falling back to the architecture-neutral entry.
default_cache_dir : function
    Default cache root for the current user.
"""

from .downloads import DOWNLOAD_URLS, DownloadInfo, lookup_download
from .store import PrerequisiteCache, default_cache_dir

__all__ = [
    "DOWNLOAD_URLS",
    "DownloadInfo",
    "PrerequisiteCache",
    "default_cache_dir",
    "lookup_download",
]
