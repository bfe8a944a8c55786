"""Input/Output operations for msigen.

Public API:

download_file : function
    Download a URL atomically, verifying its SHA-256 when one is known.
make_session : function
    Create the requests.Session used for downloads.

Example:
    from pathlib import Path
    from msigen.io import download_file

    path, sha256 = download_file(
        "https://example.com/installer.exe",
        Path("./cache/installer.exe"),
    )
"""

from .download import download_file, make_session

__all__ = ["download_file", "make_session"]
