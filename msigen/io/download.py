"""HTTP(S) file download for msigen.

Used by the prerequisite cache to fetch redistributable installers.

Key Features:

- **Atomic Writes** - Downloads go to a ``.part`` sibling and are renamed
  into place only after the integrity check passed, so the destination path
  never holds a partial or corrupt file.
- **Integrity Verification** - SHA-256 is computed while streaming. On a
  mismatch the temporary file is deleted and ``NetworkError`` is raised.
- **Binary Sanity Check** - Optionally rejects ``text/html`` responses, which
  is what a rotated download link typically serves.
- **Stable Representation** - Forces ``Accept-Encoding: identity`` so the
  bytes hashed are the bytes published.

Constants:

- DEFAULT_CHUNK (int): Stream chunk size (1 MiB).
- DEFAULT_TIMEOUT (int): Per-request timeout in seconds.

Example:
    ```python
    from pathlib import Path
    from msigen.io import download_file

    path, sha256 = download_file(
        "https://aka.ms/vs/17/release/vc_redist.x64.exe",
        Path("cache/vcredist/2022/vc_redist.x64.exe"),
    )
    ```

Note:
    Retries are off by default: prerequisite resolution is fail-fast and the
    caller decides whether to run again.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
import time

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from msigen import __version__
from msigen.exceptions import NetworkError, PackagingError
from msigen.logging import get_global_logger

# Stream size per chunk (1 MiB).
DEFAULT_CHUNK = 1024 * 1024

# Large redistributables on slow links need a generous timeout.
DEFAULT_TIMEOUT = 300


def make_session(retries: int = 0) -> requests.Session:
    """Create a requests.Session for installer downloads.

    Args:
        retries: Number of retries on transient status codes (429, 5xx),
            with exponential backoff. Zero disables retrying.

    Returns:
        Session with msigen's User-Agent and identity encoding.
    """
    s = requests.Session()
    retry = Retry(
        total=retries,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=("GET", "HEAD"),
        raise_on_status=False,
    )
    s.headers.update(
        {
            "User-Agent": f"msigen/{__version__}",
            # Raw bytes, so the computed hash matches the published one.
            "Accept-Encoding": "identity",
        }
    )
    s.mount("http://", HTTPAdapter(max_retries=retry))
    s.mount("https://", HTTPAdapter(max_retries=retry))
    return s


def download_file(
    url: str,
    destination: Path,
    *,
    expected_sha256: str | None = None,
    validate_content_type: bool = False,
    timeout: int = DEFAULT_TIMEOUT,
    session: requests.Session | None = None,
) -> tuple[Path, str]:
    """Download ``url`` to ``destination`` atomically.

    Follows redirects. Writes to ``<destination>.part``, verifies the
    checksum when ``expected_sha256`` is set, then renames onto
    ``destination``. Any failure removes the temporary file.

    Args:
        url: Source URL.
        destination: Final file path (parent directories are created).
        expected_sha256: Optional known SHA-256 (hex, case-insensitive).
        validate_content_type: Reject ``text/html`` responses.
        timeout: Per-request timeout (seconds).
        session: Session to use; a fresh one from ``make_session()`` otherwise.

    Returns:
        A tuple (file_path, sha256_hex).

    Raises:
        NetworkError: On connection failure, non-2xx status, HTML content
            when ``validate_content_type`` is set, or checksum mismatch.
        PackagingError: If the destination directory cannot be written.
    """
    logger = get_global_logger()

    destination = Path(destination)
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
    except OSError as err:
        raise PackagingError(
            f"cannot create directory {destination.parent}: {err}"
        ) from err

    tmp = destination.with_name(destination.name + ".part")
    own_session = session is None
    session = session or make_session()

    logger.verbose("HTTP", f"GET {url}")
    started_at = time.time()
    try:
        try:
            resp = session.get(url, stream=True, allow_redirects=True, timeout=timeout)
        except requests.RequestException as err:
            raise NetworkError(f"download failed for {url}: {err}") from err

        with resp:
            for hist in resp.history:
                logger.debug(
                    "HTTP",
                    f"Redirect {hist.status_code} -> "
                    f"{hist.headers.get('Location', 'unknown')}",
                )

            try:
                resp.raise_for_status()
            except requests.HTTPError as err:
                raise NetworkError(f"download failed for {url}: {err}") from err

            logger.verbose("HTTP", f"Response: {resp.status_code} {resp.reason}")

            if validate_content_type:
                ctype = resp.headers.get("Content-Type", "")
                if "text/html" in ctype.lower():
                    raise NetworkError(
                        f"expected binary from {url}, got content-type={ctype}"
                    )

            logger.debug("FILE", f"Downloading to: {tmp}")
            sha = hashlib.sha256()
            size = 0
            try:
                with tmp.open("wb") as f:
                    for chunk in resp.iter_content(chunk_size=DEFAULT_CHUNK):
                        if not chunk:
                            continue
                        f.write(chunk)
                        sha.update(chunk)
                        size += len(chunk)
            except requests.RequestException as err:
                raise NetworkError(f"download interrupted for {url}: {err}") from err
            except OSError as err:
                raise PackagingError(f"cannot write {tmp}: {err}") from err
    except Exception:
        tmp.unlink(missing_ok=True)
        raise
    finally:
        if own_session:
            session.close()

    digest = sha.hexdigest()
    logger.debug("FILE", f"SHA-256: {digest} (computed during download)")

    if expected_sha256 and digest.lower() != expected_sha256.lower():
        tmp.unlink(missing_ok=True)
        raise NetworkError(
            f"sha256 mismatch for {destination.name}: got {digest}, "
            f"expected {expected_sha256}"
        )

    logger.debug("FILE", f"Atomic rename: {tmp.name} -> {destination.name}")
    tmp.replace(destination)

    elapsed = time.time() - started_at
    logger.verbose(
        "FILE",
        f"Download complete: {destination} ({size / (1024 * 1024):.1f} MB "
        f"in {elapsed:.1f}s)",
    )
    return destination, digest
