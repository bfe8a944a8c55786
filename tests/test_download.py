"""
Tests for msigen.io.download module.

Tests download functionality including:
- Basic downloads
- Redirects
- Checksum validation
- Atomic writes
- Content-type sanity check
"""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest
import requests_mock

from msigen.exceptions import NetworkError
from msigen.io.download import download_file, make_session

pytestmark = pytest.mark.unit


def _sha256(data: bytes) -> str:
    """Helper to compute SHA-256 hash."""
    return hashlib.sha256(data).hexdigest()


def test_download_success(tmp_test_dir: Path) -> None:
    """Test basic successful download."""
    url = "https://example.com/vc_redist.x64.exe"
    data = b"MZ installer bytes"
    destination = tmp_test_dir / "vcredist" / "2022" / "vc_redist.x64.exe"

    with requests_mock.Mocker() as m:
        m.get(url, content=data)
        path, digest = download_file(url, destination)

    assert path == destination
    assert path.read_bytes() == data
    assert digest == _sha256(data)
    assert not destination.with_name("vc_redist.x64.exe.part").exists()


def test_follows_redirect(tmp_test_dir: Path) -> None:
    """Test that aka.ms style redirects are followed."""
    start = "https://aka.ms/vs/17/release/vc_redist.x86.exe"
    final = "https://download.example.com/VC_redist.x86.exe"

    with requests_mock.Mocker() as m:
        m.get(start, status_code=302, headers={"Location": final})
        m.get(final, content=b"abc")
        path, _ = download_file(start, tmp_test_dir / "vc_redist.x86.exe")

    assert path.read_bytes() == b"abc"


def test_checksum_validation_success(tmp_test_dir: Path) -> None:
    """Test that a matching checksum passes, case-insensitively."""
    url = "https://example.com/file.bin"
    data = b"correct content"

    with requests_mock.Mocker() as m:
        m.get(url, content=data)
        path, digest = download_file(
            url, tmp_test_dir / "file.bin", expected_sha256=_sha256(data).upper()
        )

    assert path.exists()
    assert digest == _sha256(data)


def test_checksum_mismatch_raises_and_cleans_file(tmp_test_dir: Path) -> None:
    """Test that checksum mismatches raise and leave nothing behind."""
    url = "https://example.com/file.bin"
    destination = tmp_test_dir / "file.bin"

    with requests_mock.Mocker() as m:
        m.get(url, content=b"wrong")

        with pytest.raises(NetworkError, match="sha256 mismatch"):
            download_file(url, destination, expected_sha256="00" * 32)

    assert not destination.exists()
    assert not (tmp_test_dir / "file.bin.part").exists()


def test_mismatch_keeps_existing_destination(tmp_test_dir: Path) -> None:
    """Test that a failed download never replaces an existing file."""
    url = "https://example.com/file.bin"
    destination = tmp_test_dir / "file.bin"
    destination.write_bytes(b"previous")

    with requests_mock.Mocker() as m:
        m.get(url, content=b"wrong")

        with pytest.raises(NetworkError):
            download_file(url, destination, expected_sha256="00" * 32)

    assert destination.read_bytes() == b"previous"


def test_http_error_raises_network_error(tmp_test_dir: Path) -> None:
    """Test that 4xx/5xx responses become NetworkError."""
    url = "https://example.com/missing.exe"

    with requests_mock.Mocker() as m:
        m.get(url, status_code=404)

        with pytest.raises(NetworkError, match="download failed"):
            download_file(url, tmp_test_dir / "missing.exe")

    assert not (tmp_test_dir / "missing.exe.part").exists()


def test_connection_error_raises_network_error(tmp_test_dir: Path) -> None:
    """Test that transport failures become NetworkError."""
    import requests

    url = "https://example.com/down.exe"

    with requests_mock.Mocker() as m:
        m.get(url, exc=requests.ConnectionError("refused"))

        with pytest.raises(NetworkError, match="refused"):
            download_file(url, tmp_test_dir / "down.exe")


def test_rejects_html_when_validate_content_type(tmp_test_dir: Path) -> None:
    """Test that HTML is rejected when content type validation is enabled."""
    url = "https://example.com/file"

    with requests_mock.Mocker() as m:
        m.get(url, text="<html>moved</html>", headers={"Content-Type": "text/html"})

        with pytest.raises(NetworkError, match="expected binary"):
            download_file(url, tmp_test_dir / "file.exe", validate_content_type=True)

    assert not (tmp_test_dir / "file.exe").exists()


def test_html_allowed_without_validation(tmp_test_dir: Path) -> None:
    """Test that content type is ignored unless validation is requested."""
    url = "https://example.com/page"

    with requests_mock.Mocker() as m:
        m.get(url, text="<html/>", headers={"Content-Type": "text/html"})
        path, _ = download_file(url, tmp_test_dir / "page.html")

    assert path.read_text() == "<html/>"


def test_session_headers() -> None:
    """Test the User-Agent and identity encoding of download sessions."""
    from msigen import __version__

    session = make_session()

    assert session.headers["User-Agent"] == f"msigen/{__version__}"
    assert session.headers["Accept-Encoding"] == "identity"
