"""
Tests for msigen.cache.store module.

Tests the prerequisite installer cache including:
- Download on miss and reuse on hit
- Hash re-verification of cached files
- Custom sources and unknown downloads
- Listing and clearing
- Default cache location
"""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest
import requests_mock

from msigen.cache import DownloadInfo, PrerequisiteCache, default_cache_dir
from msigen.exceptions import ConfigError, NetworkError, PackagingError

pytestmark = pytest.mark.unit

VC_X64_URL = "https://aka.ms/vs/17/release/vc_redist.x64.exe"
NETFX48_URL = "https://go.microsoft.com/fwlink/?linkid=2088631"


@pytest.fixture
def cache(tmp_test_dir: Path) -> PrerequisiteCache:
    return PrerequisiteCache(tmp_test_dir / "cache")


class TestEnsurePrerequisite:
    """Tests for ensure_prerequisite()."""

    def test_download_then_reuse(self, cache):
        """Test that the second request is served from disk."""
        messages: list[str] = []

        with requests_mock.Mocker() as m:
            m.get(VC_X64_URL, content=b"MZ-x64")
            first = cache.ensure_prerequisite("vcredist", "2022", "x64", progress=messages.append)
            second = cache.ensure_prerequisite("vcredist", "2022", "x64", progress=messages.append)

            assert m.call_count == 1

        assert first == second == cache.cache_dir / "vcredist" / "2022" / "vc_redist.x64.exe"
        assert first.read_bytes() == b"MZ-x64"
        assert messages == [
            "Downloading: vc_redist.x64.exe",
            "Warning: No SHA256 hash available for vc_redist.x64.exe "
            "(integrity not verified)",
            "Cached: vc_redist.x64.exe",
            "Using cached: vc_redist.x64.exe",
        ]

    def test_neutral_installer(self, cache):
        """Test that architecture-neutral installers resolve for any arch."""
        with requests_mock.Mocker() as m:
            m.get(NETFX48_URL, content=b"MZ-netfx")
            path = cache.ensure_prerequisite("netfx", "4.8", "x64")

        assert path == cache.cache_dir / "netfx" / "4.8" / "ndp48-x86-x64-allos-enu.exe"
        assert cache.get_cached_path("netfx", "4.8", "") == path

    def test_published_hash_is_reverified(self, cache, monkeypatch):
        """Test that a cached file not matching its hash is downloaded again."""
        good = b"good installer"
        info = DownloadInfo(
            type="vcredist",
            version="2022",
            arch="x64",
            url=VC_X64_URL,
            file_name="vc_redist.x64.exe",
            sha256=hashlib.sha256(good).hexdigest(),
        )
        monkeypatch.setattr("msigen.cache.store.lookup_download", lambda *args: info)
        stale = cache.cache_dir / "vcredist" / "2022" / "vc_redist.x64.exe"
        stale.parent.mkdir(parents=True)
        stale.write_bytes(b"corrupt")
        messages: list[str] = []

        with requests_mock.Mocker() as m:
            m.get(VC_X64_URL, content=good)
            path = cache.ensure_prerequisite("vcredist", "2022", "x64", progress=messages.append)

            assert m.call_count == 1

        assert path.read_bytes() == good
        assert messages == ["Downloading: vc_redist.x64.exe", "Cached: vc_redist.x64.exe"]

    def test_custom_source_bypasses_cache(self, cache, tmp_test_dir):
        """Test that an existing custom source is returned unchanged."""
        custom = tmp_test_dir / "own.exe"
        custom.write_bytes(b"MZ")

        path = cache.ensure_prerequisite("vcredist", "2022", "x64", custom_source=str(custom))

        assert path == custom
        assert cache.list_cached() == []

    def test_missing_custom_source(self, cache):
        """Test that a missing custom source raises PackagingError."""
        with pytest.raises(PackagingError, match="custom source not found"):
            cache.ensure_prerequisite("vcredist", "2022", "x64", custom_source="nope.exe")

    def test_unknown_download(self, cache):
        """Test that versions without a download URL list the alternatives."""
        with pytest.raises(ConfigError, match="no download URL for vcredist 2017") as exc:
            cache.ensure_prerequisite("vcredist", "2017", "x64")

        assert "2022, 2019" in str(exc.value)

    def test_download_failure_propagates(self, cache):
        """Test that HTTP errors surface as NetworkError without a cache entry."""
        with requests_mock.Mocker() as m:
            m.get(VC_X64_URL, status_code=500)

            with pytest.raises(NetworkError):
                cache.ensure_prerequisite("vcredist", "2022", "x64")

        assert cache.get_cached_path("vcredist", "2022", "x64") is None


class TestCacheManagement:
    """Tests for listing, clearing and opening caches."""

    def test_list_cached(self, cache):
        """Test that only installer files are listed, sorted."""
        for rel in ("vcredist/2022/vc_redist.x86.exe", "netfx/4.8/ndp48.exe", "notes.txt"):
            path = cache.cache_dir / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(b"x")

        assert cache.list_cached() == ["netfx/4.8/ndp48.exe", "vcredist/2022/vc_redist.x86.exe"]

    def test_clear(self, cache):
        """Test that clear() removes the whole cache root."""
        (cache.cache_dir / "netfx").mkdir()

        cache.clear()

        assert not cache.cache_dir.exists()
        assert cache.list_cached() == []

    def test_open_readonly(self, tmp_test_dir):
        """Test that open_readonly never creates the root."""
        missing = tmp_test_dir / "missing"

        assert PrerequisiteCache.open_readonly(missing) is None
        assert not missing.exists()

        missing.mkdir()
        assert PrerequisiteCache.open_readonly(missing).cache_dir == missing


class TestDefaultCacheDir:
    """Tests for default_cache_dir()."""

    def test_local_app_data(self, monkeypatch, tmp_test_dir):
        """Test the Windows location under LOCALAPPDATA."""
        monkeypatch.setenv("LOCALAPPDATA", str(tmp_test_dir))

        assert default_cache_dir() == tmp_test_dir / "msis" / "prerequisites"

    def test_home_fallback(self, monkeypatch, tmp_test_dir):
        """Test the fallback under the home directory."""
        monkeypatch.delenv("LOCALAPPDATA", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_test_dir))

        assert default_cache_dir() == tmp_test_dir / ".local" / "share" / "msis" / "prerequisites"
