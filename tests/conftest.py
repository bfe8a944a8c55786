"""
Pytest configuration and shared fixtures for msigen tests.

This module provides reusable fixtures and test utilities used across
the test suite.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from msigen.logging import SilentLogger, set_global_logger
from msigen.variables import Variables


@pytest.fixture(autouse=True)
def _silent_logger():
    """Reset the global logger so tests never inherit CLI verbosity."""
    set_global_logger(SilentLogger())
    yield
    set_global_logger(SilentLogger())


@pytest.fixture
def tmp_test_dir(tmp_path: Path) -> Path:
    """
    Provide a temporary directory for test artifacts.

    Automatically cleaned up after test completion.
    """
    return tmp_path


@pytest.fixture
def create_yaml_file(tmp_test_dir: Path):
    """
    Factory fixture for creating temporary YAML files.

    Usage:
        yaml_path = create_yaml_file("demo.yaml", {"set": {"PRODUCT_NAME": "Demo"}})
    """

    def _create(filename: str, data: dict[str, Any]) -> Path:
        path = tmp_test_dir / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, sort_keys=False)
        return path

    return _create


@pytest.fixture
def make_tree(tmp_test_dir: Path):
    """
    Factory fixture creating files below the temporary directory.

    Usage:
        make_tree({"app/bin/app.exe": b"MZ", "app/readme.txt": "hello"})
    """

    def _make(files: dict[str, str | bytes]) -> Path:
        for relative, content in files.items():
            path = tmp_test_dir / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content, encoding="utf-8")
        return tmp_test_dir

    return _make


@pytest.fixture
def variables() -> Variables:
    """Provide variables with a product name and install directory name."""
    return Variables(
        {
            "PRODUCT_NAME": "Demo",
            "INSTALLDIR": "Demo",
            "APPDATADIR": "DemoData",
        }
    )
