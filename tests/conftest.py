"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from phpvm.catalog import VersionCatalog, default_catalog
from phpvm.layout import PhpLayout
from tests.fakes import FakeBrew


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip expensive tests during mutation runs."""
    if not os.environ.get("MUTANT_UNDER_TEST"):
        return
    skip_marker = pytest.mark.skip(reason="Skipped during mutation run to avoid timeouts.")
    for item in items:
        if "mutation_timeout" in item.keywords:
            item.add_marker(skip_marker)


@pytest.fixture
def catalog() -> VersionCatalog:
    """Return the default valet-php catalog."""
    return default_catalog()


@pytest.fixture
def layout(tmp_path: Path) -> PhpLayout:
    """Return a layout rooted in the temporary directory."""
    return PhpLayout(etc_root=tmp_path / "etc" / "valet-php")


@pytest.fixture
def php_bin(tmp_path: Path) -> Path:
    """Return the path used as the ``php`` symlink."""
    return tmp_path / "bin" / "php"


@pytest.fixture
def fake_brew(tmp_path: Path, php_bin: Path) -> FakeBrew:
    """Return a fake brew with PHP 7.4 installed and linked."""
    brew = FakeBrew(php_bin=php_bin, cellar=tmp_path / "Cellar")
    brew.installed_set.add("valet-php@7.4")
    brew.point_at("valet-php@7.4")
    return brew
