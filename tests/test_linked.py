"""Tests for resolving the linked PHP version."""
from __future__ import annotations

from pathlib import Path

import pytest

from phpvm.catalog import VersionCatalog
from phpvm.linked import (
    UndeterminedCurrentVersionError,
    linked_version,
    read_link_target,
    try_linked_version,
)


@pytest.mark.parametrize(
    ("target", "expected"),
    [
        ("/usr/local/Cellar/valet-php@7.3/7.3.9/bin/php", "7.3"),
        ("../Cellar/valet-php@5.6/5.6.40/bin/php", "5.6"),
    ],
)
def test_linked_version_from_symlink(
    php_bin: Path,
    catalog: VersionCatalog,
    target: str,
    expected: str,
) -> None:
    """The formula directory in the link target names the version."""
    php_bin.parent.mkdir(parents=True)
    php_bin.symlink_to(target)

    assert linked_version(php_bin, catalog) == expected


def test_regular_file_is_not_a_link(php_bin: Path, catalog: VersionCatalog) -> None:
    """A plain binary cannot be attributed to a formula."""
    php_bin.parent.mkdir(parents=True)
    php_bin.write_text("#!/bin/sh\n", encoding="utf-8")

    assert read_link_target(php_bin) is None
    with pytest.raises(UndeterminedCurrentVersionError, match="not a symlink"):
        linked_version(php_bin, catalog)


def test_foreign_formula_is_undetermined(php_bin: Path, catalog: VersionCatalog) -> None:
    """Links into formulae outside the catalog are rejected."""
    php_bin.parent.mkdir(parents=True)
    php_bin.symlink_to("/usr/local/Cellar/php@8.0/8.0.1/bin/php")

    with pytest.raises(UndeterminedCurrentVersionError, match="php@8.0"):
        linked_version(php_bin, catalog)
    assert try_linked_version(php_bin, catalog) is None


def test_link_is_read_fresh(php_bin: Path, catalog: VersionCatalog) -> None:
    """Relinking is observed on the next query."""
    php_bin.parent.mkdir(parents=True)
    php_bin.symlink_to("/usr/local/Cellar/valet-php@7.4/7.4.3/bin/php")
    assert linked_version(php_bin, catalog) == "7.4"

    php_bin.unlink()
    php_bin.symlink_to("/usr/local/Cellar/valet-php@7.2/7.2.30/bin/php")
    assert linked_version(php_bin, catalog) == "7.2"
