"""Tests for the PHP version catalog."""
from __future__ import annotations

import pytest

from phpvm.catalog import (
    CatalogEntry,
    UnknownPackageError,
    UnsupportedVersionError,
    VersionCatalog,
    default_catalog,
    extension_package,
)


def test_default_catalog_lists_versions_oldest_first() -> None:
    """The built-in catalog covers 5.6 through 7.4 with 7.4 as default."""
    catalog = default_catalog()

    assert catalog.all() == ("5.6", "7.0", "7.1", "7.2", "7.3", "7.4")
    assert catalog.default == "7.4"
    assert catalog.package_name_of("7.3") == "valet-php@7.3"
    assert catalog.end_of_life() == ("5.6", "7.0", "7.1", "7.2")
    assert catalog.is_end_of_life("7.4") is False


def test_identifier_and_package_lookups_are_inverse() -> None:
    """Package and identifier lookups round-trip for every entry."""
    catalog = default_catalog()

    for identifier in catalog.all():
        assert catalog.identifier_of_package(catalog.package_name_of(identifier)) == identifier
    for package in catalog.package_names():
        assert catalog.package_name_of(catalog.identifier_of_package(package)) == package


def test_unknown_identifier_lists_supported_versions() -> None:
    """Resolving an unknown version names every supported one."""
    catalog = default_catalog()

    with pytest.raises(UnsupportedVersionError) as excinfo:
        catalog.resolve("8.0")

    assert excinfo.value.version == "8.0"
    assert excinfo.value.supported == catalog.all()
    assert "5.6 7.0 7.1 7.2 7.3 7.4" in str(excinfo.value)
    assert catalog.contains("8.0") is False


def test_unknown_package_raises_lookup_error() -> None:
    """Formulae outside the catalog cannot be mapped back."""
    with pytest.raises(UnknownPackageError):
        default_catalog().identifier_of_package("php@8.0")


def test_catalog_sorts_numerically_and_rejects_duplicates() -> None:
    """Entries are ordered by version, not by string."""
    catalog = VersionCatalog(
        [
            CatalogEntry("7.10", "php@7.10", False),
            CatalogEntry("7.9", "php@7.9", False),
        ],
        default="7.9",
    )
    assert catalog.all() == ("7.9", "7.10")

    with pytest.raises(ValueError):
        VersionCatalog(
            [CatalogEntry("7.4", "a", False), CatalogEntry("7.4", "b", False)],
            default="7.4",
        )
    with pytest.raises(ValueError):
        VersionCatalog([CatalogEntry("7.4", "a", False)], default="8.0")


def test_extension_package_name() -> None:
    """Extension formulae are named after the version and module."""
    assert extension_package("7.3", "xdebug") == "7.3-xdebug"
