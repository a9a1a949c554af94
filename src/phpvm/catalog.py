"""Static registry of the PHP versions phpvm knows how to manage."""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from packaging.version import Version

FORMULA_PREFIX = "valet-php@"
DEFAULT_VERSION = "7.4"
SUPPORTED_VERSIONS: tuple[str, ...] = ("5.6", "7.0", "7.1", "7.2", "7.3", "7.4")
EOL_VERSIONS: frozenset[str] = frozenset({"5.6", "7.0", "7.1", "7.2"})


class UnsupportedVersionError(RuntimeError):
    """Raised when a version identifier is not part of the catalog."""

    def __init__(self, version: str, supported: Sequence[str]) -> None:
        """Record *version* and the identifiers that would have been accepted."""
        self.version = version
        self.supported = tuple(supported)
        super().__init__(
            f"PHP {version} is not available. The following versions are available: "
            + " ".join(self.supported)
        )


class UnknownPackageError(LookupError):
    """Raised when a package name does not belong to any catalog entry."""


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    """One installable PHP version."""

    identifier: str
    package_name: str
    is_end_of_life: bool


class VersionCatalog:
    """Bidirectional lookup between version identifiers and formula names."""

    def __init__(self, entries: Iterable[CatalogEntry], *, default: str) -> None:
        """Index *entries*; *default* must be one of them."""
        ordered = sorted(entries, key=lambda entry: Version(entry.identifier))
        self._by_identifier = {entry.identifier: entry for entry in ordered}
        self._by_package = {entry.package_name: entry for entry in ordered}
        if len(self._by_identifier) != len(ordered) or len(self._by_package) != len(ordered):
            raise ValueError("Catalog identifiers and package names must be unique.")
        if default not in self._by_identifier:
            raise ValueError(f"Default version {default!r} is not part of the catalog.")
        self.default = default

    def resolve(self, identifier: str) -> CatalogEntry:
        """Return the entry for *identifier*."""
        entry = self._by_identifier.get(identifier)
        if entry is None:
            raise UnsupportedVersionError(identifier, self.all())
        return entry

    def package_name_of(self, identifier: str) -> str:
        """Return the formula name for *identifier*."""
        return self.resolve(identifier).package_name

    def identifier_of_package(self, package_name: str) -> str:
        """Return the identifier owning *package_name*."""
        entry = self._by_package.get(package_name)
        if entry is None:
            raise UnknownPackageError(package_name)
        return entry.identifier

    def is_end_of_life(self, identifier: str) -> bool:
        """Return ``True`` when *identifier* no longer receives security fixes."""
        return self.resolve(identifier).is_end_of_life

    def contains(self, identifier: str) -> bool:
        """Return ``True`` when *identifier* is part of the catalog."""
        return identifier in self._by_identifier

    def all(self) -> tuple[str, ...]:
        """Return every identifier, oldest first."""
        return tuple(self._by_identifier)

    def entries(self) -> tuple[CatalogEntry, ...]:
        """Return every entry, oldest first."""
        return tuple(self._by_identifier.values())

    def package_names(self) -> tuple[str, ...]:
        """Return every formula name, oldest first."""
        return tuple(entry.package_name for entry in self._by_identifier.values())

    def end_of_life(self) -> tuple[str, ...]:
        """Return the identifiers flagged end-of-life, oldest first."""
        return tuple(entry.identifier for entry in self.entries() if entry.is_end_of_life)


def extension_package(version: str, module: str) -> str:
    """Return the formula providing *module* for *version*."""
    return f"{version}-{module}"


def default_catalog() -> VersionCatalog:
    """Return the catalog of valet-php formulae."""
    entries = [
        CatalogEntry(
            identifier=version,
            package_name=f"{FORMULA_PREFIX}{version}",
            is_end_of_life=version in EOL_VERSIONS,
        )
        for version in SUPPORTED_VERSIONS
    ]
    return VersionCatalog(entries, default=DEFAULT_VERSION)


__all__ = [
    "CatalogEntry",
    "DEFAULT_VERSION",
    "EOL_VERSIONS",
    "FORMULA_PREFIX",
    "SUPPORTED_VERSIONS",
    "UnknownPackageError",
    "UnsupportedVersionError",
    "VersionCatalog",
    "default_catalog",
    "extension_package",
]
