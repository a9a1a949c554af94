"""Resolve which catalog version the ``php`` binary symlink points at.

The answer lives in the filesystem and changes whenever the package manager
relinks a formula, so it is always queried fresh and never cached.
"""
from __future__ import annotations

import os
from pathlib import Path

from .catalog import VersionCatalog


class UndeterminedCurrentVersionError(RuntimeError):
    """Raised when the linked PHP version cannot be resolved."""


def read_link_target(php_bin: Path) -> str | None:
    """Return the raw symlink target of *php_bin* or ``None`` when absent."""
    if not php_bin.is_symlink():
        return None
    return os.readlink(php_bin)


def linked_version(php_bin: Path, catalog: VersionCatalog) -> str:
    """Return the identifier of the formula *php_bin* currently points into."""
    target = read_link_target(php_bin)
    if target is None:
        raise UndeterminedCurrentVersionError(
            f"Unable to determine linked PHP: {php_bin} is not a symlink. "
            "Run `phpvm install` to reinstall."
        )
    for entry in catalog.entries():
        if f"/{entry.package_name}/" in target:
            return entry.identifier
    raise UndeterminedCurrentVersionError(
        f"Unable to determine linked PHP: {php_bin} -> {target} is not a known formula. "
        "Run `phpvm install` to reinstall."
    )


def try_linked_version(php_bin: Path, catalog: VersionCatalog) -> str | None:
    """Return the linked identifier, or ``None`` when it is undetermined."""
    try:
        return linked_version(php_bin, catalog)
    except UndeterminedCurrentVersionError:
        return None


__all__ = [
    "UndeterminedCurrentVersionError",
    "linked_version",
    "read_link_target",
    "try_linked_version",
]
