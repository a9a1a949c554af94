"""Install, restart and stop PHP-FPM for the linked version."""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from .catalog import VersionCatalog
from .filesystem import ensure_dir_exists
from .linked import linked_version
from .providers.brew import BrewProvider
from .providers.pecl import PeclCustomProvider, PeclProvider
from .reconcile import ConfigReconciler, ReconcileResult

LOGGER = logging.getLogger(__name__)

Notifier = Callable[[str], None]


@dataclass(frozen=True, slots=True)
class InstallResult:
    """Summary of a completed :meth:`PhpFpmService.install` run."""

    version: str
    package: str
    installed_default: bool
    tapped: bool
    reconcile: ReconcileResult
    pecl_installed: list[str] = field(default_factory=list)
    custom_installed: list[str] = field(default_factory=list)


@dataclass(slots=True)
class PhpFpmService:
    """Bring the linked PHP version to a configured, running state."""

    catalog: VersionCatalog
    brew: BrewProvider
    reconciler: ConfigReconciler
    pecl: PeclProvider
    pecl_custom: PeclCustomProvider
    php_bin: Path
    var_log_dir: Path
    user: str
    tap: str = "henkrehorst/php"
    notify: Notifier = LOGGER.info

    def has_installed_php(self) -> bool:
        """Return ``True`` when any catalog formula is installed."""
        return any(self.brew.installed(package) for package in self.catalog.package_names())

    def install(self) -> InstallResult:
        """Install (when needed), reconcile and restart the linked version."""
        installed_default = False
        if not self.has_installed_php():
            default_package = self.catalog.package_name_of(self.catalog.default)
            self.notify(f"[{default_package}] Installing")
            installed_default = self.brew.ensure_installed(default_package)

        tapped = False
        if not self.brew.has_tap(self.tap):
            self.notify(f"[BREW TAP] Installing {self.tap}")
            self.brew.tap(self.tap)
            tapped = True
        else:
            self.notify(f"[BREW TAP] {self.tap} already installed")

        version = linked_version(self.php_bin, self.catalog)
        package = self.catalog.package_name_of(version)

        ensure_dir_exists(self.var_log_dir, self.user)
        reconcile = self.reconciler.reconcile(version)
        self.pecl.update_pecl_channel()
        pecl_installed = self.pecl.install_extensions(version)
        custom_installed = self.pecl_custom.install_extensions(version)
        self.restart()
        return InstallResult(
            version=version,
            package=package,
            installed_default=installed_default,
            tapped=tapped,
            reconcile=reconcile,
            pecl_installed=pecl_installed,
            custom_installed=custom_installed,
        )

    def restart(self) -> str:
        """Restart the FPM service of the linked version."""
        package = self.catalog.package_name_of(linked_version(self.php_bin, self.catalog))
        self.brew.restart_service(package)
        return package

    def stop(self) -> None:
        """Stop the FPM services of every catalog version."""
        self.brew.stop_service(self.catalog.package_names())


__all__ = ["InstallResult", "PhpFpmService"]
