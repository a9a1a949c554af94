"""PECL provisioning for the linked PHP version.

:class:`PeclProvider` installs the configured PECL extensions with pins that
match each PHP version and moves the ``extension=`` directive PECL appends to
``php.ini`` into a ``conf.d`` marker file so the extension can be toggled
later. :class:`PeclCustomProvider` covers extensions that PECL does not ship
and that are installed as per-version Homebrew formulae instead.
"""
from __future__ import annotations

import logging
import re
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from ..catalog import extension_package
from ..filesystem import put_as_user
from ..layout import PhpLayout
from .brew import BrewProvider

LOGGER = logging.getLogger(__name__)

PECL_CHANNEL = "pecl.php.net"

# Release pinned per PHP version; ``None`` means the extension is unavailable.
PECL_EXTENSIONS: Mapping[str, Mapping[str, str | None]] = {
    "xdebug": {
        "5.6": "2.5.5",
        "7.0": "2.7.2",
        "7.1": "2.9.8",
        "7.2": "2.9.8",
        "7.3": "2.9.8",
        "7.4": "2.9.8",
    },
    "apcu": {
        "5.6": "4.0.11",
        "7.0": "5.1.19",
        "7.1": "5.1.19",
        "7.2": "5.1.19",
        "7.3": "5.1.19",
        "7.4": "5.1.19",
    },
    "yaml": {
        "5.6": "1.3.2",
        "7.0": "2.0.4",
        "7.1": "2.2.1",
        "7.2": "2.2.1",
        "7.3": "2.2.1",
        "7.4": "2.2.1",
    },
    "geoip": {
        "5.6": "1.1.1",
        "7.0": "1.1.1",
        "7.1": "1.1.1",
        "7.2": "1.1.1",
        "7.3": "1.1.1",
        "7.4": None,
    },
}

ZEND_EXTENSIONS = frozenset({"xdebug", "opcache"})


class PeclError(RuntimeError):
    """Raised when a PECL command fails."""


@dataclass(slots=True)
class PeclProvider:
    """Drive ``pecl`` for the currently linked PHP version."""

    layout: PhpLayout
    user: str
    extensions: Sequence[str] = ("xdebug", "apcu", "yaml")
    pecl_bin: str = "pecl"
    pins: Mapping[str, Mapping[str, str | None]] = field(default_factory=lambda: PECL_EXTENSIONS)

    def update_pecl_channel(self) -> None:
        """Refresh the PECL channel metadata."""
        LOGGER.info("[pecl] Updating channel %s", PECL_CHANNEL)
        self._pecl(["channel-update", PECL_CHANNEL])

    def get_extension_directory(self) -> str:
        """Return the directory PECL installs shared objects into."""
        return self._config_get("ext_dir")

    def get_php_ini_path(self) -> Path:
        """Return the ``php.ini`` of the linked version."""
        return Path(self._config_get("php_ini"))

    def installed_extensions(self) -> set[str]:
        """Return the lower-cased names of installed PECL packages."""
        result = self._pecl(["list"])
        names: set[str] = set()
        for line in (result.stdout or "").splitlines()[3:]:
            parts = line.split()
            if parts:
                names.add(parts[0].lower())
        return names

    def install_extensions(self, version: str) -> list[str]:
        """Install every configured extension available for *version*."""
        installed = self.installed_extensions()
        performed: list[str] = []
        for name in self.extensions:
            pin = self.pins.get(name, {}).get(version)
            if pin is None:
                LOGGER.info("[pecl] %s is not available for PHP %s, skipping", name, version)
                continue
            if name.lower() not in installed:
                LOGGER.info("[pecl] Installing %s-%s", name, pin)
                self._pecl(["install", "-f", f"{name}-{pin}"])
                performed.append(name)
            self._move_ini_definition(version, name)
        return performed

    # ------------------------------------------------------------------
    def _move_ini_definition(self, version: str, name: str) -> None:
        """Replace the php.ini directive PECL adds with a conf.d marker."""
        php_ini = self.get_php_ini_path()
        if php_ini.exists():
            contents = php_ini.read_text(encoding="utf-8")
            pattern = re.compile(
                rf'^(zend_)?extension\s*=\s*"?([^"\n]*/)?{re.escape(name)}\.so"?\s*\n',
                re.MULTILINE,
            )
            stripped = pattern.sub("", contents)
            if stripped != contents:
                put_as_user(php_ini, stripped, self.user)

        enabled = self.layout.extension_marker(version, name, enabled=True)
        disabled = self.layout.extension_marker(version, name, enabled=False)
        if enabled.exists() or disabled.exists():
            return
        directive = "zend_extension" if name in ZEND_EXTENSIONS else "extension"
        put_as_user(enabled, f'{directive}="{name}.so"\n', self.user)

    def _config_get(self, key: str) -> str:
        result = self._pecl(["config-get", key])
        value = (result.stdout or "").strip()
        if not value:
            raise PeclError(f"pecl config-get {key} returned no value.")
        return value

    def _pecl(self, args: Sequence[str]) -> subprocess.CompletedProcess[str]:
        command = [self.pecl_bin, *args]
        try:
            result = subprocess.run(  # noqa: S603, S607
                command,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise PeclError(f"{self.pecl_bin} not found: {exc}") from exc
        if result.returncode != 0:
            message = (result.stderr or result.stdout or "").strip() or "no output"
            raise PeclError(f"pecl {' '.join(args)} failed (exit {result.returncode}): {message}")
        return result


@dataclass(slots=True)
class PeclCustomProvider:
    """Install extensions shipped as per-version Homebrew formulae."""

    brew: BrewProvider
    extensions: Sequence[str] = ("ioncubeloader",)

    def install_extensions(self, version: str) -> list[str]:
        """Ensure every custom extension formula for *version* is installed."""
        performed: list[str] = []
        for name in self.extensions:
            package = extension_package(version, name)
            if self.brew.ensure_installed(package):
                performed.append(name)
            else:
                LOGGER.debug("[%s] already installed", package)
        return performed


__all__ = [
    "PECL_CHANNEL",
    "PECL_EXTENSIONS",
    "PeclCustomProvider",
    "PeclError",
    "PeclProvider",
]
