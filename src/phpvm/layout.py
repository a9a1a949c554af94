"""Filesystem layout of the valet-php configuration tree."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

# The oldest formula ships a flat php-fpm.conf instead of a php-fpm.d pool.
_FLAT_POOL_VERSIONS = frozenset({"5.6"})

PERFORMANCE_FILE = "z-performance.ini"


@dataclass(frozen=True, slots=True)
class PhpLayout:
    """Map version identifiers onto configuration paths under *etc_root*."""

    etc_root: Path = Path("/usr/local/etc/valet-php")

    def version_dir(self, version: str) -> Path:
        """Return the configuration folder for *version*."""
        return self.etc_root / version

    def pool_config_path(self, version: str) -> Path:
        """Return the PHP-FPM pool configuration file for *version*."""
        if version in _FLAT_POOL_VERSIONS:
            return self.version_dir(version) / "php-fpm.conf"
        return self.version_dir(version) / "php-fpm.d" / "www.conf"

    def conf_d_path(self, version: str) -> Path:
        """Return the ``conf.d`` fragment directory for *version*."""
        parent = self.pool_config_path(version).parent
        if parent.name == "php-fpm.d":
            parent = parent.parent
        return parent / "conf.d"

    def performance_path(self, version: str) -> Path:
        """Return the performance tuning fragment for *version*."""
        return self.conf_d_path(version) / PERFORMANCE_FILE

    def extension_marker(self, version: str, module: str, *, enabled: bool) -> Path:
        """Return the enabled or disabled marker file for *module*."""
        name = f"ext-{module}.ini" if enabled else f"ext-{module}.ini.disabled"
        return self.conf_d_path(version) / name


__all__ = ["PERFORMANCE_FILE", "PhpLayout"]
