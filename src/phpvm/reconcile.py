"""Reconcile a PHP version's configuration with the local environment.

Three documents are touched each time a version becomes active:

* the PHP-FPM pool configuration, rewritten through :data:`POOL_SUBSTITUTIONS`;
* ``php.ini``, whose ``extension_dir`` directives are replaced by a single one
  pointing at the directory PECL reports;
* ``conf.d/z-performance.ini``, rendered once from a template and left alone
  afterwards because users are expected to edit it.

The pool and ``php.ini`` rewrites are pure text transforms applied to the
whole document, so running them again on their own output changes nothing.
"""
from __future__ import annotations

import logging
import os
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from .filesystem import ensure_dir_exists, put_as_user
from .layout import PhpLayout
from .templates import TemplateEngine

LOGGER = logging.getLogger(__name__)

PERFORMANCE_TEMPLATE = "php/z-performance.ini.j2"

# Older macOS releases link /etc/localtime into /usr/share/zoneinfo, High
# Sierra and later into /var/db/timezone/zoneinfo.
ZONEINFO_PREFIXES: tuple[str, ...] = ("/usr/share/zoneinfo/", "/var/db/timezone/zoneinfo/")
FALLBACK_TIMEZONE = "UTC"


class ConfigReconcileError(RuntimeError):
    """Raised when a configuration document cannot be reconciled."""


class ExtensionDirectorySource(Protocol):
    """Reports where the linked PHP keeps its extensions and ``php.ini``."""

    def get_extension_directory(self) -> str:
        """Return the extension directory of the linked PHP."""

    def get_php_ini_path(self) -> Path:
        """Return the ``php.ini`` of the linked PHP."""


@dataclass(frozen=True, slots=True)
class EnvironmentFacts:
    """Workstation facts written into every pool configuration."""

    user: str
    group: str
    socket_path: Path
    socket_mode: str
    error_log_path: Path


@dataclass(frozen=True, slots=True)
class PoolSubstitution:
    """Replace the whole line defining *key*, commented out or not."""

    key: str
    value: Callable[[EnvironmentFacts], str]
    pattern: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Compile the line pattern once for the lifetime of the substitution."""
        pattern = re.compile(rf"^;?[ \t]*{re.escape(self.key)}[ \t]*=.*$", re.MULTILINE)
        object.__setattr__(self, "pattern", pattern)

    def apply(self, contents: str, facts: EnvironmentFacts) -> str:
        """Return *contents* with each matching line set to ``key = value``."""
        line = f"{self.key} = {self.value(facts)}"
        return self.pattern.sub(lambda _match: line, contents)


POOL_SUBSTITUTIONS: tuple[PoolSubstitution, ...] = (
    PoolSubstitution("user", lambda facts: facts.user),
    PoolSubstitution("group", lambda facts: facts.group),
    PoolSubstitution("listen", lambda facts: str(facts.socket_path)),
    PoolSubstitution("listen.owner", lambda facts: facts.user),
    PoolSubstitution("listen.group", lambda facts: facts.group),
    PoolSubstitution("listen.mode", lambda facts: facts.socket_mode),
    PoolSubstitution("php_admin_value[error_log]", lambda facts: str(facts.error_log_path)),
)

_EXTENSION_DIR_PATTERN = re.compile(
    r'^[ \t]*extension_dir[ \t]*=[ \t]*"[^"\n]*"[ \t]*(?:\r?\n|\Z)',
    re.MULTILINE,
)


def apply_pool_substitutions(
    contents: str,
    facts: EnvironmentFacts,
    substitutions: Sequence[PoolSubstitution] = POOL_SUBSTITUTIONS,
) -> str:
    """Return *contents* with every substitution applied."""
    for substitution in substitutions:
        contents = substitution.apply(contents, facts)
    return contents


def rewrite_extension_dir(contents: str, extension_dir: str) -> str:
    """Drop every ``extension_dir`` directive and prepend a fresh one."""
    stripped = _EXTENSION_DIR_PATTERN.sub("", contents)
    return f'extension_dir = "{extension_dir}"\n' + stripped


def system_timezone(localtime_path: Path = Path("/etc/localtime")) -> str:
    """Return the host's zone name read from the ``localtime`` symlink."""
    try:
        target = os.readlink(localtime_path)
    except OSError as exc:
        LOGGER.warning(
            "Cannot read timezone from %s (%s); falling back to %s",
            localtime_path,
            exc,
            FALLBACK_TIMEZONE,
        )
        return FALLBACK_TIMEZONE
    for prefix in ZONEINFO_PREFIXES:
        target = target.replace(prefix, "")
    return target


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    """What :meth:`ConfigReconciler.reconcile` changed."""

    version: str
    pool_config: Path
    pool_changed: bool
    php_ini: Path
    php_ini_changed: bool
    performance_written: bool


@dataclass(slots=True)
class ConfigReconciler:
    """Rewrite a version's generated configuration to match *facts*."""

    layout: PhpLayout
    facts: EnvironmentFacts
    templates: TemplateEngine
    extension_source: ExtensionDirectorySource
    localtime_path: Path = Path("/etc/localtime")

    def reconcile(self, version: str) -> ReconcileResult:
        """Reconcile every configuration document of *version*."""
        pool_path, pool_changed = self.update_pool_configuration(version)
        performance_written = self.write_performance_configuration(version)
        ini_path, ini_changed = self.update_php_ini()
        return ReconcileResult(
            version=version,
            pool_config=pool_path,
            pool_changed=pool_changed,
            php_ini=ini_path,
            php_ini_changed=ini_changed,
            performance_written=performance_written,
        )

    def update_pool_configuration(self, version: str) -> tuple[Path, bool]:
        """Apply the pool substitutions to the version's FPM configuration."""
        path = self.layout.pool_config_path(version)
        contents = _read_document(path)
        updated = apply_pool_substitutions(contents, self.facts)
        if updated == contents:
            return path, False
        put_as_user(path, updated, self.facts.user)
        return path, True

    def update_php_ini(self) -> tuple[Path, bool]:
        """Point ``php.ini`` at the linked version's extension directory."""
        extension_dir = self.extension_source.get_extension_directory()
        path = Path(self.extension_source.get_php_ini_path())
        contents = _read_document(path)
        updated = rewrite_extension_dir(contents, extension_dir)
        if updated == contents:
            return path, False
        put_as_user(path, updated, self.facts.user)
        return path, True

    def write_performance_configuration(self, version: str) -> bool:
        """Render ``z-performance.ini`` unless it already exists."""
        path = self.layout.performance_path(version)
        if path.exists():
            return False
        contents = self.templates.render_to_string(
            PERFORMANCE_TEMPLATE,
            {"timezone": system_timezone(self.localtime_path)},
        )
        ensure_dir_exists(path.parent, self.facts.user)
        put_as_user(path, contents, self.facts.user)
        return True


def _read_document(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigReconcileError(
            f"Configuration file {path} is missing; reinstall the PHP formula."
        ) from exc


__all__ = [
    "ConfigReconcileError",
    "ConfigReconciler",
    "EnvironmentFacts",
    "ExtensionDirectorySource",
    "POOL_SUBSTITUTIONS",
    "PoolSubstitution",
    "ReconcileResult",
    "apply_pool_substitutions",
    "rewrite_extension_dir",
    "system_timezone",
]
