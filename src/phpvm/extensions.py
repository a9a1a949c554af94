"""Enable and disable PHP extensions by renaming ``conf.d`` marker files.

An extension is enabled when ``conf.d/ext-<name>.ini`` exists and disabled
when it has been renamed to ``ext-<name>.ini.disabled``. When neither file
exists the extension was never provisioned for that version and nothing is
touched.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .catalog import VersionCatalog, extension_package
from .filesystem import move
from .layout import PhpLayout
from .linked import linked_version
from .providers.brew import BrewProvider

LOGGER = logging.getLogger(__name__)

Notifier = Callable[[str], None]

_AUTOSTART_PATTERN = re.compile(r"xdebug\.remote_autostart=[01]")


class ExtensionState(str, Enum):
    """Marker state of one extension for one version."""

    ENABLED = "enabled"
    DISABLED = "disabled"
    ABSENT = "absent"


@dataclass(slots=True)
class ExtensionToggler:
    """Toggle extensions of the currently linked PHP version."""

    catalog: VersionCatalog
    brew: BrewProvider
    layout: PhpLayout
    php_bin: Path
    notify: Notifier = LOGGER.info

    def state(self, module: str, version: str | None = None) -> ExtensionState:
        """Return the marker state of *module*."""
        version = version or self._linked()
        if self.layout.extension_marker(version, module, enabled=True).exists():
            return ExtensionState.ENABLED
        if self.layout.extension_marker(version, module, enabled=False).exists():
            return ExtensionState.DISABLED
        return ExtensionState.ABSENT

    def is_enabled(self, module: str) -> bool:
        """Report whether *module* is enabled for the linked version."""
        version = self._linked()
        self.brew.ensure_installed(extension_package(version, module))
        enabled = self.state(module, version) is ExtensionState.ENABLED
        self.notify(f"{module} is {'enabled' if enabled else 'disabled'}.")
        return enabled

    def enable(self, module: str) -> bool:
        """Enable *module*; return ``False`` when there was nothing to do."""
        version = self._linked()
        self.brew.ensure_installed(extension_package(version, module))
        state = self.state(module, version)
        if state is ExtensionState.ENABLED:
            self.notify(f"{module} was already enabled.")
            return False
        if state is ExtensionState.ABSENT:
            self.notify(f"{module} has no configuration for PHP {version}; nothing to enable.")
            return False
        move(
            self.layout.extension_marker(version, module, enabled=False),
            self.layout.extension_marker(version, module, enabled=True),
        )
        self.notify(f"Enabled {module}")
        return True

    def disable(self, module: str) -> bool:
        """Disable *module*; return ``False`` when there was nothing to do."""
        version = self._linked()
        self.brew.ensure_installed(extension_package(version, module))
        state = self.state(module, version)
        if state is ExtensionState.DISABLED:
            self.notify(f"{module} was already disabled.")
            return False
        if state is ExtensionState.ABSENT:
            self.notify(f"{module} has no configuration for PHP {version}; nothing to disable.")
            return False
        move(
            self.layout.extension_marker(version, module, enabled=True),
            self.layout.extension_marker(version, module, enabled=False),
        )
        self.notify(f"Disabled {module}")
        return True

    def set_xdebug_autostart(self, enabled: bool) -> bool:
        """Flip ``xdebug.remote_autostart`` in the performance fragment."""
        path = self.layout.performance_path(self._linked())
        if not path.exists():
            self.notify(f"Cannot find {path.name}, please run `phpvm install`.")
            return False
        contents = path.read_text(encoding="utf-8")
        flag = "1" if enabled else "0"
        updated = _AUTOSTART_PATTERN.sub(f"xdebug.remote_autostart={flag}", contents)
        if updated != contents:
            path.write_text(updated, encoding="utf-8")
        self.notify(f"xdebug.remote_autostart is now {'enabled' if enabled else 'disabled'}.")
        return True

    def _linked(self) -> str:
        return linked_version(self.php_bin, self.catalog)


__all__ = ["ExtensionState", "ExtensionToggler"]
