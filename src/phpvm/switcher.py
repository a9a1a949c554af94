"""Switch the linked PHP version, relinking the previous one on failure.

A switch walks through the states of :class:`SwitchState` in order. The only
compensating action is the relink of the previous version when linking the
target fails; a failed unlink aborts without touching anything else, and an
interruption between unlink and relink is not recovered automatically.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .catalog import UnsupportedVersionError, VersionCatalog
from .linked import linked_version
from .providers.brew import BrewError, BrewProvider
from .service import InstallResult, PhpFpmService

LOGGER = logging.getLogger(__name__)

Notifier = Callable[[str], None]

EOL_NOTICE = "https://www.php.net/supported-versions.php"


class SwitchState(str, Enum):
    """States a version switch moves through."""

    IDLE = "idle"
    VALIDATING = "validating"
    INSTALLING_IF_MISSING = "installing-if-missing"
    UNLINKING = "unlinking"
    RELINKING = "relinking"
    ROLLING_BACK = "rolling-back"
    RESTARTING = "restarting"
    RECONCILING = "reconciling"
    DONE = "done"
    ABORTED = "aborted"


@dataclass(slots=True)
class SwitchReport:
    """Observable record of one :meth:`VersionSwitcher.switch_to` call."""

    target: str
    previous: str | None = None
    states: list[SwitchState] = field(default_factory=lambda: [SwitchState.IDLE])
    warnings: list[str] = field(default_factory=list)
    changed: bool = False
    installed_target: bool = False
    rolled_back: bool | None = None
    rollback_error: str | None = None
    install: InstallResult | None = None

    @property
    def state(self) -> SwitchState:
        """Return the current (or terminal) state."""
        return self.states[-1]


class LinkFailureError(RuntimeError):
    """Raised when ``brew link`` or ``brew unlink`` reports failure."""

    def __init__(self, message: str, report: SwitchReport) -> None:
        """Attach the switch *report* so callers can inspect the rollback."""
        super().__init__(message)
        self.report = report


@dataclass(slots=True)
class VersionSwitcher:
    """Make *target* the linked PHP version."""

    catalog: VersionCatalog
    brew: BrewProvider
    service: PhpFpmService
    php_bin: Path
    notify: Notifier = LOGGER.info
    warn: Notifier = LOGGER.warning

    def switch_to(self, target: str) -> SwitchReport:
        """Run the switch workflow and return its report."""
        report = SwitchReport(target=target)
        try:
            self._run(report)
        except Exception:
            if report.state not in (SwitchState.DONE, SwitchState.ABORTED):
                report.states.append(SwitchState.ABORTED)
            raise
        return report

    # ------------------------------------------------------------------
    def _run(self, report: SwitchReport) -> None:
        target = report.target

        self._enter(report, SwitchState.VALIDATING)
        if not self.catalog.contains(target):
            raise UnsupportedVersionError(target, self.catalog.all())
        if target == linked_version(self.php_bin, self.catalog):
            self.notify("Already on this version")
            self._enter(report, SwitchState.DONE)
            return
        if self.catalog.is_end_of_life(target):
            message = f"Caution! PHP {target} is end-of-life. See {EOL_NOTICE} for details."
            report.warnings.append(message)
            self.warn(message)

        target_package = self.catalog.package_name_of(target)

        self._enter(report, SwitchState.INSTALLING_IF_MISSING)
        if not self.brew.installed(target_package):
            self.notify(f"[{target_package}] Installing")
            report.installed_target = self.brew.ensure_installed(target_package)

        self._enter(report, SwitchState.UNLINKING)
        # Installing may relink formulae, so the previous version is read again.
        previous = linked_version(self.php_bin, self.catalog)
        report.previous = previous
        previous_package = self.catalog.package_name_of(previous)
        self.notify(f"[{previous_package}] Unlinking")
        unlinked = self.brew.unlink(previous_package)
        if unlinked.output:
            self.notify(unlinked.output)
        if not unlinked.succeeded:
            self._enter(report, SwitchState.ABORTED)
            raise LinkFailureError(
                f"Could not unlink PHP {previous}. There appears to be an issue with "
                "that installation; see the output above for more information.",
                report,
            )
        report.changed = True

        self._enter(report, SwitchState.RELINKING)
        self.notify(f"[{target_package}] Linking")
        linked = self.brew.link(target_package, force=True)
        if linked.output:
            self.notify(linked.output)
        if not linked.succeeded:
            self.warn(
                f"Could not link PHP {target}. There appears to be an issue with that "
                "installation; see the output above for more information."
            )
            self._roll_back(report, previous_package)
            self._enter(report, SwitchState.ABORTED)
            raise LinkFailureError(f"Could not link PHP {target}.", report)

        self._enter(report, SwitchState.RESTARTING)
        self.service.stop()

        self._enter(report, SwitchState.RECONCILING)
        report.install = self.service.install()

        self._enter(report, SwitchState.DONE)
        self.notify(f"phpvm is now using {target_package}")

    def _roll_back(self, report: SwitchReport, previous_package: str) -> None:
        self._enter(report, SwitchState.ROLLING_BACK)
        self.notify("Linking back to previous version to prevent broken installation!")
        try:
            result = self.brew.link(previous_package, force=True)
        except BrewError as exc:
            LOGGER.error("Rollback link of %s failed: %s", previous_package, exc)
            report.rolled_back = False
            report.rollback_error = str(exc)
            return
        if result.output:
            self.notify(result.output)
        report.rolled_back = result.succeeded
        if not result.succeeded:
            LOGGER.error("Rollback link of %s failed: %s", previous_package, result.output)
            report.rollback_error = result.output or "brew link reported failure"

    def _enter(self, report: SwitchReport, state: SwitchState) -> None:
        LOGGER.debug("switch %s: %s -> %s", report.target, report.state.value, state.value)
        report.states.append(state)


__all__ = ["LinkFailureError", "SwitchReport", "SwitchState", "VersionSwitcher"]
