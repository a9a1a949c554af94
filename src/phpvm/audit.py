"""Detect and repair leftovers from deprecated PHP installations.

:meth:`InstallationAuditor.audit` is read-only and returns one
:class:`Finding` per problem. :meth:`InstallationAuditor.fix` plans a list of
:class:`RepairAction` objects and applies them in order; a failing action is
logged and recorded, and the remaining actions still run.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from .catalog import VersionCatalog
from .filesystem import move
from .layout import PhpLayout
from .providers.brew import BrewError, BrewProvider

LOGGER = logging.getLogger(__name__)

Notifier = Callable[[str], None]
FindingCategory = Literal["package", "extension", "tap"]

DEPRECATED_TAP = "homebrew/php"
DEPRECATED_PACKAGES: tuple[str, ...] = (
    "php56",
    "php70",
    "php71",
    "php72",
    "n98-magerun",
    "n98-magerun2",
    "drush",
)
DEPRECATED_PACKAGE_PREFIXES: tuple[str, ...] = ("php56-", "php70-", "php71-", "php72-")
DEPRECATED_TOOLS: tuple[str, ...] = ("n98-magerun", "drush")
DEPRECATED_EXTENSIONS: tuple[str, ...] = ("apcu", "intl", "mcrypt")


class InstallationInconsistentError(RuntimeError):
    """Raised when the audit finds leftovers that require ``phpvm fix``."""

    def __init__(self, findings: Sequence[Finding]) -> None:
        """Keep *findings* for callers that want to render them."""
        self.findings = tuple(findings)
        super().__init__(
            f"Found {len(self.findings)} problem(s) within the PHP installation. "
            "Run `phpvm fix` to try and resolve them."
        )


@dataclass(frozen=True, slots=True)
class Finding:
    """One problem detected by the audit."""

    id: str
    category: FindingCategory
    message: str
    remediation: str = "Run `phpvm fix`."


@dataclass(slots=True)
class RepairAction:
    """Single best-effort step of ``phpvm fix``."""

    step_id: str
    description: str
    apply: Callable[[], str | None]


@dataclass(frozen=True, slots=True)
class RepairOutcome:
    """Result of applying one :class:`RepairAction`."""

    step_id: str
    description: str
    succeeded: bool
    detail: str = ""


@dataclass(slots=True)
class FixReport:
    """Every outcome of a ``fix`` run, in execution order."""

    outcomes: list[RepairOutcome] = field(default_factory=list)

    @property
    def failures(self) -> list[RepairOutcome]:
        """Return the outcomes that failed."""
        return [outcome for outcome in self.outcomes if not outcome.succeeded]


@dataclass(slots=True)
class InstallationAuditor:
    """Audit and repair the Homebrew PHP installation."""

    catalog: VersionCatalog
    brew: BrewProvider
    layout: PhpLayout
    notify: Notifier = LOGGER.info
    warn: Notifier = LOGGER.warning

    def audit(self) -> list[Finding]:
        """Return every leftover that would break the installation."""
        findings: list[Finding] = []
        for package in DEPRECATED_PACKAGES:
            if self.brew.installed(package):
                findings.append(
                    Finding(
                        id=f"package.{package}",
                        category="package",
                        message=f"Deprecated package '{package}' is installed.",
                    )
                )
        for version in self.catalog.end_of_life():
            for extension in DEPRECATED_EXTENSIONS:
                marker = self._deprecated_marker(version, extension, enabled=True)
                if marker.exists():
                    findings.append(
                        Finding(
                            id=f"extension.{version}.{extension}",
                            category="extension",
                            message=f"Deprecated extension config {marker} is enabled.",
                        )
                    )
        if self.brew.has_tap(DEPRECATED_TAP):
            findings.append(
                Finding(
                    id="tap.homebrew-php",
                    category="tap",
                    message=f"Deprecated tap '{DEPRECATED_TAP}' is still tapped.",
                )
            )
        return findings

    def check(self) -> None:
        """Raise :class:`InstallationInconsistentError` when the audit finds problems."""
        self.notify("[php] Checking for errors within the php installation...")
        findings = self.audit()
        if findings:
            raise InstallationInconsistentError(findings)

    def plan_fix(self, *, reinstall: bool = False) -> list[RepairAction]:
        """Return the ordered repair actions for ``fix``."""
        brew_bin = self.brew.brew_bin
        actions: list[RepairAction] = []

        for prefix in DEPRECATED_PACKAGE_PREFIXES:
            actions.append(
                self._shell_action(
                    "fix.packages.prefix",
                    f"Removing all old {prefix} packages from {DEPRECATED_TAP} tap",
                    f"{brew_bin} list | grep {prefix} | xargs {brew_bin} uninstall",
                )
            )
        for tool in DEPRECATED_TOOLS:
            actions.append(
                self._shell_action(
                    "fix.packages.tool",
                    f"Removing all old {tool} packages from {DEPRECATED_TAP} tap",
                    f"{brew_bin} list | grep {tool} | xargs {brew_bin} uninstall",
                )
            )

        for version in self.catalog.end_of_life():
            actions.append(
                RepairAction(
                    step_id="fix.extensions.disable",
                    description=(
                        f"[php{version}] Disabling modules: {', '.join(DEPRECATED_EXTENSIONS)}"
                    ),
                    apply=lambda version=version: self._disable_deprecated(version),
                )
            )

        if reinstall:
            for package in self.catalog.package_names():
                actions.append(
                    self._shell_action(
                        "fix.reinstall.uninstall",
                        f"Trying to remove {package}...",
                        f"{brew_bin} uninstall --force {package}",
                    )
                )

        default_package = self.catalog.package_name_of(self.catalog.default)
        for step, command in (
            ("uninstall", f"{brew_bin} uninstall {default_package}"),
            ("install", f"{brew_bin} install {default_package}"),
            ("unlink", f"{brew_bin} unlink {default_package}"),
            ("link", f"{brew_bin} link {default_package} --force --overwrite"),
        ):
            actions.append(
                self._shell_action(
                    f"fix.default.{step}",
                    f"[{default_package}] {step.capitalize()}",
                    command,
                )
            )

        actions.append(
            RepairAction(
                step_id="fix.tap.remove",
                description=f"Untapping {DEPRECATED_TAP} when present",
                apply=self._untap_deprecated,
            )
        )
        return actions

    def fix(self, *, reinstall: bool = False) -> FixReport:
        """Apply every repair action, continuing past failures."""
        report = FixReport()
        for action in self.plan_fix(reinstall=reinstall):
            self.notify(action.description)
            try:
                detail = action.apply() or ""
            except (BrewError, OSError) as exc:
                LOGGER.warning("%s failed: %s", action.step_id, exc)
                self.warn(f"{action.description} failed: {exc}")
                report.outcomes.append(
                    RepairOutcome(action.step_id, action.description, False, str(exc))
                )
                continue
            if detail.strip():
                self.notify(detail.strip())
            report.outcomes.append(RepairOutcome(action.step_id, action.description, True, detail))

        self.warn(
            "Please check your linked php version, you might need to restart your terminal! "
            f"Linked PHP should be php {self.catalog.default}:"
        )
        try:
            self.notify(self.brew.run_as_user("php -v").strip())
        except (BrewError, OSError) as exc:
            self.warn(f"php -v failed: {exc}")
        return report

    # ------------------------------------------------------------------
    def _deprecated_marker(self, version: str, extension: str, *, enabled: bool) -> Path:
        suffix = "" if enabled else ".disabled"
        return self.layout.version_dir(version) / f"ext-{extension}.ini{suffix}"

    def _disable_deprecated(self, version: str) -> str:
        moved: list[str] = []
        for extension in DEPRECATED_EXTENSIONS:
            source = self._deprecated_marker(version, extension, enabled=True)
            if source.exists():
                move(source, self._deprecated_marker(version, extension, enabled=False))
                moved.append(extension)
        return f"disabled: {', '.join(moved)}" if moved else ""

    def _untap_deprecated(self) -> str:
        if not self.brew.has_tap(DEPRECATED_TAP):
            return ""
        self.notify(f"[brew] untapping formulae {DEPRECATED_TAP}")
        self.brew.untap(DEPRECATED_TAP)
        return f"untapped {DEPRECATED_TAP}"

    def _shell_action(self, step_id: str, description: str, command: str) -> RepairAction:
        def _apply(command: str = command) -> str:
            return self.brew.run_as_user(command)

        return RepairAction(step_id=step_id, description=description, apply=_apply)


__all__ = [
    "DEPRECATED_EXTENSIONS",
    "DEPRECATED_PACKAGES",
    "DEPRECATED_TAP",
    "Finding",
    "FixReport",
    "InstallationAuditor",
    "InstallationInconsistentError",
    "RepairAction",
    "RepairOutcome",
]
