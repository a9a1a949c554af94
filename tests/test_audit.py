"""Tests for the installation audit and repair."""
from __future__ import annotations

import pytest

from phpvm.audit import InstallationAuditor, InstallationInconsistentError
from phpvm.catalog import VersionCatalog
from phpvm.layout import PhpLayout
from tests.fakes import FakeBrew


@pytest.fixture
def auditor(catalog: VersionCatalog, fake_brew: FakeBrew, layout: PhpLayout) -> InstallationAuditor:
    """Return an auditor with quiet notifiers."""
    return InstallationAuditor(
        catalog=catalog,
        brew=fake_brew,
        layout=layout,
        notify=lambda message: None,
        warn=lambda message: None,
    )


def _seed_deprecated(fake_brew: FakeBrew, layout: PhpLayout) -> None:
    fake_brew.installed_set.update({"php72", "drush"})
    fake_brew.taps.add("homebrew/php")
    marker = layout.version_dir("7.1") / "ext-intl.ini"
    marker.parent.mkdir(parents=True)
    marker.write_text("extension=intl.so\n", encoding="utf-8")


def test_clean_installation_has_no_findings(auditor: InstallationAuditor) -> None:
    """A fresh installation passes the check."""
    assert auditor.audit() == []
    auditor.check()


def test_audit_reports_every_leftover(
    auditor: InstallationAuditor,
    fake_brew: FakeBrew,
    layout: PhpLayout,
) -> None:
    """Packages, enabled deprecated extensions and the old tap are reported."""
    _seed_deprecated(fake_brew, layout)

    findings = auditor.audit()

    assert [finding.id for finding in findings] == [
        "package.php72",
        "package.drush",
        "extension.7.1.intl",
        "tap.homebrew-php",
    ]
    assert {finding.category for finding in findings} == {"package", "extension", "tap"}
    assert fake_brew.calls == []


def test_check_raises_with_findings(
    auditor: InstallationAuditor,
    fake_brew: FakeBrew,
    layout: PhpLayout,
) -> None:
    """Any finding blocks the caller."""
    _seed_deprecated(fake_brew, layout)

    with pytest.raises(InstallationInconsistentError) as excinfo:
        auditor.check()

    assert len(excinfo.value.findings) == 4
    assert "phpvm fix" in str(excinfo.value)


def test_fix_continues_past_failures(
    auditor: InstallationAuditor,
    fake_brew: FakeBrew,
    layout: PhpLayout,
) -> None:
    """A failing step is recorded and the remaining steps still run."""
    _seed_deprecated(fake_brew, layout)
    fake_brew.failing_commands.add("grep php70-")

    report = auditor.fix()

    assert [outcome.step_id for outcome in report.failures] == ["fix.packages.prefix"]
    assert "boom" in report.failures[0].detail
    assert layout.version_dir("7.1").joinpath("ext-intl.ini.disabled").exists()
    assert not layout.version_dir("7.1").joinpath("ext-intl.ini").exists()
    assert ("untap", "homebrew/php") in fake_brew.calls

    shell = [call[1] for call in fake_brew.calls if call[0] == "shell"]
    assert shell[-5:] == [
        "brew uninstall valet-php@7.4",
        "brew install valet-php@7.4",
        "brew unlink valet-php@7.4",
        "brew link valet-php@7.4 --force --overwrite",
        "php -v",
    ]
    assert not any("--force valet-php" in command for command in shell)


def test_fix_reinstall_force_removes_every_formula(
    auditor: InstallationAuditor,
    fake_brew: FakeBrew,
    catalog: VersionCatalog,
) -> None:
    """The reinstall flag force-uninstalls the whole catalog first."""
    report = auditor.fix(reinstall=True)

    shell = [call[1] for call in fake_brew.calls if call[0] == "shell"]
    forced = [command for command in shell if command.startswith("brew uninstall --force")]
    assert forced == [f"brew uninstall --force {package}" for package in catalog.package_names()]
    assert shell.index(forced[-1]) < shell.index("brew install valet-php@7.4")
    assert report.failures == []


def test_fix_ends_with_linked_php_warning(
    auditor: InstallationAuditor,
) -> None:
    """The repair finishes by reminding the user to check php -v."""
    warnings: list[str] = []
    messages: list[str] = []
    auditor.warn = warnings.append
    auditor.notify = messages.append

    auditor.fix()

    assert "Linked PHP should be php 7.4" in warnings[-1]
    assert messages[-1] == "PHP 7.4.3 (cli)"
