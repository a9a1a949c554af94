"""Tests for the Homebrew provider."""
from __future__ import annotations

import subprocess
from collections.abc import Sequence

import pytest

from phpvm.providers import brew as brew_module
from phpvm.providers.brew import BrewError, BrewProvider, sanitize_link_output


class DummyResult:
    """Simple stand-in for ``subprocess.CompletedProcess``."""

    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        """Initialise the dummy result."""
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class Recorder:
    """Replay canned results keyed by the brew sub-command."""

    def __init__(self, results: dict[str, DummyResult] | None = None) -> None:
        self.results = results or {}
        self.commands: list[list[str]] = []

    def __call__(self, args: Sequence[str], **kwargs: object) -> DummyResult:
        command = list(args)
        self.commands.append(command)
        for key, result in self.results.items():
            if key in " ".join(command):
                return result
        return DummyResult()


@pytest.fixture
def recorder(monkeypatch: pytest.MonkeyPatch) -> Recorder:
    """Patch subprocess.run and return the recorder."""
    recorder = Recorder()
    monkeypatch.setattr(subprocess, "run", recorder)
    monkeypatch.setattr(brew_module, "_running_as_root", lambda: False)
    return recorder


def test_installed_checks_versions_output(recorder: Recorder) -> None:
    """A formula is installed when brew lists a version for it."""
    recorder.results["valet-php@7.4"] = DummyResult(stdout="valet-php@7.4 7.4.3\n")
    provider = BrewProvider()

    assert provider.installed("valet-php@7.4") is True
    assert provider.installed("valet-php@7.3") is False
    assert recorder.commands[0] == ["brew", "list", "--formula", "--versions", "valet-php@7.4"]


def test_ensure_installed_only_installs_missing(recorder: Recorder) -> None:
    """ensure_installed runs brew install once for a missing formula."""
    provider = BrewProvider()

    assert provider.ensure_installed("valet-php@7.3") is True
    assert recorder.commands[-1] == ["brew", "install", "valet-php@7.3"]


def test_link_reports_failure_without_raising(recorder: Recorder) -> None:
    """Link failures are returned to the caller instead of raised."""
    recorder.results["link"] = DummyResult(returncode=1, stderr="Error: conflict")
    provider = BrewProvider()

    result = provider.link("valet-php@7.3", force=True)

    assert result.succeeded is False
    assert "conflict" in result.output
    assert recorder.commands[-1] == [
        "brew",
        "link",
        "valet-php@7.3",
        "--force",
        "--overwrite",
    ]


def test_sanitize_link_output_drops_path_hints() -> None:
    """Everything after the symlink count is removed."""
    output = (
        "Linking /usr/local/Cellar/valet-php@7.3/7.3.9... 25 symlinks created\n\n"
        "If you need to have this software first in your PATH instead consider running:\n"
        "  echo 'export PATH=...' >> ~/.zshrc\n"
    )

    assert sanitize_link_output(output) == (
        "Linking /usr/local/Cellar/valet-php@7.3/7.3.9... 25 symlinks"
    )
    assert sanitize_link_output("  nothing to do \n") == "nothing to do"


def test_has_tap_parses_tap_list(recorder: Recorder) -> None:
    """Tap membership is read from brew tap output."""
    recorder.results["tap"] = DummyResult(stdout="homebrew/core\nhenkrehorst/php\n")
    provider = BrewProvider()

    assert provider.has_tap("henkrehorst/php") is True
    assert provider.has_tap("homebrew/php") is False


def test_stop_service_skips_missing_formulae(recorder: Recorder) -> None:
    """Only installed formulae have their services stopped."""
    recorder.results["--versions valet-php@7.4"] = DummyResult(stdout="valet-php@7.4 7.4.3\n")
    provider = BrewProvider()

    provider.stop_service(["valet-php@7.3", "valet-php@7.4"])

    assert ["brew", "services", "stop", "valet-php@7.4"] in recorder.commands
    assert ["brew", "services", "stop", "valet-php@7.3"] not in recorder.commands


def test_failing_command_raises_brew_error(recorder: Recorder) -> None:
    """Checked commands raise with the captured stderr."""
    recorder.results["services restart"] = DummyResult(returncode=1, stderr="launchctl failed")
    provider = BrewProvider()

    with pytest.raises(BrewError, match="launchctl failed"):
        provider.restart_service("valet-php@7.4")


def test_missing_binary_raises_brew_error(monkeypatch: pytest.MonkeyPatch) -> None:
    """A missing brew executable surfaces as BrewError."""

    def fake_run(args: Sequence[str], **kwargs: object) -> DummyResult:
        raise FileNotFoundError(args[0])

    monkeypatch.setattr(subprocess, "run", fake_run)

    with pytest.raises(BrewError, match="not found"):
        BrewProvider(brew_bin="/nope/brew").installed_packages()


def test_commands_run_as_workstation_user_under_sudo(
    recorder: Recorder,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """As root every command is re-issued through sudo -u."""
    monkeypatch.setattr(brew_module, "_running_as_root", lambda: True)
    provider = BrewProvider(user="alice")

    provider.tap("henkrehorst/php")
    provider.run_as_user("php -v")

    assert recorder.commands == [
        ["sudo", "-u", "alice", "-H", "brew", "tap", "henkrehorst/php"],
        ["sudo", "-u", "alice", "-H", "/bin/sh", "-c", "php -v"],
    ]
