"""Test doubles shared across the suite."""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from phpvm.providers.brew import BrewError, LinkResult


@dataclass
class FakeBrew:
    """In-memory stand-in for :class:`phpvm.providers.brew.BrewProvider`.

    ``link``/``unlink`` move the ``php`` symlink the way Homebrew would so the
    linked version can be resolved from the filesystem.
    """

    php_bin: Path
    cellar: Path
    installed_set: set[str] = field(default_factory=set)
    taps: set[str] = field(default_factory=set)
    fail_link: set[str] = field(default_factory=set)
    fail_unlink: set[str] = field(default_factory=set)
    raise_link: set[str] = field(default_factory=set)
    failing_commands: set[str] = field(default_factory=set)
    calls: list[tuple[str, ...]] = field(default_factory=list)
    brew_bin: str = "brew"

    def point_at(self, package: str) -> None:
        self.php_bin.parent.mkdir(parents=True, exist_ok=True)
        if self.php_bin.is_symlink():
            self.php_bin.unlink()
        self.php_bin.symlink_to(self.cellar / package / "1.0" / "bin" / "php")

    def installed(self, package: str) -> bool:
        return package in self.installed_set

    def installed_packages(self) -> list[str]:
        return sorted(self.installed_set)

    def install(self, package: str, options: Sequence[str] = ()) -> None:
        self.calls.append(("install", package))
        self.installed_set.add(package)

    def ensure_installed(self, package: str, options: Sequence[str] = ()) -> bool:
        if self.installed(package):
            return False
        self.install(package, options)
        return True

    def uninstall(self, package: str, *, force: bool = False) -> None:
        self.calls.append(("uninstall", package))
        self.installed_set.discard(package)

    def has_tap(self, tap: str) -> bool:
        return tap in self.taps

    def tap(self, tap: str) -> None:
        self.calls.append(("tap", tap))
        self.taps.add(tap)

    def untap(self, tap: str) -> None:
        self.calls.append(("untap", tap))
        self.taps.discard(tap)

    def link(self, package: str, *, force: bool = False) -> LinkResult:
        self.calls.append(("link", package))
        if package in self.raise_link:
            raise BrewError(f"brew link {package} crashed")
        if package in self.fail_link:
            return LinkResult(output=f"Error: could not link {package}", succeeded=False)
        self.point_at(package)
        return LinkResult(output="Linking... 25 symlinks", succeeded=True)

    def unlink(self, package: str) -> LinkResult:
        self.calls.append(("unlink", package))
        if package in self.fail_unlink:
            return LinkResult(output=f"Error: could not unlink {package}", succeeded=False)
        if self.php_bin.is_symlink():
            self.php_bin.unlink()
        return LinkResult(output="Unlinking... 25 symlinks removed", succeeded=True)

    def restart_service(self, package: str) -> None:
        self.calls.append(("restart", package))

    def stop_service(self, packages: str | Sequence[str]) -> None:
        names = [packages] if isinstance(packages, str) else list(packages)
        for package in names:
            if package in self.installed_set:
                self.calls.append(("stop", package))

    def run_as_user(self, command: str, *, check: bool = True) -> str:
        self.calls.append(("shell", command))
        if any(fragment in command for fragment in self.failing_commands):
            raise BrewError(f"{command} failed (exit 1): boom")
        if command == "php -v":
            return "PHP 7.4.3 (cli)\n"
        return ""

