"""Homebrew provider: formula, tap, link and service operations."""
from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)


class BrewError(RuntimeError):
    """Raised when a Homebrew command fails."""


@dataclass(frozen=True, slots=True)
class LinkResult:
    """Outcome of ``brew link`` / ``brew unlink``."""

    output: str
    succeeded: bool


def sanitize_link_output(output: str) -> str:
    """Drop the PATH export hints brew prints after the symlink count."""
    marker = "symlinks created"
    index = output.find(marker)
    if index == -1:
        return output.strip()
    return output[: index + len("symlinks")].strip()


@dataclass(slots=True)
class BrewProvider:
    """Run Homebrew commands on behalf of the workstation user.

    Homebrew refuses to run as root, so when phpvm itself runs under ``sudo``
    every command is re-issued as *user* via ``sudo -u``.
    """

    user: str | None = None
    brew_bin: str = "brew"

    def installed(self, package: str) -> bool:
        """Return ``True`` when *package* is installed."""
        result = self._brew(["list", "--formula", "--versions", package], check=False)
        return result.returncode == 0 and bool((result.stdout or "").strip())

    def installed_packages(self) -> list[str]:
        """Return the names of every installed formula."""
        result = self._brew(["list", "--formula"])
        return [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]

    def install(self, package: str, options: Sequence[str] = ()) -> None:
        """Install *package* (blocking)."""
        LOGGER.info("[%s] Installing", package)
        self._brew(["install", package, *options])

    def ensure_installed(self, package: str, options: Sequence[str] = ()) -> bool:
        """Install *package* unless present; return whether an install ran."""
        if self.installed(package):
            return False
        self.install(package, options)
        return True

    def uninstall(self, package: str, *, force: bool = False) -> None:
        """Uninstall *package*."""
        args = ["uninstall", package]
        if force:
            args.append("--force")
        self._brew(args)

    def has_tap(self, tap: str) -> bool:
        """Return ``True`` when *tap* is tapped."""
        result = self._brew(["tap"], check=False)
        taps = {line.strip() for line in (result.stdout or "").splitlines()}
        return tap in taps

    def tap(self, tap: str) -> None:
        """Tap *tap*."""
        self._brew(["tap", tap])

    def untap(self, tap: str) -> None:
        """Remove *tap*."""
        self._brew(["untap", tap])

    def link(self, package: str, *, force: bool = False) -> LinkResult:
        """Link *package*; report failure instead of raising."""
        args = ["link", package]
        if force:
            args.extend(["--force", "--overwrite"])
        result = self._brew(args, check=False)
        output = sanitize_link_output(_combined_output(result))
        return LinkResult(output=output, succeeded=result.returncode == 0)

    def unlink(self, package: str) -> LinkResult:
        """Unlink *package*; report failure instead of raising."""
        result = self._brew(["unlink", package], check=False)
        return LinkResult(output=_combined_output(result).strip(), succeeded=result.returncode == 0)

    def restart_service(self, package: str) -> None:
        """Restart the launchd service of *package*."""
        LOGGER.info("[%s] Restarting", package)
        self._brew(["services", "restart", package])

    def stop_service(self, packages: str | Sequence[str]) -> None:
        """Stop the services of every installed package in *packages*."""
        names = [packages] if isinstance(packages, str) else list(packages)
        for package in names:
            if not self.installed(package):
                continue
            LOGGER.info("[%s] Stopping", package)
            self._brew(["services", "stop", package], check=False)

    def run_as_user(self, command: str, *, check: bool = True) -> str:
        """Run a shell *command* as the workstation user and return its output."""
        args = self._as_user(["/bin/sh", "-c", command])
        result = self._run_command(args, check=check, error_prefix=command)
        return _combined_output(result)

    # ------------------------------------------------------------------
    def _brew(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        command = self._as_user([self.brew_bin, *args])
        return self._run_command(
            command,
            check=check,
            error_prefix=f"{self.brew_bin} {' '.join(args)}",
        )

    def _as_user(self, args: list[str]) -> list[str]:
        if self.user and self.user != "root" and _running_as_root():
            return ["sudo", "-u", self.user, "-H", *args]
        return args

    def _run_command(
        self,
        args: Sequence[str],
        *,
        check: bool,
        error_prefix: str,
    ) -> subprocess.CompletedProcess[str]:
        try:
            result = subprocess.run(  # noqa: S603, S607
                list(args),
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise BrewError(f"{args[0]} not found: {exc}") from exc
        if check and result.returncode != 0:
            stdout = getattr(result, "stdout", "") or ""
            stderr = getattr(result, "stderr", "") or ""
            message = stderr.strip() or stdout.strip() or "no output"
            raise BrewError(f"{error_prefix} failed (exit {result.returncode}): {message}")
        return result


def _combined_output(result: subprocess.CompletedProcess[str]) -> str:
    stdout = getattr(result, "stdout", "") or ""
    stderr = getattr(result, "stderr", "") or ""
    return stdout + stderr


def _running_as_root() -> bool:
    return hasattr(os, "geteuid") and os.geteuid() == 0


__all__ = ["BrewError", "BrewProvider", "LinkResult", "sanitize_link_output"]
