"""Filesystem helpers that keep files owned by the workstation user.

phpvm usually runs under ``sudo``; files it writes into the user's PHP
configuration tree must still belong to that user or Homebrew and PHP-FPM
will refuse to touch them later.
"""
from __future__ import annotations

import os
import shutil
from pathlib import Path


def ensure_dir_exists(path: Path, owner: str | None = None, *, mode: int = 0o755) -> bool:
    """Create *path* (and parents) when missing; return whether it was created."""
    if path.is_dir():
        return False
    path.mkdir(mode=mode, parents=True, exist_ok=True)
    _maybe_chown(path, owner)
    return True


def put_as_user(path: Path, contents: str, owner: str | None, *, mode: int = 0o644) -> None:
    """Atomically write *contents* to *path* and hand it to *owner*."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp = path.with_name(f".{path.name}.phpvm-tmp")
    temp.write_text(contents, encoding="utf-8")
    os.chmod(temp, mode)
    _maybe_chown(temp, owner)
    temp.replace(path)


def move(source: Path, destination: Path) -> None:
    """Rename *source* to *destination*, replacing any existing file."""
    source.replace(destination)


def _maybe_chown(path: Path, owner: str | None) -> None:
    if not owner or not _running_as_root():
        return
    shutil.chown(path, user=owner)


def _running_as_root() -> bool:
    return hasattr(os, "geteuid") and os.geteuid() == 0


__all__ = ["ensure_dir_exists", "move", "put_as_user"]
