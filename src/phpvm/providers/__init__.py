"""Wrappers around the ``brew`` and ``pecl`` executables."""
from __future__ import annotations

from .brew import BrewError, BrewProvider, LinkResult
from .pecl import PeclCustomProvider, PeclError, PeclProvider

__all__ = [
    "BrewError",
    "BrewProvider",
    "LinkResult",
    "PeclCustomProvider",
    "PeclError",
    "PeclProvider",
]
