"""
Locating files shipped with the package.

The default config and the sample catalog live inside ``CraftCalc/``. A
PyInstaller build unpacks them under ``sys._MEIPASS`` with the same relative
layout, so one lookup serves a checkout, an installed package and a frozen
executable.
"""
from __future__ import annotations

import sys
from pathlib import Path

# Directory containing the CraftCalc package (checkout root or site-packages)
PROJECT_ROOT = Path(__file__).resolve().parent.parent


def bundle_root() -> Path:
    """PyInstaller's unpack directory when frozen, otherwise PROJECT_ROOT."""
    if getattr(sys, "frozen", False) and hasattr(sys, "_MEIPASS"):
        return Path(sys._MEIPASS)  # type: ignore[attr-defined]
    return PROJECT_ROOT


def get_resource_path(relative_path: str) -> Path:
    """
    Absolute path of a bundled file.

    Parameters
    ----------
    relative_path : str
        Path below the bundle root, e.g. ``"CraftCalc/data/recipes.json"``.
    """
    return bundle_root() / relative_path
