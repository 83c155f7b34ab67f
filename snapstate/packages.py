"""
Installed-package manifest.

Each snapshot stores the output of the package query (``pacman -Q`` by
default) as an opaque string, so an operator can see which packages were
installed when the snapshot was taken.
"""

from __future__ import annotations

import logging
import shlex
import subprocess

logger = logging.getLogger(__name__)


def query_packages(command: str = "pacman -Q") -> str:
    """Run the package query and return its output.

    A missing or failing package manager yields an empty manifest and a
    warning; it never blocks a snapshot.
    """
    argv = shlex.split(command)
    if not argv:
        return ""

    try:
        result = subprocess.run(argv, capture_output=True, text=True, check=False)
    except OSError as e:
        logger.warning(f"Could not run package query '{command}': {e}")
        return ""

    if result.returncode != 0:
        logger.warning(
            f"Package query '{command}' exited with status {result.returncode}",
            extra={"stderr": (result.stderr or "").strip()},
        )
        return ""

    return result.stdout.rstrip("\n")
