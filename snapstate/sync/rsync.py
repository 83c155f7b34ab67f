"""
rsync-backed directory mirror.

Runs ``rsync -aAX --delete SRC/ DST/``: archive mode plus ACLs and extended
attributes, deleting destination-only files.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from .base import MirrorError

logger = logging.getLogger(__name__)


class RsyncMirror:
    """Mirror directories by shelling out to rsync.

    Example:
        >>> RsyncMirror().mirror(Path("/var/lib/snapstate/snapshots/s1/etc"), Path("/etc"))
    """

    def __init__(self, rsync_binary: str = "rsync") -> None:
        self.rsync_binary = rsync_binary

    def command(self, source: Path, destination: Path) -> list[str]:
        # Trailing slashes: copy the contents, not the directory itself
        return [
            self.rsync_binary,
            "-aAX",
            "--delete",
            f"{source}/",
            f"{destination}/",
        ]

    def mirror(self, source: Path, destination: Path) -> None:
        if not source.is_dir():
            raise MirrorError(f"Source directory {source} does not exist")

        cmd = self.command(source, destination)
        logger.debug("Running rsync", extra={"command": cmd})

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except OSError as e:
            raise MirrorError(f"Could not run {self.rsync_binary}: {e}") from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise MirrorError(
                f"rsync exited with status {result.returncode} for {destination}: {stderr}"
            )
