"""
OverlayFS capture backend.

Mounts an overlay for each tracked directory:

    mount -t overlay overlay \\
        -o lowerdir=<tracked>,upperdir=<root>/snapshots/<name>/<key>,workdir=<root>/work/<key> \\
        <root>/overlay/<key>

Writes made through the mount target land in the upper directory, which is
the snapshot's stored layer for that directory.

Invariants:
    - The tracked directory is only ever the read-only lower layer
    - Mounts stay active after capture; the next capture of the same
      directory unmounts the previous one before mounting again
    - A snapshot's overlays are unmounted before the snapshot is deleted
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from pathlib import Path

from ..config import SnapStateConfig
from ..errors import MountFailureError
from ..models import CapturedLayer, TrackedDirectory
from .base import layer_path

logger = logging.getLogger(__name__)

_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


def _unescape(field: str) -> str:
    """Decode the octal escapes (\\040 for space) used in the mount table."""
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), field)


class OverlayManager:
    """Establishes and tears down overlay mounts for tracked directories.

    Attributes:
        config: SnapState configuration
        mount_binary: mount(8) executable
        umount_binary: umount(8) executable
        mounts_file: Kernel mount table

    Example:
        >>> overlays = OverlayManager(config)
        >>> layer = overlays.capture(TrackedDirectory("/etc", "etc"), "s1")
        >>> layer.path
        PosixPath('/var/lib/snapstate/snapshots/s1/etc')
    """

    backend_name = "overlay"

    def __init__(
        self,
        config: SnapStateConfig,
        mount_binary: str = "mount",
        umount_binary: str = "umount",
        mounts_file: str = "/proc/self/mounts",
    ) -> None:
        self.config = config
        self.mount_binary = mount_binary
        self.umount_binary = umount_binary
        self.mounts_file = mounts_file

    def target_dir(self, tracked: TrackedDirectory) -> Path:
        return self.config.overlay_dir / tracked.name

    def work_dir(self, tracked: TrackedDirectory) -> Path:
        return self.config.work_dir / tracked.name

    def mount_command(self, tracked: TrackedDirectory, upper: Path) -> list[str]:
        options = f"lowerdir={tracked.path},upperdir={upper},workdir={self.work_dir(tracked)}"
        return [
            self.mount_binary,
            "-t",
            "overlay",
            "overlay",
            "-o",
            options,
            str(self.target_dir(tracked)),
        ]

    def capture(self, tracked: TrackedDirectory, snapshot_name: str) -> CapturedLayer:
        target = self.target_dir(tracked)
        upper = layer_path(self.config, snapshot_name, tracked)

        try:
            for path in (target, self.work_dir(tracked), upper):
                path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise MountFailureError(
                f"Failed to create overlay directories for {tracked.path}: {e}",
                failed={tracked.path: str(e)},
                snapshot_name=snapshot_name,
            ) from e

        if self.is_mounted(tracked):
            logger.info(f"Releasing previous overlay on {target}")
            self.teardown(tracked)

        self._run(
            self.mount_command(tracked, upper),
            f"Failed to setup overlay for {tracked.path}",
            tracked.path,
            snapshot_name,
        )

        logger.info(
            f"Successfully setup overlay for {tracked.path}",
            extra={"snapshot": snapshot_name, "upper": str(upper), "target": str(target)},
        )
        return CapturedLayer(
            name=tracked.name,
            source=tracked.path,
            path=upper,
            backend=self.backend_name,
        )

    def is_mounted(self, tracked: TrackedDirectory) -> bool:
        return os.path.ismount(self.target_dir(tracked))

    def teardown(self, tracked: TrackedDirectory) -> None:
        if not self.is_mounted(tracked):
            return
        self._run(
            [self.umount_binary, str(self.target_dir(tracked))],
            f"Failed to release overlay for {tracked.path}",
            tracked.path,
            None,
        )
        logger.info(f"Released overlay for {tracked.path}")

    def mounts_backed_by(self, snapshot_name: str) -> list[Path]:
        """Overlay mount targets whose upper layer lives in the named snapshot.

        Read from the kernel mount table, so mounts of directories no longer
        tracked are found too.

        Raises:
            MountFailureError: If the mount table cannot be read
        """
        snapshot_root = self.config.snapshot_dir / snapshot_name
        try:
            with open(self.mounts_file, encoding="utf-8") as f:
                lines = f.readlines()
        except FileNotFoundError:
            return []
        except OSError as e:
            raise MountFailureError(
                f"Failed to read mount table {self.mounts_file}: {e}",
                failed={self.mounts_file: str(e)},
                snapshot_name=snapshot_name,
            ) from e

        targets = []
        for line in lines:
            fields = line.split()
            if len(fields) < 4 or fields[2] != "overlay":
                continue
            options = dict(
                option.split("=", 1) for option in fields[3].split(",") if "=" in option
            )
            upper = options.get("upperdir")
            if upper and Path(_unescape(upper)).parent == snapshot_root:
                targets.append(Path(_unescape(fields[1])))
        return targets

    def release(self, snapshot_name: str) -> None:
        """Unmount every overlay writing into the named snapshot.

        Raises:
            MountFailureError: If a mount cannot be released
        """
        for target in self.mounts_backed_by(snapshot_name):
            self._run(
                [self.umount_binary, str(target)],
                f"Failed to release overlay on {target} before removing snapshot {snapshot_name}",
                str(target),
                snapshot_name,
            )
            logger.info(f"Released overlay on {target}", extra={"snapshot": snapshot_name})

    def _run(
        self,
        cmd: list[str],
        message: str,
        path: str,
        snapshot_name: str | None,
    ) -> None:
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except OSError as e:
            raise MountFailureError(
                f"{message}: {e}",
                failed={path: str(e)},
                snapshot_name=snapshot_name,
            ) from e

        if result.returncode != 0:
            reason = (result.stderr or "").strip() or f"exit status {result.returncode}"
            raise MountFailureError(
                f"{message}: {reason}",
                failed={path: reason},
                snapshot_name=snapshot_name,
            )
