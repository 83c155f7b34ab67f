"""
Base protocol for directory mirroring.

A mirror makes a destination directory match a source directory exactly:
destination-only entries are deleted, differing entries overwritten, and
ownership, permissions, timestamps and extended attributes are taken from
the source.

Invariants:
    - Mirroring is one-way; the source is never modified
    - A failed mirror may leave the destination partially updated

How to change safely:
    - New backends must implement DirectoryMirror
    - Test against directories holding symlinks and restrictive modes
"""

from __future__ import annotations

from abc import abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..config import SnapStateConfig


class MirrorError(Exception):
    """Mirroring a directory failed."""

    pass


@runtime_checkable
class DirectoryMirror(Protocol):
    """Protocol for one-way directory mirror backends."""

    @abstractmethod
    def mirror(self, source: Path, destination: Path) -> None:
        """Make destination an exact copy of source.

        Args:
            source: Directory to copy from
            destination: Directory to overwrite (created if missing)

        Raises:
            MirrorError: If the source is missing or any copy/delete fails
        """
        ...


def create_mirror(config: "SnapStateConfig") -> DirectoryMirror:
    """Factory function to create a mirror backend from configuration.

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import SyncBackend
    from .copy import CopyMirror
    from .rsync import RsyncMirror

    if config.sync_backend == SyncBackend.RSYNC:
        return RsyncMirror()
    elif config.sync_backend == SyncBackend.COPY:
        return CopyMirror()
    else:
        raise ValueError(f"Unsupported sync backend: {config.sync_backend}")
