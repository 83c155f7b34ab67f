"""
Base protocol for snapshot capture.

A capture backend turns one tracked directory into a CapturedLayer stored
under ``<root>/snapshots/<name>/<key>``.

Invariants:
    - Capturing never modifies the tracked directory's existing content
    - Directories created before a failure are left on disk
    - Failures raise MountFailureError naming the tracked directory

How to change safely:
    - New backends must implement SnapshotCapture
    - Keep the layer location stable; rollback and retention rely on it
"""

from __future__ import annotations

from abc import abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from ..models import CapturedLayer, TrackedDirectory

if TYPE_CHECKING:
    from ..config import SnapStateConfig
    from ..sync import DirectoryMirror


@runtime_checkable
class SnapshotCapture(Protocol):
    """Protocol for capture backends."""

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Name recorded in each layer's metadata."""
        ...

    @abstractmethod
    def capture(self, tracked: TrackedDirectory, snapshot_name: str) -> CapturedLayer:
        """Capture one tracked directory into the named snapshot.

        Args:
            tracked: Directory to capture
            snapshot_name: Snapshot receiving the layer

        Returns:
            The CapturedLayer describing where the content lives

        Raises:
            MountFailureError: If the capture cannot be established
        """
        ...

    @abstractmethod
    def teardown(self, tracked: TrackedDirectory) -> None:
        """Release any mount held for the tracked directory.

        Raises:
            MountFailureError: If an active mount cannot be released
        """
        ...

    @abstractmethod
    def release(self, snapshot_name: str) -> None:
        """Release any mount writing into the named snapshot, before it is deleted.

        Raises:
            MountFailureError: If an active mount cannot be released
        """
        ...


def layer_path(config: "SnapStateConfig", snapshot_name: str, tracked: TrackedDirectory) -> Path:
    """Location of a tracked directory's layer within a snapshot."""
    return config.snapshot_dir / snapshot_name / tracked.name


def create_capture(
    config: "SnapStateConfig",
    mirror: "DirectoryMirror | None" = None,
) -> SnapshotCapture:
    """Factory function to create a capture backend from configuration.

    Args:
        config: SnapState configuration
        mirror: Mirror used by the copy backend (CopyMirror by default)

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import CaptureBackend
    from .copy import CopyCapture
    from .overlay import OverlayManager

    if config.capture_backend == CaptureBackend.OVERLAY:
        return OverlayManager(config)
    elif config.capture_backend == CaptureBackend.COPY:
        return CopyCapture(config, mirror=mirror)
    else:
        raise ValueError(f"Unsupported capture backend: {config.capture_backend}")
