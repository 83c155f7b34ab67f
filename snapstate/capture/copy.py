"""
Copy-based capture backend.

Portable fallback for hosts or containers where overlay mounts are not
permitted. The tracked directory is mirrored into the snapshot layer, so the
layer is a full independent copy rather than a delta of later writes.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ..config import SnapStateConfig
from ..errors import MountFailureError
from ..models import CapturedLayer, TrackedDirectory
from ..sync import CopyMirror, DirectoryMirror, MirrorError
from .base import layer_path

logger = logging.getLogger(__name__)


class CopyCapture:
    """Capture tracked directories by copying them.

    Attributes:
        config: SnapState configuration
        mirror: Mirror used to copy the live tree into the layer
    """

    backend_name = "copy"

    def __init__(self, config: SnapStateConfig, mirror: DirectoryMirror | None = None) -> None:
        self.config = config
        self.mirror = mirror or CopyMirror()

    def capture(self, tracked: TrackedDirectory, snapshot_name: str) -> CapturedLayer:
        layer = layer_path(self.config, snapshot_name, tracked)

        try:
            layer.mkdir(parents=True, exist_ok=True)
            self.mirror.mirror(Path(tracked.path), layer)
        except (OSError, MirrorError) as e:
            raise MountFailureError(
                f"Failed to copy {tracked.path} into snapshot {snapshot_name}: {e}",
                failed={tracked.path: str(e)},
                snapshot_name=snapshot_name,
            ) from e

        logger.info(
            f"Copied {tracked.path} into snapshot",
            extra={"snapshot": snapshot_name, "layer": str(layer)},
        )
        return CapturedLayer(
            name=tracked.name,
            source=tracked.path,
            path=layer,
            backend=self.backend_name,
        )

    def teardown(self, tracked: TrackedDirectory) -> None:
        # Nothing is mounted
        return None

    def release(self, snapshot_name: str) -> None:
        return None
