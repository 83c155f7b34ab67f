"""
Rollback engine for SnapState.

Restores live directories from a snapshot's captured layers by mirroring
each layer onto its directory: a one-way, destructive sync, not a merge.

Invariants:
    - Unknown snapshots and components are rejected before anything is touched
    - Directories are restored sequentially in recorded order
    - A failed directory never undoes directories already restored

How to change safely:
    - Keep all validation in plan(); restore() must not fail before mutating
      for reasons plan() could have detected
    - Test partial failure with a mirror that fails on one directory
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from ..config import SnapStateConfig
from ..errors import InvalidComponentError, SyncFailureError
from ..models import CapturedLayer, Snapshot
from ..store import SnapshotStore
from ..sync import DirectoryMirror, MirrorError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RestoreTarget:
    """One layer to mirror onto one live directory."""

    layer: CapturedLayer
    destination: str


@dataclass
class RollbackReport:
    """Result of a successful rollback.

    Attributes:
        snapshot: Snapshot that was restored
        component: Requested component, None for a full rollback
        restored: Live directories mirrored, in order
    """

    snapshot: str
    component: str | None
    restored: list[str] = field(default_factory=list)


class RollbackEngine:
    """Mirrors captured layers back onto live directories.

    Attributes:
        config: SnapState configuration (current tracked directories)
        store: Snapshot store used to resolve snapshots
        mirror: Backend performing each directory mirror

    Example:
        >>> engine = RollbackEngine(config, store, RsyncMirror())
        >>> engine.restore("snapshot_20240114_120000", component="etc")
    """

    def __init__(
        self,
        config: SnapStateConfig,
        store: SnapshotStore,
        mirror: DirectoryMirror,
    ) -> None:
        self.config = config
        self.store = store
        self.mirror = mirror

    def plan(self, snapshot: Snapshot, component: str | None = None) -> list[RestoreTarget]:
        """Work out which layers go where, without touching the filesystem.

        Raises:
            InvalidComponentError: If component is not tracked, or the snapshot
                holds no layer for it
        """
        if component is None:
            return [
                RestoreTarget(layer=layer, destination=layer.source) for layer in snapshot.layers
            ]

        tracked_dirs = self.config.tracked_directories()
        tracked = next((t for t in tracked_dirs if t.matches(component)), None)
        if tracked is None:
            raise InvalidComponentError(component, available=[t.name for t in tracked_dirs])

        layer = snapshot.layer_for(tracked)
        if layer is None:
            raise InvalidComponentError(
                component,
                reason=f"has no captured layer in snapshot {snapshot.name}",
            )
        return [RestoreTarget(layer=layer, destination=tracked.path)]

    def restore(self, snapshot_name: str, component: str | None = None) -> RollbackReport:
        """Roll one component, or every captured directory, back to a snapshot.

        Args:
            snapshot_name: Snapshot to restore
            component: Tracked directory key or path; None restores all layers

        Returns:
            RollbackReport listing restored directories

        Raises:
            SnapshotNotFoundError: If the snapshot does not exist
            InvalidComponentError: If the component cannot be restored
            SyncFailureError: If any directory failed to mirror
        """
        snapshot = self.store.resolve(snapshot_name)
        targets = self.plan(snapshot, component)

        logger.info(
            f"Rolling back to snapshot: {snapshot_name}",
            extra={"component": component, "directories": [t.destination for t in targets]},
        )

        report = RollbackReport(snapshot=snapshot_name, component=component)
        failed: dict[str, str] = {}

        for target in targets:
            try:
                self.mirror.mirror(target.layer.path, Path(target.destination))
            except MirrorError as e:
                logger.error(f"Failed to restore {target.destination}: {e}")
                failed[target.destination] = str(e)
                continue
            report.restored.append(target.destination)
            logger.info(f"Restored {target.destination} from snapshot {snapshot_name}")

        if failed:
            raise SyncFailureError(
                f"Rollback to {snapshot_name} failed for: {', '.join(failed)}",
                failed=failed,
                restored=report.restored,
            )

        return report
