"""
SnapState lifecycle engine.

Composes the components into the four operations exposed to operators:
- create: capture every tracked directory and record the snapshot
- list_snapshots: enumerate snapshots with valid metadata
- rollback: mirror captured layers back onto live directories
- cleanup: delete snapshots beyond the retention count

Invariants:
    - create, rollback, cleanup and init hold the store lock for their duration
    - Per-directory work runs sequentially in configured order
    - Partial failure raises after the remaining directories were attempted;
      completed work is never undone

How to change safely:
    - Keep components injectable so tests can run without mounts or root
    - Any new mutating operation must take the store lock
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from datetime import datetime
from pathlib import Path

from .capture import SnapshotCapture, create_capture
from .config import SnapStateConfig
from .errors import MountFailureError, SnapshotExistsError, StoreIOError
from .hooks import install_pacman_hooks
from .models import CapturedLayer, Snapshot, SnapshotSummary
from .packages import query_packages
from .retention import RetentionPolicy
from .rollback import RollbackEngine, RollbackReport
from .store import SnapshotStore, StoreLock, validate_name
from .sync import DirectoryMirror, create_mirror

logger = logging.getLogger(__name__)


def default_snapshot_name(now: datetime) -> str:
    return now.strftime("snapshot_%Y%m%d_%H%M%S")


def _local_now() -> datetime:
    return datetime.now().astimezone()


class SnapStateEngine:
    """Snapshot lifecycle orchestrator.

    Attributes:
        config: SnapState configuration
        store: Snapshot metadata store
        capture: Capture backend (overlay or copy)
        rollback_engine: Restores captured layers
        retention: Retention policy used by cleanup

    Example:
        >>> engine = SnapStateEngine(SnapStateConfig.load())
        >>> snapshot = engine.create()
        >>> engine.rollback(snapshot.name, component="etc")
    """

    def __init__(
        self,
        config: SnapStateConfig,
        capture: SnapshotCapture | None = None,
        mirror: DirectoryMirror | None = None,
        package_query: Callable[[], str] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            config: SnapState configuration
            capture: Capture backend (built from config if not provided)
            mirror: Mirror backend for rollback (built from config if not provided)
            package_query: Returns the package manifest (runs config.package_command by default)
            clock: Returns the current aware datetime
        """
        self.config = config
        self.store = SnapshotStore(config)
        self.capture = capture or create_capture(config)
        self.rollback_engine = RollbackEngine(config, self.store, mirror or create_mirror(config))
        self.retention = RetentionPolicy(
            self.store, default_keep=config.keep_count, release=self.capture.release
        )
        self._package_query = package_query or (lambda: query_packages(config.package_command))
        self._clock = clock or _local_now

    def _lock(self) -> StoreLock:
        return StoreLock(self.config.lock_file, timeout=self.config.lock_timeout_seconds)

    def init(self, install_hooks: bool = True) -> list[Path]:
        """Create the storage layout and optionally install pacman hooks.

        Returns:
            Paths of installed hook files
        """
        with self._lock():
            self.store.initialize()
            if not install_hooks:
                return []
            try:
                return install_pacman_hooks(self.config.hook_dir, self.config.executable)
            except OSError as e:
                raise StoreIOError(
                    f"Failed to install pacman hooks: {e}", path=self.config.hook_dir
                ) from e

    def create(self, name: str | None = None) -> Snapshot:
        """Capture every tracked directory into a new snapshot.

        Every tracked directory is attempted. The metadata record is written
        with the layers that were captured even when some failed.

        Args:
            name: Snapshot name (snapshot_YYYYMMDD_HHMMSS if omitted)

        Returns:
            The recorded Snapshot

        Raises:
            InvalidSnapshotNameError: If name is not a safe directory name
            SnapshotExistsError: If the name is already taken
            MountFailureError: If one or more directories failed to capture
            StoreIOError: If the metadata record cannot be written
        """
        created = self._clock()
        name = validate_name(name or default_snapshot_name(created))

        with self._lock():
            self.store.initialize()
            if self.store.exists(name):
                raise SnapshotExistsError(name)

            logger.info(f"Creating snapshot: {name}")
            try:
                self.store.snapshot_path(name).mkdir(parents=True)
            except OSError as e:
                raise StoreIOError(
                    f"Failed to create snapshot directory for {name}: {e}",
                    path=str(self.store.snapshot_path(name)),
                ) from e

            tracked_dirs = self.config.tracked_directories()
            layers: list[CapturedLayer] = []
            failed: dict[str, str] = {}

            for tracked in tracked_dirs:
                if not Path(tracked.path).is_dir():
                    logger.warning(f"Tracked directory {tracked.path} does not exist, skipping")
                    continue
                try:
                    layers.append(self.capture.capture(tracked, name))
                except MountFailureError as e:
                    logger.error(e.message)
                    failed.update(e.failed or {tracked.path: e.message})

            snapshot = Snapshot(
                name=name,
                created=created,
                tracked_dirs=tuple(t.path for t in tracked_dirs),
                pacman_packages=self._package_query(),
                layers=tuple(layers),
            )
            self.store.write(snapshot)

        if failed:
            raise MountFailureError(
                f"Snapshot {name} is incomplete; capture failed for: {', '.join(failed)}",
                failed=failed,
                snapshot_name=name,
                captured=[layer.source for layer in layers],
            )

        logger.info(
            f"Snapshot {name} created successfully",
            extra={"layers": [layer.name for layer in layers]},
        )
        return snapshot

    def list_snapshots(self) -> Iterator[SnapshotSummary]:
        """Enumerate snapshots with valid metadata, by name."""
        return self.store.list_snapshots()

    def resolve(self, name: str) -> Snapshot:
        return self.store.resolve(name)

    def rollback(self, name: str, component: str | None = None) -> RollbackReport:
        """Restore one component, or every captured directory, from a snapshot.

        Raises:
            SnapshotNotFoundError: If the snapshot does not exist
            InvalidComponentError: If the component cannot be restored
            SyncFailureError: If any directory failed to mirror
        """
        with self._lock():
            report = self.rollback_engine.restore(name, component)
        logger.info("Rollback completed successfully", extra={"restored": report.restored})
        return report

    def cleanup(self, keep_count: int | None = None) -> list[str]:
        """Delete snapshots beyond the keep_count most recent.

        Raises:
            PruneError: If one or more deletions failed
        """
        with self._lock():
            return self.retention.prune(keep_count)
