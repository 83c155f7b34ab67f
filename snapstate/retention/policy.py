"""
Retention policy for SnapState.

Keeps the most recent snapshots and deletes the rest. Recency comes from the
``created`` field of each metadata record rather than filesystem timestamps,
so touching a snapshot directory never changes its position.

Invariants:
    - Given N snapshots and keep_count k < N, exactly N - k are deleted
    - The k retained snapshots are the k most recently created
    - One failed deletion does not stop the others
    - A snapshot is released before deletion; a failed release keeps it
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from ..errors import PruneError, SnapStateError
from ..models import SnapshotSummary
from ..store import SnapshotStore

logger = logging.getLogger(__name__)


def order_by_recency(summaries: Iterable[SnapshotSummary]) -> list[SnapshotSummary]:
    """Newest first; equal timestamps fall back to name, descending."""
    return sorted(summaries, key=lambda s: (s.created, s.name), reverse=True)


class RetentionPolicy:
    """Bounds the number of retained snapshots.

    Attributes:
        store: Snapshot store to prune
        default_keep: Retention count used when prune() gets none
        release: Called with a snapshot name before it is deleted, to release
            mounts still writing into it
    """

    def __init__(
        self,
        store: SnapshotStore,
        default_keep: int = 5,
        release: Callable[[str], None] | None = None,
    ) -> None:
        self.store = store
        self.default_keep = default_keep
        self.release = release

    def select(
        self, keep_count: int | None = None
    ) -> tuple[list[SnapshotSummary], list[SnapshotSummary]]:
        """Split stored snapshots into (kept, expired). Zero or negative keeps none."""
        keep = self.default_keep if keep_count is None else keep_count
        keep = max(keep, 0)
        ordered = order_by_recency(self.store.list_snapshots())
        return ordered[:keep], ordered[keep:]

    def prune(self, keep_count: int | None = None) -> list[str]:
        """Delete every snapshot beyond the keep_count most recent.

        Returns:
            Names of deleted snapshots, oldest last

        Raises:
            PruneError: If one or more deletions failed
        """
        kept, expired = self.select(keep_count)
        logger.info(
            f"Cleaning up old snapshots, keeping {len(kept)} most recent",
            extra={"keep_count": keep_count, "expired": len(expired)},
        )

        deleted: list[str] = []
        failed: dict[str, str] = {}
        for summary in expired:
            try:
                if self.release is not None:
                    self.release(summary.name)
                self.store.delete(summary.name)
            except SnapStateError as e:
                logger.error(f"Failed to remove snapshot {summary.name}: {e.message}")
                failed[summary.name] = e.message
                continue
            deleted.append(summary.name)
            logger.info(f"Removed old snapshot: {summary.name}")

        if failed:
            raise PruneError(
                f"Failed to remove snapshots: {', '.join(failed)}",
                failed=failed,
                deleted=deleted,
            )
        return deleted
