"""
Snapshot storage for SnapState.

This module provides:
- SnapshotStore: durable, queryable persistence of snapshot records
- StoreLock: exclusive lock serializing store-mutating operations

Invariants:
    - Snapshot records are write-once; only whole snapshots are deleted
    - Only one mutating SnapState process runs against a root at a time
"""

from .lock import StoreLock
from .snapshot_store import METADATA_FILE, SnapshotStore, validate_name

__all__ = [
    "METADATA_FILE",
    "SnapshotStore",
    "StoreLock",
    "validate_name",
]
