"""
SnapState - configuration snapshot and rollback for Linux hosts.

SnapState layers an overlay filesystem over each tracked configuration
directory and keeps the resulting upper layer as an immutable snapshot.
A single directory, or the whole tracked set, can later be rolled back to a
captured state without a full system restore.

Architecture:
    ┌──────────────┐     ┌──────────────────┐
    │  snapstate   │────▶│  SnapStateEngine │
    │     CLI      │     │  (store lock)    │
    └──────────────┘     └────────┬─────────┘
                                  │
          ┌───────────────┬───────┴───────┬────────────────┐
          ▼               ▼               ▼                ▼
    ┌───────────┐   ┌───────────┐   ┌───────────┐   ┌─────────────┐
    │  Capture  │   │ Snapshot  │   │ Rollback  │   │  Retention  │
    │ (overlay/ │   │   Store   │◀──│  Engine   │   │   Policy    │
    │   copy)   │   │           │◀──┼───────────┼───│             │
    └───────────┘   └───────────┘   └─────┬─────┘   └─────────────┘
                                          ▼
                                    ┌───────────┐
                                    │  Mirror   │
                                    │  (rsync/  │
                                    │   copy)   │
                                    └───────────┘

Invariants:
    - Snapshots are immutable once written; only whole snapshots are deleted
    - Rollback is a destructive one-way mirror, not a merge
    - Multi-directory operations are not transactional; partial failure is
      reported with the list of failed directories

How to change safely:
    - Metadata fields are write-once; add new fields as optional
    - Test rollback and cleanup against snapshots written by older versions
"""

from ._version import __version__
from .config import SnapStateConfig
from .engine import SnapStateEngine

__all__ = ["__version__", "SnapStateConfig", "SnapStateEngine"]
