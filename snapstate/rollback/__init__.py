"""
Rollback for SnapState.

Rollback is not transactional across directories: each directory is mirrored
independently and failures are reported together at the end.
"""

from .engine import RestoreTarget, RollbackEngine, RollbackReport

__all__ = ["RestoreTarget", "RollbackEngine", "RollbackReport"]
