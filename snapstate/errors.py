"""
Error types for SnapState.

This module defines all exception types raised by the lifecycle engine:
- SnapStateError: Base exception
- PermissionDeniedError: Caller lacks root privileges
- MountFailureError: Capture failed for one or more tracked directories
- SnapshotNotFoundError: Referenced snapshot does not exist
- SnapshotExistsError: Snapshot name already taken
- InvalidSnapshotNameError: Snapshot name is not a safe directory name
- InvalidComponentError: Rollback scope is not a tracked directory
- StoreIOError: Metadata read/write or recursive delete failed
- SyncFailureError: Directory mirror failed for one or more directories
- PruneError: Some retention deletions failed
- LockTimeoutError: Store lock could not be acquired

Invariants:
    - All errors inherit from SnapStateError
    - Errors for multi-directory operations carry both failed and succeeded items
    - Error messages are actionable
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class SnapStateError(Exception):
    """Base exception for all SnapState errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SNAPSTATE_ERROR"
        self.details = details or {}


class PermissionDeniedError(SnapStateError):
    """Caller lacks the privilege required to mount and mirror."""

    def __init__(self, message: str = "This command must be run as root") -> None:
        super().__init__(message, code="PERMISSION_DENIED")


class MountFailureError(SnapStateError):
    """Capture failed for one or more tracked directories.

    Raised when:
    - mount(8) rejects the overlay (unsupported filesystem, already mounted)
    - The capture directories cannot be created
    - A copy-based capture hits an I/O error

    Attributes:
        failed: Mapping of tracked path to failure reason
        snapshot_name: Snapshot being created, if any
        captured: Tracked paths captured successfully before/after the failure
    """

    def __init__(
        self,
        message: str,
        failed: Optional[Dict[str, str]] = None,
        snapshot_name: Optional[str] = None,
        captured: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="MOUNT_FAILURE",
            details={
                "failed": failed or {},
                "snapshot_name": snapshot_name,
                "captured": captured or [],
            },
        )
        self.failed = failed or {}
        self.snapshot_name = snapshot_name
        self.captured = captured or []


class SnapshotNotFoundError(SnapStateError):
    """Snapshot does not exist or has no readable metadata."""

    def __init__(self, name: str, reason: Optional[str] = None) -> None:
        msg = f"Snapshot {name} does not exist"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg, code="NOT_FOUND", details={"name": name, "reason": reason})
        self.name = name


class SnapshotExistsError(SnapStateError):
    """A snapshot with this name is already stored."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Snapshot {name} already exists",
            code="ALREADY_EXISTS",
            details={"name": name},
        )
        self.name = name


class InvalidSnapshotNameError(SnapStateError):
    """Snapshot name cannot be used as a directory name."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Invalid snapshot name '{name}': use letters, digits, '.', '_', '+' or '-'",
            code="INVALID_NAME",
            details={"name": name},
        )
        self.name = name


class InvalidComponentError(SnapStateError):
    """Rollback scope names a directory that cannot be restored.

    Attributes:
        component: The requested component
        available: Components that would have been accepted
    """

    def __init__(
        self,
        component: str,
        available: Optional[List[str]] = None,
        reason: str = "is not tracked",
    ) -> None:
        available = available or []
        msg = f"Component {component} {reason}"
        if available:
            msg += f". Available: {', '.join(available)}"
        super().__init__(
            msg,
            code="INVALID_COMPONENT",
            details={"component": component, "available": available},
        )
        self.component = component
        self.available = available


class StoreIOError(SnapStateError):
    """Metadata read/write or recursive delete failed."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message, code="IO_FAILURE", details={"path": path})
        self.path = path


class SyncFailureError(SnapStateError):
    """Mirroring failed for one or more directories.

    Mirrors already completed are not undone.

    Attributes:
        failed: Mapping of live path to failure reason
        restored: Live paths mirrored successfully
    """

    def __init__(
        self,
        message: str,
        failed: Dict[str, str],
        restored: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="SYNC_FAILURE",
            details={"failed": failed, "restored": restored or []},
        )
        self.failed = failed
        self.restored = restored or []


class PruneError(SnapStateError):
    """Some snapshots could not be deleted during cleanup.

    Attributes:
        failed: Mapping of snapshot name to failure reason
        deleted: Snapshot names deleted successfully
    """

    def __init__(
        self,
        message: str,
        failed: Dict[str, str],
        deleted: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="IO_FAILURE",
            details={"failed": failed, "deleted": deleted or []},
        )
        self.failed = failed
        self.deleted = deleted or []


class LockTimeoutError(SnapStateError):
    """Another SnapState process holds the store lock."""

    def __init__(self, lock_path: str, timeout: float) -> None:
        super().__init__(
            f"Could not acquire store lock {lock_path} within {timeout}s",
            code="LOCK_TIMEOUT",
            details={"lock_path": lock_path, "timeout": timeout},
        )
        self.lock_path = lock_path
        self.timeout = timeout
