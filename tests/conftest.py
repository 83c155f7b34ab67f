"""
Shared fixtures for SnapState tests.

Every fixture works in a throwaway directory tree: a storage root plus a
fake live filesystem holding the tracked directories.
"""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from snapstate.config import CaptureBackend, SnapStateConfig, SyncBackend
from snapstate.models import Snapshot


@pytest.fixture
def workdir():
    """Create temporary working directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def live_root(workdir):
    """Fake live filesystem with /etc and /boot/loader."""
    live = workdir / "live"
    (live / "etc").mkdir(parents=True)
    (live / "boot" / "loader").mkdir(parents=True)
    return live


@pytest.fixture
def config(workdir, live_root):
    """Configuration using copy backends and temporary paths."""
    return SnapStateConfig(
        root=str(workdir / "state"),
        tracked_dirs=(str(live_root / "etc"), str(live_root / "boot" / "loader")),
        keep_count=5,
        capture_backend=CaptureBackend.COPY,
        sync_backend=SyncBackend.COPY,
        package_command="true",
        lock_timeout_seconds=1.0,
        hook_dir=str(workdir / "hooks"),
        executable="/usr/local/bin/snapstate",
        log_file=str(workdir / "snapstate.log"),
    )


class FakeClock:
    """Returns a strictly increasing time, one minute per call."""

    def __init__(self, start=None):
        self.current = start or datetime(2024, 1, 14, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        value = self.current
        self.current += timedelta(minutes=1)
        return value


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_snapshot():
    """Factory for Snapshots with no captured layers."""

    def _make(name, created, tracked_dirs=("/etc",), packages=""):
        return Snapshot(
            name=name,
            created=created,
            tracked_dirs=tuple(tracked_dirs),
            pacman_packages=packages,
        )

    return _make
