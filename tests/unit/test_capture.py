"""
Unit tests for snapshot capture backends.

Tests cover:
- OverlayManager mount command, directory setup and failures (subprocess mocked)
- Releasing a previous overlay before remounting
- CopyCapture layers
- Backend factory
"""

import subprocess
from unittest.mock import patch

import pytest

from snapstate.capture import CopyCapture, OverlayManager, create_capture, layer_path
from snapstate.config import CaptureBackend, SnapStateConfig
from snapstate.errors import MountFailureError
from snapstate.models import TrackedDirectory
from snapstate.sync import CopyMirror

OK = subprocess.CompletedProcess(args=[], returncode=0, stdout="", stderr="")


class TestOverlayManager:
    """Tests for OverlayManager."""

    @pytest.fixture
    def overlays(self, config):
        return OverlayManager(config)

    @pytest.fixture
    def tracked(self, config):
        return config.tracked_directories()[0]

    def test_mount_command(self, config, overlays, tracked):
        upper = layer_path(config, "s1", tracked)

        cmd = overlays.mount_command(tracked, upper)

        assert cmd[:5] == ["mount", "-t", "overlay", "overlay", "-o"]
        assert cmd[5] == (
            f"lowerdir={tracked.path},"
            f"upperdir={config.snapshot_dir}/s1/etc,"
            f"workdir={config.work_dir}/etc"
        )
        assert cmd[6] == str(config.overlay_dir / "etc")

    def test_capture_creates_directories_and_mounts(self, config, overlays, tracked):
        with patch("snapstate.capture.overlay.subprocess.run", return_value=OK) as run:
            layer = overlays.capture(tracked, "s1")

        assert layer.name == "etc"
        assert layer.source == tracked.path
        assert layer.path == config.snapshot_dir / "s1" / "etc"
        assert layer.backend == "overlay"
        assert layer.path.is_dir()
        assert (config.overlay_dir / "etc").is_dir()
        assert (config.work_dir / "etc").is_dir()
        run.assert_called_once()
        assert run.call_args[0][0][0] == "mount"

    def test_mount_failure(self, config, overlays, tracked):
        failed = subprocess.CompletedProcess(
            args=[], returncode=32, stdout="", stderr="mount: unknown filesystem type 'overlay'"
        )
        with patch("snapstate.capture.overlay.subprocess.run", return_value=failed):
            with pytest.raises(MountFailureError) as exc_info:
                overlays.capture(tracked, "s1")

        error = exc_info.value
        assert error.code == "MOUNT_FAILURE"
        assert tracked.path in error.failed
        assert "unknown filesystem type" in error.message
        # Directories created before the failure stay on disk
        assert (config.snapshot_dir / "s1" / "etc").is_dir()

    def test_mount_binary_missing(self, overlays, tracked):
        with patch(
            "snapstate.capture.overlay.subprocess.run",
            side_effect=FileNotFoundError("mount"),
        ):
            with pytest.raises(MountFailureError):
                overlays.capture(tracked, "s1")

    def test_directory_creation_failure(self, overlays, tracked):
        with patch("pathlib.Path.mkdir", side_effect=PermissionError("read-only")):
            with pytest.raises(MountFailureError, match="read-only"):
                overlays.capture(tracked, "s1")

    def test_previous_overlay_released(self, config, overlays, tracked):
        with (
            patch("snapstate.capture.overlay.os.path.ismount", return_value=True),
            patch("snapstate.capture.overlay.subprocess.run", return_value=OK) as run,
        ):
            overlays.capture(tracked, "s2")

        commands = [call[0][0] for call in run.call_args_list]
        assert commands[0] == ["umount", str(config.overlay_dir / "etc")]
        assert commands[1][0] == "mount"

    def test_teardown_when_not_mounted(self, overlays, tracked):
        with patch("snapstate.capture.overlay.subprocess.run") as run:
            overlays.teardown(tracked)

        run.assert_not_called()

    def test_teardown_failure(self, overlays, tracked):
        busy = subprocess.CompletedProcess(args=[], returncode=32, stdout="", stderr="busy")
        with (
            patch("snapstate.capture.overlay.os.path.ismount", return_value=True),
            patch("snapstate.capture.overlay.subprocess.run", return_value=busy),
        ):
            with pytest.raises(MountFailureError, match="busy"):
                overlays.teardown(tracked)


class TestOverlayRelease:
    """Tests for releasing overlays before a snapshot is deleted."""

    @pytest.fixture
    def mounts_file(self, config, workdir):
        snapshots = config.snapshot_dir
        overlay = config.overlay_dir
        work = config.work_dir
        path = workdir / "mounts"
        path.write_text(
            "proc /proc proc rw,nosuid,nodev,noexec,relatime 0 0\n"
            f"overlay {overlay}/etc overlay rw,relatime,lowerdir=/etc,"
            f"upperdir={snapshots}/s1/etc,workdir={work}/etc 0 0\n"
            f"overlay {overlay}/loader overlay rw,relatime,lowerdir=/boot/loader,"
            f"upperdir={snapshots}/s2/loader,workdir={work}/loader 0 0\n"
            f"overlay {overlay}/my\\040dir overlay rw,lowerdir=/srv/my\\040dir,"
            f"upperdir={snapshots}/s1/my\\040dir,workdir={work}/my\\040dir 0 0\n"
        )
        return path

    @pytest.fixture
    def overlays(self, config, mounts_file):
        return OverlayManager(config, mounts_file=str(mounts_file))

    def test_mounts_backed_by_snapshot(self, config, overlays):
        targets = overlays.mounts_backed_by("s1")

        assert targets == [config.overlay_dir / "etc", config.overlay_dir / "my dir"]

    def test_no_mounts_for_other_snapshot(self, overlays):
        assert overlays.mounts_backed_by("s3") == []

    def test_missing_mount_table(self, config, workdir):
        overlays = OverlayManager(config, mounts_file=str(workdir / "absent"))

        assert overlays.mounts_backed_by("s1") == []

    def test_release_unmounts_snapshot_overlays(self, config, overlays):
        with patch("snapstate.capture.overlay.subprocess.run", return_value=OK) as run:
            overlays.release("s2")

        run.assert_called_once()
        assert run.call_args[0][0] == ["umount", str(config.overlay_dir / "loader")]

    def test_release_failure(self, overlays):
        busy = subprocess.CompletedProcess(args=[], returncode=32, stdout="", stderr="busy")
        with patch("snapstate.capture.overlay.subprocess.run", return_value=busy):
            with pytest.raises(MountFailureError, match="busy") as exc_info:
                overlays.release("s2")

        assert exc_info.value.snapshot_name == "s2"


class TestCopyCapture:
    """Tests for CopyCapture."""

    def test_capture_copies_tree(self, config, live_root):
        (live_root / "etc" / "test.conf").write_text("A\n")
        tracked = config.tracked_directories()[0]
        capture = CopyCapture(config, mirror=CopyMirror(preserve_owner=False))

        layer = capture.capture(tracked, "s1")

        assert layer.backend == "copy"
        assert (layer.path / "test.conf").read_text() == "A\n"
        # Later writes to the live directory do not reach the layer
        (live_root / "etc" / "test.conf").write_text("B\n")
        assert (layer.path / "test.conf").read_text() == "A\n"

    def test_missing_source_is_mount_failure(self, config):
        capture = CopyCapture(config, mirror=CopyMirror(preserve_owner=False))
        tracked = TrackedDirectory(path="/nonexistent/dir", name="dir")

        with pytest.raises(MountFailureError) as exc_info:
            capture.capture(tracked, "s1")

        assert "/nonexistent/dir" in exc_info.value.failed

    def test_teardown_is_noop(self, config):
        CopyCapture(config).teardown(config.tracked_directories()[0])


class TestCreateCapture:
    """Tests for the capture factory."""

    def test_overlay_backend(self):
        assert isinstance(create_capture(SnapStateConfig()), OverlayManager)

    def test_copy_backend(self):
        config = SnapStateConfig(capture_backend=CaptureBackend.COPY)

        assert isinstance(create_capture(config), CopyCapture)
