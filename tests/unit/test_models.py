"""
Unit tests for the SnapState data model.

Tests cover:
- Component matching
- Metadata record conversion
- Records written without a layers field
"""

from datetime import datetime, timezone
from pathlib import Path

import pytest
from pydantic import ValidationError

from snapstate.models import CapturedLayer, Snapshot, SnapshotRecord, TrackedDirectory


class TestTrackedDirectory:
    """Tests for TrackedDirectory.matches."""

    @pytest.fixture
    def tracked(self):
        return TrackedDirectory(path="/usr/local/etc", name="usr_local_etc")

    @pytest.mark.parametrize(
        "component",
        ["usr_local_etc", "/usr/local/etc", "usr/local/etc", "/usr/local/etc/"],
    )
    def test_accepts_key_and_path(self, tracked, component):
        assert tracked.matches(component)

    @pytest.mark.parametrize("component", ["etc", "local", "/usr/local", ""])
    def test_rejects_other_names(self, tracked, component):
        assert not tracked.matches(component)


class TestSnapshotRecord:
    """Tests for the metadata.json contract."""

    def test_to_record_stores_relative_layer_paths(self):
        created = datetime(2024, 1, 14, 12, 0, tzinfo=timezone.utc)
        snapshot = Snapshot(
            name="s1",
            created=created,
            tracked_dirs=("/etc",),
            pacman_packages="bash 5.2.026-2",
            layers=(
                CapturedLayer(
                    name="etc",
                    source="/etc",
                    path=Path("/var/lib/snapstate/snapshots/s1/etc"),
                    backend="overlay",
                ),
            ),
        )

        record = snapshot.to_record()

        assert record.name == "s1"
        assert record.created == created
        assert record.pacman_packages == "bash 5.2.026-2"
        assert record.layers[0].path == "etc"

    def test_to_snapshot_resolves_layer_paths(self):
        record = SnapshotRecord.model_validate(
            {
                "name": "s1",
                "created": "2024-01-14T12:00:00+00:00",
                "tracked_dirs": ["/etc"],
                "pacman_packages": "",
                "layers": [{"name": "etc", "source": "/etc", "path": "etc", "backend": "copy"}],
            }
        )

        snapshot = record.to_snapshot(Path("/store/s1"))

        assert snapshot.layers[0].path == Path("/store/s1/etc")
        assert snapshot.layers[0].backend == "copy"

    def test_naive_timestamp_assumed_utc(self):
        record = SnapshotRecord(name="s1", created=datetime(2024, 1, 14, 12, 0))

        assert record.created.tzinfo is not None
        assert record.created.utcoffset().total_seconds() == 0

    def test_empty_name_rejected(self):
        with pytest.raises(ValidationError):
            SnapshotRecord(name="", created=datetime(2024, 1, 14, tzinfo=timezone.utc))

    def test_missing_created_rejected(self):
        with pytest.raises(ValidationError):
            SnapshotRecord.model_validate({"name": "s1"})

    def test_layers_inferred_when_absent(self, workdir):
        """Records without layers map each tracked basename present on disk."""
        (workdir / "etc").mkdir()
        record = SnapshotRecord.model_validate(
            {
                "name": "s1",
                "created": "2024-01-14T12:00:00",
                "tracked_dirs": ["/etc", "/boot/loader"],
                "pacman_packages": "",
            }
        )

        snapshot = record.to_snapshot(workdir)

        assert [layer.source for layer in snapshot.layers] == ["/etc"]
        assert snapshot.layers[0].path == workdir / "etc"

    def test_layer_for(self):
        layer = CapturedLayer(name="etc", source="/etc", path=Path("/s/etc"), backend="copy")
        snapshot = Snapshot(
            name="s1",
            created=datetime(2024, 1, 14, tzinfo=timezone.utc),
            tracked_dirs=("/etc", "/boot/loader"),
            layers=(layer,),
        )

        assert snapshot.layer_for(TrackedDirectory("/etc", "etc")) is layer
        assert snapshot.layer_for(TrackedDirectory("/boot/loader", "loader")) is None

    def test_layer_for_matches_source_not_key(self):
        """A directory re-keyed by a later configuration still finds only its own layer."""
        etc_layer = CapturedLayer(name="etc", source="/etc", path=Path("/s/etc"), backend="copy")
        snapshot = Snapshot(
            name="s1",
            created=datetime(2024, 1, 14, tzinfo=timezone.utc),
            tracked_dirs=("/etc", "/usr/local/etc"),
            layers=(etc_layer,),
        )

        assert snapshot.layer_for(TrackedDirectory("/usr/local/etc", "etc")) is None
        assert snapshot.layer_for(TrackedDirectory("/etc", "etc_2")) is etc_layer

    def test_ambiguous_basenames_not_inferred(self, workdir):
        """/etc and /usr/local/etc share the etc directory in records without layers."""
        (workdir / "etc").mkdir()
        (workdir / "loader").mkdir()
        record = SnapshotRecord.model_validate(
            {
                "name": "s1",
                "created": "2024-01-14T12:00:00",
                "tracked_dirs": ["/etc", "/usr/local/etc", "/boot/loader"],
                "pacman_packages": "",
            }
        )

        snapshot = record.to_snapshot(workdir)

        assert [layer.source for layer in snapshot.layers] == ["/boot/loader"]
