"""
Unit tests for the rollback engine.

Tests cover:
- Planning full and per-component rollbacks
- Rejecting unknown snapshots and components before any mirror runs
- Partial mirror failure
"""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from snapstate.errors import InvalidComponentError, SnapshotNotFoundError, SyncFailureError
from snapstate.models import CapturedLayer, Snapshot
from snapstate.rollback import RollbackEngine
from snapstate.store import SnapshotStore
from snapstate.sync import MirrorError

BASE_TIME = datetime(2024, 1, 14, 12, 0, tzinfo=timezone.utc)


class RecordingMirror:
    """Mirror that records calls and fails for chosen destinations."""

    def __init__(self, fail_for=()):
        self.calls = []
        self.fail_for = set(fail_for)

    def mirror(self, source, destination):
        self.calls.append((Path(source), Path(destination)))
        if str(destination) in self.fail_for:
            raise MirrorError(f"rsync exited with status 23 for {destination}")


class TestRollbackEngine:
    """Tests for RollbackEngine."""

    @pytest.fixture
    def store(self, config):
        store = SnapshotStore(config)
        store.initialize()
        return store

    @pytest.fixture
    def snapshot(self, config, store):
        """Snapshot s1 with a layer for every tracked directory."""
        layers = []
        for tracked in config.tracked_directories():
            path = store.snapshot_path("s1") / tracked.name
            path.mkdir(parents=True)
            layers.append(
                CapturedLayer(name=tracked.name, source=tracked.path, path=path, backend="copy")
            )
        snapshot = Snapshot(
            name="s1",
            created=BASE_TIME,
            tracked_dirs=tuple(config.tracked_dirs),
            layers=tuple(layers),
        )
        store.write(snapshot)
        return snapshot

    @pytest.fixture
    def mirror(self):
        return RecordingMirror()

    @pytest.fixture
    def engine(self, config, store, mirror):
        return RollbackEngine(config, store, mirror)

    def test_full_rollback_restores_every_layer(self, config, engine, mirror, snapshot):
        report = engine.restore("s1")

        assert report.snapshot == "s1"
        assert report.component is None
        assert report.restored == list(config.tracked_dirs)
        assert [dest for _, dest in mirror.calls] == [Path(p) for p in config.tracked_dirs]

    def test_component_rollback(self, config, engine, mirror, snapshot):
        report = engine.restore("s1", component="etc")

        etc = config.tracked_directories()[0]
        assert report.restored == [etc.path]
        assert mirror.calls == [(snapshot.layers[0].path, Path(etc.path))]

    def test_component_by_path(self, config, engine, mirror, snapshot):
        loader = config.tracked_directories()[1]

        report = engine.restore("s1", component=loader.path)

        assert report.restored == [loader.path]

    def test_unknown_snapshot_touches_nothing(self, engine, mirror):
        with pytest.raises(SnapshotNotFoundError):
            engine.restore("nope")

        assert mirror.calls == []

    def test_unknown_component_touches_nothing(self, engine, mirror, snapshot):
        with pytest.raises(InvalidComponentError) as exc_info:
            engine.restore("s1", component="usr")

        assert exc_info.value.code == "INVALID_COMPONENT"
        assert exc_info.value.available == ["etc", "loader"]
        assert mirror.calls == []

    def test_component_without_layer(self, config, store, engine, mirror):
        tracked = config.tracked_directories()[0]
        path = store.snapshot_path("partial") / tracked.name
        path.mkdir(parents=True)
        store.write(
            Snapshot(
                name="partial",
                created=BASE_TIME,
                tracked_dirs=tuple(config.tracked_dirs),
                layers=(CapturedLayer(tracked.name, tracked.path, path, "copy"),),
            )
        )

        with pytest.raises(InvalidComponentError, match="no captured layer"):
            engine.restore("partial", component="loader")

        assert mirror.calls == []

    def test_partial_failure_continues(self, config, store, snapshot):
        etc, loader = config.tracked_directories()
        mirror = RecordingMirror(fail_for=[etc.path])
        engine = RollbackEngine(config, store, mirror)

        with pytest.raises(SyncFailureError) as exc_info:
            engine.restore("s1")

        error = exc_info.value
        assert list(error.failed) == [etc.path]
        assert error.restored == [loader.path]
        assert len(mirror.calls) == 2

    def test_plan_does_not_mirror(self, engine, mirror, snapshot):
        targets = engine.plan(snapshot)

        assert [t.layer.name for t in targets] == ["etc", "loader"]
        assert mirror.calls == []
