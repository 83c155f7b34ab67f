"""
On-disk snapshot store for SnapState.

Layout under the storage root:

    <root>/overlay/<key>/              transient mount targets
    <root>/snapshots/<name>/<key>/     captured layer per tracked directory
    <root>/snapshots/<name>/metadata.json
    <root>/work/<key>/                 overlay scratch areas

Invariants:
    - The snapshot directory name is the snapshot's identity
    - metadata.json is replaced atomically, never written in place
    - Listing skips directories without valid metadata instead of failing

How to change safely:
    - Add new record fields as optional (see models.SnapshotRecord)
    - Keep reading records written by older versions
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import tempfile
from collections.abc import Iterator
from dataclasses import replace
from pathlib import Path

from pydantic import ValidationError

from ..config import SnapStateConfig
from ..errors import InvalidSnapshotNameError, SnapshotNotFoundError, StoreIOError
from ..models import Snapshot, SnapshotRecord, SnapshotSummary

logger = logging.getLogger(__name__)

METADATA_FILE = "metadata.json"

_NAME_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9._+-]*$")


def validate_name(name: str) -> str:
    """Return name unchanged if it is a safe snapshot directory name.

    Raises:
        InvalidSnapshotNameError: If name is empty, hidden or contains separators
    """
    if not name or not _NAME_RE.match(name):
        raise InvalidSnapshotNameError(name)
    return name


class SnapshotStore:
    """Persists and enumerates snapshot metadata records.

    Attributes:
        config: SnapState configuration (provides the storage root)

    Example:
        >>> store = SnapshotStore(config)
        >>> store.write(snapshot)
        >>> [s.name for s in store.list_snapshots()]
        ['snapshot_20240114_120000']
    """

    def __init__(self, config: SnapStateConfig) -> None:
        self.config = config

    @property
    def root(self) -> Path:
        return self.config.snapshot_dir

    def initialize(self) -> None:
        """Create the storage layout, readable by root only.

        Raises:
            StoreIOError: If a directory cannot be created
        """
        for path in (
            self.config.root_path,
            self.config.overlay_dir,
            self.config.snapshot_dir,
            self.config.work_dir,
        ):
            try:
                path.mkdir(parents=True, exist_ok=True)
                path.chmod(0o700)
            except OSError as e:
                raise StoreIOError(f"Failed to create {path}: {e}", path=str(path)) from e

    def snapshot_path(self, name: str) -> Path:
        return self.root / validate_name(name)

    def metadata_path(self, name: str) -> Path:
        return self.snapshot_path(name) / METADATA_FILE

    def exists(self, name: str) -> bool:
        """Whether a snapshot directory with this name is on disk."""
        return self.snapshot_path(name).is_dir()

    def write(self, snapshot: Snapshot) -> Path:
        """Persist a snapshot's metadata record, replacing any existing one.

        Returns:
            Path of the written metadata.json

        Raises:
            StoreIOError: If the record cannot be written
        """
        directory = self.snapshot_path(snapshot.name)
        target = directory / METADATA_FILE
        payload = snapshot.to_record().model_dump_json(indent=4)

        tmp_name = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                dir=directory,
                prefix=".metadata.",
                suffix=".tmp",
                delete=False,
                encoding="utf-8",
            ) as f:
                tmp_name = f.name
                f.write(payload)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, target)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StoreIOError(
                f"Failed to write metadata for snapshot {snapshot.name}: {e}",
                path=str(target),
            ) from e

        logger.debug(
            "Wrote snapshot metadata",
            extra={"snapshot": snapshot.name, "path": str(target)},
        )
        return target

    def list_snapshots(self) -> Iterator[SnapshotSummary]:
        """Yield a summary for every snapshot with valid metadata, by name.

        Each call starts a fresh scan. Directories whose metadata is missing
        or unparsable are skipped.

        Raises:
            StoreIOError: If the snapshot directory cannot be read
        """
        if not self.root.is_dir():
            return

        try:
            entries = sorted(self.root.iterdir())
        except OSError as e:
            raise StoreIOError(
                f"Failed to list snapshots in {self.root}: {e}", path=str(self.root)
            ) from e

        for entry in entries:
            if not entry.is_dir() or not _NAME_RE.match(entry.name):
                continue
            try:
                record = self._read_record(entry)
            except (OSError, ValueError, ValidationError) as e:
                logger.debug(f"Skipping snapshot directory {entry.name}: {e}")
                continue
            yield SnapshotSummary(name=entry.name, created=record.created)

    def resolve(self, name: str) -> Snapshot:
        """Load and validate a single snapshot.

        Raises:
            SnapshotNotFoundError: If the snapshot or its metadata is absent or invalid
        """
        directory = self.snapshot_path(name)
        if not directory.is_dir():
            raise SnapshotNotFoundError(name)

        try:
            record = self._read_record(directory)
        except FileNotFoundError:
            raise SnapshotNotFoundError(name, "metadata.json is missing")
        except (OSError, ValueError, ValidationError) as e:
            raise SnapshotNotFoundError(name, f"metadata.json is invalid: {e}")

        snapshot = record.to_snapshot(directory)
        if snapshot.name != name:
            logger.warning(
                f"Snapshot directory {name} holds metadata named {snapshot.name}, using {name}"
            )
            snapshot = replace(snapshot, name=name)
        return snapshot

    def delete(self, name: str) -> None:
        """Recursively remove a snapshot's directory (metadata and layers).

        Raises:
            SnapshotNotFoundError: If no such snapshot directory exists
            StoreIOError: If removal fails
        """
        directory = self.snapshot_path(name)
        if not directory.is_dir():
            raise SnapshotNotFoundError(name)

        try:
            shutil.rmtree(directory)
        except OSError as e:
            raise StoreIOError(f"Failed to remove snapshot {name}: {e}", path=str(directory)) from e

        logger.debug("Deleted snapshot", extra={"snapshot": name})

    def _read_record(self, directory: Path) -> SnapshotRecord:
        with open(directory / METADATA_FILE, encoding="utf-8") as f:
            data = json.load(f)
        return SnapshotRecord.model_validate(data)
