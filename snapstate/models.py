"""
Data model for SnapState.

Domain objects are frozen dataclasses. The on-disk metadata record is a
pydantic model so that reading a record validates it in one step.

Metadata record (metadata.json):
    - name: Unique key, matches the snapshot directory name
    - created: ISO-8601 timestamp
    - tracked_dirs: Absolute paths tracked at capture time
    - pacman_packages: Opaque installed-package listing
    - layers: Captured layers (optional, absent in records from older tools)

Invariants:
    - A Snapshot is never mutated after it is written
    - Layer paths in the record are relative to the snapshot directory

How to change safely:
    - Add new record fields as optional with defaults
    - Never rename or remove existing record fields
"""

from __future__ import annotations

import logging
import os
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackedDirectory:
    """A configured directory captured by every snapshot.

    Attributes:
        path: Absolute, normalized path (e.g. /etc)
        name: Storage key used under overlay/, work/ and each snapshot
    """

    path: str
    name: str

    def matches(self, component: str) -> bool:
        """Whether a rollback component refers to this directory.

        Accepts the storage key (``etc``) or the path with or without the
        leading slash (``usr/local/etc``, ``/usr/local/etc``).
        """
        stripped = component.strip("/")
        return stripped == self.name or stripped == self.path.strip("/")


@dataclass(frozen=True)
class CapturedLayer:
    """The stored content of one tracked directory within one snapshot.

    Attributes:
        name: Storage key of the tracked directory
        source: Live path the layer was captured from
        path: Absolute location of the layer on disk
        backend: Capture backend that produced it (overlay or copy)
    """

    name: str
    source: str
    path: Path
    backend: str


@dataclass(frozen=True)
class Snapshot:
    """An immutable snapshot record.

    Attributes:
        name: Unique identifier
        created: Creation time (timezone aware)
        tracked_dirs: Tracked paths in effect at capture time
        pacman_packages: Installed-package listing at capture time
        layers: Captured layers in tracked-directory order
    """

    name: str
    created: datetime
    tracked_dirs: tuple[str, ...]
    pacman_packages: str = ""
    layers: tuple[CapturedLayer, ...] = field(default_factory=tuple)

    def layer_for(self, tracked: TrackedDirectory) -> CapturedLayer | None:
        """The layer captured from tracked.path, matched on the recorded source path."""
        for layer in self.layers:
            if os.path.normpath(layer.source) == tracked.path:
                return layer
        return None

    def to_record(self) -> SnapshotRecord:
        return SnapshotRecord(
            name=self.name,
            created=self.created,
            tracked_dirs=list(self.tracked_dirs),
            pacman_packages=self.pacman_packages,
            layers=[
                LayerRecord(
                    name=layer.name,
                    source=layer.source,
                    path=layer.path.name,
                    backend=layer.backend,
                )
                for layer in self.layers
            ],
        )


@dataclass(frozen=True)
class SnapshotSummary:
    """Entry returned by listing: just enough to display and order snapshots."""

    name: str
    created: datetime

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "created": self.created.isoformat()}


class LayerRecord(BaseModel):
    """Serialized CapturedLayer."""

    name: str
    source: str
    path: str
    backend: str = "overlay"


class SnapshotRecord(BaseModel):
    """Serialized Snapshot, the metadata.json contract."""

    name: str = Field(min_length=1)
    created: datetime
    tracked_dirs: list[str] = Field(default_factory=list)
    pacman_packages: str = ""
    layers: list[LayerRecord] | None = None

    @field_validator("created")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Records must compare against each other during retention
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_snapshot(self, snapshot_dir: Path) -> Snapshot:
        """Build the domain object, resolving layer paths under snapshot_dir.

        Records without a layers field get one layer per tracked directory
        whose basename directory exists in the snapshot. A basename shared by
        several tracked directories is ambiguous and gets no layer.
        """
        if self.layers is not None:
            layers = tuple(
                CapturedLayer(
                    name=layer.name,
                    source=layer.source,
                    path=snapshot_dir / layer.path,
                    backend=layer.backend,
                )
                for layer in self.layers
            )
        else:
            inferred = []
            basenames = Counter(Path(tracked).name for tracked in self.tracked_dirs)
            for tracked in self.tracked_dirs:
                key = Path(tracked).name
                if basenames[key] > 1:
                    logger.warning(
                        f"Snapshot {self.name}: layer {key} is shared by several tracked "
                        f"directories, not restoring {tracked}"
                    )
                    continue
                if (snapshot_dir / key).is_dir():
                    inferred.append(
                        CapturedLayer(
                            name=key,
                            source=tracked,
                            path=snapshot_dir / key,
                            backend="overlay",
                        )
                    )
            layers = tuple(inferred)

        return Snapshot(
            name=self.name,
            created=self.created,
            tracked_dirs=tuple(self.tracked_dirs),
            pacman_packages=self.pacman_packages,
            layers=layers,
        )
