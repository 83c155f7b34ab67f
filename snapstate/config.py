"""
Configuration management for SnapState.

Configuration comes from /etc/snapstate.conf (YAML) when present, otherwise
from environment variables. Both sources use the same keys. The resulting
SnapStateConfig is constructed once and passed into every component.

Invariants:
    - All settings have defaults matching a stock Arch Linux host
    - Tracked directories are absolute paths
    - Configuration is immutable for the duration of a run

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep env var names and YAML keys in sync
    - Never change the default root; existing snapshots live there
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .models import TrackedDirectory

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "/etc/snapstate.conf"

DEFAULT_TRACKED_DIRS = (
    "/etc",
    "/usr/local/etc",
    "/boot/loader",
    "/var/lib/pacman",
)


class CaptureBackend(Enum):
    """Supported snapshot capture backends."""

    OVERLAY = "overlay"
    COPY = "copy"


class SyncBackend(Enum):
    """Supported rollback mirror backends."""

    RSYNC = "rsync"
    COPY = "copy"


@dataclass(frozen=True)
class SnapStateConfig:
    """Complete SnapState configuration.

    Attributes:
        root: Storage root holding overlay/, snapshots/ and work/
        tracked_dirs: Ordered absolute paths captured by every snapshot
        keep_count: Default number of snapshots kept by cleanup
        capture_backend: How tracked directories are captured
        sync_backend: How captured layers are mirrored back on rollback
        package_command: Command whose output is stored as the package manifest
        lock_timeout_seconds: How long to wait for the store lock
        hook_dir: Directory receiving the pacman hooks on init
        executable: Path of the snapstate executable invoked by the hooks
        log_file: Operational log appended by the CLI
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    root: str = "/var/lib/snapstate"
    tracked_dirs: tuple[str, ...] = DEFAULT_TRACKED_DIRS
    keep_count: int = 5
    capture_backend: CaptureBackend = CaptureBackend.OVERLAY
    sync_backend: SyncBackend = SyncBackend.RSYNC
    package_command: str = "pacman -Q"
    lock_timeout_seconds: float = 30.0
    hook_dir: str = "/etc/pacman.d/hooks"
    executable: str = "/usr/local/bin/snapstate"
    log_file: str = "/var/log/snapstate.log"
    log_level: str = "INFO"
    log_format: str = "text"

    @property
    def root_path(self) -> Path:
        return Path(self.root)

    @property
    def overlay_dir(self) -> Path:
        """Transient mount targets."""
        return self.root_path / "overlay"

    @property
    def snapshot_dir(self) -> Path:
        """One directory per snapshot."""
        return self.root_path / "snapshots"

    @property
    def work_dir(self) -> Path:
        """Overlay scratch areas."""
        return self.root_path / "work"

    @property
    def lock_file(self) -> Path:
        return self.root_path / ".lock"

    def tracked_directories(self) -> tuple[TrackedDirectory, ...]:
        """Tracked paths with their storage keys.

        The key is the basename. A path whose basename is already taken by an
        earlier entry is keyed by its full path with separators replaced, and
        a numeric suffix is appended while that is still taken.
        """
        result = []
        taken: set[str] = set()
        for raw in self.tracked_dirs:
            path = os.path.normpath(raw)
            name = os.path.basename(path)
            if name in taken:
                base = path.strip("/").replace("/", "_")
                name = base
                suffix = 2
                while name in taken:
                    name = f"{base}_{suffix}"
                    suffix += 1
            taken.add(name)
            result.append(TrackedDirectory(path=path, name=name))
        return tuple(result)

    @classmethod
    def from_env(cls) -> SnapStateConfig:
        """Load configuration from environment variables."""
        tracked = os.getenv("SNAPSTATE_TRACKED_DIRS")
        config = cls(
            root=os.getenv("SNAPSTATE_ROOT", "/var/lib/snapstate"),
            tracked_dirs=(
                tuple(p for p in tracked.split(":") if p) if tracked else DEFAULT_TRACKED_DIRS
            ),
            keep_count=int(os.getenv("SNAPSTATE_KEEP_COUNT", "5")),
            capture_backend=_parse_enum(
                CaptureBackend, os.getenv("SNAPSTATE_CAPTURE_BACKEND", "overlay")
            ),
            sync_backend=_parse_enum(SyncBackend, os.getenv("SNAPSTATE_SYNC_BACKEND", "rsync")),
            package_command=os.getenv("SNAPSTATE_PACKAGE_COMMAND", "pacman -Q"),
            lock_timeout_seconds=float(os.getenv("SNAPSTATE_LOCK_TIMEOUT", "30")),
            hook_dir=os.getenv("SNAPSTATE_HOOK_DIR", "/etc/pacman.d/hooks"),
            executable=os.getenv("SNAPSTATE_EXECUTABLE", "/usr/local/bin/snapstate"),
            log_file=os.getenv("SNAPSTATE_LOG_FILE", "/var/log/snapstate.log"),
            log_level=os.getenv("SNAPSTATE_LOG_LEVEL", "INFO"),
            log_format=os.getenv("SNAPSTATE_LOG_FORMAT", "text"),
        )
        config.validate()
        return config

    @classmethod
    def from_file(cls, path: str | os.PathLike[str]) -> SnapStateConfig:
        """Load configuration from a YAML file.

        Unknown keys are rejected so typos do not silently fall back to defaults.

        Raises:
            ValueError: If the file is not a mapping or holds invalid values.
        """
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys in {path}: {', '.join(unknown)}")

        values: dict[str, Any] = dict(data)
        if "tracked_dirs" in values:
            tracked = values["tracked_dirs"]
            if isinstance(tracked, str):
                tracked = [p for p in tracked.split(":") if p]
            values["tracked_dirs"] = tuple(str(p) for p in tracked)
        if "capture_backend" in values:
            values["capture_backend"] = _parse_enum(CaptureBackend, values["capture_backend"])
        if "sync_backend" in values:
            values["sync_backend"] = _parse_enum(SyncBackend, values["sync_backend"])
        if "keep_count" in values:
            values["keep_count"] = int(values["keep_count"])
        if "lock_timeout_seconds" in values:
            values["lock_timeout_seconds"] = float(values["lock_timeout_seconds"])

        config = cls(**values)
        config.validate()
        return config

    @classmethod
    def load(cls, path: str | os.PathLike[str] | None = None) -> SnapStateConfig:
        """Load from the configuration file if it exists, else from the environment."""
        config_path = Path(path or os.getenv("SNAPSTATE_CONFIG", DEFAULT_CONFIG_FILE))
        if config_path.is_file():
            return cls.from_file(config_path)
        return cls.from_env()

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.tracked_dirs:
            raise ValueError("At least one tracked directory is required")
        for path in self.tracked_dirs:
            if not os.path.isabs(path):
                raise ValueError(f"Tracked directory must be absolute: {path}")
            if os.path.normpath(path) == "/":
                raise ValueError("The filesystem root cannot be tracked")
        normalized = [os.path.normpath(path) for path in self.tracked_dirs]
        if len(set(normalized)) != len(normalized):
            raise ValueError("Tracked directories must not be listed twice")
        if not os.path.isabs(self.root):
            raise ValueError(f"SNAPSTATE_ROOT must be absolute: {self.root}")
        if self.lock_timeout_seconds < 0:
            raise ValueError("SNAPSTATE_LOCK_TIMEOUT must not be negative")
        if self.log_format not in ("json", "text"):
            raise ValueError(f"Invalid log format '{self.log_format}'. Must be one of: json, text")

    def log_config(self) -> None:
        """Log the effective configuration."""
        logger.debug(
            "SnapState configuration loaded",
            extra={
                "root": self.root,
                "tracked_dirs": list(self.tracked_dirs),
                "keep_count": self.keep_count,
                "capture_backend": self.capture_backend.value,
                "sync_backend": self.sync_backend.value,
            },
        )


def _parse_enum(enum_cls: type[Enum], value: Any) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        choices = ", ".join(member.value for member in enum_cls)
        raise ValueError(f"Invalid {enum_cls.__name__} '{value}'. Must be one of: {choices}")
