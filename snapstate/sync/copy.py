"""
Pure-Python directory mirror.

Portable replacement for rsync used where rsync is unavailable, by the
copy-based capture backend, and in tests. It follows the same contract as
``rsync -aAX --delete``:

- Entries present only in the destination are removed
- Regular files are rewritten when their content differs
- Symlinks are recreated, never followed
- Mode, timestamps and extended attributes come from the source
- Ownership comes from the source when running as root

Invariants:
    - Directories are finalized after their children so mtimes survive
    - Entries whose type changed (file -> dir, ...) are replaced, not merged
"""

from __future__ import annotations

import filecmp
import logging
import os
import shutil
from pathlib import Path

from .base import MirrorError

logger = logging.getLogger(__name__)


def _kind(entry: os.DirEntry) -> str:
    if entry.is_symlink():
        return "link"
    if entry.is_dir(follow_symlinks=False):
        return "dir"
    if entry.is_file(follow_symlinks=False):
        return "file"
    return "special"


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


class CopyMirror:
    """Mirror directories with shutil and os primitives.

    Attributes:
        preserve_owner: Copy uid/gid from the source. Defaults to True only
            when running as root, since chown is otherwise refused.
    """

    def __init__(self, preserve_owner: bool | None = None) -> None:
        if preserve_owner is None:
            preserve_owner = os.geteuid() == 0
        self.preserve_owner = preserve_owner
        self.files_copied = 0
        self.entries_removed = 0

    def mirror(self, source: Path, destination: Path) -> None:
        source = Path(source)
        destination = Path(destination)
        if not source.is_dir():
            raise MirrorError(f"Source directory {source} does not exist")

        self.files_copied = 0
        self.entries_removed = 0
        try:
            destination.mkdir(parents=True, exist_ok=True)
            self._sync_dir(source, destination)
            self._copy_metadata(source, destination)
        except (OSError, shutil.Error) as e:
            raise MirrorError(f"Failed to mirror {source} to {destination}: {e}") from e

        logger.debug(
            "Mirrored directory",
            extra={
                "source": str(source),
                "destination": str(destination),
                "files_copied": self.files_copied,
                "entries_removed": self.entries_removed,
            },
        )

    def _sync_dir(self, source: Path, destination: Path) -> None:
        with os.scandir(source) as it:
            wanted = {entry.name: entry for entry in it}

        with os.scandir(destination) as it:
            existing = list(it)
        for entry in existing:
            src = wanted.get(entry.name)
            if src is None or _kind(src) != _kind(entry):
                _remove(Path(entry.path))
                self.entries_removed += 1

        for name in sorted(wanted):
            entry = wanted[name]
            target = destination / name
            kind = _kind(entry)

            if kind == "link":
                link = os.readlink(entry.path)
                if not (target.is_symlink() and os.readlink(target) == link):
                    if os.path.lexists(target):
                        target.unlink()
                    os.symlink(link, target)
            elif kind == "dir":
                target.mkdir(exist_ok=True)
                self._sync_dir(Path(entry.path), target)
            elif kind == "file":
                if not target.exists() or not filecmp.cmp(entry.path, target, shallow=False):
                    # Read-only targets cannot be opened for writing
                    if target.exists():
                        target.unlink()
                    shutil.copy2(entry.path, target, follow_symlinks=False)
                    self.files_copied += 1
            else:
                # Device nodes, fifos and overlay whiteouts
                st = entry.stat(follow_symlinks=False)
                if os.path.lexists(target):
                    target.unlink()
                os.mknod(target, st.st_mode, st.st_rdev)

            self._copy_metadata(Path(entry.path), target)

    def _copy_metadata(self, source: Path, destination: Path) -> None:
        if not source.is_symlink():
            shutil.copystat(source, destination)
        if self.preserve_owner:
            st = os.lstat(source)
            os.chown(destination, st.st_uid, st.st_gid, follow_symlinks=False)
