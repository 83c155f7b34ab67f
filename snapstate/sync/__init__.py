"""
Directory mirroring for SnapState.

This module provides a pluggable mirror interface supporting:
- rsync (reference behavior, preserves ACLs and xattrs)
- Pure Python copy (portable, no external binaries)

Invariants:
    - A mirror leaves the destination identical to the source on success
    - Failures raise MirrorError and are never retried here
"""

from .base import DirectoryMirror, MirrorError, create_mirror
from .copy import CopyMirror
from .rsync import RsyncMirror

__all__ = [
    "DirectoryMirror",
    "MirrorError",
    "create_mirror",
    "CopyMirror",
    "RsyncMirror",
]
