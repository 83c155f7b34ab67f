"""
Snapshot capture for SnapState.

This module provides a pluggable capture interface supporting:
- OverlayFS mounts (reference behavior, requires root and kernel support)
- Full copies (portable, works unprivileged)

Invariants:
    - Each tracked directory gets exactly one layer per snapshot
    - Capture never writes into the tracked directory itself

How to change safely:
    - New backends must implement SnapshotCapture
    - Record the backend name in each layer so rollback can interpret it
"""

from .base import SnapshotCapture, create_capture, layer_path
from .copy import CopyCapture
from .overlay import OverlayManager

__all__ = [
    "SnapshotCapture",
    "create_capture",
    "layer_path",
    "CopyCapture",
    "OverlayManager",
]
