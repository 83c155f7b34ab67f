"""
SnapState Test Suite.

This package contains:
- unit/: Unit tests (no mounts, no root, subprocess mocked)
- integration/: Integration tests (full engine with copy-based backends)
"""
