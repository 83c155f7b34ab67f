"""
pacman hook installation.

``snapstate init`` installs two hooks so every pacman transaction is
bracketed by snapshots:

    snapstate-pre.hook   PreTransaction   -> create pre_pacman_<timestamp>
    snapstate-post.hook  PostTransaction  -> create post_pacman_<timestamp>

pacman does not run Exec through a shell, so the timestamp substitution is
wrapped in ``/bin/sh -c``.
"""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

HOOK_TEMPLATE = """[Trigger]
Operation = Install
Operation = Upgrade
Operation = Remove
Type = Package
Target = *

[Action]
Description = Creating system snapshot {phase} pacman transaction...
When = {when}
Exec = /bin/sh -c '{executable} create {prefix}_$(date +%Y%m%d_%H%M%S)'
"""

HOOKS = (
    ("snapstate-pre.hook", "before", "PreTransaction", "pre_pacman"),
    ("snapstate-post.hook", "after", "PostTransaction", "post_pacman"),
)


def render_hook(executable: str, phase: str, when: str, prefix: str) -> str:
    return HOOK_TEMPLATE.format(executable=executable, phase=phase, when=when, prefix=prefix)


def install_pacman_hooks(hook_dir: str | Path, executable: str) -> list[Path]:
    """Write the pre- and post-transaction hooks into hook_dir.

    Existing hook files are overwritten.

    Returns:
        Paths of the written hook files
    """
    directory = Path(hook_dir)
    directory.mkdir(parents=True, exist_ok=True)

    written = []
    for filename, phase, when, prefix in HOOKS:
        path = directory / filename
        path.write_text(render_hook(executable, phase, when, prefix), encoding="utf-8")
        written.append(path)

    logger.info("Pacman hooks installed successfully", extra={"hook_dir": str(directory)})
    return written
