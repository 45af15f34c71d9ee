"""Process-wide session: git root detection and the repository directory walk."""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path

from pocketci.config import POCKET_DIR, PlanSettings, load_plan_settings

logger = logging.getLogger(__name__)


def find_git_root(start: Path) -> Path:
    """
    Find the nearest parent of ``start`` containing ``.git``.

    Falls back to ``start`` itself when no repository is found, so the
    framework can still run in a plain directory.

    Args:
        start: Starting directory for search

    Returns:
        Absolute path of the repository root
    """
    current = start.resolve()

    while True:
        if (current / ".git").exists():
            return current

        parent = current.parent
        if parent == current:
            logger.warning("No .git found above %s; using it as the root", start)
            return start.resolve()

        current = parent


def walk_directories(
    root: Path,
    skip_dirs: tuple[str, ...] = (),
    include_hidden: bool = False,
) -> list[str]:
    """
    List every directory under ``root`` as a git-root-relative posix path.

    ``"."`` (the root itself) always comes first; the rest are sorted so the
    walk is deterministic. Skipped and (unless requested) hidden directories
    are not descended into. ``.git`` and ``.pocket`` are always skipped.
    """
    skip = set(skip_dirs) | {".git", POCKET_DIR}
    found: list[str] = []
    for dirpath, dirnames, _ in os.walk(root):
        kept = []
        for name in sorted(dirnames):
            if name in skip:
                continue
            if name.startswith(".") and not include_hidden:
                continue
            kept.append(name)
        dirnames[:] = kept
        for name in kept:
            found.append((Path(dirpath) / name).relative_to(root).as_posix())
    return ["."] + sorted(found)


class Session:
    """State computed once per process and shared by every plan.

    The git root and directory walk are write-once caches guarded by a
    lock; after the first computation they are only read.
    """

    def __init__(
        self,
        cwd: Path | None = None,
        git_root: Path | None = None,
        settings: PlanSettings | None = None,
    ):
        self.cwd = (cwd or Path.cwd()).resolve()
        self._lock = threading.Lock()
        self._git_root = git_root.resolve() if git_root is not None else None
        self._settings = settings
        self._directories: list[str] | None = None

    @property
    def git_root(self) -> Path:
        if self._git_root is None:
            with self._lock:
                if self._git_root is None:
                    self._git_root = find_git_root(self.cwd)
                    logger.debug("git root: %s", self._git_root)
        return self._git_root

    @property
    def settings(self) -> PlanSettings:
        if self._settings is None:
            loaded = load_plan_settings(self.git_root)
            with self._lock:
                if self._settings is None:
                    self._settings = loaded
        return self._settings

    def directories(self) -> list[str]:
        """Cached directory walk of the repository."""
        if self._directories is None:
            settings = self.settings
            dirs = walk_directories(self.git_root, settings.skip_dirs, settings.include_hidden_dirs)
            with self._lock:
                if self._directories is None:
                    self._directories = dirs
                    logger.debug("walked %d directories under %s", len(dirs), self.git_root)
        return list(self._directories)

    def relative_cwd(self) -> str:
        """Invocation directory relative to the git root (``"."`` at the root)."""
        try:
            rel = self.cwd.relative_to(self.git_root).as_posix()
        except ValueError:
            return "."
        return rel or "."

    def from_git_root(self, *parts: str) -> Path:
        return self.git_root.joinpath(*parts)
