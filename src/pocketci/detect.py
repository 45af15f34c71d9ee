"""Detect functions for :func:`pocketci.paths.with_options`.

A detect function receives the candidate directories of its scope (git-root
relative) and the git root, and returns the directories it selects.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from pocketci.paths import DetectFunc


def detect_by_file(*filenames: str) -> DetectFunc:
    """Select candidate directories containing any of ``filenames`` (e.g. ``"go.mod"``)."""

    def detect(dirs: Sequence[str], git_root: str) -> list[str]:
        root = Path(git_root)
        return [d for d in dirs if any((root / d / name).exists() for name in filenames)]

    detect.__name__ = f"detect_by_file({', '.join(filenames)})"
    return detect


def detect_by_extension(*suffixes: str) -> DetectFunc:
    """Select candidate directories holding at least one file ending in one of ``suffixes``."""

    def detect(dirs: Sequence[str], git_root: str) -> list[str]:
        root = Path(git_root)
        selected = []
        for d in dirs:
            directory = root / d
            try:
                entries = list(directory.iterdir())
            except OSError:
                continue
            if any(e.is_file() and e.name.endswith(suffixes) for e in entries):
                selected.append(d)
        return selected

    detect.__name__ = f"detect_by_extension({', '.join(suffixes)})"
    return detect
