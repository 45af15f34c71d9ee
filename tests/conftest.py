"""Pytest configuration and fixtures for pocketci tests."""
from __future__ import annotations

import threading
from pathlib import Path

import pytest

from pocketci.config import PlanSettings
from pocketci.runnable import Task
from pocketci.session import Session


class Recorder:
    """Builds tasks that record (name, path) for every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.states: dict[str, list] = {}
        self._lock = threading.Lock()

    def task(self, name: str, *, fail: bool = False, **kwargs) -> Task:
        def body(state) -> None:
            with self._lock:
                self.calls.append((name, state.path))
                self.states.setdefault(name, []).append(state)
            if fail:
                raise RuntimeError(f"{name} failed")

        return Task(name, body, **kwargs)

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """A small repository: two services, one tool, a vendored and a hidden dir."""
    root = tmp_path / "repo"
    for rel in ("services/a", "services/b", "tools/c", "vendor/x", ".hidden/y"):
        (root / rel).mkdir(parents=True)
    (root / ".git").mkdir()
    (root / "services/a/go.mod").write_text("module a\n", encoding="utf-8")
    (root / "tools/c/go.mod").write_text("module c\n", encoding="utf-8")
    (root / "services/b/main.py").write_text("print('b')\n", encoding="utf-8")
    return root


@pytest.fixture
def session(repo: Path) -> Session:
    return Session(cwd=repo, git_root=repo, settings=PlanSettings())
