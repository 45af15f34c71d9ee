"""Immutable per-branch execution state."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from pocketci.output import Output


class Cancellation:
    """Cooperative cancellation signal.

    A child signal reports cancelled when it or any ancestor was cancelled;
    cancelling a child never affects its parent.
    """

    def __init__(self, parent: Cancellation | None = None):
        self._event = threading.Event()
        self._parent = parent

    def cancel(self) -> None:
        self._event.set()

    def child(self) -> Cancellation:
        return Cancellation(parent=self)

    @property
    def cancelled(self) -> bool:
        node: Cancellation | None = self
        while node is not None:
            if node._event.is_set():
                return True
            node = node._parent
        return False


@dataclass(frozen=True)
class ContextState:
    """Execution state visible to one branch of the task tree.

    ``path`` is relative to ``git_root``, which the engine sets from the plan's
    session. ``task_args`` is the parsed argument dataclass of the task being
    run (``None`` for tasks without a schema).
    """

    path: str = "."
    verbose: bool = False
    force: bool = False
    extra_args: tuple[str, ...] = ()
    task_args: Any = None
    git_root: Path | None = None
    out: Output = field(default_factory=Output.std, compare=False)
    cancel: Cancellation = field(default_factory=Cancellation, compare=False)

    def derive(self, **changes: Any) -> ContextState:
        """Return a child state; fields equal to the parent's are left shared."""
        if "extra_args" in changes:
            changes["extra_args"] = tuple(changes["extra_args"])
        changes = {k: v for k, v in changes.items() if getattr(self, k) is not v}
        if not changes:
            return self
        return replace(self, **changes)

    @property
    def cancelled(self) -> bool:
        return self.cancel.cancelled

    def abspath(self, git_root: Path | None = None) -> Path:
        root = git_root or self.git_root or Path.cwd()
        return (root / self.path).resolve()

    def echo(self, message: str = "", *, err: bool = False) -> None:
        stream = self.out.stderr if err else self.out.stdout
        stream.write(message + "\n")
