"""Units of work: leaf tasks and their serial/parallel composites.

Runnables are plain immutable values. They are planned and executed by
:mod:`pocketci.plan` and :mod:`pocketci.engine`; user code only builds trees
out of :class:`Task`, :class:`Serial`, :class:`Parallel` and
:func:`pocketci.paths.with_options`.
"""

from __future__ import annotations

import itertools
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from pocketci.args import ArgSchema
from pocketci.errors import ConfigurationError

if TYPE_CHECKING:
    from pocketci.state import ContextState

_task_ids = itertools.count(1)


class Runnable:
    """Base of every node in a task tree.

    New variants can only be declared inside pocketci; the planner knows
    every concrete type.
    """

    __slots__ = ()

    def __init_subclass__(cls, **kwargs: object) -> None:
        super().__init_subclass__(**kwargs)
        if cls.__module__.split(".")[0] != "pocketci":
            raise ConfigurationError(
                f"{cls.__module__}.{cls.__qualname__}: Runnable cannot be subclassed outside pocketci; "
                "compose Task, Serial, Parallel and with_options instead"
            )

    def tasks(self) -> list[Task]:
        """Leaf tasks contained in this runnable, in declaration order."""
        raise NotImplementedError


@dataclass(frozen=True, eq=False)
class Task(Runnable):
    """A named leaf unit of work.

    ``body`` receives the :class:`~pocketci.state.ContextState` of the unit
    and signals failure by raising. ``ident`` is assigned once at
    construction and survives :meth:`hidden` / :meth:`manual` copies, so all
    copies deduplicate as the same task.
    """

    name: str
    body: Callable[[ContextState], object] | None = None
    usage: str = ""
    args: type | None = None
    is_hidden: bool = False
    is_manual: bool = False
    ident: int = field(default_factory=lambda: next(_task_ids), repr=False)
    schema: ArgSchema | None = field(init=False, default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ConfigurationError("task name must not be empty")
        if any(ch.isspace() for ch in self.name) or "=" in self.name or self.name.startswith("-"):
            raise ConfigurationError(f"task name {self.name!r} must not contain whitespace or '=' or start with '-'")
        if self.body is None or not callable(self.body):
            raise ConfigurationError(f"task {self.name!r} has no implementation")
        if self.args is not None:
            object.__setattr__(self, "schema", ArgSchema.from_dataclass(self.args))

    def hidden(self) -> Task:
        """Copy of this task that is not listed in help output."""
        return replace(self, is_hidden=True)

    def manual(self) -> Task:
        """Copy of this task that only runs when invoked by name."""
        return replace(self, is_manual=True)

    def tasks(self) -> list[Task]:
        return [self]

    def default_args(self) -> object:
        return self.schema.defaults() if self.schema else None


class _Group(Runnable):
    __slots__ = ("children",)

    kind = "group"

    def __init__(self, *children: Runnable | None):
        for child in children:
            if child is not None and not isinstance(child, Runnable):
                raise ConfigurationError(
                    f"{type(self).__name__}: child {child!r} is not a Runnable"
                )
        self.children: tuple[Runnable | None, ...] = tuple(children)

    def tasks(self) -> list[Task]:
        return list(_flatten(c.tasks() for c in self.children if c is not None))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({', '.join(repr(c) for c in self.children)})"


class Serial(_Group):
    """Run children in order; stop at the first failure. ``None`` children are skipped."""

    __slots__ = ()

    kind = "serial"


class Parallel(_Group):
    """Run children concurrently and wait for all of them."""

    __slots__ = ()

    kind = "parallel"


def _flatten(groups: Iterable[list[Task]]) -> Iterable[Task]:
    for group in groups:
        yield from group
