"""Plan building: resolve a runnable tree into (task, path) execution units.

The builder walks the tree depth-first, left to right, in declaration order.
Every :class:`~pocketci.paths.PathFilter` is resolved against the directories
of its enclosing scope, and every task becomes one :class:`PlanUnit` per
directory it runs in. The resulting tree keeps the serial/parallel topology
so the engine can execute it as declared.

A (task identity, name suffix, path) triple is planned once: later encounters
are kept in the plan as ``deduped`` units (shown in previews, skipped at
execution). Units reached through a force-run filter always run and do not
mark the triple as done, so a later plain encounter runs as well.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pocketci.config import Config
from pocketci.errors import ConfigurationError, UserInputError
from pocketci.paths import PathFilter, matches_any
from pocketci.runnable import Parallel, Runnable, Serial, Task
from pocketci.session import Session

logger = logging.getLogger(__name__)

ROOT = "."


class Mode(str, Enum):
    """How a plan is used once built."""

    COLLECT = "collect"
    EXECUTE = "execute"


@dataclass(frozen=True)
class PlanUnit:
    """One task at one path."""

    task: Task
    path: str
    force: bool = False
    deduped: bool = False
    skipped: bool = False
    suffix: str = ""
    flags: tuple[tuple[str, Any], ...] = ()

    @property
    def name(self) -> str:
        """Task name plus the scope's name suffix, e.g. ``test:py3.12``."""
        return f"{self.task.name}:{self.suffix}" if self.suffix else self.task.name

    @property
    def runs(self) -> bool:
        return not (self.deduped or self.skipped)

    @property
    def key(self) -> tuple[int, str, str]:
        return (self.task.ident, self.suffix, self.path)


@dataclass(frozen=True)
class PlanGroup:
    """Serial, parallel or per-path group of plan nodes.

    ``paths`` groups run their children one after another, like serial
    groups; ``dirs`` lists the directories the filter selected.
    """

    kind: Literal["serial", "parallel", "paths"]
    children: tuple[PlanNode, ...]
    dirs: tuple[str, ...] = ()


PlanNode = PlanUnit | PlanGroup


@dataclass(frozen=True)
class Plan:
    """Resolved execution tree plus the set of planned (task, path) keys."""

    root: PlanNode | None
    mode: Mode
    git_root: Path
    keys: frozenset[tuple[int, str, str]] = field(default_factory=frozenset)

    def units(self) -> list[PlanUnit]:
        """All units in traversal order, including deduped and skipped ones."""
        return list(_iter_units(self.root))

    def runnable_units(self) -> list[PlanUnit]:
        return [u for u in self.units() if u.runs]

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "git_root": str(self.git_root),
            "tree": _node_to_dict(self.root),
            "units": [
                {"task": u.name, "path": u.path, "force": u.force}
                for u in self.runnable_units()
            ],
        }


@dataclass(frozen=True)
class _Scope:
    candidates: tuple[str, ...]
    path: str | None = None
    force: bool = False
    excludes: tuple[str, ...] = ()
    skips: frozenset[str] = frozenset()
    suffix: str = ""
    task_excludes: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    flags: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)


class PlanBuilder:
    """Walks runnable trees into :class:`Plan` objects.

    ``skip_manual`` marks manual tasks met inside the tree as skipped; it is
    set for bare invocations, where only automatic tasks run.
    """

    def __init__(self, session: Session, mode: Mode = Mode.COLLECT, *, skip_manual: bool = True):
        self.session = session
        self.mode = mode
        self.skip_manual = skip_manual
        self._skipping = skip_manual
        self._seen: set[tuple[int, str, str]] = set()
        self._resolved: dict[tuple[int, tuple[str, ...], tuple[str, ...]], tuple[str, ...]] = {}

    def build(self, runnable: Runnable | None) -> Plan:
        """Plan a single runnable tree."""
        self._reset()
        self._skipping = self.skip_manual
        root = self._walk(runnable, self._root_scope())
        return self._plan(root)

    def build_config(self, config: Config) -> Plan:
        """Plan a bare invocation: the automatic tree only."""
        index_tasks(config)
        return self.build(config.auto)

    def build_task(self, config: Config, task: Task, suffix: str | None = None) -> Plan:
        """Plan a named invocation of ``task``.

        The whole configuration is walked so the task runs in every
        directory it is scoped to; a task never placed under a filter runs
        at the git root. ``suffix`` narrows the run to one name variant.
        """
        index_tasks(config)
        self._reset()
        self._skipping = False
        scope = self._root_scope()
        units: list[PlanUnit] = []
        for root, _ in config.roots():
            node = self._walk(root, scope)
            units.extend(
                u
                for u in _iter_units(node)
                if u.task.ident == task.ident and u.runs and (suffix is None or u.suffix == suffix)
            )
        if not units:
            if suffix is not None:
                raise UserInputError(f"unknown task {task.name}:{suffix!r}; run `pok -h` to list tasks")
            units = [PlanUnit(task=task, path=ROOT)]
        by_key: dict[tuple[str, str], PlanUnit] = {}
        for u in units:
            first = by_key.setdefault((u.suffix, u.path), u)
            if u.force and not first.force:
                by_key[(u.suffix, u.path)] = replace(first, force=True)
        named = tuple(by_key.values())
        root_node = named[0] if len(named) == 1 else PlanGroup("serial", named)
        logger.debug("planned %s at %s", task.name, ", ".join(f"{u.name}@{u.path}" for u in named))
        return Plan(root=root_node, mode=self.mode, git_root=self.session.git_root, keys=_unit_keys(root_node))

    def _reset(self) -> None:
        self._seen = set()
        self._resolved = {}

    def _root_scope(self) -> _Scope:
        dirs = self.session.directories()
        if ROOT not in dirs:
            dirs = [ROOT, *dirs]
        return _Scope(candidates=tuple(dirs))

    def _plan(self, root: PlanNode | None) -> Plan:
        return Plan(
            root=root,
            mode=self.mode,
            git_root=self.session.git_root,
            keys=_unit_keys(root),
        )

    def _walk(self, node: Runnable | None, scope: _Scope) -> PlanNode | None:
        if node is None:
            return None
        if isinstance(node, Task):
            return self._walk_task(node, scope)
        if isinstance(node, (Serial, Parallel)):
            children = tuple(
                child
                for child in (self._walk(c, scope) for c in node.children)
                if child is not None
            )
            if not children:
                return None
            return PlanGroup(node.kind, children)  # type: ignore[arg-type]
        if isinstance(node, PathFilter):
            return self._walk_filter(node, scope)
        raise ConfigurationError(f"unsupported runnable {node!r}")

    def _walk_task(self, task: Task, scope: _Scope) -> PlanUnit | None:
        if task.name in scope.skips:
            return None
        path = scope.path or ROOT
        if matches_any(path, scope.task_excludes.get(task.name, ())):
            return None
        unit = PlanUnit(
            task=task,
            path=path,
            force=scope.force,
            suffix=scope.suffix,
            flags=self._unit_flags(task, scope),
        )
        if self._skipping and task.is_manual:
            return replace(unit, skipped=True)
        if scope.force:
            return unit
        if unit.key in self._seen:
            return replace(unit, deduped=True)
        self._seen.add(unit.key)
        return unit

    @staticmethod
    def _unit_flags(task: Task, scope: _Scope) -> tuple[tuple[str, Any], ...]:
        values = scope.flags.get(task.name)
        if not values:
            return ()
        if task.schema is None:
            raise ConfigurationError(f"flags given for task {task.name}, which takes no arguments")
        try:
            task.schema.values(values)
        except UserInputError as exc:
            raise ConfigurationError(f"flags for task {task.name}: {exc}") from exc
        return tuple(values.items())

    def _walk_filter(self, pf: PathFilter, scope: _Scope) -> PlanNode | None:
        nested = scope.path is not None
        resolved = self._resolve(pf, scope, nested=nested)
        if nested:
            # Inside an enclosing filter's iteration only the current path applies.
            dirs: tuple[str, ...] = (scope.path,) if scope.path in resolved else ()
        else:
            dirs = resolved
        if not dirs:
            return None

        task_excludes = dict(scope.task_excludes)
        for name, patterns in pf.task_exclude.items():
            task_excludes[name] = (*task_excludes.get(name, ()), *patterns)
        flags = dict(scope.flags)
        for name, values in pf.flags.items():
            flags[name] = {**flags.get(name, {}), **values}
        inner_scope = _Scope(
            candidates=resolved,
            path=None,
            force=scope.force or pf.force_run,
            excludes=(*scope.excludes, *pf.exclude),
            skips=scope.skips | frozenset(pf.skip),
            suffix=":".join(s for s in (scope.suffix, pf.name) if s),
            task_excludes=task_excludes,
            flags=flags,
        )
        children = []
        for d in dirs:
            child = self._walk(pf.inner, replace(inner_scope, path=d))
            if child is not None:
                children.append(child)
        if not children:
            return None
        return PlanGroup("paths", tuple(children), dirs=dirs)

    def _resolve(self, pf: PathFilter, scope: _Scope, *, nested: bool) -> tuple[str, ...]:
        cache_key = (id(pf), scope.candidates, scope.excludes)
        cached = self._resolved.get(cache_key)
        if cached is not None:
            return cached
        resolved = tuple(
            pf.resolve(
                scope.candidates,
                self.session.git_root,
                nested=nested,
                inherited_exclude=scope.excludes,
            )
        )
        self._resolved[cache_key] = resolved
        logger.debug("%r resolved to %s", pf, list(resolved) or "no directories")
        return resolved


def index_tasks(config: Config) -> dict[str, Task]:
    """Map task names to tasks; distinct tasks sharing a name are a configuration error."""
    index: dict[str, Task] = {}
    for task in config.tasks():
        existing = index.get(task.name)
        if existing is None:
            index[task.name] = task
        elif existing.ident != task.ident:
            raise ConfigurationError(f"duplicate task name {task.name!r}; task names must be unique")
    return index


def lookup_task(index: Mapping[str, Task], name: str) -> tuple[Task, str | None] | None:
    """Find the task a command-line name refers to.

    ``test`` selects every variant of ``test``; ``test:py3.12`` selects the
    variant planned under a ``name="py3.12"`` scope.
    """
    task = index.get(name)
    if task is not None:
        return task, None
    base, sep, suffix = name.partition(":")
    while sep:
        task = index.get(base)
        if task is not None and suffix:
            return task, suffix
        head, sep, suffix = suffix.partition(":")
        base = f"{base}:{head}"
    return None


def _unit_keys(node: PlanNode | None) -> frozenset[tuple[int, str, str]]:
    return frozenset(u.key for u in _iter_units(node) if u.runs)


def _iter_units(node: PlanNode | None) -> Iterator[PlanUnit]:
    if node is None:
        return
    if isinstance(node, PlanUnit):
        yield node
        return
    for child in node.children:
        yield from _iter_units(child)


def _node_to_dict(node: PlanNode | None) -> dict[str, Any] | None:
    if node is None:
        return None
    if isinstance(node, PlanUnit):
        unit: dict[str, Any] = {
            "type": "task",
            "name": node.name,
            "path": node.path,
            "hidden": node.task.is_hidden,
            "manual": node.task.is_manual,
            "force": node.force,
            "deduped": node.deduped,
            "skipped": node.skipped,
        }
        if node.flags:
            unit["flags"] = dict(node.flags)
        return unit
    data: dict[str, Any] = {
        "type": node.kind,
        "children": [_node_to_dict(c) for c in node.children],
    }
    if node.kind == "paths":
        data["dirs"] = list(node.dirs)
    return data
