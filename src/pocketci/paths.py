"""Path scoping for runnables.

:func:`with_options` wraps a runnable in a :class:`PathFilter` that decides
which repository directories the wrapped tasks run in. Patterns are globs
matched against git-root-relative posix paths:

- ``*`` and ``?`` never match ``/``
- ``**`` matches across directories (``**/`` may match nothing)
- ``[abc]`` / ``[!abc]`` are character classes
- ``.`` is the git root
"""

from __future__ import annotations

import functools
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from pathlib import Path, PurePosixPath
from typing import Any

from pocketci.errors import ConfigurationError, ResolutionError
from pocketci.runnable import Runnable, Task

DetectFunc = Callable[[Sequence[str], str], Iterable[str]]
FlagValue = bool | str | int


@functools.lru_cache(maxsize=512)
def compile_glob(pattern: str) -> re.Pattern[str]:
    """Translate a path glob into a compiled regex; raise ResolutionError when malformed."""
    normalized = normalize_path(pattern) if pattern.strip() else ""
    if not normalized:
        raise ResolutionError("empty path pattern")
    if pattern.startswith("/"):
        raise ResolutionError(f"path pattern {pattern!r} must be relative to the git root")

    out: list[str] = []
    i = 0
    n = len(normalized)
    while i < n:
        c = normalized[i]
        if c == "*":
            if normalized.startswith("**/", i):
                out.append("(?:.*/)?")
                i += 3
                continue
            if normalized.startswith("**", i):
                out.append(".*")
                i += 2
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            end = normalized.find("]", i + 2 if normalized.startswith("[!", i) else i + 1)
            if end == -1:
                raise ResolutionError(f"path pattern {pattern!r}: unterminated character class")
            body = normalized[i + 1 : end]
            negate = body.startswith("!")
            if negate:
                body = body[1:]
            if not body:
                raise ResolutionError(f"path pattern {pattern!r}: empty character class")
            body = body.replace("\\", "\\\\").replace("[", "\\[").replace("^", "\\^")
            out.append(f"[{'^' if negate else ''}{body}]")
            i = end
        else:
            out.append(re.escape(c))
        i += 1
    return re.compile("".join(out))


def match_path(path: str, pattern: str) -> bool:
    return compile_glob(pattern).fullmatch(path) is not None


def matches_any(path: str, patterns: Iterable[str]) -> bool:
    return any(match_path(path, p) for p in patterns)


def normalize_path(path: str) -> str:
    """Normalize a git-root-relative path: posix separators, no ``./`` prefix, ``"."`` for the root."""
    cleaned = path.strip().replace("\\", "/")
    if cleaned in ("", "."):
        return "."
    text = str(PurePosixPath(cleaned))
    while text.startswith("./"):
        text = text[2:]
    return text or "."


class PathFilter(Runnable):
    """A runnable restricted to (or expanded over) a set of directories."""

    __slots__ = ("inner", "include", "exclude", "detect", "force_run", "skip", "task_exclude", "flags", "name")

    kind = "paths"

    def __init__(
        self,
        inner: Runnable,
        *,
        include: Iterable[str] = (),
        exclude: Iterable[str] = (),
        detect: DetectFunc | None = None,
        force_run: bool = False,
        skip: Iterable[str | Task] = (),
        task_exclude: Mapping[str | Task, str | Iterable[str]] | None = None,
        flags: Mapping[str | Task, Mapping[str, FlagValue]] | None = None,
        name: str = "",
    ):
        if not isinstance(inner, Runnable):
            raise ConfigurationError(f"with_options: {inner!r} is not a Runnable")
        if detect is not None and not callable(detect):
            raise ConfigurationError(f"with_options: detect must be callable, got {detect!r}")
        self.inner = inner
        self.include: tuple[str, ...] = _as_tuple(include)
        self.exclude: tuple[str, ...] = _as_tuple(exclude)
        self.detect = detect
        self.force_run = bool(force_run)
        self.skip: tuple[str, ...] = tuple(_task_name(t) for t in _as_tuple(skip))
        self.task_exclude: dict[str, tuple[str, ...]] = {
            _task_name(t): _as_tuple(patterns) for t, patterns in (task_exclude or {}).items()
        }
        self.flags: dict[str, dict[str, Any]] = {
            _task_name(t): dict(values) for t, values in (flags or {}).items()
        }
        self.name = name

    def tasks(self) -> list[Task]:
        return [t for t in self.inner.tasks() if t.name not in self.skip]

    def resolve(
        self,
        candidates: Sequence[str],
        git_root: Path,
        *,
        nested: bool,
        inherited_exclude: Sequence[str] = (),
    ) -> list[str]:
        """Directories this filter selects from the enclosing scope's candidates.

        Order follows the candidate (or detect) order; duplicates are dropped.
        """
        candidates = [d for d in candidates if not matches_any(d, inherited_exclude)]

        if self.detect is not None:
            selected = self._run_detect(candidates, git_root)
        elif self.include or self.exclude or nested:
            selected = list(candidates)
        else:
            selected = ["."]

        if self.include:
            selected = [d for d in selected if matches_any(d, self.include)]
        excludes = (*inherited_exclude, *self.exclude)
        if excludes:
            selected = [d for d in selected if not matches_any(d, excludes)]
        return list(dict.fromkeys(selected))

    def _run_detect(self, candidates: list[str], git_root: Path) -> list[str]:
        name = getattr(self.detect, "__name__", repr(self.detect))
        try:
            detected = self.detect(list(candidates), str(git_root))  # type: ignore[misc]
            result = list(detected or [])
        except Exception as exc:
            raise ResolutionError(f"detect function {name} failed: {exc}") from exc
        for item in result:
            if not isinstance(item, str):
                raise ResolutionError(f"detect function {name} returned non-path {item!r}")
        return [normalize_path(item) for item in result]

    def __repr__(self) -> str:
        return (
            f"PathFilter({self.inner!r}, include={list(self.include)}, exclude={list(self.exclude)}, "
            f"detect={'yes' if self.detect else 'no'}, force_run={self.force_run}, name={self.name!r})"
        )


def with_options(
    runnable: Runnable,
    *,
    include: str | Iterable[str] = (),
    exclude: str | Iterable[str] = (),
    detect: DetectFunc | None = None,
    force_run: bool = False,
    skip: str | Task | Iterable[str | Task] = (),
    exclude_task: Mapping[str | Task, str | Iterable[str]] | None = None,
    flags: Mapping[str | Task, Mapping[str, FlagValue]] | None = None,
    name: str = "",
) -> PathFilter:
    """Wrap ``runnable`` so it runs in the directories selected by the given options.

    ``exclude_task`` adds exclude patterns that only apply to the named task.
    ``flags`` sets argument defaults per task inside this scope; inner scopes
    override outer ones and explicit command-line values override both.
    ``name`` appends ``:name`` to every task name in scope, so the same task
    can run once per variant (``test:py3.12``, ``test:py3.13``).

    Example::

        with_options(
            Parallel(lint, test),
            detect=detect_by_file("pyproject.toml"),
            exclude=["vendor/**"],
        )
    """
    return PathFilter(
        runnable,
        include=_as_tuple(include),
        exclude=_as_tuple(exclude),
        detect=detect,
        force_run=force_run,
        skip=_as_tuple(skip),
        task_exclude=exclude_task,
        flags=flags,
        name=name,
    )


def _as_tuple(value) -> tuple:
    if isinstance(value, (str, Task)):
        return (value,)
    return tuple(value)


def _task_name(value: str | Task) -> str:
    if isinstance(value, Task):
        return value.name
    if isinstance(value, str) and value:
        return value
    raise ConfigurationError(f"with_options expects task names or Task objects, got {value!r}")
