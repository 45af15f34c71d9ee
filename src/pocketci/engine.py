"""Execution of plans.

Serial groups run children in order and stop at the first error. Parallel
groups run every branch on its own thread with private buffered output;
branch output is flushed as one block, in completion order, when the branch
ends. Every branch runs to completion; the first failure cancels the group's
signal, which nested parallel groups check when they start and
:func:`pocketci.exec.run` checks before spawning a command.

Task arguments are layered: declared defaults, then ``flags`` from enclosing
``with_options`` scopes, then values given on the command line.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor

from pocketci.config import Config
from pocketci.errors import CancelledError, ExecutionError, PocketError
from pocketci.output import BufferedOutput
from pocketci.plan import Mode, Plan, PlanBuilder, PlanGroup, PlanNode, PlanUnit
from pocketci.runnable import Runnable, Task
from pocketci.session import Session
from pocketci.state import ContextState

logger = logging.getLogger(__name__)


def format_header(name: str, path: str) -> str:
    if path == ".":
        return f":: {name}"
    return f":: {name} [{path}]"


class Engine:
    """Runs a :class:`Plan` against a root :class:`ContextState`.

    ``task_args`` maps task identities to ``key=value`` overrides from the
    command line.
    """

    def __init__(self, session: Session, task_args: Mapping[int, Mapping[str, str]] | None = None):
        self.session = session
        self.task_args = dict(task_args or {})

    def execute(self, plan: Plan, state: ContextState | None = None) -> None:
        state = (state or ContextState()).derive(git_root=plan.git_root)
        if state.cancelled and plan.root is not None:
            raise CancelledError(_first_task(plan.root), state.path)
        error = self._run(plan.root, state)
        if error is not None:
            raise error

    def _run(self, node: PlanNode | None, state: ContextState) -> PocketError | None:
        if node is None:
            return None
        if isinstance(node, PlanUnit):
            return self._run_unit(node, state)
        if node.kind == "parallel":
            return self._run_parallel(node, state)
        return self._run_serial(node, state)

    def _run_serial(self, group: PlanGroup, state: ContextState) -> PocketError | None:
        for child in group.children:
            error = self._run(child, state)
            if error is not None:
                return error
        return None

    def _run_parallel(self, group: PlanGroup, state: ContextState) -> PocketError | None:
        if state.cancelled:
            return CancelledError(_first_task(group), state.path)
        if len(group.children) == 1:
            return self._run(group.children[0], state)

        cancel = state.cancel.child()
        lock = threading.Lock()
        errors: list[PocketError] = []

        def branch(child: PlanNode) -> None:
            buffer = BufferedOutput(state.out)
            branch_state = state.derive(out=buffer.output(), cancel=cancel)
            try:
                error = self._run(child, branch_state)
            except Exception as exc:
                error = ExecutionError(_first_task(child), state.path, exc)
            with lock:
                buffer.flush()
                if error is not None:
                    errors.append(error)
                    cancel.cancel()

        with ThreadPoolExecutor(max_workers=len(group.children), thread_name_prefix="pocket") as pool:
            futures = [pool.submit(branch, child) for child in group.children]
            for future in futures:
                future.result()

        if not errors:
            return None
        real = [e for e in errors if not isinstance(e, CancelledError)]
        if len(errors) > 1:
            logger.debug("parallel group had %d failing branches", len(errors))
        return (real or errors)[0]

    def _run_unit(self, unit: PlanUnit, state: ContextState) -> PocketError | None:
        if not unit.runs:
            logger.debug(
                "skip %s at %s (%s)", unit.name, unit.path, "deduped" if unit.deduped else "manual"
            )
            return None

        task = unit.task
        args = task.default_args()
        if task.schema is not None:
            args = task.schema.apply(args, dict(unit.flags))
            args = task.schema.apply(args, self.task_args.get(task.ident) or {})
        unit_state = state.derive(path=unit.path, force=unit.force or state.force, task_args=args)
        unit_state.echo(format_header(unit.name, unit.path))
        logger.debug("run %s at %s", unit.name, self.session.git_root / unit.path)
        try:
            task.body(unit_state)  # type: ignore[misc]
        except ExecutionError as exc:
            return exc
        except Exception as exc:
            return ExecutionError(unit.name, unit.path, exc)
        return None


def run(
    target: Runnable | Config | None,
    *,
    mode: Mode = Mode.EXECUTE,
    session: Session | None = None,
    state: ContextState | None = None,
    task: Task | None = None,
    task_args: Mapping[int, Mapping[str, str]] | None = None,
    suffix: str | None = None,
) -> Plan:
    """Plan ``target`` and, in EXECUTE mode, run it.

    With a :class:`Config`, ``task`` selects a named invocation (``suffix``
    narrows it to one name variant); without it the automatic tree runs and
    manual tasks are skipped.
    """
    session = session or Session()
    if isinstance(target, Config):
        builder = PlanBuilder(session, mode, skip_manual=task is None)
        plan = builder.build_task(target, task, suffix) if task is not None else builder.build_config(target)
    else:
        plan = PlanBuilder(session, mode, skip_manual=False).build(target)
    if mode is Mode.EXECUTE:
        Engine(session, task_args).execute(plan, state)
    return plan


def collect(
    target: Runnable | Config | None,
    *,
    session: Session | None = None,
    task: Task | None = None,
    suffix: str | None = None,
) -> Plan:
    """Plan ``target`` without running anything."""
    return run(target, mode=Mode.COLLECT, session=session, task=task, suffix=suffix)


def _first_task(node: PlanNode) -> str:
    if isinstance(node, PlanUnit):
        return node.name
    for child in node.children:
        return _first_task(child)
    return "?"
