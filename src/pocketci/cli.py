"""pok command line front-end."""

from __future__ import annotations

import logging
import sys
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

import typer
from rich.logging import RichHandler

from pocketci import __version__
from pocketci.config import Config, load_task_config, resolve_config_path
from pocketci.engine import collect, run
from pocketci.errors import PocketError, UserInputError
from pocketci.plan import index_tasks, lookup_task
from pocketci.runnable import Task
from pocketci.session import Session
from pocketci.state import ContextState
from pocketci.ui import (
    err_console,
    print_error,
    render_help,
    render_plan,
    render_plan_json,
    render_task_help,
)

logger = logging.getLogger(__name__)

cli = typer.Typer(add_completion=False, no_args_is_help=False)


@dataclass(frozen=True)
class Invocation:
    """Parsed positional part of a command line.

    ``extra_args`` is ``None`` when no ``--`` was given and an empty tuple
    when ``--`` was the last token.
    """

    task_name: str | None = None
    overrides: dict[str, str] = field(default_factory=dict)
    extra_args: tuple[str, ...] | None = None


def split_extra(argv: Sequence[str]) -> tuple[list[str], list[str] | None]:
    """Split argv at the first literal ``--``; everything after it is kept verbatim."""
    args = list(argv)
    if "--" not in args:
        return args, None
    idx = args.index("--")
    return args[:idx], args[idx + 1 :]


def parse_overrides(tokens: Sequence[str]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for token in tokens:
        key, sep, value = token.partition("=")
        if not sep:
            raise UserInputError(f"invalid argument {token!r}: expected key=value")
        if not key:
            raise UserInputError(f"invalid argument {token!r}: empty key")
        overrides[key] = value
    return overrides


def parse_invocation(argv: Sequence[str]) -> Invocation:
    """Parse ``[task] [key=value ...] [-- extra ...]`` (global flags already removed)."""
    head, tail = split_extra(argv)
    extra = tuple(tail) if tail is not None else None
    if not head:
        return Invocation(extra_args=extra)
    name, rest = head[0], head[1:]
    if "=" in name:
        raise UserInputError(f"argument {name!r} given without a task name")
    return Invocation(task_name=name, overrides=parse_overrides(rest), extra_args=extra)


def setup_logging(verbose: bool) -> None:
    root = logging.getLogger("pocketci")
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)
    handler = RichHandler(console=err_console, show_time=False, show_path=False, rich_tracebacks=True)
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _version_option_callback(value: bool) -> None:
    """Handle eager --version option."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


def _load_config(session: Session, config_path: Path | None) -> Config:
    path = resolve_config_path(session.git_root, config_path)
    logger.debug("loading task configuration from %s", path)
    return load_task_config(path)


def _check_task_args(task: Task, overrides: dict[str, str]) -> None:
    if task.schema is None:
        if overrides:
            raise UserInputError(f"task {task.name} takes no arguments, got {', '.join(sorted(overrides))}")
        return
    task.schema.parse(overrides)


@cli.command(context_settings={"help_option_names": []})
def pok(
    ctx: typer.Context,
    tokens: list[str] | None = typer.Argument(None, metavar="[TASK] [KEY=VALUE]..."),
    verbose: bool = typer.Option(False, "--verbose", "-v", envvar="POCKET_VERBOSE", help="Verbose output."),
    show_help: bool = typer.Option(False, "--help", "-h", help="Show help and exit."),
    version: bool = typer.Option(
        False,
        "--version",
        help="Show pocketci version and exit.",
        is_eager=True,
        callback=_version_option_callback,
    ),
    plan: bool = typer.Option(False, "--plan", help="Preview the execution plan."),
    json_output: bool = typer.Option(False, "--json", help="Print the plan preview as JSON."),
    show_all: bool = typer.Option(False, "--all", help="Include hidden and deduplicated units."),
    config_path: Path | None = typer.Option(None, "--config", help="Task configuration file."),
) -> None:
    """Run the configured task tree, or a single task by name."""
    _ = version
    setup_logging(verbose)
    obj = ctx.obj or {}
    extra = obj.get("extra")
    argv = list(tokens or [])
    if extra is not None:
        argv += ["--", *extra]

    try:
        invocation = parse_invocation(argv)
    except UserInputError as exc:
        print_error(str(exc))
        raise typer.Exit(2) from exc

    session = Session()
    try:
        config = obj.get("config") or _load_config(session, config_path)
        index = index_tasks(config)
    except PocketError as exc:
        print_error(str(exc))
        raise typer.Exit(1) from exc

    task: Task | None = None
    suffix: str | None = None
    if invocation.task_name is not None:
        found = lookup_task(index, invocation.task_name)
        if found is not None:
            task, suffix = found
        else:
            print_error(f"unknown task {invocation.task_name!r}; run `pok -h` to list tasks")
            raise typer.Exit(2)

    if show_help:
        if task is not None:
            render_task_help(task)
        else:
            render_help(config, show_all=show_all)
        raise typer.Exit()

    task_args: dict[int, dict[str, str]] = {}
    try:
        if task is not None:
            _check_task_args(task, invocation.overrides)
            task_args[task.ident] = invocation.overrides
        if plan:
            preview = collect(config, session=session, task=task, suffix=suffix)
            if json_output:
                render_plan_json(preview)
            else:
                render_plan(preview, show_all=show_all)
            return
        state = ContextState(verbose=verbose, extra_args=invocation.extra_args or ())
        run(config, session=session, state=state, task=task, task_args=task_args, suffix=suffix)
    except UserInputError as exc:
        print_error(str(exc))
        raise typer.Exit(2) from exc
    except PocketError as exc:
        print_error(str(exc))
        raise typer.Exit(1) from exc


def main(argv: Sequence[str] | None = None, *, config: Config | None = None) -> None:
    """Entry point for ``pok``; ``config`` skips loading the task configuration file."""
    args = list(sys.argv[1:] if argv is None else argv)
    head, tail = split_extra(args)
    cli(args=head, prog_name="pok", obj={"config": config, "extra": tail})


def run_main(config: Config) -> None:
    """Run the CLI against an in-process configuration."""
    main(config=config)


if __name__ == "__main__":
    main()
