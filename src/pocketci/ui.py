"""Console rendering: help listings, task help and plan previews."""

from __future__ import annotations

import json
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from pocketci.args import format_default
from pocketci.config import Config
from pocketci.plan import Plan, PlanNode, PlanUnit
from pocketci.runnable import Task
from pocketci.schemas.validator import validate_data

console = Console()
err_console = Console(stderr=True)

GLOBAL_FLAGS: list[tuple[str, str]] = [
    ("-h, --help", "show help (or a task's arguments with `pok TASK -h`)"),
    ("-v, --verbose", "stream command output and debug logs"),
    ("--plan", "preview the execution plan without running it"),
    ("--json", "print the plan preview as JSON (with --plan)"),
    ("--all", "include hidden tasks and deduplicated units"),
    ("--config PATH", "task configuration file (default .pocket/config.py)"),
    ("--version", "show version and exit"),
]


def print_error(message: str) -> None:
    err_console.print(f"[bold red]Error:[/bold red] {escape(message)}")


def _task_table(tasks: list[Task]) -> Table:
    table = Table.grid(padding=(0, 3))
    table.add_column(style="bold cyan", no_wrap=True)
    table.add_column()
    for task in tasks:
        table.add_row(task.name, escape(task.usage))
    return table


def listed_tasks(config: Config, *, show_all: bool = False) -> tuple[list[Task], list[Task]]:
    """Split configured tasks into (auto, manual) listings, unique by identity."""
    auto: list[Task] = []
    manual: list[Task] = []
    seen: set[int] = set()
    for root, is_manual_section in config.roots():
        for task in root.tasks():
            if task.ident in seen:
                continue
            seen.add(task.ident)
            if task.is_hidden and not show_all:
                continue
            (manual if is_manual_section or task.is_manual else auto).append(task)
    return auto, manual


def render_help(config: Config, *, show_all: bool = False) -> None:
    console.print("[bold]Usage:[/bold] pok [FLAGS] [TASK] [KEY=VALUE ...] [-- EXTRA ...]")
    console.print()
    console.print("[bold]Flags:[/bold]")
    flags = Table.grid(padding=(0, 3))
    flags.add_column(no_wrap=True)
    flags.add_column()
    for flag, usage in GLOBAL_FLAGS:
        flags.add_row(f"  {flag}", escape(usage))
    console.print(flags)

    auto, manual = listed_tasks(config, show_all=show_all)
    console.print()
    console.print("[bold]Auto tasks:[/bold]")
    if auto:
        console.print(_task_table(auto))
    else:
        console.print("  [dim](none)[/dim]")
    if manual:
        console.print()
        console.print("[bold]Manual tasks:[/bold]")
        console.print(_task_table(manual))


def render_task_help(task: Task) -> None:
    console.print(f"[bold]Usage:[/bold] pok {task.name} [KEY=VALUE ...] [-- EXTRA ...]")
    if task.usage:
        console.print()
        console.print(escape(task.usage))
    console.print()
    if task.schema is None or not task.schema.fields:
        console.print("[dim]This task takes no arguments.[/dim]")
        return
    console.print("[bold]Arguments:[/bold]")
    table = Table.grid(padding=(0, 3))
    table.add_column(style="bold cyan", no_wrap=True)
    table.add_column(style="dim")
    table.add_column()
    for field in task.schema.fields:
        table.add_row(
            field.name,
            f"{field.kind} = {format_default(field.default)}",
            escape(field.usage),
        )
    console.print(table)


def _shown(node: PlanNode, show_all: bool) -> bool:
    if isinstance(node, PlanUnit):
        if show_all:
            return True
        return node.runs and not node.task.is_hidden
    return any(_shown(c, show_all) for c in node.children)


def _unit_label(unit: PlanUnit) -> Text:
    label = Text(unit.name, style="bold cyan")
    if unit.path != ".":
        label.append(f" [{unit.path}]", style="white")
    notes = []
    if unit.force:
        notes.append("force")
    if unit.deduped:
        notes.append("deduped")
    if unit.skipped:
        notes.append("manual, skipped")
    if unit.task.is_hidden:
        notes.append("hidden")
    if notes:
        label.append(f" ({', '.join(notes)})", style="dim")
    return label


def _add_node(tree: Tree, node: PlanNode, show_all: bool) -> None:
    if not _shown(node, show_all):
        return
    if isinstance(node, PlanUnit):
        tree.add(_unit_label(node))
        return
    if node.kind == "paths":
        label = Text("paths ", style="magenta")
        label.append(", ".join(node.dirs), style="white")
    else:
        label = Text(node.kind, style="yellow" if node.kind == "parallel" else "blue")
    branch = tree.add(label)
    for child in node.children:
        _add_node(branch, child, show_all)


def build_plan_tree(plan: Plan, *, show_all: bool = False) -> Tree:
    tree = Tree(Text(f"plan ({plan.git_root})", style="bold"))
    if plan.root is not None:
        _add_node(tree, plan.root, show_all)
    return tree


def render_plan(plan: Plan, *, show_all: bool = False) -> None:
    if plan.root is None or not _shown(plan.root, show_all):
        console.print("[dim]Nothing to run.[/dim]")
        return
    console.print(build_plan_tree(plan, show_all=show_all))


def plan_json(plan: Plan) -> dict[str, Any]:
    """Plan document, validated against the packaged ``plan`` schema."""
    data = plan.to_dict()
    validate_data(data, "plan")
    return data


def render_plan_json(plan: Plan) -> None:
    typer.echo(json.dumps(plan_json(plan), indent=2))
