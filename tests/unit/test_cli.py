"""Tests for the pok command line."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

import pytest
from typer.testing import CliRunner

from pocketci import __version__
from pocketci.cli import cli, parse_invocation, split_extra
from pocketci.config import Config
from pocketci.errors import UserInputError
from pocketci.paths import with_options
from pocketci.runnable import Serial, Task

runner = CliRunner()


@dataclass(frozen=True)
class TestArgs:
    __test__ = False

    race: bool = field(default=False, metadata={"usage": "enable the race detector"})
    run: str = ""


class Calls:
    def __init__(self) -> None:
        self.seen: list[tuple[str, str, object, tuple[str, ...]]] = []

    def task(self, name: str, *, fail: bool = False, **kwargs) -> Task:
        def body(state) -> None:
            self.seen.append((name, state.path, state.task_args, state.extra_args))
            state.echo(f"ran {name}")
            if fail:
                raise RuntimeError(f"{name} exploded")

        return Task(name, body, **kwargs)

    def names(self) -> list[str]:
        return [s[0] for s in self.seen]


@pytest.fixture
def calls() -> Calls:
    return Calls()


@pytest.fixture
def config(calls: Calls) -> Config:
    return Config(
        auto=Serial(
            calls.task("lint", usage="run linters"),
            with_options(calls.task("test", usage="run tests", args=TestArgs), include="services/*"),
            calls.task("internal", usage="not listed").hidden(),
        ),
        manual=[calls.task("deploy", usage="ship it")],
    )


def invoke(argv: list[str], config: Config | None = None):
    head, tail = split_extra(argv)
    return runner.invoke(cli, head, obj={"config": config, "extra": tail})


@pytest.fixture(autouse=True)
def in_repo(repo: Path, monkeypatch) -> Path:
    monkeypatch.chdir(repo)
    monkeypatch.delenv("POCKET_CONFIG", raising=False)
    monkeypatch.delenv("POCKET_VERBOSE", raising=False)
    return repo


# argument parsing


def test_parse_task_args_and_extra_args() -> None:
    inv = parse_invocation(["task1", "x=5", "y=true", "--", "-race", "-run", "TestFoo"])

    assert inv.task_name == "task1"
    assert inv.overrides == {"x": "5", "y": "true"}
    assert inv.extra_args == ("-race", "-run", "TestFoo")


def test_trailing_double_dash_gives_empty_extra_args() -> None:
    inv = parse_invocation(["task1", "--"])

    assert inv.task_name == "task1"
    assert inv.overrides == {}
    assert inv.extra_args == ()


def test_no_double_dash_means_no_extra_args() -> None:
    assert parse_invocation(["task1"]).extra_args is None


def test_leading_double_dash_is_default_invocation() -> None:
    inv = parse_invocation(["--", "-v", "--", "x"])

    assert inv.task_name is None
    assert inv.extra_args == ("-v", "--", "x")


def test_value_may_contain_equals_and_be_empty() -> None:
    assert parse_invocation(["t", "run=a=b", "race="]).overrides == {"run": "a=b", "race": ""}


@pytest.mark.parametrize("argv", [["t", "novalue"], ["t", "=5"], ["x=5"]])
def test_malformed_arguments(argv: list[str]) -> None:
    with pytest.raises(UserInputError):
        parse_invocation(argv)


# running


def test_bare_invocation_runs_auto_tasks(config: Config, calls: Calls) -> None:
    result = invoke([], config)

    assert result.exit_code == 0, result.output
    assert calls.names() == ["lint", "test", "test", "internal"]
    assert ":: lint" in result.output
    assert ":: test [services/a]" in result.output
    assert "deploy" not in calls.names()


def test_named_task_with_args_and_extra_args(config: Config, calls: Calls) -> None:
    result = invoke(["test", "race=true", "--", "-run", "TestFoo"], config)

    assert result.exit_code == 0, result.output
    assert calls.seen == [
        ("test", "services/a", TestArgs(race=True), ("-run", "TestFoo")),
        ("test", "services/b", TestArgs(race=True), ("-run", "TestFoo")),
    ]


def test_named_task_with_trailing_double_dash_uses_defaults(config: Config, calls: Calls) -> None:
    result = invoke(["test", "--"], config)

    assert result.exit_code == 0, result.output
    assert {(s[2], s[3]) for s in calls.seen} == {(TestArgs(), ())}


def test_manual_task_runs_by_name(config: Config, calls: Calls) -> None:
    result = invoke(["deploy"], config)

    assert result.exit_code == 0, result.output
    assert calls.seen == [("deploy", ".", None, ())]


def test_unknown_task_is_usage_error(config: Config) -> None:
    result = invoke(["nope"], config)

    assert result.exit_code == 2
    assert "unknown task" in result.output


def test_unknown_argument_is_usage_error(config: Config, calls: Calls) -> None:
    result = invoke(["test", "bogus=1"], config)

    assert result.exit_code == 2
    assert "bogus" in result.output
    assert calls.seen == []


def test_arguments_for_task_without_schema_are_rejected(config: Config) -> None:
    assert invoke(["lint", "x=1"], config).exit_code == 2


def test_invalid_bool_value_is_usage_error(config: Config) -> None:
    assert invoke(["test", "race=perhaps"], config).exit_code == 2


def test_task_failure_exits_one(calls: Calls) -> None:
    config = Config(auto=Serial(calls.task("a", fail=True), calls.task("b")))

    result = invoke([], config)

    assert result.exit_code == 1
    assert "Error:" in result.output
    assert "a exploded" in result.output
    assert calls.names() == ["a"]


def test_named_variant_runs_only_that_variant(calls: Calls) -> None:
    test = calls.task("test", args=TestArgs)
    config = Config(
        auto=Serial(
            with_options(test, name="race", flags={test: {"race": True}}),
            with_options(test, name="plain"),
        )
    )

    result = invoke(["test:race", "run=TestFoo"], config)

    assert result.exit_code == 0, result.output
    assert calls.seen == [("test", ".", TestArgs(race=True, run="TestFoo"), ())]
    assert ":: test:race" in result.output


def test_unknown_variant_is_usage_error(calls: Calls) -> None:
    test = calls.task("test")
    config = Config(auto=with_options(test, name="race"))

    result = invoke(["test:slow"], config)

    assert result.exit_code == 2
    assert "unknown task" in result.output
    assert calls.seen == []


def test_duplicate_task_names_exit_one(calls: Calls) -> None:
    config = Config(auto=Serial(calls.task("a"), calls.task("a")))

    assert invoke([], config).exit_code == 1


# help, version and plan preview


def test_help_lists_auto_and_manual_tasks(config: Config) -> None:
    result = invoke(["-h"], config)

    assert result.exit_code == 0
    assert "Auto tasks" in result.output
    assert "Manual tasks" in result.output
    assert "lint" in result.output
    assert "run linters" in result.output
    assert "deploy" in result.output
    assert "internal" not in result.output


def test_help_all_shows_hidden_tasks(config: Config) -> None:
    result = invoke(["--help", "--all"], config)

    assert "internal" in result.output


def test_task_help_shows_argument_schema(config: Config, calls: Calls) -> None:
    result = invoke(["test", "-h"], config)

    assert result.exit_code == 0
    assert "race" in result.output
    assert "enable the race detector" in result.output
    assert calls.seen == []


def test_version() -> None:
    result = runner.invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_plan_preview_does_not_run(config: Config, calls: Calls) -> None:
    result = invoke(["--plan"], config)

    assert result.exit_code == 0, result.output
    assert "lint" in result.output
    assert "services/a" in result.output
    assert "internal" not in result.output
    assert calls.seen == []


def test_plan_preview_json(config: Config) -> None:
    result = invoke(["--plan", "--json", "test"], config)

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["mode"] == "collect"
    assert data["units"] == [
        {"task": "test", "path": "services/a", "force": False},
        {"task": "test", "path": "services/b", "force": False},
    ]


def test_unknown_option_before_double_dash_is_usage_error(config: Config) -> None:
    assert invoke(["test", "-race"], config).exit_code == 2


# configuration file


def test_loads_default_config_file(in_repo: Path) -> None:
    (in_repo / ".pocket").mkdir()
    (in_repo / ".pocket/config.py").write_text(
        "from pocketci import Config, Task\n"
        "config = Config(auto=Task('hello', lambda state: state.echo('hi from config')))\n",
        encoding="utf-8",
    )

    result = invoke([])

    assert result.exit_code == 0, result.output
    assert ":: hello" in result.output
    assert "hi from config" in result.output


def test_missing_config_file_exits_one() -> None:
    result = invoke([])

    assert result.exit_code == 1
    assert "No task configuration" in result.output


def test_explicit_config_path(in_repo: Path, tmp_path: Path) -> None:
    path = tmp_path / "elsewhere.py"
    path.write_text(
        "from pocketci import Config, Task\n"
        "config = Config(auto=Task('other', lambda state: state.echo('other ran')))\n",
        encoding="utf-8",
    )

    result = invoke(["--config", str(path)])

    assert result.exit_code == 0, result.output
    assert "other ran" in result.output
