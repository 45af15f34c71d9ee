"""Tests for the command runner used by task bodies."""

from __future__ import annotations

import io
import sys
from pathlib import Path

import pytest

from pocketci.errors import CancelledError
from pocketci.exec import CommandError, run
from pocketci.output import Output
from pocketci.state import ContextState


def make_state(**kwargs) -> tuple[ContextState, io.StringIO]:
    out = io.StringIO()
    return ContextState(out=Output(stdout=out, stderr=io.StringIO()), **kwargs), out


def test_run_executes_in_unit_directory(repo: Path) -> None:
    state, _ = make_state(path="services/a")

    result = run(state, sys.executable, "-c", "import os; print(os.getcwd())", git_root=repo)

    assert result.returncode == 0
    assert Path(result.stdout.strip()) == (repo / "services/a").resolve()
    assert result.cwd == (repo / "services/a").resolve()


def test_quiet_run_captures_output(repo: Path) -> None:
    state, out = make_state()

    result = run(state, sys.executable, "-c", "print('hello')", git_root=repo)

    assert result.stdout.strip() == "hello"
    assert out.getvalue() == ""


def test_verbose_run_streams_output_to_state(repo: Path) -> None:
    state, out = make_state(verbose=True)

    run(state, sys.executable, "-c", "print('hello')", git_root=repo)

    assert "hello" in out.getvalue()


def test_failure_includes_captured_output(repo: Path) -> None:
    state, _ = make_state()

    with pytest.raises(CommandError) as excinfo:
        run(state, sys.executable, "-c", "import sys; print('boom'); sys.exit(3)", git_root=repo)

    assert excinfo.value.result.returncode == 3
    assert "boom" in str(excinfo.value)
    assert "failed (3)" in str(excinfo.value)


def test_check_false_returns_non_zero_result(repo: Path) -> None:
    state, _ = make_state()

    result = run(state, sys.executable, "-c", "import sys; sys.exit(1)", git_root=repo, check=False)

    assert result.returncode == 1


def test_extra_args_are_appended_only_on_request(repo: Path) -> None:
    state, _ = make_state(extra_args=("-race", "--", "x"))
    script = "import sys; print(sys.argv[1:])"

    with_extra = run(state, sys.executable, "-c", script, git_root=repo, extra=True)
    without = run(state, sys.executable, "-c", script, git_root=repo)

    assert with_extra.stdout.strip() == "['-race', '--', 'x']"
    assert without.stdout.strip() == "[]"


def test_missing_executable_is_command_error(repo: Path) -> None:
    state, _ = make_state()

    with pytest.raises(CommandError) as excinfo:
        run(state, "definitely-not-a-real-binary-xyz", git_root=repo)

    assert excinfo.value.result.returncode == 127


def test_cancelled_state_does_not_spawn(repo: Path) -> None:
    state, _ = make_state()
    state.cancel.cancel()

    with pytest.raises(CancelledError):
        run(state, sys.executable, "-c", "print('never')", git_root=repo)


def test_run_uses_git_root_recorded_on_state(repo: Path, tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    state, _ = make_state(path="tools/c", git_root=repo)

    result = run(state, sys.executable, "-c", "import os; print(os.getcwd())")

    assert Path(result.stdout.strip()) == (repo / "tools/c").resolve()
