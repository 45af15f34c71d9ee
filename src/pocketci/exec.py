"""Command runner for task bodies."""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path

from pocketci.errors import CancelledError, PocketError
from pocketci.session import Session
from pocketci.state import ContextState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecResult:
    """Result envelope for subprocess execution."""

    argv: tuple[str, ...]
    cwd: Path
    returncode: int
    stdout: str
    stderr: str


class CommandError(PocketError):
    """Raised when a command returns non-zero in check mode."""

    def __init__(self, result: ExecResult):
        rendered = shlex.join(result.argv)
        detail = "\n".join(s.strip() for s in (result.stdout, result.stderr) if s.strip())
        message = f"command failed ({result.returncode}): {rendered}"
        super().__init__(f"{message}\n{detail}" if detail else message)
        self.result = result


def run(
    state: ContextState,
    *argv: str,
    extra: bool = False,
    check: bool = True,
    session: Session | None = None,
    git_root: Path | None = None,
) -> ExecResult:
    """Run a command in the unit's directory.

    The directory is resolved against ``git_root``, then ``session``, then the
    git root the engine recorded on ``state``.

    With ``extra=True`` the invocation's extra args are appended. In verbose
    mode output is written to ``state.out`` as well as captured; otherwise it
    is only captured and shows up in the :class:`CommandError` on failure.
    """
    if not argv:
        raise ValueError("run() needs a command")
    if state.cancelled:
        raise CancelledError(argv[0], state.path)

    root = git_root or (session.git_root if session else state.git_root) or Session().git_root
    cwd = state.abspath(root)
    full = [*argv, *state.extra_args] if extra else list(argv)
    logger.debug("exec %s in %s", shlex.join(full), cwd)

    try:
        completed = subprocess.run(full, cwd=cwd, capture_output=True, text=True, check=False)
    except OSError as exc:
        raise CommandError(
            ExecResult(argv=tuple(full), cwd=cwd, returncode=127, stdout="", stderr=str(exc))
        ) from exc

    result = ExecResult(
        argv=tuple(full),
        cwd=cwd,
        returncode=completed.returncode,
        stdout=completed.stdout,
        stderr=completed.stderr,
    )
    if state.verbose:
        if result.stdout:
            state.out.stdout.write(result.stdout)
        if result.stderr:
            state.out.stderr.write(result.stderr)
    if check and result.returncode != 0:
        raise CommandError(result)
    return result
