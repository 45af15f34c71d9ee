"""Output sinks for task execution.

Parallel branches write into private buffers that are flushed to the parent
sink as one block when the branch finishes.
"""

from __future__ import annotations

import io
import sys
from dataclasses import dataclass
from typing import TextIO


@dataclass(frozen=True)
class Output:
    """Pair of text streams a unit writes to."""

    stdout: TextIO
    stderr: TextIO

    @classmethod
    def std(cls) -> Output:
        return cls(stdout=sys.stdout, stderr=sys.stderr)


class BufferedOutput:
    """Captures one branch's output until :meth:`flush` is called."""

    def __init__(self, parent: Output):
        self.parent = parent
        self._stdout = io.StringIO()
        self._stderr = io.StringIO()

    def output(self) -> Output:
        return Output(stdout=self._stdout, stderr=self._stderr)

    def flush(self) -> None:
        """Write buffered content to the parent. Callers serialize flushes."""
        out = self._stdout.getvalue()
        err = self._stderr.getvalue()
        if out:
            self.parent.stdout.write(out)
            self.parent.stdout.flush()
        if err:
            self.parent.stderr.write(err)
            self.parent.stderr.flush()
