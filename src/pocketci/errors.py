"""Error taxonomy for pocketci.

Every error raised by the framework derives from :class:`PocketError`, so the
CLI can tell framework failures apart from bugs and map them to exit codes.
"""

from __future__ import annotations


class PocketError(RuntimeError):
    """Base class for all pocketci errors."""


class ConfigurationError(PocketError):
    """Malformed task tree, argument schema or configuration file."""


class ResolutionError(PocketError):
    """Path resolution failed while building a plan."""


class UserInputError(PocketError):
    """The command line could not be interpreted."""


class ExecutionError(PocketError):
    """A task body failed at a specific path."""

    def __init__(self, task: str, path: str, cause: BaseException):
        super().__init__(f"task {task} in {path}: {cause}")
        self.task = task
        self.path = path
        self.cause = cause


class CancelledError(ExecutionError):
    """A unit did not start because a sibling branch already failed."""

    def __init__(self, task: str, path: str):
        super().__init__(task, path, RuntimeError("cancelled"))
