"""pocketci: build and CI task trees defined in Python."""

__version__ = "0.1.0"

from pocketci.cli import main, run_main
from pocketci.config import Config
from pocketci.detect import detect_by_extension, detect_by_file
from pocketci.engine import Engine, collect, run
from pocketci.errors import (
    CancelledError,
    ConfigurationError,
    ExecutionError,
    PocketError,
    ResolutionError,
    UserInputError,
)
from pocketci.exec import CommandError, ExecResult
from pocketci.paths import PathFilter, with_options
from pocketci.plan import Mode, Plan, PlanBuilder, PlanUnit
from pocketci.runnable import Parallel, Runnable, Serial, Task
from pocketci.session import Session
from pocketci.state import Cancellation, ContextState

__all__ = [
    "__version__",
    "Cancellation",
    "CancelledError",
    "CommandError",
    "Config",
    "ConfigurationError",
    "ContextState",
    "Engine",
    "ExecResult",
    "ExecutionError",
    "Mode",
    "Parallel",
    "PathFilter",
    "Plan",
    "PlanBuilder",
    "PlanUnit",
    "PocketError",
    "ResolutionError",
    "Runnable",
    "Serial",
    "Session",
    "Task",
    "UserInputError",
    "collect",
    "detect_by_extension",
    "detect_by_file",
    "main",
    "run",
    "run_main",
    "with_options",
]
