"""Repository settings and task-tree configuration.

Settings are read from ``.pocket/config.toml`` or ``.pocket/config.json`` at
the git root. The task tree itself is Python code: a file that defines a
module-level ``config`` object (see :func:`load_task_config`).
"""

from __future__ import annotations

import importlib.util
import json
import os
import sys
import tomllib
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from pocketci.errors import ConfigurationError
from pocketci.runnable import Runnable, Task

POCKET_DIR = ".pocket"
DEFAULT_CONFIG_RELATIVE_PATH = Path(POCKET_DIR) / "config.py"
DEFAULT_SKIP_DIRS: tuple[str, ...] = (
    "vendor",
    "node_modules",
    "dist",
    "build",
    "__pycache__",
    ".venv",
    "venv",
)


@dataclass(frozen=True)
class PlanSettings:
    """Directory walk settings used when building plans."""

    skip_dirs: tuple[str, ...] = DEFAULT_SKIP_DIRS
    include_hidden_dirs: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> PlanSettings:
        """Parse the ``[plan]`` table."""
        plan = data.get("plan", {})
        if not isinstance(plan, dict):
            raise TypeError("[plan] must be a table")
        skip_dirs = plan.get("skip_dirs", list(DEFAULT_SKIP_DIRS))
        if not isinstance(skip_dirs, list) or not all(isinstance(d, str) for d in skip_dirs):
            raise TypeError("plan.skip_dirs must be a list of strings")
        include_hidden = plan.get("include_hidden_dirs", False)
        if not isinstance(include_hidden, bool):
            raise TypeError("plan.include_hidden_dirs must be a boolean")
        return cls(skip_dirs=tuple(skip_dirs), include_hidden_dirs=include_hidden)


def load_plan_settings(git_root: Path) -> PlanSettings:
    """Load settings from .pocket/config.toml, falling back to .pocket/config.json.

    Returns defaults when neither file exists.

    Raises:
        ConfigurationError: If a settings file is malformed
    """
    pocket_dir = git_root / POCKET_DIR

    toml_path = pocket_dir / "config.toml"
    if toml_path.exists():
        try:
            with open(toml_path, "rb") as f:
                data = tomllib.load(f)
            return PlanSettings.from_dict(data)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Malformed TOML config at {toml_path}: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid config structure in {toml_path}: {e}") from e

    json_path = pocket_dir / "config.json"
    if json_path.exists():
        try:
            with open(json_path, encoding="utf-8") as f:
                data = json.load(f)
            return PlanSettings.from_dict(data)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Malformed JSON config at {json_path}: {e}") from e
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ConfigurationError(f"Invalid config structure in {json_path}: {e}") from e

    return PlanSettings()


@dataclass(frozen=True)
class Config:
    """Task tree of a repository.

    ``auto`` runs on a bare invocation. ``manual`` tasks only run when
    invoked by name.
    """

    auto: Runnable | None = None
    manual: tuple[Runnable, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.auto is not None and not isinstance(self.auto, Runnable):
            raise ConfigurationError(f"Config.auto must be a Runnable, got {self.auto!r}")
        manual = tuple(self.manual)
        for r in manual:
            if not isinstance(r, Runnable):
                raise ConfigurationError(f"Config.manual entries must be Runnables, got {r!r}")
        object.__setattr__(self, "manual", manual)

    def roots(self) -> Iterable[tuple[Runnable, bool]]:
        """Yield (runnable, is_manual_section) in declaration order."""
        if self.auto is not None:
            yield self.auto, False
        for r in self.manual:
            yield r, True

    def tasks(self) -> list[Task]:
        found: list[Task] = []
        for root, _ in self.roots():
            found.extend(root.tasks())
        return found


def resolve_config_path(git_root: Path, explicit: Path | None = None) -> Path:
    """Pick the task config file: explicit path, then $POCKET_CONFIG, then the default."""
    if explicit is not None:
        return explicit.expanduser().resolve()
    env = os.getenv("POCKET_CONFIG")
    if env:
        return Path(env).expanduser().resolve()
    return git_root / DEFAULT_CONFIG_RELATIVE_PATH


def load_task_config(path: Path) -> Config:
    """Import a Python file and return its module-level ``config``."""
    if not path.is_file():
        raise ConfigurationError(
            f"No task configuration found at {path}.\n"
            "To fix:\n"
            f"  1. Create {DEFAULT_CONFIG_RELATIVE_PATH} defining `config = Config(auto=...)`\n"
            "  2. Or pass --config PATH / set POCKET_CONFIG"
        )
    module_name = f"_pocket_config_{abs(hash(str(path)))}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise ConfigurationError(f"Cannot import task configuration {path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except ConfigurationError:
        sys.modules.pop(module_name, None)
        raise
    except Exception as exc:
        sys.modules.pop(module_name, None)
        raise ConfigurationError(f"Failed to load task configuration {path}: {exc}") from exc

    config = getattr(module, "config", None)
    if not isinstance(config, Config):
        raise ConfigurationError(f"{path} must define a module-level `config = Config(...)`")
    return config
