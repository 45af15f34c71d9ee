"""Task argument schemas.

A task declares its arguments as a frozen dataclass::

    @dataclass(frozen=True)
    class TestArgs:
        race: bool = field(default=False, metadata={"usage": "enable -race"})
        run: str = ""

Each field becomes an :class:`ArgField` (``skip_race`` is exposed on the
command line as ``skip-race``). ``key=value`` tokens from the CLI are parsed
against the schema and the body receives an instance of the dataclass.
"""

from __future__ import annotations

import dataclasses
import typing
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

from pocketci.errors import ConfigurationError, UserInputError

ArgKind = Literal["bool", "str", "int"]

_KINDS: dict[type, ArgKind] = {bool: "bool", str: "str", int: "int"}
_TRUE = ("true", "1", "yes", "")
_FALSE = ("false", "0", "no")


@dataclass(frozen=True)
class ArgField:
    """One declared task argument."""

    name: str
    usage: str
    kind: ArgKind
    default: bool | str | int
    attr: str


@dataclass(frozen=True)
class ArgSchema:
    """Ordered argument fields backed by a dataclass type."""

    type: type
    fields: tuple[ArgField, ...]

    @classmethod
    def from_dataclass(cls, args_type: type) -> ArgSchema:
        """Inspect a dataclass type; raise ConfigurationError on unsupported fields."""
        if not isinstance(args_type, type) or not dataclasses.is_dataclass(args_type):
            raise ConfigurationError(f"task args must be a dataclass type, got {args_type!r}")
        try:
            hints = typing.get_type_hints(args_type)
        except NameError as exc:
            raise ConfigurationError(f"cannot resolve annotations of {args_type.__name__}: {exc}") from exc

        fields: list[ArgField] = []
        for f in dataclasses.fields(args_type):
            if not f.init:
                continue
            kind = _KINDS.get(hints.get(f.name))  # type: ignore[arg-type]
            if kind is None:
                raise ConfigurationError(
                    f"unsupported arg type {hints.get(f.name)!r} for field {args_type.__name__}.{f.name}"
                    " (expected bool, str or int)"
                )
            if f.default is not dataclasses.MISSING:
                default = f.default
            elif f.default_factory is not dataclasses.MISSING:
                default = f.default_factory()
            else:
                raise ConfigurationError(f"arg field {args_type.__name__}.{f.name} must declare a default")
            fields.append(
                ArgField(
                    name=str(f.metadata.get("arg", f.name.replace("_", "-"))),
                    usage=str(f.metadata.get("usage", "")),
                    kind=kind,
                    default=default,
                    attr=f.name,
                )
            )
        return cls(type=args_type, fields=tuple(fields))

    def names(self) -> list[str]:
        return [f.name for f in self.fields]

    def defaults(self) -> Any:
        return self.type()

    def values(self, overrides: Mapping[str, object]) -> dict[str, Any]:
        """Validate name-keyed overrides and return them keyed by dataclass attribute.

        Values may be raw CLI strings or already typed (bool, str, int).
        """
        by_name = {f.name: f for f in self.fields}
        unknown = sorted(set(overrides) - set(by_name))
        if unknown:
            raise UserInputError(
                f"unknown argument(s) {', '.join(unknown)}; accepted: {', '.join(self.names()) or 'none'}"
            )
        return {by_name[key].attr: _convert(by_name[key], raw) for key, raw in overrides.items()}

    def parse(self, overrides: Mapping[str, str]) -> Any:
        """Build an args instance from declared defaults overlaid with CLI values."""
        return self.type(**self.values(overrides))

    def apply(self, base: Any, overrides: Mapping[str, object]) -> Any:
        """Return a copy of ``base`` with ``overrides`` laid over it."""
        if not overrides:
            return base
        return dataclasses.replace(base, **self.values(overrides))


def _convert(arg: ArgField, raw: object) -> bool | str | int:
    if not isinstance(raw, str):
        expected = {"bool": bool, "str": str, "int": int}[arg.kind]
        if type(raw) is not expected:
            raise UserInputError(f"invalid {arg.kind} value {raw!r} for arg {arg.name}")
        return raw  # type: ignore[return-value]
    if arg.kind == "bool":
        lowered = raw.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise UserInputError(f"invalid bool value {raw!r} for arg {arg.name}: must be true or false")
    if arg.kind == "int":
        try:
            return int(raw)
        except ValueError:
            raise UserInputError(f"invalid int value {raw!r} for arg {arg.name}") from None
    return raw


def format_default(value: object) -> str:
    """Render a default for help output."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return f'"{value}"'
    return str(value)
