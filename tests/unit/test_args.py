"""Tests for task argument schemas."""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from pocketci.args import ArgSchema, format_default
from pocketci.errors import ConfigurationError, UserInputError


@dataclass(frozen=True)
class TestArgs:
    __test__ = False

    race: bool = field(default=False, metadata={"usage": "enable the race detector"})
    run: str = ""
    count: int = 1
    skip_lint: bool = False


def test_schema_fields_follow_declaration_order() -> None:
    schema = ArgSchema.from_dataclass(TestArgs)

    assert schema.names() == ["race", "run", "count", "skip-lint"]
    assert [f.kind for f in schema.fields] == ["bool", "str", "int", "bool"]
    assert schema.fields[0].usage == "enable the race detector"


def test_defaults_are_declared_values() -> None:
    assert ArgSchema.from_dataclass(TestArgs).defaults() == TestArgs()


def test_parse_overlays_cli_values() -> None:
    schema = ArgSchema.from_dataclass(TestArgs)

    args = schema.parse({"race": "true", "count": "3", "skip-lint": "1"})

    assert args == TestArgs(race=True, run="", count=3, skip_lint=True)


@pytest.mark.parametrize("raw", ["true", "1", "", "TRUE"])
def test_bool_truthy_values(raw: str) -> None:
    assert ArgSchema.from_dataclass(TestArgs).parse({"race": raw}).race is True


@pytest.mark.parametrize("raw", ["false", "0"])
def test_bool_falsy_values(raw: str) -> None:
    assert ArgSchema.from_dataclass(TestArgs).parse({"race": raw}).race is False


def test_invalid_bool_is_user_error() -> None:
    with pytest.raises(UserInputError, match="race"):
        ArgSchema.from_dataclass(TestArgs).parse({"race": "maybe"})


def test_invalid_int_is_user_error() -> None:
    with pytest.raises(UserInputError, match="count"):
        ArgSchema.from_dataclass(TestArgs).parse({"count": "many"})


def test_unknown_key_lists_accepted_names() -> None:
    with pytest.raises(UserInputError) as excinfo:
        ArgSchema.from_dataclass(TestArgs).parse({"nope": "1"})
    assert "nope" in str(excinfo.value)
    assert "race" in str(excinfo.value)


def test_apply_layers_overrides_on_existing_args() -> None:
    schema = ArgSchema.from_dataclass(TestArgs)
    base = schema.apply(schema.defaults(), {"race": True, "count": 4})

    layered = schema.apply(base, {"count": "7"})

    assert base == TestArgs(race=True, count=4)
    assert layered == TestArgs(race=True, count=7)
    assert schema.apply(base, {}) is base


def test_typed_values_must_match_field_kind() -> None:
    schema = ArgSchema.from_dataclass(TestArgs)

    with pytest.raises(UserInputError, match="invalid int"):
        schema.values({"count": True})
    with pytest.raises(UserInputError, match="invalid bool"):
        schema.values({"race": 1})


def test_unsupported_field_type_is_configuration_error() -> None:
    @dataclass(frozen=True)
    class Bad:
        ratio: float = 0.5

    with pytest.raises(ConfigurationError, match="unsupported arg type"):
        ArgSchema.from_dataclass(Bad)


def test_field_without_default_is_configuration_error() -> None:
    @dataclass(frozen=True)
    class Bad:
        name: str

    with pytest.raises(ConfigurationError, match="default"):
        ArgSchema.from_dataclass(Bad)


def test_non_dataclass_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        ArgSchema.from_dataclass(dict)


def test_format_default() -> None:
    assert format_default(True) == "true"
    assert format_default("x") == '"x"'
    assert format_default(3) == "3"
