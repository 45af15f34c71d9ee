"""Validation of JSON documents against the schemas shipped with pocketci."""

from __future__ import annotations

import json
from functools import lru_cache
from importlib.resources import files
from typing import Any

from jsonschema.validators import Draft202012Validator


@lru_cache(maxsize=None)
def load_schema(name: str) -> dict[str, Any]:
    """Load ``<name>.schema.json`` from package data.

    Raises:
        KeyError: If no such schema is shipped
    """
    resource = files("pocketci.schemas") / f"{name}.schema.json"
    if not resource.is_file():
        raise KeyError(f"Schema '{name}' not found in pocketci package data")
    return json.loads(resource.read_text(encoding="utf-8"))


def validate_data(data: Any, schema_name: str, strict: bool = True) -> tuple[bool, list[str]]:
    """Validate data against a packaged schema.

    Args:
        data: Decoded JSON document
        schema_name: Schema name without the ``.schema.json`` suffix
        strict: If True, raise on validation errors; if False, return them

    Returns:
        Tuple of (is_valid, error_messages)

    Raises:
        ValueError: If validation fails and strict=True
    """
    validator = Draft202012Validator(load_schema(schema_name))
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.path))
    if not errors:
        return True, []

    messages = [
        f"{'.'.join(str(p) for p in e.path)}: {e.message}" if e.path else e.message
        for e in errors
    ]
    if strict:
        raise ValueError(
            f"Schema validation failed for '{schema_name}':\n"
            + "\n".join(f"  - {msg}" for msg in messages)
        )
    return False, messages
