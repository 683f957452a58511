"""Shared helpers for validating JSON-shaped input."""

from typing import Any, Callable, TypeVar

__all__ = ["DecodeError", "field", "nonempty_list", "nonempty_string"]

T = TypeVar("T")


class DecodeError(ValueError):
    """Input did not have the expected shape.

    Decoding is all-or-nothing: the first bad entry fails the whole batch.
    """

    pass


def field(data: Any, name: str) -> Any:
    """Fetch a required key from a JSON object."""
    if not isinstance(data, dict):
        raise DecodeError(f"Expected an object with a field named {name!r}, got: {data!r}")
    if name not in data:
        raise DecodeError(f"Missing field {name!r} in: {data!r}")
    return data[name]


def nonempty_string(value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise DecodeError(f"Expected a non-empty string, got: {value!r}")
    return value


def nonempty_list(value: Any, item: Callable[[Any], T]) -> list[T]:
    """Decode a non-empty JSON array, applying ``item`` to every element."""
    if not isinstance(value, list):
        raise DecodeError(f"Expected an array, got: {value!r}")
    if not value:
        raise DecodeError("Expected a non-empty array, got an empty one")
    return [item(v) for v in value]
