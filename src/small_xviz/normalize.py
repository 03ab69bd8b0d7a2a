"""Normalization of primitive payloads into the flat layout the frame schema expects.

Points, colors and vertices may be handed to a writer as a flat list, a list of
per-element tuples, a single typed buffer or a list of small typed buffers. All of
them are reduced to one flat list of numbers before encoding.

Native values are first lifted into a closed tagged representation (``Scalar``,
``NumericBuffer``, ``ValueList``, ``Record``) so the recursive walk only has to
distinguish these four cases.
"""

import array
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from numbers import Number
from typing import Any

import numpy as np

from small_xviz.exceptions import SchemaError

# Only these keys hold fixed-arity numeric tuples that get flattened
FLATTENED_KEYS = frozenset({"points", "colors", "vertices"})
# Records under this key keep their binary ``data`` payload untouched
IMAGES_KEY = "images"


@dataclass(frozen=True, slots=True)
class Scalar:
    value: Any


@dataclass(frozen=True, slots=True, eq=False)
class NumericBuffer:
    """A contiguous typed numeric buffer (numpy array, array.array or memoryview)."""

    values: Any

    def numbers(self) -> list[Any]:
        return np.asarray(self.values).ravel().tolist()


@dataclass(frozen=True, slots=True)
class ValueList:
    items: tuple["Value", ...]


@dataclass(frozen=True, slots=True)
class Record:
    fields: dict[str, "Value"]


Value = Scalar | NumericBuffer | ValueList | Record


def lift(obj: Any) -> Value:
    """Convert a native Python value into its tagged representation."""
    if isinstance(obj, np.ndarray | array.array | memoryview):
        return NumericBuffer(obj)
    if isinstance(obj, Mapping):
        return Record({str(key): lift(value) for key, value in obj.items()})
    if isinstance(obj, list | tuple):
        return ValueList(tuple(lift(item) for item in obj))
    # bytes/bytearray stay opaque, along with str, numbers and None
    return Scalar(obj)


def lower(value: Value) -> Any:
    """Convert a tagged value back into plain Python containers."""
    if isinstance(value, Scalar):
        return value.value
    if isinstance(value, NumericBuffer):
        return value.values
    if isinstance(value, ValueList):
        return [lower(item) for item in value.items]
    if isinstance(value, Record):
        return {key: lower(item) for key, item in value.fields.items()}
    raise TypeError(f"unexpected value type {type(value).__name__}")


def _is_number(value: Value) -> bool:
    return (
        isinstance(value, Scalar)
        and isinstance(value.value, Number | np.number)
        and not isinstance(value.value, bool)
    )


def _element_numbers(element: Value) -> Iterable[Any]:
    if isinstance(element, NumericBuffer):
        return element.numbers()
    if isinstance(element, ValueList):
        return [lower(item) for item in element.items]
    if _is_number(element):
        return [element.value]
    raise SchemaError(f"cannot flatten element {lower(element)!r} into a numeric list")


def _flatten(items: tuple[Value, ...]) -> ValueList:
    return ValueList(
        tuple(Scalar(number) for element in items for number in _element_numbers(element))
    )


def normalize_value(value: Value, key: str | None = None) -> Value:
    """Normalize a tagged value found under ``key``.

    - Sequences under ``points``/``colors``/``vertices`` whose elements are tuples or
      typed buffers are concatenated into one flat list.
    - Flat numeric sequences pass through unchanged.
    - Typed buffers become plain lists of numbers.
    - Records recurse with each child key, except image records carrying ``data``.
    """
    if isinstance(value, ValueList):
        if key not in FLATTENED_KEYS or not value.items:
            return ValueList(tuple(normalize_value(item, key) for item in value.items))

        first = value.items[0]
        if isinstance(first, ValueList | NumericBuffer):
            return _flatten(value.items)
        if _is_number(first):
            return value
        return ValueList(tuple(normalize_value(item, key) for item in value.items))

    if isinstance(value, NumericBuffer):
        return ValueList(tuple(Scalar(number) for number in value.numbers()))

    if isinstance(value, Record):
        if "data" in value.fields and key == IMAGES_KEY:
            return value
        return Record(
            {child: normalize_value(item, child) for child, item in value.fields.items()}
        )

    if isinstance(value, Scalar):
        return value

    raise TypeError(f"unexpected value type {type(value).__name__}")


def normalize(obj: Any, key: str | None = None) -> Any:
    """Normalize a native message (or any part of one) for encoding."""
    return lower(normalize_value(lift(obj), key))


def unflatten(values: Sequence[Any], arity: int) -> list[list[Any]]:
    """Regroup a flat sequence into consecutive tuples of ``arity`` numbers.

    >>> unflatten([1, 1, 1, 2, 2, 2], 3)
    [[1, 1, 1], [2, 2, 2]]
    """
    if arity <= 0:
        raise ValueError("arity must be positive")
    if len(values) % arity:
        raise ValueError(f"{len(values)} values cannot be grouped into tuples of {arity}")
    flat = list(values)
    return [flat[i : i + arity] for i in range(0, len(flat), arity)]
