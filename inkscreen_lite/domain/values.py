"""Template variable tree and debug flattening.

The render context is held as a tree of ``Value`` nodes rather than loose
dicts, so the set of shapes a template can see is closed: scalars, arrays,
ordered objects and nil.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class Scalar:
    value: Union[str, int, float, bool]


@dataclass(frozen=True)
class Array:
    items: tuple[Value, ...] = ()


@dataclass(frozen=True)
class Object:
    # Insertion order is preserved; it is what templates iterate over.
    fields: tuple[tuple[str, Value], ...] = ()

    def get(self, key: str) -> Value | None:
        for name, value in self.fields:
            if name == key:
                return value
        return None

    def keys(self) -> list[str]:
        return [name for name, _ in self.fields]


@dataclass(frozen=True)
class Nil:
    pass


Value = Union[Scalar, Array, Object, Nil]

NIL = Nil()


def from_python(obj: Any) -> Value:
    """Convert plain Python data (dict/list/scalars/None) into a Value tree.

    Raises:
        TypeError: If ``obj`` contains a type with no Value representation
    """
    if obj is None:
        return NIL
    if isinstance(obj, (Scalar, Array, Object, Nil)):
        return obj
    # bool before int: bool is an int subclass
    if isinstance(obj, bool):
        return Scalar(obj)
    if isinstance(obj, (str, int, float)):
        return Scalar(obj)
    if isinstance(obj, Mapping):
        return Object(tuple((str(k), from_python(v)) for k, v in obj.items()))
    if isinstance(obj, (list, tuple)):
        return Array(tuple(from_python(item) for item in obj))
    raise TypeError(f"Cannot convert {type(obj).__name__} to a template value")


def to_python(value: Value) -> Any:
    """Convert a Value tree back into plain dicts/lists/scalars for the template engine."""
    if isinstance(value, Scalar):
        return value.value
    if isinstance(value, Array):
        return [to_python(item) for item in value.items]
    if isinstance(value, Object):
        return {name: to_python(item) for name, item in value.fields}
    return None


def stringify_scalar(value: Union[Scalar, Nil]) -> str:
    """Render a leaf value the way the debug view shows it."""
    if isinstance(value, Nil):
        return ""
    raw = value.value
    if isinstance(raw, bool):
        return "true" if raw else "false"
    if isinstance(raw, float) and math.isfinite(raw) and raw.is_integer():
        return str(int(raw))
    return str(raw)


@dataclass(frozen=True)
class FlatEntry:
    """One row of the flattened context debug view."""

    path: str
    value: str
    is_error: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "value": self.value, "is_error": self.is_error}


@dataclass
class _Flattener:
    errors: Mapping[str, str] = field(default_factory=dict)
    rows: list[FlatEntry] = field(default_factory=list)

    def walk(self, value: Value, path: str) -> None:
        if isinstance(value, Object):
            self._walk_object(value, path)
        elif isinstance(value, Array):
            self._walk_array(value, path)
        else:
            self.rows.append(FlatEntry(path, stringify_scalar(value)))

    def _walk_object(self, obj: Object, path: str) -> None:
        leaves = sorted(
            (kv for kv in obj.fields if isinstance(kv[1], (Scalar, Nil))), key=lambda kv: kv[0]
        )
        nested = sorted(
            (kv for kv in obj.fields if isinstance(kv[1], (Array, Object))), key=lambda kv: kv[0]
        )
        for name, child in leaves:
            self.rows.append(FlatEntry(_join(path, name), stringify_scalar(child)))
        for name, child in nested:
            child_path = _join(path, name)
            if child_path in self.errors:
                self.rows.append(FlatEntry(child_path, self.errors[child_path], is_error=True))
                continue
            self.walk(child, child_path)

    def _walk_array(self, arr: Array, path: str) -> None:
        if not arr.items:
            self.rows.append(FlatEntry(path, "[]"))
            return
        for index, item in enumerate(arr.items, start=1):
            self.walk(item, f"{path}[{index}]")


def _join(prefix: str, name: str) -> str:
    return f"{prefix}.{name}" if prefix else name


def flatten(value: Value, errors: Mapping[str, str] | None = None) -> list[FlatEntry]:
    """Flatten a Value tree into ``(path, value, is_error)`` rows for debugging.

    At every object level, scalar (and nil) fields come first, then arrays and
    nested objects; each group is sorted by key. Array elements are addressed
    with 1-based indices, e.g. ``metrics.cpu[1].value``. An empty array shows
    as a single ``[]`` row.

    Args:
        value: Root of the tree (normally the render context object)
        errors: Map of full dotted path to error message; a nested field whose
            path appears here is replaced by a single error row

    Returns:
        Ordered list of FlatEntry rows
    """
    flattener = _Flattener(errors=errors or {})
    flattener.walk(value, "")
    return flattener.rows
