"""
Typed representation of the structured ("JSON") prompt.

Every top-level value is one of three shapes:
- Scalar: a JSON primitive (string, number, boolean, null)
- Sequence: a flat list of JSON primitives
- Nested: any deeper JSON container (objects, lists holding containers)
"""

from __future__ import annotations

import copy
import json
from collections import abc
from dataclasses import dataclass
from typing import Any, Iterator, Union

from async_studio.errors import StructuredPromptError

Primitive = Union[str, int, float, bool, None]

_PRIMITIVES = (str, int, float, bool, type(None))


def render_primitive(value: Primitive) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class Scalar:
    value: Primitive

    def to_json(self) -> Primitive:
        return self.value

    def render(self) -> str:
        return render_primitive(self.value)

    def is_blank(self) -> bool:
        return self.value is None or self.value == ""


@dataclass(frozen=True)
class Sequence:
    items: tuple[Primitive, ...]

    def to_json(self) -> list[Primitive]:
        return list(self.items)

    def render(self) -> str:
        return ", ".join(render_primitive(item) for item in self.items)

    def is_blank(self) -> bool:
        return False


@dataclass(frozen=True, eq=False)
class Nested:
    value: Any

    def to_json(self) -> Any:
        return copy.deepcopy(self.value)

    def render(self) -> str:
        return json.dumps(self.value, ensure_ascii=False, separators=(",", ":"))

    def is_blank(self) -> bool:
        return False

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Nested):
            return NotImplemented
        return _canonical(self.value) == _canonical(other.value)

    def __hash__(self) -> int:
        return hash(_canonical(self.value))


PromptValue = Union[Scalar, Sequence, Nested]


def _canonical(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, sort_keys=True)


def to_value(raw: Any) -> PromptValue:
    """Coerce a decoded JSON value into the tagged union."""
    if isinstance(raw, (Scalar, Sequence, Nested)):
        return raw
    if isinstance(raw, _PRIMITIVES):
        return Scalar(raw)
    if isinstance(raw, (list, tuple)):
        if all(isinstance(item, _PRIMITIVES) for item in raw):
            return Sequence(tuple(raw))
        return Nested(copy.deepcopy(list(raw)))
    if isinstance(raw, abc.Mapping):
        return Nested(copy.deepcopy(dict(raw)))
    raise TypeError(f"unsupported structured prompt value: {type(raw).__name__}")


class StructuredPrompt(abc.Mapping):
    """Immutable, insertion-ordered mapping of parameter name to PromptValue."""

    __slots__ = ("_values",)

    def __init__(self, values: abc.Mapping[str, Any] | None = None) -> None:
        coerced: dict[str, PromptValue] = {}
        for key, raw in (values or {}).items():
            if not isinstance(key, str):
                raise TypeError("structured prompt keys must be strings")
            coerced[key] = to_value(raw)
        self._values = coerced

    @classmethod
    def from_json(cls, data: Any) -> "StructuredPrompt":
        if isinstance(data, StructuredPrompt):
            return data
        if not isinstance(data, abc.Mapping):
            raise StructuredPromptError("Structured prompt must be a JSON object")
        try:
            return cls(data)
        except TypeError as exc:
            raise StructuredPromptError(str(exc)) from exc

    @classmethod
    def loads(cls, text: str) -> "StructuredPrompt":
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as exc:
            raise StructuredPromptError("Invalid JSON format") from exc
        return cls.from_json(data)

    def __getitem__(self, key: str) -> PromptValue:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, StructuredPrompt):
            return self.canonical() == other.canonical()
        if isinstance(other, abc.Mapping):
            try:
                return self.canonical() == StructuredPrompt(other).canonical()
            except TypeError:
                return False
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.canonical())

    def __repr__(self) -> str:
        return f"StructuredPrompt({self.to_json()!r})"

    def to_json(self) -> dict[str, Any]:
        return {key: value.to_json() for key, value in self._values.items()}

    def dumps(self) -> str:
        """Editor form: two-space indented JSON in insertion order."""
        return json.dumps(self.to_json(), indent=2, ensure_ascii=False)

    def canonical(self) -> str:
        return _canonical(self.to_json())

    def with_updates(self, updates: abc.Mapping[str, Any]) -> "StructuredPrompt":
        merged: dict[str, Any] = dict(self._values)
        for key, raw in updates.items():
            merged[key] = to_value(raw)
        return StructuredPrompt(merged)

    def without(self, *keys: str) -> "StructuredPrompt":
        return StructuredPrompt({k: v for k, v in self._values.items() if k not in keys})
