"""Filter expressions for document store queries.

A Filter renders to the store's boolean expression language and can also be
evaluated against a plain record, so the in-memory store and the HTTP store
answer the same query the same way.
"""

from __future__ import annotations

import json
import operator
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

Record = Mapping[str, Any]


class Filter:
    """Base class for filter expressions."""

    def render(self) -> str:
        raise NotImplementedError

    def matches(self, record: Record) -> bool:
        raise NotImplementedError

    def __and__(self, other: Filter) -> Filter:
        return and_(self, other)

    def __or__(self, other: Filter) -> Filter:
        return or_(self, other)

    def __str__(self) -> str:
        return self.render()


def literal(value: Any) -> str:
    """Render a Python value as an expression literal."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return repr(value)
    if isinstance(value, str):
        # json.dumps escapes backslashes and double quotes the way the store expects
        return json.dumps(value, ensure_ascii=False)
    raise TypeError(f"unsupported filter literal: {value!r}")


_OPS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    ">": operator.gt,
    "<=": operator.le,
    ">=": operator.ge,
}


@dataclass(frozen=True)
class Compare(Filter):
    field: str
    op: str
    value: Any

    def render(self) -> str:
        return f"{self.field} {self.op} {literal(self.value)}"

    def matches(self, record: Record) -> bool:
        current = record.get(self.field)
        if current is None:
            # Absent numeric fields read as zero ("0/absent = not ended").
            if isinstance(self.value, int | float) and not isinstance(self.value, bool):
                current = 0
            elif self.op == "!=":
                return True
            else:
                return False
        try:
            return _OPS[self.op](current, self.value)
        except TypeError:
            return False


@dataclass(frozen=True)
class In(Filter):
    field: str
    values: tuple[Any, ...]

    def render(self) -> str:
        return f"{self.field} in [{', '.join(literal(v) for v in self.values)}]"

    def matches(self, record: Record) -> bool:
        return record.get(self.field) in self.values


@dataclass(frozen=True)
class Prefix(Filter):
    field: str
    prefix: str

    def render(self) -> str:
        escaped = self.prefix.replace("%", "\\%").replace("_", "\\_")
        return f"{self.field} like {literal(escaped + '%')}"

    def matches(self, record: Record) -> bool:
        value = record.get(self.field)
        return isinstance(value, str) and value.startswith(self.prefix)


@dataclass(frozen=True)
class Junction(Filter):
    joiner: str
    parts: tuple[Filter, ...]

    def render(self) -> str:
        rendered = [p.render() for p in self.parts if not isinstance(p, Always)]
        if not rendered:
            return ""
        if len(rendered) == 1:
            return rendered[0]
        return f" {self.joiner} ".join(f"({r})" for r in rendered)

    def matches(self, record: Record) -> bool:
        if self.joiner == "and":
            return all(p.matches(record) for p in self.parts)
        return any(p.matches(record) for p in self.parts)


@dataclass(frozen=True)
class Always(Filter):
    """Matches every record. Renders to an empty filter."""

    def render(self) -> str:
        return ""

    def matches(self, record: Record) -> bool:
        return True


def eq(field: str, value: Any) -> Filter:
    return Compare(field, "==", value)


def ne(field: str, value: Any) -> Filter:
    return Compare(field, "!=", value)


def lt(field: str, value: Any) -> Filter:
    return Compare(field, "<", value)


def gt(field: str, value: Any) -> Filter:
    return Compare(field, ">", value)


def le(field: str, value: Any) -> Filter:
    return Compare(field, "<=", value)


def ge(field: str, value: Any) -> Filter:
    return Compare(field, ">=", value)


def in_(field: str, values: Iterable[Any]) -> Filter:
    return In(field, tuple(values))


def prefix(field: str, value: str) -> Filter:
    return Prefix(field, value)


def and_(*parts: Filter) -> Filter:
    return Junction("and", tuple(parts))


def or_(*parts: Filter) -> Filter:
    return Junction("or", tuple(parts))


def always() -> Filter:
    return Always()
