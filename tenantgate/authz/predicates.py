"""Storage-agnostic boolean filter expressions.

A small expression tree (``Eq``, ``In``, ``Contains``, ``And``, ``Or`` over typed
``Column`` references plus the two constants) that list queries accept as a
first-class filter.  Storage backends translate the tree with their own
query builder; see ``tenantgate.storage.database.compile_predicate``.

Expressions compose with ``&`` and ``|`` and fold constants eagerly, so
``MATCH_NONE & anything`` is ``MATCH_NONE`` and an ``In`` over an empty set
never matches.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Column:
    """A column of a logical table (``target``, ``namespace``)."""

    table: str
    name: str

    def __str__(self) -> str:
        return f"{self.table}.{self.name}"


class _Composable:
    def __and__(self, other: Predicate) -> Predicate:
        return and_(self, other)  # type: ignore[arg-type]

    def __or__(self, other: Predicate) -> Predicate:
        return or_(self, other)  # type: ignore[arg-type]


@dataclass(frozen=True)
class Const(_Composable):
    value: bool


MATCH_ALL = Const(True)
MATCH_NONE = Const(False)


@dataclass(frozen=True)
class Eq(_Composable):
    column: Column
    value: object


@dataclass(frozen=True)
class In(_Composable):
    column: Column
    values: frozenset[str]


@dataclass(frozen=True)
class Contains(_Composable):
    """Case-insensitive substring match on a text column."""

    column: Column
    value: str


@dataclass(frozen=True)
class And(_Composable):
    operands: tuple[Predicate, ...]


@dataclass(frozen=True)
class Or(_Composable):
    operands: tuple[Predicate, ...]


Predicate = Union[Const, Eq, In, Contains, And, Or]


def eq(column: Column, value: object) -> Predicate:
    return Eq(column, value)


def in_(column: Column, values) -> Predicate:
    """Membership test.  An empty value set matches nothing."""
    values = frozenset(values)
    if not values:
        return MATCH_NONE
    return In(column, values)


def contains(column: Column, value: str) -> Predicate:
    """Substring search.  An empty search string matches everything."""
    if not value:
        return MATCH_ALL
    return Contains(column, value)


def and_(*operands: Predicate | None) -> Predicate:
    """Conjunction.  ``None`` operands mean "no filter" and are skipped."""
    flat: list[Predicate] = []
    for op in operands:
        if op is None or op == MATCH_ALL:
            continue
        if op == MATCH_NONE:
            return MATCH_NONE
        if isinstance(op, And):
            flat.extend(op.operands)
        else:
            flat.append(op)
    if not flat:
        return MATCH_ALL
    if len(flat) == 1:
        return flat[0]
    return And(tuple(flat))


def or_(*operands: Predicate) -> Predicate:
    """Disjunction.  An empty disjunction matches nothing."""
    flat: list[Predicate] = []
    for op in operands:
        if op == MATCH_NONE:
            continue
        if op == MATCH_ALL:
            return MATCH_ALL
        if isinstance(op, Or):
            flat.extend(op.operands)
        else:
            flat.append(op)
    if not flat:
        return MATCH_NONE
    if len(flat) == 1:
        return flat[0]
    return Or(tuple(flat))


def evaluate(predicate: Predicate, row: dict[str, object]) -> bool:
    """Evaluate *predicate* against a row keyed by column name.

    Used by in-memory backends and tests; SQL backends compile instead.
    """
    if isinstance(predicate, Const):
        return predicate.value
    if isinstance(predicate, Eq):
        return row.get(predicate.column.name) == predicate.value
    if isinstance(predicate, In):
        return row.get(predicate.column.name) in predicate.values
    if isinstance(predicate, Contains):
        return predicate.value.lower() in str(row.get(predicate.column.name, "")).lower()
    if isinstance(predicate, And):
        return all(evaluate(op, row) for op in predicate.operands)
    if isinstance(predicate, Or):
        return any(evaluate(op, row) for op in predicate.operands)
    msg = f"Unsupported predicate node: {type(predicate).__name__}"
    raise TypeError(msg)
