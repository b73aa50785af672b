"""Query predicates shared by scoping, sanitization and storage.

A predicate is an immutable value built from four node types:

- ``Compare(field, op, value)``: one comparison against a logical field
- ``AllOf(terms)``: conjunction (empty conjunction matches everything)
- ``AnyOf(terms)``: disjunction (empty disjunction matches nothing)
- ``NOTHING``: matches no record

Predicates reference *logical* field names ("active", "merchant", ...). Each
store supplies an allow-listed mapping from logical field to SQL column, so a
predicate can never name a column the store did not expose. The same value
can be evaluated in-process with ``matches`` against a record dict, which is
what the diagnostics endpoints and the in-memory test stores use.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

OPERATORS = frozenset({"eq", "ne", "gt", "gte", "lt", "lte", "in", "nin"})

_SQL_COMPARISONS = {"gt": ">", "gte": ">=", "lt": "<", "lte": "<="}


@dataclass(frozen=True)
class Compare:
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in OPERATORS:
            raise ValueError(f"Unsupported operator: {self.op}")
        if self.op in ("in", "nin"):
            object.__setattr__(self, "value", tuple(self.value))


@dataclass(frozen=True)
class AllOf:
    terms: tuple[Predicate, ...] = ()


@dataclass(frozen=True)
class AnyOf:
    terms: tuple[Predicate, ...] = ()


@dataclass(frozen=True)
class _Nothing:
    def __repr__(self) -> str:
        return "NOTHING"


NOTHING = _Nothing()

Predicate = Compare | AllOf | AnyOf | _Nothing


def eq(field: str, value: Any) -> Compare:
    return Compare(field, "eq", value)


def all_of(*terms: Predicate) -> Predicate:
    """Conjunction that flattens nested ``AllOf`` and short-circuits on ``NOTHING``."""
    flat: list[Predicate] = []
    for term in terms:
        if term is NOTHING:
            return NOTHING
        if isinstance(term, AllOf):
            flat.extend(term.terms)
        else:
            flat.append(term)
    if len(flat) == 1:
        return flat[0]
    return AllOf(tuple(flat))


def any_of(*terms: Predicate) -> Predicate:
    """Disjunction that drops ``NOTHING`` branches."""
    flat = [term for term in terms if term is not NOTHING]
    if not flat:
        return NOTHING
    if len(flat) == 1:
        return flat[0]
    return AnyOf(tuple(flat))


def _sql_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def compile_sql(predicate: Predicate, columns: Mapping[str, str]) -> tuple[str, list[Any]]:
    """Render a predicate as a parameterised SQL boolean expression.

    Args:
        predicate: Predicate to render
        columns: Allow-listed mapping from logical field name to SQL column

    Returns:
        Tuple of (sql, params) using psycopg ``%s`` placeholders

    Raises:
        ValueError: If the predicate references a field not in ``columns``
    """
    params: list[Any] = []
    sql = _compile(predicate, columns, params)
    return sql, params


def _compile(predicate: Predicate, columns: Mapping[str, str], params: list[Any]) -> str:
    if predicate is NOTHING:
        return "FALSE"
    if isinstance(predicate, AllOf):
        if not predicate.terms:
            return "TRUE"
        return "(" + " AND ".join(_compile(t, columns, params) for t in predicate.terms) + ")"
    if isinstance(predicate, AnyOf):
        if not predicate.terms:
            return "FALSE"
        return "(" + " OR ".join(_compile(t, columns, params) for t in predicate.terms) + ")"
    if not isinstance(predicate, Compare):
        raise TypeError(f"Not a predicate: {predicate!r}")

    column = columns.get(predicate.field)
    if column is None:
        raise ValueError(f"Field not queryable: {predicate.field}")

    op = predicate.op
    value = predicate.value
    if op == "eq":
        if value is None:
            return f"{column} IS NULL"
        params.append(_sql_value(value))
        return f"{column} = %s"
    if op == "ne":
        if value is None:
            return f"{column} IS NOT NULL"
        params.append(_sql_value(value))
        return f"{column} IS DISTINCT FROM %s"
    if op == "in":
        params.append([_sql_value(v) for v in value])
        return f"{column} = ANY(%s)"
    if op == "nin":
        params.append([_sql_value(v) for v in value])
        return f"{column} <> ALL(%s)"
    params.append(_sql_value(value))
    return f"{column} {_SQL_COMPARISONS[op]} %s"


def _normalize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, int | float) and not isinstance(value, bool):
        return Decimal(str(value))
    return value


def _compare(left: Any, op: str, right: Any) -> bool:
    left = _normalize(left)
    if op == "in":
        return left is not None and left in {_normalize(v) for v in right}
    if op == "nin":
        return left is not None and left not in {_normalize(v) for v in right}
    right = _normalize(right)
    if op == "eq":
        return bool(left == right)
    if op == "ne":
        return bool(left != right)
    if left is None or right is None:
        return False
    if isinstance(left, datetime) != isinstance(right, datetime):
        return False
    if op == "gt":
        return bool(left > right)
    if op == "gte":
        return bool(left >= right)
    if op == "lt":
        return bool(left < right)
    return bool(left <= right)


def matches(predicate: Predicate, record: Mapping[str, Any]) -> bool:
    """Evaluate a predicate against a record keyed by logical field names.

    Missing fields evaluate as ``None``; ordering comparisons against ``None``
    are false, matching SQL NULL semantics.
    """
    if predicate is NOTHING:
        return False
    if isinstance(predicate, AllOf):
        return all(matches(t, record) for t in predicate.terms)
    if isinstance(predicate, AnyOf):
        return any(matches(t, record) for t in predicate.terms)
    if isinstance(predicate, Compare):
        return _compare(record.get(predicate.field), predicate.op, predicate.value)
    raise TypeError(f"Not a predicate: {predicate!r}")


def _describe_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, tuple):
        return [_describe_value(v) for v in value]
    return value


def describe(predicate: Predicate) -> Any:
    """Render a predicate as a JSON-serialisable structure."""
    if predicate is NOTHING:
        return {"nothing": True}
    if isinstance(predicate, AllOf):
        return {"all_of": [describe(t) for t in predicate.terms]}
    if isinstance(predicate, AnyOf):
        return {"any_of": [describe(t) for t in predicate.terms]}
    if isinstance(predicate, Compare):
        return {
            "field": predicate.field,
            "op": predicate.op,
            "value": _describe_value(predicate.value),
        }
    raise TypeError(f"Not a predicate: {predicate!r}")


__all__ = [
    "OPERATORS",
    "Compare",
    "AllOf",
    "AnyOf",
    "NOTHING",
    "Predicate",
    "eq",
    "all_of",
    "any_of",
    "compile_sql",
    "matches",
    "describe",
]
