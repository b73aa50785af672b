"""Sanitization of untrusted filter and input values.

Single entry point for everything a caller can put into a list query or a
free-text field. Filters are reduced to predicate terms over logical fields
(see ``libs.rbac.scoping``); the caller never supplies raw column names or
raw operators, so the result can only narrow a scope, never widen it.

Fails closed: keys, operators and values that are not recognised are
dropped (and logged at DEBUG), never passed through.

Example:
    >>> result = sanitize_order_filter({"status": "pending", "minAmount": "10", "page": "2"})
    >>> result.page.page, result.page.limit
    (2, 20)
"""

from __future__ import annotations

import logging
import math
import re
import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from libs.orders.models import OrderStatus
from libs.rbac.permissions import Role
from libs.rbac.predicates import Compare, Predicate, all_of

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_PAGE = 1000
MAX_LIMIT = 100

DEFAULT_STRING_MAX_LENGTH = 1000

# Query-structure characters plus ASCII control characters
_UNSAFE_CHARS = re.compile(r"[$.{}\[\]<>\"'\\&\x00-\x1f\x7f]")
_REFERENCE_PATTERN = re.compile(r"^[0-9A-Za-z]{6,32}$")
_ORDER_ID_STRIP = re.compile(r"[^0-9a-z]")
_BRACKETED_KEY = re.compile(r"^([A-Za-z][A-Za-z0-9_]*)\[([^\[\]]*)\]$")

EQUALITY_OPS = frozenset({"eq", "ne", "in", "nin"})
RANGE_OPS = frozenset({"eq", "ne", "gt", "gte", "lt", "lte"})


@dataclass(frozen=True)
class Page:
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True)
class SanitizedFilter:
    """Predicate terms and pagination extracted from an untrusted filter."""

    terms: tuple[Predicate, ...] = ()
    page: Page = field(default_factory=Page)
    dropped: tuple[str, ...] = ()

    @property
    def predicate(self) -> Predicate:
        return all_of(*self.terms)


# ---------------------------------------------------------------------------
# Scalar helpers
# ---------------------------------------------------------------------------


def strip_unsafe(value: str) -> str:
    """Remove query-structure and control characters."""
    return _UNSAFE_CHARS.sub("", value)


def sanitize_string(value: Any, max_length: int = DEFAULT_STRING_MAX_LENGTH) -> str | None:
    """Trim, strip unsafe characters and truncate. Non-strings yield None."""
    if not isinstance(value, str):
        return None
    return strip_unsafe(value.strip())[:max_length]


def sanitize_reference(value: Any) -> str | None:
    """Trim a settlement reference (UTR); it must then be 6-32 alphanumerics.

    Separators or any other character reject the whole value rather than
    being stripped out.
    """
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed if _REFERENCE_PATTERN.fullmatch(trimmed) else None


def sanitize_order_id(value: Any) -> str | None:
    """Normalise an order id to 5-20 characters of ``[0-9a-z]``."""
    if not isinstance(value, str):
        return None
    cleaned = _ORDER_ID_STRIP.sub("", value.strip())
    return cleaned if 5 <= len(cleaned) <= 20 else None


def sanitize_identifier(value: Any) -> str | None:
    """Return the canonical UUID string for ``value`` or None if malformed."""
    if isinstance(value, uuid.UUID):
        return str(value)
    if not isinstance(value, str):
        return None
    try:
        return str(uuid.UUID(strip_unsafe(value.strip())))
    except ValueError:
        return None


def _parse_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def validate_pagination(
    page: Any,
    limit: Any,
    *,
    default_limit: int = DEFAULT_LIMIT,
    max_page: int = MAX_PAGE,
    max_limit: int = MAX_LIMIT,
) -> Page:
    """Clamp pagination to ``[1, max_page] x [1, max_limit]``.

    Unparseable values fall back to page 1 and ``default_limit``.
    """
    parsed_page = _parse_int(page)
    parsed_limit = _parse_int(limit)
    valid_page = min(max_page, max(1, parsed_page or DEFAULT_PAGE))
    valid_limit = min(max_limit, max(1, parsed_limit or default_limit))
    return Page(page=valid_page, limit=valid_limit)


def parse_date(value: Any, *, now: datetime | None = None) -> datetime | None:
    """Strict ISO-8601 parse bounded to [10 years ago, end of next year].

    Naive values are interpreted as UTC. Out-of-window values yield None.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)

    current = now or datetime.now(UTC)
    lower = datetime(current.year - 10, 1, 1, tzinfo=UTC)
    upper = datetime(current.year + 1, 12, 31, 23, 59, 59, 999999, tzinfo=UTC)
    if parsed < lower or parsed > upper:
        return None
    return parsed


def parse_amount(value: Any) -> Decimal | None:
    """Finite decimal clamped to >= 0."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return max(Decimal("0"), amount)


def _parse_status(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    candidate = strip_unsafe(value.strip()).upper()
    try:
        return OrderStatus(candidate).value
    except ValueError:
        return None


def _parse_role(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    candidate = strip_unsafe(value.strip()).lower()
    try:
        return Role(candidate).value
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Filter shapes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _FieldRule:
    """How one accepted filter key maps onto a logical field."""

    field: str
    parse: Callable[[Any], Any]
    ops: frozenset[str]
    # Operator applied to a plain (non-object) value
    implicit_op: str = "eq"
    accepts_objects: bool = True


def _date_parser(now: datetime | None) -> Callable[[Any], Any]:
    return lambda value: parse_date(value, now=now)


def _order_rules(now: datetime | None) -> dict[str, _FieldRule]:
    dates = _date_parser(now)
    return {
        "status": _FieldRule("status", _parse_status, EQUALITY_OPS),
        "merchantId": _FieldRule("merchant", sanitize_identifier, EQUALITY_OPS),
        "userId": _FieldRule("user", sanitize_identifier, EQUALITY_OPS),
        "startDate": _FieldRule("created_at", dates, RANGE_OPS, "gte", accepts_objects=False),
        "endDate": _FieldRule("created_at", dates, RANGE_OPS, "lte", accepts_objects=False),
        "createdAt": _FieldRule("created_at", dates, RANGE_OPS),
        "minAmount": _FieldRule("amount", parse_amount, RANGE_OPS, "gte", accepts_objects=False),
        "maxAmount": _FieldRule("amount", parse_amount, RANGE_OPS, "lte", accepts_objects=False),
        "amount": _FieldRule("amount", parse_amount, RANGE_OPS),
    }


def _identity_rules(now: datetime | None) -> dict[str, _FieldRule]:
    dates = _date_parser(now)
    return {
        "role": _FieldRule("role", _parse_role, EQUALITY_OPS),
        "parentId": _FieldRule("parent", sanitize_identifier, EQUALITY_OPS),
        "startDate": _FieldRule("created_at", dates, RANGE_OPS, "gte", accepts_objects=False),
        "endDate": _FieldRule("created_at", dates, RANGE_OPS, "lte", accepts_objects=False),
        "createdAt": _FieldRule("created_at", dates, RANGE_OPS),
    }


_PAGINATION_KEYS = frozenset({"page", "limit"})


def _normalize_op(raw: Any) -> str | None:
    if not isinstance(raw, str):
        return None
    op = raw[1:] if raw.startswith("$") else raw
    return op if op in RANGE_OPS | EQUALITY_OPS else None


def _terms_for(key: str, value: Any, rule: _FieldRule, dropped: list[str]) -> list[Predicate]:
    if isinstance(value, Mapping):
        if not rule.accepts_objects:
            dropped.append(key)
            return []
        terms: list[Predicate] = []
        for raw_op, operand in value.items():
            op = _normalize_op(raw_op)
            if op is None or op not in rule.ops:
                dropped.append(f"{key}.{raw_op}")
                continue
            term = _single_term(rule, op, operand)
            if term is None:
                dropped.append(f"{key}.{raw_op}")
                continue
            terms.append(term)
        return terms

    if isinstance(value, list | tuple):
        op = "in" if "in" in rule.ops and rule.implicit_op == "eq" else None
        term = _single_term(rule, op, value) if op else None
    else:
        term = _single_term(rule, rule.implicit_op, value)
    if term is None:
        dropped.append(key)
        return []
    return [term]


def _single_term(rule: _FieldRule, op: str, operand: Any) -> Predicate | None:
    if op in ("in", "nin"):
        if not isinstance(operand, list | tuple):
            return None
        parsed = [rule.parse(item) for item in operand]
        values = [item for item in parsed if item is not None]
        if not values:
            return None
        return Compare(rule.field, op, values)
    if isinstance(operand, Mapping | list | tuple):
        return None
    parsed_value = rule.parse(operand)
    if parsed_value is None:
        return None
    return Compare(rule.field, op, parsed_value)


def _sanitize(
    raw: Any, rules: Mapping[str, _FieldRule], kind: str, bounds: Mapping[str, int]
) -> SanitizedFilter:
    if not isinstance(raw, Mapping):
        return SanitizedFilter(page=validate_pagination(None, None, **bounds))

    terms: list[Predicate] = []
    dropped: list[str] = []
    for key, value in raw.items():
        if not isinstance(key, str) or key.startswith("$") or "." in key:
            dropped.append(str(key))
            continue
        if key in _PAGINATION_KEYS:
            continue
        rule = rules.get(key)
        if rule is None:
            dropped.append(key)
            continue
        terms.extend(_terms_for(key, value, rule, dropped))

    page = validate_pagination(raw.get("page"), raw.get("limit"), **bounds)
    if dropped:
        logger.debug(
            "filter_terms_dropped",
            extra={"filter_kind": kind, "dropped": dropped},
        )
    return SanitizedFilter(terms=tuple(terms), page=page, dropped=tuple(dropped))


def sanitize_order_filter(
    raw: Any,
    *,
    now: datetime | None = None,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
    max_page: int = MAX_PAGE,
) -> SanitizedFilter:
    """Sanitize an order list/statistics filter.

    Accepted keys: ``status``, ``merchantId``, ``userId``, ``startDate``,
    ``endDate``, ``createdAt``, ``minAmount``, ``maxAmount``, ``amount``,
    ``page``, ``limit``.
    """
    bounds = {"default_limit": default_limit, "max_limit": max_limit, "max_page": max_page}
    return _sanitize(raw, _order_rules(now), "order", bounds)


def sanitize_identity_filter(
    raw: Any,
    *,
    now: datetime | None = None,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
    max_page: int = MAX_PAGE,
) -> SanitizedFilter:
    """Sanitize an identity list filter.

    Accepted keys: ``role``, ``parentId``, ``startDate``, ``endDate``,
    ``createdAt``, ``page``, ``limit``.
    """
    bounds = {"default_limit": default_limit, "max_limit": max_limit, "max_page": max_page}
    return _sanitize(raw, _identity_rules(now), "identity", bounds)


def parse_bracketed_params(items: Iterable[tuple[str, str]]) -> dict[str, Any]:
    """Fold ``key[op]=value`` query parameters into nested dicts.

    ``status[in]=A&status[in]=B`` becomes ``{"status": {"in": ["A", "B"]}}``.
    Repeated plain keys become lists. Nothing is validated here; the result
    is meant to be passed to one of the ``sanitize_*_filter`` functions.
    """
    result: dict[str, Any] = {}
    for key, value in items:
        match = _BRACKETED_KEY.match(key)
        if match is None:
            existing = result.get(key)
            if existing is None:
                result[key] = value
            elif isinstance(existing, list):
                existing.append(value)
            elif isinstance(existing, dict):
                continue
            else:
                result[key] = [existing, value]
            continue

        name, op = match.groups()
        bucket = result.get(name)
        if not isinstance(bucket, dict):
            bucket = {}
            result[name] = bucket
        if op.lstrip("$") in ("in", "nin"):
            bucket.setdefault(op, []).append(value)
        else:
            bucket[op] = value
    return result


__all__ = [
    "DEFAULT_LIMIT",
    "MAX_LIMIT",
    "MAX_PAGE",
    "Page",
    "SanitizedFilter",
    "strip_unsafe",
    "sanitize_string",
    "sanitize_reference",
    "sanitize_order_id",
    "sanitize_identifier",
    "validate_pagination",
    "parse_date",
    "parse_amount",
    "sanitize_order_filter",
    "sanitize_identity_filter",
    "parse_bracketed_params",
]
