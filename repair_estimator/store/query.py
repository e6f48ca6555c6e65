"""
Query conditions for record store filters.

A filter maps field names to either a plain value (equality) or a
Condition built with one of the helpers below:

    {"company_id": "c1", "status": in_(["approved", "in_shop"]),
     "promised_due_date": lt(now)}

Values are compared in their stored (encoded) form.
"""

import operator
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping

from repair_estimator.models.records import Record, encode_value

Filter = Mapping[str, Any]
# (field, descending)
SortKey = tuple[str, bool]


def _startswith(actual: Any, prefix: Any) -> bool:
    return isinstance(actual, str) and actual.startswith(prefix)


def _contains(actual: Any, values: Any) -> bool:
    return actual in values


_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "eq": operator.eq,
    "ne": operator.ne,
    "lt": operator.lt,
    "lte": operator.le,
    "gt": operator.gt,
    "gte": operator.ge,
    "in": _contains,
    "startswith": _startswith,
}

# Ordering comparisons never match a missing value
_ORDERED = {"lt", "lte", "gt", "gte"}


@dataclass(frozen=True)
class Condition:
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")

    def matches(self, actual: Any) -> bool:
        if actual is None and self.op in _ORDERED:
            return False
        return _OPERATORS[self.op](actual, self.value)


def eq(value: Any) -> Condition:
    return Condition("eq", encode_value(value))


def ne(value: Any) -> Condition:
    return Condition("ne", encode_value(value))


def lt(value: Any) -> Condition:
    return Condition("lt", encode_value(value))


def lte(value: Any) -> Condition:
    return Condition("lte", encode_value(value))


def gt(value: Any) -> Condition:
    return Condition("gt", encode_value(value))


def gte(value: Any) -> Condition:
    return Condition("gte", encode_value(value))


def in_(values: Iterable[Any]) -> Condition:
    return Condition("in", tuple(encode_value(v) for v in values))


def startswith(prefix: str) -> Condition:
    return Condition("startswith", prefix)


def as_condition(value: Any) -> Condition:
    if isinstance(value, Condition):
        return value
    return eq(value)


def matches(record: Record, filter: Filter | None) -> bool:
    """True when every field condition in the filter holds for the record."""
    if not filter:
        return True
    return all(as_condition(expected).matches(record.get(name)) for name, expected in filter.items())


def sort_records(records: list[Record], sort: list[SortKey] | None) -> list[Record]:
    """
    Sort records by several keys. Missing values always sort last.

    Applies stable sorts from the least significant key outwards.
    """
    if not sort:
        return records
    result = list(records)
    for name, descending in reversed(sort):
        present = [r for r in result if r.get(name) is not None]
        missing = [r for r in result if r.get(name) is None]
        present.sort(key=lambda r: r[name], reverse=descending)
        result = present + missing
    return result
