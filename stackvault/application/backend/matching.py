"""Evaluation of MongoDB-style filter documents against plain dictionaries.

Used by the in-memory backend. Supports the operators the repository layer
emits: ``$and``, ``$or``, ``$nor``, ``$eq``, ``$ne``, ``$in``, ``$nin``,
``$gt``, ``$gte``, ``$lt``, ``$lte`` and ``$exists``.
"""

import operator
from collections.abc import Callable
from typing import Any

_MISSING = object()


def _equals(value: Any, expected: Any) -> bool:
    if value is _MISSING:
        return expected is None
    # Array fields match when any element equals a scalar expectation.
    if isinstance(value, list) and not isinstance(expected, list):
        return expected in value
    return bool(value == expected)


def _compare(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def check(value: Any, expected: Any) -> bool:
        if value is _MISSING or value is None:
            return False
        try:
            return bool(op(value, expected))
        except TypeError:
            return False

    return check


_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "$eq": _equals,
    "$ne": lambda value, expected: not _equals(value, expected),
    "$in": lambda value, expected: any(_equals(value, e) for e in expected),
    "$nin": lambda value, expected: not any(_equals(value, e) for e in expected),
    "$gt": _compare(operator.gt),
    "$gte": _compare(operator.ge),
    "$lt": _compare(operator.lt),
    "$lte": _compare(operator.le),
    "$exists": lambda value, expected: (value is not _MISSING) == bool(expected),
}


def _is_operator_document(condition: Any) -> bool:
    return (
        isinstance(condition, dict)
        and bool(condition)
        and all(key.startswith("$") for key in condition)
    )


def _matches_field(value: Any, condition: Any) -> bool:
    if not _is_operator_document(condition):
        return _equals(value, condition)

    for name, expected in condition.items():
        try:
            check = _OPERATORS[name]
        except KeyError:
            raise ValueError(f"Unsupported query operator {name!r}") from None
        if not check(value, expected):
            return False
    return True


def matches(query: dict[str, Any], source: dict[str, Any]) -> bool:
    """Check whether ``source`` satisfies the filter document ``query``.

    Examples:
        >>> matches({"total": {"$gte": 2}}, {"total": 3})
        True
        >>> matches({"$or": [{"a": 1}, {"b": 2}]}, {"a": 0, "b": 2})
        True
    """
    for key, condition in query.items():
        if key == "$and":
            if not all(matches(sub, source) for sub in condition):
                return False
        elif key == "$or":
            if not any(matches(sub, source) for sub in condition):
                return False
        elif key == "$nor":
            if any(matches(sub, source) for sub in condition):
                return False
        elif key.startswith("$"):
            raise ValueError(f"Unsupported query operator {key!r}")
        elif not _matches_field(source.get(key, _MISSING), condition):
            return False
    return True


def sort_documents(
    documents: list[dict[str, Any]], sort: list[tuple[str, int]]
) -> list[dict[str, Any]]:
    """Sort documents by several (field, direction) pairs.

    Missing and null values sort lowest, as MongoDB orders them.
    """
    result = list(documents)
    # Stable sorts applied from the least to the most significant key.
    for field, direction in reversed(sort):
        result.sort(
            key=lambda doc: _sort_key(doc.get(field)),
            reverse=direction < 0,
        )
    return result


def _sort_key(value: Any) -> tuple[Any, ...]:
    if value is None:
        return (0,)
    return (1, value)


def project(source: dict[str, Any], fields: list[str]) -> dict[str, Any]:
    if not fields:
        return dict(source)
    return {
        field: source[field]
        for field in ["id", *fields]
        if field in source
    }
