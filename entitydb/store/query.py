"""
Filter and sort evaluation for document store backends.

Pure functions with no I/O - fully testable. Both the in-memory and the
SQLite backends evaluate filters and sort specifications through this
module, so they agree on query semantics.

Supported filter syntax:
    - {"a.b": literal}: equality (membership when the stored value is a list)
    - {"a": {"$eq" | "$ne" | "$gt" | "$gte" | "$lt" | "$lte": value}}
    - {"a": {"$in" | "$nin": [values]}}
    - {"a": {"$exists": bool}}
    - {"$and": [filters]}, {"$or": [filters]}
"""

from __future__ import annotations

from functools import cmp_to_key
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..errors import QueryError

_MISSING = object()


def get_path(doc: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted path inside a document.

    Args:
        doc: Document to read from.
        path: Dotted field path such as "fieldData.title".

    Returns:
        The value at the path, or a private sentinel when absent.
    """
    current: Any = doc
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return _MISSING
    return current


def _compare(left: Any, right: Any) -> int:
    """Order two values, placing None before everything and grouping by type."""
    if left is None and right is None:
        return 0
    if left is None:
        return -1
    if right is None:
        return 1
    try:
        if left < right:
            return -1
        if left > right:
            return 1
        return 0
    except TypeError:
        # Mixed types order by type name so sorting stays total.
        lname, rname = type(left).__name__, type(right).__name__
        return (lname > rname) - (lname < rname)


def _equals(stored: Any, expected: Any) -> bool:
    if stored is _MISSING:
        return expected is None
    if isinstance(stored, list) and not isinstance(expected, list):
        return expected in stored
    return stored == expected


def _ordered(op: str) -> Callable[[Any, Any], bool]:
    def check(stored: Any, expected: Any) -> bool:
        if stored is _MISSING or stored is None:
            return False
        if type(stored) is not type(expected) and not (
            isinstance(stored, (int, float)) and isinstance(expected, (int, float))
        ):
            return False
        result = _compare(stored, expected)
        if op == "$gt":
            return result > 0
        if op == "$gte":
            return result >= 0
        if op == "$lt":
            return result < 0
        return result <= 0

    return check


_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "$eq": _equals,
    "$ne": lambda stored, expected: not _equals(stored, expected),
    "$gt": _ordered("$gt"),
    "$gte": _ordered("$gte"),
    "$lt": _ordered("$lt"),
    "$lte": _ordered("$lte"),
    "$in": lambda stored, expected: any(_equals(stored, e) for e in expected),
    "$nin": lambda stored, expected: not any(_equals(stored, e) for e in expected),
    "$exists": lambda stored, expected: (stored is not _MISSING) == bool(expected),
}


def _is_operator_doc(value: Any) -> bool:
    return isinstance(value, Mapping) and bool(value) and all(
        isinstance(k, str) and k.startswith("$") for k in value
    )


def matches(doc: Mapping[str, Any], criteria: Optional[Mapping[str, Any]]) -> bool:
    """Check whether a document satisfies a filter.

    Args:
        doc: The stored document.
        criteria: Filter mapping; None or empty matches everything.

    Returns:
        True if the document matches.

    Raises:
        QueryError: If the filter uses an unsupported operator.
    """
    if not criteria:
        return True

    for key, expected in criteria.items():
        if key == "$and":
            if not all(matches(doc, sub) for sub in expected):
                return False
            continue
        if key == "$or":
            if not any(matches(doc, sub) for sub in expected):
                return False
            continue
        if key.startswith("$"):
            raise QueryError(f"Unsupported top-level operator '{key}'")

        stored = get_path(doc, key)
        if _is_operator_doc(expected):
            for op, operand in expected.items():
                check = _OPERATORS.get(op)
                if check is None:
                    raise QueryError(f"Unsupported operator '{op}' on '{key}'")
                if not check(stored, operand):
                    return False
        elif not _equals(stored, expected):
            return False

    return True


def sort_documents(
    docs: List[Dict[str, Any]],
    spec: Optional[Mapping[str, int]],
) -> List[Dict[str, Any]]:
    """Sort documents by a {path: 1 | -1} specification.

    The sort is stable, so documents with equal keys keep their
    insertion order.

    Args:
        docs: Documents in insertion order.
        spec: Ordered mapping of dotted paths to direction.

    Returns:
        A new, sorted list.

    Raises:
        QueryError: If a direction is not 1 or -1.
    """
    if not spec:
        return list(docs)

    keys = list(spec.items())
    for path, direction in keys:
        if direction not in (1, -1):
            raise QueryError(f"Sort direction for '{path}' must be 1 or -1, got {direction!r}")

    def cmp(left: Dict[str, Any], right: Dict[str, Any]) -> int:
        for path, direction in keys:
            lval = get_path(left, path)
            rval = get_path(right, path)
            result = _compare(
                None if lval is _MISSING else lval,
                None if rval is _MISSING else rval,
            )
            if result:
                return result * direction
        return 0

    return sorted(docs, key=cmp_to_key(cmp))


def paginate(
    docs: List[Dict[str, Any]],
    skip: int = 0,
    limit: int = 0,
) -> List[Dict[str, Any]]:
    """Apply skip and limit; a limit of 0 means no limit."""
    if skip:
        docs = docs[skip:]
    if limit:
        docs = docs[:limit]
    return docs
