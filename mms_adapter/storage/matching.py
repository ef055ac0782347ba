"""
Filter predicate evaluation for the in-memory backend.

Predicates are plain dicts in a small Mongo-like language:

    {"field": value}                 equality; list-valued fields match on membership
    {"field": {"$in": [a, b]}}       any of
    {"field": {"$nin": [a, b]}}      none of
    {"$or": [p, q]}                  disjunction
    {"$and": [p, q]}                 conjunction
    {"$nor": [p, q]}                 none of the sub-predicates hold

Dotted paths descend into nested dicts, e.g. "extra.typeId". An empty
predicate matches every document.
"""

from __future__ import annotations
from typing import Any, Dict

from ..contracts.base import DataFormatError


MISSING = object()


def resolve_path(document: Dict[str, Any], path: str) -> Any:
    value: Any = document
    for part in path.split("."):
        if isinstance(value, dict) and part in value:
            value = value[part]
        else:
            return MISSING
    return value


def _equals(actual: Any, expected: Any) -> bool:
    if actual is MISSING:
        return expected is None
    if isinstance(actual, list) and not isinstance(expected, list):
        return expected in actual
    return actual == expected


def _match_condition(actual: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
        for op, operand in condition.items():
            if op == "$in":
                if not any(_equals(actual, candidate) for candidate in operand):
                    return False
            elif op == "$nin":
                if any(_equals(actual, candidate) for candidate in operand):
                    return False
            else:
                raise DataFormatError(f"Unsupported filter operator '{op}'.")
        return True
    return _equals(actual, condition)


def matches(document: Dict[str, Any], predicate: Dict[str, Any]) -> bool:
    for key, condition in predicate.items():
        if key == "$or":
            if not any(matches(document, p) for p in condition):
                return False
        elif key == "$and":
            if not all(matches(document, p) for p in condition):
                return False
        elif key == "$nor":
            if any(matches(document, p) for p in condition):
                return False
        elif key.startswith("$"):
            raise DataFormatError(f"Unsupported filter operator '{key}'.")
        elif not _match_condition(resolve_path(document, key), condition):
            return False
    return True
