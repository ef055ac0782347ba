"""
Query Translator

RESPONSIBILITY: Translate the legacy search DSL (an Elasticsearch-style
nested `bool` query) into backend filter predicates
ALLOWED INPUTS: Parsed JSON query trees
OUTPUTS: Predicate dicts understood by the backend element finder

BOUNDARY ENFORCEMENT:
=====================
- Pure functions, no I/O
- Every node is first CLASSIFIED into exactly one Production, then
  translated by the handler registered for it
- Classification checks run in a fixed order; several shapes are subsets
  of others (a "search everything" should is also a plain should)

Predicates use the backend filter language:

    {"name": "x"}                      equality
    {"type": {"$in": [...]}}           any of
    {"$or": [...]} / {"$and": [...]}   logical combination
    {"$nor": [...]}                    negation
    {"extra.<field>": ...}             custom-data fields

Shapes that match no production translate to {} (matches everything in
scope). Malformed or reordered composite shapes fall through the same way.
"""

from __future__ import annotations
from enum import Enum
from typing import Any, Callable, Dict, List

from ..contracts.ids import ID_DELIMITER, build_id


# =============================================================================
# PRODUCTIONS
# =============================================================================

class Production(Enum):
    """Query shapes, in the order they are recognized."""
    SINGLE_ELEMENT = "single_element"
    MUST_NOT = "must_not"
    MUST = "must"
    SEARCH_ALL = "search_all"
    METATYPE = "metatype"
    SHOULD = "should"
    MATCH = "match"
    TERM = "term"
    MULTI_MATCH = "multi_match"
    UNKNOWN = "unknown"


# Custom-data fields searched by free-text matches
TEXT_FIELDS = ("extra.value", "extra.defaultValue", "extra.specification")
# Fields searched by the "search everything" composite, besides _id
SEARCH_ALL_FIELDS = ("name", "documentation") + TEXT_FIELDS


_MISSING = object()


def _dig(node: Any, *path) -> Any:
    """Follow dict keys / list indices; _MISSING when any step fails."""
    for step in path:
        if isinstance(step, int):
            if not isinstance(node, list) or len(node) <= step:
                return _MISSING
            node = node[step]
        else:
            if not isinstance(node, dict) or step not in node:
                return _MISSING
            node = node[step]
    return node


def _has(node: Any, *path) -> bool:
    return _dig(node, *path) is not _MISSING


def classify(node: Any) -> Production:
    """Identify which production `node` is, by structure alone."""
    if not isinstance(node, dict):
        return Production.UNKNOWN

    bool_node = node.get("bool")
    if isinstance(bool_node, dict):
        if _has(bool_node, "filter", 0, "term", "id") and \
                _has(bool_node, "filter", 1, "term", "_projectId"):
            return Production.SINGLE_ELEMENT

        must = bool_node.get("must")
        if isinstance(must, list):
            if _has(must, 1, "bool", "must_not"):
                return Production.MUST_NOT
            return Production.MUST

        should = bool_node.get("should")
        if isinstance(should, list):
            if _has(should, 0, "term") and _has(should, 1, "multi_match"):
                return Production.SEARCH_ALL
            if _has(should, 0, "terms", "_appliedStereotypeIds") and \
                    _has(should, 1, "terms", "type"):
                return Production.METATYPE
            return Production.SHOULD

    if _has(node, "match", "name") or _has(node, "match", "documentation"):
        return Production.MATCH
    if _has(node, "term", "id"):
        return Production.TERM
    if _has(node, "multi_match", "query"):
        return Production.MULTI_MATCH
    return Production.UNKNOWN


# =============================================================================
# TRANSLATION
# =============================================================================

def _unwrap(value: Any, key: str) -> Any:
    """`{"query": t}` / `{"value": t}` leaf wrappers carry the term under `key`."""
    if isinstance(value, dict) and key in value:
        return value[key]
    return value


def _as_nodes(value: Any) -> List[Any]:
    return value if isinstance(value, list) else [value]


def merge_predicates(predicates: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Conjunction of predicates. Disjoint keys are merged into one dict;
    any key collision keeps every part under `$and` instead.
    """
    parts = [p for p in predicates if p]
    merged: Dict[str, Any] = {}
    for part in parts:
        if any(key in merged for key in part):
            return {"$and": parts}
        merged.update(part)
    return merged


def _any_field(fields, term) -> Dict[str, Any]:
    return {"$or": [{f: term} for f in fields]}


def _single_element(node) -> Dict[str, Any]:
    filters = node["bool"]["filter"]
    return {
        "_id": _unwrap(filters[0]["term"]["id"], "value"),
        "project": _unwrap(filters[1]["term"]["_projectId"], "value"),
    }


def _must(node) -> Dict[str, Any]:
    return merge_predicates([translate(child) for child in node["bool"]["must"]])


def _must_not(node) -> Dict[str, Any]:
    must = node["bool"]["must"]
    positives = [translate(child) for i, child in enumerate(must) if i != 1]
    negated = [translate(child) for child in _as_nodes(must[1]["bool"]["must_not"])]
    return merge_predicates(positives + [{"$nor": negated}])


def _should(node) -> Dict[str, Any]:
    return {"$or": [translate(child) for child in node["bool"]["should"]]}


def _search_all(node) -> Dict[str, Any]:
    should = node["bool"]["should"]
    term = should[0]["term"]
    id_term = _unwrap(term.get("id"), "value") if isinstance(term, dict) else term
    text = _unwrap(should[1]["multi_match"], "query")
    if id_term is None:
        id_term = text
    return {"$or": [{"_id": id_term}] + [{f: text} for f in SEARCH_ALL_FIELDS]}


def _metatype(node) -> Dict[str, Any]:
    should = node["bool"]["should"]
    stereotypes = _as_nodes(should[0]["terms"]["_appliedStereotypeIds"])
    types = _as_nodes(should[1]["terms"]["type"])
    return {"$or": [
        {"extra._appliedStereotypeIds": {"$in": stereotypes}},
        {"type": {"$in": types}},
    ]}


def _match(node) -> Dict[str, Any]:
    match = node["match"]
    return {
        field: _unwrap(match[field], "query")
        for field in ("name", "documentation") if field in match
    }


def _term(node) -> Dict[str, Any]:
    return {"_id": _unwrap(node["term"]["id"], "value")}


def _multi_match(node) -> Dict[str, Any]:
    return _any_field(TEXT_FIELDS, node["multi_match"]["query"])


def _unknown(node) -> Dict[str, Any]:
    return {}


_TRANSLATORS: Dict[Production, Callable[[Any], Dict[str, Any]]] = {
    Production.SINGLE_ELEMENT: _single_element,
    Production.MUST_NOT: _must_not,
    Production.MUST: _must,
    Production.SEARCH_ALL: _search_all,
    Production.METATYPE: _metatype,
    Production.SHOULD: _should,
    Production.MATCH: _match,
    Production.TERM: _term,
    Production.MULTI_MATCH: _multi_match,
    Production.UNKNOWN: _unknown,
}


def translate(node: Any) -> Dict[str, Any]:
    """Translate a legacy query tree into a backend filter predicate."""
    return _TRANSLATORS[classify(node)](node)


# =============================================================================
# SCOPING
# =============================================================================

def _scope_value(value: Any, scope: Callable[[str], str]) -> Any:
    if isinstance(value, str):
        # A term that cannot be a local id can never match; leave it as is
        return value if not value or ID_DELIMITER in value else scope(value)
    if isinstance(value, dict):
        return {op: _scope_value(operand, scope) for op, operand in value.items()}
    if isinstance(value, list):
        return [_scope_value(v, scope) for v in value]
    return value


def scope_predicate(
    predicate: Dict[str, Any],
    org_id: str,
    project_id: str,
    branch_id: str
) -> Dict[str, Any]:
    """
    Rewrite the local ids in a translated predicate into composite ids
    scoped to one branch: `_id` values become element ids and `project`
    values become project ids. Returns a new predicate.
    """
    scoped: Dict[str, Any] = {}
    for key, value in predicate.items():
        if key in ("$or", "$and", "$nor"):
            scoped[key] = [scope_predicate(p, org_id, project_id, branch_id) for p in value]
        elif key == "_id":
            scoped[key] = _scope_value(value, lambda v: build_id(org_id, project_id, branch_id, v))
        elif key == "project":
            scoped[key] = _scope_value(value, lambda v: build_id(org_id, v))
        else:
            scoped[key] = value
    return scoped


def to_backend_query(node: Any, org_id: str, project_id: str, branch_id: str) -> Dict[str, Any]:
    """translate() followed by scope_predicate()."""
    return scope_predicate(translate(node), org_id, project_id, branch_id)


__all__ = [
    'Production', 'TEXT_FIELDS', 'SEARCH_ALL_FIELDS',
    'classify', 'translate', 'merge_predicates', 'scope_predicate',
    'to_backend_query',
]
