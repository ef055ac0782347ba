"""
Query Translator Tests

One class per production, plus scoping and the fall-through behavior for
shapes that match no production.
"""

import pytest

from mms_adapter.contracts import DOCUMENT_STEREOTYPE_ID
from mms_adapter.query import (
    Production,
    classify,
    merge_predicates,
    scope_predicate,
    to_backend_query,
    translate,
)
from mms_adapter.storage.matching import matches


def term_id(value):
    return {"term": {"id": value}}


def match_name(value):
    return {"match": {"name": value}}


# =============================================================================
# CLASSIFICATION
# =============================================================================

class TestClassify:

    @pytest.mark.parametrize("node, production", [
        ({"bool": {"filter": [{"term": {"id": "E1"}}, {"term": {"_projectId": "P1"}}]}},
         Production.SINGLE_ELEMENT),
        ({"bool": {"must": [match_name("a"), {"bool": {"must_not": term_id("b")}}]}},
         Production.MUST_NOT),
        ({"bool": {"must": [match_name("a"), term_id("b")]}}, Production.MUST),
        ({"bool": {"should": [term_id("x"), {"multi_match": {"query": "x"}}]}},
         Production.SEARCH_ALL),
        ({"bool": {"should": [{"terms": {"_appliedStereotypeIds": ["s"]}}, {"terms": {"type": ["Class"]}}]}},
         Production.METATYPE),
        ({"bool": {"should": [match_name("a"), term_id("b")]}}, Production.SHOULD),
        (match_name("a"), Production.MATCH),
        ({"match": {"documentation": "d"}}, Production.MATCH),
        (term_id("a"), Production.TERM),
        ({"multi_match": {"query": "q"}}, Production.MULTI_MATCH),
        ({"range": {"x": {"gt": 1}}}, Production.UNKNOWN),
        ("not a node", Production.UNKNOWN),
    ])
    def test_productions(self, node, production):
        assert classify(node) is production

    def test_reordered_search_all_is_a_plain_should(self):
        node = {"bool": {"should": [{"multi_match": {"query": "x"}}, term_id("x")]}}
        assert classify(node) is Production.SHOULD

    def test_single_element_checked_before_must(self):
        node = {"bool": {
            "filter": [term_id("E1"), {"term": {"_projectId": "P1"}}],
            "must": [match_name("a")],
        }}
        assert classify(node) is Production.SINGLE_ELEMENT


# =============================================================================
# TRANSLATION
# =============================================================================

class TestTranslate:

    def test_single_element(self):
        node = {"bool": {"filter": [{"term": {"id": "E1"}}, {"term": {"_projectId": "P1"}}]}}
        assert translate(node) == {"_id": "E1", "project": "P1"}

    def test_must_merges_disjoint_fields(self):
        node = {"bool": {"must": [match_name("a"), term_id("b")]}}
        assert translate(node) == {"name": "a", "_id": "b"}

    def test_must_uses_and_on_collision(self):
        node = {"bool": {"must": [match_name("a"), match_name("b")]}}
        assert translate(node) == {"$and": [{"name": "a"}, {"name": "b"}]}

    def test_must_not(self):
        node = {"bool": {"must": [match_name("a"), {"bool": {"must_not": term_id("b")}}]}}
        assert translate(node) == {"name": "a", "$nor": [{"_id": "b"}]}

    def test_must_not_with_list(self):
        node = {"bool": {"must": [
            match_name("a"),
            {"bool": {"must_not": [term_id("b"), term_id("c")]}},
        ]}}
        assert translate(node) == {"name": "a", "$nor": [{"_id": "b"}, {"_id": "c"}]}

    def test_should(self):
        node = {"bool": {"should": [match_name("a"), term_id("b")]}}
        assert translate(node) == {"$or": [{"name": "a"}, {"_id": "b"}]}

    def test_search_all(self):
        node = {"bool": {"should": [term_id("x"), {"multi_match": {"query": "x"}}]}}
        assert translate(node) == {"$or": [
            {"_id": "x"},
            {"name": "x"},
            {"documentation": "x"},
            {"extra.value": "x"},
            {"extra.defaultValue": "x"},
            {"extra.specification": "x"},
        ]}

    def test_metatype(self):
        node = {"bool": {"should": [
            {"terms": {"_appliedStereotypeIds": [DOCUMENT_STEREOTYPE_ID]}},
            {"terms": {"type": ["Class", "Package"]}},
        ]}}
        assert translate(node) == {"$or": [
            {"extra._appliedStereotypeIds": {"$in": [DOCUMENT_STEREOTYPE_ID]}},
            {"type": {"$in": ["Class", "Package"]}},
        ]}

    def test_match_unwraps_query(self):
        assert translate({"match": {"documentation": {"query": "d"}}}) == {"documentation": "d"}

    def test_term(self):
        assert translate(term_id("E1")) == {"_id": "E1"}

    def test_multi_match(self):
        assert translate({"multi_match": {"query": "q", "fields": ["*"]}}) == {"$or": [
            {"extra.value": "q"}, {"extra.defaultValue": "q"}, {"extra.specification": "q"},
        ]}

    def test_unknown_shape_translates_to_empty_predicate(self):
        assert translate({"range": {"x": {"gt": 1}}}) == {}

    def test_nested_unknown_is_dropped_from_conjunction(self):
        node = {"bool": {"must": [match_name("a"), {"exists": {"field": "x"}}]}}
        assert translate(node) == {"name": "a"}

    def test_merge_predicates_skips_empty(self):
        assert merge_predicates([{}, {"a": 1}, {}]) == {"a": 1}


# =============================================================================
# SCOPING
# =============================================================================

class TestScopePredicate:

    def test_ids_become_composite(self):
        predicate = {"_id": "E1", "project": "P1", "name": "n"}
        assert scope_predicate(predicate, "o", "P1", "master") == {
            "_id": "o:P1:master:E1", "project": "o:P1", "name": "n",
        }

    def test_scoping_recurses_through_operators(self):
        predicate = {"$or": [{"_id": {"$in": ["a", "b"]}}, {"$nor": [{"_id": "c"}]}]}
        assert scope_predicate(predicate, "o", "p", "r") == {"$or": [
            {"_id": {"$in": ["o:p:r:a", "o:p:r:b"]}},
            {"$nor": [{"_id": "o:p:r:c"}]},
        ]}

    def test_single_element_query_selects_element(self):
        node = {"bool": {"filter": [{"term": {"id": "E1"}}, {"term": {"_projectId": "P1"}}]}}
        predicate = to_backend_query(node, "o", "P1", "master")

        assert matches({"_id": "o:P1:master:E1", "project": "o:P1"}, predicate)
        assert not matches({"_id": "o:P1:master:E2", "project": "o:P1"}, predicate)
        assert not matches({"_id": "o:P1:master:E1", "project": "o:P2"}, predicate)

    def test_must_not_excludes_negated_elements(self):
        node = {"bool": {"must": [
            {"match": {"name": "Block"}},
            {"bool": {"must_not": term_id("E2")}},
        ]}}
        predicate = to_backend_query(node, "o", "p", "r")

        assert matches({"_id": "o:p:r:E1", "name": "Block"}, predicate)
        assert not matches({"_id": "o:p:r:E2", "name": "Block"}, predicate)

    def test_empty_terms_are_left_unscoped(self):
        predicate = {"$or": [{"_id": ""}, {"project": ""}]}
        assert scope_predicate(predicate, "o", "p", "r") == predicate

    def test_inputs_not_mutated(self):
        predicate = {"_id": "E1"}
        scope_predicate(predicate, "o", "p", "r")
        assert predicate == {"_id": "E1"}
