# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for role-derived listing filters.
"""

import pytest

from agrimarket_api.domain.visibility import (
    AllOf, AnyOf, FieldEquals, MATCH_ALL,
    build_list_filter, caller_filter, compose, filter_documents, visibility_filter
)
from agrimarket_api.models.enums import UserRole


BUYER_A = "a" * 24
FARMER_B = "b" * 24
FARMER_C = "c" * 24

DOCUMENTS = [
    {"id": "1", "buyer": BUYER_A, "seller": None, "status": "open", "commodity": "maize"},
    {"id": "2", "buyer": BUYER_A, "seller": FARMER_B, "status": "accepted", "commodity": "maize"},
    {"id": "3", "buyer": "d" * 24, "seller": FARMER_C, "status": "rejected", "commodity": "beans"},
    {"id": "4", "buyer": "d" * 24, "seller": None, "status": "cancelled", "commodity": "beans"},
]


def ids(documents):
    return sorted(document["id"] for document in documents)


class TestVisibilityFilter:
    """Visibility per caller role."""

    def test_anonymous_sees_only_open(self):
        expression = visibility_filter(UserRole.ANONYMOUS, None)
        assert expression.to_mongo() == {"status": "open"}
        assert ids(filter_documents(DOCUMENTS, expression)) == ["1"]

    def test_buyer_sees_own_demands_in_any_state(self):
        expression = visibility_filter(UserRole.BUYER, BUYER_A)
        assert expression.to_mongo() == {"buyer": BUYER_A}
        assert ids(filter_documents(DOCUMENTS, expression)) == ["1", "2"]

    def test_farmer_sees_open_and_own_responses(self):
        expression = visibility_filter(UserRole.FARMER, FARMER_C)
        assert expression.to_mongo() == {"$or": [{"status": "open"}, {"seller": FARMER_C}]}
        assert ids(filter_documents(DOCUMENTS, expression)) == ["1", "3"]

    def test_admin_sees_everything(self):
        expression = visibility_filter("admin", "e" * 24)
        assert expression is MATCH_ALL
        assert expression.to_mongo() == {}
        assert ids(filter_documents(DOCUMENTS, expression)) == ["1", "2", "3", "4"]

    def test_unknown_role_rejected(self):
        with pytest.raises(ValueError):
            visibility_filter("moderator", None)


class TestComposition:
    """Caller filters are AND-composed with visibility."""

    def test_caller_filter_ignores_unknown_keys(self):
        assert caller_filter({"buyer": BUYER_A, "commodity": "maize"}).to_mongo() == {"commodity": "maize"}
        assert caller_filter(None) is MATCH_ALL

    def test_compose_flattens_conjunctions(self):
        expression = compose(AllOf((FieldEquals("a", 1),)), FieldEquals("b", 2), MATCH_ALL)
        assert expression == AllOf((FieldEquals("a", 1), FieldEquals("b", 2)))
        assert expression.to_mongo() == {"$and": [{"a": 1}, {"b": 2}]}

    def test_requested_status_cannot_widen_anonymous_view(self):
        expression = build_list_filter(UserRole.ANONYMOUS, None, {"status": "accepted"})
        assert filter_documents(DOCUMENTS, expression) == []

    def test_farmer_with_commodity_filter(self):
        expression = build_list_filter(UserRole.FARMER, FARMER_C, {"commodity": "beans"})
        assert isinstance(expression, AllOf)
        assert isinstance(expression.clauses[0], AnyOf)
        assert ids(filter_documents(DOCUMENTS, expression)) == ["3"]

    def test_admin_filter_is_just_the_caller_filter(self):
        expression = build_list_filter(UserRole.ADMIN, "e" * 24, {"status": "cancelled"})
        assert expression.to_mongo() == {"status": "cancelled"}
