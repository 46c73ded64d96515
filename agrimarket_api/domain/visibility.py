# SPDX-License-Identifier: Apache-2.0

"""
Role-derived visibility rules for demand queries.

The visibility filter is a small expression tree built by pure functions.
It renders to a MongoDB query for the repository and can be evaluated
against plain documents, so the rules are testable without a datastore.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from ..models.enums import DemandStatus, UserRole


@dataclass(frozen=True)
class FieldEquals:
    """Match documents whose field equals a value."""
    field: str
    value: Any

    def matches(self, document: Dict[str, Any]) -> bool:
        return document.get(self.field) == self.value

    def to_mongo(self) -> Dict[str, Any]:
        return {self.field: self.value}


@dataclass(frozen=True)
class AnyOf:
    """Match documents satisfying at least one clause."""
    clauses: Tuple["FilterExpression", ...]

    def matches(self, document: Dict[str, Any]) -> bool:
        return any(clause.matches(document) for clause in self.clauses)

    def to_mongo(self) -> Dict[str, Any]:
        return {"$or": [clause.to_mongo() for clause in self.clauses]}


@dataclass(frozen=True)
class AllOf:
    """Match documents satisfying every clause; no clauses matches everything."""
    clauses: Tuple["FilterExpression", ...] = ()

    def matches(self, document: Dict[str, Any]) -> bool:
        return all(clause.matches(document) for clause in self.clauses)

    def to_mongo(self) -> Dict[str, Any]:
        if not self.clauses:
            return {}
        if len(self.clauses) == 1:
            return self.clauses[0].to_mongo()
        return {"$and": [clause.to_mongo() for clause in self.clauses]}


FilterExpression = Union[FieldEquals, AnyOf, AllOf]

MATCH_ALL = AllOf()


def visibility_filter(role: Union[UserRole, str], user_id: Optional[str]) -> FilterExpression:
    """
    Build the constraint a caller's role imposes on demand listings.

    Args:
        role: Caller role
        user_id: Caller user ID (None for anonymous callers)

    Returns:
        Filter expression to AND with any caller-supplied filter
    """
    role = UserRole(role)
    open_only = FieldEquals("status", DemandStatus.OPEN.value)

    if role == UserRole.ADMIN:
        return MATCH_ALL

    if role == UserRole.BUYER and user_id:
        return FieldEquals("buyer", user_id)

    if role == UserRole.FARMER and user_id:
        # Open demands plus the ones this farmer responded to
        return AnyOf((open_only, FieldEquals("seller", user_id)))

    return open_only


def caller_filter(filters: Optional[Dict[str, Any]]) -> FilterExpression:
    """
    Build the caller-supplied part of a listing query.

    Only ``status`` and ``commodity`` are honoured; other keys are ignored.
    """
    if not filters:
        return MATCH_ALL

    clauses: List[FilterExpression] = []

    status = filters.get("status")
    if status:
        clauses.append(FieldEquals("status", DemandStatus(status).value))

    commodity = filters.get("commodity")
    if commodity:
        clauses.append(FieldEquals("commodity", commodity))

    return compose(*clauses)


def compose(*expressions: FilterExpression) -> FilterExpression:
    """AND expressions together, flattening nested conjunctions."""
    clauses: List[FilterExpression] = []
    for expression in expressions:
        if isinstance(expression, AllOf):
            clauses.extend(expression.clauses)
        else:
            clauses.append(expression)

    if len(clauses) == 1:
        return clauses[0]
    return AllOf(tuple(clauses))


def build_list_filter(
    role: Union[UserRole, str],
    user_id: Optional[str],
    filters: Optional[Dict[str, Any]] = None
) -> FilterExpression:
    """Visibility filter for the caller composed with its requested filter."""
    return compose(visibility_filter(role, user_id), caller_filter(filters))


def filter_documents(
    documents: Iterable[Dict[str, Any]],
    expression: FilterExpression
) -> List[Dict[str, Any]]:
    """Evaluate a filter expression against in-memory documents."""
    return [document for document in documents if expression.matches(document)]
