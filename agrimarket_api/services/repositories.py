# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB-backed repositories for demands, notifications and user lookups.

Repositories translate between entity models and stored documents. The
lifecycle engine only talks to these contracts, so tests can swap in
in-memory implementations.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from opentelemetry import trace

from ..domain.demands import SELLER_NOTE_PREFIX
from ..domain.visibility import FilterExpression
from ..models.entities import Demand, Notification, UserSummary
from ..models.enums import DemandStatus, UserRole
from .mongodb import MongoDBService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEMANDS_COLLECTION = "demands"
NOTIFICATIONS_COLLECTION = "notifications"
USERS_COLLECTION = "users"


class MongoDemandRepository:
    """Demand persistence over the demands collection."""

    def __init__(self, mongodb: MongoDBService):
        self.mongodb = mongodb

    def create(self, demand: Demand) -> Demand:
        """Insert a new demand and return it as stored."""
        with tracer.start_as_current_span("repository.demands.create"):
            demand_id = self.mongodb.create(DEMANDS_COLLECTION, demand.to_document())
            return self.find_by_id(demand_id)

    def find_by_id(self, demand_id: str) -> Optional[Demand]:
        with tracer.start_as_current_span("repository.demands.find_by_id") as span:
            span.set_attribute("demand.id", demand_id)
            document = self.mongodb.find_one(DEMANDS_COLLECTION, demand_id)
            return Demand.model_validate(document) if document else None

    def find_many(self, expression: FilterExpression, skip: int = 0, limit: int = 20) -> List[Demand]:
        """Demands matching a filter expression, newest first."""
        with tracer.start_as_current_span("repository.demands.find_many"):
            documents = self.mongodb.find_many(
                DEMANDS_COLLECTION,
                expression.to_mongo(),
                sort_by="createdAt",
                skip=skip,
                limit=limit
            )
            return [Demand.model_validate(document) for document in documents]

    def count(self, expression: FilterExpression) -> int:
        with tracer.start_as_current_span("repository.demands.count"):
            return self.mongodb.count(DEMANDS_COLLECTION, expression.to_mongo())

    def save(self, demand: Demand) -> bool:
        """Overwrite the stored document with the full entity, unconditionally."""
        with tracer.start_as_current_span("repository.demands.save") as span:
            span.set_attribute("demand.id", demand.id)
            return self.mongodb.replace(DEMANDS_COLLECTION, demand.id, demand.to_document())

    def update_fields(
        self,
        demand_id: str,
        changes: Dict[str, Any],
        expected_status: Optional[DemandStatus] = None
    ) -> Optional[Demand]:
        """
        Apply field changes in one conditional update.

        Args:
            demand_id: Demand ID
            changes: Stored (camelCase) field values to set
            expected_status: Status the demand must still have, None for no condition

        Returns:
            Updated demand, or None when no demand matched
        """
        conditions = {"status": DemandStatus(expected_status).value} if expected_status else None

        with tracer.start_as_current_span("repository.demands.update_fields") as span:
            span.set_attribute("demand.id", demand_id)
            document = self.mongodb.find_one_and_update(
                DEMANDS_COLLECTION,
                demand_id,
                {"$set": changes},
                conditions=conditions
            )
            return Demand.model_validate(document) if document else None

    def transition(
        self,
        demand_id: str,
        expected_status: DemandStatus,
        changes: Dict[str, Any],
        seller_note: Optional[str] = None
    ) -> Optional[Demand]:
        """
        Compare-and-set a status transition.

        The status check, field changes and the optional seller note append
        happen in a single aggregation-pipeline update.

        Returns:
            Updated demand, or None when the demand is missing or no longer
            in ``expected_status``
        """
        stage: Dict[str, Any] = dict(changes)
        if seller_note:
            stage["notes"] = {
                "$concat": [
                    {"$ifNull": ["$notes", ""]},
                    SELLER_NOTE_PREFIX,
                    {"$literal": seller_note}
                ]
            }

        with tracer.start_as_current_span("repository.demands.transition") as span:
            span.set_attributes({
                "demand.id": demand_id,
                "demand.expected_status": DemandStatus(expected_status).value,
                "demand.target_status": str(changes.get("status"))
            })
            document = self.mongodb.find_one_and_update(
                DEMANDS_COLLECTION,
                demand_id,
                [{"$set": {key: _literal(value) for key, value in stage.items()}}],
                conditions={"status": DemandStatus(expected_status).value}
            )
            return Demand.model_validate(document) if document else None


def _literal(value: Any) -> Any:
    """Keep plain values from being read as pipeline expressions."""
    if isinstance(value, dict) and any(key.startswith("$") for key in value):
        return value
    return {"$literal": value}


class MongoNotificationRepository:
    """Notification persistence over the notifications collection."""

    def __init__(self, mongodb: MongoDBService):
        self.mongodb = mongodb

    def create(self, notification: Notification) -> Notification:
        with tracer.start_as_current_span("repository.notifications.create"):
            notification_id = self.mongodb.create(NOTIFICATIONS_COLLECTION, notification.to_document())
            return notification.model_copy(update={"id": notification_id})


class MongoUserDirectory:
    """Read-only lookups against the marketplace users collection."""

    def __init__(self, mongodb: MongoDBService):
        self.mongodb = mongodb

    @staticmethod
    def to_summary(document: Dict[str, Any]) -> UserSummary:
        """Map a stored user to its summary, choosing the role's profile."""
        role = document.get("role")
        if role == UserRole.FARMER.value:
            profile = document.get("farmerProfile")
        elif role == UserRole.BUYER.value:
            profile = document.get("buyerProfile")
        else:
            profile = document.get("buyerProfile") or document.get("farmerProfile")

        return UserSummary(
            id=document["id"],
            name=document.get("name"),
            email=document.get("email"),
            role=role if role in {r.value for r in UserRole} else None,
            profile=profile or {},
            push_token=document.get("pushToken") or document.get("fcmToken")
        )

    def get_summary(self, user_id: Optional[str]) -> Optional[UserSummary]:
        if not user_id:
            return None
        document = self.mongodb.find_one(USERS_COLLECTION, user_id)
        return self.to_summary(document) if document else None

    def get_summaries(self, user_ids: Iterable[Optional[str]]) -> Dict[str, UserSummary]:
        """Batch lookup keyed by user ID; unknown users are left out."""
        ids = [user_id for user_id in user_ids if user_id]
        if not ids:
            return {}

        with tracer.start_as_current_span("repository.users.get_summaries"):
            documents = self.mongodb.find_by_ids(USERS_COLLECTION, ids)

        summaries = {}
        for document in documents:
            summary = self.to_summary(document)
            summaries[summary.id] = summary

        logger.debug(f"Resolved {len(summaries)} of {len(set(ids))} user summaries")
        return summaries
