# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for the MongoDB service layer and repositories.

Collections are MagicMocks, so these tests check the queries and updates
sent to the driver rather than a live server.
"""

import pytest
from unittest.mock import ANY, MagicMock
from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from agrimarket_api.domain.demands import SELLER_NOTE_PREFIX
from agrimarket_api.domain.visibility import build_list_filter
from agrimarket_api.models.entities import Demand, Notification
from agrimarket_api.models.enums import DemandStatus, NotificationType, UserRole
from agrimarket_api.services.mongodb import MongoDBService
from agrimarket_api.services.repositories import (
    MongoDemandRepository, MongoNotificationRepository, MongoUserDirectory
)


@pytest.fixture
def collection():
    return MagicMock()


@pytest.fixture
def mongodb_service(collection):
    """MongoDB service whose collections are all the same mock."""
    service = MongoDBService("mongodb://localhost:27017/agrimarket_test", "agrimarket_test")
    service.get_collection = MagicMock(return_value=collection)
    return service


def stored(demand: Demand) -> dict:
    """A demand document as the driver returns it."""
    document = demand.to_document()
    document["_id"] = ObjectId(document.pop("id"))
    return document


class TestMongoDBService:
    """Test MongoDB service functionality."""

    def test_create_uses_entity_id(self, mongodb_service, collection):
        doc_id = str(ObjectId())
        collection.insert_one.return_value.inserted_id = ObjectId(doc_id)

        result = mongodb_service.create("demands", {"id": doc_id, "commodity": "maize"})

        assert result == doc_id
        inserted = collection.insert_one.call_args[0][0]
        assert inserted["_id"] == ObjectId(doc_id)
        assert "id" not in inserted
        assert "createdAt" in inserted
        assert "updatedAt" in inserted

    def test_create_duplicate(self, mongodb_service, collection):
        collection.insert_one.side_effect = DuplicateKeyError("dup")

        with pytest.raises(ValueError, match="already exists"):
            mongodb_service.create("users", {"email": "ann@example.com"})

    def test_find_one_normalizes_id(self, mongodb_service, collection):
        object_id = ObjectId()
        collection.find_one.return_value = {"_id": object_id, "name": "Ann"}

        document = mongodb_service.find_one("users", str(object_id))

        assert document == {"id": str(object_id), "name": "Ann"}
        collection.find_one.assert_called_once_with({"_id": object_id})

    def test_find_one_with_invalid_id(self, mongodb_service, collection):
        assert mongodb_service.find_one("users", "not-an-id") is None
        collection.find_one.assert_not_called()

    def test_find_by_ids_skips_invalid(self, mongodb_service, collection):
        valid = ObjectId()
        collection.find.return_value = [{"_id": valid}]

        documents = mongodb_service.find_by_ids("users", [str(valid), "bogus", None])

        assert documents == [{"id": str(valid)}]
        collection.find.assert_called_once_with({"_id": {"$in": [valid]}})

    def test_find_many_sorts_and_pages(self, mongodb_service, collection):
        cursor = collection.find.return_value
        cursor.sort.return_value.skip.return_value.limit.return_value = [{"_id": ObjectId()}]

        documents = mongodb_service.find_many("demands", {"status": "open"}, skip=40, limit=20)

        assert len(documents) == 1
        collection.find.assert_called_once_with({"status": "open"})
        cursor.sort.assert_called_once_with("createdAt", DESCENDING)
        cursor.sort.return_value.skip.assert_called_once_with(40)
        cursor.sort.return_value.skip.return_value.limit.assert_called_once_with(20)

    def test_conditional_update(self, mongodb_service, collection):
        object_id = ObjectId()
        collection.find_one_and_update.return_value = {"_id": object_id, "quantity": 5}

        document = mongodb_service.find_one_and_update(
            "demands", str(object_id), {"$set": {"quantity": 5}}, conditions={"status": "open"}
        )

        assert document == {"id": str(object_id), "quantity": 5}
        query, update = collection.find_one_and_update.call_args[0]
        assert query == {"_id": object_id, "status": "open"}
        assert update == {"$set": {"quantity": 5, "updatedAt": ANY}}
        assert collection.find_one_and_update.call_args[1]["return_document"] == ReturnDocument.AFTER

    def test_conditional_update_with_pipeline(self, mongodb_service, collection):
        collection.find_one_and_update.return_value = None
        pipeline = [{"$set": {"status": {"$literal": "cancelled"}}}]

        assert mongodb_service.find_one_and_update("demands", str(ObjectId()), pipeline) is None

        _, update = collection.find_one_and_update.call_args[0]
        assert update == pipeline + [{"$set": {"updatedAt": ANY}}]
        assert len(pipeline) == 1

    def test_conditional_update_with_invalid_id(self, mongodb_service, collection):
        assert mongodb_service.find_one_and_update("demands", "bad", {"$set": {}}) is None
        collection.find_one_and_update.assert_not_called()

    def test_replace(self, mongodb_service, collection):
        object_id = ObjectId()
        collection.replace_one.return_value.matched_count = 1

        assert mongodb_service.replace("demands", str(object_id), {"id": str(object_id), "quantity": 3}) is True

        query, document = collection.replace_one.call_args[0]
        assert query == {"_id": object_id}
        assert "id" not in document
        assert "updatedAt" in document

    def test_health_check(self, mongodb_service):
        client = MagicMock()
        client.admin.command.return_value = {"ok": 1}
        client.server_info.return_value = {"version": "7.0.2"}
        mongodb_service._client = client

        health = mongodb_service.health_check()

        assert health["status"] == "healthy"
        assert health["version"] == "7.0.2"

    def test_health_check_failure(self, mongodb_service):
        client = MagicMock()
        client.admin.command.side_effect = Exception("no servers")
        mongodb_service._client = client

        health = mongodb_service.health_check()

        assert health["status"] == "unhealthy"
        assert "no servers" in health["error"]

    def test_create_indexes(self, mongodb_service, collection):
        mongodb_service.create_indexes()

        collection.create_index.assert_any_call([("status", 1), ("createdAt", DESCENDING)])
        collection.create_index.assert_any_call("email", unique=True, sparse=True)


class TestMongoDemandRepository:

    @pytest.fixture
    def repository(self, mongodb_service):
        return MongoDemandRepository(mongodb_service)

    @pytest.fixture
    def demand(self):
        return Demand(buyer=str(ObjectId()), commodity="tomato", quantity=2000, notes="Fresh")

    def test_find_many_uses_visibility_query(self, repository, collection, demand):
        cursor = collection.find.return_value
        cursor.sort.return_value.skip.return_value.limit.return_value = [stored(demand)]
        farmer_id = str(ObjectId())

        demands = repository.find_many(build_list_filter(UserRole.FARMER, farmer_id, {}), skip=0, limit=10)

        assert [d.id for d in demands] == [demand.id]
        collection.find.assert_called_once_with({"$or": [{"status": "open"}, {"seller": farmer_id}]})

    def test_update_fields_guards_on_status(self, repository, collection, demand):
        collection.find_one_and_update.return_value = stored(demand.model_copy(update={"quantity": 10}))

        updated = repository.update_fields(demand.id, {"quantity": 10}, DemandStatus.OPEN)

        assert updated.quantity == 10
        query, update = collection.find_one_and_update.call_args[0]
        assert query["status"] == "open"
        assert update["$set"]["quantity"] == 10

    def test_update_fields_without_guard(self, repository, collection, demand):
        collection.find_one_and_update.return_value = None

        assert repository.update_fields(demand.id, {"unit": "crates"}) is None
        query, _ = collection.find_one_and_update.call_args[0]
        assert "status" not in query

    def test_transition_is_one_pipeline_update(self, repository, collection, demand):
        seller = str(ObjectId())
        accepted = demand.model_copy(update={
            "status": "accepted", "seller": seller, "price_offer": 25000.0,
            "notes": "Fresh" + SELLER_NOTE_PREFIX + "3 days"
        })
        collection.find_one_and_update.return_value = stored(accepted)

        result = repository.transition(
            demand.id,
            DemandStatus.OPEN,
            {"status": "accepted", "seller": seller, "priceOffer": 25000},
            seller_note="3 days"
        )

        assert result.status == DemandStatus.ACCEPTED
        assert result.seller == seller
        query, pipeline = collection.find_one_and_update.call_args[0]
        assert query == {"_id": ObjectId(demand.id), "status": "open"}
        assert pipeline[0] == {"$set": {
            "status": {"$literal": "accepted"},
            "seller": {"$literal": seller},
            "priceOffer": {"$literal": 25000},
            "notes": {"$concat": [{"$ifNull": ["$notes", ""]}, SELLER_NOTE_PREFIX, {"$literal": "3 days"}]}
        }}
        assert pipeline[1] == {"$set": {"updatedAt": ANY}}

    def test_transition_precondition_failed(self, repository, collection, demand):
        collection.find_one_and_update.return_value = None

        assert repository.transition(demand.id, DemandStatus.OPEN, {"status": "cancelled"}) is None
        _, pipeline = collection.find_one_and_update.call_args[0]
        assert "notes" not in pipeline[0]["$set"]

    def test_save_replaces_full_document(self, repository, collection, demand):
        collection.replace_one.return_value.matched_count = 1

        assert repository.save(demand) is True

        _, document = collection.replace_one.call_args[0]
        assert document["commodity"] == "tomato"
        assert document["buyer"] == demand.buyer
        assert document["createdAt"] == demand.created_at


class TestMongoNotificationRepository:

    def test_create(self, mongodb_service, collection):
        notification = Notification(user=str(ObjectId()), type=NotificationType.DEMAND_ACCEPTED, title="Demand Accepted")
        collection.insert_one.return_value.inserted_id = ObjectId(notification.id)

        created = MongoNotificationRepository(mongodb_service).create(notification)

        assert created.id == notification.id
        inserted = collection.insert_one.call_args[0][0]
        assert inserted["type"] == "demand_accepted"
        assert inserted["read"] is False


class TestMongoUserDirectory:

    def test_summary_uses_role_profile(self):
        summary = MongoUserDirectory.to_summary({
            "id": "u1",
            "name": "Farmer Joe",
            "role": "farmer",
            "farmerProfile": {"farmName": "Green Acres"},
            "buyerProfile": {"company": "ignored"},
            "fcmToken": "device-1",
            "passwordHash": "secret"
        })

        assert summary.profile == {"farmName": "Green Acres"}
        assert summary.push_token == "device-1"
        assert summary.role == "farmer"

    def test_get_summaries(self, mongodb_service, collection):
        buyer_id = ObjectId()
        collection.find.return_value = [
            {"_id": buyer_id, "name": "Ann", "role": "buyer", "buyerProfile": {"company": "Ann Foods"}}
        ]

        summaries = MongoUserDirectory(mongodb_service).get_summaries([str(buyer_id), None, str(ObjectId())])

        assert list(summaries) == [str(buyer_id)]
        assert summaries[str(buyer_id)].profile == {"company": "Ann Foods"}

    def test_get_summary_for_missing_user(self, mongodb_service, collection):
        collection.find_one.return_value = None
        assert MongoUserDirectory(mongodb_service).get_summary(str(ObjectId())) is None
        assert MongoUserDirectory(mongodb_service).get_summary(None) is None

