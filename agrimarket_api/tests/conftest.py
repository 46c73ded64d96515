# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.

In-memory repositories implement the same contracts as the MongoDB ones;
their conditional updates hold a lock so they behave atomically under
concurrent callers.
"""

import copy
import itertools
import os
import threading
import time
from typing import Any, Dict, List, Optional

import pytest
from bson import ObjectId

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['OTEL_ENABLED'] = 'false'

from agrimarket_api.app import create_app
from agrimarket_api.domain.demands import append_seller_note
from agrimarket_api.domain.visibility import filter_documents
from agrimarket_api.models.base import utc_now
from agrimarket_api.models.entities import Demand, Notification, UserContext, UserSummary
from agrimarket_api.models.enums import DemandStatus, UserRole
from agrimarket_api.services.demand_service import DemandService
from agrimarket_api.services.notifications import NotificationDispatcher
from agrimarket_api.services.transport import PublishResult, TransportHandle


class InMemoryDemandRepository:
    """Demand repository backed by a dict of stored documents."""

    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}
        self._order: Dict[str, int] = {}
        self._sequence = itertools.count()
        self._lock = threading.Lock()
        self.fail_with: Optional[Exception] = None

    def _check(self):
        if self.fail_with is not None:
            raise self.fail_with

    def _load(self, document):
        return Demand.model_validate(copy.deepcopy(document))

    def create(self, demand: Demand) -> Demand:
        self._check()
        with self._lock:
            document = demand.to_document()
            self.documents[demand.id] = document
            self._order[demand.id] = next(self._sequence)
            return self._load(document)

    def find_by_id(self, demand_id: str) -> Optional[Demand]:
        self._check()
        document = self.documents.get(demand_id)
        return self._load(document) if document else None

    def _matching(self, expression) -> List[Dict[str, Any]]:
        documents = filter_documents(self.documents.values(), expression)
        return sorted(
            documents,
            key=lambda document: (document["createdAt"], self._order[document["id"]]),
            reverse=True
        )

    def find_many(self, expression, skip: int = 0, limit: int = 20) -> List[Demand]:
        self._check()
        return [self._load(document) for document in self._matching(expression)[skip:skip + limit]]

    def count(self, expression) -> int:
        self._check()
        return len(self._matching(expression))

    def save(self, demand: Demand) -> bool:
        self._check()
        with self._lock:
            if demand.id not in self.documents:
                return False
            document = demand.to_document()
            document["updatedAt"] = utc_now()
            self.documents[demand.id] = document
            return True

    def update_fields(self, demand_id, changes, expected_status=None) -> Optional[Demand]:
        self._check()
        with self._lock:
            document = self.documents.get(demand_id)
            if document is None:
                return None
            if expected_status is not None and document["status"] != DemandStatus(expected_status).value:
                return None
            document.update(copy.deepcopy(changes))
            document["updatedAt"] = utc_now()
            return self._load(document)

    def transition(self, demand_id, expected_status, changes, seller_note=None) -> Optional[Demand]:
        self._check()
        with self._lock:
            document = self.documents.get(demand_id)
            if document is None or document["status"] != DemandStatus(expected_status).value:
                return None
            # Widen the window between check and write for race tests
            time.sleep(0.001)
            document.update(copy.deepcopy(changes))
            if seller_note:
                document["notes"] = append_seller_note(document.get("notes"), seller_note)
            document["updatedAt"] = utc_now()
            return self._load(document)

    def put(self, demand: Demand) -> Demand:
        """Store a demand as-is, bypassing lifecycle rules."""
        with self._lock:
            self.documents[demand.id] = demand.to_document()
            self._order[demand.id] = next(self._sequence)
        return demand


class InMemoryNotificationRepository:
    """Notification repository collecting created records."""

    def __init__(self):
        self.records: List[Notification] = []
        self._lock = threading.Lock()
        self.fail_with: Optional[Exception] = None

    def create(self, notification: Notification) -> Notification:
        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            self.records.append(notification)
        return notification

    def for_user(self, user_id: str) -> List[Notification]:
        return [record for record in self.records if record.user == user_id]


class InMemoryUserDirectory:
    """User directory over a dict of summaries."""

    def __init__(self, users: Optional[List[UserSummary]] = None):
        self.users = {user.id: user for user in (users or [])}

    def add(self, user: UserSummary) -> UserSummary:
        self.users[user.id] = user
        return user

    def get_summary(self, user_id):
        return self.users.get(user_id) if user_id else None

    def get_summaries(self, user_ids):
        return {user_id: self.users[user_id] for user_id in user_ids if user_id in self.users}


class RecordingTransport:
    """Transport that records sends; can be told to fail or stall."""

    def __init__(self):
        self.emails: List[Dict[str, Any]] = []
        self.pushes: List[Dict[str, Any]] = []
        self.fail_with: Optional[Exception] = None
        self.delay: float = 0.0

    def _maybe_fail(self):
        if self.delay:
            time.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with

    def send_email(self, to, subject, text, data=None):
        self._maybe_fail()
        self.emails.append({"to": to, "subject": subject, "text": text, "data": data})
        return PublishResult(success=True, correlation_id=str(ObjectId()), channel="email")

    def send_push(self, token, title, body, data=None):
        self._maybe_fail()
        self.pushes.append({"token": token, "title": title, "body": body, "data": data})
        return PublishResult(success=True, correlation_id=str(ObjectId()), channel="push")

    def health_check(self):
        return True


def new_id() -> str:
    return str(ObjectId())


@pytest.fixture
def buyer():
    return UserSummary(
        id=new_id(), name="Buyer Ann", email="ann@example.com", role=UserRole.BUYER,
        profile={"company": "Ann Foods"}, push_token="device-token-ann"
    )


@pytest.fixture
def other_buyer():
    return UserSummary(id=new_id(), name="Buyer Ben", email="ben@example.com", role=UserRole.BUYER)


@pytest.fixture
def farmer():
    return UserSummary(
        id=new_id(), name="Farmer Joe", email="joe@example.com", role=UserRole.FARMER,
        profile={"farmName": "Green Acres"}
    )


@pytest.fixture
def other_farmer():
    return UserSummary(id=new_id(), name="Farmer Cat", email="cat@example.com", role=UserRole.FARMER)


@pytest.fixture
def admin():
    return UserSummary(id=new_id(), name="Admin", email="admin@example.com", role=UserRole.ADMIN)


def context_for(user: UserSummary) -> UserContext:
    return UserContext(user_id=user.id, role=user.role, name=user.name, email=user.email)


@pytest.fixture
def buyer_ctx(buyer):
    return context_for(buyer)


@pytest.fixture
def other_buyer_ctx(other_buyer):
    return context_for(other_buyer)


@pytest.fixture
def farmer_ctx(farmer):
    return context_for(farmer)


@pytest.fixture
def other_farmer_ctx(other_farmer):
    return context_for(other_farmer)


@pytest.fixture
def admin_ctx(admin):
    return context_for(admin)


@pytest.fixture
def anonymous_ctx():
    return UserContext.anonymous()


@pytest.fixture
def demand_repository():
    return InMemoryDemandRepository()


@pytest.fixture
def notification_repository():
    return InMemoryNotificationRepository()


@pytest.fixture
def user_directory(buyer, other_buyer, farmer, other_farmer, admin):
    return InMemoryUserDirectory([buyer, other_buyer, farmer, other_farmer, admin])


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def dispatcher(notification_repository, transport):
    dispatcher = NotificationDispatcher(
        notification_repository,
        TransportHandle(lambda: transport),
        timeout=1.0
    )
    yield dispatcher
    dispatcher.shutdown()


@pytest.fixture
def demand_service(demand_repository, user_directory, dispatcher):
    return DemandService(demand_repository, user_directory, dispatcher)


@pytest.fixture
def sample_demand_data():
    """Sample create payload."""
    return {
        "commodity": "tomatoes",
        "quantity": 100,
        "unit": "kg",
        "location": {"city": "Nairobi"},
        "notes": "Need ripe ones"
    }


@pytest.fixture
def app(demand_repository, notification_repository, user_directory, transport):
    """Flask app wired to in-memory collaborators."""
    app = create_app(
        {
            "TESTING": True,
            "ENVIRONMENT": "test",
            "JWT_SECRET": "test-secret",
            "BASE_URL": "http://testserver",
            "OTEL_ENABLED": False,
            "DOCS_ENABLED": False,
            "EXTERNAL_DISPATCH_TIMEOUT": 1.0
        },
        demand_repository=demand_repository,
        notification_repository=notification_repository,
        user_directory=user_directory,
        transport=transport
    )
    yield app
    app.dispatcher.shutdown()


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def auth_headers(app):
    """Build Authorization headers for a user summary."""
    def _headers(user: UserSummary, name: Optional[str] = "__default__") -> Dict[str, str]:
        token = app.auth_service.create_access_token(
            user.id,
            user.role,
            name=user.name if name == "__default__" else name,
            email=user.email
        )
        return {"Authorization": f"Bearer {token}"}
    return _headers
