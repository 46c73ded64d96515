# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for Pydantic models.
"""

import pytest
from datetime import datetime, timezone
from bson import ObjectId
from pydantic import ValidationError

from agrimarket_api.models.entities import Demand, Notification, UserContext, UserSummary
from agrimarket_api.models.enums import DemandStatus, NotificationType, UserRole
from agrimarket_api.models.requests import (
    CreateDemandRequest, DemandPath, DemandQuery, RespondDemandRequest, UpdateDemandRequest
)


class TestDemand:
    """Test Demand model."""

    def test_defaults(self):
        demand = Demand(buyer=str(ObjectId()), commodity="maize", quantity=5)

        assert ObjectId.is_valid(demand.id)
        assert demand.status == DemandStatus.OPEN
        assert demand.unit == "kg"
        assert demand.notes == ""
        assert demand.location == {}
        assert demand.seller is None
        assert demand.is_open()

    def test_seller_required_once_responded(self):
        with pytest.raises(ValidationError, match="seller is required"):
            Demand(buyer="b", commodity="maize", quantity=5, status="accepted")

    @pytest.mark.parametrize("status", ["open", "cancelled"])
    def test_seller_forbidden_otherwise(self, status):
        with pytest.raises(ValidationError, match="seller must be empty"):
            Demand(buyer="b", commodity="maize", quantity=5, status=status, seller="f")

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError):
            Demand(buyer="b", commodity="maize", quantity=0)

    def test_document_round_trip_uses_camel_case(self):
        desired_by = datetime(2026, 11, 1, tzinfo=timezone.utc)
        demand = Demand(
            buyer="b", seller="f", commodity="tomato", quantity=2000,
            status="accepted", price_offer=25000, desired_by=desired_by
        )

        document = demand.to_document()

        assert document["priceOffer"] == 25000
        assert document["desiredBy"] == desired_by
        assert document["status"] == "accepted"
        assert Demand.model_validate(document) == demand

    def test_json_dates_are_iso_strings(self):
        payload = Demand(buyer="b", commodity="maize", quantity=5).to_json()
        assert isinstance(payload["createdAt"], str)

    def test_ownership(self):
        demand = Demand(buyer="b", commodity="maize", quantity=5)
        assert demand.is_owned_by("b")
        assert not demand.is_owned_by("c")
        assert not demand.is_owned_by(None)


class TestNotification:

    def test_transport_only_record(self):
        notification = Notification(type=NotificationType.PUSH, title="Demand Accepted", data={"pushToken": "t"})

        assert notification.user is None
        assert notification.read is False
        assert notification.to_document()["type"] == "push"

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            Notification(user="u", type="sms", title="Hi")


class TestUserContext:

    def test_anonymous(self):
        context = UserContext.anonymous(ip_address="10.0.0.1")

        assert context.role == UserRole.ANONYMOUS
        assert context.user_id is None
        assert context.ip_address == "10.0.0.1"

    def test_authenticated_roles_need_user_id(self):
        with pytest.raises(ValidationError):
            UserContext(role=UserRole.BUYER)

    def test_role_checks(self):
        context = UserContext(user_id="u", role="admin")

        assert context.is_admin()
        assert context.has_role(UserRole.BUYER, UserRole.ADMIN)
        assert not context.has_role("farmer")


class TestUserSummary:

    def test_public_view_hides_contact_details(self):
        summary = UserSummary(id="u", name="Ann", email="ann@example.com", push_token="t", profile={"company": "A"})
        assert summary.to_public() == {"id": "u", "name": "Ann", "profile": {"company": "A"}}


class TestRequests:

    def test_create_accepts_camel_case(self):
        request = CreateDemandRequest.model_validate(
            {"commodity": " beans ", "quantity": "12.5", "desiredBy": "2026-11-01T00:00:00Z", "status": "accepted"}
        )

        assert request.commodity == "beans"
        assert request.quantity == 12.5
        assert request.desired_by.tzinfo is not None
        assert not hasattr(request, "status")

    def test_update_tracks_present_fields(self):
        request = UpdateDemandRequest.model_validate({"notes": None, "quantity": 3})
        assert request.present_fields() == {"notes": None, "quantity": 3}

    def test_respond_action(self):
        assert RespondDemandRequest.model_validate({"action": "accept", "priceOffer": 10}).price_offer == 10
        with pytest.raises(ValidationError):
            RespondDemandRequest.model_validate({"action": "counter"})

    def test_path_rejects_malformed_id(self):
        assert DemandPath(demand_id="a" * 24).demand_id == "a" * 24
        with pytest.raises(ValidationError):
            DemandPath(demand_id="not-an-id")

    def test_query_filters(self):
        query = DemandQuery(status="open", commodity="")
        assert query.filters() == {"status": "open"}
        assert query.page == 1
        assert query.limit is None
