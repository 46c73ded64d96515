# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request models for API endpoints.
"""

from datetime import datetime
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, ConfigDict, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel
from .base import is_object_id
from .enums import DemandStatus, DemandAction


class RequestModel(BaseModel):
    """Base for request bodies; accepts camelCase or snake_case keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        # Unknown fields are dropped rather than rejected
        extra='ignore'
    )


class CreateDemandRequest(RequestModel):
    """Request model for posting a demand."""

    commodity: str = Field(..., min_length=1, max_length=200, description="Requested good")
    quantity: float = Field(..., gt=0, description="Requested quantity")
    unit: Optional[str] = Field(None, min_length=1, max_length=20, description="Quantity unit (default kg)")
    location: Optional[Dict[str, Any]] = Field(None, description="Delivery location")
    desired_by: Optional[datetime] = Field(None, description="Desired delivery date (ISO 8601)")
    notes: Optional[str] = Field(None, max_length=2000, description="Buyer notes")

    @field_validator('commodity')
    @classmethod
    def validate_commodity(cls, v):
        """Validate commodity name."""
        if not v.strip():
            raise ValueError('commodity is required')
        return v.strip()


class UpdateDemandRequest(RequestModel):
    """Patch for an existing demand; only fields present in the payload apply."""

    commodity: Optional[str] = Field(None, min_length=1, max_length=200, description="Requested good")
    quantity: Optional[float] = Field(None, gt=0, description="Requested quantity")
    unit: Optional[str] = Field(None, min_length=1, max_length=20, description="Quantity unit")
    location: Optional[Dict[str, Any]] = Field(None, description="Delivery location")
    desired_by: Optional[datetime] = Field(None, description="Desired delivery date, null clears it")
    notes: Optional[str] = Field(None, max_length=2000, description="Buyer notes")

    @field_validator('commodity')
    @classmethod
    def validate_commodity(cls, v):
        """Validate commodity name."""
        if v is not None and not v.strip():
            raise ValueError('commodity cannot be empty')
        return v.strip() if v is not None else v

    def present_fields(self) -> Dict[str, Any]:
        """Fields explicitly sent by the caller, keyed by field name."""
        return self.model_dump(exclude_unset=True)


class RespondDemandRequest(RequestModel):
    """Farmer response to an open demand."""

    action: DemandAction = Field(..., description="accept or reject")
    price_offer: Optional[float] = Field(None, description="Offered price, accept only and greater than 0")
    notes: Optional[str] = Field(None, max_length=2000, description="Seller note appended to the demand")

    @field_validator('price_offer')
    @classmethod
    def validate_price_offer(cls, v, info: ValidationInfo):
        """A price offer only counts on accept; a reject drops whatever was sent."""
        if info.data.get('action') != DemandAction.ACCEPT:
            return None
        if v is not None and v <= 0:
            raise ValueError('priceOffer must be greater than 0')
        return v


class DemandPath(BaseModel):
    """Path parameters for single-demand endpoints."""

    demand_id: str = Field(..., description="Demand ObjectId")

    @field_validator('demand_id')
    @classmethod
    def validate_demand_id(cls, v):
        """Reject malformed identifiers before they reach the datastore."""
        if not is_object_id(v):
            raise ValueError('Invalid demand id')
        return v


class DemandQuery(BaseModel):
    """
    Query parameters for listing demands.

    Ranges and status values are checked by the lifecycle engine, which
    knows the configured page size limits.
    """

    page: int = Field(default=1, description="Page number, starting at 1")
    limit: Optional[int] = Field(None, description="Items per page (default 20, max 200)")
    status: Optional[str] = Field(
        None,
        description="Filter by status: " + ", ".join(status.value for status in DemandStatus)
    )
    commodity: Optional[str] = Field(None, description="Filter by commodity")

    def filters(self) -> Dict[str, Any]:
        """Caller-supplied filter fields that were given."""
        return {
            key: value for key, value in {
                "status": self.status,
                "commodity": self.commodity
            }.items() if value
        }
