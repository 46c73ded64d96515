# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Response models for API endpoints with HAL support.

These models document the wire format in the OpenAPI specification; the
routes build plain dictionaries through the domain layer.
"""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime


class HalLink(BaseModel):
    """HAL link representation."""

    href: str = Field(..., description="Link URL")
    method: Optional[str] = Field(None, description="HTTP method")
    type: Optional[str] = Field(None, description="Content type")
    title: Optional[str] = Field(None, description="Link title")


class HalResponse(BaseModel):
    """Base HAL response with links."""

    model_config = ConfigDict(populate_by_name=True)

    links: Dict[str, HalLink] = Field(default_factory=dict, alias="_links", description="HAL links")


class PartySummary(BaseModel):
    """Identity summary of a buyer or seller."""

    id: str = Field(..., description="User ID")
    name: Optional[str] = Field(None, description="Display name")
    profile: Dict[str, Any] = Field(default_factory=dict, description="Role profile")


class DemandResponse(HalResponse):
    """Demand resource response."""

    id: str = Field(..., description="Demand ID")
    buyer: str = Field(..., description="Buyer user ID")
    seller: Optional[str] = Field(None, description="Responding farmer user ID")
    commodity: str = Field(..., description="Requested good")
    quantity: float = Field(..., description="Requested quantity")
    unit: str = Field(..., description="Quantity unit")
    location: Dict[str, Any] = Field(default_factory=dict, description="Delivery location")
    desired_by: Optional[datetime] = Field(None, alias="desiredBy", description="Desired delivery date")
    notes: str = Field(default="", description="Notes")
    price_offer: Optional[float] = Field(None, alias="priceOffer", description="Accepted price offer")
    status: str = Field(..., description="Lifecycle status")
    created_at: datetime = Field(..., alias="createdAt", description="Creation timestamp")
    updated_at: datetime = Field(..., alias="updatedAt", description="Last update timestamp")
    buyer_summary: Optional[PartySummary] = Field(None, alias="buyerSummary", description="Buyer identity")
    seller_summary: Optional[PartySummary] = Field(None, alias="sellerSummary", description="Seller identity")
    message: Optional[str] = Field(None, description="Outcome message for mutations")


class DemandCollectionResponse(HalResponse):
    """Paginated demand collection."""

    embedded: Dict[str, List[DemandResponse]] = Field(
        default_factory=dict, alias="_embedded", description="Embedded demands"
    )
    total: int = Field(..., description="Total matching demands")
    page: int = Field(..., description="Current page number")
    limit: int = Field(..., description="Items per page")
    total_pages: int = Field(..., description="Total number of pages")


class ErrorResponse(BaseModel):
    """Error response model following RFC 7807."""

    type: str = Field(..., description="Error type URI")
    title: str = Field(..., description="Error title")
    status: int = Field(..., description="HTTP status code")
    detail: str = Field(..., description="Error detail")
    instance: str = Field(..., description="Request instance")
    errors: Optional[List[Dict[str, Any]]] = Field(None, description="Validation errors")
