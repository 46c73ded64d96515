# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the AgriMarket demand platform.
"""

from datetime import datetime
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from pydantic.alias_generators import to_camel
from .base import BaseEntity
from .enums import (
    DemandStatus,
    UserRole,
    NotificationType,
    SELLER_STATUSES
)


class Demand(BaseEntity):
    """Buyer purchase request awaiting a single seller response."""

    buyer: str = Field(..., description="User ID of the buyer who created the demand")
    seller: Optional[str] = Field(None, description="User ID of the responding farmer")
    commodity: str = Field(..., min_length=1, max_length=200, description="Requested good")
    quantity: float = Field(..., gt=0, description="Requested quantity")
    unit: str = Field(default="kg", description="Quantity unit")
    location: Dict[str, Any] = Field(default_factory=dict, description="Delivery location")
    desired_by: Optional[datetime] = Field(None, description="Desired delivery date")
    notes: str = Field(default="", description="Buyer notes with appended seller notes")
    price_offer: Optional[float] = Field(None, gt=0, description="Price offered by the accepting seller")
    status: DemandStatus = Field(default=DemandStatus.OPEN, description="Lifecycle status")

    @field_validator('commodity')
    @classmethod
    def validate_commodity(cls, v):
        """Validate commodity name."""
        if not v.strip():
            raise ValueError('Commodity cannot be empty')
        return v.strip()

    @model_validator(mode='after')
    def validate_seller_matches_status(self):
        """A seller is recorded exactly when the demand was responded to."""
        has_seller = self.seller is not None
        if self.status in SELLER_STATUSES and not has_seller:
            raise ValueError(f'seller is required when status is {self.status}')
        if self.status not in SELLER_STATUSES and has_seller:
            raise ValueError(f'seller must be empty when status is {self.status}')
        return self

    def is_open(self) -> bool:
        """Check if demand still accepts changes and responses."""
        return self.status == DemandStatus.OPEN

    def is_owned_by(self, user_id: Optional[str]) -> bool:
        """Check if the given user created this demand."""
        return user_id is not None and self.buyer == user_id


class Notification(BaseEntity):
    """In-app notification record directed at a user."""

    user: Optional[str] = Field(None, description="Recipient user ID (empty for transport-only records)")
    type: NotificationType = Field(..., description="Notification type tag")
    title: str = Field(..., min_length=1, max_length=200, description="Notification title")
    message: str = Field(default="", max_length=2000, description="Notification message")
    data: Dict[str, Any] = Field(default_factory=dict, description="Structured payload")
    read: bool = Field(default=False, description="Whether the recipient has read it")


class UserSummary(BaseModel):
    """Read-only view of a marketplace user, as stored in the users collection."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True
    )

    id: str = Field(..., description="User ID")
    name: Optional[str] = Field(None, description="Display name")
    email: Optional[str] = Field(None, description="Contact email")
    role: Optional[UserRole] = Field(None, description="Marketplace role")
    profile: Dict[str, Any] = Field(default_factory=dict, description="Role-specific profile")
    push_token: Optional[str] = Field(None, description="Device token for push delivery")

    def to_public(self) -> Dict[str, Any]:
        """Identity summary safe to attach to demand responses."""
        return {"id": self.id, "name": self.name, "profile": self.profile}


class UserContext(BaseModel):
    """Caller identity and role for request processing."""

    user_id: Optional[str] = Field(None, description="Authenticated user ID")
    role: UserRole = Field(default=UserRole.ANONYMOUS, description="Caller role")
    name: Optional[str] = Field(None, description="User display name")
    email: Optional[str] = Field(None, description="User email")
    token_payload: Optional[Dict[str, Any]] = Field(None, description="Original JWT payload")
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="Client user agent")

    model_config = ConfigDict(
        use_enum_values=True
    )

    @model_validator(mode='after')
    def validate_identity(self):
        """Authenticated roles carry a user ID, anonymous callers do not."""
        if self.role != UserRole.ANONYMOUS and not self.user_id:
            raise ValueError(f'user_id is required for role {self.role}')
        return self

    @classmethod
    def anonymous(cls, ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> "UserContext":
        """Build the context used for unauthenticated requests."""
        return cls(role=UserRole.ANONYMOUS, ip_address=ip_address, user_agent=user_agent)

    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def has_role(self, *roles: UserRole) -> bool:
        """Check if caller holds any of the given roles."""
        return self.role in [UserRole(role) for role in roles]
