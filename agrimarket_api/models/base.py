# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Base entity models with common fields and validation.
"""

from datetime import datetime, timezone
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from bson import ObjectId


def generate_object_id() -> str:
    """Generate a new MongoDB ObjectId as string."""
    return str(ObjectId())


def utc_now() -> datetime:
    """Current UTC time, timezone aware."""
    return datetime.now(timezone.utc)


def is_object_id(value: str) -> bool:
    """Check whether a string is a valid 24-hex ObjectId."""
    return isinstance(value, str) and ObjectId.is_valid(value)


class BaseEntity(BaseModel):
    """Base entity with common fields for all domain objects."""

    model_config = ConfigDict(
        # Documents and API payloads use camelCase keys
        alias_generator=to_camel,
        # Allow population by field name or alias
        populate_by_name=True,
        # Use enum values instead of enum objects
        use_enum_values=True,
        # Validate assignment
        validate_assignment=True
    )

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    created_at: datetime = Field(default_factory=utc_now, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=utc_now, description="Last update timestamp")
    schema_version: int = Field(default=1, description="Schema version for migrations")

    def to_document(self) -> dict:
        """Serialize for storage (camelCase keys, native datetimes)."""
        return self.model_dump(by_alias=True)

    def to_json(self) -> dict:
        """Serialize for API responses (camelCase keys, ISO datetimes)."""
        return self.model_dump(mode="json", by_alias=True)
