# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the AgriMarket demand platform.
"""

# Base models
from .base import BaseEntity, generate_object_id, is_object_id

# Enumerations
from .enums import (
    DemandStatus,
    DemandAction,
    UserRole,
    NotificationType
)

# Core entities
from .entities import (
    Demand,
    Notification,
    UserSummary,
    UserContext
)

# Request models
from .requests import (
    CreateDemandRequest,
    UpdateDemandRequest,
    RespondDemandRequest,
    DemandPath,
    DemandQuery
)

# Response models
from .responses import (
    HalLink,
    DemandResponse,
    DemandCollectionResponse,
    ErrorResponse
)

__all__ = [
    "BaseEntity",
    "generate_object_id",
    "is_object_id",

    "DemandStatus",
    "DemandAction",
    "UserRole",
    "NotificationType",

    "Demand",
    "Notification",
    "UserSummary",
    "UserContext",

    "CreateDemandRequest",
    "UpdateDemandRequest",
    "RespondDemandRequest",
    "DemandPath",
    "DemandQuery",

    "HalLink",
    "DemandResponse",
    "DemandCollectionResponse",
    "ErrorResponse"
]
