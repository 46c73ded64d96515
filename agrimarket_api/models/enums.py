# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the AgriMarket demand platform.
"""

from enum import Enum


class DemandStatus(str, Enum):
    """Demand lifecycle status enumeration."""
    OPEN = "open"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class DemandAction(str, Enum):
    """Seller response actions on an open demand."""
    ACCEPT = "accept"
    REJECT = "reject"


class UserRole(str, Enum):
    """Caller roles recognised by the demand workflow."""
    BUYER = "buyer"
    FARMER = "farmer"
    ADMIN = "admin"
    ANONYMOUS = "anonymous"


class NotificationType(str, Enum):
    """Notification record types."""
    DEMAND_ACCEPTED = "demand_accepted"
    DEMAND_REJECTED = "demand_rejected"
    EMAIL = "email"
    PUSH = "push"


# Statuses that require a recorded seller
SELLER_STATUSES = frozenset({DemandStatus.ACCEPTED, DemandStatus.REJECTED})
