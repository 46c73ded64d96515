# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - External integrations and side effects.
"""

from .mongodb import MongoDBService
from .repositories import MongoDemandRepository, MongoNotificationRepository, MongoUserDirectory
from .transport import AMQPTransport, AMQPConfig, LoggingTransport, PublishResult, TransportHandle
from .notifications import NotificationDispatcher
from .demand_service import DemandService, DemandView, DemandPage, RespondResult

__all__ = [
    "MongoDBService",
    "MongoDemandRepository",
    "MongoNotificationRepository",
    "MongoUserDirectory",
    "AMQPTransport",
    "AMQPConfig",
    "LoggingTransport",
    "PublishResult",
    "TransportHandle",
    "NotificationDispatcher",
    "DemandService",
    "DemandView",
    "DemandPage",
    "RespondResult"
]
