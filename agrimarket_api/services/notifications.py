# SPDX-License-Identifier: Apache-2.0

"""
Notification dispatcher for in-app records and external email/push delivery.
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from typing import Any, Dict, List, Optional, Tuple

from opentelemetry import trace

from ..models.entities import Notification
from ..models.enums import NotificationType
from .transport import TransportHandle

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_DISPATCH_TIMEOUT = 5.0

# (target, subject, text, data)
ExternalMessage = Tuple[Optional[str], str, str, Optional[Dict[str, Any]]]


class NotificationDispatcher:
    """
    Delivers notifications to users.

    In-app notifications are persisted and their failures propagate to the
    caller. External delivery is best effort: it runs on a worker thread, is
    bounded by ``timeout`` and reports failure as ``False``.
    """

    def __init__(
        self,
        notifications,
        transport_handle: TransportHandle,
        timeout: float = DEFAULT_DISPATCH_TIMEOUT,
        executor: Optional[ThreadPoolExecutor] = None
    ):
        self.notifications = notifications
        self.transport_handle = transport_handle
        self.timeout = timeout
        self._executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="notify")

    def notify_in_app(
        self,
        user_id: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None
    ) -> Notification:
        """Persist an in-app notification for a user."""
        with tracer.start_as_current_span("notifications.in_app") as span:
            span.set_attributes({
                "notification.type": NotificationType(notification_type).value,
                "user.id": user_id
            })

            notification = self.notifications.create(Notification(
                user=user_id,
                type=notification_type,
                title=title,
                message=message,
                data=data or {}
            ))

            logger.info(
                "In-app notification created",
                extra={"notification_id": notification.id, "user_id": user_id}
            )
            return notification

    def notify_external(
        self,
        target: Optional[str],
        subject: str,
        text: str,
        data: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Send an email (target contains "@") or a push message (device token).

        Returns:
            True when the transport accepted the message
        """
        return self.notify_external_all([(target, subject, text, data)])[0]

    def notify_external_all(self, messages: List[ExternalMessage]) -> List[bool]:
        """
        Send several external messages at once under a single ``timeout``.

        Every message is handed to a worker before any is awaited, so the
        batch as a whole takes at most ``timeout`` seconds.

        Args:
            messages: (target, subject, text, data) tuples

        Returns:
            One delivery flag per message, in order
        """
        with tracer.start_as_current_span("notifications.external") as span:
            pending = []
            for target, subject, text, data in messages:
                if not target:
                    pending.append((None, None))
                    continue
                channel = "email" if "@" in target else "push"
                pending.append((channel, self._executor.submit(self._send, channel, target, subject, text, data)))

            span.set_attribute("notification.channels", [channel for channel, _ in pending if channel])
            deadline = time.monotonic() + self.timeout
            return [
                self._collect(channel, future, deadline) if future is not None else False
                for channel, future in pending
            ]

    def _collect(self, channel: str, future: Future, deadline: float) -> bool:
        try:
            result = future.result(timeout=max(deadline - time.monotonic(), 0))
        except FuturesTimeoutError:
            future.cancel()
            logger.warning(
                "External notification timed out",
                extra={"channel": channel, "timeout": self.timeout}
            )
            return False
        except Exception as e:
            logger.warning(
                f"External notification failed: {e}",
                extra={"channel": channel},
                exc_info=True
            )
            return False

        delivered = bool(result is not None and result.success)
        if not delivered:
            logger.warning(
                "External notification not delivered",
                extra={"channel": channel, "error": getattr(result, "error", None)}
            )
        return delivered

    def _send(self, channel: str, target: str, subject: str, text: str,
              data: Optional[Dict[str, Any]]):
        transport = self.transport_handle.initialize()
        if transport is None:
            return None

        if channel == "email":
            return transport.send_email(target, subject, text, data)
        return transport.send_push(target, subject, text, data)

    def health_check(self) -> Dict[str, Any]:
        """Report transport state without forcing initialization."""
        if not self.transport_handle.initialized:
            return {"status": "idle"}
        transport = self.transport_handle.initialize()
        healthy = transport.health_check()
        return {
            "status": "healthy" if healthy else "unhealthy",
            "transport": type(transport).__name__
        }

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)
