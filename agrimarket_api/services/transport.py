# SPDX-License-Identifier: Apache-2.0

"""
External notification transports (email and push).

Messages for the email and push workers are published to an AMQP exchange.
Each publish uses a fresh connection, which keeps the transport safe for
short-lived serverless workers. When no broker is configured a logging
transport stands in and records what would have been sent.
"""

import json
import logging
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generator, Optional
from urllib.parse import urlparse

import pika
from opentelemetry import trace
from opentelemetry.propagate import inject
from opentelemetry.trace import Status, StatusCode

from ..models.entities import Notification
from ..models.enums import NotificationType

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

EMAIL_ROUTING_KEY = "notifications.email"
PUSH_ROUTING_KEY = "notifications.push"


@dataclass
class AMQPConfig:
    """AMQP configuration settings."""
    url: str
    exchange: str = "agrimarket.notifications"
    connection_timeout: float = 5.0
    heartbeat: int = 60
    blocked_connection_timeout: int = 30
    retry_delay: float = 0.5
    max_retries: int = 2


@dataclass
class PublishResult:
    """Result of a transport send."""
    success: bool
    correlation_id: str
    channel: str
    error: Optional[str] = None
    retry_count: int = 0


class TransportError(Exception):
    """Raised when a transport cannot be set up."""
    pass


def stringify_data(data: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Push payload values must all be strings."""
    return {key: str(value) for key, value in (data or {}).items()}


class AMQPTransport:
    """Publishes email and push messages to the notification exchange."""

    def __init__(self, config: AMQPConfig):
        self.config = config
        self._connection_params = self._parse_connection_url(config.url)

    def _parse_connection_url(self, url: str) -> pika.ConnectionParameters:
        """Parse AMQP URL and create connection parameters."""
        parsed = urlparse(url)

        return pika.ConnectionParameters(
            host=parsed.hostname or 'localhost',
            port=parsed.port or 5672,
            virtual_host=parsed.path.lstrip('/') or '/',
            credentials=pika.PlainCredentials(
                username=parsed.username or 'guest',
                password=parsed.password or 'guest'
            ),
            connection_attempts=1,
            socket_timeout=self.config.connection_timeout,
            heartbeat=self.config.heartbeat,
            blocked_connection_timeout=self.config.blocked_connection_timeout
        )

    @contextmanager
    def _get_connection(self) -> Generator[Any, None, None]:
        """Open a connection and channel, closing both afterwards."""
        connection = None
        channel = None

        try:
            connection = pika.BlockingConnection(self._connection_params)
            channel = connection.channel()
            yield channel

        except pika.exceptions.AMQPConnectionError as e:
            logger.error(
                "AMQP connection failed",
                extra={"host": self._connection_params.host, "error": str(e)}
            )
            raise TransportError(f"Failed to connect to AMQP broker: {e}")

        finally:
            if channel is not None and not channel.is_closed:
                try:
                    channel.close()
                except Exception as e:
                    logger.warning(f"Error closing AMQP channel: {e}")

            if connection is not None and not connection.is_closed:
                try:
                    connection.close()
                except Exception as e:
                    logger.warning(f"Error closing AMQP connection: {e}")

    def setup_exchange(self) -> None:
        """Declare the durable topic exchange the workers bind to."""
        with tracer.start_as_current_span("amqp.setup.exchange"):
            with self._get_connection() as channel:
                channel.exchange_declare(
                    exchange=self.config.exchange,
                    exchange_type='topic',
                    durable=True
                )

        logger.info("AMQP notification exchange ready", extra={"exchange": self.config.exchange})

    def send_email(self, to: str, subject: str, text: str,
                   data: Optional[Dict[str, Any]] = None) -> PublishResult:
        message = {
            "channel": "email",
            "to": to,
            "subject": subject,
            "text": text,
            "data": data or {}
        }
        return self._publish(EMAIL_ROUTING_KEY, message)

    def send_push(self, token: str, title: str, body: str,
                  data: Optional[Dict[str, Any]] = None) -> PublishResult:
        message = {
            "channel": "push",
            "token": token,
            "title": title,
            "body": body,
            "data": stringify_data(data)
        }
        return self._publish(PUSH_ROUTING_KEY, message)

    def _publish(self, routing_key: str, message: Dict[str, Any]) -> PublishResult:
        correlation_id = str(uuid.uuid4())
        message["timestamp"] = datetime.now(timezone.utc).isoformat()
        message["correlationId"] = correlation_id

        headers: Dict[str, str] = {}
        inject(headers)

        with tracer.start_as_current_span("amqp.publish") as span:
            span.set_attributes({
                "amqp.exchange": self.config.exchange,
                "amqp.routing_key": routing_key,
                "amqp.correlation_id": correlation_id
            })

            result = self._publish_with_retry(routing_key, message, headers, correlation_id)

            if result.success:
                span.set_status(Status(StatusCode.OK))
            else:
                span.set_status(Status(StatusCode.ERROR, result.error or "publish failed"))
            return result

    def _publish_with_retry(
        self,
        routing_key: str,
        message: Dict[str, Any],
        headers: Dict[str, str],
        correlation_id: str
    ) -> PublishResult:
        """Publish message with bounded exponential backoff."""
        body = json.dumps(message, default=str, ensure_ascii=False, separators=(',', ':'))
        channel_name = message["channel"]
        last_error = None

        for attempt in range(self.config.max_retries + 1):
            try:
                with self._get_connection() as channel:
                    properties = pika.BasicProperties(
                        correlation_id=correlation_id,
                        timestamp=int(time.time()),
                        delivery_mode=2,  # Persistent message
                        content_type='application/json',
                        headers=headers
                    )

                    channel.basic_publish(
                        exchange=self.config.exchange,
                        routing_key=routing_key,
                        body=body,
                        properties=properties
                    )

                logger.info(
                    "Notification message published",
                    extra={
                        "routing_key": routing_key,
                        "correlation_id": correlation_id,
                        "attempt": attempt + 1
                    }
                )
                return PublishResult(
                    success=True,
                    correlation_id=correlation_id,
                    channel=channel_name,
                    retry_count=attempt
                )

            except Exception as e:
                last_error = e

                if attempt < self.config.max_retries:
                    delay = self.config.retry_delay * (2 ** attempt)
                    logger.warning(
                        "Notification publish failed, retrying",
                        extra={
                            "routing_key": routing_key,
                            "correlation_id": correlation_id,
                            "attempt": attempt + 1,
                            "retry_delay": delay,
                            "error": str(e)
                        }
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        "Notification publish failed after all retries",
                        extra={
                            "routing_key": routing_key,
                            "correlation_id": correlation_id,
                            "total_attempts": attempt + 1,
                            "error": str(e)
                        }
                    )

        return PublishResult(
            success=False,
            correlation_id=correlation_id,
            channel=channel_name,
            error=str(last_error),
            retry_count=self.config.max_retries
        )

    def health_check(self) -> bool:
        """Check broker reachability by declaring the exchange passively."""
        try:
            with self._get_connection() as channel:
                channel.exchange_declare(exchange=self.config.exchange, passive=True)
            return True
        except Exception as e:
            logger.warning("AMQP health check failed", extra={"error": str(e)})
            return False


class LoggingTransport:
    """
    Stand-in transport used when no broker is configured.

    Sends are logged, and each one is kept as a transport-only notification
    record (no recipient user) when a notification repository is available.
    """

    def __init__(self, notifications=None):
        self.notifications = notifications

    def send_email(self, to: str, subject: str, text: str,
                   data: Optional[Dict[str, Any]] = None) -> PublishResult:
        logger.info("Email (not sent, no transport configured)", extra={"to": to, "subject": subject})
        self._record(NotificationType.EMAIL, subject, text, {"emailTo": to})
        return PublishResult(success=True, correlation_id=str(uuid.uuid4()), channel="email")

    def send_push(self, token: str, title: str, body: str,
                  data: Optional[Dict[str, Any]] = None) -> PublishResult:
        logger.info("Push (not sent, no transport configured)", extra={"title": title})
        self._record(NotificationType.PUSH, title, body, {"pushToken": token})
        return PublishResult(success=True, correlation_id=str(uuid.uuid4()), channel="push")

    def _record(self, notification_type: NotificationType, title: str, message: str,
                data: Dict[str, Any]) -> None:
        if self.notifications is None:
            return
        try:
            self.notifications.create(Notification(
                user=None,
                type=notification_type,
                title=title,
                message=message or "",
                data=data
            ))
        except Exception as e:
            logger.warning(f"Failed to record {notification_type.value} notification: {e}")

    def health_check(self) -> bool:
        return True


class TransportHandle:
    """
    Process-wide holder that initializes the external transport once.

    The first successful initialization wins and later calls reuse it. A
    failed attempt leaves the handle empty so the next call tries again.
    """

    def __init__(self, factory: Callable[[], Any]):
        self._factory = factory
        self._transport = None
        self._lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        return self._transport is not None

    def initialize(self):
        """
        Return the transport, creating it on first use.

        Returns:
            The transport, or None if initialization failed
        """
        if self._transport is not None:
            return self._transport

        with self._lock:
            if self._transport is None:
                try:
                    self._transport = self._factory()
                    logger.info(
                        "External transport initialized",
                        extra={"transport": type(self._transport).__name__}
                    )
                except Exception as e:
                    logger.warning(f"External transport initialization failed: {e}")
                    return None

        return self._transport


def create_transport_factory(config: Dict[str, Any], notifications=None) -> Callable[[], Any]:
    """
    Build the factory for a TransportHandle from application config.

    An empty AMQP_URL selects the logging transport.
    """
    amqp_url = config.get('AMQP_URL')

    if not amqp_url:
        return lambda: LoggingTransport(notifications)

    amqp_config = AMQPConfig(
        url=amqp_url,
        exchange=config.get('NOTIFICATION_EXCHANGE', 'agrimarket.notifications'),
        connection_timeout=float(config.get('AMQP_CONNECTION_TIMEOUT', 5.0)),
        max_retries=int(config.get('AMQP_MAX_RETRIES', 2))
    )

    def factory() -> AMQPTransport:
        transport = AMQPTransport(amqp_config)
        transport.setup_exchange()
        return transport

    return factory
