# SPDX-License-Identifier: Apache-2.0

"""
OpenTelemetry Configuration

Sets up distributed tracing and logging for the AgriMarket demand API.
"""

import os
import logging
import threading
from typing import Any, Dict, Optional
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

SERVICE_NAME = 'agrimarket-api'

_setup_lock = threading.Lock()
_configured = False


def setup_observability(config: Optional[Dict[str, Any]] = None) -> bool:
    """
    Initialize OpenTelemetry tracing and logging once per process.

    Args:
        config: Application config; ENVIRONMENT and OTEL_ENABLED are read from it

    Returns:
        True if a tracer provider was installed by this call
    """
    global _configured
    config = config or {}
    environment = config.get('ENVIRONMENT', os.getenv('ENVIRONMENT', 'development'))
    otel_enabled = config.get('OTEL_ENABLED', os.getenv('OTEL_ENABLED', 'true').lower() == 'true')

    with _setup_lock:
        if _configured:
            return False

        setup_structured_logging(environment)

        if not otel_enabled:
            # Tracing stays on the no-op provider
            _configured = True
            return False

        # Environment-specific sampling
        if environment == 'production':
            sampler = TraceIdRatioBased(0.1)
        elif environment == 'staging':
            sampler = TraceIdRatioBased(0.5)
        else:
            sampler = TraceIdRatioBased(1.0)

        resource = Resource.create({
            "service.name": SERVICE_NAME,
            "service.version": os.getenv('SERVICE_VERSION', '1.0.0'),
            "deployment.environment": environment
        })

        tracer_provider = TracerProvider(sampler=sampler, resource=resource)

        otlp_endpoint = os.getenv('OTEL_EXPORTER_OTLP_ENDPOINT')
        if otlp_endpoint:
            headers = None
            if os.getenv('OTEL_API_KEY'):
                headers = {"Authorization": f"Bearer {os.getenv('OTEL_API_KEY')}"}
            tracer_provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, headers=headers))
            )
        elif environment == 'development':
            tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

        trace.set_tracer_provider(tracer_provider)
        _configured = True
        return True


def setup_structured_logging(environment: str):
    """Configure logging levels per environment."""
    log_level = {
        'production': logging.WARNING,
        'staging': logging.INFO,
        'development': logging.INFO
    }.get(environment, logging.WARNING)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s %(levelname)s %(name)s %(message)s',
        handlers=[logging.StreamHandler()]
    )

    if environment == 'production':
        # Production: Reduce noise, focus on errors and business events
        logging.getLogger('pika').setLevel(logging.ERROR)
        logging.getLogger('pymongo').setLevel(logging.WARNING)

    elif environment == 'development':
        logging.getLogger('agrimarket_api.domain').setLevel(logging.DEBUG)
        logging.getLogger('agrimarket_api.services').setLevel(logging.DEBUG)
        logging.getLogger('pika').setLevel(logging.WARNING)
