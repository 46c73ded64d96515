# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Error handling middleware with structured problem responses.
Maps workflow errors and HTTP errors to RFC 7807 documents.
"""

from flask import Flask, request
from werkzeug.exceptions import HTTPException
from typing import Dict, Any, Tuple
from opentelemetry import trace
import logging

from ..domain.errors import WorkflowError, InternalError
from ..services.hal import HalFormatter, HTTP_PROBLEMS

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

class ErrorHandlerMiddleware:
    """Centralized error handling with problem document formatting."""

    def __init__(self, app: Flask, hal_formatter: HalFormatter):
        self.app = app
        self.hal_formatter = hal_formatter
        self.register_error_handlers()

    @property
    def is_production(self) -> bool:
        return self.app.config.get('ENVIRONMENT') == 'production'

    def register_error_handlers(self):
        """Register error handlers with Flask application."""

        @self.app.errorhandler(WorkflowError)
        def handle_workflow_error(error):
            return self.handle_workflow_error(error)

        @self.app.errorhandler(HTTPException)
        def handle_http_exception(error):
            if error.code is not None and error.code >= 500:
                return self.handle_server_error(error)
            return self.handle_client_error(error)

        # Handle generic exceptions
        @self.app.errorhandler(Exception)
        def handle_generic_exception(error):
            return self.handle_unexpected_error(error)

    def handle_workflow_error(self, error: WorkflowError) -> Tuple[Dict[str, Any], int]:
        """
        Render a domain error with its own status and problem type.

        Internal errors are logged where they are raised; their message is
        replaced here so datastore details never reach the client.
        """
        with tracer.start_as_current_span("error_handler.workflow_error") as span:
            span.set_attributes({
                "error.type": error.error_type,
                "error.status": error.status_code,
                "http.method": request.method,
                "http.path": request.path
            })

            if isinstance(error, InternalError):
                return self.hal_formatter.format_server_error(
                    "An internal server error occurred", request.path
                ), 500

            logger.info(
                f"Workflow error: {error.title}",
                extra={
                    "error_type": error.error_type,
                    "status_code": error.status_code,
                    "detail": error.message,
                    "path": request.path,
                    "method": request.method
                }
            )

            return self.hal_formatter.format_workflow_error(error, request.path), error.status_code

    def handle_client_error(self, error: HTTPException) -> Tuple[Dict[str, Any], int]:
        """Handle client errors (4xx status codes)."""
        error_type, title = HTTP_PROBLEMS.get(error.code, ("client-error", error.name))
        detail = str(error.description) if error.description else title

        logger.warning(
            f"Client error: {title}",
            extra={
                "error_type": error_type,
                "status_code": error.code,
                "detail": detail,
                "path": request.path,
                "method": request.method,
                "ip_address": request.remote_addr
            }
        )

        return self.hal_formatter.format_http_error(error.code, detail, request.path), error.code

    def handle_server_error(self, error: HTTPException) -> Tuple[Dict[str, Any], int]:
        """Handle server errors (5xx status codes)."""
        detail = str(error.description) if error.description else error.name

        logger.error(
            f"Server error: {error.name}",
            extra={
                "status_code": error.code,
                "detail": detail,
                "path": request.path,
                "method": request.method
            }
        )

        # Don't expose internal error details in production
        if self.is_production:
            detail = "An internal server error occurred"

        return self.hal_formatter.format_http_error(error.code, detail, request.path), error.code

    def handle_unexpected_error(self, error: Exception) -> Tuple[Dict[str, Any], int]:
        """Handle unexpected exceptions not caught by specific handlers."""
        with tracer.start_as_current_span("error_handler.unexpected_error") as span:
            span.set_attributes({
                "error.type": "unexpected-error",
                "error.class": error.__class__.__name__,
                "http.method": request.method,
                "http.path": request.path
            })
            span.record_exception(error)

            logger.error(
                f"Unexpected error: {error.__class__.__name__}",
                extra={
                    "error_class": error.__class__.__name__,
                    "path": request.path,
                    "method": request.method
                },
                exc_info=error
            )

            # Don't expose internal error details
            detail = "An unexpected error occurred"
            if not self.is_production:
                detail = f"{error.__class__.__name__}: {str(error)}"

            return self.hal_formatter.format_server_error(detail, request.path), 500
