# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
RFC 7807 problem documents with HAL links.

Every error the API returns, whether raised by the lifecycle engine or by
Flask itself, is rendered here so clients see one problem format.
"""

from typing import Dict, List, Any, Optional, Tuple
from urllib.parse import urljoin

from ..models.responses import HalLink

PROBLEM_BASE_URI = "https://api.agrimarket.example/problems"

# Problem type and title per HTTP status, for errors raised outside the engine
HTTP_PROBLEMS: Dict[int, Tuple[str, str]] = {
    400: ("bad-request", "Bad Request"),
    401: ("authentication-required", "Authentication Required"),
    403: ("insufficient-permissions", "Insufficient Permissions"),
    404: ("resource-not-found", "Resource Not Found"),
    405: ("method-not-allowed", "Method Not Allowed"),
    415: ("unsupported-media-type", "Unsupported Media Type"),
    422: ("validation-error", "Validation Error"),
    500: ("internal-server-error", "Internal Server Error"),
}

# Extra documentation links by problem type
RELATED_DOCS = {
    "validation-error": ("schema", "/openapi/openapi.json", "API schema"),
    "invalid-state": ("lifecycle", "/docs/demands#lifecycle", "Demand lifecycle"),
    "insufficient-permissions": ("roles", "/docs/demands#roles", "Who may do what"),
}


class HalLinkBuilder:
    """Resolves API paths against the public base URL."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/') + '/'

    def build_link(
        self,
        path: str,
        method: str = "GET",
        content_type: Optional[str] = None,
        title: Optional[str] = None
    ) -> HalLink:
        return HalLink(
            href=urljoin(self.base_url, path.lstrip('/')),
            method=method,
            type=content_type,
            title=title
        )


class HalFormatter:
    """Builds problem documents for workflow, auth and HTTP errors."""

    def __init__(self, base_url: str):
        self.link_builder = HalLinkBuilder(base_url)

    def _links(self, error_type: str) -> Dict[str, Dict[str, Any]]:
        links = {
            "help": self.link_builder.build_link(f"/docs/errors#{error_type}", title="Error documentation")
        }
        if error_type in RELATED_DOCS:
            rel, path, title = RELATED_DOCS[error_type]
            links[rel] = self.link_builder.build_link(path, title=title)
        return {rel: link.model_dump(exclude_none=True) for rel, link in links.items()}

    def build_error_response(
        self,
        error_type: str,
        title: str,
        status: int,
        detail: str,
        instance: str,
        validation_errors: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """
        Build a problem document.

        Args:
            error_type: Problem type slug, appended to PROBLEM_BASE_URI
            title: Short human-readable summary of the problem type
            status: HTTP status code
            detail: Explanation specific to this occurrence
            instance: Request path
            validation_errors: Optional field/message pairs

        Returns:
            Problem document with ``_links``
        """
        problem = {
            'type': f"{PROBLEM_BASE_URI}/{error_type}",
            'title': title,
            'status': status,
            'detail': detail,
            'instance': instance
        }
        if validation_errors:
            problem['errors'] = validation_errors
        problem['_links'] = self._links(error_type)
        return problem

    def format_http_error(self, status: int, detail: str, instance: str,
                          validation_errors: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        """Problem document for a status code outside the workflow taxonomy."""
        error_type, title = HTTP_PROBLEMS.get(status, ("client-error" if status < 500 else "server-error",
                                                       "Request Failed"))
        return self.build_error_response(error_type, title, status, detail, instance, validation_errors)

    def format_workflow_error(self, error, instance: str) -> Dict[str, Any]:
        """Problem document for a WorkflowError, using the error's own type and status."""
        return self.build_error_response(
            error.error_type,
            error.title,
            error.status_code,
            error.message,
            instance,
            error.errors
        )

    def format_validation_error(
        self,
        detail: str,
        instance: str,
        validation_errors: Optional[List[Dict[str, Any]]] = None,
        status: int = 400
    ) -> Dict[str, Any]:
        error_type, title = HTTP_PROBLEMS[422]
        return self.build_error_response(error_type, title, status, detail, instance, validation_errors)

    def format_authentication_error(self, detail: str, instance: str) -> Dict[str, Any]:
        return self.format_http_error(401, detail, instance)

    def format_authorization_error(self, detail: str, instance: str) -> Dict[str, Any]:
        return self.format_http_error(403, detail, instance)

    def format_server_error(self, detail: str, instance: str) -> Dict[str, Any]:
        return self.format_http_error(500, detail, instance)


def create_hal_formatter(base_url: str) -> HalFormatter:
    """Create a HAL formatter instance."""
    return HalFormatter(base_url)
