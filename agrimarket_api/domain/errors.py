# SPDX-License-Identifier: Apache-2.0

"""
Error taxonomy for the demand workflow.

Every error carries the HTTP status and problem type the API layer renders,
so the domain and service layers never import Flask.
"""

from typing import Any, Dict, List, Optional


class WorkflowError(Exception):
    """Base class for demand workflow errors."""

    status_code = 500
    error_type = "application-error"
    title = "Application Error"

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []


class ValidationError(WorkflowError):
    """Malformed or missing input; fixable by the caller."""

    status_code = 400
    error_type = "validation-error"
    title = "Validation Error"


class AuthorizationError(WorkflowError):
    """Role or ownership does not permit the operation."""

    status_code = 403
    error_type = "insufficient-permissions"
    title = "Insufficient Permissions"


class NotFoundError(WorkflowError):
    """No demand exists with the requested id."""

    status_code = 404
    error_type = "resource-not-found"
    title = "Resource Not Found"


class InvalidStateError(WorkflowError):
    """Operation not permitted in the demand's current lifecycle state."""

    status_code = 400
    error_type = "invalid-state"
    title = "Invalid State"


class InternalError(WorkflowError):
    """Unexpected datastore or transport fault; details stay in the logs."""

    status_code = 500
    error_type = "internal-server-error"
    title = "Internal Server Error"


def errors_from_pydantic(exc) -> List[Dict[str, Any]]:
    """Flatten a pydantic ValidationError into field/message pairs."""
    return [
        {
            "field": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", ""),
            "type": error.get("type", "")
        }
        for error in exc.errors()
    ]
