# SPDX-License-Identifier: Apache-2.0

"""
Authentication middleware for JWT token validation and user context extraction.

The decorators place a ``UserContext`` on ``flask.g``; route handlers read it
from there so flask-openapi3 keeps full control of handler arguments.
"""

from functools import wraps
from flask import request, jsonify, g, current_app
from typing import Optional, Dict, Any, Callable
from opentelemetry import trace
import logging

from ..models.entities import UserContext
from ..models.enums import UserRole
from ..services.auth import TokenValidationError

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class AuthMiddleware:
    """
    JWT authentication middleware for Flask applications.

    Handles token extraction, validation and user context building.
    """

    def __init__(self, auth_service):
        """
        Initialize the authentication middleware.

        Args:
            auth_service: JWT authentication service
        """
        self.auth_service = auth_service

    def extract_token_from_request(self) -> Optional[str]:
        """
        Extract JWT token from request headers.

        Returns:
            JWT token string or None if not found
        """
        auth_header = request.headers.get('Authorization', '')

        if not auth_header:
            return None

        # Handle "Bearer <token>" format
        if auth_header.startswith('Bearer '):
            return auth_header[7:].strip() or None

        return auth_header

    def build_user_context(self, token_payload: Dict[str, Any], request_info: Dict[str, Any]) -> UserContext:
        """
        Build user context from validated token payload and request information.

        Args:
            token_payload: Decoded JWT payload
            request_info: Request metadata (IP, user agent)

        Returns:
            UserContext object for request processing
        """
        return UserContext(
            user_id=str(token_payload["sub"]),
            role=token_payload["role"],
            email=token_payload.get("email"),
            name=token_payload.get("name"),
            token_payload=token_payload,
            ip_address=request_info.get("ip_address"),
            user_agent=request_info.get("user_agent")
        )

    def get_request_info(self) -> Dict[str, Any]:
        """Extract request metadata for user context."""
        return {
            "ip_address": request.remote_addr,
            "user_agent": request.headers.get('User-Agent', '')
        }

    def authenticate(self) -> UserContext:
        """
        Validate the request's bearer token.

        Raises:
            TokenValidationError: If the token is missing or invalid
        """
        token = self.extract_token_from_request()
        if not token:
            raise TokenValidationError("Missing authorization token")

        token_payload = self.auth_service.validate_token(token, "access")
        return self.build_user_context(token_payload, self.get_request_info())

    def anonymous_context(self) -> UserContext:
        request_info = self.get_request_info()
        return UserContext.anonymous(
            ip_address=request_info.get("ip_address"),
            user_agent=request_info.get("user_agent")
        )


def _authentication_failed(detail: str):
    return jsonify(current_app.hal_formatter.format_authentication_error(detail, request.path)), 401


def require_auth(f: Callable) -> Callable:
    """Require a valid JWT; the caller's context is stored on ``g.user_context``."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        with tracer.start_as_current_span("auth.middleware.validate_request") as span:
            span.set_attribute("auth.operation", "validate_request")

            try:
                user_context = current_app.auth_middleware.authenticate()
            except TokenValidationError as e:
                span.set_attribute("auth.result", "invalid_token")
                logger.warning(f"Authentication failed: {str(e)}")
                return _authentication_failed(str(e))

            g.user_context = user_context

            span.set_attributes({
                "auth.result": "success",
                "user.id": user_context.user_id,
                "user.role": user_context.role
            })
            logger.debug(
                "Authentication successful",
                extra={"user_id": user_context.user_id, "ip_address": user_context.ip_address}
            )

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: UserRole) -> Callable:
    """
    Require a valid JWT whose role is one of ``roles``.

    Args:
        roles: Accepted caller roles

    Returns:
        Decorator function
    """
    accepted = [UserRole(role).value for role in roles]

    def decorator(f: Callable) -> Callable:
        @wraps(f)
        @require_auth
        def decorated_function(*args, **kwargs):
            user_context = g.user_context

            if not user_context.has_role(*accepted):
                logger.warning(
                    "Authorization failed: role not accepted",
                    extra={"user_id": user_context.user_id, "role": user_context.role, "accepted": accepted}
                )
                return jsonify(current_app.hal_formatter.format_authorization_error(
                    f"Requires role: {', '.join(accepted)}",
                    request.path
                )), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def optional_auth(f: Callable) -> Callable:
    """Use the token's context when a valid token is sent, otherwise an anonymous one."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        middleware = current_app.auth_middleware
        user_context = None

        if middleware.extract_token_from_request():
            try:
                user_context = middleware.authenticate()
            except TokenValidationError as e:
                logger.info(f"Ignoring invalid token on optional auth route: {str(e)}")

        g.user_context = user_context or middleware.anonymous_context()
        return f(*args, **kwargs)

    return decorated_function
