# SPDX-License-Identifier: Apache-2.0

"""
Authentication service for JWT access tokens.

Tokens are issued by the marketplace identity service; this module validates
them and can mint tokens for tooling and tests. Signing uses a shared HS256
secret.
"""

import os
import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from opentelemetry import trace
import logging

from ..models.enums import UserRole

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Raised when a token cannot be issued."""
    pass


class TokenValidationError(Exception):
    """Raised when token validation fails."""
    pass


class AuthService:
    """
    JWT authentication service with shared-secret signing.

    Access tokens carry ``sub`` (user ID), ``role``, ``name`` and ``email``.
    """

    def __init__(
        self,
        secret: Optional[str] = None,
        algorithm: str = "HS256",
        access_token_expire_minutes: int = 60
    ):
        """
        Initialize the authentication service.

        Args:
            secret: Signing secret, falls back to JWT_SECRET
            algorithm: JWT signing algorithm
            access_token_expire_minutes: Lifetime of minted access tokens
        """
        self.secret = secret or self._get_secret()
        self.algorithm = algorithm
        self.access_token_expire_minutes = access_token_expire_minutes

    def _get_secret(self) -> str:
        """Get signing secret from environment or use a development default."""
        secret = os.getenv("JWT_SECRET")
        if secret:
            return secret

        logger.warning("No JWT_SECRET found, using development secret")
        return "agrimarket-dev-secret"

    def create_access_token(
        self,
        user_id: str,
        role: UserRole,
        name: Optional[str] = None,
        email: Optional[str] = None
    ) -> str:
        """
        Mint an access token for a marketplace user.

        Args:
            user_id: User ID placed in ``sub``
            role: Marketplace role
            name: Display name
            email: Contact email

        Returns:
            Encoded JWT
        """
        with tracer.start_as_current_span("auth.create_access_token") as span:
            role = UserRole(role)
            span.set_attributes({
                "auth.operation": "create_access_token",
                "user.id": user_id,
                "user.role": role.value
            })

            now = datetime.now(timezone.utc)
            payload = {
                "sub": user_id,
                "role": role.value,
                "name": name,
                "email": email,
                "iat": now,
                "exp": now + timedelta(minutes=self.access_token_expire_minutes),
                "type": "access"
            }

            try:
                token = jwt.encode(payload, self.secret, algorithm=self.algorithm)
            except Exception as e:
                logger.error(f"Token generation failed: {str(e)}")
                raise AuthenticationError(f"Failed to generate token: {str(e)}")

            logger.debug("Access token generated", extra={"user_id": user_id, "role": role.value})
            return token

    def validate_token(self, token: str, token_type: str = "access") -> Dict[str, Any]:
        """
        Validate and decode a JWT token.

        Args:
            token: JWT token string to validate
            token_type: Expected token type

        Returns:
            Decoded token payload

        Raises:
            TokenValidationError: If token is invalid or expired
        """
        with tracer.start_as_current_span("auth.validate_token") as span:
            span.set_attributes({
                "auth.operation": "validate_token",
                "auth.token_type": token_type
            })

            try:
                payload = jwt.decode(
                    token,
                    self.secret,
                    algorithms=[self.algorithm],
                    options={"verify_exp": True, "require": ["sub", "exp"]}
                )

                # Tokens without a type are treated as access tokens
                if payload.get("type", "access") != token_type:
                    raise TokenValidationError(f"Invalid token type. Expected {token_type}")

                role = payload.get("role")
                if role not in {r.value for r in UserRole} or role == UserRole.ANONYMOUS.value:
                    raise TokenValidationError(f"Invalid role claim: {role}")

                span.set_attributes({
                    "auth.validation_result": "success",
                    "user.id": payload.get("sub"),
                    "user.role": role
                })

                logger.debug(
                    "Token validated successfully",
                    extra={"user_id": payload.get("sub"), "role": role}
                )

                return payload

            except jwt.ExpiredSignatureError:
                span.set_attribute("auth.validation_result", "expired")
                logger.warning("Token validation failed: token expired")
                raise TokenValidationError("Token has expired")

            except jwt.InvalidTokenError as e:
                span.set_attribute("auth.validation_result", "invalid")
                logger.warning(f"Token validation failed: {str(e)}")
                raise TokenValidationError(f"Invalid token: {str(e)}")
