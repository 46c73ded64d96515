# SPDX-License-Identifier: Apache-2.0

"""
Application configuration loaded from environment variables.
"""

import os
from typing import Any, Dict, Optional


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == 'true'


def load_config(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Read application settings from the environment.

    Args:
        overrides: Values that take precedence over the environment

    Returns:
        Mapping suitable for ``app.config.update``
    """
    environment = os.getenv('ENVIRONMENT', 'development')

    config = {
        # Environment configuration
        'ENVIRONMENT': environment,
        'DEBUG': environment == 'development',
        'DOCS_ENABLED': _flag('DOCS_ENABLED', 'true'),

        # Database configuration
        'MONGODB_URI': os.getenv('MONGODB_URI', 'mongodb://localhost:27017/agrimarket_dev'),
        'MONGODB_DATABASE': os.getenv('MONGODB_DATABASE', 'agrimarket_dev'),

        # Security configuration
        'JWT_SECRET': os.getenv('JWT_SECRET', 'agrimarket-dev-secret'),
        'JWT_ALGORITHM': os.getenv('JWT_ALGORITHM', 'HS256'),
        'JWT_ACCESS_TOKEN_EXPIRES': int(os.getenv('JWT_ACCESS_TOKEN_EXPIRES', '3600')),

        # Notification transport; empty AMQP_URL logs instead of publishing
        'AMQP_URL': os.getenv('AMQP_URL', ''),
        'NOTIFICATION_EXCHANGE': os.getenv('NOTIFICATION_EXCHANGE', 'agrimarket.notifications'),
        'EXTERNAL_DISPATCH_TIMEOUT': float(os.getenv('EXTERNAL_DISPATCH_TIMEOUT', '5')),

        # Feature flags
        'OTEL_ENABLED': _flag('OTEL_ENABLED', 'true'),

        # API configuration
        'BASE_URL': os.getenv('BASE_URL', 'http://localhost:5000').rstrip('/'),
        'DEFAULT_PAGE_SIZE': int(os.getenv('DEFAULT_PAGE_SIZE', '20')),
        'MAX_PAGE_SIZE': int(os.getenv('MAX_PAGE_SIZE', '200')),
    }

    if overrides:
        config.update(overrides)

    if config['ENVIRONMENT'] == 'production' and config['JWT_SECRET'] == 'agrimarket-dev-secret':
        raise ValueError("JWT_SECRET must be set in production")

    return config
