# SPDX-License-Identifier: Apache-2.0

"""
AgriMarket Demand API - Flask Application Factory

This module builds the Flask application with OpenAPI 3.0 support, wires
the lifecycle engine to its repositories and notification transport, and
registers middleware and routes.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask import jsonify, current_app, request
from flask_openapi3 import OpenAPI, Info, Tag

from .config import load_config
from .observability.config import setup_observability
from .observability.middleware import add_observability_middleware
from .domain.errors import errors_from_pydantic
from .middleware.auth import AuthMiddleware
from .middleware.error_handler import ErrorHandlerMiddleware
from .services.auth import AuthService
from .services.demand_service import DemandService
from .services.hal import create_hal_formatter
from .services.mongodb import MongoDBService
from .services.notifications import NotificationDispatcher
from .services.repositories import MongoDemandRepository, MongoNotificationRepository, MongoUserDirectory
from .services.transport import TransportHandle, create_transport_factory

SERVICE_NAME = "agrimarket-api"
SERVICE_VERSION = "1.0.0"

# OpenAPI info
info = Info(
    title="AgriMarket Demand API",
    version=SERVICE_VERSION,
    description="Buyer demands, farmer responses and buyer notifications with HAL links"
)

health_tag = Tag(name="Health", description="System health and status")


def _validation_error_response(error):
    """Render request parameter validation failures as problem documents."""
    problem = current_app.hal_formatter.format_validation_error(
        "Request parameters failed validation",
        request.path,
        errors_from_pydantic(error),
        status=422
    )
    response = jsonify(problem)
    response.status_code = 422
    return response


def create_app(config_overrides: Optional[Dict[str, Any]] = None, **collaborators) -> OpenAPI:
    """
    Build the Flask application.

    Args:
        config_overrides: Values taking precedence over environment settings
        collaborators: Optional replacements for the datastore-backed parts:
            ``mongodb``, ``demand_repository``, ``notification_repository``,
            ``user_directory``, ``transport`` or ``transport_handle``

    Returns:
        Configured OpenAPI (Flask) application
    """
    config = load_config(config_overrides)

    # Initialize observability first
    setup_observability(config)

    app = OpenAPI(
        __name__,
        info=info,
        doc_ui=config['DOCS_ENABLED'],
        validation_error_callback=_validation_error_response
    )
    app.config.update(config)

    add_observability_middleware(app)

    # Persistence: real MongoDB unless every repository was injected
    mongodb = collaborators.get('mongodb')
    needs_mongodb = any(
        collaborators.get(name) is None
        for name in ('demand_repository', 'notification_repository', 'user_directory')
    )
    if mongodb is None and needs_mongodb:
        mongodb = MongoDBService(config['MONGODB_URI'], config['MONGODB_DATABASE'])

    demand_repository = collaborators.get('demand_repository')
    if demand_repository is None:
        demand_repository = MongoDemandRepository(mongodb)

    notification_repository = collaborators.get('notification_repository')
    if notification_repository is None:
        notification_repository = MongoNotificationRepository(mongodb)

    user_directory = collaborators.get('user_directory')
    if user_directory is None:
        user_directory = MongoUserDirectory(mongodb)

    # External transport, initialized on first send
    transport_handle = collaborators.get('transport_handle')
    if transport_handle is None:
        transport = collaborators.get('transport')
        if transport is not None:
            transport_handle = TransportHandle(lambda: transport)
        else:
            transport_handle = TransportHandle(create_transport_factory(config, notification_repository))

    dispatcher = NotificationDispatcher(
        notification_repository,
        transport_handle,
        timeout=config['EXTERNAL_DISPATCH_TIMEOUT']
    )

    demand_service = DemandService(
        demand_repository,
        user_directory,
        dispatcher,
        default_page_size=config['DEFAULT_PAGE_SIZE'],
        max_page_size=config['MAX_PAGE_SIZE']
    )

    auth_service = AuthService(
        config['JWT_SECRET'],
        config['JWT_ALGORITHM'],
        config['JWT_ACCESS_TOKEN_EXPIRES'] // 60
    )

    # Initialize middleware
    hal_formatter = create_hal_formatter(config['BASE_URL'])
    ErrorHandlerMiddleware(app, hal_formatter)

    # Make services available to routes
    app.mongodb_service = mongodb
    app.auth_service = auth_service
    app.auth_middleware = AuthMiddleware(auth_service)
    app.hal_formatter = hal_formatter
    app.dispatcher = dispatcher
    app.demand_service = demand_service

    # Register routes
    from .routes.demands import demands_bp
    app.register_api(demands_bp)

    @app.get('/api/healthz', tags=[health_tag])
    def health_check():
        """Health check reporting datastore and notification transport state."""
        mongodb_service = current_app.mongodb_service
        if mongodb_service is not None:
            mongodb_health = mongodb_service.health_check()
        else:
            mongodb_health = {"status": "not_configured"}

        transport_health = current_app.dispatcher.health_check()
        healthy = mongodb_health["status"] != "unhealthy"

        return {
            "status": "healthy" if healthy else "unhealthy",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "environment": current_app.config['ENVIRONMENT'],
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "dependencies": {
                "mongodb": mongodb_health,
                "transport": transport_health
            },
            "_links": {
                "self": {"href": f"{current_app.config['BASE_URL']}/api/healthz"},
                "demands": {"href": f"{current_app.config['BASE_URL']}/api/demands"}
            }
        }, 200 if healthy else 503

    return app
