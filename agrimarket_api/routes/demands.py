# SPDX-License-Identifier: Apache-2.0

"""
Demand workflow endpoints.

Buyers post and manage demands; farmers accept or reject open ones. Bodies
are validated by the lifecycle engine so that role checks run first and
every rule violation maps onto the workflow error taxonomy.
"""

from flask import request, g, current_app
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace
import logging

from ..domain import demands as demand_domain
from ..models.enums import UserRole
from ..models.requests import DemandPath, DemandQuery
from ..models.responses import DemandResponse, DemandCollectionResponse, ErrorResponse
from ..middleware.auth import require_auth, require_role, optional_auth

# Set up logging and tracing
logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Create API blueprint
demands_tag = Tag(name="Demands", description="Buyer demands and farmer responses")
demands_bp = APIBlueprint(
    'demands',
    __name__,
    url_prefix='/api/demands',
    abp_tags=[demands_tag]
)

ERROR_RESPONSES = {
    400: ErrorResponse,
    401: ErrorResponse,
    403: ErrorResponse,
    404: ErrorResponse
}


def _json_body():
    """Request JSON, or None when the body is missing or not JSON."""
    return request.get_json(silent=True)


def _render(demand, message=None, view=None):
    """HAL document for a demand, with summaries when a view is given."""
    return demand_domain.build_demand_hal_response(
        demand,
        g.user_context,
        current_app.config['BASE_URL'],
        buyer=view.buyer if view else None,
        seller=view.seller if view else None,
        message=message
    )


@demands_bp.post('', responses={201: DemandResponse, **ERROR_RESPONSES})
@require_role(UserRole.BUYER)
def create_demand():
    """
    Create a demand.

    Buyers only. Requires commodity and a positive quantity; unit defaults
    to kg.
    """
    demand = current_app.demand_service.create(g.user_context, _json_body())
    return _render(demand), 201


@demands_bp.get('', responses={200: DemandCollectionResponse, 400: ErrorResponse})
@optional_auth
def list_demands(query: DemandQuery):
    """
    List demands visible to the caller, newest first.

    Anonymous callers see open demands, buyers their own, farmers open
    demands and those they responded to, admins everything.
    """
    demand_page = current_app.demand_service.list(
        g.user_context,
        filters=query.filters(),
        page=query.page,
        limit=query.limit
    )

    items = [(view.demand, view.buyer, view.seller) for view in demand_page.items]
    return demand_domain.build_demand_collection_hal_response(
        items,
        g.user_context,
        current_app.config['BASE_URL'],
        demand_page.pagination,
        demand_page.total,
        demand_page.filters
    )


@demands_bp.get('/<demand_id>', responses={200: DemandResponse, 404: ErrorResponse})
@optional_auth
def get_demand(path: DemandPath):
    """Get a demand with buyer and seller summaries."""
    view = current_app.demand_service.get_by_id(path.demand_id)
    return _render(view.demand, view=view)


@demands_bp.put('/<demand_id>', responses={200: DemandResponse, **ERROR_RESPONSES})
@require_auth
def update_demand(path: DemandPath):
    """
    Update a demand.

    Owner or admin. Only commodity, quantity, unit, location, desiredBy and
    notes are applied; other fields are ignored.
    """
    demand = current_app.demand_service.update(g.user_context, path.demand_id, _json_body())
    return _render(demand)


@demands_bp.delete('/<demand_id>', responses={200: DemandResponse, **ERROR_RESPONSES})
@require_auth
def cancel_demand(path: DemandPath):
    """Cancel an open demand. Owner or admin."""
    demand = current_app.demand_service.cancel(g.user_context, path.demand_id)
    return _render(demand, message="Demand cancelled")


@demands_bp.post('/<demand_id>/respond', responses={200: DemandResponse, **ERROR_RESPONSES})
@require_role(UserRole.FARMER)
def respond_to_demand(path: DemandPath):
    """
    Accept or reject an open demand.

    Farmers only. Body: action (accept or reject), optional priceOffer and
    notes. The buyer is notified in-app and by email or push.
    """
    result = current_app.demand_service.respond(g.user_context, path.demand_id, _json_body())
    return _render(result.demand, message=result.message)
