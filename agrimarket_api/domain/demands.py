# SPDX-License-Identifier: Apache-2.0

"""
Demand domain logic for the buyer/farmer negotiation workflow.

This module contains pure functions for demand validation, authorization,
status transitions, notification content and HAL response transformation.
Persistence and dispatch live in the service layer.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Tuple
from urllib.parse import urlencode

from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from ..models.entities import Demand, UserContext, UserSummary
from ..models.enums import DemandStatus, DemandAction, UserRole, NotificationType
from ..models.requests import CreateDemandRequest, UpdateDemandRequest, RespondDemandRequest
from .errors import (
    ValidationError, AuthorizationError, InvalidStateError, errors_from_pydantic
)


DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 200

# Fields a buyer (or admin) may change through an update
ALLOWED_UPDATE_FIELDS = ('commodity', 'quantity', 'unit', 'location', 'desired_by', 'notes')

# Fields that may never be cleared by an update
REQUIRED_UPDATE_FIELDS = ('commodity', 'quantity', 'unit')

SELLER_NOTE_PREFIX = "\nSeller note: "

VALID_TRANSITIONS = {
    DemandStatus.OPEN: [DemandStatus.ACCEPTED, DemandStatus.REJECTED, DemandStatus.CANCELLED],
    DemandStatus.ACCEPTED: [],  # Terminal state
    DemandStatus.REJECTED: [],  # Terminal state
    DemandStatus.CANCELLED: []  # Terminal state
}

ACTION_TARGET_STATUS = {
    DemandAction.ACCEPT: DemandStatus.ACCEPTED,
    DemandAction.REJECT: DemandStatus.REJECTED
}


@dataclass
class Pagination:
    """Validated offset pagination."""
    page: int
    limit: int

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class ResponseTransition:
    """Single atomic change produced by a farmer response."""
    action: DemandAction
    target_status: DemandStatus
    changes: Dict[str, Any]
    seller_note: Optional[str] = None


@dataclass
class NotificationContent:
    """Buyer-facing content for a response notification."""
    type: NotificationType
    title: str
    message: str
    email_subject: str
    data: Dict[str, Any] = field(default_factory=dict)


def _parse(model, payload: Dict[str, Any], message: str):
    """Validate a payload with a request model, raising the domain ValidationError."""
    if payload is None:
        raise ValidationError("Missing request body")
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(message, errors_from_pydantic(e))


def validate_pagination(
    page: Any = 1,
    limit: Any = DEFAULT_PAGE_SIZE,
    max_limit: int = MAX_PAGE_SIZE
) -> Pagination:
    """
    Validate pagination parameters.

    Args:
        page: Page number, 1-based
        limit: Page size between 1 and max_limit
        max_limit: Largest accepted page size

    Returns:
        Pagination with the derived skip offset
    """
    try:
        page = int(page) if page is not None else 1
        limit = int(limit) if limit is not None else DEFAULT_PAGE_SIZE
    except (TypeError, ValueError):
        raise ValidationError("page and limit must be integers")

    errors = []
    if page < 1:
        errors.append({"field": "page", "message": "page must be at least 1"})
    if limit < 1 or limit > max_limit:
        errors.append({"field": "limit", "message": f"limit must be between 1 and {max_limit}"})
    if errors:
        raise ValidationError("Invalid pagination parameters", errors)

    return Pagination(page=page, limit=limit)


def validate_list_filters(filters: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Keep the supported listing filters, rejecting unknown statuses."""
    filters = filters or {}
    result = {}

    status = filters.get("status")
    if status:
        try:
            result["status"] = DemandStatus(status).value
        except ValueError:
            raise ValidationError(
                f"Unknown status filter: {status}",
                [{"field": "status", "message": "status must be one of open, accepted, rejected, cancelled"}]
            )

    commodity = filters.get("commodity")
    if commodity:
        result["commodity"] = str(commodity)

    return result


def authorize_create(user_context: UserContext) -> None:
    """Only buyers post demands."""
    if not user_context.has_role(UserRole.BUYER):
        raise AuthorizationError("Only buyers can create demands")


def build_new_demand(payload: Dict[str, Any], user_context: UserContext) -> Demand:
    """
    Validate a create payload and build the open demand with defaults applied.

    Args:
        payload: Create request body
        user_context: Creating buyer

    Returns:
        Unsaved Demand entity
    """
    request = _parse(CreateDemandRequest, payload, "Invalid demand")

    return Demand(
        buyer=user_context.user_id,
        commodity=request.commodity,
        quantity=request.quantity,
        unit=request.unit or "kg",
        location=request.location or {},
        desired_by=request.desired_by,
        notes=request.notes or "",
        status=DemandStatus.OPEN
    )


def authorize_modification(demand: Demand, user_context: UserContext) -> None:
    """Only the owning buyer or an admin may update or cancel."""
    if user_context.is_admin():
        return
    if not demand.is_owned_by(user_context.user_id):
        raise AuthorizationError("Not permitted")


def ensure_updatable(demand: Demand, user_context: UserContext) -> None:
    """Non-admin callers may only edit open demands."""
    if not user_context.is_admin() and not demand.is_open():
        raise InvalidStateError("Can only update demand while it is open")


def ensure_cancellable(demand: Demand) -> None:
    """Cancellation is an open → cancelled transition for every caller."""
    validation_errors = validate_status_transition(demand.status, DemandStatus.CANCELLED)
    if validation_errors:
        raise InvalidStateError("Can only cancel an open demand")


def extract_update_fields(patch: Dict[str, Any]) -> Dict[str, Any]:
    """
    Reduce a patch to the allow-listed fields that are present.

    Fields outside the allow-list are dropped silently. A present field
    replaces the stored value, including empty values, except that the
    required fields cannot be cleared.

    Args:
        patch: Raw update payload (camelCase or snake_case keys)

    Returns:
        Document changes keyed by storage (camelCase) field names
    """
    request = _parse(UpdateDemandRequest, patch, "Invalid demand update")
    present = request.present_fields()

    errors = [
        {"field": name, "message": f"{name} cannot be null"}
        for name in REQUIRED_UPDATE_FIELDS
        if name in present and present[name] is None
    ]
    if errors:
        raise ValidationError("Invalid demand update", errors)

    changes = {}
    for name in ALLOWED_UPDATE_FIELDS:
        if name not in present:
            continue
        value = present[name]
        if name == 'notes' and value is None:
            value = ""
        elif name == 'location' and value is None:
            value = {}
        changes[to_camel(name)] = value

    return changes


def validate_status_transition(
    current_status: DemandStatus,
    new_status: DemandStatus
) -> List[str]:
    """
    Validate a demand status transition against the lifecycle table.

    Returns:
        List of validation errors, empty when the transition is allowed
    """
    current_status = DemandStatus(current_status)
    new_status = DemandStatus(new_status)

    if new_status not in VALID_TRANSITIONS.get(current_status, []):
        return [f"Invalid status transition from {current_status.value} to {new_status.value}"]
    return []


def authorize_respond(user_context: UserContext) -> None:
    """Only farmers respond to demands."""
    if not user_context.has_role(UserRole.FARMER):
        raise AuthorizationError("Only farmers can respond to demands")


def parse_respond_request(payload: Dict[str, Any]) -> RespondDemandRequest:
    """Validate a respond payload: an accept or reject action with an optional note and price."""
    return _parse(RespondDemandRequest, payload, "Invalid response")


def ensure_respondable(demand: Demand) -> None:
    """A response consumes an open demand."""
    if not demand.is_open():
        raise InvalidStateError("Cannot respond to a demand that is not open")


def build_response_transition(
    request: RespondDemandRequest,
    user_context: UserContext
) -> ResponseTransition:
    """
    Compute the single update a farmer response applies to an open demand.

    The responding farmer is recorded as seller for both actions. A price
    offer is kept only when accepting.
    """
    action = DemandAction(request.action)
    target_status = ACTION_TARGET_STATUS[action]

    changes: Dict[str, Any] = {
        "status": target_status.value,
        "seller": user_context.user_id
    }
    if action == DemandAction.ACCEPT and request.price_offer is not None:
        changes["priceOffer"] = request.price_offer

    return ResponseTransition(
        action=action,
        target_status=target_status,
        changes=changes,
        seller_note=request.notes or None
    )


def append_seller_note(notes: Optional[str], seller_note: Optional[str]) -> str:
    """Append a seller note to existing notes without overwriting them."""
    notes = notes or ""
    if not seller_note:
        return notes
    return f"{notes}{SELLER_NOTE_PREFIX}{seller_note}"


def format_quantity(quantity: float) -> str:
    """Render whole quantities without a trailing .0."""
    if float(quantity).is_integer():
        return str(int(quantity))
    return str(quantity)


def response_message(action: DemandAction) -> str:
    """Outcome message returned to the responding farmer."""
    return f"Demand {DemandAction(action).value}ed"


def build_response_notification(
    demand: Demand,
    action: DemandAction,
    farmer_name: Optional[str]
) -> NotificationContent:
    """
    Build the buyer notification for an accepted or rejected demand.

    Args:
        demand: Demand after the transition
        action: Farmer action
        farmer_name: Display name of the responding farmer

    Returns:
        NotificationContent for in-app and email delivery
    """
    action = DemandAction(action)
    verb = f"{action.value}ed"
    notification_type = (
        NotificationType.DEMAND_ACCEPTED if action == DemandAction.ACCEPT
        else NotificationType.DEMAND_REJECTED
    )

    message = (
        f"Your demand for {format_quantity(demand.quantity)} {demand.unit} {demand.commodity} "
        f"was {verb} by {farmer_name or 'a farmer'}"
    )

    return NotificationContent(
        type=notification_type,
        title=f"Demand {verb.capitalize()}",
        message=message,
        email_subject=f"Your demand was {verb}",
        data={"demandId": demand.id}
    )


def build_demand_hal_response(
    demand: Demand,
    user_context: UserContext,
    base_url: str,
    buyer: Optional[UserSummary] = None,
    seller: Optional[UserSummary] = None,
    message: Optional[str] = None
) -> Dict[str, Any]:
    """
    Build HAL response for a demand with affordance links.

    Args:
        demand: Demand entity
        user_context: Caller context for role and state conditioned links
        base_url: Base URL for link generation
        buyer: Optional buyer identity summary
        seller: Optional seller identity summary
        message: Optional outcome message for mutations

    Returns:
        HAL-formatted response dictionary
    """
    response = demand.to_json()
    response.pop("schemaVersion", None)

    if buyer is not None:
        response["buyerSummary"] = buyer.to_public()
    if seller is not None:
        response["sellerSummary"] = seller.to_public()
    if message:
        response["message"] = message

    href = f"{base_url}/api/demands/{demand.id}"
    links = {
        "self": {"href": href},
        "collection": {"href": f"{base_url}/api/demands"}
    }

    can_modify = user_context.is_admin() or (
        demand.is_owned_by(user_context.user_id) and demand.is_open()
    )

    # Edit link
    if can_modify:
        links["update"] = {
            "href": href,
            "method": "PUT",
            "type": "application/json"
        }

    # Cancel link (only for open demands)
    if can_modify and demand.is_open():
        links["cancel"] = {
            "href": href,
            "method": "DELETE"
        }

    # Respond link
    if user_context.role == UserRole.FARMER and demand.is_open():
        links["respond"] = {
            "href": f"{href}/respond",
            "method": "POST",
            "type": "application/json"
        }

    response["_links"] = links
    return response


def build_demand_collection_hal_response(
    items: List[Tuple[Demand, Optional[UserSummary], Optional[UserSummary]]],
    user_context: UserContext,
    base_url: str,
    pagination: Pagination,
    total_count: int,
    filters: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Build HAL collection response for demands.

    Args:
        items: (demand, buyer summary, seller summary) tuples
        user_context: Caller context for permission-based links
        base_url: Base URL for link generation
        pagination: Current page and limit
        total_count: Total number of matching demands
        filters: Caller filters to carry into pagination links

    Returns:
        HAL-formatted collection response
    """
    embedded_items = [
        build_demand_hal_response(demand, user_context, base_url, buyer, seller)
        for demand, buyer, seller in items
    ]

    page, limit = pagination.page, pagination.limit
    total_pages = (total_count + limit - 1) // limit

    def page_href(number: int) -> str:
        query = urlencode({"page": number, "limit": limit, **dict(sorted((filters or {}).items()))})
        return f"{base_url}/api/demands?{query}"

    response = {
        "total": total_count,
        "page": page,
        "limit": limit,
        "total_pages": total_pages,
        "_embedded": {
            "demands": embedded_items
        },
        "_links": {
            "self": {"href": page_href(page)}
        }
    }

    links = response["_links"]

    # First and previous pages
    if page > 1:
        links["first"] = {"href": page_href(1)}
        links["prev"] = {"href": page_href(page - 1)}

    # Next and last pages
    if page < total_pages:
        links["next"] = {"href": page_href(page + 1)}
        links["last"] = {"href": page_href(total_pages)}

    # Create link for buyers
    if user_context.role == UserRole.BUYER:
        links["create"] = {
            "href": f"{base_url}/api/demands",
            "method": "POST",
            "type": "application/json"
        }

    return response
