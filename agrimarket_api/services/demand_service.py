# SPDX-License-Identifier: Apache-2.0

"""
Demand lifecycle engine.

Orchestrates the pure rules in ``domain.demands`` with the demand repository,
the user directory and the notification dispatcher. Guarded mutations are
single conditional updates keyed on the open status, so two concurrent
responses to the same demand can never both succeed.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..domain import demands as demand_domain
from ..domain.errors import WorkflowError, InternalError, NotFoundError, InvalidStateError
from ..domain.visibility import build_list_filter
from ..models.entities import Demand, UserContext, UserSummary
from ..models.enums import DemandAction, DemandStatus

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class DemandView:
    """A demand with the identity summaries of its parties."""
    demand: Demand
    buyer: Optional[UserSummary] = None
    seller: Optional[UserSummary] = None


@dataclass
class DemandPage:
    """One page of a demand listing."""
    items: List[DemandView]
    total: int
    pagination: demand_domain.Pagination
    filters: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RespondResult:
    """Outcome of a farmer response."""
    demand: Demand
    message: str
    action: DemandAction


class DemandService:
    """Lifecycle operations on demands for a given caller."""

    def __init__(
        self,
        demands,
        users,
        dispatcher,
        default_page_size: int = demand_domain.DEFAULT_PAGE_SIZE,
        max_page_size: int = demand_domain.MAX_PAGE_SIZE
    ):
        """
        Args:
            demands: Demand repository
            users: User directory for identity summaries and contact details
            dispatcher: NotificationDispatcher
            default_page_size: Page size when the caller gives none
            max_page_size: Largest accepted page size
        """
        self.demands = demands
        self.users = users
        self.dispatcher = dispatcher
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    @contextmanager
    def _datastore(self, operation: str) -> Iterator[None]:
        """Turn unexpected datastore faults into InternalError."""
        try:
            yield
        except WorkflowError:
            raise
        except Exception as e:
            logger.error(
                f"Datastore failure during {operation}: {e}",
                extra={"operation": operation},
                exc_info=True
            )
            raise InternalError("Internal server error")

    def _get(self, demand_id: str) -> Demand:
        with self._datastore("get"):
            demand = self.demands.find_by_id(demand_id)
        if demand is None:
            raise NotFoundError("Demand not found")
        return demand

    def _raise_conflict(self, demand_id: str, message: str) -> None:
        """A conditional update matched nothing: the demand is gone or changed state."""
        with self._datastore("recheck"):
            current = self.demands.find_by_id(demand_id)
        if current is None:
            raise NotFoundError("Demand not found")
        raise InvalidStateError(message)

    def _summaries(self, demands: List[Demand]) -> Dict[str, UserSummary]:
        user_ids = {demand.buyer for demand in demands}
        user_ids.update(demand.seller for demand in demands if demand.seller)
        with self._datastore("summaries"):
            return self.users.get_summaries(user_ids)

    def _view(self, demand: Demand, summaries: Dict[str, UserSummary]) -> DemandView:
        return DemandView(
            demand=demand,
            buyer=summaries.get(demand.buyer),
            seller=summaries.get(demand.seller) if demand.seller else None
        )

    def create(self, user_context: UserContext, payload: Dict[str, Any]) -> Demand:
        """Post a new open demand on behalf of a buyer."""
        with tracer.start_as_current_span(
            "demand.create",
            attributes={"user.id": str(user_context.user_id), "user.role": user_context.role}
        ) as span:
            demand_domain.authorize_create(user_context)
            demand = demand_domain.build_new_demand(payload, user_context)

            with self._datastore("create"):
                created = self.demands.create(demand)

            span.set_attribute("demand.id", created.id)
            logger.info(
                "Demand created",
                extra={"demand_id": created.id, "buyer": created.buyer, "commodity": created.commodity}
            )
            return created

    def list(
        self,
        user_context: UserContext,
        filters: Optional[Dict[str, Any]] = None,
        page: Any = 1,
        limit: Any = None
    ) -> DemandPage:
        """List the demands visible to the caller, newest first."""
        with tracer.start_as_current_span(
            "demand.list",
            attributes={"user.role": user_context.role}
        ) as span:
            pagination = demand_domain.validate_pagination(
                page,
                limit if limit is not None else self.default_page_size,
                self.max_page_size
            )
            filters = demand_domain.validate_list_filters(filters)
            expression = build_list_filter(user_context.role, user_context.user_id, filters)

            with self._datastore("list"):
                total = self.demands.count(expression)
                demands = self.demands.find_many(expression, skip=pagination.skip, limit=pagination.limit)

            summaries = self._summaries(demands)

            span.set_attributes({"demand.total": total, "demand.returned": len(demands)})
            return DemandPage(
                items=[self._view(demand, summaries) for demand in demands],
                total=total,
                pagination=pagination,
                filters=filters
            )

    def get_by_id(self, demand_id: str) -> DemandView:
        """Fetch one demand with its buyer and seller summaries."""
        with tracer.start_as_current_span("demand.get", attributes={"demand.id": demand_id}):
            demand = self._get(demand_id)
            return self._view(demand, self._summaries([demand]))

    def update(self, user_context: UserContext, demand_id: str, patch: Dict[str, Any]) -> Demand:
        """Apply allow-listed field changes for the owner or an admin."""
        with tracer.start_as_current_span(
            "demand.update",
            attributes={"demand.id": demand_id, "user.role": user_context.role}
        ):
            demand = self._get(demand_id)
            demand_domain.authorize_modification(demand, user_context)
            demand_domain.ensure_updatable(demand, user_context)

            changes = demand_domain.extract_update_fields(patch)
            if not changes:
                return demand

            # Admins may edit in any state; everyone else races against transitions
            expected_status = None if user_context.is_admin() else DemandStatus.OPEN

            with self._datastore("update"):
                updated = self.demands.update_fields(demand_id, changes, expected_status)

            if updated is None:
                self._raise_conflict(demand_id, "Can only update demand while it is open")

            logger.info(
                "Demand updated",
                extra={"demand_id": demand_id, "fields": sorted(changes), "user_id": user_context.user_id}
            )
            return updated

    def cancel(self, user_context: UserContext, demand_id: str) -> Demand:
        """Move an open demand to cancelled."""
        with tracer.start_as_current_span(
            "demand.cancel",
            attributes={"demand.id": demand_id, "user.role": user_context.role}
        ):
            demand = self._get(demand_id)
            demand_domain.authorize_modification(demand, user_context)
            demand_domain.ensure_cancellable(demand)

            with self._datastore("cancel"):
                cancelled = self.demands.transition(
                    demand_id,
                    DemandStatus.OPEN,
                    {"status": DemandStatus.CANCELLED.value}
                )

            if cancelled is None:
                self._raise_conflict(demand_id, "Can only cancel an open demand")

            logger.info("Demand cancelled", extra={"demand_id": demand_id, "user_id": user_context.user_id})
            return cancelled

    def respond(self, user_context: UserContext, demand_id: str, payload: Dict[str, Any]) -> RespondResult:
        """
        Accept or reject an open demand as a farmer.

        The transition is committed first; the buyer is notified afterwards and
        notification failures never undo or fail the response.
        """
        with tracer.start_as_current_span(
            "demand.respond",
            attributes={"demand.id": demand_id, "user.id": str(user_context.user_id)}
        ) as span:
            demand_domain.authorize_respond(user_context)
            request = demand_domain.parse_respond_request(payload)

            demand = self._get(demand_id)
            demand_domain.ensure_respondable(demand)

            transition = demand_domain.build_response_transition(request, user_context)
            span.set_attribute("demand.action", transition.action.value)

            with self._datastore("respond"):
                updated = self.demands.transition(
                    demand_id,
                    DemandStatus.OPEN,
                    transition.changes,
                    seller_note=transition.seller_note
                )

            if updated is None:
                span.set_status(Status(StatusCode.ERROR, "Demand no longer open"))
                self._raise_conflict(demand_id, "Cannot respond to a demand that is not open")

            logger.info(
                "Demand responded",
                extra={
                    "demand_id": demand_id,
                    "action": transition.action.value,
                    "seller": user_context.user_id
                }
            )

            self._notify_buyer(updated, transition.action, user_context)

            return RespondResult(
                demand=updated,
                message=demand_domain.response_message(transition.action),
                action=transition.action
            )

    def _farmer_name(self, user_context: UserContext) -> Optional[str]:
        if user_context.name:
            return user_context.name
        try:
            farmer = self.users.get_summary(user_context.user_id)
        except Exception as e:
            logger.warning(f"Farmer lookup failed: {e}", extra={"user_id": user_context.user_id})
            return None
        return farmer.name if farmer else None

    def _notify_buyer(self, demand: Demand, action: DemandAction, user_context: UserContext) -> None:
        """Notify the buyer in-app, then by email and push when reachable."""
        content = demand_domain.build_response_notification(
            demand, action, self._farmer_name(user_context)
        )

        try:
            self.dispatcher.notify_in_app(
                demand.buyer, content.type, content.title, content.message, content.data
            )
        except Exception as e:
            logger.error(
                f"In-app notification failed: {e}",
                extra={"demand_id": demand.id, "buyer": demand.buyer},
                exc_info=True
            )

        try:
            buyer = self.users.get_summary(demand.buyer)
        except Exception as e:
            logger.warning(f"Buyer lookup failed: {e}", extra={"buyer": demand.buyer})
            return

        if buyer is None:
            return

        messages = []
        if buyer.email:
            messages.append((buyer.email, content.email_subject, content.message, content.data))
        if buyer.push_token:
            messages.append((buyer.push_token, content.title, content.message, content.data))
        if messages:
            self.dispatcher.notify_external_all(messages)
