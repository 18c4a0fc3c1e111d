"""Order status graph.

Every status change goes through :func:`check_transition`. Edges in
``RETURN_FLOW_EDGES`` are driven only by the returns coordinator.
"""

from django.utils.translation import gettext_lazy as _

from apps.common.exceptions import InvalidTransitionError
from apps.orders.models import OrderStatus

S = OrderStatus

ORDER_TRANSITIONS = {
    S.PENDING: {S.PAYMENT_PENDING, S.CONFIRMED, S.PREPARING, S.CANCELLED},
    S.PAYMENT_PENDING: {S.CONFIRMED, S.PREPARING, S.CANCELLED},
    S.CONFIRMED: {S.PREPARING, S.CANCELLED},
    S.PREPARING: {S.READY},
    S.READY: {S.OUT_FOR_DELIVERY},
    S.OUT_FOR_DELIVERY: {S.DELIVERED},
    S.DELIVERED: {S.RETURN_REQUESTED, S.RETURNED, S.CANCELLED},
    S.RETURN_REQUESTED: {S.RETURNED, S.DELIVERED},
    S.CANCELLED: set(),
    S.RETURNED: set(),
}

RETURN_FLOW_EDGES = {
    (S.DELIVERED, S.RETURN_REQUESTED),
    (S.RETURN_REQUESTED, S.RETURNED),
    (S.RETURN_REQUESTED, S.DELIVERED),
}

# Stock is reserved, not yet taken off the shelf.
RESERVATION_STATUSES = {S.PENDING, S.PAYMENT_PENDING}
FULFILLMENT_ENTRY_STATUSES = {S.CONFIRMED, S.PREPARING}
PRE_DELIVERY_STATUSES = {S.PENDING, S.PAYMENT_PENDING, S.CONFIRMED, S.PREPARING, S.READY, S.OUT_FOR_DELIVERY}

CUSTOMER_CANCELLABLE = {S.PENDING, S.CONFIRMED, S.PAYMENT_PENDING}
CANCELLATION_REFUSALS = {
    S.PREPARING: _("Sorry, the order is being prepared and can no longer be cancelled."),
    S.READY: _("Sorry, the order is ready for delivery and can no longer be cancelled."),
    S.OUT_FOR_DELIVERY: _("Sorry, the order is on its way and can no longer be cancelled."),
    S.DELIVERED: _("The order has already been delivered. You can request a return instead."),
    S.CANCELLED: _("The order is already cancelled."),
    S.RETURN_REQUESTED: _("A return is already in progress for this order."),
    S.RETURNED: _("The order has already been returned."),
}


def check_transition(current, new, *, return_flow=False):
    allowed = new in ORDER_TRANSITIONS.get(current, set())
    if allowed and ((current, new) in RETURN_FLOW_EDGES) != return_flow:
        allowed = False
    if not allowed:
        raise InvalidTransitionError(
            _("Cannot move an order from %(current)s to %(new)s.") % {"current": current, "new": new},
            facts={"current_status": current, "requested_status": new},
        )


def cancellation_refusal(status):
    """Return ``None`` when the customer may cancel, otherwise the reason why not."""
    if status in CUSTOMER_CANCELLABLE:
        return None
    return CANCELLATION_REFUSALS.get(status, _("This order cannot be cancelled."))
