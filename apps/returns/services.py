"""Return/reversal coordinator.

A return request restocks the returned units right away and parks the order
in ``return_requested``. Approval refunds money to the wallet and reverses
the delivery points. Rejection takes the units back out of stock and puts the
order back to ``delivered``.
"""

import logging
import secrets
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.utils import timezone
from django.utils.translation import gettext as _

from apps.accounts.services import credit_wallet
from apps.audit.services import record_audit
from apps.common.db import transactional
from apps.common.exceptions import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    ReturnAlreadyResolvedError,
    ReturnWindowElapsedError,
    ValidationError,
)
from apps.inventory import services as inventory
from apps.loyalty import services as loyalty
from apps.notifications.services import notify
from apps.orders.models import Order, OrderStatus
from apps.orders.services import apply_transition
from apps.returns.models import RETURN_TRANSITIONS, Return, ReturnLine, ReturnStatus

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
SUFFIX_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def generate_return_code(now=None):
    now = now or timezone.now()
    suffix = "".join(secrets.choice(SUFFIX_ALPHABET) for _position in range(5))
    return f"RET{int(now.timestamp() * 1000)}{suffix}"


def return_window_open(order, now=None):
    if order.delivered_at is None:
        return False
    now = now or timezone.now()
    return now - order.delivered_at <= timedelta(days=settings.RETURNS["WINDOW_DAYS"])


def compute_refund(order):
    """Return ``(border_fee, shipping_fee, refund_amount)`` for ``order``."""
    border_fee = order.border_fee if order.border_fee is not None else Decimal(str(settings.RETURNS["BORDER_FEE"]))
    shipping_fee = order.shipping_fee or Decimal(str(settings.RETURNS["DEFAULT_SHIPPING_FEE"]))
    refund = max(order.total - border_fee - shipping_fee, Decimal("0"))
    return border_fee.quantize(CENTS), shipping_fee.quantize(CENTS), refund.quantize(CENTS)


def _returned_lines(order, items):
    if not items:
        raise ValidationError(_("Select at least one item to return."))
    ordered = {str(line.product_id): line for line in order.lines.all()}
    lines = []
    seen = set()
    for item in items:
        product_id = str(item["product_id"])
        line = ordered.get(product_id)
        if line is None:
            raise ValidationError(_("This product is not part of the order."), facts={"product_id": product_id})
        if product_id in seen:
            raise ValidationError(_("Each product can only be listed once."), facts={"product_id": product_id})
        seen.add(product_id)
        quantity = int(item["quantity"])
        if quantity <= 0 or quantity > line.quantity:
            raise ValidationError(
                _("Return quantity must be between 1 and %(ordered)s.") % {"ordered": line.quantity},
                facts={"product_id": product_id, "ordered": line.quantity, "requested": quantity},
            )
        lines.append((line, quantity))
    return sorted(lines, key=lambda pair: str(pair[0].product_id))


@transactional
def create_return(*, order_id, user, items, reason, notes=""):
    if not reason:
        raise ValidationError(_("A reason is required."))

    order = Order.objects.select_for_update().filter(pk=order_id).first()
    if order is None:
        raise NotFoundError(_("Order not found."), facts={"order_id": order_id})
    if order.user_id != user.pk:
        raise AuthorizationError(_("You can only return your own orders."))
    if order.status != OrderStatus.DELIVERED:
        raise InvalidTransitionError(
            _("Only delivered orders can be returned."),
            facts={"current_status": order.status, "requested_status": OrderStatus.RETURN_REQUESTED},
        )
    now = timezone.now()
    if not return_window_open(order, now):
        raise ReturnWindowElapsedError(
            facts={"delivered_at": order.delivered_at, "days": (now - order.delivered_at).days},
        )

    lines = _returned_lines(order, items)
    border_fee, shipping_fee, refund_amount = compute_refund(order)
    return_request = Return.objects.create(
        code=generate_return_code(now),
        order=order,
        user=user,
        reason=reason[:255],
        notes=notes,
        total_amount=order.total,
        border_fee=border_fee,
        shipping_fee=shipping_fee,
        refund_amount=refund_amount,
        points_to_deduct=order.points_earned,
    )
    ReturnLine.objects.bulk_create(
        [
            ReturnLine(return_request=return_request, product_id=line.product_id, quantity=quantity, unit_price=line.unit_price)
            for line, quantity in lines
        ]
    )

    if order.branch_id:
        for line, quantity in lines:
            inventory.restock(
                branch_id=order.branch_id,
                product_id=line.product_id,
                qty=quantity,
                reference=("return", return_request.pk),
                actor=user,
            )
    apply_transition(order, OrderStatus.RETURN_REQUESTED, actor=user, return_flow=True)

    record_audit(
        actor=user,
        action="return.create",
        entity_type="return",
        entity_id=return_request.pk,
        payload={"order_id": order.pk, "refund_amount": refund_amount, "points_to_deduct": order.points_earned},
    )
    notify(
        event="return_requested",
        title=_("Return %(code)s requested for order %(order)s") % {"code": return_request.code, "order": order.code},
        payload={"return_id": return_request.pk, "order_id": order.pk, "refund_amount": refund_amount},
    )
    logger.info("Return %s created for order %s (refund %s)", return_request.code, order.code, refund_amount)
    return return_request


@transactional
def update_return_status(*, return_id, status, actor, admin_notes=""):
    if status not in RETURN_TRANSITIONS[ReturnStatus.PENDING]:
        raise ValidationError(_("Status must be approved or rejected."), facts={"status": status})

    return_request = Return.objects.select_for_update().filter(pk=return_id).first()
    if return_request is None:
        raise NotFoundError(_("Return not found."), facts={"return_id": str(return_id)})
    if return_request.status != ReturnStatus.PENDING:
        raise ReturnAlreadyResolvedError(
            facts={"status": return_request.status, "resolved_at": return_request.resolved_at},
        )

    order = Order.objects.select_for_update().get(pk=return_request.order_id)
    if status == ReturnStatus.APPROVED:
        credit_wallet(user_id=return_request.user_id, amount=return_request.refund_amount)
        if return_request.points_to_deduct:
            loyalty.deduct(
                user_id=return_request.user_id,
                points=return_request.points_to_deduct,
                reason=_("Points reversed for return %(code)s") % {"code": return_request.code},
                order=order,
            )
        apply_transition(order, OrderStatus.RETURNED, actor=actor, return_flow=True)
    else:
        if order.branch_id:
            for line in sorted(return_request.lines.all(), key=lambda line: str(line.product_id)):
                inventory.unrestock(
                    branch_id=order.branch_id,
                    product_id=line.product_id,
                    qty=line.quantity,
                    reference=("return", return_request.pk),
                    actor=actor,
                )
        apply_transition(order, OrderStatus.DELIVERED, actor=actor, return_flow=True)

    return_request.status = status
    return_request.admin_notes = admin_notes
    return_request.resolved_by = actor
    return_request.resolved_at = timezone.now()
    return_request.save(update_fields=["status", "admin_notes", "resolved_by", "resolved_at", "updated_at"])

    record_audit(
        actor=actor,
        action=f"return.{status}",
        entity_type="return",
        entity_id=return_request.pk,
        payload={"order_id": order.pk, "refund_amount": return_request.refund_amount, "admin_notes": admin_notes},
    )
    notify(
        event=f"return_{status}",
        title=_("Your return %(code)s was %(status)s") % {"code": return_request.code, "status": return_request.get_status_display()},
        payload={"return_id": return_request.pk, "order_id": order.pk, "status": status},
        user=return_request.user_id,
    )
    logger.info("Return %s %s by %s", return_request.code, status, actor.pk)
    return return_request
