"""Order state machine.

Creation, staff transitions and customer cancellations each run as one unit
of work. Rows are locked in a fixed order: the order, stock rows sorted by
product, the delivery slot, the customer account, then any barcode.
"""

import logging
import math
import secrets
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import DatabaseError, transaction
from django.db.models import Count, F, Q
from django.utils import timezone
from django.utils.translation import gettext as _

from apps.accounts.services import ensure_not_blocked, lock_user
from apps.audit.services import record_audit
from apps.barcodes import services as barcodes
from apps.catalog.services import resolve_branch, resolve_products
from apps.common.db import transactional
from apps.common.exceptions import AuthorizationError, InternalError, InvalidTransitionError, NotFoundError, ValidationError
from apps.delivery import services as delivery
from apps.inventory import services as inventory
from apps.loyalty import services as loyalty
from apps.notifications.services import notify
from apps.orders.models import Coupon, CouponUsage, Order, OrderLine, OrderStatus
from apps.orders.transitions import (
    FULFILLMENT_ENTRY_STATUSES,
    PRE_DELIVERY_STATUSES,
    RESERVATION_STATUSES,
    cancellation_refusal,
    check_transition,
)

logger = logging.getLogger(__name__)

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
GUEST_PREFIX = "guest-"
CENTS = Decimal("0.01")


def generate_order_code(now=None):
    now = now or timezone.now()
    suffix = "".join(secrets.choice(CODE_ALPHABET) for _position in range(5))
    return f"ORD-{now:%y%m%d}-{suffix}"


def _unique_order_code():
    attempts = settings.ORDERS["CODE_MAX_ATTEMPTS"]
    for _attempt in range(attempts):
        code = generate_order_code()
        if not Order.objects.filter(code=code).exists():
            return code
    raise InternalError(_("Could not generate a unique order code. Please retry."), facts={"attempts": attempts})


def _validate_items(items):
    if not items:
        raise ValidationError(_("The order must contain at least one item."))
    seen = set()
    for item in items:
        product_id = str(item["product_id"])
        if product_id in seen:
            raise ValidationError(
                _("The same product cannot appear in several lines."), facts={"product_id": product_id}
            )
        seen.add(product_id)
        if int(item["quantity"]) <= 0:
            raise ValidationError(_("Quantity must be greater than 0."), facts={"product_id": product_id})
        if Decimal(item["unit_price"]) < 0:
            raise ValidationError(_("Unit price cannot be negative."), facts={"product_id": product_id})


def _stock_lines(order):
    # Sorted by product so concurrent orders lock stock rows in the same order.
    return sorted(order.lines.all(), key=lambda line: str(line.product_id))


def _for_each_stock_line(order, operation, actor):
    if order.branch_id is None:
        return
    for line in _stock_lines(order):
        operation(
            branch_id=order.branch_id,
            product_id=line.product_id,
            qty=line.quantity,
            reference=("order", order.pk),
            actor=actor,
        )


def create_order(
    *,
    user,
    items,
    total,
    branch_id=None,
    payment_method="cod",
    delivery_slot_id=None,
    redemption_code="",
    coupon_code="",
    coupon_discount=Decimal("0"),
    points_to_spend=0,
    shipping_fee=Decimal("0"),
    shipping_info=None,
    guest_reference="",
):
    """Validate the request, then place the order in a single transaction.

    ``user`` is ``None`` for guest checkout; guests may not spend points or
    redeem barcodes.
    """
    if user is not None and not getattr(user, "is_authenticated", False):
        user = None
    if user is None:
        guest_reference = guest_reference or f"{GUEST_PREFIX}{secrets.token_hex(6)}"
        if not guest_reference.startswith(GUEST_PREFIX):
            raise ValidationError(_("Guest references must start with 'guest-'."))
        if points_to_spend or redemption_code:
            raise ValidationError(_("Sign in to use loyalty points or barcodes."))
    else:
        ensure_not_blocked(user)
        guest_reference = ""

    total = Decimal(total).quantize(CENTS)
    if total <= 0:
        raise ValidationError(_("A valid total amount is required."), facts={"total": total})
    points_to_spend = int(points_to_spend or 0)
    if points_to_spend < 0:
        raise ValidationError(_("Points to spend cannot be negative."))

    _validate_items(items)
    products = resolve_products([item["product_id"] for item in items])
    branch = resolve_branch(branch_id)
    slot = delivery.resolve_slot(delivery_slot_id)

    return _place_order(
        user=user,
        guest_reference=guest_reference,
        branch=branch,
        lines=[
            {
                "product": products[str(item["product_id"])],
                "quantity": int(item["quantity"]),
                "unit_price": Decimal(item["unit_price"]).quantize(CENTS),
            }
            for item in items
        ],
        total=total,
        payment_method=payment_method or "cod",
        delivery_slot_id=slot.pk if slot else None,
        redemption_code=(redemption_code or "").strip(),
        coupon_code=(coupon_code or "").strip().upper(),
        coupon_discount=Decimal(coupon_discount or 0).quantize(CENTS),
        points_to_spend=points_to_spend,
        shipping_fee=Decimal(shipping_fee or 0).quantize(CENTS),
        shipping_info=shipping_info,
    )


@transactional
def _place_order(
    *,
    user,
    guest_reference,
    branch,
    lines,
    total,
    payment_method,
    delivery_slot_id,
    redemption_code,
    coupon_code,
    coupon_discount,
    points_to_spend,
    shipping_fee,
    shipping_info,
):
    subtotal = sum((line["unit_price"] * line["quantity"] for line in lines), Decimal("0")).quantize(CENTS)
    order = Order.objects.create(
        code=_unique_order_code(),
        user=user,
        guest_reference=guest_reference,
        branch=branch,
        delivery_slot_id=delivery_slot_id,
        status=OrderStatus.PENDING,
        payment_method=payment_method,
        subtotal=subtotal,
        shipping_fee=shipping_fee,
        total=total,
        shipping_info=shipping_info,
    )
    OrderLine.objects.bulk_create(
        [
            OrderLine(
                order=order,
                position=position,
                product=line["product"],
                quantity=line["quantity"],
                unit_price=line["unit_price"],
            )
            for position, line in enumerate(lines, start=1)
        ]
    )

    _for_each_stock_line(order, inventory.reserve, user)
    if delivery_slot_id:
        delivery.hold_slot(slot_id=delivery_slot_id)

    if points_to_spend:
        loyalty.debit(
            user_id=user.pk,
            points=points_to_spend,
            reason=_("Points spent on order %(code)s") % {"code": order.code},
            order=order,
        )
        order.points_spent = points_to_spend

    if redemption_code:
        barcode = barcodes.use_barcode(code=redemption_code, user=user, order=order)
        order.redemption_code = barcode.code
        order.barcode_discount = barcode.monetary_value

    order.save(update_fields=["points_spent", "redemption_code", "barcode_discount", "updated_at"])

    if coupon_code and coupon_discount > 0 and user is not None:
        _record_coupon_usage(order, user, coupon_code, coupon_discount)

    record_audit(
        actor=user,
        action="order.create",
        entity_type="order",
        entity_id=order.pk,
        payload={
            "code": order.code,
            "total": order.total,
            "points_spent": order.points_spent,
            "redemption_code": order.redemption_code,
            "guest_reference": guest_reference,
        },
    )
    notify(
        event="order_created",
        title=_("New order %(code)s") % {"code": order.code},
        payload={"order_id": order.pk, "code": order.code, "total": order.total},
    )
    logger.info("Order %s created for %s (total %s)", order.code, user.pk if user else guest_reference, order.total)
    return order


def _record_coupon_usage(order, user, coupon_code, discount):
    """Bookkeeping only: a failure here never aborts the order."""
    try:
        with transaction.atomic():
            coupon = Coupon.objects.get(code=coupon_code, is_active=True)
            CouponUsage.objects.create(coupon=coupon, user=user, order=order, discount_amount=discount)
            Coupon.objects.filter(pk=coupon.pk).update(used_count=F("used_count") + 1)
            order.coupon = coupon
            order.coupon_discount = discount
            order.save(update_fields=["coupon", "coupon_discount", "updated_at"])
    except (Coupon.DoesNotExist, DatabaseError):
        logger.warning("Could not record coupon %s usage for order %s", coupon_code, order.code, exc_info=True)


def _lock_order(order_id):
    order = Order.objects.select_for_update().filter(pk=order_id).first()
    if order is None:
        raise NotFoundError(_("Order not found."), facts={"order_id": order_id})
    return order


def apply_transition(order, new_status, *, actor, return_flow=False, reason=""):
    """Move a locked order to ``new_status`` and apply its ledger side effects."""
    old_status = order.status
    check_transition(old_status, new_status, return_flow=return_flow)
    now = timezone.now()
    update_fields = ["status", "updated_at"]

    if old_status in RESERVATION_STATUSES and new_status in FULFILLMENT_ENTRY_STATUSES:
        _for_each_stock_line(order, inventory.commit, actor)
        order.confirmed_at = now
        update_fields.append("confirmed_at")

    if new_status == OrderStatus.CANCELLED:
        if old_status in RESERVATION_STATUSES:
            _for_each_stock_line(order, inventory.release, actor)
        else:
            _for_each_stock_line(order, inventory.restock, actor)
        if order.delivery_slot_id and old_status in PRE_DELIVERY_STATUSES:
            delivery.release_slot(slot_id=order.delivery_slot_id)
        if order.user_id and order.points_spent:
            loyalty.refund(
                user_id=order.user_id,
                points=order.points_spent,
                reason=_("Refund of points spent on cancelled order %(code)s") % {"code": order.code},
                order=order,
            )
        if order.user_id and order.points_earned:
            loyalty.deduct(
                user_id=order.user_id,
                points=order.points_earned,
                reason=_("Points reversed for cancelled order %(code)s") % {"code": order.code},
                order=order,
            )
        order.cancelled_at = now
        order.cancellation_reason = reason[:255]
        update_fields += ["cancelled_at", "cancellation_reason"]

    if old_status == OrderStatus.DELIVERED and new_status == OrderStatus.RETURNED:
        _for_each_stock_line(order, inventory.restock, actor)
        if order.user_id and order.points_earned:
            loyalty.deduct(
                user_id=order.user_id,
                points=order.points_earned,
                reason=_("Points reversed for returned order %(code)s") % {"code": order.code},
                order=order,
            )

    if new_status == OrderStatus.RETURNED:
        order.returned_at = now
        update_fields.append("returned_at")

    if new_status == OrderStatus.DELIVERED and order.delivered_at is None:
        order.delivered_at = now
        update_fields += ["delivered_at", "points_earned"]
        points = math.floor(order.total)
        if order.user_id and points > 0:
            loyalty.earn(
                user_id=order.user_id,
                points=points,
                reason=_("Points earned on order %(code)s") % {"code": order.code},
                order=order,
            )
            order.points_earned = points

    order.status = new_status
    order.save(update_fields=update_fields)
    logger.info("Order %s moved from %s to %s", order.code, old_status, new_status)
    return order


@transactional
def transition_order(*, order_id, new_status, actor, reason=""):
    order = _lock_order(order_id)
    old_status = order.status
    apply_transition(order, new_status, actor=actor, reason=reason)
    if new_status == OrderStatus.CANCELLED:
        order.cancelled_by = actor
        order.save(update_fields=["cancelled_by"])

    record_audit(
        actor=actor,
        action="order.transition",
        entity_type="order",
        entity_id=order.pk,
        payload={"from": old_status, "to": new_status, "reason": reason},
    )
    if order.user_id:
        notify(
            event="order_status_changed",
            title=_("Your order %(code)s is now %(status)s") % {"code": order.code, "status": order.get_status_display()},
            payload={"order_id": order.pk, "code": order.code, "status": new_status},
            user=order.user_id,
        )
    return order


def cancellation_window_start(now=None):
    return (now or timezone.now()) - timedelta(days=settings.CANCELLATION_POLICY["WINDOW_DAYS"])


def _apply_cancellation_policy(user_id, now):
    """Flag and eventually block customers who cancel too often."""
    policy = settings.CANCELLATION_POLICY
    # The window count must run under the user lock.
    user = lock_user(user_id)
    recent = Order.objects.filter(
        user_id=user_id,
        cancelled_by_id=user_id,
        status=OrderStatus.CANCELLED,
        cancelled_at__gte=cancellation_window_start(now),
    ).count()
    if recent < policy["FLAG_THRESHOLD"]:
        return None, False

    user.suspicious_activity = True
    user.suspension_warning_count += 1
    user.last_warning_date = now
    update_fields = ["suspicious_activity", "suspension_warning_count", "last_warning_date"]
    blocked = user.suspension_warning_count >= policy["BLOCK_WARNING_THRESHOLD"]
    if blocked and not user.is_blocked:
        user.is_blocked = True
        user.blocked_at = now
        user.block_reason = _("Automatically blocked after repeated order cancellations")
        update_fields += ["is_blocked", "blocked_at", "block_reason"]
    user.save(update_fields=update_fields)

    if blocked:
        logger.warning("User %s blocked after %s cancellation warnings", user_id, user.suspension_warning_count)
        notify(
            event="account_blocked",
            title=_("Customer %(user)s was blocked automatically") % {"user": user.username},
            payload={"user_id": user_id, "warnings": user.suspension_warning_count, "recent_cancellations": recent},
        )
        return _("Your account has been blocked because of repeated cancellations."), True

    logger.info("User %s flagged: %s cancellations in window", user_id, recent)
    remaining = policy["BLOCK_WARNING_THRESHOLD"] - user.suspension_warning_count
    return (
        _("Warning: you cancelled %(count)s orders recently. %(remaining)s more warnings will block your account.")
        % {"count": recent, "remaining": remaining},
        False,
    )


@transactional
def cancel_order(*, order_id, user, reason=""):
    ensure_not_blocked(user)
    order = _lock_order(order_id)
    if order.user_id != user.pk:
        raise AuthorizationError(_("You can only cancel your own orders."))
    refusal = cancellation_refusal(order.status)
    if refusal:
        raise InvalidTransitionError(
            refusal, facts={"current_status": order.status, "requested_status": OrderStatus.CANCELLED}
        )

    old_status = order.status
    refunded_points = order.points_spent
    apply_transition(order, OrderStatus.CANCELLED, actor=user, reason=reason)
    order.cancelled_by = user
    order.save(update_fields=["cancelled_by"])

    now = order.cancelled_at
    warning, account_blocked = _apply_cancellation_policy(user.pk, now)

    record_audit(
        actor=user,
        action="order.cancel",
        entity_type="order",
        entity_id=order.pk,
        payload={"from": old_status, "reason": reason, "refunded_points": refunded_points},
    )
    notify(
        event="order_cancelled",
        title=_("Order %(code)s was cancelled by the customer") % {"code": order.code},
        payload={"order_id": order.pk, "code": order.code, "reason": reason, "previous_status": old_status},
    )
    logger.info("Order %s cancelled by user %s", order.code, user.pk)
    return {
        "order_id": order.pk,
        "refunded_points": refunded_points,
        "warning": warning,
        "account_blocked": account_blocked,
    }


def suspicious_customers(now=None):
    """Customers with at least ``FLAG_THRESHOLD`` self-cancellations in the window."""
    window = Q(
        orders__status=OrderStatus.CANCELLED,
        orders__cancelled_by=F("pk"),
        orders__cancelled_at__gte=cancellation_window_start(now),
    )
    return (
        get_user_model()
        .objects.annotate(recent_cancellations=Count("orders", filter=window))
        .filter(recent_cancellations__gte=settings.CANCELLATION_POLICY["FLAG_THRESHOLD"])
        .order_by("-recent_cancellations", "username")
    )
