"""Single-use redemption barcodes backed by loyalty points.

Creating a barcode debits the owner's points, cancelling it refunds them.
Using one moves no points: its value is taken off an order total, and a
zero-point ``barcode_used`` entry is logged for audit.

Locks are always taken user first, then barcode.
"""

import logging
import secrets
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.utils import timezone
from django.utils.translation import gettext as _

from apps.accounts.services import lock_user
from apps.audit.services import record_audit
from apps.barcodes.models import BARCODE_TRANSITIONS, Barcode, BarcodeStatus
from apps.common.db import transactional
from apps.common.exceptions import (
    AuthorizationError,
    BarcodeAlreadyUsedError,
    BarcodeCancelledError,
    BarcodeExpiredError,
    InsufficientPointsError,
    InternalError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from apps.loyalty import services as loyalty
from apps.loyalty.models import LoyaltyTransactionType

logger = logging.getLogger(__name__)

CODE_PREFIX = "LP"
BASE36_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _base36(value):
    digits = ""
    while value:
        value, remainder = divmod(value, 36)
        digits = BASE36_DIGITS[remainder] + digits
    return digits or "0"


def generate_code():
    stamp = _base36(int(timezone.now().timestamp() * 1000))
    return f"{CODE_PREFIX}{stamp}{secrets.token_hex(4).upper()}"


def _unique_code():
    attempts = settings.LOYALTY["BARCODE_CODE_MAX_ATTEMPTS"]
    for attempt in range(attempts):
        code = generate_code()
        if not Barcode.objects.filter(code=code).exists():
            return code
        logger.warning("Barcode code collision on attempt %s: %s", attempt + 1, code)
    raise InternalError(_("Could not generate a unique barcode. Please retry."), facts={"attempts": attempts})


def monetary_value_for(points):
    unit_points = settings.LOYALTY["POINTS_PER_BARCODE_UNIT"]
    unit_value = Decimal(str(settings.LOYALTY["BARCODE_UNIT_VALUE"]))
    return (Decimal(points // unit_points) * unit_value).quantize(Decimal("0.01"))


def validate_points(points):
    unit_points = settings.LOYALTY["POINTS_PER_BARCODE_UNIT"]
    if points is None or points < unit_points:
        raise ValidationError(
            _("The minimum redemption is %(unit)s points.") % {"unit": unit_points},
            facts={"points": points, "minimum": unit_points},
        )
    if points % unit_points != 0:
        raise ValidationError(
            _("Points must be a multiple of %(unit)s.") % {"unit": unit_points},
            facts={"points": points, "multiple_of": unit_points},
        )
    return points


def _transition(barcode, new_status):
    if new_status not in BARCODE_TRANSITIONS[barcode.status]:
        raise InvalidTransitionError(
            facts={"current_status": barcode.status, "requested_status": new_status},
        )
    barcode.status = new_status


def check_usable(barcode, now=None):
    now = now or timezone.now()
    if barcode.status == BarcodeStatus.USED:
        raise BarcodeAlreadyUsedError(
            facts={"used_at": barcode.used_at, "used_by": barcode.used_by_id},
        )
    if barcode.is_expired(now):
        raise BarcodeExpiredError(facts={"expires_at": barcode.expires_at})
    if barcode.status == BarcodeStatus.CANCELLED:
        raise BarcodeCancelledError(facts={"cancelled_at": barcode.cancelled_at})


@transactional
def create_barcode(*, user, points):
    points = validate_points(points)
    owner = lock_user(user.pk)
    if owner.loyalty_points < points:
        raise InsufficientPointsError(
            _("Your balance is %(balance)s points, you cannot redeem %(points)s points.")
            % {"balance": owner.loyalty_points, "points": points},
            facts={"balance": owner.loyalty_points, "requested": points},
        )

    barcode = Barcode.objects.create(
        code=_unique_code(),
        owner=owner,
        points_value=points,
        monetary_value=monetary_value_for(points),
        status=BarcodeStatus.ACTIVE,
        expires_at=timezone.now() + timedelta(days=settings.LOYALTY["BARCODE_TTL_DAYS"]),
    )
    loyalty.debit(
        user_id=owner.pk,
        points=points,
        reason=_("Redeemed %(points)s points for barcode %(code)s") % {"points": points, "code": barcode.code},
        transaction_type=LoyaltyTransactionType.REDEMPTION,
        barcode=barcode,
    )
    record_audit(
        actor=user,
        action="barcode.create",
        entity_type="barcode",
        entity_id=barcode.id,
        payload={"points": points, "monetary_value": barcode.monetary_value},
    )
    logger.info("Barcode %s created for user %s (%s points)", barcode.code, owner.pk, points)
    return barcode


@transactional
def use_barcode(*, code, user, order=None):
    lock_user(user.pk)
    barcode = Barcode.objects.select_for_update().filter(code=code).first()
    if barcode is None:
        raise NotFoundError(_("Barcode not found."), facts={"code": code})

    check_usable(barcode)
    _transition(barcode, BarcodeStatus.USED)
    barcode.used_at = timezone.now()
    barcode.used_by = user
    barcode.order = order
    barcode.save(update_fields=["status", "used_at", "used_by", "order", "updated_at"])

    loyalty.record_barcode_use(
        user_id=user.pk,
        barcode=barcode,
        order=order,
        reason=_("Used barcode worth %(value)s") % {"value": barcode.monetary_value},
    )
    record_audit(
        actor=user,
        action="barcode.use",
        entity_type="barcode",
        entity_id=barcode.id,
        payload={"order_id": getattr(order, "pk", None), "monetary_value": barcode.monetary_value},
    )
    logger.info("Barcode %s used by user %s", barcode.code, user.pk)
    return barcode


def validate_barcode(code):
    """Read-only check for UI confirmation; ``use_barcode`` re-checks under lock."""
    barcode = Barcode.objects.select_related("owner").filter(code=code).first()
    if barcode is None:
        raise NotFoundError(_("Barcode not found."), facts={"code": code})
    check_usable(barcode)
    return barcode


@transactional
def cancel_barcode(*, barcode_id, user):
    lock_user(user.pk)
    barcode = Barcode.objects.select_for_update().filter(pk=barcode_id).first()
    if barcode is None:
        raise NotFoundError(_("Barcode not found."), facts={"barcode_id": str(barcode_id)})
    if barcode.owner_id != user.pk:
        raise AuthorizationError(_("Only the owner can cancel this barcode."))
    if barcode.status == BarcodeStatus.USED:
        raise BarcodeAlreadyUsedError(
            _("A used barcode cannot be cancelled."),
            facts={"used_at": barcode.used_at, "used_by": barcode.used_by_id},
        )
    if barcode.status == BarcodeStatus.CANCELLED:
        raise BarcodeCancelledError(_("This barcode is already cancelled."), facts={"cancelled_at": barcode.cancelled_at})

    _transition(barcode, BarcodeStatus.CANCELLED)
    barcode.cancelled_at = timezone.now()
    barcode.save(update_fields=["status", "cancelled_at", "updated_at"])

    loyalty.refund(
        user_id=user.pk,
        points=barcode.points_value,
        reason=_("Cancelled barcode %(code)s, %(points)s points returned")
        % {"code": barcode.code, "points": barcode.points_value},
        barcode=barcode,
    )
    record_audit(
        actor=user,
        action="barcode.cancel",
        entity_type="barcode",
        entity_id=barcode.id,
        payload={"refunded_points": barcode.points_value},
    )
    logger.info("Barcode %s cancelled, %s points refunded to user %s", barcode.code, barcode.points_value, user.pk)
    return barcode
