"""Loyalty ledger.

Each mutation locks the owner's account row, appends exactly one
``LoyaltyTransaction`` and re-derives the cached ``User.loyalty_points`` from
the ledger in the same transaction.
"""

import logging

from django.contrib.auth import get_user_model
from django.db.models import Sum
from django.db.models.functions import Coalesce
from django.utils.translation import gettext as _

from apps.accounts.services import lock_user
from apps.audit.services import record_audit
from apps.common.db import ensure_atomic, transactional
from apps.common.exceptions import InsufficientPointsError, ValidationError
from apps.loyalty.models import LoyaltyTransaction, LoyaltyTransactionType

logger = logging.getLogger(__name__)


def ledger_balance(user_id):
    return LoyaltyTransaction.objects.filter(user_id=user_id).aggregate(total=Coalesce(Sum("amount"), 0))["total"]


def _positive(points):
    if points is None or int(points) <= 0:
        raise ValidationError(_("Points must be greater than 0."), facts={"points": points})
    return int(points)


def _append(user, *, amount, requested_amount, transaction_type, description, order=None, barcode=None):
    entry = LoyaltyTransaction.objects.create(
        user=user,
        amount=amount,
        requested_amount=requested_amount,
        transaction_type=transaction_type,
        description=description[:255],
        order=order,
        barcode=barcode,
    )
    user.loyalty_points = ledger_balance(user.pk)
    user.save(update_fields=["loyalty_points"])
    logger.info(
        "Loyalty %s for user %s: %+d (requested %+d), balance %s",
        transaction_type,
        user.pk,
        amount,
        requested_amount,
        user.loyalty_points,
    )
    return entry


def earn(*, user_id, points, reason, order=None):
    ensure_atomic("loyalty.earn")
    points = _positive(points)
    user = lock_user(user_id)
    return _append(
        user,
        amount=points,
        requested_amount=points,
        transaction_type=LoyaltyTransactionType.EARNED,
        description=reason,
        order=order,
    )


def refund(*, user_id, points, reason, order=None, barcode=None):
    ensure_atomic("loyalty.refund")
    points = _positive(points)
    user = lock_user(user_id)
    return _append(
        user,
        amount=points,
        requested_amount=points,
        transaction_type=LoyaltyTransactionType.REFUND,
        description=reason,
        order=order,
        barcode=barcode,
    )


def deduct(*, user_id, points, reason, order=None):
    """Remove up to ``points``; the balance floors at zero."""
    ensure_atomic("loyalty.deduct")
    points = _positive(points)
    user = lock_user(user_id)
    applied = min(points, user.loyalty_points)
    return _append(
        user,
        amount=-applied,
        requested_amount=-points,
        transaction_type=LoyaltyTransactionType.DEDUCT,
        description=reason,
        order=order,
    )


def debit(*, user_id, points, reason, transaction_type=LoyaltyTransactionType.DEBIT, order=None, barcode=None):
    """Spend ``points``; unlike ``deduct`` the full amount must be available."""
    ensure_atomic("loyalty.debit")
    points = _positive(points)
    user = lock_user(user_id)
    if user.loyalty_points < points:
        raise InsufficientPointsError(
            _("Your balance is %(balance)s points, you cannot spend %(points)s points.")
            % {"balance": user.loyalty_points, "points": points},
            facts={"balance": user.loyalty_points, "requested": points},
        )
    return _append(
        user,
        amount=-points,
        requested_amount=-points,
        transaction_type=transaction_type,
        description=reason,
        order=order,
        barcode=barcode,
    )


def record_barcode_use(*, user_id, barcode, reason, order=None):
    ensure_atomic("loyalty.record_barcode_use")
    user = lock_user(user_id)
    return _append(
        user,
        amount=0,
        requested_amount=0,
        transaction_type=LoyaltyTransactionType.BARCODE_USED,
        description=reason,
        order=order,
        barcode=barcode,
    )


@transactional
def adjust(*, actor, user_id, points, reason):
    points = int(points or 0)
    if points == 0:
        raise ValidationError(_("Adjustment cannot be zero."))
    if not reason:
        raise ValidationError(_("A reason is required for manual adjustments."))

    user = lock_user(user_id)
    applied = points if points > 0 else -min(-points, user.loyalty_points)
    entry = _append(
        user,
        amount=applied,
        requested_amount=points,
        transaction_type=LoyaltyTransactionType.ADJUSTMENT,
        description=reason,
    )
    record_audit(
        actor=actor,
        action="loyalty.adjust",
        entity_type="user",
        entity_id=user.pk,
        payload={"requested": points, "applied": applied, "reason": reason},
    )
    return entry


def find_mismatches():
    """Yield ``(user, cached, ledger)`` for accounts whose cache drifted from the ledger."""
    users = get_user_model().objects.annotate(ledger=Coalesce(Sum("loyalty_transactions__amount"), 0))
    for user in users.iterator():
        if user.loyalty_points != user.ledger:
            yield user, user.loyalty_points, user.ledger
