import logging
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.utils import timezone
from django.utils.translation import gettext as _

from apps.audit.services import record_audit
from apps.common.db import ensure_atomic, transactional
from apps.common.exceptions import AccountBlockedError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

User = get_user_model()


def lock_user(user_id):
    ensure_atomic("lock_user")
    user = User.objects.select_for_update().filter(pk=user_id).first()
    if user is None:
        raise NotFoundError(_("User not found."), facts={"user_id": user_id})
    return user


def ensure_not_blocked(user):
    if user is not None and user.is_blocked:
        raise AccountBlockedError(facts={"user_id": user.pk, "blocked_at": user.blocked_at})


def credit_wallet(*, user_id, amount):
    amount = Decimal(amount).quantize(Decimal("0.01"))
    if amount <= 0:
        return None
    user = lock_user(user_id)
    user.wallet_balance = (user.wallet_balance + amount).quantize(Decimal("0.01"))
    user.save(update_fields=["wallet_balance"])
    logger.info("Wallet of user %s credited with %s", user.pk, amount)
    return user


@transactional
def toggle_block(*, actor, user_id, reason=""):
    user = lock_user(user_id)
    if user.pk == actor.pk:
        raise ValidationError(_("You cannot block your own account."))

    user.is_blocked = not user.is_blocked
    if user.is_blocked:
        user.block_reason = reason or _("Blocked by an administrator")
        user.blocked_at = timezone.now()
        user.blocked_by = actor
    else:
        user.block_reason = ""
        user.blocked_at = None
        user.blocked_by = None
        user.suspicious_activity = False
        user.suspension_warning_count = 0
    user.save(update_fields=[
        "is_blocked",
        "block_reason",
        "blocked_at",
        "blocked_by",
        "suspicious_activity",
        "suspension_warning_count",
    ])

    record_audit(
        actor=actor,
        action="accounts.block" if user.is_blocked else "accounts.unblock",
        entity_type="user",
        entity_id=user.pk,
        payload={"reason": reason},
    )
    logger.info("User %s %s by %s", user.pk, "blocked" if user.is_blocked else "unblocked", actor.pk)
    return user
