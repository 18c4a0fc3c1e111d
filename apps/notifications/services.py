"""Fire-and-forget notification port.

``notify`` never takes part in the caller's unit of work: delivery is queued
with ``transaction.on_commit`` so nothing is sent for a rolled back
operation, and it is attempted at most once. A failed delivery is logged and
dropped.

``inbox_for`` scopes both the inbox listing and the read marks.
"""

import json
import logging
from functools import partial

from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction
from django.db.models import Q
from django.utils.translation import gettext as _

from apps.common.exceptions import NotFoundError
from apps.common.permissions import has_capability
from apps.notifications.models import Notification

logger = logging.getLogger(__name__)


def _deliver(*, event, title, payload, user_id):
    try:
        Notification.objects.create(user_id=user_id, event=event, title=title, payload=payload)
    except Exception:
        logger.warning("Notification %s for user %s dropped", event, user_id, exc_info=True)


def notify(*, event, title, payload=None, user=None):
    payload = json.loads(json.dumps(payload or {}, cls=DjangoJSONEncoder))
    user_id = getattr(user, "pk", user)
    transaction.on_commit(partial(_deliver, event=event, title=str(title), payload=payload, user_id=user_id))


def inbox_for(user):
    """Notifications ``user`` may read: their own, plus back-office ones for staff."""
    scope = Q(user=user)
    if has_capability(user, "orders.view.all"):
        scope |= Q(user__isnull=True)
    return Notification.objects.filter(scope)


def mark_read(*, user, notification_id):
    notification = inbox_for(user).filter(pk=notification_id).first()
    if notification is None:
        raise NotFoundError(_("Notification not found."), facts={"notification_id": str(notification_id)})
    if not notification.is_read:
        notification.is_read = True
        notification.save(update_fields=["is_read"])
    return notification


def mark_all_read(*, user):
    updated = inbox_for(user).filter(is_read=False).update(is_read=True)
    logger.info("User %s marked %s notifications as read", user.pk, updated)
    return updated


def unread_count(user):
    return inbox_for(user).filter(is_read=False).count()
