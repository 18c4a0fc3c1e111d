import logging

from django.utils.translation import gettext as _

from apps.common.db import ensure_atomic
from apps.common.exceptions import DeliverySlotFullError, ValidationError
from apps.delivery.models import DeliverySlot

logger = logging.getLogger(__name__)


def hold_slot(*, slot_id):
    ensure_atomic("delivery.hold_slot")
    slot = DeliverySlot.objects.select_for_update().filter(pk=slot_id).first()
    if slot is None:
        logger.info("Delivery slot %s not found, hold skipped", slot_id)
        return None
    if slot.current_orders >= slot.max_orders:
        raise DeliverySlotFullError(
            _("Delivery slot is full."),
            facts={"slot_id": str(slot.pk), "max_orders": slot.max_orders, "current_orders": slot.current_orders},
        )
    slot.current_orders += 1
    slot.save(update_fields=["current_orders"])
    return slot


def release_slot(*, slot_id):
    ensure_atomic("delivery.release_slot")
    slot = DeliverySlot.objects.select_for_update().filter(pk=slot_id).first()
    if slot is None:
        return None
    slot.current_orders = max(slot.current_orders - 1, 0)
    slot.save(update_fields=["current_orders"])
    return slot


def resolve_slot(slot_id):
    if not slot_id:
        return None
    slot = DeliverySlot.objects.filter(pk=slot_id, is_active=True).first()
    if slot is None:
        raise ValidationError(_("Delivery slot does not exist or is inactive."), facts={"slot_id": str(slot_id)})
    return slot
