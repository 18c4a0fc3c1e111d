import json

from django.core.serializers.json import DjangoJSONEncoder

from apps.audit.models import AuditLog


def record_audit(*, actor, action, entity_type, entity_id, payload=None):
    """Append an audit row inside the caller's transaction.

    ``actor`` may be ``None`` for guest checkouts and system jobs. The payload
    is normalised through the Django JSON encoder so Decimals and datetimes
    can be passed as-is.
    """
    if actor is not None and not getattr(actor, "is_authenticated", False):
        actor = None
    return AuditLog.objects.create(
        actor=actor,
        actor_role=getattr(actor, "role", "") if actor else "",
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        payload=json.loads(json.dumps(payload or {}, cls=DjangoJSONEncoder)),
    )
