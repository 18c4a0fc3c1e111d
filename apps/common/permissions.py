from rest_framework.permissions import BasePermission

from apps.accounts.models import UserRole


ROLE_CAPABILITIES = {
    UserRole.ADMIN: {
        "orders.create",
        "orders.view.own",
        "orders.view.all",
        "orders.transition",
        "orders.cancel.own",
        "orders.review",
        "returns.create",
        "returns.view.own",
        "returns.view.all",
        "returns.resolve",
        "barcodes.manage.own",
        "barcodes.use",
        "barcodes.view.all",
        "loyalty.view.own",
        "loyalty.adjust",
        "inventory.view",
        "delivery.view",
        "accounts.block",
        "notifications.view",
    },
    UserRole.STAFF: {
        "orders.view.own",
        "orders.view.all",
        "orders.transition",
        "returns.view.all",
        "barcodes.use",
        "inventory.view",
        "delivery.view",
        "notifications.view",
    },
    UserRole.CUSTOMER: {
        "orders.create",
        "orders.view.own",
        "orders.cancel.own",
        "returns.create",
        "returns.view.own",
        "barcodes.manage.own",
        "barcodes.use",
        "loyalty.view.own",
        "delivery.view",
        "notifications.view",
    },
}


def resolve_role(user):
    group_names = set(user.groups.values_list("name", flat=True))
    for role in (UserRole.ADMIN, UserRole.STAFF, UserRole.CUSTOMER):
        if role in group_names:
            return role
    return getattr(user, "role", UserRole.CUSTOMER)


def has_capability(user, capability):
    if not user or not user.is_authenticated:
        return False
    return capability in ROLE_CAPABILITIES.get(resolve_role(user), set())


class RolePermission(BasePermission):
    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        capability_map = getattr(view, "capability_map", {})
        action = getattr(view, "action", None) or request.method.lower()
        required = capability_map.get(action) or capability_map.get(request.method.lower()) or set()
        if not required:
            return True

        user_caps = ROLE_CAPABILITIES.get(resolve_role(request.user), set())
        return all(cap in user_caps for cap in required)
