from django.utils.translation import gettext as _

from apps.catalog.models import Branch, Product
from apps.common.exceptions import ValidationError


def resolve_products(product_ids):
    """Return ``{product_id: Product}`` for active products, rejecting unknown ids."""
    wanted = {str(product_id) for product_id in product_ids}
    products = {str(product.id): product for product in Product.objects.filter(id__in=wanted, is_active=True)}
    missing = sorted(wanted - set(products))
    if missing:
        raise ValidationError(_("Some products do not exist or are not available."), facts={"product_ids": missing})
    return products


def resolve_branch(branch_id):
    if branch_id is None:
        return None
    branch = Branch.objects.filter(id=branch_id, is_active=True).first()
    if branch is None:
        raise ValidationError(_("Branch does not exist or is inactive."), facts={"branch_id": str(branch_id)})
    return branch
