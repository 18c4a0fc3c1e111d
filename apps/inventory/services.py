"""Stock ledger: reserve, commit, release and restock per (branch, product).

Every operation locks the ``StockRow`` with ``SELECT ... FOR UPDATE`` and must
run inside the caller's transaction. A missing row means the product is not
tracked at that branch and the operation is skipped.
"""

import logging

from django.utils.translation import gettext as _

from apps.common.db import ensure_atomic
from apps.common.exceptions import InsufficientStockError, ValidationError
from apps.inventory.models import MovementType, StockMovement, StockRow

logger = logging.getLogger(__name__)


def _locked_row(branch_id, product_id):
    return StockRow.objects.select_for_update().filter(branch_id=branch_id, product_id=product_id).first()


def _check_qty(qty):
    if qty is None or int(qty) <= 0:
        raise ValidationError(_("Quantity must be greater than 0."), facts={"quantity": qty})
    return int(qty)


def _record(row, movement_type, stock_delta, reserved_delta, reference, actor):
    reference_type, reference_id = reference
    StockMovement.objects.create(
        stock_row=row,
        movement_type=movement_type,
        stock_delta=stock_delta,
        reserved_delta=reserved_delta,
        reference_type=reference_type,
        reference_id=str(reference_id),
        created_by=actor if getattr(actor, "is_authenticated", False) else None,
    )


def reserve(*, branch_id, product_id, qty, reference, actor=None):
    ensure_atomic("inventory.reserve")
    qty = _check_qty(qty)
    row = _locked_row(branch_id, product_id)
    if row is None:
        logger.info("No stock row for branch %s product %s, reservation skipped", branch_id, product_id)
        return None

    available = row.available_quantity
    if available < qty:
        raise InsufficientStockError(
            _("Insufficient stock. Available: %(available)s") % {"available": available},
            facts={
                "branch_id": str(branch_id),
                "product_id": str(product_id),
                "available": available,
                "requested": qty,
            },
        )
    row.reserved_quantity += qty
    row.save(update_fields=["reserved_quantity", "updated_at"])
    _record(row, MovementType.RESERVED, 0, qty, reference, actor)
    return row


def commit(*, branch_id, product_id, qty, reference, actor=None):
    ensure_atomic("inventory.commit")
    qty = _check_qty(qty)
    row = _locked_row(branch_id, product_id)
    if row is None:
        return None

    released = min(qty, row.reserved_quantity)
    # Units held by other orders stay covered by on-hand stock.
    uncovered = row.stock_quantity - (row.reserved_quantity - released)
    if uncovered < qty:
        raise InsufficientStockError(
            _("Insufficient stock. Available: %(available)s") % {"available": uncovered},
            facts={
                "branch_id": str(branch_id),
                "product_id": str(product_id),
                "available": uncovered,
                "requested": qty,
            },
        )
    row.stock_quantity -= qty
    row.reserved_quantity -= released
    row.save(update_fields=["stock_quantity", "reserved_quantity", "updated_at"])
    _record(row, MovementType.COMMITTED, -qty, -released, reference, actor)
    return row


def release(*, branch_id, product_id, qty, reference, actor=None):
    ensure_atomic("inventory.release")
    qty = _check_qty(qty)
    row = _locked_row(branch_id, product_id)
    if row is None:
        return None

    released = min(qty, row.reserved_quantity)
    row.reserved_quantity -= released
    row.save(update_fields=["reserved_quantity", "updated_at"])
    _record(row, MovementType.RELEASED, 0, -released, reference, actor)
    return row


def restock(*, branch_id, product_id, qty, reference, actor=None):
    ensure_atomic("inventory.restock")
    qty = _check_qty(qty)
    row = _locked_row(branch_id, product_id)
    if row is None:
        return None

    row.stock_quantity += qty
    row.save(update_fields=["stock_quantity", "updated_at"])
    _record(row, MovementType.RESTOCKED, qty, 0, reference, actor)
    return row


def unrestock(*, branch_id, product_id, qty, reference, actor=None):
    """Take back a previous ``restock``; never drops on-hand below what is reserved."""
    ensure_atomic("inventory.unrestock")
    qty = _check_qty(qty)
    row = _locked_row(branch_id, product_id)
    if row is None:
        return None

    removed = min(qty, row.stock_quantity - row.reserved_quantity)
    row.stock_quantity -= removed
    row.save(update_fields=["stock_quantity", "updated_at"])
    _record(row, MovementType.UNRESTOCKED, -removed, 0, reference, actor)
    if removed < qty:
        logger.warning(
            "Restock revert for branch %s product %s clamped: %s of %s units removed",
            branch_id,
            product_id,
            removed,
            qty,
        )
    return row
