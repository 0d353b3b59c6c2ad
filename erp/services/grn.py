"""
Goods received note lifecycle.

Creating a GRN validates it against the purchase order, books every accepted
line into inventory as a new batch and refreshes the PO receipt status, all
in one transaction.
"""

import logging
from datetime import date
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from erp.exceptions import ConflictError, NotFoundError, ValidationFailedError
from erp.models import GoodsReceivedNote, GRNItem, InventoryBatch, PurchaseOrderItem
from erp.models.base import _utc_now
from erp.services.audit import SYSTEM_CONTEXT, RequestContext, record_audit
from erp.services.calculations import ZERO, round_money, to_decimal
from erp.services.document_numbers import GOODS_RECEIVED_NOTE, next_document_number
from erp.services.inventory import adjust_stock, record_movement
from erp.services.po_grn_validation import resolve_quantities, validate_grn_against_po
from erp.services.purchase_orders import refresh_receipt_status

logger = logging.getLogger(__name__)

VERIFIABLE_STATUSES = ("received",)
APPROVABLE_STATUSES = ("received", "verified")
CANCELLABLE_STATUSES = ("received", "verified")


def _snapshot(grn: GoodsReceivedNote) -> dict:
    return {
        "status": grn.status,
        "total_amount": grn.total_amount,
        "verified_by": grn.verified_by,
        "approved_by": grn.approved_by,
    }


async def get_grn(db: AsyncSession, grn_id: int) -> GoodsReceivedNote:
    result = await db.execute(
        select(GoodsReceivedNote)
        .options(selectinload(GoodsReceivedNote.items))
        .where(GoodsReceivedNote.id == grn_id)
        .execution_options(populate_existing=True)
    )
    grn = result.scalar_one_or_none()
    if grn is None:
        raise NotFoundError("GRN", grn_id)
    return grn


async def list_grns(
    db: AsyncSession,
    status: Optional[str] = None,
    purchase_order_id: Optional[int] = None,
    supplier_id: Optional[int] = None,
    skip: int = 0,
    limit: int = 100,
) -> list[GoodsReceivedNote]:
    query = select(GoodsReceivedNote).options(selectinload(GoodsReceivedNote.items))
    if status:
        query = query.where(GoodsReceivedNote.status == status)
    if purchase_order_id is not None:
        query = query.where(GoodsReceivedNote.purchase_order_id == purchase_order_id)
    if supplier_id is not None:
        query = query.where(GoodsReceivedNote.supplier_id == supplier_id)

    query = query.order_by(GoodsReceivedNote.created_at.desc(), GoodsReceivedNote.id.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def create_grn(
    db: AsyncSession,
    purchase_order_id: int,
    supplier_id: int,
    items: list[dict[str, Any]],
    context: RequestContext = SYSTEM_CONTEXT,
    **header: Any,
) -> tuple[GoodsReceivedNote, dict]:
    """
    Validate and book a goods receipt.

    Args:
        purchase_order_id: PO the goods are received against
        supplier_id: Supplier delivering the goods
        items: GRN lines (product_id, location_id, received/accepted/rejected
            quantities, unit_price, optional serial numbers and dates)
        context: Acting user and request details for the audit trail
        **header: lr_number, supplier_invoice_number, supplier_invoice_date, notes, grn_date

    Returns:
        The created GRN and the validation result (carrying any warnings)

    Raises:
        ValidationFailedError: If PO-GRN validation reports errors
    """
    validation = await validate_grn_against_po(db, purchase_order_id, supplier_id, items)
    if not validation["is_valid"]:
        raise ValidationFailedError("GRN validation failed", validation)

    ordered = {
        row.product_id: row.quantity
        for row in (
            await db.execute(
                select(PurchaseOrderItem).where(PurchaseOrderItem.purchase_order_id == purchase_order_id)
            )
        ).scalars()
    }

    grn_number = await next_document_number(db, GOODS_RECEIVED_NOTE)
    grn_date = header.pop("grn_date", None) or date.today()

    grn = GoodsReceivedNote(
        grn_number=grn_number,
        purchase_order_id=purchase_order_id,
        supplier_id=supplier_id,
        grn_date=grn_date,
        status="received",
        received_by=context.user_id,
        validation_warnings=validation["warnings"] or None,
        **{k: v for k, v in header.items() if v is not None},
    )

    total_amount = ZERO
    for item in items:
        received, accepted, rejected = resolve_quantities(item)
        unit_price = to_decimal(item["unit_price"])
        total_amount += received * unit_price

        grn.items.append(
            GRNItem(
                product_id=item["product_id"],
                location_id=item["location_id"],
                ordered_quantity=ordered.get(item["product_id"], ZERO),
                received_quantity=received,
                accepted_quantity=accepted,
                rejected_quantity=rejected,
                unit_price=unit_price,
                serial_numbers=item.get("serial_numbers"),
                warranty_start_date=item.get("warranty_start_date"),
                warranty_end_date=item.get("warranty_end_date"),
                expiry_date=item.get("expiry_date"),
                notes=item.get("notes"),
            )
        )
    grn.total_amount = round_money(total_amount)

    db.add(grn)
    await db.flush()

    # Book accepted quantities into inventory
    for line_number, grn_item in enumerate(grn.items, start=1):
        accepted = to_decimal(grn_item.accepted_quantity)
        if accepted <= ZERO:
            continue

        db.add(
            InventoryBatch(
                batch_number=f"{grn_number}/{line_number:02d}",
                product_id=grn_item.product_id,
                location_id=grn_item.location_id,
                supplier_id=supplier_id,
                purchase_order_id=purchase_order_id,
                grn_item_id=grn_item.id,
                purchase_date=grn_date,
                expiry_date=grn_item.expiry_date,
                warranty_end_date=grn_item.warranty_end_date,
                received_quantity=accepted,
                available_quantity=accepted,
                purchase_price=grn_item.unit_price,
                landed_cost_per_unit=grn_item.unit_price,
            )
        )
        await adjust_stock(db, grn_item.product_id, grn_item.location_id, accepted)
        record_movement(
            db,
            product_id=grn_item.product_id,
            quantity=accepted,
            movement_type="in",
            reference_type="GRN",
            reference_id=grn_number,
            to_location_id=grn_item.location_id,
            created_by=context.user_id,
        )

    await db.flush()
    await refresh_receipt_status(db, purchase_order_id, context)

    await record_audit(
        db, "goods_received_notes", grn.id, "create", context,
        new_values=_snapshot(grn), reference=grn_number,
    )
    await db.commit()

    logger.info(
        f"Created GRN {grn_number} against PO {purchase_order_id} "
        f"with {len(items)} line(s), {len(validation['warnings'])} warning(s)"
    )
    return await get_grn(db, grn.id), validation


async def _transition(
    db: AsyncSession,
    grn_id: int,
    allowed: tuple[str, ...],
    new_status: str,
    action: str,
    context: RequestContext,
) -> GoodsReceivedNote:
    grn = await get_grn(db, grn_id)
    if grn.status not in allowed:
        raise ConflictError(f"GRN {grn.grn_number} is '{grn.status}' and cannot be {action}")

    before = _snapshot(grn)
    grn.status = new_status
    now = _utc_now()
    if new_status == "verified":
        grn.verified_by = context.user_id
        grn.verified_at = now
    elif new_status == "approved":
        grn.approved_by = context.user_id
        grn.approved_at = now

    await record_audit(
        db, "goods_received_notes", grn.id, new_status, context,
        old_values=before, new_values=_snapshot(grn), reference=grn.grn_number,
    )
    await db.commit()

    logger.info(f"GRN {grn.grn_number} {new_status}")
    return await get_grn(db, grn.id)


async def verify_grn(db: AsyncSession, grn_id: int, context: RequestContext = SYSTEM_CONTEXT) -> GoodsReceivedNote:
    return await _transition(db, grn_id, VERIFIABLE_STATUSES, "verified", "verified", context)


async def approve_grn(db: AsyncSession, grn_id: int, context: RequestContext = SYSTEM_CONTEXT) -> GoodsReceivedNote:
    return await _transition(db, grn_id, APPROVABLE_STATUSES, "approved", "approved", context)


async def cancel_grn(db: AsyncSession, grn_id: int, context: RequestContext = SYSTEM_CONTEXT) -> GoodsReceivedNote:
    """
    Cancel a GRN that has not been approved and reverse the stock it booked.

    Raises:
        ConflictError: GRN is approved/cancelled, or stock from it has been used
    """
    grn = await get_grn(db, grn_id)
    if grn.status not in CANCELLABLE_STATUSES:
        raise ConflictError(f"GRN {grn.grn_number} is '{grn.status}' and cannot be cancelled")

    item_ids = [item.id for item in grn.items]
    result = await db.execute(
        select(InventoryBatch)
        .where(InventoryBatch.grn_item_id.in_(item_ids))
        .with_for_update(of=InventoryBatch)
    )
    batches = list(result.unique().scalars().all())

    consumed = [b.batch_number for b in batches if b.status != "active" or not b.is_untouched]
    if consumed:
        raise ConflictError(
            f"GRN {grn.grn_number} cannot be cancelled; stock already used from batch(es) {', '.join(consumed)}"
        )

    before = _snapshot(grn)
    for batch in batches:
        quantity = to_decimal(batch.received_quantity)
        batch.available_quantity = ZERO
        batch.status = "cancelled"
        await adjust_stock(db, batch.product_id, batch.location_id, -quantity)
        record_movement(
            db,
            product_id=batch.product_id,
            quantity=quantity,
            movement_type="out",
            reference_type="GRN_CANCEL",
            reference_id=grn.grn_number,
            from_location_id=batch.location_id,
            created_by=context.user_id,
        )

    grn.status = "cancelled"
    grn.cancelled_at = _utc_now()
    await db.flush()
    await refresh_receipt_status(db, grn.purchase_order_id, context)

    await record_audit(
        db, "goods_received_notes", grn.id, "cancel", context,
        old_values=before, new_values=_snapshot(grn), reference=grn.grn_number,
    )
    await db.commit()

    logger.info(f"Cancelled GRN {grn.grn_number}; reversed {len(batches)} batch(es)")
    return await get_grn(db, grn.id)
