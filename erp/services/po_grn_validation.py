"""
PO-GRN validation.

Reconciles a goods receipt against its purchase order before the receipt is
booked, and reports how much of a purchase order has been received so far.

Rules:
- The PO must exist and be open for receiving (approved or partially received)
- The GRN supplier must be the PO supplier
- Every received product must be on the PO and go to a known location
- Received quantity must be positive
- Receiving more than ordered (across all non-cancelled GRNs) is an
  over-receipt warning, or an error when ``block_over_receipt`` is set
- Unit price deviating from the PO price beyond the tolerance is a warning
- accepted + rejected must equal received (within the quantity tolerance)
"""

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from erp.config.settings import get_settings
from erp.models import GoodsReceivedNote, GRNItem, Location, Product, PurchaseOrder, PurchaseOrderItem, Supplier
from erp.services.calculations import HUNDRED, ZERO, as_float, percentage, to_decimal

logger = logging.getLogger(__name__)

RECEIVABLE_PO_STATUSES = ("approved", "partially_received")


def _new_result() -> dict:
    return {
        "is_valid": True,
        "errors": [],
        "warnings": [],
        "summary": {
            "total_items": 0,
            "validated_items": 0,
            "over_receipts": 0,
            "price_variances": 0,
            "quantity_mismatches": 0,
            "supplier_mismatch": False,
        },
    }


def _finalise(result: dict) -> dict:
    if result["errors"]:
        result["is_valid"] = False
    summary = result["summary"]
    summary["validation_passed"] = result["is_valid"]
    summary["total_warnings"] = len(result["warnings"])
    summary["total_errors"] = len(result["errors"])
    return result


def _warning(kind: str, product_id: int, product_name: Optional[str], message: str) -> dict:
    return {"type": kind, "product_id": product_id, "product_name": product_name, "message": message}


def price_variance_percent(po_price: Decimal, grn_price: Decimal) -> Decimal:
    """Absolute deviation of the GRN price from the PO price, in percent of the PO price."""
    if po_price == ZERO:
        return ZERO if grn_price == ZERO else HUNDRED
    return abs(grn_price - po_price) / po_price * HUNDRED


def resolve_quantities(item: dict) -> tuple[Decimal, Decimal, Decimal]:
    """
    Return (received, accepted, rejected) for a GRN line.

    Rejected defaults to zero; accepted defaults to received - rejected.
    """
    received = to_decimal(item.get("received_quantity"))
    rejected = to_decimal(item.get("rejected_quantity"))
    accepted = item.get("accepted_quantity")
    accepted = received - rejected if accepted is None else to_decimal(accepted)
    return received, accepted, rejected


async def received_quantities(
    db: AsyncSession,
    purchase_order_id: int,
    exclude_grn_id: Optional[int] = None,
) -> dict[int, dict[str, Decimal]]:
    """Sum received/accepted/rejected per product over the PO's non-cancelled GRNs."""
    query = (
        select(
            GRNItem.product_id,
            func.sum(GRNItem.received_quantity),
            func.sum(GRNItem.accepted_quantity),
            func.sum(GRNItem.rejected_quantity),
        )
        .join(GoodsReceivedNote, GoodsReceivedNote.id == GRNItem.grn_id)
        .where(
            GoodsReceivedNote.purchase_order_id == purchase_order_id,
            GoodsReceivedNote.status != "cancelled",
        )
        .group_by(GRNItem.product_id)
    )
    if exclude_grn_id is not None:
        query = query.where(GoodsReceivedNote.id != exclude_grn_id)

    result = await db.execute(query)
    return {
        product_id: {
            "total_received": to_decimal(received),
            "total_accepted": to_decimal(accepted),
            "total_rejected": to_decimal(rejected),
        }
        for product_id, received, accepted, rejected in result.all()
    }


async def _po_items(db: AsyncSession, purchase_order_id: int) -> list[tuple[PurchaseOrderItem, str]]:
    result = await db.execute(
        select(PurchaseOrderItem, Product.name)
        .join(Product, Product.id == PurchaseOrderItem.product_id)
        .where(PurchaseOrderItem.purchase_order_id == purchase_order_id)
        .order_by(PurchaseOrderItem.id)
    )
    return list(result.all())


async def validate_grn_against_po(
    db: AsyncSession,
    purchase_order_id: int,
    supplier_id: int,
    items: list[dict[str, Any]],
    exclude_grn_id: Optional[int] = None,
) -> dict:
    """
    Validate a goods receipt against its purchase order.

    Args:
        purchase_order_id: PO the goods are received against
        supplier_id: Supplier named on the GRN
        items: GRN lines (product_id, location_id, received_quantity,
            accepted_quantity, rejected_quantity, unit_price)
        exclude_grn_id: GRN whose own lines must not count as existing receipts

    Returns:
        Dict with is_valid, errors (strings), warnings (typed dicts) and summary
    """
    settings = get_settings()
    tolerance = to_decimal(settings.price_variance_tolerance_percent)
    quantity_tolerance = to_decimal(settings.quantity_tolerance)
    result = _new_result()

    po = await db.get(PurchaseOrder, purchase_order_id)
    if po is None:
        result["errors"].append("Purchase Order not found")
        return _finalise(result)

    if po.status not in RECEIVABLE_PO_STATUSES:
        result["errors"].append(
            f"Purchase Order status is '{po.status}'. Only approved POs can receive goods."
        )

    if po.supplier_id != supplier_id:
        po_supplier = await db.get(Supplier, po.supplier_id)
        po_supplier_name = po_supplier.company_name if po_supplier else po.supplier_id
        result["errors"].append(
            f"Supplier mismatch. PO supplier: {po_supplier_name}, GRN supplier: {supplier_id}"
        )
        result["summary"]["supplier_mismatch"] = True

    po_items = {
        item.product_id: {
            "ordered_quantity": to_decimal(item.quantity),
            "unit_price": to_decimal(item.unit_price),
            "product_name": product_name,
        }
        for item, product_name in await _po_items(db, purchase_order_id)
    }
    existing = await received_quantities(db, purchase_order_id, exclude_grn_id)

    location_ids = {item.get("location_id") for item in items if item.get("location_id") is not None}
    known_locations: set[int] = set()
    if location_ids:
        rows = await db.execute(select(Location.id).where(Location.id.in_(location_ids)))
        known_locations = set(rows.scalars().all())

    # Quantity received on earlier lines of this same GRN
    receiving_now: dict[int, Decimal] = defaultdict(lambda: ZERO)

    result["summary"]["total_items"] = len(items)

    for grn_item in items:
        product_id = grn_item.get("product_id")
        po_item = po_items.get(product_id)

        if po_item is None:
            result["errors"].append(f"Product ID {product_id} not found in Purchase Order")
            continue

        result["summary"]["validated_items"] += 1
        product_name = po_item["product_name"]
        received, accepted, rejected = resolve_quantities(grn_item)

        location_id = grn_item.get("location_id")
        if location_id not in known_locations:
            result["errors"].append(f"Location ID {location_id} not found for {product_name}")

        if received <= ZERO:
            result["errors"].append(f"Invalid received quantity for {product_name}")

        # Over-receipt across all receipts of this PO
        receiving_now[product_id] += received
        previously_received = existing.get(product_id, {}).get("total_received", ZERO)
        new_total_received = previously_received + receiving_now[product_id]
        ordered = po_item["ordered_quantity"]

        if new_total_received > ordered:
            excess = new_total_received - ordered
            message = (
                f"Over-receipt detected for {product_name}. Ordered: {as_float(ordered)}, "
                f"Total Receiving: {as_float(new_total_received)}, Excess: {as_float(excess)}"
            )
            if settings.block_over_receipt:
                result["errors"].append(message)
            else:
                result["warnings"].append(_warning("over_receipt", product_id, product_name, message))
            result["summary"]["over_receipts"] += 1

        # Price variance against the PO price
        grn_price = to_decimal(grn_item.get("unit_price"))
        variance = price_variance_percent(po_item["unit_price"], grn_price)
        if variance > tolerance:
            result["warnings"].append(
                _warning(
                    "price_variance",
                    product_id,
                    product_name,
                    f"Price variance for {product_name}. PO Price: {as_float(po_item['unit_price'])}, "
                    f"GRN Price: {as_float(grn_price)}, Variance: {variance:.2f}%",
                )
            )
            result["summary"]["price_variances"] += 1

        # accepted + rejected must add up to received
        if abs((accepted + rejected) - received) > quantity_tolerance:
            result["warnings"].append(
                _warning(
                    "quantity_mismatch",
                    product_id,
                    product_name,
                    f"Quantity mismatch for {product_name}. Received: {as_float(received)}, "
                    f"Accepted + Rejected: {as_float(accepted + rejected)}",
                )
            )
            result["summary"]["quantity_mismatches"] += 1

    _finalise(result)
    if not result["is_valid"]:
        logger.info(
            f"GRN validation against PO {purchase_order_id} failed with {len(result['errors'])} error(s)"
        )
    return result


async def validate_grn_update(db: AsyncSession, grn_id: int, items: list[dict[str, Any]]) -> dict:
    """Validate replacement lines for an existing, not yet approved GRN."""
    grn = await db.get(GoodsReceivedNote, grn_id)
    if grn is None:
        result = _new_result()
        result["errors"].append("GRN not found")
        return _finalise(result)

    if grn.status in ("approved", "cancelled"):
        result = _new_result()
        result["errors"].append(f"Cannot modify {grn.status} GRN")
        return _finalise(result)

    return await validate_grn_against_po(
        db,
        purchase_order_id=grn.purchase_order_id,
        supplier_id=grn.supplier_id,
        items=items,
        exclude_grn_id=grn.id,
    )


async def po_completion_status(db: AsyncSession, purchase_order_id: int) -> dict:
    """
    Report received vs ordered quantities for every PO line.

    Returns per-item progress plus overall completion percentage and status
    (pending, partial, completed). Cancelled GRNs are ignored.
    """
    received = await received_quantities(db, purchase_order_id)

    completion = {
        "po_id": purchase_order_id,
        "items": [],
        "overall_status": "pending",
        "completion_percentage": 0.0,
        "fully_received_items": 0,
        "partially_received_items": 0,
        "pending_items": 0,
    }

    total_ordered = ZERO
    total_received = ZERO

    for po_item, product_name in await _po_items(db, purchase_order_id):
        totals = received.get(po_item.product_id, {})
        ordered_qty = to_decimal(po_item.quantity)
        received_qty = totals.get("total_received", ZERO)

        if received_qty >= ordered_qty:
            status = "completed"
            completion["fully_received_items"] += 1
        elif received_qty > ZERO:
            status = "partial"
            completion["partially_received_items"] += 1
        else:
            status = "pending"
            completion["pending_items"] += 1

        completion["items"].append(
            {
                "product_id": po_item.product_id,
                "product_name": product_name,
                "ordered_quantity": as_float(ordered_qty),
                "received_quantity": as_float(received_qty),
                "accepted_quantity": as_float(totals.get("total_accepted", ZERO)),
                "rejected_quantity": as_float(totals.get("total_rejected", ZERO)),
                "pending_quantity": as_float(max(ZERO, ordered_qty - received_qty)),
                "completion_percentage": as_float(percentage(received_qty, ordered_qty), 2),
                "status": status,
            }
        )

        total_ordered += ordered_qty
        total_received += received_qty

    overall = percentage(total_received, total_ordered)
    completion["completion_percentage"] = as_float(overall, 2)
    # An over-received line must not mask another line that is still open
    items_open = completion["partially_received_items"] + completion["pending_items"]
    if completion["items"] and items_open == 0:
        completion["overall_status"] = "completed"
    elif total_received > ZERO:
        completion["overall_status"] = "partial"

    return completion
