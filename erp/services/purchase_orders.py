"""
Purchase order lifecycle: create, approve, cancel and receipt status.
"""

import logging
from datetime import date
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from erp.config.settings import get_settings
from erp.exceptions import BusinessRuleError, ConflictError, NotFoundError
from erp.models import GoodsReceivedNote, Product, PurchaseOrder, PurchaseOrderItem, Supplier
from erp.models.base import _utc_now
from erp.services.audit import SYSTEM_CONTEXT, RequestContext, record_audit
from erp.services.calculations import ZERO, round_money, to_decimal
from erp.services.document_numbers import PURCHASE_ORDER, next_document_number
from erp.services.po_grn_validation import po_completion_status

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = ("draft", "approved")


def tax_type_for(supplier_state: Optional[str], company_state: str) -> str:
    """IGST for inter-state supplies, CGST+SGST within the company's state."""
    if supplier_state and supplier_state.strip().lower() != company_state.strip().lower():
        return "IGST"
    return "CGST+SGST"


def _snapshot(po: PurchaseOrder) -> dict:
    return {
        "status": po.status,
        "total_amount": po.total_amount,
        "total_tax": po.total_tax,
        "grand_total": po.grand_total,
        "approved_by": po.approved_by,
    }


async def get_purchase_order(db: AsyncSession, purchase_order_id: int) -> PurchaseOrder:
    """Load a PO with its items, products and cost header."""
    result = await db.execute(
        select(PurchaseOrder)
        .options(
            selectinload(PurchaseOrder.items).joinedload(PurchaseOrderItem.product),
            selectinload(PurchaseOrder.supplier),
            selectinload(PurchaseOrder.costs),
        )
        .where(PurchaseOrder.id == purchase_order_id)
        .execution_options(populate_existing=True)
    )
    po = result.scalar_one_or_none()
    if po is None:
        raise NotFoundError("Purchase Order", purchase_order_id)
    return po


async def list_purchase_orders(
    db: AsyncSession,
    status: Optional[str] = None,
    supplier_id: Optional[int] = None,
    include_cancelled: bool = False,
    skip: int = 0,
    limit: int = 100,
) -> list[PurchaseOrder]:
    query = select(PurchaseOrder).options(
        selectinload(PurchaseOrder.items).joinedload(PurchaseOrderItem.product),
        selectinload(PurchaseOrder.supplier),
    )

    if status:
        query = query.where(PurchaseOrder.status == status)
    elif not include_cancelled:
        query = query.where(PurchaseOrder.status != "cancelled")
    if supplier_id is not None:
        query = query.where(PurchaseOrder.supplier_id == supplier_id)

    query = query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def create_purchase_order(
    db: AsyncSession,
    supplier_id: int,
    items: list[dict],
    context: RequestContext = SYSTEM_CONTEXT,
    **header: Any,
) -> PurchaseOrder:
    """
    Create a draft purchase order.

    Args:
        supplier_id: Supplier the goods are ordered from
        items: Dicts with product_id, quantity, unit_price and optional
            unit and tax_percentage
        context: Acting user and request details for the audit trail
        **header: Optional header fields (delivery_date, addresses, terms, notes, currency)

    Raises:
        NotFoundError: Supplier or product does not exist
        BusinessRuleError: Supplier inactive, no items or duplicate products
    """
    settings = get_settings()

    supplier = await db.get(Supplier, supplier_id)
    if supplier is None or supplier.is_deleted:
        raise NotFoundError("Supplier", supplier_id)
    if not supplier.is_active:
        raise BusinessRuleError(f"Supplier {supplier.company_name} is inactive")

    if not items:
        raise BusinessRuleError("A purchase order needs at least one item")

    product_ids = [item["product_id"] for item in items]
    if len(set(product_ids)) != len(product_ids):
        raise BusinessRuleError("Each product may appear only once on a purchase order")

    result = await db.execute(select(Product).where(Product.id.in_(product_ids)))
    products = {p.id: p for p in result.scalars().all()}
    missing = [pid for pid in product_ids if pid not in products]
    if missing:
        raise NotFoundError("Product", missing[0])

    po_number = await next_document_number(db, PURCHASE_ORDER)

    po = PurchaseOrder(
        po_number=po_number,
        supplier_id=supplier_id,
        status="draft",
        order_date=header.pop("order_date", None) or date.today(),
        tax_type=tax_type_for(supplier.state, settings.company_state),
        currency=header.pop("currency", None) or settings.base_currency,
        created_by=context.user_id,
        **{k: v for k, v in header.items() if v is not None},
    )

    total_amount = ZERO
    total_tax = ZERO
    for item in items:
        quantity = to_decimal(item["quantity"])
        unit_price = to_decimal(item["unit_price"])
        tax_percentage = to_decimal(item.get("tax_percentage"), to_decimal(settings.default_gst_rate))

        amount = round_money(quantity * unit_price)
        tax_amount = round_money(amount * tax_percentage / 100)
        total_amount += amount
        total_tax += tax_amount

        po.items.append(
            PurchaseOrderItem(
                product_id=item["product_id"],
                quantity=quantity,
                unit=item.get("unit") or products[item["product_id"]].unit,
                unit_price=unit_price,
                tax_percentage=tax_percentage,
                amount=amount,
                tax_amount=tax_amount,
            )
        )

    po.total_amount = total_amount
    po.total_tax = total_tax
    po.grand_total = total_amount + total_tax

    db.add(po)
    await db.flush()

    await record_audit(
        db, "purchase_orders", po.id, "create", context,
        new_values=_snapshot(po), reference=po.po_number,
    )
    await db.commit()

    logger.info(f"Created purchase order {po.po_number} for supplier {supplier_id}")
    return await get_purchase_order(db, po.id)


async def approve_purchase_order(
    db: AsyncSession,
    purchase_order_id: int,
    context: RequestContext = SYSTEM_CONTEXT,
) -> PurchaseOrder:
    po = await get_purchase_order(db, purchase_order_id)
    if po.status != "draft":
        raise ConflictError(f"Purchase Order status is '{po.status}'. Only draft POs can be approved.")

    before = _snapshot(po)
    po.status = "approved"
    po.approved_by = context.user_id
    po.approved_at = _utc_now()

    await record_audit(
        db, "purchase_orders", po.id, "approve", context,
        old_values=before, new_values=_snapshot(po), reference=po.po_number,
    )
    await db.commit()

    logger.info(f"Approved purchase order {po.po_number}")
    return await get_purchase_order(db, po.id)


async def cancel_purchase_order(
    db: AsyncSession,
    purchase_order_id: int,
    context: RequestContext = SYSTEM_CONTEXT,
) -> PurchaseOrder:
    po = await get_purchase_order(db, purchase_order_id)
    if po.status not in CANCELLABLE_STATUSES:
        raise ConflictError(f"Purchase Order status is '{po.status}' and cannot be cancelled")

    open_grns = await db.scalar(
        select(func.count(GoodsReceivedNote.id)).where(
            GoodsReceivedNote.purchase_order_id == po.id,
            GoodsReceivedNote.status != "cancelled",
        )
    )
    if open_grns:
        raise ConflictError(
            f"Purchase Order {po.po_number} has {open_grns} goods receipt(s); cancel them first"
        )

    before = _snapshot(po)
    po.status = "cancelled"
    po.cancelled_at = _utc_now()

    await record_audit(
        db, "purchase_orders", po.id, "cancel", context,
        old_values=before, new_values=_snapshot(po), reference=po.po_number,
    )
    await db.commit()

    logger.info(f"Cancelled purchase order {po.po_number}")
    return await get_purchase_order(db, po.id)


async def refresh_receipt_status(
    db: AsyncSession,
    purchase_order_id: int,
    context: RequestContext = SYSTEM_CONTEXT,
) -> str:
    """
    Move an approved PO between approved, partially_received and completed.

    Called inside the GRN transaction after receipts change; does not commit.
    A status change is audited as ``receipt_status``.
    """
    po = await db.get(PurchaseOrder, purchase_order_id)
    if po is None or po.status in ("draft", "cancelled"):
        return po.status if po is not None else "missing"

    completion = await po_completion_status(db, purchase_order_id)
    new_status = {
        "completed": "completed",
        "partial": "partially_received",
        "pending": "approved",
    }[completion["overall_status"]]

    if new_status != po.status:
        logger.info(f"Purchase order {po.po_number}: {po.status} -> {new_status}")
        before = _snapshot(po)
        po.status = new_status
        await record_audit(
            db, "purchase_orders", po.id, "receipt_status", context,
            old_values=before, new_values=_snapshot(po), reference=po.po_number,
        )
    return new_status
