"""
Landed cost: recording purchase order costs, allocating them onto the
received batches and reporting on the resulting inventory cost.

Allocation spreads each cost component over the PO's batches pro rata to a
basis (value, quantity, weight or equal shares). Shares are rounded to cents
and the rounding remainder goes to the batch with the largest basis, so the
allocated amounts always add up to the component total.
"""

import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from erp.exceptions import BusinessRuleError, ConflictError, NotFoundError
from erp.models import InventoryBatch, PurchaseOrder, PurchaseOrderCost
from erp.models.base import _utc_now
from erp.services.audit import SYSTEM_CONTEXT, RequestContext, record_audit
from erp.services.calculations import (
    ZERO,
    as_float,
    percentage,
    round_money,
    round_unit_cost,
    to_decimal,
)

logger = logging.getLogger(__name__)

ALLOCATION_METHODS = ("by_value", "by_quantity", "by_weight", "equal")

# Cost header field -> batch field
COST_COMPONENTS = {
    "freight_cost": "freight_cost",
    "insurance_cost": "insurance_cost",
    "customs_duty": "customs_duty",
    "handling_charges": "handling_charges",
    "other_charges": "other_charges",
}

GROUP_BY_OPTIONS = ("product", "location", "supplier", "month")


def allocation_basis(batch: InventoryBatch, method: str) -> Decimal:
    """Weight of a batch when spreading costs with ``method``."""
    quantity = to_decimal(batch.received_quantity)
    if method == "by_value":
        return quantity * to_decimal(batch.purchase_price)
    if method == "by_quantity":
        return quantity
    if method == "by_weight":
        weight = batch.product.weight_kg if batch.product is not None else None
        return quantity * to_decimal(weight)
    if method == "equal":
        return Decimal("1")
    raise BusinessRuleError(f"Unknown allocation method '{method}'")


def prorate(amount: Decimal, bases: list[tuple[Any, Decimal]]) -> dict[Any, Decimal]:
    """
    Split ``amount`` over keyed bases, rounding each share to cents.

    The rounding remainder is assigned to the largest basis (first key on
    ties), so the shares sum exactly to ``round_money(amount)``.

    Raises:
        BusinessRuleError: If the bases sum to zero while ``amount`` is non-zero
    """
    amount = round_money(amount)
    shares = {key: ZERO for key, _ in bases}
    if amount == ZERO or not bases:
        return shares

    total_basis = sum((basis for _, basis in bases), ZERO)
    if total_basis <= ZERO:
        raise BusinessRuleError("Cannot allocate costs: total allocation basis is zero")

    for key, basis in bases:
        shares[key] = round_money(amount * basis / total_basis)

    remainder = amount - sum(shares.values(), ZERO)
    if remainder != ZERO:
        largest_key = max(bases, key=lambda kb: kb[1])[0]
        shares[largest_key] += remainder
    return shares


def compute_landed_cost_per_unit(batch: InventoryBatch) -> Decimal:
    quantity = to_decimal(batch.received_quantity)
    if quantity <= ZERO:
        return to_decimal(batch.purchase_price)
    return round_unit_cost(to_decimal(batch.purchase_price) + batch.total_additional_costs / quantity)


def cost_breakdown(batch: InventoryBatch) -> dict:
    """Per-batch cost components and derived percentages."""
    quantity = to_decimal(batch.received_quantity)
    purchase_price = to_decimal(batch.purchase_price)
    landed = to_decimal(batch.landed_cost_per_unit)
    purchase_value = quantity * purchase_price
    additional = batch.total_additional_costs

    return {
        "batch_id": batch.id,
        "batch_number": batch.batch_number,
        "product_id": batch.product_id,
        "product_name": batch.product_name,
        "location_id": batch.location_id,
        "location_name": batch.location_name,
        "supplier_id": batch.supplier_id,
        "supplier_name": batch.supplier_name,
        "purchase_order_id": batch.purchase_order_id,
        "received_quantity": as_float(quantity, 3),
        "available_quantity": as_float(batch.available_quantity, 3),
        "purchase_price": as_float(purchase_price),
        "freight_cost": as_float(batch.freight_cost, 2),
        "insurance_cost": as_float(batch.insurance_cost, 2),
        "customs_duty": as_float(batch.customs_duty, 2),
        "handling_charges": as_float(batch.handling_charges, 2),
        "other_charges": as_float(batch.other_charges, 2),
        "total_additional_costs": as_float(additional, 2),
        "additional_cost_per_unit": as_float(additional / quantity if quantity > ZERO else ZERO),
        "landed_cost_per_unit": as_float(landed),
        "freight_percentage": as_float(percentage(to_decimal(batch.freight_cost), purchase_value), 2),
        "duty_percentage": as_float(percentage(to_decimal(batch.customs_duty), purchase_value), 2),
        "cost_overhead_percentage": as_float(percentage(landed - purchase_price, purchase_price), 2),
        "cost_allocation_status": batch.cost_allocation_status,
        "cost_allocated_at": batch.cost_allocated_at,
    }


async def get_purchase_order_costs(db: AsyncSession, purchase_order_id: int) -> PurchaseOrderCost:
    result = await db.execute(
        select(PurchaseOrderCost).where(PurchaseOrderCost.purchase_order_id == purchase_order_id)
    )
    costs = result.scalar_one_or_none()
    if costs is None:
        raise NotFoundError("Purchase order costs for PO", purchase_order_id)
    return costs


async def upsert_purchase_order_costs(
    db: AsyncSession,
    purchase_order_id: int,
    values: dict[str, Any],
    context: RequestContext = SYSTEM_CONTEXT,
) -> PurchaseOrderCost:
    """Create or replace the landed cost header of a purchase order."""
    po = await db.get(PurchaseOrder, purchase_order_id)
    if po is None:
        raise NotFoundError("Purchase Order", purchase_order_id)

    method = values.get("allocation_method") or "by_value"
    if method not in ALLOCATION_METHODS:
        raise BusinessRuleError(f"Unknown allocation method '{method}'")
    if values.get("exchange_rate") is not None and to_decimal(values["exchange_rate"]) <= ZERO:
        raise BusinessRuleError("Exchange rate must be greater than zero")

    result = await db.execute(
        select(PurchaseOrderCost).where(PurchaseOrderCost.purchase_order_id == purchase_order_id)
    )
    costs = result.scalar_one_or_none()
    before = None
    if costs is None:
        costs = PurchaseOrderCost(purchase_order_id=purchase_order_id)
        db.add(costs)
    else:
        before = {field: getattr(costs, field) for field in (*COST_COMPONENTS, "allocation_method", "exchange_rate")}

    for field, value in values.items():
        if value is not None:
            setattr(costs, field, value)
    if not costs.currency:
        costs.currency = po.currency

    await db.flush()
    after = {field: getattr(costs, field) for field in (*COST_COMPONENTS, "allocation_method", "exchange_rate")}
    await record_audit(
        db, "purchase_order_costs", costs.id, "update" if before else "create", context,
        old_values=before, new_values=after, reference=po.po_number,
    )
    await db.commit()
    await db.refresh(costs)
    return costs


async def allocate_purchase_order_costs(
    db: AsyncSession,
    purchase_order_id: int,
    allocation_method: Optional[str] = None,
    context: RequestContext = SYSTEM_CONTEXT,
) -> list[InventoryBatch]:
    """
    Spread the PO's additional costs over its batches and recompute landed cost.

    Re-running replaces any earlier allocation.

    Raises:
        NotFoundError: PO has no cost header
        ConflictError: PO has no received batches
        BusinessRuleError: Allocation basis is zero (e.g. by_weight without product weights)
    """
    costs = await get_purchase_order_costs(db, purchase_order_id)
    method = allocation_method or costs.allocation_method
    if method not in ALLOCATION_METHODS:
        raise BusinessRuleError(f"Unknown allocation method '{method}'")

    result = await db.execute(
        select(InventoryBatch)
        .where(
            InventoryBatch.purchase_order_id == purchase_order_id,
            InventoryBatch.status != "cancelled",
            InventoryBatch.source_batch_id.is_(None),
        )
        .order_by(InventoryBatch.id)
        .with_for_update(of=InventoryBatch)
    )
    batches = list(result.unique().scalars().all())
    if not batches:
        raise ConflictError(f"Purchase Order {purchase_order_id} has no received batches to allocate costs to")

    bases = [(batch.id, allocation_basis(batch, method)) for batch in batches]
    exchange_rate = to_decimal(costs.exchange_rate, Decimal("1"))

    allocated_at = _utc_now()
    shares_by_component = {
        component: prorate(to_decimal(getattr(costs, component)) * exchange_rate, bases)
        for component in COST_COMPONENTS
    }

    for batch in batches:
        for component, batch_field in COST_COMPONENTS.items():
            setattr(batch, batch_field, shares_by_component[component][batch.id])
        batch.landed_cost_per_unit = compute_landed_cost_per_unit(batch)
        batch.cost_allocation_status = "allocated"
        batch.cost_allocated_at = allocated_at

    costs.allocation_method = method
    costs.allocated_at = allocated_at

    await record_audit(
        db, "purchase_order_costs", costs.id, "allocate", context,
        new_values={
            "allocation_method": method,
            "batches": len(batches),
            "total_additional_costs": costs.total_additional_costs * exchange_rate,
        },
        reference=str(purchase_order_id),
    )
    await db.commit()

    logger.info(
        f"Allocated landed costs of PO {purchase_order_id} over {len(batches)} batch(es) {method}"
    )
    return batches


def _month_key(value: Optional[date]) -> str:
    return value.strftime("%Y-%m") if value else "unknown"


def _group_key(batch: InventoryBatch, group_by: str) -> tuple[Any, str]:
    if group_by == "location":
        return batch.location_id, batch.location_name
    if group_by == "supplier":
        return batch.supplier_id, batch.supplier_name or "unknown"
    if group_by == "month":
        key = _month_key(batch.purchase_date)
        return key, key
    return batch.product_id, batch.product_name


def _aggregate(batches: Iterable[InventoryBatch]) -> dict:
    batches = list(batches)
    count = len(batches)
    purchase_prices = [to_decimal(b.purchase_price) for b in batches]
    landed_costs = [to_decimal(b.landed_cost_per_unit) for b in batches]

    totals = defaultdict(lambda: ZERO)
    for b in batches:
        available = to_decimal(b.available_quantity)
        totals["received"] += to_decimal(b.received_quantity)
        totals["available"] += available
        for field in COST_COMPONENTS.values():
            totals[field] += to_decimal(getattr(b, field))
        totals["additional"] += b.total_additional_costs
        totals["basic_value"] += available * to_decimal(b.purchase_price)
        totals["landed_value"] += available * to_decimal(b.landed_cost_per_unit)

    overhead = totals["landed_value"] - totals["basic_value"]
    return {
        "batch_count": count,
        "total_received_quantity": as_float(totals["received"], 3),
        "total_available_quantity": as_float(totals["available"], 3),
        "avg_purchase_price": as_float(sum(purchase_prices, ZERO) / count) if count else 0.0,
        "min_purchase_price": as_float(min(purchase_prices)) if count else 0.0,
        "max_purchase_price": as_float(max(purchase_prices)) if count else 0.0,
        "avg_landed_cost": as_float(sum(landed_costs, ZERO) / count) if count else 0.0,
        "min_landed_cost": as_float(min(landed_costs)) if count else 0.0,
        "max_landed_cost": as_float(max(landed_costs)) if count else 0.0,
        "total_freight_cost": as_float(totals["freight_cost"], 2),
        "total_insurance_cost": as_float(totals["insurance_cost"], 2),
        "total_customs_duty": as_float(totals["customs_duty"], 2),
        "total_handling_charges": as_float(totals["handling_charges"], 2),
        "total_other_charges": as_float(totals["other_charges"], 2),
        "total_additional_costs": as_float(totals["additional"], 2),
        "basic_inventory_value": as_float(totals["basic_value"], 2),
        "total_inventory_value": as_float(totals["landed_value"], 2),
        "total_cost_overhead": as_float(overhead, 2),
        "overhead_percentage": as_float(percentage(overhead, totals["basic_value"]), 2),
    }


async def cost_analysis_report(
    db: AsyncSession,
    group_by: str = "product",
    product_id: Optional[int] = None,
    location_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> dict:
    """
    Landed cost analysis of active batches grouped by product, location,
    supplier or purchase month.
    """
    if group_by not in GROUP_BY_OPTIONS:
        raise BusinessRuleError(f"group_by must be one of {', '.join(GROUP_BY_OPTIONS)}")

    query = select(InventoryBatch).where(InventoryBatch.status == "active")
    if product_id:
        query = query.where(InventoryBatch.product_id == product_id)
    if location_id:
        query = query.where(InventoryBatch.location_id == location_id)
    if date_from:
        query = query.where(InventoryBatch.purchase_date >= date_from)
    if date_to:
        query = query.where(InventoryBatch.purchase_date <= date_to)

    result = await db.execute(query)
    batches = list(result.unique().scalars().all())

    groups: dict[Any, list[InventoryBatch]] = defaultdict(list)
    names: dict[Any, str] = {}
    for batch in batches:
        key, name = _group_key(batch, group_by)
        groups[key].append(batch)
        names[key] = name

    analysis = [
        {"group_id": key, "group_name": names[key], **_aggregate(members)}
        for key, members in groups.items()
    ]
    analysis.sort(key=lambda row: row["total_inventory_value"], reverse=True)

    summary = _aggregate(batches)
    summary.update(
        {
            "unique_products": len({b.product_id for b in batches}),
            "unique_locations": len({b.location_id for b in batches}),
            "unique_suppliers": len({b.supplier_id for b in batches if b.supplier_id is not None}),
        }
    )

    return {
        "group_by": group_by,
        "summary": summary,
        "analysis": analysis,
        "filters": {
            "product_id": product_id,
            "location_id": location_id,
            "date_from": date_from,
            "date_to": date_to,
        },
    }
