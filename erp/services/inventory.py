"""
Batch inventory, stock levels, stock movements and transfers.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from erp.exceptions import BusinessRuleError, InsufficientStockError, NotFoundError
from erp.models import InventoryBatch, Location, Product, StockLevel, StockMovement
from erp.services.audit import SYSTEM_CONTEXT, RequestContext, record_audit
from erp.services.calculations import ZERO, as_float, round_money, to_decimal
from erp.services.document_numbers import STOCK_TRANSFER, next_document_number

logger = logging.getLogger(__name__)

BATCH_COST_FIELDS = ("freight_cost", "insurance_cost", "customs_duty", "handling_charges", "other_charges")


async def adjust_stock(
    db: AsyncSession,
    product_id: int,
    location_id: int,
    delta: Decimal,
) -> StockLevel:
    """
    Add ``delta`` (may be negative) to the stock level of a product at a location.

    Raises:
        InsufficientStockError: If the level would drop below zero
    """
    result = await db.execute(
        select(StockLevel)
        .where(StockLevel.product_id == product_id, StockLevel.location_id == location_id)
        .with_for_update()
    )
    level = result.scalar_one_or_none()

    if level is None:
        level = StockLevel(product_id=product_id, location_id=location_id, quantity=ZERO)
        db.add(level)
        await db.flush()

    current = to_decimal(level.quantity)
    if current + delta < ZERO:
        raise InsufficientStockError(product_id, location_id, as_float(-delta), as_float(current))

    level.quantity = current + delta
    return level


def record_movement(
    db: AsyncSession,
    product_id: int,
    quantity: Decimal,
    movement_type: str,
    reference_type: str,
    reference_id: str,
    from_location_id: Optional[int] = None,
    to_location_id: Optional[int] = None,
    created_by: Optional[int] = None,
    notes: Optional[str] = None,
) -> StockMovement:
    movement = StockMovement(
        product_id=product_id,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        quantity=quantity,
        movement_type=movement_type,
        reference_type=reference_type,
        reference_id=reference_id,
        created_by=created_by,
        notes=notes,
    )
    db.add(movement)
    return movement


async def active_batches(
    db: AsyncSession,
    product_id: int,
    location_id: Optional[int] = None,
    as_of: Optional[date] = None,
    for_update: bool = False,
) -> list[InventoryBatch]:
    """
    Active batches with stock for a product, oldest first.

    Batches past their expiry date (relative to ``as_of``) are excluded.
    """
    as_of = as_of or date.today()
    query = select(InventoryBatch).where(
        InventoryBatch.product_id == product_id,
        InventoryBatch.status == "active",
        InventoryBatch.available_quantity > 0,
        or_(InventoryBatch.expiry_date.is_(None), InventoryBatch.expiry_date >= as_of),
    )
    if location_id is not None:
        query = query.where(InventoryBatch.location_id == location_id)

    query = query.order_by(InventoryBatch.purchase_date, InventoryBatch.id)
    if for_update:
        query = query.with_for_update(of=InventoryBatch)
    result = await db.execute(query)
    return list(result.unique().scalars().all())


async def lock_active_batches(
    db: AsyncSession,
    product_id: int,
    location_id: Optional[int] = None,
    as_of: Optional[date] = None,
) -> list[InventoryBatch]:
    return await active_batches(db, product_id, location_id, as_of, for_update=True)


def consume_batch(batch: InventoryBatch, quantity: Decimal) -> None:
    """Draw ``quantity`` from a batch, marking it depleted when empty."""
    remaining = to_decimal(batch.available_quantity) - quantity
    if remaining < ZERO:
        raise InsufficientStockError(
            batch.product_id, batch.location_id, as_float(quantity), as_float(batch.available_quantity)
        )
    batch.available_quantity = remaining
    if remaining == ZERO:
        batch.status = "depleted"


async def get_batch(db: AsyncSession, batch_id: int) -> InventoryBatch:
    batch = await db.get(InventoryBatch, batch_id)
    if batch is None:
        raise NotFoundError("Batch", batch_id)
    return batch


async def list_batches(
    db: AsyncSession,
    product_id: Optional[int] = None,
    location_id: Optional[int] = None,
    supplier_id: Optional[int] = None,
    purchase_order_id: Optional[int] = None,
    status: Optional[str] = "active",
    skip: int = 0,
    limit: int = 100,
) -> list[InventoryBatch]:
    query = select(InventoryBatch)
    if product_id is not None:
        query = query.where(InventoryBatch.product_id == product_id)
    if location_id is not None:
        query = query.where(InventoryBatch.location_id == location_id)
    if supplier_id is not None:
        query = query.where(InventoryBatch.supplier_id == supplier_id)
    if purchase_order_id is not None:
        query = query.where(InventoryBatch.purchase_order_id == purchase_order_id)
    if status:
        query = query.where(InventoryBatch.status == status)

    query = query.order_by(InventoryBatch.purchase_date, InventoryBatch.id).offset(skip).limit(limit)
    result = await db.execute(query)
    return list(result.unique().scalars().all())


async def list_stock_levels(
    db: AsyncSession,
    product_id: Optional[int] = None,
    location_id: Optional[int] = None,
    include_zero: bool = False,
) -> list[dict]:
    query = (
        select(StockLevel, Product.name, Location.name)
        .join(Product, Product.id == StockLevel.product_id)
        .join(Location, Location.id == StockLevel.location_id)
    )
    if product_id is not None:
        query = query.where(StockLevel.product_id == product_id)
    if location_id is not None:
        query = query.where(StockLevel.location_id == location_id)
    if not include_zero:
        query = query.where(StockLevel.quantity > 0)

    query = query.order_by(Product.name, Location.name)
    result = await db.execute(query)
    return [
        {
            "product_id": level.product_id,
            "product_name": product_name,
            "location_id": level.location_id,
            "location_name": location_name,
            "quantity": as_float(level.quantity, 3),
            "updated_at": level.updated_at,
        }
        for level, product_name, location_name in result.all()
    ]


async def list_movements(
    db: AsyncSession,
    product_id: Optional[int] = None,
    location_id: Optional[int] = None,
    movement_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
) -> list[StockMovement]:
    query = select(StockMovement)
    if product_id is not None:
        query = query.where(StockMovement.product_id == product_id)
    if location_id is not None:
        query = query.where(
            or_(StockMovement.from_location_id == location_id, StockMovement.to_location_id == location_id)
        )
    if movement_type:
        query = query.where(StockMovement.movement_type == movement_type)
    if reference_id:
        query = query.where(StockMovement.reference_id == reference_id)

    query = query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


def carried_costs(batch: InventoryBatch, quantity: Decimal) -> dict:
    """Share of each allocated cost component that travels with ``quantity`` units of ``batch``."""
    received = to_decimal(batch.received_quantity)
    if received <= ZERO:
        return {field: ZERO for field in BATCH_COST_FIELDS}
    return {
        field: round_money(to_decimal(getattr(batch, field)) * quantity / received)
        for field in BATCH_COST_FIELDS
    }


async def transfer_stock(
    db: AsyncSession,
    product_id: int,
    from_location_id: int,
    to_location_id: int,
    quantity: Decimal,
    context: RequestContext = SYSTEM_CONTEXT,
    notes: Optional[str] = None,
) -> dict:
    """
    Move stock of a product between locations.

    Source batches are consumed oldest first; each consumed portion becomes a
    new batch at the destination that keeps the source batch's costs,
    supplier and dates.

    Raises:
        BusinessRuleError: Same source and destination, or non-positive quantity
        NotFoundError: Product or location does not exist
        InsufficientStockError: Not enough batch stock at the source
    """
    quantity = to_decimal(quantity)
    if quantity <= ZERO:
        raise BusinessRuleError("Transfer quantity must be positive")
    if from_location_id == to_location_id:
        raise BusinessRuleError("Source and destination locations must differ")

    if await db.get(Product, product_id) is None:
        raise NotFoundError("Product", product_id)
    for location_id in (from_location_id, to_location_id):
        if await db.get(Location, location_id) is None:
            raise NotFoundError("Location", location_id)

    batches = await lock_active_batches(db, product_id, from_location_id)
    available = sum((to_decimal(b.available_quantity) for b in batches), ZERO)
    if available < quantity:
        raise InsufficientStockError(product_id, from_location_id, as_float(quantity), as_float(available))

    transfer_number = await next_document_number(db, STOCK_TRANSFER)
    transfer_code = "".join(transfer_number.split("/")[-2:])

    remaining = quantity
    moved = []
    for batch in batches:
        if remaining <= ZERO:
            break
        take = min(remaining, to_decimal(batch.available_quantity))
        consume_batch(batch, take)

        new_batch = InventoryBatch(
            batch_number=f"{batch.batch_number}-T{transfer_code}",
            product_id=batch.product_id,
            location_id=to_location_id,
            supplier_id=batch.supplier_id,
            purchase_order_id=batch.purchase_order_id,
            source_batch_id=batch.id,
            purchase_date=batch.purchase_date,
            expiry_date=batch.expiry_date,
            warranty_end_date=batch.warranty_end_date,
            received_quantity=take,
            available_quantity=take,
            purchase_price=batch.purchase_price,
            landed_cost_per_unit=batch.landed_cost_per_unit,
            cost_allocation_status=batch.cost_allocation_status,
            cost_allocated_at=batch.cost_allocated_at,
            **carried_costs(batch, take),
            performance_score=batch.performance_score,
        )
        db.add(new_batch)
        moved.append((batch, new_batch, take))
        remaining -= take

    await adjust_stock(db, product_id, from_location_id, -quantity)
    await adjust_stock(db, product_id, to_location_id, quantity)
    record_movement(
        db,
        product_id=product_id,
        quantity=quantity,
        movement_type="transfer",
        reference_type="TRANSFER",
        reference_id=transfer_number,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        created_by=context.user_id,
        notes=notes,
    )
    await db.flush()

    await record_audit(
        db, "inventory_batches", transfer_number, "transfer", context,
        new_values={
            "product_id": product_id,
            "from_location_id": from_location_id,
            "to_location_id": to_location_id,
            "quantity": quantity,
        },
        reference=transfer_number,
    )
    await db.commit()

    logger.info(
        f"Transfer {transfer_number}: {quantity} of product {product_id} "
        f"from location {from_location_id} to {to_location_id}"
    )
    return {
        "transfer_number": transfer_number,
        "product_id": product_id,
        "from_location_id": from_location_id,
        "to_location_id": to_location_id,
        "quantity": as_float(quantity, 3),
        "batches": [
            {
                "source_batch_id": source.id,
                "destination_batch_id": destination.id,
                "batch_number": destination.batch_number,
                "quantity": as_float(take, 3),
                "landed_cost_per_unit": as_float(destination.landed_cost_per_unit),
            }
            for source, destination, take in moved
        ],
    }
