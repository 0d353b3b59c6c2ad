"""
Smart allocation: previewing, executing and analysing batch allocations, and
maintaining the scoring strategies that drive them.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from erp.config.settings import get_settings
from erp.exceptions import BusinessRuleError, ConflictError, NotFoundError
from erp.models import (
    AllocationBatchDetail,
    AllocationExecution,
    AllocationStrategy,
    Location,
    Product,
)
from erp.services.allocation_scoring import (
    ALLOCATION_TYPES,
    BUILTIN_PROFILES,
    COSTING_STRATEGIES,
    WeightProfile,
    build_plan,
    compare_plans,
    optimization_focus,
    public_plan,
    rank_batches,
    recommend,
    risk_level,
)
from erp.services.audit import SYSTEM_CONTEXT, RequestContext, record_audit
from erp.services.calculations import HUNDRED, ZERO, as_float, percentage, round_money, round_unit_cost, to_decimal
from erp.services.inventory import active_batches, adjust_stock, consume_batch, record_movement

logger = logging.getLogger(__name__)

WEIGHT_FIELDS = ("cost_weight", "age_weight", "warranty_weight", "performance_weight", "expiry_weight")
WEIGHT_TOLERANCE = Decimal("0.01")


def _check_allocation_type(allocation_type: str) -> None:
    if allocation_type not in ALLOCATION_TYPES:
        raise BusinessRuleError(
            f"allocation_type must be one of {', '.join(ALLOCATION_TYPES)}"
        )


async def _check_product_location(db: AsyncSession, product_id: int, location_id: Optional[int]) -> None:
    if await db.get(Product, product_id) is None:
        raise NotFoundError("Product", product_id)
    if location_id is not None and await db.get(Location, location_id) is None:
        raise NotFoundError("Location", location_id)


async def resolve_strategy(
    db: AsyncSession,
    allocation_type: str,
    strategy_code: Optional[str] = None,
) -> tuple[WeightProfile, Optional[AllocationStrategy]]:
    """
    Weight profile for an allocation.

    An explicit ``strategy_code`` wins, then the active default strategy of the
    allocation type, then the built-in profile.
    """
    if strategy_code:
        result = await db.execute(
            select(AllocationStrategy).where(
                AllocationStrategy.strategy_code == strategy_code,
                AllocationStrategy.is_active.is_(True),
            )
        )
        strategy = result.scalar_one_or_none()
        if strategy is None:
            raise NotFoundError("Allocation strategy", strategy_code)
        return WeightProfile.from_strategy(strategy), strategy

    result = await db.execute(
        select(AllocationStrategy)
        .where(
            AllocationStrategy.strategy_type == allocation_type,
            AllocationStrategy.is_default.is_(True),
            AllocationStrategy.is_active.is_(True),
        )
        .order_by(AllocationStrategy.id)
        .limit(1)
    )
    strategy = result.scalar_one_or_none()
    if strategy is not None:
        return WeightProfile.from_strategy(strategy), strategy
    return BUILTIN_PROFILES[allocation_type], None


async def _plan(
    db: AsyncSession,
    allocation_type: str,
    product_id: int,
    location_id: int,
    requested_quantity: Decimal,
    strategy_code: Optional[str] = None,
    for_update: bool = False,
) -> tuple[dict, WeightProfile, Optional[AllocationStrategy]]:
    profile, strategy = await resolve_strategy(db, allocation_type, strategy_code)
    candidates = await active_batches(db, product_id, location_id, for_update=for_update)
    ranked = rank_batches(candidates, profile, limit=get_settings().allocation_candidate_limit)
    plan = build_plan(ranked, requested_quantity)
    plan["allocation_type"] = allocation_type
    plan["strategy_name"] = profile.name
    return plan, profile, strategy


async def preview_allocation(
    db: AsyncSession,
    allocation_type: str,
    product_id: int,
    location_id: int,
    requested_quantity: Decimal,
    customer_tier: str = "standard",
    project_priority: str = "normal",
    strategy_code: Optional[str] = None,
) -> dict:
    """Allocation plan for a request without reserving anything."""
    _check_allocation_type(allocation_type)
    requested_quantity = to_decimal(requested_quantity)
    if requested_quantity <= ZERO:
        raise BusinessRuleError("Requested quantity must be positive")
    await _check_product_location(db, product_id, location_id)

    plan, _, _ = await _plan(db, allocation_type, product_id, location_id, requested_quantity, strategy_code)
    preview = public_plan(plan)
    preview["business_context"] = {
        "customer_tier": customer_tier,
        "project_priority": project_priority,
        "optimization_focus": optimization_focus(allocation_type),
    }
    return preview


async def contextual_preview(
    db: AsyncSession,
    allocation_type: str,
    product_id: int,
    location_id: int,
    requested_quantity: Decimal,
    customer_tier: str = "standard",
    project_priority: str = "normal",
) -> dict:
    """Preview plus a cost comparison with the other allocation types and a recommendation."""
    preview = await preview_allocation(
        db, allocation_type, product_id, location_id, requested_quantity, customer_tier, project_priority
    )
    others = {}
    for other_type in ALLOCATION_TYPES:
        if other_type == allocation_type:
            continue
        others[other_type] = await preview_allocation(
            db, other_type, product_id, location_id, requested_quantity, customer_tier, project_priority
        )

    comparisons = compare_plans(preview, others)
    return {
        "preview": preview,
        "comparisons": comparisons,
        "recommendation": recommend(preview, comparisons, allocation_type),
    }


async def get_execution(db: AsyncSession, execution_id: int) -> AllocationExecution:
    result = await db.execute(
        select(AllocationExecution)
        .options(selectinload(AllocationExecution.batch_details))
        .where(AllocationExecution.id == execution_id)
        .execution_options(populate_existing=True)
    )
    execution = result.unique().scalar_one_or_none()
    if execution is None:
        raise NotFoundError("Allocation", execution_id)
    return execution


async def execute_allocation(
    db: AsyncSession,
    allocation_reference: str,
    allocation_type: str,
    product_id: int,
    location_id: int,
    requested_quantity: Decimal,
    customer_tier: str = "standard",
    project_priority: str = "normal",
    order_value: Optional[Decimal] = None,
    strategy_code: Optional[str] = None,
    context: RequestContext = SYSTEM_CONTEXT,
) -> AllocationExecution:
    """
    Reserve inventory for a request.

    Candidate batches are locked, ranked and consumed in rank order; stock
    levels drop by the allocated quantity. Partial fulfilment is allowed.

    Raises:
        ConflictError: Duplicate reference, or nothing available to allocate
        BusinessRuleError: The strategy's minimum margin is not met
    """
    _check_allocation_type(allocation_type)
    requested_quantity = to_decimal(requested_quantity)
    if requested_quantity <= ZERO:
        raise BusinessRuleError("Requested quantity must be positive")
    if not allocation_reference:
        raise BusinessRuleError("Allocation reference is required")
    await _check_product_location(db, product_id, location_id)

    existing = await db.execute(
        select(AllocationExecution.id).where(AllocationExecution.allocation_reference == allocation_reference)
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError(f"Allocation reference '{allocation_reference}' already exists")

    plan, profile, strategy = await _plan(
        db, allocation_type, product_id, location_id, requested_quantity, strategy_code, for_update=True
    )
    allocated = plan["_allocated"]
    total_cost = plan["_total_cost"]
    if allocated <= ZERO:
        raise ConflictError(
            f"No inventory available to allocate for product {product_id} at location {location_id}"
        )

    margin = None
    if order_value is not None:
        order_value = to_decimal(order_value)
        margin = percentage(order_value - total_cost, order_value)
        if strategy is not None and strategy.prevent_negative_margin:
            minimum = to_decimal(strategy.minimum_margin_percentage)
            if order_value <= ZERO or margin < minimum:
                raise BusinessRuleError(
                    f"Allocation margin {as_float(margin, 2)}% is below the minimum "
                    f"{as_float(minimum, 2)}% required by strategy {strategy.strategy_code}"
                )

    execution = AllocationExecution(
        allocation_reference=allocation_reference,
        allocation_type=allocation_type,
        product_id=product_id,
        location_id=location_id,
        requested_quantity=requested_quantity,
        allocated_quantity=allocated,
        average_allocated_cost=round_unit_cost(total_cost / allocated),
        total_allocated_value=round_money(total_cost),
        order_value=order_value,
        margin_achieved_percentage=round_money(margin) if margin is not None else None,
        allocation_efficiency_score=round_money(allocated / requested_quantity * HUNDRED),
        strategy_name=profile.name,
        customer_tier=customer_tier,
        project_priority=project_priority,
        allocated_by=context.user_id,
    )

    for line in plan["allocation_plan"]:
        scored = line["_scored"]
        quantity = line["_quantity"]
        consume_batch(scored.batch, quantity)
        execution.batch_details.append(
            AllocationBatchDetail(
                batch_id=scored.batch.id,
                allocated_quantity=quantity,
                batch_cost_per_unit=scored.landed_cost,
                allocation_score=Decimal(str(round(scored.allocation_score, 4))),
                sequence_order=line["sequence_order"],
            )
        )

    db.add(execution)
    await adjust_stock(db, product_id, location_id, -allocated)
    record_movement(
        db,
        product_id=product_id,
        quantity=allocated,
        movement_type="out",
        reference_type="ALLOCATION",
        reference_id=allocation_reference,
        from_location_id=location_id,
        created_by=context.user_id,
        notes=f"{allocation_type} allocation",
    )
    await db.flush()

    await record_audit(
        db, "allocation_executions", execution.id, "allocate", context,
        new_values={
            "allocation_type": allocation_type,
            "product_id": product_id,
            "location_id": location_id,
            "requested_quantity": requested_quantity,
            "allocated_quantity": allocated,
            "total_allocated_value": execution.total_allocated_value,
            "batches": [line["batch_id"] for line in plan["allocation_plan"]],
        },
        reference=allocation_reference,
    )
    await db.commit()

    logger.info(
        f"Allocation {allocation_reference} ({allocation_type}): {allocated} of {requested_quantity} "
        f"for product {product_id} from {len(plan['allocation_plan'])} batch(es)"
    )
    return await get_execution(db, execution.id)


async def optimal_allocation(
    db: AsyncSession,
    product_id: int,
    quantity: Decimal = Decimal("1"),
    strategy: str = "balanced",
    location_id: Optional[int] = None,
) -> dict:
    """
    Costing view of the cheapest sensible way to fill ``quantity``, with
    per-batch savings against the most expensive candidate and a risk level.
    """
    if strategy not in COSTING_STRATEGIES:
        raise BusinessRuleError(f"strategy must be one of {', '.join(COSTING_STRATEGIES)}")
    quantity = to_decimal(quantity)
    if quantity <= ZERO:
        raise BusinessRuleError("Quantity must be positive")
    await _check_product_location(db, product_id, location_id)

    settings = get_settings()
    candidates = await active_batches(db, product_id, location_id)
    max_cost = max((to_decimal(b.landed_cost_per_unit) for b in candidates), default=ZERO)
    ranked = rank_batches(candidates, COSTING_STRATEGIES[strategy], limit=settings.allocation_candidate_limit)

    options = []
    for entry in ranked:
        savings_per_unit = max_cost - entry.landed_cost
        options.append(
            {
                **entry.to_dict(),
                "cost_savings_per_unit": as_float(savings_per_unit),
                "potential_savings": as_float(savings_per_unit * min(entry.available_quantity, quantity), 2),
                "recommended_quantity": as_float(min(entry.available_quantity, quantity), 3),
                "risk_level": risk_level(
                    entry, max_cost, settings.expiry_high_risk_days, settings.expiry_medium_risk_days
                ),
            }
        )

    plan = build_plan(ranked, quantity)
    total_savings = ZERO
    for line in plan["allocation_plan"]:
        total_savings += line["_quantity"] * (max_cost - line["_scored"].landed_cost)

    result = public_plan(plan)
    options_by_batch = {option["batch_id"]: option for option in options}
    for line in result["allocation_plan"]:
        option = options_by_batch[line["batch_id"]]
        line["cost_savings"] = as_float(
            to_decimal(line["allocated_quantity"]) * to_decimal(option["cost_savings_per_unit"]), 2
        )
        line["risk_level"] = option["risk_level"]

    result.update(
        {
            "strategy": strategy,
            "product_id": product_id,
            "location_id": location_id,
            "total_savings": as_float(total_savings, 2),
            "available_options": options,
        }
    )
    return result


# Strategies

def _check_weights(values: dict[str, Any]) -> None:
    total = sum((to_decimal(values.get(field)) for field in WEIGHT_FIELDS), ZERO)
    if abs(total - HUNDRED) > WEIGHT_TOLERANCE:
        raise BusinessRuleError(f"Strategy weights must sum to 100 (got {as_float(total, 2)})")


async def _clear_other_defaults(db: AsyncSession, strategy_type: str, keep_id: int) -> None:
    await db.execute(
        update(AllocationStrategy)
        .where(
            AllocationStrategy.strategy_type == strategy_type,
            AllocationStrategy.id != keep_id,
            AllocationStrategy.is_default.is_(True),
        )
        .values(is_default=False)
    )


async def get_strategy(db: AsyncSession, strategy_id: int) -> AllocationStrategy:
    strategy = await db.get(AllocationStrategy, strategy_id)
    if strategy is None:
        raise NotFoundError("Allocation strategy", strategy_id)
    return strategy


async def list_strategies(
    db: AsyncSession,
    strategy_type: Optional[str] = None,
    is_active: Optional[bool] = True,
) -> list[AllocationStrategy]:
    query = select(AllocationStrategy)
    if strategy_type:
        query = query.where(AllocationStrategy.strategy_type == strategy_type)
    if is_active is not None:
        query = query.where(AllocationStrategy.is_active.is_(is_active))
    query = query.order_by(AllocationStrategy.strategy_type, AllocationStrategy.is_default.desc(), AllocationStrategy.strategy_name)
    result = await db.execute(query)
    return list(result.scalars().all())


async def create_strategy(
    db: AsyncSession,
    values: dict[str, Any],
    context: RequestContext = SYSTEM_CONTEXT,
) -> AllocationStrategy:
    """
    Raises:
        BusinessRuleError: Unknown type or weights not summing to 100
        ConflictError: Strategy code already in use
    """
    _check_allocation_type(values["strategy_type"])
    _check_weights(values)

    existing = await db.execute(
        select(AllocationStrategy.id).where(AllocationStrategy.strategy_code == values["strategy_code"])
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError(f"Strategy code '{values['strategy_code']}' already exists")

    strategy = AllocationStrategy(**values, created_by=context.user_id)
    db.add(strategy)
    await db.flush()

    if strategy.is_default:
        await _clear_other_defaults(db, strategy.strategy_type, strategy.id)

    await record_audit(
        db, "allocation_strategies", strategy.id, "create", context,
        new_values=values, reference=strategy.strategy_code,
    )
    await db.commit()
    await db.refresh(strategy)

    logger.info(f"Created allocation strategy {strategy.strategy_code} ({strategy.strategy_type})")
    return strategy


async def update_strategy(
    db: AsyncSession,
    strategy_id: int,
    values: dict[str, Any],
    context: RequestContext = SYSTEM_CONTEXT,
) -> AllocationStrategy:
    strategy = await get_strategy(db, strategy_id)

    if "strategy_type" in values:
        _check_allocation_type(values["strategy_type"])
    if any(field in values for field in WEIGHT_FIELDS):
        merged = {field: values.get(field, getattr(strategy, field)) for field in WEIGHT_FIELDS}
        _check_weights(merged)

    before = {field: getattr(strategy, field) for field in values}
    for field, value in values.items():
        setattr(strategy, field, value)
    await db.flush()

    if strategy.is_default:
        await _clear_other_defaults(db, strategy.strategy_type, strategy.id)

    await record_audit(
        db, "allocation_strategies", strategy.id, "update", context,
        old_values=before, new_values=values, reference=strategy.strategy_code,
    )
    await db.commit()
    await db.refresh(strategy)
    return strategy


# Analytics

def _execution_filters(
    query,
    allocation_type: Optional[str] = None,
    product_id: Optional[int] = None,
    location_id: Optional[int] = None,
    customer_tier: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
):
    if allocation_type:
        query = query.where(AllocationExecution.allocation_type == allocation_type)
    if product_id is not None:
        query = query.where(AllocationExecution.product_id == product_id)
    if location_id is not None:
        query = query.where(AllocationExecution.location_id == location_id)
    if customer_tier:
        query = query.where(AllocationExecution.customer_tier == customer_tier)
    if date_from:
        query = query.where(AllocationExecution.allocated_at >= datetime.combine(date_from, time.min))
    if date_to:
        query = query.where(AllocationExecution.allocated_at <= datetime.combine(date_to, time.max))
    return query


async def allocation_history(
    db: AsyncSession,
    allocation_type: Optional[str] = None,
    product_id: Optional[int] = None,
    location_id: Optional[int] = None,
    customer_tier: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = 50,
) -> list[AllocationExecution]:
    query = select(AllocationExecution).options(selectinload(AllocationExecution.batch_details))
    query = _execution_filters(query, allocation_type, product_id, location_id, customer_tier, date_from, date_to)
    query = query.order_by(AllocationExecution.allocated_at.desc(), AllocationExecution.id.desc()).limit(limit)
    result = await db.execute(query)
    return list(result.unique().scalars().all())


def _group_stats(executions: list[AllocationExecution]) -> dict:
    count = len(executions)
    total_value = sum((to_decimal(e.total_allocated_value) for e in executions), ZERO)
    total_quantity = sum((to_decimal(e.allocated_quantity) for e in executions), ZERO)
    fulfillment = sum((to_decimal(e.allocation_efficiency_score) for e in executions), ZERO)
    return {
        "total_allocations": count,
        "total_allocated_quantity": as_float(total_quantity, 3),
        "total_allocated_value": as_float(total_value, 2),
        "avg_fulfillment_percentage": as_float(fulfillment / count, 2) if count else 0.0,
        "avg_allocated_cost": as_float(total_value / total_quantity) if total_quantity > ZERO else 0.0,
    }


async def allocation_analytics(
    db: AsyncSession,
    allocation_type: Optional[str] = None,
    product_id: Optional[int] = None,
    location_id: Optional[int] = None,
    customer_tier: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> dict:
    """Summary of executed allocations, broken down by type and by strategy."""
    query = _execution_filters(
        select(AllocationExecution), allocation_type, product_id, location_id, customer_tier, date_from, date_to
    )
    result = await db.execute(query)
    executions = list(result.unique().scalars().all())

    by_type: dict[str, list[AllocationExecution]] = defaultdict(list)
    by_strategy: dict[str, list[AllocationExecution]] = defaultdict(list)
    for execution in executions:
        by_type[execution.allocation_type].append(execution)
        by_strategy[execution.strategy_name or "unknown"].append(execution)

    summary = _group_stats(executions)
    summary["unique_products"] = len({e.product_id for e in executions})
    summary["unique_locations"] = len({e.location_id for e in executions})

    return {
        "summary": summary,
        "by_type": {key: _group_stats(group) for key, group in sorted(by_type.items())},
        "strategy_performance": [
            {"strategy_name": name, **_group_stats(group)}
            for name, group in sorted(by_strategy.items())
        ],
    }
