"""
Batch scoring for smart allocation.

Pure functions: given candidate batches and a weight profile, compute
per-batch metrics, a weighted score, a ranking and a greedy allocation plan.
Nothing here touches the database.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from erp.models import AllocationStrategy, InventoryBatch
from erp.services.calculations import ZERO, as_float, to_decimal

ALLOCATION_TYPES = ("estimation", "manufacturing", "sales")

DAYS_PER_YEAR = 365.0


@dataclass(frozen=True)
class WeightProfile:
    """Weights (summing to 100) of the component scores."""

    name: str
    cost_weight: float = 0.0
    age_weight: float = 0.0
    warranty_weight: float = 0.0
    performance_weight: float = 0.0
    expiry_weight: float = 0.0
    # Cost component favours expensive batches instead of cheap ones
    margin_protection: bool = False

    @property
    def total_weight(self) -> float:
        return (
            self.cost_weight
            + self.age_weight
            + self.warranty_weight
            + self.performance_weight
            + self.expiry_weight
        )

    @classmethod
    def from_strategy(cls, strategy: AllocationStrategy) -> "WeightProfile":
        return cls(
            name=strategy.strategy_name,
            cost_weight=float(strategy.cost_weight or 0),
            age_weight=float(strategy.age_weight or 0),
            warranty_weight=float(strategy.warranty_weight or 0),
            performance_weight=float(strategy.performance_weight or 0),
            expiry_weight=float(strategy.expiry_weight or 0),
            margin_protection=bool(strategy.consider_margin_protection),
        )


BUILTIN_PROFILES = {
    "estimation": WeightProfile(
        name="Estimation - Margin Protection",
        cost_weight=70,
        age_weight=30,
        margin_protection=True,
    ),
    "manufacturing": WeightProfile(
        name="Manufacturing - Cost Optimization",
        cost_weight=70,
        age_weight=20,
        expiry_weight=10,
    ),
    "sales": WeightProfile(
        name="Sales - Balanced",
        cost_weight=30,
        age_weight=25,
        warranty_weight=20,
        performance_weight=15,
        expiry_weight=10,
    ),
}

# Weight sets of the costing view's optimal allocation
COSTING_STRATEGIES = {
    "balanced": WeightProfile(name="balanced", cost_weight=40, age_weight=40, expiry_weight=20),
    "cost_optimization": WeightProfile(name="cost_optimization", cost_weight=60, age_weight=20, expiry_weight=20),
    "fifo_strict": WeightProfile(name="fifo_strict", cost_weight=10, age_weight=70, expiry_weight=20),
    "expiry_management": WeightProfile(name="expiry_management", cost_weight=20, age_weight=30, expiry_weight=50),
}

OPTIMIZATION_FOCUS = {
    "estimation": "Margin Protection - Using higher cost items to protect profit margins",
    "manufacturing": "Cost Optimization - Using lowest cost items to maximize profitability",
    "sales": "Balanced Approach - Considering cost, age, warranty, and performance",
}


def optimization_focus(allocation_type: str) -> str:
    return OPTIMIZATION_FOCUS.get(allocation_type, "Standard allocation based on FIFO principles")


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


@dataclass
class ScoredBatch:
    batch: InventoryBatch
    inventory_age_days: int
    days_to_expiry: Optional[int]
    warranty_days_remaining: Optional[int]
    cost_position_ratio: float
    fifo_score: float
    cost_efficiency_score: float
    margin_protection_score: float
    expiry_score: float
    warranty_score: float
    performance_score: float
    allocation_score: float = 0.0

    @property
    def landed_cost(self) -> Decimal:
        return to_decimal(self.batch.landed_cost_per_unit)

    @property
    def available_quantity(self) -> Decimal:
        return to_decimal(self.batch.available_quantity)

    def sort_key(self) -> tuple:
        return (-self.allocation_score, self.landed_cost, self.batch.purchase_date, self.batch.id)

    def to_dict(self) -> dict:
        batch = self.batch
        return {
            "batch_id": batch.id,
            "batch_number": batch.batch_number,
            "product_id": batch.product_id,
            "product_name": batch.product_name,
            "location_id": batch.location_id,
            "location_name": batch.location_name,
            "available_quantity": as_float(self.available_quantity, 3),
            "landed_cost_per_unit": as_float(self.landed_cost),
            "purchase_date": batch.purchase_date,
            "expiry_date": batch.expiry_date,
            "inventory_age_days": self.inventory_age_days,
            "days_to_expiry": self.days_to_expiry,
            "warranty_days_remaining": self.warranty_days_remaining,
            "cost_position_ratio": round(self.cost_position_ratio, 4),
            "batch_performance_score": round(self.performance_score, 2),
            "allocation_score": round(self.allocation_score, 4),
        }


def score_batches(batches: Iterable[InventoryBatch], today: Optional[date] = None) -> list[ScoredBatch]:
    """Compute the metrics and component scores of every candidate batch."""
    today = today or date.today()
    batches = list(batches)
    if not batches:
        return []

    costs = [float(to_decimal(b.landed_cost_per_unit)) for b in batches]
    min_cost, max_cost = min(costs), max(costs)
    cost_range = max_cost - min_cost

    ages = [max(0, (today - b.purchase_date).days) for b in batches]
    max_age = max(ages)

    scored = []
    for batch, cost, age in zip(batches, costs, ages):
        cost_position = (cost - min_cost) / cost_range if cost_range > 0 else 0.0
        days_to_expiry = (batch.expiry_date - today).days if batch.expiry_date else None
        warranty_days = (
            max(0, (batch.warranty_end_date - today).days) if batch.warranty_end_date else None
        )

        scored.append(
            ScoredBatch(
                batch=batch,
                inventory_age_days=age,
                days_to_expiry=days_to_expiry,
                warranty_days_remaining=warranty_days,
                cost_position_ratio=cost_position,
                fifo_score=age / max_age * 100 if max_age > 0 else 100.0,
                cost_efficiency_score=(1 - cost_position) * 100,
                margin_protection_score=cost_position * 100,
                expiry_score=(
                    0.0
                    if days_to_expiry is None
                    else _clamp(100 - days_to_expiry / DAYS_PER_YEAR * 100)
                ),
                warranty_score=(
                    0.0 if warranty_days is None else _clamp(warranty_days / DAYS_PER_YEAR * 100)
                ),
                performance_score=float(batch.performance_score or 0),
            )
        )
    return scored


def weighted_score(scored: ScoredBatch, profile: WeightProfile) -> float:
    cost_component = scored.margin_protection_score if profile.margin_protection else scored.cost_efficiency_score
    return (
        cost_component * profile.cost_weight
        + scored.fifo_score * profile.age_weight
        + scored.warranty_score * profile.warranty_weight
        + scored.performance_score * profile.performance_weight
        + scored.expiry_score * profile.expiry_weight
    ) / 100


def rank_batches(
    batches: Iterable[InventoryBatch],
    profile: WeightProfile,
    today: Optional[date] = None,
    limit: Optional[int] = None,
) -> list[ScoredBatch]:
    """
    Score and order candidates: score descending, then landed cost, purchase
    date and id ascending. ``limit`` keeps only the best ranked batches.
    """
    scored = score_batches(batches, today)
    for entry in scored:
        entry.allocation_score = weighted_score(entry, profile)
    scored.sort(key=ScoredBatch.sort_key)
    return scored[:limit] if limit else scored


def build_plan(ranked: list[ScoredBatch], requested_quantity: Decimal) -> dict:
    """Greedily fill ``requested_quantity`` from ranked batches."""
    requested = to_decimal(requested_quantity)
    remaining = requested
    total_cost = ZERO
    lines = []

    for entry in ranked:
        if remaining <= ZERO:
            break
        take = min(remaining, entry.available_quantity)
        if take <= ZERO:
            continue
        cost = take * entry.landed_cost
        lines.append(
            {
                **entry.to_dict(),
                "allocated_quantity": as_float(take, 3),
                "allocation_cost": as_float(cost, 2),
                "sequence_order": len(lines) + 1,
                "_scored": entry,
                "_quantity": take,
            }
        )
        remaining -= take
        total_cost += cost

    allocated = requested - remaining
    return {
        "requested_quantity": as_float(requested, 3),
        "allocated_quantity": as_float(allocated, 3),
        "remaining_quantity": as_float(remaining, 3),
        "fulfillment_percentage": as_float(allocated / requested * 100, 2) if requested > ZERO else 0.0,
        "average_cost": as_float(total_cost / allocated) if allocated > ZERO else 0.0,
        "total_cost": as_float(total_cost, 2),
        "batches_used": len(lines),
        "allocation_plan": lines,
        "_allocated": allocated,
        "_total_cost": total_cost,
    }


def public_plan(plan: dict) -> dict:
    """Strip the internal ``_`` keys a plan carries for execution."""
    cleaned = {key: value for key, value in plan.items() if not key.startswith("_")}
    cleaned["allocation_plan"] = [
        {key: value for key, value in line.items() if not key.startswith("_")}
        for line in plan["allocation_plan"]
    ]
    return cleaned


def compare_plans(preview: dict, others: dict[str, dict]) -> dict:
    """Cost comparison of ``preview`` against plans of other allocation types."""
    preview_total = preview["total_cost"]
    comparisons = {}
    for allocation_type, other in others.items():
        difference = other["total_cost"] - preview_total
        comparisons[allocation_type] = {
            "average_cost": other["average_cost"],
            "total_cost": other["total_cost"],
            "batches_used": other["batches_used"],
            "cost_difference": round(difference, 2),
            "cost_savings_percentage": round(difference / preview_total * 100, 2) if preview_total > 0 else 0.0,
        }
    return comparisons


def recommend(preview: dict, comparisons: dict, allocation_type: str) -> dict:
    recommendation = {
        "recommended_strategy": allocation_type,
        "confidence_score": 75,
        "reasoning": [],
        "warnings": [],
        "alternatives": [],
    }

    fulfillment = preview["fulfillment_percentage"]
    if fulfillment < 100:
        recommendation["warnings"].append(
            f"Only {fulfillment:.1f}% fulfillment possible with current inventory"
        )
        recommendation["confidence_score"] -= 20

    if allocation_type == "estimation":
        recommendation["reasoning"].append("Using higher cost items for estimation protects profit margins")
        manufacturing = comparisons.get("manufacturing")
        if manufacturing:
            if manufacturing["cost_difference"] < 0:
                recommendation["reasoning"].append(
                    f"Estimation cost {abs(manufacturing['cost_difference']):.2f} higher than "
                    "manufacturing cost - good margin protection"
                )
            else:
                recommendation["warnings"].append(
                    "Estimation cost lower than manufacturing cost - may risk margins"
                )
    elif allocation_type == "manufacturing":
        recommendation["reasoning"].append("Using lowest cost items for manufacturing maximizes profitability")
        estimation = comparisons.get("estimation")
        if estimation:
            recommendation["reasoning"].append(
                f"Manufacturing saves {abs(estimation['cost_difference']):.2f} compared to estimation pricing"
            )
    else:
        recommendation["reasoning"].append(
            "Balanced scoring weighs cost, age, warranty, and batch performance for sales"
        )

    if preview["batches_used"] > 5:
        recommendation["warnings"].append(
            f"Requires {preview['batches_used']} different batches - may complicate logistics"
        )

    for other_type, comparison in comparisons.items():
        difference = comparison["cost_difference"]
        if abs(difference) > preview["total_cost"] * 0.1:
            recommendation["alternatives"].append(
                {
                    "strategy": other_type,
                    "cost_difference": difference,
                    "description": (
                        f"{other_type} strategy would save {abs(difference):.2f}"
                        if difference < 0
                        else f"{other_type} strategy would cost {difference:.2f} more"
                    ),
                }
            )

    return recommendation


def risk_level(
    scored: ScoredBatch,
    max_cost: Decimal,
    high_risk_days: int = 30,
    medium_risk_days: int = 90,
) -> str:
    if scored.days_to_expiry is not None and scored.days_to_expiry < high_risk_days:
        return "HIGH_EXPIRY_RISK"
    if scored.days_to_expiry is not None and scored.days_to_expiry < medium_risk_days:
        return "MEDIUM_EXPIRY_RISK"
    if scored.landed_cost > max_cost * Decimal("0.9"):
        return "HIGH_COST"
    return "LOW_RISK"
