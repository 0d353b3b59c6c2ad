"""
Unit tests for smart allocation scoring, ranking and plans.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from erp.models import AllocationStrategy, InventoryBatch
from erp.services.allocation_scoring import (
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
    score_batches,
)

pytestmark = pytest.mark.unit

TODAY = date(2026, 10, 18)


def make_batch(batch_id, age_days, cost, quantity="10", expiry_in=None, warranty_in=None, performance="50"):
    return InventoryBatch(
        id=batch_id,
        batch_number=f"B-{batch_id}",
        product_id=1,
        location_id=1,
        purchase_date=TODAY - timedelta(days=age_days),
        expiry_date=TODAY + timedelta(days=expiry_in) if expiry_in is not None else None,
        warranty_end_date=TODAY + timedelta(days=warranty_in) if warranty_in is not None else None,
        received_quantity=Decimal(quantity),
        available_quantity=Decimal(quantity),
        purchase_price=Decimal(cost),
        landed_cost_per_unit=Decimal(cost),
        performance_score=Decimal(performance),
    )


@pytest.fixture
def batches():
    """OLD (200 days, 100), MID (100 days, 120), NEW (10 days, 90)."""
    return [make_batch(1, 200, "100"), make_batch(2, 100, "120"), make_batch(3, 10, "90")]


class TestWeightProfiles:
    def test_builtin_profiles_sum_to_100(self):
        for profile in (*BUILTIN_PROFILES.values(), *COSTING_STRATEGIES.values()):
            assert profile.total_weight == 100

    def test_estimation_protects_margin(self):
        assert BUILTIN_PROFILES["estimation"].margin_protection is True
        assert BUILTIN_PROFILES["manufacturing"].margin_protection is False

    def test_from_strategy(self):
        strategy = AllocationStrategy(
            strategy_name="Custom",
            strategy_code="CUSTOM",
            strategy_type="sales",
            cost_weight=Decimal("50"),
            age_weight=Decimal("50"),
            warranty_weight=Decimal("0"),
            performance_weight=Decimal("0"),
            expiry_weight=Decimal("0"),
            consider_margin_protection=False,
        )

        profile = WeightProfile.from_strategy(strategy)

        assert profile.name == "Custom"
        assert profile.cost_weight == 50.0
        assert profile.total_weight == 100.0

    def test_optimization_focus_defaults_to_fifo(self):
        assert optimization_focus("manufacturing").startswith("Cost Optimization")
        assert "FIFO" in optimization_focus("unknown")


class TestScoreBatches:
    """Test component scores of candidate batches."""

    def test_cost_position_and_fifo(self, batches):
        old, mid, new = score_batches(batches, TODAY)

        assert new.cost_position_ratio == 0.0
        assert mid.cost_position_ratio == 1.0
        assert old.cost_efficiency_score == pytest.approx(66.6667, abs=1e-3)
        assert old.fifo_score == 100.0
        assert mid.fifo_score == 50.0
        assert new.fifo_score == 5.0

    def test_same_day_batches_get_full_fifo_score(self):
        scored = score_batches([make_batch(1, 0, "10"), make_batch(2, 0, "12")], TODAY)

        assert [s.fifo_score for s in scored] == [100.0, 100.0]

    def test_equal_costs_have_zero_cost_position(self):
        scored = score_batches([make_batch(1, 5, "10"), make_batch(2, 9, "10")], TODAY)

        assert all(s.cost_position_ratio == 0.0 for s in scored)
        assert all(s.cost_efficiency_score == 100.0 for s in scored)

    def test_expiry_and_warranty_scores(self):
        """Test that sooner expiry scores higher and longer warranty scores higher."""
        soon, later, none = score_batches(
            [
                make_batch(1, 5, "10", expiry_in=30, warranty_in=365),
                make_batch(2, 5, "10", expiry_in=400, warranty_in=73),
                make_batch(3, 5, "10"),
            ],
            TODAY,
        )

        assert soon.expiry_score > later.expiry_score
        assert later.expiry_score == 0.0
        assert none.expiry_score == 0.0
        assert soon.warranty_score == 100.0
        assert later.warranty_score == pytest.approx(20.0)
        assert none.warranty_days_remaining is None

    def test_empty_input(self):
        assert score_batches([], TODAY) == []


class TestRankBatches:
    """Test ranking under each allocation profile."""

    def test_manufacturing_prefers_cheapest(self, batches):
        ranked = rank_batches(batches, BUILTIN_PROFILES["manufacturing"], TODAY)

        assert [s.batch.id for s in ranked] == [3, 1, 2]
        assert ranked[0].allocation_score == pytest.approx(71.0)

    def test_estimation_prefers_most_expensive(self, batches):
        ranked = rank_batches(batches, BUILTIN_PROFILES["estimation"], TODAY)

        assert [s.batch.id for s in ranked] == [2, 1, 3]
        assert ranked[0].allocation_score == pytest.approx(85.0)

    def test_sales_balances_cost_and_age(self, batches):
        ranked = rank_batches(batches, BUILTIN_PROFILES["sales"], TODAY)

        assert [s.batch.id for s in ranked] == [1, 3, 2]
        assert ranked[0].allocation_score == pytest.approx(52.5)

    def test_ties_break_on_cost_then_date_then_id(self):
        """Test that equal scores fall back to cheaper, older, lower id."""
        profile = WeightProfile(name="flat", performance_weight=100)
        ranked = rank_batches(
            [make_batch(4, 10, "12"), make_batch(3, 20, "10"), make_batch(2, 10, "10"), make_batch(1, 10, "10")],
            profile,
            TODAY,
        )

        assert [s.batch.id for s in ranked] == [3, 1, 2, 4]

    def test_limit_keeps_best_candidates(self, batches):
        ranked = rank_batches(batches, BUILTIN_PROFILES["manufacturing"], TODAY, limit=2)

        assert [s.batch.id for s in ranked] == [3, 1]


class TestBuildPlan:
    """Test greedy plans over ranked batches."""

    def test_fills_in_rank_order(self, batches):
        ranked = rank_batches(batches, BUILTIN_PROFILES["manufacturing"], TODAY)

        plan = build_plan(ranked, Decimal("15"))

        assert plan["allocated_quantity"] == 15.0
        assert plan["remaining_quantity"] == 0.0
        assert plan["fulfillment_percentage"] == 100.0
        assert plan["total_cost"] == 1400.0
        assert plan["average_cost"] == pytest.approx(93.3333)
        assert [(line["batch_id"], line["allocated_quantity"]) for line in plan["allocation_plan"]] == [
            (3, 10.0),
            (1, 5.0),
        ]
        assert [line["sequence_order"] for line in plan["allocation_plan"]] == [1, 2]

    def test_partial_fulfilment(self, batches):
        ranked = rank_batches(batches, BUILTIN_PROFILES["manufacturing"], TODAY)

        plan = build_plan(ranked, Decimal("40"))

        assert plan["allocated_quantity"] == 30.0
        assert plan["remaining_quantity"] == 10.0
        assert plan["fulfillment_percentage"] == 75.0
        assert plan["batches_used"] == 3

    def test_nothing_available(self):
        plan = build_plan([], Decimal("5"))

        assert plan["allocated_quantity"] == 0.0
        assert plan["average_cost"] == 0.0
        assert plan["allocation_plan"] == []

    def test_public_plan_strips_internal_keys(self, batches):
        ranked = rank_batches(batches, BUILTIN_PROFILES["manufacturing"], TODAY)

        plan = public_plan(build_plan(ranked, Decimal("5")))

        assert not any(key.startswith("_") for key in plan)
        assert not any(key.startswith("_") for key in plan["allocation_plan"][0])


class TestRecommendation:
    """Test comparisons and recommendations between allocation types."""

    def plans(self, batches, quantity="15"):
        return {
            allocation_type: public_plan(
                build_plan(rank_batches(batches, profile, TODAY), Decimal(quantity))
            )
            for allocation_type, profile in BUILTIN_PROFILES.items()
        }

    def test_compare_against_manufacturing(self, batches):
        plans = self.plans(batches)
        preview = plans.pop("manufacturing")

        comparisons = compare_plans(preview, plans)

        assert comparisons["estimation"]["total_cost"] == 1700.0
        assert comparisons["estimation"]["cost_difference"] == 300.0
        assert comparisons["estimation"]["cost_savings_percentage"] == pytest.approx(21.43)
        assert comparisons["sales"]["cost_difference"] == 50.0

    def test_manufacturing_recommendation(self, batches):
        plans = self.plans(batches)
        preview = plans.pop("manufacturing")

        recommendation = recommend(preview, compare_plans(preview, plans), "manufacturing")

        assert recommendation["recommended_strategy"] == "manufacturing"
        assert recommendation["confidence_score"] == 75
        assert len(recommendation["reasoning"]) == 2
        assert [alt["strategy"] for alt in recommendation["alternatives"]] == ["estimation"]
        assert recommendation["warnings"] == []

    def test_estimation_cost_above_manufacturing_is_good_margin(self, batches):
        plans = self.plans(batches)
        preview = plans.pop("estimation")

        recommendation = recommend(preview, compare_plans(preview, plans), "estimation")

        assert any("good margin protection" in reason for reason in recommendation["reasoning"])
        assert recommendation["warnings"] == []

    def test_partial_fulfilment_lowers_confidence(self, batches):
        plans = self.plans(batches, quantity="40")
        preview = plans.pop("sales")

        recommendation = recommend(preview, compare_plans(preview, plans), "sales")

        assert recommendation["confidence_score"] == 55
        assert "75.0% fulfillment" in recommendation["warnings"][0]


class TestRiskLevel:
    def test_expiry_thresholds(self):
        high, medium, low = score_batches(
            [
                make_batch(1, 5, "10", expiry_in=10),
                make_batch(2, 5, "10", expiry_in=60),
                make_batch(3, 5, "10", expiry_in=200),
            ],
            TODAY,
        )

        assert risk_level(high, Decimal("100")) == "HIGH_EXPIRY_RISK"
        assert risk_level(medium, Decimal("100")) == "MEDIUM_EXPIRY_RISK"
        assert risk_level(low, Decimal("100")) == "LOW_RISK"

    def test_high_cost(self, batches):
        old, mid, new = score_batches(batches, TODAY)

        assert risk_level(mid, Decimal("120")) == "HIGH_COST"
        assert risk_level(old, Decimal("120")) == "LOW_RISK"
