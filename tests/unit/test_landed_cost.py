"""
Unit tests for landed cost proration and batch cost calculations.
"""

from datetime import date
from decimal import Decimal

import pytest

from erp.exceptions import BusinessRuleError
from erp.models import InventoryBatch, Product
from erp.services.landed_cost import (
    allocation_basis,
    compute_landed_cost_per_unit,
    cost_breakdown,
    prorate,
)
from erp.services.inventory import carried_costs

pytestmark = pytest.mark.unit


def make_batch(batch_id=1, quantity="10", price="100", weight="0.5", **costs) -> InventoryBatch:
    batch = InventoryBatch(
        id=batch_id,
        batch_number=f"B-{batch_id}",
        product_id=1,
        location_id=1,
        purchase_date=date(2026, 4, 1),
        received_quantity=Decimal(quantity),
        available_quantity=Decimal(quantity),
        purchase_price=Decimal(price),
        landed_cost_per_unit=Decimal(price),
        freight_cost=Decimal("0"),
        insurance_cost=Decimal("0"),
        customs_duty=Decimal("0"),
        handling_charges=Decimal("0"),
        other_charges=Decimal("0"),
        cost_allocation_status="pending",
    )
    batch.product = Product(id=1, name="Contactor", part_code="CT-1", weight_kg=Decimal(weight) if weight else None)
    for field, value in costs.items():
        setattr(batch, field, Decimal(value))
    return batch


class TestProrate:
    """Test splitting an amount over weighted bases."""

    def test_shares_proportional_to_basis(self):
        shares = prorate(Decimal("400"), [(1, Decimal("1000")), (2, Decimal("3000"))])

        assert shares == {1: Decimal("100.00"), 2: Decimal("300.00")}

    def test_remainder_goes_to_first_of_equal_largest(self):
        """Test that 100 over three equal shares puts the extra cent on the first key."""
        shares = prorate(Decimal("100"), [(1, Decimal("1")), (2, Decimal("1")), (3, Decimal("1"))])

        assert shares == {1: Decimal("33.34"), 2: Decimal("33.33"), 3: Decimal("33.33")}
        assert sum(shares.values()) == Decimal("100.00")

    def test_remainder_goes_to_largest_basis(self):
        shares = prorate(Decimal("10"), [(1, Decimal("1")), (2, Decimal("2")), (3, Decimal("3")), (4, Decimal("3"))])

        assert sum(shares.values()) == Decimal("10.00")
        assert shares[3] >= shares[4]

    def test_zero_amount_allocates_nothing(self):
        assert prorate(Decimal("0"), [(1, Decimal("0"))]) == {1: Decimal("0")}

    def test_zero_basis_rejected(self):
        """Test that a non-zero amount cannot be spread over a zero basis."""
        with pytest.raises(BusinessRuleError):
            prorate(Decimal("50"), [(1, Decimal("0")), (2, Decimal("0"))])


class TestAllocationBasis:
    """Test per-batch allocation basis by method."""

    def test_by_value(self):
        assert allocation_basis(make_batch(quantity="10", price="150"), "by_value") == Decimal("1500")

    def test_by_quantity(self):
        assert allocation_basis(make_batch(quantity="7"), "by_quantity") == Decimal("7")

    def test_by_weight(self):
        assert allocation_basis(make_batch(quantity="10", weight="2.000"), "by_weight") == Decimal("20.000")

    def test_by_weight_without_product_weight(self):
        assert allocation_basis(make_batch(weight=None), "by_weight") == Decimal("0")

    def test_equal(self):
        assert allocation_basis(make_batch(quantity="999"), "equal") == Decimal("1")

    def test_unknown_method(self):
        with pytest.raises(BusinessRuleError):
            allocation_basis(make_batch(), "by_volume")


class TestLandedCostPerUnit:
    def test_adds_additional_cost_per_unit(self):
        batch = make_batch(quantity="10", price="100", freight_cost="100", customs_duty="25")

        assert compute_landed_cost_per_unit(batch) == Decimal("112.5000")

    def test_rounds_to_four_places(self):
        batch = make_batch(quantity="3", price="10", freight_cost="1")

        assert compute_landed_cost_per_unit(batch) == Decimal("10.3333")

    def test_breakdown_percentages(self):
        """Test freight, duty and overhead percentages of a batch."""
        batch = make_batch(quantity="10", price="100", freight_cost="100", customs_duty="25")
        batch.landed_cost_per_unit = compute_landed_cost_per_unit(batch)

        breakdown = cost_breakdown(batch)

        assert breakdown["total_additional_costs"] == 125.0
        assert breakdown["additional_cost_per_unit"] == 12.5
        assert breakdown["freight_percentage"] == 10.0
        assert breakdown["duty_percentage"] == 2.5
        assert breakdown["cost_overhead_percentage"] == 12.5
        assert breakdown["product_name"] == "Contactor"


class TestCarriedCosts:
    """Test the cost components that move with transferred units."""

    def test_share_of_each_component(self):
        batch = make_batch(quantity="10", freight_cost="100", customs_duty="25")

        costs = carried_costs(batch, Decimal("4"))

        assert costs["freight_cost"] == Decimal("40.00")
        assert costs["customs_duty"] == Decimal("10.00")
        assert costs["insurance_cost"] == Decimal("0")

    def test_rounded_to_cents(self):
        batch = make_batch(quantity="3", freight_cost="100")

        assert carried_costs(batch, Decimal("1"))["freight_cost"] == Decimal("33.33")

    def test_empty_batch_carries_nothing(self):
        batch = make_batch(quantity="0", freight_cost="100")

        assert all(value == Decimal("0") for value in carried_costs(batch, Decimal("1")).values())
