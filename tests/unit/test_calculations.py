"""
Unit tests for document numbering, tax type and PO-GRN validation helpers.
"""

from datetime import date
from decimal import Decimal

import pytest

from erp.services.audit import _jsonable, changed_fields
from erp.services.calculations import as_float, percentage, round_money, round_unit_cost, to_decimal
from erp.services.document_numbers import current_financial_year
from erp.services.po_grn_validation import price_variance_percent, resolve_quantities
from erp.services.purchase_orders import tax_type_for

pytestmark = pytest.mark.unit


class TestFinancialYear:
    """Test financial year codes used in document numbers."""

    def test_april_starts_new_year(self):
        """Test that April 1st belongs to the year starting that April."""
        assert current_financial_year(date(2025, 4, 1)) == "2526"

    def test_march_belongs_to_previous_start(self):
        """Test that March closes the year started the previous April."""
        assert current_financial_year(date(2026, 3, 31)) == "2526"

    def test_century_rollover(self):
        assert current_financial_year(date(2099, 12, 1)) == "9900"

    def test_custom_start_month(self):
        """Test a January financial year start."""
        assert current_financial_year(date(2026, 1, 15), start_month=1) == "2627"


class TestTaxType:
    """Test GST tax type selection."""

    def test_same_state_is_cgst_sgst(self):
        assert tax_type_for("Karnataka", "Karnataka") == "CGST+SGST"

    def test_state_comparison_ignores_case_and_spaces(self):
        assert tax_type_for("  karnataka ", "Karnataka") == "CGST+SGST"

    def test_other_state_is_igst(self):
        assert tax_type_for("Maharashtra", "Karnataka") == "IGST"

    def test_unknown_state_defaults_to_cgst_sgst(self):
        assert tax_type_for(None, "Karnataka") == "CGST+SGST"


class TestPriceVariance:
    """Test GRN vs PO unit price variance."""

    def test_variance_is_absolute_percentage(self):
        assert price_variance_percent(Decimal("100"), Decimal("110")) == Decimal("10")
        assert price_variance_percent(Decimal("100"), Decimal("90")) == Decimal("10")

    def test_equal_prices_have_no_variance(self):
        assert price_variance_percent(Decimal("250.50"), Decimal("250.50")) == Decimal("0")

    def test_zero_po_price(self):
        """Test that a priced receipt on a free PO line counts as full variance."""
        assert price_variance_percent(Decimal("0"), Decimal("0")) == Decimal("0")
        assert price_variance_percent(Decimal("0"), Decimal("5")) == Decimal("100")


class TestResolveQuantities:
    """Test received/accepted/rejected defaults on GRN lines."""

    def test_accepted_defaults_to_received_minus_rejected(self):
        received, accepted, rejected = resolve_quantities(
            {"received_quantity": 10, "rejected_quantity": 2}
        )

        assert received == Decimal("10")
        assert accepted == Decimal("8")
        assert rejected == Decimal("2")

    def test_rejected_defaults_to_zero(self):
        assert resolve_quantities({"received_quantity": "5.5"}) == (
            Decimal("5.5"),
            Decimal("5.5"),
            Decimal("0"),
        )

    def test_explicit_accepted_is_kept(self):
        """Test that an explicit accepted quantity is not recomputed."""
        _, accepted, _ = resolve_quantities(
            {"received_quantity": 10, "accepted_quantity": 7, "rejected_quantity": 2}
        )
        assert accepted == Decimal("7")


class TestDecimalHelpers:
    def test_to_decimal_avoids_float_artifacts(self):
        assert to_decimal(0.1) == Decimal("0.1")
        assert to_decimal(None) == Decimal("0")
        assert to_decimal(None, Decimal("1")) == Decimal("1")

    def test_rounding_is_half_up(self):
        assert round_money(Decimal("2.345")) == Decimal("2.35")
        assert round_unit_cost(Decimal("1.23455")) == Decimal("1.2346")

    def test_percentage_of_zero_whole(self):
        assert percentage(Decimal("5"), Decimal("0")) == Decimal("0")
        assert percentage(Decimal("25"), Decimal("200")) == Decimal("12.5")

    def test_as_float(self):
        assert as_float(None) is None
        assert as_float(Decimal("1.23456"), 2) == 1.23


class TestAuditHelpers:
    """Test audit snapshot helpers."""

    def test_changed_fields_sorted(self):
        old = {"status": "draft", "total": 10, "approved_by": None}
        new = {"status": "approved", "total": 10, "approved_by": 3}

        assert changed_fields(old, new) == ["approved_by", "status"]

    def test_changed_fields_includes_added_and_removed_keys(self):
        assert changed_fields({"a": 1}, {"b": 1}) == ["a", "b"]

    def test_changed_fields_with_missing_snapshot(self):
        assert changed_fields(None, {"status": "draft"}) == ["status"]

    def test_jsonable_converts_nested_values(self):
        value = {
            "amount": Decimal("12.50"),
            "when": date(2026, 4, 1),
            "lines": [Decimal("1"), {"qty": Decimal("2.5")}],
        }

        assert _jsonable(value) == {
            "amount": 12.5,
            "when": "2026-04-01",
            "lines": [1.0, {"qty": 2.5}],
        }
