"""
Unit tests for the pure totals computation.
"""

from decimal import Decimal

from portal.models import DiscountType
from portal.services.order_totals_service import (
    compute_order_totals, discount_amount, line_subtotal, to_money
)


ITEMS = [(1, 3, Decimal('10.00')), (2, 1, Decimal('50.00'))]


class TestComputeOrderTotals:
    """Totals derived from items and approved discounts."""

    def test_fixed_discount_on_first_item(self):
        totals = compute_order_totals(ITEMS, [(1, DiscountType.FIXED, Decimal('5.00'))])

        assert totals.subtotal == Decimal('80.00')
        assert totals.discount_total == Decimal('5.00')
        assert totals.total == Decimal('75.00')

    def test_percentage_discount_uses_item_contribution(self):
        totals = compute_order_totals(ITEMS, [(1, DiscountType.PERCENTAGE, Decimal('10'))])

        assert totals.discount_total == Decimal('3.00')
        assert totals.total == Decimal('77.00')

    def test_no_items(self):
        totals = compute_order_totals([], [])

        assert totals.subtotal == Decimal('0.00')
        assert totals.discount_total == Decimal('0.00')
        assert totals.total == Decimal('0.00')

    def test_no_discounts_total_equals_subtotal(self):
        totals = compute_order_totals(ITEMS, [])
        assert totals.total == totals.subtotal == Decimal('80.00')

    def test_several_discounts_add_up(self):
        totals = compute_order_totals(ITEMS, [
            (1, DiscountType.FIXED, Decimal('5.00')),
            (2, DiscountType.PERCENTAGE, Decimal('20')),
        ])

        assert totals.discount_total == Decimal('15.00')
        assert totals.total == Decimal('65.00')

    def test_discount_for_unknown_item_has_no_percentage_base(self):
        totals = compute_order_totals(ITEMS, [(99, DiscountType.PERCENTAGE, Decimal('50'))])
        assert totals.total == Decimal('80.00')

    def test_same_input_same_output(self):
        discounts = [(1, DiscountType.FIXED, Decimal('5.00'))]
        assert compute_order_totals(ITEMS, discounts) == compute_order_totals(ITEMS, discounts)


class TestMoneyHelpers:
    """Rounding helpers."""

    def test_to_money_rounds_half_up(self):
        assert to_money(Decimal('2.005')) == Decimal('2.01')
        assert to_money('1.004') == Decimal('1.00')
        assert to_money(None) == Decimal('0.00')

    def test_to_money_float_goes_through_str(self):
        assert to_money(0.1 + 0.2) == Decimal('0.30')

    def test_line_subtotal(self):
        assert line_subtotal(3, Decimal('10.00')) == Decimal('30.00')
        assert line_subtotal(7, '0.333') == Decimal('2.31')

    def test_percentage_discount_rounding(self):
        assert discount_amount(DiscountType.PERCENTAGE, Decimal('33.33'), Decimal('10.00')) == Decimal('3.33')

    def test_fixed_discount_is_value(self):
        assert discount_amount(DiscountType.FIXED, Decimal('4.5'), Decimal('100.00')) == Decimal('4.50')
