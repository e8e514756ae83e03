"""
Order totals service (pricing engine).

Derives the authoritative monetary fields of an order from its items and
its APPROVED discounts. Must run as the last write of any transaction that
touches items or discounts of an order.
"""

import logging
from collections import namedtuple
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Tuple

from sqlalchemy.orm import Session

from portal.models import Order, OrderItem, OrderItemDiscount, DiscountStatus, DiscountType

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal('0.01')
ZERO = Decimal('0.00')

OrderTotals = namedtuple('OrderTotals', ['subtotal', 'discount_total', 'total'])


def to_money(value) -> Decimal:
    """Quantize any numeric value to a 2-place Decimal (half-up)."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def line_subtotal(quantity, unit_price) -> Decimal:
    """quantity x unit_price, quantized."""
    return to_money(Decimal(int(quantity)) * to_money(unit_price))


def discount_amount(discount_type: DiscountType, value, contribution) -> Decimal:
    """
    Amount a single discount removes from the order.

    PERCENTAGE applies to the discounted item's contribution
    (quantity x unit_price); FIXED is the value itself.
    """
    if discount_type == DiscountType.PERCENTAGE:
        return to_money(to_money(contribution) * to_money(value) / Decimal(100))
    return to_money(value)


def compute_order_totals(
    items: Iterable[Tuple[int, int, Decimal]],
    approved_discounts: Iterable[Tuple[int, DiscountType, Decimal]]
) -> OrderTotals:
    """
    Pure totals computation.

    Args:
        items: (item_id, quantity, unit_price) rows
        approved_discounts: (order_item_id, discount_type, value) rows,
            already filtered to APPROVED

    Returns:
        OrderTotals(subtotal, discount_total, total)
    """
    contributions = {}
    subtotal = ZERO
    for item_id, quantity, unit_price in items:
        contribution = line_subtotal(quantity, unit_price)
        contributions[item_id] = contributions.get(item_id, ZERO) + contribution
        subtotal += contribution

    discount_total = ZERO
    for item_id, discount_type, value in approved_discounts:
        discount_total += discount_amount(discount_type, value, contributions.get(item_id, ZERO))

    subtotal = to_money(subtotal)
    discount_total = to_money(discount_total)
    return OrderTotals(subtotal, discount_total, to_money(subtotal - discount_total))


def recalc_order_totals(order_id: int, session: Session) -> Optional[Order]:
    """
    Recalculate and persist subtotal, discount_total and total of an order.

    The order row is locked first so concurrent recalculations serialize,
    then approved discounts are re-read; nothing is cached between read and
    write. The caller owns the transaction (commit/rollback).

    Returns:
        The updated Order, or None if the order does not exist.
    """
    # Pending item/discount changes must be visible to the queries below
    session.flush()

    order = session.query(Order).filter(
        Order.id == order_id
    ).populate_existing().with_for_update().first()

    if not order:
        logger.warning(f"[TOTALS] Order {order_id} not found, nothing recalculated")
        return None

    items = session.query(
        OrderItem.id, OrderItem.quantity, OrderItem.unit_price
    ).filter(
        OrderItem.order_id == order_id
    ).order_by(OrderItem.id).all()

    approved = session.query(
        OrderItemDiscount.order_item_id,
        OrderItemDiscount.discount_type,
        OrderItemDiscount.value
    ).join(
        OrderItem, OrderItem.id == OrderItemDiscount.order_item_id
    ).filter(
        OrderItem.order_id == order_id,
        OrderItemDiscount.status == DiscountStatus.APPROVED
    ).order_by(OrderItemDiscount.id).all()

    totals = compute_order_totals(items, approved)

    # Only assign on change so an idempotent recalculation does not bump version_id
    if to_money(order.subtotal) != totals.subtotal:
        order.subtotal = totals.subtotal
    if to_money(order.discount_total) != totals.discount_total:
        order.discount_total = totals.discount_total
    if to_money(order.total) != totals.total:
        order.total = totals.total

    session.flush()

    logger.debug(
        f"[TOTALS] Order {order_id}: subtotal={totals.subtotal} "
        f"discounts={totals.discount_total} total={totals.total} ({len(approved)} approved)"
    )
    return order
