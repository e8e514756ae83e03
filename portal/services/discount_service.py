"""
Discount request and review workflow for order items.

A discount only affects totals once APPROVED. Approval and rejection publish
DiscountApproved / DiscountRejected; the handlers registered here recompute
the order totals within the same transaction.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from portal.models import (
    Order, OrderItem, OrderItemDiscount, DiscountType, DiscountStatus,
    AuditAction, parse_discount_type
)
from portal.exceptions import (
    BusinessLogicError, NotFoundError, UnauthorizedError, ValidationError
)
from portal.services import audit_service, events
from portal.services.order_totals_service import recalc_order_totals, line_subtotal, discount_amount
from portal.utils.validators import parse_money, parse_percentage, optional_text

logger = logging.getLogger(__name__)


def _recalc_on_review(event, session: Session) -> None:
    recalc_order_totals(event.order_id, session)


def register_handlers() -> None:
    events.subscribe(events.DiscountApproved, _recalc_on_review)
    events.subscribe(events.DiscountRejected, _recalc_on_review)


register_handlers()


def parse_discount_value(discount_type: DiscountType, value: Any) -> Decimal:
    if discount_type == DiscountType.PERCENTAGE:
        return parse_percentage(value)
    return parse_money(value)


def _check_fits_item(item: OrderItem, discount_type: DiscountType, value: Decimal) -> None:
    """A FIXED discount may not exceed the item's contribution."""
    if discount_type == DiscountType.FIXED and value > line_subtotal(item.quantity, item.unit_price):
        raise ValidationError('Desconto maior que o valor do item.', field='value')


def _approved_amount(item: OrderItem, contribution: Decimal) -> Decimal:
    return sum(
        (discount_amount(d.discount_type, d.value, contribution)
         for d in item.discounts if d.status == DiscountStatus.APPROVED),
        Decimal('0.00')
    )


def check_approved_discounts_fit(item: OrderItem, quantity: int) -> None:
    """
    The APPROVED discounts of an item must still fit once its quantity
    becomes `quantity`; otherwise the order total could go negative.

    Raises:
        ValidationError: approved discounts exceed the new contribution
    """
    contribution = line_subtotal(quantity, item.unit_price)
    if _approved_amount(item, contribution) > contribution:
        raise ValidationError('Descontos aprovados maiores que o novo valor do item.', field='quantity')


def _get_scoped_item(item_id: int, session: Session, company_id: int) -> OrderItem:
    item = session.query(OrderItem).join(
        Order, Order.id == OrderItem.order_id
    ).filter(
        OrderItem.id == item_id,
        Order.company_id == company_id
    ).first()
    if not item:
        raise NotFoundError(f'Item {item_id} não encontrado.')
    return item


def _get_scoped_discount(discount_id: int, session: Session, company_id: int) -> OrderItemDiscount:
    discount = session.query(OrderItemDiscount).join(
        OrderItem, OrderItem.id == OrderItemDiscount.order_item_id
    ).join(
        Order, Order.id == OrderItem.order_id
    ).filter(
        OrderItemDiscount.id == discount_id,
        Order.company_id == company_id
    ).with_for_update(of=OrderItemDiscount).first()
    if not discount:
        raise NotFoundError(f'Desconto {discount_id} não encontrado.')
    return discount


def request_discount(item_id: int, discount_type: Any, value: Any, session: Session, ctx,
                     reason: Optional[str] = None) -> OrderItemDiscount:
    """
    Request a discount on an order item (status PENDING).

    Raises:
        ValidationError: bad type, value <= 0, percentage > 100, or a fixed
            value above the item's contribution
        BusinessLogicError: order no longer editable
    """
    company_id = ctx.require_company()
    try:
        dtype = parse_discount_type(discount_type)
    except ValueError as e:
        raise ValidationError(str(e), field='discount_type')
    amount = parse_discount_value(dtype, value)

    try:
        item = _get_scoped_item(item_id, session, company_id)
        if not item.order.is_editable:
            raise BusinessLogicError(f'Pedido {item.order.status.value} não aceita descontos.')
        _check_fits_item(item, dtype, amount)

        discount = OrderItemDiscount(
            order_item_id=item.id,
            requested_by_user_id=ctx.actor_user_id,
            discount_type=dtype,
            value=amount,
            reason=optional_text(reason),
            status=DiscountStatus.PENDING,
        )
        session.add(discount)
        session.flush()

        audit_service.log_action(
            session, ctx, AuditAction.DISCOUNT_REQUESTED,
            resource_type='discount', resource_id=discount.id,
            details={'order_item_id': item.id, 'type': dtype.value, 'value': amount}
        )
        session.commit()
        return discount
    except Exception:
        session.rollback()
        raise


def _check_reviewer(discount: OrderItemDiscount, ctx) -> None:
    if not (ctx.is_company_admin or ctx.is_superadmin):
        raise UnauthorizedError('Apenas administradores podem revisar descontos.')
    if discount.requested_by_user_id == ctx.actor_user_id and not ctx.is_superadmin:
        raise UnauthorizedError('Você não pode aprovar o próprio pedido de desconto.')


def approve_discount(discount_id: int, session: Session, ctx) -> OrderItemDiscount:
    """
    Approve a pending discount and recompute the order totals.

    Raises:
        UnauthorizedError: reviewer is not an admin, or is the requester
        BusinessLogicError: discount is not PENDING
    """
    company_id = ctx.require_company()
    try:
        discount = _get_scoped_discount(discount_id, session, company_id)
        _check_reviewer(discount, ctx)

        if discount.status != DiscountStatus.PENDING:
            raise BusinessLogicError(f'Desconto já está {discount.status.value}.')

        item = discount.order_item
        if not item.order.is_editable:
            raise BusinessLogicError(f'Pedido {item.order.status.value} não aceita descontos.')
        _check_fits_item(item, discount.discount_type, discount.value)
        contribution = line_subtotal(item.quantity, item.unit_price)
        if _approved_amount(item, contribution) + discount_amount(
                discount.discount_type, discount.value, contribution) > contribution:
            raise ValidationError('Descontos aprovados excedem o valor do item.', field='value')

        discount.status = DiscountStatus.APPROVED
        discount.approved_by_user_id = ctx.actor_user_id
        discount.reviewed_at = datetime.utcnow()

        audit_service.log_action(
            session, ctx, AuditAction.DISCOUNT_APPROVED,
            resource_type='discount', resource_id=discount.id,
            details={'order_id': item.order_id, 'type': discount.discount_type.value, 'value': discount.value}
        )
        events.publish(events.DiscountApproved(
            discount_id=discount.id, order_id=item.order_id,
            company_id=company_id, reviewer_user_id=ctx.actor_user_id
        ), session)
        session.commit()

        logger.info(f"[DISCOUNT] Approved {discount.id} on order {item.order_id} by user {ctx.actor_user_id}")
        return discount
    except Exception:
        session.rollback()
        raise


def reject_discount(discount_id: int, session: Session, ctx, reason: Optional[str] = None) -> OrderItemDiscount:
    """
    Reject a pending or previously approved discount.

    Rejecting an APPROVED discount removes it from the totals.
    """
    company_id = ctx.require_company()
    try:
        discount = _get_scoped_discount(discount_id, session, company_id)
        _check_reviewer(discount, ctx)

        if discount.status == DiscountStatus.REJECTED:
            raise BusinessLogicError('Desconto já está REJECTED.')

        was_approved = discount.status == DiscountStatus.APPROVED
        item = discount.order_item
        if was_approved and not item.order.is_editable:
            raise BusinessLogicError(f'Pedido {item.order.status.value} não pode ser alterado.')

        discount.status = DiscountStatus.REJECTED
        discount.approved_by_user_id = ctx.actor_user_id
        discount.reviewed_at = datetime.utcnow()
        if reason:
            discount.reason = optional_text(reason)

        audit_service.log_action(
            session, ctx, AuditAction.DISCOUNT_REJECTED,
            resource_type='discount', resource_id=discount.id,
            details={'order_id': item.order_id, 'was_approved': was_approved, 'reason': reason}
        )
        events.publish(events.DiscountRejected(
            discount_id=discount.id, order_id=item.order_id, company_id=company_id,
            reviewer_user_id=ctx.actor_user_id, was_approved=was_approved
        ), session)
        session.commit()
        return discount
    except Exception:
        session.rollback()
        raise


def list_discounts(company_id: int, session: Session, status: Optional[DiscountStatus] = None,
                   order_id: Optional[int] = None) -> List[OrderItemDiscount]:
    query = session.query(OrderItemDiscount).join(
        OrderItem, OrderItem.id == OrderItemDiscount.order_item_id
    ).join(
        Order, Order.id == OrderItem.order_id
    ).filter(Order.company_id == company_id)

    if status:
        query = query.filter(OrderItemDiscount.status == status)
    if order_id:
        query = query.filter(Order.id == order_id)
    return query.order_by(OrderItemDiscount.created_at.desc(), OrderItemDiscount.id.desc()).all()


def discount_to_dict(discount: OrderItemDiscount) -> dict:
    return {
        'id': discount.id,
        'order_item_id': discount.order_item_id,
        'order_id': discount.order_item.order_id,
        'type': discount.discount_type.value,
        'value': str(discount.value),
        'status': discount.status.value,
        'reason': discount.reason,
        'requested_by_user_id': discount.requested_by_user_id,
        'approved_by_user_id': discount.approved_by_user_id,
        'reviewed_at': discount.reviewed_at.isoformat() if discount.reviewed_at else None,
    }
