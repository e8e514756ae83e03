"""
Order creation (checkout) and item maintenance.

Every mutation that touches items ends with recalc_order_totals as the last
write before commit.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from portal.models import (
    Order, OrderItem, Product, OrderStatus, OrderChannel, AuditAction
)
from portal.exceptions import BusinessLogicError, NotFoundError
from portal.services import audit_service
from portal.services.catalog_service import resolve_unit_price
from portal.services.discount_service import check_approved_discounts_fit
from portal.services.order_totals_service import recalc_order_totals, line_subtotal, to_money
from portal.utils.validators import parse_quantity

logger = logging.getLogger(__name__)

DEFAULT_ORDER_PREFIX = 'PED'


def _order_prefix() -> str:
    from flask import current_app, has_app_context

    if has_app_context():
        return current_app.config.get('ORDER_NUMBER_PREFIX', DEFAULT_ORDER_PREFIX)
    return DEFAULT_ORDER_PREFIX


def generate_order_number(session: Session, company_id: Optional[int] = None) -> str:
    """
    Next order number for today: PED-YYYYMMDD-NNNN.

    Numbers are unique across companies; the sequence restarts daily.
    """
    prefix = f"{_order_prefix()}-{datetime.now().strftime('%Y%m%d')}-"
    count = session.query(Order).filter(Order.order_number.like(f"{prefix}%")).count()

    seq = count + 1
    number = f"{prefix}{str(seq).zfill(4)}"
    while session.query(Order.id).filter(Order.order_number == number).first():
        seq += 1
        number = f"{prefix}{str(seq).zfill(4)}"
    return number


def _make_item(order: Order, product: Product, quantity: int, session: Session, company_id: int) -> OrderItem:
    unit_price = to_money(resolve_unit_price(product, company_id, session))
    return OrderItem(
        order_id=order.id,
        product_id=product.id,
        sku=product.sku,
        product_name_snapshot=product.name,
        quantity=quantity,
        list_price=to_money(product.price),
        unit_price=unit_price,
        subtotal=line_subtotal(quantity, unit_price),
    )


def create_order_from_cart(cart: dict, session: Session, ctx, channel: OrderChannel = OrderChannel.SITE,
                           notes: Optional[str] = None, freight: Optional[Decimal] = None) -> Order:
    """
    Create an order (QUOTE / AWAITING_PRINT) from the session cart.

    Unit prices are snapshotted with the company price when one exists.

    Raises:
        BusinessLogicError: empty cart
        NotFoundError: a product does not belong to the company
        ValidationError: invalid quantity
    """
    company_id = ctx.require_company()
    if not cart or not cart.get('items'):
        raise BusinessLogicError('Carrinho vazio.')

    quantities = {int(pid): parse_quantity(item.get('qty')) for pid, item in cart['items'].items()}

    try:
        products = session.query(Product).filter(
            Product.id.in_(list(quantities.keys())),
            Product.company_id == company_id,
            Product.active == True
        ).all()
        products_dict = {p.id: p for p in products}

        if len(products) != len(quantities):
            raise NotFoundError('Um ou mais produtos não foram encontrados.')

        order = Order(
            company_id=company_id,
            created_by_user_id=ctx.actor_user_id,
            order_number=generate_order_number(session, company_id),
            channel=channel,
            status=OrderStatus.QUOTE,
            notes=notes,
            freight=to_money(freight) if freight is not None else Decimal('0.00'),
        )
        session.add(order)
        session.flush()

        for product_id in sorted(quantities):
            session.add(_make_item(order, products_dict[product_id], quantities[product_id], session, company_id))

        audit_service.log_action(
            session, ctx, AuditAction.ORDER_CREATED,
            resource_type='order', resource_id=order.id,
            details={'order_number': order.order_number, 'items': len(quantities), 'channel': channel.value}
        )
        recalc_order_totals(order.id, session)
        session.commit()

        logger.info(f"[ORDER] Created {order.order_number} for company {company_id} by user {ctx.actor_user_id}")
        return order
    except Exception:
        session.rollback()
        raise


def get_order(order_id: int, session: Session, company_id: int) -> Order:
    """Fetch an order of the company or raise NotFoundError."""
    order = session.query(Order).filter(
        Order.id == order_id,
        Order.company_id == company_id
    ).first()
    if not order:
        raise NotFoundError(f'Pedido {order_id} não encontrado.')
    return order


def list_orders(company_id: int, session: Session, status: Optional[OrderStatus] = None,
                limit: int = 100, offset: int = 0) -> List[Order]:
    """Orders of a company, newest first."""
    query = session.query(Order).filter(Order.company_id == company_id)
    if status:
        query = query.filter(Order.status == status)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).offset(offset).all()


def list_order_items(order_id: int, session: Session, company_id: int) -> List[OrderItem]:
    get_order(order_id, session, company_id)
    return session.query(OrderItem).filter(
        OrderItem.order_id == order_id
    ).order_by(OrderItem.id).all()


def _get_editable_order(order_id: int, session: Session, company_id: int) -> Order:
    order = session.query(Order).filter(
        Order.id == order_id,
        Order.company_id == company_id
    ).with_for_update().first()
    if not order:
        raise NotFoundError(f'Pedido {order_id} não encontrado.')
    if not order.is_editable:
        raise BusinessLogicError(f'Pedido {order.status.value} não pode ser alterado.')
    return order


def _get_item(order: Order, item_id: int, session: Session) -> OrderItem:
    item = session.query(OrderItem).filter(
        OrderItem.id == item_id,
        OrderItem.order_id == order.id
    ).first()
    if not item:
        raise NotFoundError(f'Item {item_id} não encontrado no pedido.')
    return item


def add_item_to_order(order_id: int, product_id: int, quantity: Any, session: Session, ctx) -> OrderItem:
    """Append a new line with a fresh price snapshot."""
    company_id = ctx.require_company()
    qty = parse_quantity(quantity)
    try:
        order = _get_editable_order(order_id, session, company_id)
        product = session.query(Product).filter(
            Product.id == product_id,
            Product.company_id == company_id,
            Product.active == True
        ).first()
        if not product:
            raise NotFoundError(f'Produto {product_id} não encontrado.')

        item = _make_item(order, product, qty, session, company_id)
        session.add(item)
        session.flush()

        audit_service.log_action(
            session, ctx, AuditAction.ORDER_ITEM_ADDED,
            resource_type='order_item', resource_id=item.id,
            details={'order_id': order.id, 'sku': product.sku, 'quantity': qty, 'unit_price': item.unit_price}
        )
        recalc_order_totals(order.id, session)
        session.commit()
        return item
    except Exception:
        session.rollback()
        raise


def update_item_quantity(order_id: int, item_id: int, quantity: Any, session: Session, ctx) -> OrderItem:
    """
    Change a line's quantity; the price snapshot is kept.

    Raises:
        ValidationError: the line's approved discounts would exceed its new value
    """
    company_id = ctx.require_company()
    qty = parse_quantity(quantity)
    try:
        order = _get_editable_order(order_id, session, company_id)
        item = _get_item(order, item_id, session)
        check_approved_discounts_fit(item, qty)

        previous = item.quantity
        item.quantity = qty
        item.subtotal = line_subtotal(qty, item.unit_price)

        audit_service.log_action(
            session, ctx, AuditAction.ORDER_ITEM_UPDATED,
            resource_type='order_item', resource_id=item.id,
            details={'order_id': order.id, 'from': previous, 'to': qty}
        )
        recalc_order_totals(order.id, session)
        session.commit()
        return item
    except Exception:
        session.rollback()
        raise


def remove_item(order_id: int, item_id: int, session: Session, ctx) -> Order:
    """Delete a line (and its discounts) and recompute the order."""
    company_id = ctx.require_company()
    try:
        order = _get_editable_order(order_id, session, company_id)
        item = _get_item(order, item_id, session)

        sku = item.sku
        session.delete(item)

        audit_service.log_action(
            session, ctx, AuditAction.ORDER_ITEM_REMOVED,
            resource_type='order_item', resource_id=item_id,
            details={'order_id': order.id, 'sku': sku}
        )
        order = recalc_order_totals(order.id, session)
        session.commit()
        return order
    except Exception:
        session.rollback()
        raise


def order_to_dict(order: Order, include_items: bool = False) -> Dict[str, Any]:
    """JSON-ready representation of an order."""
    from portal.services.order_stage_service import get_order_stage_view

    data = {
        'id': order.id,
        'order_number': order.order_number,
        'company_id': order.company_id,
        'channel': order.channel.value,
        'status': order.status.value,
        'stage': order.stage.value,
        'stage_view': get_order_stage_view(order),
        'subtotal': str(to_money(order.subtotal)),
        'discount_total': str(to_money(order.discount_total)),
        'freight': str(to_money(order.freight)),
        'total': str(to_money(order.total)),
        'notes': order.notes,
        'cancel_reason': order.cancel_reason,
        'printed_at': order.printed_at.isoformat() if order.printed_at else None,
        'created_at': order.created_at.isoformat() if order.created_at else None,
    }
    if include_items:
        data['items'] = [item_to_dict(item) for item in order.items]
    return data


def item_to_dict(item: OrderItem) -> Dict[str, Any]:
    return {
        'id': item.id,
        'product_id': item.product_id,
        'sku': item.sku,
        'name': item.product_name_snapshot,
        'quantity': item.quantity,
        'list_price': str(to_money(item.list_price)),
        'unit_price': str(to_money(item.unit_price)),
        'subtotal': str(to_money(item.subtotal)),
        'discounts': [
            {
                'id': d.id,
                'type': d.discount_type.value,
                'value': str(to_money(d.value)),
                'status': d.status.value,
                'reason': d.reason,
            }
            for d in item.discounts
        ],
    }
