"""Cart blueprint - session cart per active company and checkout."""
from decimal import Decimal
from typing import Tuple

from flask import Blueprint, request, session, g, jsonify

from portal.database import get_session
from portal.middleware import require_login, require_company
from portal.models import Product, OrderChannel
from portal.exceptions import NotFoundError, ValidationError
from portal.services.catalog_service import resolve_unit_price
from portal.services.order_service import create_order_from_cart, order_to_dict
from portal.services.order_totals_service import line_subtotal
from portal.utils.validators import parse_quantity, parse_id, parse_money, optional_text

cart_bp = Blueprint('cart', __name__, url_prefix='/api/cart')


def get_cart() -> dict:
    """Get cart from session for the active company."""
    if 'cart_by_company' not in session:
        session['cart_by_company'] = {}

    company_id = str(g.ctx.effective_company_id)
    if company_id not in session['cart_by_company']:
        session['cart_by_company'][company_id] = {'items': {}}
        session.modified = True

    return session['cart_by_company'][company_id]


def clear_cart() -> None:
    session.get('cart_by_company', {}).pop(str(g.ctx.effective_company_id), None)
    session.modified = True


def get_cart_with_products(db_session, company_id: int) -> Tuple[list, Decimal]:
    """Cart lines with current prices (tenant-scoped). Products gone from the catalog are dropped."""
    cart = get_cart()
    lines = []
    total = Decimal('0.00')

    for product_id_str, item in list(cart['items'].items()):
        product = db_session.query(Product).filter_by(
            id=int(product_id_str), company_id=company_id, active=True
        ).first()
        if not product:
            cart['items'].pop(product_id_str)
            session.modified = True
            continue

        unit_price = resolve_unit_price(product, company_id, db_session)
        subtotal = line_subtotal(item['qty'], unit_price)
        lines.append({
            'product_id': product.id,
            'sku': product.sku,
            'name': product.name,
            'qty': item['qty'],
            'unit_price': str(unit_price),
            'subtotal': str(subtotal),
        })
        total += subtotal

    return lines, total


@cart_bp.route('', methods=['GET'])
@require_login
@require_company
def view_cart():
    lines, total = get_cart_with_products(get_session(), g.ctx.effective_company_id)
    return jsonify({'items': lines, 'total': str(total)})


@cart_bp.route('/items', methods=['POST'])
@require_login
@require_company
def add_to_cart():
    data = request.get_json(silent=True) or {}
    product_id = parse_id(data.get('product_id'), field='product_id')
    qty = parse_quantity(data.get('qty', 1), field='qty')

    product = get_session().query(Product).filter_by(
        id=product_id, company_id=g.ctx.effective_company_id, active=True
    ).first()
    if not product:
        raise NotFoundError(f'Produto {product_id} não encontrado.')

    cart = get_cart()
    key = str(product_id)
    current = cart['items'].get(key, {}).get('qty', 0)
    cart['items'][key] = {'qty': parse_quantity(current + qty, field='qty')}
    session.modified = True

    return jsonify({'status': 'ok', 'product_id': product_id, 'qty': cart['items'][key]['qty']})


@cart_bp.route('/items/<int:product_id>', methods=['PUT'])
@require_login
@require_company
def update_cart_item(product_id):
    data = request.get_json(silent=True) or {}
    qty = parse_quantity(data.get('qty'), field='qty')

    cart = get_cart()
    if str(product_id) not in cart['items']:
        raise NotFoundError('Produto não está no carrinho.')
    cart['items'][str(product_id)] = {'qty': qty}
    session.modified = True
    return jsonify({'status': 'ok', 'product_id': product_id, 'qty': qty})


@cart_bp.route('/items/<int:product_id>', methods=['DELETE'])
@require_login
@require_company
def remove_from_cart(product_id):
    cart = get_cart()
    cart['items'].pop(str(product_id), None)
    session.modified = True
    return jsonify({'status': 'ok'})


@cart_bp.route('', methods=['DELETE'])
@require_login
@require_company
def empty_cart():
    clear_cart()
    return jsonify({'status': 'ok'})


@cart_bp.route('/checkout', methods=['POST'])
@require_login
@require_company
def checkout():
    """Turn the cart into an order (QUOTE, awaiting print)."""
    data = request.get_json(silent=True) or {}

    freight = None
    if data.get('freight') not in (None, ''):
        freight = parse_money(data.get('freight'), field='freight', allow_zero=True)

    channel = OrderChannel.SITE
    if data.get('channel'):
        try:
            channel = OrderChannel[str(data['channel']).strip().upper()]
        except KeyError:
            raise ValidationError(f"Canal inválido: {data['channel']}", field='channel')

    order = create_order_from_cart(
        get_cart(), get_session(), g.ctx,
        channel=channel,
        notes=optional_text(data.get('notes')),
        freight=freight,
    )
    clear_cart()
    return jsonify({'status': 'ok', 'order': order_to_dict(order, include_items=True)}), 201
