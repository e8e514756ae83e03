"""Catalog blueprint - product listing and company prices."""
from flask import Blueprint, request, g, jsonify, current_app

from portal.database import get_session
from portal.middleware import require_login, require_company, require_company_admin
from portal.services import catalog_service
from portal.utils.validators import parse_money

catalog_bp = Blueprint('catalog', __name__, url_prefix='/api/catalog')


@catalog_bp.route('/products')
@require_login
@require_company
def list_products():
    """Paginated products of the active company (search over name/SKU/brand)."""
    result = catalog_service.list_products(
        g.ctx.effective_company_id,
        get_session(),
        search=request.args.get('search'),
        page=request.args.get('page', 1, type=int),
        per_page=request.args.get('per_page', current_app.config.get('CATALOG_PAGE_SIZE', catalog_service.DEFAULT_PAGE_SIZE), type=int),
    )
    return jsonify(result)


@catalog_bp.route('/products/<int:product_id>/price', methods=['PUT'])
@require_login
@require_company
@require_company_admin
def set_price(product_id):
    data = request.get_json(silent=True) or {}
    price = parse_money(data.get('price'), field='price')

    entry = catalog_service.set_company_price(product_id, price, get_session(), g.ctx)
    return jsonify({
        'status': 'ok',
        'product_id': entry.product_id,
        'custom_price': str(entry.custom_price),
    })


@catalog_bp.route('/products/<int:product_id>/price', methods=['DELETE'])
@require_login
@require_company
@require_company_admin
def delete_price(product_id):
    catalog_service.delete_company_price(product_id, get_session(), g.ctx)
    return jsonify({'status': 'ok'})
