"""Discounts blueprint - request and review item discounts."""
from flask import Blueprint, request, g, jsonify

from portal.database import get_session
from portal.middleware import require_login, require_company, require_company_admin
from portal.models import parse_discount_status
from portal.exceptions import ValidationError
from portal.services import discount_service
from portal.utils.validators import parse_id

discounts_bp = Blueprint('discounts', __name__, url_prefix='/api/discounts')


@discounts_bp.route('')
@require_login
@require_company
def list_discounts():
    status = None
    if request.args.get('status'):
        try:
            status = parse_discount_status(request.args['status'])
        except ValueError as e:
            raise ValidationError(str(e), field='status')

    discounts = discount_service.list_discounts(
        g.ctx.effective_company_id, get_session(),
        status=status, order_id=request.args.get('order_id', type=int)
    )
    return jsonify({'discounts': [discount_service.discount_to_dict(d) for d in discounts]})


@discounts_bp.route('', methods=['POST'])
@require_login
@require_company
def request_discount():
    data = request.get_json(silent=True) or {}
    item_id = parse_id(data.get('order_item_id'), field='order_item_id')

    discount = discount_service.request_discount(
        item_id, data.get('discount_type'), data.get('value'),
        get_session(), g.ctx, reason=data.get('reason')
    )
    return jsonify({'status': 'ok', 'discount': discount_service.discount_to_dict(discount)}), 201


@discounts_bp.route('/<int:discount_id>/approve', methods=['POST'])
@require_login
@require_company
@require_company_admin
def approve(discount_id):
    discount = discount_service.approve_discount(discount_id, get_session(), g.ctx)
    return jsonify({'status': 'ok', 'discount': discount_service.discount_to_dict(discount)})


@discounts_bp.route('/<int:discount_id>/reject', methods=['POST'])
@require_login
@require_company
@require_company_admin
def reject(discount_id):
    data = request.get_json(silent=True) or {}
    discount = discount_service.reject_discount(discount_id, get_session(), g.ctx, reason=data.get('reason'))
    return jsonify({'status': 'ok', 'discount': discount_service.discount_to_dict(discount)})
