"""Orders blueprint - listing, items and stage/status actions."""
from flask import Blueprint, request, g, jsonify, send_file

from portal.database import get_session
from portal.middleware import require_login, require_company, require_company_admin
from portal.models import parse_status
from portal.exceptions import ValidationError, DocumentGenerationError
from portal.services import order_service, order_stage_service
from portal.services.document_service import generate_order_pdf
from portal.utils.validators import parse_id, optional_text

orders_bp = Blueprint('orders', __name__, url_prefix='/api/orders')


@orders_bp.route('')
@require_login
@require_company
def list_orders():
    status = None
    if request.args.get('status'):
        try:
            status = parse_status(request.args['status'])
        except ValueError as e:
            raise ValidationError(str(e), field='status')

    orders = order_service.list_orders(
        g.ctx.effective_company_id, get_session(), status=status,
        limit=min(request.args.get('limit', 100, type=int), 500),
        offset=request.args.get('offset', 0, type=int),
    )
    return jsonify({'orders': [order_service.order_to_dict(o) for o in orders]})


@orders_bp.route('/<int:order_id>')
@require_login
@require_company
def view_order(order_id):
    order = order_service.get_order(order_id, get_session(), g.ctx.effective_company_id)
    return jsonify({'order': order_service.order_to_dict(order, include_items=True)})


@orders_bp.route('/<int:order_id>/items')
@require_login
@require_company
def list_items(order_id):
    items = order_service.list_order_items(order_id, get_session(), g.ctx.effective_company_id)
    return jsonify({'items': [order_service.item_to_dict(i) for i in items]})


@orders_bp.route('/<int:order_id>/items', methods=['POST'])
@require_login
@require_company
def add_item(order_id):
    data = request.get_json(silent=True) or {}
    product_id = parse_id(data.get('product_id'), field='product_id')

    session = get_session()
    order_service.add_item_to_order(order_id, product_id, data.get('quantity'), session, g.ctx)
    order = order_service.get_order(order_id, session, g.ctx.effective_company_id)
    return jsonify({'status': 'ok', 'order': order_service.order_to_dict(order, include_items=True)}), 201


@orders_bp.route('/<int:order_id>/items/<int:item_id>', methods=['PATCH'])
@require_login
@require_company
def update_item(order_id, item_id):
    data = request.get_json(silent=True) or {}

    session = get_session()
    order_service.update_item_quantity(order_id, item_id, data.get('quantity'), session, g.ctx)
    order = order_service.get_order(order_id, session, g.ctx.effective_company_id)
    return jsonify({'status': 'ok', 'order': order_service.order_to_dict(order, include_items=True)})


@orders_bp.route('/<int:order_id>/items/<int:item_id>', methods=['DELETE'])
@require_login
@require_company
def delete_item(order_id, item_id):
    order = order_service.remove_item(order_id, item_id, get_session(), g.ctx)
    return jsonify({'status': 'ok', 'order': order_service.order_to_dict(order, include_items=True)})


@orders_bp.route('/<int:order_id>/advance', methods=['POST'])
@require_login
@require_company
@require_company_admin
def advance(order_id):
    """
    Run the single forward action of the order's current stage.

    The print action answers with the rendered order sheet; every other
    action answers with the updated order.
    """
    data = request.get_json(silent=True) or {}
    if not data.get('from_stage'):
        raise ValidationError('Etapa atual é obrigatória.', field='from_stage')

    printed = []

    def printer(order, company):
        pdf = generate_order_pdf(order, company)
        printed.append(pdf)
        return pdf

    order = order_stage_service.advance_order_stage(order_id, data['from_stage'], get_session(), g.ctx,
                                                    printer=printer)
    if printed:
        response = send_file(
            printed[0],
            mimetype='application/pdf',
            as_attachment=True,
            download_name=f'{order.order_number}.pdf'
        )
        response.headers['X-Order-Stage'] = order.stage.value
        return response
    return jsonify({'status': 'ok', 'order': order_service.order_to_dict(order)})


@orders_bp.route('/<int:order_id>/cancel', methods=['POST'])
@require_login
@require_company
@require_company_admin
def cancel(order_id):
    data = request.get_json(silent=True) or {}
    order = order_stage_service.cancel_order(order_id, get_session(), g.ctx, reason=optional_text(data.get('reason')))
    return jsonify({'status': 'ok', 'order': order_service.order_to_dict(order)})


@orders_bp.route('/<int:order_id>/status', methods=['POST'])
@require_login
@require_company
@require_company_admin
def change_status(order_id):
    data = request.get_json(silent=True) or {}
    order = order_stage_service.update_order_status(order_id, data.get('status'), get_session(), g.ctx)
    return jsonify({'status': 'ok', 'order': order_service.order_to_dict(order)})


@orders_bp.route('/<int:order_id>/pdf')
@require_login
@require_company
def download_pdf(order_id):
    """Download the printable order sheet (does not change the stage)."""
    order = order_service.get_order(order_id, get_session(), g.ctx.effective_company_id)
    try:
        pdf = generate_order_pdf(order, order.company)
    except Exception as e:
        raise DocumentGenerationError() from e

    return send_file(
        pdf,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f'{order.order_number}.pdf'
    )
