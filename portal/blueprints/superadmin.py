"""
Superadmin console blueprint.

Company approval, platform metrics, audit trail and impersonation
(acting as a company without changing identity).
"""
import logging

from flask import Blueprint, request, session, g, jsonify

from portal.database import get_session
from portal.middleware import require_login, require_superadmin
from portal.models import ApprovalStatus, AuditAction
from portal.exceptions import ValidationError
from portal.services import company_service, impersonation_service, audit_service

logger = logging.getLogger(__name__)

superadmin_bp = Blueprint('superadmin', __name__, url_prefix='/api/superadmin')


@superadmin_bp.route('/companies')
@require_login
@require_superadmin
def list_companies():
    status = None
    if request.args.get('status'):
        try:
            status = ApprovalStatus[request.args['status'].strip().upper()]
        except KeyError:
            raise ValidationError(f"Status inválido: {request.args['status']}", field='status')

    companies = company_service.list_companies_with_stats(
        get_session(), search_query=request.args.get('search'), approval_status=status
    )
    return jsonify({'companies': companies})


@superadmin_bp.route('/companies/<int:company_id>/approve', methods=['POST'])
@require_login
@require_superadmin
def approve_company(company_id):
    company = company_service.approve_company(company_id, get_session(), g.ctx)
    return jsonify({'status': 'ok', 'company': company_service.company_to_dict(company)})


@superadmin_bp.route('/companies/<int:company_id>/reject', methods=['POST'])
@require_login
@require_superadmin
def reject_company(company_id):
    company = company_service.reject_company(company_id, get_session(), g.ctx)
    return jsonify({'status': 'ok', 'company': company_service.company_to_dict(company)})


@superadmin_bp.route('/companies/<int:company_id>/active', methods=['POST'])
@require_login
@require_superadmin
def set_company_active(company_id):
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get('active'), bool):
        raise ValidationError('Campo "active" deve ser booleano.', field='active')

    company = company_service.set_company_active(company_id, data['active'], get_session(), g.ctx)
    return jsonify({'status': 'ok', 'company': company_service.company_to_dict(company)})


@superadmin_bp.route('/users/<int:user_id>/companies')
@require_login
@require_superadmin
def user_companies(user_id):
    """Every membership of a user, whatever its status."""
    return jsonify({'companies': company_service.get_companies_by_user(get_session(), user_id)})


@superadmin_bp.route('/metrics')
@require_login
@require_superadmin
def platform_metrics():
    return jsonify(company_service.get_platform_metrics(get_session()))


@superadmin_bp.route('/audit')
@require_login
@require_superadmin
def audit_logs():
    company_id = request.args.get('company_id', type=int)
    if not company_id:
        raise ValidationError('company_id é obrigatório.', field='company_id')

    action = None
    if request.args.get('action'):
        try:
            action = AuditAction[request.args['action'].strip().upper()]
        except KeyError:
            raise ValidationError(f"Ação inválida: {request.args['action']}", field='action')

    logs = audit_service.get_audit_logs(
        get_session(), company_id,
        limit=min(request.args.get('limit', 100, type=int), 500),
        offset=request.args.get('offset', 0, type=int),
        action_filter=action,
        actor_id_filter=request.args.get('actor_id', type=int),
    )
    return jsonify({'logs': [
        {
            'id': log.id,
            'action': log.action.value,
            'actor_user_id': log.actor_user_id,
            'impersonating': log.impersonating,
            'resource_type': log.resource_type,
            'resource_id': log.resource_id,
            'details': log.details,
            'created_at': log.created_at.isoformat() if log.created_at else None,
        }
        for log in logs
    ]})


@superadmin_bp.route('/impersonate/<int:company_id>', methods=['POST'])
@require_login
@require_superadmin
def impersonate(company_id):
    """Start acting as a company."""
    impersonation_service.enter_impersonation(
        g.user.id, company_id, session, get_session(),
        ip_address=request.remote_addr,
        user_agent=request.headers.get('User-Agent')
    )
    return jsonify({
        'status': 'ok',
        'impersonation': impersonation_service.get_impersonation_status(session, get_session()),
        'invalidate': list(impersonation_service.CLIENT_CACHE_KEYS),
    })


@superadmin_bp.route('/exit-impersonation', methods=['POST'])
@require_login
@require_superadmin
def exit_impersonation():
    """Stop acting as a company; clients drop the listed query caches."""
    impersonation_service.exit_impersonation(
        session, get_session(),
        actor_user_id=g.user.id,
        ip_address=request.remote_addr,
        user_agent=request.headers.get('User-Agent')
    )
    return jsonify({
        'status': 'ok',
        'impersonation': impersonation_service.get_impersonation_status(session, get_session()),
        'invalidate': list(impersonation_service.CLIENT_CACHE_KEYS),
    })


@superadmin_bp.route('/impersonation-status')
@require_login
@require_superadmin
def impersonation_status():
    return jsonify(impersonation_service.get_impersonation_status(session, get_session()))
