"""
User management blueprint.
Company admins approve, reject and link users of the active company.
"""
from flask import Blueprint, request, g, jsonify

from portal.database import get_session
from portal.middleware import require_login, require_company, require_company_admin
from portal.models import AppUser, CompanyRole
from portal.exceptions import NotFoundError, ValidationError
from portal.services import company_service

users_bp = Blueprint('users', __name__, url_prefix='/api/users')


@users_bp.route('')
@require_login
@require_company
@require_company_admin
def list_users():
    users = company_service.list_company_users(g.ctx.effective_company_id, get_session())
    return jsonify({'users': users})


@users_bp.route('', methods=['POST'])
@require_login
@require_company
@require_company_admin
def link_user():
    """Add an existing account to the active company by email."""
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    try:
        role = CompanyRole[(data.get('role') or CompanyRole.OPERATOR.value).strip().upper()]
    except KeyError:
        raise ValidationError(f"Papel inválido: {data.get('role')}", field='role')

    session = get_session()
    user = session.query(AppUser).filter_by(email=email).first()
    if not user:
        raise NotFoundError(f'Usuário {email} não encontrado.')

    link = company_service.link_user_to_company(
        session, user.id, g.ctx.effective_company_id, role=role, ctx=g.ctx
    )
    return jsonify({'status': 'ok', 'user_id': link.user_id, 'role': link.role}), 201


@users_bp.route('/<int:user_id>/approve', methods=['POST'])
@require_login
@require_company
@require_company_admin
def approve(user_id):
    user = company_service.approve_user(user_id, get_session(), g.ctx)
    return jsonify({'status': 'ok', 'user_id': user.id, 'approval_status': user.approval_status.value})


@users_bp.route('/<int:user_id>/reject', methods=['POST'])
@require_login
@require_company
@require_company_admin
def reject(user_id):
    user = company_service.reject_user(user_id, get_session(), g.ctx)
    return jsonify({'status': 'ok', 'user_id': user.id, 'approval_status': user.approval_status.value})
