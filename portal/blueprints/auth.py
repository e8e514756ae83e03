"""
Authentication blueprint.
Handles registration, login, logout and active company selection.
"""

import logging
import re

from flask import Blueprint, request, session, g, jsonify

from portal.database import db_session
from portal.models import AppUser, ApprovalStatus, AuditAction, CompanyRole
from portal.context import RequestContext
from portal.exceptions import BusinessLogicError
from portal.middleware import require_login
from portal.services import audit_service
from portal.services.company_context_service import (
    list_user_companies, set_active_company, resolve_active_company
)
from portal.services.company_service import (
    register_user, create_company, link_user_to_company, company_to_dict
)
from portal.services.impersonation_service import get_impersonation_status
from portal.utils.validators import parse_id

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def is_valid_email(email: str) -> bool:
    """Validate email format."""
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return re.match(pattern, email) is not None


def user_to_dict(user: AppUser) -> dict:
    return {
        'id': user.id,
        'email': user.email,
        'full_name': user.full_name,
        'is_superadmin': user.is_superadmin,
        'approval_status': user.approval_status.value,
    }


def _request_ctx(user: AppUser) -> RequestContext:
    return RequestContext(
        actor_user_id=user.id,
        is_superadmin=bool(user.is_superadmin),
        ip_address=request.remote_addr,
        user_agent=request.headers.get('User-Agent'),
    )


@auth_bp.route('/register', methods=['POST'])
def register():
    """Self-registration. The account can log in only after approval."""
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip()
    password = data.get('password') or ''

    if not is_valid_email(email):
        raise BusinessLogicError('Email inválido.')
    if len(password) < 8:
        raise BusinessLogicError('A senha deve ter pelo menos 8 caracteres.')

    user = register_user(db_session, email, password, full_name=data.get('full_name'), phone=data.get('phone'))

    # Optional company sign-up: the registrant becomes its admin, both wait for approval
    company = None
    company_data = data.get('company') or {}
    if company_data.get('legal_name'):
        company = create_company(
            db_session,
            company_data['legal_name'],
            trade_name=company_data.get('trade_name'),
            tax_id=company_data.get('tax_id'),
        )
        link_user_to_company(db_session, user.id, company.id, role=CompanyRole.COMPANY_ADMIN)
        logger.info(f"[AUTH] Company sign-up {company.slug} by {user.email}")

    return jsonify({
        'status': 'ok',
        'user': user_to_dict(user),
        'company': company_to_dict(company) if company else None,
    }), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    """Validate email + password and open a session."""
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    if not email or not password:
        raise BusinessLogicError('Email e senha são obrigatórios.')

    user = db_session.query(AppUser).filter_by(email=email).first()
    if not user or not user.active or not user.check_password(password):
        return jsonify({'status': 'error', 'message': 'Email ou senha incorretos.'}), 401

    if not user.can_login:
        message = 'Cadastro rejeitado.' if user.approval_status == ApprovalStatus.REJECTED \
            else 'Cadastro aguardando aprovação.'
        return jsonify({'status': 'error', 'message': message}), 403

    session.clear()
    session['user_id'] = user.id
    session.permanent = True

    resolution = resolve_active_company(user.id, session, db_session)

    audit_service.log_action(db_session, _request_ctx(user), AuditAction.USER_LOGIN,
                             resource_type='user', resource_id=user.id,
                             company_id=resolution.company_id)
    db_session.commit()

    logger.info(f"[AUTH] Login user={user.id} resolution={resolution.kind.value}")
    return jsonify({'status': 'ok', 'user': user_to_dict(user), 'company': resolution.to_dict()})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """Clear the session (impersonation state included)."""
    if g.get('user'):
        audit_service.log_action(db_session, g.ctx, AuditAction.USER_LOGOUT,
                                 resource_type='user', resource_id=g.user.id)
        db_session.commit()
    session.clear()
    return jsonify({'status': 'ok'})


@auth_bp.route('/me')
@require_login
def me():
    return jsonify({
        'user': user_to_dict(g.user),
        'company': g.resolution.to_dict(),
        'role': g.ctx.role,
        'impersonation': get_impersonation_status(session, db_session),
    })


@auth_bp.route('/companies')
@require_login
def companies():
    """Companies the user may select, plus the current resolution."""
    return jsonify({
        'companies': [company_to_dict(c) for c in list_user_companies(g.user.id, db_session)],
        'active_company_id': g.resolution.company_id,
        'resolution': g.resolution.to_dict(),
    })


@auth_bp.route('/select-company', methods=['POST'])
@require_login
def select_company():
    data = request.get_json(silent=True) or {}
    company_id = parse_id(data.get('company_id'), field='company_id')

    resolution = set_active_company(g.user.id, company_id, session, db_session, ctx=g.ctx)
    return jsonify({'status': 'ok', 'company': resolution.to_dict()})
