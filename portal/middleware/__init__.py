"""Middleware for authentication and active company context."""
import logging
from functools import wraps

from flask import session, g, request, jsonify

from portal.database import db_session
from portal.models import AppUser
from portal.exceptions import ScopeViolationError, UnauthorizedError
from portal.services.company_context_service import (
    resolve_active_company, build_request_context, CompanyResolution, ResolutionKind
)

logger = logging.getLogger(__name__)


def load_request_context():
    """
    Load current user, company resolution and RequestContext into g.

    Called before each request. Sets g.user, g.resolution and g.ctx; g.ctx is
    None for anonymous requests.
    """
    g.user = None
    g.resolution = CompanyResolution(ResolutionKind.NONE)
    g.ctx = None

    user_id = session.get('user_id')
    if not user_id:
        return

    user = db_session.query(AppUser).filter_by(id=user_id).first()
    if not user or not user.can_login:
        # Account disabled or no longer approved since login
        session.clear()
        return

    g.user = user
    g.resolution = resolve_active_company(user.id, session, db_session)
    g.ctx = build_request_context(
        user, g.resolution,
        ip_address=request.remote_addr,
        user_agent=request.headers.get('User-Agent')
    )


def require_login(f):
    """
    Decorator: Require user to be logged in.

    Returns a JSON 401 when there is no authenticated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            return jsonify({'status': 'error', 'message': 'Autenticação necessária.'}), 401
        return f(*args, **kwargs)
    return decorated_function


def require_company(f):
    """
    Decorator: Require a resolved active company.

    Must be used AFTER require_login. Raises ScopeViolationError (400), which
    carries the resolution kind so clients can show the company picker.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        resolution = g.get('resolution')
        if resolution is None or not resolution.is_resolved:
            kind = resolution.kind.value if resolution else ResolutionKind.NONE.value
            logger.warning(
                f"[SCOPE] Blocked {request.method} {request.path} for user "
                f"{g.user.id if g.get('user') else None}: {kind}"
            )
            raise ScopeViolationError(payload={
                'resolution': kind,
                'suggested_company_id': resolution.suggested_company_id if resolution else None,
            })
        return f(*args, **kwargs)
    return decorated_function


def require_company_admin(f):
    """
    Decorator: Require COMPANY_ADMIN in the active company (or an
    impersonating superadmin). Must be used AFTER require_company.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not g.ctx.is_company_admin:
            raise UnauthorizedError('Apenas administradores da empresa podem acessar.')
        return f(*args, **kwargs)
    return decorated_function


def require_superadmin(f):
    """Decorator: Require a superadmin. Must be used AFTER require_login."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not g.user.is_superadmin:
            logger.warning(f"[SECURITY] Non-superadmin user {g.user.id} tried {request.path}")
            raise UnauthorizedError('Acesso restrito ao superadmin.')
        return f(*args, **kwargs)
    return decorated_function
