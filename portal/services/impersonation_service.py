"""
Impersonation service for superadmin support functionality.

A superadmin can act as a company without changing identity: the session keeps
the superadmin as the authenticated user and only the effective company
changes. Every start/end is written to the audit trail with the true actor.
"""
import logging
from typing import MutableMapping, Optional

from sqlalchemy.orm import Session

from portal.models import AppUser, Company, AuditAction
from portal.context import RequestContext
from portal.exceptions import UnauthorizedError, NotFoundError, BusinessLogicError
from portal.services import audit_service
from portal.services.company_context_service import (
    IMPERSONATING_KEY, IMPERSONATED_COMPANY_KEY, IMPERSONATOR_KEY
)

logger = logging.getLogger(__name__)

# Client-side query caches that must be dropped when the effective company changes
CLIENT_CACHE_KEYS = ('orders', 'users', 'companies')


def is_impersonating(session_state: MutableMapping) -> bool:
    """
    Check if the session is in impersonation mode.

    Returns:
        bool: True if impersonating, False otherwise
    """
    return bool(session_state.get(IMPERSONATING_KEY))


def enter_impersonation(actor_user_id: int, target_company_id: int, session_state: MutableMapping,
                        session: Session, ip_address: Optional[str] = None,
                        user_agent: Optional[str] = None) -> MutableMapping:
    """
    Start acting as a company.

    Args:
        actor_user_id: Authenticated user requesting impersonation
        target_company_id: Company to act as
        session_state: Mutable session mapping (updated in place)
        session: SQLAlchemy session
        ip_address: Optional IP address of the actor

    Returns:
        The updated session_state

    Raises:
        UnauthorizedError: actor is not a superadmin
        NotFoundError: target company does not exist
        BusinessLogicError: already impersonating
    """
    actor = session.query(AppUser).filter_by(id=actor_user_id).first()
    if not actor or not actor.is_superadmin or not actor.active:
        logger.warning(f"[IMPERSONATION] Denied for non-superadmin user {actor_user_id}")
        raise UnauthorizedError('Apenas superadmins podem acessar como empresa.')

    # Prevent nested impersonation
    if is_impersonating(session_state):
        raise BusinessLogicError('Você já está acessando como uma empresa. Saia do modo suporte primeiro.')

    company = session.query(Company).filter_by(id=target_company_id).first()
    if not company:
        raise NotFoundError(f'Empresa {target_company_id} não encontrada.')

    ctx = RequestContext(
        actor_user_id=actor.id,
        is_superadmin=True,
        effective_company_id=company.id,
        impersonating=True,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    try:
        audit_service.log_action(
            session, ctx, AuditAction.IMPERSONATION_START,
            resource_type='company', resource_id=company.id,
            details={'company_name': company.display_name, 'company_slug': company.slug, 'admin_email': actor.email}
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    session_state[IMPERSONATING_KEY] = True
    session_state[IMPERSONATED_COMPANY_KEY] = company.id
    session_state[IMPERSONATOR_KEY] = actor.id

    logger.info(f"[IMPERSONATION] START admin={actor.email} company={company.id} ({company.slug})")
    return session_state


def exit_impersonation(session_state: MutableMapping, session: Session,
                       actor_user_id: Optional[int] = None,
                       ip_address: Optional[str] = None,
                       user_agent: Optional[str] = None) -> MutableMapping:
    """
    Stop acting as a company.

    Idempotent: calling it outside impersonation returns session_state
    unchanged. The server-side cache of the impersonated company is
    invalidated; callers drop CLIENT_CACHE_KEYS on their side.

    actor_user_id is only used when the session lost the impersonator id.
    """
    if not is_impersonating(session_state):
        return session_state

    actor_user_id = session_state.get(IMPERSONATOR_KEY) or actor_user_id
    company_id = session_state.get(IMPERSONATED_COMPANY_KEY)

    if actor_user_id:
        ctx = RequestContext(
            actor_user_id=actor_user_id,
            is_superadmin=True,
            effective_company_id=company_id,
            impersonating=True,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        try:
            audit_service.log_action(
                session, ctx, AuditAction.IMPERSONATION_END,
                resource_type='company', resource_id=company_id
            )
            session.commit()
        except Exception:
            session.rollback()
            raise

    session_state.pop(IMPERSONATING_KEY, None)
    session_state.pop(IMPERSONATED_COMPANY_KEY, None)
    session_state.pop(IMPERSONATOR_KEY, None)

    if company_id:
        _invalidate_company_cache(company_id)

    logger.info(f"[IMPERSONATION] END admin={actor_user_id} company={company_id}")
    return session_state


def _invalidate_company_cache(company_id: int) -> None:
    from portal.services.cache_service import get_cache

    try:
        cache = get_cache()
    except RuntimeError:
        return
    cache.invalidate_company(company_id)


def get_impersonation_status(session_state: MutableMapping, session: Session) -> dict:
    """
    Data for the impersonation banner.

    Returns:
        dict with is_impersonating and, when active, the company and admin
    """
    if not is_impersonating(session_state):
        return {'is_impersonating': False, 'company': None, 'admin_email': None}

    company = session.query(Company).filter_by(id=session_state.get(IMPERSONATED_COMPANY_KEY)).first()
    admin = session.query(AppUser).filter_by(id=session_state.get(IMPERSONATOR_KEY)).first()

    return {
        'is_impersonating': True,
        'company': {
            'id': company.id,
            'name': company.display_name,
            'slug': company.slug,
        } if company else None,
        'admin_email': admin.email if admin else None,
    }
