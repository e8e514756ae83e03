"""
Active company resolution (multi-tenancy guard).

session_state is any mutable mapping (the Flask session in production, a
plain dict in tests). The stored selection is only a hint: it is revalidated
against the user's memberships on every request.
"""

import enum
import logging
from dataclasses import dataclass
from typing import List, MutableMapping, Optional

from sqlalchemy.orm import Session

from portal.models import AppUser, Company, UserCompany, ApprovalStatus, AuditAction
from portal.exceptions import ScopeViolationError, NotFoundError
from portal.context import RequestContext
from portal.services import audit_service

logger = logging.getLogger(__name__)

ACTIVE_COMPANY_KEY = 'active_company_id'
IMPERSONATING_KEY = 'impersonating'
IMPERSONATED_COMPANY_KEY = 'impersonated_company_id'
IMPERSONATOR_KEY = 'impersonator_user_id'


class ResolutionKind(enum.Enum):
    RESOLVED = 'RESOLVED'
    REQUIRES_SELECTION = 'REQUIRES_SELECTION'
    NONE = 'NONE'


@dataclass(frozen=True)
class CompanyResolution:
    """Outcome of resolving the active company for a request."""
    kind: ResolutionKind
    company_id: Optional[int] = None
    suggested_company_id: Optional[int] = None
    source: Optional[str] = None  # impersonation | stored | auto
    role: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.kind == ResolutionKind.RESOLVED

    def to_dict(self):
        return {
            'kind': self.kind.value,
            'company_id': self.company_id,
            'suggested_company_id': self.suggested_company_id,
            'source': self.source,
        }


def _active_memberships(user_id: int, session: Session) -> List[UserCompany]:
    """Active links to active, approved companies, ordered by company name."""
    return session.query(UserCompany).join(
        Company, Company.id == UserCompany.company_id
    ).filter(
        UserCompany.user_id == user_id,
        UserCompany.active == True,
        Company.active == True,
        Company.approval_status == ApprovalStatus.APPROVED
    ).order_by(Company.legal_name, Company.id).all()


def list_user_companies(user_id: int, session: Session) -> List[Company]:
    """Companies the user can select as active scope."""
    return [link.company for link in _active_memberships(user_id, session)]


def _clear_impersonation(session_state: MutableMapping) -> None:
    session_state.pop(IMPERSONATING_KEY, None)
    session_state.pop(IMPERSONATED_COMPANY_KEY, None)
    session_state.pop(IMPERSONATOR_KEY, None)


def _resolve_impersonation(user: AppUser, session_state: MutableMapping, session: Session) -> Optional[CompanyResolution]:
    if not session_state.get(IMPERSONATING_KEY):
        return None

    company_id = session_state.get(IMPERSONATED_COMPANY_KEY)
    if not user.is_superadmin or session_state.get(IMPERSONATOR_KEY) != user.id:
        logger.warning(f"[SCOPE] Dropping impersonation flag not owned by superadmin user {user.id}")
        _clear_impersonation(session_state)
        return None

    company = session.query(Company).filter_by(id=company_id).first() if company_id else None
    if not company:
        logger.warning(f"[IMPERSONATION] Impersonated company {company_id} no longer exists, clearing")
        _clear_impersonation(session_state)
        return None

    return CompanyResolution(ResolutionKind.RESOLVED, company_id=company.id, source='impersonation')


def resolve_active_company(user_id: int, session_state: MutableMapping, session: Session) -> CompanyResolution:
    """
    Determine which company the request acts on.

    Order of precedence:
        1. Superadmin impersonation
        2. Stored selection, if the user still holds an active membership
           (stale ids are removed from session_state)
        3. Single membership, auto-selected and stored
        4. Several memberships: REQUIRES_SELECTION, never a silent default
        5. No membership: NONE
    """
    user = session.query(AppUser).filter_by(id=user_id).first()
    if not user:
        return CompanyResolution(ResolutionKind.NONE)

    impersonated = _resolve_impersonation(user, session_state, session)
    if impersonated:
        return impersonated

    memberships = _active_memberships(user_id, session)
    by_company = {link.company_id: link for link in memberships}

    stored = session_state.get(ACTIVE_COMPANY_KEY)
    if stored is not None:
        link = by_company.get(stored)
        if link:
            return CompanyResolution(ResolutionKind.RESOLVED, company_id=stored, source='stored', role=link.role)
        logger.info(f"[SCOPE] Discarding stale active company {stored} for user {user_id}")
        session_state.pop(ACTIVE_COMPANY_KEY, None)

    if len(memberships) == 1:
        link = memberships[0]
        session_state[ACTIVE_COMPANY_KEY] = link.company_id
        return CompanyResolution(ResolutionKind.RESOLVED, company_id=link.company_id, source='auto', role=link.role)

    if len(memberships) > 1:
        return CompanyResolution(ResolutionKind.REQUIRES_SELECTION, suggested_company_id=memberships[0].company_id)

    return CompanyResolution(ResolutionKind.NONE)


def set_active_company(user_id: int, company_id: int, session_state: MutableMapping, session: Session,
                       ctx: Optional[RequestContext] = None) -> CompanyResolution:
    """
    Store an explicit company selection after checking membership.

    Raises:
        NotFoundError: company does not exist
        ScopeViolationError: user has no active membership in it (403)
    """
    company = session.query(Company).filter_by(id=company_id).first()
    if not company:
        raise NotFoundError(f'Empresa {company_id} não encontrada.')

    link = next((m for m in _active_memberships(user_id, session) if m.company_id == company_id), None)
    if not link:
        logger.warning(f"[SCOPE] User {user_id} tried to select company {company_id} without membership")
        raise ScopeViolationError('Você não tem acesso a esta empresa.', status_code=403)

    session_state[ACTIVE_COMPANY_KEY] = company_id

    if ctx is not None:
        audit_service.log_action(
            session, ctx, AuditAction.COMPANY_SELECTED,
            resource_type='company', resource_id=company_id, company_id=company_id
        )
        session.commit()

    return CompanyResolution(ResolutionKind.RESOLVED, company_id=company_id, source='stored', role=link.role)


def build_request_context(user: AppUser, resolution: CompanyResolution,
                          ip_address: Optional[str] = None,
                          user_agent: Optional[str] = None) -> RequestContext:
    """Freeze the acting identity and scope for the rest of the request."""
    return RequestContext(
        actor_user_id=user.id,
        is_superadmin=bool(user.is_superadmin),
        effective_company_id=resolution.company_id if resolution.is_resolved else None,
        impersonating=resolution.source == 'impersonation',
        role=resolution.role,
        ip_address=ip_address,
        user_agent=user_agent,
    )
