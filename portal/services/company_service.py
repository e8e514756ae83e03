"""
Companies, memberships and the approval workflow for companies and users.

Company approval is a superadmin action; user approval is done by the
company's admins (or a superadmin acting as the company).
"""
import logging
import re
import unicodedata
from typing import Any, Dict, List, Optional

from sqlalchemy import func, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from portal.models import (
    Company, AppUser, UserCompany, CompanyRole, ApprovalStatus, CustomerType,
    Order, OrderStatus, AuditAction
)
from portal.exceptions import BusinessLogicError, NotFoundError, UnauthorizedError
from portal.services import audit_service

logger = logging.getLogger(__name__)


def generate_slug(name: str) -> str:
    """Generate URL-safe slug from a company name."""
    slug = unicodedata.normalize('NFKD', name)
    slug = slug.encode('ascii', 'ignore').decode('ascii')
    slug = re.sub(r'[^a-z0-9]+', '-', slug.lower()).strip('-')
    return slug[:80] or 'empresa'


def _unique_slug(session: Session, name: str) -> str:
    slug = generate_slug(name)
    base_slug = slug
    counter = 1
    while session.query(Company).filter_by(slug=slug).first():
        slug = f"{base_slug}-{counter}"
        counter += 1
    return slug


def _require_superadmin(ctx) -> None:
    if not ctx.is_superadmin:
        raise UnauthorizedError('Apenas superadmins podem executar esta ação.')


def _require_company_admin(ctx) -> None:
    if not (ctx.is_company_admin or ctx.is_superadmin):
        raise UnauthorizedError('Apenas administradores da empresa podem executar esta ação.')


def create_company(session: Session, legal_name: str, trade_name: Optional[str] = None,
                   tax_id: Optional[str] = None, customer_type: CustomerType = CustomerType.WHOLESALE,
                   approval_status: ApprovalStatus = ApprovalStatus.PENDING) -> Company:
    """Register a company; new companies wait for superadmin approval."""
    legal_name = (legal_name or '').strip()
    if not legal_name:
        raise BusinessLogicError('Razão social é obrigatória.')

    try:
        company = Company(
            slug=_unique_slug(session, trade_name or legal_name),
            legal_name=legal_name,
            trade_name=(trade_name or '').strip() or None,
            tax_id=(tax_id or '').strip() or None,
            customer_type=customer_type,
            approval_status=approval_status,
            active=True,
        )
        session.add(company)
        session.commit()
        return company
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError('CNPJ já cadastrado.')
    except Exception:
        session.rollback()
        raise


def register_user(session: Session, email: str, password: str, full_name: Optional[str] = None,
                  phone: Optional[str] = None) -> AppUser:
    """Self-registration; the account stays PENDING until approved."""
    email = (email or '').strip().lower()
    if not email or not password:
        raise BusinessLogicError('Email e senha são obrigatórios.')
    if session.query(AppUser).filter(func.lower(AppUser.email) == email).first():
        raise BusinessLogicError('Este email já está cadastrado.')

    try:
        user = AppUser(email=email, full_name=full_name, phone=phone, active=True,
                       approval_status=ApprovalStatus.PENDING)
        user.set_password(password)
        session.add(user)
        session.commit()
        return user
    except Exception:
        session.rollback()
        raise


def link_user_to_company(session: Session, user_id: int, company_id: int,
                         role: CompanyRole = CompanyRole.OPERATOR, ctx=None) -> UserCompany:
    """Create (or reactivate) a membership."""
    if not session.query(AppUser).filter_by(id=user_id).first():
        raise NotFoundError(f'Usuário {user_id} não encontrado.')
    if not session.query(Company).filter_by(id=company_id).first():
        raise NotFoundError(f'Empresa {company_id} não encontrada.')

    try:
        link = session.query(UserCompany).filter_by(user_id=user_id, company_id=company_id).first()
        if link:
            link.active = True
            link.role = role.value
        else:
            link = UserCompany(user_id=user_id, company_id=company_id, role=role.value, active=True)
            session.add(link)
        session.flush()

        if ctx is not None:
            audit_service.log_action(
                session, ctx, AuditAction.USER_LINKED,
                resource_type='user', resource_id=user_id,
                details={'role': role.value}, company_id=company_id
            )
        session.commit()
        return link
    except Exception:
        session.rollback()
        raise


def get_companies_by_user(session: Session, user_id: int) -> List[Dict[str, Any]]:
    """All memberships of a user (any status), with role."""
    rows = session.query(UserCompany, Company).join(
        Company, Company.id == UserCompany.company_id
    ).filter(
        UserCompany.user_id == user_id
    ).order_by(Company.legal_name).all()

    return [
        {
            **company_to_dict(company),
            'role': link.role,
            'membership_active': link.active,
        }
        for link, company in rows
    ]


def _set_company_approval(company_id: int, status: ApprovalStatus, action: AuditAction,
                          session: Session, ctx) -> Company:
    _require_superadmin(ctx)
    try:
        company = session.query(Company).filter_by(id=company_id).with_for_update().first()
        if not company:
            raise NotFoundError(f'Empresa {company_id} não encontrada.')

        previous = company.approval_status
        company.approval_status = status
        audit_service.log_action(
            session, ctx, action,
            resource_type='company', resource_id=company.id,
            details={'from': previous.value, 'to': status.value}, company_id=company.id
        )
        session.commit()
        logger.info(f"[COMPANY] {company.slug}: {previous.value} -> {status.value} by user {ctx.actor_user_id}")
        return company
    except Exception:
        session.rollback()
        raise


def approve_company(company_id: int, session: Session, ctx) -> Company:
    return _set_company_approval(company_id, ApprovalStatus.APPROVED, AuditAction.COMPANY_APPROVED, session, ctx)


def reject_company(company_id: int, session: Session, ctx) -> Company:
    return _set_company_approval(company_id, ApprovalStatus.REJECTED, AuditAction.COMPANY_REJECTED, session, ctx)


def set_company_active(company_id: int, active: bool, session: Session, ctx) -> Company:
    """Enable or disable a company (superadmin)."""
    _require_superadmin(ctx)
    try:
        company = session.query(Company).filter_by(id=company_id).first()
        if not company:
            raise NotFoundError(f'Empresa {company_id} não encontrada.')
        company.active = bool(active)
        audit_service.log_action(
            session, ctx, AuditAction.COMPANY_STATUS_CHANGED,
            resource_type='company', resource_id=company.id,
            details={'active': company.active}, company_id=company.id
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    from portal.services.cache_service import get_cache
    try:
        get_cache().invalidate_company(company_id)
    except RuntimeError:
        pass
    return company


def list_company_users(company_id: int, session: Session) -> List[Dict[str, Any]]:
    rows = session.query(UserCompany, AppUser).join(
        AppUser, AppUser.id == UserCompany.user_id
    ).filter(
        UserCompany.company_id == company_id
    ).order_by(AppUser.full_name, AppUser.email).all()

    return [
        {
            'id': user.id,
            'email': user.email,
            'full_name': user.full_name,
            'phone': user.phone,
            'role': link.role,
            'active': bool(user.active and link.active),
            'approval_status': user.approval_status.value,
        }
        for link, user in rows
    ]


def _set_user_approval(user_id: int, status: ApprovalStatus, action: AuditAction,
                       session: Session, ctx) -> AppUser:
    company_id = ctx.require_company()
    _require_company_admin(ctx)
    try:
        link = session.query(UserCompany).filter_by(user_id=user_id, company_id=company_id).first()
        if not link:
            raise NotFoundError(f'Usuário {user_id} não pertence a esta empresa.')

        user = link.user
        previous = user.approval_status
        user.approval_status = status
        audit_service.log_action(
            session, ctx, action,
            resource_type='user', resource_id=user.id,
            details={'email': user.email, 'from': previous.value, 'to': status.value}
        )
        session.commit()
        return user
    except Exception:
        session.rollback()
        raise


def approve_user(user_id: int, session: Session, ctx) -> AppUser:
    return _set_user_approval(user_id, ApprovalStatus.APPROVED, AuditAction.USER_APPROVED, session, ctx)


def reject_user(user_id: int, session: Session, ctx) -> AppUser:
    return _set_user_approval(user_id, ApprovalStatus.REJECTED, AuditAction.USER_REJECTED, session, ctx)


def list_companies_with_stats(session: Session, search_query: Optional[str] = None,
                              approval_status: Optional[ApprovalStatus] = None) -> List[Dict[str, Any]]:
    """
    Companies for the superadmin console, with order count and invoiced revenue.
    """
    orders_subq = session.query(
        Order.company_id,
        func.count(Order.id).label('total_orders'),
        func.coalesce(func.sum(Order.total), 0).label('total_revenue')
    ).filter(
        Order.status == OrderStatus.INVOICED
    ).group_by(
        Order.company_id
    ).subquery()

    query = session.query(
        Company,
        func.coalesce(orders_subq.c.total_orders, 0).label('total_orders'),
        func.coalesce(orders_subq.c.total_revenue, 0).label('total_revenue')
    ).outerjoin(
        orders_subq, orders_subq.c.company_id == Company.id
    )

    if search_query:
        pattern = f'%{search_query}%'
        query = query.filter(
            (Company.legal_name.ilike(pattern)) |
            (Company.trade_name.ilike(pattern)) |
            (Company.slug.ilike(pattern))
        )
    if approval_status:
        query = query.filter(Company.approval_status == approval_status)

    companies = []
    for company, total_orders, total_revenue in query.order_by(desc(Company.created_at), desc(Company.id)).all():
        data = company_to_dict(company)
        data['invoiced_orders'] = int(total_orders or 0)
        data['invoiced_revenue'] = str(total_revenue or 0)
        companies.append(data)
    return companies


def get_platform_metrics(session: Session) -> Dict[str, Any]:
    """
    Global KPIs for the superadmin dashboard.

    Returns dict with company counts per approval status, order count and
    revenue of invoiced orders.
    """
    by_status = dict(
        session.query(Company.approval_status, func.count(Company.id)).group_by(Company.approval_status).all()
    )
    total_orders = session.query(func.count(Order.id)).scalar() or 0
    invoiced_revenue = session.query(func.sum(Order.total)).filter(
        Order.status == OrderStatus.INVOICED
    ).scalar() or 0
    pending_users = session.query(func.count(AppUser.id)).filter(
        AppUser.approval_status == ApprovalStatus.PENDING,
        AppUser.is_superadmin == False
    ).scalar() or 0

    return {
        'total_companies': sum(by_status.values()),
        'companies_by_status': {status.value: by_status.get(status, 0) for status in ApprovalStatus},
        'total_orders': total_orders,
        'invoiced_revenue': str(invoiced_revenue),
        'pending_users': pending_users,
    }


def company_to_dict(company: Company) -> Dict[str, Any]:
    return {
        'id': company.id,
        'slug': company.slug,
        'legal_name': company.legal_name,
        'trade_name': company.trade_name,
        'name': company.display_name,
        'tax_id': company.tax_id,
        'customer_type': company.customer_type.value,
        'approval_status': company.approval_status.value,
        'active': company.active,
    }
