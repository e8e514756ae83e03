"""
Integration tests for company/user registration and the approval workflow.
"""

import pytest

from portal.exceptions import UnauthorizedError, NotFoundError, BusinessLogicError
from portal.models import (
    AppUser, Company, UserCompany, ApprovalStatus, CompanyRole, AuditLog, AuditAction
)
from portal.services import company_service
from portal.services.company_context_service import resolve_active_company, ResolutionKind
from portal.services.order_stage_service import update_order_status
from conftest import make_user, ctx_for


class TestCompanyRegistration:

    def test_create_company_is_pending(self, session):
        company = company_service.create_company(session, 'Ômega Peças LTDA', trade_name='Ômega Peças')

        assert company.slug == 'omega-pecas'
        assert company.approval_status == ApprovalStatus.PENDING

    def test_slug_collisions_get_suffix(self, session):
        first = company_service.create_company(session, 'Delta LTDA', trade_name='Delta')
        second = company_service.create_company(session, 'Delta Comércio', trade_name='Delta')

        assert first.slug == 'delta'
        assert second.slug == 'delta-1'

    def test_legal_name_required(self, session):
        with pytest.raises(BusinessLogicError):
            company_service.create_company(session, '   ')

    def test_register_user_normalizes_email(self, session):
        user = company_service.register_user(session, ' Novo@Cliente.COM ', 'password123')

        assert user.email == 'novo@cliente.com'
        assert user.approval_status == ApprovalStatus.PENDING
        assert user.can_login is False

    def test_duplicate_email(self, session, buyer1):
        with pytest.raises(BusinessLogicError):
            company_service.register_user(session, buyer1.email.upper(), 'password123')

    def test_register_endpoint_with_company(self, client, session):
        response = client.post('/api/auth/register', json={
            'email': 'dono@epsilon.com',
            'password': 'password123',
            'company': {'legal_name': 'Epsilon Atacado LTDA', 'trade_name': 'Epsilon'},
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['company']['approval_status'] == 'PENDING'

        link = session.query(UserCompany).filter_by(company_id=data['company']['id']).one()
        assert link.user_id == data['user']['id']
        assert link.role == CompanyRole.COMPANY_ADMIN.value


class TestCompanyApproval:

    def test_superadmin_approves_company(self, session, superadmin):
        company = company_service.create_company(session, 'Zeta LTDA')
        owner = make_user(session, 'dono@zeta.com', company, role=CompanyRole.COMPANY_ADMIN)
        assert resolve_active_company(owner.id, {}, session).kind == ResolutionKind.NONE

        company_service.approve_company(company.id, session, ctx_for(superadmin))

        assert resolve_active_company(owner.id, {}, session).company_id == company.id
        entry = session.query(AuditLog).filter_by(action=AuditAction.COMPANY_APPROVED).one()
        assert entry.actor_user_id == superadmin.id

    def test_company_admin_cannot_approve_companies(self, session, admin_ctx):
        company = company_service.create_company(session, 'Eta LTDA')

        with pytest.raises(UnauthorizedError):
            company_service.approve_company(company.id, session, admin_ctx)

    def test_reject_company(self, session, superadmin):
        company = company_service.create_company(session, 'Theta LTDA')
        rejected = company_service.reject_company(company.id, session, ctx_for(superadmin))
        assert rejected.approval_status == ApprovalStatus.REJECTED

    def test_deactivated_company_drops_out_of_scope(self, session, superadmin, buyer1, company1):
        company_service.set_company_active(company1.id, False, session, ctx_for(superadmin))

        assert resolve_active_company(buyer1.id, {}, session).kind == ResolutionKind.NONE


class TestUserApproval:

    def test_admin_approves_member(self, session, company1, admin_ctx):
        pending = make_user(session, 'pendente@alfa.com', company1, approval_status=ApprovalStatus.PENDING)

        user = company_service.approve_user(pending.id, session, admin_ctx)

        assert user.approval_status == ApprovalStatus.APPROVED
        assert user.can_login is True

    def test_admin_cannot_approve_outsider(self, session, company2, admin_ctx):
        outsider = make_user(session, 'pendente@beta.com', company2, approval_status=ApprovalStatus.PENDING)

        with pytest.raises(NotFoundError):
            company_service.approve_user(outsider.id, session, admin_ctx)

    def test_buyer_cannot_approve(self, session, company1, buyer_ctx):
        pending = make_user(session, 'pendente@alfa.com', company1, approval_status=ApprovalStatus.PENDING)

        with pytest.raises(UnauthorizedError):
            company_service.approve_user(pending.id, session, buyer_ctx)

    def test_link_reactivates_membership(self, session, buyer1, company1, admin_ctx):
        link = session.query(UserCompany).filter_by(user_id=buyer1.id).one()
        link.active = False
        session.commit()

        link = company_service.link_user_to_company(
            session, buyer1.id, company1.id, role=CompanyRole.OPERATOR, ctx=admin_ctx
        )

        assert link.active is True
        assert link.role == CompanyRole.OPERATOR.value
        assert session.query(UserCompany).filter_by(user_id=buyer1.id).count() == 1

    def test_list_company_users(self, session, company1, admin1, buyer1, user2):
        emails = sorted(u['email'] for u in company_service.list_company_users(company1.id, session))
        assert emails == ['admin1@alfa.com', 'buyer1@alfa.com']

    def test_companies_by_user(self, session, buyer1, company1, company2):
        session.add(UserCompany(user_id=buyer1.id, company_id=company2.id,
                                role=CompanyRole.BUYER.value, active=False))
        session.commit()

        memberships = company_service.get_companies_by_user(session, buyer1.id)

        assert [m['id'] for m in memberships] == [company1.id, company2.id]
        assert [m['membership_active'] for m in memberships] == [True, False]


class TestPlatformMetrics:

    def test_metrics_count_invoiced_revenue(self, session, superadmin, order1, admin_ctx, company2):
        update_order_status(order1.id, 'GENERATED', session, admin_ctx)
        update_order_status(order1.id, 'INVOICED', session, admin_ctx)
        make_user(session, 'novo@beta.com', approval_status=ApprovalStatus.PENDING)

        metrics = company_service.get_platform_metrics(session)

        assert metrics['total_companies'] == 2
        assert metrics['companies_by_status']['APPROVED'] == 2
        assert metrics['total_orders'] == 1
        assert metrics['invoiced_revenue'] == '40.00'
        assert metrics['pending_users'] == 1

    def test_companies_with_stats(self, session, order1, company1, company2):
        rows = {row['id']: row for row in company_service.list_companies_with_stats(session)}

        assert set(rows) == {company1.id, company2.id}
        assert rows[company1.id]['invoiced_orders'] == 0
