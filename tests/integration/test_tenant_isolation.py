"""
Critical integration tests for tenant isolation.
These tests ensure that the active company is resolved safely and that data
never leaks between companies.
"""

import pytest
from decimal import Decimal

from portal.exceptions import NotFoundError, ScopeViolationError
from portal.models import UserCompany, CompanyRole, ApprovalStatus, CompanyPrice
from portal.services import catalog_service, order_service
from portal.services.company_context_service import (
    ACTIVE_COMPANY_KEY, ResolutionKind,
    resolve_active_company, set_active_company, list_user_companies, build_request_context
)
from conftest import make_company, make_user, ctx_for


class TestActiveCompanyResolution:
    """resolve_active_company precedence rules."""

    def test_no_membership_resolves_none(self, session):
        loner = make_user(session, 'sozinho@exemplo.com')
        state = {}

        resolution = resolve_active_company(loner.id, state, session)

        assert resolution.kind == ResolutionKind.NONE
        assert state == {}

    def test_single_membership_is_auto_selected(self, session, buyer1, company1):
        state = {}

        resolution = resolve_active_company(buyer1.id, state, session)

        assert resolution.is_resolved
        assert resolution.company_id == company1.id
        assert resolution.source == 'auto'
        assert resolution.role == CompanyRole.BUYER.value
        assert state[ACTIVE_COMPANY_KEY] == company1.id

    def test_multiple_memberships_require_selection(self, session, buyer1, company1, company2):
        session.add(UserCompany(user_id=buyer1.id, company_id=company2.id, role=CompanyRole.BUYER.value))
        session.commit()
        state = {}

        resolution = resolve_active_company(buyer1.id, state, session)

        assert resolution.kind == ResolutionKind.REQUIRES_SELECTION
        assert resolution.company_id is None
        assert resolution.suggested_company_id == company1.id
        assert ACTIVE_COMPANY_KEY not in state

    def test_stored_selection_is_kept(self, session, buyer1, company1, company2):
        session.add(UserCompany(user_id=buyer1.id, company_id=company2.id, role=CompanyRole.COMPANY_ADMIN.value))
        session.commit()
        state = {ACTIVE_COMPANY_KEY: company2.id}

        resolution = resolve_active_company(buyer1.id, state, session)

        assert resolution.company_id == company2.id
        assert resolution.source == 'stored'
        assert resolution.role == CompanyRole.COMPANY_ADMIN.value

    def test_stale_stored_selection_is_discarded(self, session, buyer1, company1, company2):
        state = {ACTIVE_COMPANY_KEY: company2.id}

        resolution = resolve_active_company(buyer1.id, state, session)

        # Falls back to the single real membership
        assert resolution.company_id == company1.id
        assert state[ACTIVE_COMPANY_KEY] == company1.id

    def test_deactivated_membership_is_stale(self, session, buyer1, company1):
        state = {ACTIVE_COMPANY_KEY: company1.id}
        link = session.query(UserCompany).filter_by(user_id=buyer1.id).one()
        link.active = False
        session.commit()

        resolution = resolve_active_company(buyer1.id, state, session)

        assert resolution.kind == ResolutionKind.NONE
        assert ACTIVE_COMPANY_KEY not in state

    def test_pending_company_is_not_selectable(self, session, buyer1, company1):
        pending = make_company(session, 'Gama Pendente', approval_status=ApprovalStatus.PENDING)
        session.add(UserCompany(user_id=buyer1.id, company_id=pending.id, role=CompanyRole.BUYER.value))
        session.commit()

        assert [c.id for c in list_user_companies(buyer1.id, session)] == [company1.id]
        assert resolve_active_company(buyer1.id, {}, session).company_id == company1.id

    def test_context_follows_resolution(self, session, buyer1, company1):
        resolution = resolve_active_company(buyer1.id, {}, session)
        ctx = build_request_context(buyer1, resolution, ip_address='10.0.0.1')

        assert ctx.effective_company_id == company1.id
        assert ctx.impersonating is False
        assert ctx.ip_address == '10.0.0.1'


class TestSetActiveCompany:
    """Explicit selection is checked against memberships."""

    def test_select_own_company(self, session, buyer1, company1, buyer_ctx):
        state = {}
        resolution = set_active_company(buyer1.id, company1.id, state, session, ctx=buyer_ctx)

        assert resolution.company_id == company1.id
        assert state[ACTIVE_COMPANY_KEY] == company1.id

    def test_select_foreign_company_is_forbidden(self, session, buyer1, company2):
        state = {}
        with pytest.raises(ScopeViolationError) as exc:
            set_active_company(buyer1.id, company2.id, state, session)

        assert exc.value.status_code == 403
        assert state == {}

    def test_select_missing_company(self, session, buyer1):
        with pytest.raises(NotFoundError):
            set_active_company(buyer1.id, 999999, {}, session)


class TestDataIsolation:
    """Company-scoped reads and writes."""

    def test_orders_are_listed_per_company(self, session, order1, company1, company2):
        assert [o.id for o in order_service.list_orders(company1.id, session)] == [order1.id]
        assert order_service.list_orders(company2.id, session) == []

    def test_foreign_order_is_not_found(self, session, order1, company2):
        with pytest.raises(NotFoundError):
            order_service.get_order(order1.id, session, company2.id)

    def test_catalog_is_scoped(self, session, product_a, product_b, product_company2, company2):
        listing = catalog_service.list_products(company2.id, session)

        assert listing['total'] == 1
        assert listing['items'][0]['id'] == product_company2.id

    def test_company_price_applies_only_to_its_company(self, session, company1, company2, product_a, admin_ctx):
        catalog_service.set_company_price(product_a.id, Decimal('7.50'), session, admin_ctx)

        assert catalog_service.resolve_unit_price(product_a, company1.id, session) == Decimal('7.50')
        assert catalog_service.resolve_unit_price(product_a, company2.id, session) == Decimal('10.00')

    def test_cannot_price_foreign_product(self, session, product_company2, admin_ctx):
        with pytest.raises(NotFoundError):
            catalog_service.set_company_price(product_company2.id, Decimal('1.00'), session, admin_ctx)
        assert session.query(CompanyPrice).count() == 0

    def test_operations_without_scope_are_refused(self, session, buyer1, product_a):
        with pytest.raises(ScopeViolationError):
            catalog_service.set_company_price(product_a.id, Decimal('1.00'), session, ctx_for(buyer1))
