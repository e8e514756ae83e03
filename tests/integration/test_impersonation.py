"""
Integration tests for superadmin impersonation.
"""

import json

import pytest

from portal.exceptions import UnauthorizedError, BusinessLogicError, NotFoundError
from portal.models import AuditLog, AuditAction
from portal.services.company_context_service import (
    ResolutionKind, IMPERSONATING_KEY, IMPERSONATED_COMPANY_KEY, IMPERSONATOR_KEY,
    resolve_active_company, build_request_context
)
from portal.services.impersonation_service import (
    enter_impersonation, exit_impersonation, get_impersonation_status, is_impersonating
)


class TestEnterImpersonation:

    def test_superadmin_acts_as_company(self, session, superadmin, company1):
        state = {}
        enter_impersonation(superadmin.id, company1.id, state, session, ip_address='127.0.0.1')

        assert is_impersonating(state)
        resolution = resolve_active_company(superadmin.id, state, session)
        assert resolution.kind == ResolutionKind.RESOLVED
        assert resolution.company_id == company1.id
        assert resolution.source == 'impersonation'

        ctx = build_request_context(superadmin, resolution)
        assert ctx.actor_user_id == superadmin.id
        assert ctx.impersonating is True
        assert ctx.is_company_admin is True

    def test_regular_user_cannot_impersonate(self, session, admin1, company2):
        state = {}
        with pytest.raises(UnauthorizedError):
            enter_impersonation(admin1.id, company2.id, state, session)

        assert state == {}
        assert session.query(AuditLog).count() == 0

    def test_nested_impersonation_is_refused(self, session, superadmin, company1, company2):
        state = {}
        enter_impersonation(superadmin.id, company1.id, state, session)

        with pytest.raises(BusinessLogicError):
            enter_impersonation(superadmin.id, company2.id, state, session)
        assert state[IMPERSONATED_COMPANY_KEY] == company1.id

    def test_unknown_company(self, session, superadmin):
        with pytest.raises(NotFoundError):
            enter_impersonation(superadmin.id, 999999, {}, session)

    def test_start_is_audited_with_true_actor(self, session, superadmin, company1):
        enter_impersonation(superadmin.id, company1.id, {}, session, ip_address='10.1.1.1')

        entry = session.query(AuditLog).filter_by(action=AuditAction.IMPERSONATION_START).one()
        assert entry.actor_user_id == superadmin.id
        assert entry.company_id == company1.id
        assert entry.impersonating is True
        assert entry.ip_address == '10.1.1.1'
        assert json.loads(entry.details)['company_slug'] == company1.slug


class TestExitImpersonation:

    def test_exit_restores_superadmin_scope(self, session, superadmin, company1):
        state = {}
        enter_impersonation(superadmin.id, company1.id, state, session)
        exit_impersonation(state, session)

        assert not is_impersonating(state)
        for key in (IMPERSONATING_KEY, IMPERSONATED_COMPANY_KEY, IMPERSONATOR_KEY):
            assert key not in state
        assert resolve_active_company(superadmin.id, state, session).kind == ResolutionKind.NONE

    def test_exit_is_idempotent(self, session, superadmin, company1):
        state = {}
        enter_impersonation(superadmin.id, company1.id, state, session)
        exit_impersonation(state, session)
        exit_impersonation(state, session)

        assert session.query(AuditLog).filter_by(action=AuditAction.IMPERSONATION_END).count() == 1

    def test_exit_without_impersonation(self, session):
        state = {'user_id': 1}
        assert exit_impersonation(state, session) == {'user_id': 1}
        assert session.query(AuditLog).count() == 0


class TestImpersonationSafety:

    def test_flag_forged_by_non_superadmin_is_dropped(self, session, buyer1, company1, company2):
        state = {
            IMPERSONATING_KEY: True,
            IMPERSONATED_COMPANY_KEY: company2.id,
            IMPERSONATOR_KEY: buyer1.id,
        }

        resolution = resolve_active_company(buyer1.id, state, session)

        assert resolution.company_id == company1.id
        assert not is_impersonating(state)

    def test_flag_owned_by_other_superadmin_is_dropped(self, session, superadmin, company1):
        from conftest import make_user
        other = make_user(session, 'root2@sistema.com', is_superadmin=True)
        state = {
            IMPERSONATING_KEY: True,
            IMPERSONATED_COMPANY_KEY: company1.id,
            IMPERSONATOR_KEY: other.id,
        }

        assert resolve_active_company(superadmin.id, state, session).kind == ResolutionKind.NONE

    def test_actions_while_impersonating_are_flagged(self, session, superadmin, company1, order1):
        from portal.services.order_stage_service import cancel_order

        state = {}
        enter_impersonation(superadmin.id, company1.id, state, session)
        ctx = build_request_context(superadmin, resolve_active_company(superadmin.id, state, session))
        cancel_order(order1.id, session, ctx, reason='Suporte')

        entry = session.query(AuditLog).filter_by(action=AuditAction.ORDER_CANCELLED).one()
        assert entry.actor_user_id == superadmin.id
        assert entry.company_id == company1.id
        assert entry.impersonating is True

    def test_status_banner(self, session, superadmin, company1):
        assert get_impersonation_status({}, session)['is_impersonating'] is False

        state = {}
        enter_impersonation(superadmin.id, company1.id, state, session)
        status = get_impersonation_status(state, session)

        assert status['is_impersonating'] is True
        assert status['company']['id'] == company1.id
        assert status['admin_email'] == superadmin.email
