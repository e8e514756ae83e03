"""
Integration tests for the fulfillment pipeline and commercial status changes.
"""

import pytest

from portal.exceptions import (
    InvalidTransitionError, DocumentGenerationError, NotFoundError, ValidationError
)
from portal.models import Order, OrderStage, OrderStatus, AuditLog, AuditAction, STAGE_PIPELINE
from portal.services.order_stage_service import (
    advance_order_stage, cancel_order, update_order_status, get_order_stage_view
)


def _stub_printer(calls):
    def render(order, company):
        calls.append((order.id, company.id))
        return b'%PDF-stub'
    return render


def _broken_printer(order, company):
    raise IOError('impressora offline')


def _reload(session, order_id):
    return session.query(Order).filter_by(id=order_id).populate_existing().one()


def _walk_to(session, order, target, ctx):
    """Advance an order stage by stage until it reaches target."""
    current = _reload(session, order.id).stage
    while current != target:
        advance_order_stage(order.id, current, session, ctx, printer=_stub_printer([]))
        current = _reload(session, order.id).stage


class TestAdvanceStage:
    """advance_order_stage: one step at a time, from the stage the caller saw."""

    def test_print_renders_document_and_advances(self, session, order1, admin_ctx, company1):
        calls = []
        order = advance_order_stage(order1.id, OrderStage.AWAITING_PRINT, session, admin_ctx,
                                    printer=_stub_printer(calls))

        assert calls == [(order1.id, company1.id)]
        assert order.stage == OrderStage.PRINTED
        assert order.printed_at is not None
        printed = session.query(AuditLog).filter_by(action=AuditAction.ORDER_PRINTED, resource_id=order1.id).one()
        assert printed.actor_user_id == admin_ctx.actor_user_id

    def test_legacy_stage_name_is_accepted(self, session, order1, admin_ctx):
        order = advance_order_stage(order1.id, 'PENDENTE_IMPRESSAO', session, admin_ctx,
                                    printer=_stub_printer([]))
        assert order.stage == OrderStage.PRINTED

    def test_full_pipeline(self, session, order1, admin_ctx):
        _walk_to(session, order1, OrderStage.SHIPPED, admin_ctx)

        entries = session.query(AuditLog).filter_by(
            action=AuditAction.ORDER_STAGE_ADVANCED, resource_id=order1.id
        ).count()
        assert entries == len(STAGE_PIPELINE) - 1

    def test_stage_mismatch_is_rejected(self, session, order1, admin_ctx):
        with pytest.raises(InvalidTransitionError) as exc:
            advance_order_stage(order1.id, OrderStage.PRINTED, session, admin_ctx)

        assert exc.value.status_code == 409
        assert _reload(session, order1.id).stage == OrderStage.AWAITING_PRINT

    def test_retry_of_applied_transition_does_not_skip(self, session, order1, admin_ctx):
        advance_order_stage(order1.id, OrderStage.AWAITING_PRINT, session, admin_ctx, printer=_stub_printer([]))

        with pytest.raises(InvalidTransitionError):
            advance_order_stage(order1.id, OrderStage.AWAITING_PRINT, session, admin_ctx,
                                printer=_stub_printer([]))
        assert _reload(session, order1.id).stage == OrderStage.PRINTED

    def test_failed_print_keeps_stage(self, session, order1, admin_ctx):
        with pytest.raises(DocumentGenerationError) as exc:
            advance_order_stage(order1.id, OrderStage.AWAITING_PRINT, session, admin_ctx,
                                printer=_broken_printer)

        assert exc.value.status_code == 502
        order = _reload(session, order1.id)
        assert order.stage == OrderStage.AWAITING_PRINT
        assert order.printed_at is None
        assert session.query(AuditLog).filter_by(action=AuditAction.ORDER_PRINTED).count() == 0

    def test_default_printer_generates_pdf(self, session, order1, admin_ctx):
        order = advance_order_stage(order1.id, OrderStage.AWAITING_PRINT, session, admin_ctx)
        assert order.stage == OrderStage.PRINTED

    def test_unknown_stage_name(self, session, order1, admin_ctx):
        with pytest.raises(ValidationError):
            advance_order_stage(order1.id, 'VOANDO', session, admin_ctx)

    def test_shipped_is_terminal(self, session, order1, admin_ctx):
        _walk_to(session, order1, OrderStage.SHIPPED, admin_ctx)

        with pytest.raises(InvalidTransitionError):
            advance_order_stage(order1.id, OrderStage.SHIPPED, session, admin_ctx)

    def test_other_company_cannot_advance(self, session, order1, user2, company2):
        from conftest import ctx_for
        from portal.models import CompanyRole

        with pytest.raises(NotFoundError):
            advance_order_stage(order1.id, OrderStage.AWAITING_PRINT, session,
                                ctx_for(user2, company2, CompanyRole.COMPANY_ADMIN))


class TestCancellation:
    """Cancellation short-circuits the pipeline."""

    def test_cancel_mid_pipeline(self, session, order1, admin_ctx):
        _walk_to(session, order1, OrderStage.CHARGED, admin_ctx)

        order = cancel_order(order1.id, session, admin_ctx, reason='Cliente desistiu')

        assert order.status == OrderStatus.CANCELLED
        assert order.stage == OrderStage.CHARGED
        assert order.cancel_reason == 'Cliente desistiu'

    @pytest.mark.parametrize('stage', STAGE_PIPELINE[:-1], ids=lambda s: s.value)
    def test_cancel_from_any_open_stage(self, session, order1, admin_ctx, stage):
        _walk_to(session, order1, stage, admin_ctx)

        cancel_order(order1.id, session, admin_ctx)

        order = _reload(session, order1.id)
        assert order.status == OrderStatus.CANCELLED
        assert order.stage == stage
        assert get_order_stage_view(order)['action'] is None
        with pytest.raises(InvalidTransitionError):
            advance_order_stage(order1.id, stage, session, admin_ctx, printer=_stub_printer([]))

    def test_cancelled_order_cannot_advance(self, session, order1, admin_ctx):
        cancel_order(order1.id, session, admin_ctx)

        with pytest.raises(InvalidTransitionError):
            advance_order_stage(order1.id, OrderStage.AWAITING_PRINT, session, admin_ctx,
                                printer=_stub_printer([]))

    def test_cannot_cancel_twice(self, session, order1, admin_ctx):
        cancel_order(order1.id, session, admin_ctx)

        with pytest.raises(InvalidTransitionError):
            cancel_order(order1.id, session, admin_ctx)

    def test_shipped_order_cannot_be_cancelled(self, session, order1, admin_ctx):
        _walk_to(session, order1, OrderStage.SHIPPED, admin_ctx)

        with pytest.raises(InvalidTransitionError):
            cancel_order(order1.id, session, admin_ctx)
        assert _reload(session, order1.id).status == OrderStatus.QUOTE

    def test_cancel_is_audited(self, session, order1, admin_ctx, admin1):
        cancel_order(order1.id, session, admin_ctx, reason='Duplicado')

        entry = session.query(AuditLog).filter_by(action=AuditAction.ORDER_CANCELLED).one()
        assert entry.actor_user_id == admin1.id
        assert entry.resource_id == order1.id
        assert 'Duplicado' in entry.details


class TestStatusChanges:
    """Commercial status: QUOTE -> GENERATED -> INVOICED."""

    def test_forward_chain(self, session, order1, admin_ctx):
        assert update_order_status(order1.id, 'GENERATED', session, admin_ctx).status == OrderStatus.GENERATED
        assert update_order_status(order1.id, 'FATURADO', session, admin_ctx).status == OrderStatus.INVOICED

    def test_cannot_skip_status(self, session, order1, admin_ctx):
        with pytest.raises(InvalidTransitionError):
            update_order_status(order1.id, OrderStatus.INVOICED, session, admin_ctx)

    def test_cannot_go_back(self, session, order1, admin_ctx):
        update_order_status(order1.id, OrderStatus.GENERATED, session, admin_ctx)

        with pytest.raises(InvalidTransitionError):
            update_order_status(order1.id, OrderStatus.QUOTE, session, admin_ctx)

    def test_cancelled_status_delegates_to_cancel(self, session, order1, admin_ctx):
        order = update_order_status(order1.id, 'CANCELADO', session, admin_ctx)
        assert order.is_cancelled

    def test_invalid_status(self, session, order1, admin_ctx):
        with pytest.raises(ValidationError):
            update_order_status(order1.id, 'PAGO', session, admin_ctx)
