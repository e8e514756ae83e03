"""
Unit tests for the stage pipeline definitions and alias parsing.
"""

import pytest
from types import SimpleNamespace

from portal.models import (
    OrderStage, OrderStatus, STAGE_PIPELINE, parse_stage, parse_status
)
from portal.services.order_stage_service import (
    STAGE_ACTIONS, get_stage_action, stage_progress, get_order_stage_view
)


class TestStageActions:
    """Each non-terminal stage has exactly one forward action."""

    def test_every_stage_but_shipped_has_an_action(self):
        for stage in STAGE_PIPELINE[:-1]:
            assert get_stage_action(stage) is not None
        assert get_stage_action(OrderStage.SHIPPED) is None

    def test_actions_move_one_step_forward(self):
        for index, stage in enumerate(STAGE_PIPELINE[:-1]):
            assert STAGE_ACTIONS[stage].next_stage == STAGE_PIPELINE[index + 1]

    @pytest.mark.parametrize('stage, label, icon, next_stage', [
        (OrderStage.AWAITING_PRINT, 'Imprimir', 'printer', OrderStage.PRINTED),
        (OrderStage.PRINTED, 'Separar', 'package', OrderStage.SEPARATED),
        (OrderStage.SEPARATED, 'Cobrar', 'dollar-sign', OrderStage.CHARGED),
        (OrderStage.CHARGED, 'Conferir Comprovante', 'file-check', OrderStage.VERIFY_RECEIPT),
        (OrderStage.VERIFY_RECEIPT, 'Em Conferência', 'search', OrderStage.IN_VERIFICATION),
        (OrderStage.IN_VERIFICATION, 'Aguardar Envio', 'truck', OrderStage.AWAITING_SHIPMENT),
        (OrderStage.AWAITING_SHIPMENT, 'Enviar', 'send', OrderStage.SHIPPED),
    ])
    def test_action_table(self, stage, label, icon, next_stage):
        action = get_stage_action(stage)
        assert (action.label, action.icon, action.next_stage) == (label, icon, next_stage)

    def test_only_print_requires_document(self):
        assert [s for s, a in STAGE_ACTIONS.items() if a.requires_document] == [OrderStage.AWAITING_PRINT]

    def test_unknown_stage_has_no_action(self):
        assert get_stage_action('NOT_A_STAGE') is None
        assert get_stage_action(None) is None

    def test_legacy_alias_resolves_action(self):
        assert get_stage_action('PENDENTE_IMPRESSAO').next_stage == OrderStage.PRINTED

    def test_stage_progress(self):
        assert stage_progress(OrderStage.AWAITING_PRINT) == (0, 8)
        assert stage_progress('ENVIADO') == (7, 8)


class TestStageView:
    """Display data for the stage column."""

    def test_cancelled_shows_only_indicator(self):
        order = SimpleNamespace(is_cancelled=True, stage=OrderStage.SEPARATED)
        view = get_order_stage_view(order)

        assert view == {'cancelled': True, 'label': 'Cancelado', 'action': None}

    def test_active_order_shows_next_action(self):
        order = SimpleNamespace(is_cancelled=False, stage=OrderStage.PRINTED)
        view = get_order_stage_view(order)

        assert view['position'] == 2
        assert view['action']['next_stage'] == 'SEPARATED'

    def test_shipped_has_no_action(self):
        order = SimpleNamespace(is_cancelled=False, stage=OrderStage.SHIPPED)
        assert get_order_stage_view(order)['action'] is None


class TestAliasParsing:
    """Legacy spellings are accepted only at the parsing boundary."""

    @pytest.mark.parametrize('raw', ['PENDENTE_IMPRESSAO', 'AGUARDANDO_IMPRESSAO', 'awaiting_print'])
    def test_awaiting_print_aliases(self, raw):
        assert parse_stage(raw) == OrderStage.AWAITING_PRINT

    def test_status_aliases(self):
        assert parse_status('ORCAMENTO') == OrderStatus.QUOTE
        assert parse_status('faturado') == OrderStatus.INVOICED
        assert parse_status('CANCELADO') == OrderStatus.CANCELLED

    def test_invalid_values_raise(self):
        with pytest.raises(ValueError):
            parse_stage('VOANDO')
        with pytest.raises(ValueError):
            parse_status(None)
