"""
Order stage state machine (fulfillment pipeline) and commercial status changes.

Each stage has exactly one forward action. Cancellation is a status, so it
short-circuits the pipeline regardless of the stage the order was in.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Tuple

from sqlalchemy.orm import Session

from portal.models import (
    Order, OrderStage, OrderStatus, AuditAction,
    STAGE_PIPELINE, STAGE_LABELS, parse_stage, parse_status
)
from portal.exceptions import (
    NotFoundError, InvalidTransitionError,
    DocumentGenerationError, ValidationError
)
from portal.services import audit_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageAction:
    """The single forward action available from a stage."""
    action: str
    label: str
    icon: str
    next_stage: OrderStage
    requires_document: bool = False


STAGE_ACTIONS = {
    OrderStage.AWAITING_PRINT: StageAction('print', 'Imprimir', 'printer', OrderStage.PRINTED, requires_document=True),
    OrderStage.PRINTED: StageAction('separate', 'Separar', 'package', OrderStage.SEPARATED),
    OrderStage.SEPARATED: StageAction('charge', 'Cobrar', 'dollar-sign', OrderStage.CHARGED),
    OrderStage.CHARGED: StageAction('verify_receipt', 'Conferir Comprovante', 'file-check', OrderStage.VERIFY_RECEIPT),
    OrderStage.VERIFY_RECEIPT: StageAction('start_verification', 'Em Conferência', 'search', OrderStage.IN_VERIFICATION),
    OrderStage.IN_VERIFICATION: StageAction('await_shipment', 'Aguardar Envio', 'truck', OrderStage.AWAITING_SHIPMENT),
    OrderStage.AWAITING_SHIPMENT: StageAction('ship', 'Enviar', 'send', OrderStage.SHIPPED),
}

TERMINAL_STAGE = OrderStage.SHIPPED

STATUS_TRANSITIONS = {
    OrderStatus.QUOTE: OrderStatus.GENERATED,
    OrderStatus.GENERATED: OrderStatus.INVOICED,
}

Printer = Callable[[Order, object], object]


def get_stage_action(stage) -> Optional[StageAction]:
    """
    Next action for a stage; None for the terminal stage or unknown values.

    Accepts OrderStage members, canonical names and legacy aliases.
    """
    try:
        stage = parse_stage(stage)
    except ValueError:
        return None
    return STAGE_ACTIONS.get(stage)


def stage_progress(stage) -> Tuple[int, int]:
    """(zero-based index, total stages) of a stage within the pipeline."""
    stage = parse_stage(stage)
    return STAGE_PIPELINE.index(stage), len(STAGE_PIPELINE)


def get_order_stage_view(order: Order) -> dict:
    """Display data for an order's stage column."""
    if order.is_cancelled:
        return {'cancelled': True, 'label': 'Cancelado', 'action': None}

    index, total = stage_progress(order.stage)
    action = STAGE_ACTIONS.get(order.stage)
    return {
        'cancelled': False,
        'stage': order.stage.value,
        'label': STAGE_LABELS[order.stage],
        'position': index + 1,
        'total': total,
        'action': {
            'action': action.action,
            'label': action.label,
            'icon': action.icon,
            'next_stage': action.next_stage.value,
        } if action else None,
    }


def _get_scoped_order(order_id: int, session: Session, company_id: int) -> Order:
    order = session.query(Order).filter(
        Order.id == order_id,
        Order.company_id == company_id
    ).populate_existing().with_for_update().first()
    if not order:
        raise NotFoundError(f'Pedido {order_id} não encontrado.')
    return order


def _render_document(render: Printer, order: Order) -> object:
    try:
        return render(order, order.company)
    except DocumentGenerationError:
        raise
    except Exception as e:
        logger.error(f"[STAGE] Print document failed for order {order.id}: {e}")
        raise DocumentGenerationError() from e


def advance_order_stage(order_id: int, from_stage, session: Session, ctx,
                        printer: Optional[Printer] = None) -> Order:
    """
    Move an order one step forward through the pipeline (tenant-scoped).

    from_stage must match the stored stage, which makes a blind retry of an
    already applied transition fail instead of skipping a stage. The print
    action renders the order document first; if rendering fails the stage is
    left unchanged.

    Args:
        order_id: Order ID
        from_stage: Stage the caller believes the order is in
        session: SQLAlchemy session
        ctx: RequestContext (effective company REQUIRED)
        printer: Optional callable(order, company) used for the print action

    Raises:
        NotFoundError, InvalidTransitionError, DocumentGenerationError,
        ValidationError, ScopeViolationError
    """
    company_id = ctx.require_company()
    try:
        expected = parse_stage(from_stage)
    except ValueError as e:
        raise ValidationError(str(e), field='from_stage')

    try:
        order = _get_scoped_order(order_id, session, company_id)

        if order.is_cancelled:
            raise InvalidTransitionError('Pedido cancelado não pode avançar de etapa.',
                                         current=OrderStatus.CANCELLED.value)

        if order.stage != expected:
            raise InvalidTransitionError(
                f'Pedido está em {order.stage.value}, não em {expected.value}.',
                current=order.stage.value, requested=expected.value
            )

        action = STAGE_ACTIONS.get(order.stage)
        if action is None:
            raise InvalidTransitionError('Pedido já foi enviado; não há próxima etapa.',
                                         current=order.stage.value)

        if action.requires_document:
            if printer is None:
                from portal.services.document_service import generate_order_pdf
                printer = generate_order_pdf
            _render_document(printer, order)
            order.printed_at = datetime.utcnow()
            audit_service.log_action(
                session, ctx, AuditAction.ORDER_PRINTED,
                resource_type='order', resource_id=order.id,
                details={'order_number': order.order_number}
            )

        previous = order.stage
        order.stage = action.next_stage

        audit_service.log_action(
            session, ctx, AuditAction.ORDER_STAGE_ADVANCED,
            resource_type='order', resource_id=order.id,
            details={'from': previous.value, 'to': order.stage.value, 'action': action.action}
        )
        session.commit()

        logger.info(f"[STAGE] Order {order.order_number}: {previous.value} -> {order.stage.value} by user {ctx.actor_user_id}")
        return order
    except Exception:
        session.rollback()
        raise


def cancel_order(order_id: int, session: Session, ctx, reason: Optional[str] = None) -> Order:
    """
    Cancel an order from any non-terminal stage (tenant-scoped).

    Raises:
        InvalidTransitionError: order already cancelled or already shipped
    """
    company_id = ctx.require_company()
    try:
        order = _get_scoped_order(order_id, session, company_id)

        if order.is_cancelled:
            raise InvalidTransitionError('Pedido já está cancelado.', current=OrderStatus.CANCELLED.value)
        if order.stage == TERMINAL_STAGE:
            raise InvalidTransitionError('Pedido enviado não pode ser cancelado.', current=order.stage.value)

        previous_status = order.status
        order.status = OrderStatus.CANCELLED
        order.cancel_reason = reason

        audit_service.log_action(
            session, ctx, AuditAction.ORDER_CANCELLED,
            resource_type='order', resource_id=order.id,
            details={'previous_status': previous_status.value, 'stage': order.stage.value, 'reason': reason}
        )
        session.commit()

        logger.info(f"[STAGE] Order {order.order_number} cancelled at stage {order.stage.value} by user {ctx.actor_user_id}")
        return order
    except Exception:
        session.rollback()
        raise


def update_order_status(order_id: int, new_status, session: Session, ctx) -> Order:
    """
    Move the commercial status forward: QUOTE -> GENERATED -> INVOICED.

    Cancellation is delegated to cancel_order.
    """
    try:
        target = parse_status(new_status)
    except ValueError as e:
        raise ValidationError(str(e), field='status')

    if target == OrderStatus.CANCELLED:
        return cancel_order(order_id, session, ctx)

    company_id = ctx.require_company()
    try:
        order = _get_scoped_order(order_id, session, company_id)

        if STATUS_TRANSITIONS.get(order.status) != target:
            raise InvalidTransitionError(
                f'Não é possível alterar o status de {order.status.value} para {target.value}.',
                current=order.status.value, requested=target.value
            )

        previous = order.status
        order.status = target

        audit_service.log_action(
            session, ctx, AuditAction.ORDER_STATUS_CHANGED,
            resource_type='order', resource_id=order.id,
            details={'from': previous.value, 'to': target.value}
        )
        session.commit()
        return order
    except Exception:
        session.rollback()
        raise
