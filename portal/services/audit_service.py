"""
Audit logging service for tracking critical actions.

Entries always record the true actor (ctx.actor_user_id) and, separately, the
company acted upon plus whether the actor was impersonating it.
"""
from portal.models.audit_log import AuditLog, AuditAction
from datetime import datetime
import json
import logging

logger = logging.getLogger(__name__)


def log_action(
    session,
    ctx,
    action: AuditAction,
    resource_type: str = None,
    resource_id: int = None,
    details: dict = None,
    company_id: int = None
):
    """
    Log an auditable action to the database.

    Args:
        session: Database session
        ctx: RequestContext of the acting user
        action: AuditAction enum value
        resource_type: Type of resource affected (e.g., 'order', 'discount')
        resource_id: ID of the affected resource
        details: Dict with additional details (will be JSON encoded)
        company_id: Company acted upon (defaults to ctx.effective_company_id)
    """
    try:
        if ctx is None or not ctx.actor_user_id:
            logger.warning(f"Cannot log action {action}: missing actor")
            return

        if company_id is None:
            company_id = ctx.effective_company_id

        # Serialize details to JSON
        details_json = None
        if details:
            try:
                details_json = json.dumps(details, default=str)
            except (TypeError, ValueError) as e:
                logger.warning(f"Failed to serialize audit details: {e}")
                details_json = str(details)

        audit_entry = AuditLog(
            company_id=company_id,
            actor_user_id=ctx.actor_user_id,
            impersonating=bool(ctx.impersonating),
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details_json,
            ip_address=ctx.ip_address,
            user_agent=(ctx.user_agent or '')[:255] or None,
            created_at=datetime.utcnow()
        )

        session.add(audit_entry)
        # Note: Caller is responsible for committing the session

        logger.info(
            f"Audit log created: {action.value} by user {ctx.actor_user_id} "
            f"on {resource_type} {resource_id} (company={company_id}, impersonating={ctx.impersonating})"
        )

    except Exception as e:
        logger.error(f"Failed to create audit log: {e}")
        # Don't raise exception - audit failures should not break business logic


def get_audit_logs(
    session,
    company_id: int,
    limit: int = 100,
    offset: int = 0,
    action_filter: AuditAction = None,
    actor_id_filter: int = None,
    resource_type_filter: str = None
):
    """
    Retrieve audit logs for a company with optional filters.

    Returns:
        List of AuditLog objects, newest first
    """
    query = session.query(AuditLog).filter(
        AuditLog.company_id == company_id
    )

    if action_filter:
        query = query.filter(AuditLog.action == action_filter)

    if actor_id_filter:
        query = query.filter(AuditLog.actor_user_id == actor_id_filter)

    if resource_type_filter:
        query = query.filter(AuditLog.resource_type == resource_type_filter)

    query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    query = query.limit(limit).offset(offset)

    return query.all()
