"""
Audit Log model for tracking critical actions in the portal.

Every row separates the true actor (the authenticated user, a superadmin
while impersonating) from the company the action was performed for.
"""
from sqlalchemy import Column, BigInteger, Boolean, String, Text, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from portal.database import Base, BigIntPK


class AuditAction(enum.Enum):
    """Enumeration of auditable actions."""
    # Superadmin
    IMPERSONATION_START = "IMPERSONATION_START"
    IMPERSONATION_END = "IMPERSONATION_END"
    COMPANY_APPROVED = "COMPANY_APPROVED"
    COMPANY_REJECTED = "COMPANY_REJECTED"
    COMPANY_STATUS_CHANGED = "COMPANY_STATUS_CHANGED"

    # User management
    USER_APPROVED = "USER_APPROVED"
    USER_REJECTED = "USER_REJECTED"
    USER_LINKED = "USER_LINKED"
    USER_LOGIN = "USER_LOGIN"
    USER_LOGOUT = "USER_LOGOUT"
    COMPANY_SELECTED = "COMPANY_SELECTED"

    # Pricing
    COMPANY_PRICE_SET = "COMPANY_PRICE_SET"
    COMPANY_PRICE_REMOVED = "COMPANY_PRICE_REMOVED"

    # Orders
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_ITEM_ADDED = "ORDER_ITEM_ADDED"
    ORDER_ITEM_UPDATED = "ORDER_ITEM_UPDATED"
    ORDER_ITEM_REMOVED = "ORDER_ITEM_REMOVED"
    ORDER_STAGE_ADVANCED = "ORDER_STAGE_ADVANCED"
    ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    ORDER_PRINTED = "ORDER_PRINTED"

    # Discounts
    DISCOUNT_REQUESTED = "DISCOUNT_REQUESTED"
    DISCOUNT_APPROVED = "DISCOUNT_APPROVED"
    DISCOUNT_REJECTED = "DISCOUNT_REJECTED"


class AuditLog(Base):
    """
    Audit log for tracking user actions.
    Multi-tenant: filtered by company_id (nullable for platform-level actions).
    """
    __tablename__ = 'audit_log'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=True, index=True)
    actor_user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False, index=True)
    impersonating = Column(Boolean, nullable=False, default=False)
    action = Column(SQLEnum(AuditAction, name='audit_action'), nullable=False, index=True)
    resource_type = Column(String(50))  # e.g., 'order', 'discount', 'user'
    resource_id = Column(BigInteger)  # ID of the affected resource
    details = Column(Text)  # JSON with additional details
    ip_address = Column(String(45))  # IPv4 or IPv6
    user_agent = Column(String(255))
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Relationships
    company = relationship('Company')
    actor = relationship('AppUser')

    def __repr__(self):
        return f"<AuditLog {self.action.value} by user {self.actor_user_id} at {self.created_at}>"
