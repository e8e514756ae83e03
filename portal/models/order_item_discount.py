"""OrderItemDiscount model - discount requests on order lines."""
import enum
from sqlalchemy import Column, BigInteger, Numeric, DateTime, Text, ForeignKey, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from portal.database import Base, BigIntPK


class DiscountType(enum.Enum):
    """How the discount value is interpreted."""
    FIXED = 'FIXED'
    PERCENTAGE = 'PERCENTAGE'


class DiscountStatus(enum.Enum):
    """Review state; only APPROVED discounts reduce order totals."""
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'


LEGACY_DISCOUNT_TYPE_ALIASES = {
    'VALOR': DiscountType.FIXED,
    'PERCENTUAL': DiscountType.PERCENTAGE,
}

LEGACY_DISCOUNT_STATUS_ALIASES = {
    'PENDENTE': DiscountStatus.PENDING,
    'APROVADO': DiscountStatus.APPROVED,
    'REJEITADO': DiscountStatus.REJECTED,
}


def parse_discount_type(value) -> DiscountType:
    """
    Normalize discount type to DiscountType.

    Raises:
        ValueError: If value is invalid
    """
    if isinstance(value, DiscountType):
        return value
    key = str(value or '').strip().upper()
    if key in DiscountType.__members__:
        return DiscountType[key]
    if key in LEGACY_DISCOUNT_TYPE_ALIASES:
        return LEGACY_DISCOUNT_TYPE_ALIASES[key]
    raise ValueError(f'Tipo de desconto inválido: {value}')


def parse_discount_status(value) -> DiscountStatus:
    """Normalize discount status to DiscountStatus."""
    if isinstance(value, DiscountStatus):
        return value
    key = str(value or '').strip().upper()
    if key in DiscountStatus.__members__:
        return DiscountStatus[key]
    if key in LEGACY_DISCOUNT_STATUS_ALIASES:
        return LEGACY_DISCOUNT_STATUS_ALIASES[key]
    raise ValueError(f'Status de desconto inválido: {value}')


class OrderItemDiscount(Base):
    """Discount requested by one user on an order item, reviewed by another."""

    __tablename__ = 'order_item_discount'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_item_id = Column(BigInteger, ForeignKey('b2b_order_item.id', ondelete='CASCADE'), nullable=False, index=True)
    requested_by_user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False)
    approved_by_user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)
    discount_type = Column(Enum(DiscountType, name='discount_type'), nullable=False)
    value = Column(Numeric(10, 2), nullable=False)
    reason = Column(Text, nullable=True)
    status = Column(Enum(DiscountStatus, name='discount_status'), nullable=False, default=DiscountStatus.PENDING)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    order_item = relationship('OrderItem', back_populates='discounts')
    requested_by = relationship('AppUser', foreign_keys=[requested_by_user_id])
    approved_by = relationship('AppUser', foreign_keys=[approved_by_user_id])

    def __repr__(self):
        return f"<OrderItemDiscount(id={self.id}, item={self.order_item_id}, {self.discount_type.value} {self.value}, {self.status.value})>"
