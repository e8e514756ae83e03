"""OrderItem model for order line items."""
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from portal.database import Base, BigIntPK


class OrderItem(Base):
    """
    Order line (item do pedido).

    Stores a snapshot of SKU and prices at order time so that later product
    price changes never alter existing orders.
    """

    __tablename__ = 'b2b_order_item'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, ForeignKey('b2b_order.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    sku = Column(String(50), nullable=False)
    product_name_snapshot = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    list_price = Column(Numeric(10, 2), nullable=False)  # catalog price at order time
    unit_price = Column(Numeric(10, 2), nullable=False)  # price charged (company price if any)
    subtotal = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    order = relationship('Order', back_populates='items')
    product = relationship('Product', foreign_keys=[product_id])
    discounts = relationship('OrderItemDiscount', back_populates='order_item', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<OrderItem(id={self.id}, order_id={self.order_id}, sku='{self.sku}', qty={self.quantity}, subtotal={self.subtotal})>"
