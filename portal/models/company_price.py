"""CompanyPrice model - negotiated per-company product prices."""
from sqlalchemy import Column, BigInteger, Numeric, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from portal.database import Base, BigIntPK


class CompanyPrice(Base):
    """
    Price override for one product when bought by one company.

    Read at checkout time only; order items keep their own snapshot.
    """

    __tablename__ = 'company_price'
    __table_args__ = (
        UniqueConstraint('company_id', 'product_id', name='uq_company_price'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    company_id = Column(BigInteger, ForeignKey('company.id', ondelete='CASCADE'), nullable=False)
    product_id = Column(BigInteger, ForeignKey('product.id', ondelete='CASCADE'), nullable=False)
    custom_price = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    company = relationship('Company')
    product = relationship('Product')

    def __repr__(self):
        return f"<CompanyPrice(company_id={self.company_id}, product_id={self.product_id}, price={self.custom_price})>"
