"""Company model - the tenant boundary of the portal."""
import enum
from sqlalchemy import Column, String, Boolean, DateTime, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from portal.database import Base, BigIntPK


class ApprovalStatus(enum.Enum):
    """Approval workflow state shared by companies and users."""
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'


class CustomerType(enum.Enum):
    """Commercial profile of a company."""
    WHOLESALE = 'WHOLESALE'
    RETAIL = 'RETAIL'


class Company(Base):
    """Company model - each buying business (CNPJ)."""

    __tablename__ = 'company'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    slug = Column(String(80), nullable=False, unique=True)  # URL-safe identifier
    legal_name = Column(String(200), nullable=False)  # Razão social
    trade_name = Column(String(200), nullable=True)  # Nome fantasia
    tax_id = Column(String(20), nullable=True, unique=True)  # CNPJ
    customer_type = Column(Enum(CustomerType, name='customer_type'), nullable=False, default=CustomerType.WHOLESALE)
    approval_status = Column(Enum(ApprovalStatus, name='company_approval_status'), nullable=False, default=ApprovalStatus.PENDING)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    user_companies = relationship('UserCompany', back_populates='company')

    def __repr__(self):
        return f"<Company(id={self.id}, slug='{self.slug}', status='{self.approval_status.value if self.approval_status else None}')>"

    @property
    def display_name(self):
        return self.trade_name or self.legal_name

    @property
    def is_operational(self):
        """Only approved, active companies can hold an active scope."""
        return bool(self.active) and self.approval_status == ApprovalStatus.APPROVED
